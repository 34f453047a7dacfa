"""
Configuration management for prio-ai.

Settings live in ``~/.prio/ai-config.json``; environment variables (also
read from a project ``.env`` file) override individual fields.
"""

import json
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv

from .catalog import DEFAULT_MODEL_ID
from .llama_engine import DEFAULT_CONTEXT_SIZE, DEFAULT_THREADS
from .ollama_provider import DEFAULT_OLLAMA_HOST, DEFAULT_OLLAMA_MODEL
from .types import RoutingMode

# Auto-load .env from project root
_project_root = Path(__file__).parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

DEFAULT_CONFIG_PATH = Path.home() / ".prio" / "ai-config.json"

RoutingModeName = Literal["rule_based_only", "model_only", "hybrid", "hybrid_secondary"]


@dataclass
class EngineConfig:
    """Native engine parameters."""

    context_size: int = DEFAULT_CONTEXT_SIZE
    threads: int = DEFAULT_THREADS


@dataclass
class ModelConfig:
    """Which on-device model to load."""

    model_id: str = DEFAULT_MODEL_ID
    model_path: str | None = None  # Supplied by the model registry after download


@dataclass
class SecondaryTierConfig:
    """Ollama-served secondary tier."""

    enabled: bool = True
    host: str = DEFAULT_OLLAMA_HOST
    model: str = DEFAULT_OLLAMA_MODEL
    timeout_s: float = 30.0


@dataclass
class RouterConfig:
    """
    Routing policy.

    Modes:
    - "rule_based_only": Never touch a model tier
    - "model_only": On-device model, rule-based fallback
    - "hybrid": Rule-based first, escalate on low confidence
    - "hybrid_secondary": Like hybrid, trying the secondary tier first
    """

    routing_mode: RoutingModeName = "hybrid"
    min_confidence: float = 0.7
    max_override_history: int = 500

    @property
    def mode(self) -> RoutingMode:
        return RoutingMode(self.routing_mode)


@dataclass
class PrioAIConfig:
    """Complete prio-ai configuration."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    secondary: SecondaryTierConfig = field(default_factory=SecondaryTierConfig)
    router: RouterConfig = field(default_factory=RouterConfig)

    @classmethod
    def load(cls, path: Path | None = None, environ: Mapping[str, str] | None = None) -> "PrioAIConfig":
        """Load configuration from file, then apply environment overrides."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            with open(path) as f:
                data = json.load(f)
            config = cls(
                engine=EngineConfig(**data.get("engine", {})),
                model=ModelConfig(**data.get("model", {})),
                secondary=SecondaryTierConfig(**data.get("secondary", {})),
                router=RouterConfig(**data.get("router", {})),
            )
        else:
            config = cls()

        config.apply_env(os.environ if environ is None else environ)
        return config

    def apply_env(self, environ: Mapping[str, str]) -> None:
        """Override fields from PRIO_AI_* and OLLAMA_HOST variables."""
        if environ.get("PRIO_AI_MODEL_PATH"):
            self.model.model_path = environ["PRIO_AI_MODEL_PATH"]
        if environ.get("PRIO_AI_MODEL_ID"):
            self.model.model_id = environ["PRIO_AI_MODEL_ID"]
        if environ.get("PRIO_AI_ROUTING_MODE"):
            mode = RoutingMode(environ["PRIO_AI_ROUTING_MODE"].lower())
            self.router.routing_mode = mode.value  # type: ignore[assignment]
        if environ.get("PRIO_AI_MIN_CONFIDENCE"):
            self.router.min_confidence = float(environ["PRIO_AI_MIN_CONFIDENCE"])
        if environ.get("OLLAMA_HOST"):
            host = environ["OLLAMA_HOST"]
            self.secondary.host = host if "://" in host else f"http://{host}"
        if environ.get("PRIO_AI_SECONDARY_MODEL"):
            self.secondary.model = environ["PRIO_AI_SECONDARY_MODEL"]

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)
