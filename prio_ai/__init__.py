"""
prio-ai: on-device AI routing for Prio.

Classifies tasks into Eisenhower quadrants and runs related NLP operations
through a tiered fallback chain:
- Deterministic rule-based classifier, always available
- Optional small model served by a local Ollama daemon
- On-device GGUF model through llama.cpp

Model tiers are only consulted when the rule-based answer is not confident
enough.
"""

__version__ = "0.1.0"

# Benchmarking
from .benchmark import (
    EISENHOWER_TEST_CASES,
    BenchmarkReport,
    EisenhowerTestCase,
    ProviderBenchmark,
)

# Model catalog and prompts
from .catalog import PREDEFINED_MODELS, ModelDefinition, template_for_model

# Configuration
from .config import PrioAIConfig

# Native engine
from .llama_engine import (
    EngineLifecycle,
    EngineState,
    GenerateResult,
    LoadResult,
    NativeInferenceEngine,
)

# Providers
from .observable import ObservableValue
from .ollama_provider import OllamaProvider
from .on_device import OnDeviceAiProvider
from .prompts import PromptTemplate, format_prompt
from .provider import AiCapability, AiProvider, ModelInfo, StreamChunk
from .response_parser import ResponseParseError, parse_model_output
from .router import AiProviderRouter, RouterStatistics, create_router
from .rule_based import RuleBasedFallbackProvider

# Request/response contracts
from .types import (
    ActionItem,
    ActionItems,
    AiContext,
    AiRequest,
    AiRequestOptions,
    AiRequestType,
    AiResponse,
    AiResponseMetadata,
    BriefingContent,
    ChatReply,
    EisenhowerQuadrant,
    ErrorCode,
    ParsedTask,
    PriorityClassification,
    RoutingMode,
    RoutingPath,
    SmartGoalSuggestion,
    Summary,
)

__all__ = [
    # Benchmarking
    "BenchmarkReport",
    "EISENHOWER_TEST_CASES",
    "EisenhowerTestCase",
    "ProviderBenchmark",
    # Catalog and prompts
    "ModelDefinition",
    "PREDEFINED_MODELS",
    "PromptTemplate",
    "format_prompt",
    "template_for_model",
    # Configuration
    "PrioAIConfig",
    # Native engine
    "EngineLifecycle",
    "EngineState",
    "GenerateResult",
    "LoadResult",
    "NativeInferenceEngine",
    # Providers
    "AiCapability",
    "AiProvider",
    "AiProviderRouter",
    "ModelInfo",
    "ObservableValue",
    "OllamaProvider",
    "OnDeviceAiProvider",
    "ResponseParseError",
    "RouterStatistics",
    "RuleBasedFallbackProvider",
    "StreamChunk",
    "create_router",
    "parse_model_output",
    # Contracts
    "ActionItem",
    "ActionItems",
    "AiContext",
    "AiRequest",
    "AiRequestOptions",
    "AiRequestType",
    "AiResponse",
    "AiResponseMetadata",
    "BriefingContent",
    "ChatReply",
    "EisenhowerQuadrant",
    "ErrorCode",
    "ParsedTask",
    "PriorityClassification",
    "RoutingMode",
    "RoutingPath",
    "SmartGoalSuggestion",
    "Summary",
]
