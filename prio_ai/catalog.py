"""
Static catalog of supported on-device models.

Maps a model id to its prompt template, context length and expected weight
file name. Download and checksum verification happen elsewhere; only the id
and a path reach this package.
"""

from __future__ import annotations

from dataclasses import dataclass

from .prompts import PromptTemplate

RULE_BASED_MODEL_ID = "rule-based"


@dataclass(frozen=True)
class ModelDefinition:
    """A model the on-device tier knows how to prompt."""

    model_id: str
    display_name: str
    template: PromptTemplate
    context_length: int
    file_name: str | None = None
    size_bytes: int = 0
    min_ram_gb: int = 0
    recommended: bool = False


PREDEFINED_MODELS: dict[str, ModelDefinition] = {
    m.model_id: m
    for m in (
        ModelDefinition(
            model_id="phi-3-mini-4k-instruct-q4",
            display_name="Phi-3 Mini 4K Instruct (Q4)",
            template=PromptTemplate.PHI3,
            context_length=4096,
            file_name="Phi-3-mini-4k-instruct-q4.gguf",
            size_bytes=2_390_000_000,
            min_ram_gb=4,
            recommended=True,
        ),
        ModelDefinition(
            model_id="mistral-7b-instruct-v0.2-q4",
            display_name="Mistral 7B Instruct v0.2 (Q4)",
            template=PromptTemplate.MISTRAL,
            context_length=8192,
            file_name="mistral-7b-instruct-v0.2.Q4_K_M.gguf",
            size_bytes=4_370_000_000,
            min_ram_gb=8,
        ),
        ModelDefinition(
            model_id="gemma-2-2b-it-q4",
            display_name="Gemma 2 2B IT (Q4)",
            template=PromptTemplate.GEMMA,
            context_length=8192,
            file_name="gemma-2-2b-it-Q4_K_M.gguf",
            size_bytes=1_710_000_000,
            min_ram_gb=3,
        ),
        ModelDefinition(
            model_id=RULE_BASED_MODEL_ID,
            display_name="Rule-based classifier",
            template=PromptTemplate.RAW,
            context_length=0,
        ),
    )
}

DEFAULT_MODEL_ID = "phi-3-mini-4k-instruct-q4"


def get_model(model_id: str) -> ModelDefinition | None:
    return PREDEFINED_MODELS.get(model_id)


def template_for_model(model_id: str | None) -> PromptTemplate:
    """
    Prompt template for a model id.

    Unknown ids fall back to a guess from the family name, then to ChatML.
    """
    if model_id is None:
        return PromptTemplate.CHATML
    model = PREDEFINED_MODELS.get(model_id)
    if model is not None:
        return model.template

    lowered = model_id.lower()
    for family, template in (
        ("phi-3", PromptTemplate.PHI3),
        ("phi3", PromptTemplate.PHI3),
        ("mistral", PromptTemplate.MISTRAL),
        ("gemma", PromptTemplate.GEMMA),
        ("llama-3", PromptTemplate.LLAMA3),
        ("llama3", PromptTemplate.LLAMA3),
        ("llama-2", PromptTemplate.LLAMA2),
        ("llama2", PromptTemplate.LLAMA2),
    ):
        if family in lowered:
            return template
    return PromptTemplate.CHATML
