"""
chatrelay - Model Catalog

Static catalog of the upstream models this deployment exposes.
"""

from typing import Dict, List, Optional

from .models import ModelSpec


FALLBACK_MODEL_ID = "gpt-35-turbo"

KNOWN_MODELS: Dict[str, ModelSpec] = {
    "gpt-35-turbo": ModelSpec(id="gpt-35-turbo", name="GPT-3.5", token_limit=4000),
    "gpt-35-turbo-16k": ModelSpec(id="gpt-35-turbo-16k", name="GPT-3.5-16K", token_limit=16000),
    "gpt-4": ModelSpec(id="gpt-4", name="GPT-4", token_limit=8000),
    "gpt-4-32k": ModelSpec(id="gpt-4-32k", name="GPT-4-32K", token_limit=32000),
}

ENABLED_MODEL_IDS = ["gpt-35-turbo", "gpt-35-turbo-16k", "gpt-4", "gpt-4-32k"]


def list_models(enabled: Optional[List[str]] = None) -> List[ModelSpec]:
    """Enabled models in declaration order; unknown ids and duplicates dropped."""
    seen = set()
    result = []
    for model_id in enabled if enabled is not None else ENABLED_MODEL_IDS:
        spec = KNOWN_MODELS.get(model_id)
        if spec is None or spec.id in seen:
            continue
        seen.add(spec.id)
        result.append(spec)
    return result


def get_model(model_id: str) -> Optional[ModelSpec]:
    return KNOWN_MODELS.get(model_id)


def get_fallback_model() -> ModelSpec:
    return KNOWN_MODELS[FALLBACK_MODEL_ID]
