"""Provider model catalogs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

GEMINI = "gemini"
OPENAI = "openai"
PROVIDERS = (GEMINI, OPENAI)

MASK_ERASE = "erase"
MASK_PROTECT = "protect"

# Capability tags.
EDIT_REGION = "edit_region"
HD_QUALITY = "hd"
MULTIMODAL = "multimodal"


@dataclass(frozen=True)
class ModelSpec:
    name: str
    provider: str
    label: str
    capabilities: tuple[str, ...] = ()

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities


# First entry per provider is that provider's default.
_DEFAULT_MODELS: tuple[ModelSpec, ...] = (
    ModelSpec(
        name="gemini-2.5-flash-image",
        provider=GEMINI,
        label="Gemini 2.5 Flash Image",
        capabilities=(MULTIMODAL,),
    ),
    ModelSpec(
        name="dall-e-3",
        provider=OPENAI,
        label="DALL-E 3",
        capabilities=(HD_QUALITY,),
    ),
    ModelSpec(
        name="dall-e-2",
        provider=OPENAI,
        label="DALL-E 2 (inpainting)",
        capabilities=(EDIT_REGION,),
    ),
)

class ModelRegistry:
    def __init__(self, models: Iterable[ModelSpec] | None = None) -> None:
        self._models: dict[str, ModelSpec] = {}
        for model in models if models is not None else _DEFAULT_MODELS:
            self._models[model.name] = model

    def get(self, name: str | None) -> ModelSpec | None:
        if not name:
            return None
        return self._models.get(name)

    def list(self) -> Iterable[ModelSpec]:
        return self._models.values()

    def for_provider(self, provider: str) -> list[ModelSpec]:
        return [model for model in self._models.values() if model.provider == provider]

    def default_model(self, provider: str) -> str:
        models = self.for_provider(provider)
        if not models:
            raise ValueError(f"Unknown provider '{provider}'.")
        return models[0].name

    def belongs_to(self, model: str | None, provider: str) -> bool:
        spec = self.get(model)
        return spec is not None and spec.provider == provider

    def supports(self, model: str | None, capability: str) -> bool:
        spec = self.get(model)
        return spec is not None and spec.supports(capability)


DEFAULT_REGISTRY = ModelRegistry()
