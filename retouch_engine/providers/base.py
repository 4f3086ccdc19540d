"""Provider base classes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol

from ..images import ImageData
from ..settings.modes import ModeSettings


@dataclass
class GenerationRequest:
    api_key: str | None
    provider: str
    model: str
    prompt: str
    mode: str
    settings: ModeSettings
    base_image: ImageData | None = None
    background_image: ImageData | None = None
    reference_image: ImageData | None = None
    mask: bytes | None = field(default=None, repr=False)


@dataclass
class ProviderResponse:
    image: ImageData
    provider_request: Mapping[str, Any]
    provider_response: Mapping[str, Any]
    warnings: list[str] = field(default_factory=list)


class ImageProvider(Protocol):
    name: str
    mask_convention: str

    def generate(self, request: GenerationRequest) -> ProviderResponse:
        ...

    def validate_key(self, api_key: str) -> bool:
        ...


class ProviderRegistry:
    def __init__(self, providers: Iterable[ImageProvider]) -> None:
        self._providers = {provider.name: provider for provider in providers}

    def get(self, name: str) -> ImageProvider | None:
        return self._providers.get(name)

    def list(self) -> list[str]:
        return sorted(self._providers.keys())
