"""Routes generation requests and key probes to providers."""

from __future__ import annotations

from ..errors import ApiKeyError, GenerationError
from .base import GenerationRequest, ProviderRegistry, ProviderResponse


class Dispatcher:
    def __init__(self, registry: ProviderRegistry) -> None:
        self.registry = registry

    def generate_image(self, request: GenerationRequest) -> ProviderResponse:
        if not request.api_key:
            raise ApiKeyError(
                f"No API key configured for '{request.provider}'. Add one with `retouch keys add`.",
                provider=request.provider,
            )
        provider = self.registry.get(request.provider)
        if provider is None:
            raise GenerationError(f"Unsupported provider: {request.provider}", provider=request.provider)
        return provider.generate(request)

    def validate(self, api_key: str, provider_name: str) -> bool:
        """Probe ``api_key``; never raises, every failure reads as ``False``."""
        if not api_key or not api_key.strip():
            return False
        provider = self.registry.get(provider_name)
        if provider is None:
            return False
        try:
            return bool(provider.validate_key(api_key))
        except Exception:
            return False

    def mask_convention(self, provider_name: str) -> str:
        provider = self.registry.get(provider_name)
        if provider is None:
            raise GenerationError(f"Unsupported provider: {provider_name}", provider=provider_name)
        return provider.mask_convention
