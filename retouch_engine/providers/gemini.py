"""Gemini provider."""

from __future__ import annotations

from typing import Any, Callable, Sequence

from google import genai
from google.genai import types

from ..errors import ApiKeyError, GenerationError
from ..images import ImageData
from ..models.registry import GEMINI, MASK_PROTECT
from ..settings.modes import COMPOSITE, CREATIVE
from .base import GenerationRequest, ProviderResponse

DEFAULT_MODEL = "gemini-2.5-flash-image"
VALIDATION_MODEL = "gemini-2.5-flash"
_INVALID_KEY_MARKERS = ("API key not valid", "API_KEY_INVALID")


class GeminiProvider:
    name = GEMINI
    mask_convention = MASK_PROTECT

    def __init__(self, client_factory: Callable[..., Any] | None = None) -> None:
        self.client_factory = client_factory or genai.Client

    def generate(self, request: GenerationRequest) -> ProviderResponse:
        if request.base_image is None:
            raise GenerationError("Gemini requires an initial image for editing.", provider=self.name)
        client = self.client_factory(api_key=request.api_key)
        model = request.model or DEFAULT_MODEL
        parts = _build_message_parts(request)
        config = types.GenerateContentConfig(response_modalities=["IMAGE"])
        raw_request = {
            "model": model,
            "prompt": request.prompt,
            "parts": _describe_parts(request),
            "config": {"response_modalities": ["IMAGE"]},
        }
        try:
            response = client.models.generate_content(model=model, contents=parts, config=config)
        except Exception as exc:
            raise _translate_error(exc, request.api_key) from exc

        candidates = getattr(response, "candidates", []) or []
        blobs = _extract_image_bytes(candidates)
        if not blobs:
            raise GenerationError("Gemini returned no image.", provider=self.name)
        blob = blobs[0]
        return ProviderResponse(
            image=ImageData(data=blob["bytes"], mime_type=blob.get("mime_type") or "image/png"),
            provider_request=raw_request,
            provider_response={"model": model, "candidates": len(candidates), "images": len(blobs)},
            warnings=[],
        )

    def validate_key(self, api_key: str) -> bool:
        if not api_key or not api_key.strip():
            return False
        try:
            client = self.client_factory(api_key=api_key)
            client.models.generate_content(model=VALIDATION_MODEL, contents="test")
        except Exception:
            return False
        return True


def _build_message_parts(request: GenerationRequest) -> list[types.Part]:
    # Order: base, mask, reference (creative), background (composite), text.
    parts: list[types.Part] = [_inline_part(request.base_image)]
    if request.mask is not None:
        parts.append(types.Part(inline_data=types.Blob(data=request.mask, mime_type="image/png")))
    if request.mode == CREATIVE and request.reference_image is not None:
        parts.append(_inline_part(request.reference_image))
    if request.mode == COMPOSITE and request.background_image is not None:
        parts.append(_inline_part(request.background_image))
    parts.append(types.Part(text=request.prompt))
    return parts


def _inline_part(image: ImageData) -> types.Part:
    return types.Part(inline_data=types.Blob(data=image.data, mime_type=image.mime_type))


def _describe_parts(request: GenerationRequest) -> list[dict[str, Any]]:
    entries: list[dict[str, Any]] = [_describe_image("base_image", request.base_image)]
    if request.mask is not None:
        entries.append({"role": "mask", "mime_type": "image/png", "byte_count": len(request.mask)})
    if request.mode == CREATIVE and request.reference_image is not None:
        entries.append(_describe_image("reference_image", request.reference_image))
    if request.mode == COMPOSITE and request.background_image is not None:
        entries.append(_describe_image("background_image", request.background_image))
    entries.append({"role": "prompt", "text_chars": len(request.prompt)})
    return entries


def _describe_image(role: str, image: ImageData) -> dict[str, Any]:
    return {"role": role, "mime_type": image.mime_type, "byte_count": len(image.data)}


def _translate_error(exc: Exception, api_key: str | None) -> RuntimeError:
    message = str(exc)
    if any(marker in message for marker in _INVALID_KEY_MARKERS):
        return ApiKeyError(
            "The Gemini API key is invalid. Please select or add a different key.",
            provider=GEMINI,
            api_key=api_key,
        )
    return GenerationError(f"Gemini request failed: {message}", provider=GEMINI)


def _extract_image_bytes(candidates: Sequence[Any]) -> list[dict[str, Any]]:
    blobs: list[dict[str, Any]] = []
    for candidate in candidates:
        content = getattr(candidate, "content", None)
        parts = getattr(content, "parts", None) or getattr(candidate, "parts", None) or []
        for part in parts:
            inline_data = getattr(part, "inline_data", None)
            data = getattr(inline_data, "data", None) if inline_data else None
            if data is None:
                continue
            mime_type = getattr(inline_data, "mime_type", None)
            if isinstance(data, str):
                data = data.encode("latin1")
            if isinstance(data, (bytes, bytearray)):
                blobs.append({"bytes": bytes(data), "mime_type": mime_type})
    return blobs
