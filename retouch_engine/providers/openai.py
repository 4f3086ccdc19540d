"""OpenAI image provider."""

from __future__ import annotations

import json
import time
from typing import Any, Mapping, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..errors import ApiKeyError, GenerationError
from ..images import ImageData
from ..models.registry import DEFAULT_REGISTRY, EDIT_REGION, HD_QUALITY, MASK_ERASE, OPENAI, ModelRegistry
from .base import GenerationRequest, ProviderResponse

DEFAULT_API_BASE = "https://api.openai.com/v1"
DEFAULT_MODEL = "dall-e-3"
IMAGE_SIZE = "1024x1024"
_INVALID_KEY_CODE = "invalid_api_key"


class OpenAIProvider:
    name = OPENAI
    mask_convention = MASK_ERASE

    def __init__(
        self,
        api_base: str | None = None,
        timeout_s: float = 90.0,
        registry: ModelRegistry | None = None,
    ) -> None:
        self.api_base = (api_base or DEFAULT_API_BASE).rstrip("/")
        self.timeout_s = timeout_s
        self.registry = registry or DEFAULT_REGISTRY

    def generate(self, request: GenerationRequest) -> ProviderResponse:
        api_key = request.api_key or ""
        model = request.model or DEFAULT_MODEL
        warnings: list[str] = []
        can_edit = self.registry.supports(model, EDIT_REGION)
        if request.base_image is not None and request.mask is not None and can_edit:
            return self._edit_with_images_api(request, model, api_key, warnings)
        if request.base_image is not None:
            # Capability gap: the generations endpoint cannot condition on an input image.
            warnings.append(
                f"OpenAI model '{model}' cannot edit the supplied image without a mask on an "
                "edit-capable model; generating from the text prompt only."
            )
        return self._generate_with_images_api(request, model, api_key, warnings)

    def validate_key(self, api_key: str) -> bool:
        if not api_key or not api_key.strip():
            return False
        req = Request(
            f"{self.api_base}/models",
            headers={"Authorization": f"Bearer {api_key}"},
            method="GET",
        )
        try:
            with urlopen(req, timeout=self.timeout_s) as response:
                status_code = int(getattr(response, "status", 200))
        except (HTTPError, URLError, OSError):
            return False
        return 200 <= status_code < 300

    def _generate_with_images_api(
        self, request: GenerationRequest, model: str, api_key: str, warnings: list[str]
    ) -> ProviderResponse:
        payload = _build_images_payload(request, model, self.registry)
        endpoint = f"{self.api_base}/images/generations"
        status_code, response = _post_json(endpoint, payload, api_key, self.timeout_s)
        image = _first_image(response, "OpenAI Images API returned no image data.")
        return ProviderResponse(
            image=image,
            provider_request={"endpoint": endpoint, "payload": payload},
            provider_response=_summarize_response(response, status_code),
            warnings=warnings,
        )

    def _edit_with_images_api(
        self, request: GenerationRequest, model: str, api_key: str, warnings: list[str]
    ) -> ProviderResponse:
        base_image, mask = request.base_image, request.mask
        if base_image is None or mask is None:
            raise GenerationError("OpenAI image edits need both a base image and a mask.", provider=OPENAI)
        endpoint = f"{self.api_base}/images/edits"
        fields, files, payload_manifest = _build_images_edit_payload(request.prompt, model, base_image, mask)
        status_code, response = _post_multipart(
            endpoint,
            fields=fields,
            files=files,
            api_key=api_key,
            timeout_s=self.timeout_s,
        )
        image = _first_image(response, "OpenAI Images edits endpoint returned no image data.")
        return ProviderResponse(
            image=image,
            provider_request={"endpoint": endpoint, "payload": payload_manifest},
            provider_response=_summarize_response(response, status_code),
            warnings=warnings,
        )


def _build_images_payload(request: GenerationRequest, model: str, registry: ModelRegistry) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": model,
        "prompt": request.prompt,
        "n": 1,
        "size": IMAGE_SIZE,
        "response_format": "b64_json",
    }
    if registry.supports(model, HD_QUALITY):
        payload["quality"] = "hd"
    return payload


def _build_images_edit_payload(
    prompt: str, model: str, base_image: ImageData, mask: bytes
) -> tuple[list[tuple[str, Any]], list[tuple[str, str, bytes, str | None]], dict[str, Any]]:
    fields: list[tuple[str, Any]] = [
        ("model", model),
        ("prompt", prompt),
        ("n", 1),
        ("size", IMAGE_SIZE),
        ("response_format", "b64_json"),
    ]
    files = [
        ("image", "image.png", base_image.data, base_image.mime_type),
        ("mask", "mask.png", mask, "image/png"),
    ]
    manifest: dict[str, Any] = {key: value for key, value in fields}
    manifest["image"] = {"filename": "image.png", "bytes": len(base_image.data)}
    manifest["mask"] = {"filename": "mask.png", "bytes": len(mask)}
    return fields, files, manifest


def _post_json(url: str, payload: Mapping[str, Any], api_key: str, timeout_s: float) -> tuple[int, dict[str, Any]]:
    body = json.dumps(payload).encode("utf-8")
    req = Request(
        url,
        data=body,
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        },
        method="POST",
    )
    return _send(req, api_key, timeout_s)


def _post_multipart(
    url: str,
    *,
    fields: Sequence[tuple[str, Any]],
    files: Sequence[tuple[str, str, bytes, str | None]],
    api_key: str,
    timeout_s: float,
) -> tuple[int, dict[str, Any]]:
    boundary = f"----RetouchBoundary{int(time.time() * 1000)}"
    body = _build_multipart_body(boundary, fields, files)
    req = Request(
        url,
        data=body,
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": f"multipart/form-data; boundary={boundary}",
        },
        method="POST",
    )
    return _send(req, api_key, timeout_s)


def _send(req: Request, api_key: str, timeout_s: float) -> tuple[int, dict[str, Any]]:
    try:
        with urlopen(req, timeout=timeout_s) as response:
            status_code = int(getattr(response, "status", 200))
            raw = response.read().decode("utf-8", errors="replace")
    except HTTPError as exc:
        raw = exc.read().decode("utf-8", errors="replace") if exc.fp else str(exc)
        raise _api_error(exc.code, raw, api_key) from exc
    except URLError as exc:
        raise GenerationError(f"OpenAI API request failed: {exc}", provider=OPENAI) from exc
    except (TimeoutError, OSError) as exc:
        # Read timeouts and dropped connections surface after urlopen returns.
        raise GenerationError(f"OpenAI API connection failed: {exc!r}", provider=OPENAI) from exc

    payload_json = _parse_json(raw)
    if isinstance(payload_json.get("error"), Mapping):
        raise _api_error(status_code, raw, api_key)
    return status_code, payload_json


def _api_error(status_code: int, raw: str, api_key: str) -> RuntimeError:
    error = _parse_json(raw).get("error")
    code = error.get("code") if isinstance(error, Mapping) else None
    message = error.get("message") if isinstance(error, Mapping) else None
    if code == _INVALID_KEY_CODE:
        return ApiKeyError(
            "The OpenAI API key is invalid. Please select or add a different key.",
            provider=OPENAI,
            api_key=api_key,
        )
    return GenerationError(f"OpenAI API error ({status_code}): {message or raw}", provider=OPENAI)


def _parse_json(raw: str) -> dict[str, Any]:
    try:
        payload = json.loads(raw)
    except ValueError:
        return {"raw": raw}
    return payload if isinstance(payload, dict) else {"raw": raw}


def _build_multipart_body(
    boundary: str,
    fields: Sequence[tuple[str, Any]],
    files: Sequence[tuple[str, str, bytes, str | None]],
) -> bytes:
    boundary_bytes = boundary.encode("utf-8")
    payload = bytearray()
    for key, value in fields:
        if value is None:
            continue
        payload.extend(b"--")
        payload.extend(boundary_bytes)
        payload.extend(b"\r\n")
        disposition = f'Content-Disposition: form-data; name="{_multipart_quote(key)}"\r\n\r\n'
        payload.extend(disposition.encode("utf-8"))
        payload.extend(str(value).encode("utf-8"))
        payload.extend(b"\r\n")
    for field_name, filename, blob, mime_type in files:
        payload.extend(b"--")
        payload.extend(boundary_bytes)
        payload.extend(b"\r\n")
        disposition = (
            "Content-Disposition: form-data; "
            f'name="{_multipart_quote(field_name)}"; filename="{_multipart_quote(filename)}"\r\n'
        )
        payload.extend(disposition.encode("utf-8"))
        if mime_type:
            payload.extend(f"Content-Type: {mime_type}\r\n".encode("utf-8"))
        payload.extend(b"\r\n")
        payload.extend(blob)
        payload.extend(b"\r\n")
    payload.extend(b"--")
    payload.extend(boundary_bytes)
    payload.extend(b"--\r\n")
    return bytes(payload)


def _multipart_quote(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace('"', '\\"')


def _first_image(response: Mapping[str, Any], empty_message: str) -> ImageData:
    data = response.get("data")
    if isinstance(data, list):
        for item in data:
            if isinstance(item, Mapping) and isinstance(item.get("b64_json"), str):
                try:
                    return ImageData.from_base64(item["b64_json"], mime_type="image/png")
                except ValueError as exc:
                    raise GenerationError(f"OpenAI returned undecodable image data: {exc}", provider=OPENAI) from exc
    raise GenerationError(empty_message, provider=OPENAI)


def _summarize_response(response: Mapping[str, Any], status_code: int) -> Mapping[str, Any]:
    data = response.get("data")
    summary = {
        "status_code": status_code,
        "created": response.get("created"),
        "data_count": len(data) if isinstance(data, list) else 0,
    }
    if "usage" in response:
        summary["usage"] = response.get("usage")
    return summary
