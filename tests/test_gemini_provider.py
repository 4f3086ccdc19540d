from __future__ import annotations

from types import SimpleNamespace

import pytest

from retouch_engine.errors import ApiKeyError, GenerationError
from retouch_engine.images import ImageData
from retouch_engine.providers.base import GenerationRequest
from retouch_engine.providers.gemini import GeminiProvider
from retouch_engine.settings.modes import COMPOSITE, CREATIVE, PORTRAIT, get_defaults


class _FakeModels:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


class _FakeClient:
    def __init__(self, models: _FakeModels) -> None:
        self.models = models


def _factory(models: _FakeModels, keys: list[str] | None = None):
    def build(api_key=None):
        if keys is not None:
            keys.append(api_key)
        return _FakeClient(models)

    return build


def _image_response(data: bytes = b"edited", mime_type: str = "image/png"):
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime_type), text=None)
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


def _request(mode: str, **kwargs) -> GenerationRequest:
    return GenerationRequest(
        api_key="AIza-test",
        provider="gemini",
        model="gemini-2.5-flash-image",
        prompt="instruction text",
        mode=mode,
        settings=get_defaults(mode),
        **kwargs,
    )


def _inline(part) -> tuple[bytes, str]:
    return part.inline_data.data, part.inline_data.mime_type


def test_creative_parts_order_base_mask_reference_text() -> None:
    models = _FakeModels(_image_response())
    keys: list[str] = []
    provider = GeminiProvider(client_factory=_factory(models, keys))

    response = provider.generate(
        _request(
            CREATIVE,
            base_image=ImageData(b"base", "image/jpeg"),
            mask=b"mask",
            reference_image=ImageData(b"ref", "image/webp"),
            background_image=ImageData(b"bg", "image/png"),
        )
    )

    call = models.calls[0]
    parts = call["contents"]
    assert call["model"] == "gemini-2.5-flash-image"
    assert list(call["config"].response_modalities) == ["IMAGE"]
    assert _inline(parts[0]) == (b"base", "image/jpeg")
    assert _inline(parts[1]) == (b"mask", "image/png")
    assert _inline(parts[2]) == (b"ref", "image/webp")
    assert parts[3].text == "instruction text"
    assert len(parts) == 4
    assert keys == ["AIza-test"]
    assert response.image == ImageData(b"edited", "image/png")


def test_composite_sends_background_only() -> None:
    models = _FakeModels(_image_response())
    provider = GeminiProvider(client_factory=_factory(models))

    provider.generate(
        _request(
            COMPOSITE,
            base_image=ImageData(b"subject", "image/png"),
            background_image=ImageData(b"bg", "image/jpeg"),
            reference_image=ImageData(b"ref", "image/png"),
        )
    )

    parts = models.calls[0]["contents"]
    assert [_inline(part) for part in parts[:2]] == [(b"subject", "image/png"), (b"bg", "image/jpeg")]
    assert parts[2].text == "instruction text"
    assert len(parts) == 3


def test_missing_base_image_raises_generation_error() -> None:
    provider = GeminiProvider(client_factory=_factory(_FakeModels(_image_response())))
    with pytest.raises(GenerationError, match="initial image"):
        provider.generate(_request(PORTRAIT))


@pytest.mark.parametrize("message", ["400 API key not valid. Please pass a valid API key.", "reason: API_KEY_INVALID"])
def test_invalid_key_marker_raises_api_key_error(message: str) -> None:
    provider = GeminiProvider(client_factory=_factory(_FakeModels(error=RuntimeError(message))))
    with pytest.raises(ApiKeyError) as excinfo:
        provider.generate(_request(PORTRAIT, base_image=ImageData(b"base")))
    assert excinfo.value.api_key == "AIza-test"


def test_other_failures_raise_generation_error() -> None:
    provider = GeminiProvider(client_factory=_factory(_FakeModels(error=RuntimeError("quota exceeded"))))
    with pytest.raises(GenerationError, match="quota exceeded"):
        provider.generate(_request(PORTRAIT, base_image=ImageData(b"base")))


def test_response_without_image_raises_generation_error() -> None:
    text_only = SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=[SimpleNamespace(inline_data=None, text="no")]))]
    )
    provider = GeminiProvider(client_factory=_factory(_FakeModels(text_only)))
    with pytest.raises(GenerationError, match="no image"):
        provider.generate(_request(PORTRAIT, base_image=ImageData(b"base")))


def test_validate_key_probes_text_model() -> None:
    models = _FakeModels(SimpleNamespace(candidates=[]))
    provider = GeminiProvider(client_factory=_factory(models))

    assert provider.validate_key("AIza-good")
    assert models.calls == [{"model": "gemini-2.5-flash", "contents": "test"}]
    assert not provider.validate_key("")

    failing = GeminiProvider(client_factory=_factory(_FakeModels(error=RuntimeError("API key not valid"))))
    assert not failing.validate_key("AIza-bad")
