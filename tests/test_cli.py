from __future__ import annotations

import io
import json
import sys
from pathlib import Path

import pytest
from PIL import Image

from retouch_engine import cli
from retouch_engine.images import ImageData
from retouch_engine.providers.base import ProviderRegistry, ProviderResponse


class _FakeProvider:
    def __init__(self, name: str, convention: str) -> None:
        self.name = name
        self.mask_convention = convention
        self.requests = []

    def generate(self, request):
        self.requests.append(request)
        return ProviderResponse(
            image=ImageData(_png((255, 255, 255))),
            provider_request={},
            provider_response={},
            warnings=["model ignored the input image"],
        )

    def validate_key(self, api_key: str) -> bool:
        return api_key.startswith("good")


def _png(color=(0, 0, 0)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture()
def providers(monkeypatch, tmp_path: Path):
    fakes = [_FakeProvider("gemini", "protect"), _FakeProvider("openai", "erase")]
    monkeypatch.setenv("RETOUCH_HOME", str(tmp_path / "state"))
    monkeypatch.delenv("RETOUCH_EVENTS", raising=False)
    monkeypatch.setattr("retouch_engine.engine.default_registry", lambda *args, **kwargs: ProviderRegistry(fakes))
    monkeypatch.chdir(tmp_path)
    return fakes


def _run(monkeypatch, *argv: str) -> int:
    monkeypatch.setattr(sys, "argv", ["retouch", *argv])
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    return int(excinfo.value.code)


def test_keys_add_list_use_remove(monkeypatch, providers, capsys) -> None:
    assert _run(monkeypatch, "keys", "add", "--provider", "gemini", "good-key-0001", "bad-key-0002") == 0
    out = capsys.readouterr().out
    assert "added   good...0001" in out
    assert "failed  bad-...0002" in out

    assert _run(monkeypatch, "keys", "add", "--provider", "gemini", "good-key-0003") == 0
    assert _run(monkeypatch, "keys", "use", "good-key-0003") == 0
    capsys.readouterr()
    assert _run(monkeypatch, "keys", "list") == 0
    listing = capsys.readouterr().out.splitlines()
    assert any(line.startswith("* gemini") and line.endswith("good...0003") for line in listing)

    assert _run(monkeypatch, "keys", "remove", "good-key-0003") == 0
    assert _run(monkeypatch, "keys", "remove", "good-key-0003") == 1


def test_keys_list_empty_signals_key_required(monkeypatch, providers) -> None:
    assert _run(monkeypatch, "keys", "list") == 2


def test_edit_without_key_exits_2(monkeypatch, providers, tmp_path: Path) -> None:
    source = tmp_path / "in.png"
    source.write_bytes(_png())
    assert _run(monkeypatch, "edit", "--image", str(source), "--out", str(tmp_path / "out.png")) == 2
    assert not (tmp_path / "out.png").exists()


def test_edit_writes_committed_result(monkeypatch, providers, tmp_path: Path, capsys) -> None:
    assert _run(monkeypatch, "keys", "add", "--provider", "gemini", "good-key-0001") == 0
    source = tmp_path / "in.png"
    source.write_bytes(_png())
    reference = tmp_path / "ref.png"
    reference.write_bytes(_png((0, 255, 0)))
    strokes = tmp_path / "strokes.json"
    strokes.write_text(json.dumps({"strokes": [{"points": [[2, 2], [10, 10]], "width": 3}]}), encoding="utf-8")
    out_path = tmp_path / "out.png"

    code = _run(
        monkeypatch,
        "edit",
        "--image", str(source),
        "--out", str(out_path),
        "--mode", "creative",
        "--hint", "STUDIO_SWAP",
        "--set", "subject_isolated=true",
        "--set", "background_prompt=a neon alley",
        "--reference", str(reference),
        "--strokes", str(strokes),
        "--events", str(tmp_path / "events.jsonl"),
    )

    assert code == 0
    assert out_path.read_bytes() == _png((255, 255, 255))
    request = providers[0].requests[0]
    assert request.settings.subject_isolated is True
    assert '"a neon alley"' in request.prompt
    assert request.mask is not None
    assert request.reference_image is not None
    assert "Warning: model ignored the input image" in capsys.readouterr().out
    assert (tmp_path / "events.jsonl").exists()


def test_edit_rejects_unknown_setting(monkeypatch, providers, tmp_path: Path) -> None:
    source = tmp_path / "in.png"
    source.write_bytes(_png())
    code = _run(monkeypatch, "edit", "--image", str(source), "--out", str(tmp_path / "o.png"), "--set", "sparkle=1")
    assert code == 1


def test_edit_without_committed_result_exits_1(monkeypatch, providers, tmp_path: Path) -> None:
    assert _run(monkeypatch, "keys", "add", "--provider", "gemini", "good-key-0001") == 0
    source = tmp_path / "in.png"
    source.write_bytes(_png())
    monkeypatch.setattr("retouch_engine.cli.RetouchEngine.commit", lambda self: False)

    assert _run(monkeypatch, "edit", "--image", str(source), "--out", str(tmp_path / "out.png")) == 1
    assert not (tmp_path / "out.png").exists()
