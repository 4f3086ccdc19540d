"""Command line entry point: key management and one-shot edits."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from .cli_progress import ProgressTicker
from .config import load_config
from .engine import RetouchEngine
from .errors import ApiKeyError, GenerationError
from .images import load_image_file, write_image
from .models.registry import PROVIDERS
from .settings.modes import MODES, PORTRAIT, ModeSettings
from .utils import load_dotenv, redact_key

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_KEY_REQUIRED = 2

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="retouch", description="Generative photo retouching engine")
    sub = parser.add_subparsers(dest="command")

    keys = sub.add_parser("keys", help="Manage provider API keys")
    keys_sub = keys.add_subparsers(dest="keys_command")
    keys_add = keys_sub.add_parser("add", help="Validate and store one or more keys")
    keys_add.add_argument("--provider", required=True, choices=PROVIDERS)
    keys_add.add_argument("keys", nargs="+", metavar="KEY")
    keys_sub.add_parser("list", help="List stored keys (redacted)")
    keys_remove = keys_sub.add_parser("remove", help="Delete a stored key")
    keys_remove.add_argument("key", metavar="KEY")
    keys_remove.add_argument("--provider", choices=PROVIDERS)
    keys_use = keys_sub.add_parser("use", help="Make a stored key the active one")
    keys_use.add_argument("key", metavar="KEY")
    keys_use.add_argument("--provider", choices=PROVIDERS)

    edit = sub.add_parser("edit", help="Run one edit and write the result")
    edit.add_argument("--image", required=True, help="Input image path")
    edit.add_argument("--out", required=True, help="Output image path")
    edit.add_argument("--mode", choices=MODES, default=PORTRAIT)
    edit.add_argument("--hint", default="", help="Free text or a workflow trigger such as STUDIO_SWAP")
    edit.add_argument("--set", dest="assignments", action="append", default=[], metavar="FIELD=VALUE")
    edit.add_argument("--provider", choices=PROVIDERS)
    edit.add_argument("--model")
    edit.add_argument("--background", help="Background image (composite mode)")
    edit.add_argument("--reference", help="Reference image (creative mode)")
    edit.add_argument("--strokes", help="JSON file with mask strokes (creative mode)")
    edit.add_argument("--events", help="Path to events.jsonl")

    return parser


def _coerce_value(raw: str, current: Any, name: str) -> Any:
    if isinstance(current, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"Field '{name}' expects a boolean, got '{raw}'.")
    if isinstance(current, int):
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"Field '{name}' expects an integer, got '{raw}'.") from None
    return raw


def _parse_assignments(pairs: Sequence[str], settings: ModeSettings) -> dict[str, Any]:
    updates: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Expected FIELD=VALUE, got '{pair}'.")
        name, raw = pair.split("=", 1)
        name = name.strip()
        if not hasattr(settings, name):
            raise ValueError(f"Unknown setting '{name}' for {settings.mode} mode.")
        updates[name] = _coerce_value(raw, getattr(settings, name), name)
    return updates


def _load_strokes(path: Path) -> dict[str, Any]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict) or not isinstance(payload.get("strokes"), list):
        raise ValueError("Stroke file must be an object with a 'strokes' list.")
    return payload


def _apply_strokes(engine: RetouchEngine, payload: dict[str, Any]) -> None:
    image = engine.current_image
    default_w, default_h = image.size if image is not None else (0, 0)
    engine.start_masking(int(payload.get("width") or default_w), int(payload.get("height") or default_h))
    for stroke in payload["strokes"]:
        points = [(float(x), float(y)) for x, y in stroke.get("points", [])]
        if not points:
            continue
        width = float(stroke.get("width", engine.brush_size))
        if len(points) == 1:
            points = points * 2
        for start, end in zip(points, points[1:]):
            engine.paint(start, end, width)
        engine.end_stroke()


def _resolve_provider(engine: RetouchEngine, key: str, provider: str | None) -> str | None:
    if provider:
        return provider if engine.keys.pool.contains(provider, key) else None
    holders = engine.keys.pool.providers_holding(key)
    return holders[0] if len(holders) == 1 else None


def _handle_keys(args: argparse.Namespace) -> int:
    engine = RetouchEngine(load_config())
    command = args.keys_command
    if command == "add":
        with ProgressTicker(f"Validating {len(args.keys)} {args.provider} key(s)"):
            result = engine.add_keys(args.provider, args.keys)
        for key in result.added:
            print(f"added   {redact_key(key)}")
        for key in result.failed:
            print(f"failed  {redact_key(key)}")
        return EXIT_OK if result.added else EXIT_FAILED
    if command == "list":
        pool = engine.keys.pool
        entries = pool.entries()
        if not entries:
            print("No API keys configured. Add one with `retouch keys add --provider P KEY`.")
            return EXIT_KEY_REQUIRED
        for provider, key in entries:
            marker = "*" if pool.active is not None and pool.active.key == key and pool.active.provider == provider else " "
            print(f"{marker} {provider:<7} {redact_key(key)}")
        return EXIT_OK
    if command in {"remove", "use"}:
        provider = _resolve_provider(engine, args.key, args.provider)
        if provider is None:
            print("Key not found (pass --provider if it is stored for several providers).", file=sys.stderr)
            return EXIT_FAILED
        if command == "remove":
            engine.remove_key(provider, args.key)
            print(f"removed {redact_key(args.key)}")
        else:
            engine.set_active_key(provider, args.key)
            print(f"active  {provider} {redact_key(args.key)}")
        return EXIT_OK
    print("Usage: retouch keys {add,list,remove,use}", file=sys.stderr)
    return EXIT_FAILED


def _handle_edit(args: argparse.Namespace) -> int:
    config = load_config()
    engine = RetouchEngine(config, events_path=Path(args.events) if args.events else None)
    try:
        engine.switch_mode(args.mode)
        updates: dict[str, Any] = {}
        if args.provider:
            updates["provider"] = args.provider
        if args.model:
            updates["model"] = args.model
        updates.update(_parse_assignments(args.assignments, engine.active_settings))
        if updates:
            engine.update_settings(updates)
        engine.load_image(load_image_file(args.image))
        if args.background:
            engine.set_background_image(load_image_file(args.background))
        if args.reference:
            engine.set_reference_image(load_image_file(args.reference))
        if args.strokes:
            _apply_strokes(engine, _load_strokes(Path(args.strokes)))
    except (OSError, ValueError) as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return EXIT_FAILED

    settings = engine.active_settings
    try:
        with ProgressTicker(f"Generating {args.mode} edit via {settings.provider}:{settings.model}"):
            response = engine.generate(args.hint)
    except ApiKeyError as exc:
        print(f"{exc}\nConfigure a key with `retouch keys add --provider {settings.provider} KEY`.", file=sys.stderr)
        return EXIT_KEY_REQUIRED
    except GenerationError as exc:
        print(f"Generation failed: {exc}", file=sys.stderr)
        return EXIT_FAILED
    for warning in response.warnings:
        print(f"Warning: {warning}")
    image = engine.current_image if engine.commit() else None
    if image is None:
        print("Generation produced no result to commit.", file=sys.stderr)
        return EXIT_FAILED
    out_path = write_image(image, out_path=Path(args.out))
    print(f"Wrote {out_path}")
    return EXIT_OK


def main() -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args()
    if args.command == "keys":
        raise SystemExit(_handle_keys(args))
    if args.command == "edit":
        raise SystemExit(_handle_edit(args))
    parser.print_help()
    raise SystemExit(1)


if __name__ == "__main__":
    main()
