"""Session controller for retouch edits."""

from __future__ import annotations

import time
import uuid
from pathlib import Path
from typing import Any, Iterable, Mapping

from .config import EngineConfig, load_config
from .errors import ApiKeyError, GenerationError
from .history.lineage import EditHistory
from .images import ImageData, TextOverlay, flatten_text_overlays
from .keys.ring import KeyRing
from .keys.store import KeyStore
from .keys.validation import AddKeysResult
from .mask.encoder import MaskEncoder, Point
from .models.registry import DEFAULT_REGISTRY, ModelRegistry
from .prompts.compiler import compile_instruction
from .providers import default_registry
from .providers.base import GenerationRequest, ProviderRegistry, ProviderResponse
from .providers.dispatcher import Dispatcher
from .runs.events import EventWriter
from .settings.modes import (
    COMPOSITE,
    CREATIVE,
    PORTRAIT,
    ModeSettings,
    default_settings_book,
    merge,
    settings_to_dict,
    switch_mode,
)
from .utils import redact_key, sanitize_payload

DEFAULT_BRUSH_SIZE = 40


class RetouchEngine:
    """Owns one editing session.

    The engine is the only writer of the key pool and the image lineage.
    Callers must not start a new ``generate`` while one is in flight.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        provider_registry: ProviderRegistry | None = None,
        key_store: KeyStore | None = None,
        model_registry: ModelRegistry | None = None,
        events_path: Path | None = None,
    ) -> None:
        self.config = config or load_config()
        self.session_id = str(uuid.uuid4())
        self.events = EventWriter(events_path or self.config.events_path, self.session_id)
        self.models = model_registry or DEFAULT_REGISTRY
        self.dispatcher = Dispatcher(
            provider_registry
            or default_registry(self.config.openai_api_base, self.config.http_timeout_s)
        )
        store = key_store or KeyStore(self.config.keys_path, self.config.active_key_path)
        self.keys = KeyRing(
            store=store,
            validator=self.dispatcher.validate,
            max_workers=self.config.validation_workers,
        )
        self.settings: dict[str, ModeSettings] = default_settings_book()
        self.mode = PORTRAIT
        self.history: EditHistory[ImageData] = EditHistory()
        self.mask: MaskEncoder | None = None
        self.mask_png: bytes | None = None
        self.brush_size = DEFAULT_BRUSH_SIZE
        self.overlays: list[TextOverlay] = []
        self.background_image: ImageData | None = None
        self.reference_image: ImageData | None = None
        self.key_prompt_required = self.keys.pool.is_empty()
        self.last_response: ProviderResponse | None = None
        self.events.emit(
            "session_started",
            mode=self.mode,
            state_dir=str(self.config.state_dir),
            providers=self.dispatcher.registry.list(),
            key_count=len(self.keys.pool.entries()),
        )

    @property
    def active_settings(self) -> ModeSettings:
        return self.settings[self.mode]

    @property
    def current_image(self) -> ImageData | None:
        return self.history.current

    @property
    def result_image(self) -> ImageData | None:
        return self.history.pending

    @property
    def is_masking(self) -> bool:
        return self.mask is not None

    # --- Images -------------------------------------------------------------

    def load_image(self, image: ImageData) -> None:
        self.history.load(image)
        self._clear_mask()
        self.overlays = []
        self.events.emit("image_loaded", mime_type=image.mime_type, byte_count=len(image.data))

    def clear_image(self) -> None:
        self.history.clear()
        self.background_image = None
        self.reference_image = None
        self._clear_mask()
        self.overlays = []
        self.events.emit("image_cleared")

    def set_background_image(self, image: ImageData | None) -> None:
        self.background_image = image

    def set_reference_image(self, image: ImageData | None) -> None:
        self.reference_image = image

    # --- Modes & settings ---------------------------------------------------

    def switch_mode(self, mode: str) -> ModeSettings:
        settings = switch_mode(self.settings, mode)
        if mode != COMPOSITE:
            self.background_image = None
        if mode != CREATIVE:
            self.reference_image = None
            self._clear_mask()
        previous = self.mode
        self.settings[mode] = settings
        self.mode = mode
        self.events.emit("mode_switched", previous=previous, mode=mode)
        return settings

    def update_settings(self, partial: Mapping[str, Any]) -> ModeSettings:
        current = self.active_settings
        updated = merge(current, partial, self.models)
        self.settings[self.mode] = updated
        if updated.provider != current.provider:
            # The new provider reads masks with a different polarity.
            self._clear_mask()
        self.events.emit("settings_updated", mode=self.mode, settings=settings_to_dict(updated))
        return updated

    # --- Mask session -------------------------------------------------------

    def start_masking(self, width: int, height: int) -> MaskEncoder:
        if self.mode != CREATIVE:
            raise ValueError("Masking is only available in creative mode.")
        if self.current_image is None:
            raise ValueError("Load an image before painting a mask.")
        convention = self.dispatcher.mask_convention(self.active_settings.provider)
        self.mask = MaskEncoder(width, height, convention)
        self.mask_png = None
        self.events.emit("mask_started", width=width, height=height, convention=convention)
        return self.mask

    def stop_masking(self) -> None:
        self._clear_mask()

    def paint(self, start: Point, end: Point, width: float | None = None) -> None:
        if self.mask is None:
            raise ValueError("No active mask session.")
        if not self.mask.is_drawing:
            self.mask.begin_stroke()
        self.mask.add_segment(start, end, width if width is not None else self.brush_size)

    def end_stroke(self) -> bytes | None:
        if self.mask is None:
            return None
        png = self.mask.end_stroke()
        if png is not None:
            self.mask_png = png
            self.events.emit("mask_updated", coverage=round(self.mask.coverage(), 4))
        return png

    def resize_mask(self, width: int, height: int) -> None:
        if self.mask is None:
            return
        self.mask.resize(width, height)
        if not self.mask.is_empty:
            self.mask_png = self.mask.export_png()

    def _clear_mask(self) -> None:
        self.mask = None
        self.mask_png = None

    # --- Text overlays ------------------------------------------------------

    def add_text_overlay(self, **fields: Any) -> TextOverlay:
        overlay = TextOverlay(overlay_id=f"text-{int(time.time() * 1000)}-{len(self.overlays)}", **fields)
        self.overlays.append(overlay)
        return overlay

    def update_text_overlay(self, overlay_id: str, **updates: Any) -> TextOverlay:
        for overlay in self.overlays:
            if overlay.overlay_id == overlay_id:
                for key, value in updates.items():
                    if key == "overlay_id" or not hasattr(overlay, key):
                        raise ValueError(f"Unknown text overlay field '{key}'.")
                    setattr(overlay, key, value)
                return overlay
        raise KeyError(overlay_id)

    def remove_text_overlay(self, overlay_id: str) -> bool:
        remaining = [overlay for overlay in self.overlays if overlay.overlay_id != overlay_id]
        removed = len(remaining) != len(self.overlays)
        self.overlays = remaining
        return removed

    # --- Generation & lineage -----------------------------------------------

    def generate(self, hint: str | None = None) -> ProviderResponse:
        """Produce a pending result for the current image.

        Raises ``ApiKeyError`` when no usable key exists (even before an image
        is loaded) or the provider rejects the key; the rejected key is
        evicted. Any other failure raises ``GenerationError``. On failure no
        result is pending.
        """
        settings = self.active_settings
        self.history.discard_result()
        self.last_response = None
        api_key = self.keys.select(settings.provider)
        base = self.current_image
        has_mask = self.mode == CREATIVE and self.mask_png is not None
        has_reference = self.mode == CREATIVE and self.reference_image is not None
        self.events.emit(
            "generation_started",
            mode=self.mode,
            provider=settings.provider,
            model=settings.model,
            api_key=redact_key(api_key),
            has_mask=has_mask,
            has_reference=has_reference,
            overlays=len(self.overlays),
        )
        try:
            if api_key and base is None:
                raise GenerationError("Load an image before generating.", provider=settings.provider)
            if base is not None:
                try:
                    base = flatten_text_overlays(base, self.overlays)
                except (ValueError, OSError) as exc:
                    # Bad overlay colours raise ValueError, unreadable bases UnidentifiedImageError.
                    raise GenerationError(
                        f"Could not apply text overlays: {exc}", provider=settings.provider
                    ) from exc
            prompt = compile_instruction(
                self.mode,
                settings,
                hint,
                has_mask=has_mask,
                has_reference=has_reference,
                mask_convention=self.mask.convention if has_mask and self.mask is not None else None,
            )
            request = GenerationRequest(
                api_key=api_key,
                provider=settings.provider,
                model=settings.model,
                prompt=prompt,
                mode=self.mode,
                settings=settings,
                base_image=base,
                background_image=self.background_image if self.mode == COMPOSITE else None,
                reference_image=self.reference_image if has_reference else None,
                mask=self.mask_png if has_mask else None,
            )
            response = self.dispatcher.generate_image(request)
        except ApiKeyError as exc:
            self._handle_key_error(exc, settings.provider, api_key)
            raise
        except GenerationError as exc:
            self.events.emit("generation_failed", kind="generation", error=str(exc), provider=settings.provider)
            raise

        self.history.set_result(response.image)
        self.last_response = response
        self.events.emit(
            "result_ready",
            mode=self.mode,
            provider=settings.provider,
            model=settings.model,
            mime_type=response.image.mime_type,
            provider_request=sanitize_payload(response.provider_request),
            provider_response=sanitize_payload(response.provider_response),
            warnings=response.warnings,
        )
        return response

    def _handle_key_error(self, exc: ApiKeyError, provider: str, api_key: str | None) -> None:
        self.key_prompt_required = True
        self.events.emit("generation_failed", kind="api_key", error=str(exc), provider=provider)
        offending = exc.api_key or api_key
        if offending and self.keys.evict(exc.provider or provider, offending):
            self.events.emit("api_key_evicted", provider=exc.provider or provider, api_key=redact_key(offending))
            self._emit_active_key()

    def commit(self) -> bool:
        if not self.history.commit():
            return False
        self._clear_mask()
        self.events.emit("result_committed", **self.history.snapshot())
        return True

    def undo(self) -> bool:
        if not self.history.undo():
            return False
        self._clear_mask()
        self.events.emit("history_moved", direction="undo", **self.history.snapshot())
        return True

    def redo(self) -> bool:
        if not self.history.redo():
            return False
        self._clear_mask()
        self.events.emit("history_moved", direction="redo", **self.history.snapshot())
        return True

    # --- Keys ---------------------------------------------------------------

    def add_keys(self, provider: str, keys: Iterable[str]) -> AddKeysResult:
        if self.dispatcher.registry.get(provider) is None:
            raise ValueError(f"Unsupported provider: {provider}")
        before = self.keys.pool.active
        result = self.keys.add_keys(provider, keys)
        self.events.emit(
            "keys_added",
            provider=provider,
            added=[redact_key(key) for key in result.added],
            failed=[redact_key(key) for key in result.failed],
        )
        if result.added:
            self.key_prompt_required = False
        if self.keys.pool.active != before:
            self._emit_active_key()
        return result

    def remove_key(self, provider: str, key: str) -> bool:
        before = self.keys.pool.active
        removed = self.keys.remove_key(provider, key)
        if removed:
            self.events.emit("api_key_removed", provider=provider, api_key=redact_key(key))
            if self.keys.pool.active != before:
                self._emit_active_key()
            if self.keys.pool.is_empty():
                self.key_prompt_required = True
        return removed

    def set_active_key(self, provider: str, key: str) -> None:
        self.keys.set_active(provider, key)
        self.key_prompt_required = False
        self._emit_active_key()

    def _emit_active_key(self) -> None:
        active = self.keys.pool.active
        self.events.emit(
            "active_key_changed",
            provider=active.provider if active else None,
            api_key=redact_key(active.key) if active else None,
        )
