"""Work modes and their typed settings records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any, ClassVar, Mapping, Union

from ..models.registry import DEFAULT_REGISTRY, GEMINI, ModelRegistry

PORTRAIT = "portrait"
RESTORE = "restore"
CREATIVE = "creative"
COMPOSITE = "composite"
MODES = (PORTRAIT, RESTORE, CREATIVE, COMPOSITE)

MODE_LABELS = {
    PORTRAIT: "PORTRAIT",
    RESTORE: "RESTORE",
    CREATIVE: "CREATIVE",
    COMPOSITE: "COMPOSITE",
}

_DEFAULT_PROVIDER = GEMINI
_DEFAULT_MODEL = DEFAULT_REGISTRY.default_model(GEMINI)

# Session-level fields shared by every mode.
ENGINE_FIELDS = ("provider", "model")


@dataclass(frozen=True)
class PortraitSettings:
    mode: ClassVar[str] = PORTRAIT

    provider: str = _DEFAULT_PROVIDER
    model: str = _DEFAULT_MODEL
    # Identity & detail
    target_resolution: str = "8K"
    auto_skin_texture: bool = True
    auto_hair_detail: bool = True
    # Studio relighting
    auto_balance_lighting: bool = True
    light_style: str = "3-point"
    light_intensity: int = 70
    # Lens FX
    auto_bokeh: bool = True
    lens_profile: str = "85mm f/1.4"
    background_blur: int = 80
    chromatic_aberration: bool = False
    # Beauty & style
    skin_smoothing: int = 40
    remove_blemishes: bool = True
    remove_wrinkles: bool = False
    remove_dark_circles: bool = True
    makeup: str = ""
    hair: str = ""


@dataclass(frozen=True)
class RestoreSettings:
    mode: ClassVar[str] = RESTORE

    provider: str = _DEFAULT_PROVIDER
    model: str = _DEFAULT_MODEL
    auto_clean: bool = True
    hyper_real_skin: bool = True
    hair_and_fabric_details: bool = True
    resolution: str = "4K"
    auto_studio_light: bool = True
    light_style: str = "3-point"
    modern_auto_color: bool = True
    auto_white_balance: bool = True
    background_processing: str = "remaster"
    studio_backdrop: str = "grey"
    context: str = ""


@dataclass(frozen=True)
class CreativeSettings:
    mode: ClassVar[str] = CREATIVE

    provider: str = _DEFAULT_PROVIDER
    model: str = _DEFAULT_MODEL
    subject_isolated: bool = False
    background_prompt: str = ""
    full_body_prompt: str = ""


@dataclass(frozen=True)
class CompositeSettings:
    mode: ClassVar[str] = COMPOSITE

    provider: str = _DEFAULT_PROVIDER
    model: str = _DEFAULT_MODEL
    light_match: int = 85
    color_temp_match: int = 90
    smart_shadows: bool = True
    grain_match: bool = True
    focus_match: bool = True
    perspective_match: bool = True


ModeSettings = Union[PortraitSettings, RestoreSettings, CreativeSettings, CompositeSettings]

_SETTINGS_TYPES: dict[str, type] = {
    PORTRAIT: PortraitSettings,
    RESTORE: RestoreSettings,
    CREATIVE: CreativeSettings,
    COMPOSITE: CompositeSettings,
}


def _require_mode(mode: str) -> type:
    try:
        return _SETTINGS_TYPES[mode]
    except KeyError:
        raise ValueError(f"Unknown mode '{mode}'. Expected one of: {', '.join(MODES)}.") from None


def get_defaults(mode: str) -> ModeSettings:
    return _require_mode(mode)()


def default_settings_book() -> dict[str, ModeSettings]:
    return {mode: get_defaults(mode) for mode in MODES}


def field_names(settings: ModeSettings | type) -> tuple[str, ...]:
    return tuple(item.name for item in fields(settings))


def merge(
    current: ModeSettings,
    partial: Mapping[str, Any],
    registry: ModelRegistry | None = None,
) -> ModeSettings:
    """Overwrite fields of ``current`` with ``partial``.

    Unknown keys are ignored. The model always ends up in the provider's
    catalog: a provider change without a matching model (or any model outside
    the catalog) falls back to the provider's default model.
    """
    registry = registry or DEFAULT_REGISTRY
    allowed = set(field_names(current))
    updates = {key: value for key, value in partial.items() if key in allowed}
    if not updates:
        return current

    provider = updates.get("provider", current.provider)
    model = updates.get("model", current.model)
    if provider != current.provider and "model" not in updates:
        model = registry.default_model(provider)
    elif not registry.belongs_to(model, provider):
        model = registry.default_model(provider)
    updates["provider"] = provider
    updates["model"] = model
    return replace(current, **updates)


def switch_mode(all_settings: Mapping[str, ModeSettings], new_mode: str) -> ModeSettings:
    """Return the settings that become active when switching to ``new_mode``.

    Creative workflows restart from defaults on entry; provider and model are
    kept since they are chosen per session, not per workflow.
    """
    settings_type = _require_mode(new_mode)
    current = all_settings.get(new_mode)
    if current is None:
        return settings_type()
    if new_mode == CREATIVE:
        return settings_type(provider=current.provider, model=current.model)
    return current


def settings_to_dict(settings: ModeSettings) -> dict[str, Any]:
    payload = asdict(settings)
    payload["mode"] = settings.mode
    return payload
