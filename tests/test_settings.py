from __future__ import annotations

import pytest

from retouch_engine.settings.modes import (
    COMPOSITE,
    CREATIVE,
    MODES,
    PORTRAIT,
    RESTORE,
    CreativeSettings,
    PortraitSettings,
    default_settings_book,
    get_defaults,
    merge,
    settings_to_dict,
    switch_mode,
)


def test_defaults_per_mode() -> None:
    portrait = get_defaults(PORTRAIT)
    assert isinstance(portrait, PortraitSettings)
    assert portrait.provider == "gemini"
    assert portrait.model == "gemini-2.5-flash-image"
    assert portrait.light_intensity == 70
    assert portrait.lens_profile == "85mm f/1.4"
    assert portrait.remove_wrinkles is False

    restore = get_defaults(RESTORE)
    assert restore.background_processing == "remaster"
    assert restore.studio_backdrop == "grey"

    composite = get_defaults(COMPOSITE)
    assert (composite.light_match, composite.color_temp_match) == (85, 90)

    assert set(default_settings_book()) == set(MODES)


def test_unknown_mode_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown mode"):
        get_defaults("sketch")


def test_merge_overwrites_known_fields_and_ignores_unknown() -> None:
    current = get_defaults(PORTRAIT)
    merged = merge(current, {"light_intensity": 20, "makeup": "natural", "bogus": 1})
    assert merged.light_intensity == 20
    assert merged.makeup == "natural"
    assert not hasattr(merged, "bogus")
    assert current.light_intensity == 70


def test_merge_provider_change_resets_model() -> None:
    merged = merge(get_defaults(PORTRAIT), {"provider": "openai"})
    assert merged.provider == "openai"
    assert merged.model == "dall-e-3"


def test_merge_provider_change_keeps_matching_model() -> None:
    merged = merge(get_defaults(CREATIVE), {"provider": "openai", "model": "dall-e-2"})
    assert merged.model == "dall-e-2"


def test_merge_model_outside_catalog_falls_back_to_default() -> None:
    merged = merge(get_defaults(PORTRAIT), {"model": "dall-e-2"})
    assert merged.provider == "gemini"
    assert merged.model == "gemini-2.5-flash-image"


def test_merge_unknown_provider_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown provider"):
        merge(get_defaults(PORTRAIT), {"provider": "midjourney"})


def test_switch_mode_is_lookup_except_creative_reset() -> None:
    book = default_settings_book()
    book[PORTRAIT] = merge(book[PORTRAIT], {"skin_smoothing": 10})
    book[CREATIVE] = CreativeSettings(
        provider="openai", model="dall-e-2", subject_isolated=True, background_prompt="beach"
    )

    assert switch_mode(book, PORTRAIT).skin_smoothing == 10

    creative = switch_mode(book, CREATIVE)
    assert creative.subject_isolated is False
    assert creative.background_prompt == ""
    assert (creative.provider, creative.model) == ("openai", "dall-e-2")


def test_settings_to_dict_carries_mode_tag() -> None:
    payload = settings_to_dict(get_defaults(RESTORE))
    assert payload["mode"] == RESTORE
    assert payload["resolution"] == "4K"
