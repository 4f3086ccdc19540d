"""Instruction compiler: mode settings to provider instruction text.

Two renderings exist. Multimodal providers receive a long, sectioned
instruction (task header, hard constraints, one block per setting, optional
reference and mask blocks, closing fidelity bar). Text-to-image providers with
short prompt limits receive a single compact sentence.

Output is a pure function of the inputs so it can be golden-tested.
"""

from __future__ import annotations

from typing import Callable

from ..models.registry import GEMINI, MASK_ERASE, MASK_PROTECT, OPENAI
from ..settings.modes import (
    COMPOSITE,
    CREATIVE,
    MODE_LABELS,
    PORTRAIT,
    RESTORE,
    CompositeSettings,
    CreativeSettings,
    ModeSettings,
    PortraitSettings,
    RestoreSettings,
)

# Workflow trigger hints sent by the one-click actions.
INSTANT_STUDIO_REMASTER = "INSTANT_STUDIO_REMASTER"
STUDIO_SWAP = "STUDIO_SWAP"
FULL_BODY_GENERATION = "FULL_BODY_GENERATION"
WORKFLOW_HINTS = (INSTANT_STUDIO_REMASTER, STUDIO_SWAP, FULL_BODY_GENERATION)

_IDENTITY_LOCK = (
    "**Identity-Lock: CRITICAL - 100% PRESERVATION.** "
    "The subject's facial features and identity must not be altered."
)
_SECTION_RULE = "---"
_COMPACT_SUFFIX = "8k, photorealistic, high detail"


def compile_instruction(
    mode: str,
    settings: ModeSettings,
    hint: str | None,
    has_mask: bool = False,
    has_reference: bool = False,
    mask_convention: str | None = None,
) -> str:
    """Render the instruction text for ``settings.provider``.

    ``mask_convention`` is the polarity of the mask raster that accompanies the
    request; the mask block describes exactly that polarity.
    """
    if settings.mode != mode:
        raise ValueError(f"Settings for '{settings.mode}' cannot compile mode '{mode}'.")
    if has_mask and mask_convention not in (MASK_ERASE, MASK_PROTECT):
        raise ValueError(f"A mask needs a known convention, got {mask_convention!r}.")
    mask = mask_convention if has_mask else None
    hint_text = (hint or "").strip()
    if settings.provider == OPENAI:
        return _compile_compact(mode, settings, hint_text, mask)
    if settings.provider == GEMINI:
        return _compile_multimodal(mode, settings, hint_text, mask, has_reference)
    raise ValueError(f"Unsupported AI provider: {settings.provider}")


# --- Multimodal rendering ------------------------------------------------------


class _Builder:
    def __init__(self) -> None:
        self._lines: list[str] = []

    def line(self, text: str = "") -> None:
        self._lines.append(text)

    def blank(self) -> None:
        if self._lines and self._lines[-1] != "":
            self._lines.append("")

    def heading(self, text: str) -> None:
        self.blank()
        self._lines.append(f"**{text}**")

    def bullet(self, text: str, indent: int = 0) -> None:
        self._lines.append(f"{'  ' * indent}- {text}")

    def toggle(self, label: str, enabled: bool, engaged: str, disengaged: str) -> None:
        if enabled:
            self.bullet(f"**{label}:** ENGAGED. {engaged}")
        else:
            self.bullet(f"**{label}:** DISENGAGED. {disengaged}")

    def text(self) -> str:
        while self._lines and self._lines[-1] == "":
            self._lines.pop()
        return "\n".join(self._lines)


def _compile_multimodal(
    mode: str,
    settings: ModeSettings,
    hint: str,
    mask: str | None,
    has_reference: bool,
) -> str:
    renderer = _MULTIMODAL_RENDERERS[mode]
    builder = _Builder()
    renderer(builder, settings, hint, mask, has_reference)
    return builder.text()


def _header(builder: _Builder, task: str, label: str, instruction: str) -> None:
    builder.line(f"CRITICAL TASK: {task}")
    builder.blank()
    builder.line(f'**{label}:** "{instruction}"')


def _constraints(builder: _Builder, items: list[str]) -> None:
    builder.blank()
    builder.line(_SECTION_RULE)
    builder.line("**HARD CONSTRAINTS:**")
    for idx, item in enumerate(items, start=1):
        builder.line(f"{idx}. {item}")


def _workflow_rule(builder: _Builder, title: str = "WORKFLOW & PARAMETERS:") -> None:
    builder.blank()
    builder.line(_SECTION_RULE)
    builder.line(f"**{title}**")


def _reference_block(builder: _Builder, detail: str | None = None) -> None:
    builder.heading("REFERENCE IMAGE INTEGRATION")
    builder.bullet(
        "**Action:** An additional image has been provided as a reference. "
        + (
            detail
            or "Use it as a guide for the requested content and style. The integration must be seamless "
            "and contextually appropriate. The reference image is a guide, not a strict composite element."
        )
    )


def _mask_block(builder: _Builder, convention: str) -> None:
    builder.heading("MASK")
    builder.bullet("**Action:** A mask image is provided directly after the image to edit.")
    if convention == MASK_ERASE:
        builder.bullet(
            "**Polarity: ERASE-TO-GENERATE.** The TRANSPARENT (erased) areas of the mask mark the region to "
            "regenerate. All OPAQUE areas are PROTECTED and must remain pixel-identical to the original."
        )
    else:
        builder.bullet(
            "**Polarity: PROTECT.** The WHITE (opaque) areas of the mask are PROTECTED and MUST NOT BE "
            "ALTERED in any way. The BLACK (transparent) areas are where new content may be generated."
        )
    builder.bullet("**ABSOLUTE RULE:** Preserve the protected areas of the original image with 100% fidelity.")


def _conditional_blocks(
    builder: _Builder,
    settings: ModeSettings,
    mask: str | None,
    has_reference: bool,
    reference_detail: str | None = None,
) -> None:
    if has_reference:
        _reference_block(builder, reference_detail)
    if mask:
        _mask_block(builder, mask)


def _closing(builder: _Builder, text: str) -> None:
    builder.blank()
    builder.line(f"**FINAL INSTRUCTION:** {text}")


def _render_portrait(
    builder: _Builder,
    settings: PortraitSettings,
    hint: str,
    mask: str | None,
    has_reference: bool,
) -> None:
    if hint == INSTANT_STUDIO_REMASTER:
        _header(
            builder,
            "Perform an INSTANT STUDIO REMASTER. This is an automated one-click process. Execute the following "
            "professional studio workflow with optimal settings to transform the input photo into a "
            "hyper-realistic, 8K masterpiece.",
            "User's primary instruction",
            "Make this portrait look like it was shot in a professional studio with high-end equipment.",
        )
    else:
        _header(
            builder,
            "Perform a custom studio-quality portrait enhancement based on the user's settings.",
            "User's primary instruction",
            hint or "Enhance this portrait based on the parameters below.",
        )

    _constraints(
        builder,
        [
            _IDENTITY_LOCK,
            "**Composition:** Keep the original framing, pose and expression.",
        ],
    )
    _workflow_rule(builder)

    builder.heading("STEP 1: CORE ENGINE - IDENTITY & DETAIL")
    if settings.target_resolution:
        builder.bullet(
            f"**Generative Upscale Target:** Reconstruct the image to a target resolution of "
            f"**{settings.target_resolution}**."
        )
    builder.toggle(
        "Auto-Skin Texture",
        settings.auto_skin_texture,
        "Generate realistic, high-frequency skin texture, including pores and micro-details.",
        "Keep the existing skin texture; do not synthesize new pores or micro-details.",
    )
    builder.toggle(
        "Auto-Hair Detail",
        settings.auto_hair_detail,
        "Reconstruct individual, sharp strands of hair.",
        "Keep the existing hair rendering; do not regenerate individual strands.",
    )

    builder.heading("STEP 2: DYNAMIC STUDIO RELIGHTING")
    builder.bullet(
        "**Lighting Analysis:** First, analyze the original lighting for flaws like harsh shadows or "
        "blown-out highlights."
    )
    builder.toggle(
        "Auto-Relighting",
        settings.auto_balance_lighting,
        "Neutralize the original flawed lighting and re-light the subject virtually using a professional "
        f"**'{settings.light_style}'** setup. The goal is balanced, dimensional light.",
        "Preserve and enhance the original lighting only.",
    )
    if settings.auto_balance_lighting:
        builder.bullet(f"**Light Intensity:** Set to approximately {settings.light_intensity}%.")

    builder.heading("STEP 3: PROFESSIONAL LENS & CAMERA FX")
    builder.toggle(
        "Depth of Field",
        settings.auto_bokeh,
        "Perform a precise subject-background separation.",
        "Maintain the original background focus.",
    )
    if settings.auto_bokeh:
        if settings.lens_profile:
            builder.bullet(
                f"**Lens Profile:** Simulate a **'{settings.lens_profile}'** lens to create a beautiful, "
                "creamy bokeh.",
                indent=1,
            )
        builder.bullet(
            f"**Background Blur:** Set blur intensity to approximately {settings.background_blur}%.",
            indent=1,
        )
    builder.toggle(
        "Chromatic Aberration",
        settings.chromatic_aberration,
        "Add subtle chromatic aberration for enhanced photorealism.",
        "Keep edges free of color fringing.",
    )

    builder.heading("STEP 4: BEAUTY & STYLE")
    builder.bullet(
        f"**Skin Smoothing:** Apply a natural skin smoothing effect at {settings.skin_smoothing}%, "
        "preserving skin texture. This should NOT look like plastic."
    )
    builder.toggle(
        "Blemish Removal",
        settings.remove_blemishes,
        "Remove acne and spots.",
        "Keep existing spots and marks.",
    )
    builder.toggle(
        "Wrinkle Removal",
        settings.remove_wrinkles,
        "Soften and remove wrinkles.",
        "Keep wrinkles and natural lines as they are.",
    )
    builder.toggle(
        "Dark Circle Removal",
        settings.remove_dark_circles,
        "Remove dark under-eye circles.",
        "Keep the under-eye area as it is.",
    )
    if settings.makeup:
        builder.bullet(f'**Makeup Style:** Apply makeup as described: "{settings.makeup}".')
    if settings.hair:
        builder.bullet(f'**Hair Style:** Modify hair as described: "{settings.hair}".')

    _conditional_blocks(builder, settings, mask, has_reference)
    _closing(
        builder,
        "Execute this multi-step process to transform the portrait. The result must be hyper-realistic, "
        "detailed, and indistinguishable from a high-end professional studio photograph.",
    )


def _render_restore(
    builder: _Builder,
    settings: RestoreSettings,
    hint: str,
    mask: str | None,
    has_reference: bool,
) -> None:
    _header(
        builder,
        "Perform a hyper-realistic, studio-quality photo restoration. The goal is to make the restored photo "
        "indistinguishable from a modern, high-resolution photograph of the original scene, finished with "
        "professional studio techniques.",
        "User-provided context",
        settings.context or "No specific context provided.",
    )
    if hint:
        builder.line(f'**User\'s primary instruction:** "{hint}"')

    _constraints(
        builder,
        [
            _IDENTITY_LOCK,
            "**Faithfulness:** This must be a 100% faithful restoration of the original scene and subject.",
        ],
    )
    _workflow_rule(builder, "RESTORATION WORKFLOW:")

    builder.heading("STEP 1: ANALYSIS & CLEANING")
    builder.bullet(
        "**Analysis:** You are an expert photo restoration AI. Analyze the image for all forms of degradation."
    )
    builder.toggle(
        "Damage & Noise Removal",
        settings.auto_clean,
        "Automatically remove all scratches, stains, mold, and film grain without losing core details. "
        "Prepare a clean base image.",
        "Preserve original grain and minor imperfections.",
    )

    builder.heading("STEP 2: CORE REMASTERING")
    builder.toggle(
        "Hyper-Real Skin Texture",
        settings.hyper_real_skin,
        "Generate realistic skin texture, including pores and micro-details, appropriate for the subject's age.",
        "Keep the restored skin close to the original rendering.",
    )
    builder.toggle(
        "Hair & Fabric Detail Generation",
        settings.hair_and_fabric_details,
        "Reconstruct individual strands of hair and the fine texture of clothing fabric for maximum realism.",
        "Do not invent new hair or fabric detail beyond what is visible.",
    )
    if settings.resolution:
        builder.bullet(f"**Target Resolution:** Upscale the final output to {settings.resolution}.")

    builder.heading("STEP 3: STUDIO FINISHING")
    if settings.auto_studio_light:
        builder.bullet(
            "**Studio Relighting:** ENGAGED. Remove the original, often flat or poor, lighting. Re-light the "
            f"subject using a virtual '{settings.light_style}' setup to create depth, dimension, and a "
            "professional look."
        )
    else:
        builder.bullet(
            "**Studio Relighting:** DISENGAGED. PRESERVE ORIGINAL LIGHTING. Only enhance, do not replace, "
            "the original lighting."
        )
    builder.toggle(
        "Modern Colorization",
        settings.modern_auto_color,
        "Apply vibrant, realistic colors as if shot with a modern digital camera.",
        "Keep the original color palette (including black and white).",
    )
    builder.toggle(
        "Auto White Balance",
        settings.auto_white_balance,
        "Correct any color casts to ensure neutral tones and accurate skin colors.",
        "Keep the original color temperature.",
    )
    if settings.background_processing == "new_studio":
        builder.bullet(
            "**Background Processing:** Replace the original background with a new, clean studio backdrop."
        )
        if settings.studio_backdrop:
            builder.bullet(
                f"**Backdrop Style:** Create a '{settings.studio_backdrop}' backdrop that complements the subject.",
                indent=1,
            )
    else:
        builder.bullet(
            "**Background Processing:** Remaster the original background. Enhance its details and match its "
            "lighting and color to the relit subject."
        )

    _conditional_blocks(builder, settings, mask, has_reference)
    _closing(
        builder,
        "Execute this multi-step process to transform the old photograph into a perfect, modern, "
        "studio-quality portrait. The result must be hyper-realistic and seamless.",
    )


def _render_creative(
    builder: _Builder,
    settings: CreativeSettings,
    hint: str,
    mask: str | None,
    has_reference: bool,
) -> None:
    if hint == STUDIO_SWAP:
        _render_studio_swap(builder, settings, mask, has_reference)
    elif hint == FULL_BODY_GENERATION:
        _render_full_body(builder, settings, mask, has_reference)
    else:
        _render_general_creative(builder, settings, hint, mask, has_reference)


def _render_studio_swap(
    builder: _Builder,
    settings: CreativeSettings,
    mask: str | None,
    has_reference: bool,
) -> None:
    _header(
        builder,
        "Perform a HYPER-REAL STUDIO SWAP. This involves two main stages: generative matting for perfect "
        "subject isolation, followed by a seamless composite into a new background.",
        "User's primary instruction",
        "Replace the background of the image with a new one based on the following prompt, ensuring the "
        "result is indistinguishable from a real studio photograph.",
    )
    _constraints(
        builder,
        [
            _IDENTITY_LOCK,
            "**Subject Integrity:** Preserve 100% of fine subject details such as individual hair strands.",
        ],
    )
    _workflow_rule(builder)

    builder.heading("STAGE 1: HYPER-DETAIL GENERATIVE MATTING")
    builder.bullet("**Action:** Isolate the primary subject from the original background.")
    builder.toggle(
        "Pre-Isolated Subject",
        settings.subject_isolated,
        "The subject has already been isolated. Only refine the existing edges; do not re-cut the subject.",
        "Perform full generative matting from the original photograph.",
    )
    builder.bullet(
        "**Method: CRITICAL - Use Generative Matting.** Do NOT use a simple alpha mask. Instead, analyze the "
        "boundary pixels (especially hair, fur, transparent fabrics) and intelligently REGENERATE them, "
        "avoiding any 'halo' or matted-edge effects."
    )

    builder.heading("STAGE 2: HYPER-REAL COMPOSITING")
    if settings.background_prompt:
        builder.bullet(f'**New Background Prompt:** "{settings.background_prompt}"')
    builder.bullet("**Action:** Composite the perfectly isolated subject into the newly generated background.")
    builder.bullet("**Compositing Method: CRITICAL - Use Hyper-Real Logic.** Execute the following in order:")
    builder.bullet(
        "**1. Environment Lighting Analysis:** Build a virtual HDRI map of the new background; identify every "
        "light source, its direction, color temperature, and intensity.",
        indent=1,
    )
    builder.bullet(
        "**2. Subject Re-lighting:** COMPLETELY REMOVE the original lighting from the isolated subject and "
        "relight it from the virtual HDRI map.",
        indent=1,
    )
    builder.bullet(
        "**3. Smart Shadow Casting:** Cast a realistic shadow from the subject onto the new background.",
        indent=1,
    )
    builder.bullet(
        "**4. Full Harmonization:** Match color temperature, black levels, white balance, saturation, and "
        "film grain to the new background.",
        indent=1,
    )
    builder.bullet("**5. Seam Blending:** Ensure the final integration is absolutely invisible.", indent=1)

    _conditional_blocks(builder, settings, mask, has_reference)
    _closing(
        builder,
        "The final image must look like a single, cohesive photograph taken in a professional setting. The "
        "composite should be completely undetectable.",
    )


def _render_full_body(
    builder: _Builder,
    settings: CreativeSettings,
    mask: str | None,
    has_reference: bool,
) -> None:
    _header(
        builder,
        "Perform an 8K FULL-BODY GENERATION. This involves logically extending the canvas and generating the "
        "missing parts of a character with hyper-realistic detail.",
        "User's primary instruction",
        "Extend the character in the image based on the following description. The result must be a "
        "complete, high-resolution portrait.",
    )
    _constraints(
        builder,
        [
            _IDENTITY_LOCK,
            "**Existing Features:** All currently visible features MUST be preserved without any alteration.",
        ],
    )
    _workflow_rule(builder)

    builder.heading("STAGE 1: 8K GENERATIVE EXTENSION")
    if settings.full_body_prompt:
        builder.bullet(f'**Character Generation Prompt:** "{settings.full_body_prompt}"')
    builder.bullet(
        "**Action:** Generate the missing parts of the character (body, clothing, pose) based on the user's prompt."
    )
    builder.bullet(
        "**Generation Engine: CRITICAL - Use 8K Generative Engine.** The newly created parts must be rendered "
        "with extremely high-frequency details."
    )
    builder.bullet("**Fabric Texture:** Generate realistic micro-textures for clothing.", indent=1)
    builder.bullet("**Skin Detail:** If any new skin is visible, it must have realistic texture.", indent=1)
    builder.bullet(
        "**Creases & Folds:** Clothing should have natural, physically-correct folds and creases.", indent=1
    )
    builder.bullet(
        "**Lighting Synchronization:** The lighting on the newly generated parts MUST seamlessly match the "
        "existing lighting on the original parts of the subject."
    )

    reference_detail = None
    if has_reference:
        described = f' ("{settings.full_body_prompt}")' if settings.full_body_prompt else ""
        reference_detail = (
            "Intelligently incorporate elements from this reference image into the generated parts of the "
            "character. This could be clothing, an object, or even another person to include. The integration "
            f"must be seamless and contextually appropriate based on the user's prompt{described}. The "
            "reference image is a guide, not a strict composite element."
        )
    _conditional_blocks(builder, settings, mask, has_reference, reference_detail)
    _closing(
        builder,
        "The output should be a single, cohesive, full-body portrait where the generated parts are "
        "indistinguishable in quality and detail from the original photograph. The entire subject should look "
        "sharp, clear, and rendered in 8K resolution.",
    )


def _render_general_creative(
    builder: _Builder,
    settings: CreativeSettings,
    hint: str,
    mask: str | None,
    has_reference: bool,
) -> None:
    _header(
        builder,
        "This is a general creative request. Use the user's primary instruction as the main guide and "
        "creatively interpret the best outcome.",
        "User's primary instruction",
        hint or "Creatively enhance this image.",
    )
    _constraints(
        builder,
        [
            "**Identity:** If a person is present, their facial features and identity must not be altered.",
        ],
    )
    _conditional_blocks(builder, settings, mask, has_reference)
    _closing(builder, "The result must be photorealistic, coherent, and free of visible editing artifacts.")


def _render_composite(
    builder: _Builder,
    settings: CompositeSettings,
    hint: str,
    mask: str | None,
    has_reference: bool,
) -> None:
    _header(
        builder,
        f"Perform an image editing operation in {MODE_LABELS[COMPOSITE]} mode: place the subject into a new "
        "background photograph.",
        "User's primary instruction",
        hint or "Seamlessly integrate the subject into the background.",
    )
    _constraints(
        builder,
        [
            "**Image Order:** The first image provided is the SUBJECT. The second image provided is the new "
            "BACKGROUND.",
            "**Identity:** If the subject is a person, their facial features and identity must not be altered.",
        ],
    )
    _workflow_rule(builder, "COMPOSITING PARAMETERS:")

    builder.heading("STEP 1: LIGHT & COLOR")
    builder.bullet(f"**Light Match:** Match the subject's lighting to the background at {settings.light_match}%.")
    builder.bullet(
        f"**Color Temperature Match:** Match the subject's color temperature at {settings.color_temp_match}%."
    )

    builder.heading("STEP 2: PHYSICAL INTEGRATION")
    builder.toggle(
        "Smart Shadows",
        settings.smart_shadows,
        "Cast physically plausible shadows from the subject onto the background.",
        "Do not add new shadows.",
    )
    builder.toggle(
        "Grain Match",
        settings.grain_match,
        "Match film grain and sensor noise between subject and background.",
        "Leave grain untouched.",
    )
    builder.toggle(
        "Focus Match",
        settings.focus_match,
        "Match depth of field and sharpness to the background's focal plane.",
        "Keep the subject's original sharpness.",
    )
    builder.toggle(
        "Perspective Match",
        settings.perspective_match,
        "Align the subject's scale, horizon, and camera angle with the background.",
        "Keep the subject's original perspective.",
    )

    _conditional_blocks(builder, settings, mask, has_reference)
    _closing(
        builder,
        "The result must be a photorealistic composite in which lighting, color temperature, shadows, grain, "
        "focus, and perspective are perfectly consistent.",
    )


_MULTIMODAL_RENDERERS: dict[str, Callable[..., None]] = {
    PORTRAIT: _render_portrait,
    RESTORE: _render_restore,
    CREATIVE: _render_creative,
    COMPOSITE: _render_composite,
}


# --- Compact rendering ---------------------------------------------------------


def _compile_compact(mode: str, settings: ModeSettings, hint: str, mask: str | None) -> str:
    base = hint if hint and hint not in WORKFLOW_HINTS else _compact_base(mode, settings, hint)
    text = f"{base.rstrip().rstrip('.')}, {_COMPACT_SUFFIX}"
    if mask:
        if mask == MASK_ERASE:
            text += ". Repaint only the transparent area of the mask; keep every opaque area unchanged."
        else:
            text += ". Keep the white area of the mask unchanged; repaint only the black area."
    return text


def _compact_base(mode: str, settings: ModeSettings, hint: str) -> str:
    if mode == PORTRAIT and isinstance(settings, PortraitSettings):
        base = "A studio portrait of a person."
        if settings.makeup:
            base += f" With {settings.makeup} makeup."
        if settings.hair:
            base += f" With {settings.hair} hair."
        return base
    if mode == RESTORE and isinstance(settings, RestoreSettings):
        return f"A restored, clear, high-resolution photograph. {settings.context}".strip()
    if mode == CREATIVE and isinstance(settings, CreativeSettings):
        if hint == STUDIO_SWAP and settings.background_prompt:
            return settings.background_prompt
        if hint == FULL_BODY_GENERATION and settings.full_body_prompt:
            return settings.full_body_prompt
        return settings.full_body_prompt or settings.background_prompt or "A highly creative, detailed image."
    if mode == COMPOSITE:
        return "A realistic composite image."
    return "A high quality photograph."
