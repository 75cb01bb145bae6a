"""
Prompt Library: base prompts for hologram video generation.
Users add optional requirements; the base prompt for the hologram type is
always sent first.
"""

from typing import Optional

from .models import HologramType

_SHARED_INTRO = (
    "Transform the input image into a seamless looping 3D holographic-style video.\n"
    "\n"
    "The background must remain pure black (#000000) at all times.\n"
    "\n"
    "Convert the subject into a strong semi-3D, volumetric form with clear depth and "
    "dimensionality, making it appear as a floating 3D object in space.\n"
    "\n"
    "CRITICAL: Do not alter, modify, or change ANY characteristics of the original character "
    "or subject. The character's face, facial features, facial expressions, body, proportions, "
    "textures, colors, and ALL details must remain EXACTLY as they appear in the input image. "
    "Absolutely do not modify the face, expressions, or any details. The character's appearance "
    "must remain completely identical to the original - no changes whatsoever.\n"
    "\n"
    "Preserve all original details, colors, proportions, textures, facial features, expressions, "
    "and distinctive characteristics exactly as the input image.\n"
    "\n"
)

_FULLY_VISIBLE = (
    "IMPORTANT: Keep the entire subject fully visible within the frame at all times. Do not crop, "
    "cut off, or hide any part of the subject. Ensure all parts of the subject remain completely "
    "visible throughout the entire video.\n"
)

_SHARED_OUTRO = (
    "\n"
    "Create a perfect seamless loop where the first and last frames match naturally, allowing "
    "continuous infinite playback.\n"
    "\n"
    "Lighting is clean, neutral, and consistent.\n"
    "No shadows, no reflections, no particles, no added elements."
)

# Single-face display: one full turn around the depth axis.
BASE_HOLOGRAM_PROMPT_1SIDE = (
    _SHARED_INTRO
    + "The subject can move and animate naturally according to the requirements, while staying "
    "generally centered in the frame.\n"
    + _FULLY_VISIBLE
    + "The subject must rotate exactly one full 360-degree turn around the z-axis (depth axis) "
    "during the video. This complete rotation showcases the 3D depth and all angles of the "
    "character, making it appear more 3D. The rotation should be smooth and continuous "
    "throughout the entire video duration.\n"
    "The camera remains completely static.\n"
    + _SHARED_OUTRO
)

# Pyramid display: four copies are arranged around the centre, so no rotation.
BASE_HOLOGRAM_PROMPT_4SIDES = (
    _SHARED_INTRO
    + "The subject can move and animate naturally with more freedom and variety. The subject can "
    "perform subtle movements such as gentle swaying, slight bobbing, natural breathing motions, "
    "or other organic movements that enhance the 3D effect. The movement should be smooth, "
    "natural, and add life to the character while maintaining the character's original "
    "appearance.\n"
    + _FULLY_VISIBLE
    + "The camera remains completely static. Do not rotate the subject - the subject should "
    "remain in its original orientation.\n"
    + _SHARED_OUTRO
)

def get_base_prompt(hologram_type: str = HologramType.ONE_SIDE.value) -> str:
    """Base prompt for a hologram type. Unknown types get the 1side prompt."""
    if hologram_type == HologramType.FOUR_SIDES.value:
        return BASE_HOLOGRAM_PROMPT_4SIDES
    return BASE_HOLOGRAM_PROMPT_1SIDE


def create_hologram_prompt(
    user_prompt: Optional[str] = None,
    hologram_type: str = HologramType.ONE_SIDE.value,
) -> str:
    """Base prompt, plus the user's trimmed requirements when there are any."""
    base_prompt = get_base_prompt(hologram_type)
    trimmed = (user_prompt or "").strip()
    if trimmed:
        return f"{base_prompt}\n\nAdditional requirements: {trimmed}"
    return base_prompt
