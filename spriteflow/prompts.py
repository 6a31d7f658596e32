"""
Prompt Library: sprite-style instructions sent to the generation models.
Users write a short description; we wrap it in the pixel-art constraints.
"""

from typing import Optional

from .pipeline.models import AnimationKind

SPRITE_INSTRUCTIONS = (
    "Draw a single 2D pixel art sprite character. Flat pixel art only: not 3D, "
    "not photorealistic, not rendered. Pixels must be visible. Side view, full body, "
    "centered in the frame. Plain solid white background, never transparent or "
    "checkerboard. No shadows, depth, gradients or lighting effects. The look of a "
    "classic video game sprite. No text or UI elements."
)

ANIMATION_STYLE = (
    "STYLE RULES (MANDATORY):\n"
    "- The input image is a 2D pixel art sprite and the animation must stay 2D pixel art.\n"
    "- Aim for a clip of roughly 4 seconds that can be used as a game sprite animation.\n"
    "- Keep exactly the same pixel art style, pixel density and resolution as the input.\n"
    "- Never turn it 3D or realistic. No depth, shadows, lighting, gradients, shine or gloss.\n"
    "- The character stays flat pixel art for the whole clip, retro low-resolution look.\n"
    "- Background is flat pure white (#FFFFFF) with no texture, ground line or objects.\n"
    "- The character stays centered in side view and fills a reasonable part of the frame.\n"
    "- No text, UI, logos, borders or props."
)

MOTIONS = {
    AnimationKind.IDLE: (
        "ANIMATION: IDLE\n"
        "- The character stands in place without walking or moving across the screen.\n"
        "- Animate only a subtle breathing motion, a tiny rise and fall of the chest.\n"
        "- A very slight left/right sway of the body is acceptable, kept minimal.\n"
        "- No leg movement.\n"
        "- One seamless loop that ends in nearly the same pose it starts in.\n"
        "- Nothing extra happens after the idle loop finishes."
    ),
    AnimationKind.WALK: (
        "ANIMATION: WALK CYCLE\n"
        "- A classic side-scroller walk cycle performed in place, side view.\n"
        "- The character walks on the spot and never travels across the screen.\n"
        "- Legs alternate clearly, one forward and one back, then switch.\n"
        "- Arms swing opposite to the legs.\n"
        "- A slight up/down bounce of the body with each step.\n"
        "- One clean cycle that returns to the starting pose so it loops.\n"
        "- No camera movement and no extra actions at the end of the clip."
    ),
    AnimationKind.RUN: (
        "ANIMATION: RUN CYCLE\n"
        "- A run cycle performed in place, side view, faster than a walk.\n"
        "- Longer, quicker strides and more exaggerated motion.\n"
        "- Arms pump harder than when walking.\n"
        "- A more pronounced up/down bounce.\n"
        "- The character stays centered and runs on the spot like a game sprite.\n"
        "- One smooth cycle ending close to the first frame's pose for looping.\n"
        "- No extra motions after the cycle completes."
    ),
    AnimationKind.JUMP: (
        "ANIMATION: JUMP CYCLE\n"
        "- A full jump performed in place: crouch, leap up, brief hang at the peak, "
        "fall, land, then settle back to the starting pose.\n"
        "- Compress slightly before take-off.\n"
        "- Land with a small squash.\n"
        "- One complete jump ending very near the initial idle pose so it can chain "
        "with other animations.\n"
        "- No camera movement and no extra steps after landing."
    ),
}


def build_image_prompt(user_text: Optional[str]) -> str:
    """User description first, then the sprite instructions."""
    text = (user_text or "").strip()
    return f"{text}\n\n{SPRITE_INSTRUCTIONS}" if text else SPRITE_INSTRUCTIONS


def build_animation_prompt(kind: AnimationKind, extra: Optional[str] = None) -> str:
    """Style block, motion block, and the optional extra user instruction."""
    blocks = [ANIMATION_STYLE, MOTIONS[AnimationKind(kind)]]
    if extra and extra.strip():
        blocks.append(f"Additional user instruction: {extra.strip()}")
    return "\n\n".join(blocks)
