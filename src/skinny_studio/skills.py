"""Built-in skill pack and user skill loading."""

import json
from pathlib import Path

from pydantic import TypeAdapter

from .models import Skill

BUILT_IN_SKILLS: list[Skill] = [
    Skill(
        id="builtin-flux2",
        name="FLUX 2 Pro/Dev Mastery",
        description="Research-backed prompting guide for FLUX 2 models",
        category="technique",
        icon="⚡",
        content=(
            "Structure by importance: Subject, Action, Style, Context.\n"
            "Prefer natural language over tag soup.\n"
            "Reference images by number when using several references."
        ),
        tags=["flux", "flux-2", "photorealistic", "references"],
        shortcut="flux2",
    ),
    Skill(
        id="builtin-seedream",
        name="Seedream 4.5 Sequential",
        description="Multi-image consistency and sequential generation with Seedream 4.5",
        category="technique",
        icon="🌱",
        content=(
            "Describe the shared subject once, then each frame.\n"
            "Keep lighting and palette constant across the sequence."
        ),
        tags=["seedream", "sequential", "multi-image", "consistency", "4k"],
        shortcut="seedream",
    ),
    Skill(
        id="builtin-veo",
        name="Veo 3.1 Cinematic Video",
        description="Complete video and audio generation guide for Google Veo 3.1",
        category="technique",
        icon="🎬",
        content=(
            "Lead with the shot type and camera movement.\n"
            "Describe sound design and dialogue explicitly."
        ),
        tags=["veo", "google", "video", "audio", "cinematic", "dialogue"],
        shortcut="veo",
    ),
    Skill(
        id="builtin-product",
        name="Product Photography Pro",
        description="Professional e-commerce and commercial product techniques",
        category="style",
        icon="📦",
        content=(
            "Name the surface, backdrop and light modifiers.\n"
            "Hero angle first, then detail shots."
        ),
        tags=["product", "ecommerce", "commercial", "catalog", "lifestyle"],
        shortcut="product",
        examples=["@product white sneaker on a concrete plinth"],
    ),
    Skill(
        id="builtin-portrait",
        name="Portrait & Headshot Pro",
        description="Professional portrait lighting patterns and techniques",
        category="technique",
        icon="👤",
        content="Pick a lighting pattern: Rembrandt, butterfly or split.\nSpecify lens and distance.",
        tags=["portrait", "headshot", "lighting", "rembrandt", "beauty"],
        shortcut="portrait",
    ),
    Skill(
        id="builtin-social",
        name="Social Media Optimizer",
        description="Platform-specific formats and trending styles",
        category="workflow",
        icon="📱",
        content="Use 9:16 for stories and reels, 4:5 for feed posts.\nLeave room for captions.",
        tags=["social", "instagram", "tiktok", "vertical", "engagement"],
        shortcut="social",
    ),
    Skill(
        id="builtin-text",
        name="Typography & Text",
        description="Best practices for text rendering in AI images",
        category="technique",
        icon="✍️",
        content="Put exact copy in quotes.\nName the typeface style and placement.",
        tags=["text", "typography", "logos", "signage", "posters"],
        shortcut="text",
    ),
    Skill(
        id="builtin-cinematic",
        name="Cinematic Style Pro",
        description="Movie-like compositions, lighting, and color grading",
        category="style",
        icon="🎥",
        content="Reference a film stock or grade.\nUse anamorphic framing for wide shots.",
        tags=["cinematic", "dramatic", "movie", "film", "color-grading"],
        shortcut="cinematic",
    ),
    Skill(
        id="builtin-consistency",
        name="Style & Character Consistency",
        description="Multi-image reference and template techniques",
        category="workflow",
        icon="🔄",
        content="Reuse the same character sheet as a reference for every shot.",
        tags=["consistency", "reference", "character", "style-transfer", "template"],
        shortcut="consistency",
    ),
    Skill(
        id="builtin-camera",
        name="Cinematography Reference",
        description="Complete camera movement and shot type glossary",
        category="tool",
        icon="📽️",
        content="Wide, medium, close-up, extreme close-up.\nDolly, pan, tilt, crane, handheld.",
        tags=["camera", "cinematography", "shots", "movements", "terminology"],
        shortcut="camera",
    ),
    Skill(
        id="builtin-storyboard",
        name="Sequential Storyboard",
        description="Generate connected images as a visual sequence or storyboard",
        category="workflow",
        icon="🎞️",
        content="Number each panel and keep the cast description identical.",
        tags=["storyboard", "sequential", "multi-image", "narrative", "comic", "variations"],
        shortcut="storyboard",
    ),
]

_skills_adapter = TypeAdapter(list[Skill])


def load_skills(path: Path | None = None) -> list[Skill]:
    """Return the built-in skills plus any user skills stored at ``path``.

    User skills with the same shortcut as a built-in replace it.

    Raises:
        ValueError: If the file is not a valid skill list.

    """
    skills = list(BUILT_IN_SKILLS)
    if path is None or not path.exists():
        return skills
    try:
        user_skills = _skills_adapter.validate_python(json.loads(path.read_text()))
    except ValueError as e:
        msg = f"Failed to load skills from {path}: {e}"
        raise ValueError(msg) from e
    overridden = {s.shortcut for s in user_skills if s.shortcut}
    return [s for s in skills if s.shortcut not in overridden] + user_skills
