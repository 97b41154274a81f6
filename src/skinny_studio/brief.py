"""Creative brief formatting for the chat system prompt."""

from .models import CreativeBrief

# Label and aspect guidance per platform.
PLATFORMS = {
    "instagram": ("Instagram", "1:1 or 4:5"),
    "tiktok": ("TikTok", "9:16"),
    "youtube": ("YouTube", "16:9"),
    "web": ("Web", "16:9 or 4:3"),
    "print": ("Print", "300dpi, high-res"),
    "other": ("Other", "Custom"),
}

OUTPUT_TYPES = {
    "single": ("Single", "One image"),
    "series": ("Series", "Multiple related"),
    "variations": ("Variations", "Same concept, different styles"),
}


def validate_brief(brief: CreativeBrief) -> CreativeBrief:
    """Check platform and output type against the known options.

    Raises:
        ValueError: If either value is not recognised.

    """
    if brief.platform and brief.platform not in PLATFORMS:
        msg = f"Unknown platform: {brief.platform}. Choose from {', '.join(PLATFORMS)}."
        raise ValueError(msg)
    if brief.output_type and brief.output_type not in OUTPUT_TYPES:
        msg = f"Unknown output type: {brief.output_type}. Choose from {', '.join(OUTPUT_TYPES)}."
        raise ValueError(msg)
    return brief


def format_brief(brief: CreativeBrief | None) -> str:
    """Render the brief as a prompt section, or ``""`` when it is empty."""
    if brief is None:
        return ""

    parts = []
    if brief.vibe:
        parts.append(f"Vibe: {brief.vibe}")
    if brief.platform in PLATFORMS:
        label, aspect = PLATFORMS[brief.platform]
        parts.append(f"Platform: {label} (use {aspect})")
    if brief.style:
        parts.append(f"Style: {brief.style}")
    if brief.output_type in OUTPUT_TYPES:
        label, description = OUTPUT_TYPES[brief.output_type]
        parts.append(f"Output: {label} - {description}")

    if not parts:
        return ""
    return "\n\n## User's Creative Brief\n" + "\n".join(parts)
