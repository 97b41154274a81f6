"""Generation model catalog used for shot and reference decisions."""

from .models import DEFAULT_MAX_REFERENCE_IMAGES, ModelSpec

MODEL_SPECS: list[ModelSpec] = [
    ModelSpec(
        id="seedream-4.5",
        name="Seedream 4.5",
        media_type="image",
        max_reference_images=4,
        supports_reference_images=True,
    ),
    ModelSpec(
        id="flux-2-pro",
        name="FLUX 2 Pro",
        media_type="image",
        max_reference_images=8,
        supports_reference_images=True,
    ),
    ModelSpec(
        id="nano-banana",
        name="Nano Banana",
        media_type="image",
        max_reference_images=4,
        supports_reference_images=True,
        supports_starting_frame=True,
    ),
    ModelSpec(id="flux-schnell", name="FLUX Schnell", media_type="image"),
    ModelSpec(id="flux-dev", name="FLUX Dev", media_type="image"),
    ModelSpec(id="ideogram", name="Ideogram", media_type="image"),
    ModelSpec(
        id="veo-3.1",
        name="Veo 3.1",
        media_type="video",
        max_reference_images=3,
        supports_reference_images=True,
        supports_starting_frame=True,
        supports_last_frame=True,
        duration_options=[4, 6, 8],
    ),
    ModelSpec(
        id="veo-3.1-fast",
        name="Veo 3.1 Fast",
        media_type="video",
        supports_starting_frame=True,
        supports_last_frame=True,
        duration_options=[4, 6, 8],
    ),
    ModelSpec(
        id="kling-v2.5-turbo-pro",
        name="Kling 2.5 Turbo Pro",
        media_type="video",
        supports_starting_frame=True,
        duration_options=[5, 10],
    ),
    ModelSpec(
        id="wan-2.5-i2v",
        name="Wan 2.5 I2V",
        media_type="video",
        supports_starting_frame=True,
        duration_options=[5, 10],
    ),
    ModelSpec(
        id="hailuo-2.3",
        name="Hailuo 2.3",
        media_type="video",
        supports_starting_frame=True,
        duration_options=[6, 10],
    ),
]

# Used when a video model declares no duration options.
DEFAULT_DURATION_OPTIONS = [5]


def get_model_spec(model_id: str | None) -> ModelSpec | None:
    """Look up a model by id."""
    if not model_id:
        return None
    return next((m for m in MODEL_SPECS if m.id == model_id), None)


def models_for_media_type(media_type: str) -> list[ModelSpec]:
    """Return the models able to produce the given media type."""
    return [m for m in MODEL_SPECS if m.media_type == media_type]


def duration_options(model: ModelSpec) -> list[int]:
    """Return the durations a video model accepts."""
    return list(model.duration_options) or list(DEFAULT_DURATION_OPTIONS)


def max_reference_images(model: ModelSpec | None) -> int:
    """Return the reference-image cap, defaulting when no model is chosen."""
    if model is None or not model.max_reference_images:
        return DEFAULT_MAX_REFERENCE_IMAGES
    return model.max_reference_images
