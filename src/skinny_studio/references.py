"""Shot editing: model/duration policy and reference-image selection."""

import logging
from typing import Any

from pydantic import BaseModel

from .catalog import (
    duration_options,
    get_model_spec,
    max_reference_images,
    models_for_media_type,
)
from .models import ModelSpec, StoryboardEntity, StoryboardShot

logger = logging.getLogger(__name__)

CAMERA_ANGLES = [
    "Wide shot",
    "Medium shot",
    "Close-up",
    "Extreme close-up",
    "Over the shoulder",
    "Bird's eye view",
    "Low angle",
    "High angle",
    "Dutch angle",
    "POV",
]

CAMERA_MOVEMENTS = [
    "Static",
    "Pan left",
    "Pan right",
    "Tilt up",
    "Tilt down",
    "Dolly in",
    "Dolly out",
    "Tracking shot",
    "Crane shot",
    "Handheld",
]


def reference_shot_candidates(
    shot: StoryboardShot,
    shots: list[StoryboardShot],
) -> list[StoryboardShot]:
    """Completed shots, other than ``shot``, that have a generated image."""
    return [
        s
        for s in shots
        if s.id != shot.id and s.status == "completed" and s.generated_image_url
    ]


def reference_entity_candidates(
    entities: list[StoryboardEntity],
) -> list[StoryboardEntity]:
    """Entities that carry a primary image."""
    return [e for e in entities if e.primary_image_url]


class ReferenceSelector:
    """Two id lists sharing a single reference-image cap.

    Selection order is kept so that shrinking the cap drops the most recent
    picks first.
    """

    def __init__(self, cap: int) -> None:
        self.cap = cap
        self.selected_shots: list[str] = []
        self.selected_entities: list[str] = []
        self._order: list[tuple[str, str]] = []

    @property
    def total(self) -> int:
        return len(self.selected_shots) + len(self.selected_entities)

    @property
    def is_full(self) -> bool:
        return self.total >= self.cap

    def toggle_shot(self, shot_id: str) -> bool:
        """Toggle a shot; return ``False`` when the cap blocks the selection."""
        return self._toggle("shot", shot_id, self.selected_shots)

    def toggle_entity(self, entity_id: str) -> bool:
        """Toggle an entity; return ``False`` when the cap blocks the selection."""
        return self._toggle("entity", entity_id, self.selected_entities)

    def _toggle(self, kind: str, item_id: str, bucket: list[str]) -> bool:
        if item_id in bucket:
            bucket.remove(item_id)
            self._order.remove((kind, item_id))
            return True
        if self.is_full:
            logger.debug("Reference cap %d reached, ignoring %s", self.cap, item_id)
            return False
        bucket.append(item_id)
        self._order.append((kind, item_id))
        return True

    def set_cap(self, cap: int) -> None:
        """Change the cap, dropping the newest picks that no longer fit."""
        self.cap = cap
        while self.total > cap:
            kind, item_id = self._order.pop()
            bucket = self.selected_shots if kind == "shot" else self.selected_entities
            bucket.remove(item_id)

    def clear(self) -> None:
        self.selected_shots.clear()
        self.selected_entities.clear()
        self._order.clear()

    def resolve_urls(
        self,
        shots: list[StoryboardShot],
        entities: list[StoryboardEntity],
    ) -> list[str]:
        """Resolve selected ids to image URLs from the live shot/entity lists.

        Shots come first, then entities. Ids whose source has no URL anymore
        are skipped.
        """
        shot_urls = {s.id: s.generated_image_url for s in shots}
        entity_urls = {e.id: e.primary_image_url for e in entities}
        urls = [shot_urls.get(i) for i in self.selected_shots]
        urls += [entity_urls.get(i) for i in self.selected_entities]
        return [url for url in urls if url]


class ShotDraft(BaseModel):
    """Editable fields of a shot."""

    title: str = ""
    description: str = ""
    camera_angle: str = ""
    camera_movement: str = ""
    duration_seconds: int = 5
    media_type: str = "image"
    model_slug: str = ""
    prompt: str = ""

    @classmethod
    def from_shot(cls, shot: StoryboardShot) -> "ShotDraft":
        return cls(
            title=shot.title or "",
            description=shot.description or "",
            camera_angle=shot.camera_angle or "",
            camera_movement=shot.camera_movement or "",
            duration_seconds=shot.duration_seconds or 5,
            media_type=shot.media_type or "image",
            model_slug=shot.model_slug or "",
            prompt=shot.prompt or shot.ai_suggested_prompt or "",
        )

    def to_update(self) -> dict[str, Any]:
        """Build the camelCase shot update payload, omitting empty fields."""
        update: dict[str, Any] = {
            "description": self.description,
            "mediaType": self.media_type,
        }
        optional = {
            "title": self.title,
            "cameraAngle": self.camera_angle,
            "cameraMovement": self.camera_movement,
            "modelSlug": self.model_slug,
            "prompt": self.prompt,
        }
        update.update({k: v for k, v in optional.items() if v})
        if self.media_type == "video":
            update["durationSeconds"] = self.duration_seconds
        return update


class ShotEditor:
    """Edit a shot and build its generation request.

    A model must be chosen explicitly: switching media type clears a model
    that cannot produce the new type, and generation is refused until one is
    selected again.
    """

    def __init__(
        self,
        shot: StoryboardShot,
        shots: list[StoryboardShot],
        entities: list[StoryboardEntity],
    ) -> None:
        self.shot = shot
        self.shots = shots
        self.entities = entities
        self.draft = ShotDraft.from_shot(shot)
        self.selector = ReferenceSelector(max_reference_images(self.model))
        self._enforce_model_policy()

    @property
    def model(self) -> ModelSpec | None:
        return get_model_spec(self.draft.model_slug)

    @property
    def available_models(self) -> list[ModelSpec]:
        return models_for_media_type(self.draft.media_type)

    @property
    def duration_options(self) -> list[int]:
        model = self.model
        if self.draft.media_type != "video" or model is None:
            return []
        return duration_options(model)

    @property
    def can_generate(self) -> bool:
        return bool(self.draft.model_slug)

    def shot_candidates(self) -> list[StoryboardShot]:
        return reference_shot_candidates(self.shot, self.shots)

    def entity_candidates(self) -> list[StoryboardEntity]:
        return reference_entity_candidates(self.entities)

    def set_media_type(self, media_type: str) -> None:
        if media_type not in ("image", "video"):
            msg = f"Unsupported media type: {media_type}"
            raise ValueError(msg)
        self.draft.media_type = media_type
        self._enforce_model_policy()

    def select_model(self, model_slug: str) -> None:
        if not any(m.id == model_slug for m in self.available_models):
            msg = f"Model {model_slug} cannot generate {self.draft.media_type}"
            raise ValueError(msg)
        self.draft.model_slug = model_slug
        self._enforce_model_policy()

    def set_camera(self, angle: str | None = None, movement: str | None = None) -> None:
        if angle is not None:
            if angle not in CAMERA_ANGLES:
                msg = f"Unknown camera angle: {angle}"
                raise ValueError(msg)
            self.draft.camera_angle = angle
        if movement is not None:
            if movement not in CAMERA_MOVEMENTS:
                msg = f"Unknown camera movement: {movement}"
                raise ValueError(msg)
            self.draft.camera_movement = movement

    def set_duration(self, seconds: int) -> None:
        options = self.duration_options
        if options and seconds not in options:
            msg = f"Duration {seconds}s is not offered by {self.draft.model_slug}"
            raise ValueError(msg)
        self.draft.duration_seconds = seconds

    def _enforce_model_policy(self) -> None:
        if self.draft.model_slug and not any(
            m.id == self.draft.model_slug for m in self.available_models
        ):
            logger.debug(
                "Clearing model %s incompatible with %s",
                self.draft.model_slug,
                self.draft.media_type,
            )
            self.draft.model_slug = ""
        options = self.duration_options
        if options and self.draft.duration_seconds not in options:
            self.draft.duration_seconds = options[0]
        self.selector.set_cap(max_reference_images(self.model))

    def apply(self) -> StoryboardShot:
        """Copy the draft onto the shot being edited."""
        draft = self.draft
        self.shot.title = draft.title or None
        self.shot.description = draft.description
        self.shot.camera_angle = draft.camera_angle or None
        self.shot.camera_movement = draft.camera_movement or None
        self.shot.media_type = draft.media_type
        self.shot.duration_seconds = draft.duration_seconds
        self.shot.model_slug = draft.model_slug or None
        self.shot.prompt = draft.prompt or None
        return self.shot

    def generation_request(self) -> dict[str, Any]:
        """Resolve the current selection into a shot generation request.

        Raises:
            ValueError: If no model has been selected.

        """
        if not self.can_generate:
            msg = "Select a model before generating"
            raise ValueError(msg)
        request: dict[str, Any] = {"modelSlug": self.draft.model_slug}
        if self.draft.prompt:
            request["customPrompt"] = self.draft.prompt
        references = self.selector.resolve_urls(self.shots, self.entities)
        if references:
            request["params"] = {"referenceImages": references}
        return request
