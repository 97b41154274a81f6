"""Pydantic data models for the Skinny Studio client."""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

MAX_ATTACHMENTS = 4
DEFAULT_MAX_REFERENCE_IMAGES = 4


def new_id(prefix: str) -> str:
    """Build a prefixed unique id like ``msg_1a2b3c4d5``."""
    return f"{prefix}_{uuid4().hex[:12]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ImagePurpose(str, Enum):
    """How an attached image is used in a generation request."""

    REFERENCE = "reference"
    STARTING_FRAME = "starting_frame"
    EDIT_TARGET = "edit_target"
    LAST_FRAME = "last_frame"
    ANALYZE = "analyze"


IMAGE_PURPOSE_LABELS = {
    ImagePurpose.REFERENCE: "Reference",
    ImagePurpose.STARTING_FRAME: "Starting Frame",
    ImagePurpose.EDIT_TARGET: "Edit Target",
    ImagePurpose.LAST_FRAME: "Last Frame",
    ImagePurpose.ANALYZE: "Analyze",
}


class ChatAttachment(BaseModel):
    """An image attached to a chat turn."""

    id: str = Field(default_factory=lambda: new_id("att"))
    type: str = "image"  # image | reference
    url: str
    name: str
    purpose: ImagePurpose | None = None
    file: Path | None = None  # Local file backing the attachment, if any
    base64: str | None = None
    mime_type: str | None = None
    analysis: str | None = None
    analysis_status: str | None = None


class GenerationOutput(BaseModel):
    """The finished output of a chat-triggered generation."""

    image_url: str
    prompt: str


class GenerationResult(BaseModel):
    """Generation status attached to an assistant message."""

    status: str  # planning | generating | complete | error
    model: str
    params: dict[str, Any] = Field(default_factory=dict)
    prompt: str | None = None
    result: GenerationOutput | None = None
    output_urls: list[str] = Field(default_factory=list)
    reference_images: list[str] = Field(default_factory=list)
    pending: bool = False
    error: str | None = None
    error_code: str | None = None
    required: int | None = None
    available: int | None = None

    @property
    def effective_prompt(self) -> str | None:
        """Prompt used for the generation, wherever the backend put it."""
        if self.prompt:
            return self.prompt
        if self.result:
            return self.result.prompt
        value = self.params.get("prompt")
        return value if isinstance(value, str) else None

    @property
    def is_stuck(self) -> bool:
        """Whether the generation is still waiting on the backend."""
        return self.status == "generating" or (
            self.status == "complete" and self.pending
        )

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "GenerationResult":
        """Build from a camelCase ``generation`` SSE payload."""
        result = data.get("result")
        return cls(
            status=data.get("status", "planning"),
            model=data.get("model", ""),
            params=data.get("params") or {},
            prompt=data.get("prompt"),
            result=(
                GenerationOutput(
                    image_url=result.get("imageUrl", ""),
                    prompt=result.get("prompt", ""),
                )
                if result
                else None
            ),
            output_urls=data.get("outputUrls") or [],
            reference_images=data.get("referenceImages") or [],
            pending=bool(data.get("pending", False)),
            error=data.get("error"),
            error_code=data.get("code"),
            required=data.get("required"),
            available=data.get("available"),
        )


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""

    id: str = Field(default_factory=lambda: new_id("msg"))
    role: str  # user | assistant | system
    content: str = ""
    attachments: list[ChatAttachment] = Field(default_factory=list)
    generation: GenerationResult | None = None
    directors_notes: str | None = None
    is_streaming: bool = False
    timestamp: datetime = Field(default_factory=_now)

    @classmethod
    def from_stored(cls, row: dict[str, Any]) -> "ChatMessage":
        """Build from a row returned by the conversations API."""
        message = cls(id=row["id"], role=row["role"], content=row.get("content") or "")
        if row.get("created_at"):
            message.timestamp = datetime.fromisoformat(row["created_at"].replace("Z", "+00:00"))
        return message

    def to_api(self) -> dict[str, Any]:
        """Serialize the fields ``/api/chat`` expects in its history."""
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.attachments:
            payload["attachments"] = [
                {
                    "type": a.type,
                    "url": a.url,
                    "name": a.name,
                    "base64": a.base64,
                    "mimeType": a.mime_type,
                    "purpose": a.purpose.value if a.purpose else None,
                    "analysis": a.analysis,
                }
                for a in self.attachments
            ]
        return payload


class EntityType(str, Enum):
    """Kinds of reusable storyboard subjects."""

    CHARACTER = "character"
    WORLD = "world"
    OBJECT = "object"
    STYLE = "style"


class StoryboardEntity(BaseModel):
    """A reusable visual subject with a reference image."""

    id: str
    entity_type: EntityType
    entity_name: str
    entity_description: str | None = None
    primary_image_url: str | None = None
    vision_context: str | None = None  # Filled in asynchronously by the backend
    generation_id: str | None = None
    folder_id: str | None = None
    sort_order: int = 0


class StoryboardShot(BaseModel):
    """One planned unit of a storyboard."""

    id: str
    shot_number: int
    sort_order: int = 0
    title: str | None = None
    description: str = ""
    camera_angle: str | None = None
    camera_movement: str | None = None
    duration_seconds: int = 5
    media_type: str = "image"  # image | video
    model_slug: str | None = None
    prompt: str | None = None
    ai_suggested_prompt: str | None = None
    status: str = "pending"  # pending | generating | completed | error | skipped
    entities: list[str] = Field(default_factory=list)
    generated_image_url: str | None = None
    generation_id: str | None = None


class Storyboard(BaseModel):
    """A multi-shot storyboard with its entities."""

    id: str
    title: str
    shots: list[StoryboardShot] = Field(default_factory=list)
    entities: list[StoryboardEntity] = Field(default_factory=list)

    @model_validator(mode="after")
    def sort_shots(self) -> "Storyboard":
        """Sort shots by their sort order."""
        self.shots.sort(key=lambda s: (s.sort_order, s.shot_number))
        return self


class Folder(BaseModel):
    """A flat library folder."""

    id: str
    name: str
    folder_type: str = "general"
    color: str | None = None
    icon: str | None = "folder"
    generation_count: int = 0


class Generation(BaseModel):
    """A generation stored in the user's library."""

    id: str
    model_slug: str
    model_category: str | None = None
    prompt: str = ""
    output_urls: list[str] = Field(default_factory=list)
    replicate_status: str | None = None
    folder_id: str | None = None
    cost_cents: int | None = None
    created_at: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _null_outputs(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("output_urls") is None:
            data = {**data, "output_urls": []}
        return data


class Skill(BaseModel):
    """A named block of prompt guidance invoked with ``@shortcut``."""

    id: str
    name: str
    description: str = ""
    category: str = "custom"
    icon: str | None = None
    content: str = ""
    tags: list[str] = Field(default_factory=list)
    shortcut: str | None = None
    is_active: bool = True
    examples: list[str] = Field(default_factory=list)

    def to_api(self) -> dict[str, Any]:
        """Serialize as the ``referencedSkills`` entries of a chat request."""
        return {
            "name": self.name,
            "shortcut": self.shortcut or "",
            "icon": self.icon,
            "content": self.content,
        }


class ModelSpec(BaseModel):
    """Capabilities of a generation model."""

    id: str
    name: str
    media_type: str  # image | video
    max_reference_images: int | None = None
    supports_reference_images: bool = False
    supports_starting_frame: bool = False
    supports_last_frame: bool = False
    duration_options: list[int] = Field(default_factory=list)


class ClientConfig(BaseModel):
    """Connection settings for the studio backend."""

    base_url: str = "http://localhost:3000"
    user_token: str | None = None
    user_id: str | None = None
    timeout: float = 30.0


class RecoveryConfig(BaseModel):
    """Configuration for generation recovery polling."""

    interval: float = 5.0
    max_attempts: int = 60
    max_elapsed: float = 300.0


class ImageRetryConfig(BaseModel):
    """Configuration for image fetch retries."""

    retries: int = 2
    min_wait: float = 1
    max_wait: float = 4


class ChatStreamEvent(BaseModel):
    """One decoded ``data:`` event of a chat stream."""

    content: str | None = None
    generation: GenerationResult | None = None
    error: str | None = None
    code: str | None = None
    skill_creation: dict[str, Any] | None = None


class Conversation(BaseModel):
    """A saved chat conversation."""

    id: str
    title: str = "New Chat"
    model_id: str | None = None
    model_category: str | None = None
    is_archived: bool = False
    created_at: str | None = None
    updated_at: str | None = None


class CreativeBrief(BaseModel):
    """Creative direction sent along with every chat turn."""

    vibe: str = ""
    platform: str = ""  # instagram | tiktok | youtube | web | print | other
    style: str = ""
    output_type: str = ""  # single | series | variations
