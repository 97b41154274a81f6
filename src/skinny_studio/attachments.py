"""Attachment intake: validation, purpose selection and optional analysis."""

import base64
import logging
import mimetypes
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from .models import MAX_ATTACHMENTS, ChatAttachment, ImagePurpose, new_id
from .sequence import RequestSequence

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024
ALLOWED_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
ANALYSIS_FAILED = "Failed to analyze image. Please try again."

Analyzer = Callable[[ChatAttachment], str]
Releaser = Callable[[ChatAttachment], None]


class ComposerState(str, Enum):
    """Steps of the attachment intake flow."""

    IDLE = "idle"
    PURPOSE_PENDING = "purpose_pending"
    ANALYZING = "analyzing"
    ANALYSIS_REVIEW = "analysis_review"


def validate_image(path: Path) -> None:
    """Check that a local file is a supported image of acceptable size.

    Raises:
        ValueError: If the type or size is not accepted.

    """
    mime_type, _ = mimetypes.guess_type(path)
    if mime_type not in ALLOWED_TYPES:
        msg = "Invalid file type. Please use JPEG, PNG, WebP, or GIF."
        raise ValueError(msg)
    if path.stat().st_size > MAX_FILE_SIZE:
        msg = "File too large. Maximum size is 10MB."
        raise ValueError(msg)


def encode_attachment(attachment: ChatAttachment) -> ChatAttachment:
    """Inline a file-backed attachment as base64, leaving URL ones alone."""
    if attachment.file is None or attachment.base64:
        return attachment
    mime_type, _ = mimetypes.guess_type(attachment.file)
    return attachment.model_copy(
        update={
            "base64": base64.b64encode(attachment.file.read_bytes()).decode("ascii"),
            "mime_type": mime_type or "image/png",
        },
    )


def _release_nothing(_attachment: ChatAttachment) -> None:
    return None


class AttachmentComposer:
    """Hold the attachments of the chat turn being composed.

    New images wait in ``pending`` until a purpose is chosen. Choosing
    ``analyze`` runs ``analyzer`` and waits for a final purpose in review;
    any other purpose attaches at once. ``cancel`` returns to idle from any
    step and hands the pending attachment to ``release``.
    """

    def __init__(
        self,
        analyzer: Analyzer,
        release: Releaser = _release_nothing,
        max_attachments: int = MAX_ATTACHMENTS,
    ) -> None:
        self.analyzer = analyzer
        self.release = release
        self.max_attachments = max_attachments
        self.attachments: list[ChatAttachment] = []
        self.pending: ChatAttachment | None = None
        self.analysis_text = ""
        self.state = ComposerState.IDLE
        self._analysis_sequence = RequestSequence()

    @property
    def is_full(self) -> bool:
        # A pending image holds its slot until it is attached or cancelled.
        held = len(self.attachments) + (1 if self.pending is not None else 0)
        return held >= self.max_attachments

    def add_file(self, path: Path, name: str | None = None) -> ChatAttachment | None:
        """Stage a local image for purpose selection.

        Returns ``None`` without staging anything when the turn is full.

        Raises:
            ValueError: If the image is invalid or another image is pending.

        """
        if self.is_full:
            logger.debug("Attachment limit reached, ignoring %s", path)
            return None
        if self.state is not ComposerState.IDLE:
            msg = "Finish the pending attachment first"
            raise ValueError(msg)
        validate_image(path)
        self.pending = ChatAttachment(
            id=new_id("att"),
            url=path.resolve().as_uri(),
            name=name or path.name,
            file=path,
        )
        self.state = ComposerState.PURPOSE_PENDING
        return self.pending

    def add_pasted(self, path: Path) -> ChatAttachment | None:
        """Stage a pasted image, named after its position in the turn."""
        return self.add_file(path, name=f"Pasted Image {len(self.attachments) + 1}")

    def add_reference(
        self,
        url: str,
        purpose: ImagePurpose,
        name: str | None = None,
    ) -> ChatAttachment | None:
        """Attach an existing image directly, e.g. a library generation."""
        if self.is_full:
            return None
        attachment = ChatAttachment(
            id=new_id("ref"),
            url=url,
            name=name or "Referenced Image",
            purpose=purpose,
        )
        self.attachments.append(attachment)
        return attachment

    def select_purpose(self, purpose: ImagePurpose) -> ChatAttachment | None:
        """Apply the purpose picked for the pending image.

        Returns the attached image, or ``None`` when analysis was started.
        """
        if self.pending is None or self.state is not ComposerState.PURPOSE_PENDING:
            msg = "No attachment is waiting for a purpose"
            raise ValueError(msg)

        purpose = ImagePurpose(purpose)
        if purpose is ImagePurpose.ANALYZE:
            self.analyze()
            return None

        attachment = self.pending.model_copy(update={"purpose": purpose})
        self.attachments.append(attachment)
        self._reset()
        return attachment

    def analyze(self) -> str:
        """Run (or re-run) vision analysis on the pending image."""
        if self.pending is None:
            msg = "No attachment to analyze"
            raise ValueError(msg)
        token = self._analysis_sequence.begin()
        self.state = ComposerState.ANALYZING
        self.analysis_text = ""
        pending = self.pending

        try:
            text = self.analyzer(pending) or "No analysis generated."
        except Exception as e:  # noqa: BLE001
            logger.error("Image analysis error: %s", e)
            text = ANALYSIS_FAILED

        if not self._analysis_sequence.is_current(token) or self.pending is not pending:
            logger.debug("Discarding stale analysis for %s", pending.id)
            return text
        self.analysis_text = text
        self.state = ComposerState.ANALYSIS_REVIEW
        return text

    def confirm_analysis(self, purpose: ImagePurpose) -> ChatAttachment:
        """Attach the analyzed image with its final purpose."""
        if self.pending is None or self.state is not ComposerState.ANALYSIS_REVIEW:
            msg = "No analysis is waiting for confirmation"
            raise ValueError(msg)
        attachment = self.pending.model_copy(
            update={
                "purpose": ImagePurpose(purpose),
                "analysis": self.analysis_text,
                "analysis_status": "complete",
            },
        )
        self.attachments.append(attachment)
        self._reset()
        return attachment

    def back_to_purpose(self) -> None:
        """Leave review and pick a purpose again."""
        if self.pending is None:
            return
        self._analysis_sequence.invalidate()
        self.analysis_text = ""
        self.state = ComposerState.PURPOSE_PENDING

    def cancel(self) -> None:
        """Drop the pending image and release its local resource."""
        if self.pending is not None:
            self.release(self.pending)
        self._analysis_sequence.invalidate()
        self._reset()

    def remove(self, attachment_id: str) -> None:
        for attachment in self.attachments:
            if attachment.id == attachment_id:
                self.release(attachment)
        self.attachments = [a for a in self.attachments if a.id != attachment_id]

    def clear(self) -> None:
        """Release everything, e.g. when switching conversations."""
        for attachment in self.attachments:
            self.release(attachment)
        self.attachments = []
        self.cancel()

    def take(self) -> list[ChatAttachment]:
        """Hand the attachments over for sending and start a fresh turn."""
        attachments, self.attachments = self.attachments, []
        return attachments

    def _reset(self) -> None:
        self.pending = None
        self.analysis_text = ""
        self.state = ComposerState.IDLE
