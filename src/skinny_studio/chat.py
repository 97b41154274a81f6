"""Chat session state driven by the streaming chat endpoint."""

import logging
from collections.abc import Callable

from .attachments import encode_attachment
from .brief import format_brief
from .errors import InsufficientBalanceError, StudioError
from .intents import parse_skill_references
from .models import ChatAttachment, ChatMessage, CreativeBrief, GenerationResult, Skill
from .service import INSUFFICIENT_BALANCE, StudioService

logger = logging.getLogger(__name__)

MAX_CHARS = 4000


class ChatSession:
    """A conversation with the studio assistant."""

    def __init__(
        self,
        service: StudioService,
        skills: list[Skill] | None = None,
        model_id: str | None = None,
        brief: CreativeBrief | None = None,
    ) -> None:
        self.service = service
        self.skills = skills or []
        self.model_id = model_id
        self.brief = brief
        self.conversation_id: str | None = None
        self.messages: list[ChatMessage] = []
        self.error: str | None = None
        self.error_code: str | None = None
        self.is_loading = False

    def clear(self) -> None:
        self.messages = []
        self.conversation_id = None
        self.error = None
        self.error_code = None

    def open(self, conversation_id: str) -> None:
        """Load a saved conversation; later turns are saved to it."""
        conversation, messages = self.service.get_conversation(conversation_id)
        self.conversation_id = conversation.id
        self.messages = messages
        self.error = None
        self.error_code = None

    def start_conversation(self, title: str) -> str:
        """Create a saved conversation for this session and return its id."""
        conversation = self.service.create_conversation(title=title, model_id=self.model_id)
        self.conversation_id = conversation.id
        return conversation.id

    def find(self, message_id: str) -> ChatMessage | None:
        return next((m for m in self.messages if m.id == message_id), None)

    def update_generation(self, message_id: str, generation: GenerationResult) -> None:
        message = self.find(message_id)
        if message is not None:
            message.generation = generation

    def send(
        self,
        content: str,
        attachments: list[ChatAttachment] | None = None,
        on_chunk: Callable[[str], None] | None = None,
        on_generation: Callable[[GenerationResult], None] | None = None,
    ) -> ChatMessage:
        """Send a user turn and stream the assistant reply into the session.

        Returns:
            ChatMessage: The assistant message, complete or holding the error.

        Raises:
            ValueError: If there is nothing to send or the text is too long.
            InsufficientBalanceError: If the account cannot pay for the
                generation the reply asked for.

        """
        if not content.strip() and not attachments:
            msg = "Nothing to send"
            raise ValueError(msg)
        if len(content) > MAX_CHARS:
            msg = f"Message exceeds {MAX_CHARS} characters"
            raise ValueError(msg)

        encoded = [encode_attachment(a) for a in attachments or []]
        user = ChatMessage(role="user", content=content.strip(), attachments=encoded)
        history = [m.to_api() for m in self.messages] + [user.to_api()]
        referenced = parse_skill_references(content, self.skills)

        self.messages.append(user)
        assistant = ChatMessage(role="assistant", is_streaming=True)
        self.messages.append(assistant)
        self.is_loading = True
        self.error = None
        self.error_code = None

        try:
            events = self.service.stream_chat(
                history,
                model_id=self.model_id,
                skills_context=format_brief(self.brief) or None,
                referenced_skills=[s.to_api() for s in referenced] or None,
            )
            for event in events:
                if event.error:
                    assistant.content = event.error
                    self._set_error(event.error, event.code)
                    if event.code == INSUFFICIENT_BALANCE:
                        raise InsufficientBalanceError(event.error)
                    break
                if event.content:
                    assistant.content += event.content
                    if on_chunk:
                        on_chunk(event.content)
                if event.generation:
                    assistant.generation = event.generation
                    if on_generation:
                        on_generation(event.generation)
        except InsufficientBalanceError as e:
            self._set_error(str(e), INSUFFICIENT_BALANCE)
            assistant.content = assistant.content or str(e)
            raise
        except StudioError as e:
            logger.error("Chat request failed: %s", e)
            self._set_error(str(e), e.code)
            assistant.content = str(e)
        finally:
            assistant.is_streaming = False
            self.is_loading = False

        if self.conversation_id:
            self._save(user, assistant)

        generation = assistant.generation
        if generation and generation.error_code == INSUFFICIENT_BALANCE:
            self._set_error(generation.error or "Insufficient balance", INSUFFICIENT_BALANCE)
            raise InsufficientBalanceError(
                generation.error or "Insufficient balance",
                required=generation.required,
                available=generation.available,
            )
        return assistant

    def _save(self, user: ChatMessage, assistant: ChatMessage) -> None:
        turn = [user] if self.error else [user, assistant]
        try:
            for message in turn:
                if message.content:
                    self.service.append_message(self.conversation_id, message.role, message.content)
        except StudioError as e:
            logger.warning("Failed to save messages to %s: %s", self.conversation_id, e)

    def _set_error(self, error: str, code: str | None) -> None:
        self.error = error
        self.error_code = code
