"""Service for talking to the Skinny Studio backend API."""

import json
import logging
from collections.abc import Iterable, Iterator
from typing import Any

import requests
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from .errors import (
    AuthenticationError,
    ImageUnavailableError,
    InsufficientBalanceError,
    StudioError,
)
from .models import (
    ChatMessage,
    ChatStreamEvent,
    ClientConfig,
    Conversation,
    Folder,
    Generation,
    GenerationResult,
    ImagePurpose,
    ImageRetryConfig,
)
from .recovery import find_recovered_generation
from .sequence import RequestSequence

logger = logging.getLogger(__name__)

INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
SHOT_POLL_ATTEMPTS = 120
SHOT_POLL_INTERVAL = 1.0
# Rough estimates used when the cost endpoint cannot be reached.
FALLBACK_COST_CENTS = {"image": 10, "video": 50}


def parse_sse_lines(lines: Iterable[str]) -> Iterator[ChatStreamEvent]:
    """Decode ``data:`` lines of a chat stream into events.

    Lines that are not data lines, the ``[DONE]`` marker and payloads that
    fail to parse are skipped.
    """
    for line in lines:
        if not line or not line.startswith("data: "):
            continue
        data = line[len("data: ") :]
        if data == "[DONE]":
            continue
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed stream line: %r", data)
            continue
        if not isinstance(parsed, dict):
            continue
        generation = parsed.get("generation")
        yield ChatStreamEvent(
            content=parsed.get("content"),
            generation=GenerationResult.from_api(generation) if generation else None,
            error=parsed.get("error"),
            code=parsed.get("code"),
            skill_creation=parsed.get("skillCreation"),
        )


class StudioService:
    """Service to interact with the studio backend routes."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the service with connection settings."""
        self.config = config or ClientConfig()
        self.session = session or requests.Session()
        self.cost_sequence = RequestSequence()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.user_token:
            headers["x-whop-user-token"] = self.config.user_token
        if self.config.user_id:
            headers["x-whop-user-id"] = self.config.user_id
        return headers

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}{path}"

    def _request(
        self,
        method: str,
        path: str,
        action: str,
        **kwargs: Any,
    ) -> requests.Response:
        try:
            response = self.session.request(
                method,
                self._url(path),
                headers=self._headers(),
                timeout=self.config.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            msg = f"Failed to {action}: {e}"
            raise StudioError(msg) from e

        if not response.ok:
            self._raise_for_response(response, action)
        return response

    @staticmethod
    def _raise_for_response(response: requests.Response, action: str) -> None:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        error = data.get("error") or response.reason or "Unknown error"
        code = data.get("code")

        if code == INSUFFICIENT_BALANCE or response.status_code == 402:
            raise InsufficientBalanceError(
                error,
                required=data.get("required"),
                available=data.get("available"),
                status_code=response.status_code,
            )
        if response.status_code == 401:
            msg = f"Failed to {action}: {error}"
            raise AuthenticationError(msg, status_code=401, code=code)
        msg = f"Failed to {action}: {error}"
        raise StudioError(msg, status_code=response.status_code, code=code)

    def stream_chat(
        self,
        messages: list[dict[str, Any]],
        model_id: str | None = None,
        skills_context: str | None = None,
        referenced_skills: list[dict[str, Any]] | None = None,
    ) -> Iterator[ChatStreamEvent]:
        """Send a conversation to ``/api/chat`` and yield its stream events.

        Args:
            messages: Conversation history in API form.
            model_id: Generation model preferred by the user.
            skills_context: Formatted skill guidance for the system prompt.
            referenced_skills: Skills mentioned with ``@shortcut``.

        Yields:
            ChatStreamEvent: Decoded events, in arrival order.

        Raises:
            StudioError: If the request is rejected.

        """
        body: dict[str, Any] = {"messages": messages}
        if model_id:
            body["modelId"] = model_id
        if skills_context:
            body["skillsContext"] = skills_context
        if referenced_skills:
            body["referencedSkills"] = referenced_skills

        response = self._request(
            "POST",
            "/api/chat",
            "send message",
            json=body,
            stream=True,
        )
        with response:
            try:
                yield from parse_sse_lines(response.iter_lines(decode_unicode=True))
            except requests.RequestException as e:
                msg = f"Failed to send message: {e}"
                raise StudioError(msg) from e

    def analyze_image(
        self,
        purpose: ImagePurpose = ImagePurpose.ANALYZE,
        base64_data: str | None = None,
        mime_type: str | None = None,
        image_url: str | None = None,
    ) -> str:
        """Run vision analysis on an inline image or an image URL."""
        body: dict[str, Any] = {"purpose": ImagePurpose(purpose).value}
        if base64_data:
            body["base64"] = base64_data
            body["mimeType"] = mime_type or "image/png"
        elif image_url:
            body["imageUrl"] = image_url
        else:
            msg = "An image payload or URL is required for analysis"
            raise ValueError(msg)

        response = self._request("POST", "/api/analyze-image", "analyze image", json=body)
        return response.json().get("analysis") or "No analysis generated."

    def list_generations(
        self,
        category: str | None = None,
        folder_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
        include_pending: bool = False,
    ) -> list[Generation]:
        """Fetch one page of the user's generation library."""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if category:
            params["category"] = category
        if folder_id:
            params["folderId"] = folder_id
        if include_pending:
            params["includePending"] = "true"

        response = self._request(
            "GET",
            "/api/generations",
            "fetch generations",
            params=params,
        )
        return [Generation.model_validate(g) for g in response.json().get("generations", [])]

    def estimate_cost(
        self,
        model: str,
        duration: int | None = None,
        media_type: str = "image",
    ) -> int | None:
        """Estimate the cost in cents of one generation.

        Falls back to a rough estimate when the endpoint fails. Returns
        ``None`` when a newer estimate was requested while this one was in
        flight.
        """
        token = self.cost_sequence.begin()
        body: dict[str, Any] = {"model": model}
        if duration is not None:
            body["duration"] = duration

        try:
            response = self._request("POST", "/api/estimate-cost", "estimate cost", json=body)
            cost = response.json().get("costCents")
        except StudioError as e:
            logger.warning("Cost estimate failed for %s: %s", model, e)
            cost = FALLBACK_COST_CENTS.get(media_type, FALLBACK_COST_CENTS["image"])

        if not self.cost_sequence.is_current(token):
            logger.debug("Discarding stale cost estimate for %s", model)
            return None
        return cost

    def publish_to_gallery(
        self,
        generation_id: str,
        title: str | None = None,
        description: str | None = None,
        tags: list[str] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"generationId": generation_id}
        if title:
            body["title"] = title
        if description:
            body["description"] = description
        if tags:
            body["tags"] = tags
        response = self._request("POST", "/api/gallery/publish", "publish", json=body)
        return response.json()

    def delete_generation(self, generation_id: str) -> None:
        self._request("DELETE", f"/api/generations/{generation_id}", "delete generation")

    def list_folders(self) -> list[Folder]:
        response = self._request("GET", "/api/folders", "fetch folders")
        return [Folder.model_validate(f) for f in response.json().get("folders", [])]

    def move_generation(self, generation_id: str, folder_id: str | None) -> None:
        """Move a generation into a folder, or out of all folders with ``None``."""
        self._request(
            "POST",
            f"/api/generations/{generation_id}/move",
            "move generation",
            json={"folder_id": folder_id},
        )

    def update_shot(
        self,
        storyboard_id: str,
        shot_id: str,
        update: dict[str, Any],
    ) -> dict[str, Any]:
        """Save shot fields, e.g. the payload of ``ShotDraft.to_update``."""
        response = self._request(
            "PATCH",
            f"/api/storyboards/{storyboard_id}/shots/{shot_id}",
            "update shot",
            json=update,
        )
        return response.json().get("shot", {})

    def generate_shot(
        self,
        storyboard_id: str,
        shot_id: str,
        request: dict[str, Any],
    ) -> dict[str, Any]:
        """Start generating a storyboard shot and wait for its result.

        Args:
            storyboard_id: Storyboard owning the shot.
            shot_id: Shot to generate.
            request: Body built by ``ShotEditor.generation_request``.

        Returns:
            dict: The completed result, with ``imageUrl`` and ``generationId``.

        Raises:
            InsufficientBalanceError: If the account cannot pay.
            StudioError: If generation fails or times out.

        """
        path = f"/api/storyboards/{storyboard_id}/generate/{shot_id}"
        result = self._request("POST", path, "generate shot", json=request).json()

        if result.get("error"):
            msg = f"Failed to generate shot: {result['error']}"
            raise StudioError(msg, code=result.get("code"))
        if result.get("pending"):
            return self.wait_for_shot(storyboard_id, shot_id)
        if result.get("success") and result.get("imageUrl"):
            return result
        msg = "Failed to generate shot: unexpected generation result"
        raise StudioError(msg)

    def wait_for_shot(
        self,
        storyboard_id: str,
        shot_id: str,
        attempts: int = SHOT_POLL_ATTEMPTS,
        interval: float = SHOT_POLL_INTERVAL,
    ) -> dict[str, Any]:
        """Poll a pending shot until it completes, fails or times out."""
        path = f"/api/storyboards/{storyboard_id}/generate/{shot_id}"

        def _poll() -> dict[str, Any]:
            return self._request("GET", path, "poll shot").json()

        retryer = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(interval),
            retry=retry_if_result(
                lambda r: r.get("status") not in ("completed", "error"),
            ),
        )
        try:
            result = retryer(_poll)
        except RetryError as e:
            msg = "Failed to generate shot: generation timed out"
            raise StudioError(msg) from e

        if result.get("status") == "error":
            msg = f"Failed to generate shot: {result.get('error') or 'generation failed'}"
            raise StudioError(msg)
        return result

    def _download(self, url: str) -> bytes:
        response = self.session.get(url, timeout=self.config.timeout)
        response.raise_for_status()
        return response.content

    def fetch_image(
        self,
        url: str,
        generation: GenerationResult | None = None,
        config: ImageRetryConfig | None = None,
    ) -> bytes:
        """Download an image, retrying and then falling back to the library.

        When every attempt fails and ``generation`` is given, the library is
        searched for a permanent URL of the same generation.

        Raises:
            ImageUnavailableError: If no copy of the image could be loaded.

        """
        if config is None:
            config = ImageRetryConfig()

        # reraise=True so the last download error surfaces after retries
        retryer = Retrying(
            stop=stop_after_attempt(config.retries + 1),
            wait=wait_exponential(min=config.min_wait, max=config.max_wait),
            retry=retry_if_exception_type(requests.RequestException),
            reraise=True,
        )
        try:
            return retryer(self._download, url)
        except requests.RequestException as e:
            logger.warning("Image %s failed to load: %s", url, e)
            last_error: Exception = e

        if generation is not None:
            try:
                match = find_recovered_generation(generation, self.list_generations())
            except StudioError as e:
                logger.warning("Library fallback failed: %s", e)
                match = None
            for permanent_url in match.output_urls if match else []:
                if permanent_url == url:
                    continue
                try:
                    return self._download(permanent_url)
                except requests.RequestException as e:
                    last_error = e

        msg = f"Failed to load image {url}"
        raise ImageUnavailableError(msg) from last_error

    def list_conversations(self) -> list[Conversation]:
        response = self._request("GET", "/api/conversations", "fetch conversations")
        return [Conversation.model_validate(c) for c in response.json().get("conversations", [])]

    def create_conversation(
        self,
        title: str | None = None,
        model_id: str | None = None,
    ) -> Conversation:
        body: dict[str, Any] = {}
        if title:
            body["title"] = title
        if model_id:
            body["modelId"] = model_id
        response = self._request("POST", "/api/conversations", "create conversation", json=body)
        return Conversation.model_validate(response.json()["conversation"])

    def get_conversation(self, conversation_id: str) -> tuple[Conversation, list[ChatMessage]]:
        """Load a conversation and its stored messages, oldest first."""
        response = self._request(
            "GET",
            f"/api/conversations/{conversation_id}",
            "fetch conversation",
        )
        data = response.json()
        messages = [ChatMessage.from_stored(m) for m in data.get("messages", [])]
        return Conversation.model_validate(data["conversation"]), messages

    def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        generation_id: str | None = None,
    ) -> None:
        body: dict[str, Any] = {"role": role, "content": content}
        if generation_id:
            body["generationId"] = generation_id
        self._request(
            "POST",
            f"/api/conversations/{conversation_id}/messages",
            "save message",
            json=body,
        )
