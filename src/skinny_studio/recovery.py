"""Recover generations that stay stuck while the backend finishes them."""

import logging
import time
from collections.abc import Callable, Iterable

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_before_delay,
    wait_fixed,
)

from .models import Generation, GenerationOutput, GenerationResult, RecoveryConfig

logger = logging.getLogger(__name__)

SUCCEEDED_STATUSES = frozenset({"succeeded", "complete", "completed"})


def find_recovered_generation(
    generation: GenerationResult,
    library: Iterable[Generation],
) -> Generation | None:
    """Find a finished library entry for ``generation``.

    A match shares the model slug and the exact prompt, has a succeeded status
    and at least one output URL.
    """
    prompt = generation.effective_prompt
    if not prompt:
        return None
    for entry in library:
        if (
            entry.model_slug == generation.model
            and entry.prompt == prompt
            and (entry.replicate_status or "").lower() in SUCCEEDED_STATUSES
            and entry.output_urls
        ):
            return entry
    return None


class GenerationRecoveryPoller:
    """Poll the generation library until a stuck generation shows up.

    The library is refreshed once immediately and then every
    ``config.interval`` seconds. Polling stops on the first match, after
    ``config.max_attempts`` refreshes, or before a wait that would run past
    ``config.max_elapsed`` seconds.
    """

    def __init__(
        self,
        refresh: Callable[[], list[Generation]],
        config: RecoveryConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.refresh = refresh
        self.config = config or RecoveryConfig()
        self.sleep = sleep
        self.attempts = 0

    def recover(
        self,
        generation: GenerationResult,
        on_attempt: Callable[[int], None] | None = None,
    ) -> Generation | None:
        """Return the recovered library entry, or ``None`` if polling gave up."""
        if not generation.is_stuck:
            return None

        def _count(retry_state: RetryCallState) -> None:
            self.attempts = retry_state.attempt_number
            if on_attempt:
                on_attempt(self.attempts)

        def _search() -> Generation | None:
            return find_recovered_generation(generation, self.refresh())

        self.attempts = 0
        retryer = Retrying(
            stop=(
                stop_after_attempt(self.config.max_attempts)
                | stop_before_delay(self.config.max_elapsed)
            ),
            wait=wait_fixed(self.config.interval),
            retry=retry_if_exception_type(Exception) | retry_if_result(lambda m: m is None),
            before=_count,
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            sleep=self.sleep,
        )
        try:
            match = retryer(_search)
        except RetryError as e:
            failed = e.last_attempt.exception()
            logger.warning(
                "Gave up recovering %s generation after %d attempt(s)%s",
                generation.model,
                self.attempts,
                f": {failed}" if failed else "",
            )
            return None

        logger.info("Recovered generation %s after %d attempt(s)", match.id, self.attempts)
        return match


def apply_recovery(generation: GenerationResult, match: Generation) -> GenerationResult:
    """Substitute a recovered library record into a generation result."""
    prompt = generation.effective_prompt or match.prompt
    return generation.model_copy(
        update={
            "status": "complete",
            "pending": False,
            "output_urls": list(match.output_urls),
            "result": GenerationOutput(image_url=match.output_urls[0], prompt=prompt),
        },
    )
