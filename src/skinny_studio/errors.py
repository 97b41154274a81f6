"""Exceptions raised by the Skinny Studio client."""


class StudioError(RuntimeError):
    """A backend request failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class AuthenticationError(StudioError):
    """The backend rejected the user credentials."""


class InsufficientBalanceError(StudioError):
    """The account cannot pay for the requested generation."""

    def __init__(
        self,
        message: str,
        required: int | None = None,
        available: int | None = None,
        status_code: int | None = 402,
    ) -> None:
        super().__init__(message, status_code=status_code, code="INSUFFICIENT_BALANCE")
        self.required = required
        self.available = available

    @property
    def shortfall(self) -> int | None:
        if self.required is None or self.available is None:
            return None
        return max(self.required - self.available, 0)


class ImageUnavailableError(StudioError):
    """An image could not be loaded, even through the library fallback."""
