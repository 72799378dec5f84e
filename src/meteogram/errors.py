"""Exception taxonomy for the acquisition pipeline."""


class MeteogramError(Exception):
    """Base class for every pipeline failure."""


class ParseError(MeteogramError):
    """Malformed SVG, HTML or forecast payload."""


class TransportError(MeteogramError):
    """Non-2xx status, network failure or timeout."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmptyResultError(TransportError):
    """Forecast decoded but yielded no usable points. Retried like a transport failure."""


class ExhaustedRetriesError(MeteogramError):
    """Every attempt of a retry chain failed."""

    def __init__(self, attempts: int, last_error: Exception | None = None) -> None:
        super().__init__(f"gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
