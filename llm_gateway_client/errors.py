"""Exceptions raised by the gateway client."""


class GatewayError(Exception):
    """Base class for gateway client failures."""

    pass


class Unauthorized(GatewayError):
    """Raised when the session has expired and the user must log in again."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class RequestRejected(GatewayError):
    """Raised when the service answers with a non-2xx status.

    Attributes:
        status_code: HTTP status of the rejected response.
        detail: Server-provided detail message, if any.
    """

    def __init__(self, status_code: int, detail: str | None, fallback: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(detail or fallback)
