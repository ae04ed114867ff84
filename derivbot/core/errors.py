"""Exception hierarchy for derivbot."""

from __future__ import annotations


class DerivBotError(Exception):
    """Base class for all derivbot errors."""


class APIConnectionError(DerivBotError, ConnectionError):
    """Raised when the venue connection cannot be opened or is lost."""


class RequestTimeoutError(DerivBotError, TimeoutError):
    """Raised when a correlated request receives no response before its deadline."""

    def __init__(self, req_id: int, timeout: float) -> None:
        self.req_id = req_id
        self.timeout = timeout
        super().__init__(f"Request {req_id} timed out after {timeout:g} seconds")


class RemoteError(DerivBotError):
    """The venue answered a request with an error payload."""

    def __init__(self, code: str, message: str, msg_type: str = "") -> None:
        self.code = code
        self.message = message
        self.msg_type = msg_type
        super().__init__(f"{code}: {message}" if code else message)


class NotAuthorizedError(DerivBotError):
    """A trading or subscription request was issued before authorization."""
