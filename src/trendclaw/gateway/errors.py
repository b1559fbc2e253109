"""Exception hierarchy for OpenClaw gateway interactions."""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for all gateway failures."""


class GatewayConnectionError(GatewayError):
    """Transport-level failure: socket error, refused connection or lost link."""


class GatewayNotConnectedError(GatewayConnectionError):
    """Raised before any network activity when no authenticated session exists."""

    def __init__(self, message: str = "Not connected to OpenClaw gateway") -> None:
        super().__init__(message)


class GatewayTimeoutError(GatewayError):
    """No response frame arrived within the allotted window."""


class GatewayHandshakeError(GatewayError):
    """The gateway answered the connect handshake with a failure."""


class GatewayRequestError(GatewayError):
    """The gateway reported a failure for a request frame."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code
