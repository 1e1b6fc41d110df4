"""Failure classes of a single probe.

Every error is terminal for the probe that raised it; nothing is retried
internally. Callers branch on the class (or on ``kind`` once serialized).
"""

from __future__ import annotations


class ProbeError(Exception):
    """Base class for probe failures."""

    kind = "probe_error"

    def __init__(self, message: str, host: str):
        super().__init__(message)
        self.host = host

    def to_dict(self) -> dict[str, str]:
        return {"errorType": self.kind, "error": str(self), "host": self.host}


class AuthorizationFailed(ProbeError):
    """The peer certificate was rejected by the TLS trust evaluation."""

    kind = "authorization_failed"

    def __init__(self, host: str, reason: str):
        super().__init__(f"Certificate validation failed: {reason}", host)
        self.reason = reason


class Timeout(ProbeError):
    """The connect/handshake/response cycle did not finish within the budget."""

    kind = "timeout"

    def __init__(self, host: str, timeout_seconds: float, elapsed_seconds: float):
        super().__init__(
            f"Connection timed out after {timeout_seconds:g} seconds "
            f"while trying to connect to {host}",
            host,
        )
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds


class ConnectionFailed(ProbeError):
    """DNS failure, refused connection or unreachable network."""

    kind = "connection_failed"

    def __init__(self, host: str, detail: str):
        super().__init__(
            f"Failed to connect to {host}: Server might be unreachable "
            f"or behind a firewall ({detail})",
            host,
        )
        self.detail = detail


class TransportError(ProbeError):
    kind = "transport_error"

    def __init__(self, host: str, detail: str):
        super().__init__(f"TLS transport error talking to {host}: {detail}", host)
        self.detail = detail
