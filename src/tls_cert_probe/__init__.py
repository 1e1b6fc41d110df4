from __future__ import annotations

__version__ = "0.1.0"

from .errors import AuthorizationFailed, ConnectionFailed, ProbeError, Timeout, TransportError
from .models import ProbeConfig, ProbeResult, Target, TrustPolicy
from .probe import probe

__all__ = [
    "__version__",
    "AuthorizationFailed",
    "ConnectionFailed",
    "ProbeConfig",
    "ProbeError",
    "ProbeResult",
    "Target",
    "Timeout",
    "TransportError",
    "TrustPolicy",
    "probe",
]
