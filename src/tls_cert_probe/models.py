from __future__ import annotations

import ssl
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Union

from .utils import dt_to_utc_iso

# {"CN": "example.com", "O": "Example Inc", "OU": ["a", "b"]}
NameComponents = dict[str, Union[str, list[str]]]

DEFAULT_PORT = 443
DEFAULT_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class TrustPolicy:
    """
    Trust anchors used to authorize the peer. Defaults to the system store.

    ``context_factory`` replaces context construction entirely (tests use it to
    hand in a fake context). The session and verification options are applied
    to whatever it returns.
    """
    cafile: str | None = None
    capath: str | None = None
    cadata: str | bytes | None = None
    context_factory: Callable[[], ssl.SSLContext] | None = None

    def create_context(self) -> ssl.SSLContext:
        if self.context_factory is not None:
            ctx = self.context_factory()
        else:
            ctx = ssl.create_default_context(
                cafile=self.cafile, capath=self.capath, cadata=self.cadata
            )
        ctx.verify_mode = ssl.CERT_REQUIRED
        ctx.check_hostname = True
        # every probe negotiates a full handshake
        ctx.options |= ssl.OP_NO_TICKET
        ctx.options |= getattr(ssl, "OP_NO_RENEGOTIATION", 0)
        return ctx


@dataclass(frozen=True)
class ProbeConfig:
    port: int = DEFAULT_PORT
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    trust: TrustPolicy = field(default_factory=TrustPolicy)
    user_agent: str = "tls-cert-probe"


@dataclass(frozen=True)
class Target:
    host: str
    path: str = "/"
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    port: int = DEFAULT_PORT

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host is empty")
        if not self.timeout_seconds > 0:
            raise ValueError("timeout must be a positive number of seconds")
        if not (1 <= self.port <= 65535):
            raise ValueError("port out of range")
        if not self.path.startswith("/"):
            object.__setattr__(self, "path", "/" + self.path)


@dataclass(frozen=True)
class RawCertificate:
    """
    Attributes of one certificate as presented by the peer.
    """
    subject: NameComponents
    issuer: NameComponents
    valid_from: datetime
    valid_to: datetime
    serial_number: str
    fingerprint: str     # SHA-1, colon separated
    fingerprint256: str  # SHA-256, colon separated
    subject_alt_names: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.subject and not self.issuer and not self.serial_number


@dataclass(frozen=True)
class CertificateChain:
    """
    Presented certificates, leaf first. ``successors[i]`` is the index of the
    certificate that issued ``certificates[i]``, or None when it was not
    presented. Successor links are not guaranteed to be acyclic.
    """
    certificates: tuple[RawCertificate, ...]
    successors: tuple[int | None, ...]

    def __post_init__(self) -> None:
        if len(self.certificates) != len(self.successors):
            raise ValueError("certificates and successors differ in length")

    def __len__(self) -> int:
        return len(self.certificates)

    def __getitem__(self, index: int) -> RawCertificate:
        return self.certificates[index]

    @property
    def leaf(self) -> RawCertificate:
        return self.certificates[0]


@dataclass(frozen=True)
class ChainLink:
    subject: NameComponents
    issuer: NameComponents
    valid_from: datetime
    valid_to: datetime
    is_self_signed: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "issuer": self.issuer,
            "validFrom": dt_to_utc_iso(self.valid_from),
            "validTo": dt_to_utc_iso(self.valid_to),
            "isSelfSigned": self.is_self_signed,
        }


@dataclass(frozen=True)
class ChainWalk:
    links: tuple[ChainLink, ...]
    complete: bool


@dataclass(frozen=True)
class ConnectionInfo:
    protocol_version: str | None
    cipher_suite: str
    authorized: bool


@dataclass(frozen=True)
class LeafCertificate:
    certificate: RawCertificate
    days_remaining: int

    def to_dict(self) -> dict[str, Any]:
        c = self.certificate
        return {
            "subject": c.subject,
            "issuer": c.issuer,
            "validFrom": dt_to_utc_iso(c.valid_from),
            "validTo": dt_to_utc_iso(c.valid_to),
            "daysRemaining": self.days_remaining,
            "serialNumber": c.serial_number,
            "fingerprint": c.fingerprint,
            "fingerprint256": c.fingerprint256,
            "subjectAltNames": list(c.subject_alt_names),
        }


@dataclass(frozen=True)
class ProbeResult:
    connection: ConnectionInfo
    leaf: LeafCertificate
    chain: tuple[ChainLink, ...]
    chain_complete: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "connectionInfo": {
                "protocol": self.connection.protocol_version,
                "cipher": self.connection.cipher_suite,
                "authorized": self.connection.authorized,
            },
            "certificate": self.leaf.to_dict(),
            "certificateChain": [link.to_dict() for link in self.chain],
            "chainComplete": self.chain_complete,
        }

