from __future__ import annotations

import socket
import ssl
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from tls_cert_probe.models import TrustPolicy


def _name(cn: str, org: str = "Example Org") -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, org),
            x509.NameAttribute(NameOID.COMMON_NAME, cn),
        ]
    )


class Issued:
    def __init__(self, cert: x509.Certificate, key: ec.EllipticCurvePrivateKey):
        self.cert = cert
        self.key = key

    @property
    def der(self) -> bytes:
        return self.cert.public_bytes(serialization.Encoding.DER)


def issue(
    cn: str,
    issuer: Issued | None = None,
    *,
    not_before: datetime | None = None,
    not_after: datetime | None = None,
    dns_names: list[str] | None = None,
    ca: bool = False,
    serial: int | None = None,
) -> Issued:
    """Self-signed when ``issuer`` is None."""
    now = datetime.now(timezone.utc)
    key = ec.generate_private_key(ec.SECP256R1())
    subject = _name(cn)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer.cert.subject if issuer else subject)
        .public_key(key.public_key())
        .serial_number(serial if serial is not None else x509.random_serial_number())
        .not_valid_before(not_before or now - timedelta(days=1))
        .not_valid_after(not_after or now + timedelta(days=90))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    if dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(d) for d in dns_names]),
            critical=False,
        )
    signing_key = issuer.key if issuer else key
    return Issued(builder.sign(signing_key, hashes.SHA256()), key)


@pytest.fixture
def pki():
    root = issue("Example Root CA", ca=True)
    intermediate = issue("Example Intermediate CA", root, ca=True)
    leaf = issue("www.example.com", intermediate, dns_names=["www.example.com", "example.com"])
    return {"root": root, "intermediate": intermediate, "leaf": leaf}


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRawSocket:
    def __init__(self):
        self.timeouts: list[float] = []
        self.closed = False
        self.shut_down = False

    def settimeout(self, value: float) -> None:
        self.timeouts.append(value)

    def shutdown(self, how: int) -> None:
        self.shut_down = True

    def close(self) -> None:
        self.closed = True


class FakeCertificate:
    """Like _ssl.Certificate on 3.10-3.12: public_bytes() defaults to PEM."""

    def __init__(self, der: bytes):
        self.der = der

    def public_bytes(self, format: int = 1) -> str:
        return ssl.DER_cert_to_PEM_cert(self.der)


class FakeSSLObject:
    def __init__(self, ders: list[bytes]):
        self.ders = ders

    def get_unverified_chain(self):
        return [FakeCertificate(d) for d in self.ders]


class FakeTLSSocket(FakeRawSocket):
    def __init__(
        self,
        ders: list[bytes],
        *,
        response: list[bytes] | None = None,
        recv_error: Exception | None = None,
        on_recv=None,
        version: str = "TLSv1.3",
        cipher: tuple[str, str, int] | None = ("TLS_AES_256_GCM_SHA384", "TLSv1.3", 256),
        session_reused: bool = False,
        chain_api: str = "unverified",
    ):
        super().__init__()
        self.ders = ders
        # mirror what each interpreter exposes for the peer chain
        if chain_api == "unverified":
            self.get_unverified_chain = lambda: list(self.ders)
        elif chain_api == "sslobj":
            self._sslobj = FakeSSLObject(ders)
        elif chain_api == "verified":
            self.get_verified_chain = lambda: [FakeCertificate(d) for d in self.ders]
        self.response = list(response if response is not None else [b"HTTP/1.1 200 OK\r\nServer: fake\r\n\r\n"])
        self.recv_error = recv_error
        self.on_recv = on_recv
        self._version = version
        self._cipher = cipher
        self.session_reused = session_reused
        self.sent = b""

    def version(self):
        return self._version

    def cipher(self):
        return self._cipher

    def getpeercert(self, binary_form: bool = False):
        return self.ders[0] if self.ders else None

    def sendall(self, data: bytes) -> None:
        self.sent += data

    def recv(self, size: int) -> bytes:
        if self.on_recv is not None:
            self.on_recv()
        if self.recv_error is not None:
            raise self.recv_error
        return self.response.pop(0) if self.response else b""


class FakeContext:
    def __init__(self, tls_socket: FakeTLSSocket | None = None, handshake_error: Exception | None = None, on_handshake=None):
        self.tls_socket = tls_socket
        self.handshake_error = handshake_error
        self.on_handshake = on_handshake
        self.options = 0
        self.verify_mode = None
        self.check_hostname = False
        self.server_hostname: str | None = None

    def wrap_socket(self, sock, server_hostname=None):
        self.server_hostname = server_hostname
        if self.on_handshake is not None:
            self.on_handshake()
        if self.handshake_error is not None:
            raise self.handshake_error
        return self.tls_socket


class FakeNetwork:
    """
    Stands in for getaddrinfo (``resolve``) and the per-address connect, and
    records what was asked of them.

    ``errors`` maps an address to the exception its connect raises;
    ``on_connect(address, timeout)`` runs before each connect.
    """

    def __init__(
        self,
        raw: FakeRawSocket | None = None,
        error: Exception | None = None,
        *,
        addresses: list[str] | None = None,
        errors: dict[str, Exception] | None = None,
        on_connect=None,
        resolve_error: Exception | None = None,
    ):
        self.raw = raw or FakeRawSocket()
        self.error = error
        self.addresses = addresses or ["192.0.2.10"]
        self.errors = errors or {}
        self.on_connect = on_connect
        self.resolve_error = resolve_error
        self.resolved: list[tuple[str, int]] = []
        self.calls: list[tuple[tuple[str, int], float]] = []

    def resolve(self, host, port, family=0, type=0, proto=0, flags=0):
        self.resolved.append((host, port))
        if self.resolve_error is not None:
            raise self.resolve_error
        return [
            (socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP, "", (address, port))
            for address in self.addresses
        ]

    def __call__(self, addrinfo, timeout):
        address = addrinfo[4]
        self.calls.append((address, timeout))
        if self.on_connect is not None:
            self.on_connect(address, timeout)
        error = self.errors.get(address[0], self.error)
        if error is not None:
            raise error
        return self.raw

    def hooks(self) -> dict:
        return {"resolve": self.resolve, "connect": self}


@pytest.fixture
def clock():
    return FakeClock()


def fake_trust(ctx: FakeContext) -> TrustPolicy:
    return TrustPolicy(context_factory=lambda: ctx)


def timeout_error() -> socket.timeout:
    return socket.timeout("timed out")
