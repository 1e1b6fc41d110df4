from __future__ import annotations

import concurrent.futures
import contextlib
import errno
import logging
import socket
import ssl
import time
from dataclasses import dataclass
from typing import Any, Callable

from .errors import AuthorizationFailed, ConnectionFailed, Timeout, TransportError
from .models import ConnectionInfo, ProbeConfig, Target

logger = logging.getLogger(__name__)

_MAX_RESPONSE_HEAD = 64 * 1024

# errno values that mean "the host cannot be reached", as opposed to a fault mid-conversation
_UNREACHABLE_ERRNOS = {
    errno.ECONNREFUSED,
    errno.EHOSTUNREACH,
    errno.ENETUNREACH,
    errno.EHOSTDOWN,
    errno.ENETDOWN,
}


@dataclass(frozen=True)
class PeerCertificates:
    """
    What the handshake produced: connection parameters, the DER certificates
    presented by the peer (leaf first) and the status of the HEAD response.
    """
    connection: ConnectionInfo
    ders: list[bytes]
    http_status: int


class _Deadline:
    def __init__(self, budget: float, clock: Callable[[], float]):
        self.budget = budget
        self._clock = clock
        self._start = clock()

    def elapsed(self) -> float:
        return self._clock() - self._start

    def remaining(self) -> float:
        left = self.budget - self.elapsed()
        if left <= 0:
            raise socket.timeout("probe time budget exhausted")
        return left


def cipher_label(cipher: tuple[str, str, int] | None) -> str:
    if not cipher or not cipher[0]:
        return "Unknown"
    return f"{cipher[0]} ({cipher[1]})"


def _to_der(cert: Any) -> bytes:
    # 3.13+ hands back DER bytes; 3.10-3.12 hand back certificate objects whose
    # public_bytes() defaults to PEM
    if isinstance(cert, (bytes, bytearray)):
        return bytes(cert)
    return ssl.PEM_cert_to_DER_cert(cert.public_bytes())


def _presented_chain(ssock: ssl.SSLSocket) -> list[bytes]:
    # Presented (unverified) chain first: it shows what the server actually sends,
    # including a missing root or intermediate.
    sslobj = getattr(ssock, "_sslobj", None)
    if hasattr(ssock, "get_unverified_chain"):
        chain = ssock.get_unverified_chain()  # type: ignore[attr-defined]
    elif hasattr(sslobj, "get_unverified_chain"):
        chain = sslobj.get_unverified_chain()
    elif hasattr(ssock, "get_verified_chain"):
        chain = ssock.get_verified_chain()  # type: ignore[attr-defined]
    else:
        chain = []
    return [_to_der(c) for c in chain or []]


def _normalize_chain(leaf_der: bytes, chain_ders: list[bytes]) -> list[bytes]:
    ders = [leaf_der]
    for d in chain_ders:
        if d and d not in ders:
            ders.append(d)
    return ders


def _head_request(target: Target, config: ProbeConfig) -> bytes:
    host = target.host if target.port == 443 else f"{target.host}:{target.port}"
    lines = [
        f"HEAD {target.path} HTTP/1.1",
        f"Host: {host}",
        f"User-Agent: {config.user_agent}",
        "Accept: */*",
        "Connection: close",
        "",
        "",
    ]
    return "\r\n".join(lines).encode("utf-8")


def _read_status(ssock: ssl.SSLSocket, deadline: _Deadline, host: str) -> int:
    buf = b""
    while b"\r\n" not in buf and len(buf) < _MAX_RESPONSE_HEAD:
        ssock.settimeout(deadline.remaining())
        chunk = ssock.recv(4096)
        if not chunk:
            break
        buf += chunk
    if not buf:
        raise TransportError(host, "server closed the connection without a response")

    status_line = buf.split(b"\r\n", 1)[0].decode("latin-1")
    parts = status_line.split(" ", 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/") or not parts[1].isdigit():
        raise TransportError(host, f"malformed HTTP status line: {status_line[:80]!r}")
    return int(parts[1])


def _abort(sock: socket.socket | None) -> None:
    if sock is None:
        return
    with contextlib.suppress(OSError):
        sock.shutdown(socket.SHUT_RDWR)
    sock.close()


def connect_address(addrinfo: tuple, timeout: float) -> socket.socket:
    family, type_, proto, _, sockaddr = addrinfo
    sock = socket.socket(family, type_, proto)
    try:
        sock.settimeout(timeout)
        sock.connect(sockaddr)
    except OSError:
        sock.close()
        raise
    return sock


def _resolve(
    target: Target,
    deadline: _Deadline,
    resolve: Callable[..., list],
) -> list:
    # getaddrinfo ignores socket timeouts; bound it by waiting on a worker
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    future = pool.submit(resolve, target.host, target.port, 0, socket.SOCK_STREAM)
    try:
        return future.result(timeout=deadline.remaining())
    except concurrent.futures.TimeoutError as e:
        raise socket.timeout(f"name resolution for {target.host} timed out") from e
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


def _open_connection(
    target: Target,
    deadline: _Deadline,
    resolve: Callable[..., list],
    connect: Callable[[tuple, float], socket.socket],
) -> socket.socket:
    """
    Try each resolved address in turn. Every attempt gets only what is left of
    the budget, so several silent addresses cannot stretch it.
    """
    addrinfos = _resolve(target, deadline, resolve)
    if not addrinfos:
        raise socket.gaierror(socket.EAI_NONAME, f"no addresses for {target.host}")

    last_error: OSError | None = None
    for addrinfo in addrinfos:
        try:
            return connect(addrinfo, deadline.remaining())
        except socket.timeout:
            raise
        except OSError as e:
            logger.debug("connect to %s failed: %s", addrinfo[4], e)
            last_error = e
    raise last_error


def fetch_peer_certificates(
    target: Target,
    *,
    config: ProbeConfig | None = None,
    resolve: Callable[..., list] = socket.getaddrinfo,
    connect: Callable[[tuple, float], socket.socket] = connect_address,
    clock: Callable[[], float] = time.monotonic,
) -> PeerCertificates:
    """
    Connect to the target, run a fresh fully verified TLS handshake, send a
    HEAD request for ``target.path`` and collect the presented certificates.

    The whole cycle shares one wall-clock budget of ``target.timeout_seconds``.
    Raises AuthorizationFailed, Timeout, ConnectionFailed or TransportError.
    """
    config = config or ProbeConfig()
    ctx = config.trust.create_context()
    deadline = _Deadline(target.timeout_seconds, clock)
    host = target.host
    sock: socket.socket | None = None

    try:
        logger.debug("connecting to %s:%d (budget %.3fs)", host, target.port, target.timeout_seconds)
        sock = _open_connection(target, deadline, resolve, connect)
        sock.settimeout(deadline.remaining())
        sock = ctx.wrap_socket(sock, server_hostname=host)

        if sock.session_reused:
            raise TransportError(host, "handshake resumed a cached session")

        protocol = sock.version()
        connection = ConnectionInfo(
            protocol_version=protocol,
            cipher_suite=cipher_label(sock.cipher()),
            authorized=True,
        )
        leaf_der = sock.getpeercert(binary_form=True)
        if not leaf_der:
            raise TransportError(host, "peer presented no certificate")
        ders = _normalize_chain(leaf_der, _presented_chain(sock))
        logger.debug("handshake with %s: %s, %s, %d certificates", host, protocol, connection.cipher_suite, len(ders))

        sock.settimeout(deadline.remaining())
        sock.sendall(_head_request(target, config))
        status = _read_status(sock, deadline, host)
        logger.debug("HEAD %s on %s answered %d", target.path, host, status)

        return PeerCertificates(connection=connection, ders=ders, http_status=status)

    except socket.timeout as e:
        elapsed = deadline.elapsed()
        _abort(sock)
        raise Timeout(host, target.timeout_seconds, elapsed) from e
    except ssl.SSLCertVerificationError as e:
        reason = getattr(e, "verify_message", None) or str(e)
        raise AuthorizationFailed(host, reason) from e
    except socket.gaierror as e:
        raise ConnectionFailed(host, f"name resolution failed: {e}") from e
    except ssl.SSLError as e:
        raise TransportError(host, str(e)) from e
    except OSError as e:
        if e.errno in _UNREACHABLE_ERRNOS:
            raise ConnectionFailed(host, str(e)) from e
        raise TransportError(host, str(e)) from e
    finally:
        if sock is not None:
            sock.close()
