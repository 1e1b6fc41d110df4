from __future__ import annotations

import logging
import socket
import time
from datetime import datetime, timezone
from typing import Callable

from .certs import build_chain
from .chain import walk_chain
from .expiry import days_remaining
from .fetch import connect_address, fetch_peer_certificates
from .models import LeafCertificate, ProbeConfig, ProbeResult, Target

logger = logging.getLogger(__name__)


def probe(
    host: str,
    path: str = "/",
    timeout_seconds: float | None = None,
    *,
    config: ProbeConfig | None = None,
    resolve: Callable[..., list] = socket.getaddrinfo,
    connect: Callable[[tuple, float], socket.socket] = connect_address,
    clock: Callable[[], float] = time.monotonic,
    now: datetime | None = None,
) -> ProbeResult:
    """
    Probe ``host`` over TLS and describe its certificate chain.

    Either returns a complete ProbeResult or raises a ProbeError subclass;
    nothing partial is ever returned.
    """
    config = config or ProbeConfig()
    target = Target(
        host=host,
        path=path or "/",
        timeout_seconds=config.timeout_seconds if timeout_seconds is None else timeout_seconds,
        port=config.port,
    )

    peer = fetch_peer_certificates(
        target, config=config, resolve=resolve, connect=connect, clock=clock
    )

    chain = build_chain(peer.ders)
    walk = walk_chain(chain)
    leaf = chain.leaf
    remaining = days_remaining(leaf.valid_to, now or datetime.now(timezone.utc))

    logger.debug(
        "%s: %d days remaining, %d chain links, complete=%s",
        host, remaining, len(walk.links), walk.complete,
    )
    return ProbeResult(
        connection=peer.connection,
        leaf=LeafCertificate(certificate=leaf, days_remaining=remaining),
        chain=walk.links,
        chain_complete=walk.complete,
    )
