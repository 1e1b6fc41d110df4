from __future__ import annotations

import logging

from .models import ChainLink, ChainWalk, CertificateChain, RawCertificate

logger = logging.getLogger(__name__)

# Upper bound on walked links; guards against cyclic or degenerate successor data.
MAX_CHAIN_LINKS = 11


def is_self_signed(cert: RawCertificate) -> bool:
    """
    Subject and issuer names are equal.

    This is a structural comparison of name components only. No signature is
    checked, so a certificate that merely claims its own subject as issuer
    counts as self-signed.
    """
    return cert.subject == cert.issuer


def walk_chain(chain: CertificateChain) -> ChainWalk:
    """
    Follow successor links from the leaf and report the links visited and
    whether a self-signed certificate was reached.

    The walk stops at the first self-signed certificate (complete), at a
    missing successor, at an empty certificate, or after MAX_CHAIN_LINKS
    links (all incomplete).
    """
    links: list[ChainLink] = []
    complete = False
    index: int | None = 0 if len(chain) else None

    while index is not None and len(links) < MAX_CHAIN_LINKS:
        cert = chain[index]
        if cert.is_empty:
            break
        self_signed = is_self_signed(cert)
        links.append(
            ChainLink(
                subject=cert.subject,
                issuer=cert.issuer,
                valid_from=cert.valid_from,
                valid_to=cert.valid_to,
                is_self_signed=self_signed,
            )
        )
        if self_signed:
            complete = True
            break
        index = chain.successors[index]

    if index is not None and not complete and len(links) >= MAX_CHAIN_LINKS:
        logger.debug("chain walk stopped at %d links", MAX_CHAIN_LINKS)

    return ChainWalk(links=tuple(links), complete=complete)
