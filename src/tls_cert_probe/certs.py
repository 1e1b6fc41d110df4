from __future__ import annotations

import logging

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from .chain import is_self_signed
from .models import CertificateChain, NameComponents, RawCertificate
from .utils import as_utc, colon_hex, serial_hex

logger = logging.getLogger(__name__)


def _name_components(name: x509.Name) -> NameComponents:
    out: NameComponents = {}
    for attr in name:
        key = attr.rfc4514_attribute_name
        value = attr.value if isinstance(attr.value, str) else attr.value.hex()
        if key not in out:
            out[key] = value
            continue
        existing = out[key]
        if isinstance(existing, list):
            existing.append(value)
        else:
            out[key] = [existing, value]
    return out


def _get_san_dns(cert: x509.Certificate) -> list[str]:
    try:
        ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    return list(ext.value.get_values_for_type(x509.DNSName))


def load_raw_certificate(der: bytes) -> RawCertificate:
    c = x509.load_der_x509_certificate(der)
    return RawCertificate(
        subject=_name_components(c.subject),
        issuer=_name_components(c.issuer),
        valid_from=as_utc(c.not_valid_before_utc),
        valid_to=as_utc(c.not_valid_after_utc),
        serial_number=serial_hex(c.serial_number),
        fingerprint=colon_hex(c.fingerprint(hashes.SHA1())),
        fingerprint256=colon_hex(c.fingerprint(hashes.SHA256())),
        subject_alt_names=_get_san_dns(c),
    )


def link_successors(certs: list[RawCertificate]) -> tuple[int | None, ...]:
    """
    For each certificate, the index of a presented certificate whose subject
    matches its issuer. Later entries are preferred (servers send leaf first);
    self-signed certificates have no successor.
    """
    successors: list[int | None] = []
    for i, cert in enumerate(certs):
        found: int | None = None
        if not is_self_signed(cert):
            order = list(range(i + 1, len(certs))) + list(range(0, i))
            for j in order:
                if certs[j].subject == cert.issuer:
                    found = j
                    break
        successors.append(found)
    return tuple(successors)


def build_chain(ders: list[bytes]) -> CertificateChain:
    """Decode DER certificates (leaf first) into a linked chain."""
    certs = [load_raw_certificate(der) for der in ders]
    successors = link_successors(certs)
    logger.debug("decoded %d presented certificates, successors=%s", len(certs), successors)
    return CertificateChain(certificates=tuple(certs), successors=successors)
