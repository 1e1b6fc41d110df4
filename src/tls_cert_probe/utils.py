from __future__ import annotations

from datetime import datetime, timezone


def colon_hex(digest: bytes) -> str:
    # AA:BB:CC..., the way openssl prints fingerprints
    return ":".join(f"{b:02X}" for b in digest)


def serial_hex(serial: int) -> str:
    text = f"{serial:X}"
    return text if len(text) % 2 == 0 else "0" + text


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def dt_to_utc_iso(dt: datetime) -> str:
    return as_utc(dt).replace(microsecond=0).isoformat().replace("+00:00", "Z")
