from __future__ import annotations

import argparse
import json
import logging
import math
import sys
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from . import __version__
from .errors import ProbeError
from .models import DEFAULT_PORT, DEFAULT_TIMEOUT_SECONDS, ProbeConfig, TrustPolicy
from .probe import probe

logger = logging.getLogger(__name__)


def _write_output(out_path: str | None, payload: Any) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if out_path:
        Path(out_path).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="tls-cert-probe",
        description="Probe a TLS endpoint and report its certificate chain and expiry.",
    )
    p.add_argument("url", nargs="?", help="URL or host to probe (e.g., example.com/login)")
    p.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help=f"Time budget in seconds for the whole probe (default: {DEFAULT_TIMEOUT_SECONDS:g})",
    )
    p.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"TLS port (default: {DEFAULT_PORT})")
    p.add_argument("--cafile", help="PEM bundle of trust anchors (default: system store)")
    p.add_argument("--capath", help="Directory of hashed trust anchors")
    p.add_argument("--out", "-o", help="Write JSON output to file (default: stdout)")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging on stderr")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    return p.parse_args(argv)


def _parse_url(url: str) -> tuple[str, str]:
    url = url.strip()
    if not url:
        raise ValueError("URL is required (e.g., example.com)")
    parts = urlsplit(url if url.startswith("http") else f"https://{url}")
    host = parts.hostname
    if not host:
        raise ValueError(f"no host in {url!r}")
    return host, parts.path or "/"


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    if args.version:
        print(__version__)
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.url is None:
        print("Error: URL is required (e.g., example.com)", file=sys.stderr)
        return 1
    if not (args.timeout > 0 and math.isfinite(args.timeout)):
        print("Error: --timeout must be positive", file=sys.stderr)
        return 1
    if not (1 <= args.port <= 65535):
        print("Error: port out of range", file=sys.stderr)
        return 1

    try:
        host, path = _parse_url(args.url)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    config = ProbeConfig(
        port=args.port,
        timeout_seconds=args.timeout,
        trust=TrustPolicy(cafile=args.cafile, capath=args.capath),
    )

    try:
        result = probe(host, path, config=config)
    except ProbeError as e:
        logger.warning("probe of %s failed: %s", host, e)
        _write_output(args.out, {"success": False, "url": args.url, **e.to_dict()})
        return 3

    _write_output(
        args.out,
        {
            "success": True,
            "url": args.url,
            "host": host,
            "path": path,
            "certInfo": result.to_dict(),
        },
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
