from __future__ import annotations

import argparse
import json
import logging

from .constants import DEFAULT_BLOCK_SIZE, DEFAULT_TIMEOUT_S
from .door import DoorSession, parse_door_address
from .errors import DcapError
from .transfer import TransferMetrics, download, upload

logger = logging.getLogger(__name__)


def _report(role: str, metrics: TransferMetrics, as_json: bool) -> None:
    payload = {
        "role": role,
        "bytes": metrics.bytes_transferred,
        "operations": metrics.operations,
        "seconds": metrics.duration_s,
        "mbps": metrics.throughput_mbps,
    }
    print(json.dumps(payload, indent=2) if as_json else payload)


def _door(args: argparse.Namespace) -> DoorSession:
    return DoorSession(parse_door_address(args.door), timeout=args.timeout_ms / 1000.0)


def cmd_get(args: argparse.Namespace) -> int:
    with _door(args) as door:
        with door.open(args.path, "r") as channel, open(args.out, "wb") as out:
            metrics = download(channel, out, block_size=args.block_size)
    _report("get", metrics, args.json)
    return 0


def cmd_put(args: argparse.Namespace) -> int:
    with _door(args) as door:
        with door.open(args.path, "w") as channel, open(args.file, "rb") as src:
            metrics = upload(channel, src, block_size=args.block_size)
    _report("put", metrics, args.json)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dcapio", description="Read and write files through a dcap door.")
    p.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--door", required=True, help="door address, host[:port]")
        x.add_argument("--timeout-ms", type=int, default=int(DEFAULT_TIMEOUT_S * 1000))
        x.add_argument("--block-size", type=int, default=DEFAULT_BLOCK_SIZE)
        x.add_argument("--json", action="store_true")

    get = sub.add_parser("get", help="copy a remote file to a local file")
    add_common(get)
    get.add_argument("path")
    get.add_argument("--out", required=True)
    get.set_defaults(func=cmd_get)

    put = sub.add_parser("put", help="copy a local file to a remote path")
    add_common(put)
    put.add_argument("file")
    put.add_argument("path")
    put.set_defaults(func=cmd_put)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    try:
        return int(args.func(args))
    except (DcapError, ValueError, OSError) as exc:
        logger.error("%s failed: %s", args.cmd, exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
