from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

_PROJECT_ROOT = Path(__file__).resolve().parents[1]  # repo root (parent of sharewatch/)
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from sharewatch.config.bse_params import load_config
from sharewatch.data.bse_client import BseClient
from sharewatch.reporting.artifacts import dumps_payload, write_json, write_records

logger = logging.getLogger(__name__)

TABULAR_COMMANDS = {"equity-list", "bhavcopy"}


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sharewatch", description="Fetch BSE market data.")
    parser.add_argument("--config", type=str, default="", help="JSON file with BseConfig overrides")
    parser.add_argument("--timeout", type=float, default=None, help="Network timeout in seconds")
    parser.add_argument("--out", type=str, default="", help="Write result to .csv/.parquet (tabular) or .json")
    parser.add_argument("--log-level", type=str, default="INFO")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("equity-list", help="All listed equity securities")
    sub.add_parser("indices", help="Live index values")
    quote = sub.add_parser("quote", help="Live quote for a ScripCode")
    quote.add_argument("--scrip-code", type=str, required=True)
    peers = sub.add_parser("peers", help="Quote with peer comparison for a ScripCode")
    peers.add_argument("--scrip-code", type=str, required=True)
    bhav = sub.add_parser("bhavcopy", help="End-of-day bhavcopy for a date")
    bhav.add_argument("--date", type=str, required=True, help="YYYY-MM-DD")
    return parser


def run_command(client: BseClient, args: argparse.Namespace) -> Any:
    cmd = args.command
    if cmd == "equity-list":
        return client.equity_list(timeout=args.timeout)
    if cmd == "indices":
        return client.indices(timeout=args.timeout)
    if cmd == "quote":
        return client.quote(args.scrip_code, timeout=args.timeout)
    if cmd == "peers":
        return client.quote_with_comparison(args.scrip_code, timeout=args.timeout)
    if cmd == "bhavcopy":
        return client.bhavcopy(args.date, timeout=args.timeout)
    raise ValueError(f"Unknown command: {cmd!r}")


def _emit(result: Any, command: str, out: str) -> None:
    if not out.strip():
        print(dumps_payload(result))
        return

    out_path = Path(out)
    if command in TABULAR_COMMANDS and out_path.suffix.lower() != ".json":
        write_records(result, out_path)
    else:
        write_json(result, out_path)
    print(f"PASS: wrote {command} to {out_path}")


def main(argv: Optional[Sequence[str]] = None, client: Optional[BseClient] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        cfg = load_config(args.config.strip() or None)
        client = client or BseClient(cfg)
        with client:
            result = run_command(client, args)
        _emit(result, args.command, args.out)
        return 0

    except Exception as e:
        logger.exception("%s failed: %s", args.command, str(e))
        print(f"FAIL: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
