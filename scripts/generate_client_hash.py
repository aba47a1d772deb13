#!/usr/bin/env python3
"""
generate_client_hash.py - Compute the integrity hash the sync API expects for an activity event.

Usage examples:
  python scripts/generate_client_hash.py --child-id kid-1 --package com.khan.academy \
      --duration 1800 --start 1760000000000 --end 1760001800000
  python scripts/generate_client_hash.py --env-file /path/to/.env --child-id kid-1 ... --json

Flags:
  --env-file PATH
    Load environment variables from PATH before reading ANTICHEAT_HASH_SECRET.
  --secret VALUE
    Use VALUE instead of ANTICHEAT_HASH_SECRET.
  --json
    Print a ready-to-send event object instead of the bare hash.
"""
import argparse
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

sys.path.append(str(Path(__file__).resolve().parents[1] / "backend"))

from edutime.modules.sync.services.validation_service import ComputeEventHash  # noqa: E402


def _ParseDuration(raw: str) -> int | float:
    value = float(raw)
    return int(value) if value.is_integer() else value


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate an activity event integrity hash")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--secret", help="Hash secret (defaults to ANTICHEAT_HASH_SECRET)")
    parser.add_argument("--child-id", required=True)
    parser.add_argument("--package", required=True, help="App package name")
    parser.add_argument("--duration", required=True, help="Claimed duration in seconds")
    parser.add_argument("--start", required=True, type=int, help="Start timestamp (epoch ms)")
    parser.add_argument("--end", required=True, type=int, help="End timestamp (epoch ms)")
    parser.add_argument("--type", default="study", choices=["study", "leisure", "break"])
    parser.add_argument("--json", action="store_true", help="Print a full event object")
    args = parser.parse_args()

    if args.env_file:
        load_dotenv(args.env_file)
    secret = args.secret or os.getenv("ANTICHEAT_HASH_SECRET", "").strip()
    if not secret:
        parser.error("ANTICHEAT_HASH_SECRET is not set; pass --secret or --env-file")

    duration = _ParseDuration(args.duration)
    digest = ComputeEventHash(secret, args.child_id, args.package, duration, args.start, args.end)
    if not args.json:
        print(digest)
        return 0

    event = {
        "packageName": args.package,
        "durationSeconds": duration,
        "clientHash": digest,
        "type": args.type,
        "startTimestamp": args.start,
        "endTimestamp": args.end,
    }
    print(json.dumps(event, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
