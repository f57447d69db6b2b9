#!/usr/bin/env python3
"""Recompute every room's availability counter from the booking ledger.

Run after a crash or whenever counters are suspected to have drifted.
"""
import argparse

from roomlink.database import SessionLocal
from roomlink.registry import reconcile_all


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--quiet", action="store_true", help="only print the summary line")
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        results = reconcile_all(db)
    finally:
        db.close()

    drifted = [result for result in results if result.drifted]
    if not args.quiet:
        for result in drifted:
            print(f"room {result.room_id}: {result.previous} -> {result.current}")
    print(f"{len(results)} rooms checked, {len(drifted)} corrected.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
