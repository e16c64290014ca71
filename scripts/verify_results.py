"""Audit exported raffle results by recomputing them from their own inputs."""

from __future__ import annotations

import argparse
import json
import logging

from clubraffle.drawing import audit_result


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("paths", nargs="+", help="result JSON files to audit")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s [%(name)s] %(message)s")

    failures = 0
    for path in args.paths:
        with open(path, encoding="utf-8") as fh:
            record = json.load(fh)
        # records exported with RaffleDrawResult.to_json() wrap the results
        if isinstance(record, dict) and "results" in record:
            record = record["results"]
        if isinstance(record, dict) and (record.get("manual") or record.get("no_participants")):
            print(f"{path}: SKIPPED (no random drawing to reproduce)")
            continue
        if audit_result(record):
            print(f"{path}: OK")
        else:
            failures += 1
            print(f"{path}: FAILED")
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
