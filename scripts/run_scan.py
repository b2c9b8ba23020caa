#!/usr/bin/env python3
"""Scan a project's repository from the command line and print progress lines.

Usage:
    python scripts/run_scan.py <project_id> <owner_id> [--token <github_token>]

The GitHub token may also come from GITHUB_TOKEN. Leaves a PENDING diff
envelope for review. Exits 0 when the scan ends with ``done``, 1 otherwise.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from codetrack.db.session import SessionLocal
from codetrack.services.scan_channel import ScanDone
from codetrack.services.scan_orchestrator import ScanOrchestrator


async def run(project_id: int, owner_id: int, token: str | None) -> int:
    db = SessionLocal()
    try:
        channel = ScanOrchestrator(db).scan(project_id, owner_id, token)
        async for line in channel.lines():
            print(line, end="", flush=True)
        outcome = channel.outcome
        if isinstance(outcome, ScanDone):
            print(
                f"snapshot_id={outcome.snapshot_id} envelope_id={outcome.envelope_id} "
                f"superseded={outcome.superseded} counts={outcome.counts}"
            )
            return 0
        return 1
    finally:
        db.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Scan a CodeTrack project")
    parser.add_argument("project_id", type=int)
    parser.add_argument("owner_id", type=int)
    parser.add_argument("--token", default=os.getenv("GITHUB_TOKEN"), help="GitHub access token")
    args = parser.parse_args()
    return asyncio.run(run(args.project_id, args.owner_id, args.token))


if __name__ == "__main__":
    sys.exit(main())
