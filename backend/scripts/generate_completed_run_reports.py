#!/usr/bin/env python3
"""Create every report mapped to a finished run's template.

Reports are submitted one after another; the first failure stops the pass and
reports submitted before it are kept.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from reportgen.core.config import settings
from reportgen.core.database import SessionLocal
from reportgen.core.errors import RunReportError
from reportgen.services.report_orchestrator import build_orchestrator_from_settings, run_report_to_dict
from reportgen.services.run_data import load_run_snapshot

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


async def generate(run_id: str) -> int:
    orchestrator = build_orchestrator_from_settings()
    db = SessionLocal()
    try:
        run = load_run_snapshot(db, run_id)
        records = await orchestrator.create_run_reports_for_completed_run(db, run)
        print(
            json.dumps(
                {
                    "status": "created",
                    "run_id": run_id,
                    "run_reports": [run_report_to_dict(record) for record in records],
                }
            )
        )
        return 0
    except RunReportError as exc:
        print(json.dumps({"status": "failed", "run_id": run_id, "error": exc.to_dict()}))
        return 1
    finally:
        db.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Create run reports for a finished run.")
    parser.add_argument("--run-id", required=True, help="Finished run to report on.")
    args = parser.parse_args()
    return asyncio.run(generate(str(args.run_id or "").strip()))


if __name__ == "__main__":
    raise SystemExit(main())
