#!/usr/bin/env python3
"""Pull job engine statuses into a run's report records."""

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

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


async def refresh(*, run_id: str, report_id: str | None) -> int:
    orchestrator = build_orchestrator_from_settings()
    db = SessionLocal()
    try:
        if report_id:
            records = [await orchestrator.refresh_run_report(db, run_id=run_id, report_id=report_id)]
        else:
            records = await orchestrator.refresh_run_reports_for_run(db, run_id=run_id)
        print(
            json.dumps(
                {
                    "status": "refreshed",
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
    parser = argparse.ArgumentParser(description="Refresh run report statuses from the job engine.")
    parser.add_argument("--run-id", required=True, help="Run whose reports to refresh.")
    parser.add_argument("--report-id", default="", help="Only refresh this report.")
    args = parser.parse_args()
    return asyncio.run(
        refresh(
            run_id=str(args.run_id or "").strip(),
            report_id=(str(args.report_id or "").strip() or None),
        )
    )


if __name__ == "__main__":
    raise SystemExit(main())
