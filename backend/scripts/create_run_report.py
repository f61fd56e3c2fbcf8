#!/usr/bin/env python3
"""Create one run report: assemble the notebook, upload it and submit the job."""

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


async def create(*, run_id: str, report_id: str, created_by: str | None, delete_failed: bool) -> int:
    orchestrator = build_orchestrator_from_settings()
    db = SessionLocal()
    try:
        record = await orchestrator.create_run_report(
            db,
            run_id=run_id,
            report_id=report_id,
            created_by=created_by,
            delete_failed=delete_failed,
        )
        print(json.dumps({"status": "created", "run_report": run_report_to_dict(record)}))
        return 0
    except RunReportError as exc:
        print(json.dumps({"status": "failed", "run_id": run_id, "report_id": report_id, "error": exc.to_dict()}))
        return 1
    finally:
        db.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Create and submit a run report.")
    parser.add_argument("--run-id", required=True, help="Run to report on.")
    parser.add_argument("--report-id", required=True, help="Report definition to generate.")
    parser.add_argument("--created-by", default="", help="User credited with the run report.")
    parser.add_argument(
        "--delete-failed",
        action="store_true",
        help="Replace an existing failed run report for the same run and report.",
    )
    args = parser.parse_args()
    return asyncio.run(
        create(
            run_id=str(args.run_id or "").strip(),
            report_id=str(args.report_id or "").strip(),
            created_by=(str(args.created_by or "").strip() or None),
            delete_failed=bool(args.delete_failed),
        )
    )


if __name__ == "__main__":
    raise SystemExit(main())
