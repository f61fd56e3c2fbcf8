#!/usr/bin/env python3
"""Update a report definition from notebook and config JSON files."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from reportgen.core.config import settings
from reportgen.core.database import SessionLocal
from reportgen.core.errors import RunReportError, SerializationError, from_os_error
from reportgen.services.report_definitions import update_report

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def _read_json(path: str | None, *, what: str):
    if not path:
        return None
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise from_os_error(exc) from exc
    except ValueError as exc:
        raise SerializationError(f"{what} at {path} is not valid JSON: {exc}") from exc


def main() -> int:
    parser = argparse.ArgumentParser(description="Update a report definition.")
    parser.add_argument("--report-id", required=True, help="Report to update.")
    parser.add_argument("--name", default="", help="New report name.")
    parser.add_argument("--description", default=None, help="New report description.")
    parser.add_argument("--notebook-file", default="", help="Path to the new template notebook (.ipynb).")
    parser.add_argument("--config-file", default="", help="Path to the new runtime config JSON object.")
    args = parser.parse_args()

    report_id = str(args.report_id or "").strip()
    db = SessionLocal()
    try:
        report = update_report(
            db,
            report_id,
            name=(str(args.name or "").strip() or None),
            description=args.description,
            notebook=_read_json(args.notebook_file, what="notebook file"),
            config=_read_json(args.config_file, what="config file"),
        )
        print(json.dumps({"status": "updated", "report_id": report.report_id, "name": report.name}))
        return 0
    except RunReportError as exc:
        db.rollback()
        print(json.dumps({"status": "failed", "report_id": report_id, "error": exc.to_dict()}))
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
