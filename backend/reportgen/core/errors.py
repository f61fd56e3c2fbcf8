"""Error taxonomy for run-report generation.

Every failure surfaced by the orchestrator is a ``RunReportError`` subclass. The
``kind`` tag names the stage that failed; ``transient`` tells callers whether a
plain retry can help (storage/engine hiccups) or the input has to be corrected
first (prohibited, parse, inputs).
"""

from __future__ import annotations

import httpx
from sqlalchemy.exc import NoResultFound, SQLAlchemyError


class RunReportError(RuntimeError):
    kind = "run_report"
    transient = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {"kind": self.kind, "transient": self.transient, "detail": self.message}


class DatabaseError(RunReportError):
    kind = "db"
    transient = True


class NotFoundError(DatabaseError):
    kind = "db_not_found"
    transient = False


class ParseError(RunReportError):
    """Malformed template document, empty cells array or malformed cell."""

    kind = "parse"


class SerializationError(RunReportError):
    kind = "json"


class StorageError(RunReportError):
    kind = "storage"
    transient = True


class LocalFileError(RunReportError):
    kind = "io"


class InputsError(RunReportError):
    kind = "inputs"


class WorkflowValidationError(RunReportError):
    kind = "workflow_validation"


class JobEngineError(RunReportError):
    kind = "job_engine"
    transient = True

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProhibitedError(RunReportError):
    """A live run report already exists for the (run, report) pair."""

    kind = "prohibited"


class UpstreamRequestError(RunReportError):
    kind = "request"
    transient = True


ERROR_KINDS: tuple[type[RunReportError], ...] = (
    DatabaseError,
    NotFoundError,
    ParseError,
    SerializationError,
    StorageError,
    LocalFileError,
    InputsError,
    WorkflowValidationError,
    JobEngineError,
    ProhibitedError,
    UpstreamRequestError,
)


def from_db_error(exc: SQLAlchemyError, *, what: str = "record") -> DatabaseError:
    if isinstance(exc, NoResultFound):
        return NotFoundError(f"No {what} found")
    return DatabaseError(f"Database error while accessing {what}: {exc}")


def from_storage_error(exc: Exception, *, location: str) -> StorageError:
    return StorageError(f"Storage operation on {location} failed: {exc}")


def from_os_error(exc: OSError) -> LocalFileError:
    return LocalFileError(f"Local file operation failed: {exc}")


def from_json_error(exc: Exception, *, what: str) -> SerializationError:
    return SerializationError(f"Failed to serialize {what}: {exc}")


def from_job_engine_http_error(exc: httpx.HTTPError) -> JobEngineError:
    if isinstance(exc, httpx.HTTPStatusError):
        body = exc.response.text[:250]
        return JobEngineError(
            f"Job engine returned HTTP {exc.response.status_code}: {body}",
            status_code=exc.response.status_code,
        )
    return JobEngineError(f"Job engine request failed: {exc}")


def from_upstream_http_error(exc: httpx.HTTPError, *, url: str) -> UpstreamRequestError:
    return UpstreamRequestError(f"Fetching {url} failed: {exc}")
