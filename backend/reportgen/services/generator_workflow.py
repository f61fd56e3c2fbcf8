"""Loading the report generator workflow definition."""

from __future__ import annotations

from importlib import resources
import logging
import re

import httpx

from reportgen.core.errors import LocalFileError, WorkflowValidationError, from_upstream_http_error
from reportgen.services.input_map import GENERATOR_WORKFLOW_NAME

logger = logging.getLogger(__name__)

PACKAGED_WORKFLOW_FILE = "jupyter_report_generator.wdl"

_WORKFLOW_DECLARATION = re.compile(rf"^\s*workflow\s+{re.escape(GENERATOR_WORKFLOW_NAME)}\s*\{{", re.MULTILINE)


def validate_generator_workflow(workflow_source: str) -> str:
    """Check that the definition declares the workflow the input keys are namespaced under."""
    if not workflow_source.strip():
        raise WorkflowValidationError("Report generator workflow definition is empty")
    if not _WORKFLOW_DECLARATION.search(workflow_source):
        raise WorkflowValidationError(
            f"Report generator workflow must declare `workflow {GENERATOR_WORKFLOW_NAME}`"
        )
    return workflow_source


def load_packaged_generator_workflow() -> str:
    try:
        source = resources.files("reportgen.resources").joinpath(PACKAGED_WORKFLOW_FILE).read_text(encoding="utf-8")
    except OSError as exc:
        raise LocalFileError(f"Failed to read packaged generator workflow: {exc}") from exc
    return validate_generator_workflow(source)


async def fetch_generator_workflow(url: str, *, timeout_s: float = 10.0, transport=None) -> str:
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(timeout_s), transport=transport) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        raise from_upstream_http_error(exc, url=url) from exc
    logger.info("Fetched report generator workflow url=%s bytes=%s", url, len(response.content))
    return validate_generator_workflow(response.text)


async def resolve_generator_workflow(url: str | None = None) -> str:
    if url:
        return await fetch_generator_workflow(url)
    return load_packaged_generator_workflow()
