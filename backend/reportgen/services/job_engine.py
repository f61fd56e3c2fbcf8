"""Job engine client used to execute report notebooks.

The engine is Cromwell: a workflow definition plus an inputs JSON are
submitted as multipart form data and the engine answers with a workflow id.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, Protocol

import httpx

from reportgen.core.config import settings
from reportgen.core.errors import JobEngineError, from_job_engine_http_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobSubmission:
    job_id: str
    status: str


@dataclass(frozen=True)
class JobStatus:
    job_id: str
    status: str
    outputs: dict[str, Any] | None = None


class JobEngine(Protocol):
    async def submit(self, workflow_source: str, inputs: dict[str, Any]) -> JobSubmission: ...

    async def get_status(self, job_id: str) -> JobStatus: ...


class CromwellJobEngine:
    """Async Cromwell REST client."""

    def __init__(
        self,
        address: str,
        *,
        api_version: str = "v1",
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not address:
            raise ValueError("address is required")
        self.address = address.rstrip("/")
        self.api_version = api_version
        self.timeout_s = timeout_s
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.address,
            timeout=httpx.Timeout(self.timeout_s),
            transport=self._transport,
        )

    def _workflows_path(self, suffix: str = "") -> str:
        return f"/api/workflows/{self.api_version}{suffix}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            error = from_job_engine_http_error(exc)
            logger.error("Job engine request failed method=%s path=%s error=%s", method, path, error)
            raise error from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise JobEngineError(f"Job engine returned a non-JSON body for {path}") from exc
        if not isinstance(payload, dict):
            raise JobEngineError(f"Job engine returned an unexpected body for {path}")
        return payload

    async def submit(self, workflow_source: str, inputs: dict[str, Any]) -> JobSubmission:
        files = {
            "workflowSource": ("jupyter_report_generator.wdl", workflow_source.encode("utf-8"), "application/octet-stream"),
            "workflowInputs": ("inputs.json", json.dumps(inputs).encode("utf-8"), "application/json"),
        }
        payload = await self._request("POST", self._workflows_path(), files=files)
        job_id = str(payload.get("id") or "").strip()
        if not job_id:
            raise JobEngineError("Job engine accepted the submission but returned no job id")
        status = str(payload.get("status") or "Submitted")
        logger.info("Submitted report job job_id=%s status=%s", job_id, status)
        return JobSubmission(job_id=job_id, status=status)

    async def get_status(self, job_id: str) -> JobStatus:
        payload = await self._request("GET", self._workflows_path(f"/{job_id}/status"))
        status = str(payload.get("status") or "").strip()
        if not status:
            raise JobEngineError(f"Job engine returned no status for job {job_id}")
        outputs = None
        if status == "Succeeded":
            outputs_payload = await self._request("GET", self._workflows_path(f"/{job_id}/outputs"))
            raw_outputs = outputs_payload.get("outputs")
            outputs = dict(raw_outputs) if isinstance(raw_outputs, dict) else {}
        return JobStatus(job_id=job_id, status=status, outputs=outputs)


def build_job_engine_from_settings() -> CromwellJobEngine:
    return CromwellJobEngine(
        settings.JOB_ENGINE_ADDRESS,
        api_version=settings.JOB_ENGINE_API_VERSION,
        timeout_s=float(settings.JOB_ENGINE_TIMEOUT_SECONDS),
    )
