"""Object storage for assembled report notebooks."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from reportgen.core.config import settings
from reportgen.core.errors import StorageError, from_storage_error

logger = logging.getLogger(__name__)

GCS_URI_PREFIX = "gs://"
REPORT_TEMPLATE_FILE_NAME = "report_template.ipynb"


class ReportStorage(Protocol):
    def upload(self, data: bytes, destination_path: str) -> str: ...

    def download(self, location: str) -> bytes: ...


def report_template_path(run_name: str, report_name: str) -> str:
    """Deterministic object path for a run's assembled report notebook."""
    return f"{run_name}/{report_name}/{REPORT_TEMPLATE_FILE_NAME}"


def split_gs_uri(uri: str) -> tuple[str, str]:
    if not uri.startswith(GCS_URI_PREFIX):
        raise StorageError(f"Not a gs:// location: {uri}")
    bucket, _, key = uri[len(GCS_URI_PREFIX):].partition("/")
    if not bucket:
        raise StorageError(f"Missing bucket in location: {uri}")
    return bucket, key.strip("/")


class GcsReportStorage:
    """Google Cloud Storage via its S3-interoperability endpoint (HMAC keys)."""

    def __init__(
        self,
        location: str,
        *,
        endpoint_url: str = "https://storage.googleapis.com",
        access_key_id: str = "",
        secret_access_key: str = "",
        client=None,
    ) -> None:
        self._bucket, self._prefix = split_gs_uri(location)
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key_id or None,
                aws_secret_access_key=secret_access_key or None,
                region_name="auto",
            )
        self._s3 = client

    def _key(self, destination_path: str) -> str:
        path = destination_path.strip("/")
        return f"{self._prefix}/{path}" if self._prefix else path

    def upload(self, data: bytes, destination_path: str) -> str:
        key = self._key(destination_path)
        location = f"{GCS_URI_PREFIX}{self._bucket}/{key}"
        try:
            self._s3.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType="application/x-ipynb+json",
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Report notebook upload failed location=%s error=%s", location, exc)
            raise from_storage_error(exc, location=location) from exc
        logger.debug("Uploaded report notebook location=%s bytes=%d", location, len(data))
        return location

    def download(self, location: str) -> bytes:
        bucket, key = split_gs_uri(location)
        try:
            response = self._s3.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise from_storage_error(exc, location=location) from exc


class LocalReportStorage:
    """Stores notebooks below a local directory and hands out file:// URIs."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser().resolve()

    def upload(self, data: bytes, destination_path: str) -> str:
        target = (self.root / destination_path.strip("/")).resolve()
        try:
            target.relative_to(self.root)
        except ValueError:
            raise StorageError(f"Destination escapes storage root: {destination_path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise from_storage_error(exc, location=str(target)) from exc
        return target.as_uri()

    def download(self, location: str) -> bytes:
        parsed = urlparse(location)
        path = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(location)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise from_storage_error(exc, location=location) from exc


def build_report_storage_from_settings() -> ReportStorage:
    backend = str(settings.REPORT_STORAGE_BACKEND or "gcs").strip().lower()
    if backend == "local":
        return LocalReportStorage(settings.REPORT_LOCAL_STORAGE_DIR)
    if backend == "gcs":
        return GcsReportStorage(
            settings.REPORT_LOCATION,
            endpoint_url=settings.GCS_INTEROP_ENDPOINT,
            access_key_id=settings.GCS_HMAC_ACCESS_KEY_ID,
            secret_access_key=settings.GCS_HMAC_SECRET,
        )
    raise ValueError(f"Unsupported REPORT_STORAGE_BACKEND: {settings.REPORT_STORAGE_BACKEND}")
