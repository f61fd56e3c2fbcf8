from __future__ import annotations

import pytest

from reportgen.core.config import Settings, settings
from reportgen.services.job_engine import CromwellJobEngine
from reportgen.services.report_orchestrator import build_orchestrator_from_settings
from reportgen.services.storage import GcsReportStorage, LocalReportStorage, build_report_storage_from_settings


def test_empty_env_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("JOB_ENGINE_TIMEOUT_SECONDS", "")
    monkeypatch.setenv("REPORT_NAMESPACE_RUNTIME_ATTRS", "true")

    loaded = Settings(_env_file=None)

    assert loaded.JOB_ENGINE_TIMEOUT_SECONDS == 30.0
    assert loaded.REPORT_NAMESPACE_RUNTIME_ATTRS is True
    assert loaded.REPORT_GENERATOR_WDL_URL == ""


def test_orchestrator_is_wired_from_settings(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "REPORT_STORAGE_BACKEND", "local")
    monkeypatch.setattr(settings, "REPORT_LOCAL_STORAGE_DIR", str(tmp_path))
    monkeypatch.setattr(settings, "REPORT_DOCKER_LOCATION", "registry.example.org/report:2")
    monkeypatch.setattr(settings, "JOB_ENGINE_ADDRESS", "http://cromwell.internal:8000")
    monkeypatch.setattr(settings, "REPORT_NAMESPACE_RUNTIME_ATTRS", True)

    orchestrator = build_orchestrator_from_settings()

    assert isinstance(orchestrator.storage, LocalReportStorage)
    assert orchestrator.storage.root == tmp_path.resolve()
    assert isinstance(orchestrator.job_engine, CromwellJobEngine)
    assert orchestrator.job_engine.address == "http://cromwell.internal:8000"
    assert orchestrator.docker_location == "registry.example.org/report:2"
    assert orchestrator.workflow_url is None
    assert orchestrator.namespace_runtime_attrs is True


def test_gcs_storage_is_the_default_backend(monkeypatch):
    monkeypatch.setattr(settings, "REPORT_STORAGE_BACKEND", "gcs")
    monkeypatch.setattr(settings, "REPORT_LOCATION", "gs://team-reports/generated")
    assert isinstance(build_report_storage_from_settings(), GcsReportStorage)


def test_unknown_storage_backend_is_rejected(monkeypatch):
    monkeypatch.setattr(settings, "REPORT_STORAGE_BACKEND", "ftp")
    with pytest.raises(ValueError):
        build_report_storage_from_settings()
