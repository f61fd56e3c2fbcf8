"""Database models."""
from reportgen.models.models import (
    Report,
    Run,
    RunReport,
    RunResult,
    Template,
    TemplateReport,
    Test,
)

__all__ = [
    "Report",
    "Run",
    "RunReport",
    "RunResult",
    "Template",
    "TemplateReport",
    "Test",
]
