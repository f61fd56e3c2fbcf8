"""Inputs for the report generator workflow."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from reportgen.core.errors import InputsError, ParseError

# Workflow name declared in resources/jupyter_report_generator.wdl.
GENERATOR_WORKFLOW_NAME = "generate_report_file_workflow"

# Optional runtime attributes a report config may pass to the generator workflow.
GENERATOR_WORKFLOW_RUNTIME_ATTRS = (
    "cpu",
    "memory",
    "disks",
    "maxRetries",
    "continueOnReturnCode",
    "failOnStdErr",
    "preemptible",
    "bootDiskSizeGb",
    "docker",
)

NOTEBOOK_TEMPLATE_INPUT = f"{GENERATOR_WORKFLOW_NAME}.notebook_template"
DOCKER_INPUT = f"{GENERATOR_WORKFLOW_NAME}.docker"


def build_inputs(
    template_location: str,
    job_image_location: str,
    config: Any = None,
    *,
    namespace_runtime_attrs: bool = False,
) -> dict[str, Any]:
    """Flat input map for the generator workflow.

    Always holds the notebook location and the image location. Allow-listed
    runtime attributes present in ``config`` are copied unchanged; every other
    config key is dropped. Attribute keys stay bare unless
    ``namespace_runtime_attrs`` is set.
    """
    if not template_location:
        raise InputsError("Report template location is required")
    if not job_image_location:
        raise InputsError("Report job image location is required")
    inputs: dict[str, Any] = {
        NOTEBOOK_TEMPLATE_INPUT: template_location,
        DOCKER_INPUT: job_image_location,
    }
    if config is None:
        return inputs
    if not isinstance(config, Mapping):
        raise ParseError("Failed to parse report config as object")

    for attribute in GENERATOR_WORKFLOW_RUNTIME_ATTRS:
        if attribute not in config:
            continue
        key = f"{GENERATOR_WORKFLOW_NAME}.{attribute}" if namespace_runtime_attrs else attribute
        inputs[key] = config[attribute]
    return inputs
