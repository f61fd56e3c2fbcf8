"""Assemble the notebook that is executed to produce a run report.

Cell order in the assembled notebook:

1. run data cell: ``report_run_data = {...}`` holding the run snapshot
2. control block: the template's own first cell if it is one, else the default
3. run metadata header
4. file download cell (driven by the control variables)
5. the rest of the template's cells, in order
6. footer with input and result tables

Only the run data cell is generated; the other built-in cells read
``report_run_data`` when the notebook executes.
"""

from __future__ import annotations

import logging
import pprint
import textwrap
from typing import Any

from reportgen.models.notebook import CodeCell, Document, parse_cell, parse_document, split_source_lines
from reportgen.services.control_block import is_control_block
from reportgen.services.run_data import RunSnapshot

logger = logging.getLogger(__name__)

RUN_DATA_VARIABLE = "report_run_data"


def _code_cell(code: str) -> CodeCell:
    source = split_source_lines(textwrap.dedent(code).strip("\n"))
    return parse_cell(
        {
            "cell_type": "code",
            "execution_count": None,
            "metadata": {},
            "outputs": [],
            "source": source,
        }
    )


DEFAULT_CONTROL_BLOCK_CELL = _code_cell(
    r"""
    # Control block
    report_download_results = True
    report_download_inputs = False
    """
)

RUN_METADATA_CELL = _code_cell(
    r"""
    # Run metadata
    from IPython.display import Markdown
    md_string = f"# {report_run_data['name']}\n### ID: {report_run_data['run_id']}\n"
    md_string += f"#### Status: {report_run_data['status']}\n"
    md_string += f"#### Start time: {report_run_data['created_at']}\n#### End time: {report_run_data['finished_at']}\n"
    md_string += f"#### Test job ID: {report_run_data['test_job_id']}\n"
    md_string += f"#### Eval job ID: {report_run_data['eval_job_id']}\n"
    Markdown(md_string)
    """
)

FILE_DOWNLOAD_CELL = _code_cell(
    r"""
    import os
    import subprocess

    # Local paths of downloaded files, keyed like report_run_data
    report_downloads = {}

    def _report_download_file(uri, directory):
        os.makedirs(directory, exist_ok=True)
        completed = subprocess.run(['gsutil', 'cp', uri, directory])
        if completed.returncode != 0:
            raise RuntimeError(f'gsutil exited with code {completed.returncode} while downloading {uri}')
        return os.path.join(directory, uri[uri.rfind('/') + 1:])

    def _report_download_value(value, directory):
        if isinstance(value, str) and value.startswith('gs://'):
            return _report_download_file(value, directory)
        if isinstance(value, list):
            downloaded = [_report_download_value(item, directory) for item in value]
            downloaded = [item for item in downloaded if item is not None]
            return downloaded or None
        return None

    def report_download_section(section):
        directory = os.path.join('report_downloads', section)
        report_downloads[section] = {}
        for key, value in (report_run_data[section] or {}).items():
            local_value = _report_download_value(value, directory)
            if local_value is not None:
                report_downloads[section][key] = local_value

    if report_download_results:
        report_download_section('results')
    if report_download_inputs:
        report_download_section('test_input')
        report_download_section('eval_input')
    """
)

RUN_INPUTS_AND_RESULTS_CELL = _code_cell(
    r"""
    # Run inputs and results
    from IPython.display import Markdown

    def _report_table(title, values):
        rows = [f"### {title}:", "| Name | Value |", "| :--- | :--- |"]
        for key, value in (values or {}).items():
            rows.append(f"| {str(key).replace('|', '&#124;')} | {str(value).replace('|', '&#124;')} |")
        return "\n".join(rows) + "\n"

    md_string = _report_table("Test Inputs", report_run_data['test_input'])
    md_string += _report_table("Eval Inputs", report_run_data['eval_input'])
    md_string += _report_table("Results", report_run_data['results'])
    Markdown(md_string)
    """
)


def build_run_data_cell(run: RunSnapshot) -> CodeCell:
    """Code cell binding ``report_run_data`` to the run snapshot as a Python literal."""
    literal = pprint.pformat(run.to_report_data(), indent=1, width=100, sort_dicts=False)
    return parse_cell(
        {
            "cell_type": "code",
            "execution_count": None,
            "metadata": {},
            "outputs": [],
            "source": split_source_lines(f"{RUN_DATA_VARIABLE} = {literal}"),
        }
    )


def _builtin(cell: CodeCell) -> CodeCell:
    return cell.model_copy(deep=True)


def assemble(template_document: Any, run: RunSnapshot) -> Document:
    """Build the executable report notebook from a template notebook and a run.

    ``template_document`` may be a ``Document`` or its raw JSON form; malformed
    templates raise ``ParseError``. Notebook-level metadata is kept unchanged.
    """
    document = parse_document(template_document)
    template_cells = list(document.cells)

    first_cell = template_cells[0]
    has_user_control_block = is_control_block(first_cell)

    cells = [build_run_data_cell(run)]
    if has_user_control_block:
        cells.append(first_cell)
        template_cells = template_cells[1:]
    else:
        cells.append(_builtin(DEFAULT_CONTROL_BLOCK_CELL))
    cells.append(_builtin(RUN_METADATA_CELL))
    cells.append(_builtin(FILE_DOWNLOAD_CELL))
    cells.extend(template_cells)
    cells.append(_builtin(RUN_INPUTS_AND_RESULTS_CELL))

    logger.debug(
        "Assembled report notebook run_id=%s template_cells=%s user_control_block=%s",
        run.run_id,
        len(document.cells),
        has_user_control_block,
    )
    return document.model_copy(update={"cells": cells})
