"""Control-block detection for report notebooks.

A control block is a code cell whose only job is to set the report control
variables, e.g.::

    # Control block
    report_download_results = True
    report_download_inputs = False
"""

from __future__ import annotations

from typing import Any

from reportgen.core.errors import ParseError
from reportgen.models.notebook import CodeCell, parse_cell

CONTROL_VARIABLES = (
    "report_download_results",
    "report_download_inputs",
)


def is_control_block(cell: Any) -> bool:
    """Return True if ``cell`` sets one of the control variables before any other code.

    Accepts a typed cell or a raw cell object (validated first, so a malformed
    cell raises ``ParseError``). A source given as one joined string is not a
    line sequence and raises ``ParseError`` too. Cells without a source, and
    markdown or raw cells, are never control blocks.

    Only unindented ``#`` lines count as comments; an indented one is code.
    """
    cell = parse_cell(cell)
    if not isinstance(cell, CodeCell) or cell.source is None:
        return False
    if isinstance(cell.source, str):
        raise ParseError("Failed to parse source value in cell as an array")

    for line in cell.source:
        if line.startswith(CONTROL_VARIABLES):
            return True
        if line.strip() and not line.startswith("#"):
            # Real code before any assignment: not a control block.
            return False
    return False
