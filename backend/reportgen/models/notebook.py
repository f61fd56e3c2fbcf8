"""Typed Jupyter notebook documents.

Report templates arrive as generic JSON. They are validated into these models
once, at the boundary (``parse_document``); everything downstream works on
typed cells. Keys the models do not name (cell ids, attachments, kernel
metadata) are kept as extras so that cells which are not rewritten dump back
exactly as authored.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, TypeAdapter, ValidationError

from reportgen.core.errors import ParseError, SerializationError, from_json_error


class _CellBase(BaseModel):
    model_config = ConfigDict(extra="allow")

    metadata: dict[str, Any] = Field(default_factory=dict)
    # Each line keeps its trailing "\n". nbformat also allows one joined string;
    # both forms are kept as authored. A missing source is left missing.
    source: list[StrictStr] | StrictStr | None = None


class CodeCell(_CellBase):
    cell_type: Literal["code"] = "code"
    execution_count: int | None = None
    outputs: list[Any] = Field(default_factory=list)


class MarkdownCell(_CellBase):
    cell_type: Literal["markdown"] = "markdown"


class RawCell(_CellBase):
    cell_type: Literal["raw"] = "raw"


Cell = Annotated[Union[CodeCell, MarkdownCell, RawCell], Field(discriminator="cell_type")]


class Document(BaseModel):
    model_config = ConfigDict(extra="allow")

    cells: list[Cell] = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)
    nbformat: int = 4
    nbformat_minor: int = 5


_CELL_ADAPTER: TypeAdapter = TypeAdapter(Cell)


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def parse_cell(raw: Any) -> CodeCell | MarkdownCell | RawCell:
    """Validate one generic cell object."""
    if isinstance(raw, _CellBase):
        return raw
    if not isinstance(raw, Mapping):
        raise ParseError("Failed to parse element in cells array of notebook as object")
    source = raw.get("source")
    if "source" in raw and not isinstance(source, (list, str)):
        raise ParseError("Failed to parse source value in cell as an array or string")
    if isinstance(source, list) and any(not isinstance(line, str) for line in source):
        raise ParseError("Failed to parse contents of cell's source array as strings")
    try:
        return _CELL_ADAPTER.validate_python(dict(raw))
    except ValidationError as exc:
        raise ParseError(f"Malformed notebook cell ({_describe_validation_error(exc)})") from exc


def parse_document(raw: Any) -> Document:
    """Validate a generic notebook object into a ``Document``.

    Raises ``ParseError`` if the notebook is not an object, has no ``cells``
    array, has an empty one, or holds a malformed cell.
    """
    if isinstance(raw, Document):
        return raw
    if not isinstance(raw, Mapping):
        raise ParseError("Failed to parse notebook as JSON object")
    if "cells" not in raw:
        raise ParseError("Failed to get cells array from notebook")
    raw_cells = raw["cells"]
    if not isinstance(raw_cells, list):
        raise ParseError("Cells value in notebook not formatted as array")
    if not raw_cells:
        raise ParseError('Notebook "cells" array is empty')
    cells = [parse_cell(raw_cell) for raw_cell in raw_cells]
    payload = {key: value for key, value in raw.items() if key != "cells"}
    try:
        return Document.model_validate({**payload, "cells": cells})
    except ValidationError as exc:
        raise ParseError(f"Malformed notebook ({_describe_validation_error(exc)})") from exc


def dump_cell(cell: CodeCell | MarkdownCell | RawCell) -> dict[str, Any]:
    return cell.model_dump(mode="json", exclude_unset=True)


def dump_document(document: Document) -> dict[str, Any]:
    """Plain-JSON form holding only the keys that were authored or assigned."""
    return document.model_dump(mode="json", exclude_unset=True)


def serialize_document(document: Document) -> bytes:
    try:
        text = json.dumps(dump_document(document), indent=1, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise from_json_error(exc, what="notebook") from exc
    return (text + "\n").encode("utf-8")


def deserialize_document(data: bytes | str) -> Document:
    try:
        raw = json.loads(data)
    except ValueError as exc:
        raise SerializationError(f"Notebook is not valid JSON: {exc}") from exc
    return parse_document(raw)


def split_source_lines(text: str) -> list[str]:
    """Split code into notebook source lines, each keeping its trailing newline."""
    return text.splitlines(keepends=True)
