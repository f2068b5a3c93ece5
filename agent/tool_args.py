"""Typed argument models for every tool, parsed once at the dispatch boundary.

The model hands us a JSON string. ``parse_tool_args`` turns it into the
tool's pydantic model, or into the tool's documented fallback when the
string is not JSON or does not match the schema. Handlers only ever see
validated models (or ``None`` for tools that have no sensible fallback).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from data_ops.cell_refs import parse_cell

from .errors import CellReferenceError
from .logging import tagged
from .models import DEFAULT_SELECTION_RANGE

logger = logging.getLogger("sheetpilot")


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _check_cell(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        return parse_cell(value).a1
    except CellReferenceError as exc:
        raise ValueError(str(exc)) from exc


# ---- Selection ----

class DataSelectionArgs(_ToolArgs):
    selectionType: Optional[Literal["range", "column", "row", "table", "search"]] = None
    range: Optional[str] = None
    column: Optional[str] = None
    row: Optional[int] = Field(default=None, ge=1)
    tableStartCell: Optional[str] = None
    hasHeaders: bool = True
    searchTerm: Optional[str] = None

    @field_validator("row", mode="before")
    @classmethod
    def _row_as_int(cls, v):
        # JSON "number" may arrive as 3.0
        if isinstance(v, float) and v.is_integer():
            return int(v)
        return v


class SelectDataArgs(_ToolArgs):
    analysisType: Literal["statistical", "trend", "summary", "forecast", "comparison", "custom"] = "custom"
    dataSelection: Optional[DataSelectionArgs] = None
    explanation: str = ""


class StructureArgs(_ToolArgs):
    scopeNeeded: Literal["full", "minimal", "auto"]
    explanation: str = ""


# ---- Cells ----

class CellUpdateArgs(_ToolArgs):
    target: str
    formula: str
    sheetName: Optional[str] = None

    @field_validator("formula", mode="before")
    @classmethod
    def _formula_as_text(cls, v):
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("target")
    @classmethod
    def _target_is_cell(cls, v: str) -> str:
        return _check_cell(v)


class SetCellsArgs(_ToolArgs):
    cellUpdates: list[CellUpdateArgs]


# ---- Charts ----

ChartValue = Union[str, int, float, None]


class ChartArgs(_ToolArgs):
    type: Literal["line", "bar", "pie", "scatter"]
    title: str = Field(..., min_length=1)
    data: list[list[ChartValue]]
    sheetName: Optional[str] = None

    @field_validator("data")
    @classmethod
    def _data_has_header_and_rows(cls, v: list[list[Any]]) -> list[list[Any]]:
        if not v or not v[0]:
            raise ValueError("chart data must be a non-empty 2D array")
        if not all(isinstance(h, str) for h in v[0]):
            raise ValueError("first row of chart data must contain headers")
        if len(v) < 2:
            raise ValueError("chart data needs at least one data row below the headers")
        return v


# ---- Code execution ----

class ExecuteCodeArgs(_ToolArgs):
    analysis_goal: str
    suggested_code: str = Field(..., min_length=1)
    start_cell: str
    sheetName: Optional[str] = None

    @field_validator("start_cell")
    @classmethod
    def _start_is_cell(cls, v: str) -> str:
        return _check_cell(v)


# ---- Documents ----

class DocumentArgs(_ToolArgs):
    operation: Literal["extract_data", "extract_text", "extract_table", "analyze_receipt", "analyze_invoice"]
    start_cell: str = "A1"
    target_sheet: Optional[str] = None

    @field_validator("start_cell")
    @classmethod
    def _start_is_cell(cls, v: str) -> str:
        return _check_cell(v)


# ---- Sheet management ----

class SheetNameArgs(_ToolArgs):
    sheetName: Optional[str] = None


class RenameSheetArgs(_ToolArgs):
    currentName: str = Field(..., min_length=1)
    newName: str = Field(..., min_length=1)


class EmptyArgs(_ToolArgs):
    pass


# ---------------------------------------------------------------------------
# Registry of models and fallbacks
# ---------------------------------------------------------------------------

ARG_MODELS: dict[str, type[BaseModel]] = {
    "select_data_for_analysis": SelectDataArgs,
    "analyze_spreadsheet_structure": StructureArgs,
    "set_spreadsheet_cells": SetCellsArgs,
    "create_chart": ChartArgs,
    "execute_python_code": ExecuteCodeArgs,
    "document_analysis": DocumentArgs,
    "get_sheet_info": EmptyArgs,
    "add_sheet": SheetNameArgs,
    "remove_sheet": SheetNameArgs,
    "rename_sheet": RenameSheetArgs,
    "clear_sheet": SheetNameArgs,
}

# Tools absent here have no usable fallback; their handler reports the failure.
FALLBACKS: dict[str, Callable[[], BaseModel]] = {
    "select_data_for_analysis": lambda: SelectDataArgs(
        analysisType="summary",
        dataSelection=DataSelectionArgs(selectionType="range", range=DEFAULT_SELECTION_RANGE),
        explanation="The selection could not be read, so a default range is used.",
    ),
    "analyze_spreadsheet_structure": lambda: StructureArgs(scopeNeeded="minimal"),
    "set_spreadsheet_cells": lambda: SetCellsArgs(cellUpdates=[]),
    "get_sheet_info": EmptyArgs,
    "add_sheet": SheetNameArgs,
    "remove_sheet": SheetNameArgs,
    "clear_sheet": SheetNameArgs,
}


@dataclass
class ParsedArgs:
    """Outcome of parsing one tool call's arguments."""
    args: Optional[BaseModel]
    fallback: bool = False
    reason: str = ""


def parse_tool_args(name: str, raw: str) -> ParsedArgs:
    """Parse *raw* JSON for tool *name*; never raises.

    On malformed input the fallback (or ``None``) is returned with
    ``fallback=True`` and the validation message in ``reason``.
    """
    model = ARG_MODELS.get(name)
    if model is None:
        return ParsedArgs(args=None, fallback=True, reason=f"Unknown tool: {name}")
    try:
        return ParsedArgs(args=model.model_validate_json(raw or "{}"))
    except ValidationError as exc:
        reason = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ())) or 'arguments'}: {err.get('msg', '')}"
            for err in exc.errors()
        )
    logger.warning(
        f"[ToolArgs] {name}: arguments rejected ({reason}); using fallback",
        extra=tagged("tool_args"),
    )
    factory = FALLBACKS.get(name)
    return ParsedArgs(args=factory() if factory else None, fallback=True, reason=reason)
