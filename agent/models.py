"""Core value types for one dialogue turn.

These are plain dataclasses shared by the controller, the tool handlers and
the transport layer. Wire (camelCase) conversion lives next to each type so
the transport never has to know about field naming.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from .errors import InvalidTransition

SELECTION_SCHEMA_VERSION = 1

SelectionType = Literal["range", "column", "row", "table", "search"]
AnalysisType = Literal["statistical", "trend", "summary", "forecast", "comparison", "custom"]
ChartType = Literal["line", "bar", "pie", "scatter"]
SheetOperationType = Literal["add", "remove", "rename", "clear", "info"]

DEFAULT_SELECTION_RANGE = "A1:Z10"


# ---------------------------------------------------------------------------
# Edits and payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CellEdit:
    """One proposed cell write. ``formula`` holds a formula or a literal value."""
    target: str
    formula: str
    sheet: Optional[str] = None

    def to_wire(self) -> dict:
        out = {"target": self.target, "formula": self.formula}
        if self.sheet:
            out["sheetName"] = self.sheet
        return out


@dataclass(frozen=True)
class ChartSpec:
    type: ChartType
    title: str
    data: list[list[Any]]
    sheet: Optional[str] = None

    def to_wire(self) -> dict:
        return {"type": self.type, "options": {"title": self.title, "data": self.data}}


@dataclass(frozen=True)
class SheetOperation:
    type: SheetOperationType
    sheet_name: Optional[str] = None
    current_name: Optional[str] = None
    new_name: Optional[str] = None
    sheets: Optional[list[str]] = None

    def to_wire(self) -> dict:
        out: dict[str, Any] = {"type": self.type}
        if self.sheet_name is not None:
            out["sheetName"] = self.sheet_name
        if self.current_name is not None:
            out["currentName"] = self.current_name
        if self.new_name is not None:
            out["newName"] = self.new_name
        if self.sheets is not None:
            out["sheets"] = self.sheets
        return out


@dataclass
class AnalysisTrace:
    """What happened inside a code-execution tool call."""
    goal: str
    code: str = ""
    stdout: str = ""
    stderr: str = ""
    structured_output: str = ""
    timed_out: bool = False
    error: Optional[str] = None

    def to_wire(self) -> dict:
        out: dict[str, Any] = {
            "goal": self.goal,
            "output": self.structured_output or self.stdout,
            "stdout": self.stdout,
            "timedOut": self.timed_out,
        }
        if self.stderr:
            out["stderr"] = self.stderr
        if self.error:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class StructureAnalysis:
    """Result of the ``analyze_spreadsheet_structure`` tool."""
    scope_needed: Literal["full", "minimal", "auto"]
    explanation: str = ""

    def to_wire(self) -> dict:
        return {"scopeNeeded": self.scope_needed, "explanation": self.explanation}


# ---------------------------------------------------------------------------
# Sheet structure
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TableInfo:
    range: str
    headers: list[str]


@dataclass(frozen=True)
class ColumnInfo:
    label: str
    index: int


@dataclass(frozen=True)
class StructureSummary:
    row_count: int
    col_count: int
    has_headers: bool
    tables: list[TableInfo] = field(default_factory=list)
    columns: list[ColumnInfo] = field(default_factory=list)

    @classmethod
    def from_wire(cls, raw: dict) -> "StructureSummary":
        return cls(
            row_count=int(raw.get("rowCount", 0)),
            col_count=int(raw.get("colCount", 0)),
            has_headers=bool(raw.get("hasHeaders", False)),
            tables=[
                TableInfo(range=str(t.get("range", "")), headers=[str(h) for h in t.get("headers", [])])
                for t in raw.get("tables", []) or []
            ],
            columns=[
                ColumnInfo(label=str(c.get("label", "")), index=int(c.get("index", 0)))
                for c in raw.get("columns", []) or []
            ],
        )

    def to_wire(self) -> dict:
        return {
            "rowCount": self.row_count,
            "colCount": self.col_count,
            "hasHeaders": self.has_headers,
            "tables": [{"range": t.range, "headers": t.headers} for t in self.tables],
            "columns": [{"label": c.label, "index": c.index} for c in self.columns],
        }


# ---------------------------------------------------------------------------
# Selection descriptor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DataSelectionDescriptor:
    """Which slice of the sheet phase 2 should look at.

    A tagged union on ``selection_type``; only the parameters for that kind
    are meaningful. The same value travels from phase 1, through the caller's
    data resolution, into phase 2.
    """
    selection_type: SelectionType
    analysis_type: AnalysisType = "summary"
    explanation: str = ""
    range: Optional[str] = None
    column: Optional[str] = None
    row: Optional[int] = None
    table_start_cell: Optional[str] = None
    has_headers: bool = True
    search_term: Optional[str] = None
    fallback: bool = False
    version: int = SELECTION_SCHEMA_VERSION

    @classmethod
    def default(cls, reason: str = "") -> "DataSelectionDescriptor":
        return cls(
            selection_type="range",
            analysis_type="summary",
            range=DEFAULT_SELECTION_RANGE,
            explanation=reason or "Using a default selection of the top-left block of the sheet.",
            fallback=True,
        )

    def selection_wire(self) -> dict:
        out: dict[str, Any] = {"selectionType": self.selection_type}
        if self.selection_type == "range":
            out["range"] = self.range
        elif self.selection_type == "column":
            out["column"] = self.column
        elif self.selection_type == "row":
            out["row"] = self.row
        elif self.selection_type == "table":
            out["tableStartCell"] = self.table_start_cell
            out["hasHeaders"] = self.has_headers
        elif self.selection_type == "search":
            out["searchTerm"] = self.search_term
        return out

    def to_wire(self) -> dict:
        return {
            "analysisType": self.analysis_type,
            "dataSelection": self.selection_wire(),
            "explanation": self.explanation,
            "fallback": self.fallback,
            "version": self.version,
        }

    @classmethod
    def from_wire(cls, raw: dict) -> "DataSelectionDescriptor":
        """Build from the wire shape. Raises ``ValueError`` on a malformed payload."""
        selection = raw.get("dataSelection") or {}
        kind = selection.get("selectionType")
        if kind not in ("range", "column", "row", "table", "search"):
            raise ValueError(f"Unknown selectionType: {kind!r}")
        row = selection.get("row")
        return cls(
            selection_type=kind,
            analysis_type=raw.get("analysisType") or "custom",
            explanation=raw.get("explanation") or "",
            range=selection.get("range"),
            column=selection.get("column"),
            row=int(row) if row is not None else None,
            table_start_cell=selection.get("tableStartCell"),
            has_headers=bool(selection.get("hasHeaders", True)),
            search_term=selection.get("searchTerm"),
            fallback=bool(raw.get("fallback", False)),
            version=int(raw.get("version", SELECTION_SCHEMA_VERSION)),
        )

    def describe(self) -> str:
        """Short human-readable description, e.g. ``column F``."""
        if self.selection_type == "range":
            return f"range {self.range}"
        if self.selection_type == "column":
            return f"column {self.column}"
        if self.selection_type == "row":
            return f"row {self.row}"
        if self.selection_type == "table":
            return f"table at {self.table_start_cell}"
        return f"cells matching '{self.search_term}'"


# ---------------------------------------------------------------------------
# Tool result
# ---------------------------------------------------------------------------

@dataclass
class ToolResult:
    """Validated outcome of one tool call.

    ``response`` is always present; at most one structured payload is set
    (``analysis`` may accompany ``cell_edits`` for code execution).
    """
    response: str
    cell_edits: Optional[list[CellEdit]] = None
    chart: Optional[ChartSpec] = None
    sheet_operation: Optional[SheetOperation] = None
    selection: Optional[DataSelectionDescriptor] = None
    structure: Optional[StructureAnalysis] = None
    analysis: Optional[AnalysisTrace] = None
    error: Optional[str] = None

    def ensure_edit_summary(self) -> "ToolResult":
        """Make sure a result carrying edits says how many and where."""
        if not self.cell_edits:
            return self
        count = len(self.cell_edits)
        first, last = self.cell_edits[0].target, self.cell_edits[-1].target
        span = first if first == last else f"{first}–{last}"
        if f"{count} cell" in self.response or first in self.response:
            return self
        noun = "cell" if count == 1 else "cells"
        self.response = f"{self.response.rstrip()}\n\n{count} {noun} updated ({span}).".lstrip()
        return self


# ---------------------------------------------------------------------------
# Request and frames
# ---------------------------------------------------------------------------

@dataclass
class DialogueRequest:
    """Everything the caller sends for one phase of a turn.

    ``rows`` is the caller-resolved data (the whole active sheet for phase 1
    when no ``structure`` is given, the selected slice for phase 2).
    """
    message: str
    mode: Literal["select", "analyze"] = "select"
    rows: Any = None
    structure: Optional[StructureSummary] = None
    active_sheet: str = "Sheet 1"
    sheet_names: list[str] = field(default_factory=list)
    chat_history: list[dict] = field(default_factory=list)
    document: Optional[str] = None
    selection: Optional[DataSelectionDescriptor] = None
    column_reference: Optional[str] = None

    @property
    def has_document(self) -> bool:
        return bool(self.document)


@dataclass
class Frame:
    """One unit of the streamed response. ``streaming=False`` marks the terminal frame."""
    response: Optional[str] = None
    streaming: bool = False
    updates: Optional[list[CellEdit]] = None
    chart: Optional[ChartSpec] = None
    sheet_operation: Optional[SheetOperation] = None
    selection: Optional[DataSelectionDescriptor] = None
    structure: Optional[StructureAnalysis] = None
    analysis: Optional[AnalysisTrace] = None
    error: Optional[str] = None

    @classmethod
    def text(cls, fragment: str) -> "Frame":
        return cls(response=fragment, streaming=True)

    @classmethod
    def failure(cls, message: str) -> "Frame":
        return cls(error=message)

    @classmethod
    def from_result(cls, result: ToolResult) -> "Frame":
        return cls(
            response=result.response,
            updates=result.cell_edits,
            chart=result.chart,
            sheet_operation=result.sheet_operation,
            selection=result.selection,
            structure=result.structure,
            analysis=result.analysis,
            error=result.error,
        )

    def to_wire(self) -> dict:
        out: dict[str, Any] = {"streaming": self.streaming}
        if self.response is not None:
            out["response"] = self.response
        if self.updates is not None:
            out["updates"] = [e.to_wire() for e in self.updates]
        if self.chart is not None:
            out["chartData"] = self.chart.to_wire()
        if self.sheet_operation is not None:
            out["sheetOperation"] = self.sheet_operation.to_wire()
        if self.selection is not None:
            out["dataSelectionResult"] = self.selection.to_wire()
        if self.structure is not None:
            out["structureAnalysisResult"] = self.structure.to_wire()
        if self.analysis is not None:
            out["analysis"] = self.analysis.to_wire()
        if self.error is not None:
            out["error"] = self.error
        return out


# ---------------------------------------------------------------------------
# Dialogue turn
# ---------------------------------------------------------------------------

class TurnState(str, enum.Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    SELECTION_FALLBACK = "selection_fallback"
    SELECTED = "selected"
    RESOLVING = "resolving"
    ANALYZING = "analyzing"
    DISPATCHING = "dispatching"
    COMPLETED = "completed"
    ABORTED = "aborted"


_TRANSITIONS: dict[TurnState, frozenset[TurnState]] = {
    TurnState.IDLE: frozenset({TurnState.SELECTING, TurnState.RESOLVING, TurnState.ANALYZING}),
    TurnState.SELECTING: frozenset({TurnState.SELECTED, TurnState.SELECTION_FALLBACK}),
    TurnState.SELECTION_FALLBACK: frozenset({TurnState.RESOLVING}),
    TurnState.SELECTED: frozenset({TurnState.RESOLVING}),
    TurnState.RESOLVING: frozenset({TurnState.ANALYZING, TurnState.COMPLETED}),
    TurnState.ANALYZING: frozenset({TurnState.DISPATCHING, TurnState.COMPLETED}),
    TurnState.DISPATCHING: frozenset({TurnState.COMPLETED}),
    TurnState.COMPLETED: frozenset(),
    TurnState.ABORTED: frozenset(),
}

TERMINAL_STATES = frozenset({TurnState.COMPLETED, TurnState.ABORTED})

TurnStatus = Literal["pending", "accepted", "rejected", "completed", "none"]


@dataclass
class DialogueTurn:
    """One user message and its evolving answer."""
    user_text: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    response: str = ""
    status: TurnStatus = "pending"
    state: TurnState = TurnState.IDLE
    cell_edits: Optional[list[CellEdit]] = None
    chart: Optional[ChartSpec] = None
    analysis: Optional[AnalysisTrace] = None
    has_document: bool = False
    document: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    history: list[TurnState] = field(default_factory=list)

    def advance(self, new_state: TurnState) -> None:
        """Move to *new_state*; ``ABORTED`` is reachable from any non-terminal state."""
        if self.state in TERMINAL_STATES:
            raise InvalidTransition(f"Turn {self.id} already {self.state.value}")
        if new_state is not TurnState.ABORTED and new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.state.value} -> {new_state.value}")
        self.history.append(self.state)
        self.state = new_state

    def abort(self) -> None:
        if self.state not in TERMINAL_STATES:
            self.advance(TurnState.ABORTED)
            self.status = "none"

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def apply(self, result: ToolResult) -> None:
        """Fold a terminal tool result into the turn."""
        self.response = result.response
        self.cell_edits = result.cell_edits
        self.chart = result.chart
        self.analysis = result.analysis
        self.status = "pending" if (result.cell_edits or result.chart) else "completed"
