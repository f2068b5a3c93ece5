"""Pydantic request/response schemas for the FastAPI backend.

Wire names are camelCase (the spreadsheet client's convention); Python
attributes are snake_case.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from agent.models import DataSelectionDescriptor, DialogueRequest, Frame, StructureSummary

__all__ = ["ChatMessage", "Frame", "HealthStatus", "LLMRequest", "SheetInfo"]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ---- Requests ----

class SheetInfo(_WireModel):
    id: Optional[str] = None
    name: str


class ChatMessage(_WireModel):
    role: str
    content: str = ""


class LLMRequest(_WireModel):
    message: str = Field(..., min_length=1, description="User message for this turn")
    spreadsheet_data: Any = Field(
        default=None,
        description="Grid rows, or {structure: StructureSummary} for a structure-only phase 1",
    )
    active_sheet_name: str = "Sheet 1"
    sheets_info: list[SheetInfo] = Field(default_factory=list)
    chat_history: list[ChatMessage] = Field(default_factory=list)
    document_image: Optional[str] = Field(default=None, description="base64 data URL")
    mode: Literal["select", "analyze"] = "select"
    data_selection_result: Optional[dict] = None
    column_reference: Optional[str] = None

    @field_validator("data_selection_result")
    @classmethod
    def _selection_is_readable(cls, v: Optional[dict]) -> Optional[dict]:
        if v is not None:
            DataSelectionDescriptor.from_wire(v)
        return v

    def to_dialogue_request(self) -> DialogueRequest:
        rows: Any = self.spreadsheet_data
        structure = None
        if isinstance(rows, dict):
            raw = rows.get("structure")
            structure = StructureSummary.from_wire(raw) if isinstance(raw, dict) else None
            rows = None
        return DialogueRequest(
            message=self.message,
            mode=self.mode,
            rows=rows,
            structure=structure,
            active_sheet=self.active_sheet_name,
            sheet_names=[s.name for s in self.sheets_info],
            chat_history=[m.model_dump() for m in self.chat_history],
            document=self.document_image,
            selection=(
                DataSelectionDescriptor.from_wire(self.data_selection_result)
                if self.data_selection_result is not None
                else None
            ),
            column_reference=self.column_reference,
        )


# ---- Responses ----

class HealthStatus(BaseModel):
    status: str = "ok"
    provider: str
    api_key_configured: bool = False
    uptime_seconds: float = 0.0
