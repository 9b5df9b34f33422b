"""Pydantic data model and request/response schemas for the API.

Domain types:
- Row / Plan: a titled, described table; Plan.text() is the canonical serialization
  used as embedding input.
- Metadata: the structured fields the metadata synthesizer must produce.
- Document: text plus a flat metadata mapping of scalar values.
- Answer: the table returned by /query, with authoritative sums.
- DonatedPlan: a persisted user donation.

Public contracts for the FastAPI endpoints:
- QueryRequest, AddDocumentsRequest, DonatePlanRequest, PlanToPDFRequest and their responses.
"""
import json
from datetime import datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr

Cell = Union[StrictInt, StrictFloat, StrictStr]
MetadataValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]

QueryMethod = Literal["choose", "generate"]


class Row(BaseModel):
    """One table row.

    Attributes:
        cells: Ordered numeric/text cells.
        sum: Sum of the numeric cells. Never trusted from outside; see planrag.answer.
    """
    cells: List[Cell] = Field(default_factory=list)
    sum: float = 0.0

    def numeric_cells(self) -> List[float]:
        # bool is a subclass of int; the Cell union already excludes it
        return [c for c in self.cells if isinstance(c, (int, float))]


class Plan(BaseModel):
    """A titled, described table."""
    title: str = ""
    description: str = ""
    table: List[Row] = Field(default_factory=list)

    def table_text(self) -> str:
        """Render the table one row per line: cells joined by ' | ', then the row sum."""
        lines = []
        for row in self.table:
            cells = " | ".join(str(c) for c in row.cells)
            lines.append(f"{cells} | {row.sum:g}")
        return "\n".join(lines)

    def text(self) -> str:
        """Deterministic serialization of title, description and table."""
        return f"{self.title}\n{self.description}\n{self.table_text()}"

    def table_json(self) -> str:
        return json.dumps([row.model_dump() for row in self.table], ensure_ascii=False)

    def metadata(self) -> Dict[str, MetadataValue]:
        """Base metadata mapping stored alongside the plan's document."""
        return {
            "title": self.title,
            "description": self.description,
            "table": self.table_json(),
        }


class Metadata(BaseModel):
    """Structured plan metadata produced by the synthesizer."""
    model_config = ConfigDict(extra="forbid")

    category: str = Field(..., description="Kind of plan, e.g. 'endurance', 'technique', 'sprint'")
    difficulty: Literal["beginner", "intermediate", "advanced"] = Field(
        ..., description="Target athlete level"
    )
    focus: str = Field(..., description="Main training focus in a few words")
    equipment: str = Field(default="", description="Comma separated equipment needed, empty if none")
    keywords: str = Field(default="", description="Comma separated search keywords")


class Document(BaseModel):
    """Text plus flat scalar metadata, as stored in the Document Store."""
    text: str
    metadata: Dict[str, MetadataValue] = Field(default_factory=dict)


class Answer(BaseModel):
    """A plan returned for a query, with per-row sums and the total recomputed."""
    title: str = ""
    description: str = ""
    table: List[Row] = Field(default_factory=list)
    total: float = 0.0


class DonatedPlan(BaseModel):
    """A user donation; immutable once persisted."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    plan_id: str
    created_at: datetime
    title: str
    description: str
    table: List[Row]


class QueryRequest(BaseModel):
    """Request body for /query.

    `method` is validated by the query router so that an unsupported value is
    reported as a 400 before any store or model call.
    """
    content: str = Field(..., min_length=1, description="User query")
    filter: Dict[str, str] = Field(default_factory=dict, description="Equality filters on metadata")
    method: str = Field(..., description="'choose' or 'generate'")


class AddDocumentsRequest(BaseModel):
    documents: List[Document] = Field(..., min_length=1)


class IdsResponse(BaseModel):
    """Response carrying the identifiers of newly stored documents."""
    status: str = "success"
    ids: List[str] = Field(default_factory=list)


class DonatePlanRequest(BaseModel):
    user_id: str = Field(..., alias="userId", min_length=1)
    title: Optional[str] = ""
    description: Optional[str] = ""
    table: List[Row]

    model_config = ConfigDict(populate_by_name=True)


class DonatePlanResponse(IdsResponse):
    plan_id: str


class PlanToPDFRequest(BaseModel):
    title: str = ""
    description: str = ""
    table: List[Row] = Field(default_factory=list)


class PlanToPDFResponse(BaseModel):
    uri: str
