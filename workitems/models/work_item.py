"""
Core Data Models for Work Items

These models define the schemas for everything that flows between the
extraction agent, the editable work-item table and the promotion flow.

DESIGN DECISION: Line items use plain floats, not Decimal.
The table is edited keystroke by keystroke and its numbers are shown and
exported as typed; money rounding happens in one place (round_currency)
and only on derived fields.

DESIGN DECISION: Seeding is permissive. A record coming from the
extraction model may carry strings, None or garbage in its numeric
fields; these are coerced instead of rejected so the user can always
open the table and fix the row by hand.
"""

import math
import re
import time
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Context, Decimal
from enum import Enum
from pathlib import PurePath
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# NUMERIC COERCION
# =============================================================================

# Leading numeric prefix, the way a browser's parseFloat reads "12.5 m2"
_NUMERIC_PREFIX = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)")

CENT = Decimal("0.01")

# Wide enough to quantize any finite float to cents
_ROUNDING_CONTEXT = Context(prec=400)


def try_parse_numeric(raw_value: Any) -> Optional[float]:
    """
    Parse a raw edit value into a finite float.

    Strings are read up to the end of their leading numeric prefix.
    Returns None when nothing numeric can be read (or the result is
    NaN / infinite).
    """
    if isinstance(raw_value, str):
        match = _NUMERIC_PREFIX.match(raw_value)
        if not match:
            return None
        value = float(match.group(1))
    elif isinstance(raw_value, (int, float, Decimal)):
        value = float(raw_value)
    else:
        return None

    if not math.isfinite(value):
        return None
    return value


def parse_numeric(raw_value: Any) -> float:
    """Parse a raw edit value, degrading to 0 when it is not a number."""
    value = try_parse_numeric(raw_value)
    return 0.0 if value is None else value


def round_currency(value: float) -> float:
    """
    Round to 2 decimal places, half away from zero.

    The float's shortest decimal form is rounded, so 1.005 becomes 1.01.
    Non-finite values round to 0.
    """
    if not math.isfinite(value):
        return 0.0
    rounded = Decimal(repr(value)).quantize(
        CENT,
        rounding=ROUND_HALF_UP,
        context=_ROUNDING_CONTEXT,
    )
    return float(rounded)


# =============================================================================
# LINE ITEMS
# =============================================================================

class LineItemField(str, Enum):
    """Editable columns of a work-item row."""
    DESCRIPTION = "description"
    QUANTITY = "quantity"
    UNIT_PRICE = "unit_price"
    TOTAL_PRICE = "total_price"

    @classmethod
    def parse(cls, name: Any) -> Optional["LineItemField"]:
        """Resolve a column name in any accepted spelling, or None."""
        if isinstance(name, cls):
            return name
        if not isinstance(name, str):
            return None
        return _FIELD_NAMES.get(name.strip())


_FIELD_NAMES = {
    "description": LineItemField.DESCRIPTION,
    "item": LineItemField.DESCRIPTION,
    "quantity": LineItemField.QUANTITY,
    "unit_price": LineItemField.UNIT_PRICE,
    "unitPrice": LineItemField.UNIT_PRICE,
    "total_price": LineItemField.TOTAL_PRICE,
    "totalPrice": LineItemField.TOTAL_PRICE,
    "price": LineItemField.TOTAL_PRICE,
}


class LineItem(BaseModel):
    """
    One row of a quote/contract breakdown.

    Immutable: every edit produces a new LineItem (see
    workitems.table.reconcile). Serializes with the extraction wire
    names: item, quantity, unitPrice, price.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    description: str = Field(
        default="",
        validation_alias=AliasChoices("item", "description"),
        serialization_alias="item",
        description="Free text label of the work item"
    )
    quantity: float = Field(
        default=1.0,
        description="Quantity of the work item"
    )
    unit_price: float = Field(
        default=0.0,
        validation_alias=AliasChoices("unitPrice", "unit_price"),
        serialization_alias="unitPrice",
        description="Price of one unit"
    )
    total_price: float = Field(
        default=0.0,
        validation_alias=AliasChoices("price", "totalPrice", "total_price"),
        serialization_alias="price",
        description="Total price of the row"
    )

    @field_validator('description', mode='before')
    @classmethod
    def coerce_description(cls, v: Any) -> str:
        """Descriptions are free text; None becomes empty."""
        return "" if v is None else str(v)

    @field_validator('quantity', mode='before')
    @classmethod
    def coerce_quantity(cls, v: Any) -> float:
        """Unset or unreadable quantities default to 1."""
        value = try_parse_numeric(v)
        return 1.0 if value is None else value

    @field_validator('unit_price', 'total_price', mode='before')
    @classmethod
    def coerce_money(cls, v: Any) -> float:
        """Unreadable amounts degrade to 0."""
        return parse_numeric(v)

    def get(self, field: LineItemField) -> Any:
        """Read a column by its LineItemField."""
        return getattr(self, field.value)

    def is_consistent(self) -> bool:
        """True when total_price == round(quantity * unit_price, 2)."""
        return self.total_price == round_currency(self.quantity * self.unit_price)

    def to_record(self) -> dict:
        """Wire-format dict (item, quantity, unitPrice, price)."""
        return self.model_dump(by_alias=True)


class ExtractedWorkItems(BaseModel):
    """
    Work items extracted from one uploaded document.

    CRITICAL: This is PROPOSED data. It only seeds the editable table;
    nothing is persisted until the user promotes the table.
    """

    extraction_id: UUID = Field(
        default_factory=uuid4,
        description="Unique ID for this extraction attempt"
    )
    extracted_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When extraction was performed"
    )
    file_name: Optional[str] = Field(
        default=None,
        description="Name of the uploaded document"
    )
    work_items: list[LineItem] = Field(
        default_factory=list,
        description="Rows proposed by the extraction model"
    )
    total_tokens: int = Field(
        default=0,
        ge=0,
        description="Tokens consumed by the extraction call"
    )


class DocumentDetails(BaseModel):
    """
    Header information the user fills in before promoting a table.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    custom_id: str = Field(
        default_factory=lambda: f"DOC-{int(time.time() * 1000)}",
        max_length=100,
        description="Human-facing identifier shared by project and contract"
    )
    name: str = Field(
        default="",
        max_length=200,
        description="Project / contract name"
    )
    client: str = Field(
        default="",
        max_length=200,
        description="Client name"
    )
    client_representative: str = Field(
        default="",
        max_length=200,
        description="Contact person on the client side"
    )

    @classmethod
    def from_file_name(cls, file_name: Optional[str]) -> "DocumentDetails":
        """Pre-fill the name from an uploaded file name, minus its extension."""
        name = PurePath(file_name).stem if file_name else ""
        return cls(name=name)


# =============================================================================
# PROMOTION TARGETS
# =============================================================================

class TaskStatus(str, Enum):
    """Progress of a project task."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ContractStatus(str, Enum):
    """Lifecycle of a contract."""
    ACTIVE = "active"
    COMPLETED = "completed"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


class Task(BaseModel):
    """A project task derived from one work item."""

    id: str = Field(
        default_factory=lambda: f"task-{uuid4().hex}",
        description="Task identifier"
    )
    title: str
    status: TaskStatus = TaskStatus.PENDING
    last_updated: datetime = Field(default_factory=datetime.utcnow)
    quantity: float = 0.0
    unit_price: float = 0.0
    value: float = Field(
        default=0.0,
        description="Task value, quantity * unit_price"
    )
    sub_tasks: list["Task"] = Field(default_factory=list)

    @classmethod
    def from_line_item(cls, item: LineItem) -> "Task":
        return cls(
            title=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            value=item.total_price,
        )


class ProjectRecord(BaseModel):
    """A project created by promoting a work-item table."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    custom_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    client: str = Field(..., min_length=1, max_length=200)
    client_representative: str = ""
    tasks: list[Task] = Field(default_factory=list)
    total_value: float = 0.0
    start_date: date
    end_date: date
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_dates(self) -> 'ProjectRecord':
        """End date cannot precede start date."""
        if self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class ContractRecord(BaseModel):
    """A contract created alongside a promoted project."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    custom_id: str
    name: str = Field(..., min_length=1, max_length=200)
    contractor: str
    client: str = Field(..., min_length=1, max_length=200)
    client_representative: str = ""
    total_value: float = 0.0
    status: ContractStatus = ContractStatus.ACTIVE
    scope: str = ""
    start_date: date
    end_date: date
    payments: list[dict] = Field(default_factory=list)
    change_orders: list[dict] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_dates(self) -> 'ContractRecord':
        """End date cannot precede start date."""
        if self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class PromotionResult(BaseModel):
    """IDs of the records written by a promotion."""

    project_id: UUID
    contract_id: UUID
    total_value: float


# =============================================================================
# EXPORT
# =============================================================================

class ExportFile(BaseModel):
    """A downloadable rendering of the work-item table."""
    model_config = ConfigDict(frozen=True)

    file_name: str
    mime_type: str
    content: bytes


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'inconsistent', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    row_index: Optional[int] = Field(
        default=None,
        ge=0,
        description="Table row the issue refers to, if any"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of checking a table and its header before promotion.

    Errors block promotion; warnings are shown but do not block.
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    row_count: int = Field(ge=0)
    grand_total: float = 0.0
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        """Messages of warning-level issues."""
        return [issue.message for issue in self.issues if issue.severity == "warning"]

    @property
    def can_promote(self) -> bool:
        return not self.has_errors
