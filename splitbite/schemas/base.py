"""
Canonical models for the extraction pipeline and split engine.

All pipeline stages, the split engine and the ledger produce and consume these
Pydantic v2 models.
"""
from __future__ import annotations

from datetime import date as Date
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from splitbite.errors import ERROR_TYPES, ExtractionFailure


DistributionMode = Literal["equal", "proportional"]
ExtractionSource = Literal["llm", "fallback"]


class ProcessingStatus(str, Enum):
    """Extraction lifecycle of a receipt."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# OCR boundary
# ---------------------------------------------------------------------------

class ImageLocator(BaseModel):
    """Opaque address of a stored receipt image."""
    bucket: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)


class RawTextLine(BaseModel):
    """One line of OCR output, in the engine's reading order."""
    model_config = ConfigDict(frozen=True)

    text: str
    confidence: float = Field(..., ge=0, le=100)


# ---------------------------------------------------------------------------
# Extraction output (pre-persistence)
# ---------------------------------------------------------------------------

class ExtractedItem(BaseModel):
    name: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1)
    price: float = Field(..., ge=0, description="Price per unit, not line total")


class ExtractedReceipt(BaseModel):
    restaurant_name: Optional[str] = None
    restaurant_address: Optional[str] = None
    date: Optional[str] = Field(
        default=None, description="Date as read from the receipt (free-form)"
    )
    items: list[ExtractedItem] = Field(default_factory=list)
    subtotal: float = Field(default=0, ge=0)
    tax: float = Field(default=0, ge=0)
    tip: float = Field(default=0, ge=0)
    total: float = Field(default=0, ge=0)
    confidence: float = Field(..., ge=0, le=100)
    extraction_source: ExtractionSource


class ErrorBody(BaseModel):
    """Structured error payload: machine-checkable kind + human message."""
    error: str
    message: str


class StructuredOutcome(BaseModel):
    kind: Literal["structured"] = "structured"
    data: ExtractedReceipt

    def unwrap(self) -> ExtractedReceipt:
        return self.data


class FallbackOutcome(BaseModel):
    kind: Literal["fallback"] = "fallback"
    data: ExtractedReceipt
    reason: str = ""

    def unwrap(self) -> ExtractedReceipt:
        return self.data


class FailedOutcome(BaseModel):
    kind: Literal["failed"] = "failed"
    error: ErrorBody

    def unwrap(self) -> ExtractedReceipt:
        """Re-raise the recorded failure as its original error class."""
        error_cls = ERROR_TYPES.get(self.error.error, ExtractionFailure)
        raise error_cls(self.error.message)


ExtractionOutcome = Annotated[
    Union[StructuredOutcome, FallbackOutcome, FailedOutcome],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Receipt snapshot
# ---------------------------------------------------------------------------

class Person(BaseModel):
    id: str = ""
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    is_registered_user: bool = False
    role: Literal["owner", "guest"] = "guest"


class LineItem(ExtractedItem):
    assigned_to: list[str] = Field(
        default_factory=list, description="Person ids sharing this item"
    )
    notes: Optional[str] = None


class UnassignedItem(BaseModel):
    name: str
    price: float
    quantity: int


class ItemShare(BaseModel):
    """One person's slice of one line item."""
    item_name: str
    full_price: float
    share_amount: float
    shared_with: list[str] = Field(default_factory=list)


class SplitCalculation(BaseModel):
    person_id: str
    name: str
    subtotal: float = 0.0
    tax_share: float = 0.0
    tip_share: float = 0.0
    total: float = 0.0
    items: list[ItemShare] = Field(default_factory=list)


class Receipt(BaseModel):
    """Editable state of a receipt at one revision.

    ``split_calculations`` is derived; the editor recomputes it on every
    mutation. ``is_complete`` is the finalization flag and only the ledger
    sets it.
    """
    restaurant_name: str = "Unknown Restaurant"
    restaurant_address: Optional[str] = None
    date: Optional[Date] = None
    people: list[Person] = Field(default_factory=list)
    items: list[LineItem] = Field(default_factory=list)
    subtotal: float = Field(default=0, ge=0)
    tax: float = Field(default=0, ge=0)
    tip: float = Field(default=0, ge=0)
    total: float = Field(default=0, ge=0)
    tax_distribution: DistributionMode = "proportional"
    tip_distribution: DistributionMode = "proportional"
    split_calculations: list[SplitCalculation] = Field(default_factory=list)
    is_complete: bool = False

    @model_validator(mode="after")
    def _assignments_reference_people(self) -> "Receipt":
        known = {p.id for p in self.people}
        for item in self.items:
            unknown = [pid for pid in item.assigned_to if pid not in known]
            if unknown:
                raise ValueError(
                    f"Item '{item.name}' assigned to unknown people: {', '.join(unknown)}"
                )
        return self

    def owner(self) -> Optional[Person]:
        return next((p for p in self.people if p.role == "owner"), None)


class ReceiptStats(BaseModel):
    total_items: int = 0
    assigned_items: int = 0
    unassigned_items: int = 0
    shared_items: int = 0
    average_per_person: float = 0.0
    highest_amount: float = 0.0
    lowest_amount: float = 0.0
    completion_percentage: float = 0.0


class PersonSavings(BaseModel):
    person_id: str
    savings: float


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class RestaurantAggregate(BaseModel):
    name: str
    address: Optional[str] = None
    visit_count: int = Field(default=0, ge=0)
    total_spent: float = Field(default=0, ge=0)
    last_visit: Optional[Date] = None
    is_favorite: bool = False
    notes: Optional[str] = None
