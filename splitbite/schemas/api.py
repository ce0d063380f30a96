"""
API request / response envelopes.
"""
from __future__ import annotations

from datetime import date as Date
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from splitbite.schemas.base import (
    DistributionMode,
    ExtractedItem,
    ExtractionSource,
    ImageLocator,
    LineItem,
    Person,
    PersonSavings,
    ProcessingStatus,
    Receipt,
    ReceiptStats,
    RestaurantAggregate,
    SplitCalculation,
    UnassignedItem,
)


class ReceiptCreateRequest(BaseModel):
    image: ImageLocator


class ReceiptResponse(Receipt):
    id: str
    image: ImageLocator
    processing_status: ProcessingStatus
    ocr_confidence: Optional[float] = None
    extraction_source: Optional[ExtractionSource] = None
    extraction_note: Optional[str] = Field(
        default=None, description="Why the fallback parser was used, if it was"
    )
    finalized_share: Optional[float] = None
    version: int
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_receipts: int
    has_next: bool
    has_prev: bool


class ReceiptListResponse(BaseModel):
    receipts: list[ReceiptResponse]
    pagination: Pagination


class ReceiptUpdateRequest(BaseModel):
    """Manual corrections after OCR. Omitted fields are left unchanged."""
    restaurant_name: Optional[str] = Field(default=None, min_length=1)
    restaurant_address: Optional[str] = None
    date: Optional[Date] = None
    subtotal: Optional[float] = Field(default=None, ge=0)
    tax: Optional[float] = Field(default=None, ge=0)
    tip: Optional[float] = Field(default=None, ge=0)
    total: Optional[float] = Field(default=None, ge=0)
    items: Optional[list[ExtractedItem]] = None


class PeopleRequest(BaseModel):
    people: list[Person]


class PeopleResponse(BaseModel):
    people: list[Person]
    splits: list[SplitCalculation]


class AssignRequest(BaseModel):
    assigned_to: list[str] = Field(default_factory=list)
    notes: Optional[str] = None


class AssignResponse(BaseModel):
    item: LineItem
    splits: list[SplitCalculation]
    all_assigned: bool


class DistributionRequest(BaseModel):
    tax_distribution: Optional[DistributionMode] = None
    tip_distribution: Optional[DistributionMode] = None


class DistributionResponse(BaseModel):
    splits: list[SplitCalculation]
    tax_distribution: DistributionMode
    tip_distribution: DistributionMode


class SplitResponse(BaseModel):
    splits: list[SplitCalculation]
    stats: ReceiptStats
    unassigned_items: list[UnassignedItem]
    savings: list[PersonSavings]
    all_assigned: bool
    is_complete: bool


class FinalizeRequest(BaseModel):
    user_amount: Optional[float] = Field(
        default=None, description="Current user's share; defaults to the owner's split total"
    )


class FinalizeResponse(BaseModel):
    receipt_id: str
    user_amount: float
    ledger_updated: bool
    is_complete: bool = True


class SummaryResponse(BaseModel):
    summary: str
    splits: list[SplitCalculation]


class RestaurantResponse(RestaurantAggregate):
    id: str


class RecalculateResponse(BaseModel):
    updated: int


class MessageResponse(BaseModel):
    message: str
