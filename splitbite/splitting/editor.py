"""
Receipt editing operations.

Every operation takes a ``Receipt`` snapshot and returns a new one with
``split_calculations`` recomputed. Inputs are never mutated, and invalid
requests are rejected before anything changes.
"""
from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from typing import Any, Iterable, Optional

import pydantic

from splitbite.errors import StateError, ValidationError
from splitbite.schemas import (
    DistributionMode,
    ExtractedReceipt,
    LineItem,
    Person,
    Receipt,
)
from splitbite.splitting.allocator import calculate_split

UNKNOWN_RESTAURANT = "Unknown Restaurant"

_DATE_SHAPES: list[tuple[re.Pattern[str], tuple[str, ...]]] = [
    (re.compile(r"\d{4}-\d{1,2}-\d{1,2}"), ("%Y-%m-%d",)),
    (re.compile(r"\d{1,2}/\d{1,2}/\d{2,4}"), ("%m/%d/%Y", "%m/%d/%y")),
    (re.compile(r"\d{1,2}-\d{1,2}-\d{2,4}"), ("%m-%d-%Y", "%m-%d-%y")),
    (re.compile(r"\d{1,2}\.\d{1,2}\.\d{2,4}"), ("%m.%d.%Y", "%m.%d.%y")),
    (
        re.compile(r"[A-Za-z]{3,9}\.? \d{1,2},? \d{4}"),
        ("%b %d, %Y", "%b %d %Y", "%B %d, %Y", "%B %d %Y", "%b. %d, %Y"),
    ),
]


def parse_receipt_date(text: Optional[str]) -> Optional[date]:
    """Best-effort date from a free-form receipt date string (US ordering)."""
    if not text:
        return None
    for pattern, formats in _DATE_SHAPES:
        m = pattern.search(text)
        if not m:
            continue
        for fmt in formats:
            try:
                return datetime.strptime(m.group(0), fmt).date()
            except ValueError:
                continue
    return None


def refresh(receipt: Receipt) -> Receipt:
    """Recompute derived fields of *receipt*."""
    splits = calculate_split(receipt) if receipt.people else []
    return receipt.model_copy(update={"split_calculations": splits})


def receipt_from_extraction(extracted: ExtractedReceipt) -> Receipt:
    """Initial snapshot for a freshly extracted receipt: nobody assigned yet."""
    return Receipt(
        restaurant_name=extracted.restaurant_name or UNKNOWN_RESTAURANT,
        restaurant_address=extracted.restaurant_address,
        date=parse_receipt_date(extracted.date),
        items=[LineItem(**item.model_dump()) for item in extracted.items],
        subtotal=extracted.subtotal,
        tax=extracted.tax,
        tip=extracted.tip,
        total=extracted.total or extracted.subtotal,
    )


def replace_people(receipt: Receipt, people: Iterable[Person]) -> Receipt:
    """Set the dining party. Assignments to people no longer present are dropped."""
    new_people = [p if p.id else p.model_copy(update={"id": uuid.uuid4().hex}) for p in people]

    ids = [p.id for p in new_people]
    if len(set(ids)) != len(ids):
        raise ValidationError("Person ids must be unique")
    if sum(1 for p in new_people if p.role == "owner") > 1:
        raise ValidationError("A receipt can have at most one owner")

    keep = set(ids)
    items = [
        item.model_copy(update={"assigned_to": [pid for pid in item.assigned_to if pid in keep]})
        for item in receipt.items
    ]
    return refresh(receipt.model_copy(update={"people": new_people, "items": items}))


def assign_item(
    receipt: Receipt,
    index: int,
    person_ids: Iterable[str],
    notes: Optional[str] = None,
) -> Receipt:
    """Assign item *index* to *person_ids* (an empty list unassigns it)."""
    if index < 0 or index >= len(receipt.items):
        raise StateError(f"Invalid item index: {index}")

    known = {p.id for p in receipt.people}
    assigned = list(dict.fromkeys(person_ids))
    unknown = [pid for pid in assigned if pid not in known]
    if unknown:
        raise StateError(f"Unknown person id(s): {', '.join(unknown)}")

    update: dict[str, Any] = {"assigned_to": assigned}
    if notes is not None:
        update["notes"] = notes
    items = list(receipt.items)
    items[index] = items[index].model_copy(update=update)
    return refresh(receipt.model_copy(update={"items": items}))


def set_distribution(
    receipt: Receipt,
    tax: Optional[DistributionMode] = None,
    tip: Optional[DistributionMode] = None,
) -> Receipt:
    update: dict[str, Any] = {}
    if tax is not None:
        update["tax_distribution"] = tax
    if tip is not None:
        update["tip_distribution"] = tip
    return refresh(receipt.model_copy(update=update))


CORRECTABLE_FIELDS = (
    "restaurant_name",
    "restaurant_address",
    "date",
    "subtotal",
    "tax",
    "tip",
    "total",
)


def apply_corrections(receipt: Receipt, changes: dict[str, Any]) -> Receipt:
    """Apply manual post-OCR corrections. Replacing items clears their assignments."""
    update = {k: v for k, v in changes.items() if k in CORRECTABLE_FIELDS}
    if "items" in changes and changes["items"] is not None:
        update["items"] = [{**dict(item), "assigned_to": []} for item in changes["items"]]
    # re-validate so corrected values obey the model's constraints
    try:
        corrected = Receipt.model_validate({**receipt.model_dump(), **update})
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid correction: {exc.errors()[0]['msg']}") from exc
    return refresh(corrected)
