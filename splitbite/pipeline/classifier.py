"""
Rule‑based receipt line classifier.

Pure functions that decide what a single OCR line looks like: a restaurant
name candidate, a date, an item, or a totals row.
"""
from __future__ import annotations

import math
import re
from typing import Optional

from splitbite.schemas import ExtractedItem, RawTextLine

MIN_NAME_CONFIDENCE = 80
MIN_NAME_LENGTH = 3

_PRICE = re.compile(r"\$?\d+\.?\d*")
_AMOUNT = re.compile(r"(\d+\.?\d*)")

DATE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\d{1,2}/\d{1,2}/\d{2,4}"),    # MM/DD/YYYY, M/D/YY
    re.compile(r"\d{1,2}-\d{1,2}-\d{2,4}"),    # MM-DD-YYYY
    re.compile(r"\d{1,2}\.\d{1,2}\.\d{2,4}"),  # MM.DD.YYYY
    re.compile(r"(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)", re.IGNORECASE),
]

# (pattern, group index of quantity or None, name group, price group), tried in order.
# The second pattern already accepts "Burger 2 $15.00" (name "Burger 2"), so the
# trailing-quantity form only documents the layout and never wins.
ITEM_PATTERNS: list[tuple[re.Pattern[str], Optional[int], int, int]] = [
    (re.compile(r"^(\d+)x?\s+(.+?)\s+\$?(\d+\.?\d*)$", re.IGNORECASE), 1, 2, 3),  # "2x Burger $15.00"
    (re.compile(r"^(.+?)\s+\$?(\d+\.?\d*)$", re.IGNORECASE), None, 1, 2),         # "Burger $7.50"
    (re.compile(r"^(.+?)\s+(\d+)\s+\$?(\d+\.?\d*)$", re.IGNORECASE), 2, 1, 3),    # "Burger 2 $15.00"
]

# Checked in order; first keyword hit decides the field
TOTALS_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("subtotal", ("subtotal", "sub total")),
    ("tax", ("tax",)),
    ("tip", ("tip", "gratuity")),
    ("total", ("total",)),
]


def contains_price(text: str) -> bool:
    return bool(_PRICE.search(text))


def is_date_line(text: str) -> bool:
    return any(p.search(text) for p in DATE_PATTERNS)


def is_restaurant_name_candidate(line: RawTextLine) -> bool:
    text = line.text.strip()
    return (
        line.confidence > MIN_NAME_CONFIDENCE
        and len(text) > MIN_NAME_LENGTH
        and not contains_price(text)
        and not is_date_line(text)
    )


def _finite(digits: str) -> Optional[float]:
    value = float(digits)
    return value if math.isfinite(value) else None


def first_amount(text: str) -> Optional[float]:
    """Return the first decimal-looking number in *text*, or None when absent or out of range."""
    m = _AMOUNT.search(text)
    return _finite(m.group(1)) if m else None


def classify_totals_line(text: str) -> Optional[str]:
    """Return ``subtotal`` / ``tax`` / ``tip`` / ``total`` or None."""
    lowered = text.lower()
    for field_name, keywords in TOTALS_KEYWORDS:
        if any(kw in lowered for kw in keywords):
            if field_name == "total" and "subtotal" in lowered:
                return None
            return field_name
    return None


def parse_item_line(text: str) -> Optional[ExtractedItem]:
    """Parse ``"<qty>x <name> <price>"``, ``"<name> <price>"`` or ``"<name> <qty> <price>"``."""
    text = text.strip()
    for pattern, qty_group, name_group, price_group in ITEM_PATTERNS:
        m = pattern.match(text)
        if not m:
            continue
        name = m.group(name_group).strip()
        price = _finite(m.group(price_group))
        if not name or price is None:
            continue
        quantity = _finite(m.group(qty_group)) if qty_group else 1
        if quantity is None:
            continue
        return ExtractedItem(
            name=name,
            quantity=max(1, int(quantity)),
            price=price,
        )
    return None

