"""
Deterministic fallback receipt parser.

Assembles a best-effort ``ExtractedReceipt`` from classified OCR lines when the
structured (LLM) parser is unavailable or returns unusable data. Accuracy is
lossy; the result is flagged with ``extraction_source="fallback"``.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from splitbite.errors import ExtractionFailure
from splitbite.pipeline.classifier import (
    classify_totals_line,
    first_amount,
    is_date_line,
    is_restaurant_name_candidate,
    parse_item_line,
)
from splitbite.schemas import ExtractedItem, ExtractedReceipt, RawTextLine

logger = logging.getLogger(__name__)


def _find_restaurant_name(lines: Sequence[RawTextLine]) -> Optional[str]:
    # Confidence-descending working copy; sorted() is stable so ties keep reading order
    by_confidence = sorted(lines, key=lambda ln: ln.confidence, reverse=True)
    for line in by_confidence:
        if is_restaurant_name_candidate(line):
            return line.text.strip()
    return None


def _find_date_index(lines: Sequence[RawTextLine]) -> Optional[int]:
    for idx, line in enumerate(lines):
        if is_date_line(line.text):
            return idx
    return None


def _extract_totals(lines: Sequence[RawTextLine]) -> dict[str, float]:
    """Last match wins for each of subtotal / tax / tip / total."""
    totals: dict[str, float] = {}
    for line in lines:
        field_name = classify_totals_line(line.text)
        if field_name is None:
            continue
        amount = first_amount(line.text)
        if amount is not None:
            totals[field_name] = amount
    return totals


def _extract_items(
    lines: Sequence[RawTextLine], date_index: Optional[int]
) -> list[ExtractedItem]:
    items: list[ExtractedItem] = []
    for idx, line in enumerate(lines):
        if idx == date_index or classify_totals_line(line.text):
            continue
        item = parse_item_line(line.text)
        if item is not None:
            items.append(item)
    return items


def parse_lines(lines: Sequence[RawTextLine]) -> ExtractedReceipt:
    """Build an ``ExtractedReceipt`` from OCR lines in reading order."""
    if not lines:
        raise ExtractionFailure("No text lines found in the document")

    date_index = _find_date_index(lines)
    totals = _extract_totals(lines)
    items = _extract_items(lines, date_index)
    confidence = sum(line.confidence for line in lines) / len(lines)

    receipt = ExtractedReceipt(
        restaurant_name=_find_restaurant_name(lines),
        date=lines[date_index].text.strip() if date_index is not None else None,
        items=items,
        subtotal=totals.get("subtotal", 0),
        tax=totals.get("tax", 0),
        tip=totals.get("tip", 0),
        total=totals.get("total", 0),
        confidence=confidence,
        extraction_source="fallback",
    )
    logger.info(
        "Fallback parse: %d lines, %d items, confidence=%.1f",
        len(lines), len(items), confidence,
    )
    return receipt
