"""
LLM-backed structured receipt parser.

Sends the raw OCR text to a text-completion collaborator with an explicit
output schema, then validates and repairs the reply into an
``ExtractedReceipt``. Unusable replies raise ``StructuredParseError`` so the
orchestrator can fall back; they never crash the request.
"""
from __future__ import annotations

import json
import logging
import math
from typing import Any, Optional

from splitbite.errors import StructuredParseError
from splitbite.pipeline.completion import TextCompletionClient
from splitbite.schemas import ExtractedItem, ExtractedReceipt

logger = logging.getLogger(__name__)

STRUCTURED_CONFIDENCE = 95.0
UNKNOWN_ITEM = "Unknown Item"

PROMPT_TEMPLATE = """\
Parse this receipt text from OCR output and extract the following information in valid JSON format:

OCR OUTPUT:
{ocr_text}

Return ONLY a valid JSON object with this exact structure:
{{
  "restaurantName": "string - name of the restaurant",
  "restaurantAddress": "string - address if available, or null",
  "date": "string - date in YYYY-MM-DD format, or null if not found",
  "items": [
    {{
      "name": "string - item name",
      "quantity": number - quantity (default 1 if not specified),
      "price": number - individual item price (not total for quantity)
    }}
  ],
  "subtotal": number - subtotal amount,
  "tax": number - tax amount,
  "tip": number - tip amount (0 if not found),
  "total": number - total amount
}}

RULES:
1. Return ONLY valid JSON, no other text
2. For items, extract the price of ONE unit, not the line total for multiple quantities
3. If quantity is not specified, assume 1
4. Clean up item names (remove extra characters, numbers that aren't quantities)
5. Convert all prices to numbers (remove currency symbols and thousands separators)
6. If any numeric value is not found, use 0

Example: "2x Burger $15.00" becomes {{"name": "Burger", "quantity": 2, "price": 7.50}}
"""


def build_prompt(ocr_text: str) -> str:
    return PROMPT_TEMPLATE.format(ocr_text=ocr_text)


def extract_first_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` block in *text*, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:idx + 1]
        # unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def _non_negative(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.replace("$", "").replace(",", "").strip()
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return max(0.0, number)


def _quantity(value: Any) -> int:
    return max(1, int(_non_negative(value)))


def _optional_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _first_key(data: dict, *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def repair_payload(data: Any) -> ExtractedReceipt:
    """Validate a decoded reply and clamp it into an ``ExtractedReceipt``."""
    if not isinstance(data, dict):
        raise StructuredParseError("Structured reply is not a JSON object")

    name = _optional_text(_first_key(data, "restaurantName", "restaurant_name"))
    if name is None:
        raise StructuredParseError("Structured reply lacks a restaurant name")

    raw_items = data.get("items")
    if not isinstance(raw_items, list):
        raise StructuredParseError("Structured reply has no items array")

    items: list[ExtractedItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        items.append(
            ExtractedItem(
                name=_optional_text(raw.get("name")) or UNKNOWN_ITEM,
                quantity=_quantity(raw.get("quantity", 1)),
                price=_non_negative(raw.get("price")),
            )
        )

    return ExtractedReceipt(
        restaurant_name=name,
        restaurant_address=_optional_text(
            _first_key(data, "restaurantAddress", "restaurant_address")
        ),
        date=_optional_text(data.get("date")),
        items=items,
        subtotal=_non_negative(data.get("subtotal")),
        tax=_non_negative(data.get("tax")),
        tip=_non_negative(data.get("tip")),
        total=_non_negative(data.get("total")),
        confidence=STRUCTURED_CONFIDENCE,
        extraction_source="llm",
    )


class StructuredParser:
    def __init__(self, client: TextCompletionClient) -> None:
        self.client = client

    def parse(self, ocr_text: str) -> ExtractedReceipt:
        response = self.client.complete(build_prompt(ocr_text))

        blob = extract_first_json_object(response)
        if blob is None:
            raise StructuredParseError("No JSON object found in structured reply")
        try:
            data = json.loads(blob)
        except (ValueError, RecursionError) as exc:
            # JSONDecodeError, oversized integer literals and runaway nesting
            raise StructuredParseError(f"Structured reply is not valid JSON: {exc}") from exc

        receipt = repair_payload(data)
        logger.info(
            "Structured parse: restaurant=%r, %d items", receipt.restaurant_name, len(receipt.items)
        )
        return receipt
