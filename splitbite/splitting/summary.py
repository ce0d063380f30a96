"""
Plain-text shareable summary of a split.
"""
from __future__ import annotations

from splitbite.schemas import Receipt, SplitCalculation

FOOTER = "Processed with SplitBite"


def _money(amount: float) -> str:
    return f"${amount:.2f}"


def generate_shareable_summary(receipt: Receipt, splits: list[SplitCalculation]) -> str:
    """Render restaurant, date and total, then each person's total and item shares."""
    lines = [
        receipt.restaurant_name,
        f"Date: {receipt.date.isoformat() if receipt.date else 'Unknown'}",
        f"Total: {_money(receipt.total)}",
        "",
        f"Split between {len(splits)} {'person' if len(splits) == 1 else 'people'}:",
    ]
    for split in splits:
        lines.append(f"- {split.name}: {_money(split.total)}")
        for share in split.items:
            marker = " (shared)" if share.shared_with else ""
            lines.append(f"  * {share.item_name}: {_money(share.share_amount)}{marker}")
    lines.extend(["", FOOTER])
    return "\n".join(lines)
