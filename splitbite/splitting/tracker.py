"""
Completion tracking: read-only views over a receipt's assignment state.
"""
from __future__ import annotations

from splitbite.schemas import Receipt, ReceiptStats, SplitCalculation, UnassignedItem


def is_complete(receipt: Receipt) -> bool:
    """True iff the receipt has items and every one is assigned to someone."""
    if not receipt.items:
        return False
    return all(item.assigned_to for item in receipt.items)


def unassigned_items(receipt: Receipt) -> list[UnassignedItem]:
    return [
        UnassignedItem(name=item.name, price=item.price, quantity=item.quantity)
        for item in receipt.items
        if not item.assigned_to
    ]


def receipt_stats(receipt: Receipt, splits: list[SplitCalculation]) -> ReceiptStats:
    total_items = len(receipt.items)
    assigned = sum(1 for item in receipt.items if item.assigned_to)
    shared = sum(1 for item in receipt.items if len(item.assigned_to) > 1)
    totals = [s.total for s in splits]
    return ReceiptStats(
        total_items=total_items,
        assigned_items=assigned,
        unassigned_items=total_items - assigned,
        shared_items=shared,
        average_per_person=sum(totals) / len(totals) if totals else 0.0,
        highest_amount=max(totals, default=0.0),
        lowest_amount=min(totals, default=0.0),
        completion_percentage=(assigned / total_items) * 100 if total_items else 0.0,
    )
