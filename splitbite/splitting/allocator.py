"""
Split allocation engine.

``calculate_split`` turns a receipt snapshot into one ``SplitCalculation`` per
person. It is a pure fold over the items: no input mutation, and identical
snapshots give identical results.
"""
from __future__ import annotations

from splitbite.errors import ValidationError
from splitbite.schemas import (
    DistributionMode,
    ItemShare,
    PersonSavings,
    Receipt,
    SplitCalculation,
)


def _item_shares(receipt: Receipt) -> dict[str, list[ItemShare]]:
    """Per-person item contributions, in item order."""
    known = {p.id for p in receipt.people}
    shares: dict[str, list[ItemShare]] = {p.id: [] for p in receipt.people}
    for item in receipt.items:
        if not item.assigned_to:
            continue
        line_total = item.price * item.quantity
        per_person = line_total / len(item.assigned_to)
        for person_id in item.assigned_to:
            if person_id not in known:
                continue
            shares[person_id].append(
                ItemShare(
                    item_name=item.name,
                    full_price=line_total,
                    share_amount=per_person,
                    shared_with=[pid for pid in item.assigned_to if pid != person_id],
                )
            )
    return shares


def _distribute(
    amount: float,
    mode: DistributionMode,
    person_subtotal: float,
    allocated_subtotal: float,
    head_count: int,
) -> float:
    if mode == "equal":
        return amount / head_count
    if allocated_subtotal == 0:
        return 0.0
    return (person_subtotal / allocated_subtotal) * amount


def calculate_split(receipt: Receipt) -> list[SplitCalculation]:
    """Allocate item costs, then tax and tip, to every person on *receipt*.

    Unassigned items are charged to nobody. In proportional mode tax and tip
    follow each person's share of the *assigned* subtotal.
    """
    if not receipt.people:
        raise ValidationError("Receipt has no people to split between")

    shares = _item_shares(receipt)
    subtotals = {pid: sum(s.share_amount for s in person_shares) for pid, person_shares in shares.items()}
    allocated_subtotal = sum(subtotals.values())
    head_count = len(receipt.people)

    splits: list[SplitCalculation] = []
    for person in receipt.people:
        subtotal = subtotals[person.id]
        tax_share = _distribute(
            receipt.tax, receipt.tax_distribution, subtotal, allocated_subtotal, head_count
        )
        tip_share = _distribute(
            receipt.tip, receipt.tip_distribution, subtotal, allocated_subtotal, head_count
        )
        splits.append(
            SplitCalculation(
                person_id=person.id,
                name=person.name,
                subtotal=subtotal,
                tax_share=tax_share,
                tip_share=tip_share,
                total=subtotal + tax_share + tip_share,
                items=shares[person.id],
            )
        )
    return splits


def savings_vs_equal(receipt: Receipt, splits: list[SplitCalculation]) -> list[PersonSavings]:
    """How much each person saves compared with splitting the total evenly."""
    if not splits:
        return []
    equal_share = receipt.total / len(splits)
    return [PersonSavings(person_id=s.person_id, savings=equal_share - s.total) for s in splits]
