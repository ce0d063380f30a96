"""
Finalization ledger: per-user, per-restaurant spend.

A receipt's owner share is added to its restaurant aggregate exactly once, when
the receipt is finalized. Deleting a finalized receipt takes the recorded share
back out.
"""
from __future__ import annotations

import logging
import math
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from splitbite.errors import StateError
from splitbite.models import ReceiptModel, RestaurantModel

logger = logging.getLogger(__name__)


def _validate_amount(amount) -> float:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise StateError("Valid user amount is required")
    if not math.isfinite(amount) or amount < 0:
        raise StateError("Valid user amount is required")
    return float(amount)


def get_restaurant(db: Session, user_id: str, name: str) -> Optional[RestaurantModel]:
    return (
        db.query(RestaurantModel)
        .filter(RestaurantModel.user_id == user_id, RestaurantModel.name == name)
        .first()
    )


def record_visit(
    db: Session,
    user_id: str,
    name: str,
    visit_date: Optional[date] = None,
    address: Optional[str] = None,
) -> RestaurantModel:
    """Count one more visit. Spend is only added on finalization."""
    restaurant = get_restaurant(db, user_id, name)
    if restaurant is None:
        restaurant = RestaurantModel(
            id=uuid.uuid4().hex,
            user_id=user_id,
            name=name,
            address=address,
            visit_count=1,
            total_spent=0.0,
            last_visit=visit_date or date.today(),
        )
        db.add(restaurant)
        db.flush()
        logger.info("New restaurant in history: %s", name)
    else:
        restaurant.visit_count = (restaurant.visit_count or 0) + 1
        restaurant.last_visit = visit_date or date.today()
        if address and not restaurant.address:
            restaurant.address = address
        logger.info("Visit recorded: %s (%d visits)", name, restaurant.visit_count)
    return restaurant


def finalize(db: Session, row: ReceiptModel, user_share_amount: float) -> bool:
    """
    Mark *row* complete and add *user_share_amount* to its restaurant's spend.

    Returns True when the ledger was updated, False when the receipt had
    already been finalized (the amount is then ignored).
    """
    amount = _validate_amount(user_share_amount)

    result = db.execute(
        update(ReceiptModel)
        .where(ReceiptModel.id == row.id, ReceiptModel.is_complete.is_(False))
        .values(
            is_complete=True,
            finalized_share=amount,
            version=ReceiptModel.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.commit()
        db.refresh(row)
        logger.info("Receipt %s already finalized for %s, skipping restaurant update",
                    row.id, row.restaurant_name)
        return False

    restaurant = get_restaurant(db, row.user_id, row.restaurant_name)
    if restaurant is None:
        # history was cleared after upload; the receipt still counts as a visit
        restaurant = record_visit(db, row.user_id, row.restaurant_name, row.date, row.restaurant_address)
    old_total = restaurant.total_spent or 0.0
    restaurant.total_spent = old_total + amount
    db.commit()
    db.refresh(row)

    logger.info(
        "Restaurant %s: total %.2f -> %.2f (user amount %.2f)",
        restaurant.name, old_total, restaurant.total_spent, amount,
    )
    return True


def unfinalize_on_delete(db: Session, row: ReceiptModel) -> None:
    """
    Reverse *row*'s effect on its restaurant aggregate. The caller deletes the
    receipt and commits.
    """
    restaurant = get_restaurant(db, row.user_id, row.restaurant_name)
    if restaurant is None:
        return

    restaurant.visit_count = max(0, (restaurant.visit_count or 0) - 1)

    subtract = 0.0
    if row.is_complete and row.finalized_share is not None:
        subtract = row.finalized_share
        logger.info("Subtracting finalized share %.2f for receipt %s", subtract, row.id)
    else:
        logger.info("Receipt %s not finalized, no amount to subtract", row.id)
    restaurant.total_spent = max(0.0, (restaurant.total_spent or 0.0) - subtract)

    if restaurant.visit_count == 0:
        db.delete(restaurant)
        logger.info("Restaurant %s removed from history (no more visits)", restaurant.name)
        return

    most_recent = (
        db.query(ReceiptModel)
        .filter(
            ReceiptModel.user_id == row.user_id,
            ReceiptModel.restaurant_name == row.restaurant_name,
            ReceiptModel.id != row.id,
        )
        .order_by(ReceiptModel.date.desc())
        .first()
    )
    if most_recent is not None and most_recent.date is not None:
        restaurant.last_visit = most_recent.date


def move_receipt(db: Session, row: ReceiptModel, new_name: str) -> None:
    """Move *row*'s visit (and finalized share) to the aggregate for *new_name*."""
    old_name = row.restaurant_name
    unfinalize_on_delete(db, row)
    row.restaurant_name = new_name
    restaurant = record_visit(db, row.user_id, new_name, row.date, row.restaurant_address)
    if row.is_complete and row.finalized_share:
        restaurant.total_spent = (restaurant.total_spent or 0.0) + row.finalized_share
    logger.info("Receipt %s moved from %s to %s", row.id, old_name, new_name)


def recalculate_totals(db: Session, user_id: str) -> int:
    """Rebuild every aggregate's ``total_spent`` from finalized receipts."""
    restaurants = db.query(RestaurantModel).filter(RestaurantModel.user_id == user_id).all()
    for restaurant in restaurants:
        shares = (
            db.query(ReceiptModel.finalized_share)
            .filter(
                ReceiptModel.user_id == user_id,
                ReceiptModel.restaurant_name == restaurant.name,
                ReceiptModel.is_complete.is_(True),
            )
            .all()
        )
        new_total = sum(share or 0.0 for (share,) in shares)
        logger.info("Restaurant %s: %.2f -> %.2f", restaurant.name, restaurant.total_spent or 0.0, new_total)
        restaurant.total_spent = new_total
    db.commit()
    logger.info("Recalculated %d restaurant totals for user %s", len(restaurants), user_id)
    return len(restaurants)
