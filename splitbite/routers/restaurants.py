"""
Restaurant history endpoints.

GET    /api/restaurants                   aggregates, most recent visit first
DELETE /api/restaurants/{name}            forget one restaurant
DELETE /api/restaurants                   clear all history
PUT    /api/restaurants/{name}/favorite   toggle favorite
POST   /api/restaurants/recalculate       rebuild totals from finalized receipts
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from splitbite import ledger
from splitbite.database import get_db
from splitbite.dependencies import get_current_user
from splitbite.errors import NotFoundError
from splitbite.models import RestaurantModel
from splitbite.schemas.api import MessageResponse, RecalculateResponse, RestaurantResponse

logger = logging.getLogger(__name__)
router = APIRouter()

RESTAURANT_LIST_LIMIT = 50


def _to_response(row: RestaurantModel) -> RestaurantResponse:
    return RestaurantResponse(
        id=row.id,
        name=row.name,
        address=row.address,
        visit_count=row.visit_count,
        total_spent=row.total_spent,
        last_visit=row.last_visit,
        is_favorite=row.is_favorite,
        notes=row.notes,
    )


def _get_restaurant(db: Session, user_id: str, name: str) -> RestaurantModel:
    restaurant = ledger.get_restaurant(db, user_id, name)
    if restaurant is None:
        raise NotFoundError("Restaurant not found")
    return restaurant


# ── GET /api/restaurants ─────────────────────────────────────────────────
@router.get("/restaurants", response_model=list[RestaurantResponse])
def list_restaurants(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(RestaurantModel)
        .filter(RestaurantModel.user_id == user_id)
        .order_by(RestaurantModel.last_visit.desc())
        .limit(RESTAURANT_LIST_LIMIT)
        .all()
    )
    return [_to_response(r) for r in rows]


# ── POST /api/restaurants/recalculate ────────────────────────────────────
@router.post("/restaurants/recalculate", response_model=RecalculateResponse)
def recalculate(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return RecalculateResponse(updated=ledger.recalculate_totals(db, user_id))


# ── DELETE /api/restaurants ──────────────────────────────────────────────
@router.delete("/restaurants", response_model=MessageResponse)
def clear_restaurants(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    deleted = (
        db.query(RestaurantModel)
        .filter(RestaurantModel.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("Cleared restaurant history for %s (%d restaurants)", user_id, deleted)
    return MessageResponse(message=f"Cleared all restaurant history ({deleted} restaurants)")


# ── DELETE /api/restaurants/{name} ───────────────────────────────────────
@router.delete("/restaurants/{name}", response_model=MessageResponse)
def delete_restaurant(
    name: str,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    restaurant = _get_restaurant(db, user_id, name)
    db.delete(restaurant)
    db.commit()
    logger.info("Deleted restaurant %s from history", name)
    return MessageResponse(message="Restaurant deleted successfully")


# ── PUT /api/restaurants/{name}/favorite ─────────────────────────────────
@router.put("/restaurants/{name}/favorite", response_model=RestaurantResponse)
def toggle_favorite(
    name: str,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    restaurant = _get_restaurant(db, user_id, name)
    restaurant.is_favorite = not restaurant.is_favorite
    db.commit()
    db.refresh(restaurant)
    logger.info("Restaurant %s favorite=%s", name, restaurant.is_favorite)
    return _to_response(restaurant)
