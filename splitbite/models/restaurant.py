"""
Per-user restaurant spend aggregate.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Float, Integer, String, Text, UniqueConstraint

from splitbite.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RestaurantModel(Base):
    __tablename__ = "restaurants"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_restaurants_user_name"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    address = Column(String)
    visit_count = Column(Integer, nullable=False, default=0)
    total_spent = Column(Float, nullable=False, default=0.0)  # finalized user shares only
    last_visit = Column(Date)
    is_favorite = Column(Boolean, nullable=False, default=False)
    notes = Column(Text)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)
