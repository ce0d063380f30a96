"""
SQLAlchemy model for receipt persistence.

Queryable fields (owner, restaurant, date, finalization) are columns; the rest
of the editable snapshot lives in ``receipt_json``.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Float, Integer, JSON, String, Text

from splitbite.database import Base
from splitbite.schemas import Receipt

# Snapshot fields stored as columns rather than inside receipt_json
_COLUMN_FIELDS = {"restaurant_name", "restaurant_address", "date", "is_complete"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReceiptModel(Base):
    __tablename__ = "receipts"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    restaurant_name = Column(String, nullable=False, index=True)
    restaurant_address = Column(String)
    date = Column(Date)

    image_bucket = Column(String, nullable=False)
    image_key = Column(String, nullable=False)

    processing_status = Column(String, nullable=False, default="pending")
    ocr_confidence = Column(Float)
    extraction_source = Column(String)  # llm | fallback
    extraction_note = Column(Text)
    extraction_json = Column(JSON)  # raw ExtractedReceipt as produced by the pipeline

    receipt_json = Column(JSON, nullable=False)

    # Finalization flag and the share it added to the restaurant ledger
    is_complete = Column(Boolean, nullable=False, default=False)
    finalized_share = Column(Float)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def snapshot(self) -> Receipt:
        return Receipt.model_validate(
            {
                **(self.receipt_json or {}),
                "restaurant_name": self.restaurant_name,
                "restaurant_address": self.restaurant_address,
                "date": self.date,
                "is_complete": bool(self.is_complete),
            }
        )

    def store(self, snapshot: Receipt) -> None:
        """Write an edited snapshot back. ``is_complete`` is left to the ledger."""
        self.restaurant_name = snapshot.restaurant_name
        self.restaurant_address = snapshot.restaurant_address
        self.date = snapshot.date
        self.receipt_json = snapshot.model_dump(mode="json", exclude=_COLUMN_FIELDS)
