"""
SplitBite receipt endpoints.

POST   /api/receipts                           extract from a stored image, persist
GET    /api/receipts                           paginated list
GET    /api/receipts/{id}                      one receipt
PUT    /api/receipts/{id}                      manual corrections after OCR
DELETE /api/receipts/{id}                      delete, reversing its ledger effect
POST   /api/receipts/{id}/people               replace the dining party
PUT    /api/receipts/{id}/items/{index}/assign assign one item
PUT    /api/receipts/{id}/distribution         tax / tip distribution modes
GET    /api/receipts/{id}/split                splits, stats and completeness
PUT    /api/receipts/{id}/finalize             commit the owner's share to the ledger
GET    /api/receipts/{id}/summary              shareable text summary
"""
from __future__ import annotations

import logging
import math
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from splitbite import ledger
from splitbite.config import settings
from splitbite.database import get_db
from splitbite.dependencies import get_current_user, get_ocr_client, get_structured_parser
from splitbite.errors import NotFoundError, StateError
from splitbite.models import ReceiptModel
from splitbite.pipeline import ReceiptExtractor
from splitbite.pipeline.ocr import OcrClient
from splitbite.pipeline.structured import StructuredParser
from splitbite.schemas import ImageLocator, Receipt
from splitbite.schemas.api import (
    AssignRequest,
    AssignResponse,
    DistributionRequest,
    DistributionResponse,
    FinalizeRequest,
    FinalizeResponse,
    MessageResponse,
    Pagination,
    PeopleRequest,
    PeopleResponse,
    ReceiptCreateRequest,
    ReceiptListResponse,
    ReceiptResponse,
    ReceiptUpdateRequest,
    SplitResponse,
    SummaryResponse,
)
from splitbite.splitting import (
    calculate_split,
    generate_shareable_summary,
    is_complete,
    receipt_stats,
    savings_vs_equal,
    unassigned_items,
)
from splitbite.splitting import editor

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_row(db: Session, user_id: str, receipt_id: str) -> ReceiptModel:
    row = (
        db.query(ReceiptModel)
        .filter(ReceiptModel.id == receipt_id, ReceiptModel.user_id == user_id)
        .first()
    )
    if not row:
        logger.warning("Receipt not found: %s", receipt_id)
        raise NotFoundError("Receipt not found")
    return row


def _save(db: Session, row: ReceiptModel, snapshot: Receipt) -> None:
    row.store(snapshot)
    db.commit()
    db.refresh(row)


def _to_response(row: ReceiptModel) -> ReceiptResponse:
    return ReceiptResponse(
        **row.snapshot().model_dump(),
        id=row.id,
        image=ImageLocator(bucket=row.image_bucket, key=row.image_key),
        processing_status=row.processing_status,
        ocr_confidence=row.ocr_confidence,
        extraction_source=row.extraction_source,
        extraction_note=row.extraction_note,
        finalized_share=row.finalized_share,
        version=row.version,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# ── POST /api/receipts ───────────────────────────────────────────────────
@router.post("/receipts", response_model=ReceiptResponse, status_code=201)
def create_receipt(
    req: ReceiptCreateRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    ocr: OcrClient = Depends(get_ocr_client),
    parser: Optional[StructuredParser] = Depends(get_structured_parser),
):
    logger.info("Upload: user=%s  image=%s/%s", user_id, req.image.bucket, req.image.key)

    extractor = ReceiptExtractor(ocr, parser)
    outcome = extractor.run(req.image)
    extracted = outcome.unwrap()

    snapshot = editor.receipt_from_extraction(extracted)
    row = ReceiptModel(
        id=uuid.uuid4().hex,
        user_id=user_id,
        image_bucket=req.image.bucket,
        image_key=req.image.key,
        processing_status=extractor.status.value,
        ocr_confidence=extracted.confidence,
        extraction_source=extracted.extraction_source,
        extraction_note=getattr(outcome, "reason", None) or None,
        extraction_json=extracted.model_dump(mode="json"),
        is_complete=False,
    )
    row.store(snapshot)
    db.add(row)
    ledger.record_visit(db, user_id, snapshot.restaurant_name, snapshot.date, snapshot.restaurant_address)
    db.commit()
    db.refresh(row)

    logger.info(
        "Stored receipt %s: %s, %d items via %s",
        row.id, row.restaurant_name, len(snapshot.items), row.extraction_source,
    )
    return _to_response(row)


# ── GET /api/receipts ────────────────────────────────────────────────────
@router.get("/receipts", response_model=ReceiptListResponse)
def list_receipts(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    limit = limit or settings.RECEIPTS_PAGE_SIZE
    query = db.query(ReceiptModel).filter(ReceiptModel.user_id == user_id)
    total = query.count()
    rows = (
        query.order_by(ReceiptModel.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = math.ceil(total / limit) if total else 0
    logger.info("Found %d receipts for %s (page %d)", total, user_id, page)
    return ReceiptListResponse(
        receipts=[_to_response(r) for r in rows],
        pagination=Pagination(
            current_page=page,
            total_pages=total_pages,
            total_receipts=total,
            has_next=page < total_pages,
            has_prev=page > 1,
        ),
    )


# ── GET /api/receipts/{receipt_id} ───────────────────────────────────────
@router.get("/receipts/{receipt_id}", response_model=ReceiptResponse)
def get_receipt(
    receipt_id: str,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _to_response(_get_row(db, user_id, receipt_id))


# ── PUT /api/receipts/{receipt_id} ───────────────────────────────────────
@router.put("/receipts/{receipt_id}", response_model=ReceiptResponse)
def update_receipt(
    receipt_id: str,
    req: ReceiptUpdateRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = _get_row(db, user_id, receipt_id)
    changes = req.model_dump(exclude_unset=True)
    snapshot = editor.apply_corrections(row.snapshot(), changes)

    if snapshot.restaurant_name != row.restaurant_name:
        ledger.move_receipt(db, row, snapshot.restaurant_name)
    _save(db, row, snapshot)
    logger.info("Corrected receipt %s: %s", receipt_id, ", ".join(sorted(changes)) or "no changes")
    return _to_response(row)


# ── DELETE /api/receipts/{receipt_id} ────────────────────────────────────
@router.delete("/receipts/{receipt_id}", response_model=MessageResponse)
def delete_receipt(
    receipt_id: str,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = _get_row(db, user_id, receipt_id)
    ledger.unfinalize_on_delete(db, row)
    db.delete(row)
    db.commit()
    logger.info("Deleted receipt %s", receipt_id)
    return MessageResponse(message="Receipt deleted successfully")


# ── POST /api/receipts/{receipt_id}/people ───────────────────────────────
@router.post("/receipts/{receipt_id}/people", response_model=PeopleResponse)
def set_people(
    receipt_id: str,
    req: PeopleRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = _get_row(db, user_id, receipt_id)
    snapshot = editor.replace_people(row.snapshot(), req.people)
    _save(db, row, snapshot)
    logger.info("Receipt %s: %d people", receipt_id, len(snapshot.people))
    return PeopleResponse(people=snapshot.people, splits=snapshot.split_calculations)


# ── PUT /api/receipts/{receipt_id}/items/{index}/assign ──────────────────
@router.put("/receipts/{receipt_id}/items/{index}/assign", response_model=AssignResponse)
def assign_item(
    receipt_id: str,
    index: int,
    req: AssignRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = _get_row(db, user_id, receipt_id)
    snapshot = editor.assign_item(row.snapshot(), index, req.assigned_to, req.notes)
    _save(db, row, snapshot)
    logger.info("Receipt %s: item %d assigned to %s", receipt_id, index, req.assigned_to)
    return AssignResponse(
        item=snapshot.items[index],
        splits=snapshot.split_calculations,
        all_assigned=is_complete(snapshot),
    )


# ── PUT /api/receipts/{receipt_id}/distribution ──────────────────────────
@router.put("/receipts/{receipt_id}/distribution", response_model=DistributionResponse)
def set_distribution(
    receipt_id: str,
    req: DistributionRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = _get_row(db, user_id, receipt_id)
    snapshot = editor.set_distribution(row.snapshot(), req.tax_distribution, req.tip_distribution)
    _save(db, row, snapshot)
    return DistributionResponse(
        splits=snapshot.split_calculations,
        tax_distribution=snapshot.tax_distribution,
        tip_distribution=snapshot.tip_distribution,
    )


# ── GET /api/receipts/{receipt_id}/split ─────────────────────────────────
@router.get("/receipts/{receipt_id}/split", response_model=SplitResponse)
def get_split(
    receipt_id: str,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = _get_row(db, user_id, receipt_id)
    snapshot = row.snapshot()
    splits = calculate_split(snapshot)
    return SplitResponse(
        splits=splits,
        stats=receipt_stats(snapshot, splits),
        unassigned_items=unassigned_items(snapshot),
        savings=savings_vs_equal(snapshot, splits),
        all_assigned=is_complete(snapshot),
        is_complete=snapshot.is_complete,
    )


# ── PUT /api/receipts/{receipt_id}/finalize ──────────────────────────────
@router.put("/receipts/{receipt_id}/finalize", response_model=FinalizeResponse)
def finalize_receipt(
    receipt_id: str,
    req: Optional[FinalizeRequest] = None,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = _get_row(db, user_id, receipt_id)
    amount = req.user_amount if req else None
    if amount is None and row.is_complete:
        amount = row.finalized_share or 0.0
    elif amount is None:
        snapshot = row.snapshot()
        owner = snapshot.owner()
        if owner is None:
            raise StateError("user_amount is required when the receipt has no owner")
        amount = next(s.total for s in calculate_split(snapshot) if s.person_id == owner.id)

    updated = ledger.finalize(db, row, amount)
    return FinalizeResponse(
        receipt_id=row.id,
        user_amount=row.finalized_share if row.finalized_share is not None else amount,
        ledger_updated=updated,
    )


# ── GET /api/receipts/{receipt_id}/summary ───────────────────────────────
@router.get("/receipts/{receipt_id}/summary", response_model=SummaryResponse)
def get_summary(
    receipt_id: str,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = _get_row(db, user_id, receipt_id)
    snapshot = row.snapshot()
    splits = calculate_split(snapshot)
    return SummaryResponse(summary=generate_shareable_summary(snapshot, splits), splits=splits)
