"""
SplitBite extraction pipeline.

Orchestrates: OCR → structured (LLM) parse → fallback parse on failure.
"""
import logging
from typing import Optional

from splitbite.errors import ExtractionFailure
from splitbite.pipeline import fallback
from splitbite.pipeline.ocr import OcrClient
from splitbite.pipeline.structured import StructuredParser
from splitbite.schemas import (
    ErrorBody,
    ExtractionOutcome,
    FailedOutcome,
    FallbackOutcome,
    ImageLocator,
    ProcessingStatus,
    StructuredOutcome,
)

logger = logging.getLogger(__name__)


def _failed(exc: ExtractionFailure) -> FailedOutcome:
    return FailedOutcome(error=ErrorBody(error=exc.kind, message=exc.message))


def extract_receipt(
    locator: ImageLocator,
    ocr: OcrClient,
    parser: Optional[StructuredParser],
) -> ExtractionOutcome:
    """Run the extraction pipeline for one stored image.

    Returns a tagged outcome: ``structured``, ``fallback`` (with the reason the
    structured path was skipped) or ``failed``. ``ConfigurationError`` is not
    caught.
    """
    logger.info("Extraction start: OCR %s/%s", locator.bucket, locator.key)
    try:
        lines = ocr.detect_lines(locator)
    except ExtractionFailure as exc:
        logger.error("OCR failed, nothing to fall back on: %s", exc.message)
        return _failed(exc)

    if parser is None:
        reason = "structured parser unavailable"
    else:
        logger.info("Extraction: structured parse of %d lines", len(lines))
        ocr_text = "\n".join(line.text for line in lines if line.text.strip())
        try:
            return StructuredOutcome(data=parser.parse(ocr_text))
        except ExtractionFailure as exc:
            reason = exc.message

    logger.warning("Extraction: falling back to line parser: %s", reason)
    try:
        data = fallback.parse_lines(lines)
    except ExtractionFailure as exc:
        logger.error("Fallback parse failed: %s", exc.message)
        return _failed(exc)
    return FallbackOutcome(data=data, reason=reason)


class ReceiptExtractor:
    """``extract_receipt`` plus the pending → processing → completed | failed status."""

    def __init__(self, ocr: OcrClient, parser: Optional[StructuredParser]) -> None:
        self.ocr = ocr
        self.parser = parser
        self.status = ProcessingStatus.PENDING

    def run(self, locator: ImageLocator) -> ExtractionOutcome:
        self.status = ProcessingStatus.PROCESSING
        try:
            outcome = extract_receipt(locator, self.ocr, self.parser)
        except Exception:
            self.status = ProcessingStatus.FAILED
            raise
        self.status = (
            ProcessingStatus.FAILED if outcome.kind == "failed" else ProcessingStatus.COMPLETED
        )
        logger.info("Extraction %s (%s)", self.status.value, outcome.kind)
        return outcome
