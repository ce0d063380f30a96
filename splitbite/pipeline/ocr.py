"""
OCR collaborator.

``OcrClient.detect_lines(locator)`` returns the receipt's text lines in reading
order with a 0..100 confidence each. The Tesseract adapter resolves the
locator to ``<root>/<bucket>/<key>`` on local storage.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

import pytesseract
from PIL import Image, UnidentifiedImageError

from splitbite.errors import (
    ConfigurationError,
    DocumentNotFoundError,
    ExtractionFailure,
    TransientOcrError,
)
from splitbite.schemas import ImageLocator, RawTextLine

logger = logging.getLogger(__name__)


class OcrClient(Protocol):
    def detect_lines(self, locator: ImageLocator) -> list[RawTextLine]:
        ...


def group_words_into_lines(data: dict[str, list]) -> list[RawTextLine]:
    """Collapse ``image_to_data`` word rows into lines.

    Words are keyed by (page, block, paragraph, line); the line confidence is
    the mean of its words' confidences, skipping Tesseract's ``-1`` markers.
    """
    grouped: dict[tuple[int, int, int, int], tuple[list[str], list[float]]] = {}
    for idx, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue
        key = (
            int(data["page_num"][idx]),
            int(data["block_num"][idx]),
            int(data["par_num"][idx]),
            int(data["line_num"][idx]),
        )
        words, confs = grouped.setdefault(key, ([], []))
        words.append(word)
        conf = float(data["conf"][idx])
        if conf >= 0:
            confs.append(conf)

    lines: list[RawTextLine] = []
    for words, confs in grouped.values():
        confidence = sum(confs) / len(confs) if confs else 0.0
        lines.append(
            RawTextLine(text=" ".join(words), confidence=min(100.0, max(0.0, confidence)))
        )
    return lines


class TesseractOcrClient:
    def __init__(self, image_root: str, lang: str = "eng", timeout: float = 30.0) -> None:
        self.image_root = Path(image_root).resolve()
        self.lang = lang
        self.timeout = timeout

    def resolve(self, locator: ImageLocator) -> Path:
        path = (self.image_root / locator.bucket / locator.key).resolve()
        if self.image_root not in path.parents:
            raise DocumentNotFoundError(
                f"Image locator escapes storage root: {locator.bucket}/{locator.key}"
            )
        return path

    def detect_lines(self, locator: ImageLocator) -> list[RawTextLine]:
        path = self.resolve(locator)
        if not path.is_file():
            raise DocumentNotFoundError(f"Receipt image not found: {locator.bucket}/{locator.key}")

        try:
            with Image.open(path) as image:
                data = pytesseract.image_to_data(
                    image,
                    lang=self.lang,
                    config="--psm 6",
                    timeout=self.timeout,
                    output_type=pytesseract.Output.DICT,
                )
        except UnidentifiedImageError as exc:
            raise ExtractionFailure(f"File is not a readable image: {path.name}") from exc
        except pytesseract.TesseractNotFoundError as exc:
            raise ConfigurationError("Tesseract OCR engine is not installed or not on PATH") from exc
        except (pytesseract.TesseractError, RuntimeError, OSError) as exc:
            # RuntimeError is pytesseract's timeout signal
            raise TransientOcrError(f"Failed to detect text from receipt: {exc}") from exc

        lines = group_words_into_lines(data)
        logger.info("OCR detected %d lines in %s/%s", len(lines), locator.bucket, locator.key)
        return lines
