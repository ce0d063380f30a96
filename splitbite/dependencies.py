"""
FastAPI dependencies: caller identity and the extraction collaborators.

Tests override ``get_ocr_client`` / ``get_structured_parser`` with fakes.
"""
from typing import Optional

from fastapi import Header

from splitbite.config import settings
from splitbite.errors import ConfigurationError, UnauthorizedError
from splitbite.pipeline.completion import OpenAICompletionClient
from splitbite.pipeline.ocr import OcrClient, TesseractOcrClient
from splitbite.pipeline.structured import StructuredParser


def get_current_user(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> str:
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError("X-User-Id header is required")
    return x_user_id.strip()


def get_ocr_client() -> OcrClient:
    return TesseractOcrClient(
        image_root=settings.OCR_IMAGE_ROOT,
        lang=settings.OCR_LANG,
        timeout=settings.OCR_TIMEOUT_SECONDS,
    )


def get_structured_parser() -> Optional[StructuredParser]:
    provider = settings.LLM_PROVIDER.lower()
    if provider == "none":
        return None
    if provider != "openai":
        raise ConfigurationError(f"Unsupported LLM_PROVIDER: {settings.LLM_PROVIDER}")
    client = OpenAICompletionClient(
        api_key=settings.LLM_API_KEY,
        model=settings.LLM_MODEL,
        temperature=settings.LLM_TEMPERATURE,
        max_tokens=settings.LLM_MAX_TOKENS,
        timeout=settings.LLM_TIMEOUT_SECONDS,
    )
    return StructuredParser(client)
