"""
SplitBite application settings.
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./data/splitbite.db"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # File storage
    DATA_DIR: str = "./data"

    # LLM receipt parser ("openai" or "none" to always use the fallback parser)
    LLM_PROVIDER: str = "openai"
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TEMPERATURE: float = 0.1
    LLM_MAX_TOKENS: int = 2000
    LLM_TIMEOUT_SECONDS: float = 30.0

    # OCR (image locators resolve to OCR_IMAGE_ROOT/<bucket>/<key>)
    OCR_IMAGE_ROOT: str = "./data/uploads"
    OCR_LANG: str = "eng"
    OCR_TIMEOUT_SECONDS: float = 30.0

    # API
    RECEIPTS_PAGE_SIZE: int = 10

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
