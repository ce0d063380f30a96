"""
Shared pytest fixtures: in-memory SQLite, fake OCR / LLM collaborators and a
FastAPI TestClient wired to them.
"""
import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from splitbite.database import Base, get_db
from splitbite.dependencies import get_ocr_client, get_structured_parser
from splitbite.main import app
from splitbite.models import ReceiptModel, RestaurantModel  # noqa: F401  register models
from splitbite.pipeline.structured import StructuredParser
from splitbite.schemas import RawTextLine

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)


JOES_DINER_LINES = [
    RawTextLine(text="Joe's Diner", confidence=97.0),
    RawTextLine(text="01/15/2024", confidence=92.0),
    RawTextLine(text="Burger $12.99", confidence=90.0),
    RawTextLine(text="Fries $4.50", confidence=91.0),
    RawTextLine(text="Subtotal $17.49", confidence=95.0),
    RawTextLine(text="Tax $1.40", confidence=94.0),
    RawTextLine(text="Total $18.89", confidence=96.0),
]

LLM_REPLY = json.dumps(
    {
        "restaurantName": "Joe's Diner",
        "restaurantAddress": "12 Main St",
        "date": "2024-01-15",
        "items": [
            {"name": "Burger", "quantity": 1, "price": 12.00},
            {"name": "Fries", "quantity": 2, "price": 2.25},
        ],
        "subtotal": 16.50,
        "tax": 1.50,
        "tip": 2.00,
        "total": 20.00,
    }
)


class FakeOcr:
    def __init__(self, lines=None, error=None):
        self.lines = list(lines or [])
        self.error = error
        self.calls = []

    def detect_lines(self, locator):
        self.calls.append(locator)
        if self.error is not None:
            raise self.error
        return list(self.lines)


class FakeCompletion:
    def __init__(self, response="", error=None):
        self.response = response
        self.error = error
        self.prompts = []

    def complete(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def other_db():
    """A second session on the same database, for concurrent-writer scenarios."""
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def fake_ocr():
    return FakeOcr(JOES_DINER_LINES)


@pytest.fixture()
def fake_llm():
    return FakeCompletion(LLM_REPLY)


@pytest.fixture()
def client(db, fake_ocr, fake_llm):
    def _override():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override
    app.dependency_overrides[get_ocr_client] = lambda: fake_ocr
    app.dependency_overrides[get_structured_parser] = lambda: StructuredParser(fake_llm)
    with TestClient(app, headers={"X-User-Id": "user-1"}) as c:
        yield c
    app.dependency_overrides.clear()
