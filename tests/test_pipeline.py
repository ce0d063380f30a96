"""
Unit tests for the extraction pipeline: classifier, fallback parser,
structured parser, collaborators and the orchestrator.
"""
import json

import httpx
import openai
import pytest

from splitbite.errors import (
    CompletionTransportError,
    ConfigurationError,
    DocumentNotFoundError,
    ExtractionFailure,
    StructuredParseError,
    TransientOcrError,
)
from splitbite.pipeline import ReceiptExtractor, extract_receipt
from splitbite.pipeline.classifier import (
    classify_totals_line,
    contains_price,
    first_amount,
    is_date_line,
    is_restaurant_name_candidate,
    parse_item_line,
)
from splitbite.pipeline.completion import OpenAICompletionClient
from splitbite.pipeline.fallback import parse_lines
from splitbite.pipeline.ocr import TesseractOcrClient, group_words_into_lines
from splitbite.pipeline.structured import (
    UNKNOWN_ITEM,
    StructuredParser,
    extract_first_json_object,
    repair_payload,
)
from splitbite.schemas import ImageLocator, ProcessingStatus, RawTextLine

LOCATOR = ImageLocator(bucket="receipts", key="user-1/joes.jpg")


def _lines(*texts, confidence=95.0):
    return [RawTextLine(text=t, confidence=confidence) for t in texts]


# =====================================================================
# Classifier
# =====================================================================
class TestClassifier:
    def test_contains_price(self):
        assert contains_price("Burger $12.99")
        assert contains_price("Table 4")
        assert not contains_price("Joe's Diner")

    def test_date_lines(self):
        assert is_date_line("01/15/2024")
        assert is_date_line("1-5-24")
        assert is_date_line("15.01.2024")
        assert is_date_line("Jan 15, 2024")
        assert not is_date_line("Burger $12.99")

    def test_restaurant_name_candidate(self):
        assert is_restaurant_name_candidate(RawTextLine(text="Joe's Diner", confidence=97))
        # too uncertain, too short, has a price, looks like a date
        assert not is_restaurant_name_candidate(RawTextLine(text="Joe's Diner", confidence=80))
        assert not is_restaurant_name_candidate(RawTextLine(text="Joe", confidence=99))
        assert not is_restaurant_name_candidate(RawTextLine(text="Burger $12.99", confidence=99))
        assert not is_restaurant_name_candidate(RawTextLine(text="01/15/2024", confidence=99))

    def test_totals_keywords(self):
        assert classify_totals_line("Subtotal $17.49") == "subtotal"
        assert classify_totals_line("SUB TOTAL 17.49") == "subtotal"
        assert classify_totals_line("Sales Tax 1.40") == "tax"
        assert classify_totals_line("Gratuity 3.00") == "tip"
        assert classify_totals_line("Total $18.89") == "total"
        assert classify_totals_line("Burger $12.99") is None

    def test_first_amount(self):
        assert first_amount("Tax $1.40") == 1.40
        assert first_amount("no digits") is None

    def test_item_with_quantity_prefix(self):
        item = parse_item_line("2x Burger $15.00")
        assert item.name == "Burger"
        assert item.quantity == 2
        assert item.price == 15.00

    def test_item_name_and_price(self):
        item = parse_item_line("Fries $4.50")
        assert item.name == "Fries"
        assert item.quantity == 1
        assert item.price == 4.50

    def test_not_an_item(self):
        assert parse_item_line("Thank you!") is None

    def test_trailing_quantity_stays_in_name(self):
        item = parse_item_line("Burger 2 $15.00")
        assert item.name == "Burger 2"
        assert item.quantity == 1
        assert item.price == 15.00

    def test_overflowing_numbers_ignored(self):
        huge = "9" * 400
        assert first_amount(f"Total ${huge}") is None
        assert parse_item_line(f"Burger ${huge}") is None
        item = parse_item_line(f"{huge}x Burger $4.00")
        assert item.quantity == 1
        assert item.price == 4.00

    def test_overflowing_lines_leave_receipt_storable(self):
        huge = "9" * 400
        receipt = parse_lines(
            [
                RawTextLine(text="Joe's Diner", confidence=97.0),
                RawTextLine(text=f"Burger ${huge}", confidence=90.0),
                RawTextLine(text="Fries $4.50", confidence=91.0),
                RawTextLine(text=f"Total ${huge}", confidence=96.0),
            ]
        )
        assert [i.name for i in receipt.items] == ["Fries"]
        assert receipt.total == 0


# =====================================================================
# Fallback parser
# =====================================================================
class TestFallbackParser:
    def test_joes_diner(self, fake_ocr):
        receipt = parse_lines(fake_ocr.lines)
        assert receipt.restaurant_name == "Joe's Diner"
        assert receipt.date == "01/15/2024"
        assert [(i.name, i.quantity, i.price) for i in receipt.items] == [
            ("Burger", 1, 12.99),
            ("Fries", 1, 4.50),
        ]
        assert receipt.subtotal == 17.49
        assert receipt.tax == 1.40
        assert receipt.total == 18.89
        assert receipt.extraction_source == "fallback"

    def test_confidence_is_mean_of_lines(self):
        lines = [RawTextLine(text="Cafe Luna", confidence=90), RawTextLine(text="Tea 3.00", confidence=70)]
        assert parse_lines(lines).confidence == pytest.approx(80.0)

    def test_name_prefers_highest_confidence(self):
        lines = [
            RawTextLine(text="Welcome friends", confidence=85),
            RawTextLine(text="Cafe Luna", confidence=99),
        ]
        assert parse_lines(lines).restaurant_name == "Cafe Luna"

    def test_no_name_candidate(self):
        receipt = parse_lines(_lines("Tea 3.00", confidence=99))
        assert receipt.restaurant_name is None
        assert receipt.items[0].name == "Tea"

    def test_last_totals_line_wins(self):
        receipt = parse_lines(_lines("Cafe Luna", "Total 10.00", "Total 12.00"))
        assert receipt.total == 12.00
        assert receipt.items == []

    def test_empty_lines_rejected(self):
        with pytest.raises(ExtractionFailure):
            parse_lines([])


# =====================================================================
# Structured parser
# =====================================================================
class TestStructuredParser:
    def test_extract_first_object_with_prose(self):
        text = 'Sure! Here it is: {"a": "x}y", "b": {"c": 1}} hope that helps {"d": 2}'
        assert json.loads(extract_first_json_object(text)) == {"a": "x}y", "b": {"c": 1}}

    def test_extract_skips_unbalanced_prefix(self):
        assert extract_first_json_object("{ oops") is None
        assert extract_first_json_object("no json here") is None

    def test_parse_reply(self, fake_llm):
        receipt = StructuredParser(fake_llm).parse("Joe's Diner\nBurger 12.00")
        assert receipt.restaurant_name == "Joe's Diner"
        assert receipt.restaurant_address == "12 Main St"
        assert receipt.date == "2024-01-15"
        assert [(i.name, i.quantity, i.price) for i in receipt.items] == [
            ("Burger", 1, 12.00),
            ("Fries", 2, 2.25),
        ]
        assert receipt.total == 20.00
        assert receipt.confidence == 95.0
        assert receipt.extraction_source == "llm"
        assert "Joe's Diner\nBurger 12.00" in fake_llm.prompts[0]

    def test_parse_prose_wrapped_reply(self, fake_llm):
        fake_llm.response = "Here is the receipt:\n```json\n" + fake_llm.response + "\n```"
        assert StructuredParser(fake_llm).parse("text").restaurant_name == "Joe's Diner"

    def test_missing_items_rejected(self, fake_llm):
        fake_llm.response = '{"restaurantName": "Joe\'s Diner", "total": 5}'
        with pytest.raises(StructuredParseError):
            StructuredParser(fake_llm).parse("text")

    def test_blank_name_rejected(self):
        with pytest.raises(StructuredParseError):
            repair_payload({"restaurantName": "  ", "items": []})

    def test_not_an_object_rejected(self, fake_llm):
        fake_llm.response = "I could not read this receipt."
        with pytest.raises(StructuredParseError):
            StructuredParser(fake_llm).parse("text")

    def test_invalid_json_rejected(self, fake_llm):
        fake_llm.response = "{'restaurantName': 'single quotes'}"
        with pytest.raises(StructuredParseError):
            StructuredParser(fake_llm).parse("text")

    def test_integer_beyond_digit_limit_rejected(self, fake_llm):
        fake_llm.response = '{"restaurantName": "Joe\'s Diner", "items": [], "total": ' + "7" * 5000 + "}"
        with pytest.raises(StructuredParseError):
            StructuredParser(fake_llm).parse("text")

    def test_runaway_nesting_rejected(self, fake_llm):
        fake_llm.response = '{"items": ' + "[" * 100_000 + "]" * 100_000 + "}"
        with pytest.raises(StructuredParseError):
            StructuredParser(fake_llm).parse("text")

    def test_quantity_too_large_for_float_clamped(self, fake_llm):
        fake_llm.response = json.dumps(
            {
                "restaurantName": "Joe's Diner",
                "items": [{"name": "Burger", "quantity": int("9" * 400), "price": 12.00}],
                "total": 12.00,
            }
        )
        receipt = StructuredParser(fake_llm).parse("text")
        assert receipt.items[0].quantity == 1

    def test_repairs_values(self):
        receipt = repair_payload(
            {
                "restaurant_name": "Cafe Luna",
                "items": [
                    {"name": "", "quantity": 0, "price": -3},
                    {"name": "Tea", "quantity": "2", "price": "$1,234.50"},
                    "garbage",
                ],
                "subtotal": "n/a",
                "tax": -1,
                "tip": None,
                "total": True,
            }
        )
        first, second = receipt.items
        assert (first.name, first.quantity, first.price) == (UNKNOWN_ITEM, 1, 0.0)
        assert (second.name, second.quantity, second.price) == ("Tea", 2, 1234.50)
        assert receipt.subtotal == 0
        assert receipt.tax == 0
        assert receipt.tip == 0
        assert receipt.total == 0


# =====================================================================
# Collaborator adapters
# =====================================================================
class _FakeChatCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        message = type("Message", (), {"content": self.content})()
        choice = type("Choice", (), {"message": message})()
        return type("Completion", (), {"choices": [choice]})()


class _FakeOpenAI:
    def __init__(self, completions):
        self.chat = type("Chat", (), {"completions": completions})()


class TestOpenAICompletionClient:
    def test_missing_key_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            OpenAICompletionClient(api_key="")

    def test_returns_message_content(self):
        completions = _FakeChatCompletions(content='{"ok": true}')
        client = OpenAICompletionClient(api_key="", model="gpt-4o-mini", client=_FakeOpenAI(completions))
        assert client.complete("prompt") == '{"ok": true}'
        assert completions.kwargs["model"] == "gpt-4o-mini"
        assert completions.kwargs["messages"][1] == {"role": "user", "content": "prompt"}

    def test_transport_error_wrapped(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1"))
        client = OpenAICompletionClient(api_key="k", client=_FakeOpenAI(_FakeChatCompletions(error=error)))
        with pytest.raises(CompletionTransportError):
            client.complete("prompt")

    def test_empty_content_is_transport_error(self):
        client = OpenAICompletionClient(api_key="k", client=_FakeOpenAI(_FakeChatCompletions(content="")))
        with pytest.raises(CompletionTransportError):
            client.complete("prompt")


class TestTesseractOcrClient:
    def test_group_words_into_lines(self):
        data = {
            "text": ["Joe's", "Diner", "", "Burger", "$12.99"],
            "conf": [96, 98, -1, 90, -1],
            "page_num": [1, 1, 1, 1, 1],
            "block_num": [1, 1, 1, 1, 1],
            "par_num": [1, 1, 1, 1, 1],
            "line_num": [1, 1, 1, 2, 2],
        }
        lines = group_words_into_lines(data)
        assert [ln.text for ln in lines] == ["Joe's Diner", "Burger $12.99"]
        assert lines[0].confidence == pytest.approx(97.0)
        assert lines[1].confidence == pytest.approx(90.0)

    def test_path_traversal_rejected(self, tmp_path):
        client = TesseractOcrClient(image_root=str(tmp_path))
        with pytest.raises(DocumentNotFoundError):
            client.resolve(ImageLocator(bucket="..", key="etc/passwd"))

    def test_missing_image(self, tmp_path):
        client = TesseractOcrClient(image_root=str(tmp_path))
        with pytest.raises(DocumentNotFoundError):
            client.detect_lines(LOCATOR)


# =====================================================================
# Orchestrator
# =====================================================================
class TestExtractReceipt:
    def test_structured_outcome(self, fake_ocr, fake_llm):
        outcome = extract_receipt(LOCATOR, fake_ocr, StructuredParser(fake_llm))
        assert outcome.kind == "structured"
        assert outcome.unwrap().extraction_source == "llm"
        assert fake_ocr.calls == [LOCATOR]

    def test_missing_items_falls_back(self, fake_ocr, fake_llm):
        fake_llm.response = '{"restaurantName": "Joe\'s Diner"}'
        outcome = extract_receipt(LOCATOR, fake_ocr, StructuredParser(fake_llm))
        assert outcome.kind == "fallback"
        assert outcome.data.extraction_source == "fallback"
        assert outcome.data.total == 18.89
        assert "items" in outcome.reason

    @pytest.mark.parametrize(
        "reply",
        [
            '{"restaurantName": "Joe\'s Diner", "items": [], "total": ' + "5" * 5000 + "}",
            '{"restaurantName": "Joe\'s Diner", "items": ' + "[" * 100_000 + "}",
        ],
    )
    def test_unreadable_json_falls_back(self, fake_ocr, fake_llm, reply):
        fake_llm.response = reply
        outcome = extract_receipt(LOCATOR, fake_ocr, StructuredParser(fake_llm))
        assert outcome.kind == "fallback"
        assert outcome.data.total == 18.89

    def test_transport_error_falls_back(self, fake_ocr, fake_llm):
        fake_llm.error = CompletionTransportError("timed out")
        outcome = extract_receipt(LOCATOR, fake_ocr, StructuredParser(fake_llm))
        assert outcome.kind == "fallback"
        assert outcome.reason == "timed out"

    def test_no_parser_uses_fallback(self, fake_ocr):
        outcome = extract_receipt(LOCATOR, fake_ocr, None)
        assert outcome.kind == "fallback"
        assert outcome.reason == "structured parser unavailable"

    def test_configuration_error_propagates(self, fake_ocr, fake_llm):
        fake_llm.error = ConfigurationError("LLM credentials rejected")
        with pytest.raises(ConfigurationError):
            extract_receipt(LOCATOR, fake_ocr, StructuredParser(fake_llm))

    def test_ocr_failure_is_failed_outcome(self, fake_ocr, fake_llm):
        fake_ocr.error = TransientOcrError("engine crashed")
        outcome = extract_receipt(LOCATOR, fake_ocr, StructuredParser(fake_llm))
        assert outcome.kind == "failed"
        assert outcome.error.error == "extraction_failure"
        assert fake_llm.prompts == []

    def test_failed_outcome_unwrap_raises_original_kind(self, fake_ocr):
        fake_ocr.error = DocumentNotFoundError("Receipt image not found")
        outcome = extract_receipt(LOCATOR, fake_ocr, None)
        with pytest.raises(DocumentNotFoundError):
            outcome.unwrap()

    def test_no_text_at_all(self, fake_ocr):
        fake_ocr.lines = []
        outcome = extract_receipt(LOCATOR, fake_ocr, None)
        assert outcome.kind == "failed"


class TestReceiptExtractor:
    def test_status_completed(self, fake_ocr, fake_llm):
        extractor = ReceiptExtractor(fake_ocr, StructuredParser(fake_llm))
        assert extractor.status == ProcessingStatus.PENDING
        extractor.run(LOCATOR)
        assert extractor.status == ProcessingStatus.COMPLETED

    def test_status_failed(self, fake_ocr):
        fake_ocr.error = TransientOcrError("engine crashed")
        extractor = ReceiptExtractor(fake_ocr, None)
        extractor.run(LOCATOR)
        assert extractor.status == ProcessingStatus.FAILED

    def test_status_failed_on_configuration_error(self, fake_ocr, fake_llm):
        fake_llm.error = ConfigurationError("no key")
        extractor = ReceiptExtractor(fake_ocr, StructuredParser(fake_llm))
        with pytest.raises(ConfigurationError):
            extractor.run(LOCATOR)
        assert extractor.status == ProcessingStatus.FAILED
