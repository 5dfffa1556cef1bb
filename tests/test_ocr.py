"""
Unit tests for receipt scanning.
"""

import asyncio
import random
from datetime import date
from decimal import Decimal

import pytest

from database_ops import ExpenseCategory
from exceptions import CollaboratorError, OCRError
from ocr import (
    OCRResult,
    ReceiptSimulator,
    ocr_timeout_from_config,
    recognizer_from_config,
    scan_receipt,
)

IMAGE = b"\x89PNG fake image bytes"


def _recognizer_returning(result):
    async def recognize(file_bytes):
        return result
    return recognize


class TestScanReceipt:
    """Tests for scan_receipt."""

    def test_simulator_draft(self):
        simulator = ReceiptSimulator(delay_seconds=0, rng=random.Random(7))

        draft = asyncio.run(scan_receipt(IMAGE, "image/png", recognizer=simulator))

        assert draft.amount in {Decimal("45.67"), Decimal("12.50"), Decimal("89.99"), Decimal("25.00")}
        assert draft.date == date.today()
        assert isinstance(draft.category, ExpenseCategory)
        assert 0.0 <= draft.confidence <= 1.0

    def test_custom_recognizer(self):
        result = OCRResult(amount="18.20", vendor="  Bakery ", date="2026-10-17",
                           category="Food & Dining", confidence=0.75)

        draft = asyncio.run(scan_receipt(IMAGE, recognizer=_recognizer_returning(result)))

        assert draft.amount == Decimal("18.20")
        assert draft.vendor == "Bakery"
        assert draft.date == date(2026, 10, 17)
        assert draft.category == ExpenseCategory.FOOD_DINING

    @pytest.mark.parametrize("content_type", ["application/pdf", "text/plain", ""])
    def test_non_image_rejected(self, content_type):
        with pytest.raises(OCRError):
            asyncio.run(scan_receipt(IMAGE, content_type))

    def test_empty_upload_rejected(self):
        with pytest.raises(OCRError):
            asyncio.run(scan_receipt(b"", "image/jpeg"))

    def test_timeout(self):
        simulator = ReceiptSimulator(delay_seconds=1)

        with pytest.raises(OCRError) as exc_info:
            asyncio.run(scan_receipt(IMAGE, recognizer=simulator, timeout_seconds=0.01))

        assert "timed out" in str(exc_info.value)

    def test_recognizer_failure_is_wrapped(self):
        async def broken(file_bytes):
            raise RuntimeError("model crashed")

        with pytest.raises(OCRError) as exc_info:
            asyncio.run(scan_receipt(IMAGE, recognizer=broken))

        assert isinstance(exc_info.value, CollaboratorError)
        assert isinstance(exc_info.value.original_error, RuntimeError)

    @pytest.mark.parametrize("overrides", [
        {"confidence": 1.5},
        {"confidence": -0.1},
        {"amount": "-3"},
        {"amount": "twelve"},
        {"date": "17/10/2026"},
        {"category": "Groceries"},
    ])
    def test_invalid_results_rejected(self, overrides):
        values = {"amount": "10", "vendor": "Shop", "date": "2026-10-17",
                  "category": "Shopping", "confidence": 0.9}
        values.update(overrides)

        with pytest.raises(OCRError):
            asyncio.run(scan_receipt(IMAGE, recognizer=_recognizer_returning(OCRResult(**values))))


class TestOcrConfig:
    """Tests for config helpers."""

    def test_values_from_config(self):
        config = {"ocr": {"timeout_seconds": 3, "delay_seconds": 0.5}}
        assert ocr_timeout_from_config(config) == 3.0
        assert recognizer_from_config(config).delay_seconds == 0.5

    def test_defaults(self):
        assert ocr_timeout_from_config({}) == 10.0
        assert recognizer_from_config({}).delay_seconds == 2.0
