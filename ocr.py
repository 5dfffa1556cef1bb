"""
Receipt recognition collaborator.

Recognition itself is a black box: any async callable that takes the image
bytes and returns an OCRResult. The bundled simulator returns one of a few
canned receipts after a short delay. scan_receipt wraps whichever
recognizer is used with input checks, a timeout and result validation, so
a failure never yields a partial draft.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Optional

from config_manager import get_section
from database_ops import ExpenseCategory
from exceptions import OCRError, ValidationError
from utils import parse_date, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class OCRResult:
    """Raw recognizer output."""
    amount: Any
    vendor: str
    date: Any
    category: Any
    confidence: float


@dataclass(frozen=True)
class ExpenseDraft:
    """A validated, not yet saved, expense proposal read from a receipt."""
    amount: Decimal
    vendor: str
    date: date
    category: ExpenseCategory
    confidence: float


Recognizer = Callable[[bytes], Awaitable[OCRResult]]

_CANNED_RECEIPTS = [
    ("45.67", "Grocery Store", ExpenseCategory.FOOD_DINING, 0.92),
    ("12.50", "Coffee Shop", ExpenseCategory.FOOD_DINING, 0.88),
    ("89.99", "Gas Station", ExpenseCategory.TRANSPORTATION, 0.95),
    ("25.00", "Restaurant", ExpenseCategory.FOOD_DINING, 0.90),
]


class ReceiptSimulator:
    """Stand-in recognizer returning a random canned receipt dated today."""

    def __init__(self, delay_seconds: float = 2.0, rng: Optional[random.Random] = None):
        self.delay_seconds = delay_seconds
        self.rng = rng or random.Random()

    async def __call__(self, file_bytes: bytes) -> OCRResult:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        amount, vendor, category, confidence = self.rng.choice(_CANNED_RECEIPTS)
        return OCRResult(
            amount=Decimal(amount),
            vendor=vendor,
            date=date.today().isoformat(),
            category=category.value,
            confidence=confidence,
        )


async def simulate_ocr(file_bytes: bytes) -> OCRResult:
    """Recognize a receipt with the default simulator."""
    return await ReceiptSimulator()(file_bytes)


def _to_draft(result: OCRResult) -> ExpenseDraft:
    try:
        amount = to_decimal(result.amount)
        confidence = float(result.confidence)
        receipt_date = parse_date(result.date)
        category = ExpenseCategory.parse(result.category)
    except (TypeError, ValueError, ValidationError) as e:
        raise OCRError(
            "Receipt recognition returned an unusable result",
            details={"vendor": getattr(result, "vendor", None)},
            original_error=e
        ) from e

    if amount < 0:
        raise OCRError("Receipt recognition returned a negative amount", details={"amount": amount})
    if not 0.0 <= confidence <= 1.0:
        raise OCRError("Receipt confidence must be within [0, 1]", details={"confidence": confidence})

    vendor = str(result.vendor or "").strip() or "Unknown vendor"
    return ExpenseDraft(
        amount=amount,
        vendor=vendor,
        date=receipt_date,
        category=category,
        confidence=confidence,
    )


async def scan_receipt(
    file_bytes: bytes,
    content_type: str = "image/jpeg",
    recognizer: Optional[Recognizer] = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
) -> ExpenseDraft:
    """
    Turn a receipt image into an expense draft.

    Args:
        file_bytes: Raw image bytes
        content_type: MIME type of the upload; must be image/*
        recognizer: Async recognizer (defaults to the simulator)
        timeout_seconds: How long to wait for recognition

    Returns:
        ExpenseDraft

    Raises:
        OCRError: For non-image uploads, timeouts, recognizer failures or
            invalid results
    """
    if not (content_type or "").lower().startswith("image/"):
        raise OCRError("Please upload an image file", details={"content_type": content_type})
    if not file_bytes:
        raise OCRError("Receipt image is empty")

    recognizer = recognizer or simulate_ocr
    try:
        result = await asyncio.wait_for(recognizer(file_bytes), timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        logger.warning(f"Receipt recognition timed out after {timeout_seconds}s")
        raise OCRError(
            "Receipt processing timed out",
            details={"timeout_seconds": timeout_seconds},
            original_error=e
        ) from e
    except OCRError:
        raise
    except Exception as e:
        logger.error(f"Receipt recognition failed: {e}", exc_info=True)
        raise OCRError("Failed to process receipt", original_error=e) from e

    draft = _to_draft(result)
    logger.info(
        f"Receipt processed: {draft.vendor} ${draft.amount} "
        f"(confidence {draft.confidence * 100:.0f}%)"
    )
    return draft


def recognizer_from_config(config: Dict[str, Any], rng: Optional[random.Random] = None) -> ReceiptSimulator:
    """Build the simulator with the configured delay."""
    section = get_section(config, "ocr")
    return ReceiptSimulator(delay_seconds=float(section.get("delay_seconds", 2)), rng=rng)


def ocr_timeout_from_config(config: Dict[str, Any]) -> float:
    return float(get_section(config, "ocr").get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS))
