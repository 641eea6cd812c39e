"""
Receipt Text Extraction

Vision models are asked for {"storeName": ..., "totalAmount": ...} but often
wrap it in prose or code fences, quote the number, or ignore the format
entirely. The extractor turns any answer into ExtractedReceiptData:

STEP 1 - STRUCTURED PATH:
- Strip code fences, take the first flat {...} object, parse it as JSON
- Accepted only if it has BOTH storeName and totalAmount

STEP 2 - STORE NAME PATTERNS (first non-empty capture wins)
STEP 3 - AMOUNT PATTERNS (first pattern with a positive number wins;
         the MAXIMUM of all its matches is taken)
STEP 4 - NORMALIZATION (coerce, bound, round)

IMPORTANT: extract() never raises. The worst case is
{storeName: "Unknown", totalAmount: 0} and the user types the values in.

Known limitation: taking the maximum amount can pick a line item or a
tendered cash amount that is larger than the real total.
"""

import json
import math
import re
from typing import Any, Optional

import structlog

from expense_tracker.models.expense import (
    MAX_EXPENSE_AMOUNT,
    MAX_STORE_NAME_LENGTH,
    UNKNOWN_STORE,
    ExtractedReceiptData,
    round_money,
)


logger = structlog.get_logger(__name__)


# =============================================================================
# PATTERNS - evaluated in order, first match wins
# =============================================================================

CODE_FENCE_PATTERNS = (
    re.compile(r"```json\n?"),
    re.compile(r"```\n?"),
)
FLAT_JSON_OBJECT = re.compile(r"\{[^}]*\}")

# Plain or thousands-separated number with up to 2 decimals
_NUMBER = r"(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)"

STORE_NAME_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    (
        "labeled_store",
        re.compile(
            r"\b(?:store|shop|business|merchant)(?:\s+name)?\s*[:\-]\s*([^\n\r,]+)",
            re.IGNORECASE,
        ),
    ),
    (
        "labeled_name",
        re.compile(r"\bname\s*[:\-]\s*([^\n\r,]+)", re.IGNORECASE),
    ),
    (
        "json_like",
        re.compile(r'"storeName"\s*[:=]?\s*"([^"]+)"', re.IGNORECASE),
    ),
    (
        "generic_store",
        re.compile(r"\bstore\b[^\w\n\r]*([A-Za-z][A-Za-z ]*)", re.IGNORECASE),
    ),
)

# The keyword must start a word, so "Subtotal" is not read as a total label
AMOUNT_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    (
        "labeled_total",
        re.compile(r"\b(?:total|amount|sum|price)[^\w]*[:\-]?\s*" + _NUMBER, re.IGNORECASE),
    ),
    (
        "json_like",
        re.compile(r'"totalAmount"[^\w]*[:\-]?\s*' + _NUMBER, re.IGNORECASE),
    ),
    ("decimal", re.compile(r"(\d+\.\d{2})")),
    ("shekel", re.compile(r"₪\s*" + _NUMBER)),
    ("dollar", re.compile(r"\$\s*" + _NUMBER)),
    ("euro", re.compile(r"€\s*" + _NUMBER)),
)

_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_THOUSANDS_COMMA = re.compile(r"(?<=\d),(?=\d{3}(?!\d))")


# =============================================================================
# STEPS
# =============================================================================

def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    for pattern in CODE_FENCE_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    return cleaned


def parse_structured(text: str) -> Optional[dict]:
    """
    Step 1: the first flat JSON object in the answer.

    Returns the parsed object only if it has both storeName and totalAmount.
    """
    match = FLAT_JSON_OBJECT.search(strip_code_fences(text))
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    if "storeName" not in data or "totalAmount" not in data:
        return None
    return data


def _clean_store_capture(value: str) -> str:
    cleaned = re.sub(r"['\"]", "", value.strip())
    return cleaned[:MAX_STORE_NAME_LENGTH].strip(" \t{}")


def extract_store_name(text: str) -> Optional[str]:
    """Step 2: store name from the first pattern with a non-empty capture."""
    for name, pattern in STORE_NAME_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        cleaned = _clean_store_capture(match.group(1))
        if cleaned:
            logger.debug("store_name_pattern_matched", pattern=name)
            return cleaned
    return None


def _to_number(capture: str) -> float:
    try:
        return float(capture.replace(",", ""))
    except ValueError:
        return math.nan


def extract_amount(text: str) -> float:
    """
    Step 3: the largest amount matched by the first productive pattern.

    Returns 0 when no pattern yields a positive number.
    """
    for name, pattern in AMOUNT_PATTERNS:
        values = [_to_number(match.group(1)) for match in pattern.finditer(text)]
        positives = [value for value in values if value > 0]
        if positives:
            logger.debug("amount_pattern_matched", pattern=name, candidates=len(positives))
            return max(positives)
    return 0.0


def parse_leading_number(text: str) -> float:
    """
    Read the number at the start of a string ("12.50 ILS" -> 12.5).

    Thousands separators are removed first. Returns NaN when the string
    does not start with a number.
    """
    candidate = _THOUSANDS_COMMA.sub("", text.strip())
    match = _LEADING_NUMBER.match(candidate)
    if not match:
        return math.nan
    return float(match.group(0))


def normalize_amount(value: Any) -> float:
    """Step 4: coerce to a number in [0, 999999] rounded to 2 dp, else 0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, str):
        value = parse_leading_number(value)
    if not isinstance(value, (int, float)):
        return 0.0

    amount = float(value)
    if math.isnan(amount) or math.isinf(amount):
        return 0.0
    if amount < 0 or amount > float(MAX_EXPENSE_AMOUNT):
        return 0.0
    return float(round_money(amount))


def normalize_store_name(value: Any) -> str:
    """Step 4: non-string, over-long or blank names become "Unknown"."""
    if not isinstance(value, str) or len(value) > MAX_STORE_NAME_LENGTH:
        return UNKNOWN_STORE
    return value.strip() or UNKNOWN_STORE


# =============================================================================
# EXTRACTOR
# =============================================================================

class ReceiptTextExtractor:
    """
    Turns a vision model's free-text answer into ExtractedReceiptData.
    """

    def extract(self, raw_text: Optional[str]) -> ExtractedReceiptData:
        """
        Extract store name and total amount.

        Never raises; unrecoverable fields fall back to their defaults.
        """
        try:
            return self._extract(raw_text or "")
        except Exception as e:
            logger.error("receipt_extraction_failed", error=str(e))
            return ExtractedReceiptData()

    def _extract(self, raw_text: str) -> ExtractedReceiptData:
        structured = parse_structured(raw_text)

        if structured is not None:
            method = "json"
            store_name = structured["storeName"]
            amount = structured["totalAmount"]
        else:
            method = "patterns"
            text = strip_code_fences(raw_text)
            store_name = extract_store_name(text) or UNKNOWN_STORE
            amount = extract_amount(text)

        result = ExtractedReceiptData(
            store_name=normalize_store_name(store_name),
            total_amount=normalize_amount(amount),
        )
        logger.info(
            "receipt_text_extracted",
            method=method,
            store_name=result.store_name,
            total_amount=result.total_amount,
        )
        return result
