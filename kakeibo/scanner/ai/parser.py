"""Recovery-oriented parsing of AI replies into transactions.

Models are asked for a bare JSON array but routinely wrap it in commentary or
markdown fences, leave trailing commas, or emit a draft array followed by a
corrected one. :func:`parse_response` repairs what it safely can and rejects
the rest with an :class:`AnalysisError` of code ``INVALID_RESPONSE``.
"""

from __future__ import annotations

import json
import math
import re
import unicodedata
from typing import Any

from ..models import Transaction
from .errors import INVALID_RESPONSE, AnalysisError

# Tried in order; the first match wins.
_FENCE_PATTERNS = [
    re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE),
    re.compile(r"```[A-Za-z]*\s*([\s\S]*?)```"),
    re.compile(r"`([\[\{][\s\S]*?[\]\}])`"),
    # Opening fence whose closing fence was cut off
    re.compile(r"```(?:json)?\s*([\s\S]*)$", re.IGNORECASE),
]

_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")
_OBJECT_ARRAY_PATTERN = re.compile(r"\[\s*\{[\s\S]*?\}\s*\]")
_TRAILING_COMMA = re.compile(r",(\s*[\]\}])")
_EMPTY_ARRAY = re.compile(r"\[\s*\]")
_AMOUNT_NOISE = re.compile(r"[,\s¥￥円]")

_REQUIRED_FIELDS = ("date", "description", "amount", "type")
_VALID_TYPES = ("income", "expense")

_PREVIEW_LENGTH = 100

DEFAULT_TAX_CATEGORY = {
    "income": "課税売上 10%",
    "expense": "課税仕入 10%",
}


def normalize_date(date_str: str) -> str:
    """Normalize a date string to ``YYYY/MM/DD``.

    Accepts ``.``, ``-`` and ``年月日`` separators and full-width digits.
    Returns the input unchanged if it doesn't have three parts.
    """
    if not date_str:
        return ""

    normalized = unicodedata.normalize("NFKC", date_str)
    normalized = re.sub(r"[.\-年月]", "/", normalized).replace("日", "")

    parts = [p.strip() for p in normalized.split("/")]
    if len(parts) == 3 and all(parts):
        y, m, d = parts
        return f"{y}/{m.zfill(2)}/{d.zfill(2)}"

    return date_str


def extract_json_text(text: str) -> str:
    """Strip fences, commentary and trailing commas around a JSON payload."""
    cleaned = text.strip()

    for pattern in _FENCE_PATTERNS:
        match = pattern.search(cleaned)
        if match:
            cleaned = match.group(1).strip()
            break

    if not cleaned.startswith(("[", "{")):
        match = _ARRAY_PATTERN.search(cleaned)
        if match:
            cleaned = match.group(0)
        elif "[" in cleaned:
            # Commentary followed by an array that never closes
            cleaned = cleaned[cleaned.index("["):]

    return _TRAILING_COMMA.sub(r"\1", cleaned).strip()


def parse_response(text: str) -> list[Transaction]:
    """Parse an AI reply into validated transactions.

    Raises:
        AnalysisError: ``INVALID_RESPONSE`` if the reply is truncated, not
            JSON, not an array, or any record fails validation.
    """
    cleaned = extract_json_text(text)

    if cleaned.startswith("[") and not cleaned.endswith("]"):
        raise AnalysisError(
            INVALID_RESPONSE,
            "AIの応答が途中で切れています (レスポンスが不完全です)。"
            "PDFをページごとに分割して再試行してください。",
        )

    if _EMPTY_ARRAY.fullmatch(cleaned):
        return []

    raw = _load_array(cleaned)

    if not isinstance(raw, list):
        raise AnalysisError(INVALID_RESPONSE, "解析結果が配列形式ではありません")

    return [_to_transaction(item, index + 1) for index, item in enumerate(raw)]


def _load_array(cleaned: str) -> Any:
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # A draft array is sometimes followed by the corrected one; use the last.
    candidates = _OBJECT_ARRAY_PATTERN.findall(cleaned)
    if candidates:
        try:
            return json.loads(candidates[-1])
        except json.JSONDecodeError:
            pass

    preview = cleaned[:_PREVIEW_LENGTH]
    raise AnalysisError(
        INVALID_RESPONSE,
        f"JSONパースエラー: 有効なJSON形式ではありません (先頭: {preview!r})",
    )


def _to_transaction(item: Any, position: int) -> Transaction:
    if not isinstance(item, dict):
        raise AnalysisError(
            INVALID_RESPONSE, f"取引 {position} がオブジェクト形式ではありません"
        )

    missing = [
        name for name in _REQUIRED_FIELDS
        if item.get(name) is None or item.get(name) == ""
    ]
    if missing:
        raise AnalysisError(
            INVALID_RESPONSE,
            f"取引 {position} に必須フィールドが不足しています: {', '.join(missing)}",
        )

    tx_type = item["type"]
    if tx_type not in _VALID_TYPES:
        raise AnalysisError(
            INVALID_RESPONSE,
            f"取引 {position} のtypeは 'income' または 'expense' である必要があります"
            f" (実際: {tx_type!r})",
        )

    return Transaction(
        date=normalize_date(str(item["date"])),
        description=str(item["description"]),
        amount=_coerce_amount(item["amount"], position),
        type=tx_type,
        kamoku=item.get("kamoku") or None,
        sub_kamoku=item.get("subKamoku") or None,
        invoice_number=item.get("invoiceNumber") or None,
        tax_category=item.get("taxCategory") or DEFAULT_TAX_CATEGORY[tx_type],
        memo=item.get("memo") or None,
    )


def _coerce_amount(value: Any, position: int) -> int | float:
    number: int | float
    if isinstance(value, bool):
        number = math.nan
    elif isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        try:
            number = float(_AMOUNT_NOISE.sub("", value))
        except ValueError:
            number = math.nan
    else:
        number = math.nan

    if not math.isfinite(number):
        raise AnalysisError(
            INVALID_RESPONSE,
            f"取引 {position} のamountが数値ではありません: {value!r}",
        )
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number
