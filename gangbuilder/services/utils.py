from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping, Sequence, Set as AbstractSet
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

logger = logging.getLogger(__name__)


def coerce_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        number = int(value)
    except (TypeError, ValueError):
        try:
            number = int(float(value))
        except (TypeError, ValueError, OverflowError):
            return default
    return number


def round_points(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, Decimal):
        dec_value = value
    else:
        try:
            dec_value = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            try:
                numeric = float(value)
            except (TypeError, ValueError):
                return 0
            dec_value = Decimal(str(numeric))
    if not dec_value.is_finite():
        return 0
    return int(dec_value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def ensure_json_dict(raw: Any) -> dict[str, Any] | None:
    """Return ``raw`` as a dict, decoding JSON text stored in the database."""

    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Discarding equipment payload that is not valid JSON")
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def json_safe(value: Any) -> Any:
    if isinstance(value, (str, bool)) or value is None:
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0.0
        return value
    if isinstance(value, Decimal):
        numeric = float(value)
        if not math.isfinite(numeric):
            return 0.0
        return numeric
    if isinstance(value, Mapping):
        return {str(key): json_safe(val) for key, val in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [json_safe(item) for item in value]
    if isinstance(value, AbstractSet):
        return [json_safe(item) for item in value]
    return None
