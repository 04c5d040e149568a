from __future__ import annotations

import math
from typing import Annotated, Any, Literal, Optional

from pydantic import BeforeValidator

from .errors import ValidationError


def _to_lower_str(v):
    if v is None:
        return v
    return str(v).strip().lower()


def _to_store_id(v):
    if v is None or isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v.strip()
    return v


# Store ids are integers on the wire, but terminals often send them as strings.
StoreId = Annotated[int, BeforeValidator(_to_store_id)]

PromoType = Annotated[
    Literal["fixed_price", "multi_buy", "buy_get", "percent_off", "mix_match"],
    BeforeValidator(_to_lower_str),
]

PROMO_TYPES = ("fixed_price", "multi_buy", "buy_get", "percent_off", "mix_match")


def parse_store_id(raw: Any, field: str = "storeId") -> int:
    if raw is None or isinstance(raw, bool):
        raise ValidationError(f"{field} is required")
    if isinstance(raw, int):
        return raw
    s = str(raw).strip()
    if not s:
        raise ValidationError(f"{field} is required")
    try:
        return int(s)
    except ValueError:
        raise ValidationError(f"{field} must be an integer") from None


def parse_store_id_optional(raw: Any, field: str = "storeId") -> Optional[int]:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    return parse_store_id(raw, field)


def has_non_finite(value: Any) -> bool:
    """True when a JSON-like value holds NaN or +/-Infinity anywhere; such values cannot be served back as JSON."""
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, dict):
        return any(has_non_finite(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return any(has_non_finite(v) for v in value)
    return False
