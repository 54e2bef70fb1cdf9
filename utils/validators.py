"""Input validation utilities."""

import math
import re
from typing import Any, Optional

from database.models import AlertCondition

COIN_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]*$")


def validate_target_price(value: Any) -> Optional[float]:
    """
    Validate an alert target price.

    Args:
        value: Number or numeric string

    Returns:
        Positive finite price or None if invalid
    """
    if value is None or isinstance(value, bool):
        return None

    try:
        price = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError, OverflowError):
        return None

    if not math.isfinite(price) or price <= 0:
        return None

    return price


def validate_condition(value: Any) -> Optional[AlertCondition]:
    """Validate an alert condition ("above" or "below")."""
    if isinstance(value, AlertCondition):
        return value
    if not isinstance(value, str):
        return None
    try:
        return AlertCondition(value.strip().lower())
    except ValueError:
        return None


def validate_coin_id(text: Any) -> Optional[str]:
    """
    Validate a CoinGecko coin ID.

    Returns:
        Normalized (lowercase) coin ID or None if invalid
    """
    if not isinstance(text, str):
        return None

    coin_id = text.strip().lower()
    if not COIN_ID_PATTERN.match(coin_id):
        return None

    return coin_id
