"""Trigger rule shared by every alert checking path."""

import logging
import math
from typing import Any

from database.models import AlertCondition

logger = logging.getLogger(__name__)


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("bool is not a price")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError("price is not finite")
    return number


def should_trigger(condition: Any, current_price: Any, target_price: Any) -> bool:
    """
    Decide whether an alert fires at the current price.

    "above" fires at or above the target, "below" at or below it. Unknown
    conditions and prices that are not finite numbers never fire.
    """
    try:
        current = _to_number(current_price)
        target = _to_number(target_price)
    except (TypeError, ValueError, OverflowError):
        logger.warning(
            f"Invalid price values for comparison: current={current_price!r} target={target_price!r}"
        )
        return False

    if isinstance(condition, AlertCondition):
        condition = condition.value
    if not isinstance(condition, str):
        return False

    condition = condition.lower()
    if condition == AlertCondition.ABOVE.value:
        return current >= target
    if condition == AlertCondition.BELOW.value:
        return current <= target
    return False
