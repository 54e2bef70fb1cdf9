from .formatters import format_price, format_percentage, format_symbol
from .validators import validate_target_price, validate_condition, validate_coin_id

__all__ = [
    "format_price",
    "format_percentage",
    "format_symbol",
    "validate_target_price",
    "validate_condition",
    "validate_coin_id",
]
