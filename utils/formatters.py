"""Formatting utilities for alert messages and logs."""


def format_price(price: float) -> str:
    """Format a price without thousands separators; sub-dollar prices keep 6 decimals."""
    if abs(price) >= 1:
        return f"{price:.2f}"
    return f"{price:.6f}"


def format_percentage(value: float) -> str:
    """Format as percentage."""
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.2f}%"


def format_symbol(symbol: str) -> str:
    """Ticker symbols are shown upper-case."""
    return (symbol or "").strip().upper()
