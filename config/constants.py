"""Application constants."""

# Notification types
NOTIFICATION_TYPE_PRICE_ALERT = "price_alert"

# Job intervals (in seconds)
ALERT_CHECK_INTERVAL = 60
FAST_ALERT_CHECK_INTERVAL = 8
HEALTH_CHECK_INTERVAL = 120
HEALTH_CHECK_TIMEOUT = 5.0

# Backoff jitter as a fraction of the delay
RETRY_JITTER_RATIO = 0.3

# Postgres NOTIFY channel for alert row changes
PRICE_ALERT_CHANNEL = "price_alert_changes"

# Demo dataset served when the market API is down and nothing is cached.
# coin_id -> (price in USD, 24h change %)
FALLBACK_USD_PRICES = {
    "bitcoin": (66500.0, 1.92),
    "ethereum": (3450.0, 2.53),
    "solana": (142.0, 3.05),
    "cardano": (0.58, -2.03),
    "binancecoin": (415.0, 2.09),
}
FALLBACK_CURRENCY = "usd"
