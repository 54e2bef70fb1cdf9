#!/usr/bin/env python3
"""Entry point for the price alert engine."""

import asyncio
import logging

from dotenv import load_dotenv

# Load environment variables before importing settings
load_dotenv()

from config import settings
from core.market_data import PriceSource
from database.connection import Database
from database.repositories import PriceAlertRepository, NotificationRepository
from jobs.scheduler import JobManager
from services import AlertEngine, AlertService


# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
)
logger = logging.getLogger(__name__)


async def main():
    """Initialize and run the alert engine."""
    logger.info("Starting price alert engine...")

    if not settings.admin_user_id:
        raise RuntimeError("ADMIN_USER_ID is not configured")

    # Initialize database
    db = Database(settings.database_url)
    await db.initialize()
    logger.info("Database initialized")

    alert_repo = PriceAlertRepository(db)
    notification_repo = NotificationRepository(db)
    alert_service = AlertService(alert_repo, notification_repo)
    price_source = PriceSource()

    async def on_alert_triggered(alert, current_price):
        logger.info(f"Alert fired: {alert.symbol} {alert.condition.value} {alert.target_price} at {current_price}")

    engine = AlertEngine(
        alert_service,
        price_source,
        interval_seconds=settings.alert_check_interval,
        currency=settings.default_currency,
        on_alert_triggered=on_alert_triggered,
        evaluate_fallback_quotes=settings.evaluate_fallback_quotes,
        enabled=settings.price_alerts_enabled,
    )

    async def on_alert_change(event, alert_id):
        logger.debug(f"Alert {alert_id[:8]} changed ({event})")

    unsubscribe = await alert_repo.subscribe(settings.admin_user_id, on_alert_change)

    # Health check lets an open circuit recover before its cool-down ends
    health_jobs = JobManager()
    health_jobs.add_interval_job(
        price_source.health_check,
        seconds=settings.health_check_interval,
        job_id="price_source_health",
        name="Price source health check",
    )
    health_jobs.start()

    engine.start(settings.admin_user_id)
    logger.info("Alert engine is running. Press Ctrl+C to stop.")

    # Keep running until interrupted
    try:
        while True:
            await asyncio.sleep(1)
    except asyncio.CancelledError:
        pass
    finally:
        engine.stop()
        health_jobs.stop()
        await unsubscribe()
        await price_source.close()
        await db.close()
        logger.info("Resources released")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Alert engine stopped by user")
    except Exception as e:
        logger.error(f"Alert engine crashed: {e}")
        raise
