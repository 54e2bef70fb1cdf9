"""
Alert engine: periodic price checks for one user's pending alerts.

Each tick reads the user's active alerts, fetches one price snapshot for
all of their coins and runs every alert whose condition holds through
AlertService.trigger_alert.
"""

import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from config.constants import ALERT_CHECK_INTERVAL
from core.market_data import PriceSource, QuoteSource, CircuitState
from database.models import PriceAlert
from jobs.scheduler import JobManager
from services.alert_evaluator import should_trigger
from services.alert_service import AlertService, TriggerOutcome
from utils.formatters import format_percentage, format_price

logger = logging.getLogger(__name__)

TICK_JOB_ID = "price_alert_check"

AlertTriggeredCallback = Callable[[PriceAlert, float], Optional[Awaitable[Any]]]


class EngineState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class EngineSession:
    """State for one running session; discarded on stop."""
    user_id: str
    started_at: datetime
    suppressed: Set[str] = field(default_factory=set)
    active_alerts: List[PriceAlert] = field(default_factory=list)


@dataclass
class TickReport:
    """What a single tick did."""
    user_id: Optional[str] = None
    checked: int = 0
    coins: List[str] = field(default_factory=list)
    triggered: List[str] = field(default_factory=list)
    skipped: Optional[str] = None


@dataclass
class EngineStatus:
    is_running: bool
    user_id: Optional[str]
    check_interval: float
    suppressed: int
    active_alerts: int
    circuit_state: CircuitState


class AlertEngine:
    """
    Scheduler and state machine for price alert checks.

    STOPPED -> RUNNING on start(user_id), back to STOPPED on stop(). One
    user is monitored at a time. The suppression set only spares repeat
    work inside a session; duplicate fires across engines are prevented by
    the store's conditional update.
    """

    def __init__(
        self,
        alert_service: AlertService,
        price_source: PriceSource,
        interval_seconds: float = ALERT_CHECK_INTERVAL,
        currency: str = "usd",
        on_alert_triggered: Optional[AlertTriggeredCallback] = None,
        evaluate_fallback_quotes: bool = False,
        enabled: bool = True,
        job_manager: Optional[JobManager] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"Check interval must be positive, got {interval_seconds}")

        self.alert_service = alert_service
        self.price_source = price_source
        self.interval_seconds = interval_seconds
        self.currency = currency.lower()
        self.on_alert_triggered = on_alert_triggered
        self.evaluate_fallback_quotes = evaluate_fallback_quotes
        self.enabled = enabled
        self.job_manager = job_manager or JobManager()
        self._session: Optional[EngineSession] = None

    @property
    def state(self) -> EngineState:
        return EngineState.RUNNING if self._session else EngineState.STOPPED

    @property
    def is_running(self) -> bool:
        return self._session is not None

    @property
    def user_id(self) -> Optional[str]:
        return self._session.user_id if self._session else None

    def start(self, user_id: str) -> bool:
        """
        Start monitoring a user's alerts.

        Runs a tick immediately, then every interval_seconds. Returns
        False if no user was given or the user is already monitored.
        """
        if not user_id:
            logger.warning("Cannot start alert engine: no user ID provided")
            return False

        if self._session is not None:
            if self._session.user_id == user_id:
                logger.info(f"Alert engine already running for user {user_id}")
                return False
            logger.info(
                f"Switching alert engine from user {self._session.user_id} to {user_id}"
            )
            self.stop()

        self._session = EngineSession(
            user_id=user_id,
            started_at=datetime.now(timezone.utc),
        )

        self.job_manager.add_interval_job(
            self._run_scheduled_tick,
            seconds=self.interval_seconds,
            job_id=TICK_JOB_ID,
            name="Check price alerts",
            run_immediately=True,
        )
        self.job_manager.start()

        logger.info(
            f"Alert engine started for user {user_id}, "
            f"checking every {self.interval_seconds}s"
        )
        return True

    def stop(self) -> None:
        """
        Stop monitoring.

        An in-flight tick finishes against its own session; no new tick
        is scheduled.
        """
        if self._session is None:
            return

        self.job_manager.stop()
        self.job_manager.remove_job(TICK_JOB_ID)

        user_id = self._session.user_id
        self._session = None
        logger.info(f"Alert engine stopped for user {user_id}")

    async def force_check(self) -> TickReport:
        """Run a tick now, outside the schedule."""
        if self._session is None:
            logger.warning("Cannot force check: alert engine is not running")
            return TickReport(skipped="not_running")
        logger.info("Force checking alerts...")
        return await self.tick()

    def status(self) -> EngineStatus:
        session = self._session
        return EngineStatus(
            is_running=session is not None,
            user_id=session.user_id if session else None,
            check_interval=self.interval_seconds,
            suppressed=len(session.suppressed) if session else 0,
            active_alerts=len(session.active_alerts) if session else 0,
            circuit_state=self.price_source.circuit_state,
        )

    async def _run_scheduled_tick(self) -> None:
        try:
            await self.tick()
        except Exception as e:
            logger.error(f"Alert check failed: {e}", exc_info=True)

    async def tick(self) -> TickReport:
        """
        Check all pending alerts of the monitored user once.

        Store reads and price fetch failures end the tick without touching
        any alert. A failed conditional update lifts the alert's
        suppression so the next tick retries it.
        """
        session = self._session
        if session is None:
            return TickReport(skipped="not_running")

        report = TickReport(user_id=session.user_id)

        if not self.enabled:
            logger.debug("Price alerts disabled, skipping check")
            report.skipped = "disabled"
            return report

        try:
            alerts = await self.alert_service.get_active_alerts(session.user_id)
        except Exception as e:
            logger.error(f"Error fetching active alerts for user {session.user_id}: {e}")
            report.skipped = "store_error"
            return report

        session.active_alerts = alerts
        if not alerts:
            logger.debug(f"No active alerts for user {session.user_id}")
            report.skipped = "no_alerts"
            return report

        pending = [a for a in alerts if a.id not in session.suppressed]
        if not pending:
            report.skipped = "all_suppressed"
            return report

        by_coin: Dict[str, List[PriceAlert]] = defaultdict(list)
        for alert in pending:
            by_coin[alert.coin_id.strip().lower()].append(alert)
        report.coins = sorted(by_coin)

        try:
            quotes = await self.price_source.get_prices(report.coins, self.currency)
        except Exception as e:
            logger.error(f"Price fetch failed, skipping alert check: {e}")
            report.skipped = "prices_unavailable"
            return report

        logger.info(
            f"Checking {len(pending)} alerts across {len(by_coin)} coins "
            f"for user {session.user_id}"
        )

        for coin_id, coin_alerts in by_coin.items():
            quote = quotes.get(coin_id)
            if quote is None:
                logger.debug(f"No price data for {coin_id}")
                continue

            logger.debug(
                f"{coin_id}: {format_price(quote.price)} "
                f"({format_percentage(quote.change_24h)} 24h, {quote.source.value})"
            )

            if quote.source == QuoteSource.FALLBACK and not self.evaluate_fallback_quotes:
                logger.warning(f"Only fallback price for {coin_id}, not evaluating its alerts")
                continue

            for alert in coin_alerts:
                report.checked += 1
                fires = should_trigger(alert.condition, quote.price, alert.target_price)
                logger.debug(
                    f"Alert {alert.short_id}: {alert.symbol} {alert.condition.value} "
                    f"{alert.target_price} vs {quote.price} -> {fires}"
                )
                if not fires:
                    continue

                # A concurrent tick may have claimed it after the snapshot
                if alert.id in session.suppressed:
                    continue
                session.suppressed.add(alert.id)

                result = await self.alert_service.trigger_alert(alert, quote.price)

                if result.outcome == TriggerOutcome.STORE_ERROR:
                    session.suppressed.discard(alert.id)
                    continue

                if result.outcome == TriggerOutcome.TRIGGERED:
                    report.triggered.append(alert.id)
                    await self._notify_triggered(result.alert, quote.price)

        if report.triggered:
            logger.info(f"Triggered {len(report.triggered)} alert(s) this check")
            await self._refresh_active_alerts(session)

        return report

    async def _notify_triggered(self, alert: PriceAlert, current_price: float) -> None:
        if self.on_alert_triggered is None:
            return
        try:
            result = self.on_alert_triggered(alert, current_price)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Alert triggered callback failed for {alert.short_id}: {e}")

    async def _refresh_active_alerts(self, session: EngineSession) -> None:
        try:
            session.active_alerts = await self.alert_service.get_active_alerts(session.user_id)
        except Exception as e:
            logger.warning(f"Could not refresh active alerts: {e}")
