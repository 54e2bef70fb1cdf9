"""Tests for AlertService."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from database.models import AlertCondition
from services.alert_service import (
    AlertService,
    TriggerOutcome,
    build_alert_message,
)


class TestCreateAlert:
    """Test cases for alert creation and validation."""

    @pytest.mark.asyncio
    async def test_create_alert(self, alert_service: AlertService, sample_alert_data: dict):
        """Test creating a valid alert stores a pending alert."""
        alert = await alert_service.create_alert(**sample_alert_data)

        assert alert.id
        assert alert.user_id == "user-1"
        assert alert.coin_id == "bitcoin"
        assert alert.symbol == "BTC"
        assert alert.target_price == 50000.0
        assert alert.condition == AlertCondition.ABOVE
        assert alert.is_pending

        assert await alert_service.get_active_alerts_count("user-1") == 1

    @pytest.mark.asyncio
    async def test_create_alert_normalizes_input(self, alert_service: AlertService, sample_alert_data: dict):
        sample_alert_data.update(coin_id="  Ethereum ", condition="BELOW", target_price="3000.5")

        alert = await alert_service.create_alert(**sample_alert_data)

        assert alert.coin_id == "ethereum"
        assert alert.condition == AlertCondition.BELOW
        assert alert.target_price == 3000.5

    @pytest.mark.asyncio
    async def test_missing_user_id(self, alert_service: AlertService, sample_alert_data: dict):
        sample_alert_data["user_id"] = ""
        with pytest.raises(ValueError, match="User ID required"):
            await alert_service.create_alert(**sample_alert_data)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["coin_id", "coin_name", "symbol", "target_price", "condition"])
    async def test_missing_field(self, alert_service: AlertService, sample_alert_data: dict, field: str):
        """Test that every required field is checked."""
        sample_alert_data[field] = None
        with pytest.raises(ValueError, match=field):
            await alert_service.create_alert(**sample_alert_data)

    @pytest.mark.asyncio
    async def test_invalid_condition(self, alert_service: AlertService, sample_alert_data: dict):
        sample_alert_data["condition"] = "crosses"
        with pytest.raises(ValueError, match="Invalid condition"):
            await alert_service.create_alert(**sample_alert_data)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", [0, -5, "abc", float("nan"), 10 ** 400])
    async def test_invalid_target_price(self, alert_service: AlertService, sample_alert_data: dict, price):
        sample_alert_data["target_price"] = price
        with pytest.raises(ValueError, match="Target price"):
            await alert_service.create_alert(**sample_alert_data)

    @pytest.mark.asyncio
    async def test_invalid_coin_id(self, alert_service: AlertService, sample_alert_data: dict):
        sample_alert_data["coin_id"] = "bit coin!"
        with pytest.raises(ValueError, match="Invalid coin ID"):
            await alert_service.create_alert(**sample_alert_data)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["coin_name", "symbol"])
    async def test_non_text_name_fields(self, alert_service: AlertService, sample_alert_data: dict, field: str):
        sample_alert_data[field] = 123
        with pytest.raises(ValueError, match=f"{field} must be text"):
            await alert_service.create_alert(**sample_alert_data)

    @pytest.mark.asyncio
    async def test_rejected_alert_is_not_stored(self, alert_service: AlertService, sample_alert_data: dict):
        sample_alert_data["target_price"] = -1
        with pytest.raises(ValueError):
            await alert_service.create_alert(**sample_alert_data)

        assert await alert_service.get_active_alerts("user-1") == []


class TestAlertManagement:
    """Test cases for listing, deleting and deactivating alerts."""

    @pytest.mark.asyncio
    async def test_delete_alert(self, alert_service: AlertService, sample_alert_data: dict):
        alert = await alert_service.create_alert(**sample_alert_data)

        assert await alert_service.delete_alert("user-1", alert.id) is True
        assert await alert_service.get_active_alerts("user-1") == []

    @pytest.mark.asyncio
    async def test_delete_other_users_alert(self, alert_service: AlertService, sample_alert_data: dict):
        """Test that ownership is checked on delete."""
        alert = await alert_service.create_alert(**sample_alert_data)

        assert await alert_service.delete_alert("user-2", alert.id) is False
        assert len(await alert_service.get_active_alerts("user-1")) == 1

    @pytest.mark.asyncio
    async def test_delete_triggered_alert(self, alert_service: AlertService, alert_repo, sample_alert_data: dict):
        """Test that delete works regardless of state."""
        alert = await alert_service.create_alert(**sample_alert_data)
        await alert_service.trigger_alert(alert, 50500.0)

        assert await alert_service.delete_alert("user-1", alert.id) is True
        assert await alert_repo.get_by_id(alert.id) is None

    @pytest.mark.asyncio
    async def test_delete_requires_ids(self, alert_service: AlertService):
        with pytest.raises(ValueError):
            await alert_service.delete_alert("", "abc")

    @pytest.mark.asyncio
    async def test_deactivate_alert(self, alert_service: AlertService, alert_repo, sample_alert_data: dict):
        alert = await alert_service.create_alert(**sample_alert_data)

        assert await alert_service.deactivate_alert("user-1", alert.id) is True

        stored = await alert_repo.get_by_id(alert.id)
        assert stored.is_active is False
        assert stored.triggered_at is None
        assert await alert_service.get_active_alerts("user-1") == []

    @pytest.mark.asyncio
    async def test_get_alerts_by_coin(self, alert_service: AlertService, sample_alert_data: dict):
        await alert_service.create_alert(**sample_alert_data)
        sample_alert_data.update(coin_id="ethereum", coin_name="Ethereum", symbol="eth")
        await alert_service.create_alert(**sample_alert_data)

        btc_alerts = await alert_service.get_alerts_by_coin("user-1", "bitcoin")

        assert [a.coin_id for a in btc_alerts] == ["bitcoin"]

    @pytest.mark.asyncio
    async def test_empty_user_lookups(self, alert_service: AlertService):
        assert await alert_service.get_active_alerts("") == []
        assert await alert_service.get_alerts_by_coin("", "bitcoin") == []
        assert await alert_service.get_active_alerts_count("") == 0


class TestTriggerAlert:
    """Test cases for the trigger transaction."""

    @pytest.mark.asyncio
    async def test_trigger_creates_notification(
        self,
        alert_service: AlertService,
        notification_repo,
        sample_alert_data: dict,
    ):
        """Test that a fresh alert is flipped and a notification written."""
        alert = await alert_service.create_alert(**sample_alert_data)
        fired_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        result = await alert_service.trigger_alert(alert, 50500.0, triggered_at=fired_at)

        assert result.outcome == TriggerOutcome.TRIGGERED
        assert result.triggered
        assert result.alert.is_active is False
        assert result.alert.triggered_at == fired_at

        notification = result.notification
        assert notification.type == "price_alert"
        assert notification.coin == "BTC"
        assert notification.price == 50500.0
        assert notification.quantity == 50000.0
        assert notification.read is False
        assert "50500" in notification.message
        assert "50000" in notification.message
        assert "above" in notification.message

        assert await notification_repo.count_unread("user-1") == 1

    @pytest.mark.asyncio
    async def test_second_trigger_is_noop(self, alert_service: AlertService, notification_repo, sample_alert_data: dict):
        alert = await alert_service.create_alert(**sample_alert_data)

        first = await alert_service.trigger_alert(alert, 50500.0)
        second = await alert_service.trigger_alert(alert, 50600.0)

        assert first.outcome == TriggerOutcome.TRIGGERED
        assert second.outcome == TriggerOutcome.ALREADY_TRIGGERED
        assert second.notification is None
        assert await notification_repo.count_unread("user-1") == 1

    @pytest.mark.asyncio
    async def test_concurrent_triggers_fire_once(
        self,
        alert_service: AlertService,
        alert_repo,
        notification_repo,
        sample_alert_data: dict,
    ):
        """Test that two simultaneous trigger attempts produce one notification."""
        alert = await alert_service.create_alert(**sample_alert_data)

        results = await asyncio.gather(
            alert_service.trigger_alert(alert, 50500.0),
            alert_service.trigger_alert(alert, 50500.0),
        )

        outcomes = sorted(r.outcome.value for r in results)
        assert outcomes == ["already_triggered", "triggered"]
        assert len(await notification_repo.get_user_notifications("user-1")) == 1

        stored = await alert_repo.get_by_id(alert.id)
        winner = next(r for r in results if r.triggered)
        assert stored.is_active is False
        assert stored.triggered_at == winner.alert.triggered_at

    @pytest.mark.asyncio
    async def test_trigger_deleted_alert(self, alert_service: AlertService, notification_repo, sample_alert_data: dict):
        """Test that an alert deleted before triggering is a quiet no-op."""
        alert = await alert_service.create_alert(**sample_alert_data)
        await alert_service.delete_alert("user-1", alert.id)

        result = await alert_service.trigger_alert(alert, 50500.0)

        assert result.outcome == TriggerOutcome.ALREADY_TRIGGERED
        assert await notification_repo.count_unread("user-1") == 0

    @pytest.mark.asyncio
    async def test_store_error(self, alert_repo, notification_repo, sample_alert_data: dict):
        """Test that a failed conditional update leaves the alert pending."""
        service = AlertService(alert_repo, notification_repo)
        alert = await service.create_alert(**sample_alert_data)
        alert_repo.mark_triggered = AsyncMock(side_effect=ConnectionError("db down"))

        result = await service.trigger_alert(alert, 50500.0)

        assert result.outcome == TriggerOutcome.STORE_ERROR
        assert "db down" in result.error
        assert (await alert_repo.get_by_id(alert.id)).is_pending
        assert await notification_repo.count_unread("user-1") == 0

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_trigger(self, alert_repo, notification_repo, sample_alert_data: dict):
        """Test that a failed notification insert does not re-arm the alert."""
        service = AlertService(alert_repo, notification_repo)
        alert = await service.create_alert(**sample_alert_data)
        notification_repo.create = AsyncMock(side_effect=RuntimeError("insert failed"))

        result = await service.trigger_alert(alert, 50500.0)

        assert result.outcome == TriggerOutcome.TRIGGERED
        assert result.notification is None
        assert "insert failed" in result.error
        assert (await alert_repo.get_by_id(alert.id)).is_pending is False


class TestEvaluateImmediately:
    """Test cases for the post-creation check."""

    @pytest.mark.asyncio
    async def test_already_past_threshold(self, alert_service: AlertService, sample_alert_data: dict):
        alert, result = await alert_service.create_and_evaluate(
            **sample_alert_data, current_price=50500.0
        )

        assert result.outcome == TriggerOutcome.TRIGGERED
        assert alert.is_pending is False
        assert await alert_service.get_active_alerts("user-1") == []

    @pytest.mark.asyncio
    async def test_not_past_threshold(self, alert_service: AlertService, notification_repo, sample_alert_data: dict):
        alert, result = await alert_service.create_and_evaluate(
            **sample_alert_data, current_price=49000.0
        )

        assert result.outcome == TriggerOutcome.NOT_MET
        assert alert.is_pending
        assert await notification_repo.count_unread("user-1") == 0

    @pytest.mark.asyncio
    async def test_without_known_price(self, alert_service: AlertService, sample_alert_data: dict):
        alert, result = await alert_service.create_and_evaluate(**sample_alert_data)

        assert result is None
        assert alert.is_pending

    @pytest.mark.asyncio
    async def test_invalid_price_does_not_fire(self, alert_service: AlertService, sample_alert_data: dict):
        alert = await alert_service.create_alert(**sample_alert_data)

        result = await alert_service.evaluate_immediately(alert, float("nan"))

        assert result.outcome == TriggerOutcome.NOT_MET


class TestBuildAlertMessage:
    """Tests for notification message text."""

    @pytest.mark.asyncio
    async def test_above_message(self, alert_service: AlertService, sample_alert_data: dict):
        alert = await alert_service.create_alert(**sample_alert_data)

        message = build_alert_message(alert, 50500)

        assert message == "Bitcoin (BTC) has risen above $50000.00! Current price: $50500.00"

    @pytest.mark.asyncio
    async def test_below_message(self, alert_service: AlertService, sample_alert_data: dict):
        sample_alert_data.update(
            coin_id="cardano", coin_name="Cardano", symbol="ada",
            target_price=0.5, condition="below",
        )
        alert = await alert_service.create_alert(**sample_alert_data)

        message = build_alert_message(alert, 0.4821)

        assert message == "Cardano (ADA) has fallen below $0.500000! Current price: $0.482100"
