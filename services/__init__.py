from .alert_evaluator import should_trigger
from .alert_service import (
    AlertService,
    TriggerOutcome,
    TriggerResult,
    build_alert_message,
)
from .alert_engine import AlertEngine, EngineState, EngineStatus, TickReport

__all__ = [
    "should_trigger",
    "AlertService",
    "TriggerOutcome",
    "TriggerResult",
    "build_alert_message",
    "AlertEngine",
    "EngineState",
    "EngineStatus",
    "TickReport",
]
