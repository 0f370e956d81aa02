"""Decision, approval and scheduling engines."""

from ordergate.engine.approval import (
    DecisionCycle,
    OrderApprovalEngine,
    OrderDecision,
    period_key,
    second_of_period,
)
from ordergate.engine.decision import DecisionEngine, EngineState, StrategyKind
from ordergate.engine.scheduler import EngineScheduler

__all__ = [
    "DecisionCycle",
    "DecisionEngine",
    "EngineScheduler",
    "EngineState",
    "OrderApprovalEngine",
    "OrderDecision",
    "StrategyKind",
    "period_key",
    "second_of_period",
]
