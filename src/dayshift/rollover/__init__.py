"""Daily/version branch rollover."""

from .executor import Confirm, RolloverExecutor, RolloverOutcome, RolloverService, auto_confirm
from .planner import (
    RolloverDecision,
    RolloverPlan,
    RolloverPlanner,
    RolloverState,
    RolloverStep,
    StepAction,
)

__all__ = [
    "Confirm",
    "RolloverDecision",
    "RolloverExecutor",
    "RolloverOutcome",
    "RolloverPlan",
    "RolloverPlanner",
    "RolloverService",
    "RolloverState",
    "RolloverStep",
    "StepAction",
    "auto_confirm",
]
