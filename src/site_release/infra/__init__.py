"""Infrastructure lifecycle: drives the IaC engine subprocess."""

from .confirm import (
    AutoApprove,
    AutoDeny,
    CallbackConfirmation,
    ConfirmationStrategy,
    KeypressConfirmation,
)
from .controller import (
    ApplyResult,
    InfraController,
    InfraOutputs,
    InfraStage,
    PlanResult,
    PlanStatus,
    interpret_plan_exit,
)
from .session import EngineSession, InfraCommandResult

__all__ = [
    "AutoApprove",
    "AutoDeny",
    "CallbackConfirmation",
    "ConfirmationStrategy",
    "KeypressConfirmation",
    "ApplyResult",
    "InfraController",
    "InfraOutputs",
    "InfraStage",
    "PlanResult",
    "PlanStatus",
    "interpret_plan_exit",
    "EngineSession",
    "InfraCommandResult",
]
