"""Push-triggered promotion workflow.

- WorkflowRunner: trigger predicate and sequential plan execution
- PlanDispatcher: bounded background execution per delivery
- ActionPlan / build_promotion_plan: create PR -> squash merge -> delete ref
- PlanResult / ActionResult: execution outcome models
"""

from src.autopromote.workflow.dispatcher import PlanDispatcher
from src.autopromote.workflow.models import (
    ActionKind,
    ActionResult,
    ActionStatus,
    ErrorKind,
    PlanOutcome,
    PlanResult,
    WorkflowConfig,
)
from src.autopromote.workflow.plan import (
    Action,
    ActionPlan,
    RepositoryClient,
    build_promotion_plan,
)
from src.autopromote.workflow.runner import (
    ClientProvider,
    WorkflowRunner,
    classify_error,
)

__all__ = [
    "Action",
    "ActionKind",
    "ActionPlan",
    "ActionResult",
    "ActionStatus",
    "ClientProvider",
    "ErrorKind",
    "PlanDispatcher",
    "PlanOutcome",
    "PlanResult",
    "RepositoryClient",
    "WorkflowConfig",
    "WorkflowRunner",
    "build_promotion_plan",
    "classify_error",
]
