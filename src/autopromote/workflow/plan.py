"""Action plan for the promotion workflow.

A plan is an ordered list of actions. Each action is a coroutine that
receives the repository client, the triggering event, the workflow
configuration and the outputs of the actions that already succeeded.
An action may declare that it requires the output of earlier actions;
the runner never starts it otherwise.

The promotion plan is:

1. create_pull_request: open (or reuse) a pull request head -> base
2. merge_pull_request: squash-merge the pull request opened in step 1
3. delete_ref: delete the head branch
"""

import logging
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)

from src.autopromote.github.client import GitHubAPIError
from src.autopromote.github.models import MergeResult, PullRequest
from src.autopromote.webhook.models import PushEvent
from src.autopromote.workflow.models import ActionKind, WorkflowConfig

logger = logging.getLogger(__name__)

ActionOutputs = Dict[ActionKind, Dict[str, Any]]


@runtime_checkable
class RepositoryClient(Protocol):
    """Protocol for the remote repository operations a plan consumes.

    GitHubClient implements it; tests substitute fakes.
    """

    async def find_open_pull_request(
        self, owner: str, repo: str, head: str, base: str
    ) -> Optional[PullRequest]:
        ...

    async def create_pull_request(
        self, owner: str, repo: str, head: str, base: str, title: str
    ) -> PullRequest:
        ...

    async def merge_pull_request(
        self,
        owner: str,
        repo: str,
        pull_number: int,
        merge_method: str = "squash",
        commit_title: Optional[str] = None,
    ) -> MergeResult:
        ...

    async def delete_ref(self, owner: str, repo: str, ref: str) -> None:
        ...


ActionFunc = Callable[
    [RepositoryClient, PushEvent, WorkflowConfig, ActionOutputs],
    Awaitable[Dict[str, Any]],
]


@dataclass(frozen=True)
class Action:
    """One step of an action plan.

    Attributes:
        kind: Which remote operation this step performs.
        run: Coroutine function performing the step.
        requires: Actions whose successful output this step consumes.
    """

    kind: ActionKind
    run: ActionFunc
    requires: Tuple[ActionKind, ...] = ()


class ActionPlan:
    """Ordered, strictly sequential list of actions."""

    def __init__(self, actions: List[Action]):
        kinds = [action.kind for action in actions]
        for index, action in enumerate(actions):
            for required in action.requires:
                if required not in kinds[:index]:
                    raise ValueError(
                        f"{action.kind.value} requires {required.value}, "
                        "which does not run before it"
                    )
        self._actions = list(actions)

    def __iter__(self) -> Iterator[Action]:
        return iter(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def kinds(self) -> List[ActionKind]:
        return [action.kind for action in self._actions]


async def _find_existing(
    client: RepositoryClient,
    event: PushEvent,
    config: WorkflowConfig,
) -> Optional[Dict[str, Any]]:
    existing = await client.find_open_pull_request(
        event.owner,
        event.repository,
        head=config.target_branch,
        base=config.base_branch,
    )
    if existing is None:
        return None
    logger.info(
        "Reusing open pull request",
        extra={"event_id": event.event_id, "pr_number": existing.number},
    )
    return {"pull_number": existing.number, "url": existing.url, "reused": True}


async def create_pull_request(
    client: RepositoryClient,
    event: PushEvent,
    config: WorkflowConfig,
    outputs: ActionOutputs,
) -> Dict[str, Any]:
    """Open a pull request from the target branch into the base branch.

    A redelivered or concurrent push finds the pull request opened by the
    first delivery and reuses it instead of failing with a 422. The same
    happens when the create call itself raced another delivery, or when a
    retried POST lands after the first one already opened the pull request:
    GitHub answers 422 and the open pull request is looked up again.
    """
    existing = await _find_existing(client, event, config)
    if existing is not None:
        return existing

    try:
        pull_request = await client.create_pull_request(
            event.owner,
            event.repository,
            head=config.target_branch,
            base=config.base_branch,
            title=config.pull_request_title,
        )
    except GitHubAPIError as exc:
        if exc.status_code != 422:
            raise
        existing = await _find_existing(client, event, config)
        if existing is None:
            raise
        return existing
    return {"pull_number": pull_request.number, "url": pull_request.url, "reused": False}


async def merge_pull_request(
    client: RepositoryClient,
    event: PushEvent,
    config: WorkflowConfig,
    outputs: ActionOutputs,
) -> Dict[str, Any]:
    """Merge the pull request produced by create_pull_request."""
    pull_number = outputs[ActionKind.CREATE_PULL_REQUEST]["pull_number"]
    result = await client.merge_pull_request(
        event.owner,
        event.repository,
        pull_number=pull_number,
        merge_method=config.merge_method,
        commit_title=config.pull_request_title,
    )
    return {"pull_number": pull_number, "sha": result.sha, "merged": result.merged}


async def delete_ref(
    client: RepositoryClient,
    event: PushEvent,
    config: WorkflowConfig,
    outputs: ActionOutputs,
) -> Dict[str, Any]:
    """Delete the target branch once it has been merged."""
    await client.delete_ref(event.owner, event.repository, ref=config.cleanup_ref)
    return {"ref": config.cleanup_ref}


def build_promotion_plan() -> ActionPlan:
    """Build the create -> merge -> delete plan."""
    return ActionPlan(
        [
            Action(ActionKind.CREATE_PULL_REQUEST, create_pull_request),
            Action(
                ActionKind.MERGE_PULL_REQUEST,
                merge_pull_request,
                requires=(ActionKind.CREATE_PULL_REQUEST,),
            ),
            Action(
                ActionKind.DELETE_REF,
                delete_ref,
                requires=(ActionKind.MERGE_PULL_REQUEST,),
            ),
        ]
    )
