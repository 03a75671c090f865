"""Per-component outcomes and the aggregated stack result."""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from astra_stack.config.models import ExecutionMode
from astra_stack.utils.errors import ConfigurationError, ErrorContext, OutcomeTransitionError
from astra_stack.utils.logging import get_logger

logger = get_logger(__name__)


class RunState(Enum):
    """Stage of a deploy run."""
    IDLE = "idle"
    PLANNING = "planning"
    EXECUTING = "executing"
    PROBING = "probing"
    AGGREGATING = "aggregating"
    DONE = "done"


class DeploymentOutcome(Enum):
    """Where a component is in its bring-up."""
    NOT_STARTED = "not_started"
    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    HEALTH_CHECK_PENDING = "health_check_pending"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEPLOY_FAILED = "deploy_failed"

    def is_terminal(self) -> bool:
        """Whether no further transition is possible within a run."""
        return self in (
            DeploymentOutcome.HEALTHY,
            DeploymentOutcome.UNHEALTHY,
            DeploymentOutcome.DEPLOY_FAILED,
        )


# Forward-only transitions; resets happen through OutcomeTable.reset()
ALLOWED_TRANSITIONS = {
    DeploymentOutcome.NOT_STARTED: {DeploymentOutcome.DEPLOYING},
    DeploymentOutcome.DEPLOYING: {DeploymentOutcome.DEPLOYED, DeploymentOutcome.DEPLOY_FAILED},
    DeploymentOutcome.DEPLOYED: {DeploymentOutcome.HEALTH_CHECK_PENDING, DeploymentOutcome.HEALTHY},
    DeploymentOutcome.HEALTH_CHECK_PENDING: {DeploymentOutcome.HEALTHY, DeploymentOutcome.UNHEALTHY},
    DeploymentOutcome.HEALTHY: set(),
    DeploymentOutcome.UNHEALTHY: set(),
    DeploymentOutcome.DEPLOY_FAILED: set(),
}


@dataclass(frozen=True)
class Transition:
    """One recorded change of a component's outcome."""

    component: str
    previous: DeploymentOutcome
    current: DeploymentOutcome
    reason: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


TransitionListener = Callable[[Transition], None]


class OutcomeTable:
    """Outcome of every component for one run.

    Each component's entry is written by at most one task; the shared
    transition log is the only structure guarded by a lock.
    """

    def __init__(self, names: Sequence[str], listener: Optional[TransitionListener] = None):
        self._names = list(names)
        self._outcomes: Dict[str, DeploymentOutcome] = {
            name: DeploymentOutcome.NOT_STARTED for name in self._names
        }
        self._reasons: Dict[str, str] = {}
        self._transitions: List[Transition] = []
        self._lock = threading.Lock()
        self.listener = listener

    def get(self, name: str) -> DeploymentOutcome:
        """Current outcome of a component."""
        return self._outcomes[name]

    def reason(self, name: str) -> Optional[str]:
        """Why a component ended up where it is, if recorded."""
        return self._reasons.get(name)

    def set_reason(self, name: str, reason: str) -> None:
        """Attach a reason without changing the outcome."""
        self._reasons[name] = reason

    def transition(self, name: str, outcome: DeploymentOutcome, reason: Optional[str] = None) -> Transition:
        """Move a component forward.

        Raises:
            OutcomeTransitionError: If the move is not a legal forward transition
        """
        if name not in self._outcomes:
            raise ConfigurationError(f"Unknown component: {name}")

        previous = self._outcomes[name]
        if outcome not in ALLOWED_TRANSITIONS[previous]:
            raise OutcomeTransitionError(
                f"Illegal transition for {name}: {previous.value} -> {outcome.value}",
                context=ErrorContext(component=name)
            )

        self._outcomes[name] = outcome
        if reason:
            self._reasons[name] = reason

        entry = Transition(component=name, previous=previous, current=outcome, reason=reason)
        with self._lock:
            self._transitions.append(entry)

        logger.debug(
            f"{previous.value} -> {outcome.value}" + (f" ({reason})" if reason else ""),
            extra={'component': name}
        )
        if self.listener:
            self.listener(entry)
        return entry

    def reset(self) -> None:
        """Return every component to NOT_STARTED for a fresh run."""
        with self._lock:
            self._outcomes = {name: DeploymentOutcome.NOT_STARTED for name in self._names}
            self._reasons = {}
            self._transitions = []

    def snapshot(self) -> Dict[str, DeploymentOutcome]:
        """Outcomes in registry order."""
        return {name: self._outcomes[name] for name in self._names}

    def reasons(self) -> Dict[str, str]:
        """Recorded reasons keyed by component."""
        return dict(self._reasons)

    def transitions(self) -> List[Transition]:
        """Transition log in the order it was written."""
        with self._lock:
            return list(self._transitions)

    def names(self) -> List[str]:
        """Component names in registry order."""
        return list(self._names)


class StackResultKind(Enum):
    """Overall outcome of a run."""
    ALL_HEALTHY = "all_healthy"
    PARTIAL_FAILURE = "partial_failure"
    TOTAL_FAILURE = "total_failure"


@dataclass
class StackResult:
    """Aggregate of every component's outcome at the end of a run."""

    kind: StackResultKind
    mode: Optional[ExecutionMode] = None
    outcomes: Dict[str, DeploymentOutcome] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)
    reasons: Dict[str, str] = field(default_factory=dict)
    transitions: List[Transition] = field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: float = 0.0  # seconds
    aborted: bool = False
    error: Optional[ConfigurationError] = None

    @classmethod
    def aggregate(
        cls,
        table: OutcomeTable,
        mode: Optional[ExecutionMode] = None,
        **kwargs
    ) -> "StackResult":
        """Compute the stack result from an outcome table.

        ALL_HEALTHY only when every component is healthy; TOTAL_FAILURE when
        none is; otherwise PARTIAL_FAILURE naming every component that is not.
        """
        outcomes = table.snapshot()
        failed = [name for name, outcome in outcomes.items() if outcome != DeploymentOutcome.HEALTHY]
        healthy = len(outcomes) - len(failed)

        if not failed:
            kind = StackResultKind.ALL_HEALTHY
        elif healthy == 0:
            kind = StackResultKind.TOTAL_FAILURE
        else:
            kind = StackResultKind.PARTIAL_FAILURE

        return cls(
            kind=kind,
            mode=mode,
            outcomes=outcomes,
            failed=failed,
            reasons=table.reasons(),
            transitions=table.transitions(),
            **kwargs
        )

    @classmethod
    def planning_failed(cls, error: ConfigurationError, names: Sequence[str], **kwargs) -> "StackResult":
        """Result for a run whose planning stage failed."""
        return cls(
            kind=StackResultKind.TOTAL_FAILURE,
            outcomes={name: DeploymentOutcome.NOT_STARTED for name in names},
            failed=list(names),
            error=error,
            **kwargs
        )

    def is_success(self) -> bool:
        """Check if every component became healthy."""
        return self.kind == StackResultKind.ALL_HEALTHY

    @property
    def exit_code(self) -> int:
        """Process exit code for this result."""
        return 0 if self.is_success() else 1

    def components_with(self, outcome: DeploymentOutcome) -> List[str]:
        """Names of components that ended with ``outcome``."""
        return [name for name, current in self.outcomes.items() if current == outcome]


@dataclass
class StopReport:
    """Result of a best-effort stop."""

    stopped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)  # name -> reason
    order: List[str] = field(default_factory=list)
    duration: float = 0.0  # seconds

    def is_success(self) -> bool:
        """Check if every component stopped cleanly."""
        return not self.failed
