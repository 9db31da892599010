"""
Hook domain models.

Hook descriptors owned by the hook pipeline registry, the normalized
decisions handlers return, and the outcome of a pipeline run.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Callable, List, Optional

from gatekeeper.rules.domain.enums import Severity
from gatekeeper.shared.domain.base_model import BaseDomainModel


class HookPriority(IntEnum):
    """
    Hook execution priority.

    Lower values execute first.
    """

    CRITICAL = 1
    HIGH = 2
    MEDIUM = 3
    LOW = 4


class HookPhase(str, Enum):
    """Registry a hook belongs to."""

    PRE = "pre"
    POST = "post"


@dataclass
class Hook(BaseDomainModel):
    """
    Registered hook.

    Identity is the id; registering the same id again replaces the entry
    and starts its metrics from zero.
    """

    id: str
    phase: HookPhase
    priority: HookPriority
    handler: Callable[..., Any] = field(repr=False)
    enabled: bool = True
    execution_count: int = 0
    total_time_ns: int = 0

    @property
    def average_time_ns(self) -> float:
        return self.total_time_ns / self.execution_count if self.execution_count else 0.0


@dataclass(frozen=True)
class HookDecision(BaseDomainModel):
    """Normalized pre-hook handler result."""

    allowed: bool = True
    reason: Optional[str] = None
    severity: Severity = Severity.HIGH
    suggestion: Optional[str] = None


@dataclass(frozen=True)
class HookVerdict(BaseDomainModel):
    """Normalized post-hook handler result."""

    valid: bool = True
    issues: tuple = ()


@dataclass(frozen=True)
class Intervention(BaseDomainModel):
    """A recorded pre-hook veto."""

    hook_id: str
    reason: Optional[str]
    severity: Severity
    suggestion: Optional[str] = None


@dataclass(frozen=True)
class HookFailure(BaseDomainModel):
    """A handler that raised; the hook counted as a no-op."""

    hook_id: str
    phase: HookPhase
    error: str


@dataclass
class PreHookOutcome(BaseDomainModel):
    """Result of running the pre-phase registry."""

    allowed: bool
    tool_name: str
    interventions: List[Intervention] = field(default_factory=list)
    hooks_run: List[str] = field(default_factory=list)
    errors: List[HookFailure] = field(default_factory=list)
    response_time_ns: int = 0
    budget_exceeded: bool = False


@dataclass
class PostHookOutcome(BaseDomainModel):
    """Result of running the post-phase registry."""

    valid: bool
    tool_name: str
    issues: List[Any] = field(default_factory=list)
    hooks_run: List[str] = field(default_factory=list)
    errors: List[HookFailure] = field(default_factory=list)
    response_time_ns: int = 0
    budget_exceeded: bool = False
