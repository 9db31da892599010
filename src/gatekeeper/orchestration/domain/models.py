"""
Orchestration domain models.

Attempt records and results of the retry/feedback loop, and the
configuration forwarded to the external task executor.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from gatekeeper.shared.domain.base_model import BaseDomainModel


class OrchestrationStatus(str, Enum):
    """Final status of an orchestration."""

    SUCCESS = "success"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class OrchestrationConfig:
    """Executor arguments and retry bound."""

    strategy: str = "adaptive"
    priority: str = "medium"
    max_agents: int = 5
    max_retries: int = 3


@dataclass
class FeedbackIssue(BaseDomainModel):
    """An issue reported by post-validation, as listed in a feedback block."""

    message: str
    suggestion: Optional[str] = None


@dataclass
class Attempt(BaseDomainModel):
    """
    One execution attempt.

    error is set when the executor or post-validation raised; the attempt
    then counts as failed.
    """

    number: int
    task: str
    passed: bool
    result: Any = None
    issues: List[FeedbackIssue] = field(default_factory=list)
    error: Optional[str] = None
    response_time_ns: int = 0


@dataclass
class OrchestrationResult(BaseDomainModel):
    """
    Outcome of the retry loop.

    attempts is the number of executor invocations; a blocked orchestration
    made none.
    """

    final_status: OrchestrationStatus
    attempts: int
    max_retries: int
    task: str
    result: Any = None
    attempt_log: List[Attempt] = field(default_factory=list)
    blocked_reason: Optional[str] = None
    response_time_ns: int = 0

    @property
    def success(self) -> bool:
        return self.final_status == OrchestrationStatus.SUCCESS


@dataclass(frozen=True)
class ExecutorConnection(BaseDomainModel):
    """Outcome of probing the external executor."""

    connected: bool
    version: Optional[str] = None
    error: Optional[str] = None
