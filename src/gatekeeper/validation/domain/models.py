"""
Validation domain models.

Results returned by the pattern validator. Created per call and never
mutated afterwards.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from gatekeeper.rules.domain.enums import Severity
from gatekeeper.rules.domain.models import Violation
from gatekeeper.shared.domain.base_model import BaseDomainModel


@dataclass
class ValidationResult(BaseDomainModel):
    """
    Outcome of pre-execution validation.

    passed is "no CRITICAL violation", or "no violation at all" in strict mode.
    """

    passed: bool
    violations: List[Violation] = field(default_factory=list)
    critical_count: int = 0
    total_count: int = 0
    score: Optional[float] = None
    performance_compliant: bool = True
    response_time_ns: int = 0

    @property
    def critical_violations(self) -> List[Violation]:
        return [v for v in self.violations if v.severity == Severity.CRITICAL]


@dataclass(frozen=True)
class QualityIssue(BaseDomainModel):
    """A quality problem found by post-execution validation."""

    type: str
    severity: Severity
    message: str
    suggestion: str
    matches: tuple = ()


@dataclass
class PostValidationResult(BaseDomainModel):
    """
    Outcome of post-execution validation.

    quality_score starts at 100 and is floored at 0.
    """

    passed: bool
    quality_score: int = 100
    issues: List[QualityIssue] = field(default_factory=list)
    response_time_ns: int = 0
