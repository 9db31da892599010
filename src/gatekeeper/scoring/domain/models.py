"""
Scoring domain models.

Score records, their status tiers, and the configurable weights used to
aggregate validator output into a single score in [0, 1].
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from gatekeeper.shared.domain.base_model import BaseDomainModel


class ScoreStatus(str, Enum):
    """Status tier of a score."""

    EXCELLENT = "excellent"
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"


class Trend(str, Enum):
    """Direction of recent scores."""

    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


@dataclass(frozen=True)
class ScoringWeights:
    """Component weights of the composite score."""

    security: float = 0.5
    quality: float = 0.3
    performance: float = 0.2


@dataclass(frozen=True)
class SecurityPenalties:
    """Security score deduction per violation severity."""

    critical: float = 0.3
    high: float = 0.15
    medium: float = 0.05


@dataclass(frozen=True)
class ComponentScores(BaseDomainModel):
    """Independently clamped component scores."""

    security: float
    quality: float
    performance: float


@dataclass(frozen=True)
class ScoreRecord(BaseDomainModel):
    """
    One truth score.

    Appended to the bounded history when recorded; never mutated afterwards.
    """

    overall_score: float
    component_scores: ComponentScores
    status: ScoreStatus
    passed: bool
    threshold: float
    timestamp_ns: int
    violations: tuple = ()
    issues: tuple = ()


@dataclass(frozen=True)
class VerificationChecks(BaseDomainModel):
    """Boolean checks evaluated by verify."""

    code_correctness: bool
    security: bool
    performance: bool
    quality: bool


@dataclass(frozen=True)
class RollbackOutcome(BaseDomainModel):
    """Result of invoking a rollback callback."""

    attempted: bool
    succeeded: bool = False
    error: Optional[str] = None


@dataclass
class VerificationResult(BaseDomainModel):
    """Outcome of verify."""

    verified: bool
    threshold: float
    score: ScoreRecord
    checks: VerificationChecks
    rollback: Optional[RollbackOutcome] = None


@dataclass
class Dashboard(BaseDomainModel):
    """Aggregated view over a recent period of score history."""

    overall_score: float
    status: ScoreStatus
    trend: Trend
    trend_percent: float
    period: str
    statistics: dict = field(default_factory=dict)
    recent_scores: List[Any] = field(default_factory=list)
