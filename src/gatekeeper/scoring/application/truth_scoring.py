"""
Truth scoring aggregator.

Combines pre-validation violations, post-validation quality and validator
latency compliance into one weighted score in [0, 1], keeps a bounded
history of recorded scores, and derives verification verdicts, dashboards
and exports from it.
"""

import inspect
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Union

from gatekeeper.rules.domain.enums import Severity
from gatekeeper.rules.domain.models import Violation
from gatekeeper.scoring.domain.models import (
    ComponentScores,
    Dashboard,
    RollbackOutcome,
    ScoreRecord,
    ScoreStatus,
    ScoringWeights,
    SecurityPenalties,
    Trend,
    VerificationChecks,
    VerificationResult,
)
from gatekeeper.shared.infrastructure.logging import get_logger
from gatekeeper.validation.application.pattern_validator import PatternValidator, extract_code

logger = get_logger(__name__)

EXCELLENT_THRESHOLD = 0.95

_NS_PER_SECOND = 1_000_000_000
PERIODS_NS: Dict[str, int] = {
    "1h": 3600 * _NS_PER_SECOND,
    "24h": 86400 * _NS_PER_SECOND,
    "7d": 7 * 86400 * _NS_PER_SECOND,
    "30d": 30 * 86400 * _NS_PER_SECOND,
}
DEFAULT_PERIOD = "24h"

# Boolean verification checks
CORRECTNESS_MIN_SECURITY = 0.9
PERFORMANCE_MIN = 0.8
QUALITY_MIN = 0.7

RollbackFn = Callable[[], Union[bool, None, Awaitable[Optional[bool]]]]
EventCallback = Callable[[str, Dict[str, Any]], None]


def classify_score(score: float, warning_threshold: float = 0.85, critical_threshold: float = 0.75) -> ScoreStatus:
    """Map a score to its status tier."""
    if score >= EXCELLENT_THRESHOLD:
        return ScoreStatus.EXCELLENT
    if score >= warning_threshold:
        return ScoreStatus.GOOD
    if score >= critical_threshold:
        return ScoreStatus.WARNING
    return ScoreStatus.CRITICAL


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class TruthScoring:
    """
    Weighted truth score over the pattern validator.

    Attributes:
        threshold: Score a record needs to pass
        warning_threshold: Lower bound of the 'good' tier
        critical_threshold: Lower bound of the 'warning' tier
        auto_rollback: Invoke a supplied rollback callback on failed verification
    """

    def __init__(
        self,
        validator: Optional[PatternValidator] = None,
        *,
        threshold: float = 0.95,
        warning_threshold: float = 0.85,
        critical_threshold: float = 0.75,
        auto_rollback: bool = True,
        history_size: int = 1000,
        weights: Optional[ScoringWeights] = None,
        penalties: Optional[SecurityPenalties] = None,
        event_callback: Optional[EventCallback] = None,
        now_ns: Callable[[], int] = time.time_ns,
    ):
        if history_size <= 0:
            raise ValueError("history_size must be positive")

        self.validator = validator or PatternValidator()
        self.threshold = threshold
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold
        self.auto_rollback = auto_rollback
        self.weights = weights or ScoringWeights()
        self.penalties = penalties or SecurityPenalties()
        self._event_callback = event_callback
        self._now_ns = now_ns

        self._history: Deque[ScoreRecord] = deque(maxlen=history_size)
        self._total = 0
        self._passed = 0
        self._failed = 0
        self._average_score = 0.0
        self._rollbacks = 0

    @property
    def history(self) -> List[ScoreRecord]:
        return list(self._history)

    def classify(self, score: float) -> ScoreStatus:
        return classify_score(score, self.warning_threshold, self.critical_threshold)

    def security_score(self, violations: List[Violation]) -> float:
        """1.0 minus a per-severity penalty for each violation, floored at 0."""
        counts = {severity: 0 for severity in Severity}
        for violation in violations:
            counts[violation.severity] += 1

        score = (
            1.0
            - counts[Severity.CRITICAL] * self.penalties.critical
            - counts[Severity.HIGH] * self.penalties.high
            - counts[Severity.MEDIUM] * self.penalties.medium
        )
        return max(0.0, score)

    def calculate_score(self, text: Any, record: bool = True, threshold: Optional[float] = None) -> ScoreRecord:
        """
        Score a piece of code.

        Args:
            text: Code string, or a result carrying 'code' or 'content'
            record: Append the record to history and counters
            threshold: Pass threshold for this record (default: configured)

        Returns:
            Immutable ScoreRecord
        """
        gate = self.threshold if threshold is None else threshold

        # Both passes see the same code, whatever shape the input has
        code = extract_code(text)
        pre = self.validator.validate_pre(code)
        post = self.validator.validate_post(text if code is None else {"code": code})

        components = ComponentScores(
            security=round(_clamp(self.security_score(pre.violations)), 3),
            quality=round(_clamp(post.quality_score / 100), 3),
            performance=round(_clamp(1.0 if pre.performance_compliant else 0.8), 3),
        )
        overall = round(
            components.security * self.weights.security
            + components.quality * self.weights.quality
            + components.performance * self.weights.performance,
            3,
        )
        overall = _clamp(overall)

        score = ScoreRecord(
            overall_score=overall,
            component_scores=components,
            status=self.classify(overall),
            passed=overall >= gate,
            threshold=gate,
            timestamp_ns=self._now_ns(),
            violations=tuple(pre.violations),
            issues=tuple(post.issues),
        )

        if record:
            self._track(score)

        logger.debug(
            "truth_score_calculated",
            score=score.overall_score,
            status=score.status.value,
            violations=len(score.violations),
            issues=len(score.issues),
        )
        return score

    async def verify_async(
        self,
        text: Any,
        threshold: Optional[float] = None,
        rollback_fn: Optional[RollbackFn] = None,
    ) -> VerificationResult:
        """
        Score code against a threshold and roll back on failure.

        The rollback callback runs at most once, only when verification fails
        and auto_rollback is enabled. A failing rollback is reported on the
        result, never raised.
        """
        gate = self.threshold if threshold is None else threshold
        score = self.calculate_score(text, threshold=gate)
        components = score.component_scores

        checks = VerificationChecks(
            code_correctness=components.security >= CORRECTNESS_MIN_SECURITY,
            security=not any(v.severity == Severity.CRITICAL for v in score.violations),
            performance=components.performance >= PERFORMANCE_MIN,
            quality=components.quality >= QUALITY_MIN,
        )
        result = VerificationResult(
            verified=score.overall_score >= gate,
            threshold=gate,
            score=score,
            checks=checks,
        )

        if result.verified:
            self._emit("verificationPassed", {"score": score.overall_score, "threshold": gate})
            return result

        logger.info("verification_failed", score=score.overall_score, threshold=gate)
        self._emit("verificationFailed", {"score": score.overall_score, "threshold": gate})

        if self.auto_rollback and rollback_fn is not None:
            result.rollback = await self._rollback_async(rollback_fn, score.overall_score, gate)

        return result

    def dashboard(self, period: str = DEFAULT_PERIOD) -> Dashboard:
        """Aggregate the scores recorded within a recent period (1h, 24h, 7d, 30d)."""
        if period not in PERIODS_NS:
            period = DEFAULT_PERIOD

        cutoff = self._now_ns() - PERIODS_NS[period]
        recent = [s for s in self._history if s.timestamp_ns >= cutoff]

        average = round(_mean([s.overall_score for s in recent]), 3)
        trend, percent = self._trend(recent)

        return Dashboard(
            overall_score=average,
            status=self.classify(average),
            trend=trend,
            trend_percent=round(percent, 1),
            period=period,
            statistics=self.statistics(),
            recent_scores=[
                {"score": s.overall_score, "status": s.status.value, "timestamp_ns": s.timestamp_ns}
                for s in reversed(recent[-10:])
            ],
        )

    def statistics(self) -> Dict[str, Any]:
        pass_rate = round(self._passed / self._total * 100, 1) if self._total else 0.0
        return {
            "total": self._total,
            "passed": self._passed,
            "failed": self._failed,
            "pass_rate": pass_rate,
            "rollbacks": self._rollbacks,
        }

    def export(self, fmt: str = "json") -> Union[Dict[str, Any], str]:
        """
        Export metrics for CI pipelines.

        Args:
            fmt: 'json' for a structured document, 'summary' for four text lines

        Raises:
            ValueError: Unknown format
        """
        dashboard = self.dashboard()

        if fmt == "summary":
            sign = "+" if dashboard.trend_percent > 0 else ""
            return (
                f"Truth Score: {dashboard.overall_score} ({dashboard.status.value})\n"
                f"Pass Rate: {dashboard.statistics['pass_rate']}%\n"
                f"Trend: {sign}{dashboard.trend_percent}% ({dashboard.trend.value})\n"
                f"Total Checks: {dashboard.statistics['total']}"
            )

        if fmt == "json":
            document = {
                "timestamp": datetime.fromtimestamp(self._now_ns() / _NS_PER_SECOND, tz=timezone.utc).isoformat(),
                "metrics": self.get_metrics(),
                "dashboard": dashboard.to_json(),
                "history": [s.to_json() for s in list(self._history)[-100:]],
            }
            return document

        raise ValueError(f"Unsupported export format: {fmt}")

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "total_scores": self._total,
            "passed_count": self._passed,
            "failed_count": self._failed,
            "average_score": round(self._average_score, 3),
            "rollback_count": self._rollbacks,
            "history_size": len(self._history),
        }

    def _track(self, score: ScoreRecord) -> None:
        self._total += 1
        if score.passed:
            self._passed += 1
        else:
            self._failed += 1
        self._average_score += (score.overall_score - self._average_score) / self._total
        self._history.append(score)

    @staticmethod
    def _trend(scores: List[ScoreRecord]) -> tuple[Trend, float]:
        if len(scores) < 2:
            return Trend.STABLE, 0.0

        half = len(scores) // 2
        first = _mean([s.overall_score for s in scores[:half]])
        second = _mean([s.overall_score for s in scores[half:]])

        if first == 0:
            percent = 0.0 if second == 0 else 100.0
        else:
            percent = (second - first) / first * 100

        if percent > 1:
            return Trend.IMPROVING, percent
        if percent < -1:
            return Trend.DECLINING, percent
        return Trend.STABLE, percent

    async def _rollback_async(self, rollback_fn: RollbackFn, score: float, threshold: float) -> RollbackOutcome:
        try:
            outcome = rollback_fn()
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as e:
            logger.warning("rollback_failed", error=str(e), error_type=type(e).__name__)
            self._emit("rollbackFailed", {"error": str(e)})
            return RollbackOutcome(attempted=True, succeeded=False, error=str(e))

        if outcome is False:
            logger.warning("rollback_failed", error="rollback reported failure")
            self._emit("rollbackFailed", {"error": "rollback reported failure"})
            return RollbackOutcome(attempted=True, succeeded=False, error="rollback reported failure")

        self._rollbacks += 1
        logger.info("rollback_performed", score=score, threshold=threshold)
        self._emit("rollbackPerformed", {"reason": "Verification failed", "score": score, "threshold": threshold})
        return RollbackOutcome(attempted=True, succeeded=True)

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        if self._event_callback is None:
            return
        try:
            self._event_callback(event, payload)
        except Exception as e:
            logger.warning("event_callback_failed", event_name=event, error=str(e))
