"""
Pattern validator.

Applies the rule catalog to text in two modes:
- pre-execution: security rules (secrets, SQL injection, XSS, command
  injection) followed by performance rules, producing violations
- post-execution: quality checks over produced code, producing a 0-100
  quality score

Validation never raises on bad input. A malformed input or an internal
defect yields a passing result (fail-open) so that validation cannot block
execution on its own account.
"""

import time
from typing import Any, Dict, List, Optional

from gatekeeper.rules.defaults.catalog import RuleCatalog, build_default_catalog
from gatekeeper.rules.domain.enums import SECURITY_CATEGORIES, RuleCategory, Severity
from gatekeeper.rules.domain.models import Violation
from gatekeeper.shared.infrastructure.logging import get_logger
from gatekeeper.validation.application.quality_checks import (
    QualityDeductions,
    check_error_handling,
    check_hardcoded_values,
    check_memory_leaks,
)
from gatekeeper.validation.domain.models import PostValidationResult, QualityIssue, ValidationResult

logger = get_logger(__name__)

_NS_PER_MS = 1_000_000


def extract_code(result: Any) -> Optional[str]:
    """
    Extract a code string from heterogeneous result shapes.

    Accepts a bare string, a mapping with 'code', 'content' or 'data.code',
    or an object exposing a 'code' or 'content' attribute.
    """
    if isinstance(result, str):
        return result
    if isinstance(result, dict):
        for key in ("code", "content"):
            value = result.get(key)
            if isinstance(value, str) and value:
                return value
        data = result.get("data")
        if isinstance(data, dict) and isinstance(data.get("code"), str):
            return data["code"]
        return None
    for attr in ("code", "content"):
        value = getattr(result, attr, None)
        if isinstance(value, str) and value:
            return value
    return None


class PatternValidator:
    """
    Rule-based code validator.

    Attributes:
        catalog: Compiled rule catalog (shared, read-only)
        strict_mode: Fail on any violation instead of only CRITICAL ones
        latency_budget_ms: Budget a pre-validation call must meet to be
            reported as performance compliant
    """

    def __init__(
        self,
        catalog: Optional[RuleCatalog] = None,
        *,
        enable_security_checks: bool = True,
        enable_performance_checks: bool = True,
        enable_quality_checks: bool = True,
        strict_mode: bool = False,
        latency_budget_ms: float = 1.0,
        deductions: Optional[QualityDeductions] = None,
    ):
        self.catalog = catalog or build_default_catalog()
        self.enable_security_checks = enable_security_checks
        self.enable_performance_checks = enable_performance_checks
        self.enable_quality_checks = enable_quality_checks
        self.strict_mode = strict_mode
        self.latency_budget_ms = latency_budget_ms
        self.deductions = deductions or QualityDeductions()

        self._checks_run = 0
        self._pre_checks_run = 0
        self._violations_found = 0
        self._average_check_time_ns = 0.0

    def validate_pre(self, text: Any) -> ValidationResult:
        """
        Validate code before execution.

        Args:
            text: Code to validate; anything other than a non-empty string
                passes with no violations

        Returns:
            ValidationResult with violations in rule execution order
        """
        start = time.perf_counter_ns()

        if not isinstance(text, str) or not text:
            return ValidationResult(passed=True, response_time_ns=time.perf_counter_ns() - start)

        try:
            violations = self._scan(text)
        except Exception as e:
            logger.error("pre_validation_failed_open", error=str(e), error_type=type(e).__name__)
            return ValidationResult(passed=True, response_time_ns=time.perf_counter_ns() - start)

        critical_count = sum(1 for v in violations if v.severity == Severity.CRITICAL)
        passed = not violations if self.strict_mode else critical_count == 0

        elapsed = time.perf_counter_ns() - start
        self._checks_run += 1
        self._pre_checks_run += 1
        self._violations_found += len(violations)
        self._update_average_check_time(elapsed)

        if violations:
            logger.debug(
                "violations_found",
                total=len(violations),
                critical=critical_count,
                types=sorted({v.type for v in violations}),
            )

        return ValidationResult(
            passed=passed,
            violations=violations,
            critical_count=critical_count,
            total_count=len(violations),
            performance_compliant=elapsed <= self.latency_budget_ms * _NS_PER_MS,
            response_time_ns=elapsed,
        )

    def validate_post(self, result: Any) -> PostValidationResult:
        """
        Validate an execution result after the fact.

        Args:
            result: String, mapping or object carrying the produced code

        Returns:
            PostValidationResult; passes while quality_score stays at or above
            the configured pass threshold
        """
        start = time.perf_counter_ns()
        issues: List[QualityIssue] = []
        quality_score = 100

        code = extract_code(result)

        if code and self.enable_quality_checks:
            try:
                checks = (
                    (check_error_handling(code), self.deductions.missing_error_handling),
                    (check_hardcoded_values(code, self.catalog), self.deductions.hardcoded_values),
                    (check_memory_leaks(code), self.deductions.memory_leak),
                )
            except Exception as e:
                logger.error("post_validation_failed_open", error=str(e), error_type=type(e).__name__)
                checks = ()

            for issue, deduction in checks:
                if issue is not None:
                    issues.append(issue)
                    quality_score -= deduction

        quality_score = max(0, quality_score)
        self._checks_run += 1

        return PostValidationResult(
            passed=quality_score >= self.deductions.pass_threshold,
            quality_score=quality_score,
            issues=issues,
            response_time_ns=time.perf_counter_ns() - start,
        )

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of validator counters."""
        return {
            "checks_run": self._checks_run,
            "violations_found": self._violations_found,
            "average_check_time_ms": round(self._average_check_time_ns / _NS_PER_MS, 3),
            "patterns_loaded": len(self.catalog),
        }

    def _scan(self, text: str) -> List[Violation]:
        categories: List[RuleCategory] = []
        if self.enable_security_checks:
            categories.extend(SECURITY_CATEGORIES)
        if self.enable_performance_checks:
            categories.append(RuleCategory.PERFORMANCE)

        violations: List[Violation] = []
        for category in categories:
            for rule in self.catalog.for_category(category):
                matches = rule.find_matches(text)
                if matches:
                    violations.append(rule.to_violation(matches))
        return violations

    def _update_average_check_time(self, elapsed_ns: int) -> None:
        count = self._pre_checks_run
        self._average_check_time_ns = ((self._average_check_time_ns * (count - 1)) + elapsed_ns) / count
