"""
Post-execution quality checks.

Three independent checks run over produced code:
- error handling around asynchronous code (try/catch, try/except, .catch())
- hardcoded literals (IP addresses, non-localhost URLs, bare port numbers)
- leak patterns (interval timers and event listeners never released)

Each failing check yields one QualityIssue and a fixed point deduction.
"""

import re
from dataclasses import dataclass
from typing import Optional

from gatekeeper.rules.defaults.catalog import HARDCODED_SUGGESTION, RuleCatalog
from gatekeeper.rules.domain.enums import RuleCategory, Severity
from gatekeeper.validation.domain.models import QualityIssue

_TRY_CATCH = re.compile(r"\btry\s*\{[\s\S]*?\}\s*catch|\btry\s*:[\s\S]*?\bexcept\b")
_PROMISE_CATCH = re.compile(r"\.catch\s*\(")
_ASYNC_DECL = re.compile(r"\basync\s+function|\basync\s*\(|\basync\s+def\b")
_AWAIT = re.compile(r"\bawait\s+")

_SET_INTERVAL = re.compile(r"setInterval\s*\(")
_CLEAR_INTERVAL = re.compile(r"clearInterval")
_ADD_LISTENER = re.compile(r"addEventListener\s*\(")
_REMOVE_LISTENER = re.compile(r"removeEventListener")


@dataclass(frozen=True)
class QualityDeductions:
    """Points deducted from a starting quality score of 100."""

    missing_error_handling: int = 15
    hardcoded_values: int = 5
    memory_leak: int = 20
    pass_threshold: int = 70


def check_error_handling(code: str) -> Optional[QualityIssue]:
    """Async code must be wrapped in try/catch (or use .catch())."""
    needs_handling = bool(_ASYNC_DECL.search(code) or _AWAIT.search(code))
    if not needs_handling:
        return None
    if _TRY_CATCH.search(code) or _PROMISE_CATCH.search(code):
        return None

    return QualityIssue(
        type="missing_error_handling",
        severity=Severity.MEDIUM,
        message="Async code without proper error handling",
        suggestion="Add try-catch blocks or .catch() for promises",
    )


def check_hardcoded_values(code: str, catalog: RuleCatalog) -> Optional[QualityIssue]:
    """Flag hardcoded IPs, external URLs and port numbers."""
    matches: list[str] = []
    for rule in catalog.for_category(RuleCategory.QUALITY):
        matches.extend(rule.find_matches(code))

    if not matches:
        return None

    return QualityIssue(
        type="hardcoded_values",
        severity=Severity.LOW,
        message=f"Found {len(matches)} hardcoded value(s)",
        suggestion=HARDCODED_SUGGESTION,
        matches=tuple(matches),
    )


def check_memory_leaks(code: str) -> Optional[QualityIssue]:
    """Registration without matching deregistration."""
    interval_leak = bool(_SET_INTERVAL.search(code)) and not _CLEAR_INTERVAL.search(code)
    listener_leak = bool(_ADD_LISTENER.search(code)) and not _REMOVE_LISTENER.search(code)

    if not (interval_leak or listener_leak):
        return None

    return QualityIssue(
        type="potential_memory_leak",
        severity=Severity.HIGH,
        message="Potential memory leak: interval or event listener without cleanup",
        suggestion="Ensure proper cleanup of intervals and event listeners",
    )
