"""Domain models for the detection rule system.

A Rule is an immutable matcher plus severity and remediation text. Running a
rule over a text buffer yields raw matches; a Violation is the per-call record
of a rule that matched.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Tuple

from gatekeeper.rules.domain.enums import RuleCategory, Severity
from gatekeeper.shared.domain.base_model import BaseDomainModel

REDACTION_MARKER = "********"

# Quoted literal at the end of a secret assignment: password = "value"
_TRAILING_LITERAL = re.compile(r"""(["'])([^"']*)(["'])\s*$""")


def mask_secret(raw_match: str) -> str:
    """Mask the secret literal inside a raw rule match.

    The literal keeps its first two and last two characters around a fixed
    redaction marker. Literals of four characters or fewer are replaced by
    the marker entirely. Matches without a quoted literal keep only their
    first two characters. When the literal also occurs in the assignment key,
    the key is replaced by the marker as well.

    Examples:
        >>> mask_secret('password = "super_secret_123"')
        'password = "su********23"'
        >>> mask_secret("pwd: 'abcd'")
        "pwd: '********'"
    """

    def _mask(value: str) -> str:
        if len(value) <= 4:
            return REDACTION_MARKER
        return f"{value[:2]}{REDACTION_MARKER}{value[-2:]}"

    literal = _TRAILING_LITERAL.search(raw_match)
    if literal is None:
        return raw_match[:2] + REDACTION_MARKER

    opening, value, closing = literal.groups()
    prefix = raw_match[: literal.start()]
    # A literal repeated in the key (password = "pass") must not survive there
    if value and value in prefix:
        prefix = REDACTION_MARKER + " "
    return f"{prefix}{opening}{_mask(value)}{closing}"


@dataclass(frozen=True)
class Violation(BaseDomainModel):
    """A single detected rule match.

    Attributes:
        type: Violation type (e.g. 'hardcoded_secret', 'sql_injection')
        category: Category of the rule that produced it
        severity: Severity, fixed at creation
        message: Human-readable description
        matches: Raw matches, masked for secret rules
        suggestion: Remediation text
        pattern: Name of the rule that matched
    """

    type: str
    category: RuleCategory
    severity: Severity
    message: str
    matches: Tuple[str, ...] = ()
    suggestion: Optional[str] = None
    pattern: Optional[str] = None


@dataclass(frozen=True)
class Rule(BaseDomainModel):
    """Immutable detection rule.

    Attributes:
        name: Unique rule name within the catalog
        category: Rule category
        violation_type: Type recorded on violations produced by this rule
        pattern: Pre-compiled matcher
        severity: Severity of produced violations
        message: Message template, may reference {name}
        suggestion: Remediation text
        max_matches: Keep at most this many matches on the violation (None = all)
        report_matches: Whether matches are copied onto the violation
        redact: Whether matches are masked before leaving the rule
    """

    name: str
    category: RuleCategory
    violation_type: str
    pattern: re.Pattern = field(repr=False)
    severity: Severity
    message: str
    suggestion: str
    max_matches: Optional[int] = None
    report_matches: bool = True
    redact: bool = False

    def find_matches(self, text: str) -> list[str]:
        """Return every raw match of this rule in text (pure)."""
        return [m.group(0) for m in self.pattern.finditer(text)]

    def to_violation(self, matches: list[str]) -> Violation:
        """Build the violation for a non-empty match list."""
        reported: list[str] = []
        if self.report_matches:
            reported = matches if self.max_matches is None else matches[: self.max_matches]
            if self.redact:
                reported = [mask_secret(m) for m in reported]

        return Violation(
            type=self.violation_type,
            category=self.category,
            severity=self.severity,
            message=self.message.format(name=self.name),
            matches=tuple(reported),
            suggestion=self.suggestion,
            pattern=self.name,
        )
