"""
Rule domain enums.

Severity and category of detection rules and the violations they produce.
"""

from enum import Enum


class Severity(str, Enum):
    """
    Violation severity.

    CRITICAL violations fail validation in normal mode; strict mode fails
    on any severity.
    """

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class RuleCategory(str, Enum):
    """
    Rule category.

    Pre-validation runs categories in declaration order up to PERFORMANCE;
    QUALITY rules are used by post-validation only.
    """

    SECRETS = "secrets"
    SQL_INJECTION = "sql_injection"
    XSS = "xss"
    COMMAND_INJECTION = "command_injection"
    PERFORMANCE = "performance"
    QUALITY = "quality"


SECURITY_CATEGORIES = (
    RuleCategory.SECRETS,
    RuleCategory.SQL_INJECTION,
    RuleCategory.XSS,
    RuleCategory.COMMAND_INJECTION,
)
