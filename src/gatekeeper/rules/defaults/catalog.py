"""Default rule catalog.

Compiles every built-in detection rule once. The catalog is read-only after
construction and shared by all validation calls.
"""

import re
from types import MappingProxyType
from typing import Iterable, Mapping

import structlog

from gatekeeper.rules.domain.enums import RuleCategory, Severity
from gatekeeper.rules.domain.models import Rule

logger = structlog.get_logger(__name__)

_I = re.IGNORECASE

SECRET_SUGGESTION = "Use environment variables: os.environ['SECRET_NAME'] / process.env.SECRET_NAME"
SQL_SUGGESTION = 'Use parameterized queries: db.execute("SELECT * FROM users WHERE id = ?", [user_id])'
COMMAND_SUGGESTION = "Use parameterized command execution or input sanitization"
HASHMAP_SUGGESTION = "Replace std::collections::HashMap with rustc_hash::FxHashMap"
HARDCODED_SUGGESTION = "Move hardcoded values to configuration"


def _secret(name: str, keys: str, min_len: int) -> Rule:
    return Rule(
        name=name,
        category=RuleCategory.SECRETS,
        violation_type="hardcoded_secret",
        pattern=re.compile(rf"""(?:{keys})\s*[=:]\s*["'][^"']{{{min_len},}}["']""", _I),
        severity=Severity.CRITICAL,
        message="Hardcoded {name} detected",
        suggestion=SECRET_SUGGESTION,
        redact=True,
    )


def _sql(name: str, regex: str, flags: int = _I) -> Rule:
    return Rule(
        name=name,
        category=RuleCategory.SQL_INJECTION,
        violation_type="sql_injection",
        pattern=re.compile(regex, flags),
        severity=Severity.CRITICAL,
        message="SQL injection vulnerability: untrusted value built into query",
        suggestion=SQL_SUGGESTION,
        max_matches=3,
    )


def _xss(name: str, regex: str, suggestion: str) -> Rule:
    return Rule(
        name=name,
        category=RuleCategory.XSS,
        violation_type="xss_vulnerability",
        pattern=re.compile(regex),
        severity=Severity.CRITICAL,
        message="XSS vulnerability: {name}",
        suggestion=suggestion,
        report_matches=False,
    )


def _command(name: str, regex: str, flags: int = _I) -> Rule:
    return Rule(
        name=name,
        category=RuleCategory.COMMAND_INJECTION,
        violation_type="command_injection",
        pattern=re.compile(regex, flags),
        severity=Severity.CRITICAL,
        message="Command injection vulnerability detected",
        suggestion=COMMAND_SUGGESTION,
        report_matches=False,
    )


def _hashmap(name: str, regex: str) -> Rule:
    return Rule(
        name=name,
        category=RuleCategory.PERFORMANCE,
        violation_type="hashmap_performance",
        pattern=re.compile(regex),
        severity=Severity.HIGH,
        message="HashMap causes 40% performance regression vs FxHashMap",
        suggestion=HASHMAP_SUGGESTION,
        max_matches=5,
    )


def _antipattern(name: str, regex: str, message: str, suggestion: str) -> Rule:
    return Rule(
        name=name,
        category=RuleCategory.PERFORMANCE,
        violation_type="performance_antipattern",
        pattern=re.compile(regex),
        severity=Severity.MEDIUM,
        message=message,
        suggestion=suggestion,
        report_matches=False,
    )


def _hardcoded(name: str, regex: str) -> Rule:
    return Rule(
        name=name,
        category=RuleCategory.QUALITY,
        violation_type="hardcoded_values",
        pattern=re.compile(regex),
        severity=Severity.LOW,
        message="Hardcoded {name} detected",
        suggestion=HARDCODED_SUGGESTION,
    )


def default_rules() -> list[Rule]:
    """Return the built-in rules in execution order."""
    return [
        # Secrets
        _secret("password", r"password|pwd", 4),
        _secret("api_key", r"api[_-]?key|apikey", 10),
        _secret("secret", r"secret|token", 8),
        _secret("auth_token", r"auth[_-]?token", 10),
        _secret("private_key", r"private[_-]?key", 20),
        _secret("connection_string", r"connection[_-]?string|database[_-]?url", 15),
        # SQL injection
        _sql("string_concat", r"""(?:query|sql)\s*[+=]\s*["'].*?["']\s*\+"""),
        _sql(
            "statement_concat",
            r"""["']\s*(?:SELECT|INSERT|UPDATE|DELETE)\b[^"'\n]*\b(?:FROM|INTO|SET|WHERE)\b[^"'\n]*["']\s*\+""",
        ),
        _sql("template_literal", r"(?:SELECT|INSERT|UPDATE|DELETE).*?\$\{.*?\}"),
        _sql("fstring", r"""\bf["']\s*(?:SELECT|INSERT|UPDATE|DELETE)\b[^"'\n]*\{[^}]+\}"""),
        _sql("interpolation", r"""(?:query|execute)\s*\(\s*["'].*?\$\{.*?\}.*?["']"""),
        # XSS
        _xss("innerHTML", r"\.innerHTML\s*=", "Use textContent or DOM methods"),
        _xss("document.write", r"document\.write\s*\(", "Use DOM manipulation"),
        _xss("eval", r"\beval\s*\(", "Avoid eval entirely"),
        _xss("dangerouslySetInnerHTML", r"dangerouslySetInnerHTML", "Sanitize HTML first"),
        # Command injection
        _command("exec_concat", r"""exec\s*\(\s*["'].*?\$\{.*?\}"""),
        _command("spawn_concat", r"""spawn\s*\(\s*["'].*?\+"""),
        _command("shell_interpolation", r"child_process.*?\$\{"),
        _command("os_system_format", r"""os\.system\s*\(\s*(?:f["']|["'][^"']*["']\s*[+%])""", 0),
        _command("subprocess_shell", r"subprocess\.\w+\(.*?shell\s*=\s*True", 0),
        # Performance (Rust hash containers)
        _hashmap("std_hashmap", r"std::collections::HashMap"),
        _hashmap("std_hashset", r"std::collections::HashSet"),
        _hashmap("hashmap_new", r"(?<!Fx)HashMap\s*::\s*new\s*\("),
        _hashmap("hashmap_generic", r"(?<!Fx)HashMap\s*<"),
        # Performance (generic)
        _antipattern(
            "nested_loops",
            r"for\s*\([^)]*\)\s*\{[^}]*for\s*\([^)]*\)",
            "Nested loops detected - O(n^2) complexity",
            "Consider using Map/Set for lookups",
        ),
        _antipattern(
            "json_deep_clone",
            r"JSON\.parse\s*\(\s*JSON\.stringify",
            "JSON.parse(JSON.stringify()) is slow for deep cloning",
            "Use structuredClone() or a proper deep clone library",
        ),
        _antipattern(
            "spread_in_loop",
            r"\.\.\.[a-zA-Z_$][a-zA-Z0-9_$]*\s*\)",
            "Spread operator in potential loop",
            "Pre-allocate arrays for better performance",
        ),
        # Quality (post-validation)
        _hardcoded("ip_address", r"""["']\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}["']"""),
        _hardcoded("external_url", r"""["']https?://(?!localhost)[^"']+["']"""),
        _hardcoded("port_number", r""":\s*["']\d{4,5}["']"""),
    ]


class RuleCatalog:
    """Immutable set of named rules grouped by category.

    Attributes:
        rules: All rules, in execution order
    """

    def __init__(self, rules: Iterable[Rule]):
        ordered = tuple(rules)
        names = [r.name for r in ordered]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate rule names in catalog: {sorted(duplicates)}")

        grouped: dict[RuleCategory, tuple[Rule, ...]] = {
            category: tuple(r for r in ordered if r.category == category) for category in RuleCategory
        }

        self.rules: tuple[Rule, ...] = ordered
        self._by_category: Mapping[RuleCategory, tuple[Rule, ...]] = MappingProxyType(grouped)
        self._by_name: Mapping[str, Rule] = MappingProxyType({r.name: r for r in ordered})

    def for_category(self, category: RuleCategory) -> tuple[Rule, ...]:
        return self._by_category[category]

    def get(self, name: str) -> Rule | None:
        return self._by_name.get(name)

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)


_default_catalog: RuleCatalog | None = None


def build_default_catalog() -> RuleCatalog:
    """Return the shared default catalog, compiling it on first use."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = RuleCatalog(default_rules())
        logger.debug("rule_catalog_compiled", rule_count=len(_default_catalog))
    return _default_catalog
