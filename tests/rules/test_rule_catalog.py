"""
Tests for the rule catalog and secret masking.
"""

import re

import pytest

from gatekeeper.rules.defaults.catalog import RuleCatalog, build_default_catalog, default_rules
from gatekeeper.rules.domain.enums import RuleCategory, Severity
from gatekeeper.rules.domain.models import REDACTION_MARKER, Rule, mask_secret


class TestRuleCatalog:
    """Catalog construction and lookup."""

    def test_default_catalog_is_compiled_once(self):
        """Test the default catalog is compiled once."""
        assert build_default_catalog() is build_default_catalog()

    def test_rules_are_ordered_by_category(self, catalog):
        """Test rules are ordered by category."""
        order = list(RuleCategory)
        positions = [order.index(rule.category) for rule in catalog]
        assert positions == sorted(positions)

    def test_every_category_has_rules(self, catalog):
        """Test every category has rules."""
        for category in RuleCategory:
            assert catalog.for_category(category), category

    def test_secret_rules_are_critical_and_redacted(self, catalog):
        """Test secret rules are critical and redacted."""
        for rule in catalog.for_category(RuleCategory.SECRETS):
            assert rule.severity == Severity.CRITICAL
            assert rule.redact is True
            assert rule.violation_type == "hardcoded_secret"

    def test_get_by_name(self, catalog):
        """Test lookup by name."""
        rule = catalog.get("password")
        assert rule is not None
        assert rule.category == RuleCategory.SECRETS
        assert catalog.get("does-not-exist") is None

    def test_duplicate_names_are_rejected(self):
        """Test duplicate rule names are rejected."""
        rules = default_rules()
        with pytest.raises(ValueError, match="Duplicate rule names"):
            RuleCatalog(rules + [rules[0]])

    def test_len_matches_rules(self, catalog):
        """Test len counts the rules."""
        assert len(catalog) == len(default_rules())


class TestRule:
    """Single rule behaviour."""

    def _rule(self, **overrides):
        fields = dict(
            name="demo",
            category=RuleCategory.SQL_INJECTION,
            violation_type="sql_injection",
            pattern=re.compile(r"SELECT \w+"),
            severity=Severity.CRITICAL,
            message="Found {name}",
            suggestion="Fix it",
        )
        fields.update(overrides)
        return Rule(**fields)

    def test_find_matches_is_pure(self):
        """Test find_matches is repeatable."""
        rule = self._rule()
        text = "SELECT a; SELECT b"
        assert rule.find_matches(text) == ["SELECT a", "SELECT b"]
        assert rule.find_matches(text) == ["SELECT a", "SELECT b"]

    def test_violation_message_uses_rule_name(self):
        """Test the violation message uses the rule name."""
        violation = self._rule().to_violation(["SELECT a"])
        assert violation.message == "Found demo"
        assert violation.pattern == "demo"

    def test_max_matches_truncates(self):
        """Test max_matches truncates the matches."""
        violation = self._rule(max_matches=1).to_violation(["SELECT a", "SELECT b"])
        assert violation.matches == ("SELECT a",)

    def test_report_matches_false_drops_matches(self):
        """Test report_matches False drops the matches."""
        violation = self._rule(report_matches=False).to_violation(["SELECT a"])
        assert violation.matches == ()

    def test_json_snapshots(self):
        """Test JSON snapshots."""
        rule = self._rule()
        assert "pattern" not in rule.to_json()
        data = rule.to_violation(["SELECT a"]).to_json()
        assert data["severity"] == "CRITICAL"
        assert data["category"] == "sql_injection"
        assert data["matches"] == ["SELECT a"]


class TestMaskSecret:
    """Redaction of secret literals."""

    def test_keeps_prefix_and_suffix(self):
        """Test the literal keeps its prefix and suffix."""
        assert mask_secret('password = "super_secret_123"') == f'password = "su{REDACTION_MARKER}23"'

    def test_short_literal_is_fully_masked(self):
        """Test a short literal is fully masked."""
        assert mask_secret("pwd: 'abcd'") == f"pwd: '{REDACTION_MARKER}'"

    def test_original_literal_never_survives(self):
        """Test the original literal never survives."""
        literal = "sk-live-0123456789abcdef"
        masked = mask_secret(f'api_key = "{literal}"')
        assert literal not in masked
        assert REDACTION_MARKER in masked

    def test_match_without_literal(self):
        """A match with no quoted literal keeps only its first two characters."""
        assert mask_secret("token") == f"to{REDACTION_MARKER}"

    @pytest.mark.parametrize(
        "raw, literal",
        [
            ('password = "password"', "password"),
            ('password = "pass"', "pass"),
            ('password = "word"', "word"),
            ("secret: 'secret'", "secret"),
        ],
    )
    def test_literal_repeated_in_key_never_survives(self, raw, literal):
        """A literal that also appears in its key is masked in both places."""
        masked = mask_secret(raw)

        assert literal not in masked
        assert masked.startswith(REDACTION_MARKER)

    @pytest.mark.parametrize("code", ['password = "password"', 'password = "pass"', 'pwd = "pwd1"'])
    def test_validator_matches_never_leak_literal(self, validator, code):
        """Violation matches reported by the validator carry no unredacted literal."""
        literal = code.split('"')[1]

        result = validator.validate_pre(code)

        assert result.passed is False
        for violation in result.violations:
            for match in violation.matches:
                assert literal not in match
