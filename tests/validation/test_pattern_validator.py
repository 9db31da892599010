"""
Tests for PatternValidator.

Covers:
- Detection scenarios per rule category
- Strict versus normal pass policy
- Fail-open behaviour on bad input and internal errors
- Post-validation quality scoring
"""

from types import SimpleNamespace

import pytest

from gatekeeper.rules.domain.enums import RuleCategory, Severity
from gatekeeper.validation.application.pattern_validator import PatternValidator, extract_code
from gatekeeper.validation.application.quality_checks import QualityDeductions

LEAKY_ASYNC_CODE = """
async function start() {
    const data = await fetch(url);
    setInterval(poll, 1000);
    window.addEventListener("resize", onResize);
    return { host: "10.0.0.12", data };
}
"""


class TestPreValidationScenarios:
    """Detection of security and performance violations."""

    def test_hardcoded_password(self, validator, secret_code):
        """Test a hardcoded password is detected."""
        result = validator.validate_pre(secret_code)

        assert result.passed is False
        assert result.critical_count == 1
        violation = result.violations[0]
        assert violation.type == "hardcoded_secret"
        assert violation.severity == Severity.CRITICAL

    def test_secret_matches_are_masked(self, validator):
        """Test secret matches are masked."""
        literal = "sk-1234567890abcdef"
        result = validator.validate_pre(f'api_key = "{literal}"')

        secrets = [v for v in result.violations if v.type == "hardcoded_secret"]
        assert secrets
        for violation in secrets:
            assert violation.matches
            for match in violation.matches:
                assert literal not in match

    def test_sql_string_concatenation(self, validator):
        """Test SQL string concatenation is detected."""
        result = validator.validate_pre('"SELECT * FROM users WHERE id = " + userId')

        assert result.passed is False
        assert any(v.type == "sql_injection" and v.severity == Severity.CRITICAL for v in result.violations)

    def test_sql_fstring(self, validator):
        """Test an SQL f-string is detected."""
        result = validator.validate_pre('cursor.execute(f"SELECT * FROM users WHERE id = {user_id}")')
        assert any(v.type == "sql_injection" for v in result.violations)

    def test_sql_matches_are_capped(self, validator):
        """Test SQL matches are capped."""
        code = "\n".join(f'q{i} = "SELECT a FROM t WHERE x = " + v{i}' for i in range(6))
        result = validator.validate_pre(code)

        sql = [v for v in result.violations if v.type == "sql_injection"]
        assert sql
        assert all(len(v.matches) <= 3 for v in sql)

    def test_xss_inner_html(self, validator):
        """Test innerHTML assignment is detected."""
        result = validator.validate_pre("element.innerHTML = userInput;")

        xss = [v for v in result.violations if v.type == "xss_vulnerability"]
        assert len(xss) == 1
        assert xss[0].message == "XSS vulnerability: innerHTML"
        assert xss[0].matches == ()

    @pytest.mark.parametrize(
        "code",
        [
            'os.system(f"rm -rf {path}")',
            "subprocess.run(cmd, shell=True)",
            'exec("ls ${dir}")',
        ],
    )
    def test_command_injection(self, validator, code):
        """Test command injection is detected."""
        result = validator.validate_pre(code)
        assert any(v.type == "command_injection" for v in result.violations)
        assert result.passed is False

    def test_std_hashmap_is_high_and_passes_in_normal_mode(self, validator):
        """Test std HashMap is high severity but passes in normal mode."""
        result = validator.validate_pre("use std::collections::HashMap;")

        assert result.passed is True
        assert [v.type for v in result.violations] == ["hashmap_performance"]
        assert result.violations[0].severity == Severity.HIGH

    def test_fx_hashmap_is_not_flagged(self, validator):
        """Test FxHashMap is not flagged."""
        result = validator.validate_pre("let m: FxHashMap<u32, u32> = FxHashMap::default();")
        assert result.violations == []

    def test_json_deep_clone_antipattern(self, validator):
        """Test the JSON deep clone antipattern is detected."""
        result = validator.validate_pre("const copy = JSON.parse(JSON.stringify(state));")

        assert result.passed is True
        assert any(
            v.type == "performance_antipattern" and v.severity == Severity.MEDIUM for v in result.violations
        )

    def test_security_violations_precede_performance(self, validator):
        """Test security violations precede performance ones."""
        code = 'use std::collections::HashMap;\npassword = "hunter2hunter2"'
        result = validator.validate_pre(code)

        categories = [v.category for v in result.violations]
        assert categories.index(RuleCategory.SECRETS) < categories.index(RuleCategory.PERFORMANCE)


class TestPreValidationProperties:
    """Invariants of validate_pre."""

    def test_clean_code_passes_without_violations(self, validator, clean_code):
        """Test clean code passes without violations."""
        result = validator.validate_pre(clean_code)

        assert result.passed is True
        assert result.violations == []
        assert result.total_count == 0

    def test_identical_input_yields_identical_violations(self, validator, secret_code):
        """Test identical input yields identical violations."""
        first = validator.validate_pre(secret_code)
        second = validator.validate_pre(secret_code)
        assert first.violations == second.violations

    @pytest.mark.parametrize("bad_input", [None, "", 42, ["password = 'x'"], {"code": 1}])
    def test_non_text_input_fails_open(self, validator, bad_input):
        """Test non-text input fails open."""
        result = validator.validate_pre(bad_input)
        assert result.passed is True
        assert result.violations == []

    def test_internal_error_fails_open(self, validator, monkeypatch, secret_code):
        """Test an internal error fails open."""
        def _boom(text):
            raise RuntimeError("broken rule")

        monkeypatch.setattr(validator, "_scan", _boom)
        result = validator.validate_pre(secret_code)

        assert result.passed is True
        assert result.violations == []

    def test_strict_mode_fails_on_any_violation(self, strict_validator):
        """Test strict mode fails on any violation."""
        result = strict_validator.validate_pre("use std::collections::HashMap;")
        assert result.passed is False
        assert result.critical_count == 0

    def test_security_checks_can_be_disabled(self, secret_code):
        """Test security checks can be disabled."""
        validator = PatternValidator(enable_security_checks=False)
        assert validator.validate_pre(secret_code).violations == []

    def test_latency_budget_decides_compliance(self, clean_code):
        """Test the latency budget decides compliance."""
        assert PatternValidator(latency_budget_ms=10_000).validate_pre(clean_code).performance_compliant is True
        assert PatternValidator(latency_budget_ms=0).validate_pre(clean_code).performance_compliant is False

    def test_metrics(self, validator, secret_code, clean_code, catalog):
        """Test validator metrics."""
        validator.validate_pre(secret_code)
        validator.validate_pre(clean_code)
        metrics = validator.get_metrics()

        assert metrics["checks_run"] == 2
        assert metrics["violations_found"] == 1
        assert metrics["patterns_loaded"] == len(catalog)
        assert metrics["average_check_time_ms"] >= 0


class TestPostValidation:
    """Quality checks over produced code."""

    def test_interval_without_clear_is_a_leak(self, validator):
        """Test an interval without clear is a leak."""
        result = validator.validate_post({"code": "setInterval(fn, 1000)"})

        assert [i.type for i in result.issues] == ["potential_memory_leak"]
        assert result.quality_score == 80
        assert result.passed is True

    def test_cleared_interval_is_not_a_leak(self, validator):
        """Test a cleared interval is not a leak."""
        result = validator.validate_post({"code": "const h = setInterval(fn, 1000);\nclearInterval(h);"})
        assert result.issues == []

    def test_async_without_error_handling(self, validator):
        """Test async code without error handling."""
        result = validator.validate_post("async function load() { const r = await fetch(u); return r; }")

        assert [i.type for i in result.issues] == ["missing_error_handling"]
        assert result.quality_score == 85

    @pytest.mark.parametrize(
        "code",
        [
            "async function load() { try { await fetch(u); } catch (e) { report(e); } }",
            "fetch(u).then(render).catch(report); async () => await x;",
            "async def load():\n    try:\n        await fetch()\n    except Exception:\n        raise\n",
        ],
    )
    def test_error_handling_present(self, validator, code):
        """Test present error handling is accepted."""
        result = validator.validate_post({"code": code})
        assert all(i.type != "missing_error_handling" for i in result.issues)

    def test_hardcoded_values(self, validator):
        """Test hardcoded values are reported."""
        code = 'const api = "https://api.example.com/v1";\nconst local = "http://localhost:3000";'
        result = validator.validate_post({"code": code})

        assert [i.type for i in result.issues] == ["hardcoded_values"]
        assert result.issues[0].matches == ('"https://api.example.com/v1"',)
        assert result.quality_score == 95

    def test_deductions_accumulate_and_fail(self, validator):
        """Test deductions accumulate and fail."""
        result = validator.validate_post({"code": LEAKY_ASYNC_CODE})

        assert {i.type for i in result.issues} == {
            "missing_error_handling",
            "hardcoded_values",
            "potential_memory_leak",
        }
        assert result.quality_score == 60
        assert result.passed is False

    def test_score_is_floored_at_zero(self):
        """Test the quality score is floored at zero."""
        deductions = QualityDeductions(missing_error_handling=60, hardcoded_values=60, memory_leak=60)
        validator = PatternValidator(deductions=deductions)
        assert validator.validate_post({"code": LEAKY_ASYNC_CODE}).quality_score == 0

    def test_configurable_deductions(self):
        """Test deductions are configurable."""
        validator = PatternValidator(deductions=QualityDeductions(memory_leak=50))
        result = validator.validate_post({"code": "setInterval(fn, 1000)"})
        assert result.quality_score == 50
        assert result.passed is False

    def test_missing_code_passes(self, validator):
        """Test a result without code passes."""
        result = validator.validate_post(None)
        assert result.passed is True
        assert result.quality_score == 100


class TestExtractCode:
    """Code extraction from heterogeneous result shapes."""

    @pytest.mark.parametrize(
        "result, expected",
        [
            ("x = 1", "x = 1"),
            ({"code": "a"}, "a"),
            ({"content": "b"}, "b"),
            ({"data": {"code": "c"}}, "c"),
            (SimpleNamespace(code="d"), "d"),
            ({"other": "e"}, None),
            (None, None),
        ],
    )
    def test_shapes(self, result, expected):
        """Test each result shape."""
        assert extract_code(result) == expected
