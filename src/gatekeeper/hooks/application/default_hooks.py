"""
Default validation hooks.

- security-validation (pre, CRITICAL): vetoes file-modifying tools whose
  code carries a CRITICAL violation
- performance-validation (pre, HIGH): vetoes Rust std HashMap usage
- quality-validation (post, MEDIUM): runs post-validation over the result
"""

import re
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence

from gatekeeper.hooks.domain.models import HookPriority
from gatekeeper.rules.domain.enums import Severity
from gatekeeper.validation.application.pattern_validator import PatternValidator

if TYPE_CHECKING:
    from gatekeeper.hooks.application.hook_pipeline import HookPipeline

SECURITY_TOOLS = frozenset({"Write", "Edit", "Bash"})
PERFORMANCE_TOOLS = frozenset({"Write", "Edit"})

_STD_HASHMAP = re.compile(r"std::collections::HashMap")


def extract_tool_code(data: Any) -> Optional[str]:
    """Extract code from tool parameters or results."""
    if not data:
        return None
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        for key in ("new_string", "content", "code", "command"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def make_security_hook(validator: PatternValidator):
    async def security_validation(tool_name: str, params: Any, context: Dict[str, Any]) -> Dict[str, Any]:
        if tool_name not in SECURITY_TOOLS:
            return {"allowed": True}

        code = extract_tool_code(params)
        if not code:
            return {"allowed": True}

        result = validator.validate_pre(code)
        critical = result.critical_violations
        if not result.passed and critical:
            return {
                "allowed": False,
                "reason": critical[0].message,
                "severity": Severity.CRITICAL,
                "suggestion": critical[0].suggestion,
            }
        return {"allowed": True}

    return security_validation


async def performance_validation(tool_name: str, params: Any, context: Dict[str, Any]) -> Dict[str, Any]:
    if tool_name not in PERFORMANCE_TOOLS:
        return {"allowed": True}

    code = extract_tool_code(params)
    if code and _STD_HASHMAP.search(code):
        return {
            "allowed": False,
            "reason": "HashMap causes 40% performance regression",
            "severity": Severity.HIGH,
            "suggestion": "Use rustc_hash::FxHashMap instead",
        }
    return {"allowed": True}


def make_quality_hook(validator: PatternValidator):
    async def quality_validation(tool_name: str, params: Any, result: Any, context: Dict[str, Any]) -> Dict[str, Any]:
        code = extract_tool_code(result) or extract_tool_code(params)
        if not code:
            return {"valid": True, "issues": []}

        validation = validator.validate_post({"code": code})
        return {"valid": validation.passed, "issues": validation.issues}

    return quality_validation


def register_default_hooks(
    pipeline: "HookPipeline",
    validator: PatternValidator,
    enabled_hooks: Sequence[str],
) -> None:
    enabled = set(enabled_hooks)

    if "security" in enabled:
        pipeline.register_pre_hook("security-validation", make_security_hook(validator), HookPriority.CRITICAL)
    if "performance" in enabled:
        pipeline.register_pre_hook("performance-validation", performance_validation, HookPriority.HIGH)
    if "quality" in enabled:
        pipeline.register_post_hook("quality-validation", make_quality_hook(validator), HookPriority.MEDIUM)
