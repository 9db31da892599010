"""
Hook pipeline.

Two ordered registries of hooks (pre-phase, post-phase) executed in priority
order around a tool invocation:

- pre-hooks may veto the invocation; every veto is recorded as an
  intervention. In strict mode execution stops at the first veto.
- post-hooks validate the result; all of them always run.

A handler that raises is isolated: the failure is logged as a ``hook_error``
event and the hook counts as a no-op. Total elapsed time is compared with a
per-phase latency budget; exceeding it emits a ``performance_violation``
event without changing the outcome.
"""

import inspect
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from gatekeeper.core.metrics import LatencyTracker
from gatekeeper.hooks.application.default_hooks import register_default_hooks
from gatekeeper.hooks.domain.models import (
    Hook,
    HookDecision,
    HookFailure,
    HookPhase,
    HookPriority,
    HookVerdict,
    Intervention,
    PostHookOutcome,
    PreHookOutcome,
)
from gatekeeper.rules.domain.enums import Severity
from gatekeeper.shared.domain.exceptions import HookRegistrationError
from gatekeeper.shared.infrastructure.logging import get_logger
from gatekeeper.validation.application.pattern_validator import PatternValidator

logger = get_logger(__name__)

_NS_PER_MS = 1_000_000

# Sentinel returned by _invoke when the handler raised
_FAILED = object()

EventCallback = Callable[[str, Dict[str, Any]], None]


def _read(obj: Any, key: str, default: Any = None) -> Any:
    """Read a key from a mapping or an attribute from an object."""
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _coerce_priority(priority: Any) -> HookPriority:
    if isinstance(priority, HookPriority):
        return priority
    if isinstance(priority, str) and priority.upper() in HookPriority.__members__:
        return HookPriority[priority.upper()]
    if isinstance(priority, int) and not isinstance(priority, bool):
        try:
            return HookPriority(priority)
        except ValueError:
            pass
    raise HookRegistrationError(f"Unknown hook priority: {priority!r}", {"priority": priority})


def _coerce_severity(value: Any) -> Severity:
    if isinstance(value, Severity):
        return value
    if isinstance(value, str) and value.upper() in Severity.__members__:
        return Severity[value.upper()]
    return Severity.HIGH


def _to_decision(raw: Any) -> HookDecision:
    if raw is None:
        return HookDecision()
    if isinstance(raw, HookDecision):
        return raw
    return HookDecision(
        allowed=bool(_read(raw, "allowed", True)),
        reason=_read(raw, "reason"),
        severity=_coerce_severity(_read(raw, "severity")),
        suggestion=_read(raw, "suggestion"),
    )


def _to_verdict(raw: Any) -> HookVerdict:
    if raw is None:
        return HookVerdict()
    if isinstance(raw, HookVerdict):
        return raw
    return HookVerdict(
        valid=bool(_read(raw, "valid", True)),
        issues=tuple(_read(raw, "issues", None) or ()),
    )


class HookPipeline:
    """
    Priority-ordered pre/post hook execution.

    Not safe for concurrent mutation from several threads; callers serialize
    access per instance.
    """

    def __init__(
        self,
        validator: Optional[PatternValidator] = None,
        *,
        strict_mode: bool = False,
        pre_budget_ms: float = 1.0,
        post_budget_ms: float = 5.0,
        enabled_hooks: Sequence[str] = ("security", "performance", "quality"),
        event_callback: Optional[EventCallback] = None,
        latency_history_size: int = 1000,
    ):
        """
        Initialize the pipeline and register the default hooks.

        Args:
            validator: Pattern validator used by the default hooks
            strict_mode: Stop pre-hooks at the first veto
            pre_budget_ms: Latency budget for a whole pre-phase run
            post_budget_ms: Latency budget for a whole post-phase run
            enabled_hooks: Default hooks to register ('security', 'performance', 'quality')
            event_callback: Optional observer called as callback(event, payload)
            latency_history_size: Samples kept for percentile metrics
        """
        self.validator = validator or PatternValidator(strict_mode=strict_mode)
        self.strict_mode = strict_mode
        self.pre_budget_ms = pre_budget_ms
        self.post_budget_ms = post_budget_ms
        self.event_callback = event_callback

        self._registry: Dict[HookPhase, Dict[str, Hook]] = {HookPhase.PRE: {}, HookPhase.POST: {}}
        self._latency = {
            HookPhase.PRE: LatencyTracker(latency_history_size),
            HookPhase.POST: LatencyTracker(latency_history_size),
        }
        self._blocked = {HookPhase.PRE: 0, HookPhase.POST: 0}
        self._performance_violations = 0
        self._hook_errors = 0

        register_default_hooks(self, self.validator, enabled_hooks)

    # ------------------------------------------------------------------ #
    # Registry
    # ------------------------------------------------------------------ #

    def register_pre_hook(
        self,
        hook_id: str,
        handler: Callable[..., Any],
        priority: Any = HookPriority.MEDIUM,
        enabled: bool = True,
    ) -> "HookPipeline":
        """Register a pre-phase hook: handler(tool_name, params, context)."""
        return self._register(HookPhase.PRE, hook_id, handler, priority, enabled)

    def register_post_hook(
        self,
        hook_id: str,
        handler: Callable[..., Any],
        priority: Any = HookPriority.MEDIUM,
        enabled: bool = True,
    ) -> "HookPipeline":
        """Register a post-phase hook: handler(tool_name, params, result, context)."""
        return self._register(HookPhase.POST, hook_id, handler, priority, enabled)

    def set_hook_enabled(self, phase: HookPhase | str, hook_id: str, enabled: bool) -> bool:
        """Enable or disable a hook. Returns False when the id is unknown."""
        hook = self.get_hook(phase, hook_id)
        if hook is None:
            return False
        hook.enabled = enabled
        logger.info("hook_state_changed", phase=hook.phase.value, hook_id=hook_id, enabled=enabled)
        return True

    def get_hook(self, phase: HookPhase | str, hook_id: str) -> Optional[Hook]:
        return self._registry[HookPhase(phase)].get(hook_id)

    def hooks(self, phase: HookPhase | str) -> List[Hook]:
        """Hooks of a phase in execution order (priority, then registration order)."""
        return sorted(self._registry[HookPhase(phase)].values(), key=lambda h: h.priority)

    def _register(
        self,
        phase: HookPhase,
        hook_id: str,
        handler: Callable[..., Any],
        priority: Any,
        enabled: bool,
    ) -> "HookPipeline":
        if not callable(handler):
            raise HookRegistrationError(
                f"{phase.value}-hook '{hook_id}' must be callable, got {type(handler).__name__}",
                {"phase": phase.value, "hook_id": hook_id},
            )

        resolved_priority = _coerce_priority(priority)
        registry = self._registry[phase]
        replaced = registry.pop(hook_id, None) is not None
        registry[hook_id] = Hook(
            id=hook_id,
            phase=phase,
            priority=resolved_priority,
            handler=handler,
            enabled=enabled,
        )

        logger.debug("hook_registered", phase=phase.value, hook_id=hook_id, replaced=replaced)
        return self

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    async def run_pre_async(
        self,
        tool_name: str,
        params: Any,
        context: Optional[Dict[str, Any]] = None,
    ) -> PreHookOutcome:
        """
        Run enabled pre-hooks in priority order.

        Args:
            tool_name: Tool about to be invoked
            params: Tool parameters
            context: Execution context passed through to handlers

        Returns:
            PreHookOutcome; allowed is False once any hook vetoed
        """
        start = time.perf_counter_ns()
        context = context or {}
        outcome = PreHookOutcome(allowed=True, tool_name=tool_name)

        for hook in self.hooks(HookPhase.PRE):
            if not hook.enabled:
                continue

            raw = await self._invoke(hook, outcome.errors, tool_name, params, context)
            outcome.hooks_run.append(hook.id)
            if raw is _FAILED:
                continue

            decision = _to_decision(raw)
            if decision.allowed:
                continue

            outcome.allowed = False
            outcome.interventions.append(
                Intervention(
                    hook_id=hook.id,
                    reason=decision.reason,
                    severity=decision.severity,
                    suggestion=decision.suggestion,
                )
            )
            self._blocked[HookPhase.PRE] += 1
            logger.info("pre_hook_veto", hook_id=hook.id, tool=tool_name, severity=decision.severity.value)

            if self.strict_mode:
                break

        outcome.response_time_ns = time.perf_counter_ns() - start
        outcome.budget_exceeded = self._check_budget(HookPhase.PRE, outcome.response_time_ns, self.pre_budget_ms)
        return outcome

    async def run_post_async(
        self,
        tool_name: str,
        params: Any,
        result: Any,
        context: Optional[Dict[str, Any]] = None,
    ) -> PostHookOutcome:
        """
        Run enabled post-hooks in priority order.

        Every post-hook runs, in strict mode too.

        Returns:
            PostHookOutcome with the issues of every hook
        """
        start = time.perf_counter_ns()
        context = context or {}
        outcome = PostHookOutcome(valid=True, tool_name=tool_name)

        for hook in self.hooks(HookPhase.POST):
            if not hook.enabled:
                continue

            raw = await self._invoke(hook, outcome.errors, tool_name, params, result, context)
            outcome.hooks_run.append(hook.id)
            if raw is _FAILED:
                continue

            verdict = _to_verdict(raw)
            if not verdict.valid:
                outcome.valid = False
                self._blocked[HookPhase.POST] += 1
            outcome.issues.extend(verdict.issues)

        outcome.response_time_ns = time.perf_counter_ns() - start
        outcome.budget_exceeded = self._check_budget(HookPhase.POST, outcome.response_time_ns, self.post_budget_ms)
        return outcome

    async def _invoke(self, hook: Hook, errors: List[HookFailure], *args: Any) -> Any:
        hook_start = time.perf_counter_ns()
        try:
            raw = hook.handler(*args)
            if inspect.isawaitable(raw):
                raw = await raw
        except Exception as e:
            self._hook_errors += 1
            errors.append(HookFailure(hook_id=hook.id, phase=hook.phase, error=str(e)))
            logger.warning("hook_error", phase=hook.phase.value, hook_id=hook.id, error=str(e))
            self._emit("hookError", {"phase": hook.phase.value, "hook_id": hook.id, "error": str(e)})
            raw = _FAILED
        finally:
            hook.execution_count += 1
            hook.total_time_ns += time.perf_counter_ns() - hook_start
        return raw

    def _check_budget(self, phase: HookPhase, elapsed_ns: int, budget_ms: float) -> bool:
        self._latency[phase].record(elapsed_ns)
        if elapsed_ns <= budget_ms * _NS_PER_MS:
            return False

        self._performance_violations += 1
        actual_ms = round(elapsed_ns / _NS_PER_MS, 3)
        logger.debug("performance_violation", phase=phase.value, actual_ms=actual_ms, target_ms=budget_ms)
        self._emit("performanceViolation", {"phase": phase.value, "actual_ms": actual_ms, "target_ms": budget_ms})
        return True

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        if self.event_callback is None:
            return
        try:
            self.event_callback(event, payload)
        except Exception as e:
            logger.warning("event_callback_failed", hook_event=event, error=str(e))

    # ------------------------------------------------------------------ #
    # Metrics
    # ------------------------------------------------------------------ #

    def get_metrics(self) -> Dict[str, Any]:
        """Side-effect free snapshot of pipeline and per-hook metrics."""

        def _phase(phase: HookPhase) -> Dict[str, Any]:
            return {
                "executions": self._latency[phase].count,
                "blocked": self._blocked[phase],
                "latency": self._latency[phase].snapshot(),
                "hooks": [
                    {
                        "id": h.id,
                        "priority": h.priority.name,
                        "enabled": h.enabled,
                        "executions": h.execution_count,
                        "average_time_ms": round(h.average_time_ns / _NS_PER_MS, 3),
                    }
                    for h in self.hooks(phase)
                ],
            }

        return {
            "pre": _phase(HookPhase.PRE),
            "post": _phase(HookPhase.POST),
            "performance_violations": self._performance_violations,
            "hook_errors": self._hook_errors,
        }

