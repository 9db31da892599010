"""
Gatekeeper engine.

Wires the rule catalog, pattern validator, hook pipeline, truth scoring,
phase state machine and retry orchestrator from Settings, and tracks every
operation submitted through it so that shutdown can drain in-flight work
with a bounded wait.
"""

import asyncio
import contextlib
import time
import uuid
from enum import Enum
from typing import Any, AsyncIterator, Dict, Iterator, Mapping, Optional

from gatekeeper.core.metrics import LatencyTracker
from gatekeeper.hooks.application.hook_pipeline import HookPipeline
from gatekeeper.hooks.domain.models import PostHookOutcome, PreHookOutcome
from gatekeeper.orchestration.application.retry_orchestrator import ExecuteFn, RetryOrchestrator, ValidationFn
from gatekeeper.orchestration.domain.models import ExecutorConnection, OrchestrationConfig, OrchestrationResult
from gatekeeper.orchestration.infrastructure.task_executor import ExternalTaskExecutor
from gatekeeper.rules.defaults.catalog import RuleCatalog, build_default_catalog
from gatekeeper.scoring.application.truth_scoring import RollbackFn, TruthScoring
from gatekeeper.scoring.domain.models import ScoreRecord, VerificationResult
from gatekeeper.shared.domain.exceptions import CapacityExceededError, EngineShutdownError
from gatekeeper.shared.infrastructure.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from gatekeeper.shared.infrastructure.config import Settings
from gatekeeper.shared.infrastructure.config import settings as default_settings
from gatekeeper.shared.infrastructure.logging import get_logger
from gatekeeper.validation.application.pattern_validator import PatternValidator
from gatekeeper.validation.domain.models import PostValidationResult, ValidationResult
from gatekeeper.workflow.application.phase_machine import PhaseStateMachine, PhaseValidator
from gatekeeper.workflow.domain.phases import PhaseResult

logger = get_logger(__name__)

_DRAIN_POLL_SECONDS = 0.1


class EngineState(str, Enum):
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class GatekeeperEngine:
    """
    Facade over all Gatekeeper components.

    Every public operation is tracked while it runs. Once shutdown has
    started, new operations raise EngineShutdownError. While the circuit
    breaker is open they raise CircuitOpenError, and beyond the concurrency
    limit they raise CapacityExceededError.
    """

    FEATURES = ("circuit_breaker", "auto_recovery")

    def __init__(self, config: Optional[Settings] = None, catalog: Optional[RuleCatalog] = None):
        self.settings = config or default_settings
        s = self.settings

        self.catalog = catalog or build_default_catalog()
        self.validator = PatternValidator(
            self.catalog,
            strict_mode=s.strict_mode,
            latency_budget_ms=s.validator_budget_ms,
        )
        self.hooks = HookPipeline(
            self.validator,
            strict_mode=s.strict_mode,
            pre_budget_ms=s.pre_hook_budget_ms,
            post_budget_ms=s.post_hook_budget_ms,
            enabled_hooks=s.enabled_hooks,
            event_callback=self._on_event,
            latency_history_size=s.latency_history_size,
        )
        self.scoring = TruthScoring(
            self.validator,
            threshold=s.truth_threshold,
            warning_threshold=s.warning_threshold,
            critical_threshold=s.critical_threshold,
            auto_rollback=s.auto_rollback,
            history_size=s.score_history_size,
            event_callback=self._on_event,
        )
        self.phases = PhaseStateMachine(event_callback=self._on_event)
        self.executor = ExternalTaskExecutor(
            command=s.executor_command,
            package=s.executor_package,
            timeout=s.executor_timeout,
        )
        self.orchestrator = RetryOrchestrator(
            self.executor,
            OrchestrationConfig(
                strategy=s.strategy,
                priority=s.priority,
                max_agents=s.max_agents,
                max_retries=s.max_retries,
            ),
            latency_history_size=s.latency_history_size,
        )

        self.state = EngineState.READY
        self._started_ns = time.time_ns()
        self._active: Dict[str, Optional[asyncio.Task]] = {}
        self._total = 0
        self._succeeded = 0
        self._failed = 0
        self._latency = LatencyTracker(s.latency_history_size)
        self._events: Dict[str, int] = {}
        self.breaker = CircuitBreaker(
            "engine",
            CircuitBreakerConfig(
                failure_rate_threshold=s.circuit_breaker_threshold,
                min_operations=s.circuit_breaker_min_operations,
                reset_timeout=s.circuit_breaker_reset,
            ),
            event_callback=self._on_event,
        )

    # Validation

    def validate_pre(self, text: Any) -> ValidationResult:
        with self._operation("validate_pre"):
            return self.validator.validate_pre(text)

    def validate_post(self, result: Any) -> PostValidationResult:
        with self._operation("validate_post"):
            return self.validator.validate_post(result)

    # Hooks

    async def run_pre_hooks_async(
        self, tool_name: str, params: Any, context: Optional[Dict[str, Any]] = None
    ) -> PreHookOutcome:
        async with self._async_operation("run_pre_hooks"):
            return await self.hooks.run_pre_async(tool_name, params, context)

    async def run_post_hooks_async(
        self, tool_name: str, params: Any, result: Any, context: Optional[Dict[str, Any]] = None
    ) -> PostHookOutcome:
        async with self._async_operation("run_post_hooks"):
            return await self.hooks.run_post_async(tool_name, params, result, context)

    # Scoring

    def calculate_score(self, text: Any) -> ScoreRecord:
        with self._operation("calculate_score"):
            return self.scoring.calculate_score(text)

    async def verify_async(
        self, text: Any, threshold: Optional[float] = None, rollback_fn: Optional[RollbackFn] = None
    ) -> VerificationResult:
        async with self._async_operation("verify"):
            return await self.scoring.verify_async(text, threshold, rollback_fn)

    # Workflow

    async def validate_phase_async(
        self, phase: Any, outputs: Optional[Mapping[str, Any]], validator: Optional[PhaseValidator] = None
    ) -> PhaseResult:
        async with self._async_operation("validate_phase"):
            return await self.phases.validate_phase_async(phase, outputs, validator)

    # Orchestration

    async def connect_async(self) -> ExecutorConnection:
        async with self._async_operation("connect"):
            return await self.executor.connect_async()

    async def orchestrate_async(
        self,
        task: str,
        max_retries: Optional[int] = None,
        pre_validation: Optional[ValidationFn] = None,
        post_validation: Optional[ValidationFn] = None,
        execute: Optional[ExecuteFn] = None,
    ) -> OrchestrationResult:
        async with self._async_operation("orchestrate"):
            return await self.orchestrator.orchestrate_async(
                task,
                max_retries=max_retries,
                pre_validation=pre_validation,
                post_validation=post_validation,
                execute=execute,
            )

    # Lifecycle

    async def shutdown_async(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Refuse new work, then wait for in-flight operations.

        Operations still running after the timeout are cancelled and counted
        as failed.

        Returns:
            Drain report: drained and forced operation counts
        """
        if self.state == EngineState.STOPPED:
            return {"drained": 0, "forced": 0}

        bound = self.settings.shutdown_timeout if timeout is None else timeout
        self.state = EngineState.SHUTTING_DOWN
        in_flight = len(self._active)
        logger.info("engine_shutting_down", active_operations=in_flight, timeout=bound)

        deadline = time.monotonic() + bound
        while self._active and time.monotonic() < deadline:
            await asyncio.sleep(_DRAIN_POLL_SECONDS)

        forced = 0
        current = asyncio.current_task()
        for op_id, task in list(self._active.items()):
            forced += 1
            if task is not None and task is not current and not task.done():
                task.cancel()
            del self._active[op_id]
            self._failed += 1
            logger.warning("operation_forced_down", operation_id=op_id)

        self.state = EngineState.STOPPED
        logger.info("engine_stopped", drained=in_flight - forced, forced=forced)
        return {"drained": in_flight - forced, "forced": forced}

    def health(self) -> Dict[str, Any]:
        """Side-effect free health readout."""
        success_rate = round(self._succeeded / self._total * 100, 1) if self._total else 100.0
        return {
            "state": self.state.value,
            "uptime_s": round((time.time_ns() - self._started_ns) / 1_000_000_000),
            "total_operations": self._total,
            "successful_operations": self._succeeded,
            "failed_operations": self._failed,
            "success_rate": success_rate,
            "active_operations": len(self._active),
            "circuit_breaker_open": self.breaker.state == CircuitState.OPEN,
            "operation_latency": self._latency.snapshot(),
        }

    def set_feature(self, feature: str, enabled: bool) -> bool:
        """
        Toggle an engine feature ('circuit_breaker' or 'auto_recovery').

        Returns:
            False when the feature name is unknown
        """
        if feature not in self.FEATURES:
            return False
        if feature == "circuit_breaker":
            self.breaker.enabled = enabled
        else:
            self.breaker.auto_recovery = enabled
        logger.info("feature_changed", feature=feature, enabled=enabled)
        self._on_event("featureChanged", {"feature": feature, "enabled": enabled})
        return True

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "engine": self.health(),
            "circuit_breaker": self.breaker.snapshot(),
            "validator": self.validator.get_metrics(),
            "hooks": self.hooks.get_metrics(),
            "scoring": self.scoring.get_metrics(),
            "orchestration": self.orchestrator.get_metrics(),
            "events": dict(self._events),
        }

    def _begin(self, kind: str, task: Optional[asyncio.Task]) -> str:
        if self.state != EngineState.READY:
            raise EngineShutdownError(
                f"Engine is {self.state.value}; '{kind}' rejected",
                context={"operation": kind, "state": self.state.value},
            )
        self.breaker.check()
        if len(self._active) >= self.settings.max_concurrent_ops:
            raise CapacityExceededError(
                f"Max concurrent operations ({self.settings.max_concurrent_ops}) reached",
                context={"operation": kind, "active": len(self._active)},
            )
        op_id = f"{kind}_{uuid.uuid4().hex[:8]}"
        self._active[op_id] = task
        self._total += 1
        return op_id

    def _finish(self, op_id: str, start_ns: int, ok: bool) -> None:
        # Already counted as failed when forced down during shutdown
        if self._active.pop(op_id, False) is False:
            return
        self._latency.record(time.perf_counter_ns() - start_ns)
        if ok:
            self._succeeded += 1
            self.breaker.record_success()
        else:
            self._failed += 1
            self.breaker.record_failure()

    @contextlib.contextmanager
    def _operation(self, kind: str) -> Iterator[str]:
        op_id = self._begin(kind, None)
        start = time.perf_counter_ns()
        ok = False
        try:
            yield op_id
            ok = True
        finally:
            self._finish(op_id, start, ok)

    @contextlib.asynccontextmanager
    async def _async_operation(self, kind: str) -> AsyncIterator[str]:
        op_id = self._begin(kind, asyncio.current_task())
        start = time.perf_counter_ns()
        ok = False
        try:
            yield op_id
            ok = True
        finally:
            self._finish(op_id, start, ok)

    def _on_event(self, event: str, payload: Dict[str, Any]) -> None:
        self._events[event] = self._events.get(event, 0) + 1
        logger.debug("engine_event", event_name=event, **payload)
