"""
Tests for GatekeeperEngine.

Covers:
- Component wiring from Settings
- Operation accounting and health readout
- Failure-rate circuit breaker, capacity limit and feature toggles
- Graceful shutdown (drain, forced cancel, rejection of new work)
"""

import asyncio

import pytest

from gatekeeper.core.engine import EngineState, GatekeeperEngine
from gatekeeper.orchestration.domain.models import OrchestrationStatus
from gatekeeper.shared.domain.exceptions import CapacityExceededError, CircuitOpenError, EngineShutdownError
from gatekeeper.shared.infrastructure.config import Settings
from gatekeeper.workflow.domain.phases import WorkflowPhase


@pytest.fixture
def engine_settings():
    return Settings(
        validator_budget_ms=10_000,
        pre_hook_budget_ms=10_000,
        post_hook_budget_ms=10_000,
        shutdown_timeout=0.2,
        max_retries=1,
    )


@pytest.fixture
def engine(engine_settings):
    return GatekeeperEngine(engine_settings)


class TestWiring:
    """Test component wiring and operation accounting."""
    def test_components_follow_settings(self, engine):
        """Test components are configured from Settings."""
        assert engine.state == EngineState.READY
        assert engine.validator.latency_budget_ms == 10_000
        assert engine.orchestrator.config.max_retries == 1
        assert engine.scoring.threshold == 0.95
        assert len(engine.hooks.hooks("pre")) == 2

    def test_validation_is_counted(self, engine, secret_code, clean_code):
        """Test validations are counted in the health readout."""
        assert engine.validate_pre(secret_code).passed is False
        assert engine.validate_pre(clean_code).passed is True
        engine.validate_post({"code": clean_code})

        health = engine.health()

        assert health["total_operations"] == 3
        assert health["successful_operations"] == 3
        assert health["failed_operations"] == 0
        assert health["active_operations"] == 0
        assert health["operation_latency"]["count"] == 3

    def test_raising_operation_counts_as_failed(self, engine, monkeypatch):
        """Test a raising operation counts as failed."""
        def _explode(text):
            raise RuntimeError("boom")

        monkeypatch.setattr(engine.validator, "validate_pre", _explode)

        with pytest.raises(RuntimeError):
            engine.validate_pre("x")

        assert engine.health()["failed_operations"] == 1
        assert engine.health()["success_rate"] == 0.0

    @pytest.mark.asyncio
    async def test_default_hooks_block_secrets(self, engine, secret_code):
        """Test the default hooks block hardcoded secrets."""
        outcome = await engine.run_pre_hooks_async("Write", {"content": secret_code})

        assert outcome.allowed is False
        assert outcome.interventions[0].hook_id == "security-validation"

    @pytest.mark.asyncio
    async def test_component_events_are_counted(self, engine, secret_code):
        """Test component events are counted by name."""
        await engine.verify_async(secret_code)
        engine.phases.start("task")
        await engine.validate_phase_async(WorkflowPhase.SPECIFICATION, {})

        events = engine.get_metrics()["events"]

        assert events["verificationFailed"] == 1
        assert events["workflowStarted"] == 1
        assert events["phaseFailed"] == 1

    @pytest.mark.asyncio
    async def test_orchestrate_through_engine(self, engine, secret_code):
        """Test orchestration through the engine."""
        result = await engine.orchestrate_async(secret_code, pre_validation=engine.validator.validate_pre)

        assert result.final_status == OrchestrationStatus.BLOCKED
        assert engine.get_metrics()["orchestration"]["blocked_operations"] == 1


def _failing_validator(engine, monkeypatch):
    def _explode(text):
        raise RuntimeError("boom")

    monkeypatch.setattr(engine.validator, "validate_pre", _explode)


def _fail_operations(engine, times):
    for _ in range(times):
        with pytest.raises(RuntimeError):
            engine.validate_pre("x")


class TestProtection:
    """Circuit breaker, capacity limit and feature toggles."""

    def test_repeated_failures_open_the_circuit(self, engine, monkeypatch):
        """Five failing operations open the circuit; new work is rejected."""
        _failing_validator(engine, monkeypatch)
        _fail_operations(engine, 5)

        assert engine.health()["circuit_breaker_open"] is True
        with pytest.raises(CircuitOpenError):
            engine.calculate_score("x = 1")
        assert engine.health()["total_operations"] == 5
        assert engine.get_metrics()["events"]["circuitBreakerOpened"] == 1

    def test_circuit_resets_after_timeout(self, engine_settings, monkeypatch, clean_code):
        """An open circuit accepts work again once the reset timeout elapses."""
        engine = GatekeeperEngine(engine_settings.model_copy(update={"circuit_breaker_reset": 0.0}))
        _failing_validator(engine, monkeypatch)
        _fail_operations(engine, 5)
        monkeypatch.undo()

        assert engine.validate_pre(clean_code).passed is True
        assert engine.health()["circuit_breaker_open"] is False
        assert engine.get_metrics()["events"]["circuitBreakerReset"] == 1

    def test_disabled_auto_recovery_keeps_circuit_open(self, engine_settings, monkeypatch):
        """Without auto recovery the circuit stays open past the timeout."""
        engine = GatekeeperEngine(engine_settings.model_copy(update={"circuit_breaker_reset": 0.0}))
        assert engine.set_feature("auto_recovery", False) is True
        _failing_validator(engine, monkeypatch)
        _fail_operations(engine, 5)

        with pytest.raises(CircuitOpenError):
            engine.validate_pre("x")

    def test_disabled_circuit_breaker_never_rejects(self, engine, monkeypatch):
        """With the breaker feature off, failures never block new work."""
        engine.set_feature("circuit_breaker", False)
        _failing_validator(engine, monkeypatch)
        _fail_operations(engine, 8)

        assert engine.health()["circuit_breaker_open"] is False
        assert engine.health()["failed_operations"] == 8

    def test_unknown_feature(self, engine):
        """Unknown feature names are ignored."""
        assert engine.set_feature("telepathy", True) is False
        assert "featureChanged" not in engine.get_metrics()["events"]

    @pytest.mark.asyncio
    async def test_capacity_limit_rejects_extra_operations(self, engine_settings):
        """Operations beyond max_concurrent_ops are rejected while others run."""
        engine = GatekeeperEngine(engine_settings.model_copy(update={"max_concurrent_ops": 1}))
        release = asyncio.Event()

        async def _wait(task):
            await release.wait()
            return "done"

        running = asyncio.create_task(engine.orchestrate_async("task", execute=_wait))
        await asyncio.sleep(0)

        with pytest.raises(CapacityExceededError):
            engine.validate_pre("x = 1")

        release.set()
        assert (await running).success is True
        assert engine.validate_pre("x = 1").passed is True


class TestShutdown:
    """Test graceful shutdown."""
    @pytest.mark.asyncio
    async def test_new_work_is_rejected_after_shutdown(self, engine, clean_code):
        """Test new work is rejected after shutdown."""
        report = await engine.shutdown_async()

        assert report == {"drained": 0, "forced": 0}
        assert engine.state == EngineState.STOPPED
        with pytest.raises(EngineShutdownError):
            engine.validate_pre(clean_code)
        with pytest.raises(EngineShutdownError):
            await engine.orchestrate_async("task")

    @pytest.mark.asyncio
    async def test_in_flight_work_drains(self, engine):
        """Test in-flight work drains before shutdown completes."""
        async def _slow(task):
            await asyncio.sleep(0.05)
            return "done"

        running = asyncio.create_task(engine.orchestrate_async("task", execute=_slow))
        await asyncio.sleep(0)
        assert engine.health()["active_operations"] == 1

        report = await engine.shutdown_async(timeout=1.0)

        assert report == {"drained": 1, "forced": 0}
        result = await running
        assert result.success is True
        assert engine.health()["successful_operations"] == 1

    @pytest.mark.asyncio
    async def test_stuck_work_is_cancelled_after_timeout(self, engine):
        """Test stuck work is cancelled after the timeout."""
        async def _stuck(task):
            await asyncio.sleep(10)

        running = asyncio.create_task(engine.orchestrate_async("task", execute=_stuck))
        await asyncio.sleep(0)

        report = await engine.shutdown_async(timeout=0.05)

        assert report == {"drained": 0, "forced": 1}
        with pytest.raises(asyncio.CancelledError):
            await running
        health = engine.health()
        assert health["failed_operations"] == 1
        assert health["active_operations"] == 0

    @pytest.mark.asyncio
    async def test_second_shutdown_is_a_noop(self, engine):
        """Test a second shutdown does nothing."""
        await engine.shutdown_async()
        assert await engine.shutdown_async() == {"drained": 0, "forced": 0}
