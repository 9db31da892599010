"""
Phase state machine.

Drives one workflow through the fixed phase sequence. Each submission of
phase outputs is scored; the workflow advances only when the submitted phase
is its current phase and the score reaches that phase's quality gate.
"""

import inspect
import time
import uuid
from collections import deque
from collections.abc import Sized
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple

from gatekeeper.rules.domain.enums import Severity
from gatekeeper.shared.domain.exceptions import UnknownPhaseError
from gatekeeper.shared.infrastructure.logging import get_logger
from gatekeeper.workflow.domain.phases import (
    PHASE_ORDER,
    FinalStatus,
    PhaseIssue,
    PhaseResult,
    Remediation,
    Workflow,
    WorkflowPhase,
    WorkflowStart,
    WorkflowState,
    WorkflowStatus,
    WorkflowSummary,
    get_phase,
    next_phase,
)

logger = get_logger(__name__)

MISSING_OUTPUT_DEDUCTION = 0.2
VALIDATOR_ISSUE_DEDUCTION = 0.1
NO_REQUIREMENTS_DEDUCTION = 0.1
NO_INTERFACES_DEDUCTION = 0.15
LOW_COVERAGE_DEDUCTION = 0.2
COVERAGE_TARGET = 90

PhaseValidator = Callable[[Mapping[str, Any]], Any]
EventCallback = Callable[[str, Dict[str, Any]], None]


def resolve_phase(phase: Any) -> WorkflowPhase:
    """Resolve a phase name or enum member, rejecting unknown names."""
    if isinstance(phase, WorkflowPhase):
        return phase
    try:
        return WorkflowPhase(str(phase).lower())
    except ValueError:
        raise UnknownPhaseError(
            f"Unknown phase: {phase}",
            context={"phase": phase, "known": [p.value for p in PHASE_ORDER]},
        ) from None


def _to_issue(raw: Any) -> PhaseIssue:
    if isinstance(raw, PhaseIssue):
        return raw
    if isinstance(raw, Mapping):
        severity = raw.get("severity")
        try:
            severity = Severity(str(severity).upper()) if severity is not None else None
        except ValueError:
            severity = None
        return PhaseIssue(
            type=str(raw.get("type", "custom")),
            message=str(raw.get("message", "")),
            severity=severity,
        )
    return PhaseIssue(type="custom", message=str(raw))


def _phase_specific_checks(phase: WorkflowPhase, outputs: Mapping[str, Any]) -> Tuple[List[PhaseIssue], float]:
    issues: List[PhaseIssue] = []
    deduction = 0.0

    if phase == WorkflowPhase.SPECIFICATION:
        requirements = outputs.get("requirements")
        if not isinstance(requirements, Sized) or len(requirements) == 0:
            issues.append(PhaseIssue(type="incomplete", message="No requirements defined"))
            deduction += NO_REQUIREMENTS_DEDUCTION

    elif phase == WorkflowPhase.ARCHITECTURE:
        if not outputs.get("interfaces"):
            issues.append(PhaseIssue(type="incomplete", message="No interface definitions"))
            deduction += NO_INTERFACES_DEDUCTION

    elif phase == WorkflowPhase.REFINEMENT:
        coverage = outputs.get("coverage")
        if isinstance(coverage, (int, float)) and not isinstance(coverage, bool) and 0 < coverage < COVERAGE_TARGET:
            issues.append(
                PhaseIssue(type="coverage", message=f"Test coverage {coverage}% below {COVERAGE_TARGET}% target")
            )
            deduction += LOW_COVERAGE_DEDUCTION

    return issues, deduction


def _remediation(issues: List[PhaseIssue]) -> List[Remediation]:
    return [
        Remediation(
            issue=issue.message,
            remediation=f"Fix {issue.type} issue before proceeding",
            priority="immediate" if issue.severity == Severity.HIGH else "recommended",
        )
        for issue in issues
    ]


class PhaseStateMachine:
    """
    Single-workflow phase state machine.

    Only one workflow is active at a time; starting a new one replaces it.
    Completed workflows are kept in a bounded archive.
    """

    def __init__(
        self,
        *,
        enable_validation: bool = True,
        archive_size: int = 100,
        event_callback: Optional[EventCallback] = None,
        now_ns: Callable[[], int] = time.time_ns,
    ):
        self.enable_validation = enable_validation
        self._event_callback = event_callback
        self._now_ns = now_ns
        self._workflow: Optional[Workflow] = None
        self._archive: Deque[Workflow] = deque(maxlen=archive_size)

    @property
    def workflow(self) -> Optional[Workflow]:
        return self._workflow

    @property
    def archive(self) -> List[Workflow]:
        return list(self._archive)

    def start(self, task: str, options: Optional[Dict[str, Any]] = None) -> WorkflowStart:
        """Start a workflow at the first phase, replacing any active one."""
        if self._workflow is not None:
            logger.warning("workflow_replaced", workflow_id=self._workflow.id)

        workflow = Workflow(
            id=f"workflow_{uuid.uuid4().hex[:12]}",
            task=task,
            started_at_ns=self._now_ns(),
            options=dict(options or {}),
        )
        self._workflow = workflow

        first = PHASE_ORDER[0]
        logger.info("workflow_started", workflow_id=workflow.id)
        self._emit("workflowStarted", {"workflow_id": workflow.id, "task": task})

        return WorkflowStart(
            workflow_id=workflow.id,
            task=task,
            current_phase=first,
            next_steps=get_phase(first).guidance,
        )

    async def validate_phase_async(
        self,
        phase: Any,
        outputs: Optional[Mapping[str, Any]],
        validator: Optional[PhaseValidator] = None,
    ) -> PhaseResult:
        """
        Score phase outputs against the phase's quality gate.

        Args:
            phase: Phase name or WorkflowPhase
            outputs: Phase outputs keyed by output name
            validator: Optional custom validator (sync or async) returning
                a mapping or object with an 'issues' list

        Returns:
            PhaseResult; remediation is filled when the phase fails

        Raises:
            UnknownPhaseError: phase is not part of the sequence
        """
        resolved = resolve_phase(phase)
        definition = get_phase(resolved)
        if outputs is not None and not isinstance(outputs, Mapping):
            logger.warning("malformed_phase_outputs", phase=resolved.value, outputs_type=type(outputs).__name__)
            outputs = None
        outputs = outputs or {}
        start = time.perf_counter_ns()

        issues: List[PhaseIssue] = []
        score = 1.0

        for required in definition.required_outputs:
            if not outputs.get(required):
                issues.append(
                    PhaseIssue(
                        type="missing_output",
                        message=f"Missing required output: {required}",
                        severity=Severity.HIGH,
                    )
                )
                score -= MISSING_OUTPUT_DEDUCTION

        if validator is not None and self.enable_validation:
            custom = await self._run_validator_async(validator, outputs)
            issues.extend(custom)
            score -= len(custom) * VALIDATOR_ISSUE_DEDUCTION

        specific, deduction = _phase_specific_checks(resolved, outputs)
        issues.extend(specific)
        score = round(max(0.0, score - deduction), 3)

        passed = score >= definition.quality_gate
        result = PhaseResult(
            phase=resolved,
            passed=passed,
            score=score,
            quality_gate=definition.quality_gate,
            issues=issues,
        )

        if passed:
            upcoming = next_phase(resolved)
            result.next_phase = upcoming
            result.next_steps = list(get_phase(upcoming).guidance) if upcoming else []
            result.advanced = self._advance(resolved, result)
            self._emit("phaseCompleted", {"phase": resolved.value, "score": score})
        else:
            result.remediation = _remediation(issues)
            logger.info(
                "phase_failed",
                phase=resolved.value,
                score=score,
                quality_gate=definition.quality_gate,
                issues=len(issues),
            )
            self._emit("phaseFailed", {"phase": resolved.value, "score": score, "issues": len(issues)})

        result.response_time_ns = time.perf_counter_ns() - start
        return result

    def status(self) -> WorkflowStatus:
        """Side-effect free snapshot of the active workflow."""
        workflow = self._workflow
        if workflow is None:
            return WorkflowStatus(active=False)

        return WorkflowStatus(
            active=True,
            workflow_id=workflow.id,
            task=workflow.task,
            current_phase=workflow.current_phase,
            completed_phases=list(workflow.completed_phases),
            progress_percent=round(len(workflow.completed_phases) / len(PHASE_ORDER) * 100),
            elapsed_ns=self._now_ns() - workflow.started_at_ns,
        )

    def complete(self) -> WorkflowSummary:
        """Archive the active workflow and summarize it."""
        workflow = self._workflow
        if workflow is None:
            return WorkflowSummary(success=False, error="No active workflow")

        workflow.ended_at_ns = self._now_ns()
        workflow.state = WorkflowState.ARCHIVED
        self._archive.append(workflow)
        self._workflow = None

        summary = WorkflowSummary(
            success=True,
            workflow_id=workflow.id,
            task=workflow.task,
            duration_ns=workflow.ended_at_ns - workflow.started_at_ns,
            completed_phases=list(workflow.completed_phases),
            final_status=self._final_status(workflow),
        )
        logger.info("workflow_completed", workflow_id=workflow.id, final_status=summary.final_status.value)
        self._emit("workflowCompleted", {"workflow_id": workflow.id, "final_status": summary.final_status.value})
        return summary

    def _advance(self, phase: WorkflowPhase, result: PhaseResult) -> bool:
        workflow = self._workflow
        if workflow is None or workflow.current_phase != phase:
            return False

        workflow.completed_phases.append(phase)
        workflow.phase_results[phase.value] = result
        workflow.phase_index += 1
        if workflow.current_phase is None:
            workflow.state = WorkflowState.FINISHED
        return True

    async def _run_validator_async(self, validator: PhaseValidator, outputs: Mapping[str, Any]) -> List[PhaseIssue]:
        try:
            raw = validator(outputs)
            if inspect.isawaitable(raw):
                raw = await raw
        except Exception as e:
            logger.warning("phase_validator_error", error=str(e), error_type=type(e).__name__)
            return [PhaseIssue(type="validator_error", message=f"Custom validator failed: {e}", severity=Severity.HIGH)]

        if raw is None:
            return []
        raw_issues = raw.get("issues") if isinstance(raw, Mapping) else getattr(raw, "issues", None)
        return [_to_issue(issue) for issue in raw_issues or []]

    @staticmethod
    def _final_status(workflow: Workflow) -> FinalStatus:
        total = len(PHASE_ORDER)
        done = len(workflow.completed_phases)
        if done == total:
            return FinalStatus.COMPLETED
        if done >= total * 0.8:
            return FinalStatus.NEARLY_COMPLETE
        if done >= total * 0.5:
            return FinalStatus.IN_PROGRESS
        return FinalStatus.EARLY_STAGE

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        if self._event_callback is None:
            return
        try:
            self._event_callback(event, payload)
        except Exception as e:
            logger.warning("event_callback_failed", event_name=event, error=str(e))
