"""
Retry/feedback orchestrator.

Runs a task through an executor up to ``max_retries + 1`` times. After each
attempt that fails post-validation, a feedback block listing the reported
issues is appended to the task text (replacing any previous block) so that
the next attempt can correct them.

Pre-validation runs once before the first attempt; failing it blocks the
task without consuming an attempt.
"""

import inspect
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from gatekeeper.core.metrics import LatencyTracker
from gatekeeper.orchestration.domain.models import (
    Attempt,
    FeedbackIssue,
    OrchestrationConfig,
    OrchestrationResult,
    OrchestrationStatus,
)
from gatekeeper.orchestration.infrastructure.task_executor import ExternalTaskExecutor
from gatekeeper.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

FEEDBACK_MARKER = "[QUALITY FEEDBACK - PLEASE FIX]:"
DEFAULT_SUGGESTION = "Fix this"

MaybeAwaitable = Union[Any, Awaitable[Any]]
ValidationFn = Callable[[Any], MaybeAwaitable]
ExecuteFn = Callable[[str], MaybeAwaitable]


def _read(obj: Any, key: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _to_feedback_issues(raw_issues: Any) -> List[FeedbackIssue]:
    issues: List[FeedbackIssue] = []
    for raw in raw_issues or []:
        if isinstance(raw, str):
            issues.append(FeedbackIssue(message=raw))
        else:
            issues.append(FeedbackIssue(message=str(_read(raw, "message", "")), suggestion=_read(raw, "suggestion")))
    return issues


def build_feedback(issues: List[FeedbackIssue]) -> str:
    """Render the feedback block appended to a retried task."""
    lines = "\n".join(f"- {issue.message} ({issue.suggestion or DEFAULT_SUGGESTION})" for issue in issues)
    return (
        f"\n\n{FEEDBACK_MARKER}\n"
        "The previous attempt had the following issues:\n"
        f"{lines}\n\n"
        "Please correct these issues in the next attempt."
    )


def apply_feedback(task: str, issues: List[FeedbackIssue]) -> str:
    """
    Append a feedback block to the task text.

    A block appended by an earlier attempt is replaced, so the task never
    carries more than one.
    """
    index = task.find(FEEDBACK_MARKER)
    if index != -1:
        task = task[:index]
        if task.endswith("\n\n"):
            task = task[:-2]
    return task + build_feedback(issues)


class RetryOrchestrator:
    """
    Bounded retry loop around an executor.

    Attributes:
        executor: External executor used when orchestrate_async receives no
            execute function
        config: Executor arguments and default retry bound
    """

    def __init__(
        self,
        executor: Optional[ExternalTaskExecutor] = None,
        config: Optional[OrchestrationConfig] = None,
        latency_history_size: int = 1000,
    ):
        self.executor = executor or ExternalTaskExecutor()
        self.config = config or OrchestrationConfig()

        self._tasks_orchestrated = 0
        self._total_validations = 0
        self._blocked_operations = 0
        self._task_latency = LatencyTracker(latency_history_size)

    async def orchestrate_async(
        self,
        task: str,
        max_retries: Optional[int] = None,
        pre_validation: Optional[ValidationFn] = None,
        post_validation: Optional[ValidationFn] = None,
        execute: Optional[ExecuteFn] = None,
    ) -> OrchestrationResult:
        """
        Run a task until post-validation passes or retries are exhausted.

        Args:
            task: Task text
            max_retries: Retries after the first attempt (default: configured)
            pre_validation: Called once with the task text; a result whose
                'passed' is falsy or missing blocks the task
            post_validation: Called with each execution result; a result
                whose 'passed' is falsy or missing triggers a retry
            execute: Called with the current task text; defaults to the
                external executor with the configured arguments

        Returns:
            OrchestrationResult with every attempt logged
        """
        start = time.perf_counter_ns()
        retries = self.config.max_retries if max_retries is None else max(0, max_retries)
        execute = execute or self._execute_external
        self._tasks_orchestrated += 1

        if pre_validation is not None:
            self._total_validations += 1
            try:
                pre = await _resolve(pre_validation(task))
            except Exception as e:
                logger.warning("pre_validation_error", error=str(e), error_type=type(e).__name__)
                return self._blocked(task, retries, f"Pre-validation error: {e}", start)

            if pre is not None and not _read(pre, "passed", False):
                violations = _read(pre, "violations", None) or []
                reason = str(_read(violations[0], "message", "")) if violations else ""
                return self._blocked(task, retries, reason or "Pre-validation failed", start)

        current_task = task
        attempt_log: List[Attempt] = []
        last_result: Any = None
        status = OrchestrationStatus.MAX_RETRIES_EXCEEDED

        for number in range(1, retries + 2):
            attempt = await self._attempt_async(number, current_task, execute, post_validation)
            attempt_log.append(attempt)
            if attempt.error is None:
                last_result = attempt.result

            if attempt.passed:
                status = OrchestrationStatus.SUCCESS
                break

            logger.info(
                "attempt_failed",
                attempt=number,
                max_attempts=retries + 1,
                issues=len(attempt.issues),
                error=attempt.error,
            )
            # Raised errors leave the task text unchanged
            if attempt.error is None and number <= retries:
                current_task = apply_feedback(current_task, attempt.issues)

        elapsed = time.perf_counter_ns() - start
        self._task_latency.record(elapsed)

        if status != OrchestrationStatus.SUCCESS:
            logger.warning("max_retries_exceeded", attempts=len(attempt_log), max_retries=retries)

        return OrchestrationResult(
            final_status=status,
            attempts=len(attempt_log),
            max_retries=retries,
            task=current_task,
            result=last_result,
            attempt_log=attempt_log,
            response_time_ns=elapsed,
        )

    async def _attempt_async(
        self,
        number: int,
        task: str,
        execute: ExecuteFn,
        post_validation: Optional[ValidationFn],
    ) -> Attempt:
        start = time.perf_counter_ns()

        try:
            result = await _resolve(execute(task))
        except Exception as e:
            logger.warning("executor_error", attempt=number, error=str(e), error_type=type(e).__name__)
            return Attempt(number=number, task=task, passed=False, error=str(e),
                           response_time_ns=time.perf_counter_ns() - start)

        if post_validation is None:
            return Attempt(number=number, task=task, passed=True, result=result,
                           response_time_ns=time.perf_counter_ns() - start)

        self._total_validations += 1
        try:
            post = await _resolve(post_validation(result))
        except Exception as e:
            logger.warning("post_validation_error", attempt=number, error=str(e), error_type=type(e).__name__)
            return Attempt(number=number, task=task, passed=False, result=result, error=str(e),
                           response_time_ns=time.perf_counter_ns() - start)

        passed = post is None or bool(_read(post, "passed", False))
        return Attempt(
            number=number,
            task=task,
            passed=passed,
            result=result,
            issues=[] if passed else _to_feedback_issues(_read(post, "issues", None)),
            response_time_ns=time.perf_counter_ns() - start,
        )

    async def _execute_external(self, task: str) -> Any:
        return await self.executor.execute_async(
            task,
            strategy=self.config.strategy,
            priority=self.config.priority,
            max_agents=self.config.max_agents,
        )

    def _blocked(self, task: str, retries: int, reason: str, start: int) -> OrchestrationResult:
        self._blocked_operations += 1
        logger.info("task_blocked", reason=reason)
        return OrchestrationResult(
            final_status=OrchestrationStatus.BLOCKED,
            attempts=0,
            max_retries=retries,
            task=task,
            blocked_reason=reason,
            response_time_ns=time.perf_counter_ns() - start,
        )

    def get_metrics(self) -> Dict[str, Any]:
        return {
            **self.executor.get_status(),
            "tasks_orchestrated": self._tasks_orchestrated,
            "total_validations": self._total_validations,
            "blocked_operations": self._blocked_operations,
            "task_latency": self._task_latency.snapshot(),
        }
