"""
Workflow phases and state.

Five phases run in a fixed order. Each phase declares the outputs it must
produce and the quality gate its score must reach before the workflow may
advance. A workflow is archived once completed.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from gatekeeper.rules.domain.enums import Severity
from gatekeeper.shared.domain.base_model import BaseDomainModel


class WorkflowPhase(str, Enum):
    """Workflow phases, in execution order."""

    SPECIFICATION = "specification"
    PSEUDOCODE = "pseudocode"
    ARCHITECTURE = "architecture"
    REFINEMENT = "refinement"
    COMPLETION = "completion"


class WorkflowState(str, Enum):
    """Lifecycle of a workflow beyond its current phase."""

    ACTIVE = "active"
    FINISHED = "finished"  # every phase passed, not yet archived
    ARCHIVED = "archived"


class FinalStatus(str, Enum):
    """Completion verdict computed from the share of passed phases."""

    COMPLETED = "completed"
    NEARLY_COMPLETE = "nearly_complete"
    IN_PROGRESS = "in_progress"
    EARLY_STAGE = "early_stage"


@dataclass(frozen=True)
class PhaseDefinition:
    """Required outputs, quality gate and guidance of one phase."""

    phase: WorkflowPhase
    name: str
    required_outputs: Tuple[str, ...]
    quality_gate: float
    guidance: Tuple[str, ...]


PHASES: Tuple[PhaseDefinition, ...] = (
    PhaseDefinition(
        phase=WorkflowPhase.SPECIFICATION,
        name="Specification",
        required_outputs=("requirements", "constraints", "success_criteria"),
        quality_gate=0.85,
        guidance=(
            "Define clear requirements with acceptance criteria",
            "Identify constraints and non-functional requirements",
            "Create user stories or use cases",
            "Define success metrics",
        ),
    ),
    PhaseDefinition(
        phase=WorkflowPhase.PSEUDOCODE,
        name="Pseudocode",
        required_outputs=("algorithm_design", "data_structures"),
        quality_gate=0.85,
        guidance=(
            "Design algorithms at high level",
            "Define data structures needed",
            "Plan module interactions",
            "Consider edge cases",
        ),
    ),
    PhaseDefinition(
        phase=WorkflowPhase.ARCHITECTURE,
        name="Architecture",
        required_outputs=("system_design", "interfaces", "schemas"),
        quality_gate=0.90,
        guidance=(
            "Design system components and boundaries",
            "Define API contracts and interfaces",
            "Plan database schemas",
            "Consider scalability and security",
        ),
    ),
    PhaseDefinition(
        phase=WorkflowPhase.REFINEMENT,
        name="Refinement (TDD)",
        required_outputs=("tests", "implementation", "coverage"),
        quality_gate=0.95,
        guidance=(
            "Write failing tests first (RED)",
            "Implement minimum code to pass (GREEN)",
            "Refactor for quality (REFACTOR)",
            "Target 90%+ test coverage",
        ),
    ),
    PhaseDefinition(
        phase=WorkflowPhase.COMPLETION,
        name="Completion",
        required_outputs=("integration", "documentation"),
        quality_gate=0.90,
        guidance=(
            "Integrate all components",
            "Run full test suite",
            "Complete documentation",
            "Prepare deployment",
        ),
    ),
)

PHASE_ORDER: Tuple[WorkflowPhase, ...] = tuple(p.phase for p in PHASES)
_BY_PHASE: Dict[WorkflowPhase, PhaseDefinition] = {p.phase: p for p in PHASES}


def get_phase(phase: WorkflowPhase) -> PhaseDefinition:
    return _BY_PHASE[phase]


def next_phase(phase: WorkflowPhase) -> Optional[WorkflowPhase]:
    """Phase following the given one, or None after the last."""
    index = PHASE_ORDER.index(phase)
    return PHASE_ORDER[index + 1] if index + 1 < len(PHASE_ORDER) else None


@dataclass(frozen=True)
class PhaseIssue(BaseDomainModel):
    """A problem found while validating phase outputs."""

    type: str
    message: str
    severity: Optional[Severity] = None


@dataclass(frozen=True)
class Remediation(BaseDomainModel):
    """Remediation guidance for one issue of a failed phase."""

    issue: str
    remediation: str
    priority: str  # 'immediate' | 'recommended'


@dataclass
class PhaseResult(BaseDomainModel):
    """
    Outcome of validating one phase.

    advanced is True only when the validated phase was the workflow's
    current phase and it passed its gate.
    """

    phase: WorkflowPhase
    passed: bool
    score: float
    quality_gate: float
    issues: List[PhaseIssue] = field(default_factory=list)
    next_phase: Optional[WorkflowPhase] = None
    next_steps: List[str] = field(default_factory=list)
    remediation: List[Remediation] = field(default_factory=list)
    advanced: bool = False
    response_time_ns: int = 0


@dataclass
class Workflow(BaseDomainModel):
    """
    A workflow walking the phase sequence.

    phase_index only increases; it equals len(PHASE_ORDER) once the last
    phase has passed.
    """

    id: str
    task: str
    started_at_ns: int
    phase_index: int = 0
    state: WorkflowState = WorkflowState.ACTIVE
    completed_phases: List[WorkflowPhase] = field(default_factory=list)
    phase_results: Dict[str, PhaseResult] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    ended_at_ns: Optional[int] = None

    @property
    def current_phase(self) -> Optional[WorkflowPhase]:
        if self.phase_index >= len(PHASE_ORDER):
            return None
        return PHASE_ORDER[self.phase_index]


@dataclass(frozen=True)
class WorkflowStart(BaseDomainModel):
    workflow_id: str
    task: str
    current_phase: WorkflowPhase
    next_steps: Tuple[str, ...]


@dataclass
class WorkflowStatus(BaseDomainModel):
    """Snapshot of the active workflow (active=False when there is none)."""

    active: bool
    workflow_id: Optional[str] = None
    task: Optional[str] = None
    current_phase: Optional[WorkflowPhase] = None
    completed_phases: List[WorkflowPhase] = field(default_factory=list)
    progress_percent: int = 0
    elapsed_ns: int = 0


@dataclass
class WorkflowSummary(BaseDomainModel):
    """Result of completing (archiving) a workflow."""

    success: bool
    workflow_id: Optional[str] = None
    task: Optional[str] = None
    duration_ns: int = 0
    completed_phases: List[WorkflowPhase] = field(default_factory=list)
    final_status: Optional[FinalStatus] = None
    error: Optional[str] = None
