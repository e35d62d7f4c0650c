"""Domain values passed between the four stages and returned to the caller.

Every value here is immutable. A refined Intent is a new Intent, never an
edit of the previous one.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class CycleStatus(str, Enum):
    CONVERGED = "Converged"
    ITERATING = "Iterating"
    FAILED = "Failed"
    ABORTED = "Aborted"


@dataclass(frozen=True)
class Intent:
    id: str
    content: str
    context: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Plan:
    id: str
    original_intent_id: str
    steps: tuple[str, ...]
    resources: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Artifact:
    id: str
    plan_id: str
    content: str
    artifact_type: str


@dataclass(frozen=True)
class Validation:
    is_valid: bool
    issues: tuple[str, ...]
    confidence_score: float


@dataclass(frozen=True)
class Reflection:
    insight: str
    optimized_intent: str = ""


@dataclass(frozen=True)
class IterationRecord:
    """The Plan/Artifact/Validation/Reflection quadruple of one completed iteration."""

    iteration: int
    intent: Intent
    plan: Plan
    artifact: Artifact
    validation: Validation
    reflection: Reflection
    completed_at: datetime


@dataclass(frozen=True)
class CycleResult:
    """Outcome of one cycle.

    ``final_intent`` is the intent that drove the last iteration, or the
    rejected input itself when it was an Intent. It is None only when the
    caller passed something other than an Intent.
    """

    status: CycleStatus
    iterations: int
    final_intent: Intent | None
    artifact: Artifact | None = None
    reflection: Reflection | None = None
    trace: tuple[IterationRecord, ...] = ()
    error: Exception | None = None
    failed_stage: str | None = None

    @property
    def converged(self) -> bool:
        return self.status is CycleStatus.CONVERGED


@dataclass(frozen=True)
class BatchValidation:
    """Check verdicts for several artifacts, in request order."""

    results: tuple[Validation, ...]

    @property
    def total_validated(self) -> int:
        return len(self.results)

    @property
    def total_valid(self) -> int:
        return sum(1 for v in self.results if v.is_valid)

    @property
    def total_invalid(self) -> int:
        return self.total_validated - self.total_valid
