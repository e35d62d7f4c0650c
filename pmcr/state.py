"""The single record threaded through one cycle invocation."""

from enum import Enum
from typing import TypedDict

from pmcr.errors import CycleError
from pmcr.models import Artifact, Intent, IterationRecord, Plan, Reflection, Validation


class Phase(str, Enum):
    PLANNING = "planning"
    MAKING = "making"
    CHECKING = "checking"
    REFLECTING = "reflecting"
    EVALUATING = "evaluating"
    LOOPING = "looping"
    CONVERGED = "converged"
    ITERATING = "iterating"  # Single pass finished with a refinement pending.
    FAILED = "failed"
    ABORTED = "aborted"


TERMINAL_PHASES = {Phase.CONVERGED, Phase.ITERATING, Phase.FAILED, Phase.ABORTED}


class CycleState(TypedDict):
    root_intent: Intent  # Caller-supplied intent. Never replaced.
    current_intent: Intent  # Intent driving the current iteration.
    iteration: int  # Zero-based index of the current iteration.
    phase: Phase
    history: list[IterationRecord]  # Completed iterations, in order.
    # In-flight values of the current iteration; discarded on loop-back.
    plan: Plan | None
    artifact: Artifact | None
    validation: Validation | None
    reflection: Reflection | None
    error: CycleError | None  # Set when the cycle ends in FAILED or ABORTED.


def initial_state(intent: Intent) -> CycleState:
    return {
        "root_intent": intent,
        "current_intent": intent,
        "iteration": 0,
        "phase": Phase.PLANNING,
        "history": [],
        "plan": None,
        "artifact": None,
        "validation": None,
        "reflection": None,
        "error": None,
    }
