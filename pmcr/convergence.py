"""Convergence Evaluator and the other pure decisions the orchestrator makes.

Nothing here performs I/O or touches Cycle State.
"""

from dataclasses import dataclass
from enum import Enum

from pmcr.models import Intent, Plan, Reflection, Validation

LANGUAGE_KEY = "language"
REFINED_MARKER = "-refined-"


class Verdict(str, Enum):
    CONVERGED = "converged"
    ITERATE = "iterate"
    STALL = "stall"


@dataclass(frozen=True)
class Decision:
    verdict: Verdict
    refined_content: str = ""
    note: str = ""


def evaluate(validation: Validation, reflection: Reflection) -> Decision:
    """Decide whether a completed iteration ends the cycle.

    Priority order:
    1. valid → converged (a refinement proposed alongside a valid artifact is noted, not followed)
    2. invalid + refinement → iterate with the refined content
    3. invalid + no refinement → stall
    """
    refinement = (reflection.optimized_intent or "").strip()

    if validation.is_valid:
        note = ""
        if refinement:
            note = (
                "Artifact is valid; ignoring proposed refinement "
                f"'{refinement}' (insight: {reflection.insight})"
            )
        return Decision(Verdict.CONVERGED, note=note)

    if refinement:
        return Decision(Verdict.ITERATE, refined_content=refinement)

    return Decision(
        Verdict.STALL,
        note=f"Validation failed with {len(validation.issues)} issue(s) and no refinement was proposed.",
    )


def resolve_artifact_type(intent: Intent, plan: Plan, default: str) -> str:
    """Pick the artifact type to request from Make.

    intent.context["language"], else plan.resources["language"], else ``default``.
    """
    for source in (intent.context, plan.resources):
        value = (source.get(LANGUAGE_KEY) or "").strip()
        if value:
            return value
    return default


def refine_intent(root: Intent, refined_content: str, iteration: int) -> Intent:
    """Derive the intent for ``iteration`` from the root intent's lineage.

    The id stays in the root's lineage (``<root>-refined-<n>``) and the
    context is carried forward unchanged.
    """
    return Intent(
        id=f"{root.id}{REFINED_MARKER}{iteration}",
        content=refined_content,
        context=dict(root.context),
    )
