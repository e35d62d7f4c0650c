"""Reflector Agent — rule-based meta-analysis of a validation result.

A valid artifact ends the cycle (empty optimizedIntent). An invalid one gets
a refined intent that asks for the reported issues to be fixed.
"""

import sys

from pmcr.clients import StageClient
from pmcr.contracts import NO_DIAGNOSTICS_ISSUE, Stage

CONVERGED_INSIGHT = "Cycle converged. Artifact is production ready."
REFINED_INSIGHT = "Cycle failed validation. Intent refined for clarity."
GENERIC_REFINEMENT = "Refined Intent: Ensure artifact content is not empty."


def refine_from_issues(issues: list[str]) -> str:
    """Turn Checker issues into the next intent's content."""
    actionable = [i for i in issues if i and i != NO_DIAGNOSTICS_ISSUE]
    if not actionable:
        return GENERIC_REFINEMENT
    return "Refined Intent: Revise the artifact to resolve: " + "; ".join(actionable)


class ReflectorAgent(StageClient):
    def __init__(self):
        super().__init__(Stage.REFLECT)

    async def _send(self, request: dict) -> dict:
        print(
            f"[PMCR] Reflecting — valid: {request['isValid']}, "
            f"score: {request['confidenceScore']}",
            file=sys.stderr,
        )
        if request["isValid"]:
            return {"insight": CONVERGED_INSIGHT, "optimizedIntent": ""}

        return {
            "insight": REFINED_INSIGHT,
            "optimizedIntent": refine_from_issues(request.get("issues") or []),
        }
