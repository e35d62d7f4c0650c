"""Checker Agent — judges an artifact and reports a verdict with issues.

The model is asked to put its verdict on the first line:

  VALID
  INVALID
  <one issue per line>

Only an exact VALID or INVALID first line counts as a verdict. Anything else is
a free-form review: valid unless it mentions an error or a failure, with the
whole text kept as a single review issue.
"""

from pmcr.agents.base import ModelStageAgent
from pmcr.contracts import Stage

VALID_CONFIDENCE = 95.0
INVALID_CONFIDENCE = 40.0

# Free-form reviews mentioning any of these are failures.
FAILURE_MARKERS = ("error", "invalid", "not valid", "fail", "reject")

SYSTEM_PROMPT = """\
You are the Checker in a Plan-Make-Check-Reflect cycle.

You receive an ARTIFACT TYPE and the artifact CONTENT. Decide whether the artifact is \
correct, complete and production ready for its type.

Respond in this exact format:
- First line: VALID or INVALID (nothing else on that line).
- If INVALID, each following line is one concrete issue, e.g. "Exponential complexity".
- No markdown, no commentary.
"""


def parse_verdict(text: str) -> tuple[bool, list[str]]:
    """Split a Checker reply into (is_valid, issues)."""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return False, ["Checker returned an empty verdict."]

    verdict = lines[0].upper().strip(" .:!*")
    if verdict == "INVALID":
        return False, lines[1:]
    if verdict == "VALID":
        return True, []

    lowered = text.lower()
    is_valid = not any(marker in lowered for marker in FAILURE_MARKERS)
    return is_valid, [f"Review: {text.strip()}"]


class CheckerAgent(ModelStageAgent):
    SYSTEM_PROMPT = SYSTEM_PROMPT

    def __init__(self, model_name: str):
        super().__init__(Stage.CHECK, model_name)

    def _build_prompt(self, request: dict) -> str:
        return (
            f"ARTIFACT TYPE: {request.get('artifactType', '')}\n\n"
            f"--- CONTENT ---\n{request['content']}"
        )

    def _parse(self, text: str, request: dict) -> dict:
        is_valid, issues = parse_verdict(text)
        return {
            "isValid": is_valid,
            "issues": issues,
            "confidenceScore": VALID_CONFIDENCE if is_valid else INVALID_CONFIDENCE,
        }
