"""Planner Agent — decomposes an intent into ordered execution steps.

Reply shape: {"id", "originalIntentId", "steps": [...], "resources": {...}}.
The request context is passed through as resources so the Maker sees the
caller's constraints (e.g. language=python).
"""

import uuid

from pmcr.agents.base import ModelStageAgent
from pmcr.contracts import Stage
from pmcr.utils.parsing import parse_steps

SYSTEM_PROMPT = """\
You are the Planner in a Plan-Make-Check-Reflect cycle.

Read the INTENT and its CONTEXT and break the intent into a short, ordered list of \
concrete execution steps that a code-generating Maker can follow.

Rules:
- One step per line. No headings, no commentary, no blank lines between steps.
- 3-8 steps. Each step is a single imperative sentence.
- Respect every CONTEXT constraint (language, format, environment).
- If the intent asks for a refinement of earlier work, make the refinement explicit in the steps.
"""


class PlannerAgent(ModelStageAgent):
    SYSTEM_PROMPT = SYSTEM_PROMPT

    def __init__(self, model_name: str):
        super().__init__(Stage.PLAN, model_name)

    def _build_prompt(self, request: dict) -> str:
        context = request.get("context") or {}
        context_text = ", ".join(f"{k}={v}" for k, v in context.items())
        return f"INTENT: {request['content']}\nCONTEXT: {context_text}"

    def _parse(self, text: str, request: dict) -> dict:
        return {
            "id": str(uuid.uuid4()),
            "originalIntentId": request.get("id", ""),
            "steps": parse_steps(text),
            "resources": dict(request.get("context") or {}),
        }
