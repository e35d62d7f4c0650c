"""Maker Agent — materializes a plan into an artifact (code, document, config)."""

import sys
import uuid

from pmcr.agents.base import ModelStageAgent
from pmcr.contracts import Stage
from pmcr.utils.parsing import strip_fences

SYSTEM_PROMPT = """\
You are the Maker in a Plan-Make-Check-Reflect cycle.

You receive an EXECUTION PLAN (ordered steps), the OUTPUT LANGUAGE and optional CONTEXT. \
Produce the single artifact that carries out every step.

Rules:
- Output ONLY the artifact content in the requested language or format.
- No explanations before or after the artifact.
- Honour every CONTEXT entry.
"""


class MakerAgent(ModelStageAgent):
    SYSTEM_PROMPT = SYSTEM_PROMPT

    def __init__(self, model_name: str):
        super().__init__(Stage.MAKE, model_name)

    def _build_prompt(self, request: dict) -> str:
        lines = [f"--- EXECUTION PLAN (ID: {request.get('planId', '?')}) ---"]
        lines.extend(f"STEP: {step}" for step in request["steps"])
        lines.append("")
        lines.append(f"OUTPUT LANGUAGE: {request.get('artifactType') or 'Code'}")

        resources = request.get("resources") or {}
        if resources:
            lines.append("CONTEXT:")
            lines.extend(f"{k}: {v}" for k, v in resources.items())

        return "\n".join(lines)

    async def _send(self, request: dict) -> dict:
        # Model failures are reported in-band, matching the remote Make service
        try:
            return await super()._send(request)
        except Exception as exc:
            print(f"[PMCR] Maker model failed: {exc!r}", file=sys.stderr)
            return {
                "artifactId": "",
                "content": "",
                "artifactType": request.get("artifactType", ""),
                "success": False,
                "errorMessage": str(exc) or type(exc).__name__,
            }

    def _parse(self, text: str, request: dict) -> dict:
        return {
            "artifactId": str(uuid.uuid4()),
            "content": strip_fences(text),
            "artifactType": request.get("artifactType") or "Text/Code",
            "success": True,
            "errorMessage": "",
        }
