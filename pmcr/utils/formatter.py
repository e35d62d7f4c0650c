"""Result aggregation and reporting: CycleState to CycleResult, then Markdown or a JSON-ready dict."""

import re
from pathlib import Path

from pmcr.config import get_config
from pmcr.errors import StageError
from pmcr.models import BatchValidation, CycleResult, CycleStatus, IterationRecord
from pmcr.state import CycleState, Phase

_SAFE_NAME_RE = re.compile(r"[^\w.-]+")

_STATUS_BY_PHASE = {
    Phase.CONVERGED: CycleStatus.CONVERGED,
    Phase.ITERATING: CycleStatus.ITERATING,
    Phase.FAILED: CycleStatus.FAILED,
    Phase.ABORTED: CycleStatus.ABORTED,
}


def best_record(history: list[IterationRecord]) -> IterationRecord | None:
    """Highest-confidence completed iteration; the most recent one wins ties."""
    if not history:
        return None
    return max(history, key=lambda r: (r.validation.confidence_score, r.iteration))


def aggregate_result(state: CycleState) -> CycleResult:
    """Build the CycleResult for a terminal state.

    Only completed iterations count: the in-flight values of an interrupted
    iteration are dropped.
    """
    status = _STATUS_BY_PHASE[state["phase"]]
    history = state["history"]
    error = state.get("error")

    artifact = reflection = None
    if status in (CycleStatus.CONVERGED, CycleStatus.ITERATING):
        artifact = history[-1].artifact
        reflection = history[-1].reflection
    elif status is CycleStatus.ABORTED:
        best = best_record(history)
        if best is not None:
            artifact = best.artifact
            reflection = best.reflection

    return CycleResult(
        status=status,
        iterations=len(history),
        final_intent=state["current_intent"],
        artifact=artifact,
        reflection=reflection,
        trace=tuple(history),
        error=error,
        failed_stage=error.stage if isinstance(error, StageError) else None,
    )


def _record_to_dict(record: IterationRecord) -> dict:
    return {
        "iteration": record.iteration,
        "intent": {
            "id": record.intent.id,
            "content": record.intent.content,
            "context": dict(record.intent.context),
        },
        "plan": {
            "id": record.plan.id,
            "originalIntentId": record.plan.original_intent_id,
            "steps": list(record.plan.steps),
            "resources": dict(record.plan.resources),
        },
        "artifact": {
            "id": record.artifact.id,
            "planId": record.artifact.plan_id,
            "content": record.artifact.content,
            "artifactType": record.artifact.artifact_type,
        },
        "validation": {
            "isValid": record.validation.is_valid,
            "issues": list(record.validation.issues),
            "confidenceScore": record.validation.confidence_score,
        },
        "reflection": {
            "insight": record.reflection.insight,
            "optimizedIntent": record.reflection.optimized_intent,
        },
        "completedAt": record.completed_at.isoformat(),
    }


def result_to_dict(result: CycleResult) -> dict:
    """JSON-ready view of a CycleResult (camelCase, like the stage contracts)."""
    intent = result.final_intent
    artifact = result.artifact
    reflection = result.reflection
    return {
        "status": result.status.value,
        "iterations": result.iterations,
        "finalIntent": None if intent is None else {"id": intent.id, "content": intent.content},
        "artifact": None if artifact is None else {
            "id": artifact.id,
            "planId": artifact.plan_id,
            "content": artifact.content,
            "artifactType": artifact.artifact_type,
        },
        "reflection": None if reflection is None else {
            "insight": reflection.insight,
            "optimizedIntent": reflection.optimized_intent,
        },
        "error": None if result.error is None else {
            "type": type(result.error).__name__,
            "message": str(result.error),
            "stage": result.failed_stage,
        },
        "trace": [_record_to_dict(r) for r in result.trace],
    }


def batch_to_dict(batch: BatchValidation) -> dict:
    return {
        "totalValidated": batch.total_validated,
        "totalValid": batch.total_valid,
        "totalInvalid": batch.total_invalid,
        "results": [
            {"isValid": v.is_valid, "issues": list(v.issues), "confidenceScore": v.confidence_score}
            for v in batch.results
        ],
    }


def render_report(result: CycleResult) -> str:
    """Render a CycleResult as a Markdown cycle report."""
    lines = ["# PMCR Cycle Report", ""]

    lines.append(f"- **Status:** {result.status.value}")
    lines.append(f"- **Iterations:** {result.iterations}")
    intent = result.final_intent
    if intent is not None and intent.content:
        lines.append(f"- **Final intent:** {intent.content} (`{intent.id}`)")
    lines.append("")

    if result.artifact is not None:
        lines.append("## Artifact")
        lines.append("")
        lines.append(f"- **Type:** {result.artifact.artifact_type}")
        lines.append(f"- **Id:** `{result.artifact.id}`")
        lines.append("")
        lines.append("```")
        lines.append(result.artifact.content)
        lines.append("```")
        lines.append("")

    if result.reflection is not None:
        lines.append("## Reflection")
        lines.append("")
        lines.append(result.reflection.insight or "*No insight recorded.*")
        if result.reflection.optimized_intent:
            lines.append("")
            lines.append(f"**Proposed refinement:** {result.reflection.optimized_intent}")
        lines.append("")

    if result.trace:
        lines.append("## Iteration Trace")
        lines.append("")
        lines.append("| # | Intent | Steps | Valid | Confidence | Issues |")
        lines.append("|---|--------|-------|-------|------------|--------|")
        for record in result.trace:
            content = record.intent.content.replace("|", "\\|")
            issues = "; ".join(record.validation.issues).replace("|", "\\|") or "-"
            lines.append(
                f"| {record.iteration + 1} | {content} | {len(record.plan.steps)} | "
                f"{'yes' if record.validation.is_valid else 'no'} | "
                f"{record.validation.confidence_score:g} | {issues} |"
            )
        lines.append("")

    if result.status is CycleStatus.ABORTED:
        lines.append("---")
        lines.append("")
        lines.append("## Trace Log — Cycle Aborted")
        lines.append("")
        lines.append(f"Reason: {result.error}")
        lines.append("")
        if result.trace:
            last = result.trace[-1]
            if last.validation.issues:
                lines.append("Unresolved issues at termination:")
                lines.append("")
                for i, issue in enumerate(last.validation.issues, 1):
                    lines.append(f"{i}. {issue}")
                lines.append("")

    if result.status is CycleStatus.FAILED:
        lines.append("---")
        lines.append("")
        lines.append("## Failure")
        lines.append("")
        if result.failed_stage:
            lines.append(f"- **Stage:** {result.failed_stage}")
        lines.append(f"- **Error:** {type(result.error).__name__}: {result.error}")
        lines.append("")

    return "\n".join(lines)


def write_report(result: CycleResult) -> Path:
    """Write the Markdown report to the configured output path.

    The file is named after the root intent id when available; an existing
    file is never overwritten.

    Returns the Path to the written file.
    """
    config = get_config()
    base_path = Path(config["output_path"])
    if not base_path.is_absolute():
        base_path = Path(__file__).resolve().parent.parent.parent / base_path
    output_dir = base_path.parent
    output_dir.mkdir(parents=True, exist_ok=True)

    stem = base_path.stem
    if result.trace:
        stem = f"{stem}-{_SAFE_NAME_RE.sub('_', result.trace[0].intent.id)}"

    output_path = output_dir / f"{stem}.md"
    counter = 1
    while output_path.exists():
        counter += 1
        output_path = output_dir / f"{stem} ({counter}).md"

    output_path.write_text(render_report(result), encoding="utf-8")
    return output_path
