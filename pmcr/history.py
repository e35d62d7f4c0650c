"""Historical trend analysis over past cycle records (read-only reporting).

    summary.success_rate       = valid / total × 100
    summary.average_confidence = mean(confidence)
    summary.improvement_trend  = last.confidence − first.confidence

At least two records are required.
"""

from dataclasses import dataclass
from datetime import datetime

from pmcr.errors import InputError
from pmcr.models import IterationRecord

MIN_RECORDS = 2
SUCCESS_THRESHOLD = 75.0
CONFIDENCE_THRESHOLD = 80.0


@dataclass(frozen=True)
class CycleRecord:
    intent_id: str
    was_valid: bool
    confidence_score: float
    timestamp: datetime | None = None


def record_from_dict(data: dict) -> CycleRecord:
    """Parse a wire-format record ({intentId, wasValid, confidenceScore, timestamp})."""
    if not isinstance(data, dict):
        raise InputError(f"Cycle record must be an object, got {type(data).__name__}.")
    try:
        was_valid = data["wasValid"]
        confidence = data["confidenceScore"]
    except KeyError as exc:
        raise InputError(f"Cycle record missing field {exc}.") from exc
    if not isinstance(was_valid, bool):
        raise InputError("Cycle record 'wasValid' must be a boolean.")
    if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
        raise InputError("Cycle record 'confidenceScore' must be a number.")

    timestamp = data.get("timestamp")
    if isinstance(timestamp, str):
        try:
            timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        except ValueError as exc:
            raise InputError(f"Cycle record has invalid timestamp {timestamp!r}.") from exc

    return CycleRecord(
        intent_id=str(data.get("intentId", "")),
        was_valid=was_valid,
        confidence_score=float(confidence),
        timestamp=timestamp,
    )


def records_from_trace(trace: list[IterationRecord]) -> list[CycleRecord]:
    """One CycleRecord per completed iteration of a cycle trace."""
    return [
        CycleRecord(
            intent_id=record.intent.id,
            was_valid=record.validation.is_valid,
            confidence_score=record.validation.confidence_score,
            timestamp=record.completed_at,
        )
        for record in trace
    ]


def analyze_history(records: list) -> dict:
    """Compute success rate, average confidence and improvement trend over ordered records.

    Accepts CycleRecord values or wire-format dicts. Raises InputError for
    fewer than two records.
    """
    if records is None or len(records) < MIN_RECORDS:
        raise InputError(f"At least {MIN_RECORDS} cycles required for historical analysis.")

    parsed = [r if isinstance(r, CycleRecord) else record_from_dict(r) for r in records]

    total = len(parsed)
    success_rate = sum(1 for r in parsed if r.was_valid) / total * 100
    average_confidence = sum(r.confidence_score for r in parsed) / total
    improvement_trend = parsed[-1].confidence_score - parsed[0].confidence_score

    return {
        "summary": {
            "total_cycles": total,
            "success_rate": round(success_rate, 2),
            "average_confidence": round(average_confidence, 2),
            "improvement_trend": round(improvement_trend, 2),
        },
        "insights": [
            "Strong convergence pattern detected"
            if success_rate > SUCCESS_THRESHOLD
            else "Refinement iterations needed",
            "Positive learning trajectory"
            if improvement_trend > 0
            else "Consider alternative approaches",
            "High confidence in outputs"
            if average_confidence > CONFIDENCE_THRESHOLD
            else "Quality improvements recommended",
        ],
        "recommendation": (
            "System is performing well. Continue with current strategy."
            if success_rate > SUCCESS_THRESHOLD
            else "Consider refining prompts or adding validation rules."
        ),
    }
