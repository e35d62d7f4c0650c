"""Wire contracts for the four stages.

Request/reply shapes (camelCase on the wire):

  plan     {id, content, context}                       -> {id, originalIntentId, steps, resources}
  make     {planId, steps, resources, artifactType}     -> {artifactId, content, artifactType, success, errorMessage}
  check    {artifactId, content, artifactType}          -> {isValid, issues, confidenceScore}
  reflect  {isValid, issues, confidenceScore}           -> {insight, optimizedIntent}

Validators raise ValueError on a contract violation and normalize optional
fields in place, the same way the agents validate model output.
"""

from enum import Enum

from pmcr.models import Artifact, Intent, Plan, Reflection, Validation

NO_DIAGNOSTICS_ISSUE = "Validation failed without diagnostics."


class Stage(str, Enum):
    PLAN = "plan"
    MAKE = "make"
    CHECK = "check"
    REFLECT = "reflect"


# --- Requests ---


def plan_request(intent: Intent) -> dict:
    return {"id": intent.id, "content": intent.content, "context": dict(intent.context)}


def make_request(plan: Plan, artifact_type: str) -> dict:
    return {
        "planId": plan.id,
        "steps": list(plan.steps),
        "resources": dict(plan.resources),
        "artifactType": artifact_type,
    }


def check_request(artifact: Artifact) -> dict:
    return {
        "artifactId": artifact.id,
        "content": artifact.content,
        "artifactType": artifact.artifact_type,
    }


def reflect_request(validation: Validation) -> dict:
    return {
        "isValid": validation.is_valid,
        "issues": list(validation.issues),
        "confidenceScore": validation.confidence_score,
    }


def validate_request(stage: Stage, request: dict) -> None:
    """Check the input constraints a stage places on its request."""
    if stage is Stage.PLAN:
        content = request.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ValueError("Plan request requires non-empty 'content'.")
    elif stage is Stage.MAKE:
        if not request.get("steps"):
            raise ValueError("Make request requires non-empty 'steps'.")
    elif stage is Stage.CHECK:
        content = request.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ValueError("Check request requires non-empty 'content'.")
    elif stage is Stage.REFLECT:
        if not isinstance(request.get("isValid"), bool):
            raise ValueError("Reflect request requires a boolean 'isValid'.")
        if not isinstance(request.get("issues", []), list):
            raise ValueError("Reflect request 'issues' must be a list.")
        if not _is_number(request.get("confidenceScore")):
            raise ValueError("Reflect request requires a numeric 'confidenceScore'.")


# --- Replies ---


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require_dict(stage: Stage, data) -> None:
    if not isinstance(data, dict):
        raise ValueError(f"{stage.value} reply must be a JSON object, got {type(data).__name__}.")


def _string_map(name: str, value) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' must be an object of string values.")
    return {str(k): str(v) for k, v in value.items()}


def validate_plan_reply(data: dict) -> None:
    _require_dict(Stage.PLAN, data)
    if not data.get("id"):
        raise ValueError("Plan reply missing 'id'.")
    steps = data.get("steps")
    if not isinstance(steps, list):
        raise ValueError("Plan reply 'steps' must be a list.")
    steps = [str(s).strip() for s in steps if str(s).strip()]
    if not steps:
        raise ValueError("Plan reply has no steps.")
    data["steps"] = steps
    data["resources"] = _string_map("resources", data.get("resources"))
    data.setdefault("originalIntentId", "")


def validate_make_reply(data: dict, requested_type: str) -> None:
    _require_dict(Stage.MAKE, data)
    if data.get("success") is False:
        raise ValueError(f"Make reported failure: {data.get('errorMessage') or 'no error message'}")
    if not data.get("artifactId"):
        raise ValueError("Make reply missing 'artifactId'.")
    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ValueError("Make reply has empty 'content'.")
    if not data.get("artifactType"):
        data["artifactType"] = requested_type
    data.setdefault("success", True)
    data.setdefault("errorMessage", "")


def validate_check_reply(data: dict) -> None:
    _require_dict(Stage.CHECK, data)
    if not isinstance(data.get("isValid"), bool):
        raise ValueError("Check reply missing boolean 'isValid'.")
    if not _is_number(data.get("confidenceScore")):
        raise ValueError("Check reply missing numeric 'confidenceScore'.")
    issues = data.get("issues") or []
    if not isinstance(issues, list):
        raise ValueError("Check reply 'issues' must be a list.")
    issues = [str(i) for i in issues if str(i).strip()]
    if not data["isValid"] and not issues:
        issues = [NO_DIAGNOSTICS_ISSUE]
    data["issues"] = issues
    data["confidenceScore"] = min(100.0, max(0.0, float(data["confidenceScore"])))


def validate_reflect_reply(data: dict) -> None:
    _require_dict(Stage.REFLECT, data)
    for key in ("insight", "optimizedIntent"):
        value = data.get(key)
        if value is None:
            data[key] = ""
        elif not isinstance(value, str):
            raise ValueError(f"Reflect reply '{key}' must be a string.")
    data["optimizedIntent"] = data["optimizedIntent"].strip()


# --- Reply -> domain value ---


def plan_from_reply(data: dict, intent: Intent) -> Plan:
    """Build a Plan, merging the intent's context into the plan resources.

    Caller context wins on key collisions so downstream stages see the
    caller's constraints.
    """
    original_id = data["originalIntentId"] or intent.id
    if original_id != intent.id:
        raise ValueError(
            f"Plan reply references intent '{original_id}', expected '{intent.id}'."
        )
    resources = {**data["resources"], **intent.context}
    return Plan(
        id=str(data["id"]),
        original_intent_id=intent.id,
        steps=tuple(data["steps"]),
        resources=resources,
    )


def artifact_from_reply(data: dict, plan: Plan) -> Artifact:
    return Artifact(
        id=str(data["artifactId"]),
        plan_id=plan.id,
        content=data["content"],
        artifact_type=str(data["artifactType"]),
    )


def validation_from_reply(data: dict) -> Validation:
    return Validation(
        is_valid=data["isValid"],
        issues=tuple(data["issues"]),
        confidence_score=data["confidenceScore"],
    )


def reflection_from_reply(data: dict) -> Reflection:
    return Reflection(insight=data["insight"], optimized_intent=data["optimizedIntent"])
