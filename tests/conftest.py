"""Shared fixtures for the PMCR test suite."""

import inspect
from unittest.mock import patch

import pytest

from pmcr.clients import StageClient
from pmcr.config import CycleConfig
from pmcr.contracts import Stage
from pmcr.models import Intent
from pmcr.orchestrator import CycleOrchestrator


class ScriptedStage(StageClient):
    """In-memory stage: ``handler(request)`` returns a reply dict or raises.

    Handlers may be plain or async functions. Every request is recorded.
    """

    def __init__(self, stage: Stage, handler):
        super().__init__(stage)
        self.handler = handler
        self.calls = []

    async def _send(self, request: dict) -> dict:
        self.calls.append(request)
        reply = self.handler(request)
        if inspect.isawaitable(reply):
            reply = await reply
        return reply


def plan_reply(request, steps=None, resources=None):
    return {
        "id": f"plan-{request['id']}",
        "originalIntentId": request["id"],
        "steps": steps or [f"Implement: {request['content']}"],
        "resources": resources or {},
    }


def make_reply(request, content="def answer():\n    return 42"):
    return {
        "artifactId": f"artifact-{request['planId']}",
        "content": content,
        "artifactType": request["artifactType"],
        "success": True,
        "errorMessage": "",
    }


def valid_check(request):
    return {"isValid": True, "issues": [], "confidenceScore": 95.0}


def invalid_check(request):
    return {"isValid": False, "issues": ["Missing error handling"], "confidenceScore": 40.0}


def rule_reflect(request):
    if request["isValid"]:
        return {"insight": "Converged.", "optimizedIntent": ""}
    return {"insight": "Needs work.", "optimizedIntent": "Add error handling"}


@pytest.fixture
def base_intent():
    """Minimal valid Intent."""
    return Intent(id="intent-1", content="Build a todo REST API", context={"format": "json"})


@pytest.fixture
def fib_intent():
    return Intent(
        id="intent-fib",
        content="Create a Python function to calculate Fibonacci numbers",
        context={"language": "python"},
    )


@pytest.fixture
def cycle_config():
    """Fast cycle bounds: no backoff sleeps, short timeouts."""
    return CycleConfig(
        max_iterations=3,
        per_stage_timeout=1.0,
        stage_retries=2,
        retry_backoff=0,
    )


@pytest.fixture
def make_stages():
    """Factory for a full set of scripted stages; any handler can be overridden."""

    def _build(plan=plan_reply, make=make_reply, check=valid_check, reflect=rule_reflect):
        return {
            Stage.PLAN: ScriptedStage(Stage.PLAN, plan),
            Stage.MAKE: ScriptedStage(Stage.MAKE, make),
            Stage.CHECK: ScriptedStage(Stage.CHECK, check),
            Stage.REFLECT: ScriptedStage(Stage.REFLECT, reflect),
        }

    return _build


@pytest.fixture
def orchestrator_for():
    def _build(stages):
        return CycleOrchestrator.from_stages(stages)

    return _build


@pytest.fixture
def mock_config(tmp_path):
    """Patch the config singleton with test-friendly values."""
    test_config = {
        "cycle": {
            "max_iterations": 3,
            "per_stage_timeout": 1.0,
            "cycle_deadline": None,
            "stage_retries": 1,
            "retry_backoff": 0,
            "default_artifact_type": "Text/Code",
        },
        "stages": {
            "plan": {"backend": "http", "url": "http://planner.test"},
            "make": {"backend": "http", "url": "http://maker.test"},
            "check": {"backend": "model", "model": "claude-sonnet-4-6"},
            "reflect": {"backend": "rules"},
        },
        "llm_max_retries": 1,
        "concurrency": 2,
        "output_path": str(tmp_path / "output" / "cycle.md"),
    }
    with patch("pmcr.config._config", test_config):
        yield test_config
