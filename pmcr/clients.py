"""Stage clients — the one interface the orchestrator uses to reach a stage.

Every backend (remote HTTP service, model-backed agent, rule-based agent)
subclasses StageClient and implements ``_send``. ``invoke`` checks the
request constraints and turns any backend failure into a StageError, so the
orchestrator only ever sees a reply dict or a StageError.
"""

import httpx

from pmcr.contracts import Stage, validate_request
from pmcr.errors import StageError
from pmcr.utils.parsing import is_transient

STAGE_PATHS = {
    Stage.PLAN: "/plan",
    Stage.MAKE: "/make",
    Stage.CHECK: "/check",
    Stage.REFLECT: "/reflect",
}


class StageClient:
    """Base class for a stage backend.

    Instances hold no per-cycle state and may be shared by concurrent cycles.
    """

    stage: Stage

    def __init__(self, stage: Stage):
        self.stage = Stage(stage)

    async def invoke(self, request: dict) -> dict:
        try:
            validate_request(self.stage, request)
        except ValueError as exc:
            raise StageError(self.stage.value, str(exc), transient=False) from exc

        try:
            return await self._send(request)
        except StageError:
            raise
        except Exception as exc:
            raise StageError(self.stage.value, _describe(exc), transient=is_transient(exc)) from exc

    async def _send(self, request: dict) -> dict:
        raise NotImplementedError


class HttpStageClient(StageClient):
    """Calls a remote stage service: POST <base_url><path> with the request as JSON.

    The ``httpx.AsyncClient`` is injected so all four clients (and all
    concurrent cycles) share one connection pool.
    """

    def __init__(self, stage: Stage, base_url: str, http: httpx.AsyncClient):
        super().__init__(stage)
        self.url = base_url.rstrip("/") + STAGE_PATHS[self.stage]
        self._http = http

    async def _send(self, request: dict) -> dict:
        try:
            response = await self._http.post(self.url, json=request)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StageError(self.stage.value, _describe(exc), transient=is_transient(exc)) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise StageError(self.stage.value, f"malformed reply: {exc}", transient=False) from exc
        if not isinstance(data, dict):
            raise StageError(self.stage.value, "malformed reply: expected a JSON object", transient=False)
        return data


def _describe(exc: BaseException) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code} from {exc.request.url}"
    return f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__


def build_stages(config: dict, http: httpx.AsyncClient | None = None) -> dict[Stage, StageClient]:
    """Build the four stage clients described by the ``stages`` config section.

    ``backend: http`` needs a shared ``http`` client; ``backend: model``
    builds an LLM-backed agent for plan/make/check; ``backend: rules`` is
    only available for reflect.
    """
    from pmcr.agents.checker import CheckerAgent
    from pmcr.agents.maker import MakerAgent
    from pmcr.agents.planner import PlannerAgent
    from pmcr.agents.reflector import ReflectorAgent

    model_agents = {Stage.PLAN: PlannerAgent, Stage.MAKE: MakerAgent, Stage.CHECK: CheckerAgent}

    stages = {}
    for stage in Stage:
        section = (config.get("stages") or {}).get(stage.value)
        if not section:
            raise ValueError(f"Config missing 'stages.{stage.value}' section.")
        backend = section.get("backend", "http")

        if backend == "http":
            if http is None:
                raise ValueError(f"Stage '{stage.value}' uses the http backend but no HTTP client was given.")
            if not section.get("url"):
                raise ValueError(f"Stage '{stage.value}' uses the http backend but has no 'url'.")
            stages[stage] = HttpStageClient(stage, section["url"], http)
        elif backend == "model" and stage in model_agents:
            if not section.get("model"):
                raise ValueError(f"Stage '{stage.value}' uses the model backend but has no 'model'.")
            stages[stage] = model_agents[stage](section["model"])
        elif backend == "rules" and stage is Stage.REFLECT:
            stages[stage] = ReflectorAgent()
        else:
            raise ValueError(f"Unsupported backend '{backend}' for stage '{stage.value}'.")

    return stages
