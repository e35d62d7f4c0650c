"""Cycle Orchestrator — explicit state machine for the Plan → Make → Check → Reflect loop.

    PLANNING → MAKING → CHECKING → REFLECTING → EVALUATING ─┬→ CONVERGED
        ▲                                                   ├→ FAILED     (stall)
        └──────────────────── LOOPING ◄─────────────────────┼→ ABORTED    (ceiling)
                                                            └→ ITERATING  (single pass)

Any stage failure ends in FAILED; the deadline and the cancel signal end in
ABORTED. Every path returns a CycleResult; only cancelling the awaiting task
itself propagates out of ``run_cycle``.
"""

import asyncio
import sys
from datetime import datetime, timezone

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from pmcr import contracts
from pmcr.config import CycleConfig, get_config
from pmcr.contracts import Stage
from pmcr.convergence import Decision, Verdict, evaluate, refine_intent, resolve_artifact_type
from pmcr.errors import BoundExceeded, ConvergenceStall, CycleCancelled, InputError, StageError
from pmcr.models import Artifact, BatchValidation, CycleResult, CycleStatus, Intent, IterationRecord
from pmcr.state import TERMINAL_PHASES, CycleState, Phase, initial_state
from pmcr.utils.formatter import aggregate_result
from pmcr.utils.parsing import is_transient
from pmcr.utils.validator import validate_intent


def route_after_evaluation(
    decision: Decision, iteration: int, max_iterations: int, single_pass: bool = False
) -> Phase:
    """Decide the phase that follows EVALUATING.

    Priority order:
    1. converged → CONVERGED
    2. stall → FAILED
    3. single pass → ITERATING (report the pending refinement, do not loop)
    4. iteration + 1 >= max_iterations → ABORTED
    5. iterate → LOOPING
    """
    if decision.verdict is Verdict.CONVERGED:
        return Phase.CONVERGED
    if decision.verdict is Verdict.STALL:
        return Phase.FAILED
    if single_pass:
        return Phase.ITERATING
    if iteration + 1 >= max_iterations:
        return Phase.ABORTED
    return Phase.LOOPING


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, StageError) and exc.transient


class _CycleRun:
    """Per-invocation call context: stages, bounds, cancel signal.

    Holds no cycle data; that lives in CycleState.
    """

    def __init__(self, stages: dict, config: CycleConfig, cancel: asyncio.Event | None, single_pass: bool):
        self.stages = stages
        self.config = config
        self.cancel = cancel if cancel is not None else asyncio.Event()
        self.single_pass = single_pass
        loop = asyncio.get_running_loop()
        self._clock = loop.time
        self.deadline_at = (
            self._clock() + config.cycle_deadline if config.cycle_deadline is not None else None
        )

    def remaining(self) -> float | None:
        if self.deadline_at is None:
            return None
        return self.deadline_at - self._clock()

    async def call(self, stage: Stage, request: dict, parse):
        """Invoke a stage with timeout, cancellation and transient retry, then parse its reply.

        ``parse`` turns the reply dict into a domain value and raises
        ValueError on a contract violation (never retried).
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.stage_retries + 1),
            wait=wait_exponential(
                multiplier=self.config.retry_backoff, max=self.config.retry_backoff * 8
            ),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
            sleep=self._sleep,
            before_sleep=lambda state: print(
                f"[PMCR] {state.outcome.exception()}. "
                f"Retrying in {state.next_action.sleep:.1f}s "
                f"(attempt {state.attempt_number}/{self.config.stage_retries})...",
                file=sys.stderr,
            ),
        )
        data = await retrying(self._attempt, stage, request)

        try:
            return parse(data)
        except ValueError as exc:
            raise StageError(stage.value, f"malformed reply: {exc}", transient=False) from exc

    async def _sleep(self, seconds: float) -> None:
        """Backoff sleep that wakes up early on cancellation or at the cycle deadline."""
        remaining = self.remaining()
        cut_by_deadline = remaining is not None and remaining < seconds
        if cut_by_deadline:
            seconds = max(remaining, 0.0)
        try:
            await asyncio.wait_for(self.cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            if cut_by_deadline:
                raise BoundExceeded(
                    "cycle_deadline",
                    f"{self.config.cycle_deadline}s elapsed while waiting to retry",
                ) from None
            return
        raise CycleCancelled("cancelled while waiting to retry")

    async def _attempt(self, stage: Stage, request: dict) -> dict:
        if self.cancel.is_set():
            raise CycleCancelled(f"cancelled before {stage.value} stage")

        timeout = self.config.per_stage_timeout
        limited_by_deadline = False
        remaining = self.remaining()
        if remaining is not None:
            if remaining <= 0:
                raise BoundExceeded(
                    "cycle_deadline",
                    f"{self.config.cycle_deadline}s elapsed before {stage.value} stage",
                )
            if remaining < timeout:
                timeout = remaining
                limited_by_deadline = True

        stage_task = asyncio.ensure_future(self.stages[stage].invoke(request))
        cancel_task = asyncio.ensure_future(self.cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {stage_task, cancel_task}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            pending = [t for t in (stage_task, cancel_task) if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if cancel_task in done:
            raise CycleCancelled(f"cancelled during {stage.value} stage")
        if stage_task in done:
            try:
                return stage_task.result()
            except StageError:
                raise
            except Exception as exc:
                raise StageError(stage.value, repr(exc), transient=is_transient(exc)) from exc
        if limited_by_deadline:
            raise BoundExceeded(
                "cycle_deadline",
                f"{self.config.cycle_deadline}s elapsed during {stage.value} stage",
            )
        raise StageError(stage.value, f"timed out after {timeout:g}s", transient=True)


# --- Phase handlers: each returns the state updates for its transition ---


async def _plan(state: CycleState, run: _CycleRun) -> dict:
    intent = state["current_intent"]

    def parse(data):
        contracts.validate_plan_reply(data)
        return contracts.plan_from_reply(data, intent)

    plan = await run.call(Stage.PLAN, contracts.plan_request(intent), parse)
    return {"plan": plan, "phase": Phase.MAKING}


async def _make(state: CycleState, run: _CycleRun) -> dict:
    plan = state["plan"]
    artifact_type = resolve_artifact_type(
        state["current_intent"], plan, run.config.default_artifact_type
    )

    def parse(data):
        contracts.validate_make_reply(data, artifact_type)
        return contracts.artifact_from_reply(data, plan)

    artifact = await run.call(Stage.MAKE, contracts.make_request(plan, artifact_type), parse)
    return {"artifact": artifact, "phase": Phase.CHECKING}


async def _check(state: CycleState, run: _CycleRun) -> dict:
    def parse(data):
        contracts.validate_check_reply(data)
        return contracts.validation_from_reply(data)

    validation = await run.call(Stage.CHECK, contracts.check_request(state["artifact"]), parse)
    return {"validation": validation, "phase": Phase.REFLECTING}


async def _reflect(state: CycleState, run: _CycleRun) -> dict:
    def parse(data):
        contracts.validate_reflect_reply(data)
        return contracts.reflection_from_reply(data)

    reflection = await run.call(
        Stage.REFLECT, contracts.reflect_request(state["validation"]), parse
    )
    return {"reflection": reflection, "phase": Phase.EVALUATING}


async def _evaluate(state: CycleState, run: _CycleRun) -> dict:
    validation = state["validation"]
    reflection = state["reflection"]
    decision = evaluate(validation, reflection)

    record = IterationRecord(
        iteration=state["iteration"],
        intent=state["current_intent"],
        plan=state["plan"],
        artifact=state["artifact"],
        validation=validation,
        reflection=reflection,
        completed_at=datetime.now(timezone.utc),
    )

    print(
        f"[PMCR] Iteration {state['iteration'] + 1} — valid: {validation.is_valid}, "
        f"confidence: {validation.confidence_score:g}, "
        f"{len(validation.issues)} issue(s) → {decision.verdict.value}",
        file=sys.stderr,
    )
    if decision.note and decision.verdict is Verdict.CONVERGED:
        print(f"[PMCR] {decision.note}", file=sys.stderr)

    max_iterations = run.config.max_iterations
    next_phase = route_after_evaluation(
        decision, state["iteration"], max_iterations, run.single_pass
    )
    updates = {"history": state["history"] + [record], "phase": next_phase}

    if next_phase is Phase.FAILED:
        updates["error"] = ConvergenceStall(decision.note)
    elif next_phase is Phase.ABORTED:
        updates["error"] = BoundExceeded(
            "max_iterations", f"{max_iterations} iteration(s) completed without convergence"
        )
    return updates


async def _loop(state: CycleState, run: _CycleRun) -> dict:
    """Bump the iteration and replace the intent with its refinement before re-entering PLANNING."""
    iteration = state["iteration"] + 1
    refined = refine_intent(
        state["root_intent"], state["reflection"].optimized_intent.strip(), iteration
    )
    return {
        "iteration": iteration,
        "current_intent": refined,
        "phase": Phase.PLANNING,
        "plan": None,
        "artifact": None,
        "validation": None,
        "reflection": None,
    }


_PHASE_FNS = {
    Phase.PLANNING: _plan,
    Phase.MAKING: _make,
    Phase.CHECKING: _check,
    Phase.REFLECTING: _reflect,
    Phase.EVALUATING: _evaluate,
    Phase.LOOPING: _loop,
}


class CycleOrchestrator:
    """Drives cycles against four injected stage clients.

    The clients are shared by every cycle this orchestrator runs; each cycle
    gets its own CycleState.
    """

    def __init__(self, planner, maker, checker, reflector):
        self._stages = {
            Stage.PLAN: planner,
            Stage.MAKE: maker,
            Stage.CHECK: checker,
            Stage.REFLECT: reflector,
        }
        for stage, client in self._stages.items():
            declared = getattr(client, "stage", stage)
            if Stage(declared) is not stage:
                raise ValueError(f"Client for the {stage.value} stage declares stage '{declared}'.")

    @classmethod
    def from_stages(cls, stages: dict) -> "CycleOrchestrator":
        return cls(stages[Stage.PLAN], stages[Stage.MAKE], stages[Stage.CHECK], stages[Stage.REFLECT])

    async def run_cycle(
        self, intent: Intent, config: CycleConfig, cancel: asyncio.Event | None = None
    ) -> CycleResult:
        """Run Plan → Make → Check → Reflect until convergence, failure or a bound."""
        return await self._run(intent, config, cancel, single_pass=False)

    async def run_pass(
        self, intent: Intent, config: CycleConfig, cancel: asyncio.Event | None = None
    ) -> CycleResult:
        """Run exactly one pass and report CONVERGED or ITERATING (with the proposed refinement)."""
        return await self._run(intent, config, cancel, single_pass=True)

    async def check_artifacts(
        self, artifacts: list[Artifact], config: CycleConfig, cancel: asyncio.Event | None = None
    ) -> BatchValidation:
        """Validate existing artifacts with the Check stage, one call per artifact, in order.

        Uses the same timeout, deadline, retry and cancel handling as a cycle.
        Raises InputError for an empty batch; the first StageError,
        BoundExceeded or CycleCancelled ends the batch and propagates.
        """
        if not artifacts:
            raise InputError("At least one artifact required.")

        run = _CycleRun(self._stages, config, cancel, single_pass=False)

        def parse(data):
            contracts.validate_check_reply(data)
            return contracts.validation_from_reply(data)

        results = []
        for artifact in artifacts:
            results.append(await run.call(Stage.CHECK, contracts.check_request(artifact), parse))

        batch = BatchValidation(results=tuple(results))
        print(
            f"[PMCR] Batch check: {batch.total_valid}/{batch.total_validated} valid",
            file=sys.stderr,
        )
        return batch

    async def run_cycles(
        self, intents: list[Intent], config: CycleConfig, concurrency: int | None = None
    ) -> list[CycleResult]:
        """Run independent cycles concurrently, at most ``concurrency`` at a time.

        ``concurrency`` defaults to the ``concurrency`` config key. Results
        come back in the order of ``intents``.
        """
        if concurrency is None:
            concurrency = get_config().get("concurrency", 4)
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1.")
        semaphore = asyncio.Semaphore(concurrency)

        async def _bounded(intent):
            async with semaphore:
                return await self.run_cycle(intent, config)

        return list(await asyncio.gather(*(_bounded(intent) for intent in intents)))

    async def _run(
        self, intent: Intent, config: CycleConfig, cancel: asyncio.Event | None, single_pass: bool
    ) -> CycleResult:
        try:
            validate_intent(intent)
        except InputError as exc:
            print(f"[PMCR] Rejected intent: {exc}", file=sys.stderr)
            return CycleResult(
                status=CycleStatus.FAILED,
                iterations=0,
                final_intent=intent if isinstance(intent, Intent) else None,
                error=exc,
            )

        print(f"[PMCR] Starting cycle for intent {intent.id}: {intent.content[:100]}", file=sys.stderr)

        run = _CycleRun(self._stages, config, cancel, single_pass)
        state = initial_state(intent)
        while state["phase"] not in TERMINAL_PHASES:
            try:
                updates = await _PHASE_FNS[state["phase"]](state, run)
            except StageError as exc:
                updates = {"phase": Phase.FAILED, "error": exc}
            except (BoundExceeded, CycleCancelled) as exc:
                updates = {"phase": Phase.ABORTED, "error": exc}
            state = {**state, **updates}

        result = aggregate_result(state)
        print(
            f"[PMCR] Cycle {result.status.value} after {result.iterations} iteration(s)"
            + (f": {result.error}" if result.error else ""),
            file=sys.stderr,
        )
        return result
