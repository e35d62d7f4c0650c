"""Error taxonomy for the cycle orchestrator.

None of these escape ``CycleOrchestrator.run_cycle``: each one ends up as the
``error`` of a terminal CycleResult.
"""


class CycleError(Exception):
    """Base class for every error the orchestrator reports in a CycleResult."""


class InputError(CycleError, ValueError):
    """The caller supplied a malformed Intent (or too little history to analyze)."""


class StageError(CycleError):
    """A stage call failed.

    ``transient`` errors (timeouts, transport failures, throttling) may be
    retried; permanent ones (malformed replies, rejected requests) may not.
    """

    def __init__(self, stage: str, cause: str, transient: bool = False):
        self.stage = stage
        self.cause = cause
        self.transient = transient
        kind = "transient" if transient else "permanent"
        super().__init__(f"{stage} stage failed ({kind}): {cause}")


class ConvergenceStall(CycleError):
    """Validation failed and the Reflect stage proposed no refinement."""


class BoundExceeded(CycleError):
    """The iteration ceiling or the whole-cycle deadline was reached."""

    def __init__(self, bound: str, detail: str):
        self.bound = bound
        super().__init__(f"{bound} exceeded: {detail}")


class CycleCancelled(CycleError):
    """The caller signalled cancellation while the cycle was running."""
