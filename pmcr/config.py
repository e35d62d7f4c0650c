"""Configuration — config.yaml read once at import time, plus the cycle bounds derived from it."""

import sys
from dataclasses import dataclass
from pathlib import Path

import yaml
from dotenv import load_dotenv

# Load .env from project root (parent of pmcr/); holds API keys for model-backed stages
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

_config = yaml.safe_load(CONFIG_PATH.read_text())

DEFAULT_ARTIFACT_TYPE = "Text/Code"
STAGE_COUNT = 4


def get_config() -> dict:
    """Return the loaded config dictionary."""
    return _config


@dataclass(frozen=True)
class CycleConfig:
    """Bounds and retry policy for one cycle invocation.

    ``max_iterations`` and ``per_stage_timeout`` have no defaults: the caller
    (or config.yaml, via ``from_config``) must decide them.
    """

    max_iterations: int
    per_stage_timeout: float
    cycle_deadline: float | None = None
    stage_retries: int = 2
    retry_backoff: float = 1.0
    default_artifact_type: str = DEFAULT_ARTIFACT_TYPE

    def __post_init__(self):
        if not isinstance(self.max_iterations, int) or self.max_iterations < 1:
            raise ValueError(f"max_iterations must be a positive integer, got {self.max_iterations!r}.")
        if self.per_stage_timeout is None or self.per_stage_timeout <= 0:
            raise ValueError(f"per_stage_timeout must be positive, got {self.per_stage_timeout!r}.")
        if self.cycle_deadline is not None and self.cycle_deadline <= 0:
            raise ValueError(f"cycle_deadline must be positive or None, got {self.cycle_deadline!r}.")
        if self.stage_retries < 0:
            raise ValueError("stage_retries must be >= 0.")
        if self.retry_backoff < 0:
            raise ValueError("retry_backoff must be >= 0.")
        if not self.default_artifact_type:
            raise ValueError("default_artifact_type must be a non-empty tag.")

        if self.cycle_deadline is not None:
            expected = self.per_stage_timeout * STAGE_COUNT * self.max_iterations
            if self.cycle_deadline < expected:
                print(
                    f"[PMCR] Warning: cycle_deadline {self.cycle_deadline}s is shorter than "
                    f"per_stage_timeout x {STAGE_COUNT} stages x {self.max_iterations} iterations "
                    f"({expected}s). Cycles may abort before reaching the iteration ceiling.",
                    file=sys.stderr,
                )

    @classmethod
    def from_config(cls, config: dict) -> "CycleConfig":
        """Build a CycleConfig from the ``cycle`` section of a loaded config dict."""
        section = config.get("cycle") or {}
        missing = {"max_iterations", "per_stage_timeout"} - set(section)
        if missing:
            raise ValueError(f"Config 'cycle' section missing required keys: {sorted(missing)}")

        return cls(
            max_iterations=section["max_iterations"],
            per_stage_timeout=float(section["per_stage_timeout"]),
            cycle_deadline=(
                float(section["cycle_deadline"])
                if section.get("cycle_deadline") is not None
                else None
            ),
            stage_retries=section.get("stage_retries", 2),
            retry_backoff=float(section.get("retry_backoff", 1.0)),
            default_artifact_type=section.get("default_artifact_type", DEFAULT_ARTIFACT_TYPE),
        )
