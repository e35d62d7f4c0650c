"""Shared parsing and LLM utilities for stage backends."""

import re
import sys

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

_FENCE_RE = re.compile(r"```[\w#+./-]*\s*\n?(.*?)\n?\s*```", re.DOTALL)

# List marker at the front of a model-produced plan line ("1. ", "2) ", "- ", "* ")
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")

_TRANSIENT_STATUS_CODES = (429, 500, 502, 503, 504)


def strip_fences(text: str) -> str:
    """Strip markdown code fences (```python, ```json, ...) from model output if present."""
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text.strip()


def parse_steps(text: str) -> list[str]:
    """Split a model reply into plan steps, one per non-blank line, list markers removed."""
    steps = []
    for line in text.splitlines():
        step = _LIST_MARKER_RE.sub("", line).strip()
        if step:
            steps.append(step)
    return steps


def is_transient(exc: BaseException) -> bool:
    """Return True if the exception is a transient HTTP/network error worth retrying."""
    if isinstance(exc, httpx.TimeoutException):
        return True
    if isinstance(exc, httpx.ConnectError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _TRANSIENT_STATUS_CODES
    return False


async def ainvoke_with_retry(llm, messages, max_retries: int = 3):
    """Await llm.ainvoke(messages) with exponential backoff on transient errors.

    Retries on HTTP 429/5xx, connection errors, and timeouts.
    Non-transient errors (auth failures, bad requests) are raised immediately.
    """
    from pmcr.config import get_config

    config = get_config()
    retries = config.get("llm_max_retries", max_retries)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(retries + 1),  # +1 because first attempt counts
        wait=wait_exponential(multiplier=1, min=2, max=16),
        retry=retry_if_exception(is_transient),
        reraise=True,
        before_sleep=lambda state: print(
            f"[PMCR] Transient model error: {state.outcome.exception()!r}. "
            f"Retrying in {state.next_action.sleep:.0f}s "
            f"(attempt {state.attempt_number}/{retries})...",
            file=sys.stderr,
        ),
    )
    return await retrying(llm.ainvoke, messages)
