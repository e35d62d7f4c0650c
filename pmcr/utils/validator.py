"""Checks the caller's Intent before any stage is invoked."""

from pmcr.errors import InputError
from pmcr.models import Intent


def validate_intent(intent) -> Intent:
    """Validate that the intent has an id, non-empty content and a str→str context.

    Returns the intent on success.
    Raises InputError otherwise.
    """
    if not isinstance(intent, Intent):
        raise InputError(f"Expected an Intent, got {type(intent).__name__}.")
    if not isinstance(intent.id, str) or not intent.id.strip():
        raise InputError("Intent id must be a non-empty string.")
    if not isinstance(intent.content, str) or not intent.content.strip():
        raise InputError("Intent content must be a non-empty string.")
    if not isinstance(intent.context, dict):
        raise InputError("Intent context must be a mapping of strings to strings.")
    for key, value in intent.context.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise InputError(f"Intent context entry {key!r} must map a string to a string.")
    return intent
