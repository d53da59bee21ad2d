from __future__ import annotations

from typing import Optional

UNKNOWN_ERROR_MESSAGE = "An unknown error occurred."


class ScriptboardError(Exception):
    """Base class for errors surfaced to the user."""


class ValidationError(ScriptboardError):
    """User input failed a precondition; no remote call was made."""


class RemoteServiceError(ScriptboardError):
    """The generation service failed, was unreachable, or returned something unusable."""


class ConfigurationError(ScriptboardError):
    pass


def describe_error(exc: Optional[BaseException]) -> str:
    if exc is None:
        return UNKNOWN_ERROR_MESSAGE
    message = str(exc).strip()
    return message or UNKNOWN_ERROR_MESSAGE
