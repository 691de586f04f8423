"""Error taxonomy shared by the catalog, the tool router and the orchestrator.

Provider SDK exceptions are translated here so nothing above this module has
to know about `openai` error classes.
"""

from __future__ import annotations

import logging
from typing import Any

from openai import APIConnectionError, APIStatusError, APITimeoutError, RateLimitError

_LOGGER = logging.getLogger("shopchat.errors")

_QUOTA_CODES = {"insufficient_quota", "rate_limit_exceeded"}


class ChatError(RuntimeError):
    """Base class for failures raised inside one chat turn."""


class UpstreamUnavailable(ChatError):
    """Transport failure or non-success status from the catalog or the LLM."""


class UpstreamProtocolError(ChatError):
    """Well-formed transport response carrying an error payload."""


class NotFound(ChatError):
    """A product handle does not resolve."""


class NoVariantsAvailable(ChatError):
    """The product exists but lists no variants."""


class MalformedToolArguments(ChatError):
    """Model-supplied tool arguments could not be parsed or validated."""


class QuotaExceeded(ChatError):
    """The LLM provider signalled rate or quota limiting."""


def _error_code(exc: Any) -> str:
    code = getattr(exc, "code", None)
    if code:
        return str(code)
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        nested = body.get("error") if isinstance(body.get("error"), dict) else body
        return str(nested.get("code") or "")
    return ""


def classify_llm_error(exc: Exception) -> ChatError:
    """Wrap an OpenAI SDK exception in the matching ChatError subclass."""
    if isinstance(exc, ChatError):
        return exc

    if isinstance(exc, RateLimitError) or _error_code(exc) in _QUOTA_CODES:
        wrapped: ChatError = QuotaExceeded(f"LLM quota exceeded: {exc}")
    elif isinstance(exc, (APIConnectionError, APITimeoutError, TimeoutError, ConnectionError)):
        wrapped = UpstreamUnavailable(f"Unable to reach the LLM provider: {exc}")
    elif isinstance(exc, APIStatusError):
        status = getattr(exc, "status_code", "unknown")
        if status == 429:
            wrapped = QuotaExceeded(f"LLM quota exceeded: {exc}")
        else:
            wrapped = UpstreamUnavailable(f"LLM provider error ({status}): {exc}")
    else:
        wrapped = ChatError(f"{exc.__class__.__name__}: {exc}")

    _LOGGER.warning("llm_error", extra={"error_type": type(exc).__name__, "wrapped": type(wrapped).__name__})
    wrapped.__cause__ = exc
    return wrapped


__all__ = [
    "ChatError",
    "UpstreamUnavailable",
    "UpstreamProtocolError",
    "NotFound",
    "NoVariantsAvailable",
    "MalformedToolArguments",
    "QuotaExceeded",
    "classify_llm_error",
]
