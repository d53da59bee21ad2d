from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import openai
from openai import OpenAI

from scriptboard.errors import RemoteServiceError


def chat_completion(
    client: OpenAI,
    *,
    model: str,
    messages: List[dict],
    timeout_sec: int,
    label: str,
    on_log: Optional[Callable[[str], None]] = None,
    extra_body: Optional[Dict[str, Any]] = None,
    **params: Any,
) -> Any:
    """Call OpenRouter /chat/completions through the OpenAI SDK.

    Returns the first choice's message. Raises RemoteServiceError for transport
    failures, non-2xx responses and responses that carry an error instead of choices.
    """
    if on_log:
        on_log(f"{label}: calling {model} (timeout {timeout_sec}s)…")
    try:
        resp = client.chat.completions.create(
            model=model,
            messages=messages,
            extra_body=extra_body,
            stream=False,
            timeout=timeout_sec,
            **params,
        )
    except openai.APIStatusError as e:
        raise RemoteServiceError(f"{label} failed: HTTP {e.status_code}: {e.message}") from e
    except openai.OpenAIError as e:
        raise RemoteServiceError(f"{label} failed: {e}") from e

    choices = getattr(resp, "choices", None)
    if not choices:
        # OpenRouter reports some upstream failures in a 200 body
        detail = getattr(resp, "error", None)
        if isinstance(detail, dict):
            detail = detail.get("message") or detail
        raise RemoteServiceError(f"{label} failed: {detail or 'no choices returned'}")
    return choices[0].message
