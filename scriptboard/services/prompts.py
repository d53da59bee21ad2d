from __future__ import annotations

import json
import re
from typing import Callable, List, Optional

from openai import OpenAI

from scriptboard.config import Config
from scriptboard.errors import RemoteServiceError
from scriptboard.services.chat import chat_completion

_LINE_BREAKS = re.compile(r"[ \t]*(?:\r\n|\r|\n)+[ \t]*")

PROMPTS_RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "storyboard_prompts",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "prompts": {
                    "type": "array",
                    "items": {
                        "type": "string",
                        "description": "A detailed visual prompt for an image generation model.",
                    },
                },
            },
            "required": ["prompts"],
            "additionalProperties": False,
        },
    },
}


def build_prompt_request(script: str, niche: str, instruction: str) -> str:
    return (
        "Script:\n"
        "---\n"
        f"{script}\n"
        "---\n"
        f"Niche/Topic: {niche}\n"
        "---\n"
        "Instructions:\n"
        f"{instruction}"
    )


def build_prompt_messages(script: str, niche: str, instruction: str) -> List[dict]:
    return [{"role": "user", "content": build_prompt_request(script, niche, instruction)}]


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1:] if first_newline != -1 else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_prompts_output(text: str) -> List[str]:
    """
    Parse the model's JSON reply and return its "prompts" list.

    A reply that parses but has no usable "prompts" array yields an empty list;
    a reply that is not JSON at all raises RemoteServiceError. String entries are
    kept as written except that line breaks inside one become a single space.
    """
    try:
        data = json.loads(_strip_code_fence(text or ""))
    except json.JSONDecodeError as e:
        raise RemoteServiceError(f"Prompt generation returned invalid JSON: {e}") from e

    prompts = data.get("prompts") if isinstance(data, dict) else None
    if not isinstance(prompts, list):
        return []
    # one prompt per line in the exported text file
    flat = (_LINE_BREAKS.sub(" ", p) for p in prompts if isinstance(p, str))
    return [p for p in flat if p.strip()]


def generate_prompts(
    client: OpenAI,
    cfg: Config,
    script: str,
    niche: str,
    instruction: str,
    on_log: Optional[Callable[[str], None]] = None,
) -> List[str]:
    messages = build_prompt_messages(script, niche, instruction)
    message = chat_completion(
        client,
        model=cfg.prompt_model,
        messages=messages,
        timeout_sec=cfg.request_timeout_sec,
        label="Prompts",
        on_log=on_log,
        response_format=PROMPTS_RESPONSE_FORMAT,
    )
    text = getattr(message, "content", None) or ""
    if on_log:
        on_log(f"Prompts: received {len(text)} characters")
    return parse_prompts_output(text)
