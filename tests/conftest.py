from __future__ import annotations

import base64
import json
from types import SimpleNamespace
from typing import Any, Callable, List, Optional

import pytest

from scriptboard.config import Config

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-png-payload"


def png_data_url(payload: bytes = PNG_BYTES) -> str:
    return "data:image/png;base64," + base64.b64encode(payload).decode("ascii")


def text_message(content: str) -> SimpleNamespace:
    return SimpleNamespace(content=content, images=None)


def image_message(data_url: str) -> SimpleNamespace:
    return SimpleNamespace(content=None, images=[{"type": "image_url", "image_url": {"url": data_url}}])


def completion(message: Any) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeCompletions:
    """Stands in for client.chat.completions; replies come from a handler."""

    def __init__(self, handler: Callable[..., Any]) -> None:
        self.handler = handler
        self.calls: List[dict] = []

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        result = self.handler(**kwargs)
        if isinstance(result, Exception):
            raise result
        return result


class FakeClient:
    def __init__(self, handler: Callable[..., Any]) -> None:
        self.completions = FakeCompletions(handler)
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self) -> List[dict]:
        return self.completions.calls


def prompts_reply(prompts: Optional[List[str]]) -> SimpleNamespace:
    body = {} if prompts is None else {"prompts": prompts}
    return completion(text_message(json.dumps(body)))


def instruction_text(call: dict) -> str:
    parts = call["messages"][0]["content"]
    return next(p["text"] for p in parts if p["type"] == "text")


@pytest.fixture
def cfg() -> Config:
    return Config(
        openrouter_api_key="sk-test",
        prompt_model="test/prompt-model",
        image_model="test/image-model",
        image_modalities=("image",),
        request_timeout_sec=5,
    )


@pytest.fixture
def logs() -> List[str]:
    return []
