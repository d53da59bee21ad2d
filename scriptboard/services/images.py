from __future__ import annotations

from typing import Any, Callable, Iterator, List, Optional

import requests
from openai import OpenAI

from scriptboard.config import Config
from scriptboard.errors import RemoteServiceError
from scriptboard.models import GeneratedImage, ReferenceImage
from scriptboard.services.chat import chat_completion
from scriptboard.services.storage import data_url_to_bytes_and_mime


def build_image_instruction(prompt: str, style_keywords: str, aspect_ratio: str, with_reference: bool = False) -> str:
    if with_reference:
        return (
            "Analyze the style of the provided reference image and generate a new image with a similar style. "
            f'The new image should have an aspect ratio of {aspect_ratio} and depict: "{prompt}". '
            f"Additional style keywords: {style_keywords}."
        )
    return (
        f'Create an image with aspect ratio {aspect_ratio}. The image should depict: "{prompt}". '
        f"Additional style keywords: {style_keywords}."
    )


def build_image_messages(
    prompt: str,
    style_keywords: str,
    aspect_ratio: str,
    reference_image: Optional[ReferenceImage] = None,
) -> List[dict]:
    content: List[dict] = []
    if reference_image is not None:
        content.append({"type": "image_url", "image_url": {"url": reference_image.to_data_url()}})
    content.append(
        {
            "type": "text",
            "text": build_image_instruction(prompt, style_keywords, aspect_ratio, reference_image is not None),
        }
    )
    return [{"role": "user", "content": content}]


def _get(obj: Any, key: str) -> Any:
    # SDK objects expose OpenRouter extensions as attributes holding plain dicts
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _iter_image_urls(message: Any) -> Iterator[str]:
    # 1) images array (OpenRouter extension)
    for image in _get(message, "images") or []:
        url = _get(_get(image, "image_url"), "url")
        if isinstance(url, str):
            yield url
    # 2) content list items
    content = _get(message, "content")
    if isinstance(content, list):
        for part in content:
            if _get(part, "type") == "image_url":
                url = _get(_get(part, "image_url"), "url")
                if isinstance(url, str):
                    yield url
    # 3) plain content string
    elif isinstance(content, str) and content.strip().startswith("data:image/"):
        yield content.strip()


def _download_image(url: str, timeout_sec: int) -> GeneratedImage:
    try:
        resp = requests.get(url, timeout=timeout_sec)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise RemoteServiceError(f"Image download failed: {e}") from e
    mime = resp.headers.get("content-type", "image/png").split(";")[0].strip()
    return GeneratedImage(data=resp.content, mime_type=mime or "image/png")


def extract_image_from_message(message: Any, timeout_sec: int = 30) -> Optional[GeneratedImage]:
    """Return the first image in a chat completion message, or None."""
    for url in _iter_image_urls(message):
        if url.startswith("data:"):
            try:
                data, mime = data_url_to_bytes_and_mime(url)
            except ValueError as e:
                raise RemoteServiceError(f"Image generation returned a malformed image: {e}") from e
            return GeneratedImage(data=data, mime_type=mime)
        if url.startswith("http://") or url.startswith("https://"):
            return _download_image(url, timeout_sec)
    return None


def generate_image(
    client: OpenAI,
    cfg: Config,
    prompt: str,
    style_keywords: str,
    aspect_ratio: str,
    reference_image: Optional[ReferenceImage] = None,
    on_log: Optional[Callable[[str], None]] = None,
) -> GeneratedImage:
    messages = build_image_messages(prompt, style_keywords, aspect_ratio, reference_image)
    message = chat_completion(
        client,
        model=cfg.image_model,
        messages=messages,
        timeout_sec=cfg.request_timeout_sec,
        label="Images",
        on_log=on_log,
        extra_body={
            "modalities": list(cfg.image_modalities),
            "image_config": {"aspect_ratio": aspect_ratio},
        },
    )
    image = extract_image_from_message(message, timeout_sec=cfg.request_timeout_sec)
    if image is None:
        raise RemoteServiceError("Image generation failed, no images returned.")
    if on_log:
        on_log(f"Images: received {image.mime_type} ({len(image.data)} bytes)")
    return image
