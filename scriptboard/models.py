from __future__ import annotations

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from scriptboard.errors import ValidationError

ASPECT_RATIOS: Tuple[str, ...] = ("16:9", "9:16", "4:3", "3:4", "1:1")
DEFAULT_ASPECT_RATIO = "16:9"
DEFAULT_STYLE_KEYWORDS = "cinematic, photorealistic, 4k"

DEFAULT_AI_INSTRUCTION = (
    "Analyze the provided script and generate a series of detailed, vivid, and imaginative prompts for an AI "
    "image generator. Each prompt should correspond to a paragraph or a logical scene from the script.\n\n"
    "Guidelines:\n"
    "- Focus on visual details: Describe characters, settings, lighting, colors, and atmosphere.\n"
    "- Convey mood and tension: Use descriptive language to evoke emotions like suspense, joy, or mystery "
    "(e.g., \"long, distorted shadows in a dimly lit room\").\n"
    "- The output format must be strictly in JSON, containing a single key \"prompts\" with an array of strings. "
    "Each string is a self-contained prompt."
)


class ItemStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class StoryboardItem:
    """One prompt of a storyboard and the state of its image.

    ``image_url`` is set only while the item is ``success`` and ``error_message``
    only while it is ``error``; use the ``mark_*`` methods to change status.
    """

    prompt: str
    status: ItemStatus = ItemStatus.PENDING
    image_url: Optional[str] = None
    error_message: Optional[str] = None

    def mark_generating(self) -> None:
        self.status = ItemStatus.GENERATING
        self.image_url = None
        self.error_message = None

    def mark_success(self, image_url: str) -> None:
        self.status = ItemStatus.SUCCESS
        self.image_url = image_url
        self.error_message = None

    def mark_error(self, message: str) -> None:
        self.status = ItemStatus.ERROR
        self.image_url = None
        self.error_message = message


@dataclass(frozen=True)
class InlineImage:
    """Image bytes plus media type, sent and stored as a base64 data URL."""

    data: bytes
    mime_type: str

    def to_data_url(self) -> str:
        b64 = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{b64}"


class ReferenceImage(InlineImage):
    pass


class GeneratedImage(InlineImage):
    pass


def validate_aspect_ratio(aspect_ratio: str) -> str:
    if aspect_ratio not in ASPECT_RATIOS:
        raise ValidationError(
            f"Unsupported aspect ratio {aspect_ratio!r}; expected one of {', '.join(ASPECT_RATIOS)}."
        )
    return aspect_ratio


@dataclass(frozen=True)
class ImageSettings:
    style_keywords: str = DEFAULT_STYLE_KEYWORDS
    aspect_ratio: str = DEFAULT_ASPECT_RATIO
    reference_image: Optional[ReferenceImage] = None

    def __post_init__(self) -> None:
        validate_aspect_ratio(self.aspect_ratio)


# Prompt sources: a run starts either from a script (stage 1 derives the prompts)
# or from prompts the user typed one per line.
@dataclass(frozen=True)
class ScriptSource:
    script: str
    niche: str = ""
    instruction: str = DEFAULT_AI_INSTRUCTION


@dataclass(frozen=True)
class PromptListSource:
    text: str


PromptSource = Union[ScriptSource, PromptListSource]
