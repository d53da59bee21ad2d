from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from scriptboard.models import (
    DEFAULT_AI_INSTRUCTION,
    DEFAULT_ASPECT_RATIO,
    DEFAULT_STYLE_KEYWORDS,
    ImageSettings,
    PromptListSource,
    PromptSource,
    ReferenceImage,
    ScriptSource,
)

CONTENT_SCRIPT = "script"
CONTENT_PROMPTS = "prompts"


@dataclass
class AppState:
    content_type: str = CONTENT_SCRIPT
    script: str = ""
    prompts_text: str = ""
    niche: str = ""
    style_keywords: str = DEFAULT_STYLE_KEYWORDS
    aspect_ratio: str = DEFAULT_ASPECT_RATIO
    ai_instruction: str = DEFAULT_AI_INSTRUCTION
    reference_image: Optional[ReferenceImage] = None

    error: Optional[str] = None
    current_operation: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    def build_source(self) -> PromptSource:
        if self.content_type == CONTENT_SCRIPT:
            return ScriptSource(script=self.script, niche=self.niche, instruction=self.ai_instruction)
        if self.content_type == CONTENT_PROMPTS:
            return PromptListSource(text=self.prompts_text)
        raise ValueError(f"Unknown content type: {self.content_type!r}")

    def image_settings(self) -> ImageSettings:
        return ImageSettings(
            style_keywords=self.style_keywords,
            aspect_ratio=self.aspect_ratio,
            reference_image=self.reference_image,
        )
