from __future__ import annotations

from typing import Callable, List, Optional

from openai import OpenAI

from scriptboard.config import Config, create_openrouter_client, load_config
from scriptboard.errors import ValidationError, describe_error
from scriptboard.models import (
    ImageSettings,
    ItemStatus,
    PromptListSource,
    PromptSource,
    ScriptSource,
    StoryboardItem,
)
from scriptboard.services.images import generate_image
from scriptboard.services.prompts import generate_prompts
from scriptboard.services.storage import split_prompt_lines

ItemCallback = Callable[[int, StoryboardItem], None]


class Pipeline:
    """Two-stage storyboard generation: script → prompts → images.

    Responsibilities:
    - Own `cfg` and OpenAI client lifecycle
    - Hold the current storyboard and the prompts produced from a script
    - Generate images strictly one at a time, isolating failures per item
    - Centralize logging through an injected callback
    """

    def __init__(
        self,
        cfg: Optional[Config] = None,
        on_log: Optional[Callable[[str], None]] = None,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.on_log: Callable[[str], None] = on_log or (lambda _msg: None)
        self.cfg: Config = cfg or load_config()
        self.on_log(f"📋 Loaded configuration: prompt_model={self.cfg.prompt_model}, image_model={self.cfg.image_model}")

        self._client = client
        if self._client is None and not self.cfg.openrouter_api_key:
            self.on_log("⚠️  OpenRouter client not initialized (no API key)")

        self.storyboard: List[StoryboardItem] = []
        self.generated_prompts: List[str] = []
        self.settings: ImageSettings = ImageSettings()

    def ensure_client(self) -> OpenAI:
        """Return the OpenRouter client, raising ConfigurationError without an API key."""
        if self._client is None:
            self._client = create_openrouter_client(self.cfg)
            self.on_log("🔗 OpenRouter client initialized successfully")
        return self._client

    @property
    def client(self) -> OpenAI:
        return self.ensure_client()

    # ---------- Stage 1 ----------
    def resolve_prompts(self, source: PromptSource) -> List[str]:
        if isinstance(source, ScriptSource):
            if not source.script.strip():
                raise ValidationError("Script content cannot be empty.")
            self.on_log("🧠 Generating prompts from script...")
            prompts = generate_prompts(self.client, self.cfg, source.script, source.niche, source.instruction, on_log=self.on_log)
            self.generated_prompts = list(prompts)
            if not prompts:
                raise ValidationError("The script did not yield any prompts. Try adjusting the script or AI instructions.")
            self.on_log(f"✅ Generated {len(prompts)} prompts")
            return list(prompts)

        if isinstance(source, PromptListSource):
            if not source.text.strip():
                raise ValidationError("Prompts cannot be empty.")
            prompts = split_prompt_lines(source.text)
            if not prompts:
                raise ValidationError("No valid prompts found to generate images.")
            self.on_log(f"📝 Using {len(prompts)} prompts from input")
            return prompts

        raise TypeError(f"Unsupported prompt source: {type(source).__name__}")

    def initialize_storyboard(self, prompts: List[str]) -> List[StoryboardItem]:
        self.storyboard = [StoryboardItem(prompt=p) for p in prompts]
        return self.storyboard

    # ---------- Stage 2 ----------
    def _generate_item(self, index: int, on_item: Optional[ItemCallback]) -> None:
        item = self.storyboard[index]
        item.mark_generating()
        if on_item:
            on_item(index, item)
        try:
            image = generate_image(
                self.client,
                self.cfg,
                item.prompt,
                self.settings.style_keywords,
                self.settings.aspect_ratio,
                self.settings.reference_image,
                on_log=self.on_log,
            )
            item.mark_success(image.to_data_url())
            self.on_log(f"✅ Image {index + 1} generated")
        except Exception as e:  # noqa: BLE001
            item.mark_error(describe_error(e))
            self.on_log(f"❌ Image {index + 1} failed: {item.error_message}")
        if on_item:
            on_item(index, item)

    def generate_all(self, on_item: Optional[ItemCallback] = None) -> List[StoryboardItem]:
        total = len(self.storyboard)
        for i in range(total):
            self.on_log(f"🎨 Generating image {i + 1} of {total}...")
            self._generate_item(i, on_item)
        ok = sum(1 for item in self.storyboard if item.status == ItemStatus.SUCCESS)
        self.on_log(f"🎉 Storyboard complete: {ok}/{total} images generated")
        return self.storyboard

    # ---------- High level flows ----------
    def run(
        self,
        source: PromptSource,
        settings: ImageSettings,
        on_item: Optional[ItemCallback] = None,
    ) -> List[StoryboardItem]:
        """Resolve prompts, start a fresh storyboard and render every item in order."""
        self.storyboard = []
        self.generated_prompts = []
        self.settings = settings
        prompts = self.resolve_prompts(source)
        self.ensure_client()
        self.initialize_storyboard(prompts)
        if on_item:
            for i, item in enumerate(self.storyboard):
                on_item(i, item)
        return self.generate_all(on_item)

    def retry_item(
        self,
        index: int,
        settings: Optional[ImageSettings] = None,
        on_item: Optional[ItemCallback] = None,
    ) -> bool:
        """Regenerate one failed item. Returns False (and changes nothing) otherwise."""
        if not 0 <= index < len(self.storyboard):
            return False
        if self.storyboard[index].status != ItemStatus.ERROR:
            return False
        if settings is not None:
            self.settings = settings
        self.ensure_client()
        self.on_log(f"🔁 Retrying image {index + 1}...")
        self._generate_item(index, on_item)
        return True
