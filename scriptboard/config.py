import os
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from openai import OpenAI

from scriptboard.errors import ConfigurationError

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


def _get_env(key: str, default: str = "") -> str:
    return str(os.getenv(key, default))


@dataclass(frozen=True)
class Config:
    openrouter_api_key: str
    prompt_model: str
    image_model: str
    image_modalities: Tuple[str, ...]
    request_timeout_sec: int
    http_referer: str = "http://localhost"
    app_title: str = "Scriptboard"

    def default_headers(self) -> Dict[str, str]:
        # OpenRouter recommends sending HTTP-Referer and X-Title
        return {
            "HTTP-Referer": self.http_referer,
            "X-Title": self.app_title,
        }


def load_config() -> Config:
    modalities = _get_env("SCRIPTBOARD_IMAGE_MODALITIES", "image")
    return Config(
        openrouter_api_key=_get_env("OPENROUTER_API_KEY", "").strip(),
        prompt_model=_get_env("SCRIPTBOARD_PROMPT_MODEL", "google/gemini-2.5-flash"),
        image_model=_get_env("SCRIPTBOARD_IMAGE_MODEL", "google/gemini-2.5-flash-image"),
        image_modalities=tuple(m.strip() for m in modalities.split(",") if m.strip()) or ("image",),
        request_timeout_sec=int(_get_env("SCRIPTBOARD_REQUEST_TIMEOUT_SEC", "120")),
        http_referer=_get_env("SCRIPTBOARD_HTTP_REFERER", "http://localhost"),
        app_title=_get_env("SCRIPTBOARD_APP_TITLE", "Scriptboard"),
    )


def create_openrouter_client(cfg: Config, api_key: Optional[str] = None) -> OpenAI:
    key = api_key or cfg.openrouter_api_key
    if not key:
        raise ConfigurationError("OPENROUTER_API_KEY is missing. Add it to your environment or .env.")
    return OpenAI(
        api_key=key,
        base_url=OPENROUTER_BASE_URL,
        default_headers=cfg.default_headers(),
        timeout=cfg.request_timeout_sec,
    )
