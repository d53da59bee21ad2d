from typing import Tuple

import requests

from scriptboard.config import OPENROUTER_BASE_URL


def connectivity_probe(url: str = OPENROUTER_BASE_URL, timeout_sec: int = 5) -> Tuple[bool, str]:
    try:
        resp = requests.get(url, timeout=timeout_sec)
        return (resp.ok, f"HTTP {resp.status_code}")
    except requests.RequestException as e:
        return (False, str(e))


def openrouter_key_probe(api_key: str, timeout_sec: int = 8) -> Tuple[bool, str]:
    """Check that the key is accepted by OpenRouter without spending credits."""
    try:
        resp = requests.get(
            f"{OPENROUTER_BASE_URL}/key",
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout_sec,
        )
        if resp.ok:
            label = (resp.json().get("data") or {}).get("label") or "key"
            return True, f"HTTP {resp.status_code}, {label}"
        return False, f"HTTP {resp.status_code}: {resp.text[:200]}"
    except (requests.RequestException, ValueError) as e:
        return False, str(e)
