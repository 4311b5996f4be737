from __future__ import annotations

import logging
import os
from typing import Optional

import requests

log = logging.getLogger(__name__)

DEFAULT_USERNAME = "Cardano Rebalancer"


def _webhook_url() -> str:
    return os.getenv("DISCORD_WEBHOOK") or os.getenv("DISCORD_WEBHOOK_URL") or ""


def notify(
    message: str, username: str = DEFAULT_USERNAME, webhook_url: Optional[str] = None
) -> bool:
    """Post ``message`` to the Discord webhook. Never raises."""
    url = webhook_url or _webhook_url()
    if not url:
        log.info("[discord] no webhook configured; message not sent:\n%s", message)
        return False
    try:
        r = requests.post(url, json={"content": message, "username": username}, timeout=5)
        r.raise_for_status()
    except Exception as e:
        log.warning("[discord] error: %s", e)
        return False
    return True
