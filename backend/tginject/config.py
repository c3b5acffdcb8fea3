"""
Config snapshot loading.

The config file is re-read on every call so edits take effect on the next
request without a restart. Nothing here caches.

Environment variables
---------------------
TGINJECT_CONFIG_PATH   Path to the JSON config file (default: tginject.json).
TELEGRAM_BOT_TOKEN     Bot token for the default account when the config
                       file does not set channels.telegram.botToken.
"""

import json
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from tginject.errors import ConfigError

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "tginject.json"


def get_config_path() -> Path:
    return Path(os.getenv("TGINJECT_CONFIG_PATH", DEFAULT_CONFIG_PATH))


def load_config() -> dict:
    """
    Load a fresh config snapshot.

    A missing file is an empty config (inject ends up "not configured").

    Raises:
        ConfigError: the file exists but cannot be read or is not a JSON object.
    """
    path = get_config_path()
    if not path.exists():
        logger.debug(f"Config file {path} not found; using empty config")
        return {}

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config {path}: {e}")

    try:
        cfg = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config {path}: {e}")

    if not isinstance(cfg, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")
    return cfg


def get_telegram_section(cfg: dict) -> dict:
    """Return ``channels.telegram`` or {} when absent."""
    channels = cfg.get("channels")
    if not isinstance(channels, dict):
        return {}
    section = channels.get("telegram")
    return section if isinstance(section, dict) else {}
