"""Runtime configuration.

Secrets come from the environment (``.env`` is loaded with python-dotenv).
Everything else comes from JSON: the project-local ``config.json`` is the
base and ``~/.sheetpilot/config.json`` is overlaid on top. Keys are read with
dot paths, e.g. ``get("sandbox.python")``.

Module-level constants are derived from the merged config by ``_derive()``;
``reload_config()`` re-reads the files and re-derives them.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("sheetpilot")

CONFIG_PATH = Path.home() / ".sheetpilot" / "config.json"
_LOCAL_CONFIG_PATH = Path(__file__).resolve().parent / "config.json"

_PROVIDER_ENV_KEYS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

# Fallbacks when neither providers.<name>.<key> nor a top-level key is set
_PROVIDER_DEFAULTS = {
    "openai": {
        "model": "gpt-4o",
        "structuring_model": "gpt-4o-mini",
        "vision_model": "gpt-4o",
    },
    "anthropic": {
        "model": "claude-sonnet-4-5",
        "structuring_model": "claude-haiku-4-5",
        "vision_model": "claude-sonnet-4-5",
    },
}

_DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]

_user_config: dict = {}
_data_dir: Optional[Path] = None


def _read_json(path: Path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning(f"[Config] Ignoring unreadable {path}: {exc}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"[Config] Ignoring {path}: top level is not an object")
        return {}
    return data


def _load_config() -> dict:
    merged: dict = {}
    for path in (_LOCAL_CONFIG_PATH, CONFIG_PATH):
        if path.exists():
            merged.update(_read_json(path))
    return merged


def get(key: str, default=None):
    """Config value at a dot-separated *key*, or *default* when absent."""
    val = _user_config
    for part in key.split("."):
        if not isinstance(val, dict):
            return default
        val = val.get(part)
    return default if val is None else val


def get_data_dir() -> Path:
    """Base directory for logs and scratch files.

    ``SHEETPILOT_DIR`` wins over the ``data_dir`` key, which wins over
    ``~/.sheetpilot``.
    """
    global _data_dir
    if _data_dir is None:
        configured = os.environ.get("SHEETPILOT_DIR") or get("data_dir")
        _data_dir = Path(configured).expanduser().resolve() if configured else Path.home() / ".sheetpilot"
    return _data_dir


def get_api_key(provider: str | None = None) -> str | None:
    env_key = _PROVIDER_ENV_KEYS.get((provider or LLM_PROVIDER).lower())
    return os.getenv(env_key) if env_key else None


def _provider_get(key: str, default=None):
    """Provider section first, then the top-level key, then built-in defaults."""
    provider = get("llm_provider", "openai")
    for candidate in (get(f"providers.{provider}.{key}"), get(key)):
        if candidate is not None:
            return candidate
    return _PROVIDER_DEFAULTS.get(provider, {}).get(key, default)


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS") or get("cors_origins")
    if isinstance(raw, str):
        raw = raw.split(",")
    origins = [o.strip() for o in raw or [] if o.strip()]
    return origins or list(_DEFAULT_CORS_ORIGINS)


def _derive() -> None:
    global LLM_PROVIDER, LLM_BASE_URL
    global SMART_MODEL, STRUCTURING_MODEL, VISION_MODEL
    global SANDBOX_PYTHON, CORS_ORIGINS

    LLM_PROVIDER = get("llm_provider", "openai")  # "openai" or "anthropic"
    LLM_BASE_URL = _provider_get("base_url")
    # Dialogue model; sandbox-output structuring model; document vision model
    SMART_MODEL = _provider_get("model")
    STRUCTURING_MODEL = _provider_get("structuring_model") or SMART_MODEL
    VISION_MODEL = _provider_get("vision_model") or SMART_MODEL
    # Empty means the server's own interpreter
    SANDBOX_PYTHON = get("sandbox.python", "")
    CORS_ORIGINS = _cors_origins()


LLM_PROVIDER: str
LLM_BASE_URL: Optional[str]
SMART_MODEL: str
STRUCTURING_MODEL: str
VISION_MODEL: str
SANDBOX_PYTHON: str
CORS_ORIGINS: list[str]

_user_config = _load_config()
_derive()


def reload_config() -> None:
    """Re-read ``.env`` and both config files, then re-derive every constant."""
    global _user_config, _data_dir

    load_dotenv(override=True)
    _user_config = _load_config()
    _data_dir = None
    _derive()

    from agent.turn_limits import reload as _reload_turn_limits

    _reload_turn_limits()
