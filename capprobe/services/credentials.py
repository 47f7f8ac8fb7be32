"""API key resolution for probe runs.

Keys come from a JSON keys file (``{"openai": "sk-...", ...}``) and from
per-provider environment variables; the environment wins.
"""

import json
import os
from pathlib import Path

from loguru import logger

from capprobe.models.enums import Provider

API_KEY_ENV_VARS: dict[Provider, str] = {
    Provider.OPENAI: "OPENAI_API_KEY",
    Provider.ANTHROPIC: "ANTHROPIC_API_KEY",
    Provider.GEMINI: "GEMINI_API_KEY",
    Provider.XAI: "XAI_API_KEY",
    Provider.OPENROUTER: "OPENROUTER_API_KEY",
    Provider.FIREWORKS: "FIREWORKS_API_KEY",
    Provider.OLLAMA: "OLLAMA_API_KEY",
    Provider.LMSTUDIO: "LMSTUDIO_API_KEY",
    Provider.VLLM: "VLLM_API_KEY",
    Provider.MINIMAX: "MINIMAX_API_KEY",
    Provider.LOCAL_OPENAI_COMPATIBLE: "LOCAL_OPENAI_API_KEY",
}


def get_api_key_from_env(provider: Provider) -> str | None:
    return os.environ.get(API_KEY_ENV_VARS[provider]) or None


def load_api_keys_from_file(path: Path) -> dict[Provider, str]:
    """Read provider keys from a JSON object file.

    Unknown providers and non-string values are ignored. A missing or
    malformed file yields no keys.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read API keys from {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"API keys file {path} must contain a JSON object")
        return {}

    keys: dict[Provider, str] = {}
    for name, value in data.items():
        if name in Provider.__members__.values() and isinstance(value, str):
            keys[Provider(name)] = value
    return keys


def resolve_api_keys(keys_file: Path | None = None) -> dict[Provider, str]:
    """Merge keys from the keys file with environment variables (env wins)."""
    if keys_file is None:
        from capprobe.config import settings

        keys_file = settings.keys_file

    keys = load_api_keys_from_file(keys_file) if keys_file is not None else {}
    for provider in Provider:
        env_key = get_api_key_from_env(provider)
        if env_key:
            keys[provider] = env_key
    return keys
