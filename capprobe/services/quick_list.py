"""Quick list of (provider, model) pairs to probe.

The list can come from a CLI argument, the QUICK_LIST_JSON environment
variable, or the shared quick-list file, in that order of precedence.
Each source is a JSON array of ``{"provider": ..., "model": ...}``
objects; the file wraps it as ``{"version", "lastUpdated", "models"}``.
"""

from __future__ import annotations

import json
import os
import time
from pathlib import Path

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from capprobe.models.capabilities import CamelModel
from capprobe.models.enums import Provider

QUICK_LIST_VERSION = "1.0.0"
QUICK_LIST_ENV_VAR = "QUICK_LIST_JSON"


class QuickListEntry(CamelModel):
    provider: Provider
    model: str


class QuickListFile(CamelModel):
    version: str = QUICK_LIST_VERSION
    last_updated: int = 0  # Unix ms
    models: list[QuickListEntry] = []


_ENTRIES = TypeAdapter(list[QuickListEntry])


def default_quick_list_path() -> Path:
    from capprobe.config import QUICK_LIST_FILE_NAME, settings

    return settings.quick_list_path or settings.data_dir / QUICK_LIST_FILE_NAME


def parse_quick_list(raw: str) -> list[QuickListEntry]:
    """Parse a JSON array of quick-list entries.

    Raises:
        ValidationError: If the JSON is malformed or an entry is invalid
    """
    return _ENTRIES.validate_json(raw)


def load_quick_list_from_file(path: Path | None = None) -> list[QuickListEntry] | None:
    """Load the shared quick-list file; None when missing or invalid."""
    target = path or default_quick_list_path()
    try:
        raw = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.error(f"Failed to load quick list {target}: {e}")
        return None

    try:
        return QuickListFile.model_validate_json(raw).models
    except ValidationError as e:
        logger.warning(f"Invalid quick list file format in {target}: {e}")
        return None


def save_quick_list_to_file(models: list[QuickListEntry], path: Path | None = None) -> Path:
    target = path or default_quick_list_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    data = QuickListFile(last_updated=int(time.time() * 1000), models=models)
    payload = json.dumps(data.model_dump(mode="json", by_alias=True), indent=2)
    target.write_text(payload, encoding="utf-8")
    return target


def quick_list_file_exists(path: Path | None = None) -> bool:
    return (path or default_quick_list_path()).is_file()


def resolve_quick_list(
    argument: str | None = None, path: Path | None = None
) -> list[QuickListEntry]:
    """Resolve the models to probe: argument > environment > shared file.

    A source that fails to parse is logged and the next one is tried.
    """
    sources = [("--quick-list", argument), (QUICK_LIST_ENV_VAR, os.environ.get(QUICK_LIST_ENV_VAR))]
    for label, raw in sources:
        if not raw:
            continue
        try:
            return parse_quick_list(raw)
        except ValidationError as e:
            logger.error(f"Failed to parse {label} JSON: {e}")

    return load_quick_list_from_file(path) or []
