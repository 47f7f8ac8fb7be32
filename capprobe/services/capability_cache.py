"""Capability cache with a precedence chain.

Capabilities for a (provider, model) pair are resolved by merging, field
by field, from lowest to highest priority:

1. Conservative defaults
2. Provider defaults
3. Static overrides (first matching rule)
4. Probed cache entry
5. Local overrides (session only, never persisted)
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from capprobe.models.capabilities import (
    CACHE_VERSION,
    CachedModelCapabilities,
    ModelCapabilitiesCache,
    PartialCapabilities,
    ProbedCapabilities,
    StaticCapabilityOverride,
    default_capabilities,
    normalize_partial,
)
from capprobe.models.enums import CapabilitySource, CompletionShape, MessageShape, Provider
from capprobe.services.probe.steps import ModelProbeResult


def _now_ms() -> int:
    return int(time.time() * 1000)


def make_cache_key(provider: Provider | str, model: str) -> str:
    return f"{provider}:{model}"


def parse_cache_key(key: str) -> tuple[str, str] | None:
    """Split a cache key on its first colon; model IDs may contain more."""
    provider, sep, model = key.partition(":")
    if not sep:
        return None
    return provider, model


STATIC_OVERRIDES: list[StaticCapabilityOverride] = [
    StaticCapabilityOverride(
        pattern=re.compile(r"^gpt-4o"),
        provider=Provider.OPENAI,
        capabilities={
            "supports_vision": True,
            "supports_pdf_native": False,
            "supports_pdf_as_images": True,
            "requires_base64_images": False,
            "requires_images_first": False,
            "message_shape": MessageShape.OPENAI_PARTS,
        },
    ),
    StaticCapabilityOverride(
        pattern=re.compile(r"^gpt-4-vision"),
        provider=Provider.OPENAI,
        capabilities={
            "supports_vision": True,
            "supports_pdf_native": False,
            "supports_pdf_as_images": True,
            "requires_base64_images": False,
            "message_shape": MessageShape.OPENAI_PARTS,
        },
    ),
    StaticCapabilityOverride(
        pattern=re.compile(r"^claude-3"),
        provider=Provider.ANTHROPIC,
        capabilities={
            "supports_vision": True,
            "supports_pdf_native": True,
            "supports_pdf_as_images": True,
            "requires_base64_images": True,
            "requires_images_first": False,
            "message_shape": MessageShape.ANTHROPIC_CONTENT,
        },
    ),
    StaticCapabilityOverride(
        pattern=re.compile(r"^gemini"),
        provider=Provider.GEMINI,
        capabilities={
            "supports_vision": True,
            "supports_pdf_native": False,
            "supports_pdf_as_images": True,
            "requires_base64_images": False,
            "message_shape": MessageShape.GEMINI_PARTS,
        },
    ),
    StaticCapabilityOverride(
        pattern=re.compile(r"^grok"),
        provider=Provider.XAI,
        capabilities={
            "supports_vision": True,
            "supports_pdf_native": False,
            "supports_pdf_as_images": True,
            "message_shape": MessageShape.OPENAI_PARTS,
        },
    ),
    StaticCapabilityOverride(
        pattern=re.compile(r"llava|vision|bakllava", re.IGNORECASE),
        provider=Provider.OLLAMA,
        capabilities={
            "supports_vision": True,
            "supports_pdf_as_images": True,
            "message_shape": MessageShape.OPENAI_PARTS,
        },
    ),
]


def _text_only(
    requires_base64: bool,
    message_shape: MessageShape = MessageShape.OPENAI_PARTS,
) -> PartialCapabilities:
    return {
        "supports_vision": False,
        "supports_pdf_native": False,
        "supports_pdf_as_images": False,
        "requires_base64_images": requires_base64,
        "requires_images_first": False,
        "message_shape": message_shape,
        "completion_shape": CompletionShape.OPENAI_STREAMING,
    }


PROVIDER_DEFAULTS: dict[Provider, PartialCapabilities] = {
    # Vision depends on the model; static overrides and probing fill it in
    Provider.OPENAI: _text_only(requires_base64=False),
    Provider.ANTHROPIC: {
        "supports_vision": True,
        "supports_pdf_native": True,
        "supports_pdf_as_images": True,
        "requires_base64_images": True,
        "requires_images_first": False,
        "message_shape": MessageShape.ANTHROPIC_CONTENT,
        "completion_shape": CompletionShape.ANTHROPIC_SSE,
    },
    Provider.GEMINI: {
        "supports_vision": True,
        "supports_pdf_native": False,
        "supports_pdf_as_images": True,
        "requires_base64_images": False,
        "requires_images_first": False,
        "message_shape": MessageShape.GEMINI_PARTS,
        "completion_shape": CompletionShape.GEMINI_STREAMING,
    },
    Provider.XAI: {
        "supports_vision": True,
        "supports_pdf_native": False,
        "supports_pdf_as_images": True,
        "requires_base64_images": False,
        "requires_images_first": False,
        "message_shape": MessageShape.OPENAI_PARTS,
        "completion_shape": CompletionShape.OPENAI_STREAMING,
    },
    Provider.OPENROUTER: _text_only(requires_base64=False),
    Provider.FIREWORKS: _text_only(requires_base64=False),
    Provider.OLLAMA: _text_only(requires_base64=True),
    Provider.LMSTUDIO: _text_only(requires_base64=True),
    Provider.VLLM: _text_only(requires_base64=True),
    Provider.LOCAL_OPENAI_COMPATIBLE: _text_only(requires_base64=True),
    Provider.MINIMAX: _text_only(requires_base64=False, message_shape=MessageShape.OPENAI_STRING),
}


def get_static_override(
    provider: Provider,
    model: str,
    rules: list[StaticCapabilityOverride] | None = None,
) -> PartialCapabilities | None:
    """Return the capabilities of the first rule matching (provider, model)."""
    for rule in STATIC_OVERRIDES if rules is None else rules:
        if rule.matches(provider, model):
            return rule.capabilities
    return None


def get_provider_defaults(provider: Provider) -> PartialCapabilities:
    return dict(PROVIDER_DEFAULTS.get(provider, {}))


def default_cache_path() -> Path:
    from capprobe.config import CACHE_FILE_NAME, settings

    return settings.cache_path or settings.data_dir / CACHE_FILE_NAME


@dataclass(frozen=True)
class CacheStats:
    model_count: int
    last_updated: int
    oldest_entry: int | None
    newest_entry: int | None
    provider_breakdown: dict[str, int] = field(default_factory=dict)


def _empty_cache() -> ModelCapabilitiesCache:
    return ModelCapabilitiesCache(version=CACHE_VERSION, last_updated=_now_ms(), models={})


class CapabilityCache:
    """In-memory capability store backed by an optional JSON file.

    Args:
        static_overrides: Ordered rules, first match wins (defaults to STATIC_OVERRIDES)
        provider_defaults: Per-provider partial capabilities (defaults to PROVIDER_DEFAULTS)
        path: File used by load_from_file/save_to_file when no path is given
    """

    def __init__(
        self,
        static_overrides: list[StaticCapabilityOverride] | None = None,
        provider_defaults: dict[Provider, PartialCapabilities] | None = None,
        path: Path | None = None,
    ):
        self.static_overrides = STATIC_OVERRIDES if static_overrides is None else static_overrides
        self.provider_defaults = (
            PROVIDER_DEFAULTS if provider_defaults is None else provider_defaults
        )
        self.path = path
        self._cache = _empty_cache()
        self._local_overrides: dict[str, PartialCapabilities] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, cache: ModelCapabilitiesCache | None = None) -> None:
        self._cache = cache if cache is not None else _empty_cache()

    def snapshot(self) -> ModelCapabilitiesCache:
        """A deep copy of the current cache."""
        return self._cache.model_copy(deep=True)

    def clear(self) -> None:
        self._cache = _empty_cache()

    # ------------------------------------------------------------------
    # Local overrides
    # ------------------------------------------------------------------

    def set_local_override(
        self, provider: Provider, model: str, capabilities: PartialCapabilities
    ) -> None:
        """Set session-only capabilities that beat every other tier.

        Raises:
            KeyError: If ``capabilities`` names an unknown field
        """
        self._local_overrides[make_cache_key(provider, model)] = normalize_partial(capabilities)

    def remove_local_override(self, provider: Provider, model: str) -> None:
        self._local_overrides.pop(make_cache_key(provider, model), None)

    def clear_local_overrides(self) -> None:
        self._local_overrides.clear()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _static_override(self, provider: Provider, model: str) -> PartialCapabilities | None:
        return get_static_override(provider, model, self.static_overrides)

    def get_capabilities(self, provider: Provider, model: str) -> ProbedCapabilities:
        key = make_cache_key(provider, model)
        result = default_capabilities().merged(self.provider_defaults.get(provider))
        result = result.merged(self._static_override(provider, model))

        cached = self._cache.models.get(key)
        if cached is not None:
            result = result.merged(cached.capabilities.model_dump())

        return result.merged(self._local_overrides.get(key))

    def get_capability_source(self, provider: Provider, model: str) -> CapabilitySource:
        key = make_cache_key(provider, model)
        if key in self._local_overrides:
            return CapabilitySource.LOCAL_OVERRIDE
        if key in self._cache.models:
            return CapabilitySource.PROBED
        if self._static_override(provider, model) is not None:
            return CapabilitySource.STATIC_OVERRIDE
        return CapabilitySource.PROVIDER_DEFAULT

    def get_cached(self, provider: Provider, model: str) -> CachedModelCapabilities | None:
        return self._cache.models.get(make_cache_key(provider, model))

    def is_stale(
        self, provider: Provider, model: str, max_age_ms: int, now: int | None = None
    ) -> bool:
        """True when there is no probed entry or it is older than ``max_age_ms``.

        Entries never expire on their own; callers decide when to re-probe.
        """
        entry = self.get_cached(provider, model)
        if entry is None:
            return True
        now = _now_ms() if now is None else now
        return now - entry.last_probed_at > max_age_ms

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update_from_probe_result(self, result: ModelProbeResult) -> None:
        key = make_cache_key(result.provider, result.model)
        self._cache.models[key] = CachedModelCapabilities(
            provider=result.provider,
            model=result.model,
            capabilities=result.capabilities,
            last_probed_at=result.probed_at,
            probe_version=result.probe_version,
            source=CapabilitySource.PROBED,
        )
        self._cache.last_updated = _now_ms()

    def update_from_probe_results(self, results: list[ModelProbeResult]) -> None:
        for result in results:
            self.update_from_probe_result(result)

    def remove_cached_model(self, provider: Provider, model: str) -> None:
        self._cache.models.pop(make_cache_key(provider, model), None)
        self._cache.last_updated = _now_ms()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _resolve_path(self, path: Path | None) -> Path:
        return path or self.path or default_cache_path()

    def load_from_file(self, path: Path | None = None) -> ModelCapabilitiesCache | None:
        """Load and adopt a cache file.

        A missing, unreadable, invalid or version-mismatched file is treated
        as absent: the in-memory cache is left untouched and None returned.
        """
        target = self._resolve_path(path)
        try:
            raw = target.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Failed to read capability cache {target}: {e}")
            return None

        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Capability cache {target} is not valid JSON: {e}")
            return None

        if not isinstance(data, dict) or data.get("version") != CACHE_VERSION:
            version = data.get("version") if isinstance(data, dict) else None
            logger.warning(f"Cache version mismatch: {version} vs {CACHE_VERSION}")
            return None

        try:
            cache = ModelCapabilitiesCache.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Capability cache {target} failed validation: {e}")
            return None

        self.initialize(cache)
        logger.debug(f"Loaded {len(cache.models)} cached capabilities from {target}")
        return self.snapshot()

    def save_to_file(self, path: Path | None = None) -> Path:
        """Write the cache as indented camelCase JSON, creating parent dirs."""
        target = self._resolve_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            json.dumps(self._cache.model_dump(mode="json", by_alias=True), indent=2),
            encoding="utf-8",
        )
        logger.debug(f"Saved {len(self._cache.models)} cached capabilities to {target}")
        return target

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats(self) -> CacheStats:
        entries = list(self._cache.models.values())
        breakdown: dict[str, int] = {}
        for entry in entries:
            breakdown[entry.provider] = breakdown.get(entry.provider, 0) + 1
        probed_times = [entry.last_probed_at for entry in entries]

        return CacheStats(
            model_count=len(entries),
            last_updated=self._cache.last_updated,
            oldest_entry=min(probed_times, default=None),
            newest_entry=max(probed_times, default=None),
            provider_breakdown=breakdown,
        )
