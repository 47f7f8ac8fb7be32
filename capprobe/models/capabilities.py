"""Capability records produced by probing and stored in the capability cache.

All records persisted to disk serialize with camelCase keys
(``supportsVision``, ``lastProbedAt``...) so the cache file stays
readable by other tools sharing it. Either the alias or the field name
is accepted on input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from capprobe.models.enums import CapabilitySource, CompletionShape, MessageShape, Provider

CACHE_VERSION = "1.0.0"

# Partial capability updates keyed by ProbedCapabilities field name
PartialCapabilities = dict[str, Any]


class CamelModel(BaseModel):
    """Base model serializing to camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ProbedCapabilities(CamelModel):
    """Inferred feature set of one model endpoint."""

    supports_vision: bool
    supports_pdf_native: bool
    supports_pdf_as_images: bool
    requires_base64_images: bool
    requires_images_first: bool
    message_shape: MessageShape
    completion_shape: CompletionShape

    def merged(self, partial: PartialCapabilities | None) -> ProbedCapabilities:
        """Return a copy with ``partial`` applied field by field."""
        if not partial:
            return self
        data = self.model_dump()
        data.update(normalize_partial(partial))
        return ProbedCapabilities.model_validate(data)


def default_capabilities() -> ProbedCapabilities:
    """Conservative text-only capabilities used when nothing better is known."""
    return ProbedCapabilities(
        supports_vision=False,
        supports_pdf_native=False,
        supports_pdf_as_images=False,
        requires_base64_images=True,
        requires_images_first=False,
        message_shape=MessageShape.OPENAI_PARTS,
        completion_shape=CompletionShape.OPENAI_STREAMING,
    )


_ALIAS_TO_FIELD: dict[str, str] = {to_camel(name): name for name in ProbedCapabilities.model_fields}


def normalize_partial(partial: PartialCapabilities) -> PartialCapabilities:
    """Map camelCase keys to field names, rejecting unknown keys."""
    normalized: PartialCapabilities = {}
    for key, value in partial.items():
        if key in ProbedCapabilities.model_fields:
            normalized[key] = value
        elif key in _ALIAS_TO_FIELD:
            normalized[_ALIAS_TO_FIELD[key]] = value
        else:
            msg = f"Unknown capability field: {key}"
            raise KeyError(msg)
    return normalized


class CachedModelCapabilities(CamelModel):
    """Cache entry for one probed (provider, model) pair."""

    provider: Provider
    model: str
    capabilities: ProbedCapabilities
    last_probed_at: int  # Unix ms
    probe_version: str
    source: CapabilitySource = CapabilitySource.PROBED


class ModelCapabilitiesCache(CamelModel):
    """The full capability cache file."""

    version: str = CACHE_VERSION
    last_updated: int = 0  # Unix ms
    models: dict[str, CachedModelCapabilities] = {}


@dataclass(frozen=True)
class StaticCapabilityOverride:
    """Known capabilities for models matching a pattern.

    A ``str`` pattern matches the model ID exactly; a compiled pattern is
    searched anywhere in the ID (anchor it with ``^`` for prefixes).
    """

    pattern: str | re.Pattern[str]
    capabilities: PartialCapabilities = field(default_factory=dict)
    provider: Provider | None = None

    def matches(self, provider: Provider, model: str) -> bool:
        if self.provider is not None and self.provider != provider:
            return False
        if isinstance(self.pattern, str):
            return self.pattern == model
        return self.pattern.search(model) is not None
