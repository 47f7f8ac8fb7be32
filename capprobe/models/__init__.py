"""Domain models for capprobe."""

from capprobe.models.capabilities import (
    CACHE_VERSION,
    CachedModelCapabilities,
    ModelCapabilitiesCache,
    PartialCapabilities,
    ProbedCapabilities,
    StaticCapabilityOverride,
    default_capabilities,
)
from capprobe.models.enums import (
    LOCAL_PROVIDERS,
    CapabilitySource,
    CompletionShape,
    ContentType,
    MessageShape,
    OutputFormat,
    ProgressStatus,
    Provider,
)

__all__ = [
    "CACHE_VERSION",
    "LOCAL_PROVIDERS",
    "CachedModelCapabilities",
    "CapabilitySource",
    "CompletionShape",
    "ContentType",
    "MessageShape",
    "ModelCapabilitiesCache",
    "OutputFormat",
    "PartialCapabilities",
    "ProbedCapabilities",
    "ProgressStatus",
    "Provider",
    "StaticCapabilityOverride",
    "default_capabilities",
]
