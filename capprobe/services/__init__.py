"""Capability probing and caching services."""

from capprobe.services.capability_cache import CacheStats, CapabilityCache
from capprobe.services.credentials import resolve_api_keys
from capprobe.services.quick_list import QuickListEntry, resolve_quick_list

__all__ = [
    "CacheStats",
    "CapabilityCache",
    "QuickListEntry",
    "resolve_api_keys",
    "resolve_quick_list",
]
