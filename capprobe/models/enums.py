"""Consolidated domain enums for capprobe."""

from enum import StrEnum


class Provider(StrEnum):
    """LLM providers that can be probed."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    XAI = "xai"
    OPENROUTER = "openrouter"
    FIREWORKS = "fireworks"
    OLLAMA = "ollama"
    LMSTUDIO = "lmstudio"
    VLLM = "vllm"
    MINIMAX = "minimax"
    LOCAL_OPENAI_COMPATIBLE = "local-openai-compatible"


# Providers that run on the user's machine and need no credentials
LOCAL_PROVIDERS: frozenset[Provider] = frozenset(
    {
        Provider.OLLAMA,
        Provider.LMSTUDIO,
        Provider.VLLM,
        Provider.LOCAL_OPENAI_COMPATIBLE,
    }
)


class ContentType(StrEnum):
    """Content carried by a probe request."""

    TEXT = "text"
    IMAGE = "image"
    PDF = "pdf"


class MessageShape(StrEnum):
    """Message envelope a model accepts.

    - OPENAI_PARTS: OpenAI-style content list of typed text/image_url parts
    - OPENAI_STRING: OpenAI-style with string content only
    - ANTHROPIC_CONTENT: Anthropic content blocks (text/image/document)
    - GEMINI_PARTS: Gemini parts array
    - CUSTOM: provider-specific format
    """

    OPENAI_PARTS = "openai.parts"
    OPENAI_STRING = "openai.string"
    ANTHROPIC_CONTENT = "anthropic.content"
    GEMINI_PARTS = "gemini.parts"
    CUSTOM = "provider.custom"
    UNKNOWN = "unknown"


class CompletionShape(StrEnum):
    """Streaming response framing a model produces."""

    OPENAI_STREAMING = "openai.streaming"  # data: {"choices":[{"delta":...}]}
    OPENAI_CHUNKS = "openai.chunks"
    ANTHROPIC_SSE = "anthropic.sse"  # event: message_start / content_block_delta
    GEMINI_STREAMING = "gemini.streaming"
    RAW_TEXT = "raw.text"
    UNKNOWN = "unknown"


class CapabilitySource(StrEnum):
    """Tier of the precedence chain that supplied a capability answer."""

    LOCAL_OVERRIDE = "local-override"
    PROBED = "probed"
    STATIC_OVERRIDE = "static-override"
    PROVIDER_DEFAULT = "provider-default"


class ProgressStatus(StrEnum):
    """Per-model progress in a batch probe run."""

    PROBING = "probing"
    DONE = "done"
    ERROR = "error"


class OutputFormat(StrEnum):
    """CLI output formats."""

    TABLE = "table"
    JSON = "json"
    MINIMAL = "minimal"
