"""Provider-specific endpoints, headers and message formatting for probes."""

from dataclasses import dataclass
from typing import Any

from capprobe.models.enums import LOCAL_PROVIDERS, ContentType, Provider

ANTHROPIC_VERSION = "2023-06-01"
OPENROUTER_REFERER = "https://llm-sv-tabs.local"
OPENROUTER_TITLE = "LLM-SV-Tabs Probe"

# Probes only need a token or two back
PROBE_MAX_TOKENS = 50

PROVIDER_ENDPOINTS: dict[Provider, str] = {
    Provider.OPENAI: "https://api.openai.com/v1/chat/completions",
    Provider.ANTHROPIC: "https://api.anthropic.com/v1/messages",
    Provider.GEMINI: "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions",
    Provider.XAI: "https://api.x.ai/v1/chat/completions",
    Provider.OPENROUTER: "https://openrouter.ai/api/v1/chat/completions",
    Provider.FIREWORKS: "https://api.fireworks.ai/inference/v1/chat/completions",
    Provider.OLLAMA: "http://localhost:11434/v1/chat/completions",
    Provider.LMSTUDIO: "http://localhost:1234/v1/chat/completions",
    Provider.VLLM: "http://localhost:8000/v1/chat/completions",
    Provider.MINIMAX: "https://api.minimax.chat/v1/text/chatcompletion_v2",
    Provider.LOCAL_OPENAI_COMPATIBLE: "http://localhost:8080/v1/chat/completions",
}

_DEFAULT_MIME_TYPES: dict[ContentType, str] = {
    ContentType.IMAGE: "image/png",
    ContentType.PDF: "application/pdf",
}


@dataclass(frozen=True)
class MediaContent:
    """Media attached to a probe message, as raw base64 or a data URL."""

    base64: str | None = None
    data_url: str | None = None
    mime_type: str | None = None

    def as_data_url(self, content_type: ContentType) -> str:
        if self.data_url:
            return self.data_url
        return f"data:{self.mime_for(content_type)};base64,{self.base64}"

    def as_base64(self) -> str:
        if self.base64:
            return self.base64
        if self.data_url and "," in self.data_url:
            return self.data_url.split(",", 1)[1]
        return ""

    def mime_for(self, content_type: ContentType) -> str:
        return self.mime_type or _DEFAULT_MIME_TYPES[content_type]


def resolve_endpoint(provider: Provider, custom_endpoint: str | None = None) -> str:
    """Return the chat endpoint URL for a provider.

    A custom endpoint may be a bare base URL; the provider's chat path is
    appended unless one is already present.
    """
    if not custom_endpoint:
        return PROVIDER_ENDPOINTS[provider]

    normalized = custom_endpoint.removesuffix("/")
    if "/chat/completions" in normalized or "/messages" in normalized:
        return normalized
    if provider == Provider.ANTHROPIC:
        return f"{normalized}/v1/messages"
    return f"{normalized}/v1/chat/completions"


def build_auth_headers(provider: Provider, api_key: str | None = None) -> dict[str, str]:
    """Build request headers for a provider. A missing key sends no auth header."""
    headers = {"Content-Type": "application/json"}

    match provider:
        case Provider.ANTHROPIC:
            if api_key:
                headers["x-api-key"] = api_key
            headers["anthropic-version"] = ANTHROPIC_VERSION
        case Provider.OPENROUTER:
            if api_key:
                headers["Authorization"] = f"Bearer {api_key}"
            headers["HTTP-Referer"] = OPENROUTER_REFERER
            headers["X-Title"] = OPENROUTER_TITLE
        case _:
            if api_key:
                headers["Authorization"] = f"Bearer {api_key}"

    return headers


def _openai_media_part(content_type: ContentType, media: MediaContent) -> dict[str, Any]:
    url = media.as_data_url(content_type)
    if content_type == ContentType.IMAGE:
        return {"type": "image_url", "image_url": {"url": url}}
    return {"type": "file", "file": {"url": url, "type": media.mime_for(content_type)}}


def _anthropic_media_block(content_type: ContentType, media: MediaContent) -> dict[str, Any]:
    return {
        "type": "image" if content_type == ContentType.IMAGE else "document",
        "source": {
            "type": "base64",
            "media_type": media.mime_for(content_type),
            "data": media.as_base64(),
        },
    }


def build_request_body(
    provider: Provider,
    prompt: str,
    content_type: ContentType,
    media: MediaContent | None = None,
    images_first: bool = False,
) -> list[dict[str, Any]]:
    """Build the messages list for a probe request.

    Always a single user message. Text probes (or probes without media)
    send string content; media probes send a text part and a media part,
    media first when ``images_first`` is set.
    """
    if content_type == ContentType.TEXT or media is None:
        return [{"role": "user", "content": prompt}]

    text_part = {"type": "text", "text": prompt}
    if provider == Provider.ANTHROPIC:
        media_part = _anthropic_media_block(content_type, media)
    else:
        # Gemini is reached through its OpenAI-compatible endpoint
        media_part = _openai_media_part(content_type, media)

    parts = [media_part, text_part] if images_first else [text_part, media_part]
    return [{"role": "user", "content": parts}]


def token_limit_field(provider: Provider) -> str:
    """Name of the max-tokens field; newer OpenAI models reject ``max_tokens``."""
    return "max_completion_tokens" if provider == Provider.OPENAI else "max_tokens"


def build_probe_payload(
    provider: Provider,
    model: str,
    messages: list[dict[str, Any]],
    stream: bool = False,
) -> dict[str, Any]:
    return {
        "model": model,
        "messages": messages,
        token_limit_field(provider): PROBE_MAX_TOKENS,
        "stream": stream,
    }


def provider_requires_api_key(provider: Provider) -> bool:
    return provider not in LOCAL_PROVIDERS


def provider_requires_endpoint(provider: Provider) -> bool:
    return provider in LOCAL_PROVIDERS
