"""Individual probes against one model endpoint.

Every probe returns a value describing what happened; expected failures
(HTTP errors, timeouts, connection failures) never raise.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from loguru import logger

from capprobe.models.enums import CompletionShape, ContentType, MessageShape, Provider

from .adapters import (
    MediaContent,
    build_auth_headers,
    build_probe_payload,
    build_request_body,
    resolve_endpoint,
)
from .client import (
    ProbeHttpClient,
    ProbeHttpResponse,
    ProbeRequest,
    classify_schema_error,
    extract_error,
    is_feature_not_supported,
)
from .fixtures import (
    PROBE_PROMPTS,
    TINY_PDF_BASE64,
    TINY_PDF_MIME_TYPE,
    TINY_PNG_BASE64,
    TINY_PNG_MIME_TYPE,
    tiny_png_data_url,
)
from .steps import ProbeConfig, ProbeResult, ProbeTarget, ProbeVariant, ProbeWithRetryResult
from .strategy import VariantStrategy, get_variant_strategy

_PROVIDER_MESSAGE_SHAPES: dict[Provider, MessageShape] = {
    Provider.OPENAI: MessageShape.OPENAI_PARTS,
    Provider.ANTHROPIC: MessageShape.ANTHROPIC_CONTENT,
    Provider.GEMINI: MessageShape.GEMINI_PARTS,
    Provider.XAI: MessageShape.OPENAI_PARTS,
    Provider.OPENROUTER: MessageShape.OPENAI_PARTS,
    Provider.FIREWORKS: MessageShape.OPENAI_PARTS,
    Provider.OLLAMA: MessageShape.OPENAI_PARTS,
    Provider.LMSTUDIO: MessageShape.OPENAI_PARTS,
    Provider.VLLM: MessageShape.OPENAI_PARTS,
    Provider.LOCAL_OPENAI_COMPATIBLE: MessageShape.OPENAI_PARTS,
    Provider.MINIMAX: MessageShape.OPENAI_STRING,
}

_SSE_DATA_RE = re.compile(r"data:\s*({.+})")


def infer_message_shape(provider: Provider) -> MessageShape:
    return _PROVIDER_MESSAGE_SHAPES.get(provider, MessageShape.UNKNOWN)


def infer_completion_shape(provider: Provider) -> CompletionShape:
    match provider:
        case Provider.ANTHROPIC:
            return CompletionShape.ANTHROPIC_SSE
        case Provider.GEMINI:
            return CompletionShape.GEMINI_STREAMING
        case _:
            return CompletionShape.OPENAI_STREAMING


def detect_streaming_shape(body: str, provider: Provider) -> CompletionShape:
    """Classify the framing of the first chunk of a streamed response."""
    if "data:" not in body:
        return CompletionShape.RAW_TEXT

    match = _SSE_DATA_RE.search(body)
    if match is None:
        if "event:" in body:
            return CompletionShape.ANTHROPIC_SSE
        return infer_completion_shape(provider)

    try:
        parsed = json.loads(match.group(1))
    except ValueError:
        return infer_completion_shape(provider)

    if isinstance(parsed, dict):
        if parsed.get("type") in ("content_block_delta", "message_start"):
            return CompletionShape.ANTHROPIC_SSE
        if isinstance(parsed.get("choices"), list):
            return CompletionShape.OPENAI_STREAMING
    return infer_completion_shape(provider)


def has_generated_content(body_json: Any) -> bool:
    """True when an OpenAI or Anthropic completion body carries non-empty text."""
    if not isinstance(body_json, dict):
        return False

    choices = body_json.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if isinstance(message, dict):
            content = message.get("content")
            return isinstance(content, str) and len(content) > 0

    blocks = body_json.get("content")
    if isinstance(blocks, list) and blocks and isinstance(blocks[0], dict):
        block = blocks[0]
        if block.get("type") == "text":
            text = block.get("text")
            return isinstance(text, str) and len(text) > 0

    return False


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _result_from_response(response: ProbeHttpResponse, latency_ms: int) -> ProbeResult:
    if response.ok:
        return ProbeResult(
            success=True,
            http_status=response.status,
            response_started=True,
            content_generated=has_generated_content(response.body_json),
            latency_ms=latency_ms,
        )

    if response.timed_out:
        return ProbeResult(
            success=False,
            error_code="timeout",
            error_message=response.status_text,
            latency_ms=latency_ms,
        )

    error = extract_error(response)
    return ProbeResult(
        success=False,
        http_status=response.status,
        error_code=error.error_code,
        error_message=error.error_message,
        schema_error=classify_schema_error(response),
        feature_not_supported=is_feature_not_supported(response),
        latency_ms=latency_ms,
    )


class ProbeRunner:
    """Runs the individual probes for one target through a shared client.

    Args:
        client: HTTP client used for every request
        config: Timeouts, retry limits and delays
        sleep: Awaitable sleep taking seconds (tests pass a no-op)
    """

    def __init__(
        self,
        client: ProbeHttpClient,
        config: ProbeConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.config = config
        self._sleep = sleep

    async def _retry_delay(self) -> None:
        await self._sleep(self.config.retry_delay_ms / 1000)

    async def _send(
        self,
        target: ProbeTarget,
        messages: list[dict[str, Any]],
        stream: bool = False,
    ) -> ProbeHttpResponse:
        request = ProbeRequest(
            url=resolve_endpoint(target.provider, target.endpoint),
            headers=build_auth_headers(target.provider, target.api_key),
            body=build_probe_payload(target.provider, target.model, messages, stream=stream),
            stream=stream,
        )
        return await self.client.execute(request, timeout_ms=self.config.timeout_ms)

    async def _attempt(self, target: ProbeTarget, messages: list[dict[str, Any]]) -> ProbeResult:
        start = time.monotonic()
        try:
            response = await self._send(target, messages)
        except httpx.TransportError as e:
            logger.debug(f"Probe request for {target.provider}:{target.model} failed: {e}")
            return ProbeResult(
                success=False,
                error_message=str(e) or type(e).__name__,
                latency_ms=_elapsed_ms(start),
            )
        return _result_from_response(response, _elapsed_ms(start))

    def _media_messages(
        self, target: ProbeTarget, content_type: ContentType, variant: ProbeVariant
    ) -> list[dict[str, Any]]:
        prompt = PROBE_PROMPTS[content_type]
        if variant.as_pdf_images:
            # The tiny PNG stands in for a rasterized PDF page
            content_type = ContentType.IMAGE

        if content_type == ContentType.IMAGE:
            if variant.use_base64:
                media = MediaContent(base64=TINY_PNG_BASE64, mime_type=TINY_PNG_MIME_TYPE)
            else:
                media = MediaContent(data_url=tiny_png_data_url())
        else:
            media = MediaContent(base64=TINY_PDF_BASE64, mime_type=TINY_PDF_MIME_TYPE)

        return build_request_body(
            target.provider,
            prompt,
            content_type,
            media,
            images_first=variant.images_first,
        )

    async def _probe_variant(
        self, target: ProbeTarget, content_type: ContentType, variant: ProbeVariant
    ) -> ProbeResult:
        return await self._attempt(target, self._media_messages(target, content_type, variant))

    async def _probe_with_variants(
        self, target: ProbeTarget, strategy: VariantStrategy
    ) -> ProbeWithRetryResult:
        primary_variant = strategy.variants[0]
        primary = await self._probe_variant(target, strategy.content_type, primary_variant)
        if primary.success:
            return ProbeWithRetryResult(
                primary_result=primary,
                final_success=True,
                successful_variant=primary_variant,
            )

        retry_results: list[ProbeResult] = []
        successful_variant: ProbeVariant | None = None

        if strategy.should_retry(primary):
            for variant in strategy.retry_variants(self.config):
                await self._retry_delay()
                logger.debug(
                    f"Retrying {strategy.content_type} probe for {target.model} with {variant!r}"
                )
                result = await self._probe_variant(target, strategy.content_type, variant)
                retry_results.append(result)
                if result.success:
                    successful_variant = variant
                    break

        return ProbeWithRetryResult(
            primary_result=primary,
            retry_results=retry_results or None,
            final_success=successful_variant is not None,
            successful_variant=successful_variant,
        )

    async def probe_text(self, target: ProbeTarget) -> ProbeResult:
        """Plain text sanity check; a failure ends the session."""
        messages = build_request_body(
            target.provider, PROBE_PROMPTS[ContentType.TEXT], ContentType.TEXT
        )
        return await self._attempt(target, messages)

    async def probe_image(self, target: ProbeTarget) -> ProbeWithRetryResult:
        return await self._probe_with_variants(target, get_variant_strategy(ContentType.IMAGE))

    async def probe_pdf(self, target: ProbeTarget) -> ProbeWithRetryResult:
        """Native PDF first, then one rasterized-page fallback."""
        return await self._probe_with_variants(target, get_variant_strategy(ContentType.PDF))

    def probe_schema(
        self, target: ProbeTarget, text_result: ProbeResult
    ) -> tuple[ProbeResult, MessageShape]:
        """Determine the message shape from the provider and the text probe.

        No request is made: the text probe already exercised the plain
        message envelope, and its schema error (if any) is the only
        evidence available about string vs. array content.
        """
        shape = infer_message_shape(target.provider)
        if text_result.success and shape == MessageShape.UNKNOWN:
            shape = MessageShape.OPENAI_PARTS

        if text_result.schema_error:
            if "string" in text_result.schema_error:
                shape = MessageShape.OPENAI_STRING
            elif "array" in text_result.schema_error:
                shape = MessageShape.OPENAI_PARTS

        return text_result, shape

    async def probe_streaming(self, target: ProbeTarget) -> tuple[ProbeResult, CompletionShape]:
        """Stream a text request and classify the first chunk's framing."""
        messages = build_request_body(
            target.provider, PROBE_PROMPTS[ContentType.TEXT], ContentType.TEXT
        )
        start = time.monotonic()
        try:
            response = await self._send(target, messages, stream=True)
        except httpx.TransportError as e:
            logger.debug(f"Streaming probe for {target.provider}:{target.model} failed: {e}")
            result = ProbeResult(
                success=False,
                error_message=str(e) or type(e).__name__,
                latency_ms=_elapsed_ms(start),
            )
            return result, CompletionShape.UNKNOWN

        latency_ms = _elapsed_ms(start)
        if not response.ok:
            return _result_from_response(response, latency_ms), CompletionShape.UNKNOWN

        result = ProbeResult(
            success=True,
            http_status=response.status,
            response_started=response.stream_started,
            content_generated=len(response.body) > 0,
            latency_ms=latency_ms,
        )
        return result, detect_streaming_shape(response.body, target.provider)
