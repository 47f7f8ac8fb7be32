"""Tests for the probe orchestrator and capability inference."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from conftest import RecordingHandler, error_response, openai_ok, request_kind

from capprobe.models.capabilities import default_capabilities
from capprobe.models.enums import CompletionShape, MessageShape, ProgressStatus, Provider
from capprobe.services.probe.client import ProbeHttpClient
from capprobe.services.probe.service import (
    infer_capabilities,
    probe_model,
    probe_models,
    summarize_probe_result,
)
from capprobe.services.probe.steps import (
    ProbeConfig,
    ProbeResult,
    ProbeTarget,
    ProbeVariant,
    ProbeWithRetryResult,
)

OK = ProbeResult(success=True, http_status=200)
FAIL = ProbeResult(success=False, http_status=400, error_message="nope")


def _retry(success: bool, variant: ProbeVariant | None = None) -> ProbeWithRetryResult:
    return ProbeWithRetryResult(
        primary_result=OK if success else FAIL,
        final_success=success,
        successful_variant=variant,
    )


def _client(handler) -> ProbeHttpClient:
    return ProbeHttpClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def config() -> ProbeConfig:
    return ProbeConfig(timeout_ms=2000, retry_delay_ms=0)


class TestInferCapabilities:
    """Tests for infer_capabilities."""

    def test_nothing_works(self):
        caps = infer_capabilities(
            _retry(False),
            _retry(False),
            MessageShape.OPENAI_PARTS,
            CompletionShape.OPENAI_STREAMING,
        )
        assert not caps.supports_vision
        assert not caps.supports_pdf_native
        assert not caps.supports_pdf_as_images
        assert not caps.requires_base64_images
        assert not caps.requires_images_first

    def test_vision_implies_pdf_as_images(self):
        image = _retry(True, ProbeVariant(use_base64=False, images_first=True))
        caps = infer_capabilities(
            image, _retry(False), MessageShape.OPENAI_PARTS, CompletionShape.OPENAI_STREAMING
        )
        assert caps.supports_vision
        assert caps.supports_pdf_as_images
        assert not caps.supports_pdf_native
        assert not caps.requires_base64_images
        assert caps.requires_images_first

    def test_native_pdf(self):
        pdf = _retry(True, ProbeVariant(use_base64=True, images_first=False))
        caps = infer_capabilities(
            _retry(False), pdf, MessageShape.ANTHROPIC_CONTENT, CompletionShape.ANTHROPIC_SSE
        )
        assert caps.supports_pdf_native
        assert not caps.supports_pdf_as_images
        assert caps.message_shape == MessageShape.ANTHROPIC_CONTENT
        assert caps.completion_shape == CompletionShape.ANTHROPIC_SSE

    def test_pdf_via_fallback(self):
        pdf = _retry(True, ProbeVariant(use_base64=True, images_first=False, as_pdf_images=True))
        caps = infer_capabilities(
            _retry(False), pdf, MessageShape.OPENAI_PARTS, CompletionShape.OPENAI_STREAMING
        )
        assert not caps.supports_pdf_native
        assert caps.supports_pdf_as_images


class TestProbeModel:
    """Tests for probe_model."""

    async def test_gpt4o_full_success(self, config):
        handler = RecordingHandler(
            {"text": openai_ok(), "image": openai_ok("red"), "pdf": openai_ok()}
        )
        target = ProbeTarget(provider=Provider.OPENAI, model="gpt-4o", api_key="sk")

        async with _client(handler) as client:
            result = await probe_model(target, config, client=client)

        assert result.text_probe.success
        assert result.text_probe.content_generated
        assert result.image_probe.final_success
        assert result.pdf_probe.final_success
        assert result.schema_probe is not None
        assert result.streaming_probe is None
        caps = result.capabilities
        assert caps.supports_vision
        assert caps.supports_pdf_native
        assert caps.supports_pdf_as_images
        assert caps.requires_base64_images
        assert not caps.requires_images_first
        assert caps.message_shape == MessageShape.OPENAI_PARTS
        assert caps.completion_shape == CompletionShape.OPENAI_STREAMING
        assert result.probe_version == "1.0.0"
        assert sorted(handler.kinds()) == ["image", "pdf", "text"]

    async def test_text_failure_skips_everything(self, config):
        handler = RecordingHandler({"text": error_response(401, "Incorrect API key")})
        target = ProbeTarget(provider=Provider.OPENAI, model="gpt-4o")

        async with _client(handler) as client:
            result = await probe_model(target, config, client=client)

        assert len(handler.requests) == 1
        assert result.capabilities == default_capabilities()
        assert not result.image_probe.final_success
        assert result.image_probe.primary_result.error_message == "Skipped: text probe failed"
        assert result.pdf_probe.primary_result.error_message == "Skipped: text probe failed"
        assert result.schema_probe is None
        assert result.streaming_probe is None

    async def test_pdf_fallback_session(self, config):
        handler = RecordingHandler(
            {
                "text": openai_ok(),
                "image": openai_ok("red"),
                "pdf": error_response(400, "This model does not support PDF input"),
                "pdf-as-image": openai_ok(),
            }
        )
        target = ProbeTarget(provider=Provider.OPENAI, model="gpt-4o-mini")

        async with _client(handler) as client:
            result = await probe_model(target, config, client=client)

        assert handler.kinds().count("pdf-as-image") == 1
        assert not result.capabilities.supports_pdf_native
        assert result.capabilities.supports_pdf_as_images

    async def test_text_only_model(self, config):
        handler = RecordingHandler(
            {
                "text": openai_ok(),
                "image": error_response(400, "model does not support image input"),
                "pdf": error_response(404, "not found"),
            }
        )
        target = ProbeTarget(provider=Provider.OLLAMA, model="llama3", endpoint="http://box:11434")

        async with _client(handler) as client:
            result = await probe_model(target, config, client=client)

        assert not result.capabilities.supports_vision
        assert not result.capabilities.supports_pdf_as_images
        assert all(str(r.url) == "http://box:11434/v1/chat/completions" for r in handler.requests)

    async def test_streaming_probe_when_enabled(self):
        def handler(request):
            if json.loads(request.content)["stream"]:
                chunk = 'data: {"choices": [{"delta": {"content": "O"}}]}\n\n'
                return httpx.Response(200, text=chunk)
            return openai_ok()

        config = ProbeConfig(retry_delay_ms=0, skip_streaming_probe=False)
        target = ProbeTarget(provider=Provider.GEMINI, model="gemini-1.5-pro")

        async with _client(handler) as client:
            result = await probe_model(target, config, client=client)

        assert result.streaming_probe is not None
        assert result.streaming_probe.success
        assert result.capabilities.completion_shape == CompletionShape.OPENAI_STREAMING
        assert result.capabilities.message_shape == MessageShape.GEMINI_PARTS

    async def test_skipped_streaming_infers_from_provider(self, config):
        handler = RecordingHandler({"text": openai_ok(), "image": openai_ok(), "pdf": openai_ok()})
        target = ProbeTarget(provider=Provider.GEMINI, model="gemini-1.5-pro")

        async with _client(handler) as client:
            result = await probe_model(target, config, client=client)

        assert result.capabilities.completion_shape == CompletionShape.GEMINI_STREAMING

    async def test_result_is_frozen(self, config):
        handler = RecordingHandler({"text": error_response(500, "boom")})
        async with _client(handler) as client:
            target = ProbeTarget(provider=Provider.XAI, model="grok-2")
            result = await probe_model(target, config, client=client)

        with pytest.raises(ValueError):
            result.model = "other"


class TestProbeModels:
    """Tests for probe_models."""

    async def test_sequential_with_progress(self, config):
        handler = RecordingHandler({"text": openai_ok(), "image": openai_ok(), "pdf": openai_ok()})
        events = []

        async with _client(handler) as client:
            results = await probe_models(
                [(Provider.OPENAI, "gpt-4o"), (Provider.XAI, "grok-2")],
                lambda provider: "key",
                lambda provider: None,
                config,
                on_progress=events.append,
                client=client,
            )

        assert [(r.provider, r.model) for r in results] == [
            (Provider.OPENAI, "gpt-4o"),
            (Provider.XAI, "grok-2"),
        ]
        assert [(e.current, e.total, e.status) for e in events] == [
            (1, 2, ProgressStatus.PROBING),
            (1, 2, ProgressStatus.DONE),
            (2, 2, ProgressStatus.PROBING),
            (2, 2, ProgressStatus.DONE),
        ]

    async def test_lookups_supply_key_and_endpoint(self, config):
        handler = RecordingHandler({"text": error_response(401, "bad key")})

        async with _client(handler) as client:
            await probe_models(
                [(Provider.VLLM, "qwen")],
                {Provider.VLLM: "vk"}.get,
                {Provider.VLLM: "http://gpu:8000"}.get,
                config,
                client=client,
            )

        [request] = handler.requests
        assert str(request.url) == "http://gpu:8000/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer vk"

    async def test_unexpected_error_becomes_failed_result(self, config):
        events = []
        with patch(
            "capprobe.services.probe.service.probe_model",
            new=AsyncMock(side_effect=RuntimeError("kaboom")),
        ):
            async with _client(lambda r: openai_ok()) as client:
                results = await probe_models(
                    [(Provider.OPENAI, "gpt-4o")],
                    lambda provider: None,
                    lambda provider: None,
                    config,
                    on_progress=events.append,
                    client=client,
                )

        [result] = results
        assert result.text_probe.error_message == "kaboom"
        assert result.image_probe.primary_result.error_message == "Probe error"
        assert result.pdf_probe.primary_result.error_message == "Probe error"
        assert result.total_probe_time_ms == 0
        assert result.capabilities == default_capabilities()
        assert [e.status for e in events] == [ProgressStatus.PROBING, ProgressStatus.ERROR]

    async def test_failed_media_request_cancels_its_sibling(self, config):
        """A model's PDF request must not outlive its session into the next model."""
        events: list[str] = []

        async def handler(request):
            model = json.loads(request.content)["model"]
            kind = request_kind(request)
            if kind == "text":
                events.append(f"{model}:text")
            elif model == "a" and kind == "image":
                raise RuntimeError("image endpoint exploded")
            elif kind == "pdf":
                await asyncio.sleep(0.2)
                events.append(f"{model}:pdf-done")
            return openai_ok()

        async with _client(handler) as client:
            results = await probe_models(
                [(Provider.OPENAI, "a"), (Provider.OPENAI, "b")],
                lambda provider: "key",
                lambda provider: None,
                config,
                client=client,
            )

        assert events == ["a:text", "b:text", "b:pdf-done"]
        assert results[0].text_probe.error_message == "image endpoint exploded"
        assert results[1].pdf_probe.final_success
        assert asyncio.all_tasks() == {asyncio.current_task()}

    async def test_empty_batch(self, config):
        assert await probe_models([], lambda p: None, lambda p: None, config) == []


class TestSummarizeProbeResult:
    """Tests for summarize_probe_result."""

    async def _result(self, handler, provider=Provider.OPENAI, model="gpt-4o"):
        async with _client(handler) as client:
            return await probe_model(
                ProbeTarget(provider=provider, model=model),
                ProbeConfig(retry_delay_ms=0),
                client=client,
            )

    async def test_text_failure(self):
        handler = RecordingHandler({"text": error_response(401, "Incorrect API key")})
        result = await self._result(handler)
        summary = summarize_probe_result(result)

        assert not summary.success
        assert summary.vision == "no"
        assert summary.pdf == "no"
        assert summary.issues[0] == "Text probe failed: Incorrect API key"
        assert "Image: Skipped: text probe failed" in summary.issues
        assert "PDF: Skipped: text probe failed" in summary.issues

    async def test_vision_with_base64_quirk_is_partial(self):
        handler = RecordingHandler({"text": openai_ok(), "image": openai_ok(), "pdf": openai_ok()})
        summary = summarize_probe_result(await self._result(handler))

        assert summary.success
        assert summary.vision == "partial"
        assert summary.pdf == "native"
        assert summary.issues == []

    async def test_pdf_as_images(self):
        handler = RecordingHandler(
            {
                "text": openai_ok(),
                "image": error_response(403, "forbidden"),
                "pdf": error_response(400, "does not support pdf"),
                "pdf-as-image": openai_ok(),
            }
        )
        summary = summarize_probe_result(await self._result(handler))

        assert summary.vision == "no"
        assert summary.pdf == "images"
        # The fallback succeeded, so only the image failure is an issue
        assert summary.issues == ["Image: forbidden"]
