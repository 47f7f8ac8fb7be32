"""Probe orchestrator.

Runs the probe session for one model (text gate, concurrent image and PDF
probes, schema and optional streaming probes), infers capabilities from
the results, and drives batches of models with progress reporting.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from contextlib import AsyncExitStack

from loguru import logger

from capprobe.models.capabilities import ProbedCapabilities, default_capabilities
from capprobe.models.enums import CompletionShape, MessageShape, ProgressStatus, Provider

from .client import ProbeHttpClient
from .runner import ProbeRunner, infer_completion_shape
from .steps import (
    ModelProbeResult,
    ProbeConfig,
    ProbeProgress,
    ProbeResult,
    ProbeSummary,
    ProbeTarget,
    ProbeWithRetryResult,
    ProgressCallback,
)

TEXT_FAILED_SKIP_MESSAGE = "Skipped: text probe failed"
PROBE_ERROR_MESSAGE = "Probe error"

KeyLookup = Callable[[Provider], str | None]
EndpointLookup = Callable[[Provider], str | None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def infer_capabilities(
    image_probe: ProbeWithRetryResult,
    pdf_probe: ProbeWithRetryResult,
    message_shape: MessageShape,
    completion_shape: CompletionShape,
) -> ProbedCapabilities:
    """Derive capabilities from the media probe outcomes."""
    supports_vision = image_probe.final_success
    pdf_variant = pdf_probe.successful_variant
    pdf_via_images = (
        pdf_probe.final_success and pdf_variant is not None and pdf_variant.as_pdf_images
    )
    image_variant = image_probe.successful_variant

    return ProbedCapabilities(
        supports_vision=supports_vision,
        supports_pdf_native=pdf_probe.final_success and not pdf_via_images,
        # A model that takes images can take rasterized PDF pages
        supports_pdf_as_images=pdf_via_images or supports_vision,
        requires_base64_images=image_variant is not None and image_variant.use_base64,
        requires_images_first=image_variant is not None and image_variant.images_first,
        message_shape=message_shape,
        completion_shape=completion_shape,
    )


async def _probe_media(
    runner: ProbeRunner, target: ProbeTarget
) -> tuple[ProbeWithRetryResult, ProbeWithRetryResult]:
    """Run the image and PDF probes concurrently.

    If either raises, the other is cancelled and awaited before the error
    propagates, so no request outlives the session.
    """
    tasks = [
        asyncio.create_task(runner.probe_image(target)),
        asyncio.create_task(runner.probe_pdf(target)),
    ]
    try:
        image_probe, pdf_probe = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return image_probe, pdf_probe


async def _run_session(
    runner: ProbeRunner, target: ProbeTarget, config: ProbeConfig
) -> ModelProbeResult:
    start = time.monotonic()

    text_probe = await runner.probe_text(target)
    if not text_probe.success:
        logger.info(
            f"Text probe failed for {target.provider}:{target.model}: {text_probe.error_message}"
        )
        return ModelProbeResult(
            provider=target.provider,
            model=target.model,
            probed_at=_now_ms(),
            text_probe=text_probe,
            image_probe=ProbeWithRetryResult.skipped(TEXT_FAILED_SKIP_MESSAGE),
            pdf_probe=ProbeWithRetryResult.skipped(TEXT_FAILED_SKIP_MESSAGE),
            capabilities=default_capabilities(),
            total_probe_time_ms=int((time.monotonic() - start) * 1000),
        )

    image_probe, pdf_probe = await _probe_media(runner, target)

    schema_probe, message_shape = runner.probe_schema(target, text_probe)

    streaming_probe: ProbeResult | None = None
    if config.skip_streaming_probe:
        completion_shape = infer_completion_shape(target.provider)
    else:
        streaming_probe, completion_shape = await runner.probe_streaming(target)

    capabilities = infer_capabilities(image_probe, pdf_probe, message_shape, completion_shape)

    return ModelProbeResult(
        provider=target.provider,
        model=target.model,
        probed_at=_now_ms(),
        text_probe=text_probe,
        image_probe=image_probe,
        pdf_probe=pdf_probe,
        schema_probe=schema_probe,
        streaming_probe=streaming_probe,
        capabilities=capabilities,
        total_probe_time_ms=int((time.monotonic() - start) * 1000),
    )


async def probe_model(
    target: ProbeTarget,
    config: ProbeConfig | None = None,
    client: ProbeHttpClient | None = None,
) -> ModelProbeResult:
    """Run the full probe session for one model.

    Args:
        target: Provider, model, key and endpoint to probe
        config: Probe configuration (defaults apply when omitted)
        client: Shared HTTP client; a private one is created and closed otherwise
    """
    config = config or ProbeConfig()
    async with AsyncExitStack() as stack:
        if client is None:
            client = await stack.enter_async_context(ProbeHttpClient(timeout_ms=config.timeout_ms))
        runner = ProbeRunner(client, config)
        if config.verbose_logging:
            logger.debug(f"Probing {target.provider}:{target.model}")
        result = await _run_session(runner, target, config)
        if config.verbose_logging:
            logger.debug(
                f"Probed {target.provider}:{target.model} in {result.total_probe_time_ms}ms"
            )
        return result


def _failed_result(provider: Provider, model: str, error: Exception) -> ModelProbeResult:
    return ModelProbeResult(
        provider=provider,
        model=model,
        probed_at=_now_ms(),
        text_probe=ProbeResult(success=False, error_message=str(error)),
        image_probe=ProbeWithRetryResult.skipped(PROBE_ERROR_MESSAGE),
        pdf_probe=ProbeWithRetryResult.skipped(PROBE_ERROR_MESSAGE),
        capabilities=default_capabilities(),
        total_probe_time_ms=0,
    )


async def probe_models(
    models: list[tuple[Provider, str]],
    key_lookup: KeyLookup,
    endpoint_lookup: EndpointLookup,
    config: ProbeConfig | None = None,
    on_progress: ProgressCallback | None = None,
    client: ProbeHttpClient | None = None,
) -> list[ModelProbeResult]:
    """Probe models one after another, in input order.

    An unexpected error while probing one model yields a failed result for
    it and the batch continues.
    """
    config = config or ProbeConfig()
    results: list[ModelProbeResult] = []
    total = len(models)

    def report(index: int, provider: Provider, model: str, status: ProgressStatus) -> None:
        if on_progress is not None:
            on_progress(
                ProbeProgress(
                    current=index, total=total, provider=provider, model=model, status=status
                )
            )

    async with AsyncExitStack() as stack:
        if client is None:
            client = await stack.enter_async_context(ProbeHttpClient(timeout_ms=config.timeout_ms))

        for index, (provider, model) in enumerate(models, start=1):
            report(index, provider, model, ProgressStatus.PROBING)
            try:
                target = ProbeTarget(
                    provider=provider,
                    model=model,
                    api_key=key_lookup(provider),
                    endpoint=endpoint_lookup(provider),
                )
                result = await probe_model(target, config, client=client)
            except Exception as e:
                logger.exception(f"Probe failed unexpectedly for {provider}:{model}")
                results.append(_failed_result(provider, model, e))
                report(index, provider, model, ProgressStatus.ERROR)
            else:
                results.append(result)
                report(index, provider, model, ProgressStatus.DONE)

    return results


def summarize_probe_result(result: ModelProbeResult) -> ProbeSummary:
    """Condense a probe result into yes/no/partial answers and an issue list."""
    issues: list[str] = []
    if not result.text_probe.success:
        issues.append(f"Text probe failed: {result.text_probe.error_message or 'unknown error'}")
    image_error = result.image_probe.primary_result.error_message
    if not result.image_probe.final_success and image_error:
        issues.append(f"Image: {image_error}")
    pdf_error = result.pdf_probe.primary_result.error_message
    if not result.pdf_probe.final_success and pdf_error:
        issues.append(f"PDF: {pdf_error}")

    caps = result.capabilities
    vision = "no"
    if caps.supports_vision:
        vision = "partial" if caps.requires_base64_images or caps.requires_images_first else "yes"

    pdf = "no"
    if caps.supports_pdf_native:
        pdf = "native"
    elif caps.supports_pdf_as_images:
        pdf = "images"

    return ProbeSummary(success=result.text_probe.success, vision=vision, pdf=pdf, issues=issues)
