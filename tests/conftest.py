"""Pytest fixtures for capprobe tests."""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from capprobe.models.capabilities import ProbedCapabilities, default_capabilities
from capprobe.models.enums import Provider
from capprobe.services.probe.client import ProbeHttpClient
from capprobe.services.probe.runner import ProbeRunner
from capprobe.services.probe.steps import (
    ModelProbeResult,
    ProbeConfig,
    ProbeResult,
    ProbeTarget,
    ProbeVariant,
    ProbeWithRetryResult,
)

API_KEY_ENV_VARS = [
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "XAI_API_KEY",
    "OPENROUTER_API_KEY",
    "FIREWORKS_API_KEY",
    "OLLAMA_API_KEY",
    "LMSTUDIO_API_KEY",
    "VLLM_API_KEY",
    "MINIMAX_API_KEY",
    "LOCAL_OPENAI_API_KEY",
    "QUICK_LIST_JSON",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real keys and quick lists from the developer's shell out of tests."""
    for name in API_KEY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


Handler = Callable[[httpx.Request], httpx.Response]


def openai_ok(content: str = "OK") -> httpx.Response:
    message = {"role": "assistant", "content": content}
    return httpx.Response(200, json={"choices": [{"message": message}]})


def anthropic_ok(text: str = "OK") -> httpx.Response:
    body = {"type": "message", "content": [{"type": "text", "text": text}]}
    return httpx.Response(200, json=body)


def error_response(
    status: int, message: str, code: str = "invalid_request_error"
) -> httpx.Response:
    return httpx.Response(status, json={"error": {"message": message, "type": code}})


def request_kind(request: httpx.Request) -> str:
    """Classify a captured probe request as text, image, pdf or pdf-as-image."""
    body = json.loads(request.content)
    content = body["messages"][0]["content"]
    if isinstance(content, str):
        return "text"
    media = next(part for part in content if part["type"] != "text")
    if media["type"] in ("image_url", "image"):
        prompt = next(part for part in content if part["type"] == "text")["text"]
        return "pdf-as-image" if "PDF" in prompt else "image"
    return "pdf"


class RecordingHandler:
    """MockTransport handler that records requests and dispatches by kind."""

    def __init__(self, responses: dict[str, Handler | httpx.Response]):
        self.responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses[request_kind(request)]
        if callable(response):
            return response(request)
        # A response object is single-use once a client has bound it
        return httpx.Response(
            response.status_code, headers=response.headers, content=response.content
        )

    def kinds(self) -> list[str]:
        return [request_kind(r) for r in self.requests]

    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def probe_config() -> ProbeConfig:
    return ProbeConfig(timeout_ms=2000, retry_delay_ms=0)


@pytest.fixture
def openai_target() -> ProbeTarget:
    return ProbeTarget(provider=Provider.OPENAI, model="gpt-4o", api_key="sk-test")


@pytest.fixture
def make_runner(probe_config):
    """Build a ProbeRunner whose client talks to a MockTransport handler."""

    def _make(handler, config: ProbeConfig | None = None) -> ProbeRunner:
        client = ProbeHttpClient(timeout_ms=2000, transport=httpx.MockTransport(handler))
        return ProbeRunner(client, config or probe_config, sleep=no_sleep)

    return _make


@pytest.fixture
def make_client():
    def _make(handler) -> ProbeHttpClient:
        return ProbeHttpClient(timeout_ms=2000, transport=httpx.MockTransport(handler))

    return _make


def make_probe_result(
    provider: Provider = Provider.OPENAI,
    model: str = "gpt-4o",
    text_ok: bool = True,
    capabilities: ProbedCapabilities | None = None,
    probed_at: int = 1_700_000_000_000,
) -> ModelProbeResult:
    """Build a ModelProbeResult without running any probes."""
    if text_ok:
        text_probe = ProbeResult(success=True, http_status=200, content_generated=True)
        media = ProbeWithRetryResult(
            primary_result=ProbeResult(success=True, http_status=200),
            final_success=True,
            successful_variant=ProbeVariant(use_base64=True, images_first=False),
        )
    else:
        text_probe = ProbeResult(success=False, http_status=401, error_message="Incorrect API key")
        media = ProbeWithRetryResult.skipped("Skipped: text probe failed")
    return ModelProbeResult(
        provider=provider,
        model=model,
        probed_at=probed_at,
        text_probe=text_probe,
        image_probe=media,
        pdf_probe=media,
        capabilities=capabilities or default_capabilities(),
        total_probe_time_ms=250,
    )
