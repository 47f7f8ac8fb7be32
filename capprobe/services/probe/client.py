"""HTTP client for probe requests with a hard per-request timeout.

Probes make at most a handful of tiny requests per model, so there is no
automatic retry here: every retry is a deliberate variant attempt decided
by the runner.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx
from loguru import logger

TIMEOUT_STATUS_TEXT = "Timeout"


@dataclass
class ProbeRequest:
    url: str
    headers: dict[str, str]
    body: Any = None
    method: Literal["POST", "GET"] = "POST"
    stream: bool = False


@dataclass
class ProbeHttpResponse:
    """What a probe saw of an HTTP response.

    ``status`` is 0 when the request timed out. For successful streaming
    requests ``body`` holds only the first chunk.
    """

    status: int
    status_text: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""
    body_json: Any = None
    stream_started: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def timed_out(self) -> bool:
        return self.status == 0


@dataclass(frozen=True)
class ExtractedError:
    error_code: str | None = None
    error_message: str | None = None


def _parse_json(body: str) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        return None


class ProbeHttpClient:
    """Thin wrapper over one httpx.AsyncClient shared by all probes of a run.

    Usage:
        async with ProbeHttpClient(timeout_ms=15000) as client:
            response = await client.execute(request)
    """

    def __init__(self, timeout_ms: int = 15000, transport: httpx.AsyncBaseTransport | None = None):
        """Initialize the client.

        Args:
            timeout_ms: Default hard timeout for each request
            transport: Optional transport (tests pass httpx.MockTransport)
        """
        self.timeout_ms = timeout_ms
        # The hard timeout is enforced by cancellation in execute()
        self._client = httpx.AsyncClient(transport=transport, timeout=None)

    async def __aenter__(self) -> ProbeHttpClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def execute(
        self, request: ProbeRequest, timeout_ms: int | None = None
    ) -> ProbeHttpResponse:
        """Send one request.

        Returns a status 0 "Timeout" response when the deadline passes.
        Other transport failures (httpx.TransportError) propagate.
        """
        timeout_s = (timeout_ms or self.timeout_ms) / 1000
        try:
            async with asyncio.timeout(timeout_s):
                return await self._send(request)
        except (TimeoutError, httpx.TimeoutException):
            logger.debug(f"Probe request to {request.url} timed out after {timeout_s}s")
            return ProbeHttpResponse(status=0, status_text=TIMEOUT_STATUS_TEXT)

    async def _send(self, request: ProbeRequest) -> ProbeHttpResponse:
        kwargs: dict[str, Any] = {"headers": request.headers}
        if request.body is not None:
            kwargs["json"] = request.body

        async with self._client.stream(request.method, request.url, **kwargs) as response:
            headers = {k.lower(): v for k, v in response.headers.items()}

            if request.stream and response.is_success:
                # Only the first chunk matters; closing the context drops the rest
                async for chunk in response.aiter_bytes():
                    if chunk:
                        return ProbeHttpResponse(
                            status=response.status_code,
                            status_text=response.reason_phrase,
                            headers=headers,
                            body=chunk.decode("utf-8", errors="replace"),
                            stream_started=True,
                        )
                return ProbeHttpResponse(
                    status=response.status_code,
                    status_text=response.reason_phrase,
                    headers=headers,
                )

            await response.aread()
            body = response.text
            return ProbeHttpResponse(
                status=response.status_code,
                status_text=response.reason_phrase,
                headers=headers,
                body=body,
                body_json=_parse_json(body),
            )


def extract_error(response: ProbeHttpResponse) -> ExtractedError:
    """Pull an error code and message out of a provider error body.

    Understands OpenAI-style ``{"error": {...}}``, Anthropic-style
    ``{"type": "error", "error": {...}}`` and flat ``{"message": ...}``
    bodies, falling back to the HTTP status text.
    """
    code: str | None = None
    message: str | None = None
    data = response.body_json

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            if data.get("type") == "error":
                code = str(error.get("type") or "")
            else:
                code = str(error.get("code") or error.get("type") or "")
            message = str(error.get("message") or "")
        elif data.get("message"):
            message = str(data["message"])

    if not message and response.status_text != "OK":
        message = response.status_text or None

    return ExtractedError(error_code=code or None, error_message=message)


# Checked in order; the first match describes the error
SCHEMA_ERROR_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"invalid.*content.*type"), "Invalid content type"),
    (re.compile(r"invalid.*message.*format"), "Invalid message format"),
    (re.compile(r"invalid.*role"), "Invalid role"),
    (re.compile(r"content.*must.*be.*string"), "Content must be string"),
    (re.compile(r"content.*must.*be.*array"), "Content must be array"),
    (re.compile(r"unsupported.*image"), "Unsupported image format"),
    (re.compile(r"invalid.*image"), "Invalid image"),
    (re.compile(r"image.*url.*required"), "Image URL required"),
    (re.compile(r"base64.*required"), "Base64 encoding required"),
    (re.compile(r"not.*support.*vision"), "Vision not supported"),
    (re.compile(r"not.*support.*image"), "Images not supported"),
    (re.compile(r"not.*support.*pdf"), "PDF not supported"),
    (re.compile(r"invalid.*media.*type"), "Invalid media type"),
    (re.compile(r"unknown.*field"), "Unknown field in request"),
    (re.compile(r"unexpected.*field"), "Unexpected field in request"),
]


def classify_schema_error(response: ProbeHttpResponse) -> str | None:
    """Describe the schema/format problem a response body reports, if any."""
    payload = response.body_json if response.body_json is not None else response.body
    error_text = json.dumps(payload).lower()

    for pattern, description in SCHEMA_ERROR_PATTERNS:
        if pattern.search(error_text):
            return description
    return None


def is_feature_not_supported(response: ProbeHttpResponse) -> bool:
    """True for a 400/422 whose body says the feature is not supported."""
    if response.status not in (400, 422):
        return False
    description = classify_schema_error(response)
    return description is not None and "not support" in description
