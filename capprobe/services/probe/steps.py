"""Probe attempt and session models.

These are the building blocks shared across all probes.
ProbeResult records one HTTP attempt, ProbeWithRetryResult one probe
including its variant search, and ModelProbeResult a full session for
one (provider, model) pair.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from capprobe.models.capabilities import CamelModel, ProbedCapabilities
from capprobe.models.enums import ProgressStatus, Provider

PROBE_VERSION = "1.0.0"


class ProbeConfig(BaseModel):
    """Configuration for running probes."""

    timeout_ms: int = Field(default=15000, ge=1)
    max_retries: int = Field(default=2, ge=0)
    retry_delay_ms: int = Field(default=500, ge=0)
    skip_streaming_probe: bool = True  # Skipped by default to reduce API calls
    verbose_logging: bool = False


class ProbeTarget(BaseModel):
    """The (provider, model) pair under test plus how to reach it."""

    provider: Provider
    model: str
    api_key: str | None = Field(default=None, repr=False)
    endpoint: str | None = None


class ProbeVariant(CamelModel):
    """Encoding choices for one probe attempt."""

    model_config = ConfigDict(frozen=True)

    use_base64: bool
    images_first: bool
    as_pdf_images: bool = False


class ProbeResult(CamelModel):
    """Outcome of a single probe attempt. Failures are data, never raised."""

    success: bool
    http_status: int | None = None
    error_code: str | None = None
    error_message: str | None = None
    schema_error: str | None = None
    feature_not_supported: bool = False
    response_started: bool = False
    content_generated: bool = False
    latency_ms: int | None = None

    @classmethod
    def skipped(cls, reason: str) -> ProbeResult:
        return cls(success=False, error_message=reason)


class ProbeWithRetryResult(CamelModel):
    """A probe plus the variants tried after its primary attempt.

    ``successful_variant`` is set exactly when ``final_success`` is true.
    """

    primary_result: ProbeResult
    retry_results: list[ProbeResult] | None = None
    final_success: bool
    successful_variant: ProbeVariant | None = None

    @model_validator(mode="after")
    def check_variant_matches_success(self) -> ProbeWithRetryResult:
        if self.final_success != (self.successful_variant is not None):
            raise ValueError("successful_variant must be set exactly when final_success is true")
        return self

    @classmethod
    def skipped(cls, reason: str) -> ProbeWithRetryResult:
        return cls(primary_result=ProbeResult.skipped(reason), final_success=False)


class ModelProbeResult(CamelModel):
    """Full result of probing a single model."""

    model_config = ConfigDict(frozen=True)

    provider: Provider
    model: str
    probed_at: int  # Unix ms

    text_probe: ProbeResult
    image_probe: ProbeWithRetryResult
    pdf_probe: ProbeWithRetryResult
    schema_probe: ProbeResult | None = None
    streaming_probe: ProbeResult | None = None

    capabilities: ProbedCapabilities

    probe_version: str = PROBE_VERSION
    total_probe_time_ms: int


class ProbeProgress(BaseModel):
    """Progress of one model within a batch run."""

    current: int
    total: int
    provider: Provider
    model: str
    status: ProgressStatus


ProgressCallback = Callable[[ProbeProgress], None]


class ProbeSummary(BaseModel):
    """Human-oriented digest of a ModelProbeResult."""

    success: bool
    vision: Literal["yes", "no", "partial"]
    pdf: Literal["native", "images", "no"]
    issues: list[str] = []
