"""Model capability probing.

Sends tiny live requests to a (provider, model) endpoint to find out
which multimodal inputs and message/stream shapes it actually supports.

Usage:
    from capprobe.services.probe import ProbeTarget, probe_model

    result = await probe_model(ProbeTarget(provider="openai", model="gpt-4o", api_key=key))
    print(result.capabilities)
"""

from .client import ProbeHttpClient, ProbeHttpResponse, ProbeRequest
from .runner import ProbeRunner
from .service import infer_capabilities, probe_model, probe_models, summarize_probe_result
from .steps import (
    ModelProbeResult,
    ProbeConfig,
    ProbeProgress,
    ProbeResult,
    ProbeSummary,
    ProbeTarget,
    ProbeVariant,
    ProbeWithRetryResult,
)
from .strategy import VARIANT_STRATEGIES, get_variant_strategy

__all__ = [
    "VARIANT_STRATEGIES",
    "ModelProbeResult",
    "ProbeConfig",
    "ProbeHttpClient",
    "ProbeHttpResponse",
    "ProbeProgress",
    "ProbeRequest",
    "ProbeResult",
    "ProbeRunner",
    "ProbeSummary",
    "ProbeTarget",
    "ProbeVariant",
    "ProbeWithRetryResult",
    "get_variant_strategy",
    "infer_capabilities",
    "probe_model",
    "probe_models",
    "summarize_probe_result",
]
