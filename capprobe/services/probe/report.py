"""Probe result formatting: table rows and markdown reports.

Table output uses ASCII-safe symbols so it renders the same on every
terminal:

- ``Y`` supported
- ``~`` partially supported (vision with quirks)
- ``N`` not supported
- ``-`` not applicable / unknown (text probe failed)
"""

from __future__ import annotations

import platform
from dataclasses import astuple, dataclass

from capprobe import __version__

from .fixtures import get_fixture_stats
from .service import summarize_probe_result
from .steps import ModelProbeResult, ProbeResult, ProbeWithRetryResult

PROBE_TABLE_HEADERS: tuple[str, ...] = (
    "Provider",
    "Model",
    "Vision",
    "PDF",
    "PDF-Img",
    "Base64",
    "ImgFirst",
    "Shape",
)

SYM_YES = "Y"
SYM_NO = "N"
SYM_PARTIAL = "~"
SYM_NA = "-"

DEFAULT_MAX_MODEL_LEN = 40

_SHAPE_ABBREVIATIONS = (("openai.", "oai."), ("anthropic.", "ant."), ("gemini.", "gem."))


@dataclass(frozen=True)
class ProbeTableRow:
    provider: str
    model: str
    vision: str
    pdf_native: str
    pdf_images: str
    base64_required: str
    images_first: str
    message_shape: str

    def cells(self) -> tuple[str, ...]:
        return astuple(self)


def truncate_model(model: str, max_len: int) -> str:
    """Keep the tail of long model IDs, where the distinguishing part usually is."""
    if len(model) <= max_len:
        return model
    return "..." + model[-(max_len - 3) :]


def abbreviate_shape(shape: str) -> str:
    for prefix, short in _SHAPE_ABBREVIATIONS:
        shape = shape.replace(prefix, short)
    return shape


def _yes_no(value: bool) -> str:
    return SYM_YES if value else SYM_NO


def _yes_na(value: bool) -> str:
    return SYM_YES if value else SYM_NA


def format_probe_table_row(
    result: ModelProbeResult, max_model_len: int = DEFAULT_MAX_MODEL_LEN
) -> ProbeTableRow:
    """Convert a probe result into a table row of symbols."""
    provider = str(result.provider)
    model = truncate_model(result.model, max_model_len)

    if not result.text_probe.success:
        return ProbeTableRow(provider, model, *([SYM_NA] * 6))

    summary = summarize_probe_result(result)
    caps = result.capabilities
    vision = {"yes": SYM_YES, "partial": SYM_PARTIAL}.get(summary.vision, SYM_NO)

    return ProbeTableRow(
        provider=provider,
        model=model,
        vision=vision,
        pdf_native=_yes_no(caps.supports_pdf_native),
        pdf_images=_yes_no(caps.supports_pdf_as_images),
        base64_required=_yes_na(caps.requires_base64_images),
        images_first=_yes_na(caps.requires_images_first),
        message_shape=abbreviate_shape(caps.message_shape),
    )


def compute_column_widths(
    rows: list[ProbeTableRow], headers: tuple[str, ...] = PROBE_TABLE_HEADERS
) -> list[int]:
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row.cells()):
            widths[i] = max(widths[i], len(cell))
    return widths


def render_table(
    rows: list[ProbeTableRow], headers: tuple[str, ...] = PROBE_TABLE_HEADERS
) -> list[str]:
    """Render rows as plain-text lines: header, separator, one line per row."""
    widths = compute_column_widths(rows, headers)
    lines = [
        " | ".join(h.ljust(w) for h, w in zip(headers, widths, strict=True)),
        "-+-".join("-" * w for w in widths),
    ]
    for row in rows:
        lines.append(" | ".join(c.ljust(w) for c, w in zip(row.cells(), widths, strict=True)))
    return lines


def _describe_attempt(result: ProbeResult) -> str:
    if result.success:
        status = "pass"
    elif result.http_status is None:
        status = "FAIL (no response)"
    else:
        status = f"FAIL ({result.http_status})"
    detail = ""
    if result.error_message:
        detail = f" - {result.error_message}"
    if result.schema_error:
        detail += f" [schema: {result.schema_error}]"
    latency = f" in {result.latency_ms}ms" if result.latency_ms is not None else ""
    return f"{status}{latency}{detail}"


def _append_retry_probe(sections: list[str], label: str, probe: ProbeWithRetryResult) -> None:
    sections.append(f"- **{label}:** {_describe_attempt(probe.primary_result)}")
    for i, retry in enumerate(probe.retry_results or [], start=1):
        sections.append(f"  - retry {i}: {_describe_attempt(retry)}")
    if probe.successful_variant is not None:
        variant = probe.successful_variant
        sections.append(
            f"  - working variant: base64={variant.use_base64}, "
            f"images_first={variant.images_first}, as_pdf_images={variant.as_pdf_images}"
        )


def generate_probe_report(results: list[ModelProbeResult]) -> str:
    """Generate a markdown report for a probe run.

    Includes the summary table, per-model probe details with issues, and
    environment info. Suitable for pasting into a GitHub issue.
    """
    sections: list[str] = ["# Capability Probe Report\n"]

    rows = [format_probe_table_row(r) for r in results]
    sections.append("## Summary\n")
    sections.append("```")
    sections.extend(render_table(rows))
    sections.append("```\n")

    for result in results:
        summary = summarize_probe_result(result)
        sections.append(f"## `{result.provider}:{result.model}`\n")
        sections.append(f"- **Vision:** {summary.vision}")
        sections.append(f"- **PDF:** {summary.pdf}")
        sections.append(f"- **Message Shape:** {result.capabilities.message_shape}")
        sections.append(f"- **Completion Shape:** {result.capabilities.completion_shape}")
        sections.append(f"- **Probe Time:** {result.total_probe_time_ms}ms")
        sections.append("")

        sections.append("### Probes\n")
        sections.append(f"- **Text:** {_describe_attempt(result.text_probe)}")
        _append_retry_probe(sections, "Image", result.image_probe)
        _append_retry_probe(sections, "PDF", result.pdf_probe)
        if result.streaming_probe is not None:
            sections.append(f"- **Streaming:** {_describe_attempt(result.streaming_probe)}")
        sections.append("")

        if summary.issues:
            sections.append("### Issues\n")
            sections.extend(f"- {issue}" for issue in summary.issues)
            sections.append("")

    sections.append("## Environment\n")
    for key, value in _get_environment_info():
        sections.append(f"- **{key}:** {value}")
    sections.append("")

    return "\n".join(sections)


def _get_environment_info() -> list[tuple[str, str]]:
    stats = get_fixture_stats()
    return [
        ("capprobe", __version__),
        ("OS", f"{platform.system()} {platform.release()}"),
        ("Python", platform.python_version()),
        ("Fixtures", f"PNG ~{stats.png_size_bytes} B, PDF ~{stats.pdf_size_bytes} B"),
    ]
