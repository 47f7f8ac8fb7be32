"""Tiny embedded test assets sent by probes.

The PNG is a solid red 56x56 image: some vision models (Qwen-VL) reject
anything smaller. The PDF is a single blank 72x72pt page, the smallest
document most parsers accept.
"""

import base64
import io
import math
from dataclasses import dataclass

from PIL import Image

from capprobe.models.enums import ContentType

TINY_PNG_SIZE = (56, 56)
TINY_PNG_COLOR = (255, 0, 0)
TINY_PNG_MIME_TYPE = "image/png"


def _encode_tiny_png() -> str:
    image = Image.new("RGB", TINY_PNG_SIZE, color=TINY_PNG_COLOR)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


TINY_PNG_BASE64 = _encode_tiny_png()

# base64 of a minimal PDF 1.4: catalog, pages, one empty page, xref, %%EOF
TINY_PDF_BASE64 = (
    "JVBERi0xLjQKMSAwIG9iajw8L1R5cGUvQ2F0YWxvZy9QYWdlcyAyIDAgUj4+ZW5kb2JqCjIgMCBvYmo8PC9UeXBl"
    "L1BhZ2VzL0tpZHNbMyAwIFJdL0NvdW50IDE+PmVuZG9iagozIDAgb2JqPDwvVHlwZS9QYWdlL01lZGlhQm94WzAg"
    "MCA3MiA3Ml0vUGFyZW50IDIgMCBSL1Jlc291cmNlczw8Pj4+PmVuZG9iagp4cmVmCjAgNAowMDAwMDAwMDAwIDY1"
    "NTM1IGYKMDAwMDAwMDAwOSAwMDAwMCBuCjAwMDAwMDAwNTIgMDAwMDAgbgowMDAwMDAwMTAxIDAwMDAwIG4KdHJh"
    "aWxlcjw8L1NpemUgNC9Sb290IDEgMCBSPj4Kc3RhcnR4cmVmCjE3NgolJUVPRg=="
)
TINY_PDF_MIME_TYPE = "application/pdf"

PROBE_PROMPTS: dict[str, str] = {
    ContentType.TEXT: 'Respond with just the word "OK" to confirm you received this message.',
    ContentType.IMAGE: "What color is this image? Reply with just the color name.",
    ContentType.PDF: 'This is a test PDF. Reply with just "OK" to confirm you can see it.',
}


@dataclass(frozen=True)
class FixtureStats:
    png_size_bytes: int
    pdf_size_bytes: int


def _data_url(mime_type: str, data: str) -> str:
    return f"data:{mime_type};base64,{data}"


def tiny_png_data_url() -> str:
    return _data_url(TINY_PNG_MIME_TYPE, TINY_PNG_BASE64)


def tiny_pdf_data_url() -> str:
    return _data_url(TINY_PDF_MIME_TYPE, TINY_PDF_BASE64)


def _decoded_size(data: str) -> int:
    # Approximation used for reporting; padding is not subtracted
    return math.ceil(len(data) * 3 / 4)


def get_fixture_stats() -> FixtureStats:
    """Approximate decoded sizes of the embedded fixtures."""
    return FixtureStats(
        png_size_bytes=_decoded_size(TINY_PNG_BASE64),
        pdf_size_bytes=_decoded_size(TINY_PDF_BASE64),
    )
