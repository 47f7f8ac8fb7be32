"""Variant strategies for media probes.

Each media content type has a declarative strategy: the ordered variants
to try, the predicate deciding whether a failed primary attempt is worth
retrying with other variants, and how many retries the config allows.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from capprobe.models.enums import ContentType

from .steps import ProbeConfig, ProbeResult, ProbeVariant

# The rasterized-PDF fallback reuses the image primary variant
IMAGE_PRIMARY_VARIANT = ProbeVariant(use_base64=True, images_first=False)
PDF_NATIVE_VARIANT = ProbeVariant(use_base64=True, images_first=False, as_pdf_images=False)
PDF_AS_IMAGES_VARIANT = IMAGE_PRIMARY_VARIANT.model_copy(update={"as_pdf_images": True})


@dataclass(frozen=True)
class VariantStrategy:
    """How a content type searches for a working request encoding.

    ``variants[0]`` is the primary attempt; the rest are tried in order
    while ``should_retry(primary)`` holds, up to ``retry_limit(config)``.
    """

    content_type: ContentType
    variants: tuple[ProbeVariant, ...]
    should_retry: Callable[[ProbeResult], bool]
    retry_limit: Callable[[ProbeConfig], int]

    def retry_variants(self, config: ProbeConfig) -> tuple[ProbeVariant, ...]:
        return self.variants[1 : 1 + max(self.retry_limit(config), 0)]


def _image_should_retry(result: ProbeResult) -> bool:
    # Only encoding complaints are worth another variant; auth or rate
    # limit failures would fail the same way.
    return result.schema_error is not None or result.feature_not_supported


def _pdf_should_retry(result: ProbeResult) -> bool:
    schema_error = result.schema_error or ""
    return (
        "PDF" in schema_error
        or "not supported" in schema_error
        or result.feature_not_supported
        or result.http_status in (400, 422)
    )


VARIANT_STRATEGIES: dict[ContentType, VariantStrategy] = {
    ContentType.IMAGE: VariantStrategy(
        content_type=ContentType.IMAGE,
        variants=(
            IMAGE_PRIMARY_VARIANT,
            ProbeVariant(use_base64=True, images_first=True),
            ProbeVariant(use_base64=False, images_first=False),
            ProbeVariant(use_base64=False, images_first=True),
        ),
        should_retry=_image_should_retry,
        retry_limit=lambda config: config.max_retries,
    ),
    ContentType.PDF: VariantStrategy(
        content_type=ContentType.PDF,
        variants=(PDF_NATIVE_VARIANT, PDF_AS_IMAGES_VARIANT),
        should_retry=_pdf_should_retry,
        # Exactly one fallback, independent of max_retries
        retry_limit=lambda config: 1,
    ),
}


def get_variant_strategy(content_type: ContentType) -> VariantStrategy:
    """Look up the strategy for a media content type.

    Raises:
        KeyError: For content types without variants (text)
    """
    return VARIANT_STRATEGIES[content_type]
