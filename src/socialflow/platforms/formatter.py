"""
Platform Formatter - Pure mapping of raw content onto platform constraints.

All rules are deterministic: the same content and platform always give
the same formatted result. Content that cannot be made compliant is
rejected with ContentValidationError, never published partially.
"""

from __future__ import annotations

import math
import re
from typing import List, Optional

from pydantic import BaseModel, Field

from socialflow.content import ContentValue, MediaRef, PortType
from socialflow.errors import ContentValidationError
from socialflow.validation import ValidationIssue, ValidationResult

from .constraints import Platform, PlatformConstraints, constraints_for

ELLIPSIS = "…"
RATIO_TOLERANCE = 0.01


class FormattedContent(BaseModel):
    """Content ready for one platform."""

    platform: Platform
    text: str = ""
    segments: List[str] = Field(default_factory=list)
    media: List[MediaRef] = Field(default_factory=list)
    adjustments: List[str] = Field(default_factory=list)


def truncate_text(text: str, limit: int) -> str:
    """
    Cut ``text`` to at most ``limit`` characters.

    Text within the limit is returned unchanged. Longer text is cut at the
    last whitespace in the second half of the window, or hard-cut when there
    is none, and ends with an ellipsis.
    """
    if len(text) <= limit:
        return text
    if limit <= 1:
        return text[:max(0, limit)]
    window = text[:limit - 1]
    boundary = max(window.rfind(" "), window.rfind("\n"), window.rfind("\t"))
    if boundary >= limit // 2:
        window = window[:boundary]
    return window.rstrip() + ELLIPSIS


def _split_words(text: str, width: int) -> List[str]:
    chunks: List[str] = []
    current = ""
    for word in re.split(r"\s+", text.strip()):
        if not word:
            continue
        while len(word) > width:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(word[:width])
            word = word[width:]
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= width:
            current = candidate
        else:
            chunks.append(current)
            current = word
    if current:
        chunks.append(current)
    return chunks


def segment_text(text: str, limit: int) -> List[str]:
    """
    Split ``text`` into numbered segments of at most ``limit`` characters.

    Each segment of a multi-part result ends with " (i/n)".
    """
    if len(text) <= limit:
        return [text]
    count = math.ceil(len(text) / limit)
    for _ in range(10):
        width = limit - len(f" ({count}/{count})")
        if width <= 0:
            raise ContentValidationError(
                [ValidationIssue(code="limit_too_small", message=f"Cannot segment text into {limit} characters")]
            )
        chunks = _split_words(text, width)
        if len(chunks) <= count:
            total = len(chunks)
            return [f"{chunk} ({i}/{total})" for i, chunk in enumerate(chunks, start=1)]
        count = len(chunks)
    raise ContentValidationError(
        [ValidationIssue(code="segmentation_failed", message="Text could not be segmented")]
    )


def fit_media(ref: MediaRef, rules: PlatformConstraints) -> MediaRef:
    """
    Compute the resize target that puts an image inside the platform's
    aspect-ratio range and size limit. Videos and images of unknown size
    are returned unchanged.
    """
    if ref.media_type != PortType.IMAGE:
        return ref
    width, height = ref.effective_size
    if not width or not height:
        return ref

    ratio = width / height
    if ratio < rules.min_aspect_ratio:
        height = max(1, math.floor(width / rules.min_aspect_ratio))
    elif ratio > rules.max_aspect_ratio:
        width = max(1, math.floor(height * rules.max_aspect_ratio))

    longest = max(width, height)
    if longest > rules.max_media_side:
        scale = rules.max_media_side / longest
        width = max(1, math.floor(width * scale))
        height = max(1, math.floor(height * scale))

    if (width, height) == (ref.width, ref.height):
        return ref.model_copy(update={"target_width": None, "target_height": None})
    if (width, height) == ref.effective_size:
        return ref
    return ref.model_copy(update={"target_width": width, "target_height": height})


def format_content(
    raw: ContentValue,
    platform: Platform | str,
    thread: bool = False,
) -> FormattedContent:
    """
    Map raw content onto a platform's documented constraints.

    Raises:
        ContentValidationError: the content cannot be made compliant
    """
    rules = constraints_for(platform)
    adjustments: List[str] = []

    text = raw.text
    if text is None and raw.data is not None and not raw.media:
        text = raw.as_prompt_context()
    text = text or ""

    if len(text) > rules.max_text_length:
        if thread and rules.supports_threads:
            segments = segment_text(text, rules.max_text_length)
            adjustments.append(f"text split into {len(segments)} segments")
        else:
            truncated = truncate_text(text, rules.max_text_length)
            if not truncated.rstrip(ELLIPSIS).strip():
                raise ContentValidationError([ValidationIssue(
                    code="empty_after_truncation",
                    message=f"Text is empty after truncation to {rules.max_text_length} characters",
                )])
            segments = [truncated]
            adjustments.append(f"text truncated from {len(text)} to {len(truncated)} characters")
    else:
        segments = [text] if text else []

    media = list(raw.media)
    if len(media) > rules.max_media:
        adjustments.append(f"media reduced from {len(media)} to {rules.max_media} items")
        media = media[:rules.max_media]

    fitted = []
    for ref in media:
        new_ref = fit_media(ref, rules)
        if new_ref.effective_size != ref.effective_size:
            w, h = new_ref.effective_size
            adjustments.append(f"{ref.key} resized to {w}x{h}")
        fitted.append(new_ref)

    formatted = FormattedContent(
        platform=rules.platform,
        text=segments[0] if segments else "",
        segments=segments,
        media=fitted,
        adjustments=adjustments,
    )
    result = validate_content(formatted)
    if not result.ok:
        raise ContentValidationError(result.errors)
    return formatted


def validate_content(formatted: FormattedContent) -> ValidationResult:
    """Check formatted content against its platform before any network call."""
    rules = constraints_for(formatted.platform)
    errors: List[ValidationIssue] = []

    def issue(code: str, message: str) -> None:
        errors.append(ValidationIssue(code=code, message=message))

    has_text = any(s.strip() for s in formatted.segments)
    if not has_text and not formatted.media:
        issue("empty_content", "Nothing to publish: no text and no media")

    if len(formatted.segments) > 1 and not rules.supports_threads:
        issue("threads_unsupported", f"{rules.platform.value} does not support threads")

    for i, segment in enumerate(formatted.segments, start=1):
        if len(segment) > rules.max_text_length:
            issue(
                "text_too_long",
                f"Segment {i} has {len(segment)} characters, limit is {rules.max_text_length}",
            )
    if formatted.segments and formatted.text != formatted.segments[0]:
        issue("text_mismatch", "Text does not match the first segment")

    if rules.requires_media and not formatted.media:
        issue("media_required", f"{rules.platform.value} requires at least one image or video")
    if len(formatted.media) > rules.max_media:
        issue("too_many_media", f"{len(formatted.media)} media items, limit is {rules.max_media}")

    for ref in formatted.media:
        ratio = ref.aspect_ratio
        if ref.media_type == PortType.IMAGE and ratio is not None:
            if not (rules.min_aspect_ratio - RATIO_TOLERANCE <= ratio <= rules.max_aspect_ratio + RATIO_TOLERANCE):
                issue("aspect_ratio", f"{ref.key} has aspect ratio {ratio:.2f}")
            w, h = ref.effective_size
            if max(w or 0, h or 0) > rules.max_media_side:
                issue("media_too_large", f"{ref.key} exceeds {rules.max_media_side}px")

    return ValidationResult(errors=errors)


__all__ = [
    "FormattedContent",
    "format_content",
    "validate_content",
    "truncate_text",
    "segment_text",
    "fit_media",
]
