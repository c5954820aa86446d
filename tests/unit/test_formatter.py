"""Tests for platform formatting and content validation."""
import pytest

from socialflow.content import ContentValue, MediaRef, PortType
from socialflow.errors import ContentValidationError
from socialflow.platforms import (
    CONSTRAINTS,
    FormattedContent,
    Platform,
    constraints_for,
    fit_media,
    format_content,
    segment_text,
    truncate_text,
    validate_content,
)


def _words(n: int) -> str:
    return " ".join(f"word{i}" for i in range(n))


class TestTruncateText:
    def test_short_text_unchanged(self):
        assert truncate_text("hello world", 280) == "hello world"

    @pytest.mark.parametrize("length", [281, 500, 3001, 10000])
    @pytest.mark.parametrize("limit", [280, 3000])
    def test_result_never_exceeds_limit(self, length, limit):
        text = ("lorem ipsum " * length)[:length]

        assert len(truncate_text(text, limit)) <= limit

    def test_cuts_at_word_boundary(self):
        result = truncate_text(_words(100), 50)

        assert result.endswith("…")
        assert not result[:-1].endswith("wor")
        assert result[:-1] == result[:-1].rstrip()

    def test_hard_cut_without_whitespace(self):
        result = truncate_text("x" * 100, 10)

        assert result == "x" * 9 + "…"


class TestSegmentText:
    def test_segments_are_numbered_and_bounded(self):
        segments = segment_text(_words(200), 280)

        assert len(segments) > 1
        assert all(len(s) <= 280 for s in segments)
        assert segments[0].endswith(f"(1/{len(segments)})")
        assert segments[-1].endswith(f"({len(segments)}/{len(segments)})")

    def test_short_text_is_one_segment(self):
        assert segment_text("short", 280) == ["short"]


class TestFitMedia:
    def test_wide_image_cropped_into_ratio(self):
        rules = constraints_for(Platform.INSTAGRAM)
        ref = MediaRef(key="img", width=4000, height=1000)

        fitted = fit_media(ref, rules)

        assert fitted.needs_resize
        assert fitted.aspect_ratio <= rules.max_aspect_ratio + 0.01
        assert max(fitted.effective_size) <= rules.max_media_side

    def test_compliant_image_unchanged(self):
        ref = MediaRef(key="img", width=1080, height=1080)

        assert fit_media(ref, constraints_for(Platform.INSTAGRAM)) == ref

    def test_unknown_size_unchanged(self):
        ref = MediaRef(key="img")

        assert fit_media(ref, constraints_for(Platform.TWITTER)) == ref

    def test_video_unchanged(self):
        ref = MediaRef(key="clip", media_type=PortType.VIDEO, width=5000, height=100)

        assert fit_media(ref, constraints_for(Platform.TWITTER)) == ref


class TestFormatContent:
    def test_linkedin_keeps_300_characters(self):
        text = "a" * 300
        formatted = format_content(ContentValue.of_text(text), Platform.LINKEDIN)

        assert formatted.text == text
        assert formatted.adjustments == []

    @pytest.mark.parametrize("platform", list(Platform))
    def test_long_text_fits_every_platform(self, platform):
        text = _words(15000)
        content = ContentValue(
            kind=PortType.MIXED,
            text=text,
            media=[MediaRef(key="img", width=1000, height=1000)],
        )

        formatted = format_content(content, platform)

        assert len(formatted.text) <= CONSTRAINTS[platform].max_text_length

    def test_twitter_thread(self):
        formatted = format_content(ContentValue.of_text(_words(120)), "twitter", thread=True)

        assert len(formatted.segments) > 1
        assert formatted.text == formatted.segments[0]
        assert "segments" in formatted.adjustments[0]

    def test_thread_flag_ignored_where_unsupported(self):
        formatted = format_content(ContentValue.of_text(_words(1000)), Platform.LINKEDIN, thread=True)

        assert len(formatted.segments) == 1
        assert "truncated" in formatted.adjustments[0]

    def test_excess_media_reduced(self):
        media = [MediaRef(key=f"img{i}", width=800, height=800) for i in range(6)]
        content = ContentValue(kind=PortType.MIXED, text="hi", media=media)

        formatted = format_content(content, Platform.TWITTER)

        assert [m.key for m in formatted.media] == ["img0", "img1", "img2", "img3"]
        assert "media reduced from 6 to 4 items" in formatted.adjustments

    def test_payload_text_used_when_no_text(self):
        formatted = format_content(ContentValue.of_payload({"topic": "launch"}), Platform.FACEBOOK)

        assert formatted.text == '{"topic": "launch"}'

    def test_instagram_requires_media(self):
        with pytest.raises(ContentValidationError) as exc_info:
            format_content(ContentValue.of_text("caption only"), Platform.INSTAGRAM)

        assert [i.code for i in exc_info.value.issues] == ["media_required"]

    def test_empty_content_rejected(self):
        with pytest.raises(ContentValidationError) as exc_info:
            format_content(ContentValue.of_text(""), Platform.LINKEDIN)

        assert "empty_content" in [i.code for i in exc_info.value.issues]

    def test_deterministic(self):
        content = ContentValue.of_text(_words(500))

        assert format_content(content, Platform.TWITTER) == format_content(content, Platform.TWITTER)


class TestValidateContent:
    def test_rejects_segments_on_non_thread_platform(self):
        formatted = FormattedContent(platform=Platform.FACEBOOK, text="a", segments=["a", "b"])

        assert "threads_unsupported" in validate_content(formatted).codes()

    def test_rejects_overlong_text(self):
        text = "x" * 281
        formatted = FormattedContent(platform=Platform.TWITTER, text=text, segments=[text])

        assert validate_content(formatted).codes() == ["text_too_long"]

    def test_rejects_bad_aspect_ratio(self):
        formatted = FormattedContent(
            platform=Platform.INSTAGRAM,
            text="hi",
            segments=["hi"],
            media=[MediaRef(key="img", width=3000, height=1000)],
        )

        assert "aspect_ratio" in validate_content(formatted).codes()

    def test_accepts_formatted_output(self):
        formatted = format_content(ContentValue.of_text("hello"), Platform.TWITTER)

        assert validate_content(formatted).ok
