"""
Platform formatting and publishing.

This package provides:
- format_content / validate_content: pure mapping onto platform constraints
- Publisher: idempotent, retrying delivery through platform clients
- PlatformClient adapters for LinkedIn, Twitter, Instagram and Facebook
"""

from .constraints import CONSTRAINTS, Platform, PlatformConstraints, constraints_for
from .formatter import FormattedContent, fit_media, format_content, segment_text, truncate_text, validate_content
from .records import InMemoryPublishRecordStore, PublishRecordStore, PublishResult, RedisPublishRecordStore
from .clients import (
    FacebookClient,
    InstagramClient,
    LinkedInClient,
    PlatformClient,
    PublishedPost,
    TwitterClient,
)
from .publisher import Publisher, PublishTask, classify_error

__all__ = [
    # Constraints
    "Platform",
    "PlatformConstraints",
    "CONSTRAINTS",
    "constraints_for",
    # Formatting
    "FormattedContent",
    "format_content",
    "validate_content",
    "truncate_text",
    "segment_text",
    "fit_media",
    # Delivery
    "PublishResult",
    "PublishRecordStore",
    "InMemoryPublishRecordStore",
    "RedisPublishRecordStore",
    "PlatformClient",
    "PublishedPost",
    "LinkedInClient",
    "TwitterClient",
    "InstagramClient",
    "FacebookClient",
    "Publisher",
    "PublishTask",
    "classify_error",
]
