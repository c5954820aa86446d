"""Documented publishing constraints per platform."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class Platform(str, Enum):
    LINKEDIN = "linkedin"
    TWITTER = "twitter"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"


@dataclass(frozen=True)
class PlatformConstraints:
    platform: Platform
    max_text_length: int
    max_media: int
    min_aspect_ratio: float
    max_aspect_ratio: float
    max_media_side: int
    requires_media: bool = False
    supports_threads: bool = False


CONSTRAINTS: Dict[Platform, PlatformConstraints] = {
    Platform.LINKEDIN: PlatformConstraints(
        platform=Platform.LINKEDIN,
        max_text_length=3000,
        max_media=9,
        min_aspect_ratio=0.33,
        max_aspect_ratio=3.0,
        max_media_side=4096,
    ),
    Platform.TWITTER: PlatformConstraints(
        platform=Platform.TWITTER,
        max_text_length=280,
        max_media=4,
        min_aspect_ratio=0.5,
        max_aspect_ratio=3.0,
        max_media_side=4096,
        supports_threads=True,
    ),
    Platform.INSTAGRAM: PlatformConstraints(
        platform=Platform.INSTAGRAM,
        max_text_length=2200,
        max_media=10,
        min_aspect_ratio=0.8,
        max_aspect_ratio=1.91,
        max_media_side=1440,
        requires_media=True,
    ),
    Platform.FACEBOOK: PlatformConstraints(
        platform=Platform.FACEBOOK,
        max_text_length=63206,
        max_media=10,
        min_aspect_ratio=0.33,
        max_aspect_ratio=3.0,
        max_media_side=4096,
    ),
}


def constraints_for(platform: Platform | str) -> PlatformConstraints:
    return CONSTRAINTS[Platform(platform)]
