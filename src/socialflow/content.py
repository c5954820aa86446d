"""
Content values exchanged between nodes.

Node outputs are held in memory for the lifetime of one execution; the
ledger only ever stores their digest.
"""

from __future__ import annotations

import hashlib
import json
import threading
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PortType(str, Enum):
    """Type of a node port."""
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    MIXED = "mixed"


class MediaRef(BaseModel):
    """
    Pointer to a media object in object storage.

    ``target_width``/``target_height`` describe a pending resize that the
    publisher materializes through the media collaborator.
    """
    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1, description="Object storage key")
    media_type: PortType = Field(PortType.IMAGE, description="image or video")
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)
    mime_type: Optional[str] = None
    target_width: Optional[int] = Field(None, gt=0)
    target_height: Optional[int] = Field(None, gt=0)

    @property
    def needs_resize(self) -> bool:
        return self.target_width is not None and self.target_height is not None

    @property
    def effective_size(self) -> tuple[Optional[int], Optional[int]]:
        if self.needs_resize:
            return self.target_width, self.target_height
        return self.width, self.height

    @property
    def aspect_ratio(self) -> Optional[float]:
        w, h = self.effective_size
        if not w or not h:
            return None
        return w / h


class ContentValue(BaseModel):
    """Value flowing over a connection."""
    model_config = ConfigDict(frozen=True)

    kind: PortType
    text: Optional[str] = None
    media: List[MediaRef] = Field(default_factory=list)
    data: Any = None

    @classmethod
    def of_text(cls, text: str) -> "ContentValue":
        return cls(kind=PortType.TEXT, text=text)

    @classmethod
    def of_media(cls, media: MediaRef) -> "ContentValue":
        return cls(kind=media.media_type, media=[media])

    @classmethod
    def of_payload(cls, data: Any) -> "ContentValue":
        return cls(kind=PortType.MIXED, data=data)

    def as_prompt_context(self) -> str:
        """Render this value for interpolation into a generation prompt."""
        if self.text:
            return self.text
        if self.data is not None:
            if isinstance(self.data, str):
                return self.data
            return json.dumps(self.data, sort_keys=True, default=str)
        return ""

    def digest(self) -> str:
        """Content digest used as the output reference."""
        canonical = json.dumps(
            self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"), default=str
        )
        return "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class OutputStore:
    """
    Per-execution store of node outputs, addressed by digest.

    Thread-safe; nodes of one execution write to it concurrently.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: Dict[str, ContentValue] = {}

    def put(self, value: ContentValue) -> str:
        ref = value.digest()
        with self._lock:
            self._values[ref] = value
        return ref

    def get(self, ref: str) -> Optional[ContentValue]:
        with self._lock:
            return self._values.get(ref)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)


__all__ = [
    "PortType",
    "MediaRef",
    "ContentValue",
    "OutputStore",
]
