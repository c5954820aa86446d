"""
External collaborators consumed by the engine.

The engine only depends on the protocols below. The HTTP implementations
talk to the surrounding platform's services; tests supply fakes.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel, Field

from socialflow.content import ContentValue, MediaRef, PortType
from socialflow.http import HttpApiError, HttpClient


class AccountConnection(BaseModel):
    """
    A user's link to a platform account.

    ``credentials_handle`` is opaque: the engine passes it through to the
    platform client and never inspects, stores or refreshes it.
    """

    connection_id: str
    valid: bool
    platform: str
    account_id: Optional[str] = None
    credentials_handle: Optional[str] = Field(None, repr=False)


class ConnectionLookup(Protocol):
    def lookup_connection(self, connection_id: str) -> Optional[AccountConnection]:
        """Return the connection, or None when it does not exist."""
        ...


class ContentGenerator(Protocol):
    def generate_content(self, kind: PortType, parameters: Dict[str, Any]) -> ContentValue:
        """
        Generate text or an image.

        Raises:
            Exception: any failure; the generator node applies its fallback
        """
        ...


class MediaStore(Protocol):
    def upload_file(self, key: str, data: bytes, mime_type: str) -> MediaRef:
        ...

    def get_file(self, key: str) -> bytes:
        ...

    def resize_image(self, key: str, width: int, height: int) -> MediaRef:
        ...

    def presign(self, key: str, expires_s: int = 3600) -> str:
        ...


class HttpConnectionLookup:
    """Connection lookup backed by the account service."""

    def __init__(self, base_url: str, timeout: float = 30):
        self._client = HttpClient(base_url=base_url, timeout=timeout)

    def lookup_connection(self, connection_id: str) -> Optional[AccountConnection]:
        response = self._client.get(f"/connections/{connection_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = response.json()
        return AccountConnection(connection_id=connection_id, **data)


class HttpContentGenerator:
    """Content generation backed by the generation service."""

    def __init__(self, base_url: str, timeout: float = 60):
        self._client = HttpClient(base_url=base_url, timeout=timeout)

    def generate_content(self, kind: PortType, parameters: Dict[str, Any]) -> ContentValue:
        response = self._client.post(f"/generate/{kind.value}", json=parameters)
        response.raise_for_status()
        data = response.json()
        if kind == PortType.TEXT:
            text = data.get("text")
            if not isinstance(text, str):
                raise HttpApiError("Generation service returned no text", status_code=response.status_code)
            return ContentValue.of_text(text)
        media = MediaRef.model_validate(data["media"])
        return ContentValue.of_media(media)


class HttpMediaStore:
    """Object storage access through the media service."""

    def __init__(self, base_url: str, timeout: float = 30):
        self._client = HttpClient(base_url=base_url, timeout=timeout)

    def upload_file(self, key: str, data: bytes, mime_type: str) -> MediaRef:
        response = self._client.post(
            f"/files/{key}", data=data, headers={"Content-Type": mime_type}
        )
        response.raise_for_status()
        return MediaRef.model_validate(response.json())

    def get_file(self, key: str) -> bytes:
        response = self._client.get(f"/files/{key}")
        response.raise_for_status()
        return response.content

    def resize_image(self, key: str, width: int, height: int) -> MediaRef:
        response = self._client.post(
            f"/files/{key}/resize", json={"width": width, "height": height}
        )
        response.raise_for_status()
        return MediaRef.model_validate(response.json())

    def presign(self, key: str, expires_s: int = 3600) -> str:
        response = self._client.post(f"/files/{key}/presign", json={"expires_s": expires_s})
        response.raise_for_status()
        return response.json()["url"]


__all__ = [
    "AccountConnection",
    "ConnectionLookup",
    "ContentGenerator",
    "MediaStore",
    "HttpConnectionLookup",
    "HttpContentGenerator",
    "HttpMediaStore",
]
