"""
Platform Clients - One adapter per platform API.

Clients translate formatted content into the platform's request shape.
They raise the transport errors of ``socialflow.http`` unchanged;
classification into transient/permanent happens in the publisher.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from socialflow.collaborators import AccountConnection
from socialflow.http import HttpApiError, HttpClient, HttpResponse

from .constraints import Platform
from .formatter import FormattedContent


class PublishedPost(BaseModel):
    post_id: str
    post_url: Optional[str] = None
    segment_ids: List[str] = Field(default_factory=list)


class PlatformClient(ABC):
    """Base class for platform adapters."""

    platform: Platform

    def __init__(self, base_url: str, timeout: float = 20):
        self.base_url = base_url
        self.timeout = timeout

    def http(self, connection: AccountConnection) -> HttpClient:
        return HttpClient(
            base_url=self.base_url,
            timeout=self.timeout,
            bearer_token=connection.credentials_handle,
            default_headers={"Content-Type": "application/json"},
        )

    @staticmethod
    def _json(response: HttpResponse) -> Dict[str, Any]:
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _require_id(data: Dict[str, Any], *path: str) -> str:
        value: Any = data
        for key in path:
            value = value.get(key) if isinstance(value, dict) else None
        if not value:
            raise HttpApiError(f"Response has no {'.'.join(path)}", status_code=502)
        return str(value)

    @abstractmethod
    def create_post(
        self,
        content: FormattedContent,
        media_urls: List[str],
        connection: AccountConnection,
        idempotency_key: str,
        visibility: str = "public",
        timeout: Optional[float] = None,
    ) -> PublishedPost:
        """Create the post. Must be safe to repeat with the same idempotency key."""


class LinkedInClient(PlatformClient):
    platform = Platform.LINKEDIN

    def create_post(self, content, media_urls, connection, idempotency_key, visibility="public", timeout=None):
        share: Dict[str, Any] = {
            "shareCommentary": {"text": content.text},
            "shareMediaCategory": "IMAGE" if media_urls else "NONE",
        }
        if media_urls:
            share["media"] = [{"status": "READY", "originalUrl": url} for url in media_urls]
        body = {
            "author": f"urn:li:person:{connection.account_id}",
            "lifecycleState": "PUBLISHED",
            "specificContent": {"com.linkedin.ugc.ShareContent": share},
            "visibility": {
                "com.linkedin.ugc.MemberNetworkVisibility":
                    "CONNECTIONS" if visibility == "connections" else "PUBLIC",
            },
        }
        response = self.http(connection).post(
            "/v2/ugcPosts",
            json=body,
            headers={"X-Restli-Protocol-Version": "2.0.0", "Idempotency-Key": idempotency_key},
            timeout=timeout,
        )
        data = self._json(response)
        post_id = response.headers.get("x-restli-id") or self._require_id(data, "id")
        return PublishedPost(
            post_id=post_id,
            post_url=f"https://www.linkedin.com/feed/update/{post_id}",
        )


class TwitterClient(PlatformClient):
    platform = Platform.TWITTER

    def create_post(self, content, media_urls, connection, idempotency_key, visibility="public", timeout=None):
        http = self.http(connection)
        media_ids = []
        for i, url in enumerate(media_urls):
            response = http.post(
                "/2/media/upload",
                json={"url": url, "media_category": "tweet_image"},
                headers={"Idempotency-Key": f"{idempotency_key}:media:{i}"},
                timeout=timeout,
            )
            media_ids.append(self._require_id(self._json(response), "data", "id"))

        segment_ids: List[str] = []
        reply_to: Optional[str] = None
        segments = content.segments or [content.text]
        for i, segment in enumerate(segments):
            body: Dict[str, Any] = {"text": segment}
            if i == 0 and media_ids:
                body["media"] = {"media_ids": media_ids}
            if reply_to:
                body["reply"] = {"in_reply_to_tweet_id": reply_to}
            response = http.post(
                "/2/tweets",
                json=body,
                headers={"Idempotency-Key": f"{idempotency_key}:{i}"},
                timeout=timeout,
            )
            reply_to = self._require_id(self._json(response), "data", "id")
            segment_ids.append(reply_to)

        return PublishedPost(
            post_id=segment_ids[0],
            post_url=f"https://twitter.com/i/web/status/{segment_ids[0]}",
            segment_ids=segment_ids,
        )


class InstagramClient(PlatformClient):
    platform = Platform.INSTAGRAM

    def create_post(self, content, media_urls, connection, idempotency_key, visibility="public", timeout=None):
        http = self.http(connection)
        account = connection.account_id

        def container(body: Dict[str, Any], step: str) -> str:
            response = http.post(
                f"/{account}/media",
                json=body,
                headers={"Idempotency-Key": f"{idempotency_key}:{step}"},
                timeout=timeout,
            )
            return self._require_id(self._json(response), "id")

        if len(media_urls) == 1:
            creation_id = container({"image_url": media_urls[0], "caption": content.text}, "container")
        else:
            children = [
                container({"image_url": url, "is_carousel_item": True}, f"item:{i}")
                for i, url in enumerate(media_urls)
            ]
            creation_id = container(
                {"media_type": "CAROUSEL", "children": ",".join(children), "caption": content.text},
                "carousel",
            )

        response = http.post(
            f"/{account}/media_publish",
            json={"creation_id": creation_id},
            headers={"Idempotency-Key": f"{idempotency_key}:publish"},
            timeout=timeout,
        )
        post_id = self._require_id(self._json(response), "id")
        return PublishedPost(post_id=post_id)


class FacebookClient(PlatformClient):
    platform = Platform.FACEBOOK

    def create_post(self, content, media_urls, connection, idempotency_key, visibility="public", timeout=None):
        http = self.http(connection)
        page = connection.account_id

        if len(media_urls) == 1:
            response = http.post(
                f"/{page}/photos",
                json={"url": media_urls[0], "caption": content.text},
                headers={"Idempotency-Key": idempotency_key},
                timeout=timeout,
            )
            data = self._json(response)
            post_id = str(data.get("post_id") or self._require_id(data, "id"))
            return PublishedPost(post_id=post_id, post_url=f"https://www.facebook.com/{post_id}")

        attached = []
        for i, url in enumerate(media_urls):
            response = http.post(
                f"/{page}/photos",
                json={"url": url, "published": False},
                headers={"Idempotency-Key": f"{idempotency_key}:photo:{i}"},
                timeout=timeout,
            )
            attached.append({"media_fbid": self._require_id(self._json(response), "id")})

        body: Dict[str, Any] = {"message": content.text}
        if attached:
            body["attached_media"] = attached
        response = http.post(
            f"/{page}/feed",
            json=body,
            headers={"Idempotency-Key": idempotency_key},
            timeout=timeout,
        )
        post_id = self._require_id(self._json(response), "id")
        return PublishedPost(post_id=post_id, post_url=f"https://www.facebook.com/{post_id}")


__all__ = [
    "PublishedPost",
    "PlatformClient",
    "LinkedInClient",
    "TwitterClient",
    "InstagramClient",
    "FacebookClient",
]
