"""HTTP client for the remote server's bookmark and account endpoints."""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Any, Mapping, Protocol

import requests

from bookmarchive import __version__
from bookmarchive.core.config import Settings
from bookmarchive.core.errors import ApiError, Cancelled, FetchError
from bookmarchive.core.logging import get_logger
from bookmarchive.core.metrics import FETCH_LATENCY, FETCH_REQUESTS
from bookmarchive.ingest.ratelimit import RateLimiter
from bookmarchive.ingest.types import Account, Bookmark, MediaAttachment, Status, Tag
from bookmarchive.models.entities import AccountProfile
from bookmarchive.utils.time import parse_api_timestamp

logger = get_logger(__name__)

USER_AGENT = f"bookmarchive/{__version__}"
BOOKMARKS_PATH = "/api/v1/bookmarks"
VERIFY_CREDENTIALS_PATH = "/api/v1/accounts/verify_credentials"
RETRY_BASE_DELAY = 1.0


class BookmarkSource(Protocol):
    """Anything that can hand out pages of bookmarks, newest first."""

    def fetch_page(self, cancel: threading.Event, limit: int, cursor: str) -> tuple[list[Bookmark], str]: ...


class MastodonClient:
    """Authenticated access to one Mastodon-compatible server."""

    def __init__(
        self,
        server_url: str,
        access_token: str,
        timeout: timedelta = timedelta(seconds=30),
        session: requests.Session | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout.total_seconds()
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {access_token}",
                "User-Agent": USER_AGENT,
                "Accept": "application/json",
            }
        )

    @classmethod
    def from_settings(cls, settings: Settings, session: requests.Session | None = None) -> "MastodonClient":
        settings.require_remote()
        return cls(
            settings.server_url,
            settings.access_token,
            timeout=settings.client_timeout,
            session=session,
        )

    def url(self, path: str) -> str:
        return f"{self.server_url}{path}"

    def get(self, url: str, params: Mapping[str, Any] | None = None) -> requests.Response:
        return self.session.get(url, params=params, timeout=self.timeout)

    def close(self) -> None:
        """Drop pooled connections; a request blocked on one of them fails fast."""
        self.session.close()

    def verify_credentials(self, cancel: threading.Event | None = None) -> AccountProfile:
        """Fetch the authenticated account; raise ``FetchError`` on any failure."""
        try:
            resp = self.get(self.url(VERIFY_CREDENTIALS_PATH))
        except requests.RequestException as exc:
            if cancel is not None and cancel.is_set():
                raise Cancelled("credential check cancelled") from exc
            raise FetchError(f"failed to verify credentials: {exc}") from exc
        if resp.status_code != 200:
            raise ApiError(resp.status_code, f"failed to verify credentials: status {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise FetchError(f"invalid credentials response: {exc}") from exc
        return AccountProfile(
            account_id=str(data.get("id", "")),
            username=data.get("username") or "",
            display_name=data.get("display_name") or "",
            acct=data.get("acct") or "",
            avatar=data.get("avatar") or "",
        )


class MastodonBookmarkSource:
    """Rate-limited, retrying pager over ``/api/v1/bookmarks``."""

    def __init__(
        self,
        client: MastodonClient,
        rate_limiter: RateLimiter,
        max_retries: int = 3,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ) -> None:
        self.client = client
        self.rate_limiter = rate_limiter
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

    @classmethod
    def from_settings(cls, settings: Settings, client: MastodonClient | None = None) -> "MastodonBookmarkSource":
        return cls(
            client or MastodonClient.from_settings(settings),
            RateLimiter(settings.rate_limit_requests, settings.rate_limit_window),
            max_retries=settings.max_retries,
        )

    def fetch_page(self, cancel: threading.Event, limit: int, cursor: str) -> tuple[list[Bookmark], str]:
        self.rate_limiter.acquire(cancel)
        if cursor:
            url, params = cursor, None
        else:
            url = self.client.url(BOOKMARKS_PATH)
            params = {"limit": limit} if limit > 0 else None

        resp = self._get_with_retries(cancel, url, params)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise FetchError(f"failed to decode bookmark page: {exc}") from exc
        finally:
            resp.close()
        if not isinstance(payload, list):
            raise FetchError("bookmark page is not a JSON array")

        bookmarks = [bookmark_from_status(item) for item in payload]
        next_cursor = resp.links.get("next", {}).get("url", "")
        logger.debug(
            "Fetched bookmark page",
            extra={"ctx_count": len(bookmarks), "ctx_has_next": bool(next_cursor)},
        )
        return bookmarks, next_cursor

    def _get_with_retries(
        self,
        cancel: threading.Event,
        url: str,
        params: Mapping[str, Any] | None,
    ) -> requests.Response:
        last_error = FetchError("no request attempted")
        for attempt in range(self.max_retries + 1):
            start_time = time.perf_counter()
            try:
                resp = self.client.get(url, params=params)
            except requests.RequestException as exc:
                if cancel.is_set():
                    raise Cancelled("bookmark request cancelled") from exc
                FETCH_REQUESTS.labels(status="error").inc()
                last_error = FetchError(f"request failed: {exc}")
                logger.warning("Bookmark request failed (attempt %d): %s", attempt + 1, exc)
            else:
                FETCH_LATENCY.observe(time.perf_counter() - start_time)
                FETCH_REQUESTS.labels(status=str(resp.status_code)).inc()
                if 200 <= resp.status_code < 300:
                    return resp
                resp.close()
                error = ApiError(resp.status_code)
                if not error.retryable:
                    raise error
                last_error = error
                logger.warning("Bookmark request returned %d (attempt %d)", resp.status_code, attempt + 1)

            if attempt < self.max_retries:
                if cancel.wait(self.retry_base_delay * (attempt + 1)):
                    raise Cancelled("retry backoff cancelled")

        raise FetchError(f"request failed after {self.max_retries} retries: {last_error}") from last_error


def bookmark_from_status(data: Mapping[str, Any]) -> Bookmark:
    """Convert one status object from the bookmarks endpoint."""
    account_data = data.get("account") or {}
    account = Account(
        id=str(account_data.get("id", "")),
        username=account_data.get("username") or "",
        display_name=account_data.get("display_name") or "",
        avatar=account_data.get("avatar") or "",
    )
    media = [
        MediaAttachment(
            id=str(item.get("id", "")),
            type=item.get("type") or "",
            url=item.get("url") or "",
            description=item.get("description") or "",
        )
        for item in data.get("media_attachments") or []
    ]
    tags = [Tag(name=item.get("name") or "", url=item.get("url") or "") for item in data.get("tags") or []]
    created_at = parse_api_timestamp(data.get("created_at"))
    status = Status(
        id=str(data.get("id", "")),
        created_at=created_at,
        account=account,
        uri=data.get("uri") or "",
        url=data.get("url") or "",
        content=data.get("content") or "",
        spoiler_text=data.get("spoiler_text") or "",
        media_attachments=media,
        tags=tags,
    )
    return Bookmark(id=status.id, status=status, created_at=created_at)


__all__ = [
    "BookmarkSource",
    "MastodonClient",
    "MastodonBookmarkSource",
    "bookmark_from_status",
    "USER_AGENT",
]
