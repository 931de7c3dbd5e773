from __future__ import annotations

import json
from typing import Any

import httpx

from agrifeed.errors import FetchError
from agrifeed.schemas.feed import FeedId

USER_AGENT = "agrifeed/0.1"


class HttpFetchClient:
    def __init__(
        self,
        feed_id: FeedId,
        url: str | None,
        *,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.feed_id = feed_id
        self.url = url
        self.params = dict(params or {})
        self.headers = {"User-Agent": USER_AGENT, **(headers or {})}
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def fetch(self) -> Any:
        if not self.url:
            raise FetchError(
                f"No provider URL configured for {self.feed_id.value}.",
                feed_id=self.feed_id.value,
                status="missing_config",
            )

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                follow_redirects=True,
                headers=self.headers,
                transport=self._transport,
            ) as client:
                response = await client.get(self.url, params=self.params)
        except httpx.TimeoutException as exc:
            raise FetchError(
                f"Provider timed out after {self.timeout_seconds}s.",
                feed_id=self.feed_id.value,
                status="timeout",
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(
                f"Provider request failed: {exc}", feed_id=self.feed_id.value
            ) from exc

        if not response.is_success:
            status = "rate_limited" if response.status_code == 429 else "bad_status"
            raise FetchError(
                f"Provider answered HTTP {response.status_code} ({status}).",
                feed_id=self.feed_id.value,
                status=status,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise FetchError(
                "Provider body is not valid JSON.",
                feed_id=self.feed_id.value,
                status_code=response.status_code,
            ) from exc
