from __future__ import annotations

from agrifeed.config.settings import FeedProviderSettings, Settings
from agrifeed.providers.base import FetchClient
from agrifeed.providers.http import HttpFetchClient
from agrifeed.schemas.feed import FeedId


def _build_client(feed_id: FeedId, provider: FeedProviderSettings, timeout_seconds: float) -> HttpFetchClient:
    params = dict(provider.params)
    headers: dict[str, str] = {}
    if provider.api_key:
        if provider.api_key_header:
            headers[provider.api_key_header] = provider.api_key
        else:
            params[provider.api_key_param or "appid"] = provider.api_key
    return HttpFetchClient(
        feed_id,
        provider.url,
        params=params,
        headers=headers,
        timeout_seconds=timeout_seconds,
    )


def build_fetch_clients(settings: Settings) -> dict[FeedId, FetchClient]:
    return {
        feed_id: _build_client(
            feed_id, settings.providers.for_feed(feed_id), settings.fetch_timeout_seconds
        )
        for feed_id in FeedId
    }
