from __future__ import annotations

from typing import Any, Protocol


class FetchClient(Protocol):
    """Source of raw data for one feed.

    ``fetch`` returns decoded JSON (object or array) or raises ``FetchError``.
    """

    async def fetch(self) -> Any: ...
