from __future__ import annotations


class FeedError(Exception):
    """Base for failures caught at the refresh job boundary."""

    kind = "feed_error"

    def __init__(self, message: str, *, feed_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.feed_id = feed_id


class FetchError(FeedError):
    """Network error, timeout, bad status or undecodable provider body."""

    kind = "fetch_error"

    def __init__(
        self,
        message: str,
        *,
        feed_id: str | None = None,
        status: str = "error",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, feed_id=feed_id)
        self.status = status
        self.status_code = status_code


class ValidationError(FeedError):
    """Provider returned data that does not match the feed's minimal schema."""

    kind = "validation_error"

    def __init__(self, message: str, *, feed_id: str | None = None, issues=None) -> None:
        super().__init__(message, feed_id=feed_id)
        self.issues = list(issues or [])


class PersistenceError(FeedError):
    kind = "persistence_error"


class ConcurrencyError(FeedError):
    """A refresh was skipped because the previous run is still in flight."""

    kind = "concurrency_error"
