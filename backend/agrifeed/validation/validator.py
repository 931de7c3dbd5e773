from __future__ import annotations

from typing import Any, Callable

from agrifeed.schemas.feed import FeedId
from agrifeed.schemas.validation import ValidationIssue, ValidationResult


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_weather(payload: Any) -> list[ValidationIssue]:
    if not isinstance(payload, dict):
        return [ValidationIssue(field="payload", level="fail", message="Weather data must be an object.")]
    main = payload.get("main")
    if not isinstance(main, dict):
        return [ValidationIssue(field="payload.main", level="fail", message="Missing 'main' conditions block.")]
    if not _is_number(main.get("temp")):
        return [ValidationIssue(field="payload.main.temp", level="fail", message="Temperature must be numeric.")]
    return []


def _validate_market(payload: Any) -> list[ValidationIssue]:
    if not isinstance(payload, dict):
        return [ValidationIssue(field="payload", level="fail", message="Market data must be an object.")]

    prices = payload.get("prices")
    field = "payload.prices"
    if not isinstance(prices, dict):
        prices = payload
        field = "payload"

    issues: list[ValidationIssue] = []
    numeric = {name: value for name, value in prices.items() if _is_number(value)}
    if not numeric:
        issues.append(
            ValidationIssue(field=field, level="fail", message="Expected at least one commodity price.")
        )

    negative = sorted(name for name, value in numeric.items() if value < 0)
    if negative:
        issues.append(
            ValidationIssue(
                field=field,
                level="fail",
                message="Prices must not be negative: " + ", ".join(negative),
            )
        )

    # Metadata such as currency or unit is allowed alongside the prices.
    ignored = sorted(
        name
        for name, value in prices.items()
        if not _is_number(value) and not isinstance(value, str) and name != "prices"
    )
    if ignored:
        issues.append(
            ValidationIssue(
                field=field,
                level="warn",
                message="Ignoring non-numeric price entries: " + ", ".join(ignored),
            )
        )
    return issues


def _validate_news(payload: Any) -> list[ValidationIssue]:
    if not isinstance(payload, dict) or not isinstance(payload.get("articles"), list):
        return [ValidationIssue(field="payload.articles", level="fail", message="Expected an 'articles' list.")]
    articles = payload["articles"]
    if not articles:
        return [ValidationIssue(field="payload.articles", level="warn", message="No articles in this update.")]
    untitled = [
        index
        for index, article in enumerate(articles)
        if not isinstance(article, dict) or not str(article.get("title") or "").strip()
    ]
    if untitled:
        return [
            ValidationIssue(
                field="payload.articles.title",
                level="fail",
                message="Articles without title at positions: " + ", ".join(str(i) for i in untitled),
            )
        ]
    return []


def _validate_alerts(payload: Any) -> list[ValidationIssue]:
    if isinstance(payload, list):
        return []
    if isinstance(payload, dict) and isinstance(payload.get("alerts"), list):
        return []
    return [ValidationIssue(field="payload", level="fail", message="Alerts must be a list or contain an 'alerts' list.")]


def _validate_crop_plan(payload: Any) -> list[ValidationIssue]:
    if not isinstance(payload, dict):
        return [ValidationIssue(field="payload", level="fail", message="Crop plan must be an object.")]
    if not str(payload.get("nextPlanting") or "").strip():
        return [
            ValidationIssue(field="payload.nextPlanting", level="fail", message="Crop plan needs 'nextPlanting'.")
        ]
    return []


_VALIDATORS: dict[FeedId, Callable[[Any], list[ValidationIssue]]] = {
    FeedId.WEATHER: _validate_weather,
    FeedId.MARKET: _validate_market,
    FeedId.NEWS: _validate_news,
    FeedId.ALERTS: _validate_alerts,
    FeedId.CROP_PLAN: _validate_crop_plan,
}


def validate_payload(feed_id: FeedId, payload: Any) -> ValidationResult:
    if not isinstance(payload, (dict, list)):
        issues = [
            ValidationIssue(field="payload", level="fail", message="Payload must be a JSON object or array.")
        ]
    else:
        issues = _VALIDATORS[feed_id](payload)

    status = "ok"
    if any(issue.level == "fail" for issue in issues):
        status = "fail"
    elif issues:
        status = "warn"

    return ValidationResult(status=status, issues=issues)
