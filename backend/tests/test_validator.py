import pytest

from agrifeed.schemas.feed import FeedId
from agrifeed.validation.validator import validate_payload


@pytest.mark.parametrize(
    ("feed_id", "payload"),
    [
        (FeedId.WEATHER, {"main": {"temp": 31.4, "humidity": 70}, "name": "Bangkok"}),
        (FeedId.MARKET, {"rice": 32.5}),
        (FeedId.MARKET, {"prices": {"rice": 32.5, "cassava": 2.9}, "currency": "THB"}),
        (FeedId.NEWS, {"articles": [{"title": "Rain boosts rice planting"}]}),
        (FeedId.ALERTS, ["Flood warning: Chao Phraya basin"]),
        (FeedId.ALERTS, {"alerts": []}),
        (FeedId.CROP_PLAN, {"nextPlanting": "2026-05-15", "crop": "rice"}),
    ],
)
def test_valid_payloads_pass(feed_id: FeedId, payload) -> None:
    assert validate_payload(feed_id, payload).status == "ok"


@pytest.mark.parametrize(
    ("feed_id", "payload", "field"),
    [
        (FeedId.WEATHER, {"main": {"temp": "hot"}}, "payload.main.temp"),
        (FeedId.WEATHER, {"weather": []}, "payload.main"),
        (FeedId.MARKET, {}, "payload"),
        (FeedId.MARKET, {"currency": "THB", "updated": True}, "payload"),
        (FeedId.MARKET, {"prices": {"rice": -1.0}}, "payload.prices"),
        (FeedId.NEWS, {"status": "ok"}, "payload.articles"),
        (FeedId.NEWS, {"articles": [{"title": "ok"}, {"url": "x"}]}, "payload.articles.title"),
        (FeedId.ALERTS, {"message": "none"}, "payload"),
        (FeedId.CROP_PLAN, {"nextPlanting": "  "}, "payload.nextPlanting"),
        (FeedId.CROP_PLAN, ["rice"], "payload"),
    ],
)
def test_invalid_payloads_fail(feed_id: FeedId, payload, field: str) -> None:
    result = validate_payload(feed_id, payload)

    assert result.status == "fail"
    assert any(issue.field == field and issue.level == "fail" for issue in result.issues)


def test_scalar_payload_fails_for_every_feed() -> None:
    for feed_id in FeedId:
        assert validate_payload(feed_id, "<html>maintenance</html>").status == "fail"
        assert validate_payload(feed_id, None).status == "fail"


def test_market_boolean_is_not_a_price() -> None:
    assert validate_payload(FeedId.MARKET, {"rice": True}).status == "fail"


def test_empty_news_is_a_warning() -> None:
    result = validate_payload(FeedId.NEWS, {"articles": []})

    assert result.status == "warn"
    assert result.issues[0].field == "payload.articles"


def test_market_with_nested_metadata_warns() -> None:
    result = validate_payload(FeedId.MARKET, {"rice": 32.5, "source": {"name": "OAE"}})

    assert result.status == "warn"
    assert "source" in result.issues[0].message
