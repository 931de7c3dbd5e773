import threading

import pytest

from agrifeed.cache import FeedStore
from agrifeed.errors import FetchError
from agrifeed.schemas.feed import FeedId

from conftest import BASE_TIME, make_snapshot


def test_get_before_first_publish_is_none(store: FeedStore) -> None:
    for feed_id in FeedId:
        assert store.get(feed_id) is None


def test_publish_replaces_with_newer_snapshot(store: FeedStore) -> None:
    first = make_snapshot(seconds=0)
    second = make_snapshot(payload={"rice": 33.0}, seconds=60)

    assert store.publish(FeedId.MARKET, first) is True
    assert store.publish(FeedId.MARKET, second) is True
    assert store.get(FeedId.MARKET) == second


def test_out_of_order_publish_is_discarded(store: FeedStore) -> None:
    newer = make_snapshot(payload={"rice": 33.0}, seconds=120)
    older = make_snapshot(payload={"rice": 31.0}, seconds=60)

    store.publish(FeedId.MARKET, newer)
    assert store.publish(FeedId.MARKET, older) is False

    assert store.get(FeedId.MARKET) == newer
    assert store.state(FeedId.MARKET).suppressed_count == 1
    assert store.state(FeedId.MARKET).publish_count == 1


def test_equal_timestamp_is_accepted(store: FeedStore) -> None:
    first = make_snapshot(payload={"rice": 32.0}, seconds=10)
    second = make_snapshot(payload={"rice": 32.5}, seconds=10)

    store.publish(FeedId.MARKET, first)
    assert store.publish(FeedId.MARKET, second) is True
    assert store.get(FeedId.MARKET).payload == {"rice": 32.5}


def test_store_keeps_its_own_copy_of_the_payload(store: FeedStore) -> None:
    published = make_snapshot(payload={"rice": 32.5, "prices": {"corn": 9.1}})
    store.publish(FeedId.MARKET, published)

    published.payload["rice"] = 0
    store.get(FeedId.MARKET).payload["prices"]["corn"] = 0
    store.state(FeedId.MARKET).snapshot.payload.clear()

    assert store.get(FeedId.MARKET).payload == {"rice": 32.5, "prices": {"corn": 9.1}}


def test_publish_rejects_snapshot_of_other_feed(store: FeedStore) -> None:
    with pytest.raises(ValueError):
        store.publish(FeedId.WEATHER, make_snapshot(FeedId.MARKET))
    assert store.get(FeedId.WEATHER) is None


def test_feeds_are_independent(store: FeedStore) -> None:
    store.publish(FeedId.MARKET, make_snapshot(seconds=100))
    # An older weather snapshot is not compared against market data.
    assert store.publish(FeedId.WEATHER, make_snapshot(FeedId.WEATHER, {"main": {"temp": 30}}, seconds=5))
    assert store.get(FeedId.WEATHER).payload == {"main": {"temp": 30}}


def test_unknown_feed_raises_key_error() -> None:
    store = FeedStore([FeedId.MARKET])
    with pytest.raises(KeyError):
        store.get(FeedId.NEWS)


def test_error_record_is_kept_and_cleared(store: FeedStore) -> None:
    store.record_error(FeedId.NEWS, FetchError("HTTP 502"), BASE_TIME)
    store.record_error(FeedId.NEWS, FetchError("HTTP 503"), BASE_TIME)

    state = store.state(FeedId.NEWS)
    assert state.last_error.kind == "fetch_error"
    assert state.last_error.message == "HTTP 503"
    assert state.failure_count == 2
    assert state.consecutive_failures == 2

    store.clear_error(FeedId.NEWS)
    state = store.state(FeedId.NEWS)
    assert state.last_error is None
    assert state.consecutive_failures == 0
    assert state.failure_count == 2


def test_concurrent_readers_never_see_torn_or_regressing_snapshots(store: FeedStore) -> None:
    snapshots = [
        make_snapshot(payload={"rice": float(i), "seq": i}, seconds=i) for i in range(500)
    ]
    stop = threading.Event()
    observed: list[list] = [[] for _ in range(4)]

    def reader(bucket: list) -> None:
        while not stop.is_set():
            snapshot = store.get(FeedId.MARKET)
            if snapshot is not None:
                bucket.append(snapshot)

    threads = [threading.Thread(target=reader, args=(bucket,)) for bucket in observed]
    for thread in threads:
        thread.start()
    # Shuffle in a few late completions that must be suppressed.
    for index, snapshot in enumerate(snapshots):
        store.publish(FeedId.MARKET, snapshot)
        if index >= 10 and index % 50 == 0:
            store.publish(FeedId.MARKET, snapshots[index - 10])
    stop.set()
    for thread in threads:
        thread.join()

    for bucket in observed:
        previous = None
        for snapshot in bucket:
            seq = snapshot.payload["seq"]
            assert snapshot == snapshots[seq]
            assert snapshot.payload["rice"] == float(seq)
            assert snapshot.fetched_at == snapshots[seq].fetched_at
            if previous is not None:
                assert snapshot.fetched_at >= previous.fetched_at
            previous = snapshot

    assert store.get(FeedId.MARKET) == snapshots[-1]
