"""Tests for the acknowledge correlation store."""

from __future__ import annotations

import threading

import pytest

from src.relay.ack_store import AckCorrelationStore, InvalidTokenError, parse_token
from src.relay.models import AckLookup, AckStatus
from tests.conftest import FakeClock


@pytest.fixture
def store(clock: FakeClock) -> AckCorrelationStore:
    return AckCorrelationStore(retention_seconds=100, clock=clock)


class TestResolveAndLookup:
    @pytest.mark.parametrize("accepted", [True, False])
    def test_resolve_then_lookup(self, store: AckCorrelationStore, accepted: bool) -> None:
        store.resolve(555, accepted)
        assert store.lookup(555) == AckLookup(AckStatus.RESOLVED, accepted=accepted)

    def test_negative_token_is_valid(self, store: AckCorrelationStore) -> None:
        store.resolve(-7, True)
        assert store.lookup(-7).status is AckStatus.RESOLVED

    def test_zero_token_rejected(self, store: AckCorrelationStore) -> None:
        with pytest.raises(InvalidTokenError):
            store.resolve(0, True)
        assert len(store) == 0
        assert store.lookup(0).status is AckStatus.UNKNOWN

    def test_unknown_token(self, store: AckCorrelationStore) -> None:
        assert store.lookup(999) == AckLookup(AckStatus.UNKNOWN)

    def test_last_write_wins(self, store: AckCorrelationStore, clock: FakeClock) -> None:
        store.resolve(10, True)
        clock.advance(50)
        store.resolve(10, False)
        assert store.lookup(10).accepted is False
        # Timestamp refreshed by the second write
        clock.advance(60)
        assert store.lookup(10).status is AckStatus.RESOLVED

    def test_resolve_returns_outcome(self, store: AckCorrelationStore, clock: FakeClock) -> None:
        outcome = store.resolve(42, True)
        assert outcome.token == 42
        assert outcome.accepted is True
        assert outcome.updated_at == clock.now


class TestRetention:
    def test_visible_just_before_window(self, store: AckCorrelationStore, clock: FakeClock) -> None:
        store.resolve(1, True)
        clock.advance(99.999)
        assert store.lookup(1).status is AckStatus.RESOLVED

    def test_gone_exactly_at_window(self, store: AckCorrelationStore, clock: FakeClock) -> None:
        store.resolve(1, True)
        clock.advance(100)
        assert store.lookup(1).status is AckStatus.UNKNOWN

    def test_write_pass_purges_stale_entries(
        self, store: AckCorrelationStore, clock: FakeClock,
    ) -> None:
        store.resolve(1, True)
        clock.advance(150)
        store.resolve(2, False)
        assert len(store) == 1

    def test_purge_with_explicit_time(self, store: AckCorrelationStore, clock: FakeClock) -> None:
        store.resolve(1, True)
        store.resolve(2, True)
        assert store.purge(now=clock.now + 50) == 0
        assert store.purge(now=clock.now + 100) == 2
        assert len(store) == 0


class TestPending:
    def test_pending_lookup(self, store: AckCorrelationStore) -> None:
        assert store.mark_pending(77) is True
        assert store.lookup(77) == AckLookup(AckStatus.PENDING)
        assert store.lookup(77).response_code() == "2"

    def test_pending_does_not_overwrite_resolution(self, store: AckCorrelationStore) -> None:
        store.resolve(77, True)
        assert store.mark_pending(77) is False
        assert store.lookup(77).accepted is True

    def test_resolution_overwrites_pending(self, store: AckCorrelationStore) -> None:
        store.mark_pending(77)
        store.resolve(77, False)
        assert store.lookup(77).response_code() == "0"

    def test_pending_expires(self, store: AckCorrelationStore, clock: FakeClock) -> None:
        store.mark_pending(77)
        clock.advance(100)
        assert store.lookup(77).status is AckStatus.UNKNOWN

    def test_zero_token_cannot_be_pending(self, store: AckCorrelationStore) -> None:
        with pytest.raises(InvalidTokenError):
            store.mark_pending(0)


class TestResolvedOutcomes:
    def test_lists_only_live_resolved(self, store: AckCorrelationStore, clock: FakeClock) -> None:
        store.resolve(1, True)
        clock.advance(60)
        store.resolve(2, False)
        store.mark_pending(3)
        clock.advance(50)  # token 1 is now 110s old
        outcomes = store.resolved_outcomes()
        assert [(o.token, o.accepted) for o in outcomes] == [(2, False)]

    def test_ordered_by_write_time(self, store: AckCorrelationStore, clock: FakeClock) -> None:
        store.resolve(5, True)
        clock.advance(1)
        store.resolve(4, True)
        clock.advance(1)
        store.resolve(5, False)
        assert [o.token for o in store.resolved_outcomes()] == [4, 5]


class TestResponseCode:
    def test_codes(self) -> None:
        assert AckLookup(AckStatus.RESOLVED, accepted=True).response_code() == "1"
        assert AckLookup(AckStatus.RESOLVED, accepted=False).response_code() == "0"
        assert AckLookup(AckStatus.PENDING).response_code() == "2"
        assert AckLookup(AckStatus.UNKNOWN).response_code() == "2"


class TestParseToken:
    def test_valid(self) -> None:
        assert parse_token("1234") == 1234
        assert parse_token(" 55 ") == 55

    @pytest.mark.parametrize("raw", [None, "", "0", "abc", "1.5", "5_55", "５５５", "+5", "-"])
    def test_invalid(self, raw: str | None) -> None:
        with pytest.raises(InvalidTokenError):
            parse_token(raw)


def test_concurrent_writers_keep_every_token() -> None:
    store = AckCorrelationStore(retention_seconds=1000)

    def writer(offset: int) -> None:
        for i in range(1, 201):
            store.resolve(offset + i, i % 2 == 0)

    threads = [threading.Thread(target=writer, args=(n * 1000,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(store) == 8 * 200
