"""Tests for conflict detection and resolution strategies."""

from datetime import datetime, timedelta, timezone

import pytest

from offline_sync.core import (
    ConflictResolution,
    ConflictResolver,
    OperationType,
    SyncConflict,
    SyncOperation,
    detect_conflict,
    get_strategy,
    latest_timestamp_wins,
    merge_payloads,
    register_strategy,
)


T10 = datetime(2024, 1, 1, 0, 0, 10, tzinfo=timezone.utc)
T20 = datetime(2024, 1, 1, 0, 0, 20, tzinfo=timezone.utc)


def make_conflict(local_ts=T10, remote_ts=T20) -> SyncConflict:
    return SyncConflict(
        entity_type="order",
        entity_id="1",
        local_payload={"title": "A"},
        remote_payload={"title": "B", "notes": "remote"},
        local_timestamp=local_ts,
        remote_timestamp=remote_ts,
    )


class TestDefaultPolicy:
    """Latest timestamp wins, ties to the server."""

    def test_newer_remote_wins(self):
        conflict = make_conflict()

        decision = latest_timestamp_wins(conflict)

        assert decision == ConflictResolution.USE_SERVER
        assert ConflictResolver.resolved_payload(conflict, decision) == {"title": "B", "notes": "remote"}

    def test_newer_local_wins(self):
        assert latest_timestamp_wins(make_conflict(T20, T10)) == ConflictResolution.USE_LOCAL

    def test_tie_goes_to_server(self):
        assert latest_timestamp_wins(make_conflict(T10, T10)) == ConflictResolution.USE_SERVER

    def test_naive_timestamps_treated_as_utc(self):
        naive_remote = T20.replace(tzinfo=None)
        assert latest_timestamp_wins(make_conflict(T10, naive_remote)) == ConflictResolution.USE_SERVER


class TestMerge:
    """Shallow merge with local precedence."""

    def test_local_wins_on_collision(self):
        assert merge_payloads({"a": 1, "b": 2}, {"b": 3, "c": 4}) == {"a": 1, "b": 2, "c": 4}

    def test_non_mapping_keeps_local(self):
        assert merge_payloads([1, 2], {"a": 1}) == [1, 2]

    def test_resolved_payload_for_merge(self):
        payload = ConflictResolver.resolved_payload(make_conflict(), ConflictResolution.MERGE)
        assert payload == {"title": "A", "notes": "remote"}


class TestDetection:
    """Remote state newer than the enqueue time is a conflict."""

    def setup_method(self):
        """Set up test fixtures."""
        self.operation = SyncOperation(
            type=OperationType.UPDATE,
            entity_type="order",
            entity_id="1",
            payload={"title": "A"},
            enqueued_at=T10,
        )

    def test_newer_remote_detected(self):
        conflict = detect_conflict(self.operation, {"title": "B"}, T20)

        assert conflict is not None
        assert conflict.local_timestamp == T10
        assert conflict.remote_payload == {"title": "B"}

    def test_older_or_equal_remote_ignored(self):
        assert detect_conflict(self.operation, {"title": "B"}, T10) is None
        assert detect_conflict(self.operation, {"title": "B"}, T10 - timedelta(seconds=1)) is None

    def test_missing_remote_timestamp_ignored(self):
        assert detect_conflict(self.operation, {"title": "B"}, None) is None


class TestConflictResolver:
    """Pluggable resolver functions."""

    @pytest.mark.asyncio
    async def test_default_resolver(self):
        resolver = ConflictResolver()
        assert await resolver.resolve(make_conflict()) == ConflictResolution.USE_SERVER

    @pytest.mark.asyncio
    async def test_async_resolver_awaited(self):
        async def always_merge(conflict):
            return ConflictResolution.MERGE

        resolver = ConflictResolver(always_merge)
        assert await resolver.resolve(make_conflict()) == ConflictResolution.MERGE

    @pytest.mark.asyncio
    async def test_string_decision_coerced(self):
        resolver = ConflictResolver(lambda conflict: "use_local")
        assert await resolver.resolve(make_conflict()) == ConflictResolution.USE_LOCAL

    def test_builtin_strategies(self):
        conflict = make_conflict()
        assert get_strategy("use_local")(conflict) == ConflictResolution.USE_LOCAL
        assert get_strategy("use_server")(conflict) == ConflictResolution.USE_SERVER
        assert get_strategy("merge")(conflict) == ConflictResolution.MERGE

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValueError, match="Unknown conflict strategy"):
            get_strategy("coin_flip")

    def test_register_custom_strategy(self):
        register_strategy("always_local", lambda conflict: ConflictResolution.USE_LOCAL)
        assert get_strategy("always_local")(make_conflict()) == ConflictResolution.USE_LOCAL
