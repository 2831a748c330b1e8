"""
Tests for merging sync/maindata responses into the canonical state.

Covers full snapshots, partial deltas, absent versus zero fields, removals,
cursor ordering and recovery after a server restart.
"""

import pytest

from qbt_tui.errors import MalformedDeltaError, StaleCursorError
from qbt_tui.models import CanonicalState, SyncResponse
from qbt_tui.sync import SyncReconciler, merge


def full(rid, torrents=None, **extra):
    return SyncResponse.model_validate({"rid": rid, "full_update": True, "torrents": torrents or {}, **extra})


def delta(rid, torrents=None, **extra):
    return SyncResponse.model_validate({"rid": rid, "torrents": torrents or {}, **extra})


@pytest.fixture
def snapshot_state():
    response = full(1, {
        "aaa": {"name": "Alpha", "size": 100, "progress": 0.5, "dlspeed": 500, "state": "downloading"},
        "bbb": {"name": "Beta", "size": 200, "progress": 1.0, "state": "uploading"},
    })
    return merge(CanonicalState(), response).state


class TestFullSnapshot:
    """Tests for full snapshots."""

    def test_snapshot_replaces_state(self, snapshot_state):
        """Test a snapshot loads every record and takes its cursor."""
        assert snapshot_state.cursor == 1
        assert set(snapshot_state.records) == {"aaa", "bbb"}
        assert snapshot_state.records["aaa"].name == "Alpha"
        assert snapshot_state.records["bbb"].progress == 1.0

    def test_record_hash_is_map_key(self, snapshot_state):
        """Test the record hash comes from the map key, not the payload."""
        assert snapshot_state.records["aaa"].hash == "aaa"

        state = merge(CanonicalState(), full(1, {"ccc": {"hash": "other", "name": "C"}})).state
        assert state.records["ccc"].hash == "ccc"

    def test_second_snapshot_drops_missing_records(self, snapshot_state):
        """Test a newer snapshot replaces instead of merging."""
        state = merge(snapshot_state, full(2, {"bbb": {"name": "Beta"}})).state
        assert set(state.records) == {"bbb"}
        assert state.records["bbb"].size == 0

    def test_stale_snapshot_rejected(self, snapshot_state):
        """Test a snapshot older than the state is rejected."""
        with pytest.raises(StaleCursorError):
            merge(snapshot_state, full(1, {}))

    def test_snapshot_accepted_when_cursor_reset(self, snapshot_state):
        """Test a snapshot with a low cursor is taken once the cursor is 0."""
        reset = CanonicalState(records=snapshot_state.records)
        state = merge(reset, full(1, {"zzz": {"name": "Zed"}})).state
        assert state.cursor == 1
        assert set(state.records) == {"zzz"}

    def test_resync_takes_any_snapshot_and_no_delta(self, snapshot_state):
        """Test a requested snapshot is taken even with a lower cursor."""
        state = merge(snapshot_state, delta(9)).state
        with pytest.raises(StaleCursorError):
            merge(state, delta(10), resync=True)

        state = merge(state, full(2, {"zzz": {"name": "Zed"}}), resync=True).state
        assert state.cursor == 2
        assert set(state.records) == {"zzz"}


class TestDelta:
    """Tests for incremental updates."""

    def test_absent_fields_are_kept(self, snapshot_state):
        """Test fields missing from a delta keep their previous value."""
        state = merge(snapshot_state, delta(2, {"aaa": {"progress": 0.75}})).state
        record = state.records["aaa"]
        assert record.progress == 0.75
        assert record.name == "Alpha"
        assert record.size == 100
        assert record.dlspeed == 500

    def test_present_zero_overwrites(self, snapshot_state):
        """Test a field explicitly set to zero is applied."""
        state = merge(snapshot_state, delta(2, {"aaa": {"dlspeed": 0}})).state
        assert state.records["aaa"].dlspeed == 0

    def test_null_is_treated_as_absent(self, snapshot_state):
        """Test a null value does not clear a field."""
        state = merge(snapshot_state, delta(2, {"aaa": {"name": None, "size": 150}})).state
        assert state.records["aaa"].name == "Alpha"
        assert state.records["aaa"].size == 150

    def test_new_hash_is_promoted(self, snapshot_state):
        """Test an unknown hash in a delta becomes a record with zero defaults."""
        state = merge(snapshot_state, delta(2, {"ccc": {"name": "Gamma"}})).state
        record = state.records["ccc"]
        assert record.hash == "ccc"
        assert record.name == "Gamma"
        assert record.size == 0
        assert record.state == ""

    def test_removal(self, snapshot_state):
        """Test removed hashes disappear from the state."""
        state = merge(snapshot_state, delta(2, torrents_removed=["aaa"])).state
        assert set(state.records) == {"bbb"}

    def test_removal_of_unknown_hash_is_reported(self, snapshot_state):
        """Test removing an unknown hash is a problem but the rest applies."""
        result = merge(snapshot_state, delta(2, {"bbb": {"ratio": 2.5}}, torrents_removed=["nope"]))
        assert len(result.problems) == 1
        assert isinstance(result.problems[0], MalformedDeltaError)
        assert result.problems[0].info_hash == "nope"
        assert result.state.records["bbb"].ratio == 2.5
        assert result.state.cursor == 2

    def test_same_delta_twice_is_rejected(self, snapshot_state):
        """Test re-applying a delta does not change the state again."""
        update = delta(2, {"aaa": {"progress": 0.9}})
        state = merge(snapshot_state, update).state
        with pytest.raises(StaleCursorError):
            merge(state, update)

    def test_older_delta_is_rejected(self, snapshot_state):
        """Test a delta with a cursor behind the state is rejected."""
        state = merge(snapshot_state, delta(5)).state
        with pytest.raises(StaleCursorError) as exc_info:
            merge(state, delta(4))
        assert exc_info.value.current == 5
        assert exc_info.value.received == 4

    def test_merge_does_not_mutate_input(self, snapshot_state):
        """Test merge leaves the previous state untouched."""
        before = dict(snapshot_state.records)
        merge(snapshot_state, delta(2, {"aaa": {"progress": 0.1}}, torrents_removed=["bbb"]))
        assert snapshot_state.records == before
        assert snapshot_state.cursor == 1

    def test_categories_and_tags(self, snapshot_state):
        """Test categories upsert and delete, tags add and delete."""
        state = merge(snapshot_state, delta(
            2,
            categories={"movies": {"name": "movies", "savePath": "/data/movies"}, "tv": {"name": "tv"}},
            tags=["hd", "new"],
        )).state
        assert state.categories["movies"].save_path == "/data/movies"
        assert state.tags == {"hd", "new"}

        state = merge(state, delta(3, categories_removed=["tv"], tags_removed=["new"])).state
        assert set(state.categories) == {"movies"}
        assert state.tags == {"hd"}

    def test_server_state_merges_partially(self, snapshot_state):
        """Test server counters not present in a delta keep their value."""
        state = merge(snapshot_state, delta(2, server_state={"dl_info_speed": 1000, "up_info_speed": 50})).state
        state = merge(state, delta(3, server_state={"up_info_speed": 70})).state
        assert state.server_state.dl_info_speed == 1000
        assert state.server_state.up_info_speed == 70

    def test_deltas_converge_to_snapshot(self):
        """Test a snapshot followed by deltas equals the final snapshot."""
        state = merge(CanonicalState(), full(1, {
            "aaa": {"name": "Alpha", "size": 10, "progress": 0.0},
            "bbb": {"name": "Beta", "size": 20, "progress": 0.2},
        })).state
        for response in [
            delta(2, {"aaa": {"progress": 0.5}}),
            delta(3, {"ccc": {"name": "Gamma", "size": 30}}, torrents_removed=["bbb"]),
            delta(4, {"aaa": {"progress": 1.0, "state": "uploading"}, "ccc": {"progress": 0.3}}),
        ]:
            state = merge(state, response).state

        expected = merge(CanonicalState(), full(4, {
            "aaa": {"name": "Alpha", "size": 10, "progress": 1.0, "state": "uploading"},
            "ccc": {"name": "Gamma", "size": 30, "progress": 0.3},
        })).state
        assert state.records == expected.records
        assert state.cursor == expected.cursor


class TestSyncReconciler:
    """Tests for the stateful reconciler."""

    def test_apply_updates_state(self):
        """Test apply merges and exposes the records."""
        reconciler = SyncReconciler()
        assert reconciler.apply(full(1, {"aaa": {"name": "Alpha"}}))
        assert reconciler.cursor == 1
        assert [t.name for t in reconciler.records()] == ["Alpha"]
        assert reconciler.get("aaa").name == "Alpha"

    def test_stale_response_requests_full_snapshot(self):
        """Test a stale response keeps records and the cursor but asks for a snapshot."""
        reconciler = SyncReconciler()
        reconciler.apply(full(5, {"aaa": {"name": "Alpha"}}))

        assert reconciler.apply(delta(3, {"aaa": {"name": "Changed"}})) is False
        assert reconciler.cursor == 5
        assert reconciler.resync
        assert reconciler.fetch_cursor == 0
        assert reconciler.get("aaa").name == "Alpha"

    def test_older_delta_after_stale_is_rejected(self):
        """Test a delta older than the state is not applied while resyncing."""
        reconciler = SyncReconciler()
        reconciler.apply(full(5, {"aaa": {"name": "Alpha"}}))
        reconciler.apply(delta(3, {"aaa": {"name": "Old3"}}))

        assert reconciler.apply(delta(4, {"aaa": {"name": "Old4"}})) is False
        assert reconciler.get("aaa").name == "Alpha"
        assert reconciler.cursor == 5

    def test_newer_delta_waits_for_snapshot(self):
        """Test no delta is merged until the requested snapshot arrives."""
        reconciler = SyncReconciler()
        reconciler.apply(full(5, {"aaa": {"name": "Alpha"}}))
        reconciler.apply(delta(5))

        assert reconciler.apply(delta(6, {"aaa": {"name": "New"}})) is False
        assert reconciler.apply(full(7, {"aaa": {"name": "Fresh"}})) is True
        assert not reconciler.resync
        assert reconciler.fetch_cursor == 7
        assert reconciler.apply(delta(8, {"aaa": {"name": "Newer"}})) is True
        assert reconciler.get("aaa").name == "Newer"

    def test_duplicate_delta_keeps_cursor(self):
        """Test applying the same delta twice leaves the state unchanged."""
        reconciler = SyncReconciler()
        reconciler.apply(full(1, {"aaa": {"name": "Alpha"}}))
        update = delta(2, {"aaa": {"progress": 0.5}})

        assert reconciler.apply(update) is True
        before = reconciler.state
        assert reconciler.apply(update) is False
        assert reconciler.cursor == 2
        assert reconciler.state is before

    def test_server_restart_recovers(self):
        """Test the counter restarting on the server leads to a fresh snapshot."""
        reconciler = SyncReconciler()
        reconciler.apply(full(40, {"aaa": {"name": "Alpha"}}))

        # The restarted server answers with a low cursor
        assert reconciler.apply(full(1, {"bbb": {"name": "Beta"}})) is False
        assert reconciler.apply(full(1, {"bbb": {"name": "Beta"}})) is True
        assert reconciler.cursor == 1
        assert [t.hash for t in reconciler.records()] == ["bbb"]

    def test_problems_do_not_block_apply(self):
        """Test malformed entries are skipped, not fatal."""
        reconciler = SyncReconciler()
        reconciler.apply(full(1, {"aaa": {"name": "Alpha"}}))
        assert reconciler.apply(delta(2, torrents_removed=["missing", "aaa"]))
        assert reconciler.records() == []

    def test_tags_sorted(self):
        """Test tags are exposed in sorted order."""
        reconciler = SyncReconciler()
        reconciler.apply(full(1, tags=["zeta", "alpha"]))
        assert reconciler.tags == ["alpha", "zeta"]


class TestCategories:
    """Tests for category merging."""

    def test_name_comes_from_key(self):
        """Test a category without a name takes it from the map key."""
        state = merge(CanonicalState(), full(1, categories={"movies": {"savePath": "/data/movies"}})).state
        assert state.categories["movies"].name == "movies"

    def test_partial_category_update(self):
        """Test a delta only overwrites the category fields it carries."""
        state = merge(CanonicalState(), full(1, categories={
            "movies": {"name": "movies", "savePath": "/data/movies", "download_path": "/incomplete"},
        })).state
        state = merge(state, delta(2, categories={"movies": {"savePath": "/mnt/movies"}})).state

        category = state.categories["movies"]
        assert category.name == "movies"
        assert category.save_path == "/mnt/movies"
        assert category.download_path == "/incomplete"
