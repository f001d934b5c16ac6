"""Tests for conflict classification."""

from datetime import datetime, timezone
from dataclasses import replace

from keepchat_sync.classifier import classify_conflict, detect_metadata_conflict, recommend_strategies
from keepchat_sync.core import ConflictType, Severity, SyncDirection, Version


class TestClassifyConflict:
    def test_missing_snapshot(self, make_snapshot):
        report = classify_conflict(None, make_snapshot([]))
        assert not report.has_conflict
        assert report.conflict_type == ConflictType.NONE
        assert report.reason == "missing_session_data"

    def test_local_only_message_is_data_conflict(self, local_ahead_pair):
        local, cloud = local_ahead_pair
        report = classify_conflict(local, cloud)
        assert report.has_conflict
        assert report.conflict_type == ConflictType.DATA_CONFLICT
        assert report.severity == Severity.MEDIUM
        assert [m.id for m in report.data_conflict.only_local] == ["msg-3"]

    def test_edited_message_is_high(self, edited_pair):
        local, cloud = edited_pair
        report = classify_conflict(local, cloud)
        assert report.conflict_type == ConflictType.DATA_CONFLICT
        assert report.severity == Severity.HIGH
        assert report.data_conflict.modified_overlap_count == 1

    def test_new_messages_on_both_sides_is_medium(self, make_message, make_snapshot, shared_messages):
        local = make_snapshot(shared_messages + [make_message("l1", minutes=5)])
        cloud = make_snapshot(shared_messages + [make_message("c1", minutes=6)])
        report = classify_conflict(local, cloud)
        assert report.severity == Severity.MEDIUM
        assert report.data_conflict.only_local_count == 1
        assert report.data_conflict.only_cloud_count == 1

    def test_concurrent_modification(self, make_snapshot, shared_messages):
        local = make_snapshot(shared_messages, number=3, timestamp=datetime(2024, 1, 3, tzinfo=timezone.utc))
        cloud = make_snapshot(shared_messages, number=3, timestamp=datetime(2024, 1, 2, tzinfo=timezone.utc))
        report = classify_conflict(local, cloud, last_synced_version=Version(number=2))
        assert report.has_conflict
        assert report.conflict_type == ConflictType.CONCURRENT_MODIFICATION
        assert report.severity == Severity.HIGH
        assert report.reason == "both_sides_modified"

    def test_concurrent_modification_wins_over_data(self, edited_pair):
        local, cloud = edited_pair
        report = classify_conflict(local, cloud, last_synced_version=2)
        assert report.conflict_type == ConflictType.CONCURRENT_MODIFICATION

    def test_metadata_conflict(self, make_snapshot, shared_messages):
        local = make_snapshot(shared_messages, project_path="/a")
        cloud = make_snapshot(shared_messages, project_path="/b")
        report = classify_conflict(local, cloud)
        assert report.conflict_type == ConflictType.METADATA_CONFLICT
        assert report.severity == Severity.LOW
        assert report.metadata_conflict.conflicts[0].field == "project_path"

    def test_no_conflict_carries_sync_direction(self, make_snapshot, shared_messages):
        local = make_snapshot(shared_messages, number=2)
        cloud = make_snapshot(shared_messages, number=4)
        report = classify_conflict(local, cloud, last_synced_version=2)
        assert not report.has_conflict
        assert report.needs_sync
        assert report.sync_direction == SyncDirection.PULL

    def test_first_sync_needs_sync(self, make_snapshot, shared_messages):
        report = classify_conflict(make_snapshot(shared_messages), make_snapshot(shared_messages))
        assert not report.has_conflict
        assert report.reason == "first_sync"
        assert report.needs_sync

    def test_missing_versions_do_not_raise(self, make_snapshot, shared_messages):
        report = classify_conflict(
            make_snapshot(shared_messages, number=None),
            make_snapshot(shared_messages, number=None),
            last_synced_version=1,
        )
        assert not report.has_conflict

    def test_is_deterministic(self, edited_pair):
        local, cloud = edited_pair
        assert classify_conflict(local, cloud, 2) == classify_conflict(local, cloud, 2)
        assert classify_conflict(local, cloud) == classify_conflict(local, cloud)


class TestMetadataConflict:
    def test_same_metadata(self, make_snapshot, shared_messages):
        snap = make_snapshot(shared_messages)
        assert not detect_metadata_conflict(snap.meta, snap.meta).has_conflict

    def test_empty_fields_are_ignored(self, make_snapshot, shared_messages):
        local = make_snapshot(shared_messages, project_path="", device="")
        cloud = make_snapshot(shared_messages, project_path="/b", device="desktop")
        assert not detect_metadata_conflict(local.meta, cloud.meta).has_conflict

    def test_message_count_and_device(self, make_snapshot, shared_messages):
        local = make_snapshot(shared_messages, device="laptop")
        cloud = make_snapshot(shared_messages, device="desktop")
        cloud = replace(cloud, meta=replace(cloud.meta, message_count=5))
        fields = [c.field for c in detect_metadata_conflict(local.meta, cloud.meta).conflicts]
        assert fields == ["device", "message_count"]


class TestRecommendStrategies:
    def test_no_conflict(self, make_snapshot, shared_messages):
        report = classify_conflict(make_snapshot(shared_messages), make_snapshot(shared_messages))
        assert recommend_strategies(report) == ["sync"]

    def test_edited_message(self, edited_pair):
        assert recommend_strategies(classify_conflict(*edited_pair)) == [
            "keep_local", "keep_cloud", "manual_merge",
        ]

    def test_concurrent_modification(self, edited_pair):
        assert recommend_strategies(classify_conflict(*edited_pair, last_synced_version=2)) == [
            "keep_local", "keep_cloud", "manual_merge",
        ]

    def test_only_local_new(self, local_ahead_pair):
        assert recommend_strategies(classify_conflict(*local_ahead_pair)) == ["keep_local", "manual_merge"]

    def test_only_cloud_new(self, local_ahead_pair):
        local, cloud = local_ahead_pair
        assert recommend_strategies(classify_conflict(cloud, local)) == ["keep_cloud", "manual_merge"]

    def test_metadata(self, make_snapshot, shared_messages):
        report = classify_conflict(
            make_snapshot(shared_messages, project_path="/a"),
            make_snapshot(shared_messages, project_path="/b"),
        )
        assert recommend_strategies(report) == ["keep_local", "keep_cloud", "merge_metadata"]
