"""Tests for auto-merge eligibility and execution."""

import pytest

from keepchat_sync.auto_merge import (
    assess_auto_merge,
    auto_merge_preview,
    perform_auto_merge,
    recommended_actions,
    validate_merge_result,
)
from keepchat_sync.classifier import classify_conflict
from keepchat_sync.core import AutoMergeStrategy, ConflictReport, ConflictType, DiffResult, ContentDivergence
from keepchat_sync.errors import CannotAutoMergeError, UnknownStrategyError


class TestAssessAutoMerge:
    def test_only_local_new_appends_local(self, local_ahead_pair):
        assessment = assess_auto_merge(classify_conflict(*local_ahead_pair))
        assert assessment.can_auto_merge
        assert assessment.strategy == AutoMergeStrategy.APPEND_LOCAL
        assert assessment.details == {"new_message_count": 1}

    def test_only_cloud_new_appends_cloud(self, local_ahead_pair):
        local, cloud = local_ahead_pair
        assessment = assess_auto_merge(classify_conflict(cloud, local))
        assert assessment.can_auto_merge
        assert assessment.strategy == AutoMergeStrategy.APPEND_CLOUD

    def test_modified_overlap_blocks(self, edited_pair):
        assessment = assess_auto_merge(classify_conflict(*edited_pair))
        assert not assessment.can_auto_merge
        assert assessment.reason == "has_modified_overlaps"

    def test_both_sides_new_blocks(self, make_message, make_snapshot, shared_messages):
        local = make_snapshot(shared_messages + [make_message("l1", minutes=5)])
        cloud = make_snapshot(shared_messages + [make_message("c1", minutes=6)])
        assessment = assess_auto_merge(classify_conflict(local, cloud))
        assert not assessment.can_auto_merge
        assert assessment.reason == "both_sides_have_new_messages"

    def test_concurrent_modification_is_not_eligible(self, local_ahead_pair):
        assessment = assess_auto_merge(classify_conflict(*local_ahead_pair, last_synced_version=2))
        assert not assessment.can_auto_merge
        assert assessment.reason == "no_data_conflict"

    def test_no_conflict(self, make_snapshot, shared_messages):
        report = classify_conflict(make_snapshot(shared_messages), make_snapshot(shared_messages))
        assert assess_auto_merge(report).reason == "no_conflict"

    def test_empty_diff_is_unknown_pattern(self):
        report = ConflictReport(
            has_conflict=True, conflict_type=ConflictType.DATA_CONFLICT, data_conflict=DiffResult()
        )
        assert assess_auto_merge(report).reason == "unknown_conflict_pattern"

    @pytest.mark.parametrize("only_local,only_cloud", [(0, 0), (2, 0), (0, 2), (2, 2)])
    def test_modified_overlap_never_merges(self, make_message, only_local, only_cloud):
        diff = DiffResult(
            only_local=tuple(make_message(f"l{i}") for i in range(only_local)),
            only_cloud=tuple(make_message(f"c{i}") for i in range(only_cloud)),
            modified_overlap=(ContentDivergence("m", "a", "b"),),
        )
        report = ConflictReport(
            has_conflict=True, conflict_type=ConflictType.DATA_CONFLICT, data_conflict=diff
        )
        assert not assess_auto_merge(report).can_auto_merge


class TestPerformAutoMerge:
    def test_appends_local_messages_to_cloud(self, local_ahead_pair, version_clock):
        report = classify_conflict(*local_ahead_pair)
        assessment, merged = perform_auto_merge(report, version_clock)
        assert [m.id for m in merged.messages] == ["msg-1", "msg-2", "msg-3"]
        assert merged.meta.version.number == 4
        assert merged.meta.auto_merged
        assert merged.meta.resolution_strategy == "auto_merge_append_local"
        assert merged.meta.version.resolution.strategy == "auto_merge_append_local"

    def test_raises_when_not_eligible(self, edited_pair, version_clock):
        with pytest.raises(CannotAutoMergeError) as exc:
            perform_auto_merge(classify_conflict(*edited_pair), version_clock)
        assert exc.value.code == "cannot_auto_merge:has_modified_overlaps"


class TestHelpers:
    def test_recommended_actions_are_ranked(self, make_message, make_snapshot, shared_messages):
        local = make_snapshot(shared_messages + [make_message("l1", minutes=5)])
        cloud = make_snapshot(shared_messages + [make_message("c1", minutes=6)])
        report = classify_conflict(local, cloud)
        actions = recommended_actions(assess_auto_merge(report), report)
        assert [a["type"] for a in actions] == ["manual_merge", "keep_local", "keep_cloud"]
        assert actions[0]["priority"] == "high"

    def test_preview(self, local_ahead_pair):
        preview = auto_merge_preview(classify_conflict(*local_ahead_pair), "append_local")
        assert preview["summary"]["merged_message_count"] == 3
        assert preview["summary"]["added_count"] == 0

    def test_preview_unknown_strategy(self, local_ahead_pair):
        with pytest.raises(UnknownStrategyError) as exc:
            auto_merge_preview(classify_conflict(*local_ahead_pair), "squash")
        assert exc.value.code == "unknown_merge_strategy"

    def test_validate_merge_result(self, local_ahead_pair, version_clock):
        _, merged = perform_auto_merge(classify_conflict(*local_ahead_pair), version_clock)
        assert validate_merge_result(merged) == ([], [])
        errors, _ = validate_merge_result(None)
        assert errors == ["Merged session is missing"]
