"""Tests for message normalization: markup, merging, dedup, pairing repair."""

import logging

import pytest

from sift.context.normalizer import (
    dedup_tool_results,
    merge_consecutive_same_role,
    normalize,
    normalize_with_report,
    remove_orphaned_tool_results,
    strip_checkpoint_markup,
    strip_dangling_tool_calls,
)
from sift.models import Message, Role, TextPart, ToolCallPart, ToolResultPart


def _make_user(text: str = "hello") -> Message:
    return Message(Role.USER, text)


def _make_assistant(text: str = "ok") -> Message:
    return Message(Role.ASSISTANT, text)


def _make_tool_call(*call_ids: str) -> Message:
    return Message(Role.ASSISTANT, [ToolCallPart(id=cid, name="bash") for cid in call_ids])


def _make_tool_result(content: str, tool_id: str = "t1") -> Message:
    return Message(Role.TOOL, [ToolResultPart(tool_use_id=tool_id, content=content)])


# ------------------------------------------------------------------
# Checkpoint markup
# ------------------------------------------------------------------


class TestStripCheckpointMarkup:
    def test_removes_tag_and_trims(self):
        text = "<checkpoint_id>abc-123</checkpoint_id>\nhello"
        assert strip_checkpoint_markup(text) == "hello"

    def test_multiline_tag(self):
        text = "before <checkpoint_id>\nabc\n</checkpoint_id> after"
        assert strip_checkpoint_markup(text) == "before  after"

    def test_plain_text_untouched(self):
        assert strip_checkpoint_markup("  spaced  ") == "  spaced  "

    def test_markup_only_message_dropped(self):
        history = [
            _make_user("a"),
            _make_assistant("<checkpoint_id>x</checkpoint_id>"),
            _make_user("b"),
        ]
        result = normalize(history)
        # assistant vanished, so the two user turns merge
        assert len(result) == 1
        assert result[0].role == Role.USER
        assert result[0].content == [TextPart("a"), TextPart("b")]

    def test_markup_kept_when_disabled(self):
        history = [_make_assistant("<checkpoint_id>x</checkpoint_id>")]
        result = normalize(history, strip_markup=False)
        assert result[0].content == "<checkpoint_id>x</checkpoint_id>"

    def test_part_content(self):
        msg = Message(
            Role.ASSISTANT,
            [TextPart("<checkpoint_id>x</checkpoint_id>"), ToolCallPart(id="t1", name="bash")],
        )
        result = normalize([msg])
        assert result[0].content == [ToolCallPart(id="t1", name="bash")]


# ------------------------------------------------------------------
# Merging
# ------------------------------------------------------------------


class TestMergeConsecutiveSameRole:
    def test_merges_run(self):
        result = merge_consecutive_same_role([_make_user("a"), _make_user("b"), _make_user("c")])
        assert len(result) == 1
        assert result[0].content == [TextPart("a"), TextPart("b"), TextPart("c")]

    def test_lone_message_keeps_string(self):
        user = _make_user("a")
        result = merge_consecutive_same_role([user, _make_assistant("b")])
        assert result[0] is user
        assert result[0].content == "a"

    def test_merged_list_alternates(self):
        history = [
            _make_user("a"),
            _make_user("b"),
            _make_assistant("c"),
            _make_assistant("d"),
            _make_user("e"),
        ]
        result = normalize(history)
        roles = [m.role for m in result]
        assert roles == [Role.USER, Role.ASSISTANT, Role.USER]
        for prev, cur in zip(result, result[1:]):
            assert prev.role != cur.role

    def test_tool_messages_merge(self):
        history = [
            _make_tool_call("t1", "t2"),
            _make_tool_result("one", "t1"),
            _make_tool_result("two", "t2"),
        ]
        result = normalize(history)
        assert len(result) == 2
        assert result[1].tool_result_ids() == ["t1", "t2"]


# ------------------------------------------------------------------
# Dedup
# ------------------------------------------------------------------


class TestDedupToolResults:
    def test_last_occurrence_wins(self):
        msg = Message(
            Role.TOOL,
            [
                ToolResultPart(tool_use_id="t1", content="old"),
                ToolResultPart(tool_use_id="t2", content="other"),
                ToolResultPart(tool_use_id="t1", content="new"),
            ],
        )
        result = dedup_tool_results([msg])
        assert result[0].content == [
            ToolResultPart(tool_use_id="t2", content="other"),
            ToolResultPart(tool_use_id="t1", content="new"),
        ]

    def test_no_duplicates_returns_same_message(self):
        msg = _make_tool_result("x", "t1")
        assert dedup_tool_results([msg])[0] is msg

    def test_dedup_after_merge(self):
        history = [
            _make_tool_call("t1"),
            _make_tool_result("first", "t1"),
            _make_tool_result("retry", "t1"),
        ]
        result = normalize(history)
        assert result[1].content == [ToolResultPart(tool_use_id="t1", content="retry")]

    def test_duplicate_across_assistant_turn(self):
        history = [
            _make_user("deploy"),
            _make_tool_call("X"),
            _make_tool_result("first", "X"),
            _make_assistant("retrying"),
            _make_tool_result("second", "X"),
        ]
        report = normalize_with_report(history)
        results = [
            p.content
            for m in report.messages
            for p in m.parts
            if isinstance(p, ToolResultPart)
        ]
        assert results == ["second"]
        # the emptied tool turn is dropped and the assistant turns merge
        assert [m.role for m in report.messages] == [Role.USER, Role.ASSISTANT, Role.TOOL]
        assert report.messages[1].content == [ToolCallPart(id="X", name="bash"), TextPart("retrying")]
        assert [(s.index, s.reason) for s in report.skipped] == [(2, "empty after dedup")]

    def test_history_wide_dedup_leaves_empty_message(self):
        history = [_make_tool_result("old", "X"), _make_assistant("again"), _make_tool_result("new", "X")]
        result = dedup_tool_results(history)
        assert result[0].content == []
        assert result[2] is history[2]

    def test_at_most_one_result_per_id(self):
        history = [
            _make_tool_call("a", "b"),
            _make_tool_result("1", "a"),
            _make_tool_result("2", "b"),
            _make_tool_result("3", "a"),
            _make_tool_result("4", "b"),
        ]
        for msg in normalize(history):
            ids = msg.tool_result_ids()
            assert len(ids) == len(set(ids))


# ------------------------------------------------------------------
# Empty messages and reporting
# ------------------------------------------------------------------


class TestNormalizeReport:
    def test_empty_messages_reported(self, caplog):
        history = [_make_user("a"), Message(Role.ASSISTANT, []), _make_assistant("b")]
        with caplog.at_level(logging.WARNING, logger="sift.context.normalizer"):
            report = normalize_with_report(history)
        assert [m.content for m in report.messages] == ["a", "b"]
        assert len(report.skipped) == 1
        assert report.skipped[0].index == 1
        assert report.skipped[0].role == "assistant"
        assert report.skipped[0].reason == "empty content"
        assert "dropped 1 message" in caplog.text

    def test_empty_history(self):
        assert normalize([]) == []

    def test_non_message_rejected(self):
        with pytest.raises(TypeError):
            normalize([{"role": "user", "content": "hi"}])

    def test_input_not_mutated(self):
        history = [_make_user("a"), _make_user("b")]
        normalize(history)
        assert [m.content for m in history] == ["a", "b"]

    def test_deterministic(self):
        history = [
            _make_user("a"),
            _make_user("<checkpoint_id>1</checkpoint_id>b"),
            _make_tool_call("t1"),
            _make_tool_result("x", "t1"),
            _make_tool_result("y", "t1"),
        ]
        assert normalize(history) == normalize(history)


# ------------------------------------------------------------------
# Pairing repair
# ------------------------------------------------------------------


class TestPairingRepair:
    def test_dangling_call_kept_by_default(self):
        history = [_make_user("q"), _make_tool_call("t1"), _make_user("next")]
        result = normalize(history)
        assert result[1].tool_call_ids() == ["t1"]

    def test_strip_dangling_calls(self):
        history = [_make_user("q"), _make_tool_call("t1"), _make_user("next")]
        result = strip_dangling_tool_calls(history)
        assert result[1].tool_call_ids() == []

    def test_answered_calls_kept(self):
        call = _make_tool_call("t1", "t2")
        history = [call, Message(Role.TOOL, [
            ToolResultPart(tool_use_id="t1", content="a"),
            ToolResultPart(tool_use_id="t2", content="b"),
        ])]
        assert strip_dangling_tool_calls(history)[0] is call

    def test_partially_answered_calls_stripped(self):
        history = [_make_tool_call("t1", "t2"), _make_tool_result("a", "t1")]
        result = strip_dangling_tool_calls(history)
        assert result[0].tool_call_ids() == []

    def test_remove_orphaned_results(self):
        history = [_make_user("q"), _make_tool_result("x", "t9")]
        result = remove_orphaned_tool_results(history)
        assert result[1].tool_result_ids() == []

    def test_repair_drops_emptied_messages_and_merges(self):
        history = [_make_user("q"), _make_tool_call("t1"), _make_user("next")]
        report = normalize_with_report(history, repair_pairing=True)
        assert len(report.messages) == 1
        assert report.messages[0].content == [TextPart("q"), TextPart("next")]
        assert [s.reason for s in report.skipped] == ["empty after pairing repair"]

    def test_repair_keeps_valid_pairs(self):
        history = [
            _make_user("q"),
            _make_tool_call("t1"),
            _make_tool_result("out", "t1"),
            _make_assistant("done"),
        ]
        assert normalize(history, repair_pairing=True) == history
