"""Tests for provider-specific tool-result layout."""

import logging

from sift.context.normalizer import SkippedMessage
from sift.context.providers import (
    Provider,
    ToolResultLayout,
    apply_provider_layout,
    check_adjacency,
    layout_for,
    merge_tool_results,
)
from sift.models import Message, Role, TextPart, ToolCallPart, ToolResultPart


def _make_tool_call(*call_ids: str) -> Message:
    return Message(Role.ASSISTANT, [ToolCallPart(id=cid, name="bash") for cid in call_ids])


def _make_tool_result(content: str, tool_id: str = "t1") -> Message:
    return Message(Role.TOOL, [ToolResultPart(tool_use_id=tool_id, content=content)])


class TestProvider:
    def test_parse_case_insensitive(self):
        assert Provider.parse("Anthropic") is Provider.ANTHROPIC
        assert Provider.parse("OPENAI") is Provider.OPENAI
        assert Provider.parse(Provider.GEMINI) is Provider.GEMINI

    def test_parse_unknown(self):
        assert Provider.parse("mistral") is Provider.UNKNOWN
        assert Provider.parse(None) is Provider.UNKNOWN

    def test_layouts(self):
        assert layout_for(Provider.ANTHROPIC) is ToolResultLayout.BATCHED
        for provider in (Provider.OPENAI, Provider.GEMINI, Provider.STAKPAK, Provider.UNKNOWN):
            assert layout_for(provider) is ToolResultLayout.PER_RESULT


# ------------------------------------------------------------------
# Merger
# ------------------------------------------------------------------


class TestMergeToolResults:
    def test_merges_consecutive_tool_messages(self):
        history = [
            _make_tool_call("t1", "t2"),
            _make_tool_result("one", "t1"),
            _make_tool_result("two", "t2"),
        ]
        result = merge_tool_results(history)
        assert len(result) == 2
        assert result[1].role == Role.TOOL
        assert result[1].content == [
            ToolResultPart(tool_use_id="t1", content="one"),
            ToolResultPart(tool_use_id="t2", content="two"),
        ]

    def test_single_tool_message_unchanged(self):
        tool = _make_tool_result("one", "t1")
        result = merge_tool_results([_make_tool_call("t1"), tool])
        assert result[1] is tool

    def test_single_message_with_text_kept_whole(self):
        msg = Message(Role.TOOL, [TextPart("note"), ToolResultPart(tool_use_id="t1", content="one")])
        result = merge_tool_results([msg])
        assert result == [msg]
        assert result[0] is msg
        assert result[0].content[0] == TextPart("note")

    def test_single_message_without_results_dropped(self):
        skipped: list[SkippedMessage] = []
        assert merge_tool_results([Message(Role.TOOL, [TextPart("note")])], skipped) == []
        assert skipped == [SkippedMessage(0, "tool", "no tool results")]

    def test_non_result_parts_dropped_in_run(self):
        history = [
            _make_tool_result("one", "t1"),
            Message(Role.TOOL, [TextPart("note"), ToolResultPart(tool_use_id="t2", content="two")]),
        ]
        result = merge_tool_results(history)
        assert result[0].tool_result_ids() == ["t1", "t2"]
        assert all(isinstance(p, ToolResultPart) for p in result[0].content)

    def test_tool_message_without_results_dropped(self, caplog):
        skipped: list[SkippedMessage] = []
        history = [_make_tool_call("t1"), Message(Role.TOOL, "plain text")]
        with caplog.at_level(logging.WARNING, logger="sift.context.providers"):
            result = merge_tool_results(history, skipped)
        assert len(result) == 1
        assert skipped == [SkippedMessage(1, "tool", "no tool results")]
        assert "no tool results" in caplog.text

    def test_non_tool_messages_pass_through(self):
        history = [Message(Role.USER, "q"), Message(Role.ASSISTANT, "a")]
        result = merge_tool_results(history)
        assert result == history
        assert result[0] is history[0]

    def test_runs_separated_by_assistant_stay_separate(self):
        history = [
            _make_tool_call("t1"),
            _make_tool_result("one", "t1"),
            _make_tool_call("t2"),
            _make_tool_result("two", "t2"),
        ]
        assert len(merge_tool_results(history)) == 4


class TestApplyProviderLayout:
    def test_anthropic_batches(self):
        history = [
            _make_tool_call("t1", "t2"),
            _make_tool_result("one", "t1"),
            _make_tool_result("two", "t2"),
        ]
        assert len(apply_provider_layout(history, Provider.ANTHROPIC)) == 2

    def test_other_providers_untouched(self):
        history = [
            _make_tool_call("t1", "t2"),
            _make_tool_result("one", "t1"),
            _make_tool_result("two", "t2"),
        ]
        for provider in (Provider.OPENAI, Provider.GEMINI, Provider.UNKNOWN):
            assert apply_provider_layout(history, provider) == history


# ------------------------------------------------------------------
# Adjacency
# ------------------------------------------------------------------


class TestCheckAdjacency:
    def test_batched_history_is_adjacent(self):
        history = merge_tool_results([
            _make_tool_call("t1", "t2"),
            _make_tool_result("one", "t1"),
            _make_tool_result("two", "t2"),
        ])
        assert check_adjacency(history) == []

    def test_unmatched_calls_reported(self):
        history = [
            _make_tool_call("t1", "t2"),
            _make_tool_result("one", "t1"),
            _make_tool_call("t3"),
        ]
        assert check_adjacency(history) == ["t2", "t3"]

    def test_text_only_history(self):
        assert check_adjacency([Message(Role.USER, "q"), Message(Role.ASSISTANT, "a")]) == []
