"""Tests for turn log <-> provider message conversion."""

from __future__ import annotations

from assistant_stream.history.wire import format_turns, turns_from_message
from assistant_stream.types import Turn, TurnRole


class TestFormatTurns:
    def test_text_and_tool_use_share_one_assistant_message(self):
        turns = [
            Turn.user("hi"),
            Turn.assistant("ok"),
            Turn.tool_use("t1", "run_render", {}),
        ]
        assert format_turns(turns) == [
            {"role": "user", "content": [{"type": "text", "text": "hi"}]},
            {"role": "assistant", "content": [
                {"type": "text", "text": "ok"},
                {"type": "tool_use", "id": "t1", "name": "run_render", "input": {}},
            ]},
        ]

    def test_results_grouped_into_one_user_message(self):
        turns = [
            Turn.user("go"),
            Turn.assistant("calling two"),
            Turn.tool_use("t1", "a", {"x": 1}),
            Turn.tool_use("t2", "b"),
            Turn.tool_result("t1", "done"),
            Turn.tool_result("t2", "failed", is_error=True),
            Turn.assistant("all good"),
        ]
        messages = format_turns(turns)
        assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant"]
        assert messages[2]["content"] == [
            {"type": "tool_result", "tool_use_id": "t1", "content": "done"},
            {"type": "tool_result", "tool_use_id": "t2", "content": "failed", "is_error": True},
        ]
        assert messages[3]["content"] == [{"type": "text", "text": "all good"}]

    def test_empty_assistant_text_gives_only_tool_blocks(self):
        turns = [Turn.assistant(""), Turn.tool_use("t1", "a")]
        assert format_turns(turns) == [
            {"role": "assistant", "content": [
                {"type": "tool_use", "id": "t1", "name": "a", "input": {}},
            ]},
        ]

    def test_orphan_tool_invocations_form_assistant_message(self):
        turns = [Turn.user("hi"), Turn.tool_use("t1", "a"), Turn.tool_use("t2", "b")]
        messages = format_turns(turns)
        assert messages[1]["role"] == "assistant"
        assert [b["id"] for b in messages[1]["content"]] == ["t1", "t2"]

    def test_orphan_tool_results_form_user_message(self):
        messages = format_turns([Turn.tool_result("t1", "x")])
        assert messages == [{"role": "user", "content": [
            {"type": "tool_result", "tool_use_id": "t1", "content": "x"},
        ]}]

    def test_consecutive_user_turns_stay_separate(self):
        messages = format_turns([Turn.user("a"), Turn.user("b")])
        assert len(messages) == 2

    def test_empty_log(self):
        assert format_turns([]) == []

    def test_input_not_mutated_and_inputs_copied(self):
        tool_input = {"k": "v"}
        turns = [Turn.assistant("x"), Turn.tool_use("t1", "a", tool_input)]
        messages = format_turns(turns)
        messages[0]["content"][1]["input"]["k"] = "changed"
        assert turns[1].tool_input == {"k": "v"}


class TestTurnsFromMessage:
    def test_text_and_tools(self):
        message = {"content": [
            {"type": "text", "text": "Let me "},
            {"type": "text", "text": "check."},
            {"type": "tool_use", "id": "t1", "name": "run_render", "input": {"a": 1}},
            {"type": "tool_use", "id": "t2", "name": "get_code", "input": {}},
        ]}
        turns = turns_from_message(message, model="claude-test")
        assert [t.role for t in turns] == [
            TurnRole.ASSISTANT_TEXT, TurnRole.TOOL_INVOCATION, TurnRole.TOOL_INVOCATION,
        ]
        assert turns[0].text == "Let me check."
        assert turns[0].model == "claude-test"
        assert turns[1].tool_input == {"a": 1}
        assert turns[2].tool_name == "get_code"

    def test_tools_only(self):
        turns = turns_from_message({"content": [
            {"type": "tool_use", "id": "t1", "name": "a", "input": {}},
        ]})
        assert [t.role for t in turns] == [TurnRole.TOOL_INVOCATION]

    def test_model_from_message(self):
        turns = turns_from_message({"model": "m-1", "content": [{"type": "text", "text": "x"}]})
        assert turns[0].model == "m-1"

    def test_regrouping_reproduces_message_content(self):
        content = [
            {"type": "text", "text": "ok"},
            {"type": "tool_use", "id": "t1", "name": "run_render", "input": {"a": 1}},
        ]
        turns = turns_from_message({"content": content})
        assert format_turns(turns) == [{"role": "assistant", "content": content}]
