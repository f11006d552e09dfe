"""Tests for the conversation data model and store."""

from __future__ import annotations

import dataclasses

import pytest

from treeward.conversation import (
    SYSTEM_PROMPT,
    ChatUpdate,
    ConversationStore,
    Role,
    TextContent,
    ToolCallContent,
    ToolResultContent,
    Turn,
)


class TestConversationStore:
    def test_seeded_with_system_turn(self) -> None:
        """Should start with exactly one System turn."""
        store = ConversationStore()
        assert len(store) == 1
        assert store.turns[0].role is Role.SYSTEM
        assert store.turns[0].text == SYSTEM_PROMPT

    def test_reset_reseeds(self) -> None:
        """Should drop everything except a fresh System turn on reset."""
        store = ConversationStore(system_prompt="be brief")
        store.add_user("hello")
        store.append(Turn.text_turn(Role.ASSISTANT, "hi"))
        store.reset()
        assert [t.role for t in store] == [Role.SYSTEM]
        assert store.turns[0].text == "be brief"

    def test_append_order(self) -> None:
        """Should keep turns in commit order."""
        store = ConversationStore()
        store.add_user("one")
        store.append(Turn.text_turn(Role.ASSISTANT, "two"))
        assert [t.text for t in store.turns[1:]] == ["one", "two"]

    def test_rejects_empty_turn(self) -> None:
        """Should never commit a turn with no fragments."""
        store = ConversationStore()
        with pytest.raises(ValueError):
            store.append(Turn(role=Role.ASSISTANT, fragments=()))

    def test_turns_is_a_snapshot(self) -> None:
        """Should not let callers mutate the store through the snapshot."""
        store = ConversationStore()
        snapshot = store.turns
        store.add_user("later")
        assert len(snapshot) == 1

    def test_close_pending_calls(self) -> None:
        """Should answer only the calls that have no result yet."""
        store = ConversationStore()
        store.add_user("go")
        store.append(
            Turn(
                role=Role.ASSISTANT,
                fragments=(ToolCallContent("a", "list_files", {}), ToolCallContent("b", "read_file", {})),
            )
        )
        store.append(Turn(role=Role.TOOL, fragments=(ToolResultContent("a", "x.py"),)))

        assert [c.call_id for c in store.pending_tool_calls()] == ["b"]
        closing = store.close_pending_calls("Error [not_executed]: stopped")

        assert closing is not None
        assert closing.role is Role.TOOL
        assert closing.tool_results == [ToolResultContent("b", "Error [not_executed]: stopped", is_error=True)]
        assert store.turns[-1] == closing
        assert store.close_pending_calls("again") is None
        assert len(store) == 4


class TestFragments:
    def test_fragments_are_frozen(self) -> None:
        """Should not allow mutation after creation."""
        text = TextContent("a")
        with pytest.raises(dataclasses.FrozenInstanceError):
            text.text = "b"  # type: ignore[misc]

    def test_tool_call_arguments_read_only(self) -> None:
        """Should freeze tool call arguments."""
        args = {"path": "a"}
        call = ToolCallContent(call_id="1", name="read_file", arguments=args)
        args["path"] = "b"
        assert call.arguments["path"] == "a"
        with pytest.raises(TypeError):
            call.arguments["path"] = "c"  # type: ignore[index]

    def test_turn_accessors(self) -> None:
        """Should expose text, tool calls and tool results separately."""
        call = ToolCallContent(call_id="1", name="list_files", arguments={"path": ""})
        result = ToolResultContent(call_id="1", result="a.txt")
        turn = Turn(role=Role.ASSISTANT, fragments=(TextContent("Let me "), call, TextContent("look")))
        assert turn.text == "Let me look"
        assert turn.tool_calls == [call]
        assert Turn(role=Role.TOOL, fragments=(result,)).tool_results == [result]

    def test_update_text(self) -> None:
        """Should join only text contents."""
        update = ChatUpdate.of(Role.ASSISTANT, TextContent("a"), ToolCallContent("1", "x"), TextContent("b"))
        assert update.text == "ab"
