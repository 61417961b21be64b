"""Mapping between the turn log and the provider's message array.

The provider requires that an assistant message carrying tool invocations
holds *all* of that turn's content (leading text, then every ``tool_use``
block), and that the answering results arrive together as the next
``user`` message, one ``tool_result`` block per invocation.  The log stores
those pieces as separate turns, so :func:`format_turns` regroups them.
"""

from __future__ import annotations

from typing import Any, Sequence

from assistant_stream.types import Turn, TurnRole


def _text_block(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def _tool_use_block(turn: Turn) -> dict[str, Any]:
    return {
        "type": "tool_use",
        "id": turn.tool_id,
        "name": turn.tool_name,
        "input": dict(turn.tool_input),
    }


def _tool_result_block(turn: Turn) -> dict[str, Any]:
    block: dict[str, Any] = {
        "type": "tool_result",
        "tool_use_id": turn.tool_id,
        "content": turn.text,
    }
    if turn.is_error:
        block["is_error"] = True
    return block


def format_turns(turns: Sequence[Turn]) -> list[dict[str, Any]]:
    """Convert *turns* into the provider's ``messages`` array.

    Left-to-right scan:

    * ``USER`` -> one user message with a single text block.
    * ``ASSISTANT_TEXT`` -> opens an assistant message (text block if the
      text is non-empty) and absorbs every directly following
      ``TOOL_INVOCATION``.
    * a run of ``TOOL_RESULT`` -> one user message, one block per result.

    A ``TOOL_INVOCATION`` or ``TOOL_RESULT`` run with nothing before it is
    grouped the same way rather than rejected, so any persisted log can be
    sent.  Pure function; output order follows input order.
    """
    messages: list[dict[str, Any]] = []
    n = len(turns)
    i = 0
    while i < n:
        turn = turns[i]

        if turn.role == TurnRole.USER:
            messages.append({"role": "user", "content": [_text_block(turn.text)]})
            i += 1
            continue

        if turn.role in (TurnRole.ASSISTANT_TEXT, TurnRole.TOOL_INVOCATION):
            content: list[dict[str, Any]] = []
            if turn.role == TurnRole.ASSISTANT_TEXT:
                if turn.text:
                    content.append(_text_block(turn.text))
                i += 1
            while i < n and turns[i].role == TurnRole.TOOL_INVOCATION:
                content.append(_tool_use_block(turns[i]))
                i += 1
            messages.append({"role": "assistant", "content": content})
            continue

        # TOOL_RESULT run
        results: list[dict[str, Any]] = []
        while i < n and turns[i].role == TurnRole.TOOL_RESULT:
            results.append(_tool_result_block(turns[i]))
            i += 1
        messages.append({"role": "user", "content": results})

    return messages


def turns_from_message(message: dict[str, Any], model: str = "") -> list[Turn]:
    """Derive log turns from an assembled assistant message.

    All text blocks collapse into one ``ASSISTANT_TEXT`` turn (omitted when
    there is no text), followed by one ``TOOL_INVOCATION`` per ``tool_use``
    block in order.
    """
    content = message.get("content") or []
    text = "".join(
        block.get("text", "") for block in content if block.get("type") == "text"
    )
    model = model or message.get("model", "")

    turns: list[Turn] = []
    if text:
        turns.append(Turn.assistant(text, model=model))
    for block in content:
        if block.get("type") == "tool_use":
            turns.append(Turn.tool_use(
                block.get("id", ""),
                block.get("name", ""),
                block.get("input") or {},
            ))
    return turns
