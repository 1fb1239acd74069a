"""Convert stored messages to Anthropic API message format."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from starbase.core.types import Role
from starbase.storage.models import MessageRecord

RESUMED_PLACEHOLDER = "(conversation resumed)"


def build_messages(history: Iterable[MessageRecord]) -> list[dict[str, Any]]:
    """Stored user/assistant rows as an alternation-correct message list."""
    raw = [
        {"role": record.role, "content": record.content}
        for record in history
        if record.role in (Role.USER, Role.ASSISTANT)
    ]
    return ensure_alternation(raw)


def ensure_alternation(messages: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Merge consecutive same-role string messages and make the list start with a user turn.

    Returns a new list; the input and its dicts are left untouched.
    """
    result: list[dict[str, Any]] = []
    for msg in messages:
        if result and result[-1]["role"] == msg["role"]:
            previous = result[-1]
            result[-1] = {
                "role": previous["role"],
                "content": _join_content(previous["content"], msg["content"]),
            }
        else:
            result.append({"role": msg["role"], "content": msg["content"]})

    if result and result[0]["role"] != Role.USER:
        result.insert(0, {"role": Role.USER.value, "content": RESUMED_PLACEHOLDER})
    return result


def is_alternating(messages: Sequence[dict[str, Any]]) -> bool:
    return all(a["role"] != b["role"] for a, b in zip(messages, messages[1:]))


def _join_content(left: Any, right: Any) -> Any:
    if isinstance(left, str) and isinstance(right, str):
        return f"{left}\n{right}"
    return _as_blocks(left) + _as_blocks(right)


def _as_blocks(content: Any) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    return list(content)
