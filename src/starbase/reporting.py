"""Read-side usage aggregation over persisted assistant messages."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from starbase.errors import ValidationError
from starbase.storage.conversation_repo import ConversationRepository

PERIODS = ("day", "week", "month")


def period_start(period: str, today: date) -> date:
    """First day of the reporting period; weeks start on Sunday."""
    if period == "day":
        return today
    if period == "week":
        return today - timedelta(days=(today.weekday() + 1) % 7)
    if period == "month":
        return today.replace(day=1)
    raise ValidationError(f"Unknown period: {period}")


async def usage_report(
    repo: ConversationRepository,
    user_id: str,
    period: str = "month",
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    start = period_start(period, now.date())
    messages = await repo.assistant_messages_since(user_id, f"{start.isoformat()}T00:00:00")

    total_tokens = sum(m.tokens_used or 0 for m in messages)
    total_cost = sum(m.cost_cents or 0.0 for m in messages)

    by_model: dict[str, dict[str, float]] = defaultdict(lambda: {"messages": 0, "tokens": 0, "cost_cents": 0.0})
    by_day: dict[str, dict[str, float]] = defaultdict(lambda: {"messages": 0, "cost_cents": 0.0})
    for m in messages:
        model = by_model[m.model or "unknown"]
        model["messages"] += 1
        model["tokens"] += m.tokens_used or 0
        model["cost_cents"] += m.cost_cents or 0.0

        day = by_day[m.created_at.date().isoformat() if m.created_at else "unknown"]
        day["messages"] += 1
        day["cost_cents"] += m.cost_cents or 0.0

    return {
        "period": {"start": start.isoformat(), "end": now.date().isoformat()},
        "total_tokens": total_tokens,
        "total_cost_cents": round(total_cost, 2),
        "total_cost_dollars": f"${total_cost / 100:.4f}",
        "message_count": len(messages),
        "conversation_count": len({m.conversation_id for m in messages}),
        "by_model": dict(by_model),
        "by_day": [
            {"date": d, "messages": stats["messages"], "cost": f"${stats['cost_cents'] / 100:.4f}"}
            for d, stats in sorted(by_day.items(), reverse=True)
        ],
    }
