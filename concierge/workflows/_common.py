"""Small helpers shared by the built-in step handlers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

_YES = {"yes", "y", "true", "1", "confirm", "ok"}
_NO = {"no", "n", "false", "0"}


def parse_slot(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 date/time; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_answer(value: Any) -> Optional[bool]:
    """Interpret a yes/no answer; ``None`` when it is neither."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _YES:
            return True
        if text in _NO:
            return False
    return None


def find_item(items: Iterable[Mapping[str, Any]], item_id: Any) -> Optional[Mapping[str, Any]]:
    return next((item for item in items if item.get("id") == item_id), None)


def choices(items: Iterable[Mapping[str, Any]], label: str = "name") -> list[dict[str, Any]]:
    """Compact ``{id, label}`` pairs offered back to the user as suggestions."""
    return [{"id": item["id"], label: item.get(label)} for item in items]


def describe(items: Iterable[Mapping[str, Any]], label: str = "name") -> str:
    return ", ".join(f"{item.get(label)} ({item['id']})" for item in items)
