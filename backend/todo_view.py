"""
Client-side view of a user's todos.

Everything here is derived from the todo list plus an explicit ``now`` (and
optional timezone), never from the process clock, so the today/overdue
split is reproducible.
"""
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

from pydantic import BaseModel

from schemas import Todo

PENDING = "pending"
COMPLETED = "completed"
OVERDUE = "overdue"

CALENDAR_URL = "https://calendar.google.com/calendar/render"


class BoardItem(BaseModel):
    todo: Todo
    status: str


class TodoBoard(BaseModel):
    today: List[BoardItem]
    overdue: List[BoardItem]
    completed_today: int
    total_today: int
    progress: int
    all_completed: bool  # triggers the celebration in the UI


def _aware(value: datetime) -> datetime:
    # Timestamps without an offset are treated as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def day_window(now: datetime, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    """
    Return the [00:00:00.000, 23:59:59.999] bounds of the day containing ``now``.

    Args:
        now: Current instant; must be timezone-aware
        tz: Timezone whose calendar day counts; defaults to ``now``'s own
    """
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    local = now.astimezone(tz) if tz else now
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end = local.replace(hour=23, minute=59, second=59, microsecond=999000)
    return start, end


def classify(todo: Todo, now: datetime, tz: Optional[tzinfo] = None) -> Optional[str]:
    """
    "pending"/"completed" for todos created today, "overdue" for incomplete
    todos from earlier days, None for everything else (hidden).
    """
    start, _ = day_window(now, tz)
    created = _aware(todo.created_at)
    # Half-open day: timestamps past 23:59:59.999 are still today
    if start <= created < start + timedelta(days=1):
        return COMPLETED if todo.completed else PENDING
    if created < start and not todo.completed:
        return OVERDUE
    return None


def progress_percentage(completed: int, total: int) -> int:
    """round(100 * completed / total), halves rounded up; 0 for an empty day."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def build_board(todos: Sequence[Todo], now: datetime, tz: Optional[tzinfo] = None) -> TodoBoard:
    today = []
    overdue = []
    for todo in todos:
        status = classify(todo, now, tz)
        if status == OVERDUE:
            overdue.append(BoardItem(todo=todo, status=status))
        elif status is not None:
            today.append(BoardItem(todo=todo, status=status))

    # Manual order first, newest first within the same order
    today.sort(key=lambda item: (item.todo.order, -_aware(item.todo.created_at).timestamp()))
    overdue.sort(key=lambda item: _aware(item.todo.created_at), reverse=True)

    completed_today = sum(1 for item in today if item.todo.completed)
    total_today = len(today)
    return TodoBoard(
        today=today,
        overdue=overdue,
        completed_today=completed_today,
        total_today=total_today,
        progress=progress_percentage(completed_today, total_today),
        all_completed=total_today > 0 and completed_today == total_today,
    )


def toggle_completion_patch(todo: Todo, status: str, now: datetime) -> Dict[str, Any]:
    """
    PATCH body for the completion checkbox.

    An overdue todo is not marked done: it is re-dated to ``now`` and stays
    incomplete, which moves it into today's list.
    """
    if status == OVERDUE:
        return {"createdAt": now.isoformat(), "completed": False}
    return {"completed": not todo.completed}


def edit_title_patch(todo: Todo, status: str, new_title: str) -> Optional[Dict[str, Any]]:
    """PATCH body for an inline title edit, or None when there is nothing to send."""
    if status in (COMPLETED, OVERDUE):
        return None
    title = (new_title or "").strip()
    if not title or title == todo.title:
        return None
    return {"title": title}


def reorder(
    todos: Sequence[Todo], source_index: int, destination_index: Optional[int]
) -> Tuple[List[Todo], List[Tuple[int, Dict[str, Any]]]]:
    """
    Move one todo and renumber the list.

    Returns the reordered list (with updated ``order`` values) and one
    ``(todo_id, {"order": index})`` patch per todo. A drop outside the list
    (``destination_index`` None) changes nothing.
    """
    items = list(todos)
    if destination_index is None:
        return items, []
    if not 0 <= source_index < len(items) or not 0 <= destination_index < len(items):
        raise IndexError(f"cannot move item {source_index} to {destination_index} in a list of {len(items)}")

    moved = items.pop(source_index)
    items.insert(destination_index, moved)
    reordered = [todo.model_copy(update={"order": index}) for index, todo in enumerate(items)]
    patches = [(todo.id, {"order": todo.order}) for todo in reordered]
    return reordered, patches


def calendar_event_url(todo: Todo, now: datetime) -> str:
    """Google Calendar "add event" link: starts in an hour, lasts the estimate."""
    start = _aware(now) + timedelta(hours=1)
    end = start + timedelta(minutes=todo.estimated_time)
    fmt = "%Y%m%dT%H%M%SZ"
    dates = f"{start.astimezone(timezone.utc).strftime(fmt)}/{end.astimezone(timezone.utc).strftime(fmt)}"
    details = f"Task from Voice Todo\nEstimated time: {todo.estimated_time} minutes"
    return (
        f"{CALENDAR_URL}?action=TEMPLATE&text={quote(todo.title, safe='')}"
        f"&details={quote(details, safe='')}&dates={dates}"
    )
