"""
Python client for the Voice Todo API, plus the ``voice-todo`` CLI.

The client runs the whole pipeline from the user's side: encode recorded
samples as WAV, upload them for transcription and task extraction, save each
extracted task, then derive the today/overdue view locally.

Every failure, from the voice pipeline or from todo CRUD, is raised as
``VoiceTodoClientError``; the CLI reports them all the same way.

Usage:
    export VOICE_TODO_URL=http://localhost:8000 VOICE_TODO_TOKEN=<jwt>
    voice-todo add-audio recording.wav
    voice-todo list
    voice-todo toggle 12
"""
import argparse
import os
import sys
from datetime import datetime, tzinfo
from typing import Any, Dict, List, Optional, Sequence

import requests

from audio_encoding import encode_wav, read_wav_samples, to_data_uri
from schemas import ExtractedTask, Todo
from todo_view import (
    COMPLETED, TodoBoard, build_board, calendar_event_url, edit_title_patch, reorder,
    toggle_completion_patch,
)

DEFAULT_BASE_URL = "http://localhost:8000"


class VoiceTodoClientError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class VoiceTodoClient:

    def __init__(self, base_url: str, token: str, session=None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        # Anything with a requests-style .request() works, e.g. a TestClient
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, json: Any = None) -> Any:
        response = self.session.request(
            method,
            f"{self.base_url}/api{path}",
            json=json,
            headers={"Authorization": f"Bearer {self.token}"},
        )
        try:
            data = response.json()
        except ValueError:
            data = None
        if response.status_code >= 400:
            message = data.get("error") if isinstance(data, dict) else None
            raise VoiceTodoClientError(response.status_code, message or response.text or "Request failed")
        return data

    # ============ TODOS ============
    def list_todos(self) -> List[Todo]:
        return [Todo.model_validate(item) for item in self._request("GET", "/todos")]

    def create_todo(self, title: str, estimated_time: int, created_at: Optional[datetime] = None) -> Todo:
        body = {"title": title, "estimatedTime": estimated_time}
        if created_at:
            body["createdAt"] = created_at.isoformat()
        return Todo.model_validate(self._request("POST", "/todos", json=body))

    def update_todo(self, todo_id: int, patch: Dict[str, Any]) -> Todo:
        return Todo.model_validate(self._request("PATCH", f"/todos/{todo_id}", json=patch))

    def delete_todo(self, todo_id: int) -> None:
        self._request("DELETE", f"/todos/{todo_id}")

    # ============ VOICE ============
    def transcribe(self, audio_data_uri: str) -> List[ExtractedTask]:
        data = self._request("POST", "/transcribe", json={"audio": audio_data_uri})
        return [ExtractedTask.model_validate(item) for item in data]

    def add_tasks_from_audio(self, audio_data_uri: str) -> List[Todo]:
        """Transcribe, extract and save; returns the created todos in order."""
        tasks = self.transcribe(audio_data_uri)
        return [self.create_todo(task.title, task.estimated_time) for task in tasks]

    def add_tasks_from_samples(self, samples: Sequence[float], sample_rate: int, channels: int = 1) -> List[Todo]:
        wav = encode_wav(samples, sample_rate, channels)
        return self.add_tasks_from_audio(to_data_uri(wav))

    # ============ VIEW ============
    def board(self, now: datetime, tz: Optional[tzinfo] = None) -> TodoBoard:
        return build_board(self.list_todos(), now, tz)

    def _find(self, board: TodoBoard, todo_id: int):
        for item in board.today + board.overdue:
            if item.todo.id == todo_id:
                return item
        raise VoiceTodoClientError(404, f"Todo {todo_id} is not on today's board")

    def toggle(self, todo_id: int, now: datetime, tz: Optional[tzinfo] = None) -> Todo:
        item = self._find(self.board(now, tz), todo_id)
        return self.update_todo(todo_id, toggle_completion_patch(item.todo, item.status, now))

    def rename(self, todo_id: int, title: str, now: datetime, tz: Optional[tzinfo] = None) -> Optional[Todo]:
        item = self._find(self.board(now, tz), todo_id)
        patch = edit_title_patch(item.todo, item.status, title)
        if patch is None:
            return None
        return self.update_todo(todo_id, patch)

    def move(self, source_index: int, destination_index: int, now: datetime, tz: Optional[tzinfo] = None) -> List[Todo]:
        """Reorder today's list; one PATCH per todo, no batching."""
        today = [item.todo for item in self.board(now, tz).today]
        reordered, patches = reorder(today, source_index, destination_index)
        for todo_id, patch in patches:
            self.update_todo(todo_id, patch)
        return reordered


# ============ CLI ============
def format_board(board: TodoBoard) -> str:
    lines = []
    if board.total_today:
        lines.append(
            f"Today: {board.completed_today} of {board.total_today} tasks completed ({board.progress}%)"
        )
    else:
        lines.append("Today: nothing yet")
    for position, item in enumerate(board.today, start=1):
        mark = "x" if item.status == COMPLETED else " "
        lines.append(f"  {position}. [{mark}] #{item.todo.id} {item.todo.title} ({item.todo.estimated_time}min)")
    if board.overdue:
        lines.append("Overdue:")
        for item in board.overdue:
            lines.append(f"  [ ] #{item.todo.id} {item.todo.title} ({item.todo.estimated_time}min)")
    if board.all_completed:
        lines.append("All done for today!")
    return "\n".join(lines)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="voice-todo", description="Voice-driven todo list client")
    parser.add_argument("--url", default=os.environ.get("VOICE_TODO_URL", DEFAULT_BASE_URL), help="API base URL")
    parser.add_argument("--token", default=os.environ.get("VOICE_TODO_TOKEN"), help="Session token (JWT)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add-audio", help="Transcribe a 16-bit WAV recording and save the tasks")
    p.add_argument("wav", help="Path to a 16-bit PCM WAV file")

    p = sub.add_parser("add", help="Add a task directly")
    p.add_argument("title")
    p.add_argument("--minutes", type=int, default=30, help="Estimated time in minutes")

    sub.add_parser("list", help="Show today's and overdue tasks")

    p = sub.add_parser("toggle", help="Toggle completion (overdue tasks move to today)")
    p.add_argument("id", type=int)

    p = sub.add_parser("rename", help="Edit a task title")
    p.add_argument("id", type=int)
    p.add_argument("title")

    p = sub.add_parser("delete", help="Delete a task")
    p.add_argument("id", type=int)

    p = sub.add_parser("move", help="Move a task within today's list (1-based positions)")
    p.add_argument("source", type=int)
    p.add_argument("destination", type=int)

    p = sub.add_parser("calendar", help="Print a Google Calendar link for a task")
    p.add_argument("id", type=int)

    return parser.parse_args(argv)


def run(args: argparse.Namespace, client: VoiceTodoClient, now: datetime) -> None:
    if args.command == "add-audio":
        samples, sample_rate, channels = read_wav_samples(args.wav)
        created = client.add_tasks_from_samples(samples, sample_rate, channels)
        print(f"✓ Added {len(created)} task(s)")
        for todo in created:
            print(f"  #{todo.id} {todo.title} ({todo.estimated_time}min)")
    elif args.command == "add":
        todo = client.create_todo(args.title, args.minutes)
        print(f"✓ Added #{todo.id} {todo.title} ({todo.estimated_time}min)")
    elif args.command == "list":
        print(format_board(client.board(now)))
    elif args.command == "toggle":
        todo = client.toggle(args.id, now)
        print(f"✓ #{todo.id} {'completed' if todo.completed else 'open'}")
    elif args.command == "rename":
        todo = client.rename(args.id, args.title, now)
        print(f"✓ Renamed #{todo.id} to {todo.title}" if todo else "Nothing to change")
    elif args.command == "delete":
        client.delete_todo(args.id)
        print(f"✓ Deleted #{args.id}")
    elif args.command == "move":
        client.move(args.source - 1, args.destination - 1, now)
        print(format_board(client.board(now)))
    elif args.command == "calendar":
        todo = next((t for t in client.list_todos() if t.id == args.id), None)
        if todo is None:
            raise VoiceTodoClientError(404, "Todo not found")
        print(calendar_event_url(todo, now))


def main(argv=None) -> int:
    args = parse_args(argv)
    if not args.token:
        print("❌ ERROR: set VOICE_TODO_TOKEN or pass --token", file=sys.stderr)
        return 2
    client = VoiceTodoClient(args.url, args.token)
    now = datetime.now().astimezone()
    try:
        run(args, client, now)
        return 0
    except VoiceTodoClientError as e:
        print(f"❌ Error: {e.message} (HTTP {e.status_code})", file=sys.stderr)
        return 1
    except requests.RequestException as e:
        print(f"❌ Error: could not reach {args.url}: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError, IndexError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
