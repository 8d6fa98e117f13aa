from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
import contextlib
from datetime import datetime, timezone
import inspect
import json
import secrets
import threading
import time
from pathlib import Path
from typing import Any

EventHandler = Callable[[dict[str, Any]], Any]

HISTORY_LIMIT = 200
_SEVERITY = {"error": "error", "penalty": "warn"}


def utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat()


def new_event_id() -> str:
    return f"evt-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class EventBus:
    """Mining event fan-out with replay history and JSONL audit logging.

    `emit` is the engine's event sink. Dispatch never blocks the caller: failing
    handlers are skipped and coroutine handlers are scheduled, not awaited.
    """

    def __init__(self, log_path: Path | None = None, *, history_limit: int = HISTORY_LIMIT) -> None:
        self._lock = threading.Lock()
        self._history: deque[dict[str, Any]] = deque(maxlen=max(1, int(history_limit)))
        self._subscribers: list[EventHandler] = []
        self._audit_path: Path | None = None
        self._pending: set[asyncio.Future[Any]] = set()
        self.events_written = 0
        if log_path is not None:
            self.set_log_path(log_path)

    @property
    def log_path(self) -> Path | None:
        return self._audit_path

    def set_log_path(self, path: Path) -> None:
        """Start appending to `path`. Earlier events stay in memory only."""

        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(exist_ok=True)
        self._audit_path = path

    def subscribe(self, handler: EventHandler, *, replay: bool = False) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(handler)
            backlog = list(self._history) if replay else []
        for event in backlog:
            self._deliver(handler, event)

        def unsubscribe() -> None:
            with self._lock, contextlib.suppress(ValueError):
                self._subscribers.remove(handler)

        return unsubscribe

    def history(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._history)

    def emit(self, kind: str, message: str, data: Any = None) -> dict[str, Any]:
        if isinstance(data, dict):
            metadata = dict(data)
        else:
            metadata = {} if data is None else {"data": data}
        event = {
            "id": new_event_id(),
            "ts": utc_now_iso(),
            "type": str(kind),
            "severity": _SEVERITY.get(kind, "info"),
            "source": "engine",
            "message": str(message or ""),
            "metadata": metadata,
        }
        with self._lock:
            self._history.append(event)
            subscribers = list(self._subscribers)
        with contextlib.suppress(Exception):
            self._write_audit(event)
        for handler in subscribers:
            self._deliver(handler, event)
        return event

    def _write_audit(self, event: dict[str, Any]) -> None:
        if self._audit_path is None:
            return
        line = json.dumps(event, sort_keys=True, ensure_ascii=True, default=str)
        with self._audit_path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")
        self.events_written += 1

    def _deliver(self, handler: EventHandler, event: dict[str, Any]) -> None:
        try:
            result = handler(event)
        except Exception:  # noqa: BLE001
            return
        if not inspect.isawaitable(result):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to run it on.
            if inspect.iscoroutine(result):
                result.close()
            return
        task = asyncio.ensure_future(result, loop=loop)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
