from __future__ import annotations

import contextlib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
import sys
from typing import Any, Callable, TextIO

LEVELS = {"debug": 10, "info": 20, "warn": 30, "error": 40}


def normalize_level(value: str, *, default: str = "info") -> str:
    lowered = str(value or "").strip().lower()
    if lowered == "warning":
        lowered = "warn"
    return lowered if lowered in LEVELS else default


@dataclass(frozen=True)
class RuntimeHooks:
    log: Callable[[str, str], None] | None = None
    emit_console: bool = True
    log_file: Path | None = None


class RuntimeLogger:
    """Level-filtered runtime log: optional hook, log file, console (stderr)."""

    def __init__(self, *, level: str = "info", hooks: RuntimeHooks | None = None, stream: TextIO | None = None) -> None:
        self.level = normalize_level(level)
        self.hooks = hooks or RuntimeHooks()
        self._stream = stream

    def enabled(self, level: str) -> bool:
        return LEVELS[normalize_level(level)] >= LEVELS[self.level]

    def log(self, level: str, message: str, /, **fields: Any) -> None:
        level = normalize_level(level)
        if not self.enabled(level):
            return
        line = _format_fields(message, fields)
        if self.hooks.log is not None:
            with contextlib.suppress(Exception):
                self.hooks.log(level, line)
        if self.hooks.log_file is not None:
            append_runtime_log(self.hooks.log_file, level=level, message=line)
        if self.hooks.emit_console:
            stream = self._stream or sys.stderr
            with contextlib.suppress(Exception):
                print(f"{level.upper():5} {line}", file=stream)

    def debug(self, message: str, /, **fields: Any) -> None:
        self.log("debug", message, **fields)

    def info(self, message: str, /, **fields: Any) -> None:
        self.log("info", message, **fields)

    def warn(self, message: str, /, **fields: Any) -> None:
        self.log("warn", message, **fields)

    def error(self, message: str, /, **fields: Any) -> None:
        self.log("error", message, **fields)


def append_runtime_log(log_file: Path, *, level: str, message: str) -> None:
    normalized_message = " ".join(message.split())
    stamp = datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat()
    line = f"{stamp} [{level.lower()}] {normalized_message}\n"
    with contextlib.suppress(Exception):
        log_file.parent.mkdir(parents=True, exist_ok=True)
        with log_file.open("a", encoding="utf-8") as handle:
            handle.write(line)


def null_logger() -> RuntimeLogger:
    return RuntimeLogger(level="error", hooks=RuntimeHooks(emit_console=False))


def _format_fields(message: str, fields: dict[str, Any]) -> str:
    if not fields:
        return message
    parts = [f"{key}={value}" for key, value in fields.items()]
    return f"{message} " + " ".join(parts)
