from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path


HOME_ENV = "INSCRIBER_HOME"


def runtime_root() -> Path:
    """Directory holding config, state, lock and logs for one engine instance.

    `$INSCRIBER_HOME` wins; otherwise `~/.inscriber`.
    """

    raw = os.environ.get(HOME_ENV, "").strip()
    if raw:
        return Path(raw).expanduser().resolve()
    return (Path.home() / ".inscriber").resolve()


@dataclass(frozen=True)
class RuntimePaths:
    root: Path
    config_toml: Path
    state_json: Path
    lock_file: Path
    logs_dir: Path
    runtime_log: Path
    events_log: Path


def runtime_paths(root: Path | None = None) -> RuntimePaths:
    root = root or runtime_root()
    logs_dir = root / "logs"
    return RuntimePaths(
        root=root,
        config_toml=root / "inscriber.toml",
        state_json=root / "state.json",
        lock_file=root / "mine.lock",
        logs_dir=logs_dir,
        runtime_log=logs_dir / "runtime.log",
        events_log=logs_dir / "events.jsonl",
    )


def ensure_runtime_dirs(paths: RuntimePaths | None = None) -> RuntimePaths:
    paths = paths or runtime_paths()
    paths.root.mkdir(mode=0o700, parents=True, exist_ok=True)
    paths.logs_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    return paths
