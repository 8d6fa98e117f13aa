from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path

from . import __version__
from .backends import BackendLoadError, load_client, load_provider
from .config import InscriberConfig, explain_config, load_inscriber_toml
from .control import ControlSurface
from .display import format_stats
from .errors import FatalEngineError
from .locks import AlreadyRunningError, clear_stale_lock, read_lock_owner
from .logs import RuntimeHooks, RuntimeLogger, normalize_level
from .paths import RuntimePaths, ensure_runtime_dirs, runtime_paths
from .runtime.engine import InscriptionEngine
from .runtime.events import EventBus
from .runtime.stop import StopSignal
from .state import StateStore

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inscriber",
        description="Inscriber: unattended challenge-solving inscription client",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--home", help="Runtime home (default: $INSCRIBER_HOME or ~/.inscriber)")

    sub = parser.add_subparsers(dest="cmd", required=False)

    run = sub.add_parser("run", help="Start the inscription loop (Ctrl+C to stop).")
    run.add_argument("--target-id", type=int, help="Target id to mine (overrides engine.target_id)")
    run.add_argument("--provider", help="Answer backend factory, module:callable (overrides backend.provider)")
    run.add_argument("--client", help="Service client factory, module:callable (overrides backend.client)")
    run.add_argument("--log-level", help="debug, info, warn or error (overrides logging.level)")

    sub.add_parser("stats", help="Print persisted inscription stats.")
    sub.add_parser("unlock", help="Remove a lock left behind by a crashed process.")
    sub.add_parser("config", help="Print the effective configuration.")

    return parser


def _paths_from_args(args: argparse.Namespace) -> RuntimePaths:
    home = getattr(args, "home", None)
    return runtime_paths(Path(home).expanduser().resolve() if home else None)


def _load_config(paths: RuntimePaths) -> InscriberConfig:
    cfg, warning = load_inscriber_toml(paths.config_toml)
    if warning:
        print(f"warning: {warning}", file=sys.stderr)
    return cfg


def cmd_stats(args: argparse.Namespace) -> int:
    paths = _paths_from_args(args)
    state = StateStore(paths.state_json).load()
    for line in format_stats(state):
        print(line)
    if state.last_submit_at is not None:
        print(f"Last inscription: {state.last_submit_at.isoformat()}")
    if state.last_challenge is not None:
        print(f"Cached challenge: {state.last_challenge.id}")
    owner = read_lock_owner(paths.lock_file)
    if owner is not None:
        print(f"Lock: held by PID {owner} ({paths.lock_file})")
    return EXIT_OK


def cmd_unlock(args: argparse.Namespace) -> int:
    paths = _paths_from_args(args)
    removed, message = clear_stale_lock(paths.lock_file)
    print(message)
    return EXIT_OK if removed or not paths.lock_file.exists() else EXIT_FATAL


def cmd_config(args: argparse.Namespace) -> int:
    paths = _paths_from_args(args)
    cfg, warning = load_inscriber_toml(paths.config_toml)
    print(f"config: {paths.config_toml}{'' if paths.config_toml.exists() else ' (missing, defaults in use)'}")
    for line in explain_config(cfg):
        print(line)
    if warning:
        print(f"warning: {warning}")
        return EXIT_FATAL
    return EXIT_OK


def cmd_run(args: argparse.Namespace) -> int:
    paths = ensure_runtime_dirs(_paths_from_args(args))
    cfg = _load_config(paths)
    level = normalize_level(args.log_level or cfg.logging.level)
    logger = RuntimeLogger(
        level=level,
        hooks=RuntimeHooks(emit_console=cfg.logging.console, log_file=paths.runtime_log),
    )

    try:
        provider = load_provider(args.provider or cfg.backend.provider, cfg)
        client = load_client(args.client or cfg.backend.client, cfg)
    except BackendLoadError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE

    target_id = args.target_id if args.target_id is not None else cfg.engine.target_id
    bus = EventBus(paths.events_log)
    control = ControlSurface(target_id)
    stop = StopSignal()
    engine = InscriptionEngine(
        client=client,
        provider=provider,
        paths=paths,
        target_id=target_id,
        settings=cfg.engine,
        solver_settings=cfg.solver,
        control=control,
        emit=bus.emit,
        stop=stop,
        logger=logger,
    )

    try:
        asyncio.run(_run_engine(engine, stop))
    except AlreadyRunningError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE
    except FatalEngineError:
        # Remediation was already printed by the engine.
        return EXIT_FATAL
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    return EXIT_OK


async def _run_engine(engine: InscriptionEngine, stop: StopSignal) -> None:
    loop = asyncio.get_running_loop()
    stop.bind(loop)
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.request_stop)
        except (NotImplementedError, RuntimeError):
            continue
        installed.append(sig)
    try:
        await engine.run()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    argv = list(argv) if argv is not None else list(sys.argv[1:])
    if not argv:
        argv = ["stats"]
    args = parser.parse_args(argv)

    if args.cmd == "run":
        return cmd_run(args)
    if args.cmd == "stats":
        return cmd_stats(args)
    if args.cmd == "unlock":
        return cmd_unlock(args)
    if args.cmd == "config":
        return cmd_config(args)
    if args.cmd is None:
        return cmd_stats(args)

    parser.error(f"Unknown command: {args.cmd}")
    return EXIT_USAGE
