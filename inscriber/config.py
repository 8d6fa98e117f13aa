from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import tomllib


def _as_float(value, *, default: float) -> float:
    try:
        return float(value)
    except Exception:  # noqa: BLE001
        return float(default)


def _as_int(value, *, default: int) -> int:
    try:
        return int(value)
    except Exception:  # noqa: BLE001
        return int(default)


def _as_bool(value, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "y", "on"}:
            return True
        if lowered in {"0", "false", "no", "n", "off"}:
            return False
    return bool(default)


def _as_str(value, *, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


@dataclass(frozen=True)
class EngineConfig:
    target_id: int = 0
    cooldown_s: float = 1800.0
    rate_limit_default_s: float = 1800.0
    backoff_initial_s: float = 5.0
    backoff_max_s: float = 300.0
    max_challenge_retries: int = 5
    pause_poll_s: float = 1.0
    client_version: str = "dev"


@dataclass(frozen=True)
class SolverConfig:
    attempts: int = 3
    retry_delay_s: float = 2.0


@dataclass(frozen=True)
class BackendConfig:
    provider: str = ""  # "module:factory"
    client: str = ""


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "info"
    console: bool = True


@dataclass(frozen=True)
class InscriberConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _table(data: dict, key: str) -> dict:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def load_inscriber_toml(path: Path) -> tuple[InscriberConfig, str]:
    """Load engine config from inscriber.toml.

    Returns (config, warning). Warning is empty on success; a missing file is
    not a warning.
    """

    if not path.exists():
        return InscriberConfig(), ""

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        return InscriberConfig(), f"inscriber.toml parse failed: {exc}"

    if not isinstance(data, dict):
        return InscriberConfig(), "inscriber.toml parse failed: top-level is not a table"

    engine = _table(data, "engine")
    solver = _table(data, "solver")
    backend = _table(data, "backend")
    logging = _table(data, "logging")

    cfg = InscriberConfig(
        engine=EngineConfig(
            target_id=max(0, _as_int(engine.get("target_id"), default=EngineConfig.target_id)),
            cooldown_s=max(0.0, _as_float(engine.get("cooldown_s"), default=EngineConfig.cooldown_s)),
            rate_limit_default_s=max(
                1.0, _as_float(engine.get("rate_limit_default_s"), default=EngineConfig.rate_limit_default_s)
            ),
            backoff_initial_s=max(0.1, _as_float(engine.get("backoff_initial_s"), default=EngineConfig.backoff_initial_s)),
            backoff_max_s=max(0.1, _as_float(engine.get("backoff_max_s"), default=EngineConfig.backoff_max_s)),
            max_challenge_retries=max(
                0, _as_int(engine.get("max_challenge_retries"), default=EngineConfig.max_challenge_retries)
            ),
            pause_poll_s=max(0.05, _as_float(engine.get("pause_poll_s"), default=EngineConfig.pause_poll_s)),
            client_version=_as_str(engine.get("client_version"), default=EngineConfig.client_version),
        ),
        solver=SolverConfig(
            attempts=max(1, _as_int(solver.get("attempts"), default=SolverConfig.attempts)),
            retry_delay_s=max(0.0, _as_float(solver.get("retry_delay_s"), default=SolverConfig.retry_delay_s)),
        ),
        backend=BackendConfig(
            provider=_as_str(backend.get("provider"), default=BackendConfig.provider),
            client=_as_str(backend.get("client"), default=BackendConfig.client),
        ),
        logging=LoggingConfig(
            level=_as_str(logging.get("level"), default=LoggingConfig.level).lower(),
            console=_as_bool(logging.get("console"), default=LoggingConfig.console),
        ),
    )
    return cfg, ""


def explain_config(cfg: InscriberConfig) -> list[str]:
    return [
        f"engine.target_id = {cfg.engine.target_id}",
        f"engine.cooldown_s = {cfg.engine.cooldown_s:g}",
        f"engine.rate_limit_default_s = {cfg.engine.rate_limit_default_s:g}",
        f"engine.backoff_initial_s = {cfg.engine.backoff_initial_s:g}",
        f"engine.backoff_max_s = {cfg.engine.backoff_max_s:g}",
        f"engine.max_challenge_retries = {cfg.engine.max_challenge_retries}",
        f"engine.pause_poll_s = {cfg.engine.pause_poll_s:g}",
        f"engine.client_version = {cfg.engine.client_version}",
        f"solver.attempts = {cfg.solver.attempts}",
        f"solver.retry_delay_s = {cfg.solver.retry_delay_s:g}",
        f"backend.provider = {cfg.backend.provider or '(unset)'}",
        f"backend.client = {cfg.backend.client or '(unset)'}",
        f"logging.level = {cfg.logging.level}",
        f"logging.console = {str(cfg.logging.console).lower()}",
    ]
