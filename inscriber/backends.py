from __future__ import annotations

import importlib
from typing import Any, Callable

from .config import InscriberConfig


class BackendLoadError(RuntimeError):
    pass


def _resolve(reference: str) -> Callable[..., Any]:
    cleaned = (reference or "").strip()
    module_name, sep, attr_path = cleaned.partition(":")
    if not module_name or not sep or not attr_path:
        raise BackendLoadError(f"Expected 'module:factory', got {reference!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise BackendLoadError(f"Unable to import backend module {module_name!r}: {exc}") from exc
    target: Any = module
    for part in attr_path.split("."):
        target = getattr(target, part, None)
        if target is None:
            raise BackendLoadError(f"{module_name!r} has no attribute {attr_path!r}")
    if not callable(target):
        raise BackendLoadError(f"{cleaned!r} is not callable")
    return target


def load_backend(reference: str, cfg: InscriberConfig, *, kind: str, required: tuple[str, ...]) -> Any:
    """Call the `module:factory` in `reference` with the config and check the result's shape."""

    if not (reference or "").strip():
        raise BackendLoadError(f"No {kind} configured. Set [backend].{kind} in inscriber.toml or pass --{kind}.")
    instance = _resolve(reference)(cfg)
    missing = [name for name in required if not callable(getattr(instance, name, None))]
    if missing:
        raise BackendLoadError(f"{kind} from {reference!r} is missing: {', '.join(missing)}")
    return instance


def load_provider(reference: str, cfg: InscriberConfig) -> Any:
    return load_backend(reference, cfg, kind="provider", required=("answer",))


def load_client(reference: str, cfg: InscriberConfig) -> Any:
    return load_backend(reference, cfg, kind="client", required=("start_session", "submit", "end_session"))
