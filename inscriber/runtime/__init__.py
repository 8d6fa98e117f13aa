from .engine import Backoff, EnginePhase, InscriptionEngine
from .events import EventBus
from .stop import StopSignal

__all__ = ["Backoff", "EnginePhase", "EventBus", "InscriptionEngine", "StopSignal"]
