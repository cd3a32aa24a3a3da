"""Service modules"""
from .agent import AgentController
from .alerts import AlertBus
from .gad import GadController, GadState
from .locks import PositionLocks
from .monitor import Monitor
from .position_service import PositionService

__all__ = [
    "AgentController",
    "AlertBus",
    "GadController",
    "GadState",
    "Monitor",
    "PositionLocks",
    "PositionService",
]
