"""Round-based simulation of pollinators acting on the engine."""

from .context import SimulationClock, SimulationContext
from .driver import PriceSubmissionError, RoundDriver, RoundError, RoundExecutionError, Step
from .manager import ManagerState, RoundRecord, SimulationManager
from .pollinator import Pollinator, PollinatorType
from .runner import SimulationResult, SimulationRunner

__all__ = [
    "SimulationClock",
    "SimulationContext",
    "PriceSubmissionError",
    "RoundDriver",
    "RoundError",
    "RoundExecutionError",
    "Step",
    "ManagerState",
    "RoundRecord",
    "SimulationManager",
    "Pollinator",
    "PollinatorType",
    "SimulationResult",
    "SimulationRunner",
]
