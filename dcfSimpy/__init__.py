from .Backoff import Node, SlotState
from .Simulation import (
    Config,
    ConfigurationBoundExceeded,
    NonConvergenceError,
    SimulationResult,
    SimulationStats,
    SlotEngine,
    SlotOutcome,
    run_simulation,
)
