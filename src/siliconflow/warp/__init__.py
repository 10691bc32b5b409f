"""
Warp-level scheduling.

Usage:
    from siliconflow.warp import SchedulerInputs, WarpSchedulerSim

    scheduler = WarpSchedulerSim()
    for _ in range(200):
        scheduler.tick(SchedulerInputs())
    print(scheduler.get_visualization())
"""

from .context import (
    STATUS_SYMBOLS,
    InstructionMix,
    MigrationEvent,
    ThroughputSample,
    Warp,
    WarpStatus,
)
from .scheduler import (
    STALL_REASON_CACHE_MISS,
    DispatchArbiter,
    SchedulerInputs,
    SchedulerSnapshot,
    WarpSchedulerSim,
    first_ready,
)

__all__ = [
    # Contexts
    "Warp",
    "WarpStatus",
    "InstructionMix",
    "MigrationEvent",
    "ThroughputSample",
    "STATUS_SYMBOLS",
    # Scheduler
    "WarpSchedulerSim",
    "SchedulerInputs",
    "SchedulerSnapshot",
    "DispatchArbiter",
    "first_ready",
    "STALL_REASON_CACHE_MISS",
]
