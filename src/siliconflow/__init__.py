"""
SiliconFlow - A time-stepped accelerator activity simulator.

This package produces plausible, internally consistent telemetry for an
accelerator card: compute-core thermal/utilization behavior, a warp-level
scheduler with stalls and migration, and derived PCIe/host metrics.

Usage:
    from siliconflow import ChipSimulator, commands

    sim = ChipSimulator()
    sim.dispatch(commands.set_task("ai-train"))
    sim.dispatch(commands.start())
    sim.advance(5_000)
    snapshot = sim.snapshot()
"""

from . import commands
from .catalog import (
    ENTERPRISE_TASKS,
    KERNEL_PROFILES,
    EnterpriseTask,
    KernelProfile,
    TaskCategory,
    get_enterprise_task,
    get_kernel_profile,
)
from .config import DEFAULT_CHIP_CONFIG, SMALL_CHIP_CONFIG, ChipConfig
from .phase import DataFlowPhase, PhaseSequencer
from .runtime import AsyncChipRunner
from .simulator import ChipSimulator, ChipSnapshot
from .state import ComputeCore, CoreStatus, EngineState, initial_state

__version__ = "0.1.0"
__all__ = [
    "commands",
    # Config
    "ChipConfig",
    "DEFAULT_CHIP_CONFIG",
    "SMALL_CHIP_CONFIG",
    # Catalogs
    "KERNEL_PROFILES",
    "ENTERPRISE_TASKS",
    "KernelProfile",
    "EnterpriseTask",
    "TaskCategory",
    "get_kernel_profile",
    "get_enterprise_task",
    # State
    "EngineState",
    "ComputeCore",
    "CoreStatus",
    "DataFlowPhase",
    "PhaseSequencer",
    "initial_state",
    # Drivers
    "ChipSimulator",
    "ChipSnapshot",
    "AsyncChipRunner",
    "__version__",
]
