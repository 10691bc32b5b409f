"""
Command definitions for the simulation engine.

This module defines:
1. Command types accepted by the engine
2. The ``Command`` record carried from UI/driver to engine
3. Helper functions for creating (and validating) commands
4. ``apply_command``, the reducer that folds a command into a new state

Inputs are validated when a command is built, so the reducer itself is a
total function over (state, command).
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

import numpy as np

from . import engine
from .catalog import (
    EnterpriseTask,
    KernelProfile,
    get_enterprise_task,
    get_kernel_profile,
    validate_kernel_params,
)
from .phase import DataFlowPhase
from .state import EngineState, initial_state

logger = logging.getLogger(__name__)


class CommandType(Enum):
    """Operations the engine accepts."""

    # Clock control
    START = "START"
    STOP = "STOP"
    TICK = "TICK"
    RESET = "RESET"
    SET_SPEED = "SET_SPEED"

    # Workload selection
    SET_WORKLOAD = "SET_WORKLOAD"
    SET_TASK = "SET_TASK"
    SET_KERNEL = "SET_KERNEL"
    UPDATE_KERNEL_PARAMS = "UPDATE_KERNEL_PARAMS"

    # Toggles
    TOGGLE_BALANCING = "TOGGLE_BALANCING"
    TOGGLE_MIGRATION = "TOGGLE_MIGRATION"

    # Advisory slot
    SET_ADVISOR_MSG = "SET_ADVISOR_MSG"


@dataclass(frozen=True)
class Command:
    """A single command with an optional payload."""

    type: CommandType
    payload: Any = None


# =============================================================================
# Helper Functions for Creating Commands
# =============================================================================


def start() -> Command:
    return Command(CommandType.START)


def stop() -> Command:
    return Command(CommandType.STOP)


def tick() -> Command:
    return Command(CommandType.TICK)


def reset() -> Command:
    return Command(CommandType.RESET)


def toggle_balancing() -> Command:
    return Command(CommandType.TOGGLE_BALANCING)


def toggle_migration() -> Command:
    return Command(CommandType.TOGGLE_MIGRATION)


def set_speed(period_ms: int) -> Command:
    """Set the global tick period in milliseconds."""
    if period_ms <= 0:
        raise ValueError(f"Tick period must be > 0, got {period_ms}")
    return Command(CommandType.SET_SPEED, int(period_ms))


def set_workload(level: float) -> Command:
    """Set the global workload level (0-100)."""
    if not 0 <= level <= 100:
        raise ValueError(f"Workload must be in [0, 100], got {level}")
    return Command(CommandType.SET_WORKLOAD, level)


def set_task(task: EnterpriseTask | str) -> Command:
    """Select an enterprise task by value or catalog id."""
    if isinstance(task, str):
        task = get_enterprise_task(task)
    return Command(CommandType.SET_TASK, task)


def set_kernel(kernel: KernelProfile | str) -> Command:
    """Select a kernel profile by value or catalog id."""
    if isinstance(kernel, str):
        kernel = get_kernel_profile(kernel)
    return Command(CommandType.SET_KERNEL, kernel)


def update_kernel_params(**params: Any) -> Command:
    """
    Patch individual fields of the active kernel profile.

    Example:
        >>> update_kernel_params(stall_probability=0.0, compute_intensity=12)
    """
    validate_kernel_params(params)
    return Command(CommandType.UPDATE_KERNEL_PARAMS, dict(params))


def set_advisor_message(message: str | None) -> Command:
    return Command(CommandType.SET_ADVISOR_MSG, message)


# =============================================================================
# Reducer
# =============================================================================


def apply_command(
    state: EngineState, command: Command, rng: np.random.Generator | None = None
) -> EngineState:
    """
    Fold a command into the engine state.

    Args:
        state: Current state (not modified)
        command: Command to apply
        rng: Random source, only consulted by TICK

    Returns:
        New engine state.
    """
    ctype = command.type
    payload = command.payload

    if ctype == CommandType.START:
        return replace(state, is_running=True)
    if ctype == CommandType.STOP:
        return replace(state, is_running=False, phase=DataFlowPhase.IDLE)
    if ctype == CommandType.TICK:
        return engine.tick(state, rng if rng is not None else np.random.default_rng())
    if ctype == CommandType.RESET:
        return initial_state(state.config)
    if ctype == CommandType.SET_SPEED:
        return replace(state, simulation_speed_ms=payload)
    if ctype == CommandType.SET_WORKLOAD:
        return replace(state, workload=payload)
    if ctype == CommandType.SET_TASK:
        logger.info("Task selected: %s (load %d)", payload.name, payload.load_profile)
        return replace(state, active_task=payload, workload=payload.load_profile)
    if ctype == CommandType.SET_KERNEL:
        logger.info("Kernel selected: %s", payload.name)
        return replace(state, active_kernel=payload)
    if ctype == CommandType.UPDATE_KERNEL_PARAMS:
        return replace(state, active_kernel=replace(state.active_kernel, **payload))
    if ctype == CommandType.TOGGLE_BALANCING:
        return replace(state, load_balancing_enabled=not state.load_balancing_enabled)
    if ctype == CommandType.TOGGLE_MIGRATION:
        return replace(state, migration_enabled=not state.migration_enabled)
    if ctype == CommandType.SET_ADVISOR_MSG:
        return replace(state, advisor_message=payload)
    return state
