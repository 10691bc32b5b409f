"""
Per-core thermal/utilization model.

Each global tick every compute core runs one step of a leaky-integrator
feedback loop:

    workload ──► utilization ──► temperature ──► throttling
                     ▲                               │
                     └──────── 40% derating ◄────────┘

- Busy cores (workload > 5 during EXECUTING) jump to ~0.9 × workload
- Idle cores shed 15 points of utilization per tick
- Temperature rises by 1.5 °C × utilization fraction, minus 0.5 °C passive
  cooling, clamped to [30, 110]
- Above 95 °C the core is throttled and delivers 40% of its would-be
  utilization; the derated figure is what gets stored
"""

import logging
from dataclasses import replace

import numpy as np

from .config import ChipConfig
from .phase import DataFlowPhase
from .state import ComputeCore, CoreStatus

logger = logging.getLogger(__name__)


def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


def next_utilization(
    prev_utilization: float,
    busy: bool,
    workload: float,
    rng: np.random.Generator,
    config: ChipConfig,
) -> float:
    """Raw (pre-throttle) utilization for the next tick."""
    if busy:
        return min(100.0, workload * 0.9 + rng.uniform(0.0, 10.0))
    return max(0.0, prev_utilization - config.utilization_decay)


def next_temperature(prev_temp_c: float, utilization: float, config: ChipConfig) -> float:
    """Leaky-integrator temperature update."""
    heated = prev_temp_c + (utilization / 100.0) * config.heat_gain_c - config.passive_cooling_c
    return clamp(heated, config.min_temp_c, config.max_temp_c)


def effective_utilization(utilization: float, throttled: bool, config: ChipConfig) -> float:
    """Utilization a core actually delivers after thermal derating."""
    return utilization * config.throttle_derating if throttled else utilization


def warps_for_utilization(utilization: float) -> int:
    """Resident warp estimate shown for a core."""
    return int(utilization // 4) + 1 if utilization > 0 else 0


def step_core(
    core: ComputeCore,
    workload: float,
    phase: DataFlowPhase,
    rng: np.random.Generator,
    config: ChipConfig,
) -> ComputeCore:
    """
    Advance one core by one global tick.

    Args:
        core: Core state from the previous tick
        workload: Global workload level (0-100)
        phase: Phase decoded for this tick
        rng: Random source for utilization noise
        config: Chip configuration

    Returns:
        New core state. ``balancing_status`` is always cleared.
    """
    busy = workload > config.busy_workload_threshold and phase == DataFlowPhase.EXECUTING
    utilization = next_utilization(core.utilization, busy, workload, rng, config)
    temperature = next_temperature(core.temperature_c, utilization, config)
    throttled = temperature > config.throttle_temp_c
    effective = effective_utilization(utilization, throttled, config)

    if throttled and not core.is_throttled:
        logger.warning("Core %d throttling at %.1f C", core.id, temperature)

    return replace(
        core,
        status=CoreStatus.BUSY if effective > 10 else CoreStatus.IDLE,
        utilization=effective,
        active_warps=warps_for_utilization(effective),
        temperature_c=temperature,
        is_throttled=throttled,
        balancing_status=None,
    )
