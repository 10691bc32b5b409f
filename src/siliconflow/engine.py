"""
Global Phase & Metric Engine.

One call to ``tick`` advances the whole chip by one global cycle:

    ┌──────────────────────────────────────────────────────────────┐
    │                       GLOBAL TICK                             │
    │                                                               │
    │  cycle mod 16 ──► PHASE ──┬──► dispatcher (kernels, blocks)   │
    │  workload  ───────────────┤                                   │
    │                           ├──► cores (thermal model)          │
    │                           ├──► PCIe link (util, h2d, d2h)     │
    │                           ├──► host (CPU, RAM, SSD)           │
    │                           └──► telemetry (mean temp, IPC)     │
    │                                                               │
    │  cycle ◄── cycle + 1                                          │
    └──────────────────────────────────────────────────────────────┘

The tick is a pure function of the previous state and the random source; it
never mutates its input.
"""

from dataclasses import replace

import numpy as np

from .phase import DataFlowPhase, is_transfer_phase, phase_for_cycle
from .state import EngineState, HostState, PCIeState, SourceMetrics
from .telemetry import aggregate_telemetry
from .thermal import step_core

# Peak link rates in GB/s at 100% workload
H2D_PEAK_GBS = 58.0
D2H_PEAK_GBS = 42.0

# Fraction of the host-to-device stream sourced from each host component
SOURCE_SPLIT = SourceMetrics(cpu=0.8, ram=1.0, ssd=0.3)


def pending_kernels(workload: float, rng: np.random.Generator) -> int:
    """Kernels queued at the dispatcher."""
    if workload <= 0:
        return 0
    return int(np.floor(workload * 0.8 + rng.uniform(0.0, 5.0)))


def active_grid_blocks(workload: float, phase: DataFlowPhase, rng: np.random.Generator) -> int:
    """Grid blocks resident while data is being fetched or executed."""
    if phase not in (DataFlowPhase.FETCHING, DataFlowPhase.EXECUTING):
        return 0
    return int(np.floor(workload / 2.5 + rng.uniform(0.0, 3.0)))


def step_pcie(pcie: PCIeState, workload: float, phase: DataFlowPhase) -> PCIeState:
    """Update link utilization and transfer rates for a phase."""
    if workload <= 0:
        utilization = 0.0
    elif is_transfer_phase(phase):
        utilization = workload * 0.7
    else:
        utilization = workload * 0.2

    h2d = (workload / 100) * H2D_PEAK_GBS if phase == DataFlowPhase.FETCHING else 0.0
    d2h = (workload / 100) * D2H_PEAK_GBS if phase == DataFlowPhase.COMMITTING else 0.0

    if phase == DataFlowPhase.FETCHING:
        sources = SourceMetrics(
            cpu=h2d * SOURCE_SPLIT.cpu,
            ram=h2d * SOURCE_SPLIT.ram,
            ssd=h2d * SOURCE_SPLIT.ssd,
        )
    else:
        sources = SourceMetrics()

    return replace(
        pcie,
        utilization=utilization,
        h2d_rate=h2d,
        d2h_rate=d2h,
        source_throughput=sources,
    )


def step_host(
    host: HostState, workload: float, phase: DataFlowPhase, rng: np.random.Generator
) -> HostState:
    """
    Resample host metrics.

    Every host core is drawn independently. RAM usage follows the workload
    with a little noise and has no upper clamp. Write IOPS is derived from
    the FETCHING-gated read figure, so it only shows up if both phases
    coincide; the observed model never does that.
    """
    base_load = workload * 0.4 if workload > 0 else 5.0
    noise = rng.uniform(0.0, 15.0, size=len(host.cpu_cores))
    cpu_cores = np.clip(base_load + noise, 2.0, 100.0)

    ram_usage = 12.5 + (workload / 100) * 32 + rng.uniform(0.0, 1.0)
    read_iops = workload * 50 if phase == DataFlowPhase.FETCHING else 0.0
    write_iops = read_iops * 0.2 if phase == DataFlowPhase.COMMITTING else 0.0

    return replace(
        host,
        cpu_cores=tuple(float(x) for x in cpu_cores),
        ram_usage=float(ram_usage),
        ssd_read_iops=float(read_iops),
        ssd_write_iops=float(write_iops),
    )


def tick(state: EngineState, rng: np.random.Generator) -> EngineState:
    """
    Advance the global engine by one cycle.

    Args:
        state: Previous engine state
        rng: Random source

    Returns:
        New engine state with ``cycle`` incremented by one.
    """
    config = state.config
    workload = state.workload
    phase = phase_for_cycle(state.cycle, workload, config.phase_period)

    cores = tuple(step_core(core, workload, phase, rng, config) for core in state.cores)

    return replace(
        state,
        cycle=state.cycle + 1,
        phase=phase,
        pending_kernels=pending_kernels(workload, rng),
        active_grid_blocks=active_grid_blocks(workload, phase, rng),
        cores=cores,
        pcie=step_pcie(state.pcie, workload, phase),
        host=step_host(state.host, workload, phase, rng),
        telemetry=aggregate_telemetry(state.telemetry, cores, workload, phase),
    )


def run_ticks(state: EngineState, rng: np.random.Generator, count: int) -> EngineState:
    """Apply ``tick`` ``count`` times."""
    for _ in range(count):
        state = tick(state, rng)
    return state
