"""
Telemetry aggregation.

Pure folds of per-core and per-warp state into the summary figures the
rendering layer displays. Nothing here holds state of its own: call the
functions again on a newer snapshot to get newer numbers.
"""

from collections import Counter
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

import numpy as np

from .phase import DataFlowPhase
from .state import ComputeCore, EngineState, Telemetry

if TYPE_CHECKING:
    from .warp.scheduler import SchedulerSnapshot


def system_temperature(cores: tuple[ComputeCore, ...]) -> float:
    """Arithmetic mean of all core temperatures."""
    if not cores:
        return 0.0
    return sum(core.temperature_c for core in cores) / len(cores)


def instructions_per_cycle(workload: float, phase: DataFlowPhase) -> float:
    """IPC proxy: only the EXECUTING phase retires instructions."""
    return workload * 2.5 if phase == DataFlowPhase.EXECUTING else 0.0


def aggregate_telemetry(
    previous: Telemetry,
    cores: tuple[ComputeCore, ...],
    workload: float,
    phase: DataFlowPhase,
) -> Telemetry:
    """Recompute the derived fields, carrying the static ones forward."""
    return replace(
        previous,
        temperature=system_temperature(cores),
        instructions_per_cycle=instructions_per_cycle(workload, phase),
    )


@dataclass(frozen=True)
class SchedulerTelemetry:
    """Summary of the warp scheduler state."""

    cycle: int
    status_counts: dict[str, int]
    total_instructions: int
    instruction_mix: dict[str, int]
    completed_in_window: int
    mean_latency: float
    max_latency: int
    p95_latency: float
    active_lanes: int
    migrations_logged: int
    throttled_cores: int = 0

    @property
    def ipc(self) -> float:
        """Instructions retired per scheduler tick so far."""
        return self.total_instructions / self.cycle if self.cycle else 0.0

    def __str__(self) -> str:
        """Format scheduler summary as string."""
        counts = " ".join(f"{k}={v}" for k, v in sorted(self.status_counts.items()))
        lines = [
            "Scheduler Telemetry:",
            f"  Cycle:        {self.cycle}",
            f"  Warps:        {counts}",
            f"  Instructions: {self.total_instructions} (IPC {self.ipc:.2f})",
            f"  Mix:          ALU {self.instruction_mix['alu']}"
            f" / MEM {self.instruction_mix['mem']} / CTRL {self.instruction_mix['ctrl']}",
            f"  Latency:      mean {self.mean_latency:.1f}, p95 {self.p95_latency:.1f},"
            f" max {self.max_latency}",
            f"  Active lanes: {self.active_lanes}",
            f"  Throttled:    {self.throttled_cores} cores",
        ]
        return "\n".join(lines)


def summarize_scheduler(
    snapshot: "SchedulerSnapshot", engine: EngineState | None = None
) -> SchedulerTelemetry:
    """
    Fold a scheduler snapshot into summary metrics.

    The throttled core count comes from the engine state taken at the same
    instant, and is 0 when none is given.
    """
    warps = snapshot.warps
    status_counts = Counter(w.status.value for w in warps)
    mix = {
        "alu": sum(w.instruction_mix.alu for w in warps),
        "mem": sum(w.instruction_mix.mem for w in warps),
        "ctrl": sum(w.instruction_mix.ctrl for w in warps),
    }

    samples = np.asarray(snapshot.latency_samples, dtype=float)
    if samples.size:
        mean_latency = float(samples.mean())
        max_latency = int(samples.max())
        p95_latency = float(np.percentile(samples, 95))
    else:
        mean_latency, max_latency, p95_latency = 0.0, 0, 0.0

    active = warps[snapshot.active_warp_id]
    return SchedulerTelemetry(
        cycle=snapshot.cycle,
        status_counts=dict(status_counts),
        total_instructions=sum(w.instructions_executed for w in warps),
        instruction_mix=mix,
        completed_in_window=sum(s.completed for s in snapshot.throughput_history),
        mean_latency=mean_latency,
        max_latency=max_latency,
        p95_latency=p95_latency,
        active_lanes=sum(active.divergence_mask),
        migrations_logged=len(snapshot.migration_events),
        throttled_cores=len(engine.throttled_cores) if engine is not None else 0,
    )
