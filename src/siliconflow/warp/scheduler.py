"""
Warp Scheduler & Migration Engine.

A fixed population of warps shares a single dispatch slot. Every scheduler
tick the slot holder either stalls on a cache miss or retires one
instruction's worth of progress; all other warps only run their stall and
migration sub-state-machines.

Architecture:
    ┌─────────────────────────────────────────────────────────────────┐
    │                      WARP SCHEDULER                              │
    │                                                                  │
    │  ┌───────────────────────────────────────────────────────────┐  │
    │  │                   WARP TABLE (12 warps)                    │  │
    │  │  ┌─────┬─────┬─────┬─────┬─────┬─────┬─────┬─────┬──┐     │  │
    │  │  │ W0  │ W1  │ W2  │ W3  │ W4  │ W5  │ W6  │ W7  │..│     │  │
    │  │  │COMP │STALL│READY│MIGR │READY│DONE │READY│READY│  │     │  │
    │  │  └──┬──┴──┬──┴──┬──┴──┬──┴──┬──┴──┬──┴──┬──┴──┬──┴──┘     │  │
    │  └─────┼─────┼─────┼─────┼─────┼─────┼─────┼─────┼───────────┘  │
    │        │     │     │     │     │     │     │     │              │
    │        └─────┴─────┴─────┴──┬──┴─────┴─────┴─────┘              │
    │                             │ READY bitmap                       │
    │                  ┌──────────┴──────────┐                         │
    │                  │  DISPATCH ARBITER   │  lowest READY id wins   │
    │                  └──────────┬──────────┘                         │
    │                             ▼                                    │
    │                     active dispatch slot                         │
    └─────────────────────────────────────────────────────────────────┘

Warp lifecycle:
    READY ──► COMPUTING ──► COMMITTING ──(recycle delay)──► READY
      ▲  │        │
      │  │        └──► STALLED ──(15 ticks)──► READY
      │  └──► MIGRATING ──(12 ticks)──► READY
      └──────────────────────────────────────────┘

Completed warps are recycled on a separate one-shot clock (see
``siliconflow.clock``). Every ``reset`` bumps an epoch; recycles queued in an
older epoch are ignored when they fire.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
from amaranth import Module, unsigned
from amaranth.lib.wiring import Component, In, Out

from ..catalog import DEFAULT_KERNEL, KernelProfile
from ..clock import Deferrer, VirtualTimer
from ..config import DEFAULT_CHIP_CONFIG, ChipConfig
from ..state import EngineState
from .context import STATUS_SYMBOLS, MigrationEvent, ThroughputSample, Warp, WarpStatus

logger = logging.getLogger(__name__)

STALL_REASON_CACHE_MISS = "Cache Miss"


@dataclass(frozen=True)
class SchedulerInputs:
    """Read-only configuration the scheduler sees for one tick."""

    kernel: KernelProfile = DEFAULT_KERNEL
    migration_enabled: bool = True

    @classmethod
    def from_engine(cls, state: EngineState) -> "SchedulerInputs":
        return cls(kernel=state.active_kernel, migration_enabled=state.migration_enabled)


@dataclass(frozen=True)
class SchedulerSnapshot:
    """Immutable copy of the scheduler state."""

    cycle: int
    active_warp_id: int
    warps: tuple[Warp, ...]
    migration_events: tuple[MigrationEvent, ...]
    latency_samples: tuple[int, ...]
    throughput_history: tuple[ThroughputSample, ...]


def first_ready(warps: list[Warp]) -> int | None:
    """Linear scan by id for the first READY warp."""
    for warp in warps:
        if warp.is_ready():
            return warp.id
    return None


class DispatchArbiter(Component):
    """
    RTL dispatch arbiter.

    Fixed-priority encoder over the READY bitmap: the lowest-numbered READY
    warp is granted the dispatch slot.

    Ports:
        ready: Bitmap of READY warps
        valid: At least one warp is READY
        grant: Id of the granted warp
    """

    def __init__(self, config: ChipConfig):
        """
        Initialize dispatch arbiter.

        Args:
            config: Chip configuration
        """
        self.config = config

        super().__init__(
            {
                "ready": In(unsigned(config.num_warps)),
                "valid": Out(1),
                "grant": Out(unsigned(config.warp_id_bits)),
            }
        )

    def elaborate(self, _platform):
        m = Module()

        # Later assignments win, so walk from the highest id down to 0
        for i in reversed(range(self.config.num_warps)):
            with m.If(self.ready[i]):
                m.d.comb += [
                    self.valid.eq(1),
                    self.grant.eq(i),
                ]

        return m


# =============================================================================
# Simulation Model
# =============================================================================


@dataclass
class WarpSchedulerSim:
    """
    Behavioral simulation model of the warp scheduler.

    Owns the warp population and its logs. Nothing outside the scheduler
    mutates them; observers read ``snapshot()``.
    """

    config: ChipConfig = DEFAULT_CHIP_CONFIG
    rng: np.random.Generator = field(default_factory=np.random.default_rng)
    deferrer: Deferrer = field(default_factory=VirtualTimer)

    # Warp contexts
    warps: list[Warp] = field(default_factory=list)

    # Dispatch slot
    active_warp_id: int = 0

    cycle: int = 0
    epoch: int = 0

    # Logs
    migration_events: list[MigrationEvent] = field(default_factory=list)
    latency_samples: list[int] = field(default_factory=list)
    throughput_history: list[ThroughputSample] = field(default_factory=list)

    # Statistics
    total_completions: int = 0
    total_stalls: int = 0
    total_migrations: int = 0

    _next_event_id: int = field(default=0, init=False)
    _pending_recycles: dict = field(default_factory=dict, init=False)

    def __post_init__(self):
        """Initialize warp contexts."""
        self.warps = [Warp.fresh(i, self.config) for i in range(self.config.num_warps)]

    # -------------------------------------------------------------------------
    # Per-warp sub-state-machines
    # -------------------------------------------------------------------------

    def _advance_migration(self, warp: Warp) -> None:
        warp.migration_latency -= 1
        if warp.migration_latency <= 0:
            warp.status = WarpStatus.READY
            warp.migration_latency = 0

    def _advance_stall(self, warp: Warp) -> None:
        warp.stall_cycles += 1
        if warp.stall_timer > 0:
            warp.stall_timer -= 1
            if warp.stall_timer == 0:
                warp.status = WarpStatus.READY
                warp.stall_reason = None

    def _maybe_migrate(self, warp: Warp) -> None:
        if self.rng.random() >= self.config.migration_probability:
            return
        new_core = int(self.rng.integers(0, self.config.core_count))
        if new_core == warp.current_core_id:
            return

        depth = self.config.core_history_depth
        warp.last_core_id = warp.current_core_id
        warp.current_core_id = new_core
        warp.core_history = (warp.core_history + (new_core,))[-depth:]
        warp.status = WarpStatus.MIGRATING
        warp.migration_latency = self.config.migration_cost

        event = MigrationEvent(
            id=self._next_event_id,
            warp_id=warp.id,
            from_core=warp.last_core_id,
            to_core=new_core,
            latency_cycles=self.config.migration_cost,
            cycle=self.cycle,
        )
        self._next_event_id += 1
        self.migration_events = [event, *self.migration_events][: self.config.migration_event_depth]
        self.total_migrations += 1
        logger.debug("Warp %d migrating SM%d -> SM%d", warp.id, event.from_core, new_core)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _move_slot(self) -> None:
        """Hand the dispatch slot to the first READY warp, if any."""
        next_id = first_ready(self.warps)
        if next_id is not None:
            self.active_warp_id = next_id

    def _execute(self, warp: Warp, kernel: KernelProfile) -> int:
        """Retire one instruction on the dispatched warp. Returns completions."""
        warp.status = WarpStatus.COMPUTING
        warp.progress += kernel.compute_step
        warp.instructions_executed += 1

        roll = self.rng.random() * 100
        if roll < 70:
            warp.instruction_mix.alu += 1
        elif roll < 90:
            warp.instruction_mix.mem += 1
        else:
            warp.instruction_mix.ctrl += 1

        lanes = self.rng.random(self.config.warp_size) > kernel.mask_chance
        warp.divergence_mask = tuple(bool(lane) for lane in lanes)

        if warp.progress < 100:
            return 0

        warp.status = WarpStatus.COMMITTING
        warp.progress = 100.0
        warp.end_cycle = self.cycle
        latency = warp.end_cycle - (warp.start_cycle or 0)
        self.latency_samples = [*self.latency_samples, latency][-self.config.latency_sample_depth :]
        self.total_completions += 1
        logger.debug("Warp %d committed after %d cycles", warp.id, latency)

        self._move_slot()
        self._schedule_recycle(warp.id)
        return 1

    def _stall(self, warp: Warp) -> None:
        warp.status = WarpStatus.STALLED
        warp.stall_timer = self.config.memory_latency
        warp.stall_reason = STALL_REASON_CACHE_MISS
        self.total_stalls += 1
        logger.debug("Warp %d stalled at %.1f%%", warp.id, warp.progress)
        self._move_slot()

    # -------------------------------------------------------------------------
    # Deferred recycle
    # -------------------------------------------------------------------------

    def _schedule_recycle(self, warp_id: int) -> None:
        handle = self.deferrer.call_later(
            self.config.recycle_delay_ms / 1000, self.recycle, warp_id, self.epoch
        )
        self._pending_recycles[warp_id] = handle

    def set_deferrer(self, deferrer: Deferrer) -> None:
        """
        Move recycle scheduling onto another clock.

        Recycles still queued on the old clock are cancelled there and
        queued again on the new one with the full recycle delay.
        """
        pending = list(self._pending_recycles)
        for handle in self._pending_recycles.values():
            handle.cancel()
        self._pending_recycles = {}
        self.deferrer = deferrer
        for warp_id in pending:
            self._schedule_recycle(warp_id)

    def recycle(self, warp_id: int, epoch: int) -> bool:
        """
        Return a completed warp to READY.

        Args:
            warp_id: Warp to recycle
            epoch: Epoch the recycle was scheduled in

        Returns:
            True if the warp was recycled, False if the request was stale.
        """
        if epoch != self.epoch:
            logger.debug("Dropping stale recycle of warp %d (epoch %d)", warp_id, epoch)
            return False

        self._pending_recycles.pop(warp_id, None)
        warp = self.warps[warp_id]
        warp.status = WarpStatus.READY
        warp.progress = 0.0
        warp.start_cycle = None
        warp.divergence_mask = (True,) * self.config.warp_size
        return True

    # -------------------------------------------------------------------------
    # Public interface
    # -------------------------------------------------------------------------

    def tick(self, inputs: SchedulerInputs | None = None) -> int:
        """
        Advance the scheduler by one tick.

        Args:
            inputs: Kernel profile and migration flag for this tick

        Returns:
            Number of warps that completed this tick.
        """
        if inputs is None:
            inputs = SchedulerInputs()
        kernel = inputs.kernel

        for warp in self.warps:
            if warp.is_ready() and warp.progress == 0 and warp.start_cycle is None:
                warp.start_cycle = self.cycle

            if warp.status == WarpStatus.MIGRATING:
                self._advance_migration(warp)

            if warp.status == WarpStatus.STALLED:
                self._advance_stall(warp)

            if inputs.migration_enabled and warp.is_ready():
                self._maybe_migrate(warp)

            warp.history = warp.history[1:] + (warp.status,)

        completed = 0
        current = self.warps[self.active_warp_id]
        if current.is_dispatchable():
            lo, hi = self.config.stall_progress_window
            if self.rng.random() < kernel.stall_probability and lo < current.progress < hi:
                self._stall(current)
            else:
                completed = self._execute(current, kernel)
        else:
            self._move_slot()

        if self.cycle % self.config.throughput_sample_interval == 0:
            sample = ThroughputSample(cycle=self.cycle, completed=completed)
            self.throughput_history = [*self.throughput_history, sample][
                -self.config.throughput_depth :
            ]

        self.cycle += 1
        return completed

    def reset(self) -> None:
        """Reinitialize every warp and clear all logs and statistics."""
        for handle in self._pending_recycles.values():
            handle.cancel()
        self._pending_recycles = {}
        self.epoch += 1

        self.warps = [Warp.fresh(i, self.config) for i in range(self.config.num_warps)]
        self.active_warp_id = 0
        self.cycle = 0
        self.migration_events = []
        self.latency_samples = []
        self.throughput_history = []
        self.total_completions = 0
        self.total_stalls = 0
        self.total_migrations = 0
        self._next_event_id = 0

    def snapshot(self) -> SchedulerSnapshot:
        """Immutable copy of the current scheduler state."""
        return SchedulerSnapshot(
            cycle=self.cycle,
            active_warp_id=self.active_warp_id,
            warps=tuple(warp.copy() for warp in self.warps),
            migration_events=tuple(self.migration_events),
            latency_samples=tuple(self.latency_samples),
            throughput_history=tuple(self.throughput_history),
        )

    def ready_bitmap(self) -> int:
        """READY warps as a bitmap (bit i = warp i), the arbiter's input."""
        return sum(1 << warp.id for warp in self.warps if warp.is_ready())

    def get_status_counts(self) -> dict[WarpStatus, int]:
        counts = {status: 0 for status in WarpStatus}
        for warp in self.warps:
            counts[warp.status] += 1
        return counts

    def get_visualization(self) -> str:
        """Get ASCII visualization of warp states."""
        return "".join(STATUS_SYMBOLS[warp.status] for warp in self.warps)
