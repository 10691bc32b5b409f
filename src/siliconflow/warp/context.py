"""
Warp execution contexts and scheduler log records.
"""

from dataclasses import dataclass, field, replace
from enum import Enum

from ..config import ChipConfig


class WarpStatus(Enum):
    """State of a warp in the scheduler."""

    IDLE = "IDLE"  # Only appears in the status trace before a warp has run
    READY = "READY"  # Waiting for the dispatch slot
    COMPUTING = "COMPUTING"  # Holds the dispatch slot and retires work
    STALLED = "STALLED"  # Waiting on memory (cache miss)
    MIGRATING = "MIGRATING"  # Moving to another core
    COMMITTING = "COMMITTING"  # Finished, waiting to be recycled


# Symbols for the compact trace view
STATUS_SYMBOLS = {
    WarpStatus.IDLE: "·",
    WarpStatus.READY: "R",
    WarpStatus.COMPUTING: "C",
    WarpStatus.STALLED: "S",
    WarpStatus.MIGRATING: "M",
    WarpStatus.COMMITTING: "D",
}


@dataclass
class InstructionMix:
    """Retired instruction counters by class."""

    alu: int = 0
    mem: int = 0
    ctrl: int = 0

    @property
    def total(self) -> int:
        return self.alu + self.mem + self.ctrl


@dataclass
class Warp:
    """Context for a single warp."""

    id: int
    current_core_id: int
    status: WarpStatus = WarpStatus.READY
    progress: float = 0.0
    stall_cycles: int = 0
    instructions_executed: int = 0
    last_core_id: int | None = None
    core_history: tuple[int, ...] = ()
    migration_latency: int = 0
    stall_timer: int = 0
    stall_reason: str | None = None
    start_cycle: int | None = None
    end_cycle: int | None = None
    instruction_mix: InstructionMix = field(default_factory=InstructionMix)
    divergence_mask: tuple[bool, ...] = ()
    history: tuple[WarpStatus, ...] = ()

    @classmethod
    def fresh(cls, warp_id: int, config: ChipConfig) -> "Warp":
        """Power-on context for a warp slot."""
        core = warp_id % config.core_count
        return cls(
            id=warp_id,
            current_core_id=core,
            core_history=(core,),
            divergence_mask=(True,) * config.warp_size,
            history=(WarpStatus.IDLE,) * config.status_history_depth,
        )

    @property
    def active_lanes(self) -> int:
        """Lanes enabled in the divergence mask."""
        return sum(self.divergence_mask)

    def is_ready(self) -> bool:
        return self.status == WarpStatus.READY

    def is_dispatchable(self) -> bool:
        """Whether the warp can make progress if it holds the dispatch slot."""
        return self.status in (WarpStatus.COMPUTING, WarpStatus.READY)

    def copy(self) -> "Warp":
        """Independent copy that shares nothing mutable with the original."""
        return replace(self, instruction_mix=replace(self.instruction_mix))


@dataclass(frozen=True)
class MigrationEvent:
    """A warp moved between cores."""

    id: int
    warp_id: int
    from_core: int
    to_core: int
    latency_cycles: int
    cycle: int


@dataclass(frozen=True)
class ThroughputSample:
    """Completions observed on a sampled scheduler tick."""

    cycle: int
    completed: int
