"""
SiliconFlow Configuration Module

This module defines the configuration dataclass for the accelerator activity
simulator. All structural sizes, timing constants and thermal coefficients are
specified here and propagate through the engine, the warp scheduler and the
drivers.

Timing values ending in ``_ms`` are wall-clock (or virtual wall-clock) periods
in milliseconds. Values counted in *ticks* refer to the clock of the component
that consumes them.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ChipConfig:
    """
    Configuration for the simulated accelerator card.

    Example:
        >>> config = ChipConfig(core_count=4)
        >>> config.num_warps  # 12
    """

    # =========================================================================
    # Chip Structure
    # =========================================================================

    core_count: int = 8
    """Number of compute cores (SMs) on the card."""

    host_cpu_cores: int = 8
    """Number of host CPU cores sampled by the host model."""

    num_warps: int = 12
    """Size of the fixed warp population."""

    warp_size: int = 32
    """Number of lanes per warp (length of the divergence mask)."""

    # =========================================================================
    # Phase Sequencer
    # =========================================================================

    phase_period: int = 16
    """Cycles in one ORCHESTRATING/FETCHING/EXECUTING/COMMITTING round."""

    # =========================================================================
    # Thermal Model
    # =========================================================================

    min_temp_c: float = 30.0
    """Lower clamp of core temperature."""

    max_temp_c: float = 110.0
    """Upper clamp of core temperature."""

    throttle_temp_c: float = 95.0
    """Cores strictly above this temperature are throttled."""

    initial_temp_c: float = 35.0
    """Core temperature at initialization and after reset."""

    heat_gain_c: float = 1.5
    """Heating per tick at 100% utilization."""

    passive_cooling_c: float = 0.5
    """Constant cooling per tick."""

    throttle_derating: float = 0.4
    """Fraction of would-be utilization a throttled core delivers."""

    utilization_decay: float = 15.0
    """Utilization drop per tick for a core that is not busy."""

    busy_workload_threshold: float = 5.0
    """Cores only heat up when workload exceeds this level."""

    # =========================================================================
    # Warp Scheduler
    # =========================================================================

    migration_probability: float = 0.008
    """Per-tick probability that a READY warp attempts a migration."""

    migration_cost: int = 12
    """Scheduler ticks a migrating warp spends in MIGRATING."""

    memory_latency: int = 15
    """Scheduler ticks a stalled warp waits on a cache miss."""

    stall_progress_window: tuple[float, float] = (0.0, 90.0)
    """Stalls only happen with progress strictly inside this window."""

    core_history_depth: int = 6
    """Number of core ids remembered per warp."""

    status_history_depth: int = 24
    """Length of the per-warp status trace."""

    migration_event_depth: int = 5
    """Number of migration events kept (newest first)."""

    latency_sample_depth: int = 100
    """Number of completion latency samples kept."""

    throughput_depth: int = 30
    """Number of throughput samples kept."""

    throughput_sample_interval: int = 10
    """A throughput sample is taken every N scheduler ticks."""

    # =========================================================================
    # Clocks
    # =========================================================================

    simulation_speed_ms: int = 500
    """Default period of the global metric clock."""

    scheduler_tick_ms: int = 100
    """Period of the warp scheduler clock."""

    recycle_delay_ms: int = 400
    """Delay before a completed warp is recycled to READY."""

    advisor_interval: int = 100
    """The advisor hook fires every N global cycles."""

    def __post_init__(self):
        if self.core_count <= 0:
            raise ValueError("core_count must be > 0")
        if self.num_warps <= 0:
            raise ValueError("num_warps must be > 0")
        if self.warp_size <= 0:
            raise ValueError("warp_size must be > 0")
        if self.phase_period % 4 != 0:
            raise ValueError("phase_period must be a multiple of 4")
        if self.min_temp_c > self.max_temp_c:
            raise ValueError("min_temp_c must not exceed max_temp_c")

    # =========================================================================
    # Derived Properties
    # =========================================================================

    @property
    def phase_length(self) -> int:
        """Cycles spent in each non-idle phase."""
        return self.phase_period // 4

    @property
    def warp_id_bits(self) -> int:
        """Bits needed to encode a warp id."""
        return max(1, (self.num_warps - 1).bit_length())


# Pre-defined configurations
DEFAULT_CHIP_CONFIG = ChipConfig()

# Smaller config for quick experiments
SMALL_CHIP_CONFIG = ChipConfig(
    core_count=4,
    host_cpu_cores=4,
    num_warps=6,
)
