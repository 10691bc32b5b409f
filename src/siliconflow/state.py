"""
Engine state types.

All state here is immutable: every global tick and every command produces a
new ``EngineState`` value via ``dataclasses.replace``. Consumers (renderers,
the warp scheduler) can hold on to a snapshot without it changing underneath
them.
"""

from dataclasses import dataclass, field
from enum import Enum

from .catalog import DEFAULT_KERNEL, EnterpriseTask, KernelProfile
from .config import DEFAULT_CHIP_CONFIG, ChipConfig
from .phase import DataFlowPhase


class CoreStatus(Enum):
    """Compute core activity."""

    IDLE = "IDLE"
    BUSY = "BUSY"


class LinkStatus(Enum):
    """PCIe link training state."""

    LINK_UP = "LINK_UP"
    TRAINING = "TRAINING"
    DOWN = "DOWN"


class BalancingRole(Enum):
    """Load-balancing role of a core (modeled, never assigned)."""

    DONOR = "DONOR"
    RECEIVER = "RECEIVER"


@dataclass(frozen=True)
class ComputeCore:
    """One compute core (SM) slot."""

    id: int
    status: CoreStatus = CoreStatus.IDLE
    utilization: float = 0.0
    temperature_c: float = 35.0
    is_throttled: bool = False
    active_warps: int = 0
    balancing_status: BalancingRole | None = None


@dataclass(frozen=True)
class SourceMetrics:
    """Per-source figure for the three host-side data sources."""

    cpu: float = 0.0
    ram: float = 0.0
    ssd: float = 0.0


@dataclass(frozen=True)
class PCIeState:
    """Host link metrics."""

    lanes: int = 16
    bandwidth_gbs: float = 64.0
    utilization: float = 0.0
    status: LinkStatus = LinkStatus.LINK_UP
    h2d_rate: float = 0.0  # GB/s host-to-device
    d2h_rate: float = 0.0  # GB/s device-to-host
    latency_ns: SourceMetrics = SourceMetrics(cpu=120.0, ram=145.0, ssd=4500.0)
    source_throughput: SourceMetrics = SourceMetrics()


@dataclass(frozen=True)
class HostState:
    """Host system metrics."""

    cpu_cores: tuple[float, ...] = (0.0,) * 8
    ram_usage: float = 12.5  # GB, drifts with workload, never clamped
    ram_latency: float = 45.0
    ssd_read_iops: float = 0.0
    ssd_write_iops: float = 0.0
    ssd_temp: float = 38.0


@dataclass(frozen=True)
class Telemetry:
    """System-level summary derived after every global tick."""

    temperature: float = 42.0
    clock_speed: float = 2.5
    vram_usage: float = 12.4
    instructions_per_cycle: float = 0.0
    balancing_events: int = 0


@dataclass(frozen=True)
class EngineState:
    """Complete global simulation state."""

    config: ChipConfig = DEFAULT_CHIP_CONFIG
    cycle: int = 0
    is_running: bool = False
    simulation_speed_ms: int = 500
    workload: float = 0.0
    phase: DataFlowPhase = DataFlowPhase.IDLE
    pending_kernels: int = 0
    active_grid_blocks: int = 0
    cores: tuple[ComputeCore, ...] = field(default_factory=tuple)
    pcie: PCIeState = PCIeState()
    host: HostState = HostState()
    telemetry: Telemetry = Telemetry()
    active_kernel: KernelProfile = DEFAULT_KERNEL
    active_task: EnterpriseTask | None = None
    load_balancing_enabled: bool = True
    migration_enabled: bool = True
    advisor_message: str | None = None

    @property
    def throttled_cores(self) -> list[ComputeCore]:
        """Cores currently derated by thermal throttling."""
        return [core for core in self.cores if core.is_throttled]


def initial_state(config: ChipConfig = DEFAULT_CHIP_CONFIG) -> EngineState:
    """Build the power-on state for a chip configuration."""
    cores = tuple(
        ComputeCore(id=i, temperature_c=config.initial_temp_c) for i in range(config.core_count)
    )
    return EngineState(
        config=config,
        simulation_speed_ms=config.simulation_speed_ms,
        cores=cores,
        host=HostState(cpu_cores=(0.0,) * config.host_cpu_cores),
    )
