"""
Unit tests for the global phase & metric engine.
"""

from dataclasses import replace

import numpy as np
import pytest

from siliconflow.engine import run_ticks, step_host, step_pcie, tick
from siliconflow.phase import DataFlowPhase
from siliconflow.state import HostState, PCIeState, initial_state


@pytest.fixture
def rng():
    return np.random.default_rng(2024)


@pytest.fixture
def state():
    return initial_state()


class TestInitialState:
    """Test the power-on state."""

    def test_defaults(self, state):
        assert state.cycle == 0
        assert not state.is_running
        assert state.simulation_speed_ms == 500
        assert state.workload == 0
        assert state.phase == DataFlowPhase.IDLE
        assert len(state.cores) == 8
        assert all(core.temperature_c == 35.0 for core in state.cores)
        assert len(state.host.cpu_cores) == 8
        assert state.active_kernel.id == "gemm"
        assert state.active_task is None
        assert state.load_balancing_enabled
        assert state.migration_enabled


class TestTick:
    """Test one global tick."""

    def test_cycle_advances_without_workload(self, state, rng):
        """The cycle counter advances even at zero workload."""
        nxt = tick(state, rng)
        assert nxt.cycle == 1
        assert state.cycle == 0

    def test_zero_workload_stays_idle(self, state, rng):
        """At workload 0 the chip never leaves IDLE."""
        for _ in range(50):
            state = tick(state, rng)
            assert state.phase == DataFlowPhase.IDLE
            assert state.pending_kernels == 0
            assert state.active_grid_blocks == 0
            assert state.pcie.utilization == 0
            assert state.pcie.h2d_rate == 0
            assert state.pcie.d2h_rate == 0
            assert state.telemetry.instructions_per_cycle == 0
        assert state.cycle == 50

    def test_phase_sequence(self, state, rng):
        """Phase follows cycle mod 16 whenever workload > 0."""
        state = replace(state, workload=40)
        seen = []
        for _ in range(32):
            state = tick(state, rng)
            seen.append(state.phase)
        expected = (
            [DataFlowPhase.ORCHESTRATING] * 4
            + [DataFlowPhase.FETCHING] * 4
            + [DataFlowPhase.EXECUTING] * 4
            + [DataFlowPhase.COMMITTING] * 4
        ) * 2
        assert seen == expected

    def test_fetching_metrics(self, state, rng):
        """Workload 50 at phase cycle 5 is FETCHING with h2d = 29 GB/s."""
        state = replace(state, workload=50, cycle=5)
        nxt = tick(state, rng)

        assert nxt.phase == DataFlowPhase.FETCHING
        assert nxt.pcie.h2d_rate == pytest.approx(29.0)
        assert nxt.pcie.d2h_rate == 0
        assert nxt.pcie.utilization == pytest.approx(35.0)
        assert nxt.pcie.source_throughput.cpu == pytest.approx(29.0 * 0.8)
        assert nxt.pcie.source_throughput.ram == pytest.approx(29.0)
        assert nxt.pcie.source_throughput.ssd == pytest.approx(29.0 * 0.3)
        assert nxt.host.ssd_read_iops == 2500
        assert nxt.host.ssd_write_iops == 0
        assert 20 <= nxt.active_grid_blocks <= 22

    def test_committing_metrics(self, state, rng):
        state = replace(state, workload=50, cycle=13)
        nxt = tick(state, rng)

        assert nxt.phase == DataFlowPhase.COMMITTING
        assert nxt.pcie.h2d_rate == 0
        assert nxt.pcie.d2h_rate == pytest.approx(21.0)
        assert nxt.pcie.utilization == pytest.approx(35.0)
        assert nxt.pcie.source_throughput.cpu == 0
        assert nxt.active_grid_blocks == 0

    def test_executing_metrics(self, state, rng):
        state = replace(state, workload=50, cycle=9)
        nxt = tick(state, rng)

        assert nxt.phase == DataFlowPhase.EXECUTING
        assert nxt.pcie.utilization == pytest.approx(10.0)
        assert nxt.telemetry.instructions_per_cycle == pytest.approx(125.0)
        assert all(core.utilization > 0 for core in nxt.cores)

    def test_pending_kernels(self, state, rng):
        state = replace(state, workload=50)
        for _ in range(20):
            state = tick(state, rng)
            assert 40 <= state.pending_kernels <= 44

    def test_telemetry_temperature_is_mean(self, state, rng):
        state = run_ticks(replace(state, workload=90), rng, 40)
        temps = [core.temperature_c for core in state.cores]
        assert state.telemetry.temperature == pytest.approx(sum(temps) / len(temps))

    def test_heavy_load_heats_chip(self, state, rng):
        """Sustained heavy load warms every core above its start point."""
        state = run_ticks(replace(state, workload=100), rng, 160)
        assert all(core.temperature_c > 35.0 for core in state.cores)

    def test_input_not_mutated(self, state, rng):
        before = replace(state)
        tick(replace(state, workload=70), rng)
        assert state == before


class TestHostAndLink:
    """Test host and PCIe sub-models."""

    def test_cpu_loads_idle(self, rng):
        host = step_host(HostState(), 0, DataFlowPhase.IDLE, rng)
        assert len(host.cpu_cores) == 8
        assert all(5.0 <= load <= 20.0 for load in host.cpu_cores)

    def test_cpu_loads_bounded(self, rng):
        for workload in (0, 10, 50, 100):
            host = step_host(HostState(), workload, DataFlowPhase.EXECUTING, rng)
            assert all(2.0 <= load <= 100.0 for load in host.cpu_cores)

    def test_ram_usage_tracks_workload(self, rng):
        host = step_host(HostState(), 50, DataFlowPhase.ORCHESTRATING, rng)
        assert 28.5 <= host.ram_usage <= 29.5

    def test_static_link_fields_carried(self):
        pcie = step_pcie(PCIeState(), 80, DataFlowPhase.FETCHING)
        assert pcie.lanes == 16
        assert pcie.bandwidth_gbs == 64.0
        assert pcie.latency_ns.ssd == 4500.0

    def test_low_utilization_outside_transfers(self):
        pcie = step_pcie(PCIeState(), 80, DataFlowPhase.ORCHESTRATING)
        assert pcie.utilization == pytest.approx(16.0)
        assert pcie.h2d_rate == 0
        assert pcie.d2h_rate == 0
