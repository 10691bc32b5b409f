"""
Unit tests for the per-core thermal/utilization model.
"""

import numpy as np
import pytest

from siliconflow.config import ChipConfig
from siliconflow.phase import DataFlowPhase
from siliconflow.state import BalancingRole, ComputeCore, CoreStatus
from siliconflow.thermal import (
    clamp,
    effective_utilization,
    next_temperature,
    step_core,
    warps_for_utilization,
)


@pytest.fixture
def config():
    return ChipConfig()


class TestHelpers:
    """Test the building blocks of the model."""

    def test_clamp(self):
        assert clamp(5, 0, 10) == 5
        assert clamp(-1, 0, 10) == 0
        assert clamp(11, 0, 10) == 10

    def test_temperature_rises_with_load(self, config):
        assert next_temperature(50.0, 100.0, config) == pytest.approx(51.0)

    def test_temperature_passive_cooling(self, config):
        assert next_temperature(50.0, 0.0, config) == pytest.approx(49.5)

    def test_temperature_clamped(self, config):
        assert next_temperature(30.0, 0.0, config) == 30.0
        assert next_temperature(110.0, 100.0, config) == 110.0

    def test_effective_utilization(self, config):
        assert effective_utilization(80.0, True, config) == pytest.approx(32.0)
        assert effective_utilization(80.0, False, config) == 80.0

    def test_warps_for_utilization(self):
        assert warps_for_utilization(0) == 0
        assert warps_for_utilization(3.9) == 1
        assert warps_for_utilization(40) == 11
        assert warps_for_utilization(100) == 26


class TestStepCore:
    """Test one tick of a core."""

    def test_idle_core_cools_down(self, config):
        """A non-busy core sheds 15 points of utilization per tick."""
        core = ComputeCore(id=0, utilization=50.0, temperature_c=35.0)
        rng = np.random.default_rng(0)

        nxt = step_core(core, workload=80, phase=DataFlowPhase.FETCHING, rng=rng, config=config)

        assert nxt.utilization == pytest.approx(35.0)
        assert nxt.temperature_c == pytest.approx(35.0 + 0.35 * 1.5 - 0.5)
        assert nxt.status == CoreStatus.BUSY
        assert nxt.active_warps == 9

    def test_utilization_floor(self, config):
        core = ComputeCore(id=0, utilization=5.0)
        nxt = step_core(core, 0, DataFlowPhase.IDLE, np.random.default_rng(0), config)
        assert nxt.utilization == 0.0
        assert nxt.status == CoreStatus.IDLE
        assert nxt.active_warps == 0

    def test_busy_core(self, config):
        """Busy cores run at 0.9 x workload plus up to 10 points of noise."""
        core = ComputeCore(id=0, temperature_c=40.0)
        nxt = step_core(core, 60, DataFlowPhase.EXECUTING, np.random.default_rng(1), config)
        assert 54.0 <= nxt.utilization <= 64.0
        assert nxt.status == CoreStatus.BUSY
        assert not nxt.is_throttled

    def test_low_workload_is_not_busy(self, config):
        """Workload of 5 or less never makes a core busy."""
        core = ComputeCore(id=0)
        nxt = step_core(core, 5, DataFlowPhase.EXECUTING, np.random.default_rng(1), config)
        assert nxt.utilization == 0.0

    def test_throttled_core_derates(self, config):
        """A core above 95 C reports 40% of its would-be utilization."""
        core = ComputeCore(id=3, temperature_c=96.0)
        workload = 90

        # Reproduce the noise draw with an identically seeded generator
        raw = min(100.0, workload * 0.9 + np.random.default_rng(42).uniform(0.0, 10.0))
        nxt = step_core(
            core, workload, DataFlowPhase.EXECUTING, np.random.default_rng(42), config
        )

        assert nxt.is_throttled
        assert nxt.temperature_c > 95
        assert nxt.utilization == pytest.approx(raw * 0.4)
        assert nxt.active_warps == int(raw * 0.4 // 4) + 1

    def test_throttle_recovers(self, config):
        """Throttling ends once the core cools to 95 C or below."""
        core = ComputeCore(id=0, temperature_c=95.4, is_throttled=True)
        nxt = step_core(core, 0, DataFlowPhase.IDLE, np.random.default_rng(0), config)
        assert nxt.temperature_c == pytest.approx(94.9)
        assert not nxt.is_throttled

    def test_balancing_status_cleared(self, config):
        core = ComputeCore(id=0, balancing_status=BalancingRole.DONOR)
        nxt = step_core(core, 50, DataFlowPhase.EXECUTING, np.random.default_rng(0), config)
        assert nxt.balancing_status is None

    def test_bounds_hold_over_many_ticks(self, config):
        """Temperature and utilization stay in range, throttle iff > 95 C."""
        rng = np.random.default_rng(1234)
        cores = [ComputeCore(id=i, temperature_c=35.0) for i in range(8)]
        phases = list(DataFlowPhase)

        for step in range(2000):
            workload = float(rng.uniform(0, 100))
            phase = DataFlowPhase.EXECUTING if step % 3 else phases[step % len(phases)]
            cores = [step_core(c, workload, phase, rng, config) for c in cores]
            for core in cores:
                assert 30.0 <= core.temperature_c <= 110.0
                assert 0.0 <= core.utilization <= 100.0
                assert core.is_throttled == (core.temperature_c > 95.0)
