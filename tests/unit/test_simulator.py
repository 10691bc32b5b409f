"""
Unit tests for the headless two-clock simulator.
"""

import dataclasses

import numpy as np
import pytest

from siliconflow import commands
from siliconflow.config import ChipConfig
from siliconflow.phase import DataFlowPhase
from siliconflow.simulator import ChipSimulator
from siliconflow.state import initial_state
from siliconflow.warp import WarpStatus


@pytest.fixture
def sim():
    return ChipSimulator(rng=np.random.default_rng(7))


class TestClocks:
    """Test the two independent clocks."""

    def test_stopped_does_not_tick(self, sim):
        sim.advance(5000)
        assert sim.state.cycle == 0
        assert sim.scheduler.cycle == 0
        assert sim.now_ms == 5000

    def test_clock_rates(self, sim):
        sim.dispatch(commands.start())
        sim.advance(5000)
        assert sim.state.cycle == 10
        assert sim.scheduler.cycle == 50

    def test_advance_in_pieces(self, sim):
        """Splitting a window does not change how many edges fire."""
        sim.dispatch(commands.start())
        for _ in range(50):
            sim.advance(100)
        assert sim.state.cycle == 10
        assert sim.scheduler.cycle == 50

    def test_set_speed(self, sim):
        sim.dispatch(commands.start())
        sim.dispatch(commands.set_speed(250))
        sim.advance(1000)
        assert sim.state.cycle == 4
        assert sim.scheduler.cycle == 10

    def test_set_speed_while_stopped(self, sim):
        sim.dispatch(commands.set_speed(100))
        sim.advance(1000)
        assert sim.state.cycle == 0

        sim.dispatch(commands.start())
        sim.advance(1000)
        assert sim.state.cycle == 10

    def test_stop_and_restart(self, sim):
        sim.dispatch(commands.start())
        sim.advance(1000)
        sim.dispatch(commands.stop())
        sim.advance(3000)
        assert sim.state.cycle == 2
        assert sim.scheduler.cycle == 10
        assert sim.state.phase == DataFlowPhase.IDLE

        sim.dispatch(commands.start())
        sim.advance(1000)
        assert sim.state.cycle == 4
        assert sim.scheduler.cycle == 20

    def test_repeated_start_is_harmless(self, sim):
        sim.dispatch(commands.start())
        sim.advance(300)
        sim.dispatch(commands.start())
        sim.advance(700)
        assert sim.state.cycle == 2
        assert sim.scheduler.cycle == 10

    def test_manual_steps(self, sim):
        sim.step_global()
        sim.step_scheduler()
        assert sim.state.cycle == 1
        assert sim.scheduler.cycle == 1


class TestCommands:
    """Test command effects across both clock domains."""

    def test_reset(self, sim):
        sim.dispatch(commands.set_task("sci-nwp"))
        sim.dispatch(commands.start())
        sim.advance(5000)

        sim.dispatch(commands.reset())

        assert sim.state == initial_state(sim.config)
        assert sim.scheduler.cycle == 0
        assert all(w.status == WarpStatus.READY for w in sim.scheduler.warps)
        sim.advance(5000)
        assert sim.state.cycle == 0
        assert sim.scheduler.cycle == 0

    def test_recycles_dropped_on_reset(self, sim):
        """Warps committed before a reset are not recycled into the new run."""
        sim.dispatch(commands.update_kernel_params(compute_intensity=15, stall_probability=0.0))
        sim.dispatch(commands.toggle_migration())
        sim.dispatch(commands.start())
        sim.advance(1400)
        assert sim.scheduler.warps[0].status == WarpStatus.COMMITTING

        sim.dispatch(commands.reset())
        assert sim.timer.pending() == 0

    def test_migration_toggle_reaches_scheduler(self):
        config = ChipConfig(migration_probability=1.0)
        sim = ChipSimulator(config, rng=np.random.default_rng(3))
        sim.dispatch(commands.toggle_migration())
        sim.dispatch(commands.start())
        sim.advance(3000)
        assert sim.scheduler.migration_events == []

        sim.dispatch(commands.toggle_migration())
        sim.advance(1000)
        assert sim.scheduler.migration_events

    def test_kernel_reaches_scheduler(self, sim):
        """With stalls off, every scheduler tick retires an instruction."""
        sim.dispatch(commands.update_kernel_params(stall_probability=0.0))
        sim.dispatch(commands.toggle_migration())
        sim.dispatch(commands.start())
        sim.advance(10_000)

        warps = sim.scheduler.warps
        assert sum(w.instructions_executed for w in warps) == 100
        assert all(w.stall_cycles == 0 for w in warps)
        assert sim.scheduler.total_completions >= 3

    def test_full_load(self, sim):
        sim.dispatch(commands.set_workload(100))
        sim.dispatch(commands.start())
        sim.advance(60_000)

        state = sim.state
        assert state.cycle == 120
        assert all(30.0 <= c.temperature_c <= 110.0 for c in state.cores)
        assert all(c.is_throttled == (c.temperature_c > 95.0) for c in state.cores)


class TestSnapshot:
    """Test the observer view."""

    def test_snapshot_is_detached(self, sim):
        sim.dispatch(commands.start())
        sim.advance(2000)
        snap = sim.snapshot()
        progress = [w.progress for w in snap.scheduler.warps]

        sim.advance(2000)

        assert [w.progress for w in snap.scheduler.warps] == progress
        assert snap.engine.cycle == 4
        assert snap.scheduler.cycle == 20
        with pytest.raises(dataclasses.FrozenInstanceError):
            snap.engine = None

    def test_snapshot_telemetry(self, sim):
        sim.dispatch(commands.start())
        sim.advance(3000)
        snap = sim.snapshot()
        assert snap.scheduler_telemetry.cycle == snap.scheduler.cycle
        assert sum(snap.scheduler_telemetry.status_counts.values()) == 12

    def test_snapshot_counts_throttled_cores(self, sim):
        """The scheduler summary reports the engine's throttled cores."""
        hot = tuple(
            dataclasses.replace(core, temperature_c=99.0) if core.id < 3 else core
            for core in sim.state.cores
        )
        sim.state = dataclasses.replace(sim.state, cores=hot, workload=100)
        sim.dispatch(commands.start())
        sim.advance(500)

        snap = sim.snapshot()
        assert snap.engine.cycle == 1
        assert len(snap.engine.throttled_cores) == 3
        assert snap.scheduler_telemetry.throttled_cores == 3
