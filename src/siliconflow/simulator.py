"""
Headless chip simulator.

Couples the global engine and the warp scheduler on two independent clocks
in virtual time:

    global clock     ──●────────────●────────────●──   every simulation_speed_ms
    scheduler clock  ──●──●──●──●──●──●──●──●──●──●─   every scheduler_tick_ms
    recycle timer    ─────────○─────────────○───────   one-shot, recycle_delay_ms

The clocks share nothing but the read-only kernel profile and migration flag,
which the scheduler receives as a ``SchedulerInputs`` snapshot of the engine
state on every tick. ``advance`` processes events in time order, so a run is
repeatable given a seeded generator.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from . import engine
from .clock import VirtualTimer
from .commands import Command, CommandType, apply_command
from .config import DEFAULT_CHIP_CONFIG, ChipConfig
from .state import EngineState, initial_state
from .telemetry import SchedulerTelemetry, summarize_scheduler
from .warp import SchedulerInputs, SchedulerSnapshot, WarpSchedulerSim

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChipSnapshot:
    """Everything an observer may read, frozen at one instant."""

    engine: EngineState
    scheduler: SchedulerSnapshot
    scheduler_telemetry: SchedulerTelemetry


@dataclass
class ChipSimulator:
    """
    Behavioral model of the whole card.

    Example:
        >>> from siliconflow import commands
        >>> sim = ChipSimulator(rng=np.random.default_rng(7))
        >>> sim.dispatch(commands.set_task("ai-train"))
        >>> sim.dispatch(commands.start())
        >>> sim.advance(10_000)  # ten seconds of virtual time
        >>> sim.snapshot().engine.cycle  # 20
    """

    config: ChipConfig = DEFAULT_CHIP_CONFIG
    rng: np.random.Generator = field(default_factory=np.random.default_rng)
    timer: VirtualTimer = field(default_factory=VirtualTimer)

    state: EngineState = field(init=False)
    scheduler: WarpSchedulerSim = field(init=False)

    # Virtual time and clock deadlines in milliseconds (None = clock stopped)
    now_ms: int = field(default=0, init=False)
    _global_due_ms: int | None = field(default=None, init=False)
    _scheduler_due_ms: int | None = field(default=None, init=False)

    def __post_init__(self):
        """Build the engine state and the scheduler."""
        self.state = initial_state(self.config)
        self.scheduler = WarpSchedulerSim(self.config, rng=self.rng, deferrer=self.timer)

    @property
    def running(self) -> bool:
        return self.state.is_running

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def dispatch(self, command: Command) -> EngineState:
        """
        Apply a command to the engine.

        START on a stopped engine arms both clocks from scratch. STOP halts
        them. RESET also resets the warp scheduler. SET_SPEED re-arms the
        global clock with the new period.
        """
        was_running = self.state.is_running
        self.state = apply_command(self.state, command, self.rng)

        ctype = command.type
        if ctype == CommandType.START and not was_running:
            logger.info("Simulation started (period %d ms)", self.state.simulation_speed_ms)
            self._arm_clocks()
        elif ctype == CommandType.STOP:
            logger.info("Simulation stopped at cycle %d", self.state.cycle)
            self._disarm_clocks()
        elif ctype == CommandType.RESET:
            logger.info("Simulation reset")
            self.scheduler.reset()
            self._disarm_clocks()
        elif ctype == CommandType.SET_SPEED and self.running:
            self._global_due_ms = self.now_ms + self.state.simulation_speed_ms
        return self.state

    def _arm_clocks(self) -> None:
        self._global_due_ms = self.now_ms + self.state.simulation_speed_ms
        self._scheduler_due_ms = self.now_ms + self.config.scheduler_tick_ms

    def _disarm_clocks(self) -> None:
        self._global_due_ms = None
        self._scheduler_due_ms = None

    # -------------------------------------------------------------------------
    # Clock callbacks
    # -------------------------------------------------------------------------

    def step_global(self) -> EngineState:
        """Run one global tick immediately."""
        self.state = engine.tick(self.state, self.rng)
        return self.state

    def step_scheduler(self) -> int:
        """Run one scheduler tick immediately. Returns completions."""
        return self.scheduler.tick(SchedulerInputs.from_engine(self.state))

    def advance(self, duration_ms: int) -> None:
        """
        Move virtual time forward, firing every clock edge and deferred
        callback that falls inside the window.
        """
        end_ms = self.now_ms + duration_ms
        while True:
            due = [
                t
                for t in (self._global_due_ms, self._scheduler_due_ms)
                if t is not None and t <= end_ms
            ]
            if not due:
                break
            t = min(due)
            self.timer.advance_to(t / 1000)
            self.now_ms = t

            if self._global_due_ms == t:
                self.step_global()
                self._global_due_ms = t + self.state.simulation_speed_ms
            if self._scheduler_due_ms == t:
                self.step_scheduler()
                self._scheduler_due_ms = t + self.config.scheduler_tick_ms

        self.timer.advance_to(end_ms / 1000)
        self.now_ms = end_ms

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    def snapshot(self) -> ChipSnapshot:
        """Latest state of both clock domains."""
        scheduler = self.scheduler.snapshot()
        return ChipSnapshot(
            engine=self.state,
            scheduler=scheduler,
            scheduler_telemetry=summarize_scheduler(scheduler, self.state),
        )
