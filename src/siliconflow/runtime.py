"""
Real-time asyncio runner.

Drives a ``ChipSimulator`` with two independent asyncio tasks, one per clock,
and hands deferred warp recycles to the event loop's ``call_later``. Each
tick runs to completion before the loop schedules anything else, so no
locking is needed.

An optional advisor coroutine can be attached. Every ``advisor_interval``
global cycles it is called fire-and-forget with the latest snapshot and its
answer is written into the advisory slot. Calls are never cancelled or
ordered: a slow answer may land after a newer one.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from . import commands
from .commands import Command, CommandType
from .simulator import ChipSimulator, ChipSnapshot

logger = logging.getLogger(__name__)

Advisor = Callable[[ChipSnapshot], Awaitable[str | None]]


class AsyncChipRunner:
    """
    Run the simulation in real time.

    Example:
        >>> async def main():
        ...     runner = AsyncChipRunner()
        ...     runner.dispatch(commands.set_workload(80))
        ...     runner.dispatch(commands.start())
        ...     await asyncio.sleep(5)
        ...     await runner.shutdown()
        ...     return runner.snapshot()
    """

    def __init__(self, simulator: ChipSimulator | None = None, advisor: Advisor | None = None):
        self.simulator = simulator if simulator is not None else ChipSimulator()
        self.advisor = advisor

        self._global_task: asyncio.Task | None = None
        self._scheduler_task: asyncio.Task | None = None
        self._advisor_tasks: set[asyncio.Task] = set()
        self._retired_tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._global_task is not None

    def snapshot(self) -> ChipSnapshot:
        return self.simulator.snapshot()

    def dispatch(self, command: Command) -> None:
        """
        Apply a command, starting or stopping the clock tasks as needed.

        Must be called from inside a running event loop when the command
        starts the clocks; otherwise RuntimeError is raised and the engine
        is left untouched.
        """
        ctype = command.type
        if ctype == CommandType.START and not self.running:
            # Raises outside a running loop, before the engine changes
            asyncio.get_running_loop()

        self.simulator.dispatch(command)

        if ctype == CommandType.START:
            self._start_clocks()
        elif ctype in (CommandType.STOP, CommandType.RESET):
            self._stop_clocks()
        elif ctype == CommandType.SET_SPEED and self.running:
            # The global clock restarts with the new period
            self._retire(self._global_task)
            self._global_task = asyncio.create_task(self._global_loop())

    def _start_clocks(self) -> None:
        if self.running:
            return
        self.simulator.scheduler.set_deferrer(asyncio.get_running_loop())
        self._global_task = asyncio.create_task(self._global_loop())
        self._scheduler_task = asyncio.create_task(self._scheduler_loop())

    def _stop_clocks(self) -> None:
        for task in (self._global_task, self._scheduler_task):
            if task is not None:
                self._retire(task)
        self._global_task = None
        self._scheduler_task = None

    def _retire(self, task: asyncio.Task) -> None:
        task.cancel()
        self._retired_tasks.add(task)
        task.add_done_callback(self._retired_tasks.discard)

    async def shutdown(self) -> None:
        """
        Stop both clocks and wait for every outstanding task to finish.

        Recycles still queued on the event loop move back to the
        simulator's virtual timer, so the simulator stays usable after the
        loop closes.
        """
        if self.simulator.running:
            self.dispatch(commands.stop())
        else:
            self._stop_clocks()
        tasks = [*self._retired_tasks, *self._advisor_tasks]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self.simulator.scheduler.deferrer is not self.simulator.timer:
            self.simulator.scheduler.set_deferrer(self.simulator.timer)

    # -------------------------------------------------------------------------
    # Clock loops
    # -------------------------------------------------------------------------

    async def _global_loop(self) -> None:
        while True:
            await asyncio.sleep(self.simulator.state.simulation_speed_ms / 1000)
            state = self.simulator.step_global()
            self._maybe_advise(state.cycle)

    async def _scheduler_loop(self) -> None:
        period = self.simulator.config.scheduler_tick_ms / 1000
        while True:
            await asyncio.sleep(period)
            self.simulator.step_scheduler()

    # -------------------------------------------------------------------------
    # Advisor hook
    # -------------------------------------------------------------------------

    def _maybe_advise(self, cycle: int) -> None:
        if self.advisor is None or cycle == 0:
            return
        if cycle % self.simulator.config.advisor_interval != 0:
            return
        task = asyncio.create_task(self._run_advisor(self.snapshot()))
        self._advisor_tasks.add(task)
        task.add_done_callback(self._advisor_tasks.discard)

    async def _run_advisor(self, snapshot: ChipSnapshot) -> None:
        try:
            message = await self.advisor(snapshot)
        except Exception:
            logger.exception("Advisor failed at cycle %d", snapshot.engine.cycle)
            return
        self.simulator.dispatch(commands.set_advisor_message(message))
