"""
Chip-wide phase sequencer.

The data-flow phase is a pure function of the global cycle counter and of
whether any workload is present:

    phase_cycle = cycle mod 16

    phase_cycle:   0..3           4..7       8..11       12..15
               ORCHESTRATING → FETCHING → EXECUTING → COMMITTING → (wrap)

With zero workload the chip sits in IDLE regardless of the cycle count.

Two forms are provided, matching each other bit for bit:
- ``phase_for_cycle``: behavioral model used by the engine
- ``PhaseSequencer``: combinational RTL decoder (Amaranth) for the same mapping
"""

from enum import IntEnum

from amaranth import Module, unsigned
from amaranth.lib.wiring import Component, In, Out

from .config import ChipConfig


class DataFlowPhase(IntEnum):
    """Chip-wide pipeline stage."""

    IDLE = 0
    ORCHESTRATING = 1
    FETCHING = 2
    EXECUTING = 3
    COMMITTING = 4


def phase_for_cycle(cycle: int, workload: float, period: int = 16) -> DataFlowPhase:
    """Derive the data-flow phase for a cycle count and workload level."""
    if workload <= 0:
        return DataFlowPhase.IDLE
    phase_cycle = cycle % period
    return DataFlowPhase(1 + phase_cycle // (period // 4))


def is_transfer_phase(phase: DataFlowPhase) -> bool:
    """FETCHING and COMMITTING move data over the host link."""
    return phase in (DataFlowPhase.FETCHING, DataFlowPhase.COMMITTING)


class PhaseSequencer(Component):
    """
    RTL phase decoder.

    The period must be a power of two so that ``cycle mod period`` is a bit
    slice of the counter.

    Ports:
        cycle: Global cycle counter
        active: High when workload > 0
        phase: Decoded DataFlowPhase
    """

    def __init__(self, config: ChipConfig, counter_bits: int = 32):
        """
        Initialize phase sequencer.

        Args:
            config: Chip configuration
            counter_bits: Width of the cycle counter input
        """
        period = config.phase_period
        if period & (period - 1):
            raise ValueError("PhaseSequencer requires a power-of-two phase_period")

        self.config = config
        self.period_bits = period.bit_length() - 1

        super().__init__(
            {
                "cycle": In(unsigned(counter_bits)),
                "active": In(1),
                "phase": Out(unsigned(3)),
            }
        )

    def elaborate(self, _platform):
        m = Module()

        # The two most significant bits of (cycle mod period) select the phase
        stage = self.cycle[self.period_bits - 2 : self.period_bits]

        with m.If(self.active):
            m.d.comb += self.phase.eq(stage + DataFlowPhase.ORCHESTRATING)
        with m.Else():
            m.d.comb += self.phase.eq(DataFlowPhase.IDLE)

        return m
