"""
cycle_clock.py - Time to withdrawal-cycle mapping

Cycles start every ``period_frequency`` from ``period_start``. Each cycle has a
redemption window of ``period_duration`` at its start; the rest of the cycle
is idle. A newly locked position targets the cycle that contains
``now + cooldown``, where cooldown is a whole number of cycles.

    period_start            +frequency              +2*frequency
    |--window--|............|--window--|............|--window--|...
       cycle 0                 cycle 1                 cycle 2

All methods are pure; the clock holds no mutable state.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Tuple

from .core import ConfigError, UnitState


@dataclass(frozen=True, slots=True)
class CycleClock:
    """
    Immutable cycle parameters.

    Attributes:
        period_start: Start of cycle 0
        period_duration: Length of each cycle's redemption window
        period_frequency: Distance between consecutive cycle starts
        cooldown_multiplier: Cooldown length in cycles

    Raises:
        ConfigError: If the window is longer than the cycle, a length is not
            positive, or the cooldown multiplier is not a positive int.
    """
    period_start: datetime
    period_duration: timedelta
    period_frequency: timedelta
    cooldown_multiplier: int

    def __post_init__(self):
        if self.period_frequency <= timedelta(0):
            raise ConfigError(f"period_frequency must be positive, got {self.period_frequency}")
        if self.period_duration <= timedelta(0):
            raise ConfigError(f"period_duration must be positive, got {self.period_duration}")
        if self.period_duration > self.period_frequency:
            raise ConfigError(
                f"period_duration {self.period_duration} exceeds period_frequency {self.period_frequency}"
            )
        if isinstance(self.cooldown_multiplier, bool) or not isinstance(self.cooldown_multiplier, int):
            raise ConfigError(f"cooldown_multiplier must be int, got {self.cooldown_multiplier!r}")
        if self.cooldown_multiplier <= 0:
            raise ConfigError(f"cooldown_multiplier must be positive, got {self.cooldown_multiplier}")

    @classmethod
    def from_state(cls, state: UnitState) -> CycleClock:
        """Rebuild the clock from a withdrawal manager's term sheet."""
        return cls(
            period_start=state['period_start'],
            period_duration=state['period_duration'],
            period_frequency=state['period_frequency'],
            cooldown_multiplier=state['cooldown_multiplier'],
        )

    @property
    def cooldown(self) -> timedelta:
        return self.period_frequency * self.cooldown_multiplier

    def cycle_of(self, time: datetime) -> int:
        """Index of the cycle containing ``time``; 0 at or before period_start."""
        if time <= self.period_start:
            return 0
        return (time - self.period_start) // self.period_frequency

    def bounds_of(self, cycle: int) -> Tuple[datetime, datetime]:
        """Redemption window of a cycle as a half-open [start, end) pair."""
        start = self.period_start + self.period_frequency * cycle
        return start, start + self.period_duration

    def target_cycle(self, now: datetime) -> int:
        """Cycle a position locked at ``now`` becomes eligible in."""
        return self.cycle_of(now + self.cooldown)

    def window_open(self, cycle: int, now: datetime) -> bool:
        start, end = self.bounds_of(cycle)
        return start <= now < end

    def window_elapsed(self, cycle: int, now: datetime) -> bool:
        return now >= self.bounds_of(cycle)[1]
