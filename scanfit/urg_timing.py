"""Timing helpers for a scanning range finder: clock sync, offsets, ranges."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MAX_ECHO = 3
_TIME_STAMP_MASK = 0x00FFFFFF
_WARMUP_COUNT = 100
_WARP_LIMIT = 0.1


@dataclass
class ClockSynchronizer:
    """Maps the device's millisecond counter onto system time.

    An exponential moving average tracks the difference between the
    accumulated device clock and the system clock. The averaged estimate is
    only used after a warm-up; a jump larger than 0.1 s resets everything.
    """

    alpha: float = 0.01
    hardware_clock: float = 0.0
    adjustment: float = 0.0
    count: int = 0
    last_time_stamp: int = 0

    def synchronize(self, time_stamp, system_time) -> float:
        """Return the corrected stamp, in seconds, of a scan.

        ``time_stamp`` is the device counter in milliseconds (24 bits
        significant) and ``system_time`` the system time in seconds.
        """
        system_time = float(system_time)
        stamp = system_time
        delta = ((int(time_stamp) - int(self.last_time_stamp)) & _TIME_STAMP_MASK) / 1000.0
        self.hardware_clock += delta
        current = stamp - self.hardware_clock
        if self.count > 0:
            self.adjustment = self.alpha * current + (1.0 - self.alpha) * self.adjustment
        else:
            self.adjustment = current
        self.count += 1
        self.last_time_stamp = int(time_stamp)

        if self.count > _WARMUP_COUNT:
            stamp = self.hardware_clock + self.adjustment
            if abs(stamp - system_time) > _WARP_LIMIT:
                self.count = 0
                self.hardware_clock = 0.0
                self.last_time_stamp = 0
                stamp = system_time
                logger.warning("detected clock warp, reset moving average")
        return stamp


def angular_time_offset(first_angle, scan_period) -> float:
    """Time, in seconds, the beam takes to turn from behind to ``first_angle``."""
    fraction = (float(first_angle) + math.pi) / (2.0 * math.pi)
    return fraction * float(scan_period)


def median_offset(offsets):
    """The middle element of the sorted offsets (the upper one for even counts)."""
    ordered = sorted(offsets)
    if not ordered:
        raise ValueError("no offsets to take the median of")
    return ordered[len(ordered) // 2]


def ranges_from_distances(distances) -> list[float]:
    """Convert millimetre distances to metres; zero means no return (NaN)."""
    return [d / 1000.0 if d != 0 else math.nan for d in distances]


def echoes_from_distances(distances, max_echo=MAX_ECHO) -> list[list[float]]:
    """Split a flat multi-echo buffer into per-beam echo lists in metres.

    Each beam holds ``max_echo`` slots; its echoes end at the first zero.
    """
    if max_echo < 1:
        raise ValueError("max_echo must be at least 1")
    values = list(distances)
    if len(values) % max_echo:
        raise ValueError(
            f"{len(values)} distances do not split into beams of {max_echo} echoes"
        )
    beams = []
    for start in range(0, len(values), max_echo):
        echoes = []
        for d in values[start:start + max_echo]:
            if d == 0:
                break
            echoes.append(d / 1000.0)
        beams.append(echoes)
    return beams