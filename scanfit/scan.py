"""Laser scans as measurement matrices, and helpers for scanner pose."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

DEFAULT_BEAM_COUNT = 1080
DEFAULT_SPAN = 1.5 * math.pi


def scan_angles(count=DEFAULT_BEAM_COUNT, span=DEFAULT_SPAN) -> np.ndarray:
    """Evenly spaced beam angles covering ``span`` radians centred on zero."""
    return np.linspace(-span / 2, span / 2, count)


def yaw_from_quaternion(x, y, z, w) -> float:
    """Yaw angle (rotation about z) of a unit quaternion, in radians."""
    return math.atan2(2 * (w * z + x * y), 1 - 2 * (y * y + z * z))


@dataclass
class Scan:
    """One scan: rows of ``x, y, d, an`` taken from ``location``."""

    data: np.ndarray
    location: np.ndarray = field(default_factory=lambda: np.zeros(2))
    orientation: float = 0.0

    @classmethod
    def from_ranges(cls, ranges, angles, location=(0.0, 0.0), orientation=0.0) -> "Scan":
        """Build a scan from beam ranges and their angles."""
        ranges = np.asarray(ranges, dtype=float)
        angles = np.asarray(angles, dtype=float)
        if ranges.shape != angles.shape:
            raise ValueError(
                f"{ranges.size} ranges do not match {angles.size} angles"
            )
        loc = np.asarray(location, dtype=float)
        x = loc[0] + ranges * np.cos(angles)
        y = loc[1] + ranges * np.sin(angles)
        data = np.column_stack([x, y, ranges, angles])
        return cls(data=data, location=loc, orientation=float(orientation))

    def write_csv(self, path) -> None:
        """Write the scan as CSV: a ``,<rows>`` header then ``x,y,d,an`` lines."""
        lines = [f",{len(self.data)}"]
        lines.extend(",".join(f"{value:g}" for value in row) for row in self.data)
        Path(path).write_text("\n".join(lines) + "\n")