"""Plotting of scan points and fitted shapes with matplotlib."""

from __future__ import annotations

import math

import matplotlib.pyplot as plt
import numpy as np

OUTLINE_POINTS = 100
LINE_REACH = 100.0


def ellipse_outline(p, count=OUTLINE_POINTS) -> np.ndarray:
    """Points on the superellipse ``p = [xc, yc, th, a, b, e]``, as ``count`` rows of ``x, y``.

    The curve is sampled from angle 0 to ``2*pi``, so the first and last
    points coincide.
    """
    p = np.asarray(p, dtype=float)
    t = np.linspace(0.0, 2.0 * math.pi, count)
    cos_t, sin_t = np.cos(t), np.sin(t)
    x = np.abs(cos_t) ** p[5] * p[3] * np.sign(cos_t)
    y = np.abs(sin_t) ** p[5] * p[4] * np.sign(sin_t)
    c, s = math.cos(p[2]), math.sin(p[2])
    rotation = np.array([[c, -s], [s, c]])
    rotated = (rotation @ np.column_stack([x, y]).T).T
    rotated[:, 0] += p[0]
    rotated[:, 1] += p[1]
    return rotated


def line_endpoints(p, reach=LINE_REACH) -> np.ndarray:
    """Two far points on the line ``p = [r, a]``, as a 2x2 array of ``x, y`` rows.

    The line is perpendicular to the direction ``a`` at distance ``r`` from
    the origin; the points sit at ``x = reach`` and ``x = -reach``, or at
    ``y = reach`` and ``y = -reach`` for a vertical line.
    """
    r, angle = float(p[0]), float(p[1])
    c_x = r * math.cos(angle)
    c_y = r * math.sin(angle)
    if abs(c_y) < 1e-12:
        return np.array([[c_x, reach], [c_x, -reach]])
    slope = -c_x / c_y
    intercept = c_y + c_x * c_x / c_y
    return np.array(
        [
            [reach, slope * reach + intercept],
            [-reach, -slope * reach + intercept],
        ]
    )


class Visualizer:
    """A figure onto which scan points and fitted shapes are drawn."""

    def __init__(self, axes=None) -> None:
        if axes is None:
            axes = plt.figure().add_subplot()
        self.axes = axes
        self.axes.axis("equal")
        self.axes.set_ylim(-10, 10)
        self.axes.set_xlim(-20, 0)

    def add_points(self, pts, label) -> None:
        """Plot rows of ``x, y`` with the matplotlib format string ``label``."""
        pts = np.atleast_2d(np.asarray(pts, dtype=float))
        if pts.shape[1] != 2:
            raise ValueError(f"points need two columns, got {pts.shape[1]}")
        self.axes.plot(pts[:, 0], pts[:, 1], label)

    def add_ellipse(self, p, label) -> None:
        """Plot the outline of the superellipse ``p``."""
        self.add_points(ellipse_outline(p), label)

    def add_line(self, p, label) -> None:
        """Plot a long segment of the line ``p``."""
        self.add_points(line_endpoints(p), label)

    def show(self) -> None:
        """Display every open figure, blocking until they are closed."""
        plt.show()