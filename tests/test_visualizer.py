import math

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pytest
from matplotlib.figure import Figure

from scanfit.functions import ellipse_residuals, line_residuals
from scanfit.visualizer import Visualizer, ellipse_outline, line_endpoints


def _as_measurements(points):
    d = np.hypot(points[:, 0], points[:, 1])
    an = np.arctan2(points[:, 1], points[:, 0])
    return np.column_stack([points[:, 0], points[:, 1], d, an])


@pytest.mark.parametrize(
    "p",
    [
        [1.0, 2.0, 0.3, 4.0, 2.0, 0.5],
        [-5.0, 3.0, 1.2, 2.0, 6.0, 1.0],
        [0.5, -1.0, 2.5, 3.0, 1.5, 1.7],
    ],
)
def test_ellipse_outline_lies_on_superellipse(p):
    outline = ellipse_outline(p, 50)
    residuals = ellipse_residuals(p, (0.0, 0.0), _as_measurements(outline))
    np.testing.assert_allclose(residuals, 0.0, atol=1e-9)


def test_ellipse_outline_is_closed_and_sized():
    outline = ellipse_outline([1.0, 2.0, 0.3, 4.0, 2.0, 0.5], 37)
    assert outline.shape == (37, 2)
    np.testing.assert_allclose(outline[0], outline[-1], atol=1e-12)


def test_ellipse_outline_without_rotation_starts_on_major_axis():
    outline = ellipse_outline([1.0, 2.0, 0.0, 4.0, 2.0, 1.0], 10)
    np.testing.assert_allclose(outline[0], [5.0, 2.0])


@pytest.mark.parametrize("p", [[5.0, 0.7], [3.0, 0.0], [2.0, math.pi / 2], [4.0, -2.1]])
def test_line_endpoints_lie_on_line(p):
    pts = line_endpoints(p)
    residuals = line_residuals(p, (0.0, 0.0), _as_measurements(pts))
    np.testing.assert_allclose(residuals, 0.0, atol=1e-9)


def test_line_endpoints_use_reach():
    pts = line_endpoints([5.0, 0.7], reach=25.0)
    np.testing.assert_allclose(pts[:, 0], [25.0, -25.0])


def test_visualizer_default_limits():
    vis = Visualizer()
    try:
        assert vis.axes.get_xlim() == (-20.0, 0.0)
        assert vis.axes.get_ylim() == (-10.0, 10.0)
    finally:
        plt.close("all")


def test_add_points_plots_given_data():
    vis = Visualizer(Figure().add_subplot())
    pts = np.array([[0.0, 1.0], [2.0, 3.0], [4.0, 5.0]])
    vis.add_points(pts, "r.")
    lines = vis.axes.get_lines()
    assert len(lines) == 1
    np.testing.assert_allclose(lines[0].get_xdata(), pts[:, 0])
    np.testing.assert_allclose(lines[0].get_ydata(), pts[:, 1])
    assert lines[0].get_color() == "r"


def test_add_points_rejects_wrong_shape():
    vis = Visualizer(Figure().add_subplot())
    with pytest.raises(ValueError):
        vis.add_points(np.zeros((3, 3)), "b-")


def test_add_ellipse_plots_outline():
    vis = Visualizer(Figure().add_subplot())
    p = [1.0, 2.0, 0.3, 4.0, 2.0, 0.5]
    vis.add_ellipse(p, "b-")
    line = vis.axes.get_lines()[0]
    expected = ellipse_outline(p)
    np.testing.assert_allclose(line.get_xdata(), expected[:, 0])
    np.testing.assert_allclose(line.get_ydata(), expected[:, 1])


def test_add_line_plots_endpoints():
    vis = Visualizer(Figure().add_subplot())
    p = [5.0, 0.7]
    vis.add_line(p, "g-")
    line = vis.axes.get_lines()[0]
    expected = line_endpoints(p)
    np.testing.assert_allclose(line.get_xdata(), expected[:, 0])
    np.testing.assert_allclose(line.get_ydata(), expected[:, 1])