import csv
import math

import numpy as np
import pytest

from scanfit.scan import Scan, scan_angles, yaw_from_quaternion


def test_scan_angles_defaults():
    angles = scan_angles()
    assert len(angles) == 1080
    assert angles[0] == pytest.approx(-0.75 * math.pi)
    assert angles[-1] == pytest.approx(0.75 * math.pi)
    assert np.all(np.diff(angles) > 0)


def test_scan_angles_custom_symmetric():
    angles = scan_angles(5, math.pi)
    assert len(angles) == 5
    assert angles[2] == pytest.approx(0.0)
    assert angles[0] == pytest.approx(-angles[-1])


def test_yaw_identity_is_zero():
    assert yaw_from_quaternion(0.0, 0.0, 0.0, 1.0) == pytest.approx(0.0)


@pytest.mark.parametrize("angle", [0.3, -1.2, 2.5, math.pi / 2])
def test_yaw_round_trip_about_z(angle):
    q = (0.0, 0.0, math.sin(angle / 2), math.cos(angle / 2))
    assert yaw_from_quaternion(*q) == pytest.approx(angle)


def test_from_ranges_builds_columns():
    ranges = [1.0, 2.0, 3.0]
    angles = [0.0, 0.5, -1.0]
    scan = Scan.from_ranges(ranges, angles)
    assert scan.data.shape == (3, 4)
    assert np.allclose(scan.data[:, 2], ranges)
    assert np.allclose(scan.data[:, 3], angles)
    assert np.allclose(np.hypot(scan.data[:, 0], scan.data[:, 1]), ranges)
    assert np.allclose(np.arctan2(scan.data[:, 1], scan.data[:, 0]), angles)
    assert scan.orientation == 0.0


def test_from_ranges_offsets_by_location():
    scan = Scan.from_ranges([2.0], [0.0], location=(1.0, -1.0), orientation=0.5)
    assert np.allclose(scan.data[0, :2], [3.0, -1.0])
    assert np.allclose(scan.location, [1.0, -1.0])
    assert scan.orientation == 0.5


def test_from_ranges_length_mismatch():
    with pytest.raises(ValueError):
        Scan.from_ranges([1.0, 2.0], [0.0])


def test_write_csv_round_trip(tmp_path):
    scan = Scan.from_ranges([1.5, 2.25, 4.0], [0.1, 0.2, 0.3])
    path = tmp_path / "scan_0.csv"
    scan.write_csv(path)
    with path.open(newline="") as handle:
        rows = list(csv.reader(handle))
    assert rows[0] == ["", "3"]
    values = np.array([[float(v) for v in row] for row in rows[1:]])
    assert values.shape == (3, 4)
    assert np.allclose(values, scan.data, rtol=1e-5)


def test_write_csv_empty_scan(tmp_path):
    scan = Scan(data=np.zeros((0, 4)))
    path = tmp_path / "empty.csv"
    scan.write_csv(path)
    assert path.read_text().splitlines() == [",0"]