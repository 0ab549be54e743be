"""Implicit shape models (superellipses and lines) fitted to laser scan data.

Every measurement row holds ``x, y, d, an``: cartesian coordinates of the
hit point, the measured range and the beam angle.  The implicit functions
are evaluated from the scanner pose together with ``d`` and ``an``. Their
derivatives are taken with respect to the model parameters, the pose, the
measurement and the two measurement errors ``mud`` and ``muan``.
"""

from __future__ import annotations

import logging
import math

import numpy as np
from scipy.optimize import least_squares

logger = logging.getLogger(__name__)

ELLIPSE_JACOBIAN_COLUMNS = (
    "xc", "yc", "th", "a", "b", "e", "xp", "yp", "d", "an", "mud", "muan",
)
LINE_JACOBIAN_COLUMNS = ("r", "a", "xp", "yp", "d", "an", "mud", "muan")

_EPS_MIN, _EPS_MAX = 0.1, 1.9
_MIN_COST = 10000.0


def _rows(data) -> np.ndarray:
    return np.atleast_2d(np.asarray(data, dtype=float))


def _safe_log(values: np.ndarray) -> np.ndarray:
    positive = values > 0
    return np.where(positive, np.log(np.where(positive, values, 1.0)), 0.0)


def sgn(value) -> int:
    """Sign of ``value``: -1, 0 or 1."""
    return int(value > 0) - int(value < 0)


def sample_covariance(x, y) -> float:
    """Sample covariance of two equally long sequences (divisor ``n - 1``)."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    products = (x - x.mean()) * (y - y.mean())
    return float(products.sum() / (products.size - 1))


def _pseudo_dop(df: np.ndarray, param_cols, error_cols, sigma_d: float) -> np.ndarray:
    j_mes = df[:, list(error_cols)]
    e_mes = j_mes * sigma_d * sigma_d @ j_mes.T
    h = df[:, list(param_cols)]
    return np.linalg.pinv(h.T @ np.linalg.pinv(e_mes) @ h)


# --------------------------------------------------------------------------
# Model 0: superellipses, p = [xc, yc, th, a, b, e]
# --------------------------------------------------------------------------


def _superellipse(xc, yc, th, a, b, e, x, y):
    f1 = ((x - xc) * np.cos(th) + (y - yc) * np.sin(th)) / a
    f2 = ((x - xc) * np.sin(th) - (y - yc) * np.cos(th)) / b
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        buf = np.abs(f1) ** (2.0 / e) + np.abs(f2) ** (2.0 / e)
        return buf ** e - 1.0


def ellipse_residuals(p, pos, data) -> np.ndarray:
    """Implicit superellipse value for each measurement row (zero on the curve)."""
    p = np.asarray(p, dtype=float)
    pos = np.asarray(pos, dtype=float)
    rows = _rows(data)
    d, an = rows[:, 2], rows[:, 3]
    x = pos[0] + d * np.cos(an)
    y = pos[1] + d * np.sin(an)
    return _superellipse(p[0], p[1], p[2], p[3], p[4], p[5], x, y)


def ellipse_jacobian(p, pos, data) -> np.ndarray:
    """Derivatives of the superellipse function, one row per measurement.

    Columns follow :data:`ELLIPSE_JACOBIAN_COLUMNS`.
    """
    p = np.asarray(p, dtype=float)
    pos = np.asarray(pos, dtype=float)
    rows = _rows(data)
    xc, yc, th, a, b, e = p[:6]
    d, an = rows[:, 2], rows[:, 3]
    cphi, sphi = np.cos(an), np.sin(an)
    x = pos[0] + d * cphi
    y = pos[1] + d * sphi
    c, s = math.cos(th), math.sin(th)
    u, v = x - xc, y - yc
    f1 = (u * c + v * s) / a
    f2 = (u * s - v * c) / b
    q1, q2 = f1 ** 2, f2 ** 2

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        g1, g2 = q1 ** (1.0 / e), q2 ** (1.0 / e)
        buf = g1 + g2
        scale = 2.0 * buf ** (e - 1.0)
        df1 = scale * np.sign(f1) * np.abs(f1) ** (2.0 / e - 1.0)
        df2 = scale * np.sign(f2) * np.abs(f2) ** (2.0 / e - 1.0)
        dbuf_de = -(g1 * _safe_log(q1) + g2 * _safe_log(q2)) / e ** 2
        d_e = buf ** e * _safe_log(buf) + e * buf ** (e - 1.0) * dbuf_de

    d_x = df1 * c / a + df2 * s / b
    d_y = df1 * s / a - df2 * c / b
    d_th = df1 * (-u * s + v * c) / a + df2 * (u * c + v * s) / b
    d_a = -df1 * f1 / a
    d_b = -df2 * f2 / b
    d_d = d_x * cphi + d_y * sphi
    d_an = d * (-d_x * sphi + d_y * cphi)
    return np.column_stack(
        [-d_x, -d_y, d_th, d_a, d_b, d_e, d_x, d_y, d_d, d_an, d_d, d_an]
    )


def ellipse_dop(p, pos, data, sigma_d) -> np.ndarray:
    """Parameter covariance (dilution of precision) of a superellipse fit."""
    df = ellipse_jacobian(p, pos, data)
    return _pseudo_dop(df, range(6), (10, 11), sigma_d)


def ellipse_initial_guess(x, y, loc) -> np.ndarray:
    """Initial superellipse guess from a point cloud seen from ``loc``.

    Returns nine values: ``xc, yc, th, a, b, e`` followed by an alternative
    centre ``xc, yc`` pushed further away and an alternative orientation.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    loc = np.asarray(loc, dtype=float)
    cov = np.array(
        [
            [sample_covariance(x, x), sample_covariance(x, y)],
            [sample_covariance(y, x), sample_covariance(y, y)],
        ]
    )
    _, singular, vh = np.linalg.svd(cov)
    v = vh.T
    th0 = math.atan2(v[1, 0], v[0, 0])

    points = np.column_stack([x, y])
    rot = np.array(
        [[math.cos(-th0), -math.sin(-th0)], [math.sin(-th0), math.cos(-th0)]]
    )
    rotated = (rot @ points.T).T
    x0, y0 = x.mean(), y.mean()
    a0 = np.ptp(rotated[:, 0]) / 2
    b0 = np.ptp(rotated[:, 1]) / 2
    angle = math.atan2(y0 - loc[1], x0 - loc[0])

    guess = np.empty(9)
    near = math.sqrt(a0 + b0)
    far = math.sqrt(a0 * a0 + b0 * b0)
    guess[0] = x0 + near * math.cos(angle)
    guess[1] = y0 + near * math.sin(angle)
    guess[6] = x0 + far * math.cos(angle)
    guess[7] = y0 + far * math.sin(angle)
    guess[2] = th0
    guess[3] = max(math.sqrt(2 * singular[0]), 1.0)
    guess[4] = max(math.sqrt(2 * singular[1]), 1.0)
    guess[5] = 0.1
    guess[8] = th0 + math.pi / 2
    return guess


def _fit_residuals(params: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    xc, yc, th, a, b, e = params
    return a * b * _superellipse(xc, yc, th, a, b, e, x, y)


def _widen(low: float, high: float) -> tuple[float, float]:
    low, high = min(low, high), max(low, high)
    if high - low < 1e-9:
        high = low + 1e-9
    return low, high


def ellipse_least_squares(loc, data) -> np.ndarray:
    """Fit a superellipse to the ``x, y`` columns of ``data``.

    Eight starting points (two centres, two shape exponents, two
    orientations) are optimised under bounds; the finite result with the
    lowest cost wins.
    """
    rows = _rows(data)
    xs, ys = rows[:, 0], rows[:, 1]
    g = ellipse_initial_guess(xs, ys, loc)

    base = [
        [g[0], g[1], g[2], g[3], g[4], g[5]],
        [g[0], g[1], g[2], g[3], g[4], 1.9],
        [g[6], g[7], g[2], g[3], g[4], 0.1],
        [g[6], g[7], g[2], g[3], g[4], 1.9],
    ]
    starts = base + [[c[0], c[1], g[8], c[3], c[4], c[5]] for c in base]

    x_lo, x_hi = _widen(g[0], g[6])
    y_lo, y_hi = _widen(g[1], g[7])
    lower = np.array([x_lo, y_lo, -np.inf, 1.0, 1.0, 0.01])
    upper = np.array([x_hi, y_hi, np.inf, 30.0, 30.0, 1.99])

    best = np.array(starts[0], dtype=float)
    min_cost = _MIN_COST
    for start in starts:
        x0 = np.clip(np.array(start, dtype=float), lower, upper)
        try:
            result = least_squares(
                _fit_residuals,
                x0,
                bounds=(lower, upper),
                args=(xs, ys),
                method="trf",
                max_nfev=100,
            )
        except ValueError:
            continue
        logger.debug("candidate %s cost %s", result.x, result.cost)
        if not np.all(np.isfinite(result.x)):
            continue
        if result.cost < min_cost:
            min_cost = result.cost
            best = result.x
    logger.debug("least squares yields %s", best)
    return np.array(best, dtype=float)


def ellipse_safety(p) -> bool:
    """Force ``p`` (modified in place) into a safe range.

    Returns True when the shape exponent had to be clamped; otherwise the
    orientation is wrapped into ``[0, 2*pi)`` and False is returned.
    """
    if p[5] < _EPS_MIN:
        p[5] = _EPS_MIN
        return True
    if p[5] > _EPS_MAX:
        p[5] = _EPS_MAX
        return True
    angle = math.fmod(p[2], 2 * math.pi)
    if angle < 0:
        angle += 2 * math.pi
    p[2] = angle
    return False


# --------------------------------------------------------------------------
# Model 1: lines not through the origin, p = [r, a]
# --------------------------------------------------------------------------


def line_residuals(p, pos, data) -> np.ndarray:
    """Implicit line value ``(x cos a + y sin a) / r - 1`` for each row."""
    p = np.asarray(p, dtype=float)
    pos = np.asarray(pos, dtype=float)
    rows = _rows(data)
    d, an = rows[:, 2], rows[:, 3]
    x = pos[0] + d * np.cos(an)
    y = pos[1] + d * np.sin(an)
    r, a = p[0], p[1]
    return (x * math.cos(a) + y * math.sin(a)) / r - 1.0


def line_jacobian(p, pos, data) -> np.ndarray:
    """Derivatives of the line function; columns follow :data:`LINE_JACOBIAN_COLUMNS`."""
    p = np.asarray(p, dtype=float)
    pos = np.asarray(pos, dtype=float)
    rows = _rows(data)
    r, a = p[0], p[1]
    d, an = rows[:, 2], rows[:, 3]
    cphi, sphi = np.cos(an), np.sin(an)
    x = pos[0] + d * cphi
    y = pos[1] + d * sphi
    ca, sa = math.cos(a), math.sin(a)
    d_r = -(x * ca + y * sa) / r ** 2
    d_a = (-x * sa + y * ca) / r
    d_xp = np.full_like(d, ca / r)
    d_yp = np.full_like(d, sa / r)
    d_d = (cphi * ca + sphi * sa) / r
    d_an = d * (-sphi * ca + cphi * sa) / r
    return np.column_stack([d_r, d_a, d_xp, d_yp, d_d, d_an, d_d, d_an])


def line_dop(p, pos, data, sigma_d) -> np.ndarray:
    """Parameter covariance (dilution of precision) of a line fit."""
    df = line_jacobian(p, pos, data)
    return _pseudo_dop(df, (0, 1), (6, 7), sigma_d)


def line_least_squares(loc, data) -> np.ndarray:
    """Fit ``x*b0 + y*b1 = 1`` to the ``x, y`` columns and return ``[r, a]``."""
    rows = _rows(data)
    points = rows[:, :2]
    coeffs = np.linalg.solve(points.T @ points, points.T @ np.ones(len(points)))
    r = sgn(coeffs[0]) / math.hypot(coeffs[0], coeffs[1])
    a = math.atan2(coeffs[1] * r, coeffs[0] * r)
    return np.array([r, a])


def line_safety(p) -> bool:
    """Check that ``p`` holds ``r`` and ``a``; lines need no clamping, so False.

    Raises ValueError when fewer than two parameters are given.
    """
    if len(p) < 2:
        raise ValueError("line parameters need both r and a")
    return False