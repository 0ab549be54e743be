"""Extended and iterated extended Kalman filters on implicit shape models."""

from __future__ import annotations

import logging
import math

import numpy as np

from scanfit.model import Entity, Model

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 10


class Ekf:
    """Extended Kalman filter refining a shape while it is being built."""

    def __init__(self, model: Model, params, covariance) -> None:
        self.model = model
        self.params = np.array(params, dtype=float)
        self.covariance = np.array(covariance, dtype=float)
        self.measurement: np.ndarray | None = None
        self.H: np.ndarray | None = None
        self.J: np.ndarray | None = None
        self.gain: np.ndarray | None = None
        self.residual = 0.0
        self.innovation_variance = 0.0
        self.mahalanobis = math.inf

    def update(self, data, pose, tol) -> bool:
        """Fold one measurement in.

        Returns False, leaving the parameters untouched, when the
        measurement's Mahalanobis distance exceeds ``tol``.
        """
        model = self.model
        self.covariance = self.covariance + model.q_s
        if model.safety(self.params):
            logger.debug("forced safe values on parameters")
        self.measurement = np.asarray(data, dtype=float)
        self.residual = -float(model.residuals(self.params, pose, self.measurement)[0])
        df = model.jacobian(self.params, pose, self.measurement)
        h = df[:, model.parameter_indexes]
        j = df[:, model.error_indexes]
        self.H, self.J = h, j
        with np.errstate(divide="ignore", invalid="ignore"):
            s = np.float64((h @ self.covariance @ h.T + j @ model.w_s @ j.T)[0, 0])
            self.gain = self.covariance @ h.T / s
            self.mahalanobis = float(self.residual * self.residual / s)
        self.innovation_variance = float(s)
        logger.debug("mahalanobis %s", self.mahalanobis)
        if self.mahalanobis > tol:
            return False
        self.params = self.params + self.gain.ravel() * self.residual
        self.covariance = (model.identity - self.gain @ h) @ self.covariance
        return True


def _beam_row(m: np.ndarray) -> np.ndarray:
    return np.array([0.0, 0.0, m[0], m[1]])


class Iekf:
    """Iterated extended Kalman filter augmenting a mapped entity."""

    def __init__(self, entity: Entity) -> None:
        self.entity = entity
        self.H: np.ndarray | None = None
        self.J: np.ndarray | None = None
        self.gain: np.ndarray | None = None
        self.residual = 0.0
        self.residual_correction = 0.0
        self.innovation_variance = 0.0

    def update(self, data, pose, tol) -> None:
        """Refine the entity's parameters and covariance with one measurement."""
        entity = self.entity
        model = entity.model
        entity.covariance = entity.covariance + model.q_a
        cov = entity.covariance
        prior = entity.params
        m0 = np.asarray(data, dtype=float)[[2, 3]]
        mk = m0.copy()
        pk = np.array(prior, dtype=float)
        gain = np.zeros((model.parameter_count, 1))

        for _ in range(MAX_ITERATIONS):
            row = _beam_row(mk)
            df = model.jacobian(pk, pose, row)
            h = df[:, model.parameter_indexes]
            j = df[:, model.error_indexes]
            r = float(model.residuals(pk, pose, row)[0])
            dr = float((j @ (m0 - mk) + h @ (prior - pk))[0])
            self.residual, self.residual_correction = r, dr
            with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
                s = np.float64((h @ cov @ h.T + j @ model.w_a @ j.T)[0, 0])
                candidate = cov @ h.T / s
                if np.isnan(candidate * (r + dr)).any():
                    break
                self.innovation_variance = float(s)
                gain = candidate
                pk = prior - gain.ravel() * (r + dr)
                if model.safety(pk):
                    break
                mk = m0 - (model.w_a @ j.T / s).ravel() * (r + dr)
            if abs(r) < tol:
                break

        entity.params = pk
        df = model.jacobian(entity.params, pose, _beam_row(mk))
        h = df[:, model.parameter_indexes]
        j = df[:, model.error_indexes]
        self.H, self.J, self.gain = h, j, gain
        correction = model.identity - gain @ h
        entity.covariance = (
            correction @ cov @ correction.T + gain @ j @ model.w_a @ j.T @ gain.T
        )