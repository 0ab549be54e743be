"""Shape models, mapped entities, measurements and the aggregates they form."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Optional

import numpy as np

logger = logging.getLogger(__name__)

# Continuity limits between consecutive measurements of one aggregate.
ANGLE_TOLERANCE = 0.01
DIST_TOLERANCE = 0.3
# Number of continuous measurements gathered before the shape FSMs start.
AGGREGATE_SIZE = 10
# Mahalanobis threshold for associating a measurement with a mapped entity.
MAHALANOBIS_AUGMENT = 1.0


class State(IntEnum):
    """States of the scan handler and of the nested shape state machines."""

    BEGIN = 0
    CONTINUOUS = 1
    FSM = 2
    FSM_FLEXIBLE = 3
    FSM_STRICT = 4
    FSM_LEAST_SQUARES = 5
    FSM_CLOSE = 6
    FSM_SINK = 7
    MERGE = 8


@dataclass(eq=False)
class Model:
    """Everything that defines one implicit shape model and its filter tuning.

    ``residuals(p, pos, data)`` evaluates the implicit function per row,
    ``jacobian(p, pos, data)`` its derivatives, of which the columns at
    ``parameter_indexes`` belong to the parameters and those at
    ``error_indexes`` to the measurement errors.
    """

    residuals: Callable
    jacobian: Callable
    parameter_indexes: np.ndarray
    error_indexes: np.ndarray
    dop: Callable
    least_squares: Callable
    safety: Callable
    w_a: np.ndarray
    w_s: np.ndarray
    q_a: np.ndarray
    q_s: np.ndarray
    mahalanobis_strict: float
    mahalanobis_flex: float
    parameter_count: int
    dop_sigma: float
    model_index: int
    identity: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.parameter_indexes = np.asarray(self.parameter_indexes, dtype=int)
        self.error_indexes = np.asarray(self.error_indexes, dtype=int)
        self.w_a = np.asarray(self.w_a, dtype=float)
        self.w_s = np.asarray(self.w_s, dtype=float)
        self.q_a = np.asarray(self.q_a, dtype=float)
        self.q_s = np.asarray(self.q_s, dtype=float)
        self.identity = np.eye(self.parameter_count)


@dataclass(eq=False)
class Entity:
    """A mapped object: its model, parameters and their covariance."""

    model: Model
    params: np.ndarray
    covariance: np.ndarray

    def __post_init__(self) -> None:
        self.params = np.array(self.params, dtype=float)
        self.covariance = np.array(self.covariance, dtype=float)


@dataclass(eq=False)
class Measurement:
    """One beam: ``x, y, d, an`` taken from ``pose``, possibly associated."""

    data: np.ndarray
    pose: np.ndarray
    entity: Optional[Entity] = None

    def __post_init__(self) -> None:
        self.data = np.asarray(self.data, dtype=float)
        self.pose = np.asarray(self.pose, dtype=float)


@dataclass(eq=False)
class Aggregate:
    """A run of continuous measurements to be fitted together."""

    model: Optional[Model] = None
    pose: Optional[np.ndarray] = None
    measurements: list = field(default_factory=list)

    def matrix(self) -> np.ndarray:
        """Measurements stacked as rows of ``x, y, d, an``."""
        if not self.measurements:
            return np.empty((0, 4))
        return np.vstack([m.data for m in self.measurements])

    def append(self, measurement: Measurement) -> None:
        self.measurements.append(measurement)

    def is_discontinuous(self, measurement: Measurement) -> bool:
        """True when ``measurement`` jumps away from the last one held."""
        if not self.measurements:
            raise ValueError("aggregate holds no measurement to compare with")
        last = self.measurements[-1].data
        dist_variation = abs(measurement.data[2] - last[2])
        delta = measurement.data[3] - last[3]
        angle_variation = math.atan2(math.sin(delta), math.cos(delta))
        jump = angle_variation > ANGLE_TOLERANCE or dist_variation > DIST_TOLERANCE
        if jump:
            logger.debug(
                "dist variation %s, angle variation %s", dist_variation, angle_variation
            )
        return jump

    def reset(self, measurement: Measurement) -> None:
        """Start over with ``measurement`` as the only member."""
        self.measurements = [measurement]
        self.pose = measurement.pose
        self.model = None