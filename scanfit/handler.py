"""Scan processing: association with the map and building new entities."""

from __future__ import annotations

import logging
import math

import numpy as np

from scanfit.ekf import Iekf
from scanfit.fsm import Fsm
from scanfit.model import (
    AGGREGATE_SIZE,
    MAHALANOBIS_AUGMENT,
    Aggregate,
    Entity,
    Measurement,
    State,
)
from scanfit.scan import Scan

logger = logging.getLogger(__name__)


class EntityMap:
    """The entities mapped so far."""

    def __init__(self, threshold: float = MAHALANOBIS_AUGMENT) -> None:
        self.entities: list[Entity] = []
        self.threshold = threshold

    def associate(self, measurement: Measurement) -> bool:
        """Attach ``measurement`` to the closest entity if close enough."""
        min_distance = math.inf
        closest = None
        for entity in self.entities:
            model = entity.model
            r = -float(model.residuals(entity.params, measurement.pose, measurement.data)[0])
            df = model.jacobian(entity.params, measurement.pose, measurement.data)
            h = df[:, model.parameter_indexes]
            j = df[:, model.error_indexes]
            s = (h @ entity.covariance @ h.T + j @ model.w_s @ j.T)[0, 0]
            with np.errstate(divide="ignore", invalid="ignore"):
                distance = abs(np.float64(r * r) / s)
            if distance <= min_distance:
                min_distance = distance
                closest = entity
        if closest is not None and min_distance <= self.threshold:
            logger.debug("associated at %s", min_distance)
            measurement.entity = closest
            return True
        logger.debug("not associated, closest at %s", min_distance)
        return False

    def augment(self, measurement: Measurement) -> None:
        """Refine the measurement's associated entity with it."""
        if measurement.entity is None:
            raise ValueError("cannot augment with a measurement that is not associated")
        Iekf(measurement.entity).update(measurement.data, measurement.pose, 1)


class Handler:
    """Runs measurements through association, continuity and shape FSMs."""

    def __init__(self, models) -> None:
        self.models = tuple(models)
        self.measurement: Measurement | None = None
        self.count = 0
        self.state = State.BEGIN
        self.map = EntityMap()
        self.aggregate = Aggregate()
        self.fsms: list[Fsm] = []
        self.fsms_done: list[Fsm] = []

    def preprocess_scan(self, scan: Scan) -> list[Measurement]:
        """Augment the map with the scan; return what no entity explains.

        The scan is swept forwards, then backwards; only measurements left
        unassociated on the backward sweep are returned, in that order.
        """
        for row in scan.data:
            m = Measurement(row, scan.location)
            if self.map.associate(m):
                self.map.augment(m)
        leftovers = []
        for row in reversed(scan.data):
            m = Measurement(row, scan.location)
            if self.map.associate(m):
                self.map.augment(m)
            else:
                leftovers.append(m)
        return leftovers

    def _begin(self) -> None:
        self.aggregate.reset(self.measurement)
        self.count = 1
        self.state = State.CONTINUOUS
        self.fsms = []
        self.fsms_done = []

    def _continuous(self) -> None:
        if self.aggregate.is_discontinuous(self.measurement):
            logger.debug("not continuous")
            self.state = State.BEGIN
            return
        self.aggregate.append(self.measurement)
        if self.count < AGGREGATE_SIZE - 1:
            self.count += 1
        else:
            self.state = State.FSM
            self._fsm()

    def _fsm(self) -> None:
        if not self.fsms:
            self.fsms = [Fsm(model, self.aggregate) for model in self.models]
        for fsm in self.fsms:
            state = fsm.process_measurement(self.measurement)
            if state in (State.FSM_CLOSE, State.FSM_SINK) and not any(
                done is fsm for done in self.fsms_done
            ):
                self.fsms_done.append(fsm)
        if len(self.fsms_done) == len(self.fsms):
            self.close_fsms()

    def close_fsms(self) -> None:
        """Map the last finished FSM's shape and start a new aggregate."""
        last = self.fsms_done[-1] if self.fsms_done else None
        if last is not None and last.state > State.FSM_FLEXIBLE:
            last.least_squares()
            self.map.entities.append(
                Entity(last.aggregate.model, last.ekf.params.copy(), last.ekf.covariance.copy())
            )
        self.fsms_done = []
        self.fsms = []
        self.count = 0
        self.state = State.BEGIN
        if self.measurement is not None:
            self._begin()

    def end_scan(self) -> None:
        """Map the best still-running shape and reset for the next scan."""
        running = [fsm for fsm in self.fsms if fsm.state is State.FSM_STRICT]
        for fsm in running:
            fsm.least_squares()
        if running:
            best = min(running)
            self.map.entities.append(
                Entity(best.model, best.ekf.params.copy(), best.ekf.covariance.copy())
            )
        self.fsms_done = []
        self.fsms = []
        self.count = 0
        self.state = State.BEGIN

    def process_measurement(self, measurement: Measurement) -> State:
        """Feed one measurement and return the handler's state."""
        self.measurement = measurement
        if self.map.associate(measurement):
            self.map.augment(measurement)
            self.state = State.BEGIN
            return self.state
        logger.debug("handler state %s", self.state.name)
        if self.state is State.BEGIN:
            self._begin()
        elif self.state is State.CONTINUOUS:
            self._continuous()
        elif self.state is State.FSM:
            self._fsm()
        return self.state