"""State machine that grows one candidate shape over an aggregate."""

from __future__ import annotations

import logging

from scanfit.ekf import Ekf
from scanfit.model import Aggregate, Measurement, Model, State

logger = logging.getLogger(__name__)


class Fsm:
    """Tracks one model over a run of measurements until it closes or sinks."""

    def __init__(self, model: Model, aggregate: Aggregate) -> None:
        self.model = model
        self.aggregate = Aggregate(
            model=model,
            pose=aggregate.pose,
            measurements=list(aggregate.measurements),
        )
        matrix = self.aggregate.matrix()
        params = model.least_squares(self.aggregate.pose, matrix)
        covariance = model.dop(params, self.aggregate.pose, matrix, model.dop_sigma)
        self.ekf = Ekf(model, params, covariance)
        self.state = State.FSM_FLEXIBLE
        self.measurement: Measurement | None = None

    def _require_measurement(self) -> Measurement:
        if self.measurement is None:
            raise RuntimeError("no measurement has been processed yet")
        return self.measurement

    def flexible(self) -> None:
        m = self._require_measurement()
        if self.ekf.update(m.data, m.pose, self.model.mahalanobis_flex):
            self.aggregate.append(m)
            self.state = State.FSM_STRICT
        else:
            self.state = State.FSM_SINK

    def strict(self) -> None:
        m = self._require_measurement()
        if not self.ekf.update(m.data, m.pose, self.model.mahalanobis_strict):
            logger.debug("strict rejection, refitting by least squares")
            self.least_squares()
            return
        self.aggregate.append(m)

    def least_squares(self) -> None:
        """Refit the aggregate, reset the filter and retest the measurement."""
        m = self._require_measurement()
        matrix = self.aggregate.matrix()
        self.ekf.params = self.model.least_squares(self.aggregate.pose, matrix)
        self.ekf.covariance = self.model.dop(
            self.ekf.params, self.aggregate.pose, matrix, self.model.dop_sigma
        )
        if self.ekf.update(m.data, m.pose, self.model.mahalanobis_strict):
            self.aggregate.append(m)
            self.state = State.FSM_STRICT
        else:
            logger.debug("fsm closing")
            self.state = State.FSM_CLOSE

    def process_measurement(self, measurement: Measurement) -> State:
        """Feed one measurement and return the resulting state."""
        self.measurement = measurement
        self.model.safety(self.ekf.params)
        logger.debug("fsm state %s", self.state.name)
        if self.state is State.FSM_FLEXIBLE:
            self.flexible()
        elif self.state is State.FSM_STRICT:
            self.strict()
        elif self.state is State.FSM_LEAST_SQUARES:
            self.least_squares()
        return self.state

    def __lt__(self, other: "Fsm") -> bool:
        return self.ekf.mahalanobis < other.ekf.mahalanobis