import numpy as np
import pytest

from scanfit.fsm import Fsm
from scanfit.functions import (
    line_dop,
    line_jacobian,
    line_least_squares,
    line_residuals,
    line_safety,
)
from scanfit.model import Aggregate, Measurement, Model, State

POSE = np.zeros(2)


def _line_model():
    return Model(
        residuals=line_residuals,
        jacobian=line_jacobian,
        parameter_indexes=(0, 1),
        error_indexes=(6, 7),
        dop=line_dop,
        least_squares=line_least_squares,
        safety=line_safety,
        w_a=np.eye(2) * 1e-4,
        w_s=np.eye(2) * 1e-4,
        q_a=np.eye(2) * 1e-6,
        q_s=np.eye(2) * 1e-6,
        mahalanobis_strict=2.0,
        mahalanobis_flex=5.0,
        parameter_count=2,
        dop_sigma=0.01,
        model_index=1,
    )


def _beam(x, an):
    return Measurement([x, x * np.tan(an), x / np.cos(an), an], POSE)


def _aggregate():
    agg = Aggregate()
    angles = np.linspace(-0.05, 0.0, 10)
    agg.reset(_beam(5.0, angles[0]))
    for an in angles[1:]:
        agg.append(_beam(5.0, an))
    return agg


def test_construction_fits_and_copies_aggregate():
    agg = _aggregate()
    model = _line_model()
    fsm = Fsm(model, agg)
    assert fsm.state is State.FSM_FLEXIBLE
    assert fsm.aggregate.model is model
    assert fsm.ekf.params[0] == pytest.approx(5.0, abs=1e-9)
    agg.append(_beam(5.0, 0.01))
    assert len(fsm.aggregate.measurements) == 10


def test_flexible_accepts_then_strict():
    fsm = Fsm(_line_model(), _aggregate())
    assert fsm.process_measurement(_beam(5.0, 0.005)) is State.FSM_STRICT
    assert len(fsm.aggregate.measurements) == 11
    assert fsm.process_measurement(_beam(5.0, 0.01)) is State.FSM_STRICT
    assert len(fsm.aggregate.measurements) == 12


def test_flexible_outlier_sinks():
    fsm = Fsm(_line_model(), _aggregate())
    assert fsm.process_measurement(_beam(8.0, 0.005)) is State.FSM_SINK
    assert len(fsm.aggregate.measurements) == 10
    assert fsm.process_measurement(_beam(5.0, 0.01)) is State.FSM_SINK


def test_strict_outlier_closes():
    fsm = Fsm(_line_model(), _aggregate())
    fsm.process_measurement(_beam(5.0, 0.005))
    assert fsm.process_measurement(_beam(8.0, 0.01)) is State.FSM_CLOSE
    assert len(fsm.aggregate.measurements) == 11
    assert fsm.ekf.params[0] == pytest.approx(5.0, abs=1e-6)


def test_least_squares_needs_measurement():
    fsm = Fsm(_line_model(), _aggregate())
    with pytest.raises(RuntimeError):
        fsm.least_squares()


def test_ordering_by_mahalanobis():
    first = Fsm(_line_model(), _aggregate())
    second = Fsm(_line_model(), _aggregate())
    first.ekf.mahalanobis = 0.5
    second.ekf.mahalanobis = 1.5
    assert first < second
    assert not second < first
    assert min([second, first]) is first