import numpy as np
import pytest

from ttsmaster.curves.model import CurveSet, Observation
from ttsmaster.errors import InsufficientDataError, InvalidDataError


def _observations(temperature: float, xs, ys=None):
    ys = xs if ys is None else ys
    return [Observation(float(x), float(y), temperature) for x, y in zip(xs, ys)]


def test_groups_are_sorted_by_x_during_ingestion() -> None:
    obs = _observations(40.0, [2.0, 0.0, 1.0], [20.0, 0.0, 10.0]) + _observations(50.0, [0.0, 1.0])
    curves = CurveSet.from_observations(obs)
    x, y = curves.curve(40.0)
    assert x.tolist() == [0.0, 1.0, 2.0]
    assert y.tolist() == [0.0, 10.0, 20.0]
    assert curves.temperatures == (40.0, 50.0)
    assert curves.n_points == 5


def test_single_point_group_raises_instead_of_being_skipped() -> None:
    obs = _observations(40.0, [0.0, 1.0, 2.0]) + _observations(50.0, [0.5])
    with pytest.raises(InsufficientDataError) as excinfo:
        CurveSet.from_observations(obs)
    assert excinfo.value.temperature == 50.0
    assert excinfo.value.required == 2


def test_duplicate_x_within_group_is_rejected() -> None:
    obs = _observations(40.0, [0.0, 1.0, 1.0])
    with pytest.raises(InvalidDataError):
        CurveSet.from_observations(obs)


def test_non_finite_values_are_rejected() -> None:
    obs = _observations(40.0, [0.0, 1.0], [1.0, float("nan")])
    with pytest.raises(InvalidDataError):
        CurveSet.from_observations(obs)


def test_from_arrays_groups_columns_by_temperature() -> None:
    curves = CurveSet.from_arrays(
        x=[0.0, 1.0, 0.0, 1.0, 2.0],
        y=[5.0, 4.0, 3.0, 2.0, 1.0],
        temperature=[30, 30, 40, 40, 40],
    )
    assert len(curves) == 2
    assert 40 in curves
    assert 35.0 not in curves
    assert curves.x_range == (0.0, 2.0)
    x, _ = curves.curve(40.0)
    assert x.size == 3


def test_from_arrays_rejects_ragged_columns() -> None:
    with pytest.raises(InvalidDataError):
        CurveSet.from_arrays([0.0, 1.0], [1.0], [30.0, 30.0])


def test_curve_arrays_are_read_only() -> None:
    curves = CurveSet.from_arrays([0.0, 1.0], [1.0, 2.0], [30.0, 30.0])
    x, _ = curves.curve(30.0)
    with pytest.raises(ValueError):
        x[0] = 5.0


def test_middle_temperature_picks_lower_median() -> None:
    obs = []
    for t in (10.0, 20.0, 30.0, 40.0):
        obs += _observations(t, np.linspace(0.0, 1.0, 3))
    assert CurveSet.from_observations(obs).middle_temperature() == 20.0


def test_empty_input_is_insufficient() -> None:
    with pytest.raises(InsufficientDataError):
        CurveSet.from_observations([])
