import numpy as np
import pytest

from ttsmaster.config import ShiftConfig
from ttsmaster.curves.model import CurveSet, Observation
from ttsmaster.errors import (
    ConfigError,
    InsufficientDataError,
    InsufficientOverlapError,
    InvalidDataError,
    NonConvergenceError,
)
from ttsmaster.shift import ShiftEstimator, arrhenius_shift, sweep_order, wlf_shift
from ttsmaster.shift.laws import GAS_CONSTANT, LN10, fit_arrhenius
from ttsmaster.shift.overlap import interpolant, mean_offset

TEMPERATURES = (140.0, 145.0, 150.0, 155.0, 160.0)
REFERENCE = 150.0


def _base(x: np.ndarray) -> np.ndarray:
    return x + 0.1 * x ** 2 + 0.05 * x ** 3


def _curve_set(horizontal, vertical=None, points: int = 10, noise: float = 0.0, seed: int = 7) -> CurveSet:
    vertical = vertical or {}
    rng = np.random.default_rng(seed)
    x = np.linspace(0.0, 3.0, points)
    obs = []
    for temperature, a in horizontal.items():
        y = _base(x + a) - vertical.get(temperature, 0.0)
        if noise:
            y = y + rng.normal(0.0, noise, size=y.size)
        obs += [Observation(float(xi), float(yi), temperature) for xi, yi in zip(x, y)]
    return CurveSet.from_observations(obs)


def _wlf_truth(c1: float = 8.86, c2: float = 101.6):
    return {t: float(wlf_shift(np.array(t), REFERENCE, c1, c2)) for t in TEMPERATURES}


def test_sweep_order_moves_outward_with_lower_temperature_first() -> None:
    assert sweep_order(TEMPERATURES, REFERENCE) == [150.0, 145.0, 155.0, 140.0, 160.0]


def test_reference_factor_is_exactly_zero() -> None:
    result = ShiftEstimator(ShiftConfig(method="wlf")).estimate(_curve_set(_wlf_truth()), REFERENCE)
    factor = result[REFERENCE]
    assert factor.horizontal == 0.0
    assert factor.vertical == 0.0
    assert result.temperatures == tuple(sweep_order(TEMPERATURES, REFERENCE))


def test_wlf_round_trip_recovers_shifts_and_constants() -> None:
    truth = _wlf_truth()
    result = ShiftEstimator(ShiftConfig(method="wlf")).estimate(_curve_set(truth), REFERENCE)
    for temperature, expected in truth.items():
        assert result[temperature].horizontal == pytest.approx(expected, abs=1e-3)
        assert result[temperature].pairwise == pytest.approx(expected, abs=1e-3)
    assert result.law_parameters["C1"] == pytest.approx(8.86, rel=1e-2)
    assert result.law_parameters["C2"] == pytest.approx(101.6, rel=1e-2)


def test_arrhenius_round_trip_recovers_activation_energy() -> None:
    energy = 200_000.0
    slope = energy / (GAS_CONSTANT * LN10)
    truth = {t: float(arrhenius_shift(np.array(t), REFERENCE, slope, 273.15)) for t in TEMPERATURES}
    result = ShiftEstimator(ShiftConfig(method="arrhenius")).estimate(_curve_set(truth), REFERENCE)
    for temperature, expected in truth.items():
        assert result[temperature].horizontal == pytest.approx(expected, abs=1e-3)
    assert result.law_parameters["activation_energy"] == pytest.approx(energy, rel=1e-3)


def test_derivative_method_recovers_horizontal_and_vertical_shifts() -> None:
    horizontal = {10.0: 0.35, 20.0: 0.0, 30.0: -0.4, 40.0: -0.75}
    vertical = {10.0: -0.3, 20.0: 0.0, 30.0: 0.2, 40.0: 0.5}
    config = ShiftConfig(method="derivative", vertical_shift=True, min_overlap_points=5)
    result = ShiftEstimator(config).estimate(_curve_set(horizontal, vertical), 20.0)
    for temperature in horizontal:
        assert result[temperature].horizontal == pytest.approx(horizontal[temperature], abs=1e-3)
        assert result[temperature].vertical == pytest.approx(vertical[temperature], abs=1e-3)
    assert dict(result.law_parameters) == {}


def test_window_overlap_still_finds_true_shift() -> None:
    truth = _wlf_truth()
    config = ShiftConfig(method="wlf", overlap="window", overlap_width=1.5)
    result = ShiftEstimator(config).estimate(_curve_set(truth), REFERENCE)
    for temperature, expected in truth.items():
        assert result[temperature].pairwise == pytest.approx(expected, abs=1e-3)


def test_flat_curves_resolve_ties_to_zero_shift() -> None:
    x = np.linspace(0.0, 3.0, 8)
    obs = [Observation(float(xi), 2.0, t) for t in (10.0, 20.0, 30.0) for xi in x]
    result = ShiftEstimator(ShiftConfig(method="arrhenius")).estimate(CurveSet.from_observations(obs), 20.0)
    for factor in result:
        assert factor.pairwise == 0.0
        assert factor.horizontal == 0.0
    assert result.law_parameters["slope"] == 0.0


def test_derivative_method_needs_degree_plus_one_points() -> None:
    x = np.linspace(0.0, 1.0, 6)
    obs = [Observation(float(xi), float(xi), 20.0) for xi in x]
    obs += [Observation(float(xi), float(xi), 30.0) for xi in x[:3]]
    curves = CurveSet.from_observations(obs)
    with pytest.raises(InsufficientDataError) as excinfo:
        ShiftEstimator(ShiftConfig(method="derivative")).estimate(curves, 20.0)
    assert excinfo.value.temperature == 30.0
    assert excinfo.value.required == 4


def test_unreachable_overlap_raises_with_temperature() -> None:
    config = ShiftConfig(method="wlf", min_overlap_points=20)
    with pytest.raises(InsufficientOverlapError) as excinfo:
        ShiftEstimator(config).estimate(_curve_set(_wlf_truth()), REFERENCE)
    assert excinfo.value.temperature == 145.0


def test_iteration_budget_exhaustion_raises() -> None:
    config = ShiftConfig(method="wlf", max_iterations=1)
    curves = _curve_set(_wlf_truth(), noise=0.01)
    with pytest.raises(NonConvergenceError):
        ShiftEstimator(config).estimate(curves, REFERENCE)


def test_unknown_reference_temperature_is_rejected() -> None:
    with pytest.raises(InvalidDataError):
        ShiftEstimator(ShiftConfig()).estimate(_curve_set(_wlf_truth()), 152.0)


def test_shift_table_and_dict_follow_processing_order() -> None:
    result = ShiftEstimator(ShiftConfig()).estimate(_curve_set(_wlf_truth()), REFERENCE)
    assert list(result.shift_table()) == [150.0, 145.0, 155.0, 140.0, 160.0]
    payload = result.to_dict()
    assert payload["method"] == "wlf"
    assert [f["temperature"] for f in payload["factors"]] == list(result.temperatures)


def test_arrhenius_slope_is_exact_least_squares_solution() -> None:
    temps = np.array([140.0, 145.0, 155.0, 160.0])
    inv = 1.0 / (temps + 273.15) - 1.0 / (REFERENCE + 273.15)
    shifts = 9000.0 * inv + np.array([0.01, -0.02, 0.015, -0.005])
    _, params = fit_arrhenius(temps, shifts, REFERENCE, ShiftConfig(method="arrhenius"))
    assert params["slope"] == pytest.approx(float(inv @ shifts / (inv @ inv)), rel=1e-12)


def test_non_positive_absolute_temperature_is_a_config_error() -> None:
    config = ShiftConfig(method="arrhenius", temperature_offset=0.0)
    with pytest.raises(ConfigError):
        fit_arrhenius(np.array([-10.0, 10.0]), np.array([0.1, -0.1]), 0.0, config)


def test_vertical_offset_needs_overlapping_points() -> None:
    x = np.linspace(0.0, 1.0, 6)
    fn = interpolant(x, _base(x), "cubic")
    config = ShiftConfig(method="derivative", vertical_shift=True, overlap="window", overlap_width=0.1)
    with pytest.raises(InsufficientOverlapError):
        mean_offset(fn, (0.0, 1.0), x + 5.0, _base(x), config)
    assert mean_offset(fn, (0.0, 1.0), x, _base(x) - 0.25, ShiftConfig()) == pytest.approx(0.25)
