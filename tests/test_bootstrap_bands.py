import threading

import numpy as np
import pytest

from ttsmaster.bootstrap import BootstrapEngine
from ttsmaster.config import BootstrapConfig, SmoothingConfig
from ttsmaster.errors import ConfigError, InsufficientReplicatesError, RunCancelledError
from ttsmaster.fusion import FusedPoint, MasterCurveRaw
from ttsmaster.smoothing import SplineSmoother


def _raw(seed: int = 11) -> MasterCurveRaw:
    rng = np.random.default_rng(seed)
    points = []
    for temperature, offset in ((10.0, -1.0), (20.0, 0.0), (30.0, 1.0)):
        x = np.linspace(offset, offset + 1.5, 12)
        y = np.sin(x) + rng.normal(0.0, 0.05, size=x.size)
        points += [FusedPoint(float(a), float(b), temperature) for a, b in zip(x, y)]
    points.sort(key=lambda p: (p.x_shifted, p.source_temperature))
    return MasterCurveRaw(points)


def _engine(**overrides):
    params = {"replicates": 200, "seed": 1234, "grid_points": 25}
    params.update(overrides)
    smoother = SplineSmoother(SmoothingConfig())
    raw = _raw()
    model = smoother.fit(raw)
    return BootstrapEngine(BootstrapConfig(**params), smoother), model, raw


def test_too_few_replicates_for_level_is_rejected() -> None:
    engine, model, raw = _engine(replicates=100)
    with pytest.raises(InsufficientReplicatesError) as excinfo:
        engine.run(model, raw)
    assert excinfo.value.required == 200


def test_required_replicates_grow_with_level() -> None:
    assert BootstrapConfig(confidence_level=0.95).required_replicates == 200
    assert BootstrapConfig(confidence_level=0.99).required_replicates == 1000


def test_percentile_band_covers_point_estimate() -> None:
    engine, model, raw = _engine()
    band = engine.run(model, raw)
    estimate = model.evaluate(band.x)
    assert np.mean(band.contains(estimate)) >= 0.9
    assert np.all(band.width() >= 0.0)
    assert band.replicates == 200
    assert len(band.rows()) == 25


def test_lower_coverage_band_nests_inside_higher() -> None:
    engine, model, raw = _engine(replicates=400)
    ensemble = engine.ensemble(model, raw)
    narrow = ensemble.band(0.8)
    wide = ensemble.band(0.95)
    assert np.all(wide.lower <= narrow.lower)
    assert np.all(narrow.upper <= wide.upper)


def test_worker_count_does_not_change_the_ensemble() -> None:
    serial, model, raw = _engine(workers=1)
    threaded, _, _ = _engine(workers=4)
    a = serial.ensemble(model, raw)
    b = threaded.ensemble(model, raw)
    assert np.array_equal(a.curves, b.curves)


def test_same_seed_reproduces_band() -> None:
    engine, model, raw = _engine()
    first = engine.run(model, raw)
    second = engine.run(model, raw)
    assert np.array_equal(first.lower, second.lower)
    assert np.array_equal(first.upper, second.upper)


def test_cancel_event_aborts_run() -> None:
    engine, model, raw = _engine()
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RunCancelledError) as excinfo:
        engine.run(model, raw, cancel=cancel)
    assert excinfo.value.completed == 0
    assert excinfo.value.total == 200


@pytest.mark.parametrize("scheme", ["group", "parametric"])
def test_alternative_schemes_produce_finite_bands(scheme: str) -> None:
    engine, model, raw = _engine(scheme=scheme)
    band = engine.run(model, raw)
    assert band.scheme == scheme
    assert np.all(np.isfinite(band.lower))
    assert np.all(np.isfinite(band.upper))


def test_default_band_is_empirical_percentiles_of_replicates() -> None:
    engine, model, raw = _engine()
    ensemble = engine.ensemble(model, raw)
    band = engine.run(model, raw)
    lower, upper = np.quantile(ensemble.curves, [0.025, 0.975], axis=0)
    assert np.allclose(band.lower, lower)
    assert np.allclose(band.upper, upper)


def test_centered_band_adds_unclamped_deviation_percentiles() -> None:
    engine, model, raw = _engine(center_on_fit=True)
    ensemble = engine.ensemble(model, raw)
    band = engine.run(model, raw)
    deviations = ensemble.curves - ensemble.curves.mean(axis=0)
    q_lo, q_hi = np.quantile(deviations, [0.025, 0.975], axis=0)
    assert np.allclose(band.lower, ensemble.center + q_lo)
    assert np.allclose(band.upper, ensemble.center + q_hi)


def test_grid_outside_fitted_domain_is_rejected() -> None:
    engine, model, raw = _engine(grid=(-5.0, 0.0))
    with pytest.raises(ConfigError):
        engine.run(model, raw)
