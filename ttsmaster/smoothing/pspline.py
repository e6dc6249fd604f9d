"""Penalized B-spline (P-spline) regression for the fused master curve.

Equally spaced cubic B-splines over the data domain with a difference
penalty on adjacent coefficients (Eilers & Marx). The smoothing parameter is
either fixed or picked by generalized cross-validation:

    GCV(lambda) = n * RSS / (n - edf)^2,   edf = trace(B (B'B + lambda P)^-1 B')

GCV ties resolve toward the larger lambda, i.e. the smoother curve.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple, Union

import numpy as np
from scipy import linalg
from scipy.interpolate import BSpline
from scipy.optimize import minimize_scalar

from ttsmaster.config import SmoothingConfig
from ttsmaster.errors import FitError
from ttsmaster.fusion.fuser import MasterCurveRaw
from ttsmaster.util.logging import get_logger, stage_timer

logger = get_logger(__name__)

ArrayLike = Union[float, np.ndarray]


def _frozen(values: np.ndarray) -> np.ndarray:
    arr = np.array(values, dtype=np.float64, copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class SplineModel:
    """Fitted master curve over [domain[0], domain[1]]; NaN outside it."""

    knots: np.ndarray
    coefficients: np.ndarray
    degree: int
    penalty_order: int
    smoothing_parameter: float
    edf: float
    gcv: float
    x: np.ndarray
    y: np.ndarray
    fitted_values: np.ndarray
    _spline: BSpline = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        for name in ("knots", "coefficients", "x", "y", "fitted_values"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))
        spline = BSpline(self.knots, self.coefficients, self.degree, extrapolate=False)
        object.__setattr__(self, "_spline", spline)

    @property
    def domain(self) -> Tuple[float, float]:
        k = self.degree
        return float(self.knots[k]), float(self.knots[-k - 1])

    @property
    def n_knots(self) -> int:
        """Interior knot count."""
        return int(self.knots.size - 2 * (self.degree + 1))

    def evaluate(self, x: ArrayLike) -> ArrayLike:
        values = self._spline(np.asarray(x, dtype=np.float64))
        if np.ndim(values) == 0:
            return float(values)
        return values

    def derivative(self, x: ArrayLike, nu: int = 1) -> ArrayLike:
        values = self._spline.derivative(nu)(np.asarray(x, dtype=np.float64))
        if np.ndim(values) == 0:
            return float(values)
        return values

    def residuals(self) -> np.ndarray:
        return self.y - self.fitted_values

    def fitted(self) -> np.ndarray:
        return self.fitted_values

    @property
    def rss(self) -> float:
        r = self.residuals()
        return float(np.dot(r, r))

    @property
    def sigma(self) -> float:
        """Residual standard deviation using n - edf degrees of freedom."""

        dof = self.y.size - self.edf
        if dof <= 0:
            return 0.0
        return float(np.sqrt(self.rss / dof))

    @property
    def r_squared(self) -> float:
        centered = self.y - np.mean(self.y)
        tss = float(np.dot(centered, centered))
        if tss == 0.0:
            return 1.0
        return 1.0 - self.rss / tss


def _knot_vector(lo: float, hi: float, n_knots: int, degree: int) -> np.ndarray:
    """Equally spaced knots with `degree` extra knots beyond each end of [lo, hi]."""

    inner = np.linspace(lo, hi, n_knots + 2)
    dx = (hi - lo) / (n_knots + 1)
    steps = dx * np.arange(1, degree + 1, dtype=np.float64)
    return np.concatenate((lo - steps[::-1], inner, hi + steps))


def _penalty(n_basis: int, order: int) -> np.ndarray:
    d = np.diff(np.eye(n_basis), n=order, axis=0)
    return d.T @ d


class _PenalizedSystem:
    """Normal equations for one design; solves for any smoothing parameter."""

    def __init__(self, x: np.ndarray, y: np.ndarray, knots: np.ndarray, degree: int, penalty_order: int) -> None:
        self.x = x
        self.y = y
        self.basis = BSpline.design_matrix(x, knots, degree).toarray()
        self.btb = self.basis.T @ self.basis
        self.bty = self.basis.T @ y
        self.penalty = _penalty(self.basis.shape[1], penalty_order)

    def solve(self, lam: float) -> Tuple[np.ndarray, np.ndarray, float, float]:
        """Return (coefficients, fitted, edf, gcv)."""

        a = self.btb + lam * self.penalty
        try:
            rhs = np.column_stack((self.bty, self.btb))
            sol = linalg.solve(a, rhs, assume_a="sym")
        except (linalg.LinAlgError, ValueError) as exc:
            raise FitError(f"penalized normal equations are singular at lambda={lam:g}") from exc
        coef = sol[:, 0]
        edf = float(np.trace(sol[:, 1:]))
        fitted = self.basis @ coef
        resid = self.y - fitted
        rss = float(np.dot(resid, resid))
        n = self.y.size
        gcv = n * rss / (n - edf) ** 2 if n - edf > 1e-12 else float("inf")
        return coef, fitted, edf, gcv


class SplineSmoother:
    """Fit SplineModels to fused master-curve data."""

    def __init__(self, config: SmoothingConfig) -> None:
        self.config = config

    def fit(self, raw: MasterCurveRaw) -> SplineModel:
        return self.fit_arrays(raw.x, raw.y)

    def fit_arrays(self, x: np.ndarray, y: np.ndarray) -> SplineModel:
        with stage_timer(logger, "smooth", "spline fitted") as ctx:
            model = self._fit(x, y)
            ctx.update(knots=model.n_knots, smoothing=f"{model.smoothing_parameter:.4g}", edf=f"{model.edf:.2f}")
        return model

    def _fit(self, x: np.ndarray, y: np.ndarray) -> SplineModel:
        cfg = self.config
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        if x.shape != y.shape or x.ndim != 1:
            raise FitError("x and y must be one-dimensional arrays of equal length")
        n_distinct = int(np.unique(x).size)
        n_knots = self._knot_count(n_distinct)
        lo, hi = float(np.min(x)), float(np.max(x))
        if not hi > lo:
            raise FitError("spline fit needs at least two distinct x values")

        knots = _knot_vector(lo, hi, n_knots, cfg.degree)
        system = _PenalizedSystem(x, y, knots, cfg.degree, cfg.penalty_order)
        if cfg.smoothing_parameter is not None:
            lam = float(cfg.smoothing_parameter)
        else:
            lam = self._select_lambda(system)
        coef, fitted, edf, gcv = system.solve(lam)
        model = SplineModel(
            knots=knots,
            coefficients=coef,
            degree=cfg.degree,
            penalty_order=cfg.penalty_order,
            smoothing_parameter=lam,
            edf=edf,
            gcv=gcv,
            x=x,
            y=y,
            fitted_values=fitted,
        )
        return model

    def refit(self, model: SplineModel, x: np.ndarray, y: np.ndarray) -> SplineModel:
        """Refit with the knots, degree, penalty and lambda of an existing model."""

        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        system = _PenalizedSystem(x, y, model.knots, model.degree, model.penalty_order)
        coef, fitted, edf, gcv = system.solve(model.smoothing_parameter)
        return SplineModel(
            knots=model.knots,
            coefficients=coef,
            degree=model.degree,
            penalty_order=model.penalty_order,
            smoothing_parameter=model.smoothing_parameter,
            edf=edf,
            gcv=gcv,
            x=x,
            y=y,
            fitted_values=fitted,
        )

    def _knot_count(self, n_distinct: int) -> int:
        cfg = self.config
        if cfg.n_knots is not None:
            if n_distinct < cfg.n_knots + cfg.order:
                raise FitError(
                    f"{n_distinct} distinct x values cannot support {cfg.n_knots} knots "
                    f"with a spline of order {cfg.order}"
                )
            return cfg.n_knots
        auto = min(cfg.max_knots, max(4, n_distinct // 3), n_distinct - cfg.order)
        if auto < 0:
            raise FitError(f"{n_distinct} distinct x values are too few for a spline of order {cfg.order}")
        return auto

    def _select_lambda(self, system: _PenalizedSystem) -> float:
        cfg = self.config
        log_grid = np.linspace(np.log10(cfg.lambda_min), np.log10(cfg.lambda_max), cfg.lambda_grid)
        scores = np.array([system.solve(10.0 ** g)[3] for g in log_grid])
        if not bool(np.any(np.isfinite(scores))):
            raise FitError("generalized cross-validation is undefined for every smoothing parameter")
        best = float(np.nanmin(scores))
        tol = cfg.gcv_tie_tolerance * max(abs(best), 1e-300)
        tied = np.flatnonzero(scores <= best + tol)
        idx = int(tied[-1])  # largest lambda among ties
        chosen = float(log_grid[idx])
        if best == 0.0:
            return 10.0 ** chosen

        left = float(log_grid[max(idx - 1, 0)])
        right = float(log_grid[min(idx + 1, log_grid.size - 1)])
        if right > left:
            result = minimize_scalar(
                lambda g: system.solve(10.0 ** g)[3],
                bounds=(left, right),
                method="bounded",
            )
            if result.success and float(result.fun) < scores[idx] - tol:
                chosen = float(result.x)
        if idx in (0, log_grid.size - 1):
            logger.debug("GCV optimum at the edge of the lambda grid (lambda=%.3g)", 10.0 ** chosen)
        return 10.0 ** chosen
