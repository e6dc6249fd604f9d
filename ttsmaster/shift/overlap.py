"""Pairwise overlap matching between a curve and its already shifted neighbour.

The neighbour is represented by a callable that can be evaluated anywhere on
its x-range (an interpolant of y, or a local derivative estimate). For a
translation s the curve's points move to x + s; the distance is the mean
squared mismatch over the points that land in the overlap region. A coarse
grid over every translation that produces any overlap picks the basin, and a
bounded Brent search refines it.
"""

from __future__ import annotations

from typing import Callable, Tuple

import numpy as np
from scipy.interpolate import CubicSpline
from scipy.optimize import minimize_scalar

from ttsmaster.config import ShiftConfig
from ttsmaster.errors import InsufficientOverlapError, NonConvergenceError

Evaluator = Callable[[np.ndarray], np.ndarray]

# Relative slack when testing whether a shifted point falls on the neighbour's edge.
_EDGE_EPS = 1e-9
# Stand-in for "no overlap" inside the bounded refinement, which needs finite values.
_NO_OVERLAP = 1e300


def interpolant(x: np.ndarray, y: np.ndarray, kind: str) -> Evaluator:
    """Return a callable interpolating (x, y); cubic falls back to linear for two points."""

    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if kind == "cubic" and x.size >= 3:
        spline = CubicSpline(x, y, bc_type="not-a-knot", extrapolate=True)
        return lambda q: spline(np.asarray(q, dtype=np.float64))
    return lambda q: np.interp(np.asarray(q, dtype=np.float64), x, y)


def overlap_mask(xs: np.ndarray, ref_lo: float, ref_hi: float, config: ShiftConfig) -> np.ndarray:
    """Mask of shifted curve points that take part in the distance."""

    span = max(ref_hi - ref_lo, abs(ref_hi), abs(ref_lo), 1.0)
    eps = _EDGE_EPS * span
    lo = max(ref_lo, float(xs[0]))
    hi = min(ref_hi, float(xs[-1]))
    if config.overlap == "window":
        assert config.overlap_width is not None  # noqa: S101 - enforced by ShiftConfig
        mid = 0.5 * (lo + hi)
        half = 0.5 * config.overlap_width
        lo, hi = max(lo, mid - half), min(hi, mid + half)
    return (xs >= lo - eps) & (xs <= hi + eps)


def overlap_distance(
    shift: float,
    neighbour: Evaluator,
    ref_range: Tuple[float, float],
    x: np.ndarray,
    values: np.ndarray,
    config: ShiftConfig,
) -> float:
    """Mean squared mismatch for one translation; inf when the overlap is too small."""

    xs = x + shift
    mask = overlap_mask(xs, ref_range[0], ref_range[1], config)
    if int(np.count_nonzero(mask)) < config.min_overlap_points:
        return float("inf")
    diff = neighbour(xs[mask]) - values[mask]
    return float(np.mean(diff * diff))


def best_translation(
    neighbour: Evaluator,
    ref_range: Tuple[float, float],
    x: np.ndarray,
    values: np.ndarray,
    config: ShiftConfig,
) -> float:
    """Return the translation of (x, values) that best overlays the neighbour.

    Grid translations whose distance is within tie_tolerance of the minimum
    are tied; the one closest to zero seeds the refinement. The refined value
    is kept only when it does not increase the distance.
    """

    x = np.asarray(x, dtype=np.float64)
    values = np.asarray(values, dtype=np.float64)
    lo = float(ref_range[0] - x[-1])
    hi = float(ref_range[1] - x[0])
    grid = np.linspace(lo, hi, config.search_points)
    if lo <= 0.0 <= hi:
        grid = np.union1d(grid, [0.0])
    dist = np.array([overlap_distance(s, neighbour, ref_range, x, values, config) for s in grid])
    finite = np.isfinite(dist)
    if not bool(np.any(finite)):
        raise InsufficientOverlapError(
            f"no translation gives {config.min_overlap_points} overlapping point(s) with the neighbour curve",
            required=config.min_overlap_points,
        )
    best = float(np.min(dist[finite]))
    tied = np.flatnonzero(finite & (dist <= best + config.tie_tolerance))
    seed_idx = int(tied[np.argmin(np.abs(grid[tied]))])
    seed = float(grid[seed_idx])
    seed_dist = float(dist[seed_idx])
    if seed_dist == 0.0:
        return seed

    left = float(grid[max(seed_idx - 1, 0)])
    right = float(grid[min(seed_idx + 1, grid.size - 1)])
    if right <= left:
        return seed

    def objective(s: float) -> float:
        d = overlap_distance(s, neighbour, ref_range, x, values, config)
        return d if np.isfinite(d) else _NO_OVERLAP

    result = minimize_scalar(
        objective,
        bounds=(left, right),
        method="bounded",
        options={"xatol": config.tolerance, "maxiter": config.max_iterations},
    )
    if not result.success:
        raise NonConvergenceError(
            f"overlap refinement did not converge: {result.message}",
            iterations=int(getattr(result, "nfev", config.max_iterations)),
            tolerance=config.tolerance,
        )
    refined = float(result.x)
    if float(result.fun) <= seed_dist:
        return refined
    return seed


def mean_offset(
    neighbour: Evaluator,
    ref_range: Tuple[float, float],
    xs: np.ndarray,
    y: np.ndarray,
    config: ShiftConfig,
) -> float:
    """Mean vertical gap between the neighbour and an already translated curve."""

    xs = np.asarray(xs, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    mask = overlap_mask(xs, ref_range[0], ref_range[1], config)
    count = int(np.count_nonzero(mask))
    if count < config.min_overlap_points:
        raise InsufficientOverlapError(
            f"vertical shift needs {config.min_overlap_points} overlapping point(s), found {count}",
            required=config.min_overlap_points,
        )
    return float(np.mean(neighbour(xs[mask]) - y[mask]))
