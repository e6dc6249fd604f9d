"""Bootstrap confidence bands for the fitted master curve."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from ttsmaster.config import BootstrapConfig
from ttsmaster.errors import ConfigError, InsufficientReplicatesError, RunCancelledError
from ttsmaster.fusion.fuser import MasterCurveRaw
from ttsmaster.smoothing.pspline import SplineModel, SplineSmoother
from ttsmaster.util.logging import get_logger, stage_timer

logger = get_logger(__name__)


def _frozen(values: np.ndarray) -> np.ndarray:
    arr = np.array(values, dtype=np.float64, copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class ConfidenceBand:
    x: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    center: np.ndarray
    level: float
    replicates: int
    scheme: str

    def rows(self) -> List[Tuple[float, float, float]]:
        """[(x, lower, upper), ...] for reporting collaborators."""

        return [(float(a), float(b), float(c)) for a, b, c in zip(self.x, self.lower, self.upper)]

    def width(self) -> np.ndarray:
        return self.upper - self.lower

    def contains(self, values: np.ndarray) -> np.ndarray:
        v = np.asarray(values, dtype=np.float64)
        return (self.lower <= v) & (v <= self.upper)

    def to_dict(self) -> Dict[str, object]:
        return {
            "level": self.level,
            "replicates": self.replicates,
            "scheme": self.scheme,
            "x": self.x.tolist(),
            "lower": self.lower.tolist(),
            "upper": self.upper.tolist(),
            "center": self.center.tolist(),
        }


@dataclass(frozen=True, eq=False)
class BootstrapEnsemble:
    """Replicate evaluations (rows ordered by replicate index) on a fixed grid."""

    grid: np.ndarray
    curves: np.ndarray
    center: np.ndarray
    scheme: str

    def __post_init__(self) -> None:
        for name in ("grid", "curves", "center"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))

    @property
    def replicates(self) -> int:
        return int(self.curves.shape[0])

    def band(self, level: float, *, center_on_fit: bool = False) -> ConfidenceBand:
        """Percentile band at the given coverage level.

        By default lower and upper are the empirical (1 - level)/2 and
        (1 + level)/2 percentiles of the replicate evaluations. With
        center_on_fit the same percentiles of the deviations from the
        ensemble mean are added to the point estimate instead.
        """

        if not 0.0 < level < 1.0:
            raise ConfigError("confidence level must be in (0, 1)")
        alpha = (1.0 - level) / 2.0
        if center_on_fit:
            deviations = self.curves - np.mean(self.curves, axis=0)
            q_lo, q_hi = np.quantile(deviations, [alpha, 1.0 - alpha], axis=0)
            lower = self.center + q_lo
            upper = self.center + q_hi
        else:
            lower, upper = np.quantile(self.curves, [alpha, 1.0 - alpha], axis=0)
        return ConfidenceBand(
            x=_frozen(self.grid),
            lower=_frozen(lower),
            upper=_frozen(upper),
            center=_frozen(self.center),
            level=float(level),
            replicates=self.replicates,
            scheme=self.scheme,
        )


class BootstrapEngine:
    """Resample, refit and evaluate B spline replicates.

    Replicate i draws from the i-th child of one SeedSequence, and its
    evaluations land in row i, so the ensemble does not depend on the worker
    count or on completion order.
    """

    def __init__(self, config: BootstrapConfig, smoother: SplineSmoother) -> None:
        self.config = config
        self.smoother = smoother

    def check_replicates(self) -> None:
        cfg = self.config
        required = cfg.required_replicates
        if cfg.replicates < required:
            raise InsufficientReplicatesError(cfg.replicates, required, cfg.confidence_level)

    def grid_for(self, model: SplineModel) -> np.ndarray:
        lo, hi = model.domain
        if self.config.grid is None:
            return np.linspace(lo, hi, self.config.grid_points)
        grid = np.asarray(self.config.grid, dtype=np.float64)
        if np.any(grid < lo) or np.any(grid > hi):
            raise ConfigError(f"evaluation grid must lie inside the fitted domain [{lo:g}, {hi:g}]")
        return grid

    def run(
        self,
        model: SplineModel,
        raw: MasterCurveRaw,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> ConfidenceBand:
        ensemble = self.ensemble(model, raw, cancel=cancel)
        return ensemble.band(self.config.confidence_level, center_on_fit=self.config.center_on_fit)

    def ensemble(
        self,
        model: SplineModel,
        raw: MasterCurveRaw,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> BootstrapEnsemble:
        cfg = self.config
        self.check_replicates()
        grid = self.grid_for(model)
        children = np.random.SeedSequence(cfg.seed).spawn(cfg.replicates)
        groups = list(raw.groups().values())
        curves = np.empty((cfg.replicates, grid.size), dtype=np.float64)

        def replicate(index: int) -> Optional[np.ndarray]:
            if cancel is not None and cancel.is_set():
                return None
            rng = np.random.default_rng(children[index])
            x_star, y_star = self._resample(rng, model, groups)
            return self.smoother.refit(model, x_star, y_star).evaluate(grid)

        completed = 0
        with stage_timer(
            logger,
            "bootstrap",
            "bootstrap ensemble built",
            replicates=cfg.replicates,
            scheme=cfg.scheme,
            workers=cfg.workers,
        ):
            if cfg.workers <= 1:
                for index in range(cfg.replicates):
                    values = replicate(index)
                    if values is None:
                        raise RunCancelledError(completed, cfg.replicates)
                    curves[index] = values
                    completed += 1
            else:
                with ThreadPoolExecutor(max_workers=cfg.workers) as pool:
                    results = list(pool.map(replicate, range(cfg.replicates)))
                for index, values in enumerate(results):
                    if values is None:
                        continue
                    curves[index] = values
                    completed += 1
                if completed < cfg.replicates:
                    raise RunCancelledError(completed, cfg.replicates)

        center = np.asarray(model.evaluate(grid), dtype=np.float64)
        return BootstrapEnsemble(grid=grid, curves=curves, center=center, scheme=cfg.scheme)

    def _resample(
        self,
        rng: np.random.Generator,
        model: SplineModel,
        groups: List[np.ndarray],
    ) -> Tuple[np.ndarray, np.ndarray]:
        scheme = self.config.scheme
        fitted = model.fitted()
        n = fitted.size
        if scheme == "residual":
            resid = model.residuals()
            centered = resid - np.mean(resid)
            return model.x, fitted + rng.choice(centered, size=n, replace=True)
        if scheme == "parametric":
            return model.x, fitted + rng.normal(0.0, model.sigma, size=n)
        draws = np.concatenate([rng.choice(idx, size=idx.size, replace=True) for idx in groups])
        return model.x[draws], model.y[draws]
