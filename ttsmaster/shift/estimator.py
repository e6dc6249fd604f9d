"""Shift-factor estimation: outward sweep from the reference plus a per-method strategy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from ttsmaster.config import ShiftConfig
from ttsmaster.curves.model import CurveSet
from ttsmaster.errors import InsufficientDataError, InvalidDataError
from ttsmaster.shift.derivative import LocalDerivative, default_bandwidth
from ttsmaster.shift.laws import fit_arrhenius, fit_wlf
from ttsmaster.shift.overlap import best_translation, interpolant, mean_offset
from ttsmaster.shift.types import ShiftFactor, ShiftResult
from ttsmaster.util.logging import get_logger, stage_timer

logger = get_logger(__name__)

Curve = Tuple[np.ndarray, np.ndarray]
LawFit = Callable[[np.ndarray, np.ndarray, float, ShiftConfig], Tuple[np.ndarray, Dict[str, float]]]


def sweep_order(temperatures: Tuple[float, ...], reference: float) -> List[float]:
    """Reference first, then increasing distance from it; lower temperature wins ties."""

    return sorted(temperatures, key=lambda t: (abs(t - reference), t))


def _neighbour(temperatures: Tuple[float, ...], temperature: float, reference: float) -> float:
    """The adjacent temperature one step closer to the reference."""

    idx = temperatures.index(temperature)
    return temperatures[idx - 1] if temperature > reference else temperatures[idx + 1]


@dataclass(frozen=True)
class _Matcher:
    """Pairwise matching step for one method.

    Returns (cumulative horizontal, cumulative vertical) for `curve` given the
    already shifted neighbour curve.
    """

    config: ShiftConfig
    bandwidth: float = 1.0

    def overlay(self, neighbour: Curve, curve: Curve) -> Tuple[float, float]:
        nx, ny = neighbour
        x, y = curve
        fn = interpolant(nx, ny, self.config.interpolation)
        shift = best_translation(fn, (float(nx[0]), float(nx[-1])), x, y, self.config)
        return shift, 0.0

    def derivative(self, neighbour: Curve, curve: Curve) -> Tuple[float, float]:
        nx, ny = neighbour
        x, y = curve
        cfg = self.config
        ref_slope = LocalDerivative(nx, ny, self.bandwidth, cfg.derivative_degree)
        slopes = LocalDerivative(x, y, self.bandwidth, cfg.derivative_degree)(x)
        ref_range = (float(nx[0]), float(nx[-1]))
        shift = best_translation(ref_slope, ref_range, x, slopes, cfg)
        if not cfg.vertical_shift:
            return shift, 0.0
        fn = interpolant(nx, ny, cfg.interpolation)
        return shift, mean_offset(fn, ref_range, x + shift, y, cfg)


_LAWS: Dict[str, Optional[LawFit]] = {
    "arrhenius": fit_arrhenius,
    "wlf": fit_wlf,
    "derivative": None,
}


class ShiftEstimator:
    """Compute one ShiftFactor per temperature relative to a reference temperature.

    The method is a tag on ShiftConfig: arrhenius and wlf share the raw-curve
    overlap matcher and differ in the law fitted to its estimates; derivative
    matches slope curves and keeps the pairwise estimates as they are.
    """

    def __init__(self, config: ShiftConfig) -> None:
        self.config = config

    def estimate(self, curve_set: CurveSet, reference_temperature: float) -> ShiftResult:
        with stage_timer(logger, "shift", "shift factors estimated", method=self.config.method) as ctx:
            result = self._estimate(curve_set, reference_temperature)
            ctx["temperatures"] = len(result)
            ctx["reference"] = result.reference_temperature
        return result

    def _estimate(self, curve_set: CurveSet, reference_temperature: float) -> ShiftResult:
        cfg = self.config
        reference = float(reference_temperature)
        if reference not in curve_set:
            raise InvalidDataError(f"reference temperature {reference:g} is not part of the curve set")
        self._check_group_sizes(curve_set)

        temperatures = curve_set.temperatures
        matcher = _Matcher(cfg, bandwidth=self._bandwidth(curve_set))
        step = matcher.derivative if cfg.method == "derivative" else matcher.overlay

        order = sweep_order(temperatures, reference)
        shifted: Dict[float, Curve] = {reference: curve_set.curve(reference)}
        pairwise: Dict[float, Tuple[float, float]] = {reference: (0.0, 0.0)}
        for temperature in order[1:]:
            neighbour = _neighbour(temperatures, temperature, reference)
            x, y = curve_set.curve(temperature)
            try:
                h, v = step(shifted[neighbour], (x, y))
            except InsufficientDataError as exc:
                exc.temperature = temperature
                raise
            pairwise[temperature] = (h, v)
            shifted[temperature] = (x + h, y + v)
            logger.debug(
                "pairwise shift %g -> %g: a_h=%.6g a_v=%.6g",
                temperature,
                neighbour,
                h,
                v,
                extra={"temperature": temperature, "method": cfg.method},
            )

        horizontal, params = self._apply_law(order, pairwise, reference)
        factors = tuple(
            ShiftFactor(
                temperature=t,
                horizontal=0.0 if t == reference else horizontal[t],
                vertical=0.0 if t == reference else pairwise[t][1],
                pairwise=pairwise[t][0],
            )
            for t in order
        )
        return ShiftResult(
            method=cfg.method,
            reference_temperature=reference,
            factors=factors,
            law_parameters=params,
        )

    def _check_group_sizes(self, curve_set: CurveSet) -> None:
        required = self.config.min_points
        for temperature in curve_set:
            count = len(curve_set[temperature])
            if count < required:
                raise InsufficientDataError(
                    f"temperature {temperature:g} has {count} point(s); method {self.config.method!r} needs {required}",
                    temperature=temperature,
                    required=required,
                )

    def _bandwidth(self, curve_set: CurveSet) -> float:
        if self.config.bandwidth is not None:
            return self.config.bandwidth
        spans = []
        for temperature in curve_set:
            x, _ = curve_set.curve(temperature)
            spans.append(float(x[-1] - x[0]))
        return default_bandwidth(spans)

    def _apply_law(
        self,
        order: List[float],
        pairwise: Dict[float, Tuple[float, float]],
        reference: float,
    ) -> Tuple[Dict[float, float], Dict[str, float]]:
        law = _LAWS[self.config.method]
        others = [t for t in order if t != reference]
        if law is None or not others:
            return {t: pairwise[t][0] for t in order}, {}
        temps = np.array(others, dtype=np.float64)
        raw = np.array([pairwise[t][0] for t in others], dtype=np.float64)
        fitted, params = law(temps, raw, reference, self.config)
        values = {t: float(v) for t, v in zip(others, fitted)}
        values[reference] = 0.0
        return values, params
