"""Temperature laws fitted to the pairwise shift estimates (Arrhenius, WLF)."""

from __future__ import annotations

import math
from typing import Dict, Tuple

import numpy as np
from scipy.optimize import least_squares

from ttsmaster.config import ShiftConfig
from ttsmaster.errors import ConfigError, NonConvergenceError

GAS_CONSTANT = 8.314462618  # J/(mol K)
LN10 = math.log(10.0)


def arrhenius_shift(temperature: np.ndarray, reference: float, slope: float, offset: float) -> np.ndarray:
    """log10 shift for an Arrhenius law anchored at the reference temperature."""

    t = np.asarray(temperature, dtype=np.float64)
    return slope * (1.0 / (t + offset) - 1.0 / (reference + offset))


def wlf_shift(temperature: np.ndarray, reference: float, c1: float, c2: float) -> np.ndarray:
    """log10 shift for the WLF equation; exactly zero at the reference temperature."""

    dt = np.asarray(temperature, dtype=np.float64) - reference
    return -c1 * dt / (c2 + dt)


def _check_converged(result, law: str, config: ShiftConfig) -> None:
    # status 0: max_nfev reached; negative: improper input
    if result.status <= 0 or not result.success:
        raise NonConvergenceError(
            f"{law} fit did not converge within {config.max_iterations} evaluations: {result.message}",
            iterations=int(result.nfev),
            tolerance=config.tolerance,
        )


def fit_arrhenius(
    temperatures: np.ndarray,
    shifts: np.ndarray,
    reference: float,
    config: ShiftConfig,
) -> Tuple[np.ndarray, Dict[str, float]]:
    """Fit log10 a_T = m (1/T - 1/T_ref) through the origin.

    Returns the fitted shifts at the given temperatures and the law
    parameters: slope m (K) and activation energy m * R * ln(10) (J/mol).
    """

    temps = np.asarray(temperatures, dtype=np.float64)
    a = np.asarray(shifts, dtype=np.float64)
    offset = config.temperature_offset
    if np.any(temps + offset <= 0.0) or reference + offset <= 0.0:
        raise ConfigError(
            f"Arrhenius law needs positive absolute temperatures; temperature_offset={offset:g} is too small"
        )
    inv = 1.0 / (temps + offset) - 1.0 / (reference + offset)
    slope0 = config.activation_energy_guess / (GAS_CONSTANT * LN10)

    def residuals(p: np.ndarray) -> np.ndarray:
        return p[0] * inv - a

    result = least_squares(
        residuals,
        x0=np.array([slope0]),
        x_scale="jac",
        ftol=config.tolerance,
        xtol=config.tolerance,
        gtol=config.tolerance,
        max_nfev=config.max_iterations,
    )
    _check_converged(result, "Arrhenius", config)
    # one-parameter linear model: the normal equation gives the exact optimum
    denom = float(inv @ inv)
    slope = float(inv @ a) / denom if denom > 0.0 else float(result.x[0])
    params = {
        "slope": slope,
        "activation_energy": slope * GAS_CONSTANT * LN10,
    }
    return arrhenius_shift(temps, reference, slope, offset), params


def fit_wlf(
    temperatures: np.ndarray,
    shifts: np.ndarray,
    reference: float,
    config: ShiftConfig,
) -> Tuple[np.ndarray, Dict[str, float]]:
    """Fit the WLF constants C1, C2 by bounded nonlinear least squares.

    C2 is kept above -(T - T_ref) for every observed temperature so the
    denominator never crosses zero inside the data.
    """

    temps = np.asarray(temperatures, dtype=np.float64)
    a = np.asarray(shifts, dtype=np.float64)
    dt = temps - reference
    c2_floor = max(0.0, float(-np.min(dt))) if dt.size else 0.0
    c2_floor += 1e-6 * max(1.0, c2_floor)
    c2_start = config.wlf_c2_guess
    if c2_start <= c2_floor:
        c2_start = c2_floor + max(1.0, c2_floor)

    def residuals(p: np.ndarray) -> np.ndarray:
        return wlf_shift(temps, reference, p[0], p[1]) - a

    result = least_squares(
        residuals,
        x0=np.array([config.wlf_c1_guess, c2_start]),
        bounds=([-np.inf, c2_floor], [np.inf, np.inf]),
        method="trf",
        x_scale="jac",
        ftol=config.tolerance,
        xtol=config.tolerance,
        gtol=config.tolerance,
        max_nfev=config.max_iterations,
    )
    _check_converged(result, "WLF", config)
    c1, c2 = (float(v) for v in result.x)
    return wlf_shift(temps, reference, c1, c2), {"C1": c1, "C2": c2}
