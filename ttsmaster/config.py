"""
Configuration objects for the master-curve pipeline.

Every tunable (iteration limits, tolerances, smoothing defaults, replicate
counts) lives on an explicit frozen dataclass that is passed into each stage.
Only the default bootstrap worker count is read from the environment
(TTSMASTER_WORKERS); logging has its own variables in ttsmaster.util.logging.
"""
from __future__ import annotations

import math
import os
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from ttsmaster.errors import ConfigError

METHODS = ("arrhenius", "wlf", "derivative")
INTERPOLATIONS = ("cubic", "linear")
OVERLAP_MODES = ("full", "window")
BOOTSTRAP_SCHEMES = ("residual", "group", "parametric")


def _int_env(name: str, default: int) -> int:
    """Parse an integer from environment, returning default on missing/invalid."""
    val = os.getenv(name)
    if not val:
        return default
    try:
        return max(1, int(float(val)))
    except ValueError:
        return default


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


# ---------------------------------------------------------------------------
# Shift estimation
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ShiftConfig:
    method: str = "wlf"
    vertical_shift: bool = False
    activation_energy_guess: float = 100_000.0  # J/mol
    wlf_c1_guess: float = 17.44
    wlf_c2_guess: float = 51.6
    bandwidth: Optional[float] = None  # derivative smoothing; None = 1/4 of each curve's x-span
    derivative_degree: int = 3
    interpolation: str = "cubic"
    overlap: str = "full"
    overlap_width: Optional[float] = None
    min_overlap_points: int = 3
    search_points: int = 401
    tie_tolerance: float = 1e-12
    temperature_offset: float = 273.15  # added to temperatures for absolute scale
    max_iterations: int = 200
    tolerance: float = 1e-10

    def __post_init__(self) -> None:
        _require(self.method in METHODS, f"method must be one of {METHODS}, got {self.method!r}")
        _require(
            not self.vertical_shift or self.method == "derivative",
            "vertical_shift is only supported by the derivative method",
        )
        _require(self.interpolation in INTERPOLATIONS, f"interpolation must be one of {INTERPOLATIONS}")
        _require(self.overlap in OVERLAP_MODES, f"overlap must be one of {OVERLAP_MODES}")
        if self.overlap == "window":
            _require(
                self.overlap_width is not None and self.overlap_width > 0,
                "overlap='window' requires a positive overlap_width",
            )
        _require(self.bandwidth is None or self.bandwidth > 0, "bandwidth must be positive")
        _require(self.derivative_degree >= 1, "derivative_degree must be >= 1")
        _require(self.min_overlap_points >= 1, "min_overlap_points must be >= 1")
        _require(self.search_points >= 3, "search_points must be >= 3")
        _require(self.tie_tolerance >= 0, "tie_tolerance must be non-negative")
        _require(self.max_iterations >= 1, "max_iterations must be >= 1")
        _require(self.tolerance > 0, "tolerance must be positive")
        _require(self.wlf_c2_guess > 0, "wlf_c2_guess must be positive")

    @property
    def min_points(self) -> int:
        """Smallest temperature group this method can handle."""

        if self.method == "derivative":
            return self.derivative_degree + 1
        return 2


# ---------------------------------------------------------------------------
# Spline smoothing
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class SmoothingConfig:
    n_knots: Optional[int] = None  # interior knots; None = automatic
    max_knots: int = 20
    degree: int = 3
    penalty_order: int = 2
    smoothing_parameter: Optional[float] = None  # None = GCV selection
    lambda_min: float = 1e-6
    lambda_max: float = 1e6
    lambda_grid: int = 61
    gcv_tie_tolerance: float = 1e-9

    def __post_init__(self) -> None:
        _require(self.n_knots is None or self.n_knots >= 0, "n_knots must be non-negative")
        _require(self.max_knots >= 1, "max_knots must be >= 1")
        _require(1 <= self.degree <= 5, "degree must be between 1 and 5")
        _require(1 <= self.penalty_order <= self.degree + 1, "penalty_order must be between 1 and degree + 1")
        _require(
            self.smoothing_parameter is None or self.smoothing_parameter >= 0,
            "smoothing_parameter must be non-negative or 'auto'",
        )
        _require(0 < self.lambda_min < self.lambda_max, "need 0 < lambda_min < lambda_max")
        _require(self.lambda_grid >= 3, "lambda_grid must be >= 3")

    @property
    def order(self) -> int:
        return self.degree + 1


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class BootstrapConfig:
    replicates: int = 2000
    confidence_level: float = 0.95
    seed: Optional[int] = None
    scheme: str = "residual"
    grid_points: int = 200
    grid: Optional[Tuple[float, ...]] = None
    workers: int = field(default_factory=lambda: _int_env("TTSMASTER_WORKERS", 1))
    min_replicates: int = 200
    min_tail_count: int = 5
    center_on_fit: bool = False

    def __post_init__(self) -> None:
        _require(0.0 < self.confidence_level < 1.0, "confidence_level must be in (0, 1)")
        _require(self.scheme in BOOTSTRAP_SCHEMES, f"scheme must be one of {BOOTSTRAP_SCHEMES}")
        _require(self.grid_points >= 2, "grid_points must be >= 2")
        _require(self.workers >= 1, "workers must be >= 1")
        _require(self.min_replicates >= 1, "min_replicates must be >= 1")
        _require(self.min_tail_count >= 1, "min_tail_count must be >= 1")
        if self.grid is not None:
            object.__setattr__(self, "grid", tuple(float(v) for v in self.grid))
            _require(len(self.grid) >= 1, "grid must not be empty")

    @property
    def required_replicates(self) -> int:
        """Replicates needed so each tail holds at least min_tail_count samples."""

        tail = (1.0 - self.confidence_level) / 2.0
        by_tail = math.ceil(self.min_tail_count / tail - 1e-9)
        return max(self.min_replicates, by_tail)


# ---------------------------------------------------------------------------
# Whole run
# ---------------------------------------------------------------------------
_FLAT_KEYS = {
    "method": ("shift", "method"),
    "vertical_shift": ("shift", "vertical_shift"),
    "smoothing_parameter": ("smoothing", "smoothing_parameter"),
    "bootstrap_replicates": ("bootstrap", "replicates"),
    "confidence_level": ("bootstrap", "confidence_level"),
    "random_seed": ("bootstrap", "seed"),
}


@dataclass(frozen=True)
class TTSConfig:
    """Configuration surface for one master-curve run.

    reference_temperature=None selects the middle temperature of the data
    (lower median when the count is even).
    """

    reference_temperature: Optional[float] = None
    shift: ShiftConfig = field(default_factory=ShiftConfig)
    smoothing: SmoothingConfig = field(default_factory=SmoothingConfig)
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "TTSConfig":
        """Build a config from the flat surface plus optional nested sections.

        Flat keys: method, reference_temperature, vertical_shift,
        smoothing_parameter (float or "auto"), bootstrap_replicates,
        confidence_level, random_seed. Nested dicts under "shift",
        "smoothing" and "bootstrap" override individual fields.
        """

        sections: Dict[str, Dict[str, Any]] = {"shift": {}, "smoothing": {}, "bootstrap": {}}
        reference = mapping.get("reference_temperature")
        for key, value in mapping.items():
            if key == "reference_temperature":
                continue
            if key in sections:
                if not isinstance(value, Mapping):
                    raise ConfigError(f"section {key!r} must be a mapping")
                sections[key].update(value)
                continue
            if key not in _FLAT_KEYS:
                raise ConfigError(f"unknown configuration key {key!r}")
            section, name = _FLAT_KEYS[key]
            sections[section][name] = value

        smoothing_value = sections["smoothing"].get("smoothing_parameter")
        if isinstance(smoothing_value, str):
            if smoothing_value.strip().lower() != "auto":
                raise ConfigError(f"smoothing_parameter must be a number or 'auto', got {smoothing_value!r}")
            sections["smoothing"]["smoothing_parameter"] = None

        _check_fields(ShiftConfig, sections["shift"])
        _check_fields(SmoothingConfig, sections["smoothing"])
        _check_fields(BootstrapConfig, sections["bootstrap"])
        return cls(
            reference_temperature=None if reference is None else float(reference),
            shift=ShiftConfig(**sections["shift"]),
            smoothing=SmoothingConfig(**sections["smoothing"]),
            bootstrap=BootstrapConfig(**sections["bootstrap"]),
        )

    def with_reference(self, temperature: float) -> "TTSConfig":
        return replace(self, reference_temperature=float(temperature))

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        if payload["smoothing"]["smoothing_parameter"] is None:
            payload["smoothing"]["smoothing_parameter"] = "auto"
        grid = payload["bootstrap"]["grid"]
        payload["bootstrap"]["grid"] = list(grid) if grid is not None else None
        return payload


def _check_fields(cls: type, values: Mapping[str, Any]) -> None:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"unknown {cls.__name__} field(s): {', '.join(unknown)}")


# ---------------------------------------------------------------------------
# Named presets
# ---------------------------------------------------------------------------
def default_profiles() -> Dict[str, TTSConfig]:
    """Built-in presets for common experiment types, keyed by lower-case name."""

    profiles = {
        "dma_frequency": TTSConfig(
            shift=ShiftConfig(method="wlf"),
            smoothing=SmoothingConfig(max_knots=15),
            bootstrap=BootstrapConfig(replicates=1000),
        ),
        "creep_compliance": TTSConfig(
            shift=ShiftConfig(method="derivative", vertical_shift=True),
            smoothing=SmoothingConfig(max_knots=25),
            bootstrap=BootstrapConfig(replicates=2000, scheme="group"),
        ),
        "arrhenius_melt": TTSConfig(
            shift=ShiftConfig(method="arrhenius", activation_energy_guess=150_000.0),
            bootstrap=BootstrapConfig(replicates=1000),
        ),
    }
    return {name.lower(): cfg for name, cfg in profiles.items()}


def serialize_profiles() -> Dict[str, Any]:
    """Return ordered JSON-serializable description of built-in profiles."""

    profiles = default_profiles()
    return {
        "profiles": [
            {"name": name, **profiles[name].to_dict()}
            for name in sorted(profiles)
        ]
    }
