"""
ttsmaster: Time-Temperature Superposition master curves.

Shift per-temperature curves onto a reference temperature (Arrhenius, WLF or
derivative-based shift factors), fuse them, smooth the fused cloud with a
penalized B-spline and wrap it in bootstrap confidence bands.
"""
from __future__ import annotations

from ttsmaster.bootstrap import BootstrapEngine, ConfidenceBand
from ttsmaster.config import (
    BootstrapConfig,
    ShiftConfig,
    SmoothingConfig,
    TTSConfig,
    default_profiles,
    serialize_profiles,
)
from ttsmaster.curves import CurveSet, Observation
from ttsmaster.errors import (
    ConfigError,
    FitError,
    InsufficientDataError,
    InsufficientOverlapError,
    InsufficientReplicatesError,
    InvalidDataError,
    MissingShiftError,
    NonConvergenceError,
    RunCancelledError,
    StageOrderError,
    TTSError,
)
from ttsmaster.fusion import FusedPoint, MasterCurveRaw, fuse
from ttsmaster.pipeline import MasterCurvePipeline, PipelineStage, TTSResult, build_master_curve
from ttsmaster.shift import ShiftEstimator, ShiftFactor, ShiftResult
from ttsmaster.smoothing import SplineModel, SplineSmoother

__version__ = "1.0.0"

__all__ = [
    "BootstrapConfig",
    "BootstrapEngine",
    "ConfidenceBand",
    "ConfigError",
    "CurveSet",
    "FitError",
    "FusedPoint",
    "InsufficientDataError",
    "InsufficientOverlapError",
    "InsufficientReplicatesError",
    "InvalidDataError",
    "MasterCurvePipeline",
    "MasterCurveRaw",
    "MissingShiftError",
    "NonConvergenceError",
    "Observation",
    "PipelineStage",
    "RunCancelledError",
    "ShiftConfig",
    "ShiftEstimator",
    "ShiftFactor",
    "ShiftResult",
    "SmoothingConfig",
    "SplineModel",
    "SplineSmoother",
    "StageOrderError",
    "TTSConfig",
    "TTSError",
    "TTSResult",
    "build_master_curve",
    "default_profiles",
    "fuse",
    "serialize_profiles",
]
