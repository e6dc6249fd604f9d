"""Typed failures raised by the master-curve pipeline stages.

Every stage fails fast with one of these; none of them is retried
automatically. A caller may retry after changing configuration (more
replicates, different initial guesses, relaxed smoothing, ...).

Usage:
    from ttsmaster.errors import TTSError, InsufficientDataError

    try:
        result = pipeline.run()
    except InsufficientDataError as exc:
        print(exc.temperature, exc.required)
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple


class TTSError(Exception):
    """Base class for all ttsmaster errors."""


class InvalidDataError(TTSError):
    """Observations are non-finite, duplicated, or reference an unknown temperature."""


class ConfigError(TTSError, ValueError):
    """A configuration value is out of range or inconsistent with the method."""


class InsufficientDataError(TTSError):
    """A temperature group has fewer points than the chosen method needs."""

    def __init__(self, message: str, *, temperature: Optional[float] = None, required: Optional[int] = None) -> None:
        super().__init__(message)
        self.temperature = temperature
        self.required = required


class InsufficientOverlapError(InsufficientDataError):
    """No translation overlaps a curve with its shifted neighbour."""


class NonConvergenceError(TTSError):
    """An iterative fit exhausted its iteration/tolerance budget."""

    def __init__(self, message: str, *, iterations: Optional[int] = None, tolerance: Optional[float] = None) -> None:
        super().__init__(message)
        self.iterations = iterations
        self.tolerance = tolerance


class MissingShiftError(TTSError):
    """Fusion was requested for temperatures that have no shift factor."""

    def __init__(self, missing: Iterable[float]) -> None:
        self.missing: Tuple[float, ...] = tuple(sorted(missing))
        listed = ", ".join(f"{t:g}" for t in self.missing)
        super().__init__(f"no shift factor for temperature(s): {listed}")


class FitError(TTSError):
    """The spline fit is underdetermined."""


class InsufficientReplicatesError(TTSError):
    """Too few bootstrap replicates for stable percentiles at the requested level."""

    def __init__(self, requested: int, required: int, level: float) -> None:
        self.requested = requested
        self.required = required
        self.level = level
        super().__init__(
            f"{requested} bootstrap replicates requested; at least {required} are needed for a {level:.0%} band"
        )


class StageOrderError(TTSError):
    """A pipeline stage was invoked out of order."""


class RunCancelledError(TTSError):
    """A run was aborted between bootstrap replicates."""

    def __init__(self, completed: int, total: int) -> None:
        self.completed = completed
        self.total = total
        super().__init__(f"bootstrap cancelled after {completed}/{total} replicates")


__all__ = [
    "TTSError",
    "InvalidDataError",
    "ConfigError",
    "InsufficientDataError",
    "InsufficientOverlapError",
    "NonConvergenceError",
    "MissingShiftError",
    "FitError",
    "InsufficientReplicatesError",
    "StageOrderError",
    "RunCancelledError",
]
