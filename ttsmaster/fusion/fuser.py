"""Apply shift factors and merge every temperature into one ordered point cloud."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Sequence, Tuple

import numpy as np

from ttsmaster.curves.model import CurveSet
from ttsmaster.errors import MissingShiftError
from ttsmaster.shift.types import ShiftResult


@dataclass(frozen=True)
class FusedPoint:
    x_shifted: float
    y_shifted: float
    source_temperature: float


class MasterCurveRaw(Sequence[FusedPoint]):
    """Fused points ordered by shifted x, with read-only column views."""

    def __init__(self, points: Sequence[FusedPoint]) -> None:
        self._points: Tuple[FusedPoint, ...] = tuple(points)
        self.x = self._column([p.x_shifted for p in self._points])
        self.y = self._column([p.y_shifted for p in self._points])
        self.temperature = self._column([p.source_temperature for p in self._points])

    @staticmethod
    def _column(values: List[float]) -> np.ndarray:
        arr = np.asarray(values, dtype=np.float64)
        arr.setflags(write=False)
        return arr

    def __getitem__(self, index):  # type: ignore[override]
        return self._points[index]

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[FusedPoint]:
        return iter(self._points)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MasterCurveRaw):
            return NotImplemented
        return self._points == other._points

    def __hash__(self) -> int:
        return hash(self._points)

    def __repr__(self) -> str:
        return f"MasterCurveRaw(n_points={len(self)})"

    @property
    def domain(self) -> Tuple[float, float]:
        return float(self.x[0]), float(self.x[-1])

    def groups(self) -> Dict[float, np.ndarray]:
        """Indices of the points contributed by each source temperature."""

        out: Dict[float, np.ndarray] = {}
        for temperature in np.unique(self.temperature):
            out[float(temperature)] = np.flatnonzero(self.temperature == temperature)
        return out


def fuse(curve_set: CurveSet, shifts: ShiftResult) -> MasterCurveRaw:
    """Shift every curve and merge them into MasterCurveRaw.

    Points are ordered by shifted x; equal shifted x values fall back to
    temperature and then original x so the result is fully deterministic.
    """

    missing = [t for t in curve_set.temperatures if t not in shifts]
    if missing:
        raise MissingShiftError(missing)

    keyed = []
    for temperature in curve_set.temperatures:
        factor = shifts[temperature]
        x, y = curve_set.curve(temperature)
        for xi, yi in zip(x, y):
            point = FusedPoint(
                x_shifted=float(xi + factor.horizontal),
                y_shifted=float(yi + factor.vertical),
                source_temperature=temperature,
            )
            keyed.append(((point.x_shifted, temperature, float(xi)), point))
    keyed.sort(key=lambda item: item[0])
    return MasterCurveRaw([point for _, point in keyed])
