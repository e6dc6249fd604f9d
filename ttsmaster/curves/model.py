"""Per-temperature curve data shared across the shift, fusion and smoothing layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

import numpy as np

from ttsmaster.errors import InsufficientDataError, InvalidDataError

MIN_GROUP_POINTS = 2


@dataclass(frozen=True)
class Observation:
    x: float
    y: float
    temperature: float


def _readonly(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    arr.setflags(write=False)
    return arr


class CurveSet(Mapping[float, Tuple[Observation, ...]]):
    """Observations grouped by temperature, each group sorted by x.

    Every group holds at least two points with distinct, finite x values.
    Iteration yields temperatures in increasing order.
    """

    def __init__(self, groups: Mapping[float, Iterable[Observation]]) -> None:
        if not groups:
            raise InsufficientDataError("curve set is empty")
        self._groups: Dict[float, Tuple[Observation, ...]] = {}
        self._arrays: Dict[float, Tuple[np.ndarray, np.ndarray]] = {}
        for temperature in sorted(float(t) for t in groups):
            obs = sorted(groups[temperature], key=lambda o: o.x)
            self._validate_group(temperature, obs)
            self._groups[temperature] = tuple(obs)
            self._arrays[temperature] = (_readonly([o.x for o in obs]), _readonly([o.y for o in obs]))

    @staticmethod
    def _validate_group(temperature: float, obs: List[Observation]) -> None:
        if not np.isfinite(temperature):
            raise InvalidDataError(f"non-finite temperature {temperature!r}")
        if len(obs) < MIN_GROUP_POINTS:
            raise InsufficientDataError(
                f"temperature {temperature:g} has {len(obs)} point(s); at least {MIN_GROUP_POINTS} are required",
                temperature=temperature,
                required=MIN_GROUP_POINTS,
            )
        xs = np.array([o.x for o in obs], dtype=np.float64)
        ys = np.array([o.y for o in obs], dtype=np.float64)
        if not (np.all(np.isfinite(xs)) and np.all(np.isfinite(ys))):
            raise InvalidDataError(f"temperature {temperature:g} contains non-finite values")
        if np.any(np.diff(xs) <= 0.0):
            raise InvalidDataError(f"temperature {temperature:g} contains duplicate x values")

    @classmethod
    def from_observations(cls, observations: Iterable[Observation]) -> "CurveSet":
        groups: Dict[float, List[Observation]] = {}
        for obs in observations:
            groups.setdefault(float(obs.temperature), []).append(obs)
        return cls(groups)

    @classmethod
    def from_arrays(cls, x: Sequence[float], y: Sequence[float], temperature: Sequence[float]) -> "CurveSet":
        """Build a curve set from three parallel columns (the usual tabular layout)."""

        xs = np.asarray(x, dtype=np.float64).ravel()
        ys = np.asarray(y, dtype=np.float64).ravel()
        ts = np.asarray(temperature, dtype=np.float64).ravel()
        if not (xs.size == ys.size == ts.size):
            raise InvalidDataError(f"column lengths differ: x={xs.size} y={ys.size} temperature={ts.size}")
        return cls.from_observations(
            Observation(float(a), float(b), float(t)) for a, b, t in zip(xs, ys, ts)
        )

    # Mapping protocol

    def __getitem__(self, temperature: float) -> Tuple[Observation, ...]:
        return self._groups[float(temperature)]

    def __iter__(self) -> Iterator[float]:
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)

    def __contains__(self, temperature: object) -> bool:
        try:
            return float(temperature) in self._groups  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False

    def __repr__(self) -> str:
        temps = ", ".join(f"{t:g}" for t in self._groups)
        return f"CurveSet(temperatures=[{temps}], n_points={self.n_points})"

    # Accessors

    @property
    def temperatures(self) -> Tuple[float, ...]:
        return tuple(self._groups)

    @property
    def n_points(self) -> int:
        return sum(len(g) for g in self._groups.values())

    @property
    def x_range(self) -> Tuple[float, float]:
        lows = [arr[0][0] for arr in self._arrays.values()]
        highs = [arr[0][-1] for arr in self._arrays.values()]
        return float(min(lows)), float(max(highs))

    def curve(self, temperature: float) -> Tuple[np.ndarray, np.ndarray]:
        """Return read-only (x, y) arrays for one temperature."""

        try:
            return self._arrays[float(temperature)]
        except KeyError:
            raise InvalidDataError(f"temperature {temperature:g} is not part of the curve set") from None

    def middle_temperature(self) -> float:
        temps = self.temperatures
        return temps[(len(temps) - 1) // 2]
