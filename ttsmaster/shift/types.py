"""Dataclasses shared across the shift, fusion and pipeline layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Tuple


@dataclass(frozen=True)
class ShiftFactor:
    temperature: float
    horizontal: float
    vertical: float = 0.0
    pairwise: float = 0.0  # cumulative overlap estimate before the shift law is applied


@dataclass(frozen=True)
class ShiftResult:
    """One shift factor per temperature, in processing order (reference first)."""

    method: str
    reference_temperature: float
    factors: Tuple[ShiftFactor, ...]
    law_parameters: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "law_parameters", MappingProxyType(dict(self.law_parameters)))
        object.__setattr__(self, "_index", {f.temperature: f for f in self.factors})

    def __getitem__(self, temperature: float) -> ShiftFactor:
        return self._index[float(temperature)]  # type: ignore[attr-defined]

    def __contains__(self, temperature: object) -> bool:
        return temperature in self._index  # type: ignore[attr-defined]

    def __iter__(self) -> Iterator[ShiftFactor]:
        return iter(self.factors)

    def __len__(self) -> int:
        return len(self.factors)

    @property
    def temperatures(self) -> Tuple[float, ...]:
        return tuple(f.temperature for f in self.factors)

    def shift_table(self) -> Dict[float, Tuple[float, float]]:
        """Return {temperature: (a_h, a_v)} in processing order."""

        return {f.temperature: (f.horizontal, f.vertical) for f in self.factors}

    def to_dict(self) -> Dict[str, object]:
        return {
            "method": self.method,
            "reference_temperature": self.reference_temperature,
            "law_parameters": dict(self.law_parameters),
            "factors": [
                {
                    "temperature": f.temperature,
                    "horizontal": f.horizontal,
                    "vertical": f.vertical,
                    "pairwise": f.pairwise,
                }
                for f in self.factors
            ],
        }
