"""Output bundle handed to plotting/reporting collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

from ttsmaster.bootstrap.engine import ConfidenceBand
from ttsmaster.config import TTSConfig
from ttsmaster.fusion.fuser import MasterCurveRaw
from ttsmaster.shift.types import ShiftResult
from ttsmaster.smoothing.pspline import SplineModel


@dataclass(frozen=True, eq=False)
class TTSResult:
    config: TTSConfig
    shifts: ShiftResult
    master_curve_raw: MasterCurveRaw
    spline: SplineModel
    band: ConfidenceBand

    @property
    def reference_temperature(self) -> float:
        return self.shifts.reference_temperature

    @property
    def shift_table(self) -> Dict[float, Tuple[float, float]]:
        return self.shifts.shift_table()

    @property
    def spline_evaluate(self) -> Callable[[Any], Any]:
        return self.spline.evaluate

    @property
    def confidence_band(self) -> List[Tuple[float, float, float]]:
        return self.band.rows()

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable summary (no function handles)."""

        spline = self.spline
        return {
            "config": self.config.to_dict(),
            "shifts": self.shifts.to_dict(),
            "master_curve_raw": [
                {"x": p.x_shifted, "y": p.y_shifted, "temperature": p.source_temperature}
                for p in self.master_curve_raw
            ],
            "spline": {
                "domain": list(spline.domain),
                "n_knots": spline.n_knots,
                "degree": spline.degree,
                "smoothing_parameter": spline.smoothing_parameter,
                "edf": spline.edf,
                "gcv": spline.gcv,
                "sigma": spline.sigma,
                "r_squared": spline.r_squared,
            },
            "confidence_band": self.band.to_dict(),
        }
