"""High-level runner that walks a curve set through every pipeline stage in order."""

from __future__ import annotations

import threading
from enum import Enum
from typing import Optional

from ttsmaster.bootstrap.engine import BootstrapEngine, ConfidenceBand
from ttsmaster.config import TTSConfig
from ttsmaster.curves.model import CurveSet
from ttsmaster.errors import InvalidDataError, StageOrderError, TTSError
from ttsmaster.fusion.fuser import MasterCurveRaw, fuse
from ttsmaster.pipeline.result import TTSResult
from ttsmaster.shift.estimator import ShiftEstimator
from ttsmaster.shift.types import ShiftResult
from ttsmaster.smoothing.pspline import SplineModel, SplineSmoother
from ttsmaster.util.logging import get_logger, log_exception

logger = get_logger(__name__)


class PipelineStage(Enum):
    INGESTED = "ingested"
    SHIFTED = "shifted"
    FUSED = "fused"
    SMOOTHED = "smoothed"
    BOOTSTRAPPED = "bootstrapped"
    DONE = "done"


class MasterCurvePipeline:
    """Bind a curve set and a TTSConfig to the shift/fuse/smooth/bootstrap stages.

    Stages must be called in order; each consumes only the previous stage's
    output. A failed stage leaves the pipeline where it was, and earlier
    outputs stay valid because they are immutable.
    """

    def __init__(self, curve_set: CurveSet, config: Optional[TTSConfig] = None) -> None:
        self.curve_set = curve_set
        self.config = config or TTSConfig()
        reference = self.config.reference_temperature
        if reference is None:
            reference = curve_set.middle_temperature()
        if reference not in curve_set:
            raise InvalidDataError(f"reference temperature {reference:g} is not part of the curve set")
        self.reference_temperature = float(reference)
        self.smoother = SplineSmoother(self.config.smoothing)
        self.stage = PipelineStage.INGESTED
        self.shifts: Optional[ShiftResult] = None
        self.master_curve_raw: Optional[MasterCurveRaw] = None
        self.spline: Optional[SplineModel] = None
        self.band: Optional[ConfidenceBand] = None

    def _require(self, expected: PipelineStage, action: str) -> None:
        if self.stage is not expected:
            raise StageOrderError(f"cannot {action} in stage {self.stage.value!r}; expected {expected.value!r}")

    def shift(self) -> ShiftResult:
        self._require(PipelineStage.INGESTED, "estimate shifts")
        try:
            shifts = ShiftEstimator(self.config.shift).estimate(self.curve_set, self.reference_temperature)
        except TTSError:
            log_exception(logger, "shift estimation failed", error_type="shift", method=self.config.shift.method)
            raise
        self.shifts = shifts
        self.stage = PipelineStage.SHIFTED
        return shifts

    def fuse(self) -> MasterCurveRaw:
        self._require(PipelineStage.SHIFTED, "fuse curves")
        assert self.shifts is not None  # noqa: S101 - guaranteed by stage order
        try:
            raw = fuse(self.curve_set, self.shifts)
        except TTSError:
            log_exception(logger, "curve fusion failed", error_type="fuse")
            raise
        self.master_curve_raw = raw
        self.stage = PipelineStage.FUSED
        return raw

    def smooth(self) -> SplineModel:
        self._require(PipelineStage.FUSED, "fit the spline")
        assert self.master_curve_raw is not None  # noqa: S101 - guaranteed by stage order
        try:
            model = self.smoother.fit(self.master_curve_raw)
        except TTSError:
            log_exception(logger, "spline fit failed", error_type="smooth")
            raise
        self.spline = model
        self.stage = PipelineStage.SMOOTHED
        return model

    def bootstrap(self, cancel: Optional[threading.Event] = None) -> ConfidenceBand:
        self._require(PipelineStage.SMOOTHED, "bootstrap")
        assert self.spline is not None and self.master_curve_raw is not None  # noqa: S101
        engine = BootstrapEngine(self.config.bootstrap, self.smoother)
        try:
            band = engine.run(self.spline, self.master_curve_raw, cancel=cancel)
        except TTSError:
            log_exception(
                logger,
                "bootstrap failed",
                error_type="bootstrap",
                replicates=self.config.bootstrap.replicates,
            )
            raise
        self.band = band
        self.stage = PipelineStage.BOOTSTRAPPED
        return band

    def finish(self) -> TTSResult:
        self._require(PipelineStage.BOOTSTRAPPED, "finish")
        assert self.shifts is not None and self.master_curve_raw is not None  # noqa: S101
        assert self.spline is not None and self.band is not None  # noqa: S101
        self.stage = PipelineStage.DONE
        return TTSResult(
            config=self.config.with_reference(self.reference_temperature),
            shifts=self.shifts,
            master_curve_raw=self.master_curve_raw,
            spline=self.spline,
            band=self.band,
        )

    def run(self, cancel: Optional[threading.Event] = None) -> TTSResult:
        """Run every remaining stage and return the result bundle."""

        logger.info(
            "master curve run: %d temperatures, reference %g, method %s",
            len(self.curve_set),
            self.reference_temperature,
            self.config.shift.method,
            extra={"stage": self.stage.value, "method": self.config.shift.method},
        )
        if self.stage is PipelineStage.INGESTED:
            self.shift()
        if self.stage is PipelineStage.SHIFTED:
            self.fuse()
        if self.stage is PipelineStage.FUSED:
            self.smooth()
        if self.stage is PipelineStage.SMOOTHED:
            self.bootstrap(cancel=cancel)
        return self.finish()


def build_master_curve(
    curve_set: CurveSet,
    config: Optional[TTSConfig] = None,
    *,
    cancel: Optional[threading.Event] = None,
) -> TTSResult:
    """One-shot helper: run the full pipeline on a curve set."""

    return MasterCurvePipeline(curve_set, config).run(cancel=cancel)
