from .result import TTSResult
from .runner import MasterCurvePipeline, PipelineStage, build_master_curve

__all__ = ["MasterCurvePipeline", "PipelineStage", "TTSResult", "build_master_curve"]
