from .model import MIN_GROUP_POINTS, CurveSet, Observation

__all__ = ["MIN_GROUP_POINTS", "CurveSet", "Observation"]
