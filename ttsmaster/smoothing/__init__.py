from .pspline import SplineModel, SplineSmoother

__all__ = ["SplineModel", "SplineSmoother"]
