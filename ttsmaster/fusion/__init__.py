from .fuser import FusedPoint, MasterCurveRaw, fuse

__all__ = ["FusedPoint", "MasterCurveRaw", "fuse"]
