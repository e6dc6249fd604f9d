from .estimator import ShiftEstimator, sweep_order
from .laws import arrhenius_shift, wlf_shift
from .types import ShiftFactor, ShiftResult

__all__ = [
    "ShiftEstimator",
    "ShiftFactor",
    "ShiftResult",
    "arrhenius_shift",
    "sweep_order",
    "wlf_shift",
]
