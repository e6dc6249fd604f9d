from .engine import BootstrapEngine, BootstrapEnsemble, ConfidenceBand

__all__ = ["BootstrapEngine", "BootstrapEnsemble", "ConfidenceBand"]
