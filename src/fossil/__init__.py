"""Unearth technical debt markers and date them with version-control history."""
from .config import Config, load_config
from .errors import FossilError, RootUnreadable, ScanError
from .scanner import scan
from .signals import DebtMarker, DebtReport, HistoryInfo, ScanWarning

__version__ = "0.3.0"

__all__ = [
    "Config",
    "DebtMarker",
    "DebtReport",
    "FossilError",
    "HistoryInfo",
    "RootUnreadable",
    "ScanError",
    "ScanWarning",
    "load_config",
    "scan",
]
