from __future__ import annotations


class FossilError(Exception):
    """Base class for errors reported to the user."""


class ConfigError(FossilError):
    pass


class FilterError(FossilError):
    pass


class ScanError(FossilError):
    pass


class RootUnreadable(ScanError):
    """The scan root cannot be enumerated; nothing was scheduled."""

    def __init__(self, root: str, reason: str):
        super().__init__(f"cannot read scan root {root}: {reason}")
        self.root = root
        self.reason = reason


class HistoryUnavailable(Exception):
    """History has nothing to say about a file (untracked, no repo, ...)."""


class HistoryTimeout(HistoryUnavailable):
    pass


class ScanCancelled(ScanError):
    """The scan was interrupted; in-flight files finished, nothing was reported."""
