"""Exception hierarchy for muon track-cut configuration and resolution.

All custom exceptions inherit from `MuonCutsError`, so callers can catch every
package-specific failure with a single except clause.
"""

from __future__ import annotations
__author__ = "Renato Quagliani <rquaglia@cern.ch>"


class MuonCutsError(Exception):
    """Base exception for all muon track-cut errors."""


class ConfigurationError(MuonCutsError):
    """Raised when cut parameters or filter settings are invalid.

    Examples:
    - non-finite calibration value
    - decreasing sharp pt thresholds
    - unknown selection-mask bit name
    """


class ResolutionError(MuonCutsError):
    """Raised when no calibration parameters can be resolved for a run.

    The condition is static for a given dataset and run list, so the current
    analysis pass has to stop: substituting parameters silently would bias
    every selected track.
    """


class StorageNotFoundError(ResolutionError):
    """Raised when the parameter database file or its containers are missing."""

    def __init__(self, path: str, detail: str | None = None):
        self.path = path
        message = f"Parameter database {path} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CustomParamError(MuonCutsError):
    """Raised when custom parameters are edited without a custom override."""
