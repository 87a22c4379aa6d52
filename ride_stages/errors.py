"""Central error types used across the application."""

from __future__ import annotations


class RideStagesError(RuntimeError):
    """Base error for ride analysis failures."""


class InvalidToleranceError(RideStagesError, ValueError):
    """Raised when the simplifier is given a tolerance that is not positive."""


class InvalidParametersError(RideStagesError, ValueError):
    """Raised when stage detection parameters are out of range."""


class EmptyTrackError(RideStagesError):
    """Raised when a track has no points. Indicates a decoder defect."""


class TrackOrderError(RideStagesError):
    """Raised when track timestamps go backwards."""


class TrackReadError(RideStagesError):
    """Raised when a GPX or FIT file cannot be decoded."""


class GeocodeFetchFailedError(RideStagesError):
    """Raised when a country's gazetteer cannot be downloaded or parsed."""

    def __init__(self, country_code: str, reason: str) -> None:
        super().__init__(f"Gazetteer for {country_code} unavailable: {reason}")
        self.country_code = country_code
        self.reason = reason


__all__ = [
    "RideStagesError",
    "InvalidToleranceError",
    "InvalidParametersError",
    "EmptyTrackError",
    "TrackOrderError",
    "TrackReadError",
    "GeocodeFetchFailedError",
]
