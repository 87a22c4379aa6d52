"""Service layer orchestrating file analysis."""

from .analysis_service import (
    AnalysisOptions,
    AnalysisService,
    FileOutcome,
    RequiredOutputs,
)

__all__ = ["AnalysisOptions", "AnalysisService", "FileOutcome", "RequiredOutputs"]
