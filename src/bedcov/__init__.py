"""
bedcov: reference interval coverage of target intervals

Counts the reference intervals overlapping each target interval and the
length of the target covered by their union.
"""

__version__ = "1.0.0"

from bedcov.core.genome_interval import GenomeIntervalIndex, GenomicRecord, Interval
from bedcov.coverage.coverage_calculator import (
    CoverageCalculator,
    CoverageConfig,
    CoverageEvaluator,
    CoverageResult,
)

__all__ = [
    "GenomeIntervalIndex",
    "GenomicRecord",
    "Interval",
    "CoverageCalculator",
    "CoverageConfig",
    "CoverageEvaluator",
    "CoverageResult",
]
