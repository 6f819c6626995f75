"""Coverage of target intervals by a reference interval set."""

from bedcov.coverage.coverage_calculator import (
    CoverageCalculator,
    CoverageConfig,
    CoverageEvaluator,
    CoverageResult,
    CoverageSummary,
    covered_length,
    evaluate_parallel,
)

__all__ = [
    "CoverageCalculator",
    "CoverageConfig",
    "CoverageEvaluator",
    "CoverageResult",
    "CoverageSummary",
    "covered_length",
    "evaluate_parallel",
]
