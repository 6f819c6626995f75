"""Core data structures and utilities."""

from bedcov.core.genome_interval import (
    ArrayIntervalTree,
    GenomeIntervalIndex,
    GenomicRecord,
    IndexStateError,
    Interval,
    IntervalEntry,
    UnknownContigError,
)

__all__ = [
    "ArrayIntervalTree",
    "GenomeIntervalIndex",
    "GenomicRecord",
    "IndexStateError",
    "Interval",
    "IntervalEntry",
    "UnknownContigError",
]
