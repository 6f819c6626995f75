"""
Coverage calculation - overlap counts and union coverage per target interval.

For every target interval this module reports how many reference intervals
intersect it and how many target bases are covered by the union of those
intersections.

Key points:
- Overlaps are clipped to the target window and sorted before merging
- Overlap count is the raw number of hits, independent of merging
- Targets on contigs absent from the reference score (0, 0) by default
- Optional multi-process evaluation with results kept in input order
"""

from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import Future, ProcessPoolExecutor
from dataclasses import dataclass
from itertools import islice
from pathlib import Path
from typing import Iterable, Iterator, Optional, TextIO

import numpy as np
import pandas as pd

from ..core.genome_interval import (
    GenomeIntervalIndex,
    GenomicRecord,
    IndexStateError,
    IntervalEntry,
)
from ..io.bed_reader import iter_bed_records, load_reference_index

logger = logging.getLogger(__name__)


@dataclass
class CoverageConfig:
    """Configuration for a coverage run."""

    reference_bed: Path  # Intervals to index
    target_bed: Path  # Intervals to measure
    strict_contigs: bool = False  # Raise on target contigs missing from reference
    workers: int = 1  # Processes used for target evaluation
    chunk_size: int = 10_000  # Targets per parallel work unit
    validate_inputs: bool = True

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.validate_inputs:
            if not self.reference_bed.exists():
                raise FileNotFoundError(f"Reference BED not found: {self.reference_bed}")
            if not self.target_bed.exists():
                raise FileNotFoundError(f"Target BED not found: {self.target_bed}")
            if self.workers < 1:
                raise ValueError(f"workers must be at least 1, got {self.workers}")
            if self.chunk_size < 1:
                raise ValueError(f"chunk_size must be at least 1, got {self.chunk_size}")


@dataclass(slots=True, frozen=True)
class CoverageResult:
    """Overlap count and covered length for one target interval."""

    chrom: str
    start: int
    end: int
    overlap_count: int
    covered_length: int

    @property
    def target_length(self) -> int:
        return self.end - self.start

    def to_bed_string(self) -> str:
        """Format as ``chrom, start, end, count, covered`` tab-separated."""
        return (
            f"{self.chrom}\t{self.start}\t{self.end}\t"
            f"{self.overlap_count}\t{self.covered_length}"
        )


def covered_length(
    target_start: int, target_end: int, overlaps: Iterable[IntervalEntry]
) -> int:
    """
    Length of the union of ``overlaps`` clipped to [target_start, target_end).

    Spans that touch or overlap are merged; each base is counted once.
    Clipped spans that come out empty contribute nothing.

    Args:
        target_start: Target start (0-based, inclusive)
        target_end: Target end (0-based, exclusive)
        overlaps: Entries returned by an index query, in any order

    Returns:
        Covered length in base pairs

    Example:
        >>> from bedcov.core.genome_interval import Interval, IntervalEntry
        >>> hits = [IntervalEntry(Interval(15, 25)), IntervalEntry(Interval(10, 20))]
        >>> covered_length(5, 30, hits)
        15
    """
    clipped = sorted(
        (max(entry.interval.start, target_start), min(entry.interval.end, target_end))
        for entry in overlaps
    )

    total = 0
    cov_start: Optional[int] = None
    cov_end = 0
    for start, end in clipped:
        if end <= start:
            continue
        if cov_start is None:
            cov_start, cov_end = start, end
        elif start > cov_end:
            total += cov_end - cov_start
            cov_start, cov_end = start, end
        elif end > cov_end:
            cov_end = end

    if cov_start is not None:
        total += cov_end - cov_start
    return total


class CoverageEvaluator:
    """
    Evaluates target intervals against a frozen GenomeIntervalIndex.

    Owns one overlap buffer that every query reuses, so a single evaluator
    must not be shared between threads or processes.
    """

    def __init__(self, index: GenomeIntervalIndex) -> None:
        if not index.is_frozen:
            raise IndexStateError("CoverageEvaluator requires a frozen index")
        self.index = index
        self._buffer: list[IntervalEntry] = []

    def evaluate(self, chrom: str, start: int, end: int) -> CoverageResult:
        """
        Compute overlap count and covered length for one target.

        Raises:
            UnknownContigError: If the index is strict and ``chrom`` is unknown
        """
        buffer = self._buffer
        self.index.find_overlaps_into(chrom, start, end, buffer)
        return CoverageResult(
            chrom=chrom,
            start=start,
            end=end,
            overlap_count=len(buffer),
            covered_length=covered_length(start, end, buffer),
        )

    def evaluate_record(self, record: GenomicRecord) -> CoverageResult:
        return self.evaluate(record.chrom, record.start, record.end)

    def evaluate_all(self, records: Iterable[GenomicRecord]) -> Iterator[CoverageResult]:
        """Lazily evaluate records, one result per record, in input order."""
        for record in records:
            yield self.evaluate_record(record)


# Per-process evaluator, set by the pool initializer
_worker_evaluator: Optional[CoverageEvaluator] = None


def _init_worker(index: GenomeIntervalIndex) -> None:
    global _worker_evaluator
    _worker_evaluator = CoverageEvaluator(index)


def _evaluate_chunk(records: list[GenomicRecord]) -> list[CoverageResult]:
    if _worker_evaluator is None:
        raise IndexStateError("Worker process has no evaluator; pool initializer did not run")
    return [_worker_evaluator.evaluate_record(record) for record in records]


def _chunked(
    records: Iterable[GenomicRecord], size: int
) -> Iterator[list[GenomicRecord]]:
    iterator = iter(records)
    while chunk := list(islice(iterator, size)):
        yield chunk


def evaluate_parallel(
    index: GenomeIntervalIndex,
    records: Iterable[GenomicRecord],
    workers: int,
    chunk_size: int = 10_000,
) -> Iterator[CoverageResult]:
    """
    Evaluate records across worker processes, yielding in input order.

    Each worker receives the frozen index once and keeps its own buffer.
    At most ``2 * workers`` chunks are in flight at a time. Unknown-contig
    DEBUG messages come from the workers' index copies, so the same contig
    may be reported once per worker.

    Args:
        index: Frozen reference index
        records: Target records
        workers: Number of worker processes
        chunk_size: Records per work unit

    Yields:
        CoverageResult per record, in the order of ``records``
    """
    if not index.is_frozen:
        raise IndexStateError("evaluate_parallel requires a frozen index")

    with ProcessPoolExecutor(
        max_workers=workers, initializer=_init_worker, initargs=(index,)
    ) as executor:
        pending: deque[Future[list[CoverageResult]]] = deque()
        for chunk in _chunked(records, chunk_size):
            pending.append(executor.submit(_evaluate_chunk, chunk))
            if len(pending) >= 2 * workers:
                yield from pending.popleft().result()
        while pending:
            yield from pending.popleft().result()


class CoverageSummary:
    """
    Running per-contig totals over a stream of CoverageResults.

    Only counters are kept, never the results themselves.
    """

    def __init__(self) -> None:
        self._stats: dict[str, dict[str, int]] = {}

    def update(self, result: CoverageResult) -> None:
        stats = self._stats.setdefault(
            result.chrom,
            {
                "n_targets": 0,
                "n_targets_covered": 0,
                "n_overlaps": 0,
                "target_bp": 0,
                "covered_bp": 0,
            },
        )
        stats["n_targets"] += 1
        if result.overlap_count:
            stats["n_targets_covered"] += 1
        stats["n_overlaps"] += result.overlap_count
        stats["target_bp"] += result.target_length
        stats["covered_bp"] += result.covered_length

    @property
    def n_targets(self) -> int:
        return sum(s["n_targets"] for s in self._stats.values())

    @property
    def n_targets_covered(self) -> int:
        return sum(s["n_targets_covered"] for s in self._stats.values())

    @property
    def covered_bp(self) -> int:
        return sum(s["covered_bp"] for s in self._stats.values())

    def to_frame(self) -> pd.DataFrame:
        """
        Summary table, one row per contig in first-seen order.

        Returns:
            DataFrame with count columns plus ``covered_fraction``
        """
        columns = [
            "chrom",
            "n_targets",
            "n_targets_covered",
            "n_overlaps",
            "target_bp",
            "covered_bp",
        ]
        df = pd.DataFrame(
            [{"chrom": chrom, **stats} for chrom, stats in self._stats.items()],
            columns=columns,
        )

        # Safe division for zero-length targets
        df["covered_fraction"] = np.where(
            df["target_bp"] > 0, df["covered_bp"] / df["target_bp"], 0.0
        )
        return df

    def save(self, output_path: Path) -> None:
        """Write the summary table as TSV."""
        self.to_frame().to_csv(output_path, sep="\t", index=False)
        logger.info(f"Saved coverage summary to {output_path}")


class CoverageCalculator:
    """
    Runs a full coverage job from a CoverageConfig.

    Loading the reference happens in ``__init__``; :meth:`calculate` then
    streams the target file and yields results in target order.

    Example:
        >>> config = CoverageConfig(Path("ref.bed"), Path("targets.bed"))
        >>> calculator = CoverageCalculator(config)
        >>> for result in calculator.calculate():
        ...     print(result.to_bed_string())
    """

    def __init__(self, config: CoverageConfig) -> None:
        """
        Initialize calculator and build the reference index.

        Args:
            config: Coverage configuration
        """
        self.config = config
        self.index = load_reference_index(
            config.reference_bed, strict_contigs=config.strict_contigs
        )
        self.evaluator = CoverageEvaluator(self.index)

    def calculate(
        self, summary: Optional[CoverageSummary] = None
    ) -> Iterator[CoverageResult]:
        """
        Evaluate every target record.

        The target file is opened by this call, so I/O errors surface here,
        before any result is produced or any output is created.

        Args:
            summary: Optional accumulator updated with each result

        Returns:
            Iterator of CoverageResult per parsed target line, in file order
        """
        logger.info(f"Computing coverage for targets in {self.config.target_bed}")

        records = iter_bed_records(self.config.target_bed)
        if self.config.workers > 1:
            logger.info(f"Using {self.config.workers} worker processes")
            results = evaluate_parallel(
                self.index, records, self.config.workers, self.config.chunk_size
            )
        else:
            results = self.evaluator.evaluate_all(records)

        if summary is None:
            return results
        return _tally(results, summary)

    @staticmethod
    def write_results(handle: TextIO, results: Iterable[CoverageResult]) -> int:
        """
        Write one TSV line per result to an open text handle.

        Returns:
            Number of lines written
        """
        n_written = 0
        for result in results:
            handle.write(result.to_bed_string() + "\n")
            n_written += 1
        return n_written


def _tally(
    results: Iterable[CoverageResult], summary: CoverageSummary
) -> Iterator[CoverageResult]:
    for result in results:
        summary.update(result)
        yield result
