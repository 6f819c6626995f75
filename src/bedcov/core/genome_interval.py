"""
Genome interval index - Core structures for reference interval lookup.

This module provides the per-chromosome interval index used to answer
"which reference intervals intersect [start, end)" for every target interval,
plus the chromosome -> index mapping that owns them for a run.

Key Features:
- Array-backed implicit interval tree (sorted by start, max-end augmented)
- Explicit two-phase lifecycle: build (insert) then freeze (index) then query
- Caller-owned output buffer reused across queries
- Safe lookup for contigs absent from the reference set (no KeyError)
- Memory-efficient storage with __slots__
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

logger = logging.getLogger(__name__)

# Subtrees at or below this level are scanned linearly.
_LINEAR_SCAN_LEVEL = 3


class IndexStateError(RuntimeError):
    """Raised when an index is used out of its build -> freeze -> query order."""


class UnknownContigError(KeyError):
    """Raised in strict mode when a query names a contig with no reference intervals."""


@dataclass(slots=True, frozen=True)
class Interval:
    """
    Half-open interval [start, end) on a single contig.

    ``start <= end`` is assumed, not enforced.
    """

    start: int  # 0-based, inclusive
    end: int    # 0-based, exclusive (BED format)

    @property
    def length(self) -> int:
        """Return interval length in base pairs."""
        return self.end - self.start

    def overlaps(self, start: int, end: int) -> bool:
        """Check for strict geometric intersection with [start, end)."""
        return self.start < end and self.end > start


@dataclass(slots=True, frozen=True)
class GenomicRecord:
    """A parsed (chrom, start, end) row. Used for both reference and target sets."""

    chrom: str
    interval: Interval

    @property
    def start(self) -> int:
        return self.interval.start

    @property
    def end(self) -> int:
        return self.interval.end

    def to_bed_string(self) -> str:
        """Convert to a three-column BED line (without newline)."""
        return f"{self.chrom}\t{self.start}\t{self.end}"


@dataclass(slots=True, frozen=True)
class IntervalEntry:
    """Stored interval plus its attached payload."""

    interval: Interval
    data: Any = None


def _augment_max_ends(ends: np.ndarray) -> tuple[np.ndarray, int]:
    """
    Compute per-node subtree max-end for an implicit tree over a sorted array.

    Node ``i`` sits at level ``k`` where ``k`` is the number of trailing one
    bits of ``i``; its children are ``i - 2**(k-1)`` and ``i + 2**(k-1)``.
    Right children past the end of the array inherit the max-end of the last
    real subtree on that level.

    Args:
        ends: End coordinates, in start-sorted order

    Returns:
        Tuple of (max_ends array, root level). Root level is -1 when empty.
    """
    n = len(ends)
    if n == 0:
        return ends.copy(), -1

    max_ends = ends.copy()
    last_i = (n - 1) & ~1
    last = max_ends[last_i]

    k = 1
    while (1 << k) <= n:
        x = 1 << (k - 1)
        nodes = np.arange((x << 1) - 1, n, x << 2)
        right = nodes + x
        right_max = np.where(right < n, max_ends[np.minimum(right, n - 1)], last)
        max_ends[nodes] = np.maximum(
            np.maximum(ends[nodes], max_ends[nodes - x]), right_max
        )

        # Track the subtree covering the tail of the array on this level
        last_i = last_i - x if (last_i >> k) & 1 else last_i + x
        if last_i < n and max_ends[last_i] > last:
            last = max_ends[last_i]
        k += 1

    return max_ends, k - 1


class ArrayIntervalTree:
    """
    Interval index for a single contig.

    Intervals are appended with :meth:`insert`, then :meth:`index` sorts them
    by start and builds the max-end augmentation once. Queries are only valid
    after indexing, and insertion is rejected afterwards.

    Example:
        >>> tree = ArrayIntervalTree()
        >>> tree.insert(10, 20)
        >>> tree.insert(15, 25)
        >>> tree.index()
        >>> hits = []
        >>> tree.find_into(5, 12, hits)
        >>> [(e.interval.start, e.interval.end) for e in hits]
        [(10, 20)]
    """

    __slots__ = ("_pending", "_entries", "_starts", "_ends", "_max_ends", "_max_level")

    def __init__(self) -> None:
        self._pending: list[IntervalEntry] = []
        self._entries: Optional[list[IntervalEntry]] = None
        self._starts: list[int] = []
        self._ends: list[int] = []
        self._max_ends: list[int] = []
        self._max_level = -1

    @property
    def is_indexed(self) -> bool:
        return self._entries is not None

    def insert(self, start: int, end: int, data: Any = None) -> None:
        """
        Append an interval. No deduplication and no ordering is applied.

        Raises:
            IndexStateError: If the tree has already been indexed
        """
        if self._entries is not None:
            raise IndexStateError("Cannot insert into an interval tree after index()")
        self._pending.append(IntervalEntry(Interval(start, end), data))

    def index(self) -> None:
        """
        Sort stored intervals and build the query structure. Call exactly once.

        Ties on start are broken by end; entries with identical bounds keep
        their insertion order.

        Raises:
            IndexStateError: If called more than once
        """
        if self._entries is not None:
            raise IndexStateError("Interval tree has already been indexed")

        pending = self._pending
        n = len(pending)
        starts = np.fromiter((e.interval.start for e in pending), dtype=np.uint64, count=n)
        ends = np.fromiter((e.interval.end for e in pending), dtype=np.uint64, count=n)

        order = np.lexsort((ends, starts))
        starts = starts[order]
        ends = ends[order]
        max_ends, self._max_level = _augment_max_ends(ends)

        self._entries = [pending[i] for i in order.tolist()]
        self._pending = []

        # Plain lists: scalar access in the query loop is much faster than numpy
        self._starts = starts.tolist()
        self._ends = ends.tolist()
        self._max_ends = max_ends.tolist()

    def find_into(self, start: int, end: int, out: list[IntervalEntry]) -> None:
        """
        Clear ``out`` and fill it with every entry intersecting [start, end).

        Result order follows the tree traversal, not start order, and is
        deterministic for identical input.

        Raises:
            IndexStateError: If the tree has not been indexed
        """
        entries = self._entries
        if entries is None:
            raise IndexStateError("Interval tree must be indexed before querying")

        out.clear()
        n = len(entries)
        if n == 0:
            return

        starts, ends, max_ends = self._starts, self._ends, self._max_ends
        level = self._max_level
        stack = [(level, (1 << level) - 1, False)]

        while stack:
            k, x, left_done = stack.pop()
            if k <= _LINEAR_SCAN_LEVEL:
                i0 = x >> k << k
                i1 = min(i0 + (1 << (k + 1)) - 1, n)
                for i in range(i0, i1):
                    if starts[i] >= end:
                        break
                    if start < ends[i]:
                        out.append(entries[i])
            elif not left_done:
                y = x - (1 << (k - 1))
                stack.append((k, x, True))
                if y >= n or max_ends[y] > start:
                    stack.append((k - 1, y, False))
            elif x < n and starts[x] < end:
                if start < ends[x]:
                    out.append(entries[x])
                stack.append((k - 1, x + (1 << (k - 1)), False))

    def find(self, start: int, end: int) -> list[IntervalEntry]:
        """Convenience wrapper around :meth:`find_into` with a fresh list."""
        out: list[IntervalEntry] = []
        self.find_into(start, end, out)
        return out

    def __len__(self) -> int:
        if self._entries is None:
            return len(self._pending)
        return len(self._entries)

    def __repr__(self) -> str:
        state = "indexed" if self.is_indexed else "building"
        return f"ArrayIntervalTree(intervals={len(self)}, {state})"


class GenomeIntervalIndex:
    """
    Chromosome -> interval tree mapping for one reference set.

    Lifecycle:
    - build: :meth:`add_interval` creates the contig's tree on first use
    - freeze: :meth:`freeze` indexes every tree, exactly once
    - query: :meth:`find_overlaps_into` reads the frozen trees

    Contigs never seen during the build phase answer with an empty overlap
    set, unless ``strict_contigs`` is set, in which case the lookup raises
    :class:`UnknownContigError`.

    Example:
        >>> index = GenomeIntervalIndex()
        >>> index.add_interval("chr1", 10, 20)
        Interval(start=10, end=20)
        >>> index.freeze()
        >>> len(index.find_overlaps("chr1", 0, 15))
        1
        >>> index.find_overlaps("chrUn", 0, 15)
        []
    """

    def __init__(self, strict_contigs: bool = False) -> None:
        """
        Initialize an empty index in the build phase.

        Args:
            strict_contigs: Raise on queries against contigs with no intervals
        """
        self.strict_contigs = strict_contigs
        self._trees: defaultdict[str, ArrayIntervalTree] = defaultdict(ArrayIntervalTree)
        self._missing_contigs: set[str] = set()
        self._frozen = False

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def add_interval(self, chrom: str, start: int, end: int, data: Any = None) -> Interval:
        """
        Add a reference interval to the contig's tree.

        Args:
            chrom: Chromosome/contig name
            start: Start position (0-based, inclusive)
            end: End position (0-based, exclusive)
            data: Payload stored alongside the interval

        Returns:
            The stored Interval

        Raises:
            IndexStateError: If the index is already frozen
        """
        if self._frozen:
            raise IndexStateError("Cannot add intervals after the index is frozen")

        self._trees[chrom].insert(start, end, data)
        return Interval(start, end)

    def add_record(self, record: GenomicRecord, data: Any = None) -> Interval:
        """Add a parsed record to the index."""
        return self.add_interval(record.chrom, record.start, record.end, data)

    def freeze(self) -> None:
        """
        Index every contig's tree and switch to the query phase.

        Raises:
            IndexStateError: If the index is already frozen
        """
        if self._frozen:
            raise IndexStateError("Index is already frozen")

        for tree in self._trees.values():
            tree.index()
        self._frozen = True

        logger.debug(
            f"Froze index: {self.count_intervals():,} intervals "
            f"across {len(self._trees)} contigs"
        )

    def find_overlaps_into(
        self, chrom: str, start: int, end: int, out: list[IntervalEntry]
    ) -> None:
        """
        Clear ``out`` and fill it with intervals intersecting [start, end).

        A contig missing from the reference is logged at DEBUG once per index
        object. Worker processes each hold their own copy of the index, so a
        parallel run logs it once per worker.

        Args:
            chrom: Chromosome/contig name
            start: Query start position
            end: Query end position
            out: Caller-owned buffer, overwritten by every call

        Raises:
            IndexStateError: If the index has not been frozen
            UnknownContigError: In strict mode, if the contig has no intervals
        """
        if not self._frozen:
            raise IndexStateError("Index must be frozen before querying")

        # .get() so a lookup never inserts into the defaultdict
        tree = self._trees.get(chrom)
        if tree is None:
            if self.strict_contigs:
                raise UnknownContigError(chrom)
            if chrom not in self._missing_contigs:
                self._missing_contigs.add(chrom)
                logger.debug(f"No reference intervals for contig '{chrom}'")
            out.clear()
            return

        tree.find_into(start, end, out)

    def find_overlaps(self, chrom: str, start: int, end: int) -> list[IntervalEntry]:
        """
        Find all intervals overlapping the query region.

        Returns:
            List of IntervalEntry objects
            Returns empty list if contig not found (unless strict)
        """
        out: list[IntervalEntry] = []
        self.find_overlaps_into(chrom, start, end, out)
        return out

    def get_contigs(self) -> list[str]:
        """Get contig names in first-seen order."""
        return list(self._trees.keys())

    def count_intervals(self, chrom: Optional[str] = None) -> int:
        """
        Count intervals.

        Args:
            chrom: Optional contig name. If None, counts all intervals.
        """
        if chrom is None:
            return sum(len(tree) for tree in self._trees.values())
        tree = self._trees.get(chrom)
        return len(tree) if tree is not None else 0

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "building"
        return (
            f"GenomeIntervalIndex(contigs={len(self._trees)}, "
            f"intervals={self.count_intervals()}, {state})"
        )
