"""
BED reader - permissive three-column interval parsing.

Lines are parsed as ``chrom<TAB>start<TAB>end``. Anything that does not
parse (headers, comments, ``track``/``browser`` lines, non-numeric or
negative coordinates, short rows) is dropped without raising. Columns past
the third are ignored so BED6/BED12 files can be used directly.
"""

from __future__ import annotations

import gzip
import logging
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from ..core.genome_interval import GenomeIntervalIndex, GenomicRecord, Interval

logger = logging.getLogger(__name__)

# Coordinates are unsigned 64-bit
MAX_COORDINATE = (1 << 64) - 1


def _parse_coordinate(field: str) -> Optional[int]:
    """Parse an unsigned decimal coordinate, or return None."""
    # isascii() keeps out unicode digits, isdigit() keeps out signs/whitespace/underscores
    if not field or not field.isascii() or not field.isdigit():
        return None
    value = int(field)
    if value > MAX_COORDINATE:
        return None
    return value


def parse_bed_line(line: Union[bytes, str]) -> Optional[GenomicRecord]:
    """
    Parse one BED line into a GenomicRecord.

    Args:
        line: Raw line, with or without trailing newline. Bytes are decoded
            as UTF-8; lines that fail to decode do not parse.

    Returns:
        GenomicRecord, or None if the line does not parse

    Example:
        >>> parse_bed_line(b"chr1\\t10\\t20\\n")
        GenomicRecord(chrom='chr1', interval=Interval(start=10, end=20))
        >>> parse_bed_line("track name=foo") is None
        True
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError:
            return None

    fields = line.rstrip("\r\n").split("\t")
    if len(fields) < 3:
        return None

    start = _parse_coordinate(fields[1])
    end = _parse_coordinate(fields[2])
    if start is None or end is None:
        return None

    return GenomicRecord(chrom=fields[0], interval=Interval(start, end))


def open_bed(path: Path) -> BinaryIO:
    """Open a BED file for binary reading; ``.gz`` (incl. BGZF) goes through gzip."""
    if path.suffix == ".gz":
        return gzip.open(path, "rb")
    return open(path, "rb")


def iter_bed_records(path: Path) -> Iterator[GenomicRecord]:
    """
    Yield records from a BED file, silently skipping bad lines.

    The file is opened by this call, so a missing or unreadable file raises
    here; lines are then read lazily as the iterator is consumed.

    Args:
        path: BED file path

    Returns:
        Iterator of GenomicRecord per successfully parsed line, in file order
    """
    return _read_records(open_bed(path), path)


def _read_records(handle: BinaryIO, path: Path) -> Iterator[GenomicRecord]:
    dropped = 0
    with handle:
        for line in handle:
            record = parse_bed_line(line)
            if record is None:
                dropped += 1
                continue
            yield record

    if dropped:
        logger.debug(f"Skipped {dropped:,} unparseable lines in {path}")


def load_reference_index(path: Path, strict_contigs: bool = False) -> GenomeIntervalIndex:
    """
    Build and freeze a GenomeIntervalIndex from a reference BED file.

    Args:
        path: Reference BED file
        strict_contigs: Passed through to the index

    Returns:
        Frozen index, ready for queries
    """
    logger.info(f"Loading reference intervals from {path}")

    index = GenomeIntervalIndex(strict_contigs=strict_contigs)
    for record in iter_bed_records(path):
        index.add_record(record)
    index.freeze()

    logger.info(
        f"Loaded {index.count_intervals():,} reference intervals "
        f"across {len(index.get_contigs())} contigs"
    )
    return index
