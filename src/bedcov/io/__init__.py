"""BED input parsing."""

from bedcov.io.bed_reader import iter_bed_records, load_reference_index, parse_bed_line

__all__ = ["iter_bed_records", "load_reference_index", "parse_bed_line"]
