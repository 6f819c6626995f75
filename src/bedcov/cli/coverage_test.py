"""Tests for bedcov.cli.coverage."""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path

import pandas as pd
from absl.testing import absltest
from typer.testing import CliRunner

from bedcov.cli.coverage import app

runner = CliRunner()

EXPECTED = "chr1\t5\t30\t2\t15\nchr1\t0\t30\t3\t20\nchr2\t150\t160\t1\t10\nchr3\t1\t2\t0\t0\n"


class CoverageCliTest(absltest.TestCase):

    def setUp(self):
        super().setUp()
        self.tmpdir = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.tmpdir)
        self.reference = self.tmpdir / "ref.bed"
        self.reference.write_text(
            "chr1\t10\t20\nchr1\t15\t25\nchr1\t0\t5\nchr2\t100\t200\n"
        )
        self.targets = self.tmpdir / "targets.bed"
        self.targets.write_text(
            "chr1\t5\t30\nchr1\t0\t30\nchr2\t150\t160\nchr3\t1\t2\n"
        )

    def test_writes_output_file(self):
        output = self.tmpdir / "out.tsv"
        result = runner.invoke(
            app, [str(self.reference), str(self.targets), "--output", str(output)]
        )
        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(output.read_text(), EXPECTED)

    def test_writes_stdout(self):
        result = runner.invoke(app, [str(self.reference), str(self.targets)])
        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertIn("chr2\t150\t160\t1\t10\n", result.stdout)

    def test_parallel_output_matches(self):
        output = self.tmpdir / "out.tsv"
        result = runner.invoke(
            app,
            [
                str(self.reference),
                str(self.targets),
                "-o",
                str(output),
                "--workers",
                "2",
                "--chunk-size",
                "1",
            ],
        )
        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(output.read_text(), EXPECTED)

    def test_summary_file(self):
        output = self.tmpdir / "out.tsv"
        summary = self.tmpdir / "summary.tsv"
        result = runner.invoke(
            app,
            [
                str(self.reference),
                str(self.targets),
                "-o",
                str(output),
                "--summary",
                str(summary),
            ],
        )
        self.assertEqual(result.exit_code, 0, msg=result.output)

        df = pd.read_csv(summary, sep="\t")
        self.assertEqual(df["chrom"].tolist(), ["chr1", "chr2", "chr3"])
        self.assertEqual(df["covered_bp"].tolist(), [35, 10, 0])
        self.assertEqual(df["n_targets_covered"].tolist(), [2, 1, 0])

    def test_missing_reference(self):
        result = runner.invoke(app, [str(self.tmpdir / "missing.bed"), str(self.targets)])
        self.assertEqual(result.exit_code, 1)

    def test_unreadable_target_keeps_existing_output(self):
        output = self.tmpdir / "out.tsv"
        output.write_text("previous results\n")
        target_dir = self.tmpdir / "targets_dir"
        target_dir.mkdir()

        result = runner.invoke(
            app, [str(self.reference), str(target_dir), "-o", str(output)]
        )
        self.assertEqual(result.exit_code, 1)
        self.assertEqual(output.read_text(), "previous results\n")

    def test_undecodable_lines_are_dropped(self):
        self.reference.write_bytes(
            b"chr1\t10\t20\n\xff\xfe\t1\t2\nchr1\t15\t25\nchr1\t0\t5\n"
        )
        self.targets.write_bytes(b"chr1\t5\t30\n\xff\t0\t1\n")
        output = self.tmpdir / "out.tsv"

        result = runner.invoke(
            app, [str(self.reference), str(self.targets), "-o", str(output)]
        )
        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertEqual(output.read_text(), "chr1\t5\t30\t2\t15\n")

    def test_unwritable_summary_path(self):
        output = self.tmpdir / "out.tsv"
        summary = self.tmpdir / "no_such_dir" / "summary.tsv"
        result = runner.invoke(
            app,
            [
                str(self.reference),
                str(self.targets),
                "-o",
                str(output),
                "--summary",
                str(summary),
            ],
        )
        self.assertEqual(result.exit_code, 1)
        self.assertIsInstance(result.exception, SystemExit)
        self.assertFalse(summary.exists())
        self.assertEqual(output.read_text(), EXPECTED)

    def test_strict_contigs_fails(self):
        output = self.tmpdir / "out.tsv"
        result = runner.invoke(
            app,
            [str(self.reference), str(self.targets), "-o", str(output), "--strict-contigs"],
        )
        self.assertEqual(result.exit_code, 1)


if __name__ == "__main__":
    absltest.main()
