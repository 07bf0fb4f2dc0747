#!/usr/bin/env python3
"""
End-to-end tests for the synthetic card data generator.

Tests verify acceptance criteria:
1. Every table, load.sql and statistics are written
2. Child rows only reference generated parent rows
3. NULL is written as an unquoted empty field
4. Byte-identical CSVs for a fixed seed and reference time
5. Input errors abort the run with exit code 1
"""

import json
import shutil
import sys
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent))
from generation_errors import InputError
from synthetic_card_data_generator import (
    GeneratorConfig,
    SampleReader,
    SyntheticCardDataGenerator,
    build_copy_statement,
    build_config,
    main,
    parse_args,
)

SAMPLE_DIR = Path(__file__).parent / "from-db"
REFERENCE_TIME = datetime(2025, 6, 1, tzinfo=timezone.utc)


def make_config(work_dir: Path, out_name: str = "out", **overrides) -> GeneratorConfig:
    """Config reading copies of the bundled samples from work_dir."""
    sample_dir = work_dir / "from-db"
    if not sample_dir.exists():
        shutil.copytree(SAMPLE_DIR, sample_dir)

    config = GeneratorConfig(
        rows={"business": 4, "budget": 8, "card": 20},
        explicit_rows={"business", "budget", "card"},
        max_cards_per_business=10,
        seed=42,
        out_dir=work_dir / out_name,
        enum_file=sample_dir / "enums.json",
        input_files={table: sample_dir / f"{table}.csv" for table in ("business", "budget", "card")},
        reference_time=REFERENCE_TIME,
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def read_table(path: Path) -> pd.DataFrame:
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def frozen_clock(instant: datetime):
    """datetime replacement whose now() always returns instant."""
    class FrozenDatetime(datetime):
        @classmethod
        def now(cls, tz=None):
            return instant if tz is None else instant.astimezone(tz)

    return FrozenDatetime


class TestEndToEnd(unittest.TestCase):
    """Test the full pipeline against the bundled samples."""

    def setUp(self):
        """Set up test fixtures."""
        self.tmp = tempfile.TemporaryDirectory()
        self.work_dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_outputs_written(self):
        """Verify every CSV, load.sql and statistics exist with planned counts."""
        config = make_config(self.work_dir)
        outputs = SyntheticCardDataGenerator(config).run()

        self.assertEqual(set(outputs), {"business", "budget", "card", "load_sql"})
        self.assertEqual(len(read_table(outputs["business"])), 4)
        self.assertEqual(len(read_table(outputs["budget"])), 8)
        self.assertEqual(len(read_table(outputs["card"])), 20)
        self.assertTrue((config.out_dir / "generation_statistics.json").exists())

    def test_headers_match_samples(self):
        """Verify output columns keep the sample column order."""
        outputs = SyntheticCardDataGenerator(make_config(self.work_dir)).run()

        for table in ("business", "budget", "card"):
            sample_header = read_table(SAMPLE_DIR / f"{table}.csv").columns.tolist()
            self.assertEqual(read_table(outputs[table]).columns.tolist(), sample_header)

    def test_load_script_order(self):
        """Verify load.sql loads parents before children."""
        config = make_config(self.work_dir)
        outputs = SyntheticCardDataGenerator(config).run()

        lines = outputs["load_sql"].read_text(encoding="utf-8").splitlines()
        self.assertEqual(len(lines), 3)
        self.assertTrue(lines[0].startswith("\\copy business FROM '"))
        self.assertTrue(lines[1].startswith("\\copy budget FROM '"))
        self.assertTrue(lines[2].startswith("\\copy card FROM '"))
        self.assertIn(str(outputs["card"]), lines[2])
        self.assertTrue(lines[2].endswith("WITH (FORMAT csv, HEADER true);"))

    def test_server_copy_mode(self):
        config = make_config(self.work_dir, copy_mode="copy")
        outputs = SyntheticCardDataGenerator(config).run()

        first = outputs["load_sql"].read_text(encoding="utf-8").splitlines()[0]
        self.assertTrue(first.startswith("COPY business FROM '"))

    def test_referential_integrity(self):
        """Verify budgets and cards only reference generated parents."""
        outputs = SyntheticCardDataGenerator(make_config(self.work_dir)).run()
        business = read_table(outputs["business"])
        budget = read_table(outputs["budget"])
        card = read_table(outputs["card"])

        self.assertTrue(budget["business_uuid"].isin(business["id"]).all())
        self.assertTrue(card["budget_id"].isin(budget["id"]).all())
        self.assertTrue(card["application_id"].isin(business["business_owner_application_id"]).all())
        self.assertTrue((budget["root_budget_id"] == budget["id"]).all())
        self.assertTrue((budget["parent_budget_id"] == "").all())

    def test_null_is_unquoted(self):
        """Verify parent_budget_id is written as an unquoted empty field."""
        outputs = SyntheticCardDataGenerator(make_config(self.work_dir)).run()

        lines = outputs["budget"].read_text(encoding="utf-8").splitlines()
        self.assertTrue(lines[0].startswith('"id","business_uuid","parent_budget_id"'))
        for line in lines[1:]:
            self.assertIn('",,"', line)

    def test_enum_overrides_applied(self):
        outputs = SyntheticCardDataGenerator(make_config(self.work_dir)).run()

        card = read_table(outputs["card"])
        business = read_table(outputs["business"])
        statuses = set(card["status"]) - {""}
        self.assertTrue(statuses <= {"ACTIVE", "FROZEN", "CANCELLED", "EXPIRED"})
        currencies = set(business["currency"]) - {""}
        self.assertTrue(currencies <= {"344", "702", "764", "840", "978"})

    def test_reproducibility(self):
        """Verify byte-identical CSVs with the same seed and reference time."""
        first = SyntheticCardDataGenerator(make_config(self.work_dir, "run1")).run()
        second = SyntheticCardDataGenerator(make_config(self.work_dir, "run2")).run()

        for table in ("business", "budget", "card"):
            self.assertEqual(first[table].read_bytes(), second[table].read_bytes(),
                             f"{table}.csv differs between runs")

    def test_seeded_run_ignores_clock(self):
        """Verify seeded runs without a reference time do not depend on the date."""
        outputs = []
        for out_name, day in (("day1", 17), ("day2", 18)):
            config = make_config(self.work_dir, out_name, reference_time=None)
            clock = frozen_clock(datetime(2026, 10, day, 9, 30, tzinfo=timezone.utc))
            with mock.patch("synthetic_card_data_generator.datetime", clock):
                generator = SyntheticCardDataGenerator(config)
                outputs.append(generator.run())
                self.assertLess(generator._reference_time(), datetime(2026, 1, 1, tzinfo=timezone.utc))

        for table in ("business", "budget", "card"):
            self.assertEqual(outputs[0][table].read_bytes(), outputs[1][table].read_bytes(),
                             f"{table}.csv depends on the clock")

    def test_card_cap_adjustment_recorded(self):
        """Verify capping cards is applied and reported in statistics."""
        config = make_config(
            self.work_dir,
            rows={"business": 2, "budget": 2, "card": 50},
            max_cards_per_business=3,
        )
        outputs = SyntheticCardDataGenerator(config).run()

        self.assertEqual(len(read_table(outputs["card"])), 6)
        stats = json.loads((config.out_dir / "generation_statistics.json").read_text(encoding="utf-8"))
        self.assertEqual(stats["plan"]["card"], 6)
        self.assertEqual(len(stats["plan"]["adjustments"]), 1)
        self.assertEqual(stats["rows_written"], {"business": 2, "budget": 2, "card": 6})
        self.assertEqual(stats["cards_per_business"]["max"], 3)

    def test_missing_sample_raises(self):
        config = make_config(self.work_dir)
        config.input_files["card"] = self.work_dir / "missing.csv"

        with self.assertRaises(InputError):
            SyntheticCardDataGenerator(config).run()

        self.assertFalse((config.out_dir / "business.csv").exists())


class TestSampleReader(unittest.TestCase):
    """Test sample CSV reading."""

    def test_wrong_width_rows_skipped_with_warning(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "card.csv"
            path.write_text(
                '"id","status","program_code"\n'
                '"c1","ACTIVE","PRG1001"\n'
                '"c2","FROZEN","PRG1002","extra"\n'
                '"c3","ACTIVE"\n'
                '"c4","","PRG1004"\n',
                encoding="utf-8",
            )

            with self.assertLogs("SampleReader", level="WARNING") as logs:
                header, rows = SampleReader().read_sample(path, 200)

        self.assertEqual(header, ["id", "status", "program_code"])
        self.assertEqual(rows, [["c1", "ACTIVE", "PRG1001"], ["c4", "", "PRG1004"]])
        self.assertIn("Skipping 2 malformed rows", logs.output[0])


class TestCommandLine(unittest.TestCase):
    """Test argument handling and exit codes."""

    def test_cli_overrides_config_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"
            config_path.write_text(json.dumps({
                "rows": {"value": {"card": 30}, "_comment": "per-table rows"},
                "seed": 7,
                "copy_mode": "copy",
            }), encoding="utf-8")

            config = build_config(parse_args([
                "--config", str(config_path), "--seed", "9", "--business-rows", "2",
            ]))

        self.assertEqual(config.seed, 9)
        self.assertEqual(config.copy_mode, "copy")
        self.assertEqual(config.rows["card"], 30)
        self.assertEqual(config.rows["business"], 2)
        self.assertEqual(config.explicit_rows, {"card", "business"})

    def test_rows_flag_sets_every_table(self):
        config = build_config(parse_args(["--rows", "50", "--cards", "75"]))

        self.assertEqual(config.rows, {"business": 50, "budget": 50, "card": 75})
        self.assertEqual(config.explicit_rows, {"business", "budget", "card"})

    def test_negative_rows_rejected(self):
        with self.assertRaises(SystemExit):
            parse_args(["--rows", "-1"])

    def test_main_exits_on_missing_sample(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(SystemExit) as ctx:
                main([
                    "--card-file", str(Path(tmpdir) / "missing.csv"),
                    "--out-dir", str(Path(tmpdir) / "out"),
                    "--seed", "1",
                ])

        self.assertEqual(ctx.exception.code, 1)

    def test_copy_statement_escapes_quotes(self):
        statement = build_copy_statement("card", Path("/tmp/o'brien/card.csv"), "psql")

        self.assertEqual(
            statement,
            "\\copy card FROM '/tmp/o''brien/card.csv' WITH (FORMAT csv, HEADER true);",
        )


def run_tests():
    """Run all tests."""
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    suite.addTests(loader.loadTestsFromTestCase(TestEndToEnd))
    suite.addTests(loader.loadTestsFromTestCase(TestSampleReader))
    suite.addTests(loader.loadTestsFromTestCase(TestCommandLine))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    return 0 if result.wasSuccessful() else 1


if __name__ == '__main__':
    sys.exit(run_tests())
