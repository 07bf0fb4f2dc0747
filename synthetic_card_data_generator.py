#!/usr/bin/env python3
"""
synthetic_card_data_generator.py

Generates referentially consistent synthetic data for three related tables:
- business.csv: parent businesses
- budget.csv: budgets, each owned by a generated business
- card.csv: cards, each attached to a budget of its business
- load.sql: \\copy (or COPY) statements loading the CSVs in dependency order

Column types, null rates, ranges, enums and string shapes are inferred from
sample CSV exports of the real tables; the generated rows follow those
profiles.

Usage:
    python synthetic_card_data_generator.py --rows 5000 --out-dir ./out
    python synthetic_card_data_generator.py --cards 200000 --max-cards-per-business 1000
    python synthetic_card_data_generator.py --card-rows 20000 --budget-rows 5000 --business-rows 1000
    python synthetic_card_data_generator.py --config generator_config.json --seed 42
"""

import argparse
import csv
import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np
import pandas as pd
from faker import Faker

from column_profiler import ColumnProfile, infer_profiles
from enum_overrides import apply_enum_overrides, load_enum_overrides
from generation_errors import InputError
from row_allocator import (
    DEFAULT_MAX_CARDS_PER_BUSINESS,
    DEFAULT_ROWS,
    RowPlan,
    resolve_row_plan,
    summarize_counts,
)
from table_generator import TABLE_ORDER, HierarchyGenerator
from value_generator import ValueGenerator

DEFAULT_FILES = {
    "card": Path("from-db/card.csv"),
    "business": Path("from-db/business.csv"),
    "budget": Path("from-db/budget.csv"),
}
DEFAULT_ENUM_FILE = Path("from-db/enums.json")
DEFAULT_SAMPLE_ROWS = 200
DEFAULT_PROGRESS_EVERY = 100000
COPY_MODES = ("copy", "psql")
SEEDED_REFERENCE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class GeneratorConfig:
    """Resolved settings for one generation run."""
    rows: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_ROWS))
    explicit_rows: Set[str] = field(default_factory=set)
    max_cards_per_business: int = DEFAULT_MAX_CARDS_PER_BUSINESS
    sample_rows: int = DEFAULT_SAMPLE_ROWS
    progress_every: int = DEFAULT_PROGRESS_EVERY
    seed: Optional[int] = None
    out_dir: Path = Path("out")
    copy_mode: str = "psql"
    enum_file: Optional[Path] = None
    input_files: Dict[str, Path] = field(default_factory=lambda: dict(DEFAULT_FILES))
    reference_time: Optional[datetime] = None

    def validate(self) -> None:
        """Raise ValueError for settings the generator cannot run with."""
        for table in TABLE_ORDER:
            if self.rows.get(table, 0) < 0:
                raise ValueError(f"Row count for {table} must be >= 0, got {self.rows[table]}")
        if self.max_cards_per_business <= 0:
            raise ValueError(f"max_cards_per_business must be > 0, got {self.max_cards_per_business}")
        if self.sample_rows <= 0:
            raise ValueError(f"sample_rows must be > 0, got {self.sample_rows}")
        if self.progress_every < 0:
            raise ValueError(f"progress_every must be >= 0, got {self.progress_every}")
        if self.copy_mode not in COPY_MODES:
            raise ValueError(f"copy_mode must be one of {COPY_MODES}, got {self.copy_mode!r}")

    def update(self, values: Dict[str, Any]) -> None:
        """Apply settings from a flattened config dictionary."""
        rows = values.get("rows")
        if isinstance(rows, int):
            self.rows = {table: rows for table in TABLE_ORDER}
            self.explicit_rows.update(TABLE_ORDER)
        elif isinstance(rows, dict):
            for table, count in rows.items():
                if table not in TABLE_ORDER:
                    raise ValueError(f"Unknown table in rows: {table}")
                self.rows[table] = int(count)
                self.explicit_rows.add(table)

        for key in ("max_cards_per_business", "sample_rows", "progress_every", "seed"):
            if values.get(key) is not None:
                setattr(self, key, int(values[key]))
        if values.get("out_dir"):
            self.out_dir = Path(values["out_dir"])
        if values.get("copy_mode"):
            self.copy_mode = values["copy_mode"]
        if values.get("enum_file"):
            self.enum_file = Path(values["enum_file"])
        for table, path in (values.get("input_files") or {}).items():
            if table not in TABLE_ORDER:
                raise ValueError(f"Unknown table in input_files: {table}")
            self.input_files[table] = Path(path)
        if values.get("reference_time"):
            self.reference_time = parse_reference_time(values["reference_time"])


def parse_reference_time(value: str) -> datetime:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise ValueError(f"Invalid reference time: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class ConfigLoader:
    """Loads generator settings from a JSON file."""

    def __init__(self, config_path: Path):
        self.config_path = config_path
        self.config: Dict[str, Any] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def load(self) -> Dict[str, Any]:
        """Load and flatten configuration from a JSON file."""
        self.logger.info(f"Loading configuration from {self.config_path}")

        if not self.config_path.exists():
            raise InputError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise InputError(f"Config file is not valid JSON: {self.config_path}") from e

        if not isinstance(raw, dict):
            raise InputError(f"Config file must be a JSON object: {self.config_path}")

        self.config = self._flatten_recursive(raw)
        return self.config

    def _flatten_recursive(self, obj: Any) -> Any:
        """Recursively unwrap {"value": ..., "_comment": ...} objects."""
        if isinstance(obj, dict):
            keys = set(obj.keys())
            if keys == {'value'} or keys == {'value', '_comment'}:
                return self._flatten_recursive(obj['value'])

            return {k: self._flatten_recursive(v) for k, v in obj.items()
                    if not k.startswith('_comment')}

        elif isinstance(obj, list):
            return [self._flatten_recursive(item) for item in obj]

        return obj


# =============================================================================
# Sample Reader
# =============================================================================

class SampleReader:
    """Reads the header and first rows of a sample CSV export."""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def read_sample(self, file_path: Path, sample_rows: int) -> Tuple[List[str], List[List[str]]]:
        """
        Read at most sample_rows data rows, keeping empty fields as "".

        Raises:
            InputError: If the file is missing, empty or cannot be parsed
        """
        if not file_path.exists():
            raise InputError(f"Sample file not found: {file_path}")

        long_rows: List[List[str]] = []
        try:
            df = pd.read_csv(
                file_path,
                dtype=str,
                keep_default_na=False,
                nrows=sample_rows,
                engine="python",
                on_bad_lines=long_rows.append,
                encoding="utf-8-sig",
            )
        except pd.errors.EmptyDataError as e:
            raise InputError(f"No data found in {file_path}") from e
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise InputError(f"Could not parse {file_path}: {e}") from e

        # Long rows went to long_rows (returning None drops them); short rows
        # come back padded with NaN
        short_rows = df.isna().any(axis=1)
        malformed = len(long_rows) + int(short_rows.sum())
        if malformed:
            self.logger.warning(f"Skipping {malformed} malformed rows in {file_path}")
            df = df[~short_rows]

        header = [str(column) for column in df.columns]
        rows = df.values.tolist()
        self.logger.info(f"Loaded {len(rows)} sample rows ({len(header)} columns) from {file_path}")
        return header, rows

    def load_profiles(self, file_path: Path, sample_rows: int) -> List[ColumnProfile]:
        header, rows = self.read_sample(file_path, sample_rows)
        return infer_profiles(header, rows)


# =============================================================================
# Data Writer
# =============================================================================

def sql_escape(value: str) -> str:
    return value.replace("'", "''")


def build_copy_statement(table_name: str, csv_path: Path, mode: str) -> str:
    """COPY for server-side loading, \\copy for psql client-side loading."""
    escaped_path = sql_escape(str(csv_path))
    command = "\\copy" if mode == "psql" else "COPY"
    return f"{command} {table_name} FROM '{escaped_path}' WITH (FORMAT csv, HEADER true);"


class DataWriter:
    """Writes generated tables, the load script and run statistics."""

    def __init__(self, output_dir: Path, copy_mode: str = "psql"):
        self.output_dir = Path(output_dir).resolve()
        self.copy_mode = copy_mode
        self.table_paths: Dict[str, Path] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def setup_output_dir(self) -> None:
        """Create output directory if it doesn't exist."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Output directory: {self.output_dir}")

    def write_table(self, table_name: str, header: List[str], rows: Iterable[Dict[str, Optional[str]]]) -> int:
        """
        Stream rows to <table_name>.csv.

        Values are always quoted; None is written as an unquoted empty field
        so PostgreSQL reads it as NULL.
        """
        output_path = self.output_dir / f"{table_name}.csv"
        count = 0
        with open(output_path, 'w', encoding='utf-8', newline='') as f:
            writer = csv.writer(f, quoting=csv.QUOTE_NOTNULL, lineterminator="\n")
            writer.writerow(header)
            for row in rows:
                writer.writerow([row.get(column) for column in header])
                count += 1

        self.table_paths[table_name] = output_path
        self.logger.info(f"Written {count} rows to {output_path}")
        return count

    def write_load_script(self) -> Path:
        """Write load.sql with one copy statement per table, parents first."""
        output_path = self.output_dir / "load.sql"
        statements = [
            build_copy_statement(table, self.table_paths[table], self.copy_mode)
            for table in TABLE_ORDER
            if table in self.table_paths
        ]
        output_path.write_text("\n".join(statements) + "\n", encoding="utf-8")
        self.logger.info(f"Written load script to {output_path}")
        return output_path

    def write_statistics(self, stats: Dict[str, Any]) -> Path:
        """Write generation statistics to JSON."""
        output_path = self.output_dir / "generation_statistics.json"

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(stats, f, indent=2, default=str)

        self.logger.info(f"Written statistics to {output_path}")
        return output_path


# =============================================================================
# Main Orchestrator
# =============================================================================

class SyntheticCardDataGenerator:
    """Main orchestrator: profile samples, plan rows, generate and write."""

    def __init__(self, config: GeneratorConfig):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

        self.plan: Optional[RowPlan] = None
        self.profiles: Dict[str, List[ColumnProfile]] = {}
        self.hierarchy: Optional[HierarchyGenerator] = None
        self.data_writer: Optional[DataWriter] = None
        self.rows_written: Dict[str, int] = {}

    def _reference_time(self) -> datetime:
        """
        The instant used as "now" for generated dates.

        Seeded runs never read the clock: without an explicit reference time
        they use the latest date seen in the samples, or SEEDED_REFERENCE_TIME
        when no column has a date range.
        """
        if self.config.reference_time is not None:
            return self.config.reference_time
        if self.config.seed is None:
            return datetime.now(timezone.utc)
        latest = [
            profile.date_max
            for profiles in self.profiles.values()
            for profile in profiles
            if profile.date_max is not None
        ]
        return max(latest, default=SEEDED_REFERENCE_TIME)

    def load_profiles(self) -> Dict[str, List[ColumnProfile]]:
        """Profile every sample table and merge enum overrides."""
        overrides = load_enum_overrides(self.config.enum_file)
        reader = SampleReader()
        profiles = {}
        for table in TABLE_ORDER:
            inferred = reader.load_profiles(self.config.input_files[table], self.config.sample_rows)
            profiles[table] = apply_enum_overrides(inferred, table, overrides)
            self.logger.info(f"Profiled {len(profiles[table])} columns for {table}")
        return profiles

    def run(self) -> Dict[str, Path]:
        """
        Execute the full generation pipeline.

        Returns:
            Paths of the written CSVs keyed by table name, plus "load_sql"
        """
        self.logger.info("=" * 60)
        self.logger.info("SYNTHETIC CARD DATA GENERATION - STARTING")
        self.logger.info("=" * 60)

        self.config.validate()

        # Step 1: Resolve row counts
        self.plan = resolve_row_plan(
            self.config.rows,
            self.config.explicit_rows,
            self.config.max_cards_per_business,
        )

        # Step 2: Profile samples; input errors abort before anything is written
        self.profiles = self.load_profiles()

        # Step 3: Initialize RNG and Faker
        seed = self.config.seed
        self.logger.info(f"Using seed: {seed}")
        rng = np.random.default_rng(seed)
        faker = Faker()
        if seed is not None:
            faker.seed_instance(seed)
        reference_time = self._reference_time()
        self.logger.info(f"Reference time: {reference_time.isoformat()}")
        value_generator = ValueGenerator(rng, faker, now=reference_time)

        # Step 4: Generate business -> budget -> card, streaming to CSV
        self.data_writer = DataWriter(self.config.out_dir, self.config.copy_mode)
        self.data_writer.setup_output_dir()
        self.hierarchy = HierarchyGenerator(value_generator, self.config.progress_every)
        self.rows_written = self.hierarchy.run(self.profiles, self.plan, self.data_writer.write_table)

        # Step 5: Load script and statistics
        load_sql = self.data_writer.write_load_script()
        self.data_writer.write_statistics(self._statistics())

        outputs = dict(self.data_writer.table_paths)
        outputs["load_sql"] = load_sql

        self.logger.info("Generated files:")
        for path in outputs.values():
            self.logger.info(f"- {path}")

        self.logger.info("=" * 60)
        self.logger.info("SYNTHETIC CARD DATA GENERATION - COMPLETE")
        self.logger.info("=" * 60)
        return outputs

    def _statistics(self) -> Dict[str, Any]:
        return {
            'generated_at': datetime.now().isoformat(),
            'seed': self.config.seed,
            'plan': {
                'business': self.plan.business,
                'budget': self.plan.budget,
                'card': self.plan.card,
                'max_cards_per_business': self.plan.max_cards_per_business,
                'adjustments': self.plan.adjustments,
            },
            'rows_written': self.rows_written,
            'budgets_per_business': summarize_counts(self.hierarchy.budget_counts),
            'cards_per_business': summarize_counts(self.hierarchy.card_counts),
            'columns': {
                table: {p.name: p.type for p in profiles}
                for table, profiles in self.profiles.items()
            },
        }


# =============================================================================
# CLI Entry Point
# =============================================================================

def setup_logging(level: str = 'INFO') -> None:
    """Configure logging."""
    log_format = "%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=log_format
    )
    # Suppress verbose logs from faker
    logging.getLogger("faker").setLevel(logging.WARNING)


def _non_negative_int(value: str) -> int:
    count = int(value)
    if count < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {count}")
    return count


def _positive_int(value: str) -> int:
    count = int(value)
    if count <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {count}")
    return count


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Synthetic business/budget/card data generator",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument("--config", type=Path, help="Path to configuration JSON file")
    parser.add_argument("--rows", type=_non_negative_int,
                        help="Rows for all tables (default 200/400/1000)")
    parser.add_argument("--card-rows", "--cards", dest="card_rows", type=_non_negative_int,
                        help="Rows for card table")
    parser.add_argument("--business-rows", type=_non_negative_int, help="Rows for business table")
    parser.add_argument("--budget-rows", type=_non_negative_int, help="Rows for budget table")
    parser.add_argument("--max-cards-per-business", type=_positive_int,
                        help=f"Max cards per business (default {DEFAULT_MAX_CARDS_PER_BUSINESS})")
    parser.add_argument("--sample-rows", type=_positive_int,
                        help=f"Sample rows for inference (default {DEFAULT_SAMPLE_ROWS})")
    parser.add_argument("--progress-every", type=_positive_int,
                        help=f"Log progress every N rows (default {DEFAULT_PROGRESS_EVERY})")
    parser.add_argument("--enum-file", type=Path,
                        help=f"JSON map of enum values to use (default {DEFAULT_ENUM_FILE} if present)")
    parser.add_argument("--seed", type=int, help="Seed for repeatable data")
    parser.add_argument("--reference-time",
                        help="ISO-8601 instant used as 'now' for generated dates")
    parser.add_argument("--out-dir", type=Path, help="Output directory (default ./out)")
    parser.add_argument("--copy-mode", choices=COPY_MODES,
                        help="Emit COPY or \\copy statements (default psql)")
    parser.add_argument("--card-file", type=Path, help=f"Input card CSV (default {DEFAULT_FILES['card']})")
    parser.add_argument("--business-file", type=Path,
                        help=f"Input business CSV (default {DEFAULT_FILES['business']})")
    parser.add_argument("--budget-file", type=Path, help=f"Input budget CSV (default {DEFAULT_FILES['budget']})")

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging"
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> GeneratorConfig:
    """Defaults, then the optional config file, then command-line flags."""
    config = GeneratorConfig()
    if args.config:
        config.update(ConfigLoader(args.config).load())

    if args.rows is not None:
        config.rows = {table: args.rows for table in TABLE_ORDER}
        config.explicit_rows.update(TABLE_ORDER)
    for table, value in (("card", args.card_rows), ("business", args.business_rows),
                         ("budget", args.budget_rows)):
        if value is not None:
            config.rows[table] = value
            config.explicit_rows.add(table)

    if args.max_cards_per_business is not None:
        config.max_cards_per_business = args.max_cards_per_business
    if args.sample_rows is not None:
        config.sample_rows = args.sample_rows
    if args.progress_every is not None:
        config.progress_every = args.progress_every
    if args.seed is not None:
        config.seed = args.seed
    if args.reference_time:
        config.reference_time = parse_reference_time(args.reference_time)
    if args.out_dir is not None:
        config.out_dir = args.out_dir
    if args.copy_mode is not None:
        config.copy_mode = args.copy_mode
    for table, path in (("card", args.card_file), ("business", args.business_file),
                        ("budget", args.budget_file)):
        if path is not None:
            config.input_files[table] = path

    if args.enum_file is not None:
        config.enum_file = args.enum_file
    elif config.enum_file is None and DEFAULT_ENUM_FILE.exists():
        config.enum_file = DEFAULT_ENUM_FILE

    return config


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    log_level = 'DEBUG' if args.verbose else 'INFO'
    setup_logging(log_level)

    try:
        config = build_config(args)
        generator = SyntheticCardDataGenerator(config)
        generator.run()
    except InputError as e:
        logging.error(f"Input error: {e}")
        sys.exit(1)
    except FileNotFoundError as e:
        logging.error(f"File not found: {e}")
        sys.exit(1)
    except ValueError as e:
        logging.error(f"Configuration error: {e}")
        sys.exit(1)
    except Exception as e:
        logging.exception(f"Failed to generate data: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
