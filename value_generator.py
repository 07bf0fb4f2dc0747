"""
value_generator.py

Produces one cell value at a time from a ColumnProfile.

Dispatch order for a cell:
1. "id" columns get a fresh UUID
2. child foreign keys are drawn from the parent key pools in GenerationContext
3. budget.root_budget_id / budget.path are derived from the row's own id
4. card.masked_pan / card.exp_date use card-shaped generators
5. updated_at is placed between the row's created_at and "now"
6. null sampling against the profile's null rate
7. enum substitution for non-string enum columns
8. the base-type generator for the profile type

No step raises: missing ranges, empty pools or unparsable inputs fall back
to a fresh UUID, the default date window or a generic string.
"""

import json
import logging
import string
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence, Tuple

from faker import Faker
from numpy.random import Generator

from column_profiler import (
    AlphanumericPattern,
    ColumnProfile,
    HexPattern,
    MaskedPanPattern,
    NumericPattern,
    PrefixDigitsPattern,
    PrefixSeparatorPattern,
    parse_date,
    parse_timestamp,
)

if TYPE_CHECKING:
    from table_generator import GenerationContext

CURRENCY_CODES = ["344", "702", "764", "840", "978"]
COUNTRY_CODES = ["HK", "SG", "US", "AX", "AU", "FR", "GB"]

ALPHANUMERIC_CHARS = string.ascii_uppercase + string.ascii_lowercase + string.digits
HEX_CHARS = "0123456789abcdef"

# (table, column) -> GenerationContext pool the value is drawn from
FOREIGN_KEY_POOLS = {
    ("budget", "business_uuid"): "business_ids",
    ("card", "budget_id"): "budget_ids",
    ("card", "application_id"): "application_ids",
}

DEFAULT_LOOKBACK = timedelta(days=3 * 365)
DEFAULT_NUMBER_RANGE = (0.0, 1000.0)
EXP_YEAR_RANGE = (24, 30)
DOB_RANGE = (date(1970, 1, 1), date(2002, 12, 31))

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_MS = timedelta(milliseconds=1)


def format_timestamp(value: datetime) -> str:
    """Format as 'YYYY-MM-DD HH:MM:SS.mmm' in UTC."""
    value = value.astimezone(timezone.utc)
    return f"{value.strftime('%Y-%m-%d %H:%M:%S')}.{value.microsecond // 1000:03d}"


def format_date(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d")


def clamp_string(value: str, max_length: int) -> str:
    if max_length > 0 and len(value) > max_length:
        return value[:max_length]
    return value


class ValueGenerator:
    """
    Generates cell values from column profiles.

    Every random draw goes through the single numpy Generator (or the Faker
    instance seeded alongside it), so a fixed seed and reference time give
    identical output.
    """

    def __init__(self, rng: Generator, faker: Faker, now: Optional[datetime] = None):
        self.rng = rng
        self.faker = faker
        self.now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        self.logger = logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------ #
    # Primitive draws
    # ------------------------------------------------------------------ #

    def uuid(self) -> str:
        """RFC 4122 version-4 UUID built from RNG bytes."""
        return str(uuid.UUID(bytes=self.rng.bytes(16), version=4))

    def pick(self, values: Sequence[Any]) -> Any:
        return values[int(self.rng.integers(len(values)))]

    def random_bool(self) -> bool:
        return bool(self.rng.integers(2))

    def random_int(self, low: int, high: int) -> int:
        """Uniform integer in [low, high]."""
        return int(self.rng.integers(low, high + 1))

    def _random_chars(self, alphabet: str, length: int) -> str:
        if length <= 0:
            return ""
        indexes = self.rng.integers(len(alphabet), size=length)
        return "".join(alphabet[i] for i in indexes)

    def alphanumeric(self, length: int) -> str:
        return self._random_chars(ALPHANUMERIC_CHARS, length)

    def numeric_string(self, length: int) -> str:
        return self._random_chars(string.digits, length)

    def hex_string(self, length: int) -> str:
        return self._random_chars(HEX_CHARS, length)

    def masked_pan(self) -> str:
        digits = self.numeric_string(16)
        return f"{digits[:6]}******{digits[-4:]}"

    def exp_date(self) -> str:
        month = self.random_int(1, 12)
        year = self.random_int(*EXP_YEAR_RANGE)
        return f"{month:02d}/{year:02d}"

    def random_datetime_between(self, start: datetime, end: datetime) -> datetime:
        """Uniform instant in [start, end] at millisecond resolution."""
        start_ms = (start - EPOCH) // ONE_MS
        end_ms = (end - EPOCH) // ONE_MS
        if end_ms <= start_ms:
            return EPOCH + start_ms * ONE_MS
        return EPOCH + self.random_int(start_ms, end_ms) * ONE_MS

    def _date_window(self, profile: ColumnProfile) -> Tuple[datetime, datetime]:
        start = profile.date_min or (self.now - DEFAULT_LOOKBACK)
        end = profile.date_max or self.now
        return start, end

    # ------------------------------------------------------------------ #
    # JSON
    # ------------------------------------------------------------------ #

    def fake_json_value(self, value: Any, key_name: str = "") -> Any:
        """
        Re-randomize a parsed JSON template, keeping its structure.

        Arrays become 0-2 clones of their first element; objects recurse key
        by key; string leaves are chosen by key-name keyword.
        """
        if value is None:
            return None
        if isinstance(value, list):
            if not value:
                return []
            length = self.random_int(0, 2)
            return [self.fake_json_value(value[0], key_name) for _ in range(length)]
        if isinstance(value, dict):
            return {key: self.fake_json_value(inner, key) for key, inner in value.items()}
        if isinstance(value, bool):
            return self.random_bool()
        if isinstance(value, (int, float)):
            return round(float(self.rng.uniform(0, 1000)), 2)
        if not isinstance(value, str):
            return value
        return self._fake_json_string(value, key_name.lower())

    def _fake_json_string(self, value: str, lowered: str) -> str:
        if "email" in lowered:
            return self.faker.email().lower()
        if "phone" in lowered:
            return self.faker.phone_number()
        if "country" in lowered:
            return self.pick(COUNTRY_CODES)
        if "postal" in lowered:
            return self.numeric_string(5)
        if "city" in lowered:
            return self.faker.city()
        if "line" in lowered:
            return self.faker.street_address()
        if "first" in lowered:
            return self.faker.first_name()
        if "last" in lowered:
            return self.faker.last_name()
        if "dob" in lowered:
            return self.faker.date_between_dates(*DOB_RANGE).strftime("%Y-%m-%d")
        if "id" in lowered:
            return self.alphanumeric(12)

        if not value:
            return ""
        return self.alphanumeric(min(len(value), 24))

    def fake_json(self, sample: Any) -> str:
        return json.dumps(self.fake_json_value(sample), separators=(",", ":"))

    # ------------------------------------------------------------------ #
    # Strings
    # ------------------------------------------------------------------ #

    def generate_string_value(self, profile: ColumnProfile, column_name: str) -> str:
        """Enum pick, then name heuristics, then the inferred string pattern."""
        if profile.enum_values:
            return self.pick(profile.enum_values)

        def finalize(value: str) -> str:
            return clamp_string(value, profile.max_length)

        lowered = column_name.lower()
        if "name" in lowered:
            if "company" in lowered or "business" in lowered or "trade" in lowered:
                return finalize(self.faker.company())
            return finalize(self.faker.name())
        if "title" in lowered:
            return finalize(self.faker.catch_phrase())
        if "email" in lowered:
            return finalize(self.faker.email().lower())
        if "phone" in lowered:
            return finalize(self.faker.phone_number())
        if "country" in lowered:
            return finalize(self.pick(COUNTRY_CODES))
        if "currency" in lowered:
            return finalize(self.pick(CURRENCY_CODES))
        if "reason" in lowered or "message" in lowered:
            return finalize(self.faker.sentence())
        if "address" in lowered:
            return finalize(self.faker.street_address())

        pattern = profile.string_pattern
        if isinstance(pattern, NumericPattern):
            return finalize(self.numeric_string(pattern.length))
        if isinstance(pattern, PrefixDigitsPattern):
            return finalize(f"{pattern.prefix}{self.numeric_string(pattern.digits)}")
        if isinstance(pattern, PrefixSeparatorPattern):
            return finalize(f"{pattern.prefix}{pattern.separator}{self.alphanumeric(pattern.suffix_length)}")
        if isinstance(pattern, HexPattern):
            return finalize(self.hex_string(pattern.length))
        if isinstance(pattern, MaskedPanPattern):
            return finalize(self.masked_pan())
        if isinstance(pattern, AlphanumericPattern):
            length = self.random_int(pattern.min_length, pattern.max_length)
            return finalize(self.alphanumeric(length))

        length = max(6, min(32, profile.max_length or 12))
        return finalize(self.alphanumeric(length))

    # ------------------------------------------------------------------ #
    # Cells
    # ------------------------------------------------------------------ #

    def generate_value(
        self,
        profile: ColumnProfile,
        table_name: str,
        row: Mapping[str, Optional[str]],
        context: "GenerationContext",
    ) -> Optional[str]:
        """
        Generate one cell.

        Args:
            profile: Profile of the column being filled
            table_name: Owning table ("business", "budget" or "card")
            row: Values already decided for this row
            context: Parent key pools from previously generated tables

        Returns:
            The value as a string, or None for NULL
        """
        name = profile.name

        if name == "id":
            return self.uuid()

        pool_name = FOREIGN_KEY_POOLS.get((table_name, name))
        if pool_name is not None:
            pool = getattr(context, pool_name)
            return self.pick(pool) if pool else self.uuid()

        if table_name == "budget" and name == "root_budget_id":
            return row.get("id") or self.uuid()

        if table_name == "budget" and name == "path":
            current = row.get("id") or self.uuid()
            root = row.get("root_budget_id") or current
            return f"{root.replace('-', '_')}.{current.replace('-', '_')}"

        if table_name == "card" and name == "masked_pan":
            return self.masked_pan()

        if table_name == "card" and name == "exp_date":
            return self.exp_date()

        if name == "updated_at" and row.get("created_at"):
            created = parse_timestamp(row["created_at"]) or parse_date(row["created_at"])
            if created is not None:
                return format_timestamp(self.random_datetime_between(created, self.now))

        if self.rng.random() < profile.null_rate:
            return None

        if profile.enum_values and profile.type != "string":
            return self.pick(profile.enum_values)

        return self._generate_by_type(profile)

    def _generate_by_type(self, profile: ColumnProfile) -> str:
        if profile.type == "uuid":
            return self.uuid()
        if profile.type == "boolean":
            return "true" if self.random_bool() else "false"
        if profile.type == "number":
            low = profile.number_min if profile.number_min is not None else DEFAULT_NUMBER_RANGE[0]
            high = profile.number_max if profile.number_max is not None else DEFAULT_NUMBER_RANGE[1]
            value = float(self.rng.uniform(low, high)) if high > low else low
            return f"{value:.{profile.number_scale or 0}f}"
        if profile.type == "timestamp":
            return format_timestamp(self.random_datetime_between(*self._date_window(profile)))
        if profile.type == "date":
            return format_date(self.random_datetime_between(*self._date_window(profile)))
        if profile.type == "exp_date":
            return self.exp_date()
        if profile.type == "json":
            return self.fake_json(profile.json_sample if profile.json_sample is not None else {})
        return self.generate_string_value(profile, profile.name)
