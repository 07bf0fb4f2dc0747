"""
column_profiler.py

Infers a typed ColumnProfile for each column of a sample table.

Each column is classified from a small sample of raw string values:
- semantic type (uuid, boolean, number, timestamp, date, exp_date, json, string)
- null rate, length bounds and numeric/date ranges
- a closed set of enum candidates for status/type-like columns
- the string shape (StringPattern) shared by every sample of a string column

Classification is all-or-nothing: a type or pattern is assigned only when every
non-empty sample matches it, and the first match in a fixed precedence order wins.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

DEFAULT_NULL_RATE = 0.1
MAX_INFERENCE_SAMPLES = 50
MAX_ENUM_VALUES = 20
MAX_ENUM_VALUE_LENGTH = 64

ENUM_HINTS = (
    "status",
    "type",
    "plan",
    "industry",
    "currency",
    "country",
    "client_type",
)

COLUMN_TYPES = ("uuid", "boolean", "number", "timestamp", "date", "exp_date", "json", "string")

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
TIMESTAMP_RE = re.compile(r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})(?:\.(\d+))?$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
EXP_DATE_RE = re.compile(r"^\d{2}/\d{2}$")

DIGITS_RE = re.compile(r"^\d+$")
MASKED_PAN_RE = re.compile(r"^\d{6}\*{6}\d{4}$")
PREFIX_DIGITS_RE = re.compile(r"^([A-Za-z]+)(\d+)$")
PREFIX_SEPARATOR_RE = re.compile(r"^([A-Za-z]+)([_-])([A-Za-z0-9]+)$")
HEX32_RE = re.compile(r"^[0-9a-f]{32}$", re.IGNORECASE)
ALPHANUMERIC_RE = re.compile(r"^[A-Za-z0-9]+$")


# =============================================================================
# String Patterns
# =============================================================================

@dataclass(frozen=True)
class NumericPattern:
    """Digits only, e.g. "004512"."""
    kind: ClassVar[str] = "numeric"
    length: int


@dataclass(frozen=True)
class PrefixDigitsPattern:
    """Shared letter prefix followed by digits, e.g. "ABC123"."""
    kind: ClassVar[str] = "prefix_digits"
    prefix: str
    digits: int


@dataclass(frozen=True)
class PrefixSeparatorPattern:
    """Shared letter prefix, separator and alphanumeric suffix, e.g. "cus_9fQ2"."""
    kind: ClassVar[str] = "prefix_separator"
    prefix: str
    separator: str
    suffix_length: int


@dataclass(frozen=True)
class HexPattern:
    kind: ClassVar[str] = "hex"
    length: int = 32


@dataclass(frozen=True)
class MaskedPanPattern:
    """Masked card number: 6 digits, 6 '*' and 4 digits."""
    kind: ClassVar[str] = "masked_pan"


@dataclass(frozen=True)
class AlphanumericPattern:
    kind: ClassVar[str] = "alphanumeric"
    min_length: int
    max_length: int


StringPattern = Union[
    NumericPattern,
    PrefixDigitsPattern,
    PrefixSeparatorPattern,
    HexPattern,
    MaskedPanPattern,
    AlphanumericPattern,
]


# =============================================================================
# Column Profile
# =============================================================================

@dataclass(frozen=True)
class ColumnProfile:
    """Inferred type and statistics for one column of a sample table."""
    name: str
    type: str
    null_rate: float
    min_length: int
    max_length: int
    enum_values: Optional[Tuple[str, ...]] = None
    json_sample: Any = None
    number_scale: Optional[int] = None
    number_min: Optional[float] = None
    number_max: Optional[float] = None
    date_min: Optional[datetime] = None
    date_max: Optional[datetime] = None
    string_pattern: Optional[StringPattern] = None


# =============================================================================
# Value Validators
# =============================================================================

def is_boolean(value: str) -> bool:
    return value in ("true", "false")


def is_uuid(value: str) -> bool:
    return UUID_RE.match(value) is not None


def is_number(value: str) -> bool:
    return NUMBER_RE.match(value) is not None


def is_timestamp(value: str) -> bool:
    return parse_timestamp(value) is not None


def is_date(value: str) -> bool:
    return parse_date(value) is not None


def is_exp_date(value: str) -> bool:
    return EXP_DATE_RE.match(value) is not None


def is_json_like(value: str) -> bool:
    """True for strings that parse as JSON and start with '{' or '['."""
    trimmed = value.strip()
    if not trimmed or trimmed[0] not in "{[":
        return False
    try:
        json.loads(trimmed)
    except ValueError:
        return False
    return True


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse 'YYYY-MM-DD HH:MM:SS[.fraction]' as a UTC datetime."""
    match = TIMESTAMP_RE.match(value)
    if not match:
        return None
    try:
        parsed = datetime.strptime(match.group(1), "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None
    fraction = match.group(2)
    if fraction:
        parsed = parsed.replace(microsecond=int(fraction[:6].ljust(6, "0")))
    return parsed.replace(tzinfo=timezone.utc)


def parse_date(value: str) -> Optional[datetime]:
    """Parse 'YYYY-MM-DD' as midnight UTC."""
    if not DATE_RE.match(value):
        return None
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# =============================================================================
# String Pattern Inference
# =============================================================================

def _all_numeric(values: Sequence[str]) -> bool:
    return all(DIGITS_RE.match(v) for v in values)


def _numeric(values: Sequence[str]) -> StringPattern:
    return NumericPattern(length=_round_half_up(sum(len(v) for v in values) / len(values)))


def _all_masked_pan(values: Sequence[str]) -> bool:
    return all(MASKED_PAN_RE.match(v) for v in values)


def _masked_pan(values: Sequence[str]) -> StringPattern:
    return MaskedPanPattern()


def _shared_groups(values: Sequence[str], pattern: re.Pattern, shared: int) -> Optional[List[re.Match]]:
    """Match every value, requiring the first `shared` groups to be identical."""
    matches = [pattern.match(v) for v in values]
    if not all(matches):
        return None
    head = matches[0].groups()[:shared]
    if any(m.groups()[:shared] != head for m in matches):
        return None
    return matches


def _all_prefix_digits(values: Sequence[str]) -> bool:
    return _shared_groups(values, PREFIX_DIGITS_RE, 1) is not None


def _prefix_digits(values: Sequence[str]) -> StringPattern:
    matches = _shared_groups(values, PREFIX_DIGITS_RE, 1)
    digits = _round_half_up(sum(len(m.group(2)) for m in matches) / len(matches))
    return PrefixDigitsPattern(prefix=matches[0].group(1), digits=digits)


def _all_prefix_separator(values: Sequence[str]) -> bool:
    return _shared_groups(values, PREFIX_SEPARATOR_RE, 2) is not None


def _prefix_separator(values: Sequence[str]) -> StringPattern:
    matches = _shared_groups(values, PREFIX_SEPARATOR_RE, 2)
    suffix_length = _round_half_up(sum(len(m.group(3)) for m in matches) / len(matches))
    return PrefixSeparatorPattern(
        prefix=matches[0].group(1),
        separator=matches[0].group(2),
        suffix_length=suffix_length,
    )


def _all_hex(values: Sequence[str]) -> bool:
    return all(HEX32_RE.match(v) for v in values)


def _hex(values: Sequence[str]) -> StringPattern:
    return HexPattern(length=32)


def _all_alphanumeric(values: Sequence[str]) -> bool:
    return all(ALPHANUMERIC_RE.match(v) for v in values)


def _alphanumeric(values: Sequence[str]) -> StringPattern:
    lengths = [len(v) for v in values]
    return AlphanumericPattern(min_length=min(lengths), max_length=max(lengths))


# Tried in order; the first predicate satisfied by every sample wins.
STRING_PATTERN_CHAIN: Tuple[Tuple[Callable[[Sequence[str]], bool], Callable[[Sequence[str]], StringPattern]], ...] = (
    (_all_numeric, _numeric),
    (_all_masked_pan, _masked_pan),
    (_all_prefix_digits, _prefix_digits),
    (_all_prefix_separator, _prefix_separator),
    (_all_hex, _hex),
    (_all_alphanumeric, _alphanumeric),
)


def infer_string_pattern(values: Sequence[str]) -> Optional[StringPattern]:
    """Return the first string shape shared by all values, or None."""
    if not values:
        return None
    for predicate, builder in STRING_PATTERN_CHAIN:
        if predicate(values):
            return builder(values)
    return None


# =============================================================================
# Type Inference
# =============================================================================

def should_use_enum(name: str) -> bool:
    """
    Decide whether a column is an enum candidate from its name alone.

    Names, id/uuid references and secrets are never enums even when they
    contain a hint such as "type" or "status".
    """
    lowered = name.lower()
    if "name" in lowered:
        return False
    if lowered.endswith("_id") or lowered.endswith("_uuid"):
        return False
    if "token" in lowered or "pass" in lowered:
        return False
    return any(hint in lowered for hint in ENUM_HINTS)


def _no_extras(samples: Sequence[str]) -> Dict[str, Any]:
    return {}


def _timestamp_range(samples: Sequence[str]) -> Dict[str, Any]:
    dates = [parse_timestamp(v) for v in samples]
    return {"date_min": min(dates), "date_max": max(dates)}


def _date_range(samples: Sequence[str]) -> Dict[str, Any]:
    dates = [parse_date(v) for v in samples]
    return {"date_min": min(dates), "date_max": max(dates)}


def _number_range(samples: Sequence[str]) -> Dict[str, Any]:
    numbers = [float(v) for v in samples]
    scales = [len(v.split(".", 1)[1]) for v in samples if "." in v]
    return {
        "number_scale": max(scales) if scales else 0,
        "number_min": min(numbers),
        "number_max": max(numbers),
    }


def _json_template(samples: Sequence[str]) -> Dict[str, Any]:
    return {"json_sample": json.loads(samples[0].strip())}


# Tried in order; the first validator accepted by every sample wins.
TYPE_CHAIN: Tuple[Tuple[str, Callable[[str], bool], Callable[[Sequence[str]], Dict[str, Any]]], ...] = (
    ("boolean", is_boolean, _no_extras),
    ("uuid", is_uuid, _no_extras),
    ("timestamp", is_timestamp, _timestamp_range),
    ("date", is_date, _date_range),
    ("exp_date", is_exp_date, _no_extras),
    ("number", is_number, _number_range),
    ("json", is_json_like, _json_template),
)


def infer_column_profile(name: str, values: Sequence[str]) -> ColumnProfile:
    """
    Infer the profile of a single column.

    Args:
        name: Column name from the sample header
        values: Raw sample values; "" means NULL in the source

    Returns:
        ColumnProfile for the column
    """
    non_empty = [v for v in values if v != ""]
    if values:
        null_rate = (len(values) - len(non_empty)) / len(values)
    else:
        null_rate = DEFAULT_NULL_RATE

    samples = non_empty[:MAX_INFERENCE_SAMPLES]
    min_length = min((len(v) for v in samples), default=0)
    max_length = max((len(v) for v in samples), default=0)

    enum_values = None
    if should_use_enum(name):
        candidates = list(dict.fromkeys(v for v in samples if len(v) < MAX_ENUM_VALUE_LENGTH))
        if 0 < len(candidates) <= MAX_ENUM_VALUES:
            enum_values = tuple(candidates)

    common = {
        "name": name,
        "null_rate": null_rate,
        "min_length": min_length,
        "max_length": max_length,
        "enum_values": enum_values,
    }

    if samples:
        for type_name, validator, extras in TYPE_CHAIN:
            if all(validator(v) for v in samples):
                return ColumnProfile(type=type_name, **common, **extras(samples))

    string_pattern = None if enum_values else infer_string_pattern(samples)
    return ColumnProfile(type="string", string_pattern=string_pattern, **common)


def infer_profiles(header: Sequence[str], rows: Sequence[Sequence[str]]) -> List[ColumnProfile]:
    """Infer one profile per header column; rows of the wrong width are ignored."""
    columns: List[List[str]] = [[] for _ in header]
    skipped = 0
    for row in rows:
        if len(row) != len(header):
            skipped += 1
            continue
        for values, value in zip(columns, row):
            values.append(value)

    if skipped:
        logger.debug(f"Ignored {skipped} sample rows with {len(header)}-column header mismatch")

    profiles = [infer_column_profile(name, values) for name, values in zip(header, columns)]
    for profile in profiles:
        logger.debug(
            f"Profiled {profile.name}: type={profile.type}, null_rate={profile.null_rate:.2f}, "
            f"enum={len(profile.enum_values or [])}, "
            f"pattern={profile.string_pattern.kind if profile.string_pattern else None}"
        )
    return profiles
