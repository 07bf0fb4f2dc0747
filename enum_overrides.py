"""
Loads externally supplied enum values and merges them into column profiles.

The enum file is a JSON object keyed by "table.column" or bare "column":

    {"business.status": ["ACTIVE", "SUSPENDED"], "currency": ["840", "978"]}

A table-qualified key wins over a bare column key. An override replaces the
inferred enum; it is never unioned with it.
"""

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from column_profiler import ColumnProfile
from generation_errors import InputError

EnumOverrides = Dict[str, List[str]]

logger = logging.getLogger(__name__)


def load_enum_overrides(file_path: Optional[Path]) -> EnumOverrides:
    """
    Read enum overrides from a JSON file.

    Non-list entries are ignored and list items are coerced to strings.

    Raises:
        InputError: If the file is missing, not valid JSON or not a JSON object
    """
    if not file_path:
        return {}

    resolved = Path(file_path).resolve()
    if not resolved.exists():
        raise InputError(f"Enum file not found: {resolved}")

    try:
        with open(resolved, "r", encoding="utf-8") as f:
            parsed = json.load(f)
    except json.JSONDecodeError as e:
        raise InputError(f"Enum file is not valid JSON: {resolved}") from e

    if not isinstance(parsed, dict):
        raise InputError(f"Enum file must be a JSON object: {resolved}")

    overrides: EnumOverrides = {}
    for key, value in parsed.items():
        if isinstance(value, list):
            overrides[key] = [str(item) for item in value]

    logger.info(f"Loaded {len(overrides)} enum overrides from {resolved}")
    return overrides


def apply_enum_overrides(
    profiles: Sequence[ColumnProfile],
    table_name: str,
    overrides: EnumOverrides,
) -> List[ColumnProfile]:
    """Return profiles with override enums merged in; inputs are not mutated."""
    if not overrides:
        return list(profiles)

    merged = []
    for profile in profiles:
        table_key = f"{table_name}.{profile.name}"
        override = overrides[table_key] if table_key in overrides else overrides.get(profile.name)
        if override:
            logger.debug(f"Enum override for {table_name}.{profile.name}: {len(override)} values")
            profile = replace(profile, enum_values=tuple(override))
        merged.append(profile)
    return merged
