from datetime import datetime, timezone

from column_profiler import (
    AlphanumericPattern,
    HexPattern,
    MaskedPanPattern,
    NumericPattern,
    PrefixDigitsPattern,
    PrefixSeparatorPattern,
    infer_column_profile,
    infer_profiles,
    infer_string_pattern,
    should_use_enum,
)


def test_boolean_column() -> None:
    profile = infer_column_profile("is_active", ["true", "false", "true"])

    assert profile.type == "boolean"
    assert profile.null_rate == 0.0


def test_date_column_range() -> None:
    profile = infer_column_profile("opened_on", ["2024-01-01", "2024-06-15"])

    assert profile.type == "date"
    assert profile.date_min == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert profile.date_max == datetime(2024, 6, 15, tzinfo=timezone.utc)


def test_timestamp_column_range_with_fraction() -> None:
    profile = infer_column_profile(
        "created_at", ["2024-01-15 09:12:44.120", "2023-11-20 08:00:00", ""]
    )

    assert profile.type == "timestamp"
    assert profile.date_min == datetime(2023, 11, 20, 8, 0, 0, tzinfo=timezone.utc)
    assert profile.date_max == datetime(2024, 1, 15, 9, 12, 44, 120000, tzinfo=timezone.utc)
    assert abs(profile.null_rate - 1 / 3) < 1e-9


def test_uuid_requires_version_and_variant() -> None:
    valid = infer_column_profile("ref", ["3f2b8c1e-5a4d-4e6f-9b7a-1c2d3e4f5a6b"])
    bad_version = infer_column_profile("ref", ["3f2b8c1e-5a4d-6e6f-9b7a-1c2d3e4f5a6b"])
    bad_variant = infer_column_profile("ref", ["3f2b8c1e-5a4d-4e6f-1b7a-1c2d3e4f5a6b"])

    assert valid.type == "uuid"
    assert bad_version.type == "string"
    assert bad_variant.type == "string"


def test_exp_date_column() -> None:
    assert infer_column_profile("expiry", ["08/27", "11/26"]).type == "exp_date"


def test_number_scale_and_range() -> None:
    profile = infer_column_profile("amount_limit", ["1.5", "2.25", "-3"])

    assert profile.type == "number"
    assert profile.number_scale == 2
    assert profile.number_min == -3.0
    assert profile.number_max == 2.25


def test_integer_number_has_zero_scale() -> None:
    profile = infer_column_profile("seats", ["10", "200"])

    assert profile.type == "number"
    assert profile.number_scale == 0


def test_json_column_keeps_first_sample() -> None:
    profile = infer_column_profile("metadata", ['{"a": 1, "tags": ["x"]}', "[1, 2]"])

    assert profile.type == "json"
    assert profile.json_sample == {"a": 1, "tags": ["x"]}


def test_invalid_json_falls_back_to_string() -> None:
    profile = infer_column_profile("metadata", ['{"a": 1', '{"b": 2}'])

    assert profile.type == "string"


def test_first_structural_match_wins() -> None:
    # All-digit values satisfy both the number validator and the numeric
    # string shape; number comes first in the chain.
    profile = infer_column_profile("registration_number", ["20231187", "20221433"])

    assert profile.type == "number"
    assert profile.string_pattern is None


def test_only_first_fifty_samples_are_classified() -> None:
    values = ["true"] * 50 + ["maybe"] * 10

    profile = infer_column_profile("flag", values)

    assert profile.type == "boolean"


def test_prefix_digits_pattern() -> None:
    profile = infer_column_profile("program_code", ["ABC123", "ABC456"])

    assert profile.type == "string"
    assert profile.string_pattern == PrefixDigitsPattern(prefix="ABC", digits=3)


def test_string_pattern_precedence() -> None:
    assert infer_string_pattern(["0012", "3456"]) == NumericPattern(length=4)
    assert infer_string_pattern(["411111******1111"]) == MaskedPanPattern()
    assert infer_string_pattern(["crd_9fQ2", "crd_Lk3pQ"]) == PrefixSeparatorPattern(
        prefix="crd", separator="_", suffix_length=5
    )
    assert infer_string_pattern(
        ["5d41402abc4b2a76b9719d911017c592", "7D793037A0760186574B0282F2F435E7"]
    ) == HexPattern(length=32)
    assert infer_string_pattern(["a1b2", "xyz"]) == AlphanumericPattern(min_length=3, max_length=4)


def test_prefix_patterns_require_shared_prefix() -> None:
    assert infer_string_pattern(["ABC123", "XYZ456"]) == AlphanumericPattern(min_length=6, max_length=6)
    assert infer_string_pattern(["usr_ab12", "usr-cd34"]) is None


def test_lengths_are_rounded_half_up() -> None:
    assert infer_string_pattern(["12", "123"]) == NumericPattern(length=3)
    assert infer_string_pattern(["P1", "P12"]) == PrefixDigitsPattern(prefix="P", digits=2)


def test_free_text_has_no_pattern() -> None:
    profile = infer_column_profile("notes", ["hello world", "second note"])

    assert profile.type == "string"
    assert profile.string_pattern is None
    assert profile.min_length == 11
    assert profile.max_length == 11


def test_null_rate() -> None:
    assert infer_column_profile("notes", ["a", "", "b", ""]).null_rate == 0.5
    assert infer_column_profile("notes", []).null_rate == 0.1


def test_empty_sample_is_unpatterned_string() -> None:
    profile = infer_column_profile("notes", ["", ""])

    assert profile.type == "string"
    assert profile.null_rate == 1.0
    assert profile.min_length == 0
    assert profile.max_length == 0
    assert profile.string_pattern is None


def test_should_use_enum() -> None:
    assert should_use_enum("status")
    assert should_use_enum("card_type")
    assert should_use_enum("Industry")
    assert not should_use_enum("status_name")
    assert not should_use_enum("budget_type_id")
    assert not should_use_enum("plan_uuid")
    assert not should_use_enum("token_type")
    assert not should_use_enum("password_status")
    assert not should_use_enum("description")


def test_enum_values_attached_for_small_sets() -> None:
    profile = infer_column_profile("status", ["ACTIVE", "FROZEN", "", "ACTIVE"])

    assert profile.enum_values == ("ACTIVE", "FROZEN")
    assert profile.string_pattern is None


def test_enum_values_dropped_for_large_sets() -> None:
    values = [f"S{i:02d}" for i in range(21)]

    profile = infer_column_profile("status", values)

    assert profile.enum_values is None
    assert profile.string_pattern == PrefixDigitsPattern(prefix="S", digits=2)


def test_enum_values_on_typed_column() -> None:
    profile = infer_column_profile("currency", ["344", "840", "840"])

    assert profile.type == "number"
    assert profile.enum_values == ("344", "840")


def test_profile_inference_is_deterministic() -> None:
    values = ["crd_9fQ2", "crd_Lk3p", "", "crd_Xy7w"]

    assert infer_column_profile("provider_reference", values) == infer_column_profile(
        "provider_reference", values
    )


def test_infer_profiles_skips_wrong_width_rows() -> None:
    header = ["id", "status"]
    rows = [
        ["3f2b8c1e-5a4d-4e6f-9b7a-1c2d3e4f5a6b", "ACTIVE"],
        ["not", "a", "row"],
        ["a7c9e1f3-2b4d-4a6c-8e0f-1a3b5c7d9e2f", ""],
    ]

    profiles = infer_profiles(header, rows)

    assert [p.name for p in profiles] == ["id", "status"]
    assert profiles[0].type == "uuid"
    assert profiles[1].null_rate == 0.5
    assert profiles[1].enum_values == ("ACTIVE",)
