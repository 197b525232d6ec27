import pytest

from geostream.services.errors import ValidationError
from geostream.services.filters import FIELD_SCHEMA, FieldKind, combine_filters, validate_filter


def _violations(expression):
    with pytest.raises(ValidationError) as exc:
        validate_filter(expression)
    return exc.value.violations


def test_cloud_cover_within_unit_range_passes():
    clauses = validate_filter("cloudCover<0.20")

    assert len(clauses) == 1
    assert clauses[0].field == "cloudCover"
    assert clauses[0].operator == "<"
    assert clauses[0].literal == "0.20"


def test_cloud_cover_above_one_is_rejected():
    violations = _violations("cloudCover<1.5")

    assert violations == ["1.5 must represent a number between 0 and 1"]


def test_sun_azimuth_above_360_is_rejected():
    violations = _violations("sunAzimuth>400")

    assert "between 0 and 360" in violations[0]


def test_invalid_calendar_date_is_rejected():
    violations = _violations("acquisitionDate>='2022-13-40'")

    assert violations == ["'2022-13-40' not a valid date"]


def test_two_character_operators_win_over_prefixes():
    clauses = validate_filter("(acquisitionDate>='2022-01-01')AND(cloudCover<=0.20)")

    assert [clause.operator for clause in clauses] == [">=", "<="]
    assert clauses[0].literal == "'2022-01-01'"


def test_date_with_time_component_passes():
    validate_filter("acquisitionDate>='2022-01-01 13:45:00'")


@pytest.mark.parametrize(
    "expression",
    [
        "(cloudCover<0.20",
        "cloudCover<0.20)",
        ")cloudCover<0.20(",
        "(acquisitionDate>='2022-01-01'))AND((cloudCover<0.20)",
    ],
)
def test_unbalanced_parentheses_always_fail(expression):
    assert "Incorrect parenthesis" in _violations(expression)


def test_all_violations_are_reported_together():
    violations = _violations("(cloudCover<1.5)AND(sunAzimuth>400)OR(bogusField=1)")

    assert len(violations) == 3
    assert any("between 0 and 1" in item for item in violations)
    assert any("between 0 and 360" in item for item in violations)
    assert any("bogusField 1 is not a valid filter" == item for item in violations)


def test_missing_operator_is_reported():
    violations = _violations("cloudCover")

    assert violations == ["No comparison operator e.g. < > ="]


@pytest.mark.parametrize("expression", [None, "", "   "])
def test_empty_filter_is_a_violation(expression):
    assert _violations(expression) == ["Filter can not be empty"]


def test_boolean_literals_must_be_exact_tokens():
    validate_filter("isMultiPart=TRUE")
    validate_filter("active=FALSE")

    assert _violations("isMultiPart=yes") == ["yes should be TRUE or FALSE"]
    assert _violations("active=true") == ["true should be TRUE or FALSE"]


def test_quoted_strings_require_single_quotes():
    validate_filter("productName='VIVID_STANDARD_30'")

    violations = _violations("productName=VIVID_STANDARD_30")
    assert "must be wrapped with single quotes" in violations[0]


def test_source_must_be_a_known_sensor():
    validate_filter("source='WV02'")

    violations = _violations("source='XX99'")
    assert violations[0].startswith("source should be one of:")


def test_integer_and_float_fields():
    validate_filter("(usageProductId=42)AND(groundSampleDistance<0.5)")

    violations = _violations("(usageProductId=4.2)AND(niirs>abc)")
    assert violations == ["4.2 is not an integer", "abc is not a float"]


def test_validation_is_idempotent():
    first = validate_filter("(cloudCover<0.20)AND(offNadirAngle<=25)")
    second = validate_filter("(cloudCover<0.20)AND(offNadirAngle<=25)")

    assert first == second


def test_schema_covers_every_field_kind():
    assert set(FIELD_SCHEMA.values()) == set(FieldKind)


def test_combine_filters_wraps_each_clause():
    combined = combine_filters(["acquisitionDate>='2022-01-01'", "cloudCover<0.20"])

    assert combined == "(acquisitionDate>='2022-01-01')AND(cloudCover<0.20)"
    validate_filter(combined)
