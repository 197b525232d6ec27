"""Validation for CQL attribute filters.

Filters are checked locally before they are sent to the WFS/WMS endpoints so
that callers receive every problem with their expression at once instead of
an opaque 400 from the service. The accepted grammar is intentionally small:
parenthesized clauses joined with ``AND``/``OR`` where each clause compares a
known field to a literal.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Sequence, Tuple

from .errors import ValidationError

logger = logging.getLogger(__name__)

# Alternation order matters: two character operators must win over their prefixes.
COMPARISON_PATTERN = re.compile(r"<=|>=|<|>|=")
CLAUSE_BOUNDARY_PATTERN = re.compile(r"\)\s*(?:AND|OR)\s*\(")
INTEGER_PATTERN = re.compile(r"[+-]?\d+")
DATE_FORMATS: Tuple[str, ...] = ("%Y-%m-%d", "%Y-%m-%d %H:%M:%S")
BOOLEAN_LITERALS: Tuple[str, ...] = ("TRUE", "FALSE")


class FieldKind(str, Enum):
    """Literal grammar expected on the right-hand side of a clause."""

    ENUMERATED = "enumerated"
    QUOTED_STRING = "quoted_string"
    DATE = "date"
    UNIT_FLOAT = "unit_float"
    ANGLE_FLOAT = "angle_float"
    FLOAT = "float"
    BOOLEAN = "boolean"
    INTEGER = "integer"


SOURCE_VALUES: Tuple[str, ...] = (
    "WV01",
    "WV02",
    "WV03_VNIR",
    "WV03",
    "WV04",
    "GE01",
    "QB02",
    "KS3",
    "KS3A",
    "WV03_SWIR",
    "KS5",
    "RS2",
    "IK02",
    "LG01",
    "LG02",
)

_STRING_FIELDS = (
    "featureId",
    "groundSampleDistanceUnit",
    "bandDescription",
    "dataLayer",
    "legacyDescription",
    "bandConfiguration",
    "fullResolutionInitiatedOrder",
    "legacyIdentifier",
    "crs",
    "processingLevel",
    "companyName",
    "orbitDirection",
    "beamMode",
    "polarisationMode",
    "polarisationChannel",
    "antennaLookDirection",
    "md5Hash",
    "licenseType",
    "ceCategory",
    "deletedReason",
    "productName",
    "bucketName",
    "path",
    "sensorType",
    "sensor",
    "vehicle_name",
    "product_name",
    "catid",
    "block_name",
    "uuid",
    "geohash_6",
    "cam",
    "change_type",
    "context",
    "subregion",
    "geocell",
    "product",
)
_DATE_FIELDS = (
    "acquisitionDate",
    "createdDate",
    "earliestAcquisitionTime",
    "latestAcquisitionTime",
    "lastModifiedDate",
    "deletedDate",
    "create_date",
    "acq_time_earliest",
    "acq_time_latest",
    "acq_time",
    "change_timestamp",
    "version_timestamp",
)
_FLOAT_FIELDS = (
    "groundSampleDistance",
    "resolutionX",
    "resolutionY",
    "niirs",
    "ce90Accuracy",
    "gsd",
    "accuracy",
)
_ANGLE_FIELDS = (
    "sunAzimuth",
    "sunElevation",
    "offNadirAngle",
    "minimumIncidenceAngle",
    "maximumIncidenceAngle",
    "incidenceAngleVariation",
    "ona",
    "ona_avg",
    "sunel_avg",
    "sun_az_avg",
    "target_az_avg",
)
_BOOLEAN_FIELDS = ("isEnvelopeGeometry", "isMultiPart", "hasCloudlessGeometry", "active")
_INTEGER_FIELDS = ("usageProductId", "change_area_size_sqm")


def _schema(groups: Iterable[Tuple[FieldKind, Sequence[str]]]) -> Dict[str, FieldKind]:
    table: Dict[str, FieldKind] = {}
    for kind, names in groups:
        for name in names:
            table[name] = kind
    return table


FIELD_SCHEMA: Dict[str, FieldKind] = _schema(
    (
        (FieldKind.ENUMERATED, ("source",)),
        (FieldKind.QUOTED_STRING, _STRING_FIELDS),
        (FieldKind.DATE, _DATE_FIELDS),
        (FieldKind.UNIT_FLOAT, ("cloudCover",)),
        (FieldKind.ANGLE_FLOAT, _ANGLE_FIELDS),
        (FieldKind.FLOAT, _FLOAT_FIELDS),
        (FieldKind.BOOLEAN, _BOOLEAN_FIELDS),
        (FieldKind.INTEGER, _INTEGER_FIELDS),
    )
)


@dataclass(frozen=True)
class FilterClause:
    field: str
    operator: str
    literal: str


def validate_filter(expression: str | None) -> List[FilterClause]:
    """Check ``expression`` against the field schema.

    Returns the parsed clauses when the filter is acceptable. Otherwise raises
    :class:`ValidationError` listing every violation that was found; checking
    does not stop at the first problem.
    """

    if expression is None or not expression.strip():
        raise ValidationError(["Filter can not be empty"])

    violations: List[str] = []
    if not _parentheses_balanced(expression):
        violations.append("Incorrect parenthesis")

    has_operator = COMPARISON_PATTERN.search(expression) is not None
    if not has_operator:
        violations.append("No comparison operator e.g. < > =")

    clauses: List[FilterClause] = []
    for raw_clause in CLAUSE_BOUNDARY_PATTERN.split(expression):
        text = raw_clause.replace("(", "").replace(")", "").strip()
        parts = COMPARISON_PATTERN.split(text, maxsplit=1)
        if len(parts) != 2:
            if has_operator:
                violations.append(f"{text or '(empty clause)'} is missing a comparison operator")
            continue
        operator = COMPARISON_PATTERN.search(text).group(0)
        clause = FilterClause(field=parts[0].strip(), operator=operator, literal=parts[1].strip())
        problem = _check_clause(clause)
        if problem:
            violations.append(problem)
        clauses.append(clause)

    if violations:
        logger.debug("Rejected filter %r: %s", expression, violations)
        raise ValidationError(violations)
    return clauses


def combine_filters(filters: Sequence[str]) -> str:
    """Join several filters into one expression, each clause parenthesized."""

    return "AND".join(f"({item})" for item in filters)


def _parentheses_balanced(expression: str) -> bool:
    depth = 0
    for char in expression:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def _check_clause(clause: FilterClause) -> str | None:
    kind = FIELD_SCHEMA.get(clause.field)
    literal = clause.literal
    if kind is None:
        return f"{clause.field} {literal} is not a valid filter"

    if kind == FieldKind.ENUMERATED:
        if _strip_quotes(literal) not in SOURCE_VALUES:
            return f"{clause.field} should be one of: {list(SOURCE_VALUES)}"
    elif kind == FieldKind.QUOTED_STRING:
        if len(literal) < 2 or not literal.startswith("'") or not literal.endswith("'"):
            return f"{literal} must be wrapped with single quotes. Eg: '{literal}'"
    elif kind == FieldKind.DATE:
        if not _is_date(_strip_quotes(literal)):
            return f"{literal} not a valid date"
    elif kind == FieldKind.UNIT_FLOAT:
        if not _float_in_range(literal, 0.0, 1.0):
            return f"{literal} must represent a number between 0 and 1"
    elif kind == FieldKind.ANGLE_FLOAT:
        if not _float_in_range(literal, 0.0, 360.0):
            return f"{literal} must represent a number between 0 and 360"
    elif kind == FieldKind.FLOAT:
        if _parse_float(literal) is None:
            return f"{literal} is not a float"
    elif kind == FieldKind.BOOLEAN:
        if literal not in BOOLEAN_LITERALS:
            return f"{literal} should be TRUE or FALSE"
    elif kind == FieldKind.INTEGER:
        if not INTEGER_PATTERN.fullmatch(literal):
            return f"{literal} is not an integer"
    return None


def _strip_quotes(literal: str) -> str:
    return literal.replace("'", "")


def _is_date(value: str) -> bool:
    for fmt in DATE_FORMATS:
        try:
            datetime.strptime(value, fmt)
        except ValueError:
            continue
        return True
    return False


def _parse_float(literal: str) -> float | None:
    try:
        value = float(literal)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def _float_in_range(literal: str, minimum: float, maximum: float) -> bool:
    value = _parse_float(literal)
    return value is not None and minimum <= value <= maximum
