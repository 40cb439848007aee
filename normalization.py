"""
Unit and input normalization.

Raw measurements arrive as bare numbers, as {"value": x} objects, or as
replicate lists ({"values": [...]} or [...]). They are resolved here, once,
into canonical units so that every downstream formula sees a plain float or
None. Absence is never turned into zero.
"""

import logging
import math

from clinical_constants import ISAK_RANGES, SITTING_HEIGHT_RATIO_RANGE
from measurement_reliability import InvalidMeasurementError, reconcile
from shared_models import (
    AnthropometricRecord,
    BreadthSite,
    GirthSite,
    SkinfoldSite,
    Unit,
    ValidationIssue,
    parse_sex,
)

logger = logging.getLogger(__name__)

__all__ = [
    "InvalidMeasurementError",
    "build_record",
    "convert_units",
    "require_basic_data",
    "to_measurement",
    "validate_field",
]

# Factors to a base unit per dimension: metres for length, kg for mass
UNIT_FACTORS = {
    Unit.MM: ("length", 0.001),
    Unit.CM: ("length", 0.01),
    Unit.M: ("length", 1.0),
    Unit.IN: ("length", 0.0254),
    Unit.KG: ("mass", 1.0),
    Unit.G: ("mass", 0.001),
    Unit.LB: ("mass", 0.45359237),
}

SITE_ALIASES = {
    "suprailiac": "iliac_crest",
    "iliac crest": "iliac_crest",
    "supraspinal": "supraspinale",
    "supraespinal": "supraspinale",
    "subscapularis": "subscapular",
    "medial_calf": "calf",
    "front_thigh": "thigh",
    "arm": "arm_relaxed",
    "arm_contracted": "arm_flexed",
    "mid_thigh": "thigh",
    "biepicondylar_humerus": "humerus",
    "biepicondylar_femur": "femur",
    "bistyloid": "wrist",
    "bimalleolar": "ankle",
}


def _to_unit(unit):
    if unit is None or isinstance(unit, Unit):
        return unit
    return Unit(str(unit).lower())


def convert_units(value, from_unit, to_unit):
    """
    Convert a value between compatible units.

    Args:
        value (float): Value in from_unit.
        from_unit (Unit or str): Source unit.
        to_unit (Unit or str): Target unit.

    Returns:
        float: The converted value.

    Raises:
        ValueError: If the units measure different dimensions.
    """
    from_unit, to_unit = _to_unit(from_unit), _to_unit(to_unit)
    if from_unit == to_unit:
        return value
    from_dim, from_factor = UNIT_FACTORS[from_unit]
    to_dim, to_factor = UNIT_FACTORS[to_unit]
    if from_dim != to_dim:
        raise ValueError(f"Cannot convert {from_unit.value} to {to_unit.value}")
    return value * from_factor / to_factor


def _check_number(value, site):
    value = float(value)
    if not math.isfinite(value):
        raise InvalidMeasurementError(f"{site}: non-finite value {value}")
    if value < 0:
        raise InvalidMeasurementError(f"{site}: negative value {value}")
    return value


def to_measurement(raw, target_unit=Unit.MM, site="measurement", diagnostics=None):
    """
    Resolve any supported input shape to a single value in target_unit.

    Args:
        raw: None, a number, {"value": x, "unit": u}, {"values": [...], "unit": u}
            or a list of replicate readings.
        target_unit (Unit): Canonical unit for the site.
        site (str): Site name used in messages and diagnostics.
        diagnostics (dict): Optional mapping that receives the
            ReconciledMeasurement when replicates are supplied.

    Returns:
        float or None: None when the site was not measured (absent or zero).

    Raises:
        InvalidMeasurementError: For negative or non-finite numbers.
    """
    if raw is None:
        return None

    unit = target_unit
    if isinstance(raw, dict):
        unit = _to_unit(raw.get("unit")) or target_unit
        if "values" in raw:
            raw = list(raw["values"])
        else:
            raw = raw.get("value")
            if raw is None:
                return None

    if isinstance(raw, (list, tuple)):
        readings = [None if r is None else _check_number(r, site) for r in raw]
        readings = [
            None if r is None else convert_units(r, unit, target_unit)
            for r in readings
        ]
        present = [r for r in readings if r is not None and r > 0]
        if not present:
            return None
        if len(present) == 1:
            # A single reading is still a measurement, it just has no TEM
            return present[0]
        reconciled = reconcile(present, site)
        if diagnostics is not None:
            diagnostics[site] = reconciled
        return reconciled.final_value

    value = _check_number(raw, site)
    if value == 0:
        return None
    return convert_units(value, unit, target_unit)


def _canonical_site(name):
    key = str(name).strip().lower().replace("-", "_")
    return SITE_ALIASES.get(key, key)


def _range_issue(category, name, value):
    bounds = ISAK_RANGES[category].get(name)
    if bounds is None or value is None:
        return None
    low, high, warn = bounds
    label = name.replace("_", " ")
    if value < low:
        return ValidationIssue(
            label, value, "below_min", f"{label} ({value}) is below the ISAK minimum ({low})"
        )
    if value > high:
        return ValidationIssue(
            label, value, "above_max", f"{label} ({value}) exceeds the ISAK maximum ({high})"
        )
    if value > warn:
        return ValidationIssue(
            label, value, "warning", f"{label} ({value}) is unusually high - verify"
        )
    return None


def _collect_sites(section, enum_cls, unit, prefix, diagnostics, warnings, category):
    collected = {}
    for raw_name, raw_value in (section or {}).items():
        name = _canonical_site(raw_name)
        try:
            site = enum_cls(name)
        except ValueError:
            logger.warning(f"Ignoring unknown {category} site: {raw_name}")
            continue
        value = to_measurement(raw_value, unit, f"{prefix}{name}", diagnostics)
        if value is None:
            continue
        collected[site] = value
        issue = _range_issue(category, name, value)
        if issue is not None:
            warnings.append(issue)
    return collected


def build_record(data):
    """
    Build the canonical AnthropometricRecord from a plain dictionary.

    Args:
        data (dict): Keys sex, weight_kg, height_cm, age_years, skinfolds,
            girths, breadths, head_circumference_cm, sitting_height_cm,
            age_months and gestational_weeks. Measurement values may be any
            shape accepted by to_measurement.

    Returns:
        AnthropometricRecord: With replicate diagnostics in record.reliability
            and plausibility findings in record.warnings.

    Raises:
        InvalidMeasurementError: For negative or non-finite input, or a sitting
            height that is not shorter than the standing height.
        ValueError: If sex is missing or unrecognized.
    """
    if data.get("sex") is None:
        raise ValueError("sex is required")

    diagnostics = {}
    warnings = []

    weight = to_measurement(data.get("weight_kg"), Unit.KG, "weight", diagnostics)
    height = to_measurement(data.get("height_cm"), Unit.CM, "height", diagnostics)
    sitting = to_measurement(
        data.get("sitting_height_cm"), Unit.CM, "sitting_height", diagnostics
    )
    head = to_measurement(
        data.get("head_circumference_cm"), Unit.CM, "head_circumference", diagnostics
    )

    for name, value in (("weight_kg", weight), ("height_cm", height)):
        issue = _range_issue("basic", name, value)
        if issue is not None:
            warnings.append(issue)

    if sitting is not None and height is not None:
        if sitting >= height:
            raise InvalidMeasurementError(
                f"Sitting height ({sitting} cm) must be less than height ({height} cm)"
            )
        ratio = sitting / height
        low, high = SITTING_HEIGHT_RATIO_RANGE
        if not low <= ratio <= high:
            warnings.append(
                ValidationIssue(
                    "sitting height",
                    sitting,
                    "warning",
                    f"Sitting/standing height ratio {ratio:.2f} outside {low}-{high}",
                )
            )

    skinfolds = _collect_sites(
        data.get("skinfolds"), SkinfoldSite, Unit.MM, "", diagnostics, warnings, "skinfolds"
    )
    girths = _collect_sites(
        data.get("girths"), GirthSite, Unit.CM, "girth_", diagnostics, warnings, "girths"
    )
    breadths = _collect_sites(
        data.get("breadths"), BreadthSite, Unit.CM, "breadth_", diagnostics, warnings, "breadths"
    )

    age, age_months, gestational_weeks = (
        None if data.get(key) is None else _check_number(data[key], key)
        for key in ("age_years", "age_months", "gestational_weeks")
    )

    record = AnthropometricRecord(
        sex=parse_sex(data["sex"]),
        weight_kg=weight,
        height_cm=height,
        age_years=age,
        skinfolds=skinfolds,
        girths=girths,
        breadths=breadths,
        head_circumference_cm=head,
        sitting_height_cm=sitting,
        age_months=age_months,
        gestational_weeks=gestational_weeks,
        reliability=diagnostics,
        warnings=warnings,
    )
    for issue in warnings:
        logger.warning(issue.message)
    return record


def require_basic_data(record):
    """Labels of the basic measurements every formula needs but are missing."""
    missing = []
    if record.weight_kg is None:
        missing.append("Weight")
    if record.height_cm is None:
        missing.append("Height")
    return missing


def validate_field(field_name, value):
    """
    Validates a single input field for real-time feedback in a form.

    Args:
        field_name (str): weight_kg, height_cm, age_years, or a site name
            prefixed with its category (skinfold_triceps, girth_waist,
            breadth_femur).
        value: The value to validate

    Returns:
        tuple: (is_valid, error_message)
    """
    if value in (None, ""):
        return True, ""

    try:
        number = float(value)
    except (ValueError, TypeError):
        return False, "Please enter a valid number"

    if not math.isfinite(number):
        return False, "Please enter a valid number"
    if number < 0:
        return False, "Value cannot be negative"

    if field_name in ISAK_RANGES["basic"]:
        category, name = "basic", field_name
    elif "_" in field_name:
        prefix, name = field_name.split("_", 1)
        category = {
            "skinfold": "skinfolds",
            "girth": "girths",
            "breadth": "breadths",
        }.get(prefix)
        if category is None:
            return True, ""
        name = _canonical_site(name)
    else:
        return True, ""

    issue = _range_issue(category, name, number)
    if issue is None or issue.issue == "warning":
        return True, "" if issue is None else issue.message
    return False, issue.message
