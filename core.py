"""
Core Kinanthropometry Analysis Logic

This module wires the calculation engines into one assessment: it loads and
validates a JSON measurement record, normalizes it, runs every engine whose
inputs are available and renders plain-text summary tables.

Sections:
- Record schema and loading
- Assessment orchestration
- Summary tables
- CLI entry point logic
"""

import json
import logging
import os

import pandas as pd
from jsonschema import ValidationError, validate

from body_density import FORMULA_CATALOG, compute_body_composition, compute_from_record, resolve_formula
from clinical_constants import ELDERLY_AGE_YEARS
from elderly import evaluate_elderly_patient
from formula_advisor import get_recommended_formula, validate_formula_match
from fractionation import KERR_SKINFOLDS, fractionate, run_sanity_checks
from growth_standards import calculate_growth_assessment
from measurement_reliability import InvalidMeasurementError, calculate_overall_reliability
from normalization import build_record, require_basic_data
from shared_models import (
    ActivityLevel,
    AssessmentResults,
    ChumleaSurrogates,
    FormulaId,
    FormulaProfile,
    GirthSite,
    MaturationStage,
    MeasurementType,
    PatientContext,
    SkinfoldSite,
)
from somatotype import compute_somatotype

logger = logging.getLogger(__name__)

# Oldest age covered by the WHO growth references
PEDIATRIC_MAX_MONTHS = 228.0

_MEASUREMENT = {"$ref": "#/definitions/measurement"}
_SITE_MAP = {"type": "object", "additionalProperties": _MEASUREMENT}
_POSITIVE = {"type": ["number", "null"], "minimum": 0}

RECORD_SCHEMA = {
    "type": "object",
    "required": ["sex"],
    "definitions": {
        "measurement": {
            "anyOf": [
                {"type": "null"},
                {"type": "number"},
                {
                    "type": "array",
                    "items": {"type": ["number", "null"]},
                    "minItems": 1,
                    "maxItems": 3,
                },
                {
                    "type": "object",
                    "properties": {
                        "value": {"type": ["number", "null"]},
                        "values": {
                            "type": "array",
                            "items": {"type": ["number", "null"]},
                            "minItems": 1,
                            "maxItems": 3,
                        },
                        "unit": {"enum": ["mm", "cm", "m", "kg", "g", "lb", "in"]},
                    },
                    "additionalProperties": False,
                },
            ]
        }
    },
    "properties": {
        "sex": {
            "type": "string",
            "pattern": "^(m|f|M|F|male|female|Male|Female|MALE|FEMALE|masculino|femenino)$",
        },
        "age_years": _POSITIVE,
        "age_months": _POSITIVE,
        "gestational_weeks": {"type": ["number", "null"], "minimum": 20, "maximum": 45},
        "weight_kg": _MEASUREMENT,
        "height_cm": _MEASUREMENT,
        "sitting_height_cm": _MEASUREMENT,
        "head_circumference_cm": _MEASUREMENT,
        "skinfolds": _SITE_MAP,
        "girths": _SITE_MAP,
        "breadths": _SITE_MAP,
        "options": {
            "type": "object",
            "properties": {
                "formula": {
                    "enum": [p.value for p in FormulaProfile] + [f.value for f in FormulaId]
                },
                "activity_level": {"enum": [a.value for a in ActivityLevel]},
                "is_athlete": {"type": "boolean"},
                "maturation": {"enum": [m.value for m in MaturationStage]},
                "measurement_type": {"enum": [m.value for m in MeasurementType]},
            },
            "additionalProperties": False,
        },
        "elderly": {
            "type": "object",
            "properties": {
                "knee_height_cm": _POSITIVE,
                "knee_malleolus_cm": _POSITIVE,
                "demi_span_cm": _POSITIVE,
                "handgrip_kg": _POSITIVE,
                "tug_seconds": _POSITIVE,
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}


# ---------------------------------------------------------------------------
# RECORD LOADING
# ---------------------------------------------------------------------------


def load_record_json(record_path):
    """
    Loads and validates a JSON measurement record.

    Args:
        record_path (str): Path to the JSON file.

    Returns:
        dict: The validated record.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        json.JSONDecodeError: If the JSON is malformed.
        ValidationError: If the JSON doesn't match RECORD_SCHEMA.
    """
    if not os.path.exists(record_path):
        raise FileNotFoundError(f"Record file not found: {record_path}")

    with open(record_path, "r") as f:
        record = json.load(f)

    validate(record, RECORD_SCHEMA)
    logger.info(f"Loaded record from {record_path}")
    return record


def extract_data_from_config(config):
    """
    Splits a validated record into measurement data and analysis options.

    Args:
        config (dict): Validated record dictionary

    Returns:
        tuple: (measurement data for build_record, options dict, elderly dict)
    """
    data = {k: v for k, v in config.items() if k not in ("options", "elderly")}
    options = dict(config.get("options", {}))
    elderly = dict(config.get("elderly", {}))

    if "activity_level" in options:
        options["activity_level"] = ActivityLevel(options["activity_level"])
    if "maturation" in options:
        options["maturation"] = MaturationStage(options["maturation"])
    if "measurement_type" in options:
        options["measurement_type"] = MeasurementType(options["measurement_type"])
    return data, options, elderly


# ---------------------------------------------------------------------------
# ASSESSMENT ORCHESTRATION
# ---------------------------------------------------------------------------


def patient_context_from_record(record, activity_level=ActivityLevel.MODERATE, is_athlete=False):
    return PatientContext(
        sex=record.sex,
        age_years=record.age_years,
        weight_kg=record.weight_kg,
        height_cm=record.height_cm,
        activity_level=activity_level,
        is_athlete=is_athlete,
    )


def surrogates_from_record(record, knee_height_cm=None, knee_malleolus_cm=None, demi_span_cm=None):
    """Chumlea surrogate inputs taken from the record's girths and skinfolds."""
    return ChumleaSurrogates(
        sex=record.sex,
        age_years=record.age_years,
        calf_circumference_cm=record.girths.get(GirthSite.CALF),
        knee_height_cm=knee_height_cm,
        arm_circumference_cm=record.girths.get(GirthSite.ARM_RELAXED),
        subscapular_mm=record.skinfolds.get(SkinfoldSite.SUBSCAPULAR),
        triceps_mm=record.skinfolds.get(SkinfoldSite.TRICEPS),
        knee_malleolus_cm=knee_malleolus_cm,
        demi_span_cm=demi_span_cm,
    )


def _pediatric_age_months(record):
    if record.age_months is not None:
        return record.age_months
    if record.age_years is not None and record.age_years * 12 <= PEDIATRIC_MAX_MONTHS:
        return record.age_years * 12
    return None


def _select_formula(record, formula, patient):
    """Pick the equation to run; the advisor verdict is returned for profiles only."""
    if formula is None:
        if record.age_years is not None and record.age_years < 18:
            return FormulaId.SLAUGHTER, None
        formula = get_recommended_formula(patient).profile

    formula_id = resolve_formula(formula)
    try:
        profile = FormulaProfile(formula.value if hasattr(formula, "value") else str(formula).lower())
    except ValueError:
        return formula_id, None
    return formula_id, validate_formula_match(profile, patient, record.skinfolds)


def run_assessment(
    record,
    formula=None,
    patient=None,
    surrogates=None,
    grip_kg=None,
    tug_seconds=None,
    maturation=None,
    measurement_type=None,
):
    """
    Runs every engine whose inputs are present on a record.

    Args:
        record (AnthropometricRecord): Normalized measurements.
        formula (FormulaProfile, FormulaId or str): Equation to use; the
            advisor's recommendation when omitted.
        patient (PatientContext): Advisor context, derived from the record
            when omitted.
        surrogates (ChumleaSurrogates): Elderly surrogate measurements.
        grip_kg (float): Handgrip strength.
        tug_seconds (float): Timed Up and Go duration.
        maturation (MaturationStage): For the pediatric skinfold equation.
        measurement_type (MeasurementType): Length or standing height, for growth.

    Returns:
        AssessmentResults: Engines that could not run leave their field None
            or carry an invalid result listing what is missing.
    """
    results = AssessmentResults(record=record)
    patient = patient or patient_context_from_record(record)

    missing_basic = require_basic_data(record)
    if missing_basic:
        results.messages.append(f"Missing basic data: {', '.join(missing_basic)}")

    if record.reliability:
        results.session_reliability = calculate_overall_reliability(record.reliability)
        for site in results.session_reliability.sites_needing_third:
            results.messages.append(f"{site}: take a third measurement")

    if record.skinfolds:
        formula_id, verdict = _select_formula(record, formula, patient)
        results.formula_validation = verdict
        results.body_composition = compute_from_record(record, formula_id, maturation)
        if verdict is not None and not verdict.is_optimal:
            results.messages.append(f"[{verdict.severity.value}] {verdict.message}")

    results.somatotype = compute_somatotype(record)

    results.five_component = fractionate(record)
    if results.five_component.is_valid:
        results.sanity = run_sanity_checks(
            results.five_component,
            record.weight_kg,
            record.sex,
            record.skinfold_sum(KERR_SKINFOLDS),
        )

    age_months = _pediatric_age_months(record)
    if age_months is not None and record.weight_kg is not None and record.height_cm is not None:
        results.growth = calculate_growth_assessment(
            record.weight_kg,
            record.height_cm,
            age_months,
            record.sex,
            head_circumference_cm=record.head_circumference_cm,
            gestational_weeks=record.gestational_weeks,
            measurement_type=measurement_type,
        )

    is_older_adult = record.age_years is not None and record.age_years >= ELDERLY_AGE_YEARS
    if surrogates is not None or is_older_adult:
        surrogates = surrogates or surrogates_from_record(record)
        results.elderly = evaluate_elderly_patient(
            surrogates,
            weight_kg=record.weight_kg,
            height_cm=record.height_cm,
            grip_kg=grip_kg,
            tug_seconds=tug_seconds,
        )
        results.messages.extend(results.elderly.alerts)

    return results


def assess_record_dict(config):
    """Builds a record from a validated dictionary and runs the assessment."""
    data, options, elderly = extract_data_from_config(config)
    record = build_record(data)

    patient = patient_context_from_record(
        record,
        activity_level=options.get("activity_level", ActivityLevel.MODERATE),
        is_athlete=options.get("is_athlete", False),
    )
    surrogates = None
    if elderly:
        surrogates = surrogates_from_record(
            record,
            knee_height_cm=elderly.get("knee_height_cm"),
            knee_malleolus_cm=elderly.get("knee_malleolus_cm"),
            demi_span_cm=elderly.get("demi_span_cm"),
        )
    return run_assessment(
        record,
        formula=options.get("formula"),
        patient=patient,
        surrogates=surrogates,
        grip_kg=elderly.get("handgrip_kg"),
        tug_seconds=elderly.get("tug_seconds"),
        maturation=options.get("maturation"),
        measurement_type=options.get("measurement_type"),
    )


# ---------------------------------------------------------------------------
# SUMMARY TABLES
# ---------------------------------------------------------------------------


def compare_formulas(record, maturation=None):
    """
    Evaluates every catalog equation against a record.

    Returns:
        pd.DataFrame: One row per formula with density, fat percent and the
            labels of any missing inputs. Uncomputable rows hold NaN.
    """
    rows = []
    for formula_id, descriptor in FORMULA_CATALOG.items():
        result = compute_body_composition(
            formula_id,
            record.sex,
            record.skinfolds,
            record.weight_kg,
            height_cm=record.height_cm,
            age=record.age_years,
            maturation=maturation,
        )
        rows.append(
            {
                "formula": descriptor.name,
                "density": result.body_density if result.is_valid else None,
                "fat_percent": result.fat_percent,
                "fat_mass_kg": result.fat_mass_kg,
                "missing": ", ".join(result.missing_fields),
            }
        )
    return pd.DataFrame(rows)


def build_summary_tables(results):
    """
    Tabulates an assessment for display.

    Args:
        results (AssessmentResults): Output of run_assessment.

    Returns:
        dict: Section title -> pd.DataFrame, only for sections that ran.
    """
    tables = {}

    bc = results.body_composition
    if bc is not None and bc.is_valid:
        rounded = bc.rounded()
        tables["Body composition"] = pd.DataFrame(
            [
                ("Method", rounded["method"]),
                ("Body density (g/cm3)", rounded["body_density"]),
                ("Fat (%)", rounded["fat_percent"]),
                ("Fat mass (kg)", rounded["fat_mass_kg"]),
                ("Lean mass (kg)", rounded["lean_mass_kg"]),
            ],
            columns=["Measure", "Value"],
        )

    somatotype = results.somatotype
    if somatotype is not None and somatotype.is_valid:
        rounded = somatotype.rounded()
        tables["Somatotype"] = pd.DataFrame([rounded])

    five = results.five_component
    if five is not None and five.is_valid:
        tables["Five-component fractionation"] = pd.DataFrame(
            [
                {"component": name, "kg": round(c.kg, 2), "percent": round(c.percent, 1)}
                for name, c in five.components.items()
            ]
        )

    if results.growth is not None:
        tables["Growth"] = pd.DataFrame(
            [
                {
                    "indicator": indicator.value,
                    "z": round(z.z_score, 2),
                    "percentile": round(z.percentile, 1),
                    "diagnosis": z.diagnosis,
                    "implausible": z.is_implausible,
                }
                for indicator, z in results.growth.indicators().items()
            ]
        )

    elderly = results.elderly
    if elderly is not None:
        rows = [("Weight (kg)", elderly.weight_kg), ("Height (cm)", elderly.height_cm)]
        rows += [("BMI", elderly.bmi), ("BMI class", elderly.bmi_classification)]
        rows += [(name, value) for name, value in elderly.estimates.items()]
        if elderly.functional.combined_label:
            rows.append(("Function", elderly.functional.combined_label))
        tables["Older adult"] = pd.DataFrame(
            [(k, round(v, 1) if isinstance(v, float) else v) for k, v in rows],
            columns=["Measure", "Value"],
        )

    return tables


def format_summary(results):
    """Plain-text rendering of build_summary_tables plus advisory messages."""
    lines = []
    for title, df in build_summary_tables(results).items():
        lines.append(f"\n--- {title} ---")
        lines.append(df.to_string(index=False))

    unavailable = []
    if results.body_composition is not None and not results.body_composition.is_valid:
        unavailable.append(
            f"Body composition: missing {', '.join(results.body_composition.missing_fields) or 'valid density'}"
        )
    if results.somatotype is not None and not results.somatotype.is_valid:
        unavailable.append(f"Somatotype: missing {', '.join(results.somatotype.missing_fields)}")
    if results.five_component is not None and not results.five_component.is_valid:
        reasons = results.five_component.missing_data + [
            e.message for e in results.five_component.errors
        ]
        unavailable.append(f"Five-component: {', '.join(reasons)}")
    if unavailable:
        lines.append("\n--- Not computed ---")
        lines.extend(unavailable)

    if results.messages:
        lines.append("\n--- Messages ---")
        lines.extend(results.messages)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# ENTRY POINT LOGIC
# ---------------------------------------------------------------------------


def run_analysis(record_path="example_record.json", compare=False, return_results=False):
    """
    Main analysis function: load, assess and print a record.

    Args:
        record_path (str): Path to a JSON record
        compare (bool): Also print every catalog equation side by side
        return_results (bool): Return the AssessmentResults instead of printing

    Returns:
        int or AssessmentResults: Exit code (0 success, 1 error), or the
            results when return_results is True
    """
    try:
        config = load_record_json(record_path)
        results = assess_record_dict(config)
    except (
        FileNotFoundError,
        json.JSONDecodeError,
        ValidationError,
        InvalidMeasurementError,
        KeyError,
        ValueError,
    ) as e:
        if return_results:
            raise
        print(f"Error: {e}")
        print(f"\nPlease check your record file: {record_path}")
        return 1

    if return_results:
        return results

    record = results.record
    print("Kinanthropometric Assessment")
    print("=" * 40)
    print(f"Sex: {record.sex.value}  Age: {record.age_years}  "
          f"Weight: {record.weight_kg} kg  Height: {record.height_cm} cm")
    print(format_summary(results))

    if compare:
        print("\n--- Formula comparison ---")
        print(compare_formulas(record).round(3).to_string(index=False))
    return 0
