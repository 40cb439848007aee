"""
Pediatric Growth Engine (WHO LMS)

Computes growth z-scores and percentiles from the WHO Child Growth Standards
(0-60 months) and the WHO 2007 Growth Reference (61-228 months) with the LMS
method. Reference tables live as CSV files in the data directory and are
interpolated linearly between tabulated ages; values outside a table are
never extrapolated.

Sections:
- LMS math (z-score and its inverse)
- Reference data loading
- Z-score interpretation
- Age handling (exact age, prematurity correction, length/height adjustment)
- Growth assessment and reference curves
"""

import functools
import logging
import math
import os
from datetime import date, datetime

import numpy as np
import pandas as pd
import scipy.stats as stats
from scipy.interpolate import interp1d

from clinical_constants import (
    DAYS_PER_MONTH,
    LENGTH_HEIGHT_ADJUSTMENT_CM,
    LMS_L_EPSILON,
    MODERATE_Z_BOUND,
    PREMATURITY_CORRECTION_UNTIL_MONTHS,
    PRETERM_GESTATION_WEEKS,
    SEVERE_Z_BOUND,
    TERM_GESTATION_WEEKS,
)
from shared_models import (
    GrowthAssessment,
    GrowthIndicator,
    MeasurementType,
    SeverityLevel,
    Sex,
    ZScoreResult,
    parse_sex,
)

logger = logging.getLogger(__name__)

DEFAULT_DATA_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")

# Valid axis range per indicator: months, except weight-for-length in cm
INDICATOR_DOMAINS = {
    GrowthIndicator.WFA: (0.0, 60.0),
    GrowthIndicator.LHFA: (0.0, 228.0),
    GrowthIndicator.WFLH: (45.0, 110.0),
    GrowthIndicator.BFA: (24.0, 228.0),
    GrowthIndicator.HCFA: (0.0, 24.0),
}

# WHO flags for biologically implausible z-scores: (lower, upper)
IMPLAUSIBLE_Z_LIMITS = {
    GrowthIndicator.WFA: (-6.0, 5.0),
    GrowthIndicator.LHFA: (-6.0, 6.0),
    GrowthIndicator.WFLH: (-5.0, 5.0),
    GrowthIndicator.BFA: (-5.0, 5.0),
    GrowthIndicator.HCFA: (-5.0, 5.0),
}

INFANT_MONTHS = 24.0


class IndicatorDomainError(ValueError):
    """Raised when a growth indicator is requested outside its reference range"""

    pass


# ---------------------------------------------------------------------------
# LMS MATH
# ---------------------------------------------------------------------------


def compute_zscore(y, L, M, S, eps=LMS_L_EPSILON):
    """
    Calculates the Z-score for a given value y using the LMS method.

    Args:
        y (float): The measured value (weight, length, BMI or head circumference).
        L (float): The lambda parameter (Box-Cox power for skewness).
        M (float): The mu parameter (the median of the reference population).
        S (float): The sigma parameter (the coefficient of variation).
        eps (float): Threshold below which L is treated as zero.

    Returns:
        float: The calculated Z-score, or NaN if any input is invalid or y is non-positive.
    """
    if pd.isna(y) or pd.isna(L) or pd.isna(M) or pd.isna(S) or y <= 0:
        return np.nan
    if abs(L) < eps:
        # When L is close to zero, the formula simplifies to a logarithmic form.
        return np.log(y / M) / S
    return (((y / M) ** L) - 1) / (L * S)


def get_value_from_zscore(z, l_val, m_val, s_val, eps=LMS_L_EPSILON):
    """
    Calculates a measurement value from a Z-score (inverse LMS transformation).

    Args:
        z (float): The Z-score (e.g., 0 for the median, -2 for the lower cut-off).
        l_val (float): The L (lambda) value for the given age.
        m_val (float): The M (mu/median) value for the given age.
        s_val (float): The S (sigma) value for the given age.
        eps (float): Threshold below which L is treated as zero.

    Returns:
        float: The value corresponding to the given Z-score, or NaN if inputs are invalid.
    """
    if pd.isna(z) or pd.isna(l_val) or pd.isna(m_val) or pd.isna(s_val):
        return np.nan
    if abs(l_val) < eps:
        return m_val * np.exp(s_val * z)
    return m_val * ((l_val * s_val * z + 1) ** (1 / l_val))


# ---------------------------------------------------------------------------
# REFERENCE DATA
# ---------------------------------------------------------------------------


def _indicator(indicator):
    return indicator if isinstance(indicator, GrowthIndicator) else GrowthIndicator(indicator)


@functools.lru_cache(maxsize=16)
def load_lms_data(indicator, sex, data_path=DEFAULT_DATA_PATH):
    """
    Loads WHO LMS reference data and creates interpolation functions.

    Cached so each table is read once per process; the returned functions are
    never mutated.

    Args:
        indicator (GrowthIndicator): Growth indicator.
        sex (Sex): Child's sex.
        data_path (str): Directory containing the who_<indicator>_<sex>.csv files.

    Returns:
        tuple: (L_func, M_func, S_func). Each returns NaN outside the table.
            Returns (None, None, None) if loading fails.
    """
    filename = f"who_{indicator.value}_{sex.value}.csv"
    filepath = os.path.join(data_path, filename)

    if not os.path.exists(filepath):
        logger.error(f"LMS data file not found: {filepath}")
        return None, None, None

    df = pd.read_csv(filepath)
    column_mapping = {"age": "x", "length": "x", "lambda": "L", "mu": "M", "sigma": "S"}
    df = df.rename(columns=column_mapping)
    required_columns = ["x", "L", "M", "S"]
    if not all(col in df.columns for col in required_columns):
        logger.error(f"LMS file {filepath} missing required columns: {required_columns}")
        return None, None, None

    df = df.sort_values("x")
    funcs = tuple(
        interp1d(df["x"], df[col], kind="linear", bounds_error=False, fill_value=np.nan)
        for col in ("L", "M", "S")
    )
    logger.debug(f"Loaded LMS data: {filename} ({len(df)} rows)")
    return funcs


def get_lms(indicator, sex, axis_value, data_path=DEFAULT_DATA_PATH):
    """
    Interpolated (L, M, S) for an indicator at an age (or length for wflh).

    Raises:
        IndicatorDomainError: If axis_value is outside the indicator's domain.
        FileNotFoundError: If the reference table is unavailable.
    """
    indicator = _indicator(indicator)
    low, high = INDICATOR_DOMAINS[indicator]
    if axis_value is None or not low <= axis_value <= high:
        raise IndicatorDomainError(
            f"{indicator.value} is defined for {low:g}-{high:g}, got {axis_value}"
        )

    L_func, M_func, S_func = load_lms_data(indicator, parse_sex(sex), data_path)
    if L_func is None:
        raise FileNotFoundError(f"No reference data for {indicator.value}")

    L, M, S = float(L_func(axis_value)), float(M_func(axis_value)), float(S_func(axis_value))
    if math.isnan(L) or math.isnan(M) or math.isnan(S):
        raise IndicatorDomainError(f"{indicator.value} has no reference data at {axis_value}")
    return L, M, S


# ---------------------------------------------------------------------------
# INTERPRETATION
# ---------------------------------------------------------------------------


def severity_from_z(z):
    """Band |z|: up to 2 normal, up to 3 moderate, beyond 3 severe."""
    magnitude = abs(z)
    if magnitude <= MODERATE_Z_BOUND:
        return SeverityLevel.NORMAL
    if magnitude <= SEVERE_Z_BOUND:
        return SeverityLevel.MODERATE_NEGATIVE if z < 0 else SeverityLevel.MODERATE_POSITIVE
    return SeverityLevel.SEVERE_NEGATIVE if z < 0 else SeverityLevel.SEVERE_POSITIVE


DIAGNOSES = {
    GrowthIndicator.WFLH: {
        SeverityLevel.SEVERE_POSITIVE: "Obesity",
        SeverityLevel.MODERATE_POSITIVE: "Overweight",
        SeverityLevel.NORMAL: "Normal",
        SeverityLevel.MODERATE_NEGATIVE: "Wasted",
        SeverityLevel.SEVERE_NEGATIVE: "Severely wasted",
    },
    GrowthIndicator.BFA: {
        SeverityLevel.SEVERE_POSITIVE: "Obesity",
        SeverityLevel.MODERATE_POSITIVE: "Overweight",
        SeverityLevel.NORMAL: "Normal",
        SeverityLevel.MODERATE_NEGATIVE: "Thinness",
        SeverityLevel.SEVERE_NEGATIVE: "Severe thinness",
    },
    GrowthIndicator.LHFA: {
        SeverityLevel.SEVERE_POSITIVE: "Very tall",
        SeverityLevel.MODERATE_POSITIVE: "Tall",
        SeverityLevel.NORMAL: "Normal",
        SeverityLevel.MODERATE_NEGATIVE: "Stunted",
        SeverityLevel.SEVERE_NEGATIVE: "Severely stunted",
    },
    GrowthIndicator.WFA: {
        SeverityLevel.SEVERE_POSITIVE: "High weight",
        SeverityLevel.MODERATE_POSITIVE: "High weight",
        SeverityLevel.NORMAL: "Normal",
        SeverityLevel.MODERATE_NEGATIVE: "Underweight",
        SeverityLevel.SEVERE_NEGATIVE: "Severely underweight",
    },
    GrowthIndicator.HCFA: {
        SeverityLevel.SEVERE_POSITIVE: "Macrocephaly",
        SeverityLevel.MODERATE_POSITIVE: "Large head circumference",
        SeverityLevel.NORMAL: "Normal",
        SeverityLevel.MODERATE_NEGATIVE: "Small head circumference",
        SeverityLevel.SEVERE_NEGATIVE: "Microcephaly",
    },
}


def interpret_z_score(z, indicator):
    """
    Diagnosis text and severity band for a z-score.

    Returns:
        tuple: (diagnosis, SeverityLevel)
    """
    indicator = _indicator(indicator)
    severity = severity_from_z(z)
    diagnosis = DIAGNOSES[indicator][severity]
    if (
        indicator in (GrowthIndicator.WFLH, GrowthIndicator.BFA)
        and severity == SeverityLevel.NORMAL
        and z > 1
    ):
        diagnosis = "Risk of overweight"
    return diagnosis, severity


def calculate_z_score(value, axis_value, sex, indicator, data_path=DEFAULT_DATA_PATH):
    """
    Calculates the WHO z-score, percentile and diagnosis for one indicator.

    Args:
        value (float): Measured weight (kg), length/height (cm), BMI or head
            circumference (cm).
        axis_value (float): Age in months, or length in cm for wflh.
        sex (Sex or str): Child's sex.
        indicator (GrowthIndicator or str): wfa, lhfa, wflh, bfa or hcfa.
        data_path (str): Directory with the reference tables.

    Returns:
        ZScoreResult or None: None when the request is outside the
            indicator's domain or the value is not a positive number.
    """
    indicator = _indicator(indicator)
    try:
        L, M, S = get_lms(indicator, sex, axis_value, data_path)
    except IndicatorDomainError as e:
        logger.info(str(e))
        return None

    z = compute_zscore(value, L, M, S)
    if pd.isna(z):
        return None
    z = float(z)

    diagnosis, severity = interpret_z_score(z, indicator)
    low, high = IMPLAUSIBLE_Z_LIMITS[indicator]
    return ZScoreResult(
        indicator=indicator,
        z_score=z,
        percentile=float(stats.norm.cdf(z) * 100),
        diagnosis=diagnosis,
        severity_level=severity,
        is_implausible=not low <= z <= high,
    )


# ---------------------------------------------------------------------------
# AGE HANDLING
# ---------------------------------------------------------------------------


def _to_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], "%Y-%m-%d").date()


def calculate_age_in_months(birth_date, evaluation_date=None):
    """
    Calculates the exact age in months between two dates.

    Args:
        birth_date (date, datetime or str): Birth date, ISO "YYYY-MM-DD" if a string.
        evaluation_date (date, datetime or str): Defaults to today.

    Returns:
        float: Days elapsed divided by 30.4375.

    Raises:
        ValueError: If the evaluation date precedes the birth date.
    """
    birth = _to_date(birth_date)
    evaluation = _to_date(evaluation_date) if evaluation_date is not None else date.today()
    if evaluation < birth:
        raise ValueError("Evaluation date cannot be before the birth date")
    return (evaluation - birth).days / DAYS_PER_MONTH


def corrected_age_months(chronological_months, gestational_weeks=None):
    """
    Age corrected for prematurity.

    Applies to babies born before 37 weeks until 24 months of chronological
    age: the weeks missing to a 40-week term are subtracted.

    Returns:
        tuple: (age in months to use, whether a correction was applied)
    """
    if (
        gestational_weeks is None
        or gestational_weeks >= PRETERM_GESTATION_WEEKS
        or chronological_months > PREMATURITY_CORRECTION_UNTIL_MONTHS
    ):
        return chronological_months, False
    missing_days = (TERM_GESTATION_WEEKS - gestational_weeks) * 7
    return max(0.0, chronological_months - missing_days / DAYS_PER_MONTH), True


def measurement_type_for_age(age_months):
    """Length is measured lying down before 24 months, standing afterwards."""
    return MeasurementType.RECUMBENT if age_months < INFANT_MONTHS else MeasurementType.STANDING


def adjust_height_measurement(height_cm, actual_type, required_type):
    """Convert between recumbent length and standing height (0.7 cm)."""
    if actual_type == required_type:
        return height_cm
    if actual_type == MeasurementType.RECUMBENT:
        return height_cm - LENGTH_HEIGHT_ADJUSTMENT_CM
    return height_cm + LENGTH_HEIGHT_ADJUSTMENT_CM


# ---------------------------------------------------------------------------
# GROWTH ASSESSMENT
# ---------------------------------------------------------------------------


def _nutritional_status(stunting, wasting, overweight, severe_overweight):
    if stunting and wasting:
        return "Chronic and acute undernutrition"
    if stunting:
        return "Chronic undernutrition (stunting)"
    if wasting:
        return "Acute undernutrition (wasting)"
    if overweight:
        return "Obesity" if severe_overweight else "Overweight"
    return "Normal"


def calculate_growth_assessment(
    weight_kg,
    height_cm,
    age_months,
    sex,
    head_circumference_cm=None,
    gestational_weeks=None,
    measurement_type=None,
    data_path=DEFAULT_DATA_PATH,
):
    """
    Evaluates every applicable WHO indicator for a child.

    Args:
        weight_kg (float): Body weight.
        height_cm (float): Length or height.
        age_months (float): Chronological age in months.
        sex (Sex or str): Child's sex.
        head_circumference_cm (float): Optional, used up to 24 months.
        gestational_weeks (float): Optional, triggers prematurity correction.
        measurement_type (MeasurementType): How height_cm was taken; when
            given, it is converted to the position the standard expects.
        data_path (str): Directory with the reference tables.

    Returns:
        GrowthAssessment: Indicators outside their domain are None.
    """
    sex = parse_sex(sex)
    age, corrected = corrected_age_months(age_months, gestational_weeks)
    is_infant = age < INFANT_MONTHS

    length = height_cm
    if measurement_type is not None and height_cm is not None:
        length = adjust_height_measurement(height_cm, measurement_type, measurement_type_for_age(age))

    wfa = calculate_z_score(weight_kg, age, sex, GrowthIndicator.WFA, data_path)
    lhfa = calculate_z_score(length, age, sex, GrowthIndicator.LHFA, data_path)
    wflh = None
    if is_infant:
        wflh = calculate_z_score(weight_kg, length, sex, GrowthIndicator.WFLH, data_path)
    bfa = None
    if weight_kg and length:
        bmi = weight_kg / (length / 100) ** 2
        bfa = calculate_z_score(bmi, age, sex, GrowthIndicator.BFA, data_path)
    hcfa = None
    if head_circumference_cm:
        hcfa = calculate_z_score(head_circumference_cm, age, sex, GrowthIndicator.HCFA, data_path)

    weight_status = wflh if is_infant else bfa
    stunting = lhfa is not None and lhfa.z_score < -MODERATE_Z_BOUND
    if is_infant:
        acute = wflh if wflh is not None else wfa
    else:
        acute = bfa
    wasting = acute is not None and acute.z_score < -MODERATE_Z_BOUND
    overweight = weight_status is not None and weight_status.z_score > MODERATE_Z_BOUND
    severe = weight_status is not None and weight_status.z_score > SEVERE_Z_BOUND

    return GrowthAssessment(
        age_months_used=age,
        corrected_for_prematurity=corrected,
        nutritional_status=_nutritional_status(stunting, wasting, overweight, severe),
        stunting=stunting,
        wasting=wasting,
        overweight=overweight,
        wfa=wfa,
        lhfa=lhfa,
        wflh=wflh,
        bfa=bfa,
        hcfa=hcfa,
    )


def generate_reference_curves(indicator, sex, start=None, end=None, step=1.0, data_path=DEFAULT_DATA_PATH):
    """
    Standard deviation lines of a reference table.

    Args:
        indicator (GrowthIndicator or str): Growth indicator.
        sex (Sex or str): Sex.
        start (float): First axis value; defaults to the start of the domain.
        end (float): Last axis value; defaults to the end of the domain.
        step (float): Spacing of the axis values.
        data_path (str): Directory with the reference tables.

    Returns:
        pd.DataFrame: Columns axis, sd_neg3, sd_neg2, median, sd_pos2, sd_pos3.
    """
    indicator = _indicator(indicator)
    low, high = INDICATOR_DOMAINS[indicator]
    start = low if start is None else max(low, start)
    end = high if end is None else min(high, end)

    rows = []
    for x in np.arange(start, end + step / 2, step):
        x = float(min(x, end))
        L, M, S = get_lms(indicator, sex, x, data_path)
        rows.append(
            {
                "axis": x,
                "sd_neg3": get_value_from_zscore(-3, L, M, S),
                "sd_neg2": get_value_from_zscore(-2, L, M, S),
                "median": M,
                "sd_pos2": get_value_from_zscore(2, L, M, S),
                "sd_pos3": get_value_from_zscore(3, L, M, S),
            }
        )
    return pd.DataFrame(rows)


def get_median_anthropometry(age_months, sex, data_path=DEFAULT_DATA_PATH):
    """
    Reference median weight and height for an age, for form defaults.

    Returns:
        dict: {"weight_kg": ..., "height_cm": ...}; adult defaults beyond 228 months.
    """
    sex = parse_sex(sex)
    if age_months > INDICATOR_DOMAINS[GrowthIndicator.LHFA][1]:
        if sex == Sex.MALE:
            return {"weight_kg": 75.0, "height_cm": 175.0}
        return {"weight_kg": 62.0, "height_cm": 162.0}
    _, weight_median, _ = get_lms(GrowthIndicator.WFA, sex, min(60.0, age_months), data_path)
    _, height_median, _ = get_lms(GrowthIndicator.LHFA, sex, age_months, data_path)
    return {"weight_kg": round(weight_median, 1), "height_cm": round(height_median, 1)}
