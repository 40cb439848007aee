"""
Geriatric Anthropometry and Functional Screening

Estimates weight and stature from surrogate measurements for older adults
who cannot stand or be weighed, classifies BMI with geriatric cut-offs and
screens muscle function (handgrip, Timed Up and Go, calf circumference).

Every estimator needs its complete input set and returns None otherwise; a
partial regression is never evaluated with missing terms treated as zero.

Key Citations:
- Chumlea et al. (1985, 1988): weight and stature from knee height
- Guigoz et al. (1994): Mini Nutritional Assessment
- Cruz-Jentoft et al. (2019): EWGSOP2 sarcopenia consensus
"""

import logging
import math

from clinical_constants import (
    CALF_CIRCUMFERENCE_LOW_CM,
    HANDGRIP_LOW_KG,
    TUG_FALL_RISK_SECONDS,
)
from shared_models import (
    ElderlyAssessment,
    FunctionalAssessment,
    Sex,
    parse_sex,
)

logger = logging.getLogger(__name__)

# Percentile cut-offs (p5, p15, p85) for adults 60-90 years
ARM_PERCENTILE_CUTOFFS = {
    "arm_muscle_area": {Sex.MALE: (18.5, 22.0, 35.0), Sex.FEMALE: (14.5, 17.0, 28.0)},
    "triceps": {Sex.MALE: (6.0, 8.0, 15.0), Sex.FEMALE: (10.0, 13.0, 24.0)},
    "arm_circumference": {Sex.MALE: (23.0, 25.0, 32.0), Sex.FEMALE: (21.0, 23.0, 30.0)},
}


def _complete(*values):
    return all(v is not None and v > 0 for v in values)


# ---------------------------------------------------------------------------
# WEIGHT AND STATURE ESTIMATION
# ---------------------------------------------------------------------------


def estimate_weight_chumlea(surrogates):
    """
    Estimates body weight from calf and arm circumference, knee height and
    subscapular skinfold.

    Args:
        surrogates (ChumleaSurrogates): Surrogate measurements.

    Returns:
        float or None: Weight in kg, None unless all four measures are present.
    """
    cc = surrogates.calf_circumference_cm
    kh = surrogates.knee_height_cm
    mac = surrogates.arm_circumference_cm
    ssf = surrogates.subscapular_mm
    if not _complete(cc, kh, mac, ssf):
        return None

    if parse_sex(surrogates.sex) == Sex.MALE:
        return 0.98 * cc + 1.16 * kh + 1.73 * mac + 0.37 * ssf - 81.69
    return 1.27 * cc + 0.87 * kh + 0.98 * mac + 0.4 * ssf - 62.35


def estimate_height_from_knee(knee_height_cm, age, sex):
    """Chumlea stature from knee height (cm), or None if an input is missing."""
    if not _complete(knee_height_cm, age):
        return None
    if parse_sex(sex) == Sex.MALE:
        return 64.19 - 0.04 * age + 2.02 * knee_height_cm
    return 84.88 - 0.24 * age + 1.83 * knee_height_cm


def estimate_height_from_knee_malleolus(knee_malleolus_cm, age, sex):
    """Stature from knee-to-malleolus length (cm)."""
    if not _complete(knee_malleolus_cm, age):
        return None
    if parse_sex(sex) == Sex.MALE:
        return 1.121 * knee_malleolus_cm - 0.117 * age + 119.6
    return 1.263 * knee_malleolus_cm - 0.159 * age + 107.7


def estimate_height_from_demispan(demi_span_cm):
    if not _complete(demi_span_cm):
        return None
    return 2 * demi_span_cm


def calculate_lorentz_ideal_weight(height_cm, age, sex):
    """
    Lorentz ideal weight adapted for older adults.

    (T - 100) - (T - 150) / k + (age - 20) / k with k = 4 for men and 2.5
    for women.
    """
    if not _complete(height_cm, age):
        return None
    k = 4.0 if parse_sex(sex) == Sex.MALE else 2.5
    return (height_cm - 100) - (height_cm - 150) / k + (age - 20) / k


def calculate_weight_adequacy(actual_kg, ideal_kg):
    """Actual weight as a percentage of ideal weight."""
    if not _complete(actual_kg, ideal_kg):
        return None
    return actual_kg / ideal_kg * 100


# ---------------------------------------------------------------------------
# BMI AND ARM ANTHROPOMETRY
# ---------------------------------------------------------------------------


def classify_geriatric_bmi(bmi):
    if bmi < 23.0:
        return "Underweight"
    if bmi < 28.0:
        return "Normal"
    if bmi < 32.0:
        return "Overweight"
    return "Obesity"


def mna_bmi_score(bmi):
    """
    BMI item of the Mini Nutritional Assessment.

    Returns:
        tuple: (points 0-3, risk label)
    """
    if bmi < 19:
        return 0, "High risk"
    if bmi < 21:
        return 1, "Moderate risk"
    if bmi < 23:
        return 2, "Mild risk"
    return 3, "No risk"


def arm_anthropometry(arm_circumference_cm, triceps_mm):
    """
    Arm muscle circumference and areas.

    Args:
        arm_circumference_cm (float): Mid-upper arm circumference.
        triceps_mm (float): Triceps skinfold.

    Returns:
        dict or None: amc_cm, ama_cm2 and afa_cm2; None unless both inputs
            are present.
    """
    if not _complete(arm_circumference_cm, triceps_mm):
        return None
    amc = arm_circumference_cm - 0.314 * triceps_mm
    ama = amc**2 / (4 * math.pi) if amc > 0 else 0.0
    total_area = arm_circumference_cm**2 / (4 * math.pi)
    return {"amc_cm": amc, "ama_cm2": ama, "afa_cm2": total_area - ama}


def classify_arm_percentile(kind, value, sex):
    """Deficit, risk, normal or excess against geriatric percentile cut-offs."""
    p5, p15, p85 = ARM_PERCENTILE_CUTOFFS[kind][parse_sex(sex)]
    if value < p5:
        return "Deficit"
    if value < p15:
        return "Risk of deficit"
    if value < p85:
        return "Normal"
    return "Excess"


# ---------------------------------------------------------------------------
# FUNCTIONAL SCREENING
# ---------------------------------------------------------------------------


def classify_handgrip(grip_kg, sex):
    """
    Flags low handgrip strength (EWGSOP2: below 27 kg men, 16 kg women).

    Returns:
        tuple: (is_low, message)
    """
    threshold = HANDGRIP_LOW_KG[parse_sex(sex).value]
    if grip_kg < threshold:
        return True, f"Low grip strength ({grip_kg:g} kg < {threshold:g} kg): probable sarcopenia"
    return False, "Normal grip strength"


def classify_timed_up_and_go(seconds):
    """12 seconds or more indicates an elevated fall risk."""
    if seconds >= TUG_FALL_RISK_SECONDS:
        return True, f"Elevated fall risk (TUG {seconds:g} s)"
    return False, "Normal mobility"


COMBINED_MATRIX = {
    (True, True): (
        "Severe sarcopenia / malnutrition",
        "Low muscle mass and low strength: high frailty risk",
        "red",
    ),
    (True, False): (
        "Dynapenia",
        "Normal muscle mass without strength, possible sarcopenic obesity",
        "orange",
    ),
    (False, True): (
        "Pre-sarcopenia risk",
        "Function is preserved but muscle reserve is depleted",
        "yellow",
    ),
    (False, False): (
        "Preserved",
        "Good muscle reserve and function",
        "green",
    ),
}


def assess_function(sex, grip_kg=None, tug_seconds=None, calf_circumference_cm=None):
    """
    Combined sarcopenia matrix from grip strength and calf circumference.

    The matrix is filled only when both grip and calf circumference are
    known. A frailty alert is raised when the matrix is red or orange and
    the TUG indicates fall risk.
    """
    functional = FunctionalAssessment()

    if grip_kg is not None:
        functional.handgrip_low, functional.handgrip_message = classify_handgrip(grip_kg, sex)
    if tug_seconds is not None:
        functional.fall_risk, functional.tug_message = classify_timed_up_and_go(tug_seconds)
    if calf_circumference_cm is not None:
        functional.low_calf_reserve = calf_circumference_cm < CALF_CIRCUMFERENCE_LOW_CM

    if functional.handgrip_low is None or functional.low_calf_reserve is None:
        return functional

    label, explanation, color = COMBINED_MATRIX[
        (functional.handgrip_low, functional.low_calf_reserve)
    ]
    functional.combined_label = label
    functional.combined_explanation = explanation
    if color in ("red", "orange") and functional.fall_risk:
        functional.frailty_alert = "Frailty syndrome with high fall risk: refer for physiotherapy"
    return functional


# ---------------------------------------------------------------------------
# FULL EVALUATION
# ---------------------------------------------------------------------------


def evaluate_elderly_patient(
    surrogates, weight_kg=None, height_cm=None, grip_kg=None, tug_seconds=None
):
    """
    Complete geriatric anthropometric and functional evaluation.

    Measured weight and height take precedence over estimates. Stature is
    estimated from knee height, then knee-malleolus length, then demi-span,
    whichever is available first.

    Args:
        surrogates (ChumleaSurrogates): Surrogate measurements and age.
        weight_kg (float): Measured weight, if available.
        height_cm (float): Measured height, if available.
        grip_kg (float): Dynamometer handgrip strength.
        tug_seconds (float): Timed Up and Go duration.

    Returns:
        ElderlyAssessment
    """
    sex = parse_sex(surrogates.sex)
    age = surrogates.age_years
    alerts = []
    estimates = {}

    chumlea_weight = estimate_weight_chumlea(surrogates)
    if chumlea_weight is not None:
        estimates["weight_chumlea_kg"] = chumlea_weight

    height_estimators = (
        ("height_knee_cm", estimate_height_from_knee(surrogates.knee_height_cm, age, sex)),
        (
            "height_knee_malleolus_cm",
            estimate_height_from_knee_malleolus(surrogates.knee_malleolus_cm, age, sex),
        ),
        ("height_demispan_cm", estimate_height_from_demispan(surrogates.demi_span_cm)),
    )
    estimated_height = None
    for name, value in height_estimators:
        if value is not None:
            estimates[name] = value
            if estimated_height is None:
                estimated_height = value

    weight_is_estimated = not weight_kg and chumlea_weight is not None
    height_is_estimated = not height_cm and estimated_height is not None
    weight = weight_kg or chumlea_weight
    height = height_cm or estimated_height

    assessment = ElderlyAssessment(
        weight_kg=weight,
        height_cm=height,
        weight_is_estimated=weight_is_estimated,
        height_is_estimated=height_is_estimated,
        estimates=estimates,
    )

    if weight and height:
        bmi = weight / (height / 100) ** 2
        assessment.bmi = bmi
        assessment.bmi_classification = classify_geriatric_bmi(bmi)
        points, label = mna_bmi_score(bmi)
        assessment.mna_bmi_score = points
        if points <= 1:
            alerts.append(f"Nutritional alert: {label.lower()} (MNA BMI score {points})")

    ideal = calculate_lorentz_ideal_weight(height, age, sex)
    if ideal is not None:
        estimates["ideal_weight_lorentz_kg"] = ideal
        adequacy = calculate_weight_adequacy(weight, ideal)
        if adequacy is not None:
            estimates["weight_adequacy_percent"] = adequacy

    arm = arm_anthropometry(surrogates.arm_circumference_cm, surrogates.triceps_mm)
    if arm is not None:
        assessment.arm_muscle_circumference_cm = arm["amc_cm"]
        assessment.arm_muscle_area_cm2 = arm["ama_cm2"]
        assessment.arm_fat_area_cm2 = arm["afa_cm2"]
        if classify_arm_percentile("arm_muscle_area", arm["ama_cm2"], sex) == "Deficit":
            alerts.append(f"Arm muscle area below the 5th percentile ({arm['ama_cm2']:.1f} cm2)")

    calf = surrogates.calf_circumference_cm
    functional = assess_function(sex, grip_kg, tug_seconds, calf)
    assessment.functional = functional

    if functional.low_calf_reserve:
        alerts.append(f"Low muscle reserve (calf circumference {calf:g} cm < 31 cm)")
    if functional.handgrip_low:
        alerts.append("Muscle strength deficit (dynamometry)")
    if functional.fall_risk:
        alerts.append("Fall risk (Timed Up and Go >= 12 s)")
    if functional.frailty_alert:
        alerts.append(functional.frailty_alert)

    assessment.alerts = alerts
    logger.debug(
        f"Elderly evaluation: weight={weight} (estimated={weight_is_estimated}), "
        f"height={height} (estimated={height_is_estimated})"
    )
    return assessment
