"""
Heath-Carter Anthropometric Somatotype

Rates physique on three components: endomorphy (relative fatness),
mesomorphy (musculo-skeletal robustness) and ectomorphy (relative
linearity), and places the rating on the somatochart.

Research Foundation:
- Carter & Heath (1990): "Somatotyping: Development and Applications"
- Carter (2002): "The Heath-Carter Anthropometric Somatotype - Instruction Manual"
"""

import logging

from clinical_constants import (
    ECTOMORPHY_LOW_HWR_VALUE,
    HWR_LOWER_BREAKPOINT,
    HWR_UPPER_BREAKPOINT,
    PHANTOM_STATURE_CM,
    SOMATOTYPE_COMPONENT_FLOOR,
)
from shared_models import (
    BreadthSite,
    GirthSite,
    SkinfoldSite,
    SomatotypeResult,
)

logger = logging.getLogger(__name__)

# (label, container attribute, key) in the order missing data is reported
REQUIRED_MEASUREMENTS = (
    ("Weight", None, "weight_kg"),
    ("Height", None, "height_cm"),
    ("Triceps skinfold", "skinfolds", SkinfoldSite.TRICEPS),
    ("Subscapular skinfold", "skinfolds", SkinfoldSite.SUBSCAPULAR),
    ("Supraspinale skinfold", "skinfolds", SkinfoldSite.SUPRASPINALE),
    ("Calf skinfold", "skinfolds", SkinfoldSite.CALF),
    ("Flexed arm girth", "girths", GirthSite.ARM_FLEXED),
    ("Calf girth", "girths", GirthSite.CALF),
    ("Humerus breadth", "breadths", BreadthSite.HUMERUS),
    ("Femur breadth", "breadths", BreadthSite.FEMUR),
)


def somatotype_preconditions(record):
    """Labels of the measurements needed for a somatotype that are missing."""
    missing = []
    for label, container, key in REQUIRED_MEASUREMENTS:
        if container is None:
            value = getattr(record, key)
        else:
            value = getattr(record, container).get(key)
        if value is None or value <= 0:
            missing.append(label)
    return missing


def calculate_endomorphy(triceps, subscapular, supraspinale, height_cm):
    """
    Height-corrected endomorphy.

    X is the sum of triceps, subscapular and supraspinale skinfolds scaled to
    Phantom stature; the rating is a cubic in X, floored at 0.5.
    """
    x = (triceps + subscapular + supraspinale) * (PHANTOM_STATURE_CM / height_cm)
    endo = -0.7182 + 0.1451 * x - 0.00068 * x**2 + 0.0000014 * x**3
    return max(SOMATOTYPE_COMPONENT_FLOOR, endo)


def calculate_mesomorphy(
    humerus, femur, arm_flexed_girth, triceps, calf_girth, calf_skinfold, height_cm
):
    """
    Mesomorphy from bone breadths and skinfold-corrected limb girths.

    Skinfolds are in mm and are converted to cm before being subtracted from
    the girths. Floored at 0.5.
    """
    corrected_arm = arm_flexed_girth - triceps / 10
    corrected_calf = calf_girth - calf_skinfold / 10
    meso = (
        0.858 * humerus
        + 0.601 * femur
        + 0.188 * corrected_arm
        + 0.161 * corrected_calf
        - 0.131 * height_cm
        + 4.5
    )
    return max(SOMATOTYPE_COMPONENT_FLOOR, meso)


def height_weight_ratio(height_cm, weight_kg):
    return height_cm / weight_kg ** (1 / 3)


def calculate_ectomorphy(hwr):
    """
    Ectomorphy from the height-weight ratio.

    Args:
        hwr (float): height / weight^(1/3).

    Returns:
        float: 0.732*HWR - 28.58 at or above 40.75, 0.463*HWR - 17.63 between
            38.25 and 40.75, and a fixed 0.1 at or below 38.25. The middle
            branch never drops below 0.1.
    """
    if hwr >= HWR_UPPER_BREAKPOINT:
        return 0.732 * hwr - 28.58
    if hwr > HWR_LOWER_BREAKPOINT:
        return max(ECTOMORPHY_LOW_HWR_VALUE, 0.463 * hwr - 17.63)
    return ECTOMORPHY_LOW_HWR_VALUE


def somatochart_coordinates(endo, meso, ecto):
    """Return (x, y) for the somatochart."""
    return ecto - endo, 2 * meso - (endo + ecto)


def component_level(value):
    """Describe a single component rating."""
    if value < 3:
        return "low"
    if value <= 5.5:
        return "moderate"
    if value <= 7.5:
        return "high"
    return "very high"


def classify_somatotype(endo, meso, ecto):
    """
    Assign one of the 13 Heath-Carter somatotype categories.

    A somatotype is Central when no component differs from the others by
    more than one unit. Otherwise components within half a unit of each other
    count as equal.
    """

    def eq(a, b, tolerance=0.5):
        return abs(a - b) <= tolerance

    if eq(endo, meso, 1.0) and eq(meso, ecto, 1.0) and eq(endo, ecto, 1.0):
        return "Central"

    components = {"endo": endo, "meso": meso, "ecto": ecto}
    ordered = sorted(components, key=components.get, reverse=True)
    first, second, third = ordered
    top, mid = components[first], components[second]

    if eq(top, mid):
        pair = {first, second}
        if pair == {"endo", "meso"}:
            return "Endomorph-Mesomorph"
        if pair == {"meso", "ecto"}:
            return "Mesomorph-Ectomorph"
        return "Endomorph-Ectomorph"

    dominant = {"endo": "Endomorph", "meso": "Mesomorph", "ecto": "Ectomorph"}[first]
    adjective = {"endo": "Endomorphic", "meso": "Mesomorphic", "ecto": "Ectomorphic"}

    if eq(mid, components[third]):
        return f"Balanced {dominant.lower()}"
    return f"{adjective[second]} {dominant.lower()}"


def compute_somatotype(record):
    """
    Computes the Heath-Carter somatotype for an AnthropometricRecord.

    Args:
        record (AnthropometricRecord): Must carry weight, height, triceps,
            subscapular, supraspinale and calf skinfolds, flexed arm and calf
            girths, and humerus and femur breadths.

    Returns:
        SomatotypeResult: Invalid, with the missing measurement labels and no
            ratings, when any input is absent. Otherwise unrounded ratings and
            somatochart coordinates.
    """
    missing = somatotype_preconditions(record)
    if missing:
        logger.info(f"Somatotype not computable; missing {missing}")
        return SomatotypeResult(is_valid=False, missing_fields=missing)

    sf, girths, breadths = record.skinfolds, record.girths, record.breadths
    height, weight = record.height_cm, record.weight_kg

    endo = calculate_endomorphy(
        sf[SkinfoldSite.TRICEPS],
        sf[SkinfoldSite.SUBSCAPULAR],
        sf[SkinfoldSite.SUPRASPINALE],
        height,
    )
    meso = calculate_mesomorphy(
        breadths[BreadthSite.HUMERUS],
        breadths[BreadthSite.FEMUR],
        girths[GirthSite.ARM_FLEXED],
        sf[SkinfoldSite.TRICEPS],
        girths[GirthSite.CALF],
        sf[SkinfoldSite.CALF],
        height,
    )
    hwr = height_weight_ratio(height, weight)
    ecto = calculate_ectomorphy(hwr)
    x, y = somatochart_coordinates(endo, meso, ecto)

    logger.debug(f"Somatotype {endo:.2f}-{meso:.2f}-{ecto:.2f} (HWR {hwr:.2f})")

    return SomatotypeResult(
        is_valid=True,
        endomorphy=endo,
        mesomorphy=meso,
        ectomorphy=ecto,
        x=x,
        y=y,
        hwr=hwr,
        classification=classify_somatotype(endo, meso, ecto),
    )
