"""
Five-Component Body Fractionation (Kerr 1988)

Splits body mass into skin, adipose, muscle, bone and residual tissue. Each
tissue except skin is estimated with the Phantom stratagem: every
measurement is scaled to the Phantom stature of 170.18 cm, expressed as a
Phantom z-score, and the mean z-score is turned back into a mass scaled by
(height / 170.18)^3. Skin mass comes from Du Bois body surface area.

The five masses are finally rescaled so that they add up to body weight.

Research Foundation:
- Kerr (1988): Simon Fraser University MSc thesis, five-component model
- Ross & Wilson (1974): Phantom stratagem
- Du Bois & Du Bois (1916): body surface area
"""

import logging
import math

import numpy as np

from body_density import siri_density
from clinical_constants import (
    ADIPOSE_PERCENT_OBESITY_WARNING,
    CORMIC_BRACHYCORMIC_BELOW,
    CORMIC_METRIOCORMIC_UPTO,
    ESSENTIAL_FAT_PERCENT,
    ISAK_RANGES,
    KERR_DEVIATION_WARNING_PERCENT,
    LIPID_FRACTION_OF_ADIPOSE,
    PHANTOM_STATURE_CM,
    SKIN_DENSITY,
    SKIN_THICKNESS_MM,
    SKINFOLD_SUM_IMPLAUSIBLE,
    SKINFOLD_SUM_OBESITY_NOTICE,
    SKINFOLD_SUM_OBESITY_WARNING,
)
from shared_models import (
    AdvisorySeverity,
    BreadthSite,
    ClinicalFlag,
    FiveComponentResult,
    GirthSite,
    MassComponent,
    ObesityWarning,
    SanityCheckResult,
    SkinfoldSite,
    ValidationIssue,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# PHANTOM REFERENCE VALUES (p = mean, s = standard deviation)
# ---------------------------------------------------------------------------

PHANTOM_SKINFOLDS = {
    SkinfoldSite.TRICEPS: (15.4, 4.47),
    SkinfoldSite.SUBSCAPULAR: (17.2, 5.07),
    SkinfoldSite.SUPRASPINALE: (15.4, 4.47),
    SkinfoldSite.ABDOMINAL: (25.4, 7.78),
    SkinfoldSite.THIGH: (27.0, 8.33),
    SkinfoldSite.CALF: (16.0, 4.67),
}

PHANTOM_GIRTHS = {
    GirthSite.ARM_RELAXED: (26.89, 2.33),
    GirthSite.ARM_FLEXED: (29.41, 2.37),
    GirthSite.FOREARM: (25.13, 1.41),
    GirthSite.CHEST: (87.86, 5.18),
    GirthSite.WAIST: (71.91, 4.45),
    GirthSite.THIGH: (55.82, 4.23),
    GirthSite.CALF: (35.25, 2.30),
}

PHANTOM_BREADTHS = {
    BreadthSite.HUMERUS: (6.48, 0.35),
    BreadthSite.FEMUR: (9.52, 0.48),
    BreadthSite.WRIST: (5.21, 0.28),
    BreadthSite.ANKLE: (6.68, 0.36),
    BreadthSite.BIACROMIAL: (38.04, 1.92),
    BreadthSite.BIILIOCRISTAL: (28.84, 1.75),
    BreadthSite.TRANSVERSE_CHEST: (27.92, 1.74),
    BreadthSite.AP_CHEST: (17.50, 1.38),
}

PHANTOM_HEAD_CIRCUMFERENCE = (57.20, 1.52)

PHANTOM_MASSES = {
    "adipose": (12.13, 3.25),
    "muscle": (25.55, 2.99),
    "bone": (6.68, 0.85),
    "residual": (6.35, 1.24),
}

# ---------------------------------------------------------------------------
# REQUIRED INPUTS
# ---------------------------------------------------------------------------

KERR_SKINFOLDS = (
    SkinfoldSite.TRICEPS,
    SkinfoldSite.SUBSCAPULAR,
    SkinfoldSite.BICEPS,
    SkinfoldSite.SUPRASPINALE,
    SkinfoldSite.ABDOMINAL,
    SkinfoldSite.THIGH,
    SkinfoldSite.CALF,
)

KERR_GIRTHS = (
    GirthSite.ARM_RELAXED,
    GirthSite.ARM_FLEXED,
    GirthSite.WAIST,
    GirthSite.THIGH,
    GirthSite.CALF,
)

KERR_BREADTHS = (
    BreadthSite.HUMERUS,
    BreadthSite.FEMUR,
    BreadthSite.BIACROMIAL,
    BreadthSite.BIILIOCRISTAL,
)

ALTERNATIVE_METHODS = [
    "Weltman (1988) - obesity-specific equation using abdominal girth",
    "Peterson (2008) - four-site equation validated against DXA",
    "Bioelectrical impedance - independent method for validation",
]


def _label(site, kind):
    return f"{site.value.replace('_', ' ').capitalize()} {kind}"


def missing_kerr_inputs(record):
    """Human labels of missing Kerr inputs, in a stable order."""
    missing = []
    if record.weight_kg is None:
        missing.append("Weight")
    if record.height_cm is None:
        missing.append("Height")
    missing += [_label(s, "skinfold") for s in KERR_SKINFOLDS if s not in record.skinfolds]
    missing += [_label(g, "girth") for g in KERR_GIRTHS if g not in record.girths]
    missing += [_label(b, "breadth") for b in KERR_BREADTHS if b not in record.breadths]
    return missing


# ---------------------------------------------------------------------------
# PHANTOM HELPERS
# ---------------------------------------------------------------------------


def phantom_z(value, height_cm, p, s):
    """
    Phantom z-score of a measurement.

    Args:
        value (float): Measurement in its natural unit.
        height_cm (float): Subject stature.
        p (float): Phantom mean for the measurement.
        s (float): Phantom standard deviation.

    Returns:
        float: (value * 170.18 / height - p) / s
    """
    return (value * (PHANTOM_STATURE_CM / height_cm) - p) / s


def phantom_mass(z, p, s, height_cm):
    """Mass for a Phantom z-score, (z * s + p) * (height / 170.18)^3, never negative."""
    return max(0.0, (z * s + p) * (height_cm / PHANTOM_STATURE_CM) ** 3)


def du_bois_surface_area_cm2(weight_kg, height_cm):
    """Du Bois body surface area in cm2."""
    return weight_kg**0.425 * height_cm**0.725 * 71.84


# ---------------------------------------------------------------------------
# COMPONENT MASSES
# ---------------------------------------------------------------------------


def skin_mass(weight_kg, height_cm, sex):
    """Surface area x skin thickness x skin density, in kg."""
    thickness_cm = SKIN_THICKNESS_MM[sex.value] / 10
    return du_bois_surface_area_cm2(weight_kg, height_cm) * thickness_cm * SKIN_DENSITY / 1000


def _component(z_scores, name, height_cm):
    mean_z = float(np.mean(z_scores))
    p, s = PHANTOM_MASSES[name]
    return phantom_mass(mean_z, p, s, height_cm), mean_z


def adipose_mass(record):
    h = record.height_cm
    z_scores = [
        phantom_z(record.skinfolds[site], h, p, s)
        for site, (p, s) in PHANTOM_SKINFOLDS.items()
    ]
    return _component(z_scores, "adipose", h)


def muscle_mass(record):
    """Muscle from girths corrected for the overlying skinfold (pi x skinfold in cm)."""
    h = record.height_cm
    sf, g = record.skinfolds, record.girths
    corrected = {
        GirthSite.ARM_RELAXED: g[GirthSite.ARM_RELAXED] - math.pi * sf[SkinfoldSite.TRICEPS] / 10,
        GirthSite.THIGH: g[GirthSite.THIGH] - math.pi * sf[SkinfoldSite.THIGH] / 10,
        GirthSite.CALF: g[GirthSite.CALF] - math.pi * sf[SkinfoldSite.CALF] / 10,
    }
    if GirthSite.FOREARM in g:
        corrected[GirthSite.FOREARM] = g[GirthSite.FOREARM]
    z_scores = [phantom_z(v, h, *PHANTOM_GIRTHS[site]) for site, v in corrected.items()]
    return _component(z_scores, "muscle", h)


def bone_mass(record):
    h = record.height_cm
    sites = [
        BreadthSite.HUMERUS,
        BreadthSite.FEMUR,
        BreadthSite.WRIST,
        BreadthSite.ANKLE,
        BreadthSite.BIACROMIAL,
        BreadthSite.BIILIOCRISTAL,
    ]
    z_scores = [
        phantom_z(record.breadths[site], h, *PHANTOM_BREADTHS[site])
        for site in sites
        if site in record.breadths
    ]
    return _component(z_scores, "bone", h)


def residual_mass(record):
    """Residual (viscera) from trunk breadths, chest girth and head circumference."""
    h = record.height_cm
    z_scores = [
        phantom_z(record.breadths[site], h, *PHANTOM_BREADTHS[site])
        for site in (
            BreadthSite.BIACROMIAL,
            BreadthSite.BIILIOCRISTAL,
            BreadthSite.TRANSVERSE_CHEST,
            BreadthSite.AP_CHEST,
        )
        if site in record.breadths
    ]
    if GirthSite.CHEST in record.girths:
        z_scores.append(phantom_z(record.girths[GirthSite.CHEST], h, *PHANTOM_GIRTHS[GirthSite.CHEST]))
    if record.head_circumference_cm is not None:
        z_scores.append(phantom_z(record.head_circumference_cm, h, *PHANTOM_HEAD_CIRCUMFERENCE))
    return _component(z_scores, "residual", h)


# ---------------------------------------------------------------------------
# VALIDATION
# ---------------------------------------------------------------------------


def _range_warnings(record):
    warnings = []
    checks = [
        ("skinfolds", record.skinfolds, "skinfold"),
        ("girths", record.girths, "girth"),
        ("breadths", record.breadths, "breadth"),
    ]
    for category, values, kind in checks:
        for site, value in values.items():
            bounds = ISAK_RANGES[category].get(site.value)
            if bounds is None:
                continue
            low, high, warn = bounds
            label = _label(site, kind)
            if value < low:
                warnings.append(
                    ValidationIssue(label, value, "below_min", f"{label} ({value}) below ISAK minimum ({low})")
                )
            elif value > high:
                warnings.append(
                    ValidationIssue(label, value, "above_max", f"{label} ({value}) above ISAK maximum ({high})")
                )
            elif value > warn:
                warnings.append(
                    ValidationIssue(label, value, "warning", f"{label} ({value}) is unusually high - verify")
                )
    return warnings


def _anatomical_errors(record):
    errors = []
    g, b = record.girths, record.breadths

    def impossible(field, value, message):
        errors.append(ValidationIssue(field, value, "anatomically_impossible", message))

    if GirthSite.WAIST in g and GirthSite.ARM_FLEXED in g and g[GirthSite.WAIST] < g[GirthSite.ARM_FLEXED]:
        impossible(
            "Waist girth",
            g[GirthSite.WAIST],
            f"Waist ({g[GirthSite.WAIST]} cm) cannot be smaller than flexed arm ({g[GirthSite.ARM_FLEXED]} cm)",
        )
    if GirthSite.THIGH in g and GirthSite.CALF in g and g[GirthSite.THIGH] < g[GirthSite.CALF]:
        impossible(
            "Thigh girth",
            g[GirthSite.THIGH],
            f"Thigh ({g[GirthSite.THIGH]} cm) cannot be smaller than calf ({g[GirthSite.CALF]} cm)",
        )
    if BreadthSite.FEMUR in b and BreadthSite.HUMERUS in b and b[BreadthSite.FEMUR] < b[BreadthSite.HUMERUS]:
        impossible(
            "Femur breadth",
            b[BreadthSite.FEMUR],
            f"Femur ({b[BreadthSite.FEMUR]} cm) cannot be narrower than humerus ({b[BreadthSite.HUMERUS]} cm)",
        )
    if (
        record.sitting_height_cm is not None
        and record.height_cm is not None
        and record.sitting_height_cm >= record.height_cm
    ):
        impossible(
            "Sitting height",
            record.sitting_height_cm,
            "Sitting height must be less than standing height",
        )
    return errors


def validate_five_component_input(record):
    """
    Check a record for the Kerr model.

    Returns:
        tuple: (missing labels, errors, warnings). Errors are anatomical
            impossibilities; ISAK range violations are only warnings.
    """
    missing = missing_kerr_inputs(record)
    errors = _anatomical_errors(record)
    warnings = _range_warnings(record)

    total = sum(record.skinfolds.get(s, 0) for s in KERR_SKINFOLDS)
    if total > SKINFOLD_SUM_IMPLAUSIBLE:
        warnings.append(
            ValidationIssue(
                "Skinfold sum", total, "warning", f"Sum of skinfolds ({total:.0f} mm) is very high - verify"
            )
        )
    return missing, errors, warnings


def cormic_index(sitting_height_cm, height_cm):
    return sitting_height_cm / height_cm * 100


def interpret_cormic_index(index):
    if index < CORMIC_BRACHYCORMIC_BELOW:
        return "Brachycormic (short trunk, long legs)"
    if index <= CORMIC_METRIOCORMIC_UPTO:
        return "Metriocormic (proportional)"
    return "Macrocormic (long trunk, short legs)"


def _obesity_warning(skinfold_sum, adipose_percent):
    if skinfold_sum > SKINFOLD_SUM_OBESITY_WARNING or adipose_percent > ADIPOSE_PERCENT_OBESITY_WARNING:
        return ObesityWarning(
            skinfold_sum=skinfold_sum,
            adipose_percent=adipose_percent,
            message=(
                f"High adiposity (skinfold sum {skinfold_sum:.0f} mm, adipose "
                f"{adipose_percent:.1f}%). Skinfold compressibility limits caliper accuracy."
            ),
            alternative_methods=list(ALTERNATIVE_METHODS),
        )
    if skinfold_sum > SKINFOLD_SUM_OBESITY_NOTICE:
        return ObesityWarning(
            skinfold_sum=skinfold_sum,
            adipose_percent=adipose_percent,
            message=f"Moderately high skinfold sum ({skinfold_sum:.0f} mm) - check technique",
        )
    return None


# ---------------------------------------------------------------------------
# MAIN CALCULATION
# ---------------------------------------------------------------------------


def fractionate(record):
    """
    Compute the Kerr five-component fractionation for a record.

    Args:
        record (AnthropometricRecord): Needs weight, height, the seven ISAK
            skinfolds, arm (relaxed and flexed), waist, thigh and calf girths,
            and humerus, femur, biacromial and biiliocristal breadths.

    Returns:
        FiveComponentResult: Components in kg and percent of body weight,
            rescaled so they add up to body weight. is_valid is False, with
            no masses, when inputs are missing or anatomically impossible.
    """
    missing, errors, warnings = validate_five_component_input(record)
    if missing or errors:
        logger.info(f"Five-component model not computable: missing={missing} errors={len(errors)}")
        return FiveComponentResult(
            is_valid=False, missing_data=missing, errors=errors, warnings=warnings
        )

    weight, height = record.weight_kg, record.height_cm

    raw = {"skin": skin_mass(weight, height, record.sex)}
    z_scores = {}
    for name, fn in (
        ("adipose", adipose_mass),
        ("muscle", muscle_mass),
        ("bone", bone_mass),
        ("residual", residual_mass),
    ):
        raw[name], z_scores[name] = fn(record)

    total = sum(raw.values())
    scale = weight / total
    deviation = abs(1 - scale) * 100

    flags = []
    if deviation > KERR_DEVIATION_WARNING_PERCENT:
        flags.append(
            ClinicalFlag(
                AdvisorySeverity.WARNING,
                "KERR_DEVIATION_HIGH",
                f"Sum of components differs from body weight by {deviation:.1f}% before adjustment",
            )
        )

    components = {
        name: MassComponent(kg=mass * scale, percent=mass * scale / weight * 100)
        for name, mass in raw.items()
    }

    adipose_percent = components["adipose"].percent
    lipid_fat_percent = adipose_percent * LIPID_FRACTION_OF_ADIPOSE
    skinfold_sum = sum(record.skinfolds[s] for s in KERR_SKINFOLDS)

    cormic, cormic_text = None, None
    if record.sitting_height_cm is not None:
        cormic = cormic_index(record.sitting_height_cm, height)
        cormic_text = interpret_cormic_index(cormic)

    logger.debug(
        "Kerr masses (kg): "
        + ", ".join(f"{k}={v.kg:.2f}" for k, v in components.items())
        + f"; scale={scale:.3f}"
    )

    return FiveComponentResult(
        is_valid=True,
        skin=components["skin"],
        adipose=components["adipose"],
        muscle=components["muscle"],
        bone=components["bone"],
        residual=components["residual"],
        body_density=siri_density(lipid_fat_percent),
        adipose_percent=adipose_percent,
        lipid_fat_percent=lipid_fat_percent,
        z_scores=z_scores,
        scale_factor=scale,
        cormic_index=cormic,
        cormic_interpretation=cormic_text,
        obesity_warning=_obesity_warning(skinfold_sum, adipose_percent),
        warnings=warnings,
        flags=flags,
    )


# ---------------------------------------------------------------------------
# SANITY CHECKS
# ---------------------------------------------------------------------------


def run_sanity_checks(result, weight_kg, sex, skinfold_sum=None):
    """
    Cross-check a fractionation against physiological limits.

    Args:
        result (FiveComponentResult): A valid fractionation.
        weight_kg (float): Measured body weight.
        sex (Sex): Patient sex.
        skinfold_sum (float): Optional sum of skinfolds in mm.

    Returns:
        SanityCheckResult: Errors and warnings plus a 0-100 confidence score.
    """
    if not result.is_valid:
        return SanityCheckResult(
            is_valid=False, confidence_score=0, errors=["Fractionation is not valid"]
        )

    errors, warnings = [], []
    score = 100

    balance = result.total_kg / weight_kg * 100
    if not 95 <= balance <= 105:
        errors.append(f"Mass balance {balance:.1f}% of body weight is outside 95-105%")
        score -= 30

    adjustment = None if result.scale_factor is None else abs(1 - result.scale_factor) * 100
    if adjustment is not None and adjustment > KERR_DEVIATION_WARNING_PERCENT:
        warnings.append("Raw component sum needed more than 5% adjustment")
        score -= 10

    essential = ESSENTIAL_FAT_PERCENT[sex.value]
    obese_limit = 50.0 if sex.value == "male" else 55.0
    if result.lipid_fat_percent < essential:
        errors.append(f"Estimated fat {result.lipid_fat_percent:.1f}% is below essential fat")
        score -= 25
    elif result.lipid_fat_percent > obese_limit:
        warnings.append(f"Estimated fat {result.lipid_fat_percent:.1f}% is extremely high")
        score -= 10

    bone_percent = result.bone.percent
    if not 5 <= bone_percent <= 20:
        warnings.append(f"Bone mass {bone_percent:.1f}% of body weight is outside 5-20%")
        score -= 10

    if result.bone.kg > 0:
        ratio = result.muscle.kg / result.bone.kg
        if not 3 <= ratio <= 8:
            warnings.append(f"Muscle to bone ratio {ratio:.1f} is outside 3-8")
            score -= 10

    if skinfold_sum is not None:
        if skinfold_sum > 300:
            errors.append(f"Skinfold sum {skinfold_sum:.0f} mm exceeds 300 mm")
            score -= 20
        elif skinfold_sum > 200:
            warnings.append(f"Skinfold sum {skinfold_sum:.0f} mm exceeds 200 mm")
            score -= 5

    return SanityCheckResult(
        is_valid=not errors,
        confidence_score=max(0, score),
        errors=errors,
        warnings=warnings,
    )
