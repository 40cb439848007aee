"""
Body density and fat percent formula library.

Each equation is described once in FORMULA_CATALOG: which skinfolds it needs
for each sex, whether it needs age, the age range it was validated on, and
the function that turns skinfolds into density. Every density equation goes
through the same Siri conversion so fat percent is computed identically for
all of them.

Key Citations:
- Wilmore & Behnke (1969, 1970): equations for young adults
- Durnin & Womersley (1974): four skinfold equations, 16-72 years
- Katch & McArdle (1973): equations for physically active adults
- Withers et al. (1987): equations for Australian athletes
- Sloan (1967), Sloan et al. (1962): two-site equations
- Jackson & Pollock (1978), Jackson, Pollock & Ward (1980): generalized equations
- Slaughter et al. (1988): skinfold equations for children and youth
- Siri (1961): fat percent from body density
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import pandas as pd

from clinical_constants import (
    DENSITY_VALID_RANGE,
    ESSENTIAL_FAT_PERCENT,
    METABOLIC_RISK_FAT_PERCENT,
    SIRI_NUMERATOR,
    SIRI_OFFSET,
)
from shared_models import (
    AdvisorySeverity,
    BodyCompositionResult,
    ClinicalFlag,
    FormulaId,
    FormulaProfile,
    MaturationStage,
    Sex,
    SkinfoldSite,
    parse_sex,
    sites_to_labels,
)

logger = logging.getLogger(__name__)

TRI = SkinfoldSite.TRICEPS
SUB = SkinfoldSite.SUBSCAPULAR
BIC = SkinfoldSite.BICEPS
ILI = SkinfoldSite.ILIAC_CREST
SUP = SkinfoldSite.SUPRASPINALE
ABD = SkinfoldSite.ABDOMINAL
THI = SkinfoldSite.THIGH
CAL = SkinfoldSite.CALF
CHE = SkinfoldSite.CHEST
MAX = SkinfoldSite.MIDAXILLARY

ISAK_SEVEN_SITES = (TRI, SUB, BIC, SUP, ABD, THI, CAL)


# ---------------------------------------------------------------------------
# SIRI CONVERSION
# ---------------------------------------------------------------------------


def siri_fat_percent(body_density):
    """
    Converts body density to fat percent with the Siri (1961) equation.

    Args:
        body_density (float): Whole-body density in g/cm3.

    Returns:
        float: Fat percent, 495 / D - 450. Not clamped.
    """
    return SIRI_NUMERATOR / body_density - SIRI_OFFSET


def siri_density(fat_percent):
    """Inverse of siri_fat_percent: density for a given fat percent."""
    return SIRI_NUMERATOR / (fat_percent + SIRI_OFFSET)


# ---------------------------------------------------------------------------
# DENSITY EQUATIONS
# ---------------------------------------------------------------------------


def _wilmore_behnke(sex, sf, age=None, maturation=None):
    if sex == Sex.MALE:
        return 1.08543 - 0.000886 * sf[ABD] - 0.00040 * sf[THI]
    return 1.06234 - 0.00068 * sf[SUB] - 0.00039 * sf[TRI] - 0.00025 * sf[THI]


# (lower age bound, c, m) per sex; the first band also covers younger patients
DURNIN_WOMERSLEY_AGE_BANDS = {
    Sex.MALE: [(50, 1.1715, 0.0779), (40, 1.1620, 0.0700), (30, 1.1422, 0.0544),
               (20, 1.1631, 0.0632), (0, 1.1620, 0.0630)],
    Sex.FEMALE: [(50, 1.1339, 0.0645), (40, 1.1333, 0.0612), (30, 1.1423, 0.0632),
                 (20, 1.1599, 0.0717), (0, 1.1549, 0.0678)],
}

# All-ages equations used when age is unknown
DURNIN_WOMERSLEY_ALL_AGES = {Sex.MALE: (1.1765, 0.0744), Sex.FEMALE: (1.1567, 0.0717)}


def durnin_womersley_coefficients(sex, age=None):
    """Return (c, m) for D = c - m * log10(sum of 4 skinfolds)."""
    if age is None:
        return DURNIN_WOMERSLEY_ALL_AGES[sex]
    for lower, c, m in DURNIN_WOMERSLEY_AGE_BANDS[sex]:
        if age >= lower:
            return c, m
    return DURNIN_WOMERSLEY_ALL_AGES[sex]


def _durnin_womersley(sex, sf, age=None, maturation=None):
    c, m = durnin_womersley_coefficients(sex, age)
    return c - m * math.log10(sf[TRI] + sf[BIC] + sf[SUB] + sf[ILI])


def _katch_mcardle(sex, sf, age=None, maturation=None):
    if sex == Sex.MALE:
        return 1.09655 - 0.00103 * sf[TRI] - 0.00056 * sf[SUB] + 0.00054 * sf[ABD]
    return 1.09246 - 0.00049 * sf[SUB] - 0.00075 * sf[ILI]


def _withers(sex, sf, age=None, maturation=None):
    if sex == Sex.MALE:
        return 1.0988 - 0.0004 * sum(sf[s] for s in ISAK_SEVEN_SITES)
    return 1.20953 - 0.08294 * math.log10(sf[TRI] + sf[SUB] + sf[SUP] + sf[CAL])


def _sloan(sex, sf, age=None, maturation=None):
    if sex == Sex.MALE:
        return 1.1043 - 0.001327 * sf[THI] - 0.001310 * sf[SUB]
    return 1.0764 - 0.00081 * sf[ILI] - 0.00088 * sf[TRI]


def _jackson_pollock_3(sex, sf, age=None, maturation=None):
    if sex == Sex.MALE:
        s = sf[CHE] + sf[ABD] + sf[THI]
        return 1.10938 - 0.0008267 * s + 0.0000016 * s**2 - 0.0002574 * age
    s = sf[TRI] + sf[ILI] + sf[THI]
    return 1.0994921 - 0.0009929 * s + 0.0000023 * s**2 - 0.0001392 * age


def _jackson_pollock_7(sex, sf, age=None, maturation=None):
    s = sum(sf[site] for site in (CHE, MAX, TRI, SUB, ABD, ILI, THI))
    if sex == Sex.MALE:
        return 1.112 - 0.00043499 * s + 0.00000055 * s**2 - 0.00028826 * age
    return 1.097 - 0.00046971 * s + 0.00000056 * s**2 - 0.00012828 * age


# Intercepts for sums of triceps + subscapular up to 35 mm
SLAUGHTER_INTERCEPTS = {
    Sex.MALE: {
        MaturationStage.PREPUBESCENT: -1.7,
        MaturationStage.PUBESCENT: -3.4,
        MaturationStage.POSTPUBESCENT: -5.5,
    },
    Sex.FEMALE: {
        MaturationStage.PREPUBESCENT: -2.5,
        MaturationStage.PUBESCENT: -2.5,
        MaturationStage.POSTPUBESCENT: -2.5,
    },
}


def _slaughter_fat_percent(sex, sf, age=None, maturation=None):
    s = sf[TRI] + sf[SUB]
    stage = maturation or MaturationStage.PUBESCENT
    if s > 35:
        return 0.783 * s + 1.6 if sex == Sex.MALE else 0.546 * s + 9.7
    if sex == Sex.MALE:
        return 1.21 * s - 0.008 * s**2 + SLAUGHTER_INTERCEPTS[sex][stage]
    return 1.33 * s - 0.013 * s**2 + SLAUGHTER_INTERCEPTS[sex][stage]


# ---------------------------------------------------------------------------
# FORMULA CATALOG
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FormulaDescriptor:
    """Declarative description of one skinfold equation"""

    formula_id: FormulaId
    name: str
    reference: str
    required_skinfolds: Dict[Sex, Tuple[SkinfoldSite, ...]]
    age_range: Tuple[float, float]
    density: Optional[Callable] = None
    fat_percent: Optional[Callable] = None  # equations that skip density
    requires_age: bool = False
    description: str = ""

    def required_for(self, sex: Sex) -> Tuple[SkinfoldSite, ...]:
        return self.required_skinfolds[sex]


FORMULA_CATALOG = {
    FormulaId.WILMORE_BEHNKE: FormulaDescriptor(
        FormulaId.WILMORE_BEHNKE,
        "Wilmore & Behnke",
        "Wilmore & Behnke (1969, 1970)",
        {Sex.MALE: (ABD, THI), Sex.FEMALE: (SUB, TRI, THI)},
        (18, 65),
        density=_wilmore_behnke,
        description="General adult population",
    ),
    FormulaId.DURNIN_WOMERSLEY: FormulaDescriptor(
        FormulaId.DURNIN_WOMERSLEY,
        "Durnin & Womersley",
        "Durnin & Womersley (1974)",
        {Sex.MALE: (TRI, BIC, SUB, ILI), Sex.FEMALE: (TRI, BIC, SUB, ILI)},
        (17, 72),
        density=_durnin_womersley,
        description="Clinical control, wide age and adiposity range",
    ),
    FormulaId.KATCH_MCARDLE: FormulaDescriptor(
        FormulaId.KATCH_MCARDLE,
        "Katch & McArdle",
        "Katch & McArdle (1973)",
        {Sex.MALE: (TRI, SUB, ABD), Sex.FEMALE: (SUB, ILI)},
        (18, 55),
        density=_katch_mcardle,
        description="Physically active adults",
    ),
    FormulaId.WITHERS: FormulaDescriptor(
        FormulaId.WITHERS,
        "Withers",
        "Withers et al. (1987)",
        {Sex.MALE: ISAK_SEVEN_SITES, Sex.FEMALE: (TRI, SUB, SUP, CAL)},
        (16, 45),
        density=_withers,
        description="Competitive athletes",
    ),
    FormulaId.SLOAN: FormulaDescriptor(
        FormulaId.SLOAN,
        "Sloan",
        "Sloan (1967); Sloan, Burt & Blyth (1962)",
        {Sex.MALE: (THI, SUB), Sex.FEMALE: (ILI, TRI)},
        (18, 65),
        density=_sloan,
        description="Rapid two-site screening",
    ),
    FormulaId.JACKSON_POLLOCK_3: FormulaDescriptor(
        FormulaId.JACKSON_POLLOCK_3,
        "Jackson & Pollock 3-site",
        "Jackson & Pollock (1978); Jackson, Pollock & Ward (1980)",
        {Sex.MALE: (CHE, ABD, THI), Sex.FEMALE: (TRI, ILI, THI)},
        (18, 61),
        density=_jackson_pollock_3,
        requires_age=True,
        description="Generalized three-site equation",
    ),
    FormulaId.JACKSON_POLLOCK_7: FormulaDescriptor(
        FormulaId.JACKSON_POLLOCK_7,
        "Jackson & Pollock 7-site",
        "Jackson & Pollock (1978); Jackson, Pollock & Ward (1980)",
        {
            Sex.MALE: (CHE, MAX, TRI, SUB, ABD, ILI, THI),
            Sex.FEMALE: (CHE, MAX, TRI, SUB, ABD, ILI, THI),
        },
        (18, 61),
        density=_jackson_pollock_7,
        requires_age=True,
        description="Generalized seven-site equation",
    ),
    FormulaId.SLAUGHTER: FormulaDescriptor(
        FormulaId.SLAUGHTER,
        "Slaughter",
        "Slaughter et al. (1988)",
        {Sex.MALE: (TRI, SUB), Sex.FEMALE: (TRI, SUB)},
        (8, 18),
        fat_percent=_slaughter_fat_percent,
        description="Children and adolescents",
    ),
}

PROFILE_FORMULAS = {
    FormulaProfile.GENERAL: FormulaId.WILMORE_BEHNKE,
    FormulaProfile.CONTROL: FormulaId.DURNIN_WOMERSLEY,
    FormulaProfile.FITNESS: FormulaId.KATCH_MCARDLE,
    FormulaProfile.ATHLETE: FormulaId.WITHERS,
    FormulaProfile.RAPID: FormulaId.SLOAN,
}


def resolve_formula(formula):
    """Accept a FormulaId, a FormulaProfile or either's string value."""
    if isinstance(formula, FormulaId):
        return formula
    if isinstance(formula, FormulaProfile):
        return PROFILE_FORMULAS[formula]
    key = str(formula).lower()
    try:
        return PROFILE_FORMULAS[FormulaProfile(key)]
    except ValueError:
        return FormulaId(key)


def missing_skinfolds(formula, sex, skinfolds):
    """Required sites for this formula and sex that have no positive value."""
    descriptor = FORMULA_CATALOG[resolve_formula(formula)]
    return [
        site
        for site in descriptor.required_for(parse_sex(sex))
        if not skinfolds.get(site) or skinfolds[site] <= 0
    ]


def formula_catalog_table():
    """
    Summarise the catalog as a DataFrame for display.

    Returns:
        pd.DataFrame: One row per formula with its reference, validated age
            range and the skinfolds it needs for each sex.
    """
    rows = []
    for descriptor in FORMULA_CATALOG.values():
        rows.append(
            {
                "formula": descriptor.formula_id.value,
                "name": descriptor.name,
                "reference": descriptor.reference,
                "ages": f"{descriptor.age_range[0]}-{descriptor.age_range[1]}",
                "male_sites": ", ".join(sites_to_labels(descriptor.required_for(Sex.MALE))),
                "female_sites": ", ".join(
                    sites_to_labels(descriptor.required_for(Sex.FEMALE))
                ),
                "needs_age": descriptor.requires_age,
            }
        )
    return pd.DataFrame(rows)


# ---------------------------------------------------------------------------
# COMPUTATION
# ---------------------------------------------------------------------------


def _safety_flags(fat_percent, sex):
    flags = []
    if fat_percent < ESSENTIAL_FAT_PERCENT[sex.value]:
        flags.append(
            ClinicalFlag(
                AdvisorySeverity.CRITICAL,
                "BIO_RISK_FAT_LOW",
                f"Fat {fat_percent:.1f}% is below essential fat for {sex.value}s "
                f"({ESSENTIAL_FAT_PERCENT[sex.value]:.0f}%)",
            )
        )
    elif fat_percent > METABOLIC_RISK_FAT_PERCENT[sex.value]:
        flags.append(
            ClinicalFlag(
                AdvisorySeverity.WARNING,
                "METABOLIC_RISK",
                f"Fat {fat_percent:.1f}% exceeds {METABOLIC_RISK_FAT_PERCENT[sex.value]:.0f}%"
                " - verify measurements and consider an alternative method",
            )
        )
    return flags


def compute_body_composition(
    formula,
    sex,
    skinfolds,
    weight_kg,
    height_cm=None,
    age=None,
    maturation=None,
):
    """
    Computes body density, fat percent, fat mass and lean mass.

    Args:
        formula (FormulaId or FormulaProfile): Equation or clinical profile.
        sex (Sex or str): Patient sex.
        skinfolds (dict): SkinfoldSite -> value in mm.
        weight_kg (float): Body weight.
        height_cm (float): Optional; not used by any skinfold equation.
        age (float): Years. Required by Jackson-Pollock, refines Durnin-Womersley.
        maturation (MaturationStage): Pubertal stage for the Slaughter equation.

    Returns:
        BodyCompositionResult: is_valid is False, with every numeric field
            None, when required sites or fields are missing or the density is
            implausible.
    """
    formula_id = resolve_formula(formula)
    descriptor = FORMULA_CATALOG[formula_id]
    sex = parse_sex(sex)
    skinfolds = skinfolds or {}
    method = f"{descriptor.name} + Siri" if descriptor.density else descriptor.name

    missing_sites = missing_skinfolds(formula_id, sex, skinfolds)
    missing_fields = []
    if not weight_kg or weight_kg <= 0:
        missing_fields.append("Weight")
    if descriptor.requires_age and age is None:
        missing_fields.append("Age")

    if missing_sites or missing_fields:
        logger.info(
            f"{descriptor.name} not computable; missing "
            f"{sites_to_labels(missing_sites) + missing_fields}"
        )
        return BodyCompositionResult(
            formula=formula_id,
            method=method,
            is_valid=False,
            missing_skinfolds=missing_sites,
            missing_fields=sites_to_labels(missing_sites) + missing_fields,
        )

    warnings = []
    low_age, high_age = descriptor.age_range
    if age is not None and not low_age <= age <= high_age:
        warnings.append(
            f"Age {age:g} is outside the validated range of {descriptor.name} "
            f"({low_age}-{high_age})"
        )

    body_density = None
    if descriptor.density is not None:
        body_density = descriptor.density(sex, skinfolds, age, maturation)
        low, high = DENSITY_VALID_RANGE
        if not low <= body_density <= high:
            logger.warning(f"Implausible density {body_density:.4f} from {descriptor.name}")
            return BodyCompositionResult(
                formula=formula_id,
                method=method,
                is_valid=False,
                warnings=warnings
                + [f"implausible_density: {body_density:.4f} g/cm3 outside {low}-{high}"],
            )
        fat_percent = siri_fat_percent(body_density)
    else:
        fat_percent = descriptor.fat_percent(sex, skinfolds, age, maturation)

    fat_mass = weight_kg * fat_percent / 100
    logger.debug(f"{descriptor.name}: D={body_density} fat={fat_percent:.2f}%")

    return BodyCompositionResult(
        formula=formula_id,
        method=method,
        is_valid=True,
        body_density=body_density,
        fat_percent=fat_percent,
        fat_mass_kg=fat_mass,
        lean_mass_kg=weight_kg - fat_mass,
        flags=_safety_flags(fat_percent, sex),
        warnings=warnings,
    )


def compute_from_record(record, formula, maturation=None):
    """
    Run an equation against an AnthropometricRecord.

    Weight and height must both be present before any equation executes.
    """
    if record.height_cm is None or record.weight_kg is None:
        formula_id = resolve_formula(formula)
        descriptor = FORMULA_CATALOG[formula_id]
        missing = [
            label
            for label, value in (("Weight", record.weight_kg), ("Height", record.height_cm))
            if value is None
        ]
        return BodyCompositionResult(
            formula=formula_id,
            method=descriptor.name,
            is_valid=False,
            missing_skinfolds=missing_skinfolds(formula_id, record.sex, record.skinfolds),
            missing_fields=missing,
        )
    return compute_body_composition(
        formula,
        record.sex,
        record.skinfolds,
        record.weight_kg,
        height_cm=record.height_cm,
        age=record.age_years,
        maturation=maturation,
    )
