"""
Formula Advisor

Checks whether the clinical profile chosen by the clinician suits the
patient and recommends a better one when it does not. The rules are a
declarative, ordered table so every rule can be listed and tested on its
own; the first rule whose condition holds decides the verdict.

The advisor is advisory only: it never blocks a computation.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from body_density import FORMULA_CATALOG, PROFILE_FORMULAS, missing_skinfolds
from clinical_constants import ELDERLY_AGE_YEARS
from shared_models import (
    ActivityLevel,
    AdvisorySeverity,
    FormulaProfile,
    FormulaRecommendation,
    FormulaValidation,
    PatientContext,
)

logger = logging.getLogger(__name__)

INTENSE_ACTIVITY = (ActivityLevel.INTENSE, ActivityLevel.VERY_INTENSE)
LOW_ACTIVITY = (ActivityLevel.SEDENTARY, ActivityLevel.LIGHT)

PROFILE_LABELS = {
    FormulaProfile.GENERAL: "General (Wilmore & Behnke)",
    FormulaProfile.CONTROL: "Clinical control (Durnin & Womersley)",
    FormulaProfile.FITNESS: "Fitness (Katch & McArdle)",
    FormulaProfile.ATHLETE: "Athlete (Withers, 7 skinfolds)",
    FormulaProfile.RAPID: "Rapid screening (Sloan)",
}


def profile_age_range(profile):
    """Validated age range of the equation behind a profile."""
    return FORMULA_CATALOG[PROFILE_FORMULAS[profile]].age_range


# ---------------------------------------------------------------------------
# RECOMMENDATION
# ---------------------------------------------------------------------------


def get_recommended_formula(patient):
    """
    Recommend a clinical profile from age, BMI and activity.

    Args:
        patient (PatientContext): Patient facts.

    Returns:
        FormulaRecommendation: The profile, a confidence label and the reason.
    """
    bmi = patient.bmi
    age = patient.age_years

    if patient.is_athlete or patient.activity_level in INTENSE_ACTIVITY:
        if bmi is not None and bmi >= 26:
            return FormulaRecommendation(
                FormulaProfile.FITNESS,
                "medium",
                f"High activity with BMI {bmi:.1f}: athlete equations lose accuracy",
            )
        return FormulaRecommendation(
            FormulaProfile.ATHLETE,
            "high",
            "High training load: the 7-skinfold athlete equation is most precise",
        )

    if age is not None and age >= ELDERLY_AGE_YEARS:
        return FormulaRecommendation(
            FormulaProfile.CONTROL,
            "high",
            f"Age {age:g}: Durnin & Womersley is validated up to 72 years",
        )

    if bmi is not None and bmi >= 30:
        return FormulaRecommendation(
            FormulaProfile.CONTROL,
            "high",
            f"BMI {bmi:.1f}: the log-transformed equation handles high adiposity",
        )

    if (
        patient.activity_level == ActivityLevel.MODERATE
        and bmi is not None
        and 18.5 <= bmi < 28
    ):
        return FormulaRecommendation(
            FormulaProfile.FITNESS,
            "medium",
            "Moderately active adult with normal body mass",
        )

    return FormulaRecommendation(
        FormulaProfile.GENERAL,
        "medium",
        "No specific population criteria apply",
    )


# ---------------------------------------------------------------------------
# VALIDATION RULES
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AdvisorFacts:
    """Everything a rule may look at, computed once per validation"""

    selected: FormulaProfile
    patient: PatientContext
    recommended: FormulaRecommendation
    measurements: Optional[dict]

    @property
    def bmi(self):
        return self.patient.bmi

    @property
    def age(self):
        return self.patient.age_years


@dataclass(frozen=True)
class AdvisorRule:
    """One row of the advisory rule table"""

    name: str
    condition: Callable[[AdvisorFacts], bool]
    severity: AdvisorySeverity
    recommend: Callable[[AdvisorFacts], FormulaProfile]
    message: Callable[[AdvisorFacts], str]
    suggestion: str


def _is_athlete(facts):
    return facts.patient.is_athlete or facts.patient.activity_level in INTENSE_ACTIVITY


def _age_outside_range(facts):
    if facts.age is None:
        return False
    low, high = profile_age_range(facts.selected)
    return not low <= facts.age <= high


def _missing_sites_but_alternative_ready(facts):
    if not facts.measurements:
        return False
    sex = facts.patient.sex
    selected_missing = missing_skinfolds(facts.selected, sex, facts.measurements)
    recommended_missing = missing_skinfolds(facts.recommended.profile, sex, facts.measurements)
    return (
        bool(selected_missing)
        and not recommended_missing
        and facts.recommended.profile != facts.selected
    )


def _recommended(facts):
    return facts.recommended.profile


ADVISOR_RULES = (
    AdvisorRule(
        "athlete_on_rapid",
        lambda f: _is_athlete(f) and f.selected == FormulaProfile.RAPID,
        AdvisorySeverity.CRITICAL,
        lambda f: FormulaProfile.ATHLETE,
        lambda f: "Two-site screening loses too much precision in trained athletes",
        "Measure all 7 ISAK skinfolds and use the athlete equation (Withers)",
    ),
    AdvisorRule(
        "athlete_formula_obese",
        lambda f: f.selected == FormulaProfile.ATHLETE and f.bmi is not None and f.bmi >= 30,
        AdvisorySeverity.CRITICAL,
        lambda f: FormulaProfile.CONTROL,
        lambda f: f"Athlete equation applied to BMI {f.bmi:.1f}: fat will be underestimated",
        "Use Durnin & Womersley for high adiposity",
    ),
    AdvisorRule(
        "athlete_formula_sedentary",
        lambda f: f.selected == FormulaProfile.ATHLETE
        and f.patient.activity_level in LOW_ACTIVITY
        and not f.patient.is_athlete,
        AdvisorySeverity.CRITICAL,
        _recommended,
        lambda f: "Athlete equation applied to a sedentary patient",
        "Choose the equation recommended for the patient's activity level",
    ),
    AdvisorRule(
        "older_adult_general",
        lambda f: f.selected == FormulaProfile.GENERAL
        and f.age is not None
        and f.age >= ELDERLY_AGE_YEARS,
        AdvisorySeverity.WARNING,
        lambda f: FormulaProfile.CONTROL,
        lambda f: f"General equation was derived on young adults; patient is {f.age:g}",
        "Use an age-appropriate equation such as Durnin & Womersley",
    ),
    AdvisorRule(
        "age_outside_validation",
        _age_outside_range,
        AdvisorySeverity.WARNING,
        _recommended,
        lambda f: "Age {:g} is outside the validated range {}-{}".format(
            f.age, *profile_age_range(f.selected)
        ),
        "Prefer an equation validated for the patient's age",
    ),
    AdvisorRule(
        "missing_required_sites",
        _missing_sites_but_alternative_ready,
        AdvisorySeverity.WARNING,
        _recommended,
        lambda f: "Selected equation needs skinfolds that were not measured",
        "The recommended equation can be computed from the available sites",
    ),
)


def validate_formula_match(selected_profile, patient, measurements=None):
    """
    Check a selected profile against the patient and recommend an alternative.

    Args:
        selected_profile (FormulaProfile or str): Profile chosen by the clinician.
        patient (PatientContext): Patient facts.
        measurements (dict): Optional SkinfoldSite -> mm of available skinfolds.

    Returns:
        FormulaValidation: 'optimal' (info) when the selection is the
            recommended profile, otherwise the verdict from the first matching
            rule or a generic mismatch (warning).
    """
    selected = FormulaProfile(
        selected_profile.value if isinstance(selected_profile, FormulaProfile) else selected_profile
    )
    recommendation = get_recommended_formula(patient)
    facts = AdvisorFacts(selected, patient, recommendation, measurements)

    if selected == recommendation.profile:
        return FormulaValidation(
            is_optimal=True,
            selected=selected,
            recommended=selected,
            severity=AdvisorySeverity.INFO,
            message=f"{PROFILE_LABELS[selected]} is appropriate: {recommendation.reason}",
            rule="optimal",
        )

    for rule in ADVISOR_RULES:
        if rule.condition(facts):
            recommended = rule.recommend(facts)
            logger.info(f"Formula advisory '{rule.name}' ({rule.severity.value})")
            return FormulaValidation(
                is_optimal=False,
                selected=selected,
                recommended=recommended,
                severity=rule.severity,
                message=rule.message(facts),
                suggestion=rule.suggestion,
                rule=rule.name,
            )

    return FormulaValidation(
        is_optimal=False,
        selected=selected,
        recommended=recommendation.profile,
        severity=AdvisorySeverity.WARNING,
        message=recommendation.reason,
        suggestion=f"Consider {PROFILE_LABELS[recommendation.profile]}",
        rule="profile_mismatch",
    )
