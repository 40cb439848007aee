"""
Shared Data Models for the Kinanthropometry Engine

This module contains all shared dataclasses and enums used throughout the
engine: measurement reconciliation, the density formula library, the
somatotype and five-component engines, pediatric growth and the elderly
estimators.

Unified data models provide:
- Type safety and validation
- Consistent data structures across modules
- Missing measurements represented as absent values, never as zero
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class InvalidMeasurementError(ValueError):
    """Raised for measurements that cannot be real (negative or non-finite)"""

    pass


# ============================================================================
# ENUMS
# ============================================================================


class Sex(Enum):
    """Biological sex used to select sex-specific equations"""

    MALE = "male"
    FEMALE = "female"


class SkinfoldSite(Enum):
    """ISAK skinfold sites (mm)"""

    TRICEPS = "triceps"
    SUBSCAPULAR = "subscapular"
    BICEPS = "biceps"
    ILIAC_CREST = "iliac_crest"
    SUPRASPINALE = "supraspinale"
    ABDOMINAL = "abdominal"
    THIGH = "thigh"
    CALF = "calf"
    # Only used by the Jackson-Pollock equations
    CHEST = "chest"
    MIDAXILLARY = "midaxillary"


class GirthSite(Enum):
    """ISAK girth sites (cm)"""

    ARM_RELAXED = "arm_relaxed"
    ARM_FLEXED = "arm_flexed"
    FOREARM = "forearm"
    CHEST = "chest"
    WAIST = "waist"
    HIP = "hip"
    THIGH = "thigh"
    CALF = "calf"


class BreadthSite(Enum):
    """ISAK bone breadth sites (cm)"""

    HUMERUS = "humerus"
    FEMUR = "femur"
    WRIST = "wrist"
    ANKLE = "ankle"
    BIACROMIAL = "biacromial"
    BIILIOCRISTAL = "biiliocristal"
    TRANSVERSE_CHEST = "transverse_chest"
    AP_CHEST = "ap_chest"


class Unit(Enum):
    """Measurement units accepted at the normalization boundary"""

    MM = "mm"
    CM = "cm"
    M = "m"
    KG = "kg"
    G = "g"
    LB = "lb"
    IN = "in"


class Reliability(Enum):
    """ISAK technical error of measurement bands"""

    EXCELLENT = "excellent"
    ACCEPTABLE = "acceptable"
    POOR = "poor"


class FormulaProfile(Enum):
    """Clinical profiles, each mapped to a default density equation"""

    GENERAL = "general"
    CONTROL = "control"
    FITNESS = "fitness"
    ATHLETE = "athlete"
    RAPID = "rapid"


class FormulaId(Enum):
    """Concrete body density / fat percent equations"""

    WILMORE_BEHNKE = "wilmore_behnke"
    DURNIN_WOMERSLEY = "durnin_womersley"
    KATCH_MCARDLE = "katch_mcardle"
    WITHERS = "withers"
    SLOAN = "sloan"
    JACKSON_POLLOCK_3 = "jackson_pollock_3"
    JACKSON_POLLOCK_7 = "jackson_pollock_7"
    SLAUGHTER = "slaughter"


class ActivityLevel(Enum):
    """Self-reported physical activity"""

    SEDENTARY = "sedentary"
    LIGHT = "light"
    MODERATE = "moderate"
    INTENSE = "intense"
    VERY_INTENSE = "very_intense"


class AdvisorySeverity(Enum):
    """Severity of a formula advisory or clinical flag"""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class MaturationStage(Enum):
    """Pubertal maturation used by the Slaughter pediatric equations"""

    PREPUBESCENT = "prepubescent"
    PUBESCENT = "pubescent"
    POSTPUBESCENT = "postpubescent"


class GrowthIndicator(Enum):
    """WHO growth indicators"""

    WFA = "wfa"  # Weight-for-age
    LHFA = "lhfa"  # Length/height-for-age
    WFLH = "wflh"  # Weight-for-length/height
    BFA = "bfa"  # BMI-for-age
    HCFA = "hcfa"  # Head circumference-for-age


class SeverityLevel(Enum):
    """Z-score severity bands"""

    SEVERE_NEGATIVE = "severe_negative"
    MODERATE_NEGATIVE = "moderate_negative"
    NORMAL = "normal"
    MODERATE_POSITIVE = "moderate_positive"
    SEVERE_POSITIVE = "severe_positive"


class MeasurementType(Enum):
    """Length (lying) or height (standing) measurement position"""

    RECUMBENT = "recumbent"
    STANDING = "standing"


# ============================================================================
# MEASUREMENT RECONCILIATION
# ============================================================================


@dataclass
class TEMResult:
    """Technical error of measurement for a set of replicates"""

    tem: float
    tem_percent: float  # TEM relative to the mean, in percent
    mean: float
    reliability: Reliability
    is_reliable: bool
    message: str


@dataclass
class ReconciledMeasurement:
    """Final value derived from replicates plus its reliability diagnostics"""

    site: str
    final_value: float
    n_valid: int
    tem: Optional[float] = None
    tem_percent: Optional[float] = None
    reliability: Optional[Reliability] = None
    is_reliable: bool = False
    message: str = ""
    needs_third_measurement: bool = False
    insufficient_data: bool = False
    discarded_outlier: Optional[float] = None


@dataclass
class SessionReliability:
    """Summary of TEM across every reconciled site in a session"""

    mean_tem: Optional[float]
    mean_tem_percent: Optional[float]
    meets_isak_standard: bool
    overall: Optional[Reliability]
    per_site: Dict[str, Reliability] = field(default_factory=dict)
    sites_needing_third: List[str] = field(default_factory=list)


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================


@dataclass
class ValidationIssue:
    """A single plausibility or consistency finding on an input"""

    field: str
    value: Optional[float]
    issue: str  # below_min, above_max, warning, anatomically_impossible
    message: str


@dataclass
class ClinicalFlag:
    """A clinical safety flag attached to a result"""

    level: AdvisorySeverity
    code: str
    message: str


@dataclass
class AnthropometricRecord:
    """Canonical measurement record for one patient and one session"""

    sex: Sex
    weight_kg: Optional[float] = None
    height_cm: Optional[float] = None
    age_years: Optional[float] = None
    skinfolds: Dict[SkinfoldSite, float] = field(default_factory=dict)  # mm
    girths: Dict[GirthSite, float] = field(default_factory=dict)  # cm
    breadths: Dict[BreadthSite, float] = field(default_factory=dict)  # cm
    head_circumference_cm: Optional[float] = None
    sitting_height_cm: Optional[float] = None

    # Pediatric context
    age_months: Optional[float] = None
    gestational_weeks: Optional[float] = None

    # Diagnostics gathered while normalizing
    reliability: Dict[str, ReconciledMeasurement] = field(default_factory=dict)
    warnings: List[ValidationIssue] = field(default_factory=list)

    def __post_init__(self):
        """
        Drop zero measurements so absence is never read as zero.

        Raises:
            InvalidMeasurementError: For negative or non-finite measurements.
        """
        self.skinfolds = _measured_sites(self.skinfolds)
        self.girths = _measured_sites(self.girths)
        self.breadths = _measured_sites(self.breadths)
        for name in (
            "weight_kg",
            "height_cm",
            "head_circumference_cm",
            "sitting_height_cm",
        ):
            if not _present(getattr(self, name), name):
                setattr(self, name, None)

    @property
    def bmi(self) -> Optional[float]:
        if self.weight_kg is None or self.height_cm is None:
            return None
        return self.weight_kg / (self.height_cm / 100) ** 2

    def skinfold_sum(self, sites) -> Optional[float]:
        """Sum of the given skinfold sites, or None if any is missing."""
        if any(site not in self.skinfolds for site in sites):
            return None
        return sum(self.skinfolds[site] for site in sites)


@dataclass
class BodyCompositionResult:
    """Output of a single density / fat percent equation"""

    formula: FormulaId
    method: str
    is_valid: bool
    body_density: Optional[float] = None  # g/cm3
    fat_percent: Optional[float] = None
    fat_mass_kg: Optional[float] = None
    lean_mass_kg: Optional[float] = None
    missing_skinfolds: List[SkinfoldSite] = field(default_factory=list)
    missing_fields: List[str] = field(default_factory=list)
    flags: List[ClinicalFlag] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def rounded(self) -> dict:
        """Display copy: density to 5 decimals, everything else to 1."""
        return {
            "formula": self.formula.value,
            "method": self.method,
            "is_valid": self.is_valid,
            "body_density": _round(self.body_density, 5),
            "fat_percent": _round(self.fat_percent, 1),
            "fat_mass_kg": _round(self.fat_mass_kg, 1),
            "lean_mass_kg": _round(self.lean_mass_kg, 1),
        }


@dataclass
class PatientContext:
    """Patient facts used by the formula advisor"""

    sex: Sex
    age_years: Optional[float] = None
    weight_kg: Optional[float] = None
    height_cm: Optional[float] = None
    activity_level: ActivityLevel = ActivityLevel.MODERATE
    is_athlete: bool = False

    @property
    def bmi(self) -> Optional[float]:
        if not self.weight_kg or not self.height_cm:
            return None
        return self.weight_kg / (self.height_cm / 100) ** 2


@dataclass
class FormulaRecommendation:
    """Profile recommended for a patient and the reasoning behind it"""

    profile: FormulaProfile
    confidence: str  # high, medium, low
    reason: str


@dataclass
class FormulaValidation:
    """Advisory verdict on a clinician's formula selection"""

    is_optimal: bool
    selected: FormulaProfile
    recommended: FormulaProfile
    severity: AdvisorySeverity
    message: str
    suggestion: Optional[str] = None
    rule: Optional[str] = None


@dataclass
class SomatotypeResult:
    """Heath-Carter anthropometric somatotype"""

    is_valid: bool
    endomorphy: Optional[float] = None
    mesomorphy: Optional[float] = None
    ectomorphy: Optional[float] = None
    x: Optional[float] = None  # somatochart abscissa
    y: Optional[float] = None  # somatochart ordinate
    hwr: Optional[float] = None  # height-weight ratio
    classification: Optional[str] = None
    missing_fields: List[str] = field(default_factory=list)

    def rounded(self) -> dict:
        return {
            "endomorphy": _round(self.endomorphy, 1),
            "mesomorphy": _round(self.mesomorphy, 1),
            "ectomorphy": _round(self.ectomorphy, 1),
            "x": _round(self.x, 1),
            "y": _round(self.y, 1),
            "classification": self.classification,
        }


@dataclass
class MassComponent:
    """A fractional mass in kg and as a percentage of body weight"""

    kg: float
    percent: float


@dataclass
class ObesityWarning:
    """Raised when adiposity limits the accuracy of caliper methods"""

    skinfold_sum: float
    adipose_percent: Optional[float]
    message: str
    alternative_methods: List[str] = field(default_factory=list)


@dataclass
class FiveComponentResult:
    """Kerr five-component fractionation"""

    is_valid: bool
    skin: Optional[MassComponent] = None
    adipose: Optional[MassComponent] = None
    muscle: Optional[MassComponent] = None
    bone: Optional[MassComponent] = None
    residual: Optional[MassComponent] = None
    body_density: Optional[float] = None
    adipose_percent: Optional[float] = None
    lipid_fat_percent: Optional[float] = None
    z_scores: Dict[str, float] = field(default_factory=dict)
    scale_factor: Optional[float] = None
    cormic_index: Optional[float] = None
    cormic_interpretation: Optional[str] = None
    obesity_warning: Optional[ObesityWarning] = None
    missing_data: List[str] = field(default_factory=list)
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    flags: List[ClinicalFlag] = field(default_factory=list)

    @property
    def components(self) -> Dict[str, MassComponent]:
        if not self.is_valid:
            return {}
        return {
            "skin": self.skin,
            "adipose": self.adipose,
            "muscle": self.muscle,
            "bone": self.bone,
            "residual": self.residual,
        }

    @property
    def total_kg(self) -> Optional[float]:
        if not self.is_valid:
            return None
        return sum(c.kg for c in self.components.values())


@dataclass
class SanityCheckResult:
    """Cross-checks of a fractionation against physiological limits"""

    is_valid: bool
    confidence_score: int  # 0-100
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class ZScoreResult:
    """WHO LMS z-score for one growth indicator"""

    indicator: GrowthIndicator
    z_score: float
    percentile: float  # 0-100 scale
    diagnosis: str
    severity_level: SeverityLevel
    is_implausible: bool = False


@dataclass
class GrowthAssessment:
    """All applicable growth indicators for one pediatric visit"""

    age_months_used: float
    corrected_for_prematurity: bool
    nutritional_status: str
    stunting: bool
    wasting: bool
    overweight: bool
    wfa: Optional[ZScoreResult] = None
    lhfa: Optional[ZScoreResult] = None
    wflh: Optional[ZScoreResult] = None
    bfa: Optional[ZScoreResult] = None
    hcfa: Optional[ZScoreResult] = None

    def indicators(self) -> Dict[GrowthIndicator, ZScoreResult]:
        results = {
            GrowthIndicator.WFA: self.wfa,
            GrowthIndicator.LHFA: self.lhfa,
            GrowthIndicator.WFLH: self.wflh,
            GrowthIndicator.BFA: self.bfa,
            GrowthIndicator.HCFA: self.hcfa,
        }
        return {k: v for k, v in results.items() if v is not None}


@dataclass
class ChumleaSurrogates:
    """Surrogate measurements for patients who cannot stand or be weighed"""

    sex: Sex
    age_years: Optional[float] = None
    calf_circumference_cm: Optional[float] = None
    knee_height_cm: Optional[float] = None
    arm_circumference_cm: Optional[float] = None
    subscapular_mm: Optional[float] = None
    triceps_mm: Optional[float] = None
    knee_malleolus_cm: Optional[float] = None
    demi_span_cm: Optional[float] = None  # sternal notch to finger roots


@dataclass
class FunctionalAssessment:
    """Handgrip, mobility and muscle reserve screening"""

    handgrip_low: Optional[bool] = None
    handgrip_message: Optional[str] = None
    fall_risk: Optional[bool] = None
    tug_message: Optional[str] = None
    low_calf_reserve: Optional[bool] = None
    combined_label: Optional[str] = None
    combined_explanation: Optional[str] = None
    frailty_alert: Optional[str] = None


@dataclass
class ElderlyAssessment:
    """Geriatric anthropometric and functional evaluation"""

    weight_kg: Optional[float]
    height_cm: Optional[float]
    weight_is_estimated: bool
    height_is_estimated: bool
    bmi: Optional[float] = None
    bmi_classification: Optional[str] = None
    mna_bmi_score: Optional[int] = None
    estimates: Dict[str, float] = field(default_factory=dict)
    arm_muscle_circumference_cm: Optional[float] = None
    arm_muscle_area_cm2: Optional[float] = None
    arm_fat_area_cm2: Optional[float] = None
    functional: FunctionalAssessment = field(default_factory=FunctionalAssessment)
    alerts: List[str] = field(default_factory=list)


@dataclass
class AssessmentResults:
    """Everything computed for one record by the orchestrator"""

    record: AnthropometricRecord
    body_composition: Optional[BodyCompositionResult] = None
    formula_validation: Optional[FormulaValidation] = None
    somatotype: Optional[SomatotypeResult] = None
    five_component: Optional[FiveComponentResult] = None
    sanity: Optional[SanityCheckResult] = None
    growth: Optional[GrowthAssessment] = None
    elderly: Optional[ElderlyAssessment] = None
    session_reliability: Optional[SessionReliability] = None
    messages: List[str] = field(default_factory=list)


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def _present(value, name: str = "measurement") -> bool:
    """False for an absent (None or zero) measurement; raises on impossible ones."""
    if value is None:
        return False
    if not math.isfinite(value):
        raise InvalidMeasurementError(f"{name}: non-finite value {value}")
    if value < 0:
        raise InvalidMeasurementError(f"{name}: negative value {value}")
    return value > 0


def _measured_sites(sites: Dict) -> Dict:
    return {k: v for k, v in sites.items() if _present(v, getattr(k, "value", str(k)))}


def _round(value: Optional[float], digits: int) -> Optional[float]:
    return None if value is None else round(value, digits)


def parse_sex(sex_str: str) -> Sex:
    """
    Converts a user-supplied sex string to the Sex enum.

    Args:
        sex_str (str): m, f, male, female, masculino or femenino (case insensitive)

    Returns:
        Sex: The parsed value

    Raises:
        ValueError: If the string is not recognized
    """
    if isinstance(sex_str, Sex):
        return sex_str
    sex_lower = str(sex_str).strip().lower()
    if sex_lower in ["m", "male", "masculino"]:
        return Sex.MALE
    elif sex_lower in ["f", "female", "femenino"]:
        return Sex.FEMALE
    raise ValueError(
        f"Unrecognized sex: {sex_str}. Use 'm', 'f', 'male', or 'female'."
    )


def sites_to_labels(sites: Tuple) -> List[str]:
    """Human-readable labels for a sequence of site enums"""
    return [site.value.replace("_", " ").title() for site in sites]
