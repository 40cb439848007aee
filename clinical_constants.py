"""
Clinical constants shared by the calculation engines.

Every floor, threshold and cut-off used by more than one place lives here so
that a change to a clinical criterion is made once.

Key Citations:
- Ross & Wilson (1974): "A stratagem for proportional growth assessment"
- Kerr (1988): "An anthropometric method for fractionation of skin, adipose,
  bone, muscle and residual tissue masses in males and females age 6 to 77"
- Carter & Heath (1990): "Somatotyping: Development and Applications"
- Siri (1961): "Body composition from fluid spaces and density"
- Cruz-Jentoft et al. (2019): EWGSOP2 sarcopenia consensus
- Perini et al. (2005): "Technical error of measurement in anthropometry"
"""

# ---------------------------------------------------------------------------
# SIRI EQUATION
# ---------------------------------------------------------------------------

SIRI_NUMERATOR = 495.0
SIRI_OFFSET = 450.0

# Densities outside this window (g/cm3) indicate a measurement or input error
DENSITY_VALID_RANGE = (0.9, 1.2)

# Essential fat floor and upper plausibility limit by sex (percent)
ESSENTIAL_FAT_PERCENT = {"male": 3.0, "female": 8.0}
METABOLIC_RISK_FAT_PERCENT = {"male": 45.0, "female": 55.0}

# ---------------------------------------------------------------------------
# TECHNICAL ERROR OF MEASUREMENT (ISAK)
# ---------------------------------------------------------------------------

# (excellent upper bound, acceptable upper bound) in percent
TEM_THRESHOLDS = {
    "skinfold": (5.0, 7.5),
    "girth": (1.0, 1.5),
    "breadth": (1.0, 1.5),
    "basic": (0.5, 1.0),
}

# Relative difference between two readings that calls for a third
THIRD_MEASUREMENT_THRESHOLD = {
    "skinfold": 0.05,
    "girth": 0.01,
    "breadth": 0.01,
    "basic": 0.005,
}

# A third reading is reported as an outlier when its distance to the nearest
# reading exceeds this multiple of the closest-pair distance
OUTLIER_DISTANCE_RATIO = 2.0

# ---------------------------------------------------------------------------
# PHANTOM STRATAGEM (Ross & Wilson 1974)
# ---------------------------------------------------------------------------

PHANTOM_STATURE_CM = 170.18

# ---------------------------------------------------------------------------
# HEATH-CARTER SOMATOTYPE
# ---------------------------------------------------------------------------

SOMATOTYPE_COMPONENT_FLOOR = 0.5
ECTOMORPHY_LOW_HWR_VALUE = 0.1
HWR_UPPER_BREAKPOINT = 40.75
HWR_LOWER_BREAKPOINT = 38.25

# ---------------------------------------------------------------------------
# KERR FIVE-COMPONENT MODEL
# ---------------------------------------------------------------------------

SKIN_DENSITY = 1.05  # g/cm3
SKIN_THICKNESS_MM = {"male": 2.07, "female": 1.96}
LIPID_FRACTION_OF_ADIPOSE = 0.8
KERR_DEVIATION_WARNING_PERCENT = 5.0

ADIPOSE_PERCENT_OBESITY_WARNING = 40.0
SKINFOLD_SUM_OBESITY_WARNING = 150.0
SKINFOLD_SUM_OBESITY_NOTICE = 120.0
SKINFOLD_SUM_IMPLAUSIBLE = 250.0

SITTING_HEIGHT_RATIO_RANGE = (0.45, 0.70)
CORMIC_BRACHYCORMIC_BELOW = 51.0
CORMIC_METRIOCORMIC_UPTO = 53.0

# ---------------------------------------------------------------------------
# PEDIATRIC GROWTH
# ---------------------------------------------------------------------------

DAYS_PER_MONTH = 30.4375  # 365.25 / 12
MODERATE_Z_BOUND = 2.0
SEVERE_Z_BOUND = 3.0
PRETERM_GESTATION_WEEKS = 37.0
TERM_GESTATION_WEEKS = 40.0
PREMATURITY_CORRECTION_UNTIL_MONTHS = 24.0
LENGTH_HEIGHT_ADJUSTMENT_CM = 0.7
LMS_L_EPSILON = 1e-5

# ---------------------------------------------------------------------------
# ELDERLY / FUNCTIONAL SCREENING
# ---------------------------------------------------------------------------

ELDERLY_AGE_YEARS = 60.0
HANDGRIP_LOW_KG = {"male": 27.0, "female": 16.0}
TUG_FALL_RISK_SECONDS = 12.0
CALF_CIRCUMFERENCE_LOW_CM = 31.0

# ---------------------------------------------------------------------------
# ISAK EXPECTED RANGES (min, max, warn-above)
# ---------------------------------------------------------------------------

ISAK_RANGES = {
    "skinfolds": {
        "triceps": (3, 45, 35),
        "subscapular": (4, 50, 40),
        "biceps": (2, 25, 20),
        "iliac_crest": (3, 55, 45),
        "supraspinale": (3, 55, 45),
        "abdominal": (4, 70, 55),
        "thigh": (4, 60, 50),
        "calf": (2, 35, 28),
        "chest": (2, 50, 40),
        "midaxillary": (2, 50, 40),
    },
    "girths": {
        "arm_relaxed": (18, 55, 45),
        "arm_flexed": (20, 60, 50),
        "forearm": (18, 40, 35),
        "chest": (60, 160, 130),
        "waist": (50, 180, 130),
        "hip": (60, 180, 140),
        "thigh": (35, 90, 75),
        "calf": (25, 55, 48),
    },
    "breadths": {
        "humerus": (5.5, 12, 9),
        "femur": (8.0, 16, 13),
        "wrist": (4.5, 7.5, 6.5),
        "ankle": (6.0, 10, 8.5),
        "biacromial": (30, 60, 45),
        "biiliocristal": (22, 50, 38),
        "transverse_chest": (20, 40, 35),
        "ap_chest": (12, 30, 26),
    },
    "basic": {
        "weight_kg": (30, 250, 180),
        "height_cm": (120, 230, 210),
        "age_years": (14, 110, 100),
    },
}
