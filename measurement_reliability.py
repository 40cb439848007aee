"""
Measurement reconciliation and technical error of measurement (TEM).

Replicate readings of one anatomical site are collapsed into a single final
value, and the spread between them is scored against the ISAK reliability
bands so the clinician knows whether the site should be re-measured.
"""

import logging
import math

import numpy as np

from clinical_constants import (
    OUTLIER_DISTANCE_RATIO,
    TEM_THRESHOLDS,
    THIRD_MEASUREMENT_THRESHOLD,
)
from shared_models import (
    BreadthSite,
    GirthSite,
    InvalidMeasurementError,
    ReconciledMeasurement,
    Reliability,
    SessionReliability,
    SkinfoldSite,
    TEMResult,
)

logger = logging.getLogger(__name__)


BASIC_SITES = {"weight", "weight_kg", "height", "height_cm", "sitting_height"}

RELIABILITY_MESSAGES = {
    Reliability.EXCELLENT: "Excellent precision",
    Reliability.ACCEPTABLE: "Acceptable precision",
    Reliability.POOR: "Poor precision - repeat the measurement",
}


def site_category(site):
    """
    Map a site to its ISAK precision category.

    Args:
        site: A SkinfoldSite, GirthSite or BreadthSite, or a plain site name.
            Girth and breadth names must be prefixed ("girth_waist") when given
            as strings, since several sites share a name across categories.

    Returns:
        str: One of 'skinfold', 'girth', 'breadth' or 'basic'.
    """
    if isinstance(site, SkinfoldSite):
        return "skinfold"
    if isinstance(site, GirthSite):
        return "girth"
    if isinstance(site, BreadthSite):
        return "breadth"
    name = str(site).lower()
    if name in BASIC_SITES:
        return "basic"
    if name.startswith("girth_") or name == "head_circumference":
        return "girth"
    if name.startswith("breadth_"):
        return "breadth"
    return "skinfold"


def _site_name(site):
    return site.value if hasattr(site, "value") else str(site)


def _valid_values(values):
    """Drop unmeasured readings and reject impossible ones."""
    valid = []
    for value in values:
        if value is None:
            continue
        value = float(value)
        if not math.isfinite(value):
            raise InvalidMeasurementError(f"Non-finite reading: {value}")
        if value > 0:
            valid.append(value)
    # Sorting first makes every downstream sum independent of input order
    return sorted(valid)


def classify_tem(tem_percent, category="skinfold"):
    """
    Classify a relative TEM into the ISAK reliability bands.

    Args:
        tem_percent (float): TEM as a percentage of the mean.
        category (str): Precision category of the site.

    Returns:
        Reliability: excellent below the first bound, acceptable up to and
            including the second, poor above it.
    """
    excellent_below, acceptable_upto = TEM_THRESHOLDS[category]
    if tem_percent < excellent_below:
        return Reliability.EXCELLENT
    if tem_percent <= acceptable_upto:
        return Reliability.ACCEPTABLE
    return Reliability.POOR


def calculate_tem(values, site="triceps"):
    """
    Calculate the technical error of measurement for replicate readings.

    TEM is the population standard deviation of the replicates,
    sqrt(sum((xi - mean)^2) / n), and is also expressed relative to the mean.

    Args:
        values (list): Replicate readings; None and non-positive values are ignored.
        site: Site the readings belong to, used to pick the ISAK thresholds.

    Returns:
        TEMResult or None: None when fewer than two valid readings remain.
    """
    valid = _valid_values(values)
    if len(valid) < 2:
        return None

    category = site_category(site)
    arr = np.array(valid)
    mean = float(np.mean(arr))
    tem = float(np.sqrt(np.sum((arr - mean) ** 2) / len(arr)))
    tem_percent = tem / mean * 100
    reliability = classify_tem(tem_percent, category)
    _, acceptable_upto = TEM_THRESHOLDS[category]

    return TEMResult(
        tem=tem,
        tem_percent=tem_percent,
        mean=mean,
        reliability=reliability,
        is_reliable=tem_percent <= acceptable_upto,
        message=f"{RELIABILITY_MESSAGES[reliability]} (TEM {tem_percent:.1f}%)",
    )


def needs_third_measurement(v1, v2, site="triceps"):
    """True when two readings differ by more than the category tolerance."""
    mean = (v1 + v2) / 2
    if mean <= 0:
        return False
    threshold = THIRD_MEASUREMENT_THRESHOLD[site_category(site)]
    return abs(v1 - v2) / mean > threshold


def _find_outlier(valid):
    """Return the reading of three that sits far from the closest pair."""
    low, mid, high = valid
    gap_low, gap_high = mid - low, high - mid
    closest = min(gap_low, gap_high)
    if gap_low > OUTLIER_DISTANCE_RATIO * closest and gap_low > 0:
        return low
    if gap_high > OUTLIER_DISTANCE_RATIO * closest and gap_high > 0:
        return high
    return None


def reconcile(values, site="triceps"):
    """
    Collapse replicate readings into a final value with TEM diagnostics.

    Two readings resolve to their mean, three to their median (which discards
    a clear outlier). With fewer than two valid readings the final value is 0
    and the result is marked as insufficient data.

    Args:
        values (list): Two or three readings of one site.
        site: Site the readings belong to.

    Returns:
        ReconciledMeasurement: Final value plus reliability diagnostics.

    Raises:
        InvalidMeasurementError: If any reading is NaN or infinite.
    """
    name = _site_name(site)
    valid = _valid_values(values)
    if len(valid) > 3:
        logger.warning(
            f"{name}: {len(valid)} readings supplied, ISAK protocol takes two or three"
        )

    if len(valid) < 2:
        logger.info(f"Insufficient replicates for {name}: {len(valid)} valid")
        return ReconciledMeasurement(
            site=name,
            final_value=0.0,
            n_valid=len(valid),
            insufficient_data=True,
            message="Insufficient data: at least two readings are required",
        )

    tem_result = calculate_tem(valid, site)
    third_needed = False
    outlier = None

    if len(valid) == 2:
        final_value = (valid[0] + valid[1]) / 2
        third_needed = needs_third_measurement(valid[0], valid[1], site)
    else:
        final_value = float(np.median(valid))
        if len(valid) == 3:
            outlier = _find_outlier(valid)

    logger.debug(
        f"Reconciled {name}: final={final_value:.3f} TEM%={tem_result.tem_percent:.2f}"
    )

    return ReconciledMeasurement(
        site=name,
        final_value=final_value,
        n_valid=len(valid),
        tem=tem_result.tem,
        tem_percent=tem_result.tem_percent,
        reliability=tem_result.reliability,
        is_reliable=tem_result.is_reliable,
        message=tem_result.message,
        needs_third_measurement=third_needed,
        discarded_outlier=outlier,
    )


def calculate_overall_reliability(reconciled):
    """
    Summarise reliability across every reconciled site of a session.

    Args:
        reconciled (dict or list): ReconciledMeasurement objects.

    Returns:
        SessionReliability: Mean TEM, whether every site meets the ISAK
            acceptable band, and the worst band observed.
    """
    items = list(reconciled.values()) if isinstance(reconciled, dict) else reconciled
    scored = [r for r in items if not r.insufficient_data and r.tem is not None]

    if not scored:
        return SessionReliability(
            mean_tem=None,
            mean_tem_percent=None,
            meets_isak_standard=False,
            overall=None,
        )

    order = [Reliability.EXCELLENT, Reliability.ACCEPTABLE, Reliability.POOR]
    overall = max((r.reliability for r in scored), key=order.index)

    return SessionReliability(
        mean_tem=float(np.mean([r.tem for r in scored])),
        mean_tem_percent=float(np.mean([r.tem_percent for r in scored])),
        meets_isak_standard=all(r.is_reliable for r in scored),
        overall=overall,
        per_site={r.site: r.reliability for r in scored},
        sites_needing_third=[r.site for r in scored if r.needs_third_measurement],
    )
