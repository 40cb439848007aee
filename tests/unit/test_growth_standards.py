"""
Tests for the WHO LMS growth engine.
"""

import os
import tempfile
import unittest

import numpy as np

from growth_standards import (
    IndicatorDomainError,
    adjust_height_measurement,
    calculate_age_in_months,
    calculate_growth_assessment,
    calculate_z_score,
    compute_zscore,
    corrected_age_months,
    generate_reference_curves,
    get_lms,
    get_median_anthropometry,
    get_value_from_zscore,
    interpret_z_score,
    load_lms_data,
    severity_from_z,
)
from shared_models import GrowthIndicator, MeasurementType, SeverityLevel, Sex


class TestLMSMath(unittest.TestCase):
    """Z-score and inverse for various L values and edge cases"""

    def test_zscore_logic(self):
        self.assertAlmostEqual(compute_zscore(10, 0.5, 8, 0.1), (np.sqrt(1.25) - 1) / 0.05, 5)
        self.assertAlmostEqual(compute_zscore(7, -0.5, 8, 0.1), ((7 / 8) ** -0.5 - 1) / -0.05, 5)
        self.assertAlmostEqual(compute_zscore(10, 0, 8, 0.1), np.log(1.25) / 0.1, 5)
        self.assertEqual(compute_zscore(8, 0.5, 8, 0.1), 0)
        self.assertTrue(np.isnan(compute_zscore(0, 0.5, 8, 0.1)))
        self.assertTrue(np.isnan(compute_zscore(-1, 0.5, 8, 0.1)))

    def test_inverse_zscore_logic(self):
        for L, M, S, z in ((0.5, 10, 0.1, 1.5), (-0.5, 10, 0.1, -1.5), (0, 10, 0.1, 1.0)):
            y = get_value_from_zscore(z, L, M, S)
            self.assertAlmostEqual(compute_zscore(y, L, M, S), z, 5)
        self.assertTrue(np.isnan(get_value_from_zscore(np.nan, 0.5, 10, 0.1)))


class TestReferenceData(unittest.TestCase):
    def test_tabulated_values(self):
        L, M, S = get_lms(GrowthIndicator.WFA, Sex.MALE, 0)
        self.assertEqual((L, M, S), (0.3487, 3.3464, 0.14602))

    def test_linear_interpolation(self):
        _, m0, _ = get_lms("lhfa", "male", 0)
        _, m1, _ = get_lms("lhfa", "male", 1)
        _, mid, _ = get_lms("lhfa", "male", 0.5)
        self.assertAlmostEqual(mid, (m0 + m1) / 2)

    def test_out_of_domain_raises(self):
        with self.assertRaises(IndicatorDomainError):
            get_lms(GrowthIndicator.BFA, Sex.MALE, 23.9)
        with self.assertRaises(IndicatorDomainError):
            get_lms(GrowthIndicator.WFA, Sex.FEMALE, 61)
        with self.assertRaises(IndicatorDomainError):
            get_lms(GrowthIndicator.WFLH, Sex.FEMALE, 44.0)

    def test_missing_table(self):
        with tempfile.TemporaryDirectory() as tmp:
            self.assertEqual(load_lms_data(GrowthIndicator.WFA, Sex.MALE, tmp), (None, None, None))
            with self.assertRaises(FileNotFoundError):
                get_lms(GrowthIndicator.WFA, Sex.MALE, 6, tmp)

    def test_custom_table(self):
        with tempfile.TemporaryDirectory() as tmp:
            with open(os.path.join(tmp, "who_hcfa_female.csv"), "w") as f:
                f.write("age,lambda,mu,sigma\n0,1,30.0,0.05\n24,1,40.0,0.05\n")
            _, M, _ = get_lms(GrowthIndicator.HCFA, Sex.FEMALE, 12, tmp)
            self.assertAlmostEqual(M, 35.0)


class TestInterpretation(unittest.TestCase):
    def test_severity_bands(self):
        self.assertEqual(severity_from_z(2.0), SeverityLevel.NORMAL)
        self.assertEqual(severity_from_z(-2.0), SeverityLevel.NORMAL)
        self.assertEqual(severity_from_z(-2.01), SeverityLevel.MODERATE_NEGATIVE)
        self.assertEqual(severity_from_z(3.0), SeverityLevel.MODERATE_POSITIVE)
        self.assertEqual(severity_from_z(-3.01), SeverityLevel.SEVERE_NEGATIVE)
        self.assertEqual(severity_from_z(3.5), SeverityLevel.SEVERE_POSITIVE)

    def test_diagnoses(self):
        self.assertEqual(interpret_z_score(-2.5, "lhfa")[0], "Stunted")
        self.assertEqual(interpret_z_score(-3.5, GrowthIndicator.WFLH)[0], "Severely wasted")
        self.assertEqual(interpret_z_score(1.5, GrowthIndicator.BFA)[0], "Risk of overweight")
        self.assertEqual(interpret_z_score(1.5, GrowthIndicator.WFA)[0], "Normal")


class TestCalculateZScore(unittest.TestCase):
    def test_median_is_fiftieth_percentile(self):
        result = calculate_z_score(3.3464, 0, Sex.MALE, GrowthIndicator.WFA)
        self.assertAlmostEqual(result.z_score, 0.0, places=9)
        self.assertAlmostEqual(result.percentile, 50.0, places=6)
        self.assertEqual(result.diagnosis, "Normal")
        self.assertFalse(result.is_implausible)

    def test_bfa_domain_boundary(self):
        self.assertIsNone(calculate_z_score(16.0, 23.9, Sex.MALE, GrowthIndicator.BFA))
        result = calculate_z_score(16.0, 24.1, Sex.MALE, GrowthIndicator.BFA)
        self.assertIsNotNone(result)
        self.assertEqual(result.indicator, GrowthIndicator.BFA)

    def test_out_of_domain_is_none(self):
        self.assertIsNone(calculate_z_score(18.0, 61, Sex.MALE, "wfa"))
        self.assertIsNone(calculate_z_score(48.0, 25, Sex.FEMALE, "hcfa"))
        self.assertIsNone(calculate_z_score(10.0, 111.0, Sex.FEMALE, "wflh"))

    def test_invalid_value_is_none(self):
        self.assertIsNone(calculate_z_score(0, 6, Sex.MALE, "wfa"))

    def test_implausible_flag(self):
        result = calculate_z_score(30.0, 0, Sex.MALE, GrowthIndicator.WFA)
        self.assertTrue(result.is_implausible)
        self.assertEqual(result.severity_level, SeverityLevel.SEVERE_POSITIVE)

    def test_percentile_scale(self):
        result = calculate_z_score(80.0, 24, Sex.MALE, GrowthIndicator.LHFA)
        self.assertTrue(0 <= result.percentile <= 100)
        self.assertLess(result.z_score, -2)


class TestAgeHandling(unittest.TestCase):
    def test_age_in_months(self):
        self.assertAlmostEqual(calculate_age_in_months("2020-01-01", "2021-01-01"), 366 / 30.4375)
        with self.assertRaises(ValueError):
            calculate_age_in_months("2021-01-01", "2020-01-01")

    def test_prematurity_correction(self):
        age, corrected = corrected_age_months(6.0, 32)
        self.assertTrue(corrected)
        self.assertAlmostEqual(age, 6.0 - 56 / 30.4375)

    def test_no_correction_for_term_or_older_children(self):
        self.assertEqual(corrected_age_months(6.0, 38), (6.0, False))
        self.assertEqual(corrected_age_months(30.0, 32), (30.0, False))
        self.assertEqual(corrected_age_months(6.0), (6.0, False))

    def test_length_height_adjustment(self):
        self.assertAlmostEqual(
            adjust_height_measurement(80.0, MeasurementType.RECUMBENT, MeasurementType.STANDING), 79.3
        )
        self.assertAlmostEqual(
            adjust_height_measurement(80.0, MeasurementType.STANDING, MeasurementType.RECUMBENT), 80.7
        )
        self.assertEqual(
            adjust_height_measurement(80.0, MeasurementType.STANDING, MeasurementType.STANDING), 80.0
        )


class TestGrowthAssessment(unittest.TestCase):
    def test_infant(self):
        assessment = calculate_growth_assessment(9.6, 75.7, 12, Sex.MALE, head_circumference_cm=46.0)
        indicators = assessment.indicators()
        self.assertEqual(
            set(indicators),
            {GrowthIndicator.WFA, GrowthIndicator.LHFA, GrowthIndicator.WFLH, GrowthIndicator.HCFA},
        )
        self.assertIsNone(assessment.bfa)
        self.assertFalse(assessment.corrected_for_prematurity)

    def test_stunted_toddler(self):
        assessment = calculate_growth_assessment(11.8, 78.0, 24, Sex.MALE)
        self.assertTrue(assessment.stunting)
        self.assertTrue(assessment.nutritional_status.startswith("Chronic"))
        self.assertIsNone(assessment.wflh)
        self.assertIsNotNone(assessment.bfa)

    def test_adolescent_only_uses_long_range_indicators(self):
        assessment = calculate_growth_assessment(50.0, 160.0, 168, Sex.FEMALE)
        self.assertIsNone(assessment.wfa)
        self.assertIsNotNone(assessment.lhfa)
        self.assertIsNotNone(assessment.bfa)

    def test_premature_infant_uses_corrected_age(self):
        assessment = calculate_growth_assessment(6.0, 62.0, 6, Sex.FEMALE, gestational_weeks=30)
        self.assertTrue(assessment.corrected_for_prematurity)
        self.assertLess(assessment.age_months_used, 6)


class TestReferenceCurves(unittest.TestCase):
    def test_curves(self):
        df = generate_reference_curves(GrowthIndicator.WFA, Sex.MALE, start=0, end=2, step=1)
        self.assertEqual(len(df), 3)
        self.assertAlmostEqual(df.loc[0, "median"], 3.3464)
        self.assertTrue((df["sd_neg2"] < df["median"]).all())
        self.assertTrue((df["sd_pos3"] > df["sd_pos2"]).all())

    def test_median_anthropometry(self):
        self.assertEqual(
            get_median_anthropometry(24, Sex.MALE), {"weight_kg": 11.8, "height_cm": 87.1}
        )
        self.assertEqual(get_median_anthropometry(300, Sex.FEMALE)["height_cm"], 162.0)


if __name__ == "__main__":
    unittest.main()
