"""
Tests for geriatric surrogate estimation and functional screening.
"""

import unittest

from elderly import (
    arm_anthropometry,
    assess_function,
    calculate_lorentz_ideal_weight,
    calculate_weight_adequacy,
    classify_arm_percentile,
    classify_geriatric_bmi,
    classify_handgrip,
    classify_timed_up_and_go,
    estimate_height_from_demispan,
    estimate_height_from_knee,
    estimate_height_from_knee_malleolus,
    estimate_weight_chumlea,
    evaluate_elderly_patient,
    mna_bmi_score,
)
from shared_models import ChumleaSurrogates, Sex


def surrogates(sex=Sex.FEMALE, **overrides):
    values = dict(
        sex=sex,
        age_years=80,
        calf_circumference_cm=29.0,
        knee_height_cm=48.0,
        arm_circumference_cm=24.0,
        subscapular_mm=12.0,
        triceps_mm=14.0,
    )
    values.update(overrides)
    return ChumleaSurrogates(**values)


class TestEstimators(unittest.TestCase):
    def test_chumlea_weight(self):
        male = ChumleaSurrogates(
            sex=Sex.MALE,
            calf_circumference_cm=35.0,
            knee_height_cm=50.0,
            arm_circumference_cm=28.0,
            subscapular_mm=15.0,
        )
        self.assertAlmostEqual(estimate_weight_chumlea(male), 64.60)
        male.sex = Sex.FEMALE
        self.assertAlmostEqual(estimate_weight_chumlea(male), 59.04)

    def test_chumlea_weight_needs_every_input(self):
        self.assertIsNone(estimate_weight_chumlea(surrogates(subscapular_mm=None)))
        self.assertIsNone(estimate_weight_chumlea(surrogates(knee_height_cm=0)))

    def test_height_from_knee(self):
        self.assertAlmostEqual(estimate_height_from_knee(50.0, 70, Sex.MALE), 162.39)
        self.assertAlmostEqual(estimate_height_from_knee(50.0, 70, Sex.FEMALE), 159.58)
        self.assertIsNone(estimate_height_from_knee(50.0, None, Sex.MALE))

    def test_height_from_knee_malleolus(self):
        self.assertAlmostEqual(estimate_height_from_knee_malleolus(48.0, 70, Sex.MALE), 165.218)

    def test_height_from_demispan(self):
        self.assertEqual(estimate_height_from_demispan(80.0), 160.0)
        self.assertIsNone(estimate_height_from_demispan(None))

    def test_lorentz(self):
        self.assertAlmostEqual(calculate_lorentz_ideal_weight(170.0, 70, Sex.MALE), 77.5)
        self.assertAlmostEqual(calculate_lorentz_ideal_weight(170.0, 70, Sex.FEMALE), 82.0)
        self.assertAlmostEqual(calculate_weight_adequacy(62.0, 77.5), 80.0)
        self.assertIsNone(calculate_weight_adequacy(None, 77.5))


class TestClassifiers(unittest.TestCase):
    def test_geriatric_bmi(self):
        self.assertEqual(classify_geriatric_bmi(22.9), "Underweight")
        self.assertEqual(classify_geriatric_bmi(23.0), "Normal")
        self.assertEqual(classify_geriatric_bmi(28.0), "Overweight")
        self.assertEqual(classify_geriatric_bmi(32.0), "Obesity")

    def test_mna_bmi_score(self):
        self.assertEqual(mna_bmi_score(18.9)[0], 0)
        self.assertEqual(mna_bmi_score(19.0)[0], 1)
        self.assertEqual(mna_bmi_score(21.0)[0], 2)
        self.assertEqual(mna_bmi_score(23.0), (3, "No risk"))

    def test_arm_anthropometry(self):
        arm = arm_anthropometry(28.0, 10.0)
        self.assertAlmostEqual(arm["amc_cm"], 24.86)
        self.assertAlmostEqual(arm["ama_cm2"] + arm["afa_cm2"], 28.0**2 / (4 * 3.141592653589793))
        self.assertIsNone(arm_anthropometry(28.0, None))

    def test_arm_percentiles(self):
        self.assertEqual(classify_arm_percentile("arm_muscle_area", 18.0, Sex.MALE), "Deficit")
        self.assertEqual(classify_arm_percentile("arm_muscle_area", 20.0, Sex.MALE), "Risk of deficit")
        self.assertEqual(classify_arm_percentile("triceps", 15.0, Sex.FEMALE), "Normal")
        self.assertEqual(classify_arm_percentile("arm_circumference", 31.0, Sex.FEMALE), "Excess")

    def test_handgrip_threshold(self):
        self.assertTrue(classify_handgrip(26.9, Sex.MALE)[0])
        self.assertFalse(classify_handgrip(27.0, Sex.MALE)[0])
        self.assertFalse(classify_handgrip(16.0, "female")[0])

    def test_timed_up_and_go_threshold(self):
        self.assertTrue(classify_timed_up_and_go(12.0)[0])
        self.assertFalse(classify_timed_up_and_go(11.9)[0])


class TestFunctionalMatrix(unittest.TestCase):
    def test_red_with_fall_risk_raises_frailty(self):
        functional = assess_function(Sex.MALE, grip_kg=20.0, tug_seconds=14.0, calf_circumference_cm=29.0)
        self.assertEqual(functional.combined_label, "Severe sarcopenia / malnutrition")
        self.assertIsNotNone(functional.frailty_alert)

    def test_orange_without_fall_risk(self):
        functional = assess_function(Sex.MALE, grip_kg=20.0, tug_seconds=9.0, calf_circumference_cm=34.0)
        self.assertEqual(functional.combined_label, "Dynapenia")
        self.assertIsNone(functional.frailty_alert)

    def test_yellow_never_raises_frailty(self):
        functional = assess_function(Sex.FEMALE, grip_kg=20.0, tug_seconds=15.0, calf_circumference_cm=29.0)
        self.assertEqual(functional.combined_label, "Pre-sarcopenia risk")
        self.assertIsNone(functional.frailty_alert)

    def test_preserved(self):
        functional = assess_function(Sex.FEMALE, grip_kg=22.0, calf_circumference_cm=33.0)
        self.assertEqual(functional.combined_label, "Preserved")
        self.assertIsNone(functional.fall_risk)

    def test_matrix_needs_grip_and_calf(self):
        functional = assess_function(Sex.MALE, grip_kg=20.0, tug_seconds=14.0)
        self.assertTrue(functional.handgrip_low)
        self.assertIsNone(functional.combined_label)
        self.assertIsNone(functional.frailty_alert)


class TestEvaluateElderlyPatient(unittest.TestCase):
    def test_bedridden_patient_uses_estimates(self):
        assessment = evaluate_elderly_patient(surrogates(), grip_kg=14.0, tug_seconds=15.0)
        self.assertTrue(assessment.weight_is_estimated)
        self.assertTrue(assessment.height_is_estimated)
        self.assertAlmostEqual(assessment.weight_kg, 44.56)
        self.assertAlmostEqual(assessment.height_cm, 153.52)
        self.assertEqual(assessment.bmi_classification, "Underweight")
        self.assertEqual(assessment.mna_bmi_score, 0)
        self.assertIn("ideal_weight_lorentz_kg", assessment.estimates)
        self.assertEqual(assessment.functional.combined_label, "Severe sarcopenia / malnutrition")
        self.assertIn(assessment.functional.frailty_alert, assessment.alerts)
        self.assertTrue(any(a.startswith("Nutritional alert") for a in assessment.alerts))

    def test_measured_values_take_precedence(self):
        assessment = evaluate_elderly_patient(surrogates(), weight_kg=60.0, height_cm=158.0)
        self.assertFalse(assessment.weight_is_estimated)
        self.assertFalse(assessment.height_is_estimated)
        self.assertEqual(assessment.weight_kg, 60.0)
        self.assertIn("weight_chumlea_kg", assessment.estimates)

    def test_height_falls_back_to_demispan(self):
        assessment = evaluate_elderly_patient(surrogates(knee_height_cm=None, demi_span_cm=78.0))
        self.assertEqual(assessment.height_cm, 156.0)
        self.assertIsNone(assessment.weight_kg)
        self.assertIsNone(assessment.bmi)

    def test_nothing_measured(self):
        assessment = evaluate_elderly_patient(ChumleaSurrogates(sex=Sex.MALE, age_years=75))
        self.assertIsNone(assessment.weight_kg)
        self.assertIsNone(assessment.height_cm)
        self.assertEqual(assessment.alerts, [])


if __name__ == "__main__":
    unittest.main()
