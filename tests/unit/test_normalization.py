"""
Tests for input shape resolution, unit conversion and record building.
"""

import unittest

from normalization import (
    InvalidMeasurementError,
    build_record,
    convert_units,
    require_basic_data,
    to_measurement,
    validate_field,
)
from shared_models import AnthropometricRecord, GirthSite, Sex, SkinfoldSite, Unit


class TestConvertUnits(unittest.TestCase):
    def test_length(self):
        self.assertAlmostEqual(convert_units(10, "mm", "cm"), 1.0)
        self.assertAlmostEqual(convert_units(1.78, Unit.M, Unit.CM), 178.0)
        self.assertAlmostEqual(convert_units(70, "in", "cm"), 177.8)

    def test_mass(self):
        self.assertAlmostEqual(convert_units(164, "lb", "kg"), 74.389, places=3)
        self.assertAlmostEqual(convert_units(500, "g", "kg"), 0.5)

    def test_incompatible_dimensions(self):
        with self.assertRaises(ValueError):
            convert_units(10, "kg", "cm")


class TestToMeasurement(unittest.TestCase):
    """Every accepted input shape collapses to one float or None"""

    def test_number(self):
        self.assertEqual(to_measurement(12.5), 12.5)

    def test_value_object_with_unit(self):
        self.assertAlmostEqual(
            to_measurement({"value": 164, "unit": "lb"}, Unit.KG), 74.389, places=3
        )

    def test_absent_and_zero_are_not_measured(self):
        self.assertIsNone(to_measurement(None))
        self.assertIsNone(to_measurement(0))
        self.assertIsNone(to_measurement({"value": None}))
        self.assertIsNone(to_measurement([None, 0]))

    def test_replicates_are_reconciled(self):
        diagnostics = {}
        value = to_measurement([10.0, 10.6], site="triceps", diagnostics=diagnostics)
        self.assertAlmostEqual(value, 10.3)
        self.assertIn("triceps", diagnostics)
        self.assertTrue(diagnostics["triceps"].needs_third_measurement)

    def test_values_object(self):
        self.assertAlmostEqual(to_measurement({"values": [1.0, 1.2], "unit": "cm"}), 11.0)

    def test_single_replicate_is_still_a_measurement(self):
        self.assertEqual(to_measurement([9.0, None]), 9.0)

    def test_negative_or_non_finite_rejected(self):
        with self.assertRaises(InvalidMeasurementError):
            to_measurement(-3.0)
        with self.assertRaises(InvalidMeasurementError):
            to_measurement(float("nan"))
        with self.assertRaises(InvalidMeasurementError):
            to_measurement([10.0, -2.0])


class TestBuildRecord(unittest.TestCase):
    def setUp(self):
        self.data = {
            "sex": "M",
            "age_years": 30,
            "weight_kg": [74.4, 74.6],
            "height_cm": 178.0,
            "sitting_height_cm": 92.0,
            "skinfolds": {"triceps": 10.0, "suprailiac": 14.0, "biceps": 0},
            "girths": {"waist": 80.0, "unknown_site": 12.0},
            "breadths": {"humerus": 7.0},
        }

    def test_canonical_record(self):
        record = build_record(self.data)
        self.assertEqual(record.sex, Sex.MALE)
        self.assertAlmostEqual(record.weight_kg, 74.5)
        self.assertEqual(record.skinfolds[SkinfoldSite.ILIAC_CREST], 14.0)
        self.assertNotIn(SkinfoldSite.BICEPS, record.skinfolds)
        self.assertEqual(record.girths, {GirthSite.WAIST: 80.0})
        self.assertIn("weight", record.reliability)

    def test_sitting_height_not_below_height_is_rejected(self):
        self.data["sitting_height_cm"] = 180.0
        with self.assertRaises(InvalidMeasurementError):
            build_record(self.data)

    def test_sitting_height_ratio_warning(self):
        self.data["sitting_height_cm"] = 130.0
        record = build_record(self.data)
        self.assertTrue(any(w.field == "sitting height" for w in record.warnings))

    def test_isak_range_warning(self):
        self.data["skinfolds"]["triceps"] = 50.0
        record = build_record(self.data)
        issues = [w for w in record.warnings if w.field == "triceps"]
        self.assertEqual(issues[0].issue, "above_max")

    def test_sex_is_required(self):
        del self.data["sex"]
        with self.assertRaises(ValueError):
            build_record(self.data)
        self.data["sex"] = "x"
        with self.assertRaises(ValueError):
            build_record(self.data)

    def test_require_basic_data(self):
        self.data["height_cm"] = None
        record = build_record(self.data)
        self.assertEqual(require_basic_data(record), ["Height"])

    def test_ages_are_checked(self):
        with self.assertRaises(InvalidMeasurementError):
            build_record({"sex": "f", "age_months": -1})
        with self.assertRaises(InvalidMeasurementError):
            build_record({"sex": "f", "gestational_weeks": float("nan")})
        record = build_record({"sex": "f", "age_months": 30, "gestational_weeks": 39})
        self.assertEqual(record.age_months, 30.0)
        self.assertEqual(record.gestational_weeks, 39.0)


class TestRecordInvariants(unittest.TestCase):
    """Records built directly reject impossible values"""

    def test_negative_scalar_raises(self):
        with self.assertRaises(InvalidMeasurementError):
            AnthropometricRecord(sex=Sex.MALE, weight_kg=-70.0)

    def test_non_finite_site_raises(self):
        with self.assertRaises(InvalidMeasurementError):
            AnthropometricRecord(sex=Sex.MALE, skinfolds={SkinfoldSite.TRICEPS: float("nan")})
        with self.assertRaises(InvalidMeasurementError):
            AnthropometricRecord(sex=Sex.MALE, girths={GirthSite.WAIST: float("inf")})

    def test_zero_is_not_measured(self):
        record = AnthropometricRecord(
            sex=Sex.MALE, weight_kg=0, skinfolds={SkinfoldSite.TRICEPS: 0, SkinfoldSite.BICEPS: 4.0}
        )
        self.assertIsNone(record.weight_kg)
        self.assertEqual(record.skinfolds, {SkinfoldSite.BICEPS: 4.0})


class TestValidateField(unittest.TestCase):
    def test_empty_is_valid(self):
        self.assertEqual(validate_field("weight_kg", None), (True, ""))

    def test_not_a_number(self):
        self.assertEqual(validate_field("weight_kg", "abc"), (False, "Please enter a valid number"))

    def test_negative(self):
        self.assertEqual(validate_field("height_cm", -5), (False, "Value cannot be negative"))

    def test_out_of_range(self):
        is_valid, message = validate_field("weight_kg", 300)
        self.assertFalse(is_valid)
        self.assertIn("maximum", message)

    def test_unusual_but_valid(self):
        is_valid, message = validate_field("skinfold_triceps", 40)
        self.assertTrue(is_valid)
        self.assertIn("verify", message)

    def test_normal_value(self):
        self.assertEqual(validate_field("girth_waist", 80), (True, ""))


if __name__ == "__main__":
    unittest.main()
