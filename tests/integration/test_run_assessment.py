#!/usr/bin/env python3
"""
End-to-end tests: JSON record -> validated dict -> assessment -> report.
"""

import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

from jsonschema import ValidationError

import run_analysis as cli
from body_density import FORMULA_CATALOG
from core import (
    assess_record_dict,
    build_summary_tables,
    compare_formulas,
    format_summary,
    load_record_json,
    run_analysis,
    run_assessment,
)
from measurement_reliability import InvalidMeasurementError
from normalization import build_record
from shared_models import FormulaId, FormulaProfile, Sex

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
EXAMPLE_RECORD = os.path.join(REPO_ROOT, "example_record.json")

CHILD_RECORD = {"sex": "female", "age_months": 30, "weight_kg": 13.0, "height_cm": 92.0}

ELDERLY_RECORD = {
    "sex": "female",
    "age_years": 78,
    "skinfolds": {"triceps": 14.0, "subscapular": 12.0},
    "girths": {"calf": 29.0, "arm_relaxed": 24.0},
    "elderly": {"knee_height_cm": 48.0, "handgrip_kg": 14.0, "tug_seconds": 15.0},
}


def write_json(directory, payload, name="record.json"):
    path = os.path.join(directory, name)
    with open(path, "w") as f:
        if isinstance(payload, str):
            f.write(payload)
        else:
            json.dump(payload, f)
    return path


class TestExampleRecord(unittest.TestCase):
    def setUp(self):
        self.results = assess_record_dict(load_record_json(EXAMPLE_RECORD))

    def test_every_adult_engine_runs(self):
        results = self.results
        self.assertEqual(results.record.sex, Sex.MALE)
        self.assertTrue(results.body_composition.is_valid)
        self.assertEqual(results.body_composition.formula, FormulaId.WITHERS)
        self.assertTrue(results.formula_validation.is_optimal)
        self.assertTrue(results.somatotype.is_valid)
        self.assertTrue(results.five_component.is_valid)
        self.assertIsNotNone(results.sanity)
        self.assertIsNone(results.growth)
        self.assertIsNone(results.elderly)

    def test_replicates_are_reconciled(self):
        record = self.results.record
        self.assertAlmostEqual(record.weight_kg, 74.5)
        self.assertIsNotNone(self.results.session_reliability)

    def test_summary(self):
        tables = build_summary_tables(self.results)
        self.assertIn("Body composition", tables)
        self.assertIn("Somatotype", tables)
        self.assertEqual(len(tables["Five-component fractionation"]), 5)
        text = format_summary(self.results)
        self.assertIn("--- Somatotype ---", text)

    def test_compare_formulas(self):
        df = compare_formulas(self.results.record)
        self.assertEqual(len(df), len(FORMULA_CATALOG))
        rows = df.set_index("formula")
        self.assertFalse(rows.loc["Withers"].isna()["fat_percent"])
        # No chest or midaxillary skinfold in the example record
        self.assertTrue(rows.isna().loc["Jackson & Pollock 7-site", "fat_percent"])
        self.assertIn("Chest", rows.loc["Jackson & Pollock 7-site", "missing"])


class TestPopulationRouting(unittest.TestCase):
    def test_child_gets_growth_only(self):
        results = assess_record_dict(dict(CHILD_RECORD))
        self.assertIsNotNone(results.growth)
        self.assertIsNotNone(results.growth.bfa)
        self.assertIsNone(results.body_composition)
        self.assertFalse(results.somatotype.is_valid)
        self.assertFalse(results.five_component.is_valid)
        self.assertIsNone(results.elderly)
        self.assertIn("Growth", build_summary_tables(results))

    def test_older_adult_is_estimated_from_surrogates(self):
        results = assess_record_dict(json.loads(json.dumps(ELDERLY_RECORD)))
        elderly = results.elderly
        self.assertTrue(elderly.weight_is_estimated)
        self.assertTrue(elderly.height_is_estimated)
        self.assertAlmostEqual(elderly.weight_kg, 44.56)
        self.assertAlmostEqual(elderly.height_cm, 84.88 - 0.24 * 78 + 1.83 * 48)
        self.assertIsNotNone(elderly.functional.frailty_alert)
        self.assertIn(elderly.functional.frailty_alert, results.messages)
        self.assertIn("Missing basic data: Weight, Height", results.messages)
        self.assertFalse(results.body_composition.is_valid)

    def test_minor_defaults_to_pediatric_equation(self):
        record = build_record(
            {
                "sex": "m",
                "age_years": 12,
                "weight_kg": 40.0,
                "height_cm": 150.0,
                "skinfolds": {"triceps": 10.0, "subscapular": 8.0},
            }
        )
        results = run_assessment(record)
        self.assertEqual(results.body_composition.formula, FormulaId.SLAUGHTER)
        self.assertIsNone(results.formula_validation)
        self.assertIsNotNone(results.growth)

    def test_explicit_profile_is_validated(self):
        record = build_record(
            {
                "sex": "female",
                "age_years": 70,
                "weight_kg": 60.0,
                "height_cm": 158.0,
                "skinfolds": {"triceps": 18.0, "biceps": 8.0, "subscapular": 16.0, "iliac_crest": 15.0},
            }
        )
        results = run_assessment(record, formula=FormulaProfile.GENERAL)
        self.assertEqual(results.formula_validation.rule, "older_adult_general")
        self.assertTrue(any(m.startswith("[warning]") for m in results.messages))
        self.assertIsNotNone(results.elderly)
        self.assertFalse(results.elderly.weight_is_estimated)


class TestRecordLoading(unittest.TestCase):
    def test_schema_rejects_unknown_sex(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = write_json(tmp, {"sex": "x", "weight_kg": 70})
            with self.assertRaises(ValidationError):
                load_record_json(path)

    def test_schema_rejects_unknown_keys(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = write_json(tmp, {"sex": "m", "options": {"colour": "red"}})
            with self.assertRaises(ValidationError):
                load_record_json(path)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_record_json("does_not_exist.json")

    def test_negative_measurement(self):
        with self.assertRaises(InvalidMeasurementError):
            build_record({"sex": "m", "skinfolds": {"triceps": -1.0}})

    def test_unit_objects(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = write_json(
                tmp, {"sex": "m", "weight_kg": {"value": 165.0, "unit": "lb"}, "height_cm": 180.0}
            )
            results = assess_record_dict(load_record_json(path))
        self.assertAlmostEqual(results.record.weight_kg, 165.0 * 0.45359237, places=3)


class TestRunAnalysis(unittest.TestCase):
    def test_success(self):
        out = io.StringIO()
        with redirect_stdout(out):
            code = run_analysis(EXAMPLE_RECORD, compare=True)
        self.assertEqual(code, 0)
        self.assertIn("Formula comparison", out.getvalue())

    def test_return_results(self):
        results = run_analysis(EXAMPLE_RECORD, return_results=True)
        self.assertTrue(results.body_composition.is_valid)

    def test_errors_return_one(self):
        with tempfile.TemporaryDirectory() as tmp:
            bad_json = write_json(tmp, "{not json", "bad.json")
            invalid = write_json(tmp, {"weight_kg": 70}, "invalid.json")
            negative = write_json(tmp, {"sex": "f", "weight_kg": -3}, "negative.json")
            with redirect_stdout(io.StringIO()):
                self.assertEqual(run_analysis(bad_json), 1)
                self.assertEqual(run_analysis(invalid), 1)
                self.assertEqual(run_analysis(negative), 1)
                self.assertEqual(run_analysis(os.path.join(tmp, "missing.json")), 1)

    def test_cli_list_formulas(self):
        out = io.StringIO()
        with patch("sys.argv", ["run_analysis.py", "--list-formulas"]), redirect_stdout(out):
            self.assertEqual(cli.main(), 0)
        self.assertIn("Withers", out.getvalue())

    def test_cli_record(self):
        with patch("sys.argv", ["run_analysis.py", "--record", EXAMPLE_RECORD]), redirect_stdout(io.StringIO()):
            self.assertEqual(cli.main(), 0)

    def test_cli_missing_file(self):
        with patch("sys.argv", ["run_analysis.py", "nope.json"]), redirect_stdout(io.StringIO()):
            self.assertEqual(cli.main(), 1)


if __name__ == "__main__":
    unittest.main()
