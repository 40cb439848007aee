#!/usr/bin/env python3
"""
Kinanthropometry - Main CLI Script

Command-line entry point: loads a JSON measurement record, runs every
applicable engine and prints a plain-text report. The analysis itself lives
in the core module.
"""

import argparse
import logging
import os

from body_density import formula_catalog_table
from core import run_analysis


def main():
    """Main CLI function with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Kinanthropometric assessment from ISAK measurements",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_analysis.py                            # Use example_record.json
  python run_analysis.py patient.json               # Use a custom record
  python run_analysis.py --record patient.json      # Alternative syntax
  python run_analysis.py patient.json --compare     # Every formula side by side
  python run_analysis.py --list-formulas            # Show the formula catalog

Run with --help-record to see the expected JSON format.
        """,
    )

    parser.add_argument(
        "record_file",
        nargs="?",
        default="example_record.json",
        help="Path to JSON measurement record (default: example_record.json)",
    )
    parser.add_argument(
        "--record",
        "-r",
        dest="record_file_alt",
        help="Alternative way to specify the record path",
    )
    parser.add_argument(
        "--compare",
        "-c",
        action="store_true",
        help="Also evaluate every skinfold equation in the catalog",
    )
    parser.add_argument(
        "--list-formulas",
        action="store_true",
        help="Print the skinfold equation catalog and exit",
    )
    parser.add_argument(
        "--help-record",
        action="store_true",
        help="Show detailed help about the JSON record format",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.help_record:
        show_record_help()
        return 0

    if args.list_formulas:
        print(formula_catalog_table().to_string(index=False))
        return 0

    record_file = args.record_file_alt if args.record_file_alt else args.record_file

    if not os.path.exists(record_file):
        print(f"Error: Record file not found: {record_file}")
        print()
        print("Run with --help-record to see the expected JSON format.")
        return 1

    try:
        return run_analysis(record_path=record_file, compare=args.compare)
    except KeyboardInterrupt:
        print("\nAnalysis interrupted by user.")
        return 1


def show_record_help():
    """Show detailed help about the JSON record format."""
    help_text = """
JSON Record Format
==================

{
  "sex": "male",                       // m, f, male, female, masculino, femenino
  "age_years": 28,
  "weight_kg": 74.5,                   // or [74.4, 74.6] replicates, or {"value": 164, "unit": "lb"}
  "height_cm": 178.0,
  "sitting_height_cm": 92.0,           // optional
  "head_circumference_cm": 57.0,       // optional
  "age_months": null,                  // optional, children
  "gestational_weeks": null,           // optional, preterm infants
  "skinfolds": {"triceps": [9.8, 10.2], "subscapular": 11.0, ...},   // mm
  "girths": {"arm_flexed": 33.5, "calf": 38.0, ...},                 // cm
  "breadths": {"humerus": 7.0, "femur": 9.8, ...},                   // cm
  "options": {
    "formula": "athlete",              // profile or formula id (optional)
    "activity_level": "intense",       // sedentary, light, moderate, intense, very_intense
    "is_athlete": true,
    "maturation": "pubescent",         // children: prepubescent, pubescent, postpubescent
    "measurement_type": "standing"     // recumbent or standing
  },
  "elderly": {
    "knee_height_cm": 52.0,
    "knee_malleolus_cm": 48.0,
    "demi_span_cm": 80.0,
    "handgrip_kg": 24.0,
    "tug_seconds": 13.5
  }
}

Notes:
- A missing or zero measurement means "not measured"; it is never used as 0.
- Two or three replicate readings are reconciled and scored with the ISAK TEM.
- Site aliases such as "suprailiac" (iliac_crest) are accepted.
- Engines whose inputs are incomplete report what is missing instead of a value.
    """
    print(help_text)


if __name__ == "__main__":
    exit(main())
