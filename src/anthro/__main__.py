"""
Command-line z-score and percentile for a single measurement.

Example:
    python -m anthro weight_for_age --sex female --value 9.2 --age-months 12
"""

import argparse
import logging
import sys
from typing import List, Optional

from .calculator import Calculator
from .errors import InputValidationError
from .models import MeasurementType


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="anthro",
        description="Compute a growth z-score and percentile from CDC/WHO reference data.",
    )
    parser.add_argument(
        "measurement",
        choices=[member.value for member in MeasurementType],
        help="Measurement type",
    )
    parser.add_argument("--sex", required=True, help="male, female, m or f")
    parser.add_argument(
        "--value", required=True, type=float, help="Measurement value (kg, cm or kg/m²)"
    )
    age = parser.add_mutually_exclusive_group(required=True)
    age.add_argument("--age-months", type=float, help="Age in months")
    age.add_argument("--age-days", type=float, help="Age in days")
    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        calc = Calculator(
            args.measurement,
            sex=args.sex,
            value=args.value,
            age_months=args.age_months,
            age_days=args.age_days,
        )
    except InputValidationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    print(f"z_score={calc.z_score:.4f} percentile={calc.percentile:.2f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
