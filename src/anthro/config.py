"""
Configuration constants for the anthro growth reference calculator.
"""

from typing import Dict, List, Tuple

# Age conversion
DAYS_PER_MONTH = 30.4375

# Validated age domain (months)
MIN_AGE_MONTHS = 0.0
MAX_AGE_MONTHS = 240.0
BMI_MIN_AGE_MONTHS = 24.0
HEAD_CIRC_MAX_AGE_MONTHS = 24.0

# Per-measurement validated age windows (inclusive)
AGE_WINDOWS: Dict[str, Tuple[float, float]] = {
    "weight_for_age": (MIN_AGE_MONTHS, MAX_AGE_MONTHS),
    "height_for_age": (MIN_AGE_MONTHS, MAX_AGE_MONTHS),
    "bmi_for_age": (BMI_MIN_AGE_MONTHS, MAX_AGE_MONTHS),
    "head_circumference_for_age": (MIN_AGE_MONTHS, HEAD_CIRC_MAX_AGE_MONTHS),
}

# Reference data location (package resources)
REFERENCE_DATA_PACKAGE = "anthro.data"

# Source tables per measurement type. Later sources override earlier ones
# when they share a (sex, age) key.
REFERENCE_SOURCES: Dict[str, List[str]] = {
    "weight_for_age": ["who_wtage", "cdc_wtage"],
    "height_for_age": ["who_lenage", "cdc_statage"],
    "bmi_for_age": ["cdc_bmiage"],
    "head_circumference_for_age": ["who_headage"],
}

# Columns every reference CSV must carry
REQUIRED_COLUMNS = ["Sex", "Agemos", "L", "M", "S"]

# Sex codes used in the CDC/WHO source tables
SEX_CODES = {1: "male", 2: "female"}
