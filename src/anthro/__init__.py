"""
anthro: pediatric growth z-scores and percentiles from CDC/WHO LMS reference tables.
"""

from .batch import calculate_zscores
from .calculator import (
    Calculator,
    bmi_for_age,
    head_circumference_for_age,
    height_for_age,
    weight_for_age,
)
from .errors import AnthroError, InputValidationError, ReferenceDataError
from .models import GrowthResult, LMSParams, MeasurementType, Sex
from .reference_data import (
    ReferenceDataStore,
    clear_reference_data_cache,
    default_store,
    reference_data,
)

__version__ = "0.1.0"

__all__ = [
    "AnthroError",
    "Calculator",
    "GrowthResult",
    "InputValidationError",
    "LMSParams",
    "MeasurementType",
    "ReferenceDataError",
    "ReferenceDataStore",
    "Sex",
    "bmi_for_age",
    "calculate_zscores",
    "clear_reference_data_cache",
    "default_store",
    "head_circumference_for_age",
    "height_for_age",
    "reference_data",
    "weight_for_age",
]
