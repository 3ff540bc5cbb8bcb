"""
Vectorized z-score and percentile computation over a DataFrame.

Applies the same validation rules and reference tables as ``Calculator`` to
many rows at once. Rows that fail a per-row rule get NaN results instead of
raising, and the number of such rows is logged.
"""

from typing import Optional
import logging

import numpy as np
import pandas as pd
from scipy import stats

from .config import AGE_WINDOWS, DAYS_PER_MONTH
from .errors import InputValidationError, ReferenceDataError
from .lms import lms_zscore
from .models import MeasurementType, Sex
from .reference_data import ReferenceDataStore, default_store

logger = logging.getLogger(__name__)

AGE_UNITS = ("months", "days")


def _normalize_sex_or_blank(value: object) -> str:
    try:
        return Sex.normalize(value).value
    except InputValidationError:
        return ""


def calculate_zscores(
    df: pd.DataFrame,
    measurement_type: object,
    value_col: str = "value",
    sex_col: str = "sex",
    age_col: str = "age_months",
    age_unit: str = "months",
    store: Optional[ReferenceDataStore] = None,
) -> pd.DataFrame:
    """
    Calculate z-scores and percentiles for every row of a DataFrame.

    Args:
        df: Input DataFrame with measurement, sex and age columns
        measurement_type: One of the four supported measurement names
        value_col: Column holding measurement values
        sex_col: Column holding sex ('male', 'female', 'm', 'f')
        age_col: Column holding ages
        age_unit: Unit of age_col, 'months' or 'days'
        store: Reference data store (process-wide default if omitted)

    Returns:
        DataFrame indexed like df with 'z_score' and 'percentile' columns.
        Rows with an invalid sex, an age outside the measurement's window,
        a missing or non-positive value are NaN.

    Raises:
        InputValidationError: If the measurement type or age unit is unknown,
            or a column does not exist
        ReferenceDataError: If the reference table does not cover a valid age
    """
    measurement = MeasurementType.parse(measurement_type)
    if age_unit not in AGE_UNITS:
        raise InputValidationError(
            f"Invalid age unit '{age_unit}'. Must be one of: {', '.join(AGE_UNITS)}"
        )
    for col in (value_col, sex_col, age_col):
        if col not in df.columns:
            raise InputValidationError(f"Column '{col}' does not exist in DataFrame")

    store = store if store is not None else default_store
    n = len(df)

    values = np.ascontiguousarray(
        pd.to_numeric(df[value_col], errors="coerce").to_numpy(dtype=np.float64)
    )
    agemos = pd.to_numeric(df[age_col], errors="coerce").to_numpy(dtype=np.float64)
    if age_unit == "days":
        agemos = agemos / DAYS_PER_MONTH
    sex = np.array([_normalize_sex_or_blank(s) for s in df[sex_col]], dtype=object)

    min_age, max_age = AGE_WINDOWS[measurement.value]
    with np.errstate(invalid="ignore"):
        valid = (
            np.isfinite(values)
            & (values > 0)
            & np.isfinite(agemos)
            & (agemos >= min_age)
            & (agemos <= max_age)
            & (sex != "")
        )

    L = np.full(n, np.nan, dtype=np.float64)
    M = np.full(n, np.nan, dtype=np.float64)
    S = np.full(n, np.nan, dtype=np.float64)

    for sex_member in Sex:
        sex_mask = valid & (sex == sex_member.value)
        if not np.any(sex_mask):
            continue

        data_set = store.sex_table(measurement, sex_member)
        ref_ages = np.fromiter(data_set.keys(), dtype=np.float64)
        ref_lms = np.array(list(data_set.values()), dtype=np.float64)

        ages_sex = agemos[sex_mask]
        if ages_sex.min() < ref_ages[0] or ages_sex.max() > ref_ages[-1]:
            raise ReferenceDataError(
                f"No LMS data available for {measurement.value}, {sex_member.value} "
                f"outside {ref_ages[0]}-{ref_ages[-1]} months"
            )

        L[sex_mask] = np.interp(ages_sex, ref_ages, ref_lms[:, 0])
        M[sex_mask] = np.interp(ages_sex, ref_ages, ref_lms[:, 1])
        S[sex_mask] = np.interp(ages_sex, ref_ages, ref_lms[:, 2])

    dropped = int(n - np.count_nonzero(valid))
    if dropped:
        logger.warning(
            f"{dropped} of {n} rows failed validation for {measurement.value} - "
            "setting z-scores to NaN for these entries"
        )

    z = lms_zscore(values, L, M, S)
    percentile = stats.norm.cdf(z) * 100

    return pd.DataFrame({"z_score": z, "percentile": percentile}, index=df.index)
