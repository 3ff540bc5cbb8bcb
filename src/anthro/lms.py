"""
LMS Transformation Utilities

Scalar and vectorized forms of the LMS method (Cole, 1990) used to convert a
measurement into a z-score against age- and sex-specific reference curves,
together with the inverse transform and the z-score/percentile conversions.

For L != 0: z = ((X/M)^L - 1) / (L * S)
For L == 0: z = ln(X/M) / S

References:
- Cole, T.J. (1990). "The LMS method for constructing normalized growth standards."
  European Journal of Clinical Nutrition, 44(1), 45-60.
"""

import math

import numpy as np
from numba import jit
from scipy import stats

from .models import LMSParams


@jit(nopython=True, cache=True)
def lms_zscore(
    X: np.ndarray, L: np.ndarray, M: np.ndarray, S: np.ndarray
) -> np.ndarray:
    """
    Calculate LMS z-scores over 1-D arrays.

    Entries with a non-finite value or median, or a non-positive S, are NaN.
    An L of exactly zero selects the logarithmic form.

    Args:
        X: Observed values (kg, cm or kg/m²)
        L: Box-Cox power (skewness)
        M: Median at age/sex
        S: Coefficient of variation at age/sex

    Returns:
        Z-scores (0 at the median)
    """
    n = X.shape[0]
    z = np.empty(n, dtype=np.float64)
    for i in range(n):
        if not (np.isfinite(X[i]) and np.isfinite(M[i]) and S[i] > 0):
            z[i] = np.nan
        elif L[i] == 0.0:
            z[i] = np.log(X[i] / M[i]) / S[i]
        else:
            z[i] = ((X[i] / M[i]) ** L[i] - 1.0) / (L[i] * S[i])
    return z


def zscore_from_lms(value: float, l: float, m: float, s: float) -> float:  # noqa: E741
    """
    Z-score of a single value given resolved LMS parameters.

    Values far enough from the median to overflow the power step give an
    infinite z-score (percentile 0 or 100), as in ``lms_zscore``.
    """
    if l == 0:
        return math.log(value / m) / s
    with np.errstate(over="ignore"):
        ratio = float(np.power(value / m, l))
    return (ratio - 1) / (l * s)


def value_from_lms(z: float, l: float, m: float, s: float) -> float:  # noqa: E741
    """
    Measurement value at a given z-score (inverse LMS).

    Formula: M * (1 + L*S*z)^(1/L), or M * exp(S*z) when L is zero.
    """
    if l == 0:
        return m * math.exp(s * z)
    return m * (1 + l * s * z) ** (1 / l)


def zscore_to_percentile(z: float) -> float:
    """Percentile (0-100) of a z-score under the standard normal distribution."""
    return float(stats.norm.cdf(z) * 100)


def percentile_to_zscore(percentile: float) -> float:
    """Z-score at a percentile (0-100) under the standard normal distribution."""
    return float(stats.norm.ppf(percentile / 100))


def interpolate_lms(
    lower_age: float,
    lower: LMSParams,
    upper_age: float,
    upper: LMSParams,
    age: float,
) -> LMSParams:
    """Linearly interpolate L, M and S independently between two sampled ages."""
    fraction = (age - lower_age) / (upper_age - lower_age)
    return LMSParams(
        l=lower.l + (upper.l - lower.l) * fraction,
        m=lower.m + (upper.m - lower.m) * fraction,
        s=lower.s + (upper.s - lower.s) * fraction,
    )
