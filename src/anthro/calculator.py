"""
Z-score and percentile calculation for a single anthropometric measurement.

Implements the LMS method against the merged CDC/WHO reference tables:
validate the request, resolve L, M and S at the effective age (exact sample
or linear interpolation between the two nearest sampled ages), apply the LMS
transform and convert the z-score to a percentile under the standard normal
distribution.
"""

from bisect import bisect_right
from typing import Optional
import logging

from pydantic import ValidationError

from .errors import InputValidationError, ReferenceDataError
from .lms import interpolate_lms, zscore_from_lms, zscore_to_percentile
from .models import GrowthResult, LMSParams, MeasurementRequest, MeasurementType, Sex
from .reference_data import ReferenceDataStore, default_store

logger = logging.getLogger(__name__)


def _translate_validation_error(e: ValidationError) -> InputValidationError:
    """Turn a pydantic ValidationError into the package's input error."""
    first = e.errors()[0]
    original = first.get("ctx", {}).get("error")
    if isinstance(original, InputValidationError):
        return original
    field = ".".join(str(part) for part in first["loc"])
    message = f"{field}: {first['msg']}" if field else first["msg"]
    return InputValidationError(message)


class Calculator:
    """
    Single-shot z-score and percentile computation.

    The result is computed once during construction; a constructed
    Calculator always exposes both ``z_score`` and ``percentile``.

    Usage:
        calc = Calculator("weight_for_age", sex="female", value=9.2, age_months=12)
        calc.z_score, calc.percentile

    Attributes:
        measurement_type (MeasurementType): Indicator computed.
        sex (Sex): Normalized sex.
        value (float): Measurement value.
        age_months (float): Effective age in months used for the lookup.
        lms (LMSParams): Resolved LMS parameters at the effective age.
        result (GrowthResult): Z-score and percentile.
    """

    def __init__(
        self,
        measurement_type: object,
        sex: object,
        value: float,
        age_months: Optional[float] = None,
        age_days: Optional[float] = None,
        store: Optional[ReferenceDataStore] = None,
    ) -> None:
        """
        Validate the request and compute the result.

        Args:
            measurement_type: One of the four supported measurement names
            sex: 'male', 'female', 'm' or 'f' (any letter case)
            value: Measurement value (kg, cm or kg/m²)
            age_months: Age in months, exclusive with age_days
            age_days: Age in days, exclusive with age_months
            store: Reference data store (process-wide default if omitted)

        Raises:
            InputValidationError: If the request violates an input constraint
            ReferenceDataError: If the reference table does not cover the age
        """
        try:
            request = MeasurementRequest(
                measurement_type=measurement_type,
                sex=sex,
                value=value,
                age_months=age_months,
                age_days=age_days,
            )
        except ValidationError as e:
            raise _translate_validation_error(e) from e

        self._store = store if store is not None else default_store
        self.measurement_type: MeasurementType = request.measurement_type
        self.sex: Sex = request.sex
        self.value = float(request.value)
        self.age_months = request.effective_age_months

        self.lms = self.get_lms_params()
        z_score = zscore_from_lms(self.value, *self.lms)
        self.result = GrowthResult(
            z_score=z_score, percentile=zscore_to_percentile(z_score)
        )
        logger.debug(
            f"{self.measurement_type.value}/{self.sex.value} at {self.age_months:.4f} months: "
            f"value={self.value} lms={tuple(self.lms)} z={self.result.z_score:.4f}"
        )

    @property
    def z_score(self) -> float:
        return self.result.z_score

    @property
    def percentile(self) -> float:
        return self.result.percentile

    def get_lms_params(self) -> LMSParams:
        """
        LMS parameters at the effective age.

        Returns the sampled parameters unmodified on an exact age match,
        otherwise interpolates between the greatest sampled age at or below
        and the smallest sampled age above.

        Raises:
            ReferenceDataError: If no bounding samples exist for the age
        """
        data_set = self._store.sex_table(self.measurement_type, self.sex)
        key = self.age_months

        exact = data_set.get(key)
        if exact is not None:
            return exact

        ages = list(data_set.keys())
        idx = bisect_right(ages, key)
        if idx == 0 or idx == len(ages):
            raise ReferenceDataError(
                f"No LMS data available for {self.measurement_type.value}, "
                f"{self.sex.value}, {key}"
            )

        lower_age, upper_age = ages[idx - 1], ages[idx]
        return interpolate_lms(
            lower_age, data_set[lower_age], upper_age, data_set[upper_age], key
        )

    def __repr__(self) -> str:
        return (
            f"Calculator(measurement_type={self.measurement_type.value!r}, "
            f"sex={self.sex.value!r}, value={self.value}, age_months={self.age_months}, "
            f"z_score={self.z_score}, percentile={self.percentile})"
        )


def weight_for_age(
    sex: object,
    value: float,
    age_months: Optional[float] = None,
    age_days: Optional[float] = None,
    store: Optional[ReferenceDataStore] = None,
) -> Calculator:
    """Weight-for-age z-score and percentile (weight in kg, 0-240 months)."""
    return Calculator(
        MeasurementType.WEIGHT_FOR_AGE, sex, value, age_months, age_days, store
    )


def height_for_age(
    sex: object,
    value: float,
    age_months: Optional[float] = None,
    age_days: Optional[float] = None,
    store: Optional[ReferenceDataStore] = None,
) -> Calculator:
    """Length/height-for-age z-score and percentile (cm, 0-240 months)."""
    return Calculator(
        MeasurementType.HEIGHT_FOR_AGE, sex, value, age_months, age_days, store
    )


def bmi_for_age(
    sex: object,
    value: float,
    age_months: Optional[float] = None,
    age_days: Optional[float] = None,
    store: Optional[ReferenceDataStore] = None,
) -> Calculator:
    """BMI-for-age z-score and percentile (kg/m², 24-240 months)."""
    return Calculator(
        MeasurementType.BMI_FOR_AGE, sex, value, age_months, age_days, store
    )


def head_circumference_for_age(
    sex: object,
    value: float,
    age_months: Optional[float] = None,
    age_days: Optional[float] = None,
    store: Optional[ReferenceDataStore] = None,
) -> Calculator:
    """Head circumference-for-age z-score and percentile (cm, 0-24 months)."""
    return Calculator(
        MeasurementType.HEAD_CIRCUMFERENCE_FOR_AGE,
        sex,
        value,
        age_months,
        age_days,
        store,
    )
