"""
Data models for growth reference calculations.

Closed enumerations for measurement type and sex, the immutable LMS sample,
the validated measurement request and the computed result.
"""

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .config import (
    BMI_MIN_AGE_MONTHS,
    DAYS_PER_MONTH,
    HEAD_CIRC_MAX_AGE_MONTHS,
    MAX_AGE_MONTHS,
    MIN_AGE_MONTHS,
    SEX_CODES,
)
from .errors import InputValidationError


class MeasurementType(str, Enum):
    """Supported anthropometric indicators."""

    WEIGHT_FOR_AGE = "weight_for_age"
    HEIGHT_FOR_AGE = "height_for_age"
    BMI_FOR_AGE = "bmi_for_age"
    HEAD_CIRCUMFERENCE_FOR_AGE = "head_circumference_for_age"

    @classmethod
    def parse(cls, value: object) -> "MeasurementType":
        """Map a measurement name onto the enumeration, or fail naming the valid set."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        valid = ", ".join(member.value for member in cls)
        raise InputValidationError(
            f"Invalid measurement type. Must be one of: {valid}"
        )


class Sex(str, Enum):
    """Sex of the child, as used to select the reference table."""

    MALE = "male"
    FEMALE = "female"

    @classmethod
    def normalize(cls, value: object) -> "Sex":
        """
        Normalize accepted spellings onto the enumeration.

        Keys on the first letter, case-insensitively: 'male', 'm', 'Male'
        and any other string starting with m/f are accepted.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            initial = value.strip()[:1].lower()
            if initial == "m":
                return cls.MALE
            if initial == "f":
                return cls.FEMALE
        raise InputValidationError("Invalid sex. Must be 'male', 'female', 'm', or 'f'")

    @classmethod
    def from_code(cls, code: int) -> "Sex":
        """Map a CDC/WHO sex code (1=male, 2=female) onto the enumeration."""
        try:
            return cls(SEX_CODES[code])
        except KeyError:
            raise ValueError(f"Unknown sex code: {code!r}") from None


class LMSParams(NamedTuple):
    """LMS sample at one reference age: Box-Cox power, median, coefficient of variation."""

    l: float  # noqa: E741
    m: float
    s: float


@dataclass(frozen=True)
class GrowthResult:
    """Z-score and percentile for a single measurement."""

    z_score: float
    percentile: float


class MeasurementRequest(BaseModel):
    """
    Validated calculator input.

    Field validators normalize measurement type and sex; the model validator
    enforces the age form, the age domain, the measurement-specific age
    windows and a strictly positive value, in that order.

    Attributes:
        measurement_type (MeasurementType): Indicator to compute.
        sex (Sex): Normalized sex.
        value (float): Measurement value in the table's units.
        age_months (Optional[float]): Age in months, exclusive with age_days.
        age_days (Optional[float]): Age in days, exclusive with age_months.
    """

    model_config = ConfigDict(frozen=True)

    measurement_type: MeasurementType
    sex: Sex
    value: float
    age_months: Optional[float] = None
    age_days: Optional[float] = None

    @field_validator("measurement_type", mode="before")
    @classmethod
    def normalize_measurement_type(cls, v: object) -> MeasurementType:
        return MeasurementType.parse(v)

    @field_validator("sex", mode="before")
    @classmethod
    def normalize_sex(cls, v: object) -> Sex:
        return Sex.normalize(v)

    @model_validator(mode="after")
    def validate_age_and_value(self) -> "MeasurementRequest":
        if self.age_months is not None and self.age_days is not None:
            raise InputValidationError(
                "Specify either age_months or age_days, not both"
            )
        if self.age_months is None and self.age_days is None:
            raise InputValidationError(
                "Either age_months or age_days must be provided"
            )

        age = self.effective_age_months
        if not MIN_AGE_MONTHS <= age <= MAX_AGE_MONTHS:
            raise InputValidationError(
                "Age must be between 0 and 240 months (0 to 7305 days)"
            )
        if (
            self.measurement_type is MeasurementType.BMI_FOR_AGE
            and age < BMI_MIN_AGE_MONTHS
        ):
            raise InputValidationError(
                "BMI is only valid for ages 24 months (730.5 days) and up"
            )
        if (
            self.measurement_type is MeasurementType.HEAD_CIRCUMFERENCE_FOR_AGE
            and age > HEAD_CIRC_MAX_AGE_MONTHS
        ):
            raise InputValidationError(
                "Head circumference is only valid for ages 0 to 24 months"
            )

        if not self.value > 0:
            raise InputValidationError("Value must be positive")
        return self

    @property
    def effective_age_months(self) -> float:
        """Fractional age in months used as the reference lookup key."""
        if self.age_months is not None:
            return float(self.age_months)
        return float(self.age_days) / DAYS_PER_MONTH
