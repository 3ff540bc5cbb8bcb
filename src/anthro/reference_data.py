"""
Growth reference data loading and caching.

The raw dataset ships as CSV tables (one per CDC/WHO source) inside the
``anthro.data`` package. ``ReferenceDataStore`` merges them into a read-only
lookup structure:

    measurement type -> sex -> age in months (ascending) -> LMSParams

The structure is built lazily on first access, shared by every calculator
that uses the store, and can be invalidated with ``reset()``.
"""

from typing import Callable, Dict, Mapping, Optional, Tuple
import functools
import logging
import threading
from importlib import resources
from types import MappingProxyType

import numpy as np
import pandas as pd

from .config import AGE_WINDOWS, REFERENCE_DATA_PACKAGE, REFERENCE_SOURCES, REQUIRED_COLUMNS
from .errors import ReferenceDataError
from .models import LMSParams, MeasurementType, Sex

logger = logging.getLogger(__name__)

# (sex_code, age_months, L, M, S)
RawRow = Tuple[int, float, float, float, float]
RawDataset = Mapping[str, Mapping[str, Tuple[RawRow, ...]]]
ReferenceTable = Mapping[MeasurementType, Mapping[Sex, Mapping[float, LMSParams]]]


def _read_source(name: str) -> Tuple[RawRow, ...]:
    """
    Read one bundled source table into raw rows.

    Raises:
        FileNotFoundError: If the CSV is not present in the package.
        ReferenceDataError: If the CSV lacks required columns or holds non-numeric data.
    """
    path = resources.files(REFERENCE_DATA_PACKAGE).joinpath(f"{name}.csv")
    try:
        with path.open("r", encoding="utf-8") as f:
            df = pd.read_csv(f)
    except FileNotFoundError:
        raise FileNotFoundError(
            f"Growth reference table '{name}.csv' not found. "
            "Ensure anthro is properly installed or run 'scripts/download_data.py' to regenerate reference data."
        ) from None

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ReferenceDataError(f"{name}: missing columns {missing}")

    try:
        values = df[REQUIRED_COLUMNS].to_numpy(dtype=np.float64)
    except ValueError as e:
        raise ReferenceDataError(f"{name}: non-numeric reference values: {e}") from e

    return tuple(
        (int(sex), float(age), float(l), float(m), float(s))
        for sex, age, l, m, s in values  # noqa: E741
    )


@functools.lru_cache(maxsize=None)
def load_raw_dataset() -> RawDataset:
    """
    Load every bundled source table, grouped by measurement type.

    The bundled files never change at runtime, so the parse is memoized.

    Returns:
        Read-only mapping of measurement type to {source name: rows}.
    """
    dataset = {}
    for measurement, sources in REFERENCE_SOURCES.items():
        dataset[measurement] = MappingProxyType(
            {source: _read_source(source) for source in sources}
        )
    return MappingProxyType(dataset)


def build_reference_table(raw: RawDataset) -> ReferenceTable:
    """
    Merge raw source rows into the nested read-only lookup structure.

    Rows from later sources replace rows from earlier sources that share the
    same (sex, age) key. Ages are stored in ascending order.

    Raises:
        ReferenceDataError: If a row has an unknown measurement type or sex code.
    """
    table = {}
    for measurement_name, sources in raw.items():
        try:
            measurement = MeasurementType(measurement_name)
        except ValueError:
            raise ReferenceDataError(
                f"Unknown measurement type in reference data: {measurement_name!r}"
            ) from None

        sex_data: Dict[Sex, Dict[float, LMSParams]] = {Sex.MALE: {}, Sex.FEMALE: {}}
        for source, rows in sources.items():
            for sex_code, month, l, m, s in rows:  # noqa: E741
                try:
                    sex = Sex.from_code(int(sex_code))
                except ValueError as e:
                    raise ReferenceDataError(f"{source}: {e}") from e
                sex_data[sex][float(month)] = LMSParams(float(l), float(m), float(s))

        table[measurement] = MappingProxyType(
            {
                sex: MappingProxyType(dict(sorted(ages.items())))
                for sex, ages in sex_data.items()
            }
        )
    return MappingProxyType(table)


def validate_reference_table(table: ReferenceTable) -> bool:
    """
    Check the structural integrity of a built reference table.

    Logs a warning for the first issue found but doesn't raise.

    Args:
        table: Built reference table

    Returns:
        True if the table passes all checks, False otherwise
    """
    if not table:
        logger.warning("Reference table is empty")
        return False

    for measurement, sex_data in table.items():
        for sex in Sex:
            ages = sex_data.get(sex)
            if not ages:
                logger.warning(f"No reference data for {measurement.value}/{sex.value}")
                return False

            samples = list(ages.values())
            if any(lms.m <= 0 or lms.s <= 0 for lms in samples):
                logger.warning(
                    f"Non-positive M or S values in {measurement.value}/{sex.value}"
                )
                return False

            window = AGE_WINDOWS.get(measurement.value)
            keys = list(ages.keys())
            if window is not None and (keys[0] > window[0] or keys[-1] < window[1]):
                logger.warning(
                    f"{measurement.value}/{sex.value} covers {keys[0]}-{keys[-1]} months, "
                    f"expected at least {window[0]}-{window[1]}"
                )
                return False

    return True


class ReferenceDataStore:
    """
    Process-wide cache of the merged reference table.

    A single lock guards both the build-if-absent path of ``get()`` and
    ``reset()``, so exactly one build runs per cache generation and no caller
    ever sees a partially built table.

    Usage:
        store = ReferenceDataStore()
        ages = store.get()[MeasurementType.WEIGHT_FOR_AGE][Sex.MALE]
    """

    def __init__(self, raw_loader: Callable[[], RawDataset] = load_raw_dataset) -> None:
        """
        Initialize an empty store.

        Args:
            raw_loader: Zero-argument callable returning the raw dataset.
        """
        self._raw_loader = raw_loader
        self._lock = threading.Lock()
        self._table: Optional[ReferenceTable] = None

    def get(self) -> ReferenceTable:
        """Return the cached reference table, building it on first call."""
        with self._lock:
            if self._table is None:
                table = build_reference_table(self._raw_loader())
                validate_reference_table(table)
                logger.debug(f"Built reference table for {len(table)} measurement types")
                self._table = table
            return self._table

    def reset(self) -> None:
        """Invalidate the cache; the next ``get()`` rebuilds from the raw dataset."""
        with self._lock:
            self._table = None
            logger.debug("Reference table cache cleared")

    def sex_table(self, measurement_type: object, sex: object) -> Mapping[float, LMSParams]:
        """
        Age-keyed LMS samples for one measurement type and sex.

        Raises:
            InputValidationError: If the measurement type or sex is not recognized.
            ReferenceDataError: If the table has no data for the pair.
        """
        measurement = MeasurementType.parse(measurement_type)
        normalized_sex = Sex.normalize(sex)
        try:
            return self.get()[measurement][normalized_sex]
        except KeyError:
            raise ReferenceDataError(
                f"No LMS data available for {measurement.value}, {normalized_sex.value}"
            ) from None


default_store = ReferenceDataStore()


def reference_data() -> ReferenceTable:
    """Reference table of the process-wide default store."""
    return default_store.get()


def clear_reference_data_cache() -> None:
    """Invalidate the process-wide default store. Intended for tests."""
    default_store.reset()
