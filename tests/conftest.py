import pytest

from anthro.reference_data import ReferenceDataStore, clear_reference_data_cache


def _rows(sex_code, ages, l, m_start, m_step, s):  # noqa: E741
    return tuple(
        (sex_code, float(age), l, m_start + m_step * i, s) for i, age in enumerate(ages)
    )


@pytest.fixture
def synthetic_raw():
    """
    Small raw dataset covering every validated age window.

    Weight uses L=0 so the logarithmic branch is exercised; the other
    measurements use L != 0. Weight has two sources sharing age 24.
    """
    return {
        "weight_for_age": {
            "early": _rows(1, [0, 12, 24], 0.0, 3.0, 3.0, 0.1)
            + _rows(2, [0, 12, 24], 0.0, 2.9, 3.0, 0.1),
            "late": _rows(1, [24, 120, 240], 0.0, 12.5, 30.0, 0.15)
            + _rows(2, [24, 120, 240], 0.0, 12.0, 25.0, 0.15),
        },
        "height_for_age": {
            "all": _rows(1, [0, 60, 240], 1.0, 50.0, 30.0, 0.04)
            + _rows(2, [0, 60, 240], 1.0, 49.0, 30.0, 0.04),
        },
        "bmi_for_age": {
            "all": _rows(1, [24, 120, 240], -1.5, 16.0, 2.0, 0.1)
            + _rows(2, [24, 120, 240], -1.2, 15.5, 2.0, 0.1),
        },
        "head_circumference_for_age": {
            "all": _rows(1, [0, 12, 24], 1.0, 34.0, 6.0, 0.03)
            + _rows(2, [0, 12, 24], 1.0, 33.5, 6.0, 0.03),
        },
    }


@pytest.fixture
def synthetic_store(synthetic_raw) -> ReferenceDataStore:
    """Store built from the synthetic dataset."""
    return ReferenceDataStore(raw_loader=lambda: synthetic_raw)


@pytest.fixture
def gapped_store(synthetic_raw) -> ReferenceDataStore:
    """Store whose male weight table stops at 120 months and whose female table starts at 1 month."""
    raw = dict(synthetic_raw)
    raw["weight_for_age"] = {
        "partial": _rows(1, [0, 60, 120], 0.0, 3.0, 10.0, 0.1)
        + _rows(2, [1, 60, 240], 0.0, 4.0, 10.0, 0.1),
    }
    return ReferenceDataStore(raw_loader=lambda: raw)


@pytest.fixture
def fresh_default_store():
    """Clear the process-wide cache before and after the test."""
    clear_reference_data_cache()
    yield
    clear_reference_data_cache()
