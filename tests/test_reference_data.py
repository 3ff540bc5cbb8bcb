"""
Tests for the reference data store: build, caching, invalidation,
thread safety and immutability of the merged LMS table.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from anthro.errors import ReferenceDataError
from anthro.models import LMSParams, MeasurementType, Sex
from anthro.reference_data import (
    ReferenceDataStore,
    _read_source,
    build_reference_table,
    clear_reference_data_cache,
    load_raw_dataset,
    reference_data,
    validate_reference_table,
)


def _to_plain(table):
    """Deep-copy a reference table into plain dicts for content comparison."""
    return {
        measurement: {sex: dict(ages) for sex, ages in sex_data.items()}
        for measurement, sex_data in table.items()
    }


def _assert_complete(table) -> None:
    assert set(table.keys()) == set(MeasurementType)
    for sex_data in table.values():
        assert set(sex_data.keys()) == {Sex.MALE, Sex.FEMALE}
        for ages in sex_data.values():
            assert len(ages) > 0


@pytest.mark.usefixtures("fresh_default_store")
class TestDefaultStore:
    """Tests against the bundled CDC/WHO tables."""

    def test_tc001_reference_data_is_cached(self):
        """Two consecutive reads return the same object."""
        assert reference_data() is reference_data()

    def test_tc002_reference_data_structure(self):
        """Every measurement has non-empty male and female tables of float ages and LMS samples."""
        data = reference_data()
        _assert_complete(data)
        for sex_data in data.values():
            for ages in sex_data.values():
                for age, lms in ages.items():
                    assert isinstance(age, float)
                    assert isinstance(lms, LMSParams)

    def test_tc003_ages_are_ascending(self):
        data = reference_data()
        for sex_data in data.values():
            for ages in sex_data.values():
                keys = list(ages.keys())
                assert keys == sorted(keys)

    def test_tc004_data_covers_validated_windows(self):
        """Weight/height start at 0, BMI starts at 24, head circumference ends at 24."""
        data = reference_data()
        for sex in Sex:
            weight_ages = list(data[MeasurementType.WEIGHT_FOR_AGE][sex].keys())
            height_ages = list(data[MeasurementType.HEIGHT_FOR_AGE][sex].keys())
            bmi_ages = list(data[MeasurementType.BMI_FOR_AGE][sex].keys())
            head_ages = list(
                data[MeasurementType.HEAD_CIRCUMFERENCE_FOR_AGE][sex].keys()
            )

            assert weight_ages[0] <= 0 and weight_ages[-1] >= 240
            assert height_ages[0] <= 0 and height_ages[-1] >= 240
            assert bmi_ages[0] >= 24 and bmi_ages[-1] >= 240
            assert head_ages[0] <= 0 and head_ages[-1] <= 24

    def test_tc005_bundled_table_passes_integrity_check(self):
        assert validate_reference_table(reference_data()) is True

    def test_tc006_known_sample(self):
        """WHO weight-for-age, boys, birth."""
        lms = reference_data()[MeasurementType.WEIGHT_FOR_AGE][Sex.MALE][0.0]
        assert lms == LMSParams(0.3487, 3.3464, 0.14602)

    def test_tc007_lookup_with_plain_strings(self):
        """Measurement and sex keys compare equal to their string values."""
        data = reference_data()
        assert data["weight_for_age"]["male"] is data[MeasurementType.WEIGHT_FOR_AGE][Sex.MALE]

    def test_tc008_clear_cache_rebuilds_new_generation(self):
        """A reset followed by a read returns a different object with equal content."""
        original = reference_data()
        clear_reference_data_cache()
        rebuilt = reference_data()

        assert rebuilt is not original
        assert _to_plain(rebuilt) == _to_plain(original)

    def test_tc009_raw_dataset_is_memoized(self):
        assert load_raw_dataset() is load_raw_dataset()

    def test_tc010_thread_safety(self):
        """All threads reading simultaneously get the same object."""
        with ThreadPoolExecutor(max_workers=10) as pool:
            ids = list(pool.map(lambda _: id(reference_data()), range(10)))
        assert len(set(ids)) == 1


class TestImmutability:
    """Any mutation at any nesting level fails."""

    def test_tc011_top_level(self, synthetic_store):
        data = synthetic_store.get()
        with pytest.raises(TypeError):
            data["new_key"] = {}
        with pytest.raises(TypeError):
            del data[MeasurementType.WEIGHT_FOR_AGE]

    def test_tc012_measurement_level(self, synthetic_store):
        weight = synthetic_store.get()[MeasurementType.WEIGHT_FOR_AGE]
        with pytest.raises(TypeError):
            weight["new_sex"] = {}
        with pytest.raises(TypeError):
            del weight[Sex.MALE]

    def test_tc013_sex_level(self, synthetic_store):
        ages = synthetic_store.get()[MeasurementType.WEIGHT_FOR_AGE][Sex.MALE]
        with pytest.raises(TypeError):
            ages[0.0] = LMSParams(1.0, 1.0, 1.0)
        with pytest.raises(TypeError):
            ages[999.0] = LMSParams(1.0, 1.0, 1.0)
        with pytest.raises(TypeError):
            del ages[0.0]

    def test_tc014_lms_level(self, synthetic_store):
        lms = synthetic_store.get()[MeasurementType.WEIGHT_FOR_AGE][Sex.MALE][0.0]
        with pytest.raises(AttributeError):
            lms.l = 1.0
        with pytest.raises(TypeError):
            lms[0] = 1.0

    def test_tc015_no_mutating_methods_exposed(self, synthetic_store):
        data = synthetic_store.get()
        assert not hasattr(data, "pop")
        assert not hasattr(data, "update")
        assert not hasattr(data[MeasurementType.BMI_FOR_AGE][Sex.FEMALE], "clear")


class TestBuild:
    """Tests for merging raw rows into the lookup structure."""

    def test_tc016_build_is_deterministic(self, synthetic_raw):
        first = build_reference_table(synthetic_raw)
        second = build_reference_table(synthetic_raw)
        assert first is not second
        assert _to_plain(first) == _to_plain(second)

    def test_tc017_later_source_overrides_shared_age(self, synthetic_store):
        """Both weight sources sample 24 months; the later one wins."""
        lms = synthetic_store.get()[MeasurementType.WEIGHT_FOR_AGE][Sex.MALE][24.0]
        assert lms == LMSParams(0.0, 12.5, 0.15)

    def test_tc018_sources_are_merged_in_age_order(self, synthetic_store):
        ages = list(synthetic_store.get()[MeasurementType.WEIGHT_FOR_AGE][Sex.MALE])
        assert ages == [0.0, 12.0, 24.0, 120.0, 240.0]

    def test_tc019_unknown_sex_code_raises(self):
        raw = {"weight_for_age": {"bad": ((3, 0.0, 0.1, 3.0, 0.1),)}}
        with pytest.raises(ReferenceDataError, match="Unknown sex code"):
            build_reference_table(raw)

    def test_tc020_unknown_measurement_raises(self):
        raw = {"arm_span_for_age": {"x": ((1, 0.0, 0.1, 3.0, 0.1),)}}
        with pytest.raises(ReferenceDataError, match="arm_span_for_age"):
            build_reference_table(raw)

    def test_tc021_missing_source_file(self):
        with pytest.raises(FileNotFoundError, match="download_data.py"):
            _read_source("does_not_exist")


class TestValidateReferenceTable:
    """Tests for the structural integrity check."""

    def test_tc022_synthetic_table_is_valid(self, synthetic_store):
        assert validate_reference_table(synthetic_store.get()) is True

    def test_tc023_empty_table(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert validate_reference_table({}) is False
        assert "empty" in caplog.text

    def test_tc024_missing_sex(self, synthetic_raw, caplog):
        synthetic_raw["bmi_for_age"] = {"all": ((1, 24.0, -1.5, 16.0, 0.1), (1, 240.0, -1.5, 20.0, 0.1))}
        table = build_reference_table(synthetic_raw)
        with caplog.at_level(logging.WARNING):
            assert validate_reference_table(table) is False
        assert "bmi_for_age/female" in caplog.text

    def test_tc025_non_positive_median(self, synthetic_raw, caplog):
        synthetic_raw["head_circumference_for_age"] = {
            "all": ((1, 0.0, 1.0, 0.0, 0.03), (1, 24.0, 1.0, 48.0, 0.03))
            + ((2, 0.0, 1.0, 33.0, 0.03), (2, 24.0, 1.0, 47.0, 0.03))
        }
        table = build_reference_table(synthetic_raw)
        with caplog.at_level(logging.WARNING):
            assert validate_reference_table(table) is False
        assert "Non-positive" in caplog.text

    def test_tc026_coverage_gap(self, gapped_store, caplog):
        with caplog.at_level(logging.WARNING):
            assert validate_reference_table(gapped_store.get()) is False
        assert "weight_for_age/male" in caplog.text


class TestStoreConcurrency:
    """Build-if-absent and reset are mutually exclusive."""

    def _counting_store(self, synthetic_raw, delay=0.0):
        builds = []

        def loader():
            builds.append(threading.get_ident())
            if delay:
                time.sleep(delay)
            return synthetic_raw

        return ReferenceDataStore(raw_loader=loader), builds

    def test_tc027_one_build_per_generation(self, synthetic_raw):
        store, builds = self._counting_store(synthetic_raw, delay=0.05)
        with ThreadPoolExecutor(max_workers=10) as pool:
            tables = list(pool.map(lambda _: store.get(), range(10)))

        assert len(builds) == 1
        assert all(table is tables[0] for table in tables)

    def test_tc028_reset_starts_new_generation(self, synthetic_raw):
        store, builds = self._counting_store(synthetic_raw)
        first = store.get()
        assert store.get() is first
        store.reset()
        second = store.get()

        assert len(builds) == 2
        assert second is not first
        assert _to_plain(second) == _to_plain(first)

    def test_tc029_concurrent_reads_and_resets(self, synthetic_raw):
        """Readers interleaved with resets never observe a partial table."""
        store, _ = self._counting_store(synthetic_raw, delay=0.001)
        errors = []

        def reader():
            try:
                for _ in range(20):
                    _assert_complete(store.get())
                    time.sleep(0.001)
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        def clearer():
            try:
                for _ in range(20):
                    store.reset()
                    time.sleep(0.001)
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=reader) for _ in range(5)]
        threads += [threading.Thread(target=clearer) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        _assert_complete(store.get())


class TestSexTable:
    def test_tc030_accepts_spellings(self, synthetic_store):
        table = synthetic_store.sex_table("bmi_for_age", "F")
        assert table is synthetic_store.get()[MeasurementType.BMI_FOR_AGE][Sex.FEMALE]

    def test_tc031_missing_measurement_raises_data_error(self, synthetic_raw):
        del synthetic_raw["bmi_for_age"]
        store = ReferenceDataStore(raw_loader=lambda: synthetic_raw)
        with pytest.raises(ReferenceDataError, match="bmi_for_age"):
            store.sex_table(MeasurementType.BMI_FOR_AGE, Sex.MALE)
