#!/usr/bin/env python3
"""
Download CDC/WHO growth reference data and write the bundled LMS tables.

This script downloads LMS growth reference data from CDC and WHO sources,
normalizes every table to the columns ``Sex,Agemos,L,M,S`` (Sex: 1=male,
2=female) and writes one CSV per source into ``src/anthro/data``.

WHO data covers weight and length from birth to <24 months and head
circumference from birth to 24 months. CDC data covers weight, stature and
BMI from 24 months to 240 months. Where a CDC table is sampled at half
months, the sample just beyond each end of the window is kept so that the
whole window can be interpolated.
"""

import argparse
import hashlib
import io
import logging
from pathlib import Path
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from tqdm import tqdm
from urllib3.util.retry import Retry

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

OUTPUT_COLUMNS = ["Sex", "Agemos", "L", "M", "S"]

CDC_MIN_AGE_MONTHS = 24.0
CDC_MAX_AGE_MONTHS = 240.0
WHO_MAX_AGE_MONTHS = 24.0

# Data sources with URLs
DATA_SOURCES: Dict[str, List[Tuple[str, str]]] = {
    "cdc": [
        ("cdc_wtage", "https://www.cdc.gov/growthcharts/data/zscore/wtage.csv"),
        ("cdc_statage", "https://www.cdc.gov/growthcharts/data/zscore/statage.csv"),
        ("cdc_bmiage", "https://www.cdc.gov/growthcharts/data/zscore/bmiagerev.csv"),
    ],
    "who": [
        (
            "boys_wtage",
            "https://ftp.cdc.gov/pub/Health_Statistics/NCHS/growthcharts/WHO-Boys-Weight-for-age-Percentiles.csv",
        ),
        (
            "boys_lenage",
            "https://ftp.cdc.gov/pub/Health_Statistics/NCHS/growthcharts/WHO-Boys-Length-for-age-Percentiles.csv",
        ),
        (
            "boys_headage",
            "https://ftp.cdc.gov/pub/Health_Statistics/NCHS/growthcharts/WHO-Boys-Head-Circumference-for-age-Percentiles.csv",
        ),
        (
            "girls_wtage",
            "https://ftp.cdc.gov/pub/Health_Statistics/NCHS/growthcharts/WHO-Girls-Weight-for-age%20Percentiles.csv",
        ),
        (
            "girls_lenage",
            "https://ftp.cdc.gov/pub/Health_Statistics/NCHS/growthcharts/WHO-Girls-Length-for-age-Percentiles.csv",
        ),
        (
            "girls_headage",
            "https://ftp.cdc.gov/pub/Health_Statistics/NCHS/growthcharts/WHO-Girls-Head-Circumference-for-age-Percentiles.csv",
        ),
    ],
}


def download_csv(url: str, timeout: int = 30) -> str:
    """Download CSV content from URL with retries."""
    try:
        retry_strategy = Retry(
            total=3,
            status_forcelist=[429, 500, 502, 503, 504],
            backoff_factor=2,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)

        with requests.Session() as session:
            session.mount("https://", adapter)
            session.mount("http://", adapter)
            response = session.get(url, timeout=timeout, verify=True)
            response.raise_for_status()
            return response.text
    except Exception as e:
        logger.error(f"Failed to download {url}: {e}")
        raise


def compute_sha256(content: str) -> str:
    """Compute SHA-256 hash of content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _clean_header(columns: List[str]) -> List[str]:
    """Strip BOMs and whitespace from CSV header names."""
    return [col.replace("\ufeff", "").strip() for col in columns]


def _to_numeric_table(df: pd.DataFrame) -> pd.DataFrame:
    """Coerce to floats and drop rows that are not data (repeated headers, blanks)."""
    df = df.apply(pd.to_numeric, errors="coerce")
    subset = [col for col in OUTPUT_COLUMNS if col in df.columns]
    return df.dropna(subset=subset).reset_index(drop=True)


def clip_ages(df: pd.DataFrame, min_age: float, max_age: float) -> pd.DataFrame:
    """
    Keep rows within [min_age, max_age] plus the bracketing samples outside.

    A table sampled at half months has no row exactly at the window ends; the
    neighbouring samples keep both ends interpolable.
    """
    parts = []
    for _, group in df.groupby("Sex", sort=True):
        group = group.sort_values("Agemos")
        ages = group["Agemos"]
        keep = (ages >= min_age) & (ages <= max_age)
        below = ages[ages < min_age]
        above = ages[ages > max_age]
        if not (ages == min_age).any() and len(below):
            keep |= ages == below.max()
        if not (ages == max_age).any() and len(above):
            keep |= ages == above.min()
        parts.append(group[keep])
    if not parts:
        return df.iloc[0:0]
    return pd.concat(parts).reset_index(drop=True)


def validate_table(df: pd.DataFrame, name: str) -> None:
    """Validate a normalized table for common issues."""
    if df.empty:
        raise ValueError(f"{name}: empty table")

    if not set(df["Sex"].unique()) <= {1, 2}:
        raise ValueError(f"{name}: unexpected sex codes {sorted(df['Sex'].unique())}")

    for col in ["Agemos", "L", "M", "S"]:
        if not np.all(np.isfinite(df[col].to_numpy(dtype=float))):
            raise ValueError(f"{name}: non-finite {col} values")

    for col in ["M", "S"]:
        if np.any(df[col] <= 0):
            raise ValueError(f"{name}: non-positive {col} values")

    for sex, group in df.groupby("Sex"):
        ages = group["Agemos"].to_numpy(dtype=float)
        if len(ages) > 1 and not np.all(ages[:-1] < ages[1:]):
            raise ValueError(f"{name}: Agemos not strictly increasing for sex {sex}")

    max_age = df["Agemos"].max()
    if max_age > 241:
        logger.warning(
            f"{name}: Age values up to {max_age:.1f} months detected. "
            "Values >241 months suggest input may be in years rather than months."
        )


def parse_cdc_csv(content: str, name: str) -> pd.DataFrame:
    """Parse a CDC LMS CSV (Sex,Agemos,L,M,S,...) into the normalized table."""
    df = pd.read_csv(io.StringIO(content), dtype=str)
    df.columns = _clean_header(list(df.columns))
    # The 2022 extended BMI file uses lower-case column names
    df = df.rename(columns={"sex": "Sex", "agemos": "Agemos"})

    missing = [col for col in OUTPUT_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"{name}: missing columns {missing}")

    table = _to_numeric_table(df[OUTPUT_COLUMNS])
    table["Sex"] = table["Sex"].astype(int)
    table = clip_ages(table, CDC_MIN_AGE_MONTHS, CDC_MAX_AGE_MONTHS)

    validate_table(table, name)
    return table


def parse_who_csv(content: str, name: str) -> pd.DataFrame:
    """
    Parse a WHO percentile CSV (Month,L,M,S,...) for one sex.

    Weight and length keep ages below 24 months; head circumference keeps
    ages up to and including 24 months.
    """
    df = pd.read_csv(io.StringIO(content), dtype=str)
    df.columns = _clean_header(list(df.columns))

    missing = [col for col in ["Month", "L", "M", "S"] if col not in df.columns]
    if missing:
        raise ValueError(f"{name}: missing columns {missing}")

    table = df[["Month", "L", "M", "S"]].rename(columns={"Month": "Agemos"})
    table = _to_numeric_table(table)
    table.insert(0, "Sex", 1 if name.startswith("boys") else 2)

    if "headage" in name:
        table = table[table["Agemos"] <= WHO_MAX_AGE_MONTHS]
    else:
        table = table[table["Agemos"] < WHO_MAX_AGE_MONTHS]
    table = table.reset_index(drop=True)

    validate_table(table, name)
    return table


def combine_who_tables(parsed: Dict[str, pd.DataFrame]) -> Dict[str, pd.DataFrame]:
    """Merge boys/girls WHO tables into one table per measurement (who_wtage, ...)."""
    combined: Dict[str, List[pd.DataFrame]] = {}
    for name, table in parsed.items():
        measure = name.split("_", 1)[1]
        combined.setdefault(f"who_{measure}", []).append(table)
    return {
        key: pd.concat(tables).sort_values(["Sex", "Agemos"]).reset_index(drop=True)
        for key, tables in combined.items()
    }


def save_csv(table: pd.DataFrame, output_path: Path) -> None:
    """Write a normalized table as CSV."""
    table[OUTPUT_COLUMNS].to_csv(output_path, index=False)
    logger.info(f"Saved {len(table)} rows to {output_path}")


def main(strict_mode=False, source_filter=None, output_dir=None):
    """Main function to download and process all data."""
    script_dir = Path(__file__).parent
    data_dir = (
        Path(output_dir)
        if output_dir
        else script_dir.parent / "src" / "anthro" / "data"
    )
    data_dir.mkdir(parents=True, exist_ok=True)

    cdc_tables: Dict[str, pd.DataFrame] = {}
    who_tables: Dict[str, pd.DataFrame] = {}
    failed_sources = []

    total_sources = sum(len(sources) for sources in DATA_SOURCES.values())
    with tqdm(total=total_sources, desc="Fetching sources") as pbar:
        for source_type, sources in DATA_SOURCES.items():
            if source_filter and source_type != source_filter:
                pbar.update(len(sources))
                continue

            for name, url in sources:
                pbar.set_postfix({"source": f"{source_type.upper()}: {name}"})
                pbar.update(1)

                try:
                    csv_content = download_csv(url)
                    logger.info(f"{name}: sha256 {compute_sha256(csv_content)}")

                    if source_type == "cdc":
                        cdc_tables[name] = parse_cdc_csv(csv_content, name)
                    else:
                        who_tables[name] = parse_who_csv(csv_content, name)

                except Exception as e:
                    failed_sources.append(f"{source_type}::{name}")
                    logger.error(f"Failed to process {source_type}::{name}: {e}")
                    continue

    if strict_mode and failed_sources:
        raise RuntimeError(
            f"Strict mode failed: Unable to process sources: {', '.join(failed_sources)}"
        )

    outputs = dict(cdc_tables)
    outputs.update(combine_who_tables(who_tables))
    for name, table in outputs.items():
        save_csv(table, data_dir / f"{name}.csv")

    return outputs


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Download growth reference data from CDC and WHO sources."
    )
    parser.add_argument(
        "--source",
        choices=["cdc", "who"],
        help="Download only from specified source type (cdc or who)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Strict mode: exit on any error instead of continuing with warnings",
    )
    parser.add_argument(
        "--output-dir",
        help="Directory to write the CSV tables (default: src/anthro/data)",
    )
    args = parser.parse_args()

    main(strict_mode=args.strict, source_filter=args.source, output_dir=args.output_dir)
