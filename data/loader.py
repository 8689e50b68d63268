from dataclasses import asdict
from pathlib import Path
from typing import Iterable

import click
import polars as pl

from data.errors import InputNotFound, SchemaViolation
from data.models import ClaimLine

# Column name mapping: CMS "by Provider and Service" export -> internal names
# CMS columns (with the injected period column):
#   Year, Rndrng_NPI, HCPCS_Cd, Place_Of_Srvc, Tot_Srvcs, Avg_Mdcr_Alowd_Amt
COLUMN_MAP = {
    "provider_id": "Rndrng_NPI",
    "period": "Year",
    "service_code": "HCPCS_Cd",
    "place_of_service": "Place_Of_Srvc",
    "service_count": "Tot_Srvcs",
    "allowed_amount": "Avg_Mdcr_Alowd_Amt",
}

REVERSE_MAP = {v: k for k, v in COLUMN_MAP.items()}

CLAIM_SCHEMA = {
    "provider_id": pl.Utf8,
    "period": pl.Int64,
    "service_code": pl.Utf8,
    "place_of_service": pl.Utf8,
    "service_count": pl.Float64,
    "allowed_amount": pl.Float64,
}

RAW_DATA_DIR = Path(__file__).parent / "raw"

# Periods beyond this cannot round-trip through Int64
MAX_PERIOD = 2**62


def find_dataset(data_dir: Path | None = None) -> Path:
    """Find the claims CSV in the raw data directory.

    Returns the largest CSV, which is most likely the main two-period extract.
    """
    if data_dir is None:
        data_dir = RAW_DATA_DIR

    if not data_dir.exists():
        raise InputNotFound(
            f"Data directory {data_dir} not found. "
            "Place your two-period CMS claims extract in data/raw/ and try again."
        )

    data_files = list(data_dir.glob("*.csv"))
    if not data_files:
        raise InputNotFound(
            f"No CSV files found in {data_dir}. "
            "Place your two-period CMS claims extract in data/raw/ and try again."
        )

    return max(data_files, key=lambda f: f.stat().st_size)


def _normalize(frame: pl.DataFrame) -> pl.DataFrame:
    """Strip header noise (BOM, whitespace) and rename CMS columns to internal names."""
    cleaned = {c: c.lstrip("\ufeff").strip() for c in frame.columns}
    frame = frame.rename({raw: clean for raw, clean in cleaned.items() if raw != clean})

    rename_map = {raw: internal for raw, internal in REVERSE_MAP.items()
                  if raw in frame.columns and internal not in frame.columns}
    if rename_map:
        frame = frame.rename(rename_map)

    missing = [c for c in CLAIM_SCHEMA if c not in frame.columns]
    if missing:
        expected = ", ".join(COLUMN_MAP[c] for c in missing)
        raise SchemaViolation(f"Missing required columns: {expected}")

    return frame.select([pl.col(c).str.strip_chars() for c in CLAIM_SCHEMA])


def _coerce(raw: pl.DataFrame, first_line: int = 2) -> pl.DataFrame:
    """Cast text columns to the claim schema, failing on the first bad row.

    ``first_line`` is the line number reported for row 0.
    """
    period = pl.col("period").cast(pl.Float64, strict=False)
    count = pl.col("service_count").cast(pl.Float64, strict=False)
    amount = pl.col("allowed_amount").cast(pl.Float64, strict=False)

    def blank(col: str) -> pl.Expr:
        return pl.col(col).is_null() | (pl.col(col) == "")

    def not_a_weight(value: pl.Expr) -> pl.Expr:
        return value.is_null() | ~value.is_finite() | (value < 0)

    problem = (
        pl.when(blank("provider_id")).then(pl.lit("missing provider id"))
        .when(blank("service_code")).then(pl.lit("missing service code"))
        .when(blank("place_of_service")).then(pl.lit("missing place of service"))
        .when(period.is_null() | ~period.is_finite() | (period != period.floor()))
        .then(pl.lit("period is not an integer"))
        .when(period.abs() > MAX_PERIOD)
        .then(pl.lit("period is out of range"))
        .when(not_a_weight(count))
        .then(pl.lit("service count is not a non-negative number"))
        .when(not_a_weight(amount))
        .then(pl.lit("allowed amount is not a non-negative number"))
        .otherwise(pl.lit(None, dtype=pl.Utf8))
        .alias("problem")
    )

    problems = (
        raw.with_row_index("row")
        .with_columns(problem)
        .filter(pl.col("problem").is_not_null())
    )
    if not problems.is_empty():
        first = problems.row(0, named=True)
        raise SchemaViolation(
            f"{first['problem']} (provider {first['provider_id']!r}, period {first['period']!r})",
            line_number=first["row"] + first_line,
        )

    return raw.with_columns(
        period.cast(pl.Int64).alias("period"),
        count.alias("service_count"),
        amount.alias("allowed_amount"),
    )


def load_claims(filepath: Path) -> pl.DataFrame:
    """Load and validate a claims CSV as a DataFrame with the claim schema.

    Any row that fails coercion halts the whole load with SchemaViolation,
    and so does a row with more fields than the header.
    """
    if not filepath.exists():
        raise InputNotFound(f"Claims file not found: {filepath}")

    try:
        raw = pl.read_csv(filepath, infer_schema=False)
    except pl.exceptions.NoDataError as e:
        raise SchemaViolation(f"Claims file {filepath} is empty") from e
    except pl.exceptions.ComputeError as e:
        raise SchemaViolation(f"Malformed claims file {filepath}: {e}") from e

    # +2: one for the header line, one because line numbers start at 1
    claims = _coerce(_normalize(raw), first_line=2)
    click.echo(f"Loaded {len(claims):,} claim lines from {filepath}", err=True)
    return claims


def claims_frame(lines: Iterable[ClaimLine]) -> pl.DataFrame:
    """Build a claims DataFrame from ClaimLine records.

    Records go through the same validation as CSV rows; a bad record raises
    SchemaViolation numbered from 1.
    """
    columns = {c: [] for c in CLAIM_SCHEMA}
    for line in lines:
        for c, value in asdict(line).items():
            columns[c].append(None if value is None else str(value))
    raw = pl.DataFrame(columns, schema={c: pl.Utf8 for c in CLAIM_SCHEMA})
    return _coerce(raw, first_line=1)
