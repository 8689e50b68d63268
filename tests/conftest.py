"""Shared fixtures: synthetic two-period CMS claims CSV."""

import csv
from pathlib import Path

import polars as pl
import pytest

from data.loader import claims_frame, load_claims
from data.models import ClaimLine


# Provider IDs
STABLE_ID = "1000000001"   # identical mix in both periods
SHIFTED_ID = "2000000002"  # service mix {A:80,B:20} -> {A:50,B:50}, intensity +25%
SINGLE_ID = "3000000003"   # only one period of data
UNKNOWN_ID = "9999999999"  # not in the dataset

# CMS schema with the injected period column:
#   Year, Rndrng_NPI, HCPCS_Cd, Place_Of_Srvc, Tot_Srvcs, Avg_Mdcr_Alowd_Amt
FIELDNAMES = ["Year", "Rndrng_NPI", "HCPCS_Cd", "Place_Of_Srvc", "Tot_Srvcs", "Avg_Mdcr_Alowd_Amt"]


def _generate_rows() -> list[dict]:
    rows = []

    def add(npi, year, hcpcs, pos, services, allowed):
        rows.append({
            "Year": year,
            "Rndrng_NPI": npi,
            "HCPCS_Cd": hcpcs,
            "Place_Of_Srvc": pos,
            "Tot_Srvcs": services,
            "Avg_Mdcr_Alowd_Amt": f"{allowed:.2f}",
        })

    # --- Stable provider: same mix, same prices, both periods ---
    for year in (2019, 2020):
        add(STABLE_ID, year, "99213", "O", 60, 75.0)
        add(STABLE_ID, year, "99214", "O", 20, 110.0)
        add(STABLE_ID, year, "99214", "F", 20, 110.0)

    # --- Shifted provider: mix flattens, weighted intensity rises ---
    add(SHIFTED_ID, 2019, "A0001", "O", 80, 100.0)
    add(SHIFTED_ID, 2019, "B0002", "O", 20, 200.0)
    add(SHIFTED_ID, 2020, "A0001", "O", 50, 100.0)
    add(SHIFTED_ID, 2020, "B0002", "O", 50, 200.0)

    # --- Single-period provider ---
    add(SINGLE_ID, 2019, "99213", "O", 30, 80.0)
    add(SINGLE_ID, 2019, "99215", "F", 10, 180.0)

    return rows


def write_claims_csv(filepath: Path, rows: list[dict], fieldnames: list[str] | None = None) -> Path:
    with open(filepath, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames or FIELDNAMES)
        writer.writeheader()
        writer.writerows(rows)
    return filepath


def make_lines(provider_id: str, period: int, weights: dict[str, float],
               pos: str = "O", allowed: float = 100.0) -> list[ClaimLine]:
    """One ClaimLine per service code, all at the same place of service and price."""
    return [
        ClaimLine(provider_id, period, code, pos, weight, allowed)
        for code, weight in weights.items()
    ]


@pytest.fixture
def sample_csv(tmp_path: Path) -> Path:
    """Write the synthetic claims CSV and return its path."""
    return write_claims_csv(tmp_path / "cms_subset_2p.csv", _generate_rows())


@pytest.fixture
def claims(sample_csv: Path) -> pl.DataFrame:
    return load_claims(sample_csv)


@pytest.fixture
def empty_claims() -> pl.DataFrame:
    return claims_frame([])
