from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest


def wide_frame(rows):
    """
    Build a wide trial table from ``{study: [(treatment, n, r), ...]}``.

    Short studies are padded with empty arms, as in the exported CSVs.
    """
    width = max(len(arms) for arms in rows.values())
    records = []
    for study, arms in rows.items():
        record = {"study": study}
        for k in range(1, width + 1):
            treatment, n, r = arms[k - 1] if k <= len(arms) else (None, None, None)
            record[f"t..{k}."] = treatment
            record[f"n..{k}."] = n
            record[f"r..{k}."] = r
        records.append(record)
    return pd.DataFrame(records)


@pytest.fixture
def wide_frame_fn():
    return wide_frame


@pytest.fixture
def two_study_frame() -> pd.DataFrame:
    return wide_frame({
        "Study1": [("Placebo", 50, 20), ("DrugA", 52, 15)],
        "Study2": [("Placebo", 30, 12), ("DrugA", 31, 9), ("DrugB", 29, 10)],
    })


@pytest.fixture
def corticosteroid_frame() -> pd.DataFrame:
    return wide_frame({
        "Meduri 2007": [("Placebo", 28, 12), ("mPSL 4.0 mg/kg", 63, 15)],
        "Villar 2020": [("Placebo", 139, 50), ("DEX 150 mg", 138, 29)],
        "Tongyoo 2016": [("Placebo", 99, 26), ("HC 1400 mg", 98, 22)],
        "Steinberg 2006": [("Placebo", 91, 26), ("mPSL 5.0 mg/kg", 89, 26)],
        "Bernard 1987": [("mPSL 22.4 mg/kg", 50, 30)],
    })


@pytest.fixture
def arm_frame() -> pd.DataFrame:
    return pd.DataFrame(
        [
            ("S1", "Placebo", 0, 20, 50),
            ("S1", "DEX", 60, 14, 50),
            ("S2", "Placebo", 0, 25, 60),
            ("S2", "DEX", 120, 15, 58),
            ("S2", "mPSL", 4.0, 17, 57),
            ("S3", "DEX", 60, 12, 40),
            ("S3", "DEX", 150, 9, 41),
            ("S4", "Placebo", 0, 30, 70),
            ("S4", "mPSL", 22.4, 21, 72),
        ],
        columns=["studyID", "agent", "dose", "r", "n"],
    )


@pytest.fixture
def write_csv(tmp_path: Path):
    def _write(df: pd.DataFrame, name: str = "table.csv") -> Path:
        path = tmp_path / name
        df.to_csv(path, index=False)
        return path
    return _write
