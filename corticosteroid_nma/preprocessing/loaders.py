"""
CSV loaders for the wide trial-record table and the arm-level dose table.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, List, Union

import pandas as pd

from ..errors import DegenerateInputError, SchemaError
from .constants import ARM_TABLE_COLUMNS, STRAY_COLUMNS, STUDY_COL

_INVALID_NAME_CHARS = re.compile(r"[^0-9A-Za-z_.]")


def normalize_column_names(columns: Iterable[str]) -> List[str]:
    """
    Map raw header names to R-style syntactic names.

    Every character outside [A-Za-z0-9._] becomes '.', so an exported header
    such as ``t (1)`` reads as ``t..1.`` and an already mangled name is left untouched.
    """
    return [_INVALID_NAME_CHARS.sub(".", str(col).strip()) for col in columns]


def drop_stray_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Remove leftover index columns (``na..``) written by the export."""
    stray = [col for col in STRAY_COLUMNS if col in df.columns]
    if stray:
        df = df.drop(columns=stray)
    return df


def load_trial_table(path: Union[str, Path], verbose: bool = False) -> pd.DataFrame:
    """
    Read a wide trial-record CSV (one row per study).

    Parameters
    ----------
    path : str or Path
        CSV with ``study`` and repeated ``t..k.``/``n..k.``/``r..k.`` groups.
    verbose : bool
        Print a one-line report after loading.

    Returns
    -------
    pd.DataFrame
        Table with normalised headers and stray columns removed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Trial table not found: {path}")

    df = pd.read_csv(path, encoding="utf-8-sig")
    df.columns = normalize_column_names(df.columns)
    df = drop_stray_columns(df)

    if STUDY_COL not in df.columns:
        raise SchemaError(f"{path.name}: required column '{STUDY_COL}' is missing.")
    if df.empty:
        raise DegenerateInputError(f"{path.name}: no studies in trial table.")

    if verbose:
        print(f"[INFO] Loaded {path.name}: {len(df)} studies, {len(df.columns)} cols")
    return df


def load_arm_table(path: Union[str, Path], verbose: bool = False) -> pd.DataFrame:
    """Read the arm-level dose-response CSV (``studyID, agent, dose, r, n``)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Arm table not found: {path}")

    df = pd.read_csv(path, encoding="utf-8-sig")
    df.columns = [str(col).strip() for col in df.columns]
    df = drop_stray_columns(df)

    missing = [col for col in ARM_TABLE_COLUMNS if col not in df.columns]
    if missing:
        raise SchemaError(f"{path.name}: missing required columns {missing}.")

    if verbose:
        print(f"[INFO] Loaded {path.name}: {len(df)} arms, {df['studyID'].nunique()} studies")
        print(df.to_string(index=False))
    return df
