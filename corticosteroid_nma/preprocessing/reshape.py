"""
Wide-to-long reshaping of trial records.

Each study row carries repeated ``t..k.`` (treatment), ``n..k.`` (enrolled)
and ``r..k.`` (events) columns for arm k. These helpers pivot the three
groups to long form, join them per arm, and collapse duplicate arms that
share a treatment label within a study.
"""

from __future__ import annotations

import re
from typing import Callable, Dict, List, Optional

import pandas as pd

from ..errors import DegenerateInputError, SchemaError
from .constants import (
    ARM_ID_COL,
    RESPONDER_PREFIX,
    SAMPLE_SIZE_PREFIX,
    STUDY_COL,
    TREATMENT_PREFIX,
)


def _arm_column_pattern(prefix: str) -> re.Pattern:
    return re.compile(rf"^{re.escape(prefix)}\.\.(\d+)\.$")


def _check_study_ids(df: pd.DataFrame) -> None:
    if STUDY_COL not in df.columns:
        raise SchemaError(f"Required column '{STUDY_COL}' is missing.")
    if df[STUDY_COL].isna().any():
        raise SchemaError(f"{int(df[STUDY_COL].isna().sum())} row(s) have no study identifier.")
    duplicated = df.loc[df[STUDY_COL].duplicated(), STUDY_COL].unique().tolist()
    if duplicated:
        raise SchemaError(f"Study identifiers must be unique per row; repeated: {duplicated}")


def wide_to_long(df: pd.DataFrame, prefix: str, value_name: str) -> pd.DataFrame:
    """
    Pivot one ``<prefix>..<k>.`` column group into ``(study, arm_id, value)``.

    Raises
    ------
    SchemaError
        A column starts with ``<prefix>..`` but has no numeric arm suffix,
        or two columns resolve to the same arm.
    DegenerateInputError
        No column matches the prefix at all.
    """
    _check_study_ids(df)
    marker = f"{prefix}.."
    pattern = _arm_column_pattern(prefix)

    candidates = [col for col in df.columns if str(col).startswith(marker)]
    if not candidates:
        raise DegenerateInputError(f"No '{marker}<k>.' columns found; cannot build '{value_name}' arms.")

    arm_ids: Dict[str, int] = {}
    malformed: List[str] = []
    for col in candidates:
        match = pattern.match(col)
        if match is None:
            malformed.append(col)
        else:
            arm_ids[col] = int(match.group(1))
    if malformed:
        raise SchemaError(f"Columns {malformed} match prefix '{marker}' but not '{marker}<digits>.'.")

    seen = pd.Series(list(arm_ids.values()))
    if seen.duplicated().any():
        raise SchemaError(f"Duplicate arm ids for prefix '{marker}': {sorted(seen[seen.duplicated()].unique())}")

    long_df = df[[STUDY_COL] + candidates].melt(
        id_vars=STUDY_COL,
        var_name=ARM_ID_COL,
        value_name=value_name,
    )
    long_df[ARM_ID_COL] = long_df[ARM_ID_COL].map(arm_ids).astype(int)
    return long_df.sort_values([STUDY_COL, ARM_ID_COL]).reset_index(drop=True)


def _clean_treatment(series: pd.Series) -> pd.Series:
    cleaned = series.where(series.isna(), series.astype(str).str.strip())
    return cleaned.mask(cleaned == "")


def _to_numeric(series: pd.Series, name: str) -> pd.Series:
    try:
        return pd.to_numeric(series)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"Column '{name}' must be numeric: {exc}") from exc


def merge_long_tables(df_t: pd.DataFrame, df_n: pd.DataFrame, df_r: pd.DataFrame) -> pd.DataFrame:
    """
    Join treatment, sample-size and responder tables on ``(study, arm_id)``.

    Arms without a treatment or a sample size are dropped. A missing
    responder count is kept as NaN and never used to drop an arm.
    """
    keys = [STUDY_COL, ARM_ID_COL]
    arm_sets = {
        "treatment": set(df_t[ARM_ID_COL]),
        "n": set(df_n[ARM_ID_COL]),
        "r": set(df_r[ARM_ID_COL]),
    }
    if not arm_sets["treatment"] == arm_sets["n"] == arm_sets["r"]:
        listing = {key: sorted(ids) for key, ids in arm_sets.items()}
        raise SchemaError(f"Arm ids differ across column groups: {listing}")

    merged = (
        df_t.merge(df_n, on=keys, how="left")
        .merge(df_r, on=keys, how="left")
    )
    merged["treatment"] = _clean_treatment(merged["treatment"])
    merged["n"] = _to_numeric(merged["n"], "n")
    merged["r"] = _to_numeric(merged["r"], "r")

    valid = merged["treatment"].notna() & merged["n"].notna()
    long_df = merged.loc[valid].reset_index(drop=True)
    if long_df.empty:
        raise DegenerateInputError("No arm has both a treatment and a sample size.")

    lost = sorted(set(merged[STUDY_COL]) - set(long_df[STUDY_COL]), key=str)
    if lost:
        raise DegenerateInputError(f"Studies with no valid arm after filtering: {lost}")

    if (long_df["n"] < 0).any() or ((long_df["n"] % 1) != 0).any():
        raise SchemaError("Sample sizes must be non-negative integers.")
    long_df["n"] = long_df["n"].astype("int64")
    return long_df


def _as_count(series: pd.Series) -> pd.Series:
    if ((series % 1) == 0).all():
        return series.astype("int64")
    return series


def aggregate_study_treatments(
    long_df: pd.DataFrame,
    classify: Optional[Callable[[str], object]] = None,
) -> pd.DataFrame:
    """
    Collapse arm rows to one row per ``(study, treatment)``.

    ``n`` and ``r`` are summed, missing ``r`` counting as zero. When
    ``classify`` is given, its result is attached as ``treatment_class``.
    """
    study_df = (
        long_df.groupby([STUDY_COL, "treatment"], sort=True)
        .agg(n=("n", "sum"), r=("r", "sum"))
        .reset_index()
    )
    study_df["n"] = study_df["n"].astype("int64")
    study_df["r"] = _as_count(study_df["r"])
    if classify is not None:
        study_df["treatment_class"] = study_df["treatment"].map(classify)
    return study_df


def reshape_trial_table(
    df: pd.DataFrame,
    classify: Optional[Callable[[str], object]] = None,
    verbose: bool = False,
) -> pd.DataFrame:
    """Run wide-to-long, merge/filter and aggregation on a trial table."""
    df_t = wide_to_long(df, TREATMENT_PREFIX, "treatment")
    df_n = wide_to_long(df, SAMPLE_SIZE_PREFIX, "n")
    df_r = wide_to_long(df, RESPONDER_PREFIX, "r")

    long_df = merge_long_tables(df_t, df_n, df_r)
    study_df = aggregate_study_treatments(long_df, classify=classify)

    if verbose:
        print(
            f"[INFO] Reshaped {df[STUDY_COL].nunique()} studies: "
            f"{len(long_df)} arms -> {len(study_df)} study-treatment rows"
        )
        collapsed = len(long_df) - len(study_df)
        if collapsed:
            print(f"[INFO] {collapsed} duplicate arm(s) merged into shared treatment rows")
    return study_df
