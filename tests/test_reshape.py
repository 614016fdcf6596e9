from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from corticosteroid_nma.errors import DegenerateInputError, SchemaError
from corticosteroid_nma.preprocessing import (
    aggregate_study_treatments,
    load_arm_table,
    load_trial_table,
    merge_long_tables,
    normalize_column_names,
    reshape_trial_table,
    wide_to_long,
)

pytestmark = pytest.mark.unit


def test_normalize_column_names_matches_exported_headers() -> None:
    assert normalize_column_names(["study", "t (1)", "n..2.", " r[3] "]) == ["study", "t..1.", "n..2.", "r.3."]


def test_wide_to_long_extracts_arm_ids(two_study_frame: pd.DataFrame) -> None:
    long_t = wide_to_long(two_study_frame, "t", "treatment")
    assert list(long_t.columns) == ["study", "arm_id", "treatment"]
    assert len(long_t) == 6
    assert long_t["arm_id"].tolist() == [1, 2, 3, 1, 2, 3]


def test_malformed_arm_column_raises_schema_error(two_study_frame: pd.DataFrame) -> None:
    df = two_study_frame.assign(**{"t..abc.": "DrugC"})
    with pytest.raises(SchemaError):
        wide_to_long(df, "t", "treatment")


def test_missing_prefix_is_degenerate(two_study_frame: pd.DataFrame) -> None:
    df = two_study_frame.drop(columns=[c for c in two_study_frame.columns if c.startswith("r..")])
    with pytest.raises(DegenerateInputError):
        wide_to_long(df, "r", "r")


def test_duplicate_study_rows_rejected(two_study_frame: pd.DataFrame) -> None:
    df = pd.concat([two_study_frame, two_study_frame.iloc[[0]]], ignore_index=True)
    with pytest.raises(SchemaError):
        wide_to_long(df, "t", "treatment")


def test_mismatched_arm_sets_rejected(two_study_frame: pd.DataFrame) -> None:
    df_t = wide_to_long(two_study_frame, "t", "treatment")
    df_n = wide_to_long(two_study_frame.drop(columns=["n..3."]), "n", "n")
    df_r = wide_to_long(two_study_frame, "r", "r")
    with pytest.raises(SchemaError):
        merge_long_tables(df_t, df_n, df_r)


def test_missing_responders_do_not_drop_arms(wide_frame_fn) -> None:
    df = wide_frame_fn({
        "S1": [("Placebo", 40, np.nan), ("DrugA", 41, 10)],
        "S2": [("Placebo", 30, 5), ("DrugA", None, 7)],
    })
    study_df = reshape_trial_table(df)
    s1 = study_df[study_df["study"] == "S1"]
    assert set(s1["treatment"]) == {"Placebo", "DrugA"}
    # S2 loses DrugA (no sample size) but keeps placebo
    assert study_df[study_df["study"] == "S2"]["treatment"].tolist() == ["Placebo"]


def test_duplicate_arms_are_aggregated(wide_frame_fn) -> None:
    df = wide_frame_fn({
        "S1": [("Placebo", 20, 5), ("DrugA", 15, 3), ("DrugA", 16, 4)],
    })
    study_df = reshape_trial_table(df)
    drug = study_df[study_df["treatment"] == "DrugA"].iloc[0]
    assert len(study_df) == 2
    assert drug["n"] == 31
    assert drug["r"] == 7


def test_aggregation_is_idempotent(two_study_frame: pd.DataFrame) -> None:
    study_df = reshape_trial_table(two_study_frame)
    again = aggregate_study_treatments(study_df[["study", "treatment", "n", "r"]])
    pd.testing.assert_frame_equal(study_df, again)


def test_whitespace_treatment_labels_are_stripped(wide_frame_fn) -> None:
    df = wide_frame_fn({"S1": [(" Placebo ", 10, 1), ("DrugA", 12, 2)]})
    assert sorted(reshape_trial_table(df)["treatment"]) == ["DrugA", "Placebo"]


def test_study_without_valid_arm_is_degenerate(wide_frame_fn) -> None:
    df = wide_frame_fn({
        "S1": [("Placebo", 10, 1), ("DrugA", 12, 2)],
        "S2": [(None, 10, 1), ("DrugA", None, 2)],
    })
    with pytest.raises(DegenerateInputError):
        reshape_trial_table(df)


def test_negative_sample_size_rejected(wide_frame_fn) -> None:
    df = wide_frame_fn({"S1": [("Placebo", -10, 1), ("DrugA", 12, 2)]})
    with pytest.raises(SchemaError):
        reshape_trial_table(df)


def test_classify_attaches_treatment_class(two_study_frame: pd.DataFrame) -> None:
    study_df = reshape_trial_table(two_study_frame, classify=lambda label: label.lower())
    assert (study_df["treatment_class"] == study_df["treatment"].str.lower()).all()


def test_load_trial_table_normalizes_headers(tmp_path) -> None:
    path = tmp_path / "trials.csv"
    path.write_text(
        "na..,study,t (1),t (2),n (1),n (2),r (1),r (2)\n"
        "1,S1,Placebo,DrugA,10,12,2,3\n",
        encoding="utf-8",
    )
    df = load_trial_table(path)
    assert list(df.columns) == ["study", "t..1.", "t..2.", "n..1.", "n..2.", "r..1.", "r..2."]


def test_load_trial_table_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_trial_table(tmp_path / "absent.csv")


def test_load_arm_table_requires_columns(tmp_path, write_csv, arm_frame: pd.DataFrame) -> None:
    path = write_csv(arm_frame.drop(columns=["dose"]), "arms.csv")
    with pytest.raises(SchemaError):
        load_arm_table(path)
    assert len(load_arm_table(write_csv(arm_frame, "ok.csv"))) == len(arm_frame)
