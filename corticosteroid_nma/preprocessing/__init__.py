"""
Trial Data Preprocessing
========================

Loading and reshaping of wide trial-record tables.

    from corticosteroid_nma.preprocessing import load_trial_table, reshape_trial_table
    study_df = reshape_trial_table(load_trial_table(path))
"""

from .constants import (
    DATA_DIR,
    INPUT_FILE_MAP,
    OUTPUT_DOSE_RESPONSE_DIR,
    OUTPUT_NETWORK_DIR,
    PLACEBO_LABEL,
    STUDY_COL,
    get_input_file,
)
from .loaders import (
    drop_stray_columns,
    load_arm_table,
    load_trial_table,
    normalize_column_names,
)
from .reshape import (
    aggregate_study_treatments,
    merge_long_tables,
    reshape_trial_table,
    wide_to_long,
)

__all__ = [
    "DATA_DIR",
    "INPUT_FILE_MAP",
    "OUTPUT_DOSE_RESPONSE_DIR",
    "OUTPUT_NETWORK_DIR",
    "PLACEBO_LABEL",
    "STUDY_COL",
    "get_input_file",
    "drop_stray_columns",
    "load_arm_table",
    "load_trial_table",
    "normalize_column_names",
    "aggregate_study_treatments",
    "merge_long_tables",
    "reshape_trial_table",
    "wide_to_long",
]
