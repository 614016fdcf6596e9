"""
Shared constants for loading and reshaping trial data.
"""

from pathlib import Path

# Directory paths
BASE_DIR = Path(__file__).resolve().parents[1]
REPO_DIR = Path(__file__).resolve().parents[2]
DATA_DIR = REPO_DIR / "data"

OUTPUTS_DIR = REPO_DIR / "outputs"
OUTPUT_FIGURES_DIR = OUTPUTS_DIR / "figures"
OUTPUT_NETWORK_DIR = OUTPUT_FIGURES_DIR / "network"
OUTPUT_DOSE_RESPONSE_DIR = OUTPUT_FIGURES_DIR / "dose_response"

# Input files (28-30 day mortality endpoint)
INPUT_FILE_MAP = {
    "exchangeable": "np_28-30d-mortality_exchangeable-dose_model.csv",
    "equal": "np_28-30d-mortality_equal-dose_model.csv",
    "dose_response": "drc_28-30d-mortality.csv",
}

# Wide trial-record columns
STUDY_COL = "study"
ARM_ID_COL = "arm_id"
TREATMENT_PREFIX = "t"
SAMPLE_SIZE_PREFIX = "n"
RESPONDER_PREFIX = "r"
STRAY_COLUMNS = ("na..",)

# Arm-level dose-response columns
ARM_TABLE_COLUMNS = ["studyID", "agent", "dose", "r", "n"]
PLACEBO_LABEL = "Placebo"


def get_input_file(key: str) -> Path:
    """Return input CSV path by logical key."""
    if key not in INPUT_FILE_MAP:
        raise ValueError(f"Unknown input file key: {key}. Valid keys: {sorted(INPUT_FILE_MAP)}")
    return DATA_DIR / INPUT_FILE_MAP[key]
