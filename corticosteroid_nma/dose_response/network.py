"""
Arm-level dose-response network.

Validates an arm table (``studyID, agent, dose, r, n``) and assigns the
integer indices the dose-response models need: studies, agents (placebo
first), agent-dose treatments and the reference arm of every study.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

import numpy as np
import pandas as pd

from ..errors import DegenerateInputError, SchemaError
from ..preprocessing.constants import ARM_TABLE_COLUMNS, PLACEBO_LABEL


def _format_dose(dose: float) -> str:
    return f"{dose:g}"


@dataclass
class DoseResponseNetwork:
    """
    Indexed arm-level data for dose-response NMA.

    Attributes
    ----------
    arms : pd.DataFrame
        One row per arm with ``study_idx``, ``agent_idx``, ``treatment_idx``
        and ``ref_pos`` (row position of the study's reference arm).
    studies : list
        Study identifiers in index order.
    agents : list of str
        Agent labels; index 0 is always placebo.
    treatments : pd.DataFrame
        One row per agent-dose node with ``treatment``, ``agent``,
        ``agent_idx`` and ``dose``; row 0 is placebo.
    """

    arms: pd.DataFrame
    studies: List[object]
    agents: List[str]
    treatments: pd.DataFrame

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "DoseResponseNetwork":
        missing = [col for col in ARM_TABLE_COLUMNS if col not in df.columns]
        if missing:
            raise SchemaError(f"Arm table is missing required columns {missing}.")
        if df.empty:
            raise DegenerateInputError("Arm table has no rows.")

        arms = df[ARM_TABLE_COLUMNS].copy()
        if arms["studyID"].isna().any() or arms["agent"].isna().any():
            raise SchemaError("Every arm needs a studyID and an agent.")
        for col in ("dose", "r", "n"):
            try:
                arms[col] = pd.to_numeric(arms[col])
            except (TypeError, ValueError) as exc:
                raise SchemaError(f"Column '{col}' must be numeric: {exc}") from exc
            if arms[col].isna().any():
                raise SchemaError(f"Column '{col}' has missing values.")

        if (arms["dose"] < 0).any():
            raise SchemaError("Doses must be non-negative.")
        if (arms["n"] <= 0).any() or (arms["r"] < 0).any() or (arms["r"] > arms["n"]).any():
            raise SchemaError("Counts must satisfy 0 <= r <= n and n > 0.")
        if ((arms["r"] % 1) != 0).any() or ((arms["n"] % 1) != 0).any():
            raise SchemaError("r and n must be whole counts.")
        arms["r"] = arms["r"].astype("int64")
        arms["n"] = arms["n"].astype("int64")

        arms["agent"] = arms["agent"].astype(str).str.strip()
        labelled_placebo = arms["agent"] == PLACEBO_LABEL
        if (labelled_placebo & (arms["dose"] != 0)).any():
            raise SchemaError(f"'{PLACEBO_LABEL}' arms must have dose 0.")
        arms.loc[arms["dose"] == 0, "agent"] = PLACEBO_LABEL

        arm_counts = arms.groupby("studyID").size()
        thin = arm_counts[arm_counts < 2].index.tolist()
        if thin:
            raise DegenerateInputError(f"Studies need at least two arms; single-arm studies: {thin}")

        studies = list(pd.unique(arms["studyID"]))
        active = sorted(a for a in arms["agent"].unique() if a != PLACEBO_LABEL)
        if not active:
            raise DegenerateInputError("No active agents in arm table.")
        agents = [PLACEBO_LABEL] + active
        agent_idx = {agent: i for i, agent in enumerate(agents)}

        nodes = (
            arms[["agent", "dose"]]
            .drop_duplicates()
            .assign(agent_idx=lambda d: d["agent"].map(agent_idx))
            .sort_values(["agent_idx", "dose"])
            .reset_index(drop=True)
        )
        if PLACEBO_LABEL not in set(nodes["agent"]):
            placebo = pd.DataFrame({"agent": [PLACEBO_LABEL], "dose": [0.0], "agent_idx": [0]})
            nodes = pd.concat([placebo, nodes], ignore_index=True)
        nodes["treatment"] = [
            PLACEBO_LABEL if a == PLACEBO_LABEL else f"{a}_{_format_dose(d)}"
            for a, d in zip(nodes["agent"], nodes["dose"])
        ]
        nodes["treatment_idx"] = np.arange(len(nodes))
        treatments = nodes[["treatment_idx", "treatment", "agent", "agent_idx", "dose"]]

        arms["study_idx"] = arms["studyID"].map({s: i for i, s in enumerate(studies)})
        arms["agent_idx"] = arms["agent"].map(agent_idx)
        arms = arms.merge(treatments[["agent", "dose", "treatment", "treatment_idx"]], on=["agent", "dose"], how="left")
        arms = arms.sort_values(["study_idx", "treatment_idx"], kind="stable").reset_index(drop=True)

        ref_pos = arms.groupby("study_idx")["treatment_idx"].transform("idxmin")
        arms["ref_pos"] = ref_pos.astype(int)
        arms["is_ref"] = arms.index == arms["ref_pos"]
        labels = pd.Series([f"{s}:{t}" for s, t in zip(arms["studyID"], arms["treatment"])])
        repeat = labels.groupby(labels).cumcount()
        arms["arm"] = [lab if k == 0 else f"{lab}#{k + 1}" for lab, k in zip(labels, repeat)]

        return cls(arms=arms, studies=studies, agents=agents, treatments=treatments)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    @property
    def n_agents(self) -> int:
        return len(self.agents)

    @property
    def n_treatments(self) -> int:
        return len(self.treatments)

    @property
    def agent_max_dose(self) -> np.ndarray:
        """Maximum observed dose per agent (placebo entry fixed at 1)."""
        maxima = self.treatments.groupby("agent_idx")["dose"].max()
        out = np.ones(self.n_agents)
        for idx, value in maxima.items():
            if idx != 0:
                out[int(idx)] = float(value)
        return out

    def agent_doses(self, agent_idx: int) -> np.ndarray:
        """Observed doses of one agent, with 0 prepended."""
        doses = self.treatments.loc[self.treatments["agent_idx"] == agent_idx, "dose"].to_numpy(dtype=float)
        return np.unique(np.concatenate([[0.0], doses]))

    def treatment_index(self, agent_idx: int, dose: float) -> int:
        if dose == 0:
            return 0
        match = self.treatments[(self.treatments["agent_idx"] == agent_idx) & (self.treatments["dose"] == dose)]
        if match.empty:
            raise KeyError(f"No treatment for agent {self.agents[agent_idx]} at dose {dose}.")
        return int(match["treatment_idx"].iloc[0])

    def coords(self) -> Dict[str, list]:
        return {
            "study": [str(s) for s in self.studies],
            "arm": self.arms["arm"].tolist(),
            "agent": self.agents[1:],
            "treatment": self.treatments["treatment"].tolist(),
            "active_treatment": self.treatments["treatment"].tolist()[1:],
        }

    def design(self) -> Dict[str, np.ndarray]:
        """Arm-aligned arrays for model building."""
        return {
            "study_idx": self.arms["study_idx"].to_numpy(dtype=int),
            "agent_idx": self.arms["agent_idx"].to_numpy(dtype=int),
            "treatment_idx": self.arms["treatment_idx"].to_numpy(dtype=int),
            "ref_pos": self.arms["ref_pos"].to_numpy(dtype=int),
            "non_ref": (~self.arms["is_ref"]).to_numpy(dtype=float),
            "dose": self.arms["dose"].to_numpy(dtype=float),
            "r": self.arms["r"].to_numpy(dtype=int),
            "n": self.arms["n"].to_numpy(dtype=int),
        }

    def summary(self) -> str:
        lines = [
            "Dose-response network",
            f"  Studies:    {len(self.studies)}",
            f"  Arms:       {len(self.arms)}",
            f"  Agents:     {self.n_agents} ({', '.join(self.agents)})",
            f"  Treatments: {self.n_treatments} (agent-dose combinations incl. placebo)",
        ]
        for idx, agent in enumerate(self.agents[1:], start=1):
            doses = ", ".join(_format_dose(d) for d in self.agent_doses(idx)[1:])
            lines.append(f"    {agent}: doses {doses}")
        return "\n".join(lines)
