"""
Network Plot Configuration
==========================

Schema variants for the treatment network: display order, drug-class rules,
palette and plot styling. Both variants read the same wide trial layout but
label treatments differently (dose-specific vs. pooled class labels).
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Tuple

from ..errors import SchemaError
from ..preprocessing.constants import INPUT_FILE_MAP, OUTPUT_NETWORK_DIR


# =============================================================================
# OUTPUT PATH
# =============================================================================

BASE_OUTPUT = OUTPUT_NETWORK_DIR


# =============================================================================
# DRUG CLASSES
# =============================================================================

class TreatmentClass(str, Enum):
    """Drug class tag attached to every treatment at ingestion."""

    MPSL = "mPSL"
    DEX = "DEX"
    HC = "HC"
    PLACEBO = "Placebo"
    OTHER = "Other"


@dataclass(frozen=True)
class ClassRule:
    """Map labels to a class by prefix (``exact=False``) or full match."""

    pattern: str
    treatment_class: TreatmentClass
    exact: bool = False

    def matches(self, label: str) -> bool:
        if self.exact:
            return label == self.pattern
        return label.startswith(self.pattern)


# Evaluated in order; first match wins.
DEFAULT_CLASS_RULES: Tuple[ClassRule, ...] = (
    ClassRule("mPSL", TreatmentClass.MPSL),
    ClassRule("DEX", TreatmentClass.DEX),
    ClassRule("HC", TreatmentClass.HC),
    ClassRule("Placebo", TreatmentClass.PLACEBO, exact=True),
)

DEFAULT_PALETTE: Dict[TreatmentClass, str] = {
    TreatmentClass.MPSL: "#b3e2cd",
    TreatmentClass.DEX: "#fdcdac",
    TreatmentClass.HC: "#cbd5e8",
    TreatmentClass.PLACEBO: "#cccccc",
    TreatmentClass.OTHER: "#f0f0f0",
}

UNLISTED_POLICIES = {"last", "error"}


# =============================================================================
# SCHEMA DEFINITION
# =============================================================================

@dataclass
class NetworkSchema:
    """
    Configuration for one schema variant of the network plot.

    Attributes
    ----------
    name : str
        Identifier used for CLI arguments and output folders.
    filename : str
        Default input CSV under ``data/``.
    description : str
        Short human-readable summary.
    treatment_order : list of str
        Display priority; position in the list is the node rank.
    class_rules : tuple of ClassRule
        Ordered drug-class rules; unmatched labels fall to ``Other``.
    unlisted_policy : str
        ``"last"`` ranks treatments missing from ``treatment_order`` after
        every listed one (alphabetically, with a warning); ``"error"`` raises.
    """

    name: str
    filename: str
    description: str
    treatment_order: List[str]
    class_rules: Tuple[ClassRule, ...] = DEFAULT_CLASS_RULES
    palette: Dict[TreatmentClass, str] = field(default_factory=lambda: dict(DEFAULT_PALETTE))
    unlisted_policy: str = "last"
    node_size_range: Tuple[float, float] = (2.0, 40.0)
    edge_width_range: Tuple[float, float] = (0.25, 3.0)
    label_radius: float = 1.4
    edge_color: str = "#314f56"
    node_edge_color: str = "#525252"
    figsize: Tuple[float, float] = (7.0, 7.0)

    def __post_init__(self) -> None:
        if self.unlisted_policy not in UNLISTED_POLICIES:
            raise ValueError(
                f"Unknown unlisted_policy '{self.unlisted_policy}'. Options: {sorted(UNLISTED_POLICIES)}"
            )
        duplicated = {t for t in self.treatment_order if self.treatment_order.count(t) > 1}
        if duplicated:
            raise ValueError(f"treatment_order lists {sorted(duplicated)} more than once.")

    @property
    def rank_table(self) -> Dict[str, int]:
        """Explicit treatment -> rank mapping."""
        return {treatment: rank for rank, treatment in enumerate(self.treatment_order)}

    def classify(self, label: str) -> TreatmentClass:
        """Return the drug class for a treatment label."""
        for rule in self.class_rules:
            if rule.matches(label):
                return rule.treatment_class
        return TreatmentClass.OTHER

    def assign_ranks(self, treatments: Iterable[str]) -> Dict[str, int]:
        """Return display ranks, applying ``unlisted_policy`` to unknown labels."""
        table = self.rank_table
        treatments = list(dict.fromkeys(treatments))
        unlisted = sorted(t for t in treatments if t not in table)
        if unlisted:
            if self.unlisted_policy == "error":
                raise SchemaError(f"[{self.name}] treatments missing from display order: {unlisted}")
            warnings.warn(
                f"[{self.name}] treatments missing from display order ranked last: {unlisted}",
                UserWarning,
            )
        ranks = {t: table[t] for t in treatments if t in table}
        offset = len(table)
        for i, treatment in enumerate(unlisted):
            ranks[treatment] = offset + i
        return ranks

    def get_color(self, treatment_class: TreatmentClass) -> str:
        return self.palette.get(TreatmentClass(treatment_class), self.palette[TreatmentClass.OTHER])


EXCHANGEABLE_SCHEMA = NetworkSchema(
    name="exchangeable",
    filename=INPUT_FILE_MAP["exchangeable"],
    description="Exchangeable dose effects: one node per agent and dose.",
    treatment_order=[
        "Placebo",
        "mPSL 4.0 mg/kg",
        "mPSL 5.0 mg/kg",
        "mPSL 19.6 mg/kg",
        "mPSL 22.4 mg/kg",
        "mPSL 37.8 mg/kg",
        "mPSL 41.6 mg/kg",
        "DEX 60 mg",
        "DEX 120 mg",
        "DEX 150 mg",
        "HC 600 mg",
        "HC 1400 mg",
        "HC 1500 mg",
    ],
)

EQUAL_SCHEMA = NetworkSchema(
    name="equal",
    filename=INPUT_FILE_MAP["equal"],
    description="Equal dose effects: one node per agent class.",
    treatment_order=["Placebo", "mPSL", "DEX", "DEX_2", "HC"],
    node_size_range=(15.0, 40.0),
    label_radius=1.3,
)


SCHEMAS: Dict[str, NetworkSchema] = {
    EXCHANGEABLE_SCHEMA.name: EXCHANGEABLE_SCHEMA,
    EQUAL_SCHEMA.name: EQUAL_SCHEMA,
}


def get_schema(name: str) -> NetworkSchema:
    if name not in SCHEMAS:
        raise SchemaError(f"Unknown schema variant '{name}'. Options: {list(SCHEMAS.keys())}")
    return SCHEMAS[name]


__all__ = [
    "BASE_OUTPUT",
    "ClassRule",
    "NetworkSchema",
    "SCHEMAS",
    "TreatmentClass",
    "get_schema",
]
