"""
Treatment Network Package
=========================

Evidence-network summaries and diagrams for the corticosteroid NMA.

Usage:
    python -m corticosteroid_nma.network_analysis --variant exchangeable

Programmatic:
    from corticosteroid_nma.network_analysis import run
    run(variant="equal")
"""

from ._config import BASE_OUTPUT, SCHEMAS, ClassRule, NetworkSchema, TreatmentClass, get_schema
from .network_suite import (
    NetworkResults,
    NetworkTables,
    build_graph,
    generate_pairwise_edges,
    list_variants,
    plot_network,
    prepare_network_tables,
    run,
    single_arm_studies,
    summarize_edges,
    summarize_nodes,
    validate_network,
)

__all__ = [
    "BASE_OUTPUT",
    "SCHEMAS",
    "ClassRule",
    "NetworkSchema",
    "TreatmentClass",
    "get_schema",
    "NetworkResults",
    "NetworkTables",
    "build_graph",
    "generate_pairwise_edges",
    "list_variants",
    "plot_network",
    "prepare_network_tables",
    "run",
    "single_arm_studies",
    "summarize_edges",
    "summarize_nodes",
    "validate_network",
]
