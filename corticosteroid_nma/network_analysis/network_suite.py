"""
Treatment Network Suite
=======================

Builds the evidence network of a dose-response NMA from a wide trial table:
- Pairwise direct comparisons per study (edges)
- Study multiplicity (k) and pooled sample size per comparison
- Node weights (patients per treatment) and drug-class colouring
- Circular network diagram

Usage:
    python -m corticosteroid_nma.network_analysis --variant exchangeable

Programmatic:
    from corticosteroid_nma.network_analysis.network_suite import run
    run(variant="equal")
"""

from __future__ import annotations

import sys
if sys.platform.startswith("win") and hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(encoding="utf-8")

from dataclasses import dataclass, field
from itertools import combinations
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import networkx as nx
import numpy as np
import pandas as pd

from ..errors import DegenerateInputError, ReferentialError
from ..preprocessing import DATA_DIR, STUDY_COL, load_trial_table, reshape_trial_table
from ._config import BASE_OUTPUT, SCHEMAS, NetworkSchema, TreatmentClass, get_schema

# Size ranges are in millimetres; matplotlib wants points.
_MM_TO_PT = 72.27 / 25.4


# =============================================================================
# HELPER DATA STRUCTURES
# =============================================================================

@dataclass
class NetworkTables:
    """Derived tables feeding the network graph."""

    study_treatments: pd.DataFrame
    edges: pd.DataFrame
    edges_summary: pd.DataFrame
    nodes_summary: pd.DataFrame
    single_arm_studies: List[object]


@dataclass
class NetworkResults:
    """Outputs of one network run."""

    schema: NetworkSchema
    tables: NetworkTables
    graph: nx.Graph
    figure: Optional[plt.Figure] = None
    saved_paths: List[Path] = field(default_factory=list)


# =============================================================================
# EDGES AND NODES
# =============================================================================

def generate_pairwise_edges(study_df: pd.DataFrame) -> pd.DataFrame:
    """
    Enumerate every unordered treatment pair within each study.

    A study with m treatments yields C(m, 2) rows. Labels are stored in
    sorted order (``t1 <= t2``) so reversed pairs from different studies
    group together. Single-arm studies contribute no rows.
    """
    records: List[Dict[str, object]] = []
    for study, group in study_df.groupby(STUDY_COL, sort=True):
        arms = list(zip(group["treatment"], group["n"]))
        for (ta, na), (tb, nb) in combinations(arms, 2):
            (t1, n1), (t2, n2) = sorted([(ta, na), (tb, nb)], key=lambda arm: str(arm[0]))
            records.append({
                STUDY_COL: study,
                "t1": t1,
                "t2": t2,
                "n1": int(n1),
                "n2": int(n2),
                "total_n_edge": int(n1) + int(n2),
            })

    columns = [STUDY_COL, "t1", "t2", "n1", "n2", "total_n_edge"]
    return pd.DataFrame(records, columns=columns)


def summarize_edges(edges: pd.DataFrame) -> pd.DataFrame:
    """Group pairwise rows by treatment pair: study count ``k`` and ``n_sum``."""
    if edges.empty:
        return pd.DataFrame(columns=["t1", "t2", "k", "n_sum"])
    summary = (
        edges.groupby(["t1", "t2"], sort=True)
        .agg(k=(STUDY_COL, "size"), n_sum=("total_n_edge", "sum"))
        .reset_index()
    )
    summary["k"] = summary["k"].astype("int64")
    summary["n_sum"] = summary["n_sum"].astype("int64")
    return summary


def summarize_nodes(study_df: pd.DataFrame, schema: NetworkSchema) -> pd.DataFrame:
    """
    Total patients per treatment, with drug class and display rank.

    Built from the study-treatment table, so treatments seen only in
    single-arm studies still count towards ``n_total``.
    """
    if study_df.empty:
        raise DegenerateInputError("No treatments to summarise.")

    nodes = (
        study_df.groupby("treatment", sort=True)
        .agg(n_total=("n", "sum"))
        .reset_index()
    )
    nodes["n_total"] = nodes["n_total"].astype("int64")

    if "treatment_class" in study_df.columns:
        class_map = study_df.drop_duplicates("treatment").set_index("treatment")["treatment_class"]
        nodes["treatment_class"] = nodes["treatment"].map(class_map)
    else:
        nodes["treatment_class"] = nodes["treatment"].map(schema.classify)

    ranks = schema.assign_ranks(nodes["treatment"])
    nodes["rank"] = nodes["treatment"].map(ranks).astype("int64")
    return nodes.sort_values("rank").reset_index(drop=True)


def single_arm_studies(study_df: pd.DataFrame) -> List[object]:
    """Studies that compare fewer than two treatments."""
    counts = study_df.groupby(STUDY_COL)["treatment"].nunique()
    return counts[counts < 2].index.tolist()


def validate_network(edges_summary: pd.DataFrame, nodes_summary: pd.DataFrame) -> None:
    """Fail if an edge endpoint is missing from the nodes or an edge is a self-loop."""
    node_set = set(nodes_summary["treatment"])
    endpoints = set(edges_summary["t1"]) | set(edges_summary["t2"])
    missing = sorted(endpoints - node_set, key=str)
    if missing:
        raise ReferentialError(f"Edge endpoints absent from node table: {missing}")

    loops = edges_summary[edges_summary["t1"] == edges_summary["t2"]]
    if not loops.empty:
        raise ReferentialError(f"Self-loop comparisons found: {loops['t1'].tolist()}")


def prepare_network_tables(df: pd.DataFrame, schema: NetworkSchema, verbose: bool = False) -> NetworkTables:
    """Reshape a wide trial table and derive edge and node summaries."""
    study_df = reshape_trial_table(df, classify=schema.classify, verbose=verbose)
    if study_df["treatment"].nunique() == 0:
        raise DegenerateInputError("No treatments found in trial table.")

    edges = generate_pairwise_edges(study_df)
    edges_summary = summarize_edges(edges)
    nodes_summary = summarize_nodes(study_df, schema)
    validate_network(edges_summary, nodes_summary)

    single = single_arm_studies(study_df)
    if single and verbose:
        print(f"[WARN] {len(single)} single-arm stud{'y' if len(single) == 1 else 'ies'} "
              f"(counted in node totals, no edges): {single}")

    return NetworkTables(
        study_treatments=study_df,
        edges=edges,
        edges_summary=edges_summary,
        nodes_summary=nodes_summary,
        single_arm_studies=single,
    )


# =============================================================================
# GRAPH
# =============================================================================

def build_graph(edges_summary: pd.DataFrame, nodes_summary: pd.DataFrame) -> nx.Graph:
    """Undirected graph with nodes inserted in display-rank order."""
    validate_network(edges_summary, nodes_summary)

    G = nx.Graph()
    for _, row in nodes_summary.sort_values("rank").iterrows():
        G.add_node(
            row["treatment"],
            n_total=int(row["n_total"]),
            treatment_class=TreatmentClass(row["treatment_class"]),
            rank=int(row["rank"]),
        )

    for _, row in edges_summary.iterrows():
        G.add_edge(row["t1"], row["t2"], k=int(row["k"]), n_sum=int(row["n_sum"]))

    return G


def _area_rescale(values: Sequence[float], out_range: Tuple[float, float]) -> np.ndarray:
    """Diameters whose area, not width, grows linearly with ``values``."""
    arr = np.asarray(values, dtype=float)
    lo, hi = out_range
    if arr.size == 0:
        return arr
    span = arr.max() - arr.min()
    if span == 0:
        return np.full(arr.shape, (lo + hi) / 2.0)
    return lo + np.sqrt((arr - arr.min()) / span) * (hi - lo)


def _rescale(values: Sequence[float], out_range: Tuple[float, float]) -> np.ndarray:
    """Linear rescale into ``out_range``; constant input maps to the midpoint."""
    arr = np.asarray(values, dtype=float)
    lo, hi = out_range
    if arr.size == 0:
        return arr
    span = arr.max() - arr.min()
    if span == 0:
        return np.full(arr.shape, (lo + hi) / 2.0)
    return lo + (arr - arr.min()) / span * (hi - lo)


def plot_network(graph: nx.Graph, schema: NetworkSchema, title: Optional[str] = None) -> plt.Figure:
    """
    Draw the network on a circular layout.

    Node area follows total patients, fill follows drug class, edge width
    follows the number of studies and each edge is labelled with k and n.
    """
    nodes = list(graph.nodes())
    pos = nx.circular_layout(graph)

    fig, ax = plt.subplots(figsize=schema.figsize)

    n_total = [graph.nodes[node]["n_total"] for node in nodes]
    diameters = _area_rescale([n / 100 for n in n_total], schema.node_size_range) * _MM_TO_PT
    fills = [schema.get_color(graph.nodes[node]["treatment_class"]) for node in nodes]

    edges = list(graph.edges())
    if edges:
        k_values = [graph.edges[edge]["k"] for edge in edges]
        widths = _rescale(k_values, schema.edge_width_range) * _MM_TO_PT
        nx.draw_networkx_edges(
            graph,
            pos,
            edgelist=edges,
            width=widths,
            edge_color=schema.edge_color,
            alpha=0.99,
            ax=ax,
        )
        edge_labels = {
            edge: f"k = {graph.edges[edge]['k']}\nn = {graph.edges[edge]['n_sum']}"
            for edge in edges
        }
        nx.draw_networkx_edge_labels(
            graph,
            pos,
            edge_labels=edge_labels,
            font_size=3 * _MM_TO_PT,
            rotate=True,
            bbox={"boxstyle": "round,pad=0.1", "fc": "white", "ec": "none", "alpha": 0.8},
            ax=ax,
        )

    nx.draw_networkx_nodes(
        graph,
        pos,
        nodelist=nodes,
        node_size=diameters ** 2,
        node_color=fills,
        edgecolors=schema.node_edge_color,
        linewidths=0.5,
        ax=ax,
    )

    for node, n in zip(nodes, n_total):
        x, y = pos[node] * schema.label_radius
        ax.text(x, y, f"{node}\n{n} patients", ha="center", va="center", fontsize=4 * _MM_TO_PT, color="black")

    limit = schema.label_radius + 0.35
    ax.set_xlim(-limit, limit)
    ax.set_ylim(-limit, limit)
    ax.set_aspect("equal")
    ax.axis("off")
    if title:
        ax.set_title(title)
    fig.tight_layout()
    return fig


def save_figure(fig: plt.Figure, output_dir: Path, stem: str) -> List[Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    png_path = output_dir / f"{stem}.png"
    pdf_path = output_dir / f"{stem}.pdf"
    fig.savefig(png_path, dpi=300, bbox_inches="tight")
    fig.savefig(pdf_path, bbox_inches="tight")
    return [png_path, pdf_path]


# =============================================================================
# PUBLIC API
# =============================================================================

def _print_tables(tables: NetworkTables) -> None:
    print("\n--- Edge summary (k = studies, n_sum = patients) ---")
    print(tables.edges_summary.to_string(index=False))
    print("\n--- Node summary ---")
    nodes = tables.nodes_summary.copy()
    nodes["treatment_class"] = nodes["treatment_class"].map(lambda c: TreatmentClass(c).value)
    print(nodes.to_string(index=False))


def run(
    variant: str = "exchangeable",
    input_path: Optional[Union[str, Path]] = None,
    output_dir: Optional[Union[str, Path]] = None,
    save: bool = True,
    show: bool = False,
    verbose: bool = True,
) -> NetworkResults:
    """
    Entry point for the network plot.
    """
    schema = get_schema(variant)

    if verbose:
        print("=" * 70)
        print("TREATMENT NETWORK SUITE")
        print("=" * 70)
        print(f"Variant: {schema.name} | {schema.description}")

    path = Path(input_path) if input_path is not None else DATA_DIR / schema.filename
    df = load_trial_table(path, verbose=verbose)

    tables = prepare_network_tables(df, schema, verbose=verbose)
    graph = build_graph(tables.edges_summary, tables.nodes_summary)

    if verbose:
        _print_tables(tables)
        print(f"\n[INFO] Graph: {graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges, "
              f"{nx.number_connected_components(graph)} component(s)")

    fig = plot_network(graph, schema)
    results = NetworkResults(schema=schema, tables=tables, graph=graph, figure=fig)

    if save:
        target = Path(output_dir) if output_dir is not None else BASE_OUTPUT / schema.name
        results.saved_paths = save_figure(fig, target, f"network_{schema.name}")
        if verbose:
            for saved in results.saved_paths:
                print(f"Saved: {saved}")

    if show:
        plt.show()
    else:
        plt.close(fig)

    return results


def list_variants() -> None:
    """Print available schema variants."""
    print("\nAvailable network variants:")
    for key, schema in SCHEMAS.items():
        print(f"  {key:<14} - {schema.description}")
