from __future__ import annotations

import warnings
from math import comb

import matplotlib.pyplot as plt
import networkx as nx
import numpy as np
import pandas as pd
import pytest

from corticosteroid_nma.errors import ReferentialError, SchemaError
from corticosteroid_nma.network_analysis import (
    SCHEMAS,
    NetworkSchema,
    TreatmentClass,
    build_graph,
    generate_pairwise_edges,
    get_schema,
    plot_network,
    prepare_network_tables,
    run,
    summarize_edges,
    validate_network,
)
from corticosteroid_nma.network_analysis.network_suite import _area_rescale
from corticosteroid_nma.preprocessing import reshape_trial_table

pytestmark = pytest.mark.unit


@pytest.fixture
def drug_schema() -> NetworkSchema:
    return NetworkSchema(
        name="drugs",
        filename="drugs.csv",
        description="Toy network",
        treatment_order=["Placebo", "DrugA", "DrugB"],
    )


def _edge(summary: pd.DataFrame, a: str, b: str) -> pd.Series:
    t1, t2 = sorted([a, b])
    row = summary[(summary["t1"] == t1) & (summary["t2"] == t2)]
    assert len(row) == 1
    return row.iloc[0]


def test_two_study_example_edges_and_nodes(two_study_frame, drug_schema) -> None:
    tables = prepare_network_tables(two_study_frame, drug_schema)
    edges = tables.edges_summary

    assert len(edges) == 3
    assert (_edge(edges, "Placebo", "DrugA")[["k", "n_sum"]].tolist()) == [2, 163]
    assert (_edge(edges, "Placebo", "DrugB")[["k", "n_sum"]].tolist()) == [1, 59]
    assert (_edge(edges, "DrugA", "DrugB")[["k", "n_sum"]].tolist()) == [1, 60]

    nodes = tables.nodes_summary.set_index("treatment")
    assert nodes.loc["Placebo", "n_total"] == 80
    assert nodes.loc["DrugA", "n_total"] == 83
    assert nodes.loc["DrugB", "n_total"] == 29
    assert tables.nodes_summary["treatment"].tolist() == ["Placebo", "DrugA", "DrugB"]


@pytest.mark.parametrize("m", [2, 3, 4, 5])
def test_study_with_m_treatments_yields_m_choose_2_edges(wide_frame_fn, m) -> None:
    arms = [(f"T{i}", 10 + i, 1) for i in range(m)]
    study_df = reshape_trial_table(wide_frame_fn({"S1": arms}))
    assert len(generate_pairwise_edges(study_df)) == comb(m, 2)


def test_reversed_pairs_share_one_edge_row(wide_frame_fn) -> None:
    df = wide_frame_fn({
        "S1": [("Zeta", 10, 1), ("Alpha", 11, 1)],
        "S2": [("Alpha", 20, 2), ("Zeta", 21, 2)],
    })
    summary = summarize_edges(generate_pairwise_edges(reshape_trial_table(df)))
    assert summary[["t1", "t2", "k", "n_sum"]].values.tolist() == [["Alpha", "Zeta", 2, 62]]


def test_single_arm_study_counts_in_nodes_but_not_edges(wide_frame_fn, drug_schema) -> None:
    df = wide_frame_fn({
        "S1": [("Placebo", 50, 20), ("DrugA", 52, 15)],
        "Solo": [("DrugB", 40, 12)],
    })
    tables = prepare_network_tables(df, drug_schema)
    nodes = tables.nodes_summary.set_index("treatment")

    assert tables.single_arm_studies == ["Solo"]
    assert nodes.loc["DrugB", "n_total"] == 40
    assert "DrugB" not in set(tables.edges_summary["t1"]) | set(tables.edges_summary["t2"])

    graph = build_graph(tables.edges_summary, tables.nodes_summary)
    assert graph.degree("DrugB") == 0
    assert nx.number_connected_components(graph) == 2


def test_n_total_matches_study_treatment_sums(corticosteroid_frame) -> None:
    tables = prepare_network_tables(corticosteroid_frame, get_schema("exchangeable"))
    expected = tables.study_treatments.groupby("treatment")["n"].sum()
    observed = tables.nodes_summary.set_index("treatment")["n_total"]
    pd.testing.assert_series_equal(observed.sort_index(), expected.sort_index(), check_names=False)


def test_validate_network_rejects_unknown_endpoint() -> None:
    edges = pd.DataFrame({"t1": ["A"], "t2": ["B"], "k": [1], "n_sum": [10]})
    nodes = pd.DataFrame({"treatment": ["A"], "n_total": [5], "treatment_class": ["Other"], "rank": [0]})
    with pytest.raises(ReferentialError):
        validate_network(edges, nodes)


def test_validate_network_rejects_self_loop() -> None:
    edges = pd.DataFrame({"t1": ["A"], "t2": ["A"], "k": [1], "n_sum": [10]})
    nodes = pd.DataFrame({"treatment": ["A"], "n_total": [5], "treatment_class": ["Other"], "rank": [0]})
    with pytest.raises(ReferentialError):
        validate_network(edges, nodes)


@pytest.mark.parametrize(
    "label, expected",
    [
        ("mPSL 4.0 mg/kg", TreatmentClass.MPSL),
        ("DEX_2", TreatmentClass.DEX),
        ("HC 600 mg", TreatmentClass.HC),
        ("Placebo", TreatmentClass.PLACEBO),
        ("Placebo + standard care", TreatmentClass.OTHER),
        ("Prednisolone", TreatmentClass.OTHER),
    ],
)
def test_classification(label, expected) -> None:
    assert get_schema("exchangeable").classify(label) is expected


def test_nodes_carry_class_tag_from_ingestion(corticosteroid_frame) -> None:
    tables = prepare_network_tables(corticosteroid_frame, get_schema("exchangeable"))
    assert "treatment_class" in tables.study_treatments.columns
    classes = dict(zip(tables.nodes_summary["treatment"], tables.nodes_summary["treatment_class"]))
    assert classes["DEX 150 mg"] is TreatmentClass.DEX
    assert classes["Placebo"] is TreatmentClass.PLACEBO


def test_unlisted_treatment_ranked_last_with_warning(wide_frame_fn) -> None:
    df = wide_frame_fn({"S1": [("Placebo", 10, 1), ("Budesonide", 12, 2), ("mPSL", 11, 1)]})
    with pytest.warns(UserWarning, match="Budesonide"):
        tables = prepare_network_tables(df, get_schema("equal"))
    assert tables.nodes_summary["treatment"].tolist() == ["Placebo", "mPSL", "Budesonide"]


def test_unlisted_treatment_error_policy(wide_frame_fn) -> None:
    schema = NetworkSchema(
        name="strict",
        filename="strict.csv",
        description="Strict ordering",
        treatment_order=["Placebo", "DrugA"],
        unlisted_policy="error",
    )
    df = wide_frame_fn({"S1": [("Placebo", 10, 1), ("DrugZ", 12, 2)]})
    with pytest.raises(SchemaError):
        prepare_network_tables(df, schema)


def test_schema_rejects_duplicate_order_entries() -> None:
    with pytest.raises(ValueError):
        NetworkSchema(name="dup", filename="x.csv", description="", treatment_order=["A", "A"])


def test_unknown_variant() -> None:
    with pytest.raises(SchemaError):
        get_schema("nope")
    assert set(SCHEMAS) == {"exchangeable", "equal"}


def test_graph_nodes_follow_rank_order(corticosteroid_frame) -> None:
    schema = get_schema("exchangeable")
    with warnings.catch_warnings():
        warnings.simplefilter("error", UserWarning)
        tables = prepare_network_tables(corticosteroid_frame, schema)
    graph = build_graph(tables.edges_summary, tables.nodes_summary)
    order = list(graph.nodes())
    assert order[0] == "Placebo"
    assert [graph.nodes[n]["rank"] for n in order] == sorted(graph.nodes[n]["rank"] for n in order)
    assert graph.edges["Placebo", "DEX 150 mg"]["k"] == 1


def test_plot_network_draws_labels(two_study_frame, drug_schema) -> None:
    tables = prepare_network_tables(two_study_frame, drug_schema)
    graph = build_graph(tables.edges_summary, tables.nodes_summary)
    fig = plot_network(graph, drug_schema)
    texts = [t.get_text() for t in fig.axes[0].texts]
    assert "Placebo\n80 patients" in texts
    assert any(t == "k = 2\nn = 163" for t in texts)
    plt.close(fig)


def test_run_saves_png_and_pdf(tmp_path, write_csv, corticosteroid_frame) -> None:
    path = write_csv(corticosteroid_frame, "np_exchangeable.csv")
    results = run("exchangeable", input_path=path, output_dir=tmp_path / "out", verbose=False)
    assert [p.suffix for p in results.saved_paths] == [".png", ".pdf"]
    assert all(p.exists() for p in results.saved_paths)
    assert results.graph.number_of_nodes() == 6
    assert results.tables.single_arm_studies == ["Bernard 1987"]


def test_node_area_grows_linearly_with_patients() -> None:
    diameters = _area_rescale([0.0, 25.0, 100.0], (10.0, 30.0))
    np.testing.assert_allclose(diameters, [10.0, 20.0, 30.0])
    np.testing.assert_allclose(_area_rescale([5.0, 5.0], (10.0, 30.0)), [20.0, 20.0])
