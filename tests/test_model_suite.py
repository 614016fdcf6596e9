from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from corticosteroid_nma.dose_response import (
    DoseResponseNetwork,
    PredictionConfig,
    SamplerConfig,
    compare_models,
    fit_model,
    fit_split_nma,
    fit_statistics,
    plot_predictions,
    predict,
    run,
    split_estimates,
    summarize_fit,
)

pytestmark = pytest.mark.slow

TINY = SamplerConfig(draws=60, tune=60, chains=2, cores=1, random_seed=7, progressbar=False)


@pytest.fixture(scope="module")
def network() -> DoseResponseNetwork:
    frame = pd.DataFrame(
        [
            ("S1", "Placebo", 0, 20, 50),
            ("S1", "DEX", 60, 14, 50),
            ("S2", "Placebo", 0, 25, 60),
            ("S2", "DEX", 120, 15, 58),
            ("S3", "DEX", 60, 12, 40),
            ("S3", "DEX", 150, 9, 41),
        ],
        columns=["studyID", "agent", "dose", "r", "n"],
    )
    return DoseResponseNetwork.from_frame(frame)


@pytest.fixture(scope="module")
def fits(network):
    return {name: fit_model(network, name, TINY, verbose=False) for name in ("emax", "poly1")}


def test_fit_keeps_log_likelihood(fits) -> None:
    assert "log_likelihood" in fits["emax"].idata.groups()
    assert "r" in fits["emax"].idata.log_likelihood


def test_fit_statistics_are_consistent(fits) -> None:
    stats = fit_statistics(fits["poly1"])
    assert stats["n_data_points"] == 6
    assert stats["resdev"] >= 0
    assert stats["DIC"] == pytest.approx(stats["resdev"] + stats["pD"])


def test_summary_reports_parameters_and_tau(fits) -> None:
    summary = summarize_fit(fits["emax"], verbose=False)
    assert any(i.startswith("emax[") for i in summary.index)
    assert "tau" in summary.index
    assert {"mean", "hdi_2.5%", "hdi_97.5%"} <= set(summary.columns)


def test_compare_models_ranks_by_loo(fits) -> None:
    comparison = compare_models(fits, verbose=False)
    assert set(comparison.table.index) == {"emax", "poly1"}
    assert comparison.best == comparison.table.index[0]
    assert "resdev" in comparison.table.columns


def test_prediction_is_anchored_at_e0(fits) -> None:
    prediction = predict(fits["emax"], PredictionConfig(e0=0.3, n_doses=5), verbose=False)
    table = prediction.table
    assert len(table) == 5
    at_zero = table[table["dose"] == 0.0].iloc[0]
    assert at_zero["median"] == pytest.approx(0.3)
    assert (table["lower"] <= table["median"]).all() and (table["median"] <= table["upper"]).all()


def test_predictive_interval_is_wider(fits) -> None:
    cred = predict(fits["emax"], PredictionConfig(interval="cred"), verbose=False).table
    pred = predict(fits["emax"], PredictionConfig(interval="pred"), verbose=False).table
    assert ((pred["upper"] - pred["lower"]).iloc[1:].mean()
            >= (cred["upper"] - cred["lower"]).iloc[1:].mean())


def test_prediction_interval_does_not_depend_on_synth(fits) -> None:
    common = predict(fits["emax"], PredictionConfig(synth="common", interval="pred"), verbose=False).table
    random = predict(fits["emax"], PredictionConfig(synth="random", interval="pred"), verbose=False).table
    cred = predict(fits["emax"], PredictionConfig(synth="common", interval="cred"), verbose=False).table
    pd.testing.assert_frame_equal(common, random)
    assert ((common["upper"] - common["lower"]).iloc[1:].mean()
            > (cred["upper"] - cred["lower"]).iloc[1:].mean())


def test_split_overlay_and_plot(network, fits) -> None:
    split_fit = fit_split_nma(network, TINY, verbose=False)
    assert "tau" not in split_fit.idata.posterior
    split = split_estimates(split_fit, e0=0.394)
    assert split["treatment"].tolist() == ["DEX_60", "DEX_120", "DEX_150"]
    prediction = predict(fits["poly1"], verbose=False)
    fig = plot_predictions(prediction, network, split=split)
    assert len(fig.axes) == 1
    assert np.isfinite(split[["lower", "median", "upper"]].to_numpy()).all()


def test_run_end_to_end(tmp_path, network) -> None:
    path = tmp_path / "drc.csv"
    network.arms[["studyID", "agent", "dose", "r", "n"]].to_csv(path, index=False)
    results = run(
        models=["poly1", "loglin"],
        input_path=path,
        sampler=TINY,
        predict_with="spline",
        overlay_split=False,
        output_dir=tmp_path / "figs",
        verbose=False,
    )
    assert set(results.fits) == {"poly1", "loglin"}
    assert results.prediction.model == results.comparison.best
    assert [p.suffix for p in results.saved_paths] == [".png", ".pdf"]
