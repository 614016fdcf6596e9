"""
Dose-Response Model Suite
=========================

Fits the registered dose-response NMA models with PyMC, prints ArviZ
summaries and fit statistics, compares models with LOO and residual
deviance, and predicts absolute response curves for the chosen model.

Model
-----
    r[i] ~ Binomial(n[i], p[i])
    logit(p[i]) = mu[study(i)] + delta[i]
    delta[i] = 0                                   (reference arm)
    delta[i] ~ N(f(dose[i]) - f(dose[ref]), tau)   (random)
    cov(delta[i], delta[j]) = tau^2 / 2           (same study, both non-reference)
    delta[i] = f(dose[i]) - f(dose[ref])           (common)

Usage:
    python -m corticosteroid_nma.dose_response
    python -m corticosteroid_nma.dose_response --model emax spline --draws 500
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import arviz as az
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pymc as pm
import seaborn as sns
from scipy.special import expit, logit, xlogy

from ..network_analysis.network_suite import save_figure
from ..preprocessing import PLACEBO_LABEL, get_input_file, load_arm_table
from ._config import (
    BASE_OUTPUT,
    BASELINE_PRIOR_SD,
    MODEL_SPECS,
    TAU_PRIOR_SD,
    ModelSpec,
    PredictionConfig,
    SamplerConfig,
    get_model_spec,
)
from .functions import DoseFunction, NonParametric
from .network import DoseResponseNetwork

if sys.platform.startswith("win") and hasattr(sys.stdout, "reconfigure"):
    sys.stdout.reconfigure(encoding="utf-8")


SPLIT_SPEC = ModelSpec("split", "Split NMA", NonParametric, {"direction": None}, method="common")


# =============================================================================
# RESULT CONTAINERS
# =============================================================================

@dataclass
class DoseResponseFit:
    """A fitted model: its spec, prepared dose function and posterior."""

    spec: ModelSpec
    function: DoseFunction
    network: DoseResponseNetwork
    model: pm.Model
    idata: az.InferenceData

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def method(self) -> str:
        return self.spec.method


@dataclass
class ModelComparison:
    table: pd.DataFrame
    best: str


@dataclass
class DoseResponsePrediction:
    """Predicted response probability per agent and dose (quantiles over draws)."""

    model: str
    config: PredictionConfig
    table: pd.DataFrame


@dataclass
class DoseResponseResults:
    network: DoseResponseNetwork
    fits: Dict[str, DoseResponseFit]
    summaries: Dict[str, pd.DataFrame]
    comparison: Optional[ModelComparison]
    prediction: Optional[DoseResponsePrediction]
    split: Optional[pd.DataFrame] = None
    figure: Optional[plt.Figure] = None
    saved_paths: List[Path] = field(default_factory=list)


# =============================================================================
# FITTING
# =============================================================================

def _arm_effects(function: DoseFunction, theta: Dict[str, object], design: Dict[str, np.ndarray]):
    """Dose-response effect at each arm, relative to the study's reference arm."""
    index = design["treatment_idx"] if function.index_by == "treatment" else design["agent_idx"]
    basis = function.basis(design["agent_idx"], design["dose"])
    aligned = {name: value[index] for name, value in theta.items()}
    f_arm = function.effect(aligned, design["dose"], basis, xp=pm.math)
    return (f_arm - f_arm[design["ref_pos"]]) * design["non_ref"]


def heterogeneity(tau, u_arm, z, non_ref):
    """
    Random-effect deviation per arm, zero on reference arms.

    Each non-reference arm has variance tau^2; two non-reference arms of one
    study share ``u`` and so have covariance tau^2 / 2.
    """
    return tau * (u_arm + z) / np.sqrt(2.0) * non_ref


def build_model(network: DoseResponseNetwork, function: DoseFunction, method: str = "random") -> pm.Model:
    design = network.design()
    coords = {**network.coords(), **function.coords()}

    with pm.Model(coords=coords) as model:
        mu = pm.Normal("mu", mu=0.0, sigma=BASELINE_PRIOR_SD, dims="study")
        theta = function.add_priors()
        rel = _arm_effects(function, theta, design)

        if method == "random":
            tau = pm.HalfNormal("tau", sigma=TAU_PRIOR_SD)
            u = pm.Normal("u", mu=0.0, sigma=1.0, dims="study")
            z = pm.Normal("z", mu=0.0, sigma=1.0, dims="arm")
            delta = rel + heterogeneity(tau, u[design["study_idx"]], z, design["non_ref"])
        else:
            delta = rel

        eta = mu[design["study_idx"]] + delta
        pm.Deterministic("p", pm.math.invlogit(eta), dims="arm")
        pm.Binomial("r", n=design["n"], logit_p=eta, observed=design["r"], dims="arm")

    return model


def fit_model(
    network: DoseResponseNetwork,
    spec: Union[str, ModelSpec],
    sampler: Optional[SamplerConfig] = None,
    verbose: bool = True,
) -> DoseResponseFit:
    """Build and sample one dose-response model."""
    spec = get_model_spec(spec) if isinstance(spec, str) else spec
    sampler = sampler or SamplerConfig()
    function = spec.build().prepare(network)

    if verbose:
        print(f"\n[INFO] Fitting {spec.label} ({function.label}, method={spec.method})")

    model = build_model(network, function, spec.method)
    with model:
        idata = pm.sample(
            draws=sampler.draws,
            tune=sampler.tune,
            chains=sampler.chains,
            cores=sampler.cores,
            target_accept=sampler.target_accept,
            random_seed=sampler.random_seed,
            progressbar=sampler.progressbar and verbose,
            idata_kwargs={"log_likelihood": True},
        )

    return DoseResponseFit(spec=spec, function=function, network=network, model=model, idata=idata)


def fit_split_nma(
    network: DoseResponseNetwork,
    sampler: Optional[SamplerConfig] = None,
    verbose: bool = True,
) -> DoseResponseFit:
    """Treatment-level NMA with every agent-dose as its own node."""
    return fit_model(network, SPLIT_SPEC, sampler, verbose=verbose)


# =============================================================================
# SUMMARIES
# =============================================================================

def _draws(idata: az.InferenceData, name: str) -> np.ndarray:
    values = idata.posterior[name].values
    return values.reshape((-1,) + values.shape[2:])


def _binomial_deviance(r: np.ndarray, n: np.ndarray, p: np.ndarray) -> np.ndarray:
    """Residual deviance contribution per arm (saturated-model reference)."""
    rhat = n * p
    return 2.0 * (
        xlogy(r, r) - xlogy(r, rhat)
        + xlogy(n - r, n - r) - xlogy(n - r, n - rhat)
    )


def fit_statistics(fit: DoseResponseFit) -> Dict[str, float]:
    """
    Residual deviance, effective parameters and DIC.

    ``resdev`` is the posterior mean of the total residual deviance; ``pD``
    uses the plug-in deviance at the posterior mean fitted probabilities.
    """
    design = fit.network.design()
    p = _draws(fit.idata, "p")
    dev_draws = _binomial_deviance(design["r"], design["n"], p).sum(axis=1)
    resdev = float(dev_draws.mean())
    dev_plugin = float(_binomial_deviance(design["r"], design["n"], p.mean(axis=0)).sum())
    pd_eff = resdev - dev_plugin
    return {
        "resdev": resdev,
        "n_data_points": int(len(design["r"])),
        "pD": pd_eff,
        "DIC": resdev + pd_eff,
    }


def _summary_vars(fit: DoseResponseFit) -> List[str]:
    names = list(fit.function.summary_vars)
    if fit.method == "random":
        names.append("tau")
    return names


def summarize_fit(fit: DoseResponseFit, verbose: bool = True) -> pd.DataFrame:
    """ArviZ summary of dose-response parameters (and tau)."""
    summary = az.summary(fit.idata, var_names=_summary_vars(fit), hdi_prob=0.95, round_to=3)
    summary = summary.drop(index=[i for i in summary.index if i.endswith(f"[{PLACEBO_LABEL}]")])

    if verbose:
        stats = fit_statistics(fit)
        print("\n" + "=" * 70)
        print(f"MODEL: {fit.spec.label.upper()} [{fit.name}]")
        print("=" * 70)
        print(summary.to_string())
        print(f"\n  Residual deviance: {stats['resdev']:.2f}")
        print(f"  Data points:       {stats['n_data_points']}")
        print(f"  pD:                {stats['pD']:.2f}")
        print(f"  DIC:               {stats['DIC']:.2f}")
        if "r_hat" in summary.columns and (summary["r_hat"] > 1.05).any():
            print("  [WARN] r_hat > 1.05 for: " + ", ".join(summary.index[summary["r_hat"] > 1.05]))

    return summary


def compare_models(fits: Dict[str, DoseResponseFit], verbose: bool = True) -> ModelComparison:
    """LOO comparison joined with deviance statistics; best model first."""
    if not fits:
        raise ValueError("No fitted models to compare.")

    stats = pd.DataFrame({name: fit_statistics(fit) for name, fit in fits.items()}).T
    if len(fits) > 1:
        loo = az.compare({name: fit.idata for name, fit in fits.items()}, ic="loo")
        table = loo.join(stats)
    else:
        table = stats
    best = str(table.index[0])

    if verbose:
        print("\n" + "=" * 70)
        print("MODEL COMPARISON")
        print("=" * 70)
        print(table.round(3).to_string())
        print(f"\n[INFO] Best model: {best} ({fits[best].spec.label})")

    return ModelComparison(table=table, best=best)


# =============================================================================
# PREDICTION
# =============================================================================

def _effect_draws(fit: DoseResponseFit, agent_idx: int, doses: np.ndarray) -> np.ndarray:
    """Posterior draws of f(dose) for one agent, shape (S, n_doses)."""
    function = fit.function
    draws = function.padded_draws(fit.idata.posterior)
    index = function.prediction_index(agent_idx, doses)
    basis = function.basis(np.full(len(doses), agent_idx), doses)
    aligned = {name: value[:, index] for name, value in draws.items()}
    return np.asarray(function.effect(aligned, doses, basis, xp=np))


def predict(
    fit: DoseResponseFit,
    config: Optional[PredictionConfig] = None,
    verbose: bool = True,
) -> DoseResponsePrediction:
    """
    Absolute response curves per active agent.

    Response probability is expit(logit(E0) + f(dose)) with f evaluated on a
    grid from 0 to the agent's maximum observed dose (observed doses for the
    non-parametric form). With ``interval="pred"`` a between-study deviation
    N(0, tau) is added to every draw of a random-effects fit.
    """
    config = config or PredictionConfig()
    network = fit.network
    rng = np.random.default_rng(config.random_seed)
    tau = _draws(fit.idata, "tau") if fit.method == "random" else None

    rows = []
    for agent_idx in range(1, network.n_agents):
        doses = fit.function.prediction_doses(agent_idx, config.n_doses)
        effect = _effect_draws(fit, agent_idx, doses)
        if config.interval == "pred" and tau is not None:
            effect = effect + rng.standard_normal(effect.shape) * tau[:, None]
        prob = expit(logit(config.e0) + effect)
        lower, median, upper = np.quantile(prob, config.quantiles, axis=0)
        for j, dose in enumerate(doses):
            rows.append({
                "agent": network.agents[agent_idx],
                "dose": float(dose),
                "lower": lower[j],
                "median": median[j],
                "upper": upper[j],
            })

    table = pd.DataFrame(rows)
    if verbose:
        print("\n" + "=" * 70)
        print(f"PREDICTED RESPONSE: {fit.spec.label.upper()} (E0 = {config.e0})")
        print("=" * 70)
        print(table.round(3).to_string(index=False))

    return DoseResponsePrediction(model=fit.name, config=config, table=table)


def split_estimates(split: DoseResponseFit, e0: float = 0.394) -> pd.DataFrame:
    """Split NMA node estimates converted to response probabilities."""
    network = split.network
    d = _draws(split.idata, "d")
    prob = expit(logit(e0) + d)
    lower, median, upper = np.quantile(prob, (0.025, 0.5, 0.975), axis=0)
    table = network.treatments[["treatment", "agent", "dose"]].copy()
    table["lower"], table["median"], table["upper"] = lower, median, upper
    return table[table["agent"] != PLACEBO_LABEL].reset_index(drop=True)


# =============================================================================
# PLOTTING
# =============================================================================

def plot_predictions(
    prediction: DoseResponsePrediction,
    network: DoseResponseNetwork,
    split: Optional[pd.DataFrame] = None,
    show_observed: bool = True,
) -> plt.Figure:
    """One panel per agent: median curve, credible band, observed arms, split NMA."""
    sns.set_style("whitegrid")
    agents = network.agents[1:]
    fig, axes = plt.subplots(1, len(agents), figsize=(4.5 * len(agents), 4.2), squeeze=False)
    table = prediction.table
    arms = network.arms

    for ax, agent in zip(axes[0], agents):
        curve = table[table["agent"] == agent]
        ax.fill_between(curve["dose"], curve["lower"], curve["upper"], color="#9ecae1", alpha=0.4, label="95% CrI")
        ax.plot(curve["dose"], curve["median"], color="#08519c", lw=2, label="Median")

        if show_observed:
            observed = arms[(arms["agent"] == agent) | (arms["agent"] == PLACEBO_LABEL)]
            ax.scatter(observed["dose"], observed["r"] / observed["n"], s=np.sqrt(observed["n"]) * 4,
                       color="#525252", alpha=0.6, label="Observed arms", zorder=3)

        if split is not None:
            nodes = split[split["agent"] == agent]
            ax.errorbar(
                nodes["dose"], nodes["median"],
                yerr=[nodes["median"] - nodes["lower"], nodes["upper"] - nodes["median"]],
                fmt="o", color="#e6550d", capsize=3, label="Split NMA", zorder=4,
            )

        ax.set_title(agent, fontweight="bold")
        ax.set_xlabel("Dose")
        ax.set_ylim(0, 1)

    axes[0][0].set_ylabel(f"Predicted response (E0 = {prediction.config.e0})")
    axes[0][0].legend(loc="best", fontsize=8)
    fig.suptitle(f"Dose-response predictions: {prediction.model}", fontweight="bold")
    fig.tight_layout()
    return fig


# =============================================================================
# PUBLIC API
# =============================================================================

def run(
    models: Optional[Sequence[str]] = None,
    input_path: Optional[Union[str, Path]] = None,
    sampler: Optional[SamplerConfig] = None,
    prediction: Optional[PredictionConfig] = None,
    predict_with: str = "spline",
    overlay_split: bool = True,
    output_dir: Optional[Union[str, Path]] = None,
    save: bool = True,
    show: bool = False,
    verbose: bool = True,
) -> DoseResponseResults:
    """
    Entry point for the dose-response model comparison.

    Args:
        models: Registered model names (default: all, in registry order).
        predict_with: Model used for prediction; falls back to the best model
            by LOO when it was not fitted.
    """
    names = list(models) if models else list(MODEL_SPECS.keys())
    specs = [get_model_spec(name) for name in names]
    sampler = sampler or SamplerConfig()
    prediction = prediction or PredictionConfig()

    if verbose:
        print("=" * 70)
        print("DOSE-RESPONSE MODEL SUITE")
        print("=" * 70)
        print(f"Models: {', '.join(names)}")

    path = Path(input_path) if input_path is not None else get_input_file("dose_response")
    network = DoseResponseNetwork.from_frame(load_arm_table(path, verbose=verbose))
    if verbose:
        print("\n" + network.summary())

    fits: Dict[str, DoseResponseFit] = {}
    summaries: Dict[str, pd.DataFrame] = {}
    for spec in specs:
        fits[spec.name] = fit_model(network, spec, sampler, verbose=verbose)
        summaries[spec.name] = summarize_fit(fits[spec.name], verbose=verbose)

    comparison = compare_models(fits, verbose=verbose)

    chosen = predict_with if predict_with in fits else comparison.best
    if chosen != predict_with and verbose:
        print(f"[WARN] '{predict_with}' was not fitted; predicting with '{chosen}'")
    pred = predict(fits[chosen], prediction, verbose=verbose)

    split_table = None
    if overlay_split:
        split_table = split_estimates(fit_split_nma(network, sampler, verbose=verbose), prediction.e0)

    fig = plot_predictions(pred, network, split=split_table)
    results = DoseResponseResults(
        network=network, fits=fits, summaries=summaries, comparison=comparison,
        prediction=pred, split=split_table, figure=fig,
    )

    if save:
        target = Path(output_dir) if output_dir is not None else BASE_OUTPUT
        results.saved_paths = save_figure(fig, target, f"dose_response_{chosen}")
        if verbose:
            for saved in results.saved_paths:
                print(f"Saved: {saved}")

    if show:
        plt.show()
    else:
        plt.close(fig)

    return results


def list_models() -> None:
    """Print registered dose-response models."""
    print("\nAvailable dose-response models:")
    for key, spec in MODEL_SPECS.items():
        print(f"  {key:<10} - {spec.label} (method={spec.method})")
