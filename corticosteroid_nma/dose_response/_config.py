"""
Dose-Response Configuration
===========================

Sampler settings, prediction settings and the registry of dose-response
model specifications fitted by the suite.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

from ..errors import SchemaError
from ..preprocessing.constants import OUTPUT_DOSE_RESPONSE_DIR
from .functions import (
    DoseFunction,
    Emax,
    Exponential,
    FractionalPolynomial,
    IntegratedTwoComponent,
    LogLinear,
    NonParametric,
    Polynomial,
    Spline,
)


# =============================================================================
# OUTPUT PATH
# =============================================================================

BASE_OUTPUT = OUTPUT_DOSE_RESPONSE_DIR


# =============================================================================
# PRIORS
# =============================================================================

BASELINE_PRIOR_SD = 10.0     # study baseline log-odds
EFFECT_PRIOR_SD = 5.0        # dose-response parameters
TAU_PRIOR_SD = 1.0           # between-study SD (HalfNormal)

METHODS = {"random", "common"}


# =============================================================================
# SAMPLER / PREDICTION
# =============================================================================

@dataclass
class SamplerConfig:
    draws: int = 2000
    tune: int = 1000
    chains: int = 4
    target_accept: float = 0.9
    random_seed: int = 42
    cores: Optional[int] = None
    progressbar: bool = True


@dataclass
class PredictionConfig:
    """
    Absolute-response prediction settings.

    ``e0`` is the placebo event probability the relative effects are added
    to (on the logit scale). ``interval="pred"`` adds a between-study draw
    N(0, tau) to every predicted response; ``interval="cred"`` reports
    credible intervals of the mean response. ``synth`` names how E0 would be
    pooled from placebo arms; with a fixed ``e0`` it does not change the
    prediction.
    """

    e0: float = 0.394
    n_doses: int = 15
    synth: str = "random"
    interval: str = "cred"
    quantiles: Tuple[float, float, float] = (0.025, 0.5, 0.975)
    random_seed: int = 42

    def __post_init__(self) -> None:
        if not 0.0 < self.e0 < 1.0:
            raise ValueError(f"e0 must lie strictly between 0 and 1, got {self.e0}.")
        if self.synth not in {"random", "common"}:
            raise ValueError(f"Unknown synth '{self.synth}'. Options: ['random', 'common']")
        if self.interval not in {"cred", "pred"}:
            raise ValueError(f"Unknown interval '{self.interval}'. Options: ['cred', 'pred']")
        if self.n_doses < 2:
            raise ValueError("n_doses must be at least 2.")


# =============================================================================
# MODEL REGISTRY
# =============================================================================

@dataclass
class ModelSpec:
    """One registered dose-response model."""

    name: str
    label: str
    factory: Callable[..., DoseFunction]
    kwargs: Dict[str, object] = field(default_factory=dict)
    method: str = "random"

    def __post_init__(self) -> None:
        if self.method not in METHODS:
            raise ValueError(f"Unknown method '{self.method}'. Options: {sorted(METHODS)}")

    def build(self) -> DoseFunction:
        return self.factory(prior_sd=EFFECT_PRIOR_SD, **self.kwargs)


MODEL_SPECS: Dict[str, ModelSpec] = {
    spec.name: spec
    for spec in (
        ModelSpec("emax", "Emax", Emax),
        ModelSpec("poly1", "Linear polynomial", Polynomial, {"degree": 1}),
        ModelSpec("poly2", "Quadratic polynomial", Polynomial, {"degree": 2}),
        ModelSpec("exp", "Exponential", Exponential),
        ModelSpec("fpoly", "Fractional polynomial (power 0)", FractionalPolynomial, {"degree": 1, "powers": (0.0,)}),
        ModelSpec("itp", "Integrated two-component", IntegratedTwoComponent),
        ModelSpec("loglin", "Log-linear", LogLinear),
        ModelSpec("nonparam", "Non-parametric (decreasing)", NonParametric, {"direction": "decreasing"}),
        ModelSpec("spline", "Natural cubic spline (1 knot)", Spline, {"kind": "ns", "knots": 1, "degree": 1}),
    )
}


def get_model_spec(name: str) -> ModelSpec:
    if name not in MODEL_SPECS:
        raise SchemaError(f"Unknown dose-response model '{name}'. Options: {list(MODEL_SPECS.keys())}")
    return MODEL_SPECS[name]


__all__ = [
    "BASE_OUTPUT",
    "BASELINE_PRIOR_SD",
    "EFFECT_PRIOR_SD",
    "TAU_PRIOR_SD",
    "MODEL_SPECS",
    "ModelSpec",
    "PredictionConfig",
    "SamplerConfig",
    "get_model_spec",
]
