"""
Dose-Response Model Package
===========================

Bayesian dose-response network meta-analysis (PyMC) of arm-level
corticosteroid trial data: nine functional forms, LOO/deviance comparison,
absolute response prediction and a split-NMA overlay.

Usage:
    python -m corticosteroid_nma.dose_response --model all

Programmatic:
    from corticosteroid_nma.dose_response import run, SamplerConfig
    run(models=["emax", "spline"], sampler=SamplerConfig(draws=500))
"""

from ._config import (
    BASE_OUTPUT,
    MODEL_SPECS,
    ModelSpec,
    PredictionConfig,
    SamplerConfig,
    get_model_spec,
)
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
from .model_suite import (
    DoseResponseFit,
    DoseResponsePrediction,
    DoseResponseResults,
    ModelComparison,
    build_model,
    compare_models,
    fit_model,
    fit_split_nma,
    fit_statistics,
    list_models,
    plot_predictions,
    predict,
    run,
    split_estimates,
    summarize_fit,
)
from .network import DoseResponseNetwork

__all__ = [
    "BASE_OUTPUT",
    "MODEL_SPECS",
    "ModelSpec",
    "PredictionConfig",
    "SamplerConfig",
    "get_model_spec",
    "DoseFunction",
    "Emax",
    "Exponential",
    "FractionalPolynomial",
    "IntegratedTwoComponent",
    "LogLinear",
    "NonParametric",
    "Polynomial",
    "Spline",
    "DoseResponseFit",
    "DoseResponsePrediction",
    "DoseResponseResults",
    "ModelComparison",
    "build_model",
    "compare_models",
    "fit_model",
    "fit_split_nma",
    "fit_statistics",
    "list_models",
    "plot_predictions",
    "predict",
    "run",
    "split_estimates",
    "summarize_fit",
    "DoseResponseNetwork",
]
