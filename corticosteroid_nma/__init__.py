"""
Corticosteroid Dose-Response Network Meta-Analysis
==================================================

Network graphs and Bayesian dose-response model comparison for
corticosteroid regimens in acute respiratory distress syndrome.

Usage:
    python -m corticosteroid_nma.network_analysis --variant exchangeable
    python -m corticosteroid_nma.dose_response --model all
"""

from .errors import DegenerateInputError, NetworkDataError, ReferentialError, SchemaError

__all__ = [
    "NetworkDataError",
    "SchemaError",
    "ReferentialError",
    "DegenerateInputError",
]
