"""
Dose-response functional forms.

Every form maps a dose to a logit-scale effect relative to placebo with
f(0) = 0, using one parameter set per active agent ("relative" effects).
The same ``effect`` code runs inside the PyMC graph (``xp=pm.math``) and
on posterior draws for prediction (``xp=numpy``): parameters arrive already
aligned with the dose vector, so broadcasting does the rest.

Shapes
------
model:       params (n_arms, ...),    dose (n_arms,)
prediction:  params (S, n_doses, ...), dose (n_doses,)
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import patsy
import pymc as pm

from .network import DoseResponseNetwork


def _pad_tensor(var, pad: float, tail: Tuple[int, ...] = ()):
    """Prepend the placebo row to a per-agent PyMC variable."""
    return pm.math.concatenate([np.full((1,) + tail, pad), var], axis=0)


def _pad_draws(draws: np.ndarray, pad: float) -> np.ndarray:
    """Prepend the placebo column to posterior draws shaped (S, n_active, ...)."""
    filler = np.full((draws.shape[0], 1) + draws.shape[2:], pad)
    return np.concatenate([filler, draws], axis=1)


def _flatten_draws(values: np.ndarray) -> np.ndarray:
    """(chain, draw, ...) -> (S, ...)."""
    return values.reshape((-1,) + values.shape[2:])


def _safe_log(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    return np.log(np.where(x > 0, x, 1.0))


class DoseFunction:
    """Base class; subclasses define parameters, basis and effect."""

    name = "base"
    label = "Dose-response"
    index_by = "agent"
    params: Tuple[str, ...] = ()
    pad_values: Dict[str, float] = {}

    def __init__(self, prior_sd: float = 5.0):
        self.prior_sd = prior_sd
        self.network: Optional[DoseResponseNetwork] = None

    def prepare(self, network: DoseResponseNetwork) -> "DoseFunction":
        self.network = network
        return self

    def _require_network(self) -> DoseResponseNetwork:
        if self.network is None:
            raise RuntimeError(f"{self.name}: call prepare(network) first.")
        return self.network

    def coords(self) -> Dict[str, list]:
        return {}

    @property
    def summary_vars(self) -> List[str]:
        return list(self.params)

    def add_priors(self) -> Dict[str, object]:
        """Create PyMC variables; return them padded so index 0 is placebo."""
        raise NotImplementedError

    def basis(self, index: np.ndarray, dose: np.ndarray) -> Optional[np.ndarray]:
        return None

    def effect(self, theta: Dict[str, object], dose: np.ndarray, basis: Optional[np.ndarray], xp=np):
        raise NotImplementedError

    def padded_draws(self, posterior) -> Dict[str, np.ndarray]:
        return {
            name: _pad_draws(_flatten_draws(posterior[name].values), self.pad_values.get(name, 0.0))
            for name in self.params
        }

    def prediction_doses(self, agent_idx: int, n_doses: int) -> np.ndarray:
        network = self._require_network()
        return np.linspace(0.0, network.agent_max_dose[agent_idx], n_doses)

    def prediction_index(self, agent_idx: int, doses: np.ndarray) -> np.ndarray:
        return np.full(len(doses), agent_idx, dtype=int)


# =============================================================================
# LINEAR-IN-PARAMETERS FORMS
# =============================================================================

class LinearBasisFunction(DoseFunction):
    """f(x) = sum_j beta_j * b_j(x) with an agent-specific basis."""

    params = ("beta",)
    pad_values = {"beta": 0.0}

    @property
    def term_names(self) -> List[str]:
        raise NotImplementedError

    def coords(self) -> Dict[str, list]:
        return {"term": self.term_names}

    def _raw_basis(self, agent_idx: int, dose: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def basis(self, index: np.ndarray, dose: np.ndarray) -> np.ndarray:
        index = np.asarray(index, dtype=int)
        dose = np.asarray(dose, dtype=float)
        out = np.zeros((len(dose), len(self.term_names)))
        for agent_idx in np.unique(index):
            if agent_idx == 0:
                continue
            mask = index == agent_idx
            out[mask] = self._raw_basis(int(agent_idx), dose[mask])
        return out

    def add_priors(self) -> Dict[str, object]:
        beta = pm.Normal("beta", mu=0.0, sigma=self.prior_sd, dims=("agent", "term"))
        return {"beta": _pad_tensor(beta, 0.0, (len(self.term_names),))}

    def effect(self, theta, dose, basis, xp=np):
        return (theta["beta"] * basis).sum(axis=-1)


class Polynomial(LinearBasisFunction):
    """Polynomial in dose scaled by the agent's maximum dose."""

    name = "poly"

    def __init__(self, degree: int = 1, prior_sd: float = 5.0):
        super().__init__(prior_sd)
        if degree < 1 or degree > 4:
            raise ValueError("Polynomial degree must be between 1 and 4.")
        self.degree = degree
        self.label = f"Polynomial (degree {degree})"

    @property
    def term_names(self) -> List[str]:
        return [f"beta.{j}" for j in range(1, self.degree + 1)]

    def _raw_basis(self, agent_idx, dose):
        u = dose / self._require_network().agent_max_dose[agent_idx]
        return np.column_stack([u ** j for j in range(1, self.degree + 1)])


class FractionalPolynomial(LinearBasisFunction):
    """Fractional polynomial; power 0 means log(dose), zero at dose 0."""

    name = "fpoly"

    def __init__(self, degree: int = 1, powers: Sequence[float] = (0.0, 0.0), prior_sd: float = 5.0):
        super().__init__(prior_sd)
        if degree not in (1, 2):
            raise ValueError("Fractional polynomial degree must be 1 or 2.")
        self.degree = degree
        self.powers = tuple(float(p) for p in powers[:degree])
        self.label = f"Fractional polynomial (degree {degree}, powers {self.powers})"

    @property
    def term_names(self) -> List[str]:
        return [f"beta.{j}" for j in range(1, self.degree + 1)]

    @staticmethod
    def _power_term(dose: np.ndarray, power: float) -> np.ndarray:
        if power == 0:
            return _safe_log(dose)
        return np.where(dose > 0, np.power(np.where(dose > 0, dose, 1.0), power), 0.0)

    def _raw_basis(self, agent_idx, dose):
        columns = [self._power_term(dose, self.powers[0])]
        if self.degree == 2:
            second = self._power_term(dose, self.powers[1])
            if self.powers[1] == self.powers[0]:
                second = second * _safe_log(dose)
            columns.append(second)
        return np.column_stack(columns)


class Exponential(LinearBasisFunction):
    """emax * (1 - exp(-dose)); onset fixed, so linear in emax."""

    name = "exp"
    label = "Exponential"

    @property
    def term_names(self) -> List[str]:
        return ["emax"]

    def _raw_basis(self, agent_idx, dose):
        return (1.0 - np.exp(-dose))[:, None]


class LogLinear(LinearBasisFunction):
    """rate * log(dose + 1)."""

    name = "loglin"
    label = "Log-linear"

    @property
    def term_names(self) -> List[str]:
        return ["rate"]

    def _raw_basis(self, agent_idx, dose):
        return np.log(dose + 1.0)[:, None]


class Spline(LinearBasisFunction):
    """
    Spline in dose built with patsy, per agent.

    Interior knots sit at equally spaced quantiles of the agent's doses
    (0 included); boundary knots at 0 and the maximum dose. The basis is
    shifted so f(0) = 0. ``kind``: ``"bs"`` (B-spline), ``"ls"`` (linear
    B-spline) or ``"ns"`` (natural cubic, one redundant column dropped).
    """

    name = "spline"

    def __init__(self, kind: str = "ns", knots: int = 1, degree: int = 1, prior_sd: float = 5.0):
        super().__init__(prior_sd)
        if kind not in {"bs", "ls", "ns"}:
            raise ValueError(f"Unknown spline kind '{kind}'. Use 'bs', 'ls' or 'ns'.")
        if knots < 1:
            raise ValueError("Spline needs at least one interior knot.")
        self.kind = kind
        self.n_knots = knots
        self.degree = 1 if kind == "ls" else degree
        self.label = f"Spline ({kind}, {knots} knot{'s' if knots > 1 else ''})"
        self._design_info: Dict[int, object] = {}

    @property
    def term_names(self) -> List[str]:
        if self.kind == "ns":
            n_terms = self.n_knots + 1
        else:
            n_terms = self.n_knots + self.degree
        return [f"beta.{j}" for j in range(1, n_terms + 1)]

    def _formula(self, knots: List[float], upper: float) -> str:
        if self.kind == "ns":
            return f"cr(x, knots={knots!r}, lower_bound=0.0, upper_bound={upper!r}) - 1"
        return f"bs(x, knots={knots!r}, degree={self.degree}, lower_bound=0.0, upper_bound={upper!r}) - 1"

    def prepare(self, network: DoseResponseNetwork) -> "Spline":
        super().prepare(network)
        self._design_info = {}
        probs = np.linspace(0.0, 1.0, self.n_knots + 2)[1:-1]
        for agent_idx in range(1, network.n_agents):
            doses = network.agent_doses(agent_idx)
            upper = float(doses.max())
            knots = [float(k) for k in np.quantile(doses, probs)]
            design = patsy.dmatrix(self._formula(knots, upper), {"x": doses})
            self._design_info[agent_idx] = design.design_info
        return self

    def _evaluate(self, agent_idx: int, dose: np.ndarray) -> np.ndarray:
        info = self._design_info[agent_idx]
        return np.asarray(patsy.build_design_matrices([info], {"x": dose})[0])

    def _raw_basis(self, agent_idx, dose):
        if agent_idx not in self._design_info:
            raise RuntimeError("Spline: call prepare(network) first.")
        shifted = self._evaluate(agent_idx, dose) - self._evaluate(agent_idx, np.array([0.0]))
        if self.kind == "ns":
            shifted = shifted[:, 1:]
        return shifted


# =============================================================================
# NON-LINEAR FORMS
# =============================================================================

class Emax(DoseFunction):
    """emax * u / (ed50 + u), u = dose / max dose, ed50 on the log scale."""

    name = "emax"
    label = "Emax"
    params = ("emax", "log_ed50")
    pad_values = {"emax": 0.0, "log_ed50": 0.0}

    def add_priors(self):
        emax = pm.Normal("emax", mu=0.0, sigma=self.prior_sd, dims="agent")
        log_ed50 = pm.Normal("log_ed50", mu=0.0, sigma=2.0, dims="agent")
        return {"emax": _pad_tensor(emax, 0.0), "log_ed50": _pad_tensor(log_ed50, 0.0)}

    def basis(self, index, dose):
        return np.asarray(dose, dtype=float) / self._require_network().agent_max_dose[np.asarray(index, dtype=int)]

    def effect(self, theta, dose, basis, xp=np):
        return theta["emax"] * basis / (xp.exp(theta["log_ed50"]) + basis)


class IntegratedTwoComponent(DoseFunction):
    """emax * (1 - exp(-rate u)) / (1 - exp(-rate)), u = dose / max dose."""

    name = "itp"
    label = "Integrated two-component prediction"
    params = ("emax", "log_rate")
    pad_values = {"emax": 0.0, "log_rate": 0.0}

    def add_priors(self):
        emax = pm.Normal("emax", mu=0.0, sigma=self.prior_sd, dims="agent")
        log_rate = pm.Normal("log_rate", mu=0.0, sigma=1.5, dims="agent")
        return {"emax": _pad_tensor(emax, 0.0), "log_rate": _pad_tensor(log_rate, 0.0)}

    def basis(self, index, dose):
        return np.asarray(dose, dtype=float) / self._require_network().agent_max_dose[np.asarray(index, dtype=int)]

    def effect(self, theta, dose, basis, xp=np):
        rate = xp.exp(theta["log_rate"])
        return theta["emax"] * (1.0 - xp.exp(-rate * basis)) / (1.0 - xp.exp(-rate))


class NonParametric(DoseFunction):
    """
    One effect per agent-dose node.

    ``direction="decreasing"`` (or ``"increasing"``) constrains effects to be
    monotone in dose within each agent through non-negative steps;
    ``direction=None`` leaves every node free (the split NMA).
    """

    name = "nonparam"
    index_by = "treatment"
    params = ("d",)

    def __init__(self, direction: Optional[str] = "decreasing", prior_sd: float = 5.0):
        super().__init__(prior_sd)
        if direction not in {"decreasing", "increasing", None}:
            raise ValueError(f"Unknown direction '{direction}'.")
        self.direction = direction
        self.label = f"Non-parametric ({direction})" if direction else "Split NMA (unconstrained)"

    def _cumulative_matrix(self) -> np.ndarray:
        """C[t, s] = 1 when active node s shares t's agent and has dose <= dose(t)."""
        nodes = self._require_network().treatments
        active = nodes.iloc[1:]
        matrix = np.zeros((len(nodes), len(active)))
        for t, (agent_idx, dose) in enumerate(zip(nodes["agent_idx"], nodes["dose"])):
            if agent_idx == 0:
                continue
            matrix[t] = ((active["agent_idx"] == agent_idx) & (active["dose"] <= dose)).to_numpy(dtype=float)
        return matrix

    def add_priors(self):
        if self.direction is None:
            d_rel = pm.Normal("d_rel", mu=0.0, sigma=self.prior_sd, dims="active_treatment")
            d = _pad_tensor(d_rel, 0.0)
        else:
            step = pm.HalfNormal("step", sigma=self.prior_sd, dims="active_treatment")
            sign = -1.0 if self.direction == "decreasing" else 1.0
            d = sign * pm.math.dot(self._cumulative_matrix(), step)
        return {"d": pm.Deterministic("d", d, dims="treatment")}

    def padded_draws(self, posterior):
        return {"d": _flatten_draws(posterior["d"].values)}

    def effect(self, theta, dose, basis, xp=np):
        return theta["d"]

    def prediction_doses(self, agent_idx, n_doses):
        return self._require_network().agent_doses(agent_idx)

    def prediction_index(self, agent_idx, doses):
        network = self._require_network()
        return np.array([network.treatment_index(agent_idx, dose) for dose in doses], dtype=int)
