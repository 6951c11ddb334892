"""
Compiled model: the frozen bundle handed to numerical solvers.

Symbol tables carry their flags as boolean numpy arrays aligned with the
``name`` tuple, so a solver can mask vectors directly::

    np.array(model.endogenous.name)[model.endogenous.is_state]
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

import numpy as np

from dsgec.analysis.incidence import Incidence
from dsgec.analysis.markov import RegimeTable
from dsgec.analysis.topology import DifferentiationList, Locations, Siz, SteadyStateIndex
from dsgec.ir.equation import Equation
from dsgec.ir.expr import Expr
from dsgec.ir.symbol import MarkovChain, SymbolTable
from dsgec.ir.types import INPUT_LIST, EquationType, Shift
from dsgec.options import ParserOptions
from dsgec.parser.declarations import log_var_target
from dsgec.parser.parameterization import Parameterization
from dsgec.parser.planner import MULT_PREFIX, PlannerSystem
from dsgec.parser.restrictions import Restrictions
from dsgec.parser.steady_state import SteadyStateModel
from dsgec.routines import Routines
from dsgec.symbolic.printer import to_text


#: Weight of the DSGE prior in a DSGE-VAR; declaring it makes the model a DSGE-VAR.
DSGE_VAR_WEIGHT = "dsge_prior_weight"

#: Standard deviation of the measurement error of observable X is ``stderr_X``.
STDERR_PREFIX = "stderr_"


def _flags(values: Iterable[bool]) -> np.ndarray:
    return np.array(list(values), dtype=bool)


@dataclass(frozen=True, eq=False)
class EndogenousTable:
    name: tuple[str, ...]
    tex_name: tuple[str, ...]
    is_original: np.ndarray
    is_lagrange_multiplier: np.ndarray
    is_static: np.ndarray
    is_predetermined: np.ndarray
    is_pred_frwrd_looking: np.ndarray
    is_state: np.ndarray
    is_frwrd_looking: np.ndarray
    is_log_var: np.ndarray
    is_auxiliary: np.ndarray
    is_affect_trans_probs: np.ndarray

    @property
    def number(self) -> int:
        return len(self.name)

    @classmethod
    def from_symbols(cls, table: SymbolTable, lli: np.ndarray, affect_trans_probs: frozenset[str]) -> "EndogenousTable":
        """Classify the endogenous variables of ``table`` (canonical order) from their incidence."""
        present = np.asarray(lli).reshape(-1, 3) >= 0
        lead = present[:, Shift.LEAD.value]
        lag = present[:, Shift.LAG.value]
        symbols = table.endogenous
        return cls(
            name=tuple(s.name for s in symbols),
            tex_name=tuple(s.tex_name for s in symbols),
            is_original=_flags(s.name in table.original_endogenous for s in symbols),
            is_lagrange_multiplier=_flags(s.name.startswith(MULT_PREFIX) for s in symbols),
            is_static=~lead & ~lag,
            is_predetermined=~lead & lag,
            is_pred_frwrd_looking=lead & lag,
            is_state=lag.copy(),
            is_frwrd_looking=lead & ~lag,
            is_log_var=_flags(s.is_log_var for s in symbols),
            is_auxiliary=_flags(s.is_auxiliary for s in symbols),
            is_affect_trans_probs=_flags(s.name in affect_trans_probs for s in symbols),
        )


@dataclass(frozen=True, eq=False)
class ExogenousTable:
    name: tuple[str, ...]
    tex_name: tuple[str, ...]
    is_observed: np.ndarray
    is_in_use: np.ndarray
    shock_horizon: np.ndarray

    @property
    def number(self) -> tuple[int, int]:
        """(unobserved, observed)"""
        observed = int(self.is_observed.sum())
        return (len(self.name) - observed, observed)

    @classmethod
    def from_symbols(cls, table: SymbolTable, in_use: frozenset[str], n_regimes: int = 1) -> "ExogenousTable":
        """``shock_horizon`` starts at zero: no anticipated shocks in any regime."""
        symbols = table.exogenous
        return cls(
            name=tuple(s.name for s in symbols),
            tex_name=tuple(s.tex_name for s in symbols),
            is_observed=_flags(s.is_observed for s in symbols),
            is_in_use=_flags(s.name in in_use for s in symbols),
            shock_horizon=np.zeros((n_regimes, len(symbols)), dtype=int),
        )


@dataclass(frozen=True, eq=False)
class ObservableTable:
    """
    Observed variables; ``state_id`` is the 0-based position of each one in
    the endogenous table when ``is_endogenous``, else in the exogenous table.
    """

    name: tuple[str, ...]
    tex_name: tuple[str, ...]
    is_endogenous: np.ndarray
    state_id: np.ndarray

    @property
    def number(self) -> tuple[int, int]:
        """(endogenous observables, exogenous observables)"""
        endogenous = int(self.is_endogenous.sum())
        return (endogenous, len(self.name) - endogenous)

    @classmethod
    def from_symbols(cls, table: SymbolTable, endogenous: EndogenousTable, exogenous: ExogenousTable) -> "ObservableTable":
        names = tuple(s.name for s in table.observables)
        # observed log variables are stored as LOG_X
        targets = [log_var_target(n, table.log_vars) or n for n in names]
        is_endogenous = _flags(n in endogenous.name for n in targets)
        state_id = np.array(
            [endogenous.name.index(n) if n in endogenous.name else exogenous.name.index(n) for n in targets],
            dtype=int,
        )
        tex_name = tuple(
            endogenous.tex_name[i] if endo else exogenous.tex_name[i] for i, endo in zip(state_id, is_endogenous)
        )
        return cls(names, tex_name, is_endogenous, state_id)


@dataclass(frozen=True, eq=False)
class ParameterTable:
    name: tuple[str, ...]
    tex_name: tuple[str, ...]
    is_switching: np.ndarray
    is_trans_prob: np.ndarray
    is_in_use: np.ndarray
    is_measurement_error: np.ndarray
    governing_chain: tuple[str, ...]

    @property
    def number(self) -> tuple[int, int]:
        """(non-switching, switching)"""
        switching = int(self.is_switching.sum())
        return (len(self.name) - switching, switching)

    @classmethod
    def from_symbols(cls, table: SymbolTable, in_use: frozenset[str]) -> "ParameterTable":
        symbols = table.parameters
        stderr = {STDERR_PREFIX + o.name for o in table.observables}
        in_use = in_use | {DSGE_VAR_WEIGHT}
        return cls(
            name=tuple(s.name for s in symbols),
            tex_name=tuple(s.tex_name for s in symbols),
            is_switching=_flags(s.is_switching for s in symbols),
            is_trans_prob=_flags(s.is_trans_prob for s in symbols),
            is_in_use=_flags(s.name in in_use for s in symbols),
            is_measurement_error=_flags(s.name in stderr for s in symbols),
            governing_chain=tuple(s.governing_chain for s in symbols),
        )


@dataclass(frozen=True, eq=False)
class DefinitionTable:
    name: tuple[str, ...]
    dynamic: tuple[str, ...]
    shadow_dynamic: tuple[str, ...]

    @property
    def number(self) -> int:
        return len(self.name)

    @classmethod
    def from_equations(cls, equations: Iterable[Equation], shadow: tuple[Expr, ...]) -> "DefinitionTable":
        definitions = [eq for eq in equations if eq.eq_type == EquationType.DEFINITION]
        return cls(
            name=tuple(eq.lhs for eq in definitions),
            dynamic=tuple(to_text(eq.expr) for eq in definitions),
            shadow_dynamic=tuple(to_text(e) for e in shadow),
        )


@dataclass(frozen=True, eq=False)
class ModelEquations:
    """
    Model equations in model-name form (``dynamic``, every type) and the
    shadow forms of the structural ones.
    """

    dynamic: tuple[Equation, ...]
    shadow_dynamic: tuple[Expr, ...]
    static: tuple[Equation, ...]
    shadow_static: tuple[Expr, ...]
    shadow_balanced_growth_path: tuple[Expr, ...]

    @property
    def structural(self) -> tuple[Equation, ...]:
        return tuple(eq for eq in self.dynamic if eq.eq_type == EquationType.STRUCTURAL)

    @property
    def type(self) -> tuple[EquationType, ...]:
        return tuple(eq.eq_type for eq in self.dynamic)

    @property
    def number(self) -> int:
        return len(self.shadow_dynamic)


@dataclass(frozen=True, eq=False)
class CompiledModel:
    """
    Everything a compilation produces. Nothing in it changes after
    ``parse`` returns.
    """

    filename: str
    options: ParserOptions
    symbol_table: SymbolTable
    endogenous: EndogenousTable
    exogenous: ExogenousTable
    parameters: ParameterTable
    observables: ObservableTable
    definitions: DefinitionTable
    markov_chains: tuple[MarkovChain, ...]
    regimes: RegimeTable
    equations: ModelEquations
    incidence: Incidence
    differentiation: DifferentiationList
    parameterization: Parameterization
    parameter_values: np.ndarray
    restrictions: Restrictions
    steady_state: SteadyStateModel
    routines: Routines
    planner: Optional[PlannerSystem] = None

    is_hybrid: bool = False
    is_purely_forward_looking: bool = False
    is_purely_backward_looking: bool = False
    is_endogenous_switching_model: bool = False
    is_optimal_policy_model: bool = False
    is_optimal_simple_rule_model: bool = False
    is_model_with_planner_objective: bool = False
    is_dsge_var_model: bool = False

    @property
    def input_list(self) -> tuple[str, ...]:
        return INPUT_LIST

    @property
    def siz(self) -> Siz:
        return self.differentiation.siz

    @property
    def order_var(self) -> tuple[int, ...]:
        return self.differentiation.order_var

    @property
    def inv_order_var(self) -> tuple[int, ...]:
        return self.differentiation.inv_order_var

    @property
    def locations(self) -> Locations:
        return self.differentiation.locations

    @property
    def steady_state_index(self) -> SteadyStateIndex:
        return self.differentiation.steady_state_index

    @property
    def lead_lag_incidence(self) -> np.ndarray:
        return self.incidence.before_solve

    @property
    def is_unique_steady_state(self) -> bool:
        return self.steady_state.is_unique

    @property
    def is_imposed_steady_state(self) -> bool:
        return self.steady_state.is_imposed

    @property
    def is_initial_guess_steady_state(self) -> bool:
        return self.steady_state.is_initial_guess

    @property
    def is_param_changed_in_ssmodel(self) -> bool:
        return len(self.steady_state.changed_parameters) > 0

    def __repr__(self) -> str:
        return (
            f"CompiledModel({self.filename!r}, {self.endogenous.number} endogenous, "
            f"{len(self.exogenous.name)} exogenous, {len(self.parameters.name)} parameters, "
            f"{self.regimes.n_regimes} regimes)"
        )
