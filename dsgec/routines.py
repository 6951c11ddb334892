"""
Derivative orchestrator.

Packages every model variant into routines: undifferentiated functions
over the routine vocabulary ``(y, x, ss, param, defs, s0, s1)`` and
their derivatives with respect to the differentiation list of the
variant.

=================  ==========================================  =======
variant            wrt                                         order
=================  ==========================================  =======
dynamic            ``y`` in lead-lag order, then ``x``         N
static             current ``y``                               1
balanced growth    current ``y`` levels and growth rates       1
parameters         ``param``                                   1
=================  ==========================================  =======

With endogenous switching the dynamic functions are weighted by the
transition probability ``P(s0, s1)`` of the current and next regime
(0-based regime indices) before differentiation.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from dsgec.analysis.markov import ChainTransition, RegimeTable
from dsgec.analysis.topology import DifferentiationList, differentiation_list, static_incidence
from dsgec.ir import expr as ex
from dsgec.ir.expr import Expr, ExprKind
from dsgec.ir.symbol import S0, S1, SymbolId, SymbolTable
from dsgec.ir.types import INPUT_LIST, SymbolKind
from dsgec.options import ParserOptions
from dsgec.parser.planner import OsrSupport, PlannerSystem
from dsgec.parser.shadow import Assignment, DynamicShadower, ShadowSystem, StaticShadower
from dsgec.symbolic.differentiate import DerivativeOrder, DerivativeSet, differentiate_system
from dsgec.symbolic.printer import to_code, to_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Routine:
    """
    Functions over the routine vocabulary.

    Assignment routines (definitions, steady state ...) also carry the
    symbol each function is assigned to.
    """

    name: str
    functions: tuple[Expr, ...] = ()
    targets: tuple[SymbolId, ...] = ()
    arguments: tuple[str, ...] = INPUT_LIST

    @classmethod
    def from_assignments(cls, name: str, assignments: tuple[Assignment, ...]) -> "Routine":
        return cls(name, tuple(a.expr for a in assignments), tuple(a.target for a in assignments))

    def __len__(self) -> int:
        return len(self.functions)

    @property
    def code(self) -> tuple[str, ...]:
        return tuple(to_code(f) for f in self.functions)

    @property
    def text(self) -> tuple[str, ...]:
        return tuple(to_text(f) for f in self.functions)

    @property
    def statements(self) -> tuple[str, ...]:
        """``y[2] = ...`` lines of an assignment routine, in evaluation order."""
        return tuple(f"{t.code()} = {to_code(f)}" for t, f in zip(self.targets, self.functions))


@dataclass(frozen=True, eq=False)
class DerivativeRoutine:
    """Derivatives of one variant up to ``order`` and the list they were taken against."""

    name: str
    derivatives: DerivativeSet
    differentiation: DifferentiationList
    arguments: tuple[str, ...] = INPUT_LIST

    @property
    def order(self) -> int:
        return len(self.derivatives.orders)

    @property
    def wrt(self) -> tuple[SymbolId, ...]:
        return self.differentiation.wrt

    @property
    def functions(self) -> tuple[Expr, ...]:
        return self.derivatives.functions

    @property
    def elapsed(self) -> float:
        return self.derivatives.elapsed

    def __getitem__(self, order: int) -> DerivativeOrder:
        return self.derivatives[order]

    @property
    def code(self) -> tuple[tuple[str, ...], ...]:
        return tuple(o.code for o in self.derivatives.orders)


@dataclass(frozen=True, eq=False)
class TransitionRoutine:
    """
    Per-chain transition matrices, each flattened row by row. The full
    regime transition matrix is their Kronecker product in chain order.
    """

    name: str
    chains: tuple[ChainTransition, ...]
    regimes: RegimeTable
    arguments: tuple[str, ...] = INPUT_LIST

    @property
    def functions(self) -> tuple[Expr, ...]:
        return tuple(e for chain in self.chains for row in chain.entries for e in row)

    @property
    def shapes(self) -> tuple[tuple[str, int], ...]:
        return tuple((c.chain, c.n_states) for c in self.chains)

    @property
    def code(self) -> tuple[str, ...]:
        return tuple(to_code(f) for f in self.functions)

    def __len__(self) -> int:
        return len(self.functions)


@dataclass(frozen=True, eq=False)
class Routines:
    """Every routine of a compiled model, ``None`` where the variant does not apply."""

    definitions: Routine
    steady_state_model: Routine
    steady_state_auxiliary_eqtns: Routine
    exogenous_definitions: Routine
    dynamic: Routine
    probs_times_dynamic: Routine
    dynamic_derivatives: DerivativeRoutine
    static: Routine
    static_derivatives: DerivativeRoutine
    transition_matrix: TransitionRoutine
    complementarity: Routine
    static_bgp: Optional[Routine] = None
    static_bgp_derivatives: Optional[DerivativeRoutine] = None
    parameter_derivatives: Optional[DerivativeRoutine] = None
    planner_objective: Optional[Routine] = None
    planner_loss_commitment_discount: Optional[Routine] = None
    planner_static_mult: Optional[Routine] = None
    planner_osr_derivatives: Optional[Routine] = None
    planner_osr_support: Optional[OsrSupport] = None
    symbolic: dict[str, tuple[tuple[Expr, ...], tuple[SymbolId, ...]]] = field(default_factory=dict)

    def names(self) -> tuple[str, ...]:
        """Routines present in this bundle."""
        skip = ("symbolic", "planner_osr_support")
        return tuple(
            name for name in self.__dataclass_fields__ if name not in skip and getattr(self, name) is not None
        )


# =============================================================================
# Regime weights
# =============================================================================


def transition_probability(chains: tuple[ChainTransition, ...], regimes: RegimeTable) -> Expr:
    """
    ``P(s0, s1)`` as nested ``if_then_else`` over the 0-based regime
    indices; each entry is the product over chains of the chain
    transition probabilities.
    """
    position = {name: i for i, name in enumerate(regimes.chains)}
    n = regimes.n_regimes

    def entry(r0: int, r1: int) -> Expr:
        value = ex.ONE
        for chain in chains:
            k = position[chain.chain]
            value = ex.mul(value, chain.entries[regimes.states[r0][k] - 1][regimes.states[r1][k] - 1])
        return value

    def select(state: SymbolId, values: list[Expr]) -> Expr:
        result = values[-1]
        for r in range(len(values) - 2, -1, -1):
            test = ex.compare(ExprKind.EQ, ex.sym(state), ex.const(r))
            result = ex.if_then_else(test, values[r], result)
        return result

    rows = [select(S1, [entry(r0, r1) for r1 in range(n)]) for r0 in range(n)]
    return select(S0, rows)


def probs_times_dynamic(
    dynamic: tuple[Expr, ...], chains: tuple[ChainTransition, ...], regimes: RegimeTable, switching: bool
) -> tuple[Expr, ...]:
    if not switching:
        return dynamic
    weight = transition_probability(chains, regimes)
    return tuple(ex.mul(weight, f) for f in dynamic)


# =============================================================================
# Orchestration
# =============================================================================


def _derivatives(
    name: str,
    functions: tuple[Expr, ...],
    differentiation: DifferentiationList,
    order: int,
    workers: int,
) -> DerivativeRoutine:
    derivatives = differentiate_system(functions, differentiation.wrt, order, workers)
    return DerivativeRoutine(name, derivatives, differentiation)


def _planner_routines(
    planner: Optional[PlannerSystem], table: SymbolTable, lli: np.ndarray, definitions: Optional[tuple[Expr, ...]]
) -> dict[str, object]:
    if planner is None:
        return {}
    dynamic = DynamicShadower(table, lli, definitions)
    objective = planner.objective
    out: dict[str, object] = {
        "planner_objective": Routine("planner_objective", (dynamic(objective.objective),)),
        "planner_loss_commitment_discount": Routine(
            "planner_loss_commitment_discount",
            (dynamic(objective.objective), dynamic(objective.commitment), dynamic(objective.discount)),
        ),
    }
    if planner.is_optimal_policy:
        static = StaticShadower(table, definitions)
        out["planner_static_mult"] = Routine(
            "planner_static_mult", tuple(static(eq.expr) for eq in planner.static_mult)
        )
    elif planner.osr is not None:
        out["planner_osr_derivatives"] = Routine(
            "planner_osr_derivatives", tuple(dynamic(eq.expr) for eq in planner.osr_derivatives)
        )
        out["planner_osr_support"] = planner.osr
    return out


def build_routines(
    system: ShadowSystem,
    table: SymbolTable,
    lli: np.ndarray,
    options: ParserOptions,
    chains: tuple[ChainTransition, ...],
    regimes: RegimeTable,
    planner: Optional[PlannerSystem] = None,
) -> Routines:
    """Differentiate every model variant and bundle the results."""
    n_endo = len(table.endogenous)
    n_exo = len(table.exogenous)
    switching = len(system.tvp) > 0
    workers = options.workers
    symbolic: dict[str, tuple[tuple[Expr, ...], tuple[SymbolId, ...]]] = {}

    weighted = probs_times_dynamic(system.dynamic, chains, regimes, switching)
    dynamic_list = differentiation_list(lli, n_exo)
    dynamic_derivatives = _derivatives(
        "dynamic_derivatives", weighted, dynamic_list, options.max_deriv_order, workers
    )
    logger.info(
        "Derivatives of dynamic model wrt y(+0-), x up to order %d. %d equations and %d variables : %.4f seconds",
        options.max_deriv_order,
        len(weighted),
        len(dynamic_list.wrt),
        dynamic_derivatives.elapsed,
    )
    symbolic["dynamic"] = (weighted, dynamic_list.wrt)

    static_list = differentiation_list(static_incidence(n_endo), 0)
    static_derivatives = _derivatives("static_derivatives", system.static, static_list, 1, workers)
    logger.info(
        "1st-order derivatives of static model wrt y(0). %d equations and %d variables : %.4f seconds",
        len(system.static),
        n_endo,
        static_derivatives.elapsed,
    )
    symbolic["static"] = (system.static, static_list.wrt)

    static_bgp = None
    static_bgp_derivatives = None
    if options.stationary_model is not True:
        bgp_list = differentiation_list(static_incidence(2 * n_endo), 0)
        static_bgp = Routine("static_bgp", system.balanced_growth)
        static_bgp_derivatives = _derivatives(
            "static_bgp_derivatives", system.balanced_growth, bgp_list, 1, workers
        )
        logger.info(
            "1st-order derivatives of static BGP model wrt y(0). %d equations and %d variables : %.4f seconds",
            len(system.balanced_growth),
            2 * n_endo,
            static_bgp_derivatives.elapsed,
        )
        symbolic["static_bgp"] = (system.balanced_growth, bgp_list.wrt)

    parameter_derivatives = None
    if options.parameter_differentiation:
        functions = system.dynamic
        if options.definitions_in_param_differentiation:
            functions = system.dynamic_inlined
        elif not options.definitions_inserted and system.definitions:
            warnings.warn(
                "definitions not taken into account in the computation of derivatives wrt parameters",
                UserWarning,
                stacklevel=3,
            )
        param_list = differentiation_list(None, 0, range(len(table.parameters)))
        parameter_derivatives = _derivatives("parameter_derivatives", functions, param_list, 1, workers)
        logger.info(
            "first-order derivatives of dynamic model wrt param. %d equations and %d variables : %.4f seconds",
            len(functions),
            len(param_list.wrt),
            parameter_derivatives.elapsed,
        )
        symbolic["parameters"] = (functions, param_list.wrt)

    inserted = system.definitions_inlined if options.definitions_inserted else None
    definition_targets = tuple(SymbolId(SymbolKind.DEFINITION, d) for d in range(len(system.definitions_inlined)))
    return Routines(
        definitions=Routine("definitions", system.definitions_inlined, definition_targets),
        steady_state_model=Routine.from_assignments("steady_state_model", system.steady_state),
        steady_state_auxiliary_eqtns=Routine.from_assignments(
            "steady_state_auxiliary_eqtns", system.steady_state_auxiliary
        ),
        exogenous_definitions=Routine.from_assignments("exogenous_definitions", system.exogenous_definitions),
        dynamic=Routine("dynamic", system.dynamic),
        probs_times_dynamic=Routine("probs_times_dynamic", weighted),
        dynamic_derivatives=dynamic_derivatives,
        static=Routine("static", system.static),
        static_derivatives=static_derivatives,
        transition_matrix=TransitionRoutine("transition_matrix", chains, regimes),
        complementarity=Routine("complementarity", system.complementarity),
        static_bgp=static_bgp,
        static_bgp_derivatives=static_bgp_derivatives,
        parameter_derivatives=parameter_derivatives,
        symbolic=symbolic,
        **_planner_routines(planner, table, lli, inserted),
    )
