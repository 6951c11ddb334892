"""
Planner objective: optimal policy under commitment and optimal simple rules.

::

    planner_objective{discount = beta, commitment = 1} -.5*(pi^2 + lamb_y*y^2);

With fewer structural equations than endogenous variables the model is an
optimal policy model. One multiplier ``MULT_i`` is added per structural
equation ``f_i`` and, with ``L = U + sum_i MULT_i*f_i``, one first-order
condition per endogenous variable ``y_j``::

    sum_k beta^(-k) * (dL/dy_j{k}){-k} = 0

which gives ``dU/dy_j + MULT_i*df_i/dy_j + 1/beta*MULT_i{-1}*(df_i/dy_j{+1}){-1}
+ beta*MULT_i{+1}*(df_i/dy_j{-1}){+1}`` for one-period leads and lags.
With as many equations as variables the model is an optimal simple rule
model and the Hessian of the loss is kept for the rule optimizer.
"""

from __future__ import annotations

import logging
import time
import warnings
from dataclasses import dataclass
from typing import Optional

from dsgec.errors import ModelError
from dsgec.io.blocks import Block
from dsgec.io.source import SourceLine
from dsgec.ir import expr as ex
from dsgec.ir.equation import Equation
from dsgec.ir.expr import Expr, ExprKind
from dsgec.ir.symbol import Symbol, SymbolTable
from dsgec.ir.types import EquationType, SymbolKind
from dsgec.parser.declarations import expand_log_vars
from dsgec.parser.equations import split_assignment
from dsgec.parser.expression import ExpressionParser
from dsgec.parser.lexer import TokenType, split_fields, split_statements, tokenize
from dsgec.symbolic.differentiate import differentiate

logger = logging.getLogger(__name__)

MULT_PREFIX = "MULT_"
UTILITY = "UTIL"
WELFARE = "WELF"
DEFAULT_DISCOUNT = 0.99
DEFAULT_COMMITMENT = 1.0


@dataclass(frozen=True)
class PlannerObjective:
    objective: Expr
    discount: Expr
    commitment: Expr
    source: Block


@dataclass(frozen=True)
class OsrSupport:
    """
    Hessian layout of an optimal simple rule loss: ``map[k]`` is the pair
    of positions in ``wrt`` behind the k-th OSR_DERIVATIVE equation.
    """

    wrt: tuple[str, ...]
    map: tuple[tuple[int, int], ...]

    @property
    def size(self) -> int:
        return len(self.wrt)


@dataclass(frozen=True)
class PlannerSystem:
    objective: PlannerObjective
    is_optimal_policy: bool
    multipliers: tuple[str, ...] = ()
    static_mult: tuple[Equation, ...] = ()
    osr_derivatives: tuple[Equation, ...] = ()
    osr: Optional[OsrSupport] = None
    elapsed: float = 0.0


def parse_planner_objective(block: Optional[Block], table: SymbolTable) -> Optional[PlannerObjective]:
    if block is None:
        return None
    settings = {"discount": ex.const(DEFAULT_DISCOUNT), "commitment": ex.const(DEFAULT_COMMITMENT)}
    if block.trigger:
        header = SourceLine(block.trigger, block.source.filename, block.source.line)
        for item in split_fields(tokenize((header,))):
            split = split_assignment(item)
            if split != 1 or item[0].type != TokenType.NAME or item[0].value not in settings:
                raise item[0].error("planner_objective options read {discount = expr, commitment = expr}")
            settings[item[0].value] = expand_log_vars(ExpressionParser(item[2:]).parse(), table.log_vars)
    statements = split_statements(tokenize(block.listing))
    if len(statements) != 1:
        raise block.source.error("planner_objective expects exactly one expression")
    objective = expand_log_vars(ExpressionParser(statements[0]).parse(), table.log_vars)
    return PlannerObjective(objective, settings["discount"], settings["commitment"], block)


def _endogenous_shifts(exprs: list[Expr], endogenous: set[str]) -> dict[str, set[int]]:
    shifts: dict[str, set[int]] = {}
    for e in exprs:
        for leaf in ex.leaves(e):
            if leaf.kind == ExprKind.VARIABLE and leaf.name in endogenous:
                shifts.setdefault(leaf.name, set()).add(leaf.shift)
    return shifts


def optimal_policy(
    equations: list[Equation], table: SymbolTable, planner: PlannerObjective
) -> tuple[list[Equation], SymbolTable, PlannerSystem]:
    """Add the multipliers and replace the model by its first-order conditions."""
    if not ex.is_const(planner.commitment, 1.0):
        raise ModelError("only optimal policy under full commitment (commitment = 1) is supported")
    tic = time.perf_counter()
    structural = [eq for eq in equations if eq.eq_type == EquationType.STRUCTURAL]
    multipliers = tuple(f"{MULT_PREFIX}{i}" for i in range(1, len(structural) + 1))
    lagrangian = planner.objective
    for name, eq in zip(multipliers, structural):
        lagrangian = ex.add(lagrangian, ex.mul(ex.var(name), eq.expr))

    endogenous = [s.name for s in table.endogenous]
    shifts = _endogenous_shifts([lagrangian], set(endogenous))
    beta = planner.discount
    focs: list[Equation] = []
    for name in endogenous:
        terms = []
        for k in sorted(shifts.get(name, ())):
            d = differentiate(lagrangian, ex.var(name, k))
            if ex.is_const(d, 0.0):
                continue
            term = ex.shift_variables(d, -k)
            if k != 0:
                term = ex.mul(ex.power(beta, ex.const(-k)), term)
            terms.append(term)
        focs.append(Equation.residual(ex.sum_of(terms), planner.source.source))

    static_mult = tuple(
        Equation(ex.drop_shifts(eq.expr), EquationType.STATIC_MULT, None, eq.source) for eq in focs
    )
    new_symbols = tuple(Symbol(m, m.replace("_", "\\_")) for m in multipliers)
    table = table.with_endogenous(table.endogenous + new_symbols)
    others = [eq for eq in equations if eq.eq_type != EquationType.STRUCTURAL]
    elapsed = time.perf_counter() - tic
    logger.info("First-order conditions of optimal policy : %.4f seconds", elapsed)
    system = PlannerSystem(planner, True, multipliers, static_mult, (), None, elapsed)
    return structural + focs + others, table, system


def optimal_simple_rule(table: SymbolTable, planner: PlannerObjective) -> PlannerSystem:
    """Second derivatives of the loss with respect to the current endogenous variables it uses."""
    endogenous = set(table.names(SymbolKind.ENDOGENOUS))
    present = sorted(
        {leaf.name for leaf in ex.leaves(planner.objective) if leaf.kind == ExprKind.VARIABLE and leaf.name in endogenous}
    )
    derivatives: list[Equation] = []
    pairs: list[tuple[int, int]] = []
    for i, a in enumerate(present):
        da = differentiate(planner.objective, ex.var(a))
        for j in range(i, len(present)):
            d2 = differentiate(da, ex.var(present[j]))
            if ex.is_const(d2, 0.0):
                continue
            derivatives.append(Equation(d2, EquationType.OSR_DERIVATIVE, None, planner.source.source))
            pairs.append((i, j))
    osr = OsrSupport(tuple(present), tuple(pairs))
    return PlannerSystem(planner, False, osr_derivatives=tuple(derivatives), osr=osr)


def add_welfare(
    equations: list[Equation], table: SymbolTable, planner: Optional[PlannerObjective]
) -> tuple[list[Equation], SymbolTable]:
    """``UTIL = U`` and ``WELF = (1 - beta)*UTIL + beta*WELF{+1}``."""
    if planner is None:
        warnings.warn("add_welfare ignored: the model has no planner_objective block", UserWarning, stacklevel=3)
        return equations, table
    for name in (UTILITY, WELFARE):
        if table.lookup(name) is not None:
            raise ModelError(f"{name} is reserved for the welfare equations and cannot be declared")
    beta = planner.discount
    utility = Equation.residual(ex.sub(ex.var(UTILITY), planner.objective), planner.source.source)
    welfare = Equation.residual(
        ex.sub(
            ex.var(WELFARE),
            ex.add(ex.mul(ex.sub(ex.ONE, beta), ex.var(UTILITY)), ex.mul(beta, ex.var(WELFARE, 1))),
        ),
        planner.source.source,
    )
    table = table.with_endogenous(table.endogenous + (Symbol(UTILITY, "UTIL"), Symbol(WELFARE, "WELF")))
    return equations + [utility, welfare], table
