"""
Steady-state model and exogenous definitions blocks.

The steady-state model is a list of assignments solved in order::

    steady_state_model(unique, imposed)
        K = (alpha/(1/beta - 1 + delta))^(1/(1-alpha));
        C = K^alpha - delta*K;

The options of the block header set the steady-state flags of the
compiled model. Assigning a log variable ``X`` stores ``LOG_X = log(...)``;
assigning a parameter flags the model as changing parameters while
computing its steady state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from dsgec.io.blocks import Block
from dsgec.ir import expr as ex
from dsgec.ir.equation import Equation
from dsgec.ir.expr import ExprKind
from dsgec.ir.symbol import SymbolTable
from dsgec.ir.types import EquationType, SymbolKind
from dsgec.parser.declarations import expand_log_vars, log_var_target
from dsgec.parser.equations import split_assignment
from dsgec.parser.expression import ExpressionParser
from dsgec.parser.lexer import Token, TokenType, split_statements, tokenize

STEADY_STATE_OPTIONS = ("unique", "imposed", "initial_guess")


@dataclass(frozen=True)
class SteadyStateModel:
    equations: tuple[Equation, ...] = ()
    is_unique: bool = False
    is_imposed: bool = False
    is_initial_guess: bool = False
    changed_parameters: tuple[str, ...] = ()


def _options(block: Block) -> set[str]:
    words = {w.strip() for w in block.trigger.split(",") if w.strip()}
    for word in words:
        if word not in STEADY_STATE_OPTIONS:
            raise block.source.error(
                f"{word} is not a steady_state_model option ({', '.join(STEADY_STATE_OPTIONS)})"
            )
    return words


def _assignment(statement: list[Token], what: str) -> tuple[Token, list[Token]]:
    split = split_assignment(statement)
    if split != 1 or statement[0].type != TokenType.NAME or len(statement) < 3:
        raise statement[0].error(f"statements of {what} read name = expression;")
    return statement[0], statement[2:]


def _check_names(equation: Equation, table: SymbolTable, allowed: tuple[SymbolKind, ...], what: str) -> None:
    for leaf in ex.leaves(equation.expr):
        if leaf.kind == ExprKind.STEADY_STATE:
            raise equation.source.error(f"steady_state({leaf.name}) cannot appear in {what}")
        if leaf.kind != ExprKind.VARIABLE:
            continue
        found = table.lookup(leaf.name)
        if found is None or found[0] not in allowed:
            raise equation.source.error(f"{leaf.name} cannot appear in {what}")
        if leaf.shift != 0:
            raise equation.source.error(f"{leaf.name} cannot carry a time shift in {what}")


def parse_steady_state_model(block: Optional[Block], table: SymbolTable) -> SteadyStateModel:
    if block is None:
        return SteadyStateModel()
    options = _options(block)
    equations: list[Equation] = []
    changed: list[str] = []
    what = "the steady_state_model block"
    for statement in split_statements(tokenize(block.listing)):
        target, rhs_tokens = _assignment(statement, what)
        name = target.value
        value = expand_log_vars(ExpressionParser(rhs_tokens).parse(), table.log_vars)
        logged = log_var_target(name, table.log_vars)
        if logged is not None:
            name, value = logged, ex.call(ExprKind.LOG, value)
        found = table.lookup(name)
        if found is None or found[0] not in (SymbolKind.ENDOGENOUS, SymbolKind.PARAMETER):
            raise target.error(f"{target.value} is neither an endogenous variable nor a parameter")
        if found[0] == SymbolKind.PARAMETER and name not in changed:
            changed.append(name)
        equation = Equation.assignment(name, value, EquationType.STEADY_STATE, target.source)
        _check_names(
            equation,
            table,
            (SymbolKind.ENDOGENOUS, SymbolKind.EXOGENOUS, SymbolKind.PARAMETER, SymbolKind.DEFINITION),
            what,
        )
        equations.append(equation)
    return SteadyStateModel(
        tuple(equations),
        is_unique="unique" in options,
        is_imposed="imposed" in options,
        is_initial_guess="initial_guess" in options,
        changed_parameters=tuple(changed),
    )


def parse_exogenous_definitions(block: Optional[Block], table: SymbolTable) -> tuple[Equation, ...]:
    """``E = expr;`` over parameters, definitions and other exogenous variables."""
    if block is None:
        return ()
    equations = []
    defined: set[str] = set()
    what = "the exogenous_definitions block"
    for statement in split_statements(tokenize(block.listing)):
        target, rhs_tokens = _assignment(statement, what)
        found = table.lookup(target.value)
        if found is None or found[0] != SymbolKind.EXOGENOUS:
            raise target.error(f"{target.value} is not an exogenous variable")
        if target.value in defined:
            raise target.error(f"exogenous {target.value} defined twice")
        defined.add(target.value)
        value = ExpressionParser(rhs_tokens).parse()
        equation = Equation.assignment(target.value, value, EquationType.EXOGENOUS_DEFINITION, target.source)
        _check_names(equation, table, (SymbolKind.EXOGENOUS, SymbolKind.PARAMETER, SymbolKind.DEFINITION), what)
        equations.append(equation)
    return tuple(equations)
