"""
Model block: statements to typed equations.

Statement forms::

    lhs = rhs;            structural residual lhs - (rhs)
    expr;                 structural residual expr
    # name = expr;        definition, parameters and earlier definitions only
    chain_tp_i_j = expr;  time-varying transition probability
    a >= b;  a <= b;      complementarity, residual a - b (resp. b - a) >= 0

After parsing, names are checked against the symbol table and leads
beyond one period, lags beyond one period and lagged exogenous variables
are replaced by auxiliary endogenous variables.
"""

from __future__ import annotations

import logging
from typing import Optional

from dsgec.errors import ModelError
from dsgec.io.source import SourceLine
from dsgec.ir import expr as ex
from dsgec.ir.equation import Equation
from dsgec.ir.expr import Expr, ExprKind
from dsgec.ir.symbol import MarkovChain, Symbol, SymbolTable
from dsgec.ir.types import EquationType, SymbolKind
from dsgec.parser.expression import ExpressionParser
from dsgec.parser.lexer import Token, TokenType, split_statements, tokenize

logger = logging.getLogger(__name__)

AUX_LEAD = "AUX_LEAD_"
AUX_LAG = "AUX_LAG_"
AUX_EXO = "AUX_EXO_"


def split_assignment(tokens: list[Token]) -> Optional[int]:
    """Position of the top-level ``=`` of a statement, or None."""
    depth = 0
    for i, token in enumerate(tokens):
        if token.type in (TokenType.LPAREN, TokenType.LBRACE):
            depth += 1
        elif token.type in (TokenType.RPAREN, TokenType.RBRACE):
            depth -= 1
        elif token.type == TokenType.ASSIGN and depth == 0:
            return i
    return None


def parse_statement(tokens: list[Token], transition_parameters: frozenset[str]) -> Equation:
    """Type and parse one ``;``-terminated statement of the model block."""
    source = tokens[0].source
    if tokens[0].type == TokenType.HASH:
        if len(tokens) < 3 or tokens[1].type != TokenType.NAME or tokens[2].type != TokenType.ASSIGN:
            raise source.error("a definition reads # name = expression;")
        value = ExpressionParser(tokens[3:]).parse()
        return Equation.assignment(tokens[1].value, value, EquationType.DEFINITION, source)

    split = split_assignment(tokens)
    if split is None:
        body = ExpressionParser(tokens).parse()
        if body.kind in (ExprKind.GE, ExprKind.GT):
            return Equation(ex.sub(body.children[0], body.children[1]), EquationType.COMPLEMENTARITY, None, source)
        if body.kind in (ExprKind.LE, ExprKind.LT):
            return Equation(ex.sub(body.children[1], body.children[0]), EquationType.COMPLEMENTARITY, None, source)
        return Equation.residual(body, source)

    if split == 0 or split == len(tokens) - 1:
        raise source.error("equation with an empty side")
    lhs_tokens, rhs_tokens = tokens[:split], tokens[split + 1 :]
    if len(lhs_tokens) == 1 and lhs_tokens[0].value in transition_parameters:
        value = ExpressionParser(rhs_tokens).parse()
        return Equation.assignment(lhs_tokens[0].value, value, EquationType.TVP, source)
    lhs = ExpressionParser(lhs_tokens).parse()
    rhs = ExpressionParser(rhs_tokens).parse()
    return Equation.residual(ex.sub(lhs, rhs), source)


def parse_model_block(lines: tuple[SourceLine, ...], table: SymbolTable) -> list[Equation]:
    tps = frozenset(p.name for p in table.parameters if p.is_trans_prob)
    return [parse_statement(statement, tps) for statement in split_statements(tokenize(lines))]


# =============================================================================
# Name checks
# =============================================================================


def _fail(eq: Equation, message: str):
    if eq.source is not None:
        return eq.source.error(message)
    return ModelError(message)


def collect_definitions(equations: list[Equation], table: SymbolTable) -> tuple[Symbol, ...]:
    """
    Definitions in order; each may only use parameters, numbers and
    definitions introduced before it.
    """
    defined: list[str] = []
    for number, eq in enumerate(equations, start=1):
        if eq.eq_type != EquationType.DEFINITION:
            continue
        if table.lookup(eq.lhs) is not None or eq.lhs in defined:
            raise _fail(eq, f"definition {eq.lhs} is already declared")
        for leaf in ex.leaves(eq.expr):
            if leaf.kind not in (ExprKind.VARIABLE, ExprKind.STEADY_STATE):
                continue
            found = table.lookup(leaf.name)
            if found is not None and found[0] in (SymbolKind.ENDOGENOUS, SymbolKind.EXOGENOUS):
                raise ModelError(
                    f"{eq.lhs} detected to be a definition cannot contain variables ({leaf.name})",
                    number,
                )
            if leaf.kind == ExprKind.STEADY_STATE:
                raise ModelError(f"{eq.lhs} detected to be a definition cannot contain variables", number)
            if found is None and leaf.name not in defined:
                raise _fail(eq, f"unknown symbol {leaf.name} in definition {eq.lhs}")
            if leaf.shift != 0:
                raise _fail(eq, f"{leaf.name} cannot carry a time shift in definition {eq.lhs}")
        defined.append(eq.lhs)
    return tuple(Symbol(name) for name in defined)


def check_references(equations: list[Equation], table: SymbolTable) -> None:
    """Every name of the non-definition equations must be declared, with legal shifts."""
    for number, eq in enumerate(equations, start=1):
        if eq.eq_type == EquationType.DEFINITION:
            continue
        for leaf in ex.leaves(eq.expr):
            if leaf.kind == ExprKind.STEADY_STATE:
                found = table.lookup(leaf.name)
                if found is None or found[0] != SymbolKind.ENDOGENOUS:
                    raise _fail(eq, f"steady_state({leaf.name}): {leaf.name} is not an endogenous variable")
                continue
            if leaf.kind != ExprKind.VARIABLE:
                continue
            found = table.lookup(leaf.name)
            if found is None:
                raise _fail(eq, f"unknown symbol {leaf.name} in equation {number}")
            if eq.eq_type == EquationType.TVP and leaf.shift != 0:
                raise ModelError(
                    f"{eq.lhs} detected to describe endogenous switching cannot contain leads or lags",
                    number,
                )
            kind = found[0]
            if kind in (SymbolKind.PARAMETER, SymbolKind.DEFINITION) and leaf.shift != 0:
                raise _fail(eq, f"{leaf.name} is not a variable and cannot carry a time shift")
            if kind == SymbolKind.EXOGENOUS and leaf.shift > 0:
                raise _fail(eq, f"exogenous {leaf.name} cannot appear with a lead")


def endogenous_switching(equations: list[Equation], table: SymbolTable) -> SymbolTable:
    """Flag the chains whose transition probabilities are given by tvp equations."""
    endogenous_chains = set()
    for eq in equations:
        if eq.eq_type == EquationType.TVP:
            endogenous_chains.add(eq.lhs.split("_tp_")[0])
    if not endogenous_chains:
        return table
    chains = tuple(
        MarkovChain(c.name, c.n_states, c.parameters, c.name in endogenous_chains) for c in table.markov_chains
    )
    return table.with_markov_chains(chains)


# =============================================================================
# Auxiliary variables
# =============================================================================


def _aux_name(prefix: str, k: int, name: str) -> str:
    return f"{prefix}{k}_{name}"


def add_auxiliary_variables(
    equations: list[Equation], table: SymbolTable
) -> tuple[list[Equation], SymbolTable, list[Equation]]:
    """
    Bring every dynamic equation to at most one lead and one lag.

    ``X{+m}`` (m > 1) becomes ``AUX_LEAD_<m-1>_X{+1}``, ``X{-m}`` (m > 1)
    becomes ``AUX_LAG_<m-1>_X{-1}`` and a lagged exogenous ``E{-m}`` goes
    through ``AUX_EXO_E = E``. Returns the new equations, the table with
    the auxiliary endogenous variables appended and the steady-state
    assignments of the auxiliary variables.
    """
    dynamic_types = (EquationType.STRUCTURAL, EquationType.COMPLEMENTARITY)
    exogenous = set(table.names(SymbolKind.EXOGENOUS))

    # lagged exogenous first, they become endogenous with lags
    lagged_exo = sorted(
        {
            leaf.name
            for eq in equations
            if eq.eq_type in dynamic_types
            for leaf in ex.leaves(eq.expr)
            if leaf.kind == ExprKind.VARIABLE and leaf.name in exogenous and leaf.shift < 0
        }
    )
    new_symbols: list[Symbol] = []
    new_equations: list[Equation] = []
    aux_steady_state: list[Equation] = []
    for name in lagged_exo:
        aux = AUX_EXO + name
        new_symbols.append(Symbol(aux, f"{AUX_EXO}{name}".replace("_", "\\_"), is_auxiliary=True))
        new_equations.append(Equation.residual(ex.sub(ex.var(aux), ex.var(name))))
        aux_steady_state.append(
            Equation.assignment(aux, ex.var(name), EquationType.STEADY_STATE_AUXILIARY)
        )

    def exo_substitute(leaf: Expr) -> Expr:
        if leaf.kind == ExprKind.VARIABLE and leaf.name in exogenous and leaf.shift < 0:
            return ex.var(AUX_EXO + leaf.name, leaf.shift)
        return leaf

    equations = [
        eq.with_expr(ex.map_leaves(eq.expr, exo_substitute)) if eq.eq_type in dynamic_types else eq
        for eq in equations
    ]
    equations = equations + new_equations

    endogenous = set(table.names(SymbolKind.ENDOGENOUS)) | {s.name for s in new_symbols}
    max_lead: dict[str, int] = {}
    max_lag: dict[str, int] = {}
    for eq in equations:
        if eq.eq_type not in dynamic_types:
            continue
        for leaf in ex.leaves(eq.expr):
            if leaf.kind != ExprKind.VARIABLE or leaf.name not in endogenous:
                continue
            if leaf.shift > 1:
                max_lead[leaf.name] = max(max_lead.get(leaf.name, 1), leaf.shift)
            elif leaf.shift < -1:
                max_lag[leaf.name] = max(max_lag.get(leaf.name, 1), -leaf.shift)

    extra: list[Equation] = []
    for name in sorted(max_lead):
        for k in range(1, max_lead[name]):
            aux = _aux_name(AUX_LEAD, k, name)
            previous = name if k == 1 else _aux_name(AUX_LEAD, k - 1, name)
            new_symbols.append(Symbol(aux, aux.replace("_", "\\_"), is_auxiliary=True))
            extra.append(Equation.residual(ex.sub(ex.var(aux), ex.var(previous, 1))))
            aux_steady_state.append(Equation.assignment(aux, ex.var(name), EquationType.STEADY_STATE_AUXILIARY))
    for name in sorted(max_lag):
        for k in range(1, max_lag[name]):
            aux = _aux_name(AUX_LAG, k, name)
            previous = name if k == 1 else _aux_name(AUX_LAG, k - 1, name)
            new_symbols.append(Symbol(aux, aux.replace("_", "\\_"), is_auxiliary=True))
            extra.append(Equation.residual(ex.sub(ex.var(aux), ex.var(previous, -1))))
            aux_steady_state.append(Equation.assignment(aux, ex.var(name), EquationType.STEADY_STATE_AUXILIARY))

    def lead_lag_substitute(leaf: Expr) -> Expr:
        if leaf.kind != ExprKind.VARIABLE or leaf.name not in endogenous:
            return leaf
        if leaf.shift > 1:
            return ex.var(_aux_name(AUX_LEAD, leaf.shift - 1, leaf.name), 1)
        if leaf.shift < -1:
            return ex.var(_aux_name(AUX_LAG, -leaf.shift - 1, leaf.name), -1)
        return leaf

    equations = [
        eq.with_expr(ex.map_leaves(eq.expr, lead_lag_substitute)) if eq.eq_type in dynamic_types else eq
        for eq in equations
    ]
    if new_symbols:
        logger.info("%d auxiliary variables added: %s", len(new_symbols), ", ".join(s.name for s in new_symbols))
    table = table.with_endogenous(table.endogenous + tuple(new_symbols))
    return equations + extra, table, aux_steady_state
