"""
Parameter restrictions.

Each statement of the ``parameter_restrictions`` block is one restriction
over the parameters::

    alpha + beta <= 1;
    coef(1, y, 0) >= 0;
    a0(2, pi, pol, 1) > b1(2, pi);
    rho(pol, 2) = rho(pol, 1);

Statements whose text contains ``<`` or ``>`` are inequalities and go to
the nonlinear set; the others are linear (equality) restrictions.

Coefficients of reduced-form equations are written
``coef(eqtn, vbl, lag[, chain, state])`` or ``a<lag>(eqtn, vbl[, chain,
state])`` / ``b<lead>(...)``. ``vbl`` is an endogenous name (its 1-based
position is used) or a number. A coefficient whose canonical name is a
declared parameter becomes that parameter; any other stays a coefficient
reference, printed ``coef['a0_1_3']``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Optional

from dsgec.analysis.markov import RegimeTable
from dsgec.errors import ConfigurationError
from dsgec.io.source import SourceLine
from dsgec.ir import expr as ex
from dsgec.ir.expr import Expr, ExprKind
from dsgec.ir.symbol import CoefficientId, SymbolId
from dsgec.ir.types import SymbolKind
from dsgec.parser.equations import split_assignment
from dsgec.parser.expression import ExpressionParser
from dsgec.parser.lexer import Token, TokenType, split_statements, tokenize
from dsgec.symbolic.printer import to_code

logger = logging.getLogger(__name__)

_LAG_FORM = re.compile(r"^([ab])(\d+)$")

#: relation of ``g`` to zero
GE = ">="
GT = ">"
EQ = "="


@dataclass(frozen=True)
class Restriction:
    """
    ``g <relation> 0`` where ``g`` is an expression over ``param`` (a
    ``(n_params, n_regimes)`` matrix) and ``coef``.

    ``derived`` names the parameter defined by the restriction when
    derived parameters are allowed.
    """

    text: str
    g: Expr
    relation: str
    derived: Optional[str] = None
    source: Optional[SourceLine] = None

    @property
    def code(self) -> str:
        return to_code(self.g)

    @property
    def is_inequality(self) -> bool:
        return self.relation != EQ


@dataclass(frozen=True)
class Restrictions:
    linear: tuple[Restriction, ...] = ()
    nonlinear: tuple[Restriction, ...] = ()

    def __len__(self) -> int:
        return len(self.linear) + len(self.nonlinear)

    @property
    def coefficients(self) -> tuple[CoefficientId, ...]:
        """Coefficient references that are not declared parameters."""
        found: set[CoefficientId] = set()
        for r in self.linear + self.nonlinear:
            found |= {s for s in ex.symbols_in(r.g) if isinstance(s, CoefficientId)}
        return tuple(sorted(found, key=lambda c: (c.eqtn, c.vbl, c.lag, str(c))))


class RestrictionParser(ExpressionParser):
    """
    Expression parser resolving coefficient references and parameter states.

    ``governing`` maps parameter names to the markov chain controlling them;
    when given, ``p(chain, state)`` must name that chain.
    """

    def __init__(
        self,
        tokens: list[Token],
        endogenous_names: Sequence[str],
        parameter_names: Sequence[str],
        regimes: Optional[RegimeTable] = None,
        governing: Optional[Mapping[str, str]] = None,
    ):
        super().__init__(tokens, allow_state_refs=True)
        self.endogenous_names = tuple(endogenous_names)
        self.parameter_position = {name: i for i, name in enumerate(parameter_names)}
        self.regimes = regimes
        self.governing = governing

    def parse(self) -> Expr:
        return ex.map_leaves(super().parse(), self._resolve)

    def _parse_special(self, token: Token) -> Optional[Expr]:
        if token.value == "coef":
            return self._parse_coef(token)
        match = _LAG_FORM.match(token.value)
        if (
            match is not None
            and token.value not in self.parameter_position
            and self._check(TokenType.LPAREN)
            and self._peek(1).type == TokenType.NUMBER
        ):
            lag = int(match.group(2))
            return self._parse_lag_form(token, lag if match.group(1) == "a" else -lag)
        return None

    def _parse_coef(self, token: Token) -> Expr:
        self._consume(TokenType.LPAREN, "expected ( after coef")
        eqtn = self._integer("equation number")
        self._consume(TokenType.COMMA, "coef(eqtn, vbl, lag) expects a comma")
        vbl = self._variable_index()
        self._consume(TokenType.COMMA, "coef(eqtn, vbl, lag) expects a comma")
        lag = self._signed_integer()
        return self._finish_coefficient(token, eqtn, vbl, lag)

    def _parse_lag_form(self, token: Token, lag: int) -> Expr:
        self._consume(TokenType.LPAREN, f"expected ( after {token.value}")
        eqtn = self._integer("equation number")
        self._consume(TokenType.COMMA, f"{token.value}(eqtn, vbl) expects a comma")
        vbl = self._variable_index()
        return self._finish_coefficient(token, eqtn, vbl, lag)

    def _finish_coefficient(self, token: Token, eqtn: int, vbl: int, lag: int) -> Expr:
        chain: Optional[str] = None
        state: Optional[int] = None
        if self._match(TokenType.COMMA):
            chain = self._consume(TokenType.NAME, "expected a markov chain name").value
            self._consume(TokenType.COMMA, "expected , between chain and state")
            state = self._integer("state number")
        self._consume(TokenType.RPAREN, f"expected ) to close {token.value}(")
        coefficient = CoefficientId(eqtn, vbl, lag, chain, state)
        position = self.parameter_position.get(coefficient.base_name)
        if position is None:
            return ex.sym(coefficient)
        column = None if chain is None else self._column(token, coefficient.base_name, chain, state)
        return ex.sym(SymbolId(SymbolKind.PARAMETER, position, column))

    def _integer(self, what: str) -> int:
        token = self._consume(TokenType.NUMBER, f"expected {what}")
        if not token.value.isdigit():
            raise token.error(f"{what} must be an integer, found {token.value}")
        return int(token.value)

    def _signed_integer(self) -> int:
        sign = -1 if self._match(TokenType.MINUS) else 1
        return sign * self._integer("lag")

    def _variable_index(self) -> int:
        token = self._advance()
        if token.type == TokenType.NUMBER and token.value.isdigit():
            return int(token.value)
        if token.type == TokenType.NAME:
            if token.value not in self.endogenous_names:
                raise token.error(f"{token.value} is not an endogenous variable")
            return self.endogenous_names.index(token.value) + 1
        raise token.error(f"expected a variable name or number, found {self._describe(token)}")

    def _column(self, token: Token, name: str, chain: str, state: int) -> int:
        if self.regimes is None or chain not in self.regimes.chains:
            raise token.error(f"unknown markov chain {chain}")
        if self.governing is not None and self.governing.get(name) != chain:
            raise token.error(f"{name} is not controlled by markov chain {chain}")
        try:
            return self.regimes.column(chain, state)
        except KeyError as exc:
            raise token.error(exc.args[0]) from None

    def _resolve(self, leaf: Expr) -> Expr:
        if leaf.kind == ExprKind.STEADY_STATE:
            raise ConfigurationError(f"steady_state({leaf.name}) cannot appear in a parameter restriction")
        if leaf.kind != ExprKind.VARIABLE:
            return leaf
        position = self.parameter_position.get(leaf.name)
        if position is None:
            raise self.tokens[0].error(f"{leaf.name} is not a parameter")
        if leaf.shift != 0:
            raise self.tokens[0].error(f"parameter {leaf.name} cannot carry a time shift")
        column = None
        if leaf.state is not None:
            column = self._column(self.tokens[0], leaf.name, leaf.state[0], leaf.state[1])
        return ex.sym(SymbolId(SymbolKind.PARAMETER, position, column))


def _text_of(tokens: list[Token]) -> str:
    return " ".join(t.value if t.type != TokenType.STRING else f'"{t.value}"' for t in tokens)


def _is_inequality(tokens: list[Token]) -> bool:
    return any(t.type in (TokenType.LT, TokenType.LE, TokenType.GT, TokenType.GE) for t in tokens)


def _as_residual(body: Expr, source: SourceLine) -> tuple[Expr, str]:
    """``a >= b`` -> (a - b, ">="), ``a < b`` -> (b - a, ">") ..."""
    if body.kind not in ex.COMPARISON_KINDS:
        raise source.error("a restriction must compare two expressions")
    a, b = body.children
    if body.kind == ExprKind.GE:
        return ex.sub(a, b), GE
    if body.kind == ExprKind.GT:
        return ex.sub(a, b), GT
    if body.kind == ExprKind.LE:
        return ex.sub(b, a), GE
    if body.kind == ExprKind.LT:
        return ex.sub(b, a), GT
    if body.kind == ExprKind.EQ:
        return ex.sub(a, b), EQ
    raise source.error("!= is not a valid restriction")


def normalize_restriction(
    tokens: list[Token],
    endogenous_names: Sequence[str],
    parameter_names: Sequence[str],
    regimes: Optional[RegimeTable] = None,
    allow_derived: bool = False,
    governing: Optional[Mapping[str, str]] = None,
) -> Restriction:
    """Parse one restriction statement."""
    source = tokens[0].source
    text = _text_of(tokens)

    def parser(part: list[Token]) -> RestrictionParser:
        return RestrictionParser(part, endogenous_names, parameter_names, regimes, governing)

    split = split_assignment(tokens)
    if split is None:
        g, relation = _as_residual(parser(tokens).parse(), source)
        return Restriction(text, g, relation, None, source)
    if split == 0 or split == len(tokens) - 1:
        raise source.error("restriction with an empty side")
    lhs = parser(tokens[:split]).parse()
    rhs = parser(tokens[split + 1 :]).parse()
    derived = None
    if _is_inequality(tokens) and lhs.kind == ExprKind.SYMBOL and isinstance(lhs.symbol, SymbolId):
        # p = h(...) among the nonlinear restrictions defines p
        if not allow_derived:
            raise ConfigurationError("derived parameters should not appear here")
        derived = parameter_names[lhs.symbol.index]
    return Restriction(text, ex.sub(lhs, rhs), EQ, derived, source)


def normalize_restrictions(
    lines: tuple[SourceLine, ...],
    endogenous_names: Sequence[str],
    parameter_names: Sequence[str],
    regimes: Optional[RegimeTable] = None,
    allow_derived: bool = False,
    governing: Optional[Mapping[str, str]] = None,
) -> Restrictions:
    """
    Split the restriction statements into linear and nonlinear sets and
    resolve every name.
    """
    linear: list[Restriction] = []
    nonlinear: list[Restriction] = []
    for statement in split_statements(tokenize(lines)):
        restriction = normalize_restriction(
            statement, endogenous_names, parameter_names, regimes, allow_derived, governing
        )
        if _is_inequality(statement):
            nonlinear.append(restriction)
        else:
            linear.append(restriction)
    if linear or nonlinear:
        logger.debug("%d linear and %d nonlinear restrictions", len(linear), len(nonlinear))
    return Restrictions(tuple(linear), tuple(nonlinear))
