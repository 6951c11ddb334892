"""
Parameterization block.

Statements::

    beta, 0.99;
    alpha, 0.3, 0.2, 0.4;      extra fields are kept as text
    rho(pol, 2), 0.5;          value of a switching parameter in one state
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from dsgec.analysis.markov import RegimeTable
from dsgec.io.source import SourceLine
from dsgec.ir.expr import ExprKind
from dsgec.ir.symbol import SymbolTable
from dsgec.ir.types import SymbolKind
from dsgec.parser.expression import ExpressionParser
from dsgec.parser.lexer import Token, TokenType, split_fields, split_statements, tokenize


@dataclass(frozen=True)
class ParameterValue:
    name: str
    value: float
    chain: Optional[str] = None
    state: Optional[int] = None
    extra: tuple[str, ...] = ()
    source: Optional[SourceLine] = None


@dataclass(frozen=True)
class Parameterization:
    """Parameter values in declaration order; later entries win."""

    values: tuple[ParameterValue, ...] = ()

    def __len__(self) -> int:
        return len(self.values)

    def to_matrix(self, table: SymbolTable, regimes: RegimeTable) -> np.ndarray:
        """
        ``(n_params, n_regimes)`` array of values, NaN where unset. A value
        without a state applies to every regime.
        """
        matrix = np.full((len(table.parameters), regimes.n_regimes), np.nan)
        for entry in self.values:
            row = table.index(SymbolKind.PARAMETER, entry.name)
            if entry.chain is None:
                matrix[row, :] = entry.value
            else:
                matrix[row, list(regimes.regimes_with(entry.chain, entry.state))] = entry.value
        return matrix


def _parse_target(tokens: list[Token], table: SymbolTable) -> tuple[str, Optional[str], Optional[int]]:
    head = tokens[0]
    if head.type != TokenType.NAME:
        raise head.error(f"expected a parameter name, found {head.value!r}")
    found = table.lookup(head.value)
    if found is None or found[0] != SymbolKind.PARAMETER:
        raise head.error(f"{head.value} is not a declared parameter")
    if len(tokens) == 1:
        return head.value, None, None
    target = ExpressionParser(tokens, allow_state_refs=True).parse()
    if target.kind != ExprKind.VARIABLE or target.state is None:
        raise head.error(f"expected {head.value} or {head.value}(chain, state)")
    chain, state = target.state
    parameter = table.parameters[found[1]]
    if parameter.governing_chain != chain:
        raise head.error(f"{head.value} is not controlled by markov chain {chain}")
    n_states = table.chain(chain).n_states
    if not 1 <= state <= n_states:
        raise head.error(f"state {state} of markov chain {chain} is out of range 1..{n_states}")
    return head.value, chain, state


def parse_parameterization(lines: tuple[SourceLine, ...], table: SymbolTable) -> Parameterization:
    values = []
    for statement in split_statements(tokenize(lines)):
        fields = split_fields(statement)
        if len(fields) < 2 or not fields[0] or not fields[1]:
            raise statement[0].error("a parameterization statement reads name, value;")
        name, chain, state = _parse_target(fields[0], table)
        value = ExpressionParser(fields[1]).parse()
        if value.kind != ExprKind.CONSTANT:
            raise fields[1][0].error(f"the value of {name} must be a number")
        extra = tuple(" ".join(t.value for t in f) for f in fields[2:])
        values.append(ParameterValue(name, value.value, chain, state, extra, statement[0].source))
    return Parameterization(tuple(values))
