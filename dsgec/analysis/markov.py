"""
Markov chains, regimes and transition matrices.

Regimes are all combinations of chain states. Chains are ordered with
``const`` first and the others by name; the last chain varies fastest,
which matches the Kronecker product of the per-chain transition matrices.
"""

from __future__ import annotations

import itertools
from collections.abc import Mapping
from dataclasses import dataclass

import numpy as np

from dsgec.io.blocks import CONSTANT_CHAIN
from dsgec.ir import expr as ex
from dsgec.ir.expr import Expr
from dsgec.ir.symbol import MarkovChain, SymbolId
from dsgec.ir.types import SymbolKind


def ordered_chains(chains: tuple[MarkovChain, ...]) -> tuple[MarkovChain, ...]:
    return tuple(sorted(chains, key=lambda c: (c.name != CONSTANT_CHAIN, c.name)))


@dataclass(frozen=True)
class RegimeTable:
    """
    Regimes as tuples of 1-based chain states.

    >>> table = RegimeTable(("const", "pol"), ((1, 1), (1, 2)))
    >>> table.regimes_with("pol", 2)
    (1,)
    """

    chains: tuple[str, ...]
    states: tuple[tuple[int, ...], ...]

    @classmethod
    def from_chains(cls, chains: tuple[MarkovChain, ...]) -> "RegimeTable":
        ordered = ordered_chains(chains)
        names = tuple(c.name for c in ordered)
        states = tuple(itertools.product(*(range(1, c.n_states + 1) for c in ordered)))
        return cls(names, tuple(tuple(int(s) for s in row) for row in states))

    @property
    def n_regimes(self) -> int:
        return len(self.states)

    def regimes_with(self, chain: str, state: int) -> tuple[int, ...]:
        """0-based regimes in which ``chain`` is in ``state``."""
        position = self.chains.index(chain)
        return tuple(r for r, row in enumerate(self.states) if row[position] == state)

    def column(self, chain: str, state: int) -> int:
        """First regime in which ``chain`` is in ``state``."""
        found = self.regimes_with(chain, state)
        if not found:
            raise KeyError(f"markov chain {chain} has no state {state}")
        return found[0]

    def to_array(self) -> np.ndarray:
        return np.array(self.states, dtype=int).reshape(self.n_regimes, len(self.chains))


@dataclass(frozen=True)
class ChainTransition:
    """
    Symbolic transition matrix of one chain.

    Off-diagonal entries are the transition-probability parameters, or
    the right-hand side of their tvp equation; each diagonal entry is one
    minus the rest of its row.
    """

    chain: str
    entries: tuple[tuple[Expr, ...], ...]

    @property
    def n_states(self) -> int:
        return len(self.entries)


def chain_transition(
    chain: MarkovChain,
    parameter_index: Mapping[str, int],
    tvp: Mapping[str, Expr],
) -> ChainTransition:
    n = chain.n_states
    rows: list[tuple[Expr, ...]] = []
    for i in range(1, n + 1):
        off: dict[int, Expr] = {}
        for j in range(1, n + 1):
            if i == j:
                continue
            name = f"{chain.name}_tp_{i}_{j}"
            if name in tvp:
                off[j] = tvp[name]
            else:
                off[j] = ex.sym(SymbolId(SymbolKind.PARAMETER, parameter_index[name]))
        diagonal = ex.sub(ex.ONE, ex.sum_of([off[j] for j in sorted(off)]))
        rows.append(tuple(diagonal if j == i else off[j] for j in range(1, n + 1)))
    return ChainTransition(chain.name, tuple(rows))


def transition_matrices(
    chains: tuple[MarkovChain, ...],
    parameter_index: Mapping[str, int],
    tvp: Mapping[str, Expr],
) -> tuple[ChainTransition, ...]:
    return tuple(chain_transition(c, parameter_index, tvp) for c in ordered_chains(chains))


def kron_transition(matrices: list[np.ndarray]) -> np.ndarray:
    """Full regime transition matrix from evaluated per-chain matrices."""
    full = np.ones((1, 1))
    for m in matrices:
        full = np.kron(full, m)
    return full
