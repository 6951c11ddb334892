"""
Symbols, typed symbol identifiers and the symbol table.

A SymbolId is the resolved form of a name inside an expression: a kind
plus an integer index into the vector of that kind. Text such as ``y_3``
or code such as ``y[3]`` is only a rendering of it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Optional

from dsgec.ir.types import SymbolKind

_SHADOW_RE = re.compile(r"^(y|x|ss|param|defs)_(\d+)(?:_(\d+))?$|^s([01])$")


@dataclass(frozen=True)
class SymbolId:
    """
    Resolved reference into one of the vocabulary vectors.

    ``column`` is only used for parameters addressed in a given regime
    (restrictions), in which case the code form is ``param[k, r]``.
    """

    kind: SymbolKind
    index: int
    column: Optional[int] = None

    def __str__(self) -> str:
        if self.kind == SymbolKind.REGIME_STATE:
            return f"s{self.index}"
        if self.column is not None:
            return f"{self.kind.value}_{self.index}_{self.column}"
        return f"{self.kind.value}_{self.index}"

    def code(self) -> str:
        """Python code form, e.g. ``y[3]``, ``param[2, 1]`` or ``s0``."""
        if self.kind == SymbolKind.REGIME_STATE:
            return f"s{self.index}"
        if self.column is not None:
            return f"{self.kind.value}[{self.index}, {self.column}]"
        return f"{self.kind.value}[{self.index}]"

    def sort_key(self) -> tuple[int, int, int]:
        return (_KIND_ORDER[self.kind], self.index, -1 if self.column is None else self.column)

    @classmethod
    def parse(cls, text: str) -> "SymbolId":
        """Inverse of ``str``: ``"y_3"`` -> SymbolId(ENDOGENOUS, 3)."""
        match = _SHADOW_RE.match(text)
        if match is None:
            raise ValueError(f"not a shadow symbol: {text!r}")
        if match.group(4) is not None:
            return cls(SymbolKind.REGIME_STATE, int(match.group(4)))
        column = None if match.group(3) is None else int(match.group(3))
        return cls(SymbolKind(match.group(1)), int(match.group(2)), column)


_KIND_ORDER = {kind: position for position, kind in enumerate(SymbolKind)}

S0 = SymbolId(SymbolKind.REGIME_STATE, 0)
S1 = SymbolId(SymbolKind.REGIME_STATE, 1)


@dataclass(frozen=True)
class CoefficientId:
    """
    Coefficient of a reduced-form equation referenced in a restriction.

    ``lag >= 0`` renders with prefix ``a``, leads (``lag < 0``) with ``b``:
    ``CoefficientId(1, 3, 0)`` is ``a0_1_3``, ``CoefficientId(2, 1, -1,
    "pol", 2)`` is ``b1_2_1(pol,2)``.
    """

    eqtn: int
    vbl: int
    lag: int
    chain: Optional[str] = None
    state: Optional[int] = None

    @property
    def base_name(self) -> str:
        prefix = "a" if self.lag >= 0 else "b"
        return f"{prefix}{abs(self.lag)}_{self.eqtn}_{self.vbl}"

    def __str__(self) -> str:
        if self.chain is None:
            return self.base_name
        return f"{self.base_name}({self.chain},{self.state})"

    def code(self) -> str:
        return f"coef[{str(self)!r}]"

    def sort_key(self) -> tuple[int, int, int]:
        return (len(_KIND_ORDER), self.eqtn, self.vbl)


@dataclass(frozen=True)
class Symbol:
    """A declared or synthesized name with its tex form and flags."""

    name: str
    tex_name: str = ""
    is_log_var: bool = False
    is_auxiliary: bool = False
    is_observed: bool = False
    is_switching: bool = False
    is_trans_prob: bool = False
    governing_chain: str = "const"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class MarkovChain:
    """A Markov chain with the parameters it governs."""

    name: str
    n_states: int
    parameters: tuple[str, ...] = ()
    is_endogenous: bool = False

    @property
    def transition_parameters(self) -> tuple[str, ...]:
        """Names ``<chain>_tp_<i>_<j>`` for every off-diagonal transition."""
        return tuple(
            f"{self.name}_tp_{i}_{j}"
            for i in range(1, self.n_states + 1)
            for j in range(1, self.n_states + 1)
            if i != j
        )


@dataclass(frozen=True)
class SymbolTable:
    """
    Immutable symbol table produced by the dictionary builder.

    Each compilation phase that changes the tables returns a new value
    through the ``with_*`` methods; nothing is mutated in place.
    """

    endogenous: tuple[Symbol, ...] = ()
    exogenous: tuple[Symbol, ...] = ()
    parameters: tuple[Symbol, ...] = ()
    observables: tuple[Symbol, ...] = ()
    definitions: tuple[Symbol, ...] = ()
    markov_chains: tuple[MarkovChain, ...] = ()
    log_vars: tuple[str, ...] = ()
    original_endogenous: frozenset[str] = field(default_factory=frozenset)

    @cached_property
    def _positions(self) -> dict[str, tuple[SymbolKind, int]]:
        positions: dict[str, tuple[SymbolKind, int]] = {}
        for kind, symbols in (
            (SymbolKind.ENDOGENOUS, self.endogenous),
            (SymbolKind.EXOGENOUS, self.exogenous),
            (SymbolKind.PARAMETER, self.parameters),
            (SymbolKind.DEFINITION, self.definitions),
        ):
            for i, sym in enumerate(symbols):
                positions[sym.name] = (kind, i)
        return positions

    def lookup(self, name: str) -> Optional[tuple[SymbolKind, int]]:
        """Kind and 0-based position of ``name``, or None."""
        return self._positions.get(name)

    def names(self, kind: SymbolKind) -> tuple[str, ...]:
        return tuple(s.name for s in self._of_kind(kind))

    def index(self, kind: SymbolKind, name: str) -> int:
        found = self.lookup(name)
        if found is None or found[0] != kind:
            raise KeyError(f"{name} is not a {kind.name.lower()} symbol")
        return found[1]

    def chain(self, name: str) -> MarkovChain:
        for chain in self.markov_chains:
            if chain.name == name:
                return chain
        raise KeyError(f"unknown markov chain {name}")

    def _of_kind(self, kind: SymbolKind) -> tuple[Symbol, ...]:
        if kind == SymbolKind.ENDOGENOUS:
            return self.endogenous
        if kind == SymbolKind.EXOGENOUS:
            return self.exogenous
        if kind == SymbolKind.PARAMETER:
            return self.parameters
        if kind == SymbolKind.DEFINITION:
            return self.definitions
        raise ValueError(f"no symbol list for {kind}")

    def with_endogenous(self, endogenous: tuple[Symbol, ...]) -> "SymbolTable":
        return replace(self, endogenous=endogenous)

    def with_exogenous(self, exogenous: tuple[Symbol, ...]) -> "SymbolTable":
        return replace(self, exogenous=exogenous)

    def with_definitions(self, definitions: tuple[Symbol, ...]) -> "SymbolTable":
        return replace(self, definitions=definitions)

    def with_markov_chains(self, chains: tuple[MarkovChain, ...]) -> "SymbolTable":
        return replace(self, markov_chains=chains)

    def sorted_endogenous(self) -> "SymbolTable":
        """Alphabetical order of the endogenous variables, the canonical order downstream."""
        return replace(self, endogenous=tuple(sorted(self.endogenous, key=lambda s: s.name)))
