"""
Dictionary builder: fold declaration blocks into a SymbolTable.
"""

from __future__ import annotations

import logging
from typing import Optional

import sympy as sp

from dsgec.io.blocks import CONSTANT_CHAIN, Block, BlockSet
from dsgec.io.source import SourceLine
from dsgec.ir import expr as ex
from dsgec.ir.expr import Expr, ExprKind
from dsgec.ir.symbol import MarkovChain, Symbol, SymbolTable
from dsgec.parser.expression import RESERVED_NAMES
from dsgec.parser.lexer import TokenType, tokenize

logger = logging.getLogger(__name__)

LOG_PREFIX = "LOG_"


def greekify(name: str) -> str:
    """Default tex name: ``alpha_1`` -> ``\\alpha_{1}``."""
    return sp.latex(sp.Symbol(name))


class DictionaryBuilder:
    """
    Accumulate declarations, then produce an immutable SymbolTable.

    Names are unique across endogenous, exogenous and parameters; an
    observable must name an endogenous or exogenous variable. ``build``
    renames log variables, adds the transition-probability parameters of
    every Markov chain and flags observed exogenous variables.
    """

    def __init__(self) -> None:
        self._declared: dict[str, str] = {}
        self._endogenous: list[Symbol] = []
        self._exogenous: list[Symbol] = []
        self._parameters: list[Symbol] = []
        self._observables: list[tuple[str, str, SourceLine]] = []
        self._log_vars: list[tuple[str, SourceLine]] = []
        self._chains: dict[str, int] = {CONSTANT_CHAIN: 1}

    # -- registration ------------------------------------------------------

    def _register(self, name: str, category: str, source: SourceLine) -> None:
        if name in RESERVED_NAMES:
            raise source.error(f"{name} is a reserved name and cannot be declared")
        if name.startswith(LOG_PREFIX):
            raise source.error(f"names starting with {LOG_PREFIX} are reserved for log variables ({name})")
        previous = self._declared.get(name)
        if previous is not None:
            raise source.error(f"{name} declared twice (as {previous} and as {category})")
        self._declared[name] = category

    def add_endogenous(self, name: str, source: SourceLine, tex_name: str = "") -> None:
        self._register(name, "endogenous", source)
        self._endogenous.append(Symbol(name, tex_name or greekify(name)))

    def add_exogenous(self, name: str, source: SourceLine, tex_name: str = "") -> None:
        self._register(name, "exogenous", source)
        self._exogenous.append(Symbol(name, tex_name or greekify(name)))

    def add_parameter(self, name: str, source: SourceLine, tex_name: str = "", chain: str = CONSTANT_CHAIN) -> None:
        self._register(name, "parameter", source)
        self._parameters.append(
            Symbol(
                name,
                tex_name or greekify(name),
                is_switching=chain != CONSTANT_CHAIN,
                governing_chain=chain,
            )
        )

    def add_observable(self, name: str, source: SourceLine, tex_name: str = "") -> None:
        if any(name == o[0] for o in self._observables):
            raise source.error(f"{name} declared twice as observable")
        self._observables.append((name, tex_name, source))

    def add_log_var(self, name: str, source: SourceLine) -> None:
        if any(name == v[0] for v in self._log_vars):
            raise source.error(f"{name} declared twice as log variable")
        self._log_vars.append((name, source))

    def add_markov_chain(self, name: str, n_states: int) -> None:
        self._chains[name] = n_states

    def add_block(self, block: Block) -> None:
        """Register every entry of one declaration block."""
        chain = CONSTANT_CHAIN
        if block.name == "parameters" and block.trigger:
            chain = block.trigger.split(",")[0].strip()
        for name, tex_name, source in parse_declaration_listing(block):
            if block.name == "endogenous":
                self.add_endogenous(name, source, tex_name)
            elif block.name == "exogenous":
                self.add_exogenous(name, source, tex_name)
            elif block.name == "parameters":
                self.add_parameter(name, source, tex_name, chain)
            elif block.name == "observables":
                self.add_observable(name, source, tex_name)
            elif block.name == "log_vars":
                self.add_log_var(name, source)
            else:
                raise block.source.error(f"{block.name} is not a declaration block")

    def add_blocks(self, blocks: BlockSet) -> None:
        for name, n_states in blocks.markov_chains:
            self.add_markov_chain(name, n_states)
        for block in blocks.blocks:
            if block.name in ("endogenous", "exogenous", "parameters", "observables", "log_vars"):
                self.add_block(block)

    # -- build -------------------------------------------------------------

    def build(self) -> SymbolTable:
        endogenous = self._apply_log_vars()
        parameters = self._add_transition_probabilities()
        exogenous = self._flag_observed()

        chains = tuple(
            MarkovChain(
                name,
                n_states,
                tuple(p.name for p in parameters if p.governing_chain == name),
            )
            for name, n_states in self._chains.items()
        )
        observables = tuple(Symbol(name, tex or greekify(name), is_observed=True) for name, tex, _ in self._observables)

        table = SymbolTable(
            endogenous=endogenous,
            exogenous=exogenous,
            parameters=parameters,
            observables=observables,
            markov_chains=chains,
            log_vars=tuple(name for name, _ in self._log_vars),
            original_endogenous=frozenset(s.name for s in endogenous),
        )
        logger.debug(
            "symbol table: %d endogenous, %d exogenous, %d parameters, %d markov chains",
            len(endogenous),
            len(exogenous),
            len(parameters),
            len(chains),
        )
        return table

    def _apply_log_vars(self) -> tuple[Symbol, ...]:
        names = {s.name for s in self._endogenous}
        for name, source in self._log_vars:
            if name not in names:
                raise source.error(f"log variable {name} is not declared as endogenous")
        logged = {name for name, _ in self._log_vars}
        out = []
        for s in self._endogenous:
            if s.name in logged:
                out.append(Symbol(LOG_PREFIX + s.name, f"\\log\\left({s.tex_name}\\right)", is_log_var=True))
            else:
                out.append(s)
        return tuple(out)

    def _add_transition_probabilities(self) -> tuple[Symbol, ...]:
        parameters = list(self._parameters)
        declared = {p.name for p in parameters}
        for chain, n_states in self._chains.items():
            if n_states < 2:
                continue
            for tp in MarkovChain(chain, n_states).transition_parameters:
                if tp not in declared:
                    parameters.append(Symbol(tp, greekify(tp)))
        chain_tps = {tp for c, n in self._chains.items() for tp in MarkovChain(c, n).transition_parameters}
        return tuple(
            Symbol(
                p.name,
                p.tex_name,
                is_switching=p.is_switching,
                is_trans_prob=p.name in chain_tps,
                governing_chain=p.governing_chain,
            )
            for p in parameters
        )

    def _flag_observed(self) -> tuple[Symbol, ...]:
        endo = {s.name for s in self._endogenous}
        exo = {s.name for s in self._exogenous}
        observed = set()
        for name, _, source in self._observables:
            if name not in endo and name not in exo:
                raise source.error(f"observable {name} is neither endogenous nor exogenous")
            observed.add(name)
        return tuple(
            Symbol(s.name, s.tex_name, is_observed=s.name in observed) for s in self._exogenous
        )


def parse_declaration_listing(block: Block) -> list[tuple[str, str, SourceLine]]:
    """``name ["tex"] [,] ...`` entries of a declaration block."""
    entries: list[tuple[str, str, SourceLine]] = []
    tokens = tokenize(block.listing)
    i = 0
    while tokens[i].type != TokenType.EOF:
        token = tokens[i]
        if token.type in (TokenType.COMMA, TokenType.SEMICOLON):
            i += 1
            continue
        if token.type != TokenType.NAME:
            raise token.error(f"unexpected {token.value!r} in {block.name} declarations")
        tex_name = ""
        if tokens[i + 1].type == TokenType.STRING:
            tex_name = tokens[i + 1].value
            i += 1
        entries.append((token.value, tex_name, token.source))
        i += 1
    return entries


def build_symbol_table(blocks: BlockSet) -> SymbolTable:
    builder = DictionaryBuilder()
    builder.add_blocks(blocks)
    return builder.build()


def expand_log_vars(expr: Expr, log_vars: tuple[str, ...]) -> Expr:
    """Replace every ``X{k}`` of a log variable by ``exp(LOG_X{k})``."""
    if not log_vars:
        return expr
    logged = set(log_vars)

    def substitute(leaf: Expr) -> Expr:
        if leaf.kind == ExprKind.VARIABLE and leaf.name in logged:
            return ex.call(ExprKind.EXP, ex.var(LOG_PREFIX + leaf.name, leaf.shift))
        if leaf.kind == ExprKind.STEADY_STATE and leaf.name in logged:
            return ex.call(ExprKind.EXP, ex.steady_state(LOG_PREFIX + leaf.name))
        return leaf

    return ex.map_leaves(expr, substitute)


def log_var_target(name: str, log_vars: tuple[str, ...]) -> Optional[str]:
    """``LOG_X`` when ``name`` is a log variable, else None."""
    if name in log_vars:
        return LOG_PREFIX + name
    return None
