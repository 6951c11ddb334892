"""
Split source lines into named blocks.

A block starts on a line whose first word is a block keyword. The keyword
may be followed by an option group ``( ... )`` or ``{ ... }``, stored as
the block trigger; whatever follows on the same line belongs to the block
listing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional

from dsgec.io.source import SourceLine

#: Blocks that may appear several times and accumulate.
DECLARATION_BLOCKS = ("endogenous", "exogenous", "parameters", "observables", "log_vars")

#: Blocks that may appear at most once.
UNIQUE_BLOCKS = (
    "model",
    "steady_state_model",
    "parameterization",
    "parameter_restrictions",
    "exogenous_definitions",
    "planner_objective",
)

BLOCK_KEYWORDS = DECLARATION_BLOCKS + UNIQUE_BLOCKS

CONSTANT_CHAIN = "const"

_WORD_RE = re.compile(r"^([A-Za-z_]\w*)")
_CHAIN_RE = re.compile(r"^\s*([A-Za-z]\w*)\s*,\s*(\d+)\s*$")
_CLOSING = {"(": ")", "{": "}"}


@dataclass(frozen=True)
class Block:
    """A named block with its option group and raw lines."""

    name: str
    trigger: str
    listing: tuple[SourceLine, ...]
    source: SourceLine

    @property
    def text(self) -> str:
        return " ".join(line.code for line in self.listing)


@dataclass(frozen=True)
class BlockSet:
    """Every block of a model file plus the Markov chains declared in it."""

    blocks: tuple[Block, ...]
    markov_chains: tuple[tuple[str, int], ...]

    def named(self, name: str) -> tuple[Block, ...]:
        return tuple(b for b in self.blocks if b.name == name)

    def first(self, name: str) -> Optional[Block]:
        for block in self.blocks:
            if block.name == name:
                return block
        return None

    def listing(self, name: str) -> tuple[SourceLine, ...]:
        """All lines of every block called ``name``, in file order."""
        return tuple(line for b in self.named(name) for line in b.listing)

    def __contains__(self, name: str) -> bool:
        return self.first(name) is not None


def _split_trigger(line: SourceLine, keyword: str) -> tuple[str, str]:
    """Separate the option group following ``keyword`` from the rest of the line."""
    rest = line.code[len(keyword) :].lstrip()
    if not rest or rest[0] not in _CLOSING:
        return "", rest
    opening = rest[0]
    closing = _CLOSING[opening]
    depth = 0
    for i, c in enumerate(rest):
        if c == opening:
            depth += 1
        elif c == closing:
            depth -= 1
            if depth == 0:
                return rest[1:i].strip(), rest[i + 1 :].strip()
    raise line.error(f"unclosed option group after {keyword}")


def _chain_from_trigger(line: SourceLine, trigger: str) -> Optional[tuple[str, int]]:
    if not trigger:
        return None
    match = _CHAIN_RE.match(trigger)
    if match is None:
        raise line.error(f"parameters({trigger}) should read parameters(chain_name, number_of_states)")
    name, n_states = match.group(1), int(match.group(2))
    if n_states < 1:
        raise line.error(f"markov chain {name} must have at least one state")
    if name == CONSTANT_CHAIN and n_states != 1:
        raise line.error(f"the {CONSTANT_CHAIN} markov chain has exactly one state")
    return name, n_states


def extract_blocks(lines: list[SourceLine]) -> BlockSet:
    """Partition ``lines`` into blocks."""
    blocks: list[Block] = []
    chains: dict[str, int] = {CONSTANT_CHAIN: 1}
    seen_unique: set[str] = set()
    current: Optional[Block] = None

    for line in lines:
        match = _WORD_RE.match(line.code)
        word = match.group(1) if match else None
        # "model = y;" is a statement about a symbol named like a block
        if word in BLOCK_KEYWORDS and not line.code[match.end() :].lstrip().startswith("="):
            if current is not None:
                blocks.append(current)
            if word in UNIQUE_BLOCKS:
                if word in seen_unique:
                    raise line.error(f"duplicate block {word}")
                seen_unique.add(word)
            trigger, rest = _split_trigger(line, word)
            if word == "parameters":
                _register_chain(chains, line, trigger)
            first = (SourceLine(rest, line.filename, line.line),) if rest else ()
            current = Block(word, trigger, first, line)
            continue
        if current is None:
            first_token = line.code.split()[0]
            raise line.error(f"unknown block {first_token}")
        current = replace(current, listing=current.listing + (line,))
    if current is not None:
        blocks.append(current)

    return BlockSet(tuple(blocks), tuple(chains.items()))


def _register_chain(chains: dict[str, int], line: SourceLine, trigger: str) -> None:
    chain = _chain_from_trigger(line, trigger)
    if chain is None:
        return
    previous = chains.get(chain[0])
    if previous is not None and previous != chain[1]:
        raise line.error(f"markov chain {chain[0]} declared with {previous} and {chain[1]} states")
    chains[chain[0]] = chain[1]
