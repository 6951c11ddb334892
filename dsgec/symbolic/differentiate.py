"""
Symbolic differentiation of expression trees.

A DiffPass differentiates the nodes of one equation with respect to one
target leaf. Results are memoized by node identity inside the pass, so
a subtree shared by several parents is differentiated once; the memo
lives and dies with the pass and is never shared across equations.

``differentiate_system`` drives the passes for a whole system: for each
equation only the wrt entries it actually references are visited, and
order ``k`` differentiates every order ``k - 1`` result again with respect
to the wrt entries at or after its last index, so each symmetric
combination is computed once.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Sequence
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from itertools import permutations
from typing import Any, Union

import numpy as np

from dsgec.errors import DerivativeError
from dsgec.ir import expr as ex
from dsgec.ir.expr import Expr, ExprKind, Ref
from dsgec.ir.symbol import S0, S1, SymbolId
from dsgec.symbolic.printer import parse_shadow, to_code

logger = logging.getLogger(__name__)


def leaf_key(leaf: Expr) -> Any:
    """Hashable identity of a leaf as a differentiation target."""
    if leaf.kind == ExprKind.SYMBOL:
        return leaf.symbol
    if leaf.kind == ExprKind.VARIABLE:
        return ("var", leaf.name, leaf.shift, leaf.state)
    if leaf.kind == ExprKind.STEADY_STATE:
        return ("ss", leaf.name)
    return None


def _d_unary(kind: ExprKind, a: Expr, da: Expr) -> Expr:
    """Chain rule for one-argument functions: f'(a) * da."""
    if kind == ExprKind.NEG:
        return ex.neg(da)
    if kind == ExprKind.EXP:
        return ex.mul(ex.call(ExprKind.EXP, a), da)
    if kind == ExprKind.LOG:
        return ex.div(da, a)
    if kind == ExprKind.LOG10:
        return ex.div(da, ex.mul(a, ex.const(math.log(10.0))))
    if kind == ExprKind.SQRT:
        return ex.div(da, ex.mul(ex.const(2.0), ex.call(ExprKind.SQRT, a)))
    if kind == ExprKind.ABS:
        return ex.mul(ex.call(ExprKind.SIGN, a), da)
    if kind == ExprKind.SIGN:
        return ex.ZERO
    if kind == ExprKind.SIN:
        return ex.mul(ex.call(ExprKind.COS, a), da)
    if kind == ExprKind.COS:
        return ex.neg(ex.mul(ex.call(ExprKind.SIN, a), da))
    if kind == ExprKind.TAN:
        return ex.div(da, ex.power(ex.call(ExprKind.COS, a), ex.const(2.0)))
    if kind == ExprKind.ASIN:
        return ex.div(da, ex.call(ExprKind.SQRT, ex.sub(ex.ONE, ex.power(a, ex.const(2.0)))))
    if kind == ExprKind.ACOS:
        return ex.neg(ex.div(da, ex.call(ExprKind.SQRT, ex.sub(ex.ONE, ex.power(a, ex.const(2.0))))))
    if kind == ExprKind.ATAN:
        return ex.div(da, ex.add(ex.ONE, ex.power(a, ex.const(2.0))))
    if kind == ExprKind.SINH:
        return ex.mul(ex.call(ExprKind.COSH, a), da)
    if kind == ExprKind.COSH:
        return ex.mul(ex.call(ExprKind.SINH, a), da)
    if kind == ExprKind.TANH:
        return ex.mul(ex.sub(ex.ONE, ex.power(ex.call(ExprKind.TANH, a), ex.const(2.0))), da)
    if kind == ExprKind.NORMCDF:
        return ex.mul(ex.call(ExprKind.NORMPDF, a), da)
    if kind == ExprKind.NORMPDF:
        return ex.neg(ex.mul(ex.mul(a, ex.call(ExprKind.NORMPDF, a)), da))
    raise DerivativeError(f"no derivative rule for {kind.name}")


def _d_binary(node: Expr, da: Expr, db: Expr) -> Expr:
    kind = node.kind
    a, b = node.children[0], node.children[1]
    if kind == ExprKind.ADD:
        return ex.add(da, db)
    if kind == ExprKind.SUB:
        return ex.sub(da, db)
    if kind == ExprKind.MUL:
        return ex.add(ex.mul(da, b), ex.mul(a, db))
    if kind == ExprKind.DIV:
        if ex.is_const(db, 0.0):
            return ex.div(da, b)
        return ex.div(ex.sub(ex.mul(da, b), ex.mul(a, db)), ex.power(b, ex.const(2.0)))
    if kind == ExprKind.POW:
        if ex.is_const(db, 0.0):
            # d(a^c) = c * a^(c-1) * da
            return ex.mul(ex.mul(b, ex.power(a, ex.sub(b, ex.ONE))), da)
        if ex.is_const(da, 0.0):
            return ex.mul(ex.mul(node, ex.call(ExprKind.LOG, a)), db)
        return ex.mul(
            node,
            ex.add(ex.mul(db, ex.call(ExprKind.LOG, a)), ex.div(ex.mul(b, da), a)),
        )
    if kind == ExprKind.MIN:
        return ex.if_then_else(ex.compare(ExprKind.LE, a, b), da, db)
    if kind == ExprKind.MAX:
        return ex.if_then_else(ex.compare(ExprKind.GE, a, b), da, db)
    if kind in ex.COMPARISON_KINDS:
        return ex.ZERO
    raise DerivativeError(f"no derivative rule for {kind.name}")


class DiffPass:
    """
    Differentiate trees with respect to one target leaf.

    ``depends`` maps node ids to the set of leaf keys below the node; nodes
    whose set does not contain the target differentiate to zero without
    being visited.
    """

    def __init__(self, target: Any, depends: dict[int, frozenset]):
        self.target = target
        self.depends = depends
        self._memo: dict[int, Expr] = {}

    def derivative(self, expr: Expr) -> Expr:
        if self.target not in self._keys(expr):
            return ex.ZERO
        stack: list[tuple[Expr, bool]] = [(expr, False)]
        while stack:
            node, expanded = stack.pop()
            key = id(node)
            if key in self._memo:
                continue
            if self.target not in self._keys(node):
                self._memo[key] = ex.ZERO
                continue
            if node.kind in ex.LEAF_KINDS:
                self._memo[key] = ex.ONE if leaf_key(node) == self.target else ex.ZERO
                continue
            if not expanded:
                stack.append((node, True))
                stack.extend((child, False) for child in node.children)
                continue
            self._memo[key] = self._combine(node)
        return self._memo[id(expr)]

    def _keys(self, node: Expr) -> frozenset:
        found = self.depends.get(id(node))
        if found is None:
            found = dependencies(node, self.depends)
        return found

    def _combine(self, node: Expr) -> Expr:
        kind = node.kind
        d = [self._memo[id(c)] for c in node.children]
        if kind == ExprKind.IF_THEN_ELSE:
            return ex.if_then_else(node.children[0], d[1], d[2])
        if len(node.children) == 1:
            return _d_unary(kind, node.children[0], d[0])
        return _d_binary(node, d[0], d[1])


def dependencies(expr: Expr, table: dict[int, frozenset]) -> frozenset:
    """Fill ``table`` with the leaf keys under every node of ``expr``."""
    stack: list[tuple[Expr, bool]] = [(expr, False)]
    while stack:
        node, expanded = stack.pop()
        key = id(node)
        if key in table:
            continue
        if node.kind in ex.LEAF_KINDS:
            found = leaf_key(node)
            table[key] = frozenset() if found is None else frozenset((found,))
            continue
        if not expanded:
            stack.append((node, True))
            stack.extend((child, False) for child in node.children)
            continue
        keys: frozenset = frozenset()
        for child in node.children:
            keys = keys | table[id(child)]
        table[key] = keys
    return table[id(expr)]


def differentiate(expr: Expr, target: Union[Ref, Expr]) -> Expr:
    """Derivative of one tree with respect to a symbol or a leaf."""
    key = leaf_key(target) if isinstance(target, Expr) else target
    depends: dict[int, frozenset] = {}
    dependencies(expr, depends)
    return DiffPass(key, depends).derivative(expr)


def gradient(expr: Expr, targets: Sequence[Union[Ref, Expr]]) -> list[Expr]:
    """Derivatives of one tree with respect to several targets, sharing the dependency table."""
    depends: dict[int, frozenset] = {}
    dependencies(expr, depends)
    keys = [leaf_key(t) if isinstance(t, Expr) else t for t in targets]
    return [DiffPass(key, depends).derivative(expr) for key in keys]


# =============================================================================
# Systems
# =============================================================================


@dataclass(frozen=True)
class DerivativeEntry:
    """Structurally nonzero derivative of ``equation`` wrt ``wrt[index[0]], wrt[index[1]] ...``."""

    equation: int
    index: tuple[int, ...]
    expr: Expr
    code: str


@dataclass(frozen=True, eq=False)
class DerivativeOrder:
    """All nonzero derivatives of one order, sorted by (equation, index)."""

    order: int
    n_equations: int
    n_wrt: int
    entries: tuple[DerivativeEntry, ...]

    @property
    def nnz(self) -> int:
        return len(self.entries)

    @property
    def code(self) -> tuple[str, ...]:
        return tuple(e.code for e in self.entries)

    def as_dict(self) -> dict[tuple[int, tuple[int, ...]], str]:
        return {(e.equation, e.index): e.code for e in self.entries}

    @property
    def shape(self) -> tuple[int, int]:
        return (self.n_equations, self.n_wrt**self.order)

    def to_dense(self, values: Union[Sequence[float], np.ndarray]) -> np.ndarray:
        """
        Dense ``(n_equations, n_wrt**order)`` array from the values of the
        entries, every permutation of a symmetric index filled in.
        """
        values = np.asarray(values, dtype=float)
        if values.shape != (self.nnz,):
            raise ValueError(f"expected {self.nnz} values, got shape {values.shape}")
        dense = np.zeros(self.shape)
        dims = (self.n_wrt,) * self.order
        for entry, value in zip(self.entries, values):
            for perm in set(permutations(entry.index)):
                dense[entry.equation, np.ravel_multi_index(perm, dims)] = value
        return dense


@dataclass(frozen=True, eq=False)
class DerivativeSet:
    """
    Result of differentiating a system.

    ``symbols`` is the sorted symbol list of the system (``s0`` and ``s1``
    always included); ``arguments[i]`` are the symbols equation ``i``
    actually references.
    """

    functions: tuple[Expr, ...]
    wrt: tuple[Ref, ...]
    orders: tuple[DerivativeOrder, ...]
    symbols: tuple[Ref, ...]
    arguments: tuple[tuple[Ref, ...], ...]
    elapsed: float

    @property
    def n_equations(self) -> int:
        return len(self.functions)

    @property
    def n_wrt(self) -> int:
        return len(self.wrt)

    def __getitem__(self, order: int) -> DerivativeOrder:
        """1-based: ``derivatives[1]`` is the Jacobian."""
        return self.orders[order - 1]


def _sort_key(ref: Ref) -> tuple[int, int, int]:
    return ref.sort_key()


def symbol_list(functions: Sequence[Expr]) -> tuple[Ref, ...]:
    found: set = set()
    for f in functions:
        found |= ex.symbols_in(f)
    found |= {S0, S1}
    return tuple(sorted(found, key=_sort_key))


def differentiate_equation(
    equation: int, expr: Expr, wrt: tuple[Ref, ...], order: int
) -> list[list[tuple[int, tuple[int, ...], Expr]]]:
    """
    Nonzero derivatives of one equation for orders 1..``order``.

    The dependency table and memo are local to this call, so nothing
    built here outlives it.
    """
    position = {ref: i for i, ref in enumerate(wrt)}
    results: list[list[tuple[int, tuple[int, ...], Expr]]] = []
    frontier: list[tuple[tuple[int, ...], Expr]] = [((), expr)]
    for _ in range(order):
        current: list[tuple[int, tuple[int, ...], Expr]] = []
        next_frontier: list[tuple[tuple[int, ...], Expr]] = []
        for index, f in frontier:
            depends: dict[int, frozenset] = {}
            keys = dependencies(f, depends)
            start = index[-1] if index else 0
            candidates = sorted(position[k] for k in keys if k in position and position[k] >= start)
            for j in candidates:
                d = DiffPass(wrt[j], depends).derivative(f)
                if ex.is_const(d, 0.0):
                    continue
                new_index = index + (j,)
                current.append((equation, new_index, d))
                next_frontier.append((new_index, d))
        results.append(current)
        frontier = next_frontier
    return results


def _differentiate_job(job: tuple[int, Expr, tuple[Ref, ...], int]) -> list[list[tuple[int, tuple[int, ...], Expr]]]:
    equation, expr, wrt, order = job
    return differentiate_equation(equation, expr, wrt, order)


def _as_tree(f: Union[Expr, str]) -> Expr:
    return f if isinstance(f, Expr) else parse_shadow(f)


def _as_ref(w: Union[Ref, str]) -> Ref:
    return SymbolId.parse(w) if isinstance(w, str) else w


def differentiate_system(
    functions: Sequence[Union[Expr, str]],
    wrt: Sequence[Union[Ref, str]],
    order: int,
    workers: int = 1,
) -> DerivativeSet:
    """
    Derivatives of ``functions`` with respect to ``wrt`` for orders 1..``order``.

    Functions may be trees or shadow strings, wrt entries SymbolIds or
    their text (``"y_3"``). With ``workers > 1`` the equations are spread
    over a process pool; each worker receives one immutable equation and
    returns immutable results.
    """
    if order < 1:
        raise DerivativeError(f"derivative order must be at least 1, got {order}")
    tic = time.perf_counter()
    try:
        trees = tuple(_as_tree(f) for f in functions)
        refs = tuple(_as_ref(w) for w in wrt)
        if len(set(refs)) != len(refs):
            raise DerivativeError("duplicate entries in the differentiation list")
        jobs = [(i, f, refs, order) for i, f in enumerate(trees)]
        if workers > 1 and len(jobs) > 1:
            with ProcessPoolExecutor(max_workers=workers) as pool:
                per_equation = list(pool.map(_differentiate_job, jobs))
        else:
            per_equation = [_differentiate_job(job) for job in jobs]

        orders = []
        for k in range(order):
            raw = [item for results in per_equation for item in results[k]]
            raw.sort(key=lambda item: (item[0], item[1]))
            entries = tuple(DerivativeEntry(eq, index, d, to_code(d)) for eq, index, d in raw)
            orders.append(DerivativeOrder(k + 1, len(trees), len(refs), entries))

        symbols = symbol_list(trees)
        arguments = tuple(tuple(sorted(ex.symbols_in(f), key=_sort_key)) for f in trees)
    except DerivativeError:
        raise
    except (ValueError, TypeError, KeyError, ArithmeticError, RecursionError) as exc:
        raise DerivativeError(f"symbolic differentiation failed: {exc}") from exc
    elapsed = time.perf_counter() - tic
    logger.debug("%d equations differentiated wrt %d variables up to order %d", len(trees), len(refs), order)
    return DerivativeSet(trees, refs, tuple(orders), symbols, arguments, elapsed)

