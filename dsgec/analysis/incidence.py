"""
Occurrence arrays and lead-lag incidence.

The occurrence array is a boolean ``(n_equations, n_endogenous, 3)``
record of which endogenous variable appears with which time shift in
which structural equation; the last axis is lead, current, lag.

The lead-lag incidence collapses the equation axis and numbers every
present (variable, shift) pair column by column (all leads first, then
all currents, then all lags). These numbers are the positions in the
dynamic ``y`` vector; absent pairs are -1.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from dsgec.errors import ModelError
from dsgec.ir import expr as ex
from dsgec.ir.equation import Equation
from dsgec.ir.expr import ExprKind
from dsgec.ir.types import Shift


def occurrence(equations: Sequence[Equation], names: Sequence[str]) -> np.ndarray:
    """Boolean occurrence array of ``names`` in ``equations``."""
    position = {name: i for i, name in enumerate(names)}
    occ = np.zeros((len(equations), len(names), 3), dtype=bool)
    for row, eq in enumerate(equations):
        for leaf in ex.leaves(eq.expr):
            if leaf.kind != ExprKind.VARIABLE:
                continue
            col = position.get(leaf.name)
            if col is not None:
                occ[row, col, Shift.of(leaf.shift).value] = True
    return occ


def lead_lag_incidence(present: np.ndarray) -> np.ndarray:
    """
    Number the True entries of an ``(n, 3)`` boolean array column by column.

    >>> lead_lag_incidence(np.array([[False, True, True], [True, True, False]]))
    array([[-1,  1,  3],
           [ 0,  2, -1]])
    """
    present = np.asarray(present, dtype=bool).reshape(-1, 3)
    lli = np.full(present.shape, -1, dtype=int)
    flat = present.flatten(order="F")
    numbers = np.full(flat.shape, -1, dtype=int)
    numbers[flat] = np.arange(int(flat.sum()))
    lli[:, :] = numbers.reshape(present.shape, order="F")
    return lli


def check_appear_as_current(lli: np.ndarray, names: Sequence[str]) -> None:
    missing = [names[i] for i in range(len(names)) if lli[i, Shift.CURRENT.value] < 0]
    if missing:
        raise ModelError(f"the following variables do not appear as current: {', '.join(missing)}")


@dataclass(frozen=True, eq=False)
class Incidence:
    """
    Occurrence arrays and lead-lag incidences of the structural equations.

    ``occurrence_declared`` has its variable axis in declaration order,
    ``occurrence`` and both incidences in the canonical (alphabetical)
    order. ``after_solve`` is renumbered after the round trip through the
    solution ordering.
    """

    occurrence: np.ndarray
    occurrence_declared: np.ndarray
    before_solve: np.ndarray
    after_solve: np.ndarray

    @property
    def present(self) -> np.ndarray:
        return self.before_solve >= 0


def after_solve_incidence(before_solve: np.ndarray, order_var: Sequence[int], names: Sequence[str]) -> np.ndarray:
    """
    Reorder the variables by ``order_var``, sort them back by name and
    renumber the incidence column by column.
    """
    order = np.asarray(order_var, dtype=int)
    present = before_solve[order] >= 0
    unsorted_names = [names[i] for i in order]
    tags = sorted(range(len(unsorted_names)), key=lambda i: unsorted_names[i])
    return lead_lag_incidence(present[tags])
