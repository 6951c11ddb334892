"""
Variable classification and differentiation lists.

From the lead-lag incidence every endogenous variable is classified as

* static: appears neither with a lead nor with a lag,
* predetermined: lag only,
* both: lead and lag,
* forward looking: lead only,

and the solution ordering ``order_var = [static, pred, both, frwrd]``
is derived. The dynamic differentiation list follows from it::

    v = [b_plus, f_plus, s_0, p_0, b_0, f_0, p_minus, b_minus, e_0]

i.e. leads of the "both" and forward-looking variables, every current
variable in solution order, lags of the predetermined and "both"
variables and the current shocks. Downstream numerical routines rely on
this order.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from dsgec.ir.symbol import SymbolId
from dsgec.ir.types import Shift, SymbolKind

V_BLOCKS = ("b_plus", "f_plus", "s_0", "p_0", "b_0", "f_0", "p_minus", "b_minus", "e_0")


@dataclass(frozen=True)
class Siz:
    """Partition sizes of the solution."""

    ns: int = 0  # static
    np: int = 0  # predetermined
    nb: int = 0  # both
    nf: int = 0  # forward looking
    ne: int = 0  # shocks
    nd: int = 0  # ns + np + nb + nf
    nv: int = 0  # length of the v vector

    def of(self, prefix: str) -> int:
        return getattr(self, f"n{prefix}")


@dataclass(frozen=True)
class Locations:
    """0-based positions of each block in the t, z and v orderings."""

    t: dict[str, tuple[int, ...]] = field(default_factory=dict)
    z: dict[str, tuple[int, ...]] = field(default_factory=dict)
    v: dict[str, tuple[int, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class SolutionTopology:
    static: tuple[int, ...]
    pred: tuple[int, ...]
    both: tuple[int, ...]
    frwrd: tuple[int, ...]
    order_var: tuple[int, ...]
    inv_order_var: tuple[int, ...]
    siz: Siz
    locations: Locations


def _span(start: int, size: int) -> tuple[int, ...]:
    return tuple(range(start, start + size))


def solution_topology(lli: Optional[np.ndarray], n_exo: int) -> SolutionTopology:
    """Classify the variables of a lead-lag incidence and order them."""
    if lli is None:
        lli = np.full((0, 3), -1, dtype=int)
    present = np.asarray(lli).reshape(-1, 3) >= 0
    lead = present[:, Shift.LEAD.value]
    lag = present[:, Shift.LAG.value]
    indices = range(present.shape[0])
    static = tuple(i for i in indices if not lead[i] and not lag[i])
    pred = tuple(i for i in indices if not lead[i] and lag[i])
    both = tuple(i for i in indices if lead[i] and lag[i])
    frwrd = tuple(i for i in indices if lead[i] and not lag[i])
    order_var = static + pred + both + frwrd
    inv = [0] * len(order_var)
    for position, variable in enumerate(order_var):
        inv[variable] = position
    ns, n_p, nb, nf = len(static), len(pred), len(both), len(frwrd)
    nd = ns + n_p + nb + nf

    t = {
        "s": _span(0, ns),
        "p": _span(ns, n_p),
        "b": _span(ns + n_p, nb),
        "f": _span(ns + n_p + nb, nf),
        "pb": _span(ns, n_p + nb),
        "bf": _span(ns + n_p, nb + nf),
    }
    z = {
        "pb": _span(0, n_p + nb),
        "e_0": _span(n_p + nb, n_exo),
    }
    sizes = {"b": nb, "f": nf, "s": ns, "p": n_p, "e": n_exo}
    v: dict[str, tuple[int, ...]] = {}
    start = 0
    for name in V_BLOCKS:
        size = sizes[name.split("_")[0]]
        v[name] = _span(start, size)
        start += size
    v["bf_plus"] = v["b_plus"] + v["f_plus"]
    v["pb_minus"] = v["p_minus"] + v["b_minus"]
    v["t_0"] = _span(nb + nf, ns + n_p + nb + nf)

    siz = Siz(ns=ns, np=n_p, nb=nb, nf=nf, ne=n_exo, nd=nd, nv=start)
    return SolutionTopology(static, pred, both, frwrd, order_var, tuple(inv), siz, Locations(t, z, v))


@dataclass(frozen=True)
class SteadyStateIndex:
    """
    Which steady-state value each wrt entry is evaluated at.

    ``y[k]`` is the endogenous variable (0-based, canonical order) behind
    the k-th endogenous wrt entry; ``x`` lists the shocks.
    """

    y: tuple[int, ...] = ()
    x: tuple[int, ...] = ()
    wrt: tuple[SymbolId, ...] = ()


@dataclass(frozen=True)
class DifferentiationList:
    wrt: tuple[SymbolId, ...]
    v: tuple[tuple[str, int], ...]
    topology: SolutionTopology
    steady_state_index: SteadyStateIndex

    @property
    def siz(self) -> Siz:
        return self.topology.siz

    @property
    def order_var(self) -> tuple[int, ...]:
        return self.topology.order_var

    @property
    def inv_order_var(self) -> tuple[int, ...]:
        return self.topology.inv_order_var

    @property
    def locations(self) -> Locations:
        return self.topology.locations


def differentiation_list(
    lli: Optional[np.ndarray], n_exo: int, param_index: Sequence[int] = ()
) -> DifferentiationList:
    """
    Ordered wrt list: endogenous entries of ``lli`` (rows in solution
    order, column by column), then ``x_0..x_{n_exo-1}``, then the
    requested parameters.
    """
    topology = solution_topology(lli, n_exo)
    siz = topology.siz
    v = tuple((name, siz.of(name.split("_")[0])) for name in V_BLOCKS)

    y_wrt: list[SymbolId] = []
    y_index: list[int] = []
    if lli is not None and len(lli):
        ordered = np.asarray(lli)[list(topology.order_var)]
        for column in (Shift.LEAD, Shift.CURRENT, Shift.LAG):
            for row in range(ordered.shape[0]):
                number = int(ordered[row, column.value])
                if number >= 0:
                    y_wrt.append(SymbolId(SymbolKind.ENDOGENOUS, number))
                    y_index.append(topology.order_var[row])
    x_wrt = [SymbolId(SymbolKind.EXOGENOUS, j) for j in range(n_exo)]
    p_wrt = [SymbolId(SymbolKind.PARAMETER, int(k)) for k in param_index]
    wrt = tuple(y_wrt + x_wrt + p_wrt)
    ss_index = SteadyStateIndex(tuple(y_index), tuple(range(n_exo)), wrt)
    return DifferentiationList(wrt, v, topology, ss_index)


def static_incidence(n_endo: int) -> np.ndarray:
    """Incidence of a model where every variable only appears as current."""
    lli = np.full((n_endo, 3), -1, dtype=int)
    lli[:, Shift.CURRENT.value] = np.arange(n_endo)
    return lli
