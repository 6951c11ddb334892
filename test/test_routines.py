"""Tests for the routine bundle and the regime weights."""

from __future__ import annotations

from dsgec.analysis.markov import RegimeTable, transition_matrices
from dsgec.ir import expr as ex
from dsgec.ir.symbol import MarkovChain, SymbolId
from dsgec.ir.types import INPUT_LIST, SymbolKind
from dsgec.routines import Routine, probs_times_dynamic, transition_probability
from dsgec.symbolic.printer import to_code

CHAINS = (MarkovChain("const", 1), MarkovChain("pol", 2))
INDEX = {"pol_tp_1_2": 0, "pol_tp_2_1": 1}


class TestTransitionProbability:
    def test_nested_selection(self) -> None:
        chains = transition_matrices(CHAINS, INDEX, {})
        regimes = RegimeTable.from_chains(CHAINS)
        code = to_code(transition_probability(chains, regimes))
        assert code == (
            "where((s0 == 0.0), where((s1 == 0.0), 1.0 - param[0], param[0]), "
            "where((s1 == 0.0), param[1], 1.0 - param[1]))"
        )

    def test_single_regime(self) -> None:
        constant = (MarkovChain("const", 1),)
        chains = transition_matrices(constant, {}, {})
        assert transition_probability(chains, RegimeTable.from_chains(constant)) == ex.ONE

    def test_weights_only_with_switching(self) -> None:
        chains = transition_matrices(CHAINS, INDEX, {})
        regimes = RegimeTable.from_chains(CHAINS)
        dynamic = (ex.sym(SymbolId(SymbolKind.ENDOGENOUS, 0)),)
        assert probs_times_dynamic(dynamic, chains, regimes, False) is dynamic
        (weighted,) = probs_times_dynamic(dynamic, chains, regimes, True)
        assert to_code(weighted).endswith("*y[0]")


class TestRoutine:
    def test_assignment_statements(self) -> None:
        target = SymbolId(SymbolKind.ENDOGENOUS, 2)
        routine = Routine("steady", (ex.const(1.0),), (target,))
        assert routine.statements == ("y[2] = 1.0",)
        assert routine.arguments == INPUT_LIST
        assert len(routine) == 1

    def test_code_and_text(self) -> None:
        p0 = ex.sym(SymbolId(SymbolKind.PARAMETER, 0))
        routine = Routine("f", (ex.mul(p0, ex.const(2.0)),))
        assert routine.code == ("param[0]*2.0",)
        assert routine.text == ("param_0*2",)


class TestBundle:
    def test_names(self, rbc) -> None:
        assert rbc.routines.names() == (
            "definitions",
            "steady_state_model",
            "steady_state_auxiliary_eqtns",
            "exogenous_definitions",
            "dynamic",
            "probs_times_dynamic",
            "dynamic_derivatives",
            "static",
            "static_derivatives",
            "transition_matrix",
            "complementarity",
            "static_bgp",
            "static_bgp_derivatives",
        )

    def test_symbolic_forms(self, rbc) -> None:
        functions, wrt = rbc.routines.symbolic["dynamic"]
        assert len(functions) == 3
        assert wrt == rbc.routines.dynamic_derivatives.wrt
        assert set(rbc.routines.symbolic) == {"dynamic", "static", "static_bgp"}

    def test_without_switching_the_weights_are_the_dynamic(self, rbc) -> None:
        assert rbc.routines.probs_times_dynamic.code == rbc.routines.dynamic.code
        assert len(rbc.routines.transition_matrix) == 1
