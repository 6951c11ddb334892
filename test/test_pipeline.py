"""End-to-end compilation of model texts."""

from __future__ import annotations

import warnings

import numpy as np
import pytest
import sympy as sp

from common import (
    EPS,
    RBC,
    RBC_REORDERED,
    SWITCHING,
    WITH_DEFINITION,
    dynamic_point,
    steady_state,
)

from dsgec import parse, parse_file
from dsgec.backends import compile_routine
from dsgec.backends.sympy_backend import symbol_for, to_sympy
from dsgec.errors import ConfigurationError, ModelError, ParseError
from dsgec.ir.symbol import SymbolId
from dsgec.ir.types import EquationType, SymbolKind

SMALL = """endogenous y c
exogenous e u
parameters rho unused
model
    y = rho*y{-1} + e;
    c = y;
"""


def _rbc_point(model):
    return steady_state(model), np.zeros(1), model.parameter_values[:, 0]


def _evaluate(expr: sp.Basic, vectors: dict[str, list[float]], regime: tuple[int, int]) -> float:
    values = {}
    for s in expr.free_symbols:
        ref = SymbolId.parse(s.name)
        if ref.kind == SymbolKind.REGIME_STATE:
            values[s] = regime[ref.index]
        else:
            values[s] = vectors[ref.kind.value][ref.index]
    return float(expr.subs(values))


class TestRbc:
    def test_incidence_and_flags(self, rbc) -> None:
        np.testing.assert_array_equal(rbc.lead_lag_incidence, [[0, 2, -1], [-1, 3, 5], [1, 4, 6]])
        assert rbc.is_hybrid
        assert not rbc.is_purely_forward_looking and not rbc.is_purely_backward_looking
        assert not rbc.is_endogenous_switching_model
        assert rbc.filename == "rbc.rs"
        assert rbc.equations.type == (EquationType.STRUCTURAL,) * 3

    def test_steady_state(self, rbc) -> None:
        ss = steady_state(rbc)
        assert ss[2] == pytest.approx(1.0)
        assert ss[1] == pytest.approx((0.33 / (1 / 0.99 - 1 + 0.025)) ** (1 / 0.67))
        assert rbc.routines.steady_state_model.statements[0] == "y[2] = 1.0"

    def test_static_residual_vanishes_at_steady_state(self, rbc) -> None:
        ss, x, param = _rbc_point(rbc)
        residual = compile_routine(rbc.routines.static)(y=ss, x=x, param=param)
        np.testing.assert_allclose(residual, 0.0, atol=EPS)

    def test_dynamic_residual_vanishes_at_steady_state(self, rbc) -> None:
        ss, x, param = _rbc_point(rbc)
        y = dynamic_point(rbc, ss)
        residual = compile_routine(rbc.routines.dynamic)(y=y, x=x, ss=ss, param=param)
        np.testing.assert_allclose(residual, 0.0, atol=EPS)

    def test_balanced_growth_residual_vanishes_without_growth(self, rbc) -> None:
        ss, x, param = _rbc_point(rbc)
        y = np.concatenate([ss, np.zeros(3)])
        residual = compile_routine(rbc.routines.static_bgp)(y=y, x=x, param=param)
        assert residual.shape == (6,)
        np.testing.assert_allclose(residual, 0.0, atol=EPS)
        assert len(rbc.routines.static_bgp_derivatives.wrt) == 6

    def test_static_jacobian_matches_finite_differences(self, rbc) -> None:
        ss, x, param = _rbc_point(rbc)
        static = compile_routine(rbc.routines.static)
        (jacobian,) = compile_routine(rbc.routines.static_derivatives)(y=ss, x=x, param=param)
        h = 1e-6
        for j in range(3):
            step = np.zeros(3)
            step[j] = h
            column = (static(y=ss + step, x=x, param=param) - static(y=ss - step, x=x, param=param)) / (2 * h)
            np.testing.assert_allclose(jacobian[:, j], column, rtol=1e-5, atol=1e-7)

    def test_dynamic_derivative_shapes(self, rbc) -> None:
        ss, x, param = _rbc_point(rbc)
        y = dynamic_point(rbc, ss)
        first, second = compile_routine(rbc.routines.dynamic_derivatives)(y=y, x=x, ss=ss, param=param)
        assert first.shape == (3, 8)
        assert second.shape == (3, 64)
        np.testing.assert_allclose(second, second.reshape(3, 8, 8).transpose(0, 2, 1).reshape(3, 64))

    def test_routine_names(self, rbc) -> None:
        names = rbc.routines.names()
        assert "dynamic_derivatives" in names and "static_bgp" in names
        assert "parameter_derivatives" not in names
        assert "planner_objective" not in names


class TestDeterminism:
    def test_same_text_same_code(self, rbc) -> None:
        again = parse(RBC, filename="rbc.rs")
        assert again.routines.dynamic_derivatives.code == rbc.routines.dynamic_derivatives.code
        assert again.routines.static.code == rbc.routines.static.code

    def test_declaration_order_does_not_matter(self, rbc) -> None:
        reordered = parse(RBC_REORDERED)
        assert reordered.endogenous.name == rbc.endogenous.name
        np.testing.assert_array_equal(reordered.lead_lag_incidence, rbc.lead_lag_incidence)
        assert reordered.routines.dynamic_derivatives.code == rbc.routines.dynamic_derivatives.code
        assert not np.array_equal(reordered.incidence.occurrence_declared, reordered.incidence.occurrence)

    def test_derivative_order_only_adds_orders(self, rbc) -> None:
        first_only = parse(RBC, max_deriv_order=1)
        assert first_only.routines.dynamic_derivatives.order == 1
        assert first_only.routines.dynamic_derivatives.code[0] == rbc.routines.dynamic_derivatives.code[0]


class TestLinear:
    def test_static_jacobian(self, linear) -> None:
        (jacobian,) = compile_routine(linear.routines.static_derivatives)(y=[0.0, 0.0], x=[0.0], param=[2.0, 3.0])
        np.testing.assert_array_equal(jacobian, [[1.0, 0.0], [-3.0, 1.0]])

    def test_dynamic_list(self, linear) -> None:
        assert [str(s) for s in linear.routines.dynamic_derivatives.wrt] == ["y_0", "y_1", "x_0"]
        assert linear.routines.dynamic_derivatives[2].nnz == 0
        assert not linear.is_hybrid and linear.endogenous.is_static.all()


class TestOptions:
    def test_stationary_model_skips_growth(self) -> None:
        model = parse(RBC, stationary_model=True)
        assert model.routines.static_bgp is None
        assert model.routines.static_bgp_derivatives is None

    def test_parameter_derivatives_on_request(self) -> None:
        model = parse(RBC, parameter_differentiation=True, max_deriv_order=1)
        derivatives = model.routines.parameter_derivatives
        assert [str(s) for s in derivatives.wrt] == [f"param_{k}" for k in range(5)]
        assert derivatives[1].nnz > 0

    def test_definitions_ignored_in_parameter_derivatives(self) -> None:
        with pytest.warns(UserWarning, match="definitions not taken into account"):
            model = parse(WITH_DEFINITION, parameter_differentiation=True)
        assert model.routines.parameter_derivatives[1].nnz == 0

    def test_definitions_in_parameter_derivatives(self) -> None:
        with warnings.catch_warnings():
            warnings.simplefilter("error", UserWarning)
            model = parse(WITH_DEFINITION, parameter_differentiation=True, definitions_in_param_differentiation=True)
        assert model.routines.parameter_derivatives[1].nnz == 2

    def test_definitions_inserted(self) -> None:
        kept = parse(WITH_DEFINITION)
        inserted = parse(WITH_DEFINITION, definitions_inserted=True)
        assert "defs[0]" in kept.routines.dynamic.code[0]
        assert "defs" not in inserted.routines.dynamic.code[0]
        assert inserted.routines.definitions.code == ("param[0]*param[1]",)
        assert kept.definitions.name == ("c",)

    def test_bad_option(self) -> None:
        with pytest.raises(ConfigurationError, match="not an option"):
            parse(RBC, deriv_order=1)


class TestFlags:
    def test_in_use(self) -> None:
        model = parse(SMALL)
        np.testing.assert_array_equal(model.exogenous.is_in_use, [True, False])
        np.testing.assert_array_equal(model.parameters.is_in_use, [True, False])

    def test_observables(self) -> None:
        text = """endogenous C K
exogenous e
parameters rho
log_vars C
observables C e
model
    C = rho*C{-1} + e;
    K = C;
"""
        model = parse(text)
        assert model.endogenous.name == ("K", "LOG_C")
        assert model.observables.name == ("C", "e")
        np.testing.assert_array_equal(model.observables.is_endogenous, [True, False])
        np.testing.assert_array_equal(model.observables.state_id, [1, 0])
        assert model.observables.number == (1, 1)
        np.testing.assert_array_equal(model.exogenous.is_observed, [True])
        np.testing.assert_array_equal(model.endogenous.is_log_var, [False, True])

    def test_dsge_var_and_measurement_errors(self) -> None:
        text = SMALL.replace(
            "parameters rho unused", "parameters rho unused dsge_prior_weight stderr_y\nobservables y"
        )
        model = parse(text)
        assert model.is_dsge_var_model
        assert not parse(SMALL).is_dsge_var_model
        np.testing.assert_array_equal(model.parameters.is_in_use, [True, False, True, False])
        np.testing.assert_array_equal(model.parameters.is_measurement_error, [False, False, False, True])

    def test_shock_horizon(self) -> None:
        assert parse(SMALL).exogenous.shock_horizon.shape == (1, 2)
        np.testing.assert_array_equal(parse(SWITCHING).exogenous.shock_horizon, np.zeros((2, 1)))


class TestSwitching:
    @pytest.fixture(scope="class")
    def model(self):
        return parse(SWITCHING)

    def test_flags(self, model) -> None:
        assert model.is_endogenous_switching_model
        assert model.parameters.name == ("rho", "a", "pol_tp_1_2", "pol_tp_2_1")
        assert model.regimes.n_regimes == 2
        assert model.parameter_values.shape == (4, 2)
        np.testing.assert_array_equal(model.endogenous.is_affect_trans_probs, [True])

    def test_transition_matrix(self, model) -> None:
        matrix = compile_routine(model.routines.transition_matrix)(y=[0.0, 0.0], param=[0.9, 1.0, 0.0, 0.2])
        np.testing.assert_allclose(matrix, [[0.5, 0.5], [0.2, 0.8]])
        np.testing.assert_allclose(matrix.sum(axis=1), [1.0, 1.0])

    def test_probs_times_dynamic(self, model) -> None:
        y, x, param = [1.0, 0.5], [0.1], [0.9, 1.0, 0.0, 0.2]
        residual = compile_routine(model.routines.dynamic)(y=y, x=x, param=param)[0]
        assert residual == pytest.approx(1.0 - 0.9 * 0.5 - 0.1)
        matrix = compile_routine(model.routines.transition_matrix)(y=y, param=param)
        weighted = compile_routine(model.routines.probs_times_dynamic)
        for s0 in range(2):
            for s1 in range(2):
                value = weighted(y=y, x=x, param=param, s0=s0, s1=s1)[0]
                assert value == pytest.approx(matrix[s0, s1] * residual)

    def test_regime_indices_are_arguments(self, model) -> None:
        symbols = model.routines.dynamic_derivatives.derivatives.symbols
        assert {"s0", "s1"} <= {str(s) for s in symbols}

    def test_symbolic_forms_are_weighted(self, model) -> None:
        functions, wrt = model.routines.symbolic["dynamic"]
        assert functions == model.routines.probs_times_dynamic.functions
        assert wrt == model.routines.dynamic_derivatives.wrt

    def test_weighted_jacobian_matches_sympy(self, model) -> None:
        vectors = {"y": [1.0, 0.5], "x": [0.1], "param": [0.9, 1.0, 0.0, 0.2]}
        routine = model.routines.dynamic_derivatives
        (weighted,) = model.routines.probs_times_dynamic.functions
        f = to_sympy(weighted)
        derivatives = compile_routine(routine)
        for regime in [(0, 0), (0, 1), (1, 0), (1, 1)]:
            first, _ = derivatives(**vectors, s0=regime[0], s1=regime[1])
            for j, w in enumerate(routine.wrt):
                expected = _evaluate(sp.diff(f, symbol_for(w)), vectors, regime)
                assert first[0, j] == pytest.approx(expected, rel=1e-9, abs=1e-12)


class TestComplementarity:
    def test_residual(self) -> None:
        text = SMALL.replace("c = y;", "c = y;\n    c >= -1;")
        model = parse(text)
        assert len(model.routines.complementarity) == 1
        assert model.equations.number == 2
        value = compile_routine(model.routines.complementarity)(y=[0.5, 0.0, 0.0])
        np.testing.assert_allclose(value, [1.5])


class TestErrors:
    def test_located_parse_error(self) -> None:
        text = "endogenous y\nexogenous e\nparameters rho\nmodel\n    y = rho*(y{-1} + e;\n"
        with pytest.raises(ParseError) as info:
            parse(text, filename="bad.rs")
        assert info.value.line == 5
        assert str(info.value).startswith("bad.rs:5:")

    def test_no_model_block(self) -> None:
        with pytest.raises(ParseError, match="no model block"):
            parse("endogenous y\n")

    def test_equation_count(self) -> None:
        with pytest.raises(ModelError, match="1 equations for 2 endogenous variables"):
            parse(SMALL.replace("    c = y;\n", ""))

    def test_missing_current(self) -> None:
        text = SMALL.replace("c = y;", "c{+1} = y;")
        with pytest.raises(ModelError, match="do not appear as current: c"):
            parse(text)

    def test_lagged_transition_probability(self) -> None:
        with pytest.raises(ModelError, match="cannot contain leads or lags"):
            parse(SWITCHING.replace("-a*y)", "-a*y{-1})"))

    def test_lead_only_in_complementarity(self) -> None:
        text = SMALL.replace("c = y;", "c = y;\n    c{+1} >= -1;")
        with pytest.raises(ModelError, match="missing from the lead-lag incidence") as info:
            parse(text)
        assert info.value.equation == 3

    def test_block_keyword_as_symbol(self) -> None:
        text = SMALL.replace("endogenous y c", "endogenous y model").replace("c = y;", "model = y;")
        with pytest.raises(ParseError, match="model is a reserved name"):
            parse(text)


class TestLongEquations:
    def test_thousand_term_sum(self) -> None:
        terms = " + ".join(["p*e"] * 1000)
        model = parse(f"endogenous y\nexogenous e\nparameters p\nmodel\n    y = {terms};\n")
        assert model.endogenous.name == ("y",)
        assert model.routines.static_derivatives[1].nnz == 1
        assert model.routines.dynamic_derivatives[1].nnz == 2
        assert model.routines.dynamic_derivatives[2].nnz == 0


class TestFiles:
    def test_parse_file(self, tmp_path) -> None:
        path = tmp_path / "model.rs"
        path.write_text(RBC)
        model = parse_file(tmp_path / "model", max_deriv_order=1)
        assert model.filename.endswith("model.rs")
        assert model.endogenous.name == ("C", "K", "Z")
