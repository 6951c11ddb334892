"""Tests for symbolic differentiation."""

from __future__ import annotations

import numpy as np
import pytest

from dsgec.errors import DerivativeError
from dsgec.ir import expr as ex
from dsgec.ir.expr import ExprKind
from dsgec.ir.symbol import SymbolId
from dsgec.ir.types import SymbolKind
from dsgec.symbolic.differentiate import differentiate, differentiate_system, gradient
from dsgec.symbolic.printer import to_text

x = ex.var("x")
y = ex.var("y")

LINEAR_STATIC = ("y_0 - param_0*x_0", "y_1 - param_1*y_0")


class TestRules:
    def test_product(self) -> None:
        assert differentiate(ex.mul(x, y), x) == y

    def test_log(self) -> None:
        assert to_text(differentiate(ex.call(ExprKind.LOG, x), x)) == "1/x"

    def test_exp(self) -> None:
        assert differentiate(ex.call(ExprKind.EXP, x), x) == ex.call(ExprKind.EXP, x)

    def test_constant_power(self) -> None:
        assert to_text(differentiate(ex.power(x, ex.const(3)), x)) == "3*x^2"

    def test_chain_rule(self) -> None:
        e = ex.call(ExprKind.SIN, ex.power(x, ex.const(2)))
        assert to_text(differentiate(e, x)) == "cos(x^2)*(2*x)"

    def test_quotient(self) -> None:
        assert to_text(differentiate(ex.div(ex.ONE, x), x)) == "-1/x^2"

    def test_min_is_piecewise(self) -> None:
        d = differentiate(ex.minimum(x, y), x)
        assert to_text(d) == "if_then_else((x <= y), 1, 0)"

    def test_comparison_is_flat(self) -> None:
        assert differentiate(ex.compare(ExprKind.GT, x, y), x) == ex.ZERO

    def test_other_leaves_are_constants(self) -> None:
        assert differentiate(y, x) == ex.ZERO
        assert differentiate(ex.var("x", 1), x) == ex.ZERO
        assert differentiate(ex.steady_state("x"), x) == ex.ZERO

    def test_symbols(self) -> None:
        y0 = SymbolId(SymbolKind.ENDOGENOUS, 0)
        p0 = SymbolId(SymbolKind.PARAMETER, 0)
        e = ex.mul(ex.sym(p0), ex.sym(y0))
        assert differentiate(e, y0) == ex.sym(p0)

    def test_gradient(self) -> None:
        e = ex.add(ex.mul(x, x), y)
        dx, dy = gradient(e, [x, y])
        assert to_text(dx) == "x + x"
        assert dy == ex.ONE


class TestSystem:
    def test_first_order(self) -> None:
        derivatives = differentiate_system(LINEAR_STATIC, ["y_0", "y_1"], 2)
        assert derivatives[1].as_dict() == {
            (0, (0,)): "1.0",
            (1, (0,)): "-param[1]",
            (1, (1,)): "1.0",
        }
        assert derivatives[1].shape == (2, 2)
        assert derivatives[2].nnz == 0
        assert derivatives[2].shape == (2, 4)

    def test_symbols_and_arguments(self) -> None:
        derivatives = differentiate_system(LINEAR_STATIC, ["y_0", "y_1"], 1)
        assert [str(s) for s in derivatives.symbols] == ["y_0", "y_1", "x_0", "param_0", "param_1", "s0", "s1"]
        assert [str(s) for s in derivatives.arguments[0]] == ["y_0", "x_0", "param_0"]
        assert derivatives.n_equations == 2 and derivatives.n_wrt == 2

    def test_second_order_is_computed_once(self) -> None:
        derivatives = differentiate_system(["y_0*y_1"], ["y_0", "y_1"], 2)
        (entry,) = derivatives[2].entries
        assert (entry.equation, entry.index, entry.code) == (0, (0, 1), "1.0")
        np.testing.assert_array_equal(derivatives[2].to_dense([1.0]), [[0.0, 1.0, 1.0, 0.0]])

    def test_dense_jacobian(self) -> None:
        derivatives = differentiate_system(LINEAR_STATIC, ["y_0", "y_1"], 1)
        dense = derivatives[1].to_dense([1.0, -0.5, 1.0])
        np.testing.assert_array_equal(dense, [[1.0, 0.0], [-0.5, 1.0]])
        with pytest.raises(ValueError):
            derivatives[1].to_dense([1.0])

    def test_entries_are_sorted(self) -> None:
        derivatives = differentiate_system(["y_1 + y_0", "y_0"], ["y_0", "y_1"], 1)
        assert [(e.equation, e.index) for e in derivatives[1].entries] == [(0, (0,)), (0, (1,)), (1, (0,))]

    def test_workers(self) -> None:
        functions = ("y_0*y_1*param_0", "exp(y_1) - y_0^2", "log(y_0)")
        serial = differentiate_system(functions, ["y_0", "y_1"], 2)
        pooled = differentiate_system(functions, ["y_0", "y_1"], 2, workers=2)
        for order in (1, 2):
            assert serial[order].as_dict() == pooled[order].as_dict()

    def test_duplicate_wrt(self) -> None:
        with pytest.raises(DerivativeError, match="duplicate"):
            differentiate_system(LINEAR_STATIC, ["y_0", "y_0"], 1)

    def test_order_zero(self) -> None:
        with pytest.raises(DerivativeError, match="at least 1"):
            differentiate_system(LINEAR_STATIC, ["y_0"], 0)

    def test_unreadable_function(self) -> None:
        with pytest.raises(DerivativeError, match="symbolic differentiation failed"):
            differentiate_system(["z + 1"], ["y_0"], 1)
