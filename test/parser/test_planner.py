"""Tests for optimal policy, optimal simple rules and welfare."""

from __future__ import annotations

import pytest

from common import LINEAR, NK_OPTIMAL_POLICY, NK_SIMPLE_RULE

from dsgec import parse
from dsgec.errors import ModelError, ParseError
from dsgec.ir import expr as ex
from dsgec.ir.types import EquationType
from dsgec.parser.planner import OsrSupport


@pytest.fixture(scope="module")
def optimal_policy():
    return parse(NK_OPTIMAL_POLICY, filename="nk.rs")


@pytest.fixture(scope="module")
def simple_rule():
    return parse(NK_SIMPLE_RULE, filename="nk.rs")


class TestOptimalPolicy:
    def test_multipliers_are_added(self, optimal_policy) -> None:
        names = optimal_policy.endogenous.name
        assert sorted(names) == sorted(("pi", "x", "r", "MULT_1", "MULT_2"))
        flags = dict(zip(names, optimal_policy.endogenous.is_lagrange_multiplier))
        assert flags["MULT_1"] and flags["MULT_2"] and not flags["pi"]
        assert optimal_policy.planner.multipliers == ("MULT_1", "MULT_2")

    def test_one_condition_per_variable(self, optimal_policy) -> None:
        structural = optimal_policy.equations.structural
        assert len(structural) == 5
        assert optimal_policy.equations.number == 5

    def test_flags(self, optimal_policy) -> None:
        assert optimal_policy.is_optimal_policy_model
        assert not optimal_policy.is_optimal_simple_rule_model
        assert optimal_policy.is_model_with_planner_objective

    def test_routines(self, optimal_policy) -> None:
        routines = optimal_policy.routines
        assert len(routines.planner_static_mult) == 3
        assert routines.planner_osr_derivatives is None
        objective, commitment, discount = routines.planner_loss_commitment_discount.code
        assert commitment == "1.0"
        assert discount == "param[0]"
        assert objective == routines.planner_objective.code[0]

    def test_static_conditions_have_no_shifts(self, optimal_policy) -> None:
        for eq in optimal_policy.planner.static_mult:
            assert eq.eq_type == EquationType.STATIC_MULT
            assert all(shift == 0 for _, shift in ex.variables_in(eq.expr))

    def test_partial_commitment(self) -> None:
        text = NK_OPTIMAL_POLICY.replace("{discount = beta}", "{discount = beta, commitment = 0}")
        with pytest.raises(ModelError, match="full commitment"):
            parse(text)

    def test_unknown_option(self) -> None:
        text = NK_OPTIMAL_POLICY.replace("{discount = beta}", "{rate = beta}")
        with pytest.raises(ParseError, match="planner_objective options"):
            parse(text)


class TestOptimalSimpleRule:
    def test_support(self, simple_rule) -> None:
        assert simple_rule.is_optimal_simple_rule_model
        assert not simple_rule.is_optimal_policy_model
        assert simple_rule.routines.planner_osr_support == OsrSupport(("pi", "x"), ((0, 0), (1, 1)))
        assert simple_rule.routines.planner_osr_support.size == 2

    def test_second_derivatives(self, simple_rule) -> None:
        assert simple_rule.routines.planner_osr_derivatives.code == ("2.0", "param[2]*2.0")

    def test_model_is_unchanged(self, simple_rule) -> None:
        assert simple_rule.endogenous.number == 3
        assert simple_rule.routines.planner_static_mult is None


class TestWelfare:
    def test_utility_and_welfare_equations(self) -> None:
        model = parse(NK_SIMPLE_RULE, add_welfare=True)
        assert {"UTIL", "WELF"} <= set(model.endogenous.name)
        assert len(model.equations.structural) == 5

    def test_without_objective(self) -> None:
        with pytest.warns(UserWarning, match="add_welfare ignored"):
            model = parse(LINEAR, add_welfare=True)
        assert model.endogenous.number == 2
