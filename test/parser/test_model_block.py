"""Tests for model-block statements, name checks and auxiliary variables."""

from __future__ import annotations

import pytest

from dsgec.errors import ModelError, ParseError
from dsgec.io.blocks import extract_blocks
from dsgec.io.source import lines_from_text
from dsgec.ir import expr as ex
from dsgec.ir.equation import Equation
from dsgec.ir.symbol import SymbolTable
from dsgec.ir.types import EquationType, SymbolKind
from dsgec.parser.declarations import build_symbol_table
from dsgec.parser.equations import (
    add_auxiliary_variables,
    check_references,
    collect_definitions,
    parse_model_block,
)
from dsgec.symbolic.printer import to_text

HEADER = "endogenous y c\nexogenous e\nparameters(pol, 2) rho\nparameters a b\n"


def _parse(body: str) -> tuple[list[Equation], SymbolTable]:
    blocks = extract_blocks(lines_from_text(HEADER + "model\n" + body))
    table = build_symbol_table(blocks)
    return parse_model_block(blocks.listing("model"), table), table


class TestStatementTypes:
    def test_structural(self) -> None:
        (eq,), _ = _parse("y = a*c;")
        assert eq.eq_type == EquationType.STRUCTURAL
        assert to_text(eq.expr) == "y - a*c"

    def test_residual_without_equal_sign(self) -> None:
        (eq,), _ = _parse("y - a*c;")
        assert eq.eq_type == EquationType.STRUCTURAL

    def test_definition(self) -> None:
        (eq,), _ = _parse("# d = a*b;")
        assert eq.eq_type == EquationType.DEFINITION
        assert eq.lhs == "d"
        assert eq.is_assignment

    def test_transition_probability(self) -> None:
        (eq,), _ = _parse("pol_tp_1_2 = 1/(1 + exp(-y));")
        assert eq.eq_type == EquationType.TVP
        assert eq.lhs == "pol_tp_1_2"

    def test_complementarity(self) -> None:
        eqs, _ = _parse("y >= c; y <= a;")
        assert [eq.eq_type for eq in eqs] == [EquationType.COMPLEMENTARITY] * 2
        assert [to_text(eq.expr) for eq in eqs] == ["y - c", "a - y"]

    def test_empty_side(self) -> None:
        with pytest.raises(ParseError, match="empty side"):
            _parse("y = ;")

    def test_source_line_is_kept(self) -> None:
        (eq,), _ = _parse("y = c;")
        assert eq.source.line == 6


class TestDefinitions:
    def test_collected_in_order(self) -> None:
        eqs, table = _parse("# d1 = a*b; # d2 = d1 + rho; y = d2*c;")
        assert [s.name for s in collect_definitions(eqs, table)] == ["d1", "d2"]

    def test_definition_cannot_contain_variables(self) -> None:
        eqs, table = _parse("# d = a*y;")
        with pytest.raises(ModelError, match="detected to be a definition cannot contain variables"):
            collect_definitions(eqs, table)

    def test_later_definition_is_unknown(self) -> None:
        eqs, table = _parse("# d1 = d2; # d2 = a;")
        with pytest.raises(ParseError, match="unknown symbol d2"):
            collect_definitions(eqs, table)

    def test_definition_cannot_shadow_a_declaration(self) -> None:
        eqs, table = _parse("# a = b;")
        with pytest.raises(ParseError, match="already declared"):
            collect_definitions(eqs, table)


class TestReferences:
    def _check(self, body: str) -> None:
        eqs, table = _parse(body)
        table = table.with_definitions(collect_definitions(eqs, table))
        check_references(eqs, table)

    def test_valid(self) -> None:
        self._check("# d = a; y = d*y{-1} + c{+1} + e + steady_state(c);")

    def test_unknown_symbol(self) -> None:
        with pytest.raises(ParseError, match="unknown symbol w"):
            self._check("y = w;")

    def test_lead_on_exogenous(self) -> None:
        with pytest.raises(ParseError, match="cannot appear with a lead"):
            self._check("y = e{+1};")

    def test_shifted_parameter(self) -> None:
        with pytest.raises(ParseError, match="cannot carry a time shift"):
            self._check("y = a{-1};")

    def test_transition_probability_without_shifts(self) -> None:
        with pytest.raises(ModelError, match="cannot contain leads or lags") as info:
            self._check("y = c; pol_tp_1_2 = 1/(1 + exp(-a*y{-1}));")
        assert info.value.equation == 2

    def test_steady_state_of_exogenous(self) -> None:
        with pytest.raises(ParseError, match="not an endogenous variable"):
            self._check("y = steady_state(e);")


class TestAuxiliaryVariables:
    def test_long_leads_lags_and_lagged_exogenous(self) -> None:
        eqs, table = _parse("y = a*y{-2} + b*c{+2} + e{-1}; c = y;")
        eqs, table, steady = add_auxiliary_variables(eqs, table)
        names = table.names(SymbolKind.ENDOGENOUS)
        assert names == ("y", "c", "AUX_EXO_e", "AUX_LEAD_1_c", "AUX_LAG_1_y")
        assert all(s.is_auxiliary for s in table.endogenous[2:])
        assert len(eqs) == 5
        for eq in eqs:
            assert -1 <= ex.max_shift(eq.expr)[0] and ex.max_shift(eq.expr)[1] <= 1
        assert to_text(eqs[0].expr) == "y - (a*AUX_LAG_1_y{-1} + b*AUX_LEAD_1_c{+1} + AUX_EXO_e{-1})"
        assert [(s.lhs, to_text(s.expr)) for s in steady] == [
            ("AUX_EXO_e", "e"),
            ("AUX_LEAD_1_c", "c"),
            ("AUX_LAG_1_y", "y"),
        ]

    def test_three_period_lead_chains_auxiliaries(self) -> None:
        eqs, table = _parse("y = c{+3}; c = y;")
        eqs, table, _ = add_auxiliary_variables(eqs, table)
        texts = [to_text(eq.expr) for eq in eqs]
        assert texts[0] == "y - AUX_LEAD_2_c{+1}"
        assert "AUX_LEAD_1_c - c{+1}" in texts
        assert "AUX_LEAD_2_c - AUX_LEAD_1_c{+1}" in texts

    def test_nothing_to_do(self) -> None:
        eqs, table = _parse("y = c{+1} + y{-1}; c = y;")
        new_eqs, new_table, steady = add_auxiliary_variables(eqs, table)
        assert new_eqs == eqs
        assert new_table.endogenous == table.endogenous
        assert steady == []
