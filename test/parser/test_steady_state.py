"""Tests for the steady_state_model and exogenous_definitions blocks."""

from __future__ import annotations

import math

import pytest

from dsgec.errors import ParseError
from dsgec.io.blocks import BlockSet, extract_blocks
from dsgec.io.source import lines_from_text
from dsgec.ir.symbol import SymbolTable
from dsgec.parser.declarations import build_symbol_table
from dsgec.parser.steady_state import parse_exogenous_definitions, parse_steady_state_model
from dsgec.symbolic.printer import to_text

HEADER = "endogenous C K\nexogenous e u\nparameters alpha beta\nlog_vars C\n"


def _blocks(body: str) -> tuple[BlockSet, SymbolTable]:
    blocks = extract_blocks(lines_from_text(HEADER + body))
    return blocks, build_symbol_table(blocks)


class TestSteadyStateModel:
    def test_assignments_in_order(self) -> None:
        blocks, table = _blocks("steady_state_model\n K = alpha/beta;\n C = 2;\n")
        model = parse_steady_state_model(blocks.first("steady_state_model"), table)
        assert [eq.lhs for eq in model.equations] == ["K", "LOG_C"]
        assert model.equations[1].expr.value == pytest.approx(math.log(2.0))
        assert not model.is_unique and not model.is_imposed

    def test_log_variable_on_the_right(self) -> None:
        blocks, table = _blocks("steady_state_model\n K = 3*C;\n")
        (eq,) = parse_steady_state_model(blocks.first("steady_state_model"), table).equations
        assert to_text(eq.expr) == "3*exp(LOG_C)"

    def test_options(self) -> None:
        blocks, table = _blocks("steady_state_model(unique, imposed) K = 1;\n")
        model = parse_steady_state_model(blocks.first("steady_state_model"), table)
        assert model.is_unique and model.is_imposed and not model.is_initial_guess

    def test_unknown_option(self) -> None:
        blocks, table = _blocks("steady_state_model(fast) K = 1;\n")
        with pytest.raises(ParseError, match="not a steady_state_model option"):
            parse_steady_state_model(blocks.first("steady_state_model"), table)

    def test_changed_parameters(self) -> None:
        blocks, table = _blocks("steady_state_model\n beta = 0.99;\n K = beta;\n")
        model = parse_steady_state_model(blocks.first("steady_state_model"), table)
        assert model.changed_parameters == ("beta",)

    def test_exogenous_target(self) -> None:
        blocks, table = _blocks("steady_state_model\n e = 1;\n")
        with pytest.raises(ParseError, match="neither an endogenous variable nor a parameter"):
            parse_steady_state_model(blocks.first("steady_state_model"), table)

    def test_no_time_shifts(self) -> None:
        blocks, table = _blocks("steady_state_model\n K = C{-1};\n")
        with pytest.raises(ParseError, match="time shift"):
            parse_steady_state_model(blocks.first("steady_state_model"), table)

    def test_missing_block(self) -> None:
        _, table = _blocks("")
        model = parse_steady_state_model(None, table)
        assert model.equations == ()


class TestExogenousDefinitions:
    def test_definitions(self) -> None:
        blocks, table = _blocks("exogenous_definitions\n e = 0.1*alpha;\n u = e + beta;\n")
        eqs = parse_exogenous_definitions(blocks.first("exogenous_definitions"), table)
        assert [eq.lhs for eq in eqs] == ["e", "u"]

    def test_endogenous_not_allowed(self) -> None:
        blocks, table = _blocks("exogenous_definitions\n e = K;\n")
        with pytest.raises(ParseError, match="K cannot appear in the exogenous_definitions block"):
            parse_exogenous_definitions(blocks.first("exogenous_definitions"), table)

    def test_target_must_be_exogenous(self) -> None:
        blocks, table = _blocks("exogenous_definitions\n K = 1;\n")
        with pytest.raises(ParseError, match="not an exogenous variable"):
            parse_exogenous_definitions(blocks.first("exogenous_definitions"), table)

    def test_defined_twice(self) -> None:
        blocks, table = _blocks("exogenous_definitions\n e = 1;\n e = 2;\n")
        with pytest.raises(ParseError, match="defined twice"):
            parse_exogenous_definitions(blocks.first("exogenous_definitions"), table)
