"""Tests for the block extractor (dsgec.io.blocks)."""

from __future__ import annotations

import pytest

from dsgec.errors import ParseError
from dsgec.io.blocks import BlockSet, extract_blocks
from dsgec.io.source import lines_from_text


def _blocks(text: str) -> BlockSet:
    return extract_blocks(lines_from_text(text, "m.rs"))


class TestExtractBlocks:
    def test_listing_and_order(self) -> None:
        blocks = _blocks("endogenous y\n  c\nexogenous e\nmodel\n  y = e;\n  c = y;\n")
        assert [b.name for b in blocks.blocks] == ["endogenous", "exogenous", "model"]
        assert [l.code for l in blocks.listing("endogenous")] == ["y", "c"]
        assert blocks.first("model").text == "y = e; c = y;"
        assert "model" in blocks
        assert "planner_objective" not in blocks

    def test_declaration_blocks_accumulate(self) -> None:
        blocks = _blocks("endogenous y\nexogenous e\nendogenous c\n")
        assert len(blocks.named("endogenous")) == 2
        assert [l.code for l in blocks.listing("endogenous")] == ["y", "c"]

    def test_trigger_is_separated(self) -> None:
        blocks = _blocks("steady_state_model(unique, imposed) y = 1;\n")
        block = blocks.first("steady_state_model")
        assert block.trigger == "unique, imposed"
        assert [l.code for l in block.listing] == ["y = 1;"]

    def test_brace_trigger(self) -> None:
        block = _blocks("planner_objective{discount = 0.9} y^2;\n").first("planner_objective")
        assert block.trigger == "discount = 0.9"
        assert block.text == "y^2;"

    def test_unknown_block(self) -> None:
        with pytest.raises(ParseError, match="unknown block varexo"):
            _blocks("varexo e\n")

    def test_duplicate_unique_block(self) -> None:
        with pytest.raises(ParseError, match="duplicate block model") as info:
            _blocks("model\n y = 1;\nmodel\n y = 2;\n")
        assert info.value.line == 3

    def test_assignment_to_a_block_name_is_a_statement(self) -> None:
        blocks = _blocks("model\n y = 1;\nmodel = y;\n")
        assert [b.name for b in blocks.blocks] == ["model"]
        assert [l.code for l in blocks.listing("model")] == ["y = 1;", "model = y;"]

    def test_unclosed_trigger(self) -> None:
        with pytest.raises(ParseError, match="unclosed"):
            _blocks("steady_state_model(unique y = 1;\n")


class TestMarkovChains:
    def test_constant_chain_always_present(self) -> None:
        assert _blocks("endogenous y\n").markov_chains == (("const", 1),)

    def test_chain_from_parameters_trigger(self) -> None:
        blocks = _blocks("parameters(pol, 2) rho\nparameters(vol, 3) sig\nparameters(pol, 2) phi\n")
        assert blocks.markov_chains == (("const", 1), ("pol", 2), ("vol", 3))

    def test_inconsistent_number_of_states(self) -> None:
        with pytest.raises(ParseError, match="declared with 2 and 3 states"):
            _blocks("parameters(pol, 2) rho\nparameters(pol, 3) phi\n")

    def test_constant_chain_has_one_state(self) -> None:
        with pytest.raises(ParseError, match="exactly one state"):
            _blocks("parameters(const, 2) rho\n")

    def test_malformed_trigger(self) -> None:
        with pytest.raises(ParseError, match="chain_name, number_of_states"):
            _blocks("parameters(pol) rho\n")
