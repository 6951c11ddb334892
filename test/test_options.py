"""Tests for parser options."""

from __future__ import annotations

import pytest

from common import LINEAR

from dsgec import ParserOptions, parse
from dsgec.errors import ConfigurationError
from dsgec.parser.pipeline import resolve_options


class TestParserOptions:
    def test_defaults(self) -> None:
        options = ParserOptions()
        assert options.max_deriv_order == 2
        assert options.workers == 1
        assert options.stationary_model is None
        assert not options.parameter_differentiation

    def test_from_mapping_with_keywords(self) -> None:
        options = ParserOptions.from_mapping({"max_deriv_order": 3, "workers": 2}, workers=4)
        assert options.max_deriv_order == 3
        assert options.workers == 4

    def test_order_is_at_least_one(self) -> None:
        assert ParserOptions(max_deriv_order=0).max_deriv_order == 1

    def test_round_trip(self) -> None:
        options = ParserOptions(add_welfare=True, stationary_model=False)
        assert ParserOptions.from_mapping(options.to_dict()) == options

    @pytest.mark.parametrize(
        "key, value",
        [
            ("max_deriv_order", "2"),
            ("max_deriv_order", True),
            ("workers", 1.5),
            ("add_welfare", 1),
            ("stationary_model", "yes"),
        ],
    )
    def test_wrong_type(self, key: str, value: object) -> None:
        with pytest.raises(ConfigurationError, match=f"option {key} must be"):
            ParserOptions.from_mapping({key: value})

    def test_unknown_key(self) -> None:
        with pytest.raises(ConfigurationError, match="order is not an option"):
            ParserOptions.from_mapping(order=1)

    def test_workers(self) -> None:
        with pytest.raises(ConfigurationError, match="workers must be at least 1"):
            ParserOptions(workers=0)


class TestResolve:
    def test_instance_is_kept(self) -> None:
        options = ParserOptions(max_deriv_order=1)
        assert resolve_options(options) is options

    def test_keywords_win(self) -> None:
        options = resolve_options(ParserOptions(max_deriv_order=1), max_deriv_order=3)
        assert options.max_deriv_order == 3

    def test_mapping(self) -> None:
        assert resolve_options({"add_welfare": True}).add_welfare

    def test_parse_accepts_a_mapping(self) -> None:
        model = parse(LINEAR, {"max_deriv_order": 1})
        assert model.options.max_deriv_order == 1
        assert model.routines.dynamic_derivatives.order == 1
