"""
Parser options.

The recognised keys mirror the options of the model compiler: derivative
order, parameter differentiation, handling of definitions, welfare and
balanced-growth-path switches, and the size of the differentiation pool.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any, Optional

from dsgec.errors import ConfigurationError


@dataclass(frozen=True)
class ParserOptions:
    """Immutable set of options for one compilation run."""

    parameter_differentiation: bool = False
    definitions_inserted: bool = False
    definitions_in_param_differentiation: bool = False
    max_deriv_order: int = 2
    add_welfare: bool = False
    stationary_model: Optional[bool] = None
    workers: int = 1

    def __post_init__(self) -> None:
        if self.max_deriv_order < 1:
            object.__setattr__(self, "max_deriv_order", 1)
        if self.workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {self.workers}")

    @classmethod
    def keys(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "ParserOptions":
        """
        Build options from a mapping and/or keyword arguments.

        Unknown keys and values of the wrong type raise ConfigurationError.
        """
        values: dict[str, Any] = dict(mapping or {})
        values.update(kwargs)
        known = cls.keys()
        for key, value in values.items():
            if key not in known:
                raise ConfigurationError(f"{key} is not an option for parse")
            _check_option(key, value)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.keys()}


def _check_option(key: str, value: Any) -> None:
    if key in ("max_deriv_order", "workers"):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"option {key} must be an integer, got {value!r}")
    elif key == "stationary_model":
        if value is not None and not isinstance(value, bool):
            raise ConfigurationError(f"option {key} must be true, false or unset, got {value!r}")
    elif not isinstance(value, bool):
        raise ConfigurationError(f"option {key} must be true or false, got {value!r}")
