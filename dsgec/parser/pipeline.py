"""
Compilation pipeline: model text to CompiledModel.

Each stage takes the immutable output of the previous one::

    lines -> blocks -> symbol table -> typed equations -> planner / auxiliary
          -> canonical order + incidence -> shadow forms -> routines

Any error aborts the run; nothing is returned on failure.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Mapping, Sequence
from typing import Any, Optional, Union

from dsgec.analysis.incidence import (
    Incidence,
    after_solve_incidence,
    check_appear_as_current,
    lead_lag_incidence,
    occurrence,
)
from dsgec.analysis.markov import RegimeTable, transition_matrices
from dsgec.errors import ModelError, ParseError
from dsgec.io.blocks import extract_blocks
from dsgec.io.source import SourceLine, lines_from_text, read_model_file, resolve_model_file
from dsgec.ir import expr as ex
from dsgec.ir.equation import Equation
from dsgec.ir.model import (
    DSGE_VAR_WEIGHT,
    CompiledModel,
    DefinitionTable,
    EndogenousTable,
    ExogenousTable,
    ModelEquations,
    ObservableTable,
    ParameterTable,
)
from dsgec.ir.types import EquationType, Shift, SymbolKind
from dsgec.options import ParserOptions
from dsgec.parser.declarations import build_symbol_table, expand_log_vars
from dsgec.parser.equations import (
    add_auxiliary_variables,
    check_references,
    collect_definitions,
    endogenous_switching,
    parse_model_block,
)
from dsgec.parser.parameterization import parse_parameterization
from dsgec.parser.planner import add_welfare, optimal_policy, optimal_simple_rule, parse_planner_objective
from dsgec.parser.restrictions import normalize_restrictions
from dsgec.parser.shadow import shadowize
from dsgec.parser.steady_state import parse_exogenous_definitions, parse_steady_state_model
from dsgec.routines import build_routines

logger = logging.getLogger(__name__)

OptionsLike = Union[ParserOptions, Mapping[str, Any], None]


def resolve_options(options: OptionsLike = None, **overrides: Any) -> ParserOptions:
    """Options from a ParserOptions, a mapping or keywords; keywords win."""
    if isinstance(options, ParserOptions):
        if not overrides:
            return options
        return ParserOptions.from_mapping(options.to_dict(), **overrides)
    return ParserOptions.from_mapping(options, **overrides)


def _names_in(equations: Sequence[Equation]) -> frozenset[str]:
    found: set[str] = set()
    for eq in equations:
        found |= ex.names_in(eq.expr)
    return frozenset(found)


def parse_lines(
    lines: Sequence[SourceLine], options: OptionsLike = None, filename: Optional[str] = None, **overrides: Any
) -> CompiledModel:
    """Compile already preprocessed model lines."""
    options = resolve_options(options, **overrides)
    if filename is None:
        filename = lines[0].filename if lines else "<string>"
    tic = time.perf_counter()

    blocks = extract_blocks(list(lines))
    table = build_symbol_table(blocks)

    model_lines = blocks.listing("model")
    if not model_lines:
        raise ParseError("the model file has no model block", filename)
    equations = [
        eq.with_expr(expand_log_vars(eq.expr, table.log_vars)) for eq in parse_model_block(model_lines, table)
    ]
    table = table.with_definitions(collect_definitions(equations, table))
    check_references(equations, table)
    table = endogenous_switching(equations, table)

    # planner
    objective = parse_planner_objective(blocks.first("planner_objective"), table)
    planner = None
    if objective is not None:
        check_references([Equation.residual(objective.objective, objective.source.source)], table)
        n_structural = sum(eq.eq_type == EquationType.STRUCTURAL for eq in equations)
        if n_structural < len(table.endogenous):
            equations, table, planner = optimal_policy(equations, table, objective)
        else:
            planner = optimal_simple_rule(table, objective)
    if options.add_welfare:
        equations, table = add_welfare(equations, table, objective)

    equations, table, aux_steady_state = add_auxiliary_variables(equations, table)
    structural = [eq for eq in equations if eq.eq_type == EquationType.STRUCTURAL]
    if len(structural) != len(table.endogenous):
        raise ModelError(
            f"the model has {len(structural)} equations for {len(table.endogenous)} endogenous variables"
        )

    # canonical order and incidence
    occurrence_declared = occurrence(structural, table.names(SymbolKind.ENDOGENOUS))
    table = table.sorted_endogenous()
    names = table.names(SymbolKind.ENDOGENOUS)
    occ = occurrence(structural, names)
    lli = lead_lag_incidence(occ.any(axis=0))
    check_appear_as_current(lli, names)

    # other blocks
    steady_state = parse_steady_state_model(blocks.first("steady_state_model"), table)
    exogenous_definitions = parse_exogenous_definitions(blocks.first("exogenous_definitions"), table)
    regimes = RegimeTable.from_chains(table.markov_chains)
    parameterization = parse_parameterization(blocks.listing("parameterization"), table)
    parameter_names = table.names(SymbolKind.PARAMETER)
    governing = {p.name: p.governing_chain for p in table.parameters}
    restrictions = normalize_restrictions(
        blocks.listing("parameter_restrictions"), names, parameter_names, regimes, governing=governing
    )

    system = shadowize(
        equations,
        table,
        lli,
        steady_state.equations,
        tuple(aux_steady_state),
        exogenous_definitions,
        options.definitions_inserted,
    )
    parameter_index = {name: i for i, name in enumerate(parameter_names)}
    chains = transition_matrices(table.markov_chains, parameter_index, dict(system.tvp))
    routines = build_routines(system, table, lli, options, chains, regimes, planner)

    differentiation = routines.dynamic_derivatives.differentiation
    incidence = Incidence(
        occurrence=occ,
        occurrence_declared=occurrence_declared,
        before_solve=lli,
        after_solve=after_solve_incidence(lli, differentiation.order_var, names),
    )

    # flags
    tvp = [eq for eq in equations if eq.eq_type == EquationType.TVP]
    in_model = _names_in(equations) | _names_in(steady_state.equations) | _names_in(exogenous_definitions)
    if objective is not None:
        in_model |= ex.names_in(objective.objective) | ex.names_in(objective.discount)
    exogenous_in_use = _names_in(
        [eq for eq in equations if eq.eq_type in (EquationType.STRUCTURAL, EquationType.COMPLEMENTARITY)]
    )
    endogenous = EndogenousTable.from_symbols(table, lli, _names_in(tvp))
    exogenous = ExogenousTable.from_symbols(table, exogenous_in_use, regimes.n_regimes)
    any_lead = bool((lli[:, Shift.LEAD.value] >= 0).any())
    any_lag = bool((lli[:, Shift.LAG.value] >= 0).any())

    model = CompiledModel(
        filename=filename,
        options=options,
        symbol_table=table,
        endogenous=endogenous,
        exogenous=exogenous,
        parameters=ParameterTable.from_symbols(table, in_model),
        observables=ObservableTable.from_symbols(table, endogenous, exogenous),
        definitions=DefinitionTable.from_equations(equations, system.definitions),
        markov_chains=table.markov_chains,
        regimes=regimes,
        equations=ModelEquations(
            dynamic=tuple(equations),
            shadow_dynamic=system.dynamic,
            static=tuple(eq.with_expr(ex.drop_shifts(eq.expr)) for eq in structural),
            shadow_static=system.static,
            shadow_balanced_growth_path=system.balanced_growth,
        ),
        incidence=incidence,
        differentiation=differentiation,
        parameterization=parameterization,
        parameter_values=parameterization.to_matrix(table, regimes),
        restrictions=restrictions,
        steady_state=steady_state,
        routines=routines,
        planner=planner,
        is_hybrid=any_lead and any_lag,
        is_purely_forward_looking=any_lead and not any_lag,
        is_purely_backward_looking=any_lag and not any_lead,
        is_endogenous_switching_model=len(tvp) > 0,
        is_optimal_policy_model=planner is not None and planner.is_optimal_policy,
        is_optimal_simple_rule_model=planner is not None and not planner.is_optimal_policy,
        is_model_with_planner_objective=objective is not None,
        is_dsge_var_model=DSGE_VAR_WEIGHT in parameter_names,
    )
    logger.info(
        "%s compiled: %d equations, %d endogenous, %d exogenous, %d parameters : %.4f seconds",
        filename,
        len(structural),
        len(names),
        len(table.exogenous),
        len(parameter_names),
        time.perf_counter() - tic,
    )
    return model


def parse(text: str, options: OptionsLike = None, filename: str = "<string>", **overrides: Any) -> CompiledModel:
    """
    Compile model text.

    Args:
        text: Model code, comments allowed, no macros
        options: ParserOptions or a mapping of option names to values
        filename: Name used in error messages
        **overrides: Individual options, e.g. ``max_deriv_order=1``

    Returns:
        The compiled model

    Example:
        >>> model = parse('''
        ... endogenous y
        ... exogenous e
        ... parameters rho
        ... model
        ...     y = rho*y{-1} + e;
        ... ''', max_deriv_order=1)
        >>> model.endogenous.name
        ('y',)
    """
    return parse_lines(lines_from_text(text, filename), options, filename, **overrides)


def parse_file(path: Union[str, os.PathLike], options: OptionsLike = None, **overrides: Any) -> CompiledModel:
    """Compile a model file (``.rs``, ``.rz`` or ``.dsge``; the extension may be omitted)."""
    resolved = resolve_model_file(path)
    return parse_lines(read_model_file(resolved), options, str(resolved), **overrides)
