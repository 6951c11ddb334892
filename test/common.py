"""Model texts and numerical helpers shared by the test suite."""

from __future__ import annotations

import numpy as np

from dsgec.backends import compile_routine
from dsgec.ir.model import CompiledModel

EPS = 1e-9

#: Small real business cycle model with a closed-form steady state.
RBC = """
// real business cycle
endogenous C K Z
exogenous EPS
parameters alpha beta delta rho sig
model
    1/C = beta/C{+1}*(alpha*Z{+1}*K^(alpha-1) + 1 - delta);
    C + K = Z*K{-1}^alpha + (1 - delta)*K{-1};
    log(Z) = rho*log(Z{-1}) + sig*EPS;
steady_state_model
    Z = 1;
    K = (alpha/(1/beta - 1 + delta))^(1/(1-alpha));
    C = K^alpha - delta*K;
parameterization
    alpha, 0.33;
    beta, 0.99;
    delta, 0.025;
    rho, 0.9;
    sig, 0.01;
"""

#: Same model, endogenous variables declared in another order.
RBC_REORDERED = RBC.replace("endogenous C K Z", "endogenous Z C K")

#: Two static equations, y1 - a*x1 and y2 - b*y1.
LINEAR = """
endogenous y1 y2
exogenous x1
parameters a b
model
    y1 = a*x1;
    y2 = b*y1;
"""

#: AR(1) with one definition.
WITH_DEFINITION = """
endogenous y
exogenous e
parameters a b
model
    # c = a*b;
    y = c*y{-1} + e;
"""

#: Regime switching with an endogenous transition probability.
SWITCHING = """
endogenous y
exogenous e
parameters(pol, 2) rho
parameters a
model
    pol_tp_1_2 = 1/(1 + exp(-a*y));
    y = rho*y{-1} + e;
"""

#: New Keynesian block with one instrument less than variables: optimal policy.
NK_OPTIMAL_POLICY = """
endogenous pi x r
exogenous u
parameters beta kappa lamb
model
    pi = beta*pi{+1} + kappa*x + u;
    x = x{+1} - (r - pi{+1});
planner_objective{discount = beta} -0.5*(pi^2 + lamb*x^2);
"""

#: Same block closed with a Taylor rule: optimal simple rule.
NK_SIMPLE_RULE = """
endogenous pi x r
exogenous u e
parameters beta kappa lamb phi
model
    pi = beta*pi{+1} + kappa*x + u;
    x = x{+1} - (r - pi{+1});
    r = phi*pi + e;
planner_objective pi^2 + lamb*x^2;
"""


def steady_state(model: CompiledModel) -> np.ndarray:
    """Run the steady-state model at the first column of parameter values."""
    run = compile_routine(model.routines.steady_state_model)
    return run(param=model.parameter_values[:, 0])["y"]


def dynamic_point(model: CompiledModel, levels: np.ndarray) -> np.ndarray:
    """Dynamic ``y`` vector with every lead, current and lag at ``levels``."""
    lli = model.lead_lag_incidence
    y = np.zeros(int(lli.max()) + 1)
    for i in range(lli.shape[0]):
        for column in range(3):
            if lli[i, column] >= 0:
                y[lli[i, column]] = levels[i]
    return y
