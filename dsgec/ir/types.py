"""
Type definitions for the IR.
"""

from enum import Enum, auto


class SymbolKind(Enum):
    """Kind of a resolved symbol; the value is the vocabulary vector it lives in."""

    ENDOGENOUS = "y"
    EXOGENOUS = "x"
    STEADY_STATE = "ss"
    PARAMETER = "param"
    DEFINITION = "defs"
    REGIME_STATE = "s"  # s0 (current regime) and s1 (next regime)


class EquationType(Enum):
    """Role of an equation in the compiled model."""

    STRUCTURAL = auto()  # Dynamic model equation
    DEFINITION = auto()  # "# name = expr", parameters only
    TVP = auto()  # Time-varying transition probability
    COMPLEMENTARITY = auto()  # Residual that must stay non-negative
    STEADY_STATE = auto()  # steady_state_model assignment
    STEADY_STATE_AUXILIARY = auto()  # Steady state of an auxiliary variable
    EXOGENOUS_DEFINITION = auto()  # Deterministic path of an exogenous
    PLANNER_OBJECTIVE = auto()  # Loss or utility of the planner
    OSR_DERIVATIVE = auto()  # Hessian of the loss for optimal simple rules
    STATIC_MULT = auto()  # Static version of the optimal policy FOCs


class Shift(Enum):
    """Column of the lead-lag incidence."""

    LEAD = 0
    CURRENT = 1
    LAG = 2

    @classmethod
    def of(cls, shift: int) -> "Shift":
        if shift > 0:
            return cls.LEAD
        if shift < 0:
            return cls.LAG
        return cls.CURRENT


#: Vocabulary of the printed routines, in calling order.
INPUT_LIST = ("y", "x", "ss", "param", "defs", "s0", "s1")
