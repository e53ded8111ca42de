"""
Descent directions for unconstrained minimization: a BFGS quasi-Newton
strategy and a modified (Cholesky-regularized) Newton strategy, driven by
a line search.
"""

from descent.bfgs import BFGS
from descent.linesearch import (
    Bisection,
    Linesearch,
    LinesearchFailure,
    NonDescentDirectionError,
)
from descent.newton import Newton
from descent.problem import (
    EvaluationType,
    IterationType,
    Location,
    Needs,
    ProblemInfo,
)

__all__ = [
    "BFGS",
    "Bisection",
    "EvaluationType",
    "IterationType",
    "Linesearch",
    "LinesearchFailure",
    "Location",
    "Needs",
    "Newton",
    "NonDescentDirectionError",
    "ProblemInfo",
]
