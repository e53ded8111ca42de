# ---------------------------------------------------------------------
# linesearch.py
#
# The line-search collaborator of the direction strategies:
#
# – ``Linesearch`` drives one major iteration at a time, asking its
#   ``NextDirectioner`` for a direction and a step scale and handing the
#   one-dimensional search to a ``LinesearchMethod``.
# – ``Bisection`` is the default step-size search, accepting a step once
#   the strong Wolfe conditions hold.
# ---------------------------------------------------------------------

import logging
import math
from typing import Optional, Tuple

import numpy as np

from descent.linalg import resize
from descent.problem import (
    EvaluationType,
    IterationType,
    LinesearchMethod,
    Location,
    NextDirectioner,
    ProblemInfo,
)

logger = logging.getLogger(__name__)


class NonDescentDirectionError(RuntimeError):
    """The direction handed to the line search is not a descent direction."""


class LinesearchFailure(RuntimeError):
    """The line search could not make progress along the direction."""


def strong_wolfe_conditions_met(
    f: float,
    g: float,
    f0: float,
    g0: float,
    step: float,
    func_const: float,
    grad_const: float,
) -> bool:
    """
    Sufficient decrease  f <= f0 + func_const * step * g0  together with
    the strong curvature condition  |g| <= grad_const * |g0|.
    """
    if f > f0 + func_const * step * g0:
        return False
    return abs(g) <= grad_const * abs(g0)


class Bisection:
    """
    Bracketing/bisection search on the step size.

    Doubles the step until the minimum along the line is bracketed (the
    directional derivative turns positive or the function value rises),
    then bisects the bracket until the strong Wolfe conditions hold.

    Parameters
    ----------
    grad_const : float
        Constant of the curvature condition, 0 < grad_const < 1.
    """

    def __init__(self, grad_const: float = 0.9):
        if not 0 < grad_const < 1:
            raise ValueError("bisection: grad_const must be between 0 and 1")
        self.grad_const = grad_const

        self.min_step = 0.0
        self.max_step = math.inf
        self.curr_step = 0.0
        self.init_f = math.nan
        self.min_f = math.nan
        self.max_f = math.nan
        self.init_grad = math.nan

    def init(self, f: float, proj_grad: float, step: float):
        if step <= 0:
            raise ValueError("bisection: bad step size")
        if proj_grad >= 0:
            raise ValueError("bisection: initial derivative is non-negative")

        self.min_step = 0.0
        self.max_step = math.inf
        self.curr_step = step
        self.init_f = f
        self.min_f = f
        self.max_f = math.nan
        self.init_grad = proj_grad

    def iterate(self, f: float, proj_grad: float) -> Tuple[bool, float]:
        """
        Consume the function value and projected gradient at the current
        trial step. Return ``(True, step)`` once the step is accepted,
        otherwise ``(False, next_trial_step)``.
        """
        best_f = self.init_f
        if self.max_f < best_f:
            best_f = self.max_f
        if self.min_f < best_f:
            best_f = self.min_f
        if strong_wolfe_conditions_met(
            f, proj_grad, best_f, self.init_grad, self.curr_step, 0, self.grad_const
        ):
            return True, self.curr_step

        if math.isinf(self.max_step):
            # minimum not bracketed yet
            if proj_grad > 0:
                self.max_step = self.curr_step
                self.max_f = f
                return self._next_step((self.min_step + self.max_step) / 2)
            if f <= self.min_f:
                self.min_step = self.curr_step
                self.min_f = f
                return self._next_step(self.curr_step * 2)
            # value went up with a negative slope: jumped over a minimum
            self.max_step = self.curr_step
            self.max_f = f
            return self._next_step((self.min_step + self.max_step) / 2)

        if proj_grad < 0:
            if f <= self.min_f:
                self.min_step = self.curr_step
                self.min_f = f
            else:
                self.max_step = self.curr_step
                self.max_f = f
        else:
            if f <= self.max_f:
                self.max_step = self.curr_step
                self.max_f = f
            else:
                self.min_step = self.curr_step
                self.min_f = f
        return self._next_step((self.min_step + self.max_step) / 2)

    def _next_step(self, step: float) -> Tuple[bool, float]:
        if step == self.curr_step:
            raise LinesearchFailure("bisection: step size did not change")
        self.curr_step = step
        return False, step


class Linesearch:
    """
    Outer-iteration driver shared by the direction strategies.

    The caller evaluates whatever the returned ``EvaluationType`` asks for
    at ``x_next``, stores it in ``loc`` and calls ``iterate`` again.
    """

    def __init__(self, method: LinesearchMethod, next_directioner: NextDirectioner):
        self.method = method
        self.next_directioner = next_directioner

        self.x: Optional[np.ndarray] = None  # location at the start of the search
        self.direction: Optional[np.ndarray] = None
        self.iter_type = IterationType.NO_ITERATION
        self._hess_eval = EvaluationType.NO_EVALUATION

    def init(
        self, loc: Location, problem: ProblemInfo, x_next: np.ndarray
    ) -> Tuple[EvaluationType, IterationType]:
        needs = self.next_directioner.needs()
        if needs.gradient and not problem.has_gradient:
            raise ValueError("linesearch: direction method needs the gradient")
        if needs.hessian and not problem.has_hessian:
            raise ValueError("linesearch: direction method needs the Hessian")
        self._hess_eval = (
            EvaluationType.HESS_EVALUATION if needs.hessian else EvaluationType.NO_EVALUATION
        )

        dim = len(loc.x)
        self.x = resize(self.x, dim)
        self.x[:] = loc.x
        self.direction = resize(self.direction, dim)

        step = self.next_directioner.init_direction(loc, self.direction)
        self._start_search(loc, step, x_next)
        return EvaluationType.FUNC_EVALUATION | EvaluationType.GRAD_EVALUATION, IterationType.INIT_ITERATION

    def iterate(
        self, loc: Location, x_next: np.ndarray
    ) -> Tuple[EvaluationType, IterationType]:
        if self.iter_type == IterationType.MAJOR_ITERATION:
            # previous search was accepted, start a new one from loc
            self.x[:] = loc.x
            step = self.next_directioner.next_direction(loc, self.direction)
            self._start_search(loc, step, x_next)
            return EvaluationType.FUNC_EVALUATION | EvaluationType.GRAD_EVALUATION, IterationType.SUB_ITERATION

        proj_grad = float(np.dot(loc.gradient, self.direction))
        finished, step = self.method.iterate(loc.f, proj_grad)
        if finished:
            self.iter_type = IterationType.MAJOR_ITERATION
            x_next[:] = loc.x
            logger.debug("linesearch_step_accepted", extra={"step": step, "f": float(loc.f)})
            return self._hess_eval, IterationType.MAJOR_ITERATION

        self._set_trial(step, x_next)
        self.iter_type = IterationType.SUB_ITERATION
        return EvaluationType.FUNC_EVALUATION | EvaluationType.GRAD_EVALUATION, IterationType.SUB_ITERATION

    def _start_search(self, loc: Location, step: float, x_next: np.ndarray):
        proj_grad = float(np.dot(loc.gradient, self.direction))
        if not proj_grad < 0:
            logger.warning(
                "linesearch_non_descent_direction",
                extra={"proj_grad": proj_grad},
            )
            raise NonDescentDirectionError(
                f"linesearch: projected gradient not negative ({proj_grad})"
            )
        self.method.init(loc.f, proj_grad, step)
        self._set_trial(step, x_next)
        self.iter_type = IterationType.SUB_ITERATION

    def _set_trial(self, step: float, x_next: np.ndarray):
        # x_next = x + step * direction
        np.multiply(self.direction, step, out=x_next)
        x_next += self.x
