import logging
from dataclasses import dataclass

import numpy as np
import pytest

from descent.problem import EvaluationType, IterationType, Location, ProblemInfo


@dataclass
class RunResult:
    loc: Location
    major_iterations: int
    evaluations: int


def _evaluate(fn, loc: Location, x: np.ndarray, eval_type: EvaluationType):
    if eval_type == EvaluationType.NO_EVALUATION:
        return
    loc.x = x.copy()
    if eval_type & EvaluationType.FUNC_EVALUATION:
        loc.f = fn.func(loc.x)
    if eval_type & EvaluationType.GRAD_EVALUATION:
        loc.gradient = fn.grad(loc.x)
    if eval_type & EvaluationType.HESS_EVALUATION:
        loc.hessian = fn.hess(loc.x)


def run_local(method, fn, x0, grad_tol=1e-6, max_major=500, max_evals=20000) -> RunResult:
    """
    Minimal outer loop: evaluates what the method asks for and stops on a
    small gradient after a major iteration.
    """
    needs = method.needs()
    x0 = np.asarray(x0, dtype=float)
    loc = Location(x=x0.copy())
    first = EvaluationType.FUNC_EVALUATION | EvaluationType.GRAD_EVALUATION
    if needs.hessian:
        first |= EvaluationType.HESS_EVALUATION
    _evaluate(fn, loc, x0, first)

    x_next = np.empty_like(x0)
    eval_type, iter_type = method.init(
        loc, ProblemInfo(has_gradient=True, has_hessian=needs.hessian), x_next
    )
    majors = 0
    evals = 1
    while evals < max_evals:
        _evaluate(fn, loc, x_next, eval_type)
        evals += 1
        if iter_type == IterationType.MAJOR_ITERATION:
            majors += 1
            if np.linalg.norm(loc.gradient, np.inf) < grad_tol or majors >= max_major:
                break
        eval_type, iter_type = method.iterate(loc, x_next)
    return RunResult(loc=loc, major_iterations=majors, evaluations=evals)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    pkg = logging.getLogger("descent")
    saved = (list(root.handlers), root.level, list(pkg.handlers), pkg.level, pkg.propagate)
    yield
    for handler in pkg.handlers:
        if handler not in saved[2]:
            handler.close()
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    pkg.handlers[:] = saved[2]
    pkg.setLevel(saved[3])
    pkg.propagate = saved[4]
