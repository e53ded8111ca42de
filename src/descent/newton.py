# ---------------------------------------------------------------------
# newton.py
#
# Modified Newton direction strategy for Hessian-based minimization.
#
# Solves  (H_k + tau I) d_k = -g_k  where tau >= 0 is the smallest value
# found (by successive multiplication) for which the Cholesky
# factorization of the shifted Hessian succeeds.
# ---------------------------------------------------------------------

import logging
import math
from typing import Optional, Tuple

import numpy as np

from descent.linalg import Cholesky, SymDense, resize
from descent.linesearch import Bisection, Linesearch
from descent.problem import (
    EvaluationType,
    IterationType,
    LinesearchMethod,
    Location,
    Needs,
    ProblemInfo,
)

logger = logging.getLogger(__name__)

MAX_NEWTON_MODIFICATIONS = 20
DEFAULT_INCREASE = 5.0
MIN_TAU = 0.001


def _check_increase(increase: float) -> float:
    if increase == 0:
        return DEFAULT_INCREASE
    if not math.isfinite(increase) or increase <= 1:
        raise ValueError("newton: increase must be greater than 1")
    return float(increase)


class Newton:
    """
    Newton's method with Hessian modification ("Cholesky with added
    multiple of the identity", Nocedal & Wright, Algorithm 3.3).

    Away from a minimizer the Hessian may be indefinite, in which case the
    plain Newton step is not a descent direction. Successively larger
    multiples of the identity are then added until the Cholesky
    factorization succeeds. The regularizer ``tau`` is carried over to the
    next iteration, so a persistently indefinite region does not restart
    the search from scratch.

    Parameters
    ----------
    linesearch_method : LinesearchMethod, optional
        Step-size search along each direction. ``Bisection()`` when None.
    increase : float
        Factor by which ``tau`` grows after a failed factorization. Must be
        greater than 1; 0 selects the default of 5. Larger values need fewer
        trial factorizations but discard more second-order information.
    """

    def __init__(
        self,
        linesearch_method: Optional[LinesearchMethod] = None,
        increase: float = DEFAULT_INCREASE,
    ):
        self.linesearch_method = linesearch_method
        self.increase = _check_increase(increase)
        self.linesearch: Optional[Linesearch] = None

        self.dim = 0
        self.hess = SymDense()  # copy of the Hessian, shifted in place
        self.chol = Cholesky()
        self.hess_diag: Optional[np.ndarray] = None  # diagonal of the unshifted Hessian
        self.tau = 0.0

    def init(
        self, loc: Location, problem: ProblemInfo, x_next: np.ndarray
    ) -> Tuple[EvaluationType, IterationType]:
        self.increase = _check_increase(self.increase)
        if self.linesearch_method is None:
            self.linesearch_method = Bisection()
        self.linesearch = Linesearch(self.linesearch_method, self)
        return self.linesearch.init(loc, problem, x_next)

    def iterate(self, loc: Location, x_next: np.ndarray) -> Tuple[EvaluationType, IterationType]:
        return self.linesearch.iterate(loc, x_next)

    def init_direction(self, loc: Location, direction: np.ndarray) -> float:
        dim = len(loc.x)
        if dim == 0:
            raise ValueError("newton: zero-dimensional problem")
        self.dim = dim
        self.hess.reuse_as(dim)
        self.chol.reuse_as(dim)
        self.hess_diag = resize(self.hess_diag, dim)
        self.tau = 0.0
        return self.next_direction(loc, direction)

    def next_direction(self, loc: Location, direction: np.ndarray) -> float:
        dim = self.dim
        if loc.gradient is None:
            raise ValueError("newton: location has no gradient")
        if len(loc.x) != dim or len(loc.gradient) != dim or len(direction) != dim:
            raise ValueError("newton: unexpected size mismatch")
        if loc.hessian is None or np.shape(loc.hessian) != (dim, dim):
            raise ValueError("newton: unexpected Hessian size mismatch")

        self.hess.copy_sym(loc.hessian)
        np.copyto(self.hess_diag, self.hess.diag())

        # A positive smallest diagonal entry means the Hessian may be PD, so
        # try it unmodified. Otherwise keep the tau of the last iteration if
        # one was needed, or guess one.
        min_a = float(self.hess_diag.min())
        if min_a > 0:
            self.tau = 0.0
        elif self.tau == 0:
            self.tau = -min_a + MIN_TAU

        for k in range(MAX_NEWTON_MODIFICATIONS):
            if self.tau != 0:
                # shift from the original diagonal, not the previous attempt
                np.add(self.hess_diag, self.tau, out=self.hess.diag())
            if self.chol.factorize(self.hess):
                self.chol.solve_vec(loc.gradient, out=direction)
                np.negative(direction, out=direction)
                logger.debug(
                    "newton_direction_computed",
                    extra={"tau": self.tau, "modifications": k},
                )
                return 1.0
            self.tau = max(self.increase * self.tau, MIN_TAU)
            logger.debug("newton_tau_increased", extra={"tau": self.tau, "attempt": k + 1})

        logger.warning(
            "newton_hessian_modification_failed",
            extra={"tau": self.tau, "attempts": MAX_NEWTON_MODIFICATIONS},
        )
        # a NaN or runaway tau must not leak into the next iteration
        self.tau = 0.0
        np.negative(loc.gradient, out=direction)
        return 1.0

    def needs(self) -> Needs:
        return Needs(gradient=True, hessian=True)
