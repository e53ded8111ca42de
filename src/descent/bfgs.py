# ---------------------------------------------------------------------
# bfgs.py
#
# Broyden–Fletcher–Goldfarb–Shanno direction strategy keeping a dense
# inverse-Hessian approximation Hk⁻¹.
#
# – Memory cost is O(n²) in the problem dimension.
# – Hk⁻¹ is only ever touched by symmetric rank updates, so it stays
#   exactly symmetric.
# ---------------------------------------------------------------------

import logging
from typing import Optional, Tuple

import numpy as np

from descent.linalg import SymDense, resize
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


class BFGS:
    """
    Quasi-Newton direction method performing successive rank updates to an
    estimate of the inverse Hessian. Converges super-linearly near a local
    minimum.

        >>> bfgs = BFGS()
        >>> eval_type, iter_type = bfgs.init(loc, ProblemInfo(), x_next)

    Parameters
    ----------
    linesearch_method : LinesearchMethod, optional
        Step-size search along each direction. ``Bisection()`` when None.
    """

    def __init__(self, linesearch_method: Optional[LinesearchMethod] = None):
        self.linesearch_method = linesearch_method
        self.linesearch: Optional[Linesearch] = None

        self.dim = 0
        self.x: Optional[np.ndarray] = None     # location of the last major iteration
        self.grad: Optional[np.ndarray] = None  # gradient at the last major iteration

        # scratch
        self.y: Optional[np.ndarray] = None
        self.s: Optional[np.ndarray] = None
        self.tmp: Optional[np.ndarray] = None

        self.inv_hess = SymDense()

        self.first = False  # inverse-Hessian scale not set yet

    # -----------------------------------------------------------------
    # line-search plumbing
    # -----------------------------------------------------------------
    def init(
        self, loc: Location, problem: ProblemInfo, x_next: np.ndarray
    ) -> Tuple[EvaluationType, IterationType]:
        if self.linesearch_method is None:
            self.linesearch_method = Bisection()
        self.linesearch = Linesearch(self.linesearch_method, self)
        return self.linesearch.init(loc, problem, x_next)

    def iterate(self, loc: Location, x_next: np.ndarray) -> Tuple[EvaluationType, IterationType]:
        return self.linesearch.iterate(loc, x_next)

    # -----------------------------------------------------------------
    # directions
    # -----------------------------------------------------------------
    def init_direction(self, loc: Location, direction: np.ndarray) -> float:
        """
        Reset the method at ``loc`` and write the steepest-descent direction
        into ``direction``. Returns a step scale giving a first trial step of
        unit length.
        """
        if loc.gradient is None:
            raise ValueError("bfgs: location has no gradient")
        dim = len(loc.x)
        if dim == 0:
            raise ValueError("bfgs: zero-dimensional problem")
        if len(loc.gradient) != dim or len(direction) != dim:
            raise ValueError("bfgs: unexpected size mismatch")
        self.dim = dim

        self.x = resize(self.x, dim)
        self.x[:] = loc.x
        self.grad = resize(self.grad, dim)
        self.grad[:] = loc.gradient

        self.y = resize(self.y, dim)
        self.s = resize(self.s, dim)
        self.tmp = resize(self.tmp, dim)
        # values are set on the first call to next_direction
        self.inv_hess.reuse_as(dim)

        # Hk⁻¹ is implicitly the identity here
        np.negative(loc.gradient, out=direction)
        self.first = True

        with np.errstate(divide="ignore"):
            return float(1 / np.linalg.norm(direction))

    def next_direction(self, loc: Location, direction: np.ndarray) -> float:
        if loc.gradient is None:
            raise ValueError("bfgs: location has no gradient")
        if len(loc.x) != self.dim:
            raise ValueError("bfgs: unexpected size mismatch")
        if len(loc.gradient) != self.dim:
            raise ValueError("bfgs: unexpected size mismatch")
        if len(direction) != self.dim:
            raise ValueError("bfgs: unexpected size mismatch")

        # y = g_{k+1} - g_k,  s = x_{k+1} - x_k
        np.subtract(loc.gradient, self.grad, out=self.y)
        np.subtract(loc.x, self.x, out=self.s)

        s_dot_y = np.dot(self.s, self.y)
        if s_dot_y <= 0:
            logger.warning(
                "bfgs_curvature_condition_violated",
                extra={"s_dot_y": float(s_dot_y), "s_norm": float(np.linalg.norm(self.s))},
            )

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            if self.first:
                # Nocedal & Wright, Numerical Optimization (2nd ed.), Eq. 6.20
                scale = s_dot_y / np.dot(self.y, self.y)
                self.inv_hess.set_scaled_identity(scale)
                self.first = False
                logger.debug("bfgs_initial_scale", extra={"scale": float(scale)})

            # H_{k+1}⁻¹ = Hk⁻¹
            #           - (Hk⁻¹ y sᵀ + s yᵀ Hk⁻¹) / sᵀy
            #           + (sᵀy + yᵀ Hk⁻¹ y) s sᵀ / (sᵀy)²
            # The middle term is a rank-two update with vectors Hk⁻¹ y and s,
            # the last one a rank-one update with s.
            self.inv_hess.mul_vec(self.y, out=self.tmp)
            y_by = np.dot(self.y, self.tmp)
            first_term_const = (s_dot_y + y_by) / (s_dot_y * s_dot_y)

            self.inv_hess.rank_two(-1 / s_dot_y, self.tmp, self.s)
            self.inv_hess.sym_rank_one(first_term_const, self.s)

            self.x[:] = loc.x
            self.grad[:] = loc.gradient

            self.inv_hess.mul_vec(loc.gradient, out=direction)
            np.negative(direction, out=direction)

        logger.debug(
            "bfgs_direction_computed",
            extra={"grad_norm": float(np.linalg.norm(loc.gradient)), "s_dot_y": float(s_dot_y)},
        )
        return 1.0

    def needs(self) -> Needs:
        return Needs(gradient=True, hessian=False)
