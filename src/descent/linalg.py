# ---------------------------------------------------------------------
# linalg.py
#
# Dense linear-algebra helpers shared by the direction strategies.
#
# – Every buffer keeps its backing storage between calls and only
#   grows, so a strategy that is re-initialised with the same (or a
#   smaller) dimension does not reallocate.
# – Matrices are stored column-major and handed to BLAS/LAPACK with
#   overwrite flags, so updates, products and factorizations work in
#   the existing storage.
# – As a consequence the objects here are single-owner: two strategies
#   must never share one.
# ---------------------------------------------------------------------

from typing import Optional

import numpy as np
from scipy.linalg import blas, lapack


def resize(buf: Optional[np.ndarray], n: int) -> np.ndarray:
    """
    Return a length-``n`` float vector reusing ``buf``'s storage when its
    capacity is large enough. Contents are unspecified after a resize.
    """
    if buf is not None:
        base = buf if buf.base is None else buf.base
        if base.size >= n:
            return base.reshape(-1)[:n]
    return np.zeros(n)


class _Square:
    """Resizable column-major ``n x n`` storage."""

    def __init__(self, n: int = 0):
        self._data = np.zeros(n * n)
        self.n = n

    def reuse_as(self, n: int):
        """Resize to ``n x n``, keeping storage if capacity allows."""
        if self._data.size < n * n:
            self._data = np.zeros(n * n)
        self.n = n

    @property
    def raw(self) -> np.ndarray:
        n = self.n
        return self._data[: n * n].reshape((n, n), order="F")


class SymDense(_Square):
    """
    Dense symmetric ``n x n`` matrix.

    Only the upper triangle of ``raw`` is significant; the strictly lower
    part holds stale values once a rank update has run. Symmetry is
    therefore structural, ``at(i, j)`` and ``at(j, i)`` read the same
    element. Use ``to_dense`` for a full copy.
    """

    def __init__(self, n: int = 0):
        super().__init__(n)
        self._vec = np.zeros(n)

    def reuse_as(self, n: int):
        super().reuse_as(n)
        self._vec = resize(self._vec, n)

    def at(self, i: int, j: int) -> float:
        if i > j:
            i, j = j, i
        return float(self.raw[i, j])

    def set_sym(self, i: int, j: int, v: float):
        if i > j:
            i, j = j, i
        self.raw[i, j] = v

    def copy_sym(self, a: np.ndarray):
        a = np.asarray(a, dtype=float)
        if a.shape != (self.n, self.n):
            raise ValueError(
                f"symdense: shape mismatch, want {(self.n, self.n)}, got {a.shape}"
            )
        np.copyto(self.raw, a)

    def set_scaled_identity(self, scale: float):
        r = self.raw
        r.fill(0.0)
        self.diag()[:] = scale

    def diag(self) -> np.ndarray:
        """Writable view of the diagonal."""
        n = self.n
        return self._data[: n * n : n + 1]

    def set_diag(self, values):
        self.diag()[:] = values

    def to_dense(self) -> np.ndarray:
        """Return a new, fully populated symmetric array."""
        upper = np.triu(self.raw)
        return upper + np.triu(upper, 1).T

    # -----------------------------------------------------------------
    # symmetric updates
    # -----------------------------------------------------------------
    def sym_rank_one(self, alpha: float, x: np.ndarray):
        """A += alpha * x xᵀ"""
        blas.dsyr(alpha, x, a=self.raw, overwrite_a=True)

    def rank_two(self, alpha: float, x: np.ndarray, y: np.ndarray):
        """A += alpha * (x yᵀ + y xᵀ)"""
        blas.dsyr2(alpha, x, y, a=self.raw, overwrite_a=True)

    # -----------------------------------------------------------------
    # products
    # -----------------------------------------------------------------
    def inner(self, x: np.ndarray, y: np.ndarray) -> float:
        """Return xᵀ A y."""
        ay = self.mul_vec(y, out=self._vec)
        return float(np.dot(x, ay))

    def mul_vec(self, x: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        if out is None:
            return blas.dsymv(1.0, self.raw, x)
        res = blas.dsymv(1.0, self.raw, x, y=out, overwrite_y=True)
        if res is not out:
            out[:] = res
        return out


class Cholesky(_Square):
    """
    Upper Cholesky factor ``U`` with ``A = Uᵀ U``, held in the upper
    triangle of ``raw``.

    ``factorize`` reports failure instead of raising so callers can probe
    whether a (modified) matrix is positive definite.
    """

    def factorize(self, a: SymDense) -> bool:
        if a.n != self.n:
            raise ValueError(f"cholesky: size mismatch, want {self.n}, got {a.n}")
        factor = self.raw
        np.copyto(factor, a.raw)
        c, info = lapack.dpotrf(factor, lower=False, clean=False, overwrite_a=True)
        if info < 0:
            raise ValueError(f"cholesky: illegal argument {-info} to potrf")
        if info > 0:
            return False
        if c is not factor:
            np.copyto(factor, c)
        # a NaN anywhere in the input reaches the diagonal of the factor
        return bool(np.isfinite(factor.diagonal()).all())

    def upper(self) -> np.ndarray:
        """Return a new array holding ``U``."""
        return np.triu(self.raw)

    def solve_vec(self, b: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Solve ``A x = b`` using the stored factor."""
        if out is None:
            out = np.empty(self.n)
        np.copyto(out, b)
        x, info = lapack.dpotrs(self.raw, out, lower=False, overwrite_b=True)
        if info != 0:
            raise ValueError(f"cholesky: illegal argument {-info} to potrs")
        if x is not out:
            out[:] = x
        return out
