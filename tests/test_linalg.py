import tracemalloc

import numpy as np
import pytest

from descent.linalg import Cholesky, SymDense, resize


def test_resize_reuses_storage_when_capacity_allows():
    buf = resize(None, 6)
    assert buf.shape == (6,)

    smaller = resize(buf, 3)
    assert smaller.shape == (3,)
    assert np.shares_memory(buf, smaller)

    # shrinking never loses capacity
    back = resize(smaller, 6)
    assert back.shape == (6,)
    assert np.shares_memory(buf, back)


def test_resize_grows():
    buf = resize(None, 2)
    bigger = resize(buf, 5)
    assert bigger.shape == (5,)
    assert not np.shares_memory(buf, bigger)


def test_symdense_reuse_as_keeps_storage():
    a = SymDense(4)
    data = a.raw
    a.reuse_as(2)
    assert a.raw.shape == (2, 2)
    assert np.shares_memory(data, a.raw)
    a.reuse_as(5)
    assert a.raw.shape == (5, 5)


def test_symdense_element_access():
    a = SymDense(3)
    a.set_sym(0, 2, 4.5)
    assert a.at(0, 2) == 4.5
    assert a.at(2, 0) == 4.5
    assert a.to_dense()[2, 0] == 4.5


def test_symdense_rank_updates():
    rng = np.random.default_rng(0)
    x = rng.standard_normal(4)
    y = rng.standard_normal(4)
    a = SymDense(4)
    a.set_scaled_identity(2.0)

    a.rank_two(-0.3, x, y)
    a.sym_rank_one(1.7, x)

    want = 2.0 * np.eye(4) - 0.3 * (np.outer(x, y) + np.outer(y, x)) + 1.7 * np.outer(x, x)
    got = a.to_dense()
    np.testing.assert_allclose(got, want, rtol=1e-12, atol=1e-12)
    assert np.array_equal(got, got.T)


def test_symdense_products():
    m = np.array([[2.0, 1.0], [1.0, 3.0]])
    a = SymDense(2)
    a.copy_sym(m)
    x = np.array([1.0, -2.0])
    y = np.array([0.5, 4.0])

    assert a.inner(x, y) == pytest.approx(x @ m @ y)
    out = np.empty(2)
    assert a.mul_vec(x, out=out) is out
    np.testing.assert_allclose(out, m @ x)
    np.testing.assert_allclose(a.mul_vec(x), m @ x)


def test_symdense_copy_shape_mismatch():
    a = SymDense(2)
    with pytest.raises(ValueError):
        a.copy_sym(np.eye(3))


def test_symdense_diag():
    a = SymDense(3)
    a.copy_sym(np.diag([3.0, -1.0, 2.0]))
    np.testing.assert_array_equal(a.diag(), [3.0, -1.0, 2.0])
    a.set_diag(np.array([1.0, 1.0, 1.0]))
    np.testing.assert_array_equal(a.to_dense(), np.eye(3))


def test_cholesky_solves_positive_definite_system():
    m = np.array([[4.0, 2.0, 0.0], [2.0, 5.0, 1.0], [0.0, 1.0, 3.0]])
    a = SymDense(3)
    a.copy_sym(m)
    chol = Cholesky(3)

    assert chol.factorize(a)
    u = chol.upper()
    np.testing.assert_allclose(u.T @ u, m, atol=1e-12)
    # the input matrix is left as it was
    np.testing.assert_array_equal(a.to_dense(), m)

    b = np.array([1.0, 2.0, 3.0])
    out = np.empty(3)
    assert chol.solve_vec(b, out=out) is out
    np.testing.assert_allclose(m @ out, b, atol=1e-12)


@pytest.mark.parametrize(
    "m",
    [
        np.diag([-1.0, 2.0]),
        np.array([[0.0, 2.0], [2.0, 0.0]]),
        np.array([[np.nan, 0.0], [0.0, 1.0]]),
    ],
)
def test_cholesky_reports_failure(m):
    a = SymDense(2)
    a.copy_sym(m)
    chol = Cholesky(2)
    assert not chol.factorize(a)


def test_cholesky_size_mismatch():
    chol = Cholesky(2)
    with pytest.raises(ValueError):
        chol.factorize(SymDense(3))


def test_symdense_reads_upper_triangle_only():
    m = np.array([[2.0, 1.0], [1.0, 3.0]])
    a = SymDense(2)
    a.copy_sym(m)
    a.raw[1, 0] = 99.0

    assert a.at(1, 0) == 1.0
    np.testing.assert_array_equal(a.to_dense(), m)
    np.testing.assert_allclose(a.mul_vec(np.array([1.0, 1.0])), [3.0, 4.0])
    chol = Cholesky(2)
    assert chol.factorize(a)


def test_updates_work_in_existing_storage():
    n = 300
    rng = np.random.default_rng(1)
    x = rng.standard_normal(n)
    y = rng.standard_normal(n)
    a = SymDense(n)
    a.set_scaled_identity(float(n))
    chol = Cholesky(n)
    out = np.empty(n)
    data = a.raw

    tracemalloc.start()
    try:
        a.rank_two(-0.5, x, y)
        a.sym_rank_one(0.25, x)
        a.mul_vec(y, out=out)
        a.inner(x, y)
        assert chol.factorize(a)
        chol.solve_vec(y, out=out)
        _, peak = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()

    assert np.shares_memory(data, a.raw)
    assert peak < n * n * 8 // 10
