import numpy as np
import pytest

from SchwarzPC import CoarseOperator, CoarseRequest, MPITransport
from .conftest import laplacian, decompose_1d, make_schwarz


def _single(Z, d=None):
    A = laplacian(Z.shape[1])
    pc = make_schwarz(MPITransport(), A, [], vectors=Z)
    pc.callNumfact()
    if d is not None:
        pc.initialize(d)
    pc.solve_GEVP(A, nu=Z.shape[0])
    pc.buildTwo()
    return A, pc


def test_coarse_matrix_single_process():
    Z = np.random.default_rng(1).standard_normal((3, 10))
    A, pc = _single(Z)
    co = pc.co
    assert isinstance(co, CoarseOperator)
    assert co.dims == [3]
    assert (co.dim, co.first, co.local) == (3, 0, 3)
    np.testing.assert_allclose(co.E, Z.dot(A.dot(Z.T)), atol=1e-12)


def test_coarse_matrix_is_scaled_by_the_partition_of_unity():
    Z = np.random.default_rng(2).standard_normal((2, 6))
    d = np.linspace(.25, 1., 6)
    A, pc = _single(Z, d)
    D = np.diag(d)
    np.testing.assert_allclose(pc.co.E, Z.dot(D).dot(D).dot(A.toarray()).dot(D).dot(Z.T), atol=1e-12)


def test_solve_and_isolve():
    Z = np.random.default_rng(3).standard_normal((4, 9))
    _, pc = _single(Z)
    alpha = np.arange(1., 5.)
    uc = pc.co.E.dot(alpha)
    pc.co.solve(uc)
    np.testing.assert_allclose(uc, alpha, rtol=1e-10)

    uc = pc.co.E.dot(alpha)
    rq = pc.co.isolve(uc)
    assert isinstance(rq, CoarseRequest)
    np.testing.assert_allclose(rq.wait(), alpha, rtol=1e-10)
    # a second wait does not solve again
    assert rq.wait() is uc


def test_empty_coarse_space():
    pc = make_schwarz(MPITransport(), laplacian(5), [])
    pc.callNumfact()
    pc.solve_GEVP(pc.subdomain.A, nu=4)
    assert pc.nu == 0
    co = pc.buildTwo()
    assert co.dim == 0
    assert co.ksp_Delta is None
    uc = np.array([7.])
    co.solve(uc, fuse=1)
    np.testing.assert_array_equal(uc, [7.])
    co.destroy()


def test_coarse_solve_two_processes(network):
    n_local = 6
    _, _, neighbors = decompose_1d(2, n_local)
    rng = np.random.default_rng(4)
    vectors = [rng.standard_normal((2, n_local)), rng.standard_normal((1, n_local))]
    alpha = np.array([1., -2., 3.])

    def run(rank, transport):
        pc = make_schwarz(transport, laplacian(n_local), neighbors[rank], vectors=vectors[rank])
        pc.callNumfact()
        pc.multiplicity_scaling()
        pc.solve_GEVP(pc.subdomain.A, nu=2)
        co = pc.buildTwo()
        uc = co.E.dot(alpha)[co.first:co.first + co.local]
        co.solve(uc)
        return co.dims, co.first, co.E, uc

    (dims0, first0, E0, uc0), (dims1, first1, E1, uc1) = network(2).run(run)
    assert dims0 == dims1 == [2, 1]
    assert (first0, first1) == (0, 2)
    np.testing.assert_array_equal(E0, E1)
    np.testing.assert_allclose(E0, E0.T, atol=1e-12)
    np.testing.assert_allclose(uc0, alpha[:2], rtol=1e-10)
    np.testing.assert_allclose(uc1, alpha[2:], rtol=1e-10)


@pytest.mark.parametrize('overlapped', [False, True])
def test_fused_reductions(network, overlapped):
    n_local = 5
    _, _, neighbors = decompose_1d(2, n_local)
    vectors = [np.ones((1, n_local)), np.linspace(1., 2., n_local)[np.newaxis]]

    def run(rank, transport):
        pc = make_schwarz(transport, laplacian(n_local), neighbors[rank], vectors=vectors[rank])
        pc.callNumfact()
        pc.multiplicity_scaling()
        pc.solve_GEVP(pc.subdomain.A, nu=1)
        pc.buildTwo()
        x = np.arange(n_local, dtype=float) + rank

        y = np.zeros(n_local + 2)
        y[n_local:] = [rank + 1, 10*(rank + 1)]
        if overlapped:
            uc = pc.ideflation(x, y, fuse=2).wait().copy()
        else:
            pc.deflation(x, y, fuse=2)
            uc = pc.uc.copy()

        reference = np.zeros(n_local)
        pc.deflation(x, reference)
        return y[n_local:], uc[:1], pc.uc[:1].copy()

    for fused, uc, reference in network(2).run(run):
        np.testing.assert_array_equal(fused, [3., 30.])
        np.testing.assert_allclose(uc, reference)


def test_view(capsys):
    pc = make_schwarz(MPITransport(), laplacian(6), [], vectors=np.ones((2, 6)))
    pc.callNumfact()
    pc.view()
    out = capsys.readouterr().out
    assert 'view of Schwarz' in out
    assert 'no coarse operator' in out

    pc.solve_GEVP(pc.subdomain.A, nu=1)
    pc.buildTwo()
    pc.view()
    out = capsys.readouterr().out
    assert 'gathered_nu=[1]' in out
    assert 'global dim V0 = 1' in out


def test_view_prints_once(network, capsys):
    _, _, neighbors = decompose_1d(2, 4)

    def run(rank, transport):
        pc = make_schwarz(transport, laplacian(4), neighbors[rank])
        pc.view()

    network(2).run(run)
    out = capsys.readouterr().out
    assert out.count('view of Schwarz') == 1
    assert 'gathered_excluded=[False, False]' in out
