"""Shared fixtures: an in-process message passing network and fake capabilities.

The ranks of a LoopbackNetwork run in threads, one at a time: a rank keeps the
network lock until it blocks on a receive or a collective. PETSc is therefore
never called concurrently.
"""
import threading

import numpy as np
import pytest
import scipy.sparse as sps
import scipy.sparse.linalg as spla
from petsc4py import PETSc

from SchwarzPC import Schwarz, Subdomain

TIMEOUT = 20.

OPTIONS = ['schwarz_method', 'schwarz_coarse_correction', 'schwarz_verbose',
           'geneo_nu', 'eigensolver_tol']


@pytest.fixture(autouse=True)
def options():
    OptDB = PETSc.Options()
    for name in OPTIONS:
        OptDB.delValue(name)
    yield OptDB
    for name in OPTIONS:
        OptDB.delValue(name)


class _Request(object):
    def __init__(self, network, ready=None, complete=None):
        self.network = network
        self.ready = ready
        self.complete = complete
        self.done = ready is None

    def test(self):
        if not self.done and self.ready():
            if self.complete is not None:
                self.complete()
            self.done = True
        return self.done

    def Wait(self):
        self.network.wait_for(self.test)


class _CollectiveRequest(object):
    def __init__(self, transport, array):
        self.transport = transport
        self.array = array
        self.contribution = array.copy()

    def Wait(self):
        self.array[...] = self.transport._reduce(self.contribution)


class LoopbackTransport(object):
    def __init__(self, network, rank):
        self.network = network
        self.rank = rank
        self.size = network.size

    def Irecv(self, buf, source, tag=0):
        box = self.network.mailbox(source, self.rank, tag)

        def complete():
            buf[...] = box.pop(0)
        return _Request(self.network, lambda: len(box) > 0, complete)

    def Isend(self, buf, dest, tag=0):
        self.network.mailbox(self.rank, dest, tag).append(np.array(buf, copy=True))
        self.network.cond.notify_all()
        return _Request(self.network)

    def Waitany(self, requests):
        found = []

        def ready():
            for i, rq in enumerate(requests):
                if rq is not None and not rq.done and rq.test():
                    found.append(i)
                    return True
            return False
        self.network.wait_for(ready)
        return found[0]

    def Waitall(self, requests):
        for rq in requests:
            if rq is not None:
                rq.Wait()

    def _collective(self, value, combine):
        net = self.network
        generation = net.generation
        net.slots[self.rank] = value
        net.arrived += 1
        if net.arrived == net.size:
            net.results[generation] = combine(list(net.slots))
            net.arrived = 0
            net.generation += 1
            net.cond.notify_all()
        else:
            net.wait_for(lambda: net.generation != generation)
        return net.results[generation]

    def _reduce(self, array):
        return self._collective(np.array(array, copy=True), lambda values: sum(values))

    def Allreduce(self, array):
        array[...] = self._reduce(array)
        return array

    def Iallreduce(self, array):
        return _CollectiveRequest(self, array)

    def allgather(self, obj):
        return self._collective(obj, lambda values: values)


class LoopbackNetwork(object):
    def __init__(self, size):
        self.size = size
        self.cond = threading.Condition()
        self.boxes = {}
        self.slots = [None]*size
        self.arrived = 0
        self.generation = 0
        self.results = {}
        self.transports = [LoopbackTransport(self, rank) for rank in range(size)]

    def mailbox(self, source, dest, tag):
        return self.boxes.setdefault((source, dest, tag), [])

    def wait_for(self, predicate):
        if not self.cond.wait_for(predicate, timeout=TIMEOUT):
            raise TimeoutError('rank blocked on a communication')

    def run(self, target):
        """
        Run target(rank, transport) on every rank and return the list of the results.
        """
        results = [None]*self.size
        errors = []

        def body(rank):
            with self.cond:
                try:
                    results[rank] = target(rank, self.transports[rank])
                except BaseException as e:
                    errors.append(e)
                finally:
                    self.cond.notify_all()

        threads = [threading.Thread(target=body, args=(rank,)) for rank in range(self.size)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5*TIMEOUT)
        if errors:
            raise errors[0]
        return results


class FakeSolver(object):
    """Exact local solver recording its calls."""
    def __init__(self):
        self.numfact_calls = []
        self.solve_calls = 0
        self.pattern = None

    def numfact(self, A, symmetric=False):
        A = sps.csc_matrix(A)
        self.numfact_calls.append((A, symmetric))
        self.A = A
        self.lu = spla.factorized(A) if A.shape[0] else None

    def solve(self, rhs, out=None):
        self.solve_calls += 1
        if out is None:
            out = rhs
        if rhs.ndim == 2:
            for r, o in zip(rhs, out):
                o[:] = self.lu(np.array(r))
        elif rhs.size:
            out[:] = self.lu(np.array(rhs))
        return out


class FakeEigensolver(object):
    """Return scripted eigenvectors and record the calls."""
    def __init__(self, vectors):
        self.vectors = np.atleast_2d(np.array(vectors, dtype=float))
        self.calls = []

    def solve(self, A, B, nu, threshold, pattern=None):
        self.calls.append(dict(A=A, B=B, nu=nu, threshold=threshold, pattern=pattern))
        n = min(nu, self.vectors.shape[0])
        return n, self.vectors[:n].copy()


def laplacian(n):
    return sps.diags([-np.ones(n - 1), 2*np.ones(n), -np.ones(n - 1)], [-1, 0, 1], format='csr')


def decompose_1d(nsub, n_local=10):
    """
    Split a 1-D grid into nsub subdomains of n_local unknowns, two consecutive
    subdomains sharing one unknown.

    Returns
    =======

    n : Int
        Global number of unknowns.

    l2g : list of arrays
        Global indices of the local unknowns of each subdomain.

    neighbors : list of lists
        Neighbor map of each subdomain.

    """
    n = nsub*(n_local - 1) + 1
    l2g = [np.arange(s*(n_local - 1), s*(n_local - 1) + n_local) for s in range(nsub)]
    neighbors = []
    for s in range(nsub):
        neighbor = []
        if s > 0:
            neighbor.append((s - 1, [0]))
        if s < nsub - 1:
            neighbor.append((s + 1, [n_local - 1]))
        neighbors.append(neighbor)
    return n, l2g, neighbors


def make_schwarz(transport, A, neighbors, vectors=None, excluded=False):
    """
    Build a Schwarz preconditioner with fake local solver and eigensolver.
    """
    if excluded:
        subdomain = Subdomain.empty(transport)
    else:
        subdomain = Subdomain(A, neighbors, transport)
    eigensolver = FakeEigensolver(vectors if vectors is not None else np.zeros((0, subdomain.dof)))
    return Schwarz(subdomain, solver=FakeSolver(), eigensolver=eigensolver, excluded=excluded)


@pytest.fixture
def network():
    return LoopbackNetwork
