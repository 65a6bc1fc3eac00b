# Authors:
#     Loic Gouarin <loic.gouarin@cmap.polytechnique.fr>
#     Nicole Spillane <nicole.spillane@cmap.polytechnique.fr>
#
# License: BSD 3 clause
from .utils import diag
from petsc4py import PETSc
import numpy as np

class CoarseRequest(object):
    def __init__(self, coarse, rq, rhs, uc, fuse):
        """
        Handle on a coarse solve started by CoarseOperator.isolve. The reduction of
        the coarse right-hand side is in flight until wait is called; uc must not be
        read before.
        """
        self.coarse = coarse
        self.rq = rq
        self.rhs = rhs
        self.uc = uc
        self.fuse = fuse
        self.done = False

    def wait(self):
        if not self.done:
            self.rq.Wait()
            self.coarse._finalize(self.rhs, self.uc, self.fuse)
            self.done = True
        return self.uc

class CoarseOperator(object):
    def __init__(self, schwarz, prefix='schwarz_coarse_'):
        """
        Assemble and factorize the coarse operator E = Pt A P.

        The coarse space is spanned by the vectors P_j = sum_s R_s^t D_s Z_s[k] where
        Z_s[k] is the k-th deflation vector of subdomain s. Each process contributes
        the rows of E associated to its own deflation vectors, E is then summed over
        all the processes and is duplicated on each of them. Excluded processes
        contribute no vector.

        Parameters
        ==========

        schwarz : Schwarz
            The preconditioner owning the deflation vectors (schwarz.ev), the partition
            of unity (schwarz.d) and the global matrix-vector product (schwarz.GMV).

        PETSc.Options
        =============

        schwarz_coarse_pc_type : String
            Default is lu.
            The factorization of the coarse operator. Any option of the coarse KSP can be
            set through the prefix schwarz_coarse_.

        """
        self.transport = schwarz.transport
        self.verbose = schwarz.verbose

        ev = schwarz.ev
        nu = ev.shape[0]
        self.dims = self.transport.allgather(nu)
        self.offsets = np.concatenate(([0], np.cumsum(self.dims))).astype(int)
        self.dim = int(self.offsets[-1])
        self.first = int(self.offsets[self.transport.rank])
        self.local = nu

        E = self.assemble_coarse_operator(schwarz)
        self.E = E

        if self.dim > 0:
            Delta = PETSc.Mat().createDense([self.dim, self.dim], comm=PETSc.COMM_SELF)
            Delta.setUp()
            indices = np.arange(self.dim, dtype=PETSc.IntType)
            Delta.setValues(indices, indices, E.ravel())
            Delta.assemble()
            ksp_Delta = PETSc.KSP().create(comm=PETSc.COMM_SELF)
            ksp_Delta.setOptionsPrefix(prefix)
            ksp_Delta.setOperators(Delta)
            ksp_Delta.setType('preonly')
            ksp_Delta.getPC().setType('lu')
            ksp_Delta.setFromOptions()
            ksp_Delta.setUp()
            self.Delta = Delta
            self.ksp_Delta = ksp_Delta
            self.gamma, self.alpha = Delta.createVecs()
        else:
            self.ksp_Delta = None

        PETSc.Sys.Print('There are {} vectors in the coarse space.'.format(self.dim), comm=PETSc.COMM_WORLD)

    def assemble_coarse_operator(self, schwarz):
        """
        Compute the rows of E owned by this process and sum them over all the processes.

        Returns
        =======

        E : numpy.ndarray
            The dense coarse matrix (dim x dim).

        """
        E = np.zeros((self.dim, self.dim))
        if not schwarz.excluded:
            ev = schwarz.ev
            u = np.zeros(schwarz.dof)
            w = np.zeros(schwarz.dof)
            rows = slice(self.first, self.first + self.local)
            for rank, n in enumerate(self.dims):
                for k in range(n):
                    if rank == self.transport.rank:
                        diag(schwarz.d, ev[k], out=u)
                    else:
                        u.fill(0.)
                    schwarz.subdomain.exchange(u)
                    schwarz.GMV(u, w)
                    diag(schwarz.d, w)
                    E[rows, self.offsets[rank] + k] = ev.dot(w)
        self.transport.Allreduce(E)
        return E

    def _rhs(self, uc, fuse):
        rhs = np.zeros(self.dim + fuse)
        rhs[self.first:self.first + self.local] = uc[:self.local]
        if fuse > 0:
            rhs[self.dim:] = uc[self.local:self.local + fuse]
        return rhs

    def _finalize(self, rhs, uc, fuse):
        if self.dim > 0:
            self.gamma.array[:] = rhs[:self.dim]
            self.ksp_Delta.solve(self.gamma, self.alpha)
            uc[:self.local] = self.alpha.array[self.first:self.first + self.local]
        if fuse > 0:
            uc[self.local:self.local + fuse] = rhs[self.dim:]

    def solve(self, uc, fuse=0):
        """
        Solve the coarse problem.

        Parameters
        ==========

        uc : numpy.ndarray
            On entry, the local contribution Z^t D in to the coarse right-hand side
            followed by fuse extra values. On exit, the local part of the coarse
            solution followed by the fuse extra values summed over all the processes.

        fuse : Int
            Number of fused reductions.

        """
        rhs = self._rhs(uc, fuse)
        self.transport.Allreduce(rhs)
        self._finalize(rhs, uc, fuse)
        return uc

    def isolve(self, uc, fuse=0):
        """
        Start the coarse solve, same as solve but the reduction is non-blocking.

        Returns
        =======

        rq : CoarseRequest
            The handle to join (rq.wait()) before reading uc.

        """
        rhs = self._rhs(uc, fuse)
        rq = self.transport.Iallreduce(rhs)
        return CoarseRequest(self, rq, rhs, uc, fuse)

    def destroy(self):
        if self.ksp_Delta is not None:
            self.ksp_Delta.destroy()
            self.Delta.destroy()
            self.ksp_Delta = None
