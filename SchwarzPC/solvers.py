# Authors:
#     Loic Gouarin <loic.gouarin@cmap.polytechnique.fr>
#     Nicole Spillane <nicole.spillane@cmap.polytechnique.fr>
#
# License: BSD 3 clause
from .utils import buildPETScMat, csr_pattern
from petsc4py import PETSc
import scipy.sparse as sps

class LocalSolver(object):
    def __init__(self, prefix='schwarz_local_'):
        """
        Direct solver for the local matrix of a subdomain.

        PETSc.Options
        =============

        schwarz_local_pc_factor_mat_solver_type : String
            The package used for the factorization (petsc, mumps, ...). It can be set
            as any other option of the KSP through its prefix schwarz_local_.

        """
        self.prefix = prefix
        self.ksp = None
        self.pattern = None

    def numfact(self, A, symmetric=False):
        """
        Factorize the local matrix.

        Parameters
        ==========

        A : scipy.sparse matrix
            The matrix to factorize.

        symmetric : Bool
            If True a Cholesky factorization is used, LU otherwise.

        """
        A = sps.csr_matrix(A)
        A.sort_indices()
        self.pattern = csr_pattern(A)
        self.mat = buildPETScMat(A, self.pattern)

        ksp = PETSc.KSP().create(comm=PETSc.COMM_SELF)
        ksp.setOptionsPrefix(self.prefix)
        ksp.setOperators(self.mat)
        ksp.setType('preonly')
        pc = ksp.getPC()
        pc.setType('cholesky' if symmetric else 'lu')
        ksp.setFromOptions()
        ksp.setUp()

        self.ksp = ksp
        self.x, self.b = self.mat.createVecs()

    def solve(self, rhs, out=None):
        """
        Solve the local problem for one or several right-hand sides.

        Parameters
        ==========

        rhs : numpy.ndarray
            Vector of length dof or array of shape (mu, dof).

        out : numpy.ndarray
            Where to store the solution. If None, rhs is overwritten.

        """
        if out is None:
            out = rhs
        if rhs.ndim == 2:
            for r, o in zip(rhs, out):
                self.solve(r, o)
            return out
        self.b.array[:] = rhs
        self.ksp.solve(self.b, self.x)
        out[:] = self.x.array
        return out

    def destroy(self):
        if self.ksp is not None:
            self.ksp.destroy()
            self.mat.destroy()
        self.ksp = None
        self.pattern = None
