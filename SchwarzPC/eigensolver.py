# Authors:
#     Loic Gouarin <loic.gouarin@cmap.polytechnique.fr>
#     Nicole Spillane <nicole.spillane@cmap.polytechnique.fr>
#
# License: BSD 3 clause
from .utils import buildPETScMat
from petsc4py import PETSc
from slepc4py import SLEPc
import mpi4py.MPI as mpi
import numpy as np

class SLEPcGEVP(object):
    def __init__(self, verbose=False):
        """
        Solver of the local generalized eigenvalue problems A x = lambda B x.

        The eigenpairs with the smallest eigenvalues are computed by a shift and
        invert spectral transformation around 0.

        PETSc.Options
        =============

        The EPS can be configured through the prefix geneo_ (e.g. -geneo_eps_type).

        """
        self.verbose = verbose
        self.eigenvalues = []

    def solve(self, A, B, nu, threshold, pattern=None):
        """
        Solve the generalized eigenvalue problem A x = lambda B x.

        Parameters
        ==========

        A : scipy.sparse matrix
            Left-hand side matrix.

        B : scipy.sparse matrix
            Right-hand side matrix.

        nu : Int
            Number of eigenpairs requested.

        threshold : Real
            Tolerance of the eigensolver.

        pattern : tuple
            (indptr, indices) of a matrix with the same sparsity as A. When given,
            they are reused to build the PETSc matrix of A.

        Returns
        =======

        nu : Int
            Number of eigenvectors returned, never larger than the number requested.

        ev : numpy.ndarray
            Eigenvectors, array of shape (nu, dof).

        """
        dof = A.shape[0]
        if nu <= 0 or dof == 0:
            self.eigenvalues = []
            return 0, np.zeros((0, dof))

        Amat = buildPETScMat(A, pattern)
        Bmat = buildPETScMat(B)

        eps = SLEPc.EPS().create(comm=PETSc.COMM_SELF)
        eps.setOptionsPrefix('geneo_')
        eps.setDimensions(nev=min(nu, dof))
        eps.setProblemType(SLEPc.EPS.ProblemType.GHEP)
        eps.setOperators(Amat, Bmat)
        eps.setWhichEigenpairs(SLEPc.EPS.Which.TARGET_MAGNITUDE)
        eps.setTarget(0.)
        if threshold > 0:
            eps.setTolerances(tol=threshold)
        ST = eps.getST()
        ST.setType('sinvert')
        ksp = ST.getKSP()
        ksp.setType('preonly')
        ksp.getPC().setType('lu')
        eps.setFromOptions()
        eps.solve()

        nconv = eps.getConverged()
        if nconv < nu and self.verbose:
            PETSc.Sys.Print('WARNING: Only {} eigenvalues converged for GenEO in subdomain {} whereas {} were requested'.format(nconv, mpi.COMM_WORLD.rank, nu), comm=PETSc.COMM_SELF)
        nu = min(nconv, nu)

        ev = np.zeros((nu, dof))
        vr, _ = Amat.createVecs()
        self.eigenvalues = []
        for i in range(nu):
            self.eigenvalues.append(eps.getEigenpair(i, vr).real)
            ev[i] = vr.array.real
            if self.verbose:
                PETSc.Sys.Print('GenEO eigenvalue number {} in subdomain {}: {}'.format(i, mpi.COMM_WORLD.rank, self.eigenvalues[-1]), comm=PETSc.COMM_SELF)

        eps.destroy()
        vr.destroy()
        # the sparsity of A was only borrowed
        Amat.destroy()
        Bmat.destroy()
        return nu, ev
