# Authors:
#     Loic Gouarin <loic.gouarin@cmap.polytechnique.fr>
#     Nicole Spillane <nicole.spillane@cmap.polytechnique.fr>
#
# License: BSD 3 clause
from .coarse import CoarseOperator
from .eigensolver import SLEPcGEVP
from .modes import Prcndtnr, select_mode
from .scaling import multiplicity_scaling
from .solvers import LocalSolver
from .subdomain import Subdomain
from .utils import EPS, PEN, diag, same_sparsity
from petsc4py import PETSc
import numpy as np
import scipy.sparse as sps

def _copy(pc, x, y):
    np.copyto(y, x)

def _solve_exchange(pc, x, y):
    if not pc.excluded:
        pc.s.solve(x, y)
        pc.subdomain.exchange(y)

def _solve_scale_exchange(pc, x, y):
    if not pc.excluded:
        pc.s.solve(x, y)
        diag(pc.d, y)
        pc.subdomain.exchange(y)

def _scale_solve_scale_exchange(pc, x, y):
    if not pc.excluded:
        diag(pc.d, x, out=y)
        pc.s.solve(y)
        diag(pc.d, y)
        pc.subdomain.exchange(y)

# one-level preconditioners, used when there is no coarse correction
_ONE_LEVEL = {
    Prcndtnr.NO: _copy,
    Prcndtnr.SY: _solve_exchange,
    Prcndtnr.GE: _solve_scale_exchange,
    Prcndtnr.OS: _scale_solve_scale_exchange,
    Prcndtnr.OG: _solve_scale_exchange,
    Prcndtnr.AD: _solve_exchange,
    Prcndtnr.BA: _solve_exchange,
}

def boundary_rows(A):
    """
    Detect the rows of A used to impose Dirichlet boundary conditions.

    Only the entries on the left of the diagonal (diagonal included) are inspected.

    Parameters
    ==========

    A : scipy.sparse.csr_matrix
        The local matrix.

    Returns
    =======

    penalized : numpy.ndarray of bool
        Rows whose diagonal entry is larger than EPS*PEN (penalization).

    dirichlet : numpy.ndarray of bool
        Rows with a unit diagonal and no significant off-diagonal entry.

    """
    A = A.sorted_indices()
    n = A.shape[0]
    penalized = np.zeros(n, dtype=bool)
    dirichlet = np.zeros(n, dtype=bool)
    for i in range(n):
        cols = A.indices[A.indptr[i]:A.indptr[i+1]]
        vals = A.data[A.indptr[i]:A.indptr[i+1]]
        lower = cols <= i
        if not np.any(lower):
            continue
        cols, vals = cols[lower], vals[lower]
        if abs(vals[-1]) > EPS*PEN:
            penalized[i] = True
            continue
        off = cols != i
        dirichlet[i] = np.all(np.abs(vals[off]) <= EPS) and np.all(np.abs(vals[~off] - 1.) <= EPS)
    return penalized, dirichlet

class DeflationRequest(object):
    def __init__(self, pc, rq, out, fuse):
        self.pc = pc
        self.rq = rq
        self.out = out
        self.fuse = fuse

    def wait(self):
        uc = self.rq.wait()
        if self.fuse > 0:
            local = self.pc.co.local
            self.out[self.pc.dof:self.pc.dof + self.fuse] = uc[local:local + self.fuse]
        return uc

class Schwarz(object):
    def __init__(self, subdomain=None, solver=None, eigensolver=None, excluded=False, transport=None):
        """
        Initialize the overlapping Schwarz preconditioner of a subdomain.

        The preconditioner is set up in several steps:
          - callNumfact chooses the Schwarz method and factorizes the local matrix,
          - multiplicity_scaling (or initialize) sets the partition of unity,
          - solve_GEVP computes the local contribution to the coarse space (GenEO),
          - buildTwo assembles and factorizes the coarse operator.
        Only the first two steps are needed for a one-level method.

        Parameters
        ==========

        subdomain : Subdomain
            The local subdomain. Default is an empty subdomain, as for an excluded process.

        solver : object
            Local solver with numfact(A, symmetric) and solve(rhs, out=None). Default is LocalSolver.

        eigensolver : object
            Solver of the generalized eigenvalue problems with solve(A, B, nu, threshold, pattern)
            returning (nu, vectors). Default is SLEPcGEVP.

        excluded : Bool
            Default is False.
            If True the process holds no subdomain and only takes part in the coarse solves.

        transport : MPITransport
            Used to create the empty subdomain when subdomain is None.

        PETSc.Options
        =============

        schwarz_verbose : Bool
            Default is False.
            If True, some information about the preconditioner is printed when the code is executed.

        """
        OptDB = PETSc.Options()
        self.verbose = OptDB.getBool('schwarz_verbose', False)

        if subdomain is None:
            subdomain = Subdomain.empty(transport)
        self.subdomain = subdomain
        self.transport = subdomain.transport
        self.dof = subdomain.dof
        self.excluded = excluded

        self.s = solver if solver is not None else LocalSolver()
        self.eigensolver = eigensolver if eigensolver is not None else SLEPcGEVP(self.verbose)

        self.type = Prcndtnr.GE
        self.d = np.ones(self.dof)
        self.ev = np.zeros((0, self.dof))
        self.nu = 0
        self.co = None
        self.uc = np.zeros(0)

    def callNumfact(self, A=None):
        """
        Choose the Schwarz method and factorize the local matrix, or the matrix A
        supplied by the user for the optimized methods.

        Parameters
        ==========

        A : scipy.sparse matrix
            Default is None.

        """
        self.type = select_mode(A)
        if not self.excluded:
            if self.type in (Prcndtnr.OS, Prcndtnr.OG):
                self.s.numfact(A, self.type == Prcndtnr.OS)
            else:
                self.s.numfact(self.subdomain.A, False)
        return self.type

    def set_matrix(self, A):
        """
        Replace the local matrix. It is factorized again unless the local solves use a
        matrix supplied by the user.
        """
        self.subdomain.A = sps.csr_matrix(A)
        if not self.excluded and self.type not in (Prcndtnr.OS, Prcndtnr.OG):
            self.s.numfact(self.subdomain.A, False)

    def initialize(self, d):
        self.d = d

    def multiplicity_scaling(self, d=None):
        self.d = multiplicity_scaling(self.subdomain, d)
        return self.d

    def getScaling(self):
        return self.d

    def scale_into_overlap(self, A):
        """
        Scale A with the partition of unity on the overlap and set it to zero elsewhere.

        Parameters
        ==========

        A : scipy.sparse matrix
            The local matrix.

        Returns
        =======

        B : scipy.sparse.csr_matrix
            The entries d_i d_j a_ij of A with i and j shared with a neighbor and of
            magnitude larger than EPS. This is the right-hand side matrix of the GenEO
            eigenvalue problem.

        """
        A = sps.csr_matrix(A)
        d = self.d
        into_overlap = self.subdomain.overlap() & (d > EPS)
        rows = np.repeat(np.arange(self.dof), np.diff(A.indptr))
        cols = A.indices
        values = d[rows]*d[cols]*A.data
        keep = into_overlap[rows] & into_overlap[cols] & (np.abs(values) > EPS)
        return sps.csr_matrix((values[keep], (rows[keep], cols[keep])), shape=(self.dof, self.dof))

    def solve_GEVP(self, A, nu=None, threshold=None, B=None, pattern=None):
        """
        Solve the generalized eigenvalue problem A x = lambda B x and keep the
        eigenvectors as the local contribution to the coarse space.

        Parameters
        ==========

        A : scipy.sparse matrix
            Left-hand side matrix.

        nu : Int
            Number of eigenvectors requested. Default is the option geneo_nu.

        threshold : Real
            Precision of the eigensolver. Default is the option eigensolver_tol.

        B : scipy.sparse matrix
            Right-hand side matrix. Default is scale_into_overlap(A).

        pattern : scipy.sparse matrix
            Matrix whose sparsity is compared to the one of A. Default is the local matrix.

        PETSc.Options
        =============

        geneo_nu : Int
            Default is 20.
            Number of eigenvectors requested. It is overwritten with the number of
            eigenvectors actually computed.

        eigensolver_tol : Real
            Default is 1e-6.

        Returns
        =======

        nu : Int
            Number of eigenvectors computed, it may be smaller than requested.

        """
        OptDB = PETSc.Options()
        if nu is None:
            nu = OptDB.getInt('geneo_nu', 20)
        if threshold is None:
            threshold = OptDB.getReal('eigensolver_tol', 1e-6)

        A = sps.csr_matrix(A)
        free = same_sparsity(pattern if pattern is not None else self.subdomain.A, A)
        # the sparsity of the factorized local matrix is reused when it matches
        shared = getattr(self.s, 'pattern', None)
        if not (free and same_sparsity(shared, A)):
            shared = None
        rhs = B if B is not None else self.scale_into_overlap(A)

        requested = nu
        nu, ev = self.eigensolver.solve(A, rhs, nu, threshold, pattern=shared)
        ev = np.array(ev, dtype=float).reshape(nu, self.dof)
        if self.verbose and nu < requested:
            PETSc.Sys.Print('WARNING: subdomain {} contributes {} coarse vectors whereas {} were requested'.format(self.transport.rank, nu, requested), comm=PETSc.COMM_SELF)

        OptDB.setValue('geneo_nu', nu)
        ev[np.abs(ev) < 1./(EPS*PEN)] = 0.
        self.ev = ev
        self.nu = nu
        return nu

    def buildTwo(self):
        """
        Assemble and factorize the coarse operator. It must be called by all the processes,
        excluded ones included.
        """
        self.co = CoarseOperator(self)
        self.uc = np.zeros(self.co.local)
        if self.verbose and PETSc.Options().getInt('schwarz_coarse_correction', -1) == 2:
            PETSc.Sys.Print('WARNING: the balanced coarse correction assumes a symmetric operator', comm=PETSc.COMM_WORLD)
        return self.co

    def _coarse_rhs(self, out, fuse):
        local = self.co.local
        if self.uc.size < local + fuse:
            uc = np.zeros(local + fuse)
            uc[:local] = self.uc[:local]
            self.uc = uc
        if fuse > 0:
            self.uc[local:local + fuse] = out[self.dof:self.dof + fuse]
        return self.uc

    def deflation(self, x, y, fuse=0):
        """
        Compute the coarse correction y = Z E^-1 Z^t D x.

        Parameters
        ==========

        x : numpy.ndarray
            Input vector. If None, the input is read from y.

        y : numpy.ndarray
            Output vector, of length dof + fuse. Its last fuse values are appended to the
            coarse right-hand side and replaced by the reduced ones.

        fuse : Int
            Number of fused reductions.

        """
        uc = self._coarse_rhs(y, fuse)
        local = self.co.local
        if self.excluded:
            self.co.solve(uc, fuse)
        else:
            out = y[:self.dof]
            if x is None:
                diag(self.d, out)
            else:
                diag(self.d, x[:self.dof], out=out)                 # y = D x
            uc[:local] = self.ev.dot(out)                           # uc = Z^t D x
            self.co.solve(uc, fuse)                                 # uc = E^-1 Z^t D x
            out[:] = self.ev.T.dot(uc[:local])                      # y = Z E^-1 Z^t D x
            if self.type != Prcndtnr.AD:
                diag(self.d, out)
                self.subdomain.exchange(out)
        if fuse > 0:
            y[self.dof:self.dof + fuse] = uc[local:local + fuse]
        return y

    def ideflation(self, x, y, fuse=0):
        """
        Start the first part of the coarse correction: the restriction Z^t D x and the
        coarse solve, with a non-blocking reduction.

        Returns
        =======

        rq : DeflationRequest
            The handle to join (rq.wait()) before reading self.uc. The prolongation by Z
            is left to the caller.

        """
        uc = self._coarse_rhs(y, fuse)
        if not self.excluded:
            out = y[:self.dof]
            diag(self.d, x[:self.dof], out=out)
            uc[:self.co.local] = self.ev.dot(out)
        rq = self.co.isolve(uc, fuse)
        return DeflationRequest(self, rq, y, fuse)

    def apply(self, x, y, mu=1, work=None, fuse=0):
        """
        Apply the Schwarz preconditioner to x.

        Parameters
        ==========

        x : numpy.ndarray
            Input vector (length dof) or array of shape (mu, dof) for the one-level methods.
            It is not modified.

        y : numpy.ndarray
            Output vector.

        mu : Int
            Number of right-hand sides.

        work : numpy.ndarray
            Work vector of length dof. Default is a copy of x.

        fuse : Int
            Number of fused reductions.

        PETSc.Options
        =============

        schwarz_coarse_correction : Int
            Default is -1.
            -1 : no coarse correction (one-level method),
             0 : deflated preconditioner,
             1 : additive coarse correction, the coarse solve overlaps the local solve,
             2 : balanced preconditioner.

        """
        correction = max(PETSc.Options().getInt('schwarz_coarse_correction', -1), -1)
        if self.co is None or correction == -1:
            _ONE_LEVEL[self.type](self, x, y)
            return y

        dof = self.dof
        if work is None:
            work = np.array(x[:dof], dtype=float)
        else:
            work[:] = x[:dof]
        out = y[:dof]

        if correction == 1:
            rq = self.ideflation(x, y, fuse)
            if not self.excluded:
                self.s.solve(work)                                   # work = A \ x
                uc = rq.wait()
                out[:] = self.ev.T.dot(uc[:self.co.local])           # y = Z E^-1 Z^t D x
                out += work
                diag(self.d, out)
                self.subdomain.exchange(out)                         # y = Z E^-1 Z^t D x + A \ x
            else:
                rq.wait()
            return y

        self.deflation(x, y, fuse)                                   # y = Z E^-1 Z^t D x
        if not self.excluded:
            work -= self.subdomain.A.dot(out)
            diag(self.d, work)
            self.subdomain.exchange(work)                            # work = (I - A Z E^-1 Z^t D) x
            if self.type == Prcndtnr.OS:
                diag(self.d, work)
            self.s.solve(work)
            diag(self.d, work)
            self.subdomain.exchange(work)                            # work = D A \ (I - A Z E^-1 Z^t D) x
            if correction == 2:
                tmp = np.empty(dof)
                self.GMV(work, tmp)
                self.deflation(None, tmp)
                work -= tmp                                          # work = (I - Z E^-1 Z^t D A) work
            out += work
        elif correction == 2:
            self.deflation(None, np.zeros(0))
        return y

    def GMV(self, x, y, mu=1):
        """
        Global sparse matrix-vector product y = A x. The local products are scaled by
        the partition of unity and summed on the overlap.
        """
        y[...] = self.subdomain.A.dot(x.T).T
        diag(self.d, y)
        self.subdomain.exchange(y)
        return y

    def compute_error(self, x, f, mu=1):
        """
        Compute the norm of a right-hand side and of the residual of a solution.

        The contributions of the degrees of freedom are weighted by the partition of
        unity. Penalized rows are ignored, rows imposing a Dirichlet boundary condition
        with a unit diagonal only contribute to the norm of the right-hand side.

        Parameters
        ==========

        x : numpy.ndarray
            Solution vector (length dof, or shape (mu, dof)).

        f : numpy.ndarray
            Right-hand side, same shape as x.

        mu : Int
            Number of right-hand sides.

        Returns
        =======

        storage : numpy.ndarray
            Array of shape (mu, 2) with, for each right-hand side, the norm of f and the
            norm of A x - f.

        """
        tmp = np.empty((mu, self.dof))
        self.GMV(np.reshape(x, (mu, self.dof)), tmp, mu)
        f = np.reshape(f, (mu, self.dof))
        tmp -= f

        penalized, dirichlet = boundary_rows(self.subdomain.A)
        rhs_rows = self.d*~penalized
        res_rows = self.d*~(penalized | dirichlet)
        fs = np.where(np.abs(f) > EPS*PEN, f/PEN, f)

        storage = np.zeros((mu, 2))
        storage[:, 0] = np.sum(rhs_rows*np.abs(fs)**2, axis=1)
        storage[:, 1] = np.sum(res_rows*np.abs(tmp)**2, axis=1)
        self.transport.Allreduce(storage)
        return np.sqrt(storage)

    def view(self):
        gathered_nu = self.transport.allgather(self.nu)
        gathered_excluded = self.transport.allgather(self.excluded)
        if self.transport.rank == 0:
            print('#############################')
            print(f'view of Schwarz')
            print(f'{self.type=}')
            print(f'{self.verbose=}')
            print(f'{gathered_nu=}')
            print(f'{gathered_excluded=}')
            if self.co is not None:
                print(f'global dim V0 = {self.co.dim}')
            else:
                print('no coarse operator')
            print('#############################')

    def destroy(self):
        if self.co is not None:
            self.co.destroy()
            self.co = None
        if hasattr(self.s, 'destroy'):
            self.s.destroy()
        self.subdomain.destroy()

class PCSchwarz(object):
    def __init__(self, schwarz, l2g):
        """
        Python context to use a Schwarz preconditioner in a PETSc KSP.

        Parameters
        ==========

        schwarz : Schwarz
            The preconditioner, already set up.

        l2g : array of int
            Global indices of the local degrees of freedom.

        """
        self.schwarz = schwarz
        self.l2g = np.asarray(l2g, dtype=PETSc.IntType)
        self.scatter_l2g = None

    def setUp(self, pc):
        pass

    def create_scatter(self, x):
        self.works = PETSc.Vec().createSeq(self.schwarz.dof, comm=PETSc.COMM_SELF)
        is_A = PETSc.IS().createGeneral(self.l2g, comm=PETSc.COMM_SELF)
        self.scatter_l2g = PETSc.Scatter().create(self.works, None, x, is_A)

    def apply(self, pc, x, y):
        """
        Applies the Schwarz preconditioner to a global vector.

        Parameters
        ==========

        pc: This argument is not called within the function but it belongs to the standard way of calling a preconditioner.

        x : petsc.Vec
            The vector to which the preconditioner is to be applied.

        y : petsc.Vec
            The vector that stores the result of the preconditioning operation.

        """
        if self.scatter_l2g is None:
            self.create_scatter(x)
        self.scatter_l2g(x, self.works, PETSc.InsertMode.INSERT_VALUES, PETSc.ScatterMode.SCATTER_REVERSE)
        out = np.zeros(self.schwarz.dof)
        self.schwarz.apply(self.works.array.copy(), out)
        diag(self.schwarz.d, out)
        self.works.array[:] = out

        y.set(0.)
        self.scatter_l2g(self.works, y, PETSc.InsertMode.ADD_VALUES)
