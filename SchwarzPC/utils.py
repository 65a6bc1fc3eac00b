# Authors:
#     Loic Gouarin <loic.gouarin@cmap.polytechnique.fr>
#     Nicole Spillane <nicole.spillane@cmap.polytechnique.fr>
#
# License: BSD 3 clause
from petsc4py import PETSc
import numpy as np
import scipy.sparse as sps

# threshold under which a value is considered to be zero
EPS = 1e-12
# penalization used to impose Dirichlet boundary conditions
PEN = 1e+30

def diag(d, x, out=None):
    """
    Apply the diagonal scaling d to one or several vectors.

    Parameters
    ==========

    d : numpy.ndarray
        The partition of unity (length dof).

    x : numpy.ndarray
        Vector of length dof or array of shape (mu, dof).

    out : numpy.ndarray
        Where to store the result. If None, x is scaled in place.

    """
    if out is None:
        out = x
    np.multiply(x, d, out=out)
    return out

def same_sparsity(A, B):
    """
    Return True if A and B share the same nonzero pattern. A and B are CSR matrices
    or (indptr, indices) tuples.
    """
    if A is None or B is None:
        return False
    ia, ja = A if isinstance(A, tuple) else (A.indptr, A.indices)
    ib, jb = B if isinstance(B, tuple) else (B.indptr, B.indices)
    return np.array_equal(ia, ib) and np.array_equal(ja, jb)

def buildPETScMat(A, pattern=None):
    """
    Construct a sequential PETSc matrix from a scipy sparse matrix.

    Parameters
    ==========

    A : scipy.sparse matrix
        The local matrix.

    pattern : tuple
        (indptr, indices) already converted to PETSc.IntType. When given, they are
        reused instead of converting the ones of A.

    Returns
    =======

    M: petsc.Mat
        The assembled matrix on PETSc.COMM_SELF.

    """
    A = sps.csr_matrix(A)
    A.sort_indices()
    if pattern is None:
        pattern = csr_pattern(A)
    indptr, indices = pattern
    M = PETSc.Mat().createAIJ(size=A.shape,
                              csr=(indptr, indices, A.data.astype(PETSc.ScalarType)),
                              comm=PETSc.COMM_SELF)
    M.assemble()
    return M

def csr_pattern(A):
    return A.indptr.astype(PETSc.IntType), A.indices.astype(PETSc.IntType)
