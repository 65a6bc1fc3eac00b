# Authors:
#     Loic Gouarin <loic.gouarin@cmap.polytechnique.fr>
#     Nicole Spillane <nicole.spillane@cmap.polytechnique.fr>
#
# License: BSD 3 clause
from petsc4py import PETSc
from enum import Enum

class Prcndtnr(Enum):
    """
    Schwarz method used as a preconditioner.

    NO : no preconditioner.
    SY : symmetric preconditioner, e.g. Additive Schwarz method.
    GE : nonsymmetric preconditioner, e.g. Restricted Additive Schwarz method.
    OS : optimized symmetric preconditioner, e.g. Optimized Schwarz method.
    OG : optimized nonsymmetric preconditioner, e.g. Optimized Restricted Additive Schwarz method.
    AD : additive two-level method, the coarse correction is not exchanged.
    BA : balanced method.
    """
    NO = 'none'
    SY = 'symmetric'
    GE = 'general'
    OS = 'optimized_symmetric'
    OG = 'optimized_general'
    AD = 'additive'
    BA = 'balanced'

def select_mode(A=None):
    """
    Choose the Schwarz method from the options database.

    Parameters
    ==========

    A : scipy.sparse matrix
        Matrix supplied by the user to replace the local matrix in the local
        solves (e.g. with optimized transmission conditions). Default is None.

    PETSc.Options
    =============

    schwarz_method : Int
        Default is 0.
        With a user supplied matrix, 1 selects the optimized symmetric method, any
        other value the optimized nonsymmetric one.
        Without a user supplied matrix, 3 selects the symmetric method, 5 no
        preconditioner, and any other value the nonsymmetric (restricted) method, in
        which case the option is reset to 0.

    Returns
    =======

    mode : Prcndtnr

    """
    OptDB = PETSc.Options()
    method = OptDB.getInt('schwarz_method', 0)
    if A is not None:
        if method == 1:
            return Prcndtnr.OS
        return Prcndtnr.OG
    if method == 3:
        return Prcndtnr.SY
    if method == 5:
        return Prcndtnr.NO
    OptDB.setValue('schwarz_method', 0)
    return Prcndtnr.GE
