# Authors:
#     Loic Gouarin <loic.gouarin@cmap.polytechnique.fr>
#     Nicole Spillane <nicole.spillane@cmap.polytechnique.fr>
#
# License: BSD 3 clause
from .utils import EPS, PEN, diag, same_sparsity
from .transport import MPITransport
from .subdomain import Subdomain
from .scaling import multiplicity_scaling
from .modes import Prcndtnr, select_mode
from .solvers import LocalSolver
from .eigensolver import SLEPcGEVP
from .coarse import CoarseOperator, CoarseRequest
from .precond import Schwarz, PCSchwarz, boundary_rows
