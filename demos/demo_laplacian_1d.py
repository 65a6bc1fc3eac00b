# Authors:
#     Loic Gouarin <loic.gouarin@cmap.polytechnique.fr>
#     Nicole Spillane <nicole.spillane@cmap.polytechnique.fr>
#
# License: BSD 3 clause
import sys, petsc4py
petsc4py.init(sys.argv)
import mpi4py.MPI as mpi
from petsc4py import PETSc
import numpy as np
import scipy.sparse as sps
from SchwarzPC import *

OptDB = PETSc.Options()
n_local = OptDB.getInt('n_local', 50)
overlap = OptDB.getInt('overlap', 2)
geneo = OptDB.getBool('geneo', True)
nu = OptDB.getInt('geneo_nu', 2)

rank, size = mpi.COMM_WORLD.rank, mpi.COMM_WORLD.size
if overlap < 2 or n_local <= 2*overlap:
    raise ValueError('the overlap must be at least 2 and n_local larger than twice the overlap')

# subdomain i holds the unknowns [i*step, i*step + n_local)
step = n_local - overlap
n = size*step + overlap
l2g = np.arange(rank*step, rank*step + n_local, dtype=PETSc.IntType)

neighbors = []
if rank > 0:
    neighbors.append((rank - 1, np.arange(overlap)))
if rank < size - 1:
    neighbors.append((rank + 1, np.arange(n_local - overlap, n_local)))

# global matrix
A = PETSc.Mat().createAIJ([n, n], comm=PETSc.COMM_WORLD)
A.setPreallocationNNZ(3)
rstart, rend = A.getOwnershipRange()
for i in range(rstart, rend):
    cols = [j for j in (i - 1, i, i + 1) if 0 <= j < n]
    A.setValues(i, cols, [2. if j == i else -1. for j in cols])
A.assemble()

# local matrix: restriction of the global one to the subdomain
A_local = sps.diags([-np.ones(n_local - 1), 2*np.ones(n_local), -np.ones(n_local - 1)], [-1, 0, 1], format='csr')

schwarz = Schwarz(Subdomain(A_local, neighbors))
schwarz.callNumfact()
# the rows of the outermost overlap unknowns are truncated, they get a zero weight
d = np.ones(n_local)
if rank > 0:
    d[0] = 0.
if rank < size - 1:
    d[-1] = 0.
schwarz.multiplicity_scaling(d)
if geneo:
    schwarz.solve_GEVP(A_local, nu=nu)
    schwarz.buildTwo()

ksp = PETSc.KSP().create()
ksp.setOperators(A)
ksp.setType('gmres')
pc = ksp.getPC()
pc.setType('python')
ctx = PCSchwarz(schwarz, l2g)
pc.setPythonContext(ctx)
ksp.setFromOptions()

b, x = A.createVecs()
b.set(1.)
ksp.solve(b, x)
PETSc.Sys.Print('KSP converged in {} iterations (reason {})'.format(ksp.getIterationNumber(), ksp.getConvergedReason()))

x_local = PETSc.Vec().createSeq(n_local, comm=PETSc.COMM_SELF)
ctx.scatter_l2g(x, x_local, PETSc.InsertMode.INSERT_VALUES, PETSc.ScatterMode.SCATTER_REVERSE)
norms = schwarz.compute_error(x_local.array, np.ones(n_local))
PETSc.Sys.Print('||f|| = {}, ||A x - f|| = {}'.format(*norms[0]))

schwarz.view()
schwarz.destroy()
