# Authors:
#     Loic Gouarin <loic.gouarin@cmap.polytechnique.fr>
#     Nicole Spillane <nicole.spillane@cmap.polytechnique.fr>
#
# License: BSD 3 clause
from .transport import MPITransport
import numpy as np
import scipy.sparse as sps

class Subdomain(object):
    def __init__(self, A, neighbors, transport=None):
        """
        Local description of a subdomain: its matrix and its overlap with the neighboring subdomains.

        Parameters
        ==========

        A : scipy.sparse matrix
            The local matrix (dof x dof). It is stored in CSR format.

        neighbors : list of (int, array of int)
            For each neighboring process, its rank and the local indices of the
            degrees of freedom shared with it. The order of the indices must match
            the order used by the neighbor for the same degrees of freedom.

        transport : MPITransport
            Point-to-point and collective primitives. Default is MPITransport on COMM_WORLD.

        """
        if transport is None:
            transport = MPITransport()
        A = sps.csr_matrix(A)

        self.A = A
        self.dof = A.shape[0]
        self.transport = transport
        self.map = [(int(rank), np.asarray(indices, dtype=np.intp)) for rank, indices in neighbors]
        # buffers are sized once from the neighbor map
        self.sbuff = [np.empty(indices.size) for _, indices in self.map]
        self.rbuff = [np.empty(indices.size) for _, indices in self.map]

    @classmethod
    def empty(cls, transport=None):
        """
        Subdomain of an excluded process: no degree of freedom and no neighbor.
        """
        return cls(sps.csr_matrix((0, 0)), [], transport)

    def exchange(self, x):
        """
        Sum the values of the shared degrees of freedom with the neighboring subdomains.

        Parameters
        ==========

        x : numpy.ndarray
            Vector of length dof or array of shape (mu, dof). It is modified in place.

        """
        if x.ndim == 2:
            for xi in x:
                self.exchange(xi)
            return x
        n = len(self.map)
        if n == 0:
            return x
        transport = self.transport
        rq = [None]*(2*n)
        for i, (rank, indices) in enumerate(self.map):
            rq[i] = transport.Irecv(self.rbuff[i], rank, 0)
            np.take(x, indices, out=self.sbuff[i])
            rq[n + i] = transport.Isend(self.sbuff[i], rank, 0)
        for _ in range(n):
            index = transport.Waitany(rq[:n])
            x[self.map[index][1]] += self.rbuff[index]
        transport.Waitall(rq[n:])
        return x

    def overlap(self):
        """
        Return a boolean mask of the degrees of freedom shared with at least one neighbor.
        """
        mask = np.zeros(self.dof, dtype=bool)
        for _, indices in self.map:
            mask[indices] = True
        return mask

    def destroy(self):
        self.sbuff = []
        self.rbuff = []
        self.map = []
