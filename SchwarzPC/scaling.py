# Authors:
#     Loic Gouarin <loic.gouarin@cmap.polytechnique.fr>
#     Nicole Spillane <nicole.spillane@cmap.polytechnique.fr>
#
# License: BSD 3 clause
from .utils import EPS
import numpy as np

def multiplicity_scaling(subdomain, d=None):
    """
    Compute the partition of unity of a subdomain.

    Each subdomain sends the current weights of its shared degrees of freedom to
    its neighbors. The weights are then reset to 1 and refined with the values
    received: for a shared index, w <- w / (1 + w*recv/sent). With initial weights
    equal to 1, this gives the inverse of the multiplicity of each degree of freedom.
    A weight sent as 0 (or nearly) forces a final weight of 0 on that index.

    Parameters
    ==========

    subdomain : Subdomain
        The local subdomain with its neighbor map and its communication buffers.

    d : numpy.ndarray
        Initial weights (length dof), modified in place. Default is a vector of ones.

    Returns
    =======

    d : numpy.ndarray
        The partition of unity.

    """
    if d is None:
        d = np.ones(subdomain.dof)
    transport = subdomain.transport
    n = len(subdomain.map)
    rq = [None]*(2*n)
    for i, (rank, indices) in enumerate(subdomain.map):
        rq[i] = transport.Irecv(subdomain.rbuff[i], rank, 0)
        np.take(d, indices, out=subdomain.sbuff[i])
        rq[n + i] = transport.Isend(subdomain.sbuff[i], rank, 0)

    d.fill(1.)
    for _ in range(n):
        index = transport.Waitany(rq[:n])
        indices = subdomain.map[index][1]
        recv = subdomain.rbuff[index]
        send = subdomain.sbuff[index]
        for j, k in enumerate(indices):
            if abs(send[j]) < EPS:
                d[k] = 0.
            else:
                d[k] /= 1. + d[k]*recv[j]/send[j]
    transport.Waitall(rq[n:])
    return d
