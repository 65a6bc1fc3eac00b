# Authors:
#     Loic Gouarin <loic.gouarin@cmap.polytechnique.fr>
#     Nicole Spillane <nicole.spillane@cmap.polytechnique.fr>
#
# License: BSD 3 clause
import mpi4py.MPI as mpi

class MPITransport(object):
    def __init__(self, comm=mpi.COMM_WORLD):
        """
        Message passing primitives used by the subdomains and the coarse operator.

        Parameters
        ==========

        comm : mpi4py.MPI.Comm
            The communicator gathering all the processes (subdomains and excluded processes).

        """
        self.comm = comm
        self.rank = comm.rank
        self.size = comm.size

    def Irecv(self, buf, source, tag=0):
        return self.comm.Irecv([buf, mpi.DOUBLE], source=source, tag=tag)

    def Isend(self, buf, dest, tag=0):
        return self.comm.Isend([buf, mpi.DOUBLE], dest=dest, tag=tag)

    def Waitany(self, requests):
        return mpi.Request.Waitany(requests)

    def Waitall(self, requests):
        mpi.Request.Waitall(requests)

    def Allreduce(self, array):
        """
        In place sum of array over all the processes.
        """
        if array.size:
            self.comm.Allreduce(mpi.IN_PLACE, [array, mpi.DOUBLE], op=mpi.SUM)
        else:
            self.comm.Barrier()
        return array

    def Iallreduce(self, array):
        """
        Non-blocking in place sum of array over all the processes.

        Returns
        =======

        rq : mpi4py.MPI.Request
            The request to wait for before reading array.

        """
        if not array.size:
            return self.comm.Ibarrier()
        return self.comm.Iallreduce(mpi.IN_PLACE, [array, mpi.DOUBLE], op=mpi.SUM)

    def allgather(self, obj):
        return self.comm.allgather(obj)
