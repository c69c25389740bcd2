"""MPI-parallel version of the two-site DMRG.

The :class:`ParallelTwoSiteDMRGEngine` runs on rank 0 and performs exactly the same sweep as
the serial :class:`~pdmrg.algorithms.dmrg.TwoSiteDMRGEngine`; it only overrides the hooks
:meth:`~ParallelTwoSiteDMRGEngine.make_eff_H`, :meth:`~ParallelTwoSiteDMRGEngine.split_theta`
and :meth:`~ParallelTwoSiteDMRGEngine.init_grow_right` to hand the contractions to the workers.
Since the workers use the same per-task functions as the serial code and the master sums the
results in ascending task order, the energies and states are bitwise identical to a serial run,
independent of the number of workers.

A typical script looks like this::

    from mpi4py import MPI
    from pdmrg.mpi_parallel.dmrg import run
    from pdmrg.mpi_parallel.worker import worker_main

    comm = MPI.COMM_WORLD
    if comm.rank == 0:
        info = run(psi, model, dmrg_params, comm)
    else:
        worker_main(comm)
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import logging
logger = logging.getLogger(__name__)

from ..algorithms.dmrg import TwoSiteDMRGEngine
from ..algorithms.effective_h import build_tasks, build_init_tasks, sum_task_results
from ..linalg.sparse import LinearOperator
from ..linalg.truncation import find_theta_blocks, combine_block_svds
from .commands import (ProgramStart, ProgramFinal, Lanczos, MatVecDynamic, MatVecStatic,
                       LanczosFinish, SVD, GrowLeftEnv, GrowRightEnv, InitGrowEnvGrow,
                       InitGrowEnvFinish)
from .helpers import distribute_tasks, collect_results, fatal

__all__ = ['run', 'DistributedTwoSiteH', 'ParallelTwoSiteDMRGEngine']


def run(psi, model, options, comm):
    """Run the MPI-parallel DMRG on rank 0; other ranks need to call
    :func:`~pdmrg.mpi_parallel.worker.worker_main` at the same time.

    Returns
    -------
    info : dict
        A dictionary with keys ``'E', 'bond_statistics', 'sweep_statistics'``
    """
    engine = ParallelTwoSiteDMRGEngine(psi, model, options, comm=comm)
    E, _ = engine.run()
    return {
        'E': E,
        'bond_statistics': engine.update_stats,
        'sweep_statistics': engine.sweep_stats,
    }


class DistributedTwoSiteH(LinearOperator):
    """The two-site effective Hamiltonian at the bond ``(l, l+1)``, evaluated by the workers.

    The constructor broadcasts :class:`~pdmrg.mpi_parallel.commands.Lanczos`.
    The first :meth:`matvec` sends the term-group tasks to the workers, which keep the
    block-site and site-block operators built from them; further calls only broadcast the
    new vector. :meth:`grow_left` and :meth:`grow_right` reuse the operators on the workers.

    Parameters
    ----------
    comm : :class:`mpi4py.MPI.Comm`
        The communicator, this is rank 0.
    H_MPO : :class:`~pdmrg.networks.mpo.MatReprMPO`
        The Hamiltonian.
    l : int
        Left site of the bond.
    left_group, right_group : list of {None | 2D ndarray}
        The left group of block length `l` and the right group of block length ``L-2-l``.
    theta_shape : tuple of int
        Shape ``(vL, p0, p1, vR)`` of the two-site wave function.
    dtype : np.dtype
        Data type of the wave function.

    Attributes
    ----------
    tasks : list of :class:`~pdmrg.algorithms.effective_h.TermGroupTask` | None
        The tasks, until they are sent to the workers with the first :meth:`matvec`.
    num_tasks : int
        The number of tasks.
    owner : list of int | None
        For each task id the rank holding its operators, known after the first :meth:`matvec`.
    """
    def __init__(self, comm, H_MPO, l, left_group, right_group, theta_shape, dtype=np.float64):
        super().__init__(theta_shape, dtype)
        self.comm = comm
        self.l = l
        self.tasks = build_tasks(left_group, H_MPO.get_W(l), H_MPO.get_W(l + 1), right_group)
        self.num_tasks = len(self.tasks)
        self.owner = None
        comm.bcast(Lanczos(l), root=0)

    def matvec(self, theta):
        comm = self.comm
        if self.owner is None:
            comm.bcast(MatVecDynamic(self.num_tasks, theta), root=0)
            results, self.owner = distribute_tasks(comm, self.tasks)
            self.tasks = None  # now held by the workers
        else:
            comm.bcast(MatVecStatic(theta), root=0)
            results = collect_results(comm, self.owner)
        return sum_task_results(results, theta)

    def finish(self):
        """Tell the workers that the eigensolver is done."""
        self.comm.bcast(LanczosFinish(), root=0)

    def grow_left(self, A):
        """Left group of block length ``l+1``, given the new left-canonical `A` of site `l`."""
        self._check_owner()
        self.comm.bcast(GrowLeftEnv(A), root=0)
        return collect_results(self.comm, self.owner)

    def grow_right(self, B):
        """Right group of block length ``L-1-l``, given the new right-canonical `B` of site l+1."""
        self._check_owner()
        self.comm.bcast(GrowRightEnv(B), root=0)
        return collect_results(self.comm, self.owner)

    def _check_owner(self):
        if self.owner is None:
            raise ValueError("no matvec was done, the workers don't hold any operators")


class ParallelTwoSiteDMRGEngine(TwoSiteDMRGEngine):
    """Two-site DMRG with the contractions distributed over MPI processes.

    Parameters
    ----------
    psi, model, options :
        As for :class:`~pdmrg.algorithms.dmrg.TwoSiteDMRGEngine`.
    comm : :class:`mpi4py.MPI.Comm` | None
        The communicator. ``None`` or a communicator with a single rank gives a serial run.

    Attributes
    ----------
    comm : :class:`mpi4py.MPI.Comm` | None
        The communicator, ``None`` for a serial run.
    """
    def __init__(self, psi, model, options, *, comm=None):
        if comm is not None and comm.size == 1:
            comm = None
        if comm is not None and comm.rank != 0:
            raise ValueError("the engine runs on rank 0, other ranks call `worker_main`")
        self.comm = comm
        super().__init__(psi, model, options)

    def run(self):
        comm = self.comm
        if comm is None:
            logger.info("no workers available: run serial")
            return super().run()
        comm.bcast(ProgramStart(self.H_MPO), root=0)
        ranks = comm.gather(comm.rank, root=0)
        logger.info("MPI ranks %r reporting for duty", ranks[1:])
        try:
            res = super().run()
        except Exception as exc:
            # the workers can't be resynchronized
            fatal(comm, exc)
            raise
        comm.bcast(ProgramFinal(), root=0)
        return res

    def init_env(self):
        super().init_env()
        if self.comm is not None:
            self.comm.bcast(InitGrowEnvFinish(), root=0)

    def make_eff_H(self, l, left_group, right_group, theta):
        if self.comm is None:
            return super().make_eff_H(l, left_group, right_group, theta)
        return DistributedTwoSiteH(self.comm, self.H_MPO, l, left_group, right_group, theta.shape,
                                   theta.dtype)

    def split_theta(self, theta):
        if self.comm is None:
            return super().split_theta(theta)
        blocks = find_theta_blocks(theta)
        self.comm.bcast(SVD(len(blocks)), root=0)
        payloads = [theta[np.ix_(rows, cols)] for rows, cols in blocks]
        block_svds, _ = distribute_tasks(self.comm, payloads)
        return combine_block_svds(theta.shape, blocks, block_svds, self.trunc_params)

    def init_grow_right(self, site, B, right_group):
        if self.comm is None:
            return super().init_grow_right(site, B, right_group)
        tasks = build_init_tasks(self.H_MPO.get_W(site), right_group)
        self.comm.bcast(InitGrowEnvGrow(site, len(tasks), B), root=0)
        new_group, _ = distribute_tasks(self.comm, tasks)
        return new_group
