"""The main loop of the worker ranks.

The workers are set up to call :func:`worker_main`, which waits for the master to broadcast the
next command and executes the corresponding handler, until the master broadcasts
:class:`~pdmrg.mpi_parallel.commands.ProgramFinal`. The commands are checked against the state
machine of the protocol::

    ProgramStart -> (InitGrowEnvGrow)* -> InitGrowEnvFinish
        -> (Lanczos -> MatVecDynamic -> (MatVecStatic)* -> LanczosFinish -> SVD
            -> GrowLeftEnv | GrowRightEnv)*
        -> ProgramFinal

Any deviation raises a :class:`~pdmrg.mpi_parallel.commands.ProtocolViolation`, which
is fatal.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import logging
logger = logging.getLogger(__name__)

from ..algorithms.effective_h import (block_site_op, site_block_op, task_matvec, grow_left_op,
                                      grow_right_op)
from ..linalg.truncation import svd_block
from .commands import (expect, ProgramStart, ProgramFinal, Lanczos, MatVecDynamic, MatVecStatic,
                       LanczosFinish, SVD, GrowLeftEnv, GrowRightEnv, InitGrowEnvGrow,
                       InitGrowEnvFinish)
from .helpers import serve_tasks, send_result, fatal

__all__ = ['WorkerState', 'worker_main', 'receive_command']


def receive_command(comm):
    """Wait for the next command broadcast by the master."""
    return comm.bcast(None, root=0)


class WorkerState:
    """Data local to a worker rank during one DMRG run.

    Parameters
    ----------
    comm : :class:`mpi4py.MPI.Comm`
        The communicator.
    H_MPO : :class:`~pdmrg.networks.mpo.MatReprMPO`
        Local copy of the Hamiltonian.

    Attributes
    ----------
    comm : :class:`mpi4py.MPI.Comm`
        The communicator.
    H_MPO : :class:`~pdmrg.networks.mpo.MatReprMPO`
        Local copy of the Hamiltonian.
    l : int | None
        Left site of the current bond.
    ops : dict
        Maps the ids of the tasks computed by this rank at the current bond to
        ``(block_site_op, site_block_op)``.
    """
    def __init__(self, comm, H_MPO):
        self.comm = comm
        self.H_MPO = H_MPO
        self.l = None
        self.W_l = None
        self.W_r = None
        self.ops = {}

    def init_grow(self, cmd):
        W = self.H_MPO.get_W(cmd.site)
        B = cmd.B

        def compute(task_id, task):
            return grow_right_op(site_block_op(task, W), B)

        serve_tasks(self.comm, cmd.num_tasks, compute)

    def start_bond(self, cmd):
        self.l = cmd.l_site
        self.W_l = self.H_MPO.get_W(self.l)
        self.W_r = self.H_MPO.get_W(self.l + 1)
        self.ops = {}

    def matvec_dynamic(self, cmd):
        self.ops = {}  # invalidate the cache of the previous bond
        theta = cmd.theta

        def compute(task_id, task):
            O_L = block_site_op(task, self.W_l)
            O_R = site_block_op(task, self.W_r)
            self.ops[task_id] = (O_L, O_R)
            return task_matvec(O_L, O_R, theta)

        serve_tasks(self.comm, cmd.num_tasks, compute)

    def matvec_static(self, cmd):
        theta = cmd.theta
        for task_id in sorted(self.ops):
            O_L, O_R = self.ops[task_id]
            send_result(self.comm, task_id, task_matvec(O_L, O_R, theta))

    def svd(self, cmd):
        serve_tasks(self.comm, cmd.num_tasks, lambda task_id, block: svd_block(block))

    def grow_left(self, cmd):
        for task_id in sorted(self.ops):
            O_L, _ = self.ops[task_id]
            send_result(self.comm, task_id, grow_left_op(O_L, cmd.A))
        self.ops = {}

    def grow_right(self, cmd):
        for task_id in sorted(self.ops):
            _, O_R = self.ops[task_id]
            send_result(self.comm, task_id, grow_right_op(O_R, cmd.B))
        self.ops = {}

    def run_bond(self, cmd):
        """Handle the commands of one bond update, starting with the given `Lanczos` command."""
        comm = self.comm
        self.start_bond(cmd)
        self.matvec_dynamic(expect(receive_command(comm), MatVecDynamic))
        while True:
            cmd = expect(receive_command(comm), MatVecStatic, LanczosFinish)
            if isinstance(cmd, LanczosFinish):
                break
            self.matvec_static(cmd)
        self.svd(expect(receive_command(comm), SVD))
        cmd = expect(receive_command(comm), GrowLeftEnv, GrowRightEnv)
        if isinstance(cmd, GrowLeftEnv):
            self.grow_left(cmd)
        else:
            self.grow_right(cmd)


def run_worker(comm):
    """Serve a single DMRG run, from `ProgramStart` to `ProgramFinal`.

    Raises
    ------
    ProtocolViolation
        If the master sends commands in an unexpected order.
    """
    cmd = expect(receive_command(comm), ProgramStart)
    comm.gather(comm.rank, root=0)
    state = WorkerState(comm, cmd.H_MPO)
    while True:
        cmd = expect(receive_command(comm), InitGrowEnvGrow, InitGrowEnvFinish)
        if isinstance(cmd, InitGrowEnvFinish):
            break
        state.init_grow(cmd)
    while True:
        cmd = expect(receive_command(comm), Lanczos, ProgramFinal)
        if isinstance(cmd, ProgramFinal):
            return
        state.run_bond(cmd)


def worker_main(comm):
    """The main function for worker ranks ``1, ..., P-1``: serve one DMRG run.

    A :class:`~pdmrg.mpi_parallel.commands.ProtocolViolation` or any other exception aborts
    all processes with :func:`~pdmrg.mpi_parallel.helpers.fatal`.
    """
    if comm.rank == 0:
        raise ValueError("rank 0 is the master, not a worker")
    try:
        run_worker(comm)
    except Exception as exc:
        fatal(comm, exc)
        raise
