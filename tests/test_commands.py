"""Tests for the command protocol between master and workers, without an actual MPI run."""
# Copyright (C) TeNPy Developers, GNU GPLv3

import pickle
from collections import defaultdict

import numpy as np
import pytest

from pdmrg.algorithms import effective_h
from pdmrg.linalg.truncation import svd_block
from pdmrg.models import XXZChain
from pdmrg.mpi_parallel import commands
from pdmrg.mpi_parallel.commands import (Order, ProtocolViolation, expect, ProgramStart,
                                         ProgramFinal, Lanczos, MatVecDynamic, MatVecStatic,
                                         LanczosFinish, SVD, GrowLeftEnv, GrowRightEnv,
                                         InitGrowEnvGrow, InitGrowEnvFinish)


def test_order():
    orders = [cmd.order for cmd in commands.ALL_COMMANDS]
    assert orders == sorted(orders)
    assert orders == list(Order)
    assert Order.PROGRAM_START < Order.LANCZOS < Order.SVD < Order.PROGRAM_FINAL
    assert Lanczos(3).order == Order.LANCZOS
    assert MatVecDynamic.order == Order.MATVEC_DYNAMIC


def test_commands_are_records(np_random):
    theta = np_random.normal(size=(2, 2, 2, 2))
    cmd = MatVecDynamic(5, theta)
    assert cmd.num_tasks == 5
    assert cmd.theta is theta
    with pytest.raises(AttributeError):
        cmd.num_tasks = 3
    cmd2 = pickle.loads(pickle.dumps(cmd))
    assert type(cmd2) is MatVecDynamic
    assert cmd2.num_tasks == 5
    np.testing.assert_array_equal(cmd2.theta, theta)
    assert pickle.loads(pickle.dumps(LanczosFinish())) == LanczosFinish()
    assert "l_site=4" in repr(Lanczos(4))


def test_expect():
    cmd = SVD(2)
    assert expect(cmd, SVD) is cmd
    assert expect(cmd, GrowLeftEnv, SVD) is cmd
    with pytest.raises(ProtocolViolation) as excinfo:
        expect(cmd, GrowLeftEnv, GrowRightEnv)
    assert "GrowLeftEnv, GrowRightEnv" in str(excinfo.value)
    with pytest.raises(ProtocolViolation):
        expect(None, ProgramStart)


class FakeComm:
    """Mimics the lower-case (pickle based) interface of an mpi4py communicator for one worker.

    `commands` are returned by successive `bcast` calls, `messages` maps ``(source, tag)`` to a
    list of messages returned by successive `recv` calls.
    """
    def __init__(self, commands, messages=None, rank=1, size=2):
        self.commands = list(commands)
        self.messages = defaultdict(list)
        if messages is not None:
            for key, msgs in messages.items():
                self.messages[key].extend(msgs)
        self.rank = rank
        self.size = size
        self.sent = []
        self.gathered = []
        self.aborted = None

    def bcast(self, obj, root=0):
        return self.commands.pop(0)

    def gather(self, obj, root=0):
        self.gathered.append(obj)

    def send(self, obj, dest, tag):
        self.sent.append((dest, tag, obj))

    def recv(self, source, tag, status=None):
        return self.messages[(source, tag)].pop(0)

    def Abort(self, errorcode=0):
        self.aborted = errorcode


@pytest.fixture
def worker():
    return pytest.importorskip('pdmrg.mpi_parallel.worker', reason="requires mpi4py")


def test_worker_empty_run(worker):
    H = XXZChain({'L': 4}).H_MPO
    comm = FakeComm([ProgramStart(H), InitGrowEnvFinish(), ProgramFinal()])
    worker.run_worker(comm)
    assert comm.gathered == [1]
    assert comm.commands == []
    assert comm.sent == []


@pytest.mark.parametrize('script', [
    [Lanczos(0)],
    [ProgramStart(None), Lanczos(0)],
    [ProgramStart(None), InitGrowEnvFinish(), ProgramStart(None)],
    [ProgramStart(None), InitGrowEnvFinish(), Lanczos(0), MatVecStatic(np.zeros(16))],
    [ProgramStart(None), InitGrowEnvFinish(), Lanczos(0), LanczosFinish()],
])
def test_worker_protocol_violation(worker, script):
    H = XXZChain({'L': 4}).H_MPO
    script = [ProgramStart(H) if isinstance(cmd, ProgramStart) else cmd for cmd in script]
    with pytest.raises(ProtocolViolation):
        worker.run_worker(FakeComm(script))


def test_worker_main_aborts(worker):
    comm = FakeComm([SVD(0)])
    with pytest.raises(ProtocolViolation):
        worker.worker_main(comm)
    assert comm.aborted == 1
    with pytest.raises(ValueError):
        worker.worker_main(FakeComm([], rank=0))


def test_worker_bond_update(worker, np_random):
    """One bond update with a worker owning task 0 under the static policy."""
    from pdmrg.mpi_parallel.helpers import TAG_WORK
    L, l = 5, 1
    H = XXZChain({'L': L, 'hz': 0.2}).H_MPO
    W_l, W_r = H.get_W(l), H.get_W(l + 1)
    chi = 3
    left_group = [np_random.normal(size=(chi, chi)) for _ in range(W_l.rows)]
    right_group = [np_random.normal(size=(chi, chi)) for _ in range(W_r.cols)]
    tasks = effective_h.build_tasks(left_group, W_l, W_r, right_group)
    num_tasks = len(tasks)
    theta1 = np_random.normal(size=(chi, 2, 2, chi))
    theta2 = np_random.normal(size=(chi, 2, 2, chi))
    block = np_random.normal(size=(4, 3))
    A = np_random.normal(size=(chi, 2, 4))
    script = [
        ProgramStart(H),
        InitGrowEnvFinish(),
        Lanczos(l),
        MatVecDynamic(num_tasks, theta1),
        MatVecStatic(theta2),
        LanczosFinish(),
        SVD(1),
        GrowLeftEnv(A),
        ProgramFinal(),
    ]
    messages = {(0, TAG_WORK): [(0, tasks[0]), (0, block)]}
    comm = FakeComm(script, messages, rank=1, size=num_tasks + 1)
    worker.run_worker(comm)
    O_L = effective_h.block_site_op(tasks[0], W_l)
    O_R = effective_h.site_block_op(tasks[0], W_r)
    expected = [
        effective_h.task_matvec(O_L, O_R, theta1),
        effective_h.task_matvec(O_L, O_R, theta2),
        svd_block(block),
        effective_h.grow_left_op(O_L, A),
    ]
    assert len(comm.sent) == len(expected)
    for (dest, tag, (task_id, result)), res in zip(comm.sent, expected):
        assert dest == 0
        assert tag == task_id == 0
        if isinstance(res, tuple):
            for a, b in zip(result, res):
                np.testing.assert_array_equal(a, b)
        else:
            np.testing.assert_array_equal(result, res)


def test_worker_init_grow_and_idle(worker, np_random):
    """A worker without tasks in a round stays silent, but keeps following the protocol."""
    from pdmrg.mpi_parallel.helpers import TAG_WORK
    H = XXZChain({'L': 4, 'hz': 0.3}).H_MPO
    B = np_random.normal(size=(2, 2, 1))
    right_group = [np.ones((1, 1))]
    tasks = effective_h.build_init_tasks(H.get_W(3), right_group)
    script = [
        ProgramStart(H),
        InitGrowEnvGrow(3, len(tasks), B),
        InitGrowEnvFinish(),
        Lanczos(0),
        MatVecDynamic(1, np.zeros((1, 2, 2, 2))),
        LanczosFinish(),
        SVD(1),
        GrowRightEnv(np.zeros((2, 2, 2))),
        ProgramFinal(),
    ]
    # rank 5 of 7: gets the last init task, but nothing at the bond with a single task
    messages = {(0, TAG_WORK): [(4, tasks[4])]}
    comm = FakeComm(script, messages, rank=5, size=7)
    worker.run_worker(comm)
    assert len(comm.sent) == 1
    dest, tag, (task_id, result) = comm.sent[0]
    assert (dest, tag, task_id) == (0, 4, 4)
    expected = effective_h.init_grow_right(H, 3, B, right_group)[4]
    assert expected is not None
    np.testing.assert_array_equal(result, expected)
