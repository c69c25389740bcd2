"""Tests of the master side of the MPI protocol, with all ranks emulated in a single process.

:class:`ThreadComm` mimics the lower-case (pickle based) interface of an mpi4py communicator;
each worker rank runs in a separate thread. Messages are pickled as they would be by MPI, such
that master and workers never share arrays.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import pickle
import queue
import threading

import numpy as np
import pytest

from pdmrg.algorithms import effective_h
from pdmrg.algorithms.dmrg import TwoSiteDMRGEngine
from pdmrg.models import XXZChain, TFIChain
from pdmrg.networks import environment
from pdmrg.networks.mps import FiniteMPS

MPI = pytest.importorskip('mpi4py.MPI', reason="requires mpi4py")
from pdmrg.mpi_parallel import helpers  # noqa: E402
from pdmrg.mpi_parallel.commands import (ProgramStart, ProgramFinal, InitGrowEnvFinish, SVD,
                                         ProtocolViolation)  # noqa: E402
from pdmrg.mpi_parallel.dmrg import DistributedTwoSiteH, ParallelTwoSiteDMRGEngine  # noqa: E402
from pdmrg.mpi_parallel.worker import run_worker  # noqa: E402

TIMEOUT = 60.
TAG_GATHER = 32000


class World:
    """Shared state of all ranks: one mailbox and one broadcast queue per rank."""
    def __init__(self, size):
        self.size = size
        self.cond = threading.Condition()
        self.mailbox = [[] for _ in range(size)]
        self.bcast_queues = [queue.Queue() for _ in range(size)]
        self.aborted = None
        self.comms = [ThreadComm(self, rank) for rank in range(size)]


class ThreadComm:
    def __init__(self, world, rank):
        self.world = world
        self.rank = rank
        self.size = world.size

    def bcast(self, obj, root=0):
        world = self.world
        if self.rank == root:
            data = pickle.dumps(obj)
            for rank in range(self.size):
                if rank != root:
                    world.bcast_queues[rank].put(pickle.loads(data))
            return obj
        return world.bcast_queues[self.rank].get(timeout=TIMEOUT)

    def gather(self, obj, root=0):
        if self.rank != root:
            self.send(obj, dest=root, tag=TAG_GATHER)
            return None
        return [obj if rank == root else self.recv(source=rank, tag=TAG_GATHER)
                for rank in range(self.size)]

    def send(self, obj, dest, tag):
        world = self.world
        with world.cond:
            world.mailbox[dest].append((self.rank, tag, pickle.loads(pickle.dumps(obj))))
            world.cond.notify_all()

    def recv(self, source=MPI.ANY_SOURCE, tag=MPI.ANY_TAG, status=None):
        world = self.world
        box = world.mailbox[self.rank]
        with world.cond:
            while True:
                for i, (msg_source, msg_tag, obj) in enumerate(box):
                    if source not in (MPI.ANY_SOURCE, msg_source):
                        continue
                    if tag not in (MPI.ANY_TAG, msg_tag):
                        continue
                    if msg_tag == TAG_GATHER and tag != TAG_GATHER:
                        continue  # collective, not visible to point-to-point receives
                    del box[i]
                    if status is not None:
                        status.Set_source(msg_source)
                        status.Set_tag(msg_tag)
                    return obj
                if not world.cond.wait(timeout=TIMEOUT):
                    raise RuntimeError(f"rank {self.rank:d}: no message from {source!r} "
                                       f"with tag {tag!r}")

    def Abort(self, errorcode=0):
        self.world.aborted = errorcode


def start_workers(world, target=run_worker):
    """Run ``target(comm)`` on the ranks ``1, ..., size-1``; return threads and their errors."""
    errors = []

    def run(comm):
        try:
            target(comm)
        except Exception as exc:
            errors.append(exc)

    threads = [
        threading.Thread(target=run, args=(comm, ), daemon=True) for comm in world.comms[1:]
    ]
    for thread in threads:
        thread.start()
    return threads, errors


def join_workers(threads, errors):
    for thread in threads:
        thread.join(timeout=TIMEOUT)
        assert not thread.is_alive()
    assert errors == []


@pytest.mark.parametrize('size, num_tasks', [(3, 7), (3, 2), (5, 3), (2, 4), (4, 0)])
def test_distribute_and_collect(size, num_tasks):
    world = World(size)
    served = {}

    def serve(comm):
        task_ids = helpers.serve_tasks(comm, num_tasks, lambda t, payload: payload**2)
        served[comm.rank] = task_ids
        # second round: results are kept on the rank which computed the task
        comm.bcast(None, root=0)
        for t in sorted(task_ids):
            helpers.send_result(comm, t, -t)

    threads, errors = start_workers(world, serve)
    comm = world.comms[0]
    payloads = [np.arange(t + 1.) for t in range(num_tasks)]
    results, owner = helpers.distribute_tasks(comm, payloads)
    assert len(results) == len(owner) == num_tasks
    for t in range(num_tasks):
        np.testing.assert_array_equal(results[t], np.arange(t + 1.)**2)
    if num_tasks <= size - 1:
        assert owner == list(range(1, num_tasks + 1))
    else:
        assert all(1 <= rank < size for rank in owner)
    comm.bcast(None, root=0)
    assert helpers.collect_results(comm, owner) == [-t for t in range(num_tasks)]
    join_workers(threads, errors)
    for rank in range(1, size):
        assert sorted(served[rank]) == [t for t in range(num_tasks) if owner[t] == rank]
    assert world.mailbox == [[] for _ in range(size)]


class ScriptedMasterComm:
    """Rank 0 of a communicator of `size` ranks, receiving the scripted ``(source, tag, obj)``."""
    def __init__(self, script, size=3):
        self.script = list(script)
        self.rank = 0
        self.size = size
        self.sent = []

    def send(self, obj, dest, tag):
        self.sent.append((dest, tag, obj))

    def recv(self, source=MPI.ANY_SOURCE, tag=MPI.ANY_TAG, status=None):
        msg_source, msg_tag, obj = self.script.pop(0)
        if source != MPI.ANY_SOURCE:
            assert (source, tag) == (msg_source, msg_tag)
        if status is not None:
            status.Set_source(msg_source)
            status.Set_tag(msg_tag)
        return obj


def test_pull_queue_messages():
    # task 1 and 2 come back from rank 2 before task 0 from rank 1
    script = [(2, 1, (1, 'b')), (2, 2, (2, 'c')), (1, 0, (0, 'a'))]
    comm = ScriptedMasterComm(script)
    results, owner = helpers.distribute_tasks(comm, ['A', 'B', 'C'])
    assert results == ['a', 'b', 'c']
    assert owner == [1, 2, 2]
    assert comm.sent == [
        (1, helpers.TAG_WORK, (0, 'A')),
        (2, helpers.TAG_WORK, (1, 'B')),
        (2, helpers.TAG_WORK, (2, 'C')),
        (2, helpers.TAG_STOP, None),
        (1, helpers.TAG_STOP, None),
    ]


def test_pull_queue_ascending_sum(np_random):
    L, l, chi = 6, 2, 3
    H = XXZChain({'L': L, 'Jz': 0.7}).H_MPO
    left_group, right_group = random_groups(H, l, chi, np_random)
    theta = np_random.normal(size=(chi, 2, 2, chi))
    serial_H = effective_h.TwoSiteH(H, l, left_group, right_group, theta.shape)
    assert serial_H.num_tasks == 5
    parts = [
        effective_h.task_matvec(O_L, O_R, theta)
        for O_L, O_R in zip(serial_H.block_site_ops, serial_H.site_block_ops)
    ]
    order = [(2, 1), (2, 2), (1, 0), (1, 4), (2, 3)]
    comm = ScriptedMasterComm([(rank, t, (t, parts[t])) for rank, t in order])
    results, owner = helpers.distribute_tasks(comm, serial_H.tasks)
    assert owner == [1, 2, 2, 2, 1]
    assert [(dest, tag) for dest, tag, _ in comm.sent] == [(1, helpers.TAG_WORK),
                                                         (2, helpers.TAG_WORK),
                                                         (2, helpers.TAG_WORK),
                                                         (2, helpers.TAG_WORK),
                                                         (1, helpers.TAG_WORK),
                                                         (1, helpers.TAG_STOP),
                                                         (2, helpers.TAG_STOP)]
    assert [msg[0] for _, tag, msg in comm.sent if tag == helpers.TAG_WORK] == [0, 1, 2, 3, 4]
    np.testing.assert_array_equal(effective_h.sum_task_results(results, theta),
                                  serial_H.matvec(theta))


@pytest.mark.parametrize('script', [
    [(1, 0, (0, 'a')), (2, 5, (1, 'b'))],
    [(2, 1, (0, 'a'))],
    [(1, 7, (7, 'x'))],
    [(1, 0, (0, 'a')), (2, 0, (0, 'a'))],
])
def test_pull_queue_protocol_violation(script):
    comm = ScriptedMasterComm(script)
    with pytest.raises(ProtocolViolation):
        helpers.distribute_tasks(comm, ['A', 'B', 'C'])


def test_collect_results_protocol_violation():
    comm = ScriptedMasterComm([(2, 0, (0, 'a')), (1, 1, (0, 'b'))])
    with pytest.raises(ProtocolViolation):
        helpers.collect_results(comm, [2, 1])
    comm = ScriptedMasterComm([(1, 0, (0, 'a'))], size=1)
    with pytest.raises(ValueError):
        helpers.distribute_tasks(comm, ['A'])


def random_groups(H, l, chi, rng):
    left_group = [rng.normal(size=(chi, chi)) for _ in range(environment.group_length(H, 'l', l))]
    right_len = environment.group_length(H, 'r', H.L - 2 - l)
    right_group = [rng.normal(size=(chi, chi)) for _ in range(right_len)]
    left_group[1] = None
    return left_group, right_group


def assert_groups_equal(group1, group2):
    assert len(group1) == len(group2)
    for op1, op2 in zip(group1, group2):
        if op1 is None:
            assert op2 is None
        else:
            np.testing.assert_array_equal(op1, op2)


@pytest.mark.parametrize('size', [2, 3, 7])
def test_distributed_two_site_h(size, np_random):
    L, l, chi = 6, 2, 3
    H = XXZChain({'L': L, 'Jz': 1.3, 'hz': 0.2}).H_MPO
    left_group, right_group = random_groups(H, l, chi, np_random)
    theta1 = np_random.normal(size=(chi, 2, 2, chi))
    theta2 = np_random.normal(size=(chi, 2, 2, chi))
    A = np_random.normal(size=(chi, 2, 4))
    serial_H = effective_h.TwoSiteH(H, l, left_group, right_group, theta1.shape)

    world = World(size)
    threads, errors = start_workers(world)
    comm = world.comms[0]
    comm.bcast(ProgramStart(H), root=0)
    assert comm.gather(0, root=0) == list(range(size))
    comm.bcast(InitGrowEnvFinish(), root=0)
    eff_H = DistributedTwoSiteH(comm, H, l, left_group, right_group, theta1.shape)
    assert eff_H.num_tasks == serial_H.num_tasks == H.get_W(l).cols
    with pytest.raises(ValueError):
        eff_H.grow_left(A)
    np.testing.assert_array_equal(eff_H.matvec(theta1), serial_H.matvec(theta1))
    assert eff_H.tasks is None
    assert len(eff_H.owner) == eff_H.num_tasks
    if eff_H.num_tasks <= size - 1:
        assert eff_H.owner == list(range(1, eff_H.num_tasks + 1))
    # further matvecs reuse the operators on the workers
    np.testing.assert_array_equal(eff_H.matvec(theta2), serial_H.matvec(theta2))
    eff_H.finish()
    comm.bcast(SVD(0), root=0)
    assert helpers.distribute_tasks(comm, []) == ([], [])
    assert_groups_equal(eff_H.grow_left(A), serial_H.grow_left(A))
    comm.bcast(ProgramFinal(), root=0)
    join_workers(threads, errors)


def run_parallel(M, psi, dmrg_params, size):
    world = World(size)
    threads, errors = start_workers(world)
    engine = ParallelTwoSiteDMRGEngine(psi, M, dmrg_params, comm=world.comms[0])
    E, psi = engine.run()
    join_workers(threads, errors)
    assert world.aborted is None
    return engine, E, psi


def get_dmrg_params(sweeps, Dmax):
    return {
        'sweeps': sweeps,
        'trunc_params': {
            'Dmax': Dmax,
            'trunc_err': 1.e-12,
        },
        'lanczos_params': {
            'E_tol': 1.e-12,
        },
    }


@pytest.mark.parametrize('size', [2, 3, 7])
def test_parallel_engine_equals_serial(size):
    L = 6
    M = TFIChain({'L': L, 'g': 0.8})
    psi = FiniteMPS.from_product_state(M.sites, ['up'] * L)
    serial = TwoSiteDMRGEngine(psi.copy(), M, get_dmrg_params(2, 8))
    E_serial, psi_serial = serial.run()
    engine, E, psi = run_parallel(M, psi, get_dmrg_params(2, 8), size)
    assert E == E_serial
    for i in range(L):
        np.testing.assert_array_equal(psi.get_B(i), psi_serial.get_B(i))
    assert engine.update_stats['N_lanczos'] == serial.update_stats['N_lanczos']
    assert engine.update_stats['D'] == serial.update_stats['D']


@pytest.mark.slow
def test_parallel_engine_reproducible():
    """Heisenberg chain of 10 sites: 1 and 4 workers agree bitwise and with exact diag."""
    from pdmrg.algorithms.exact_diag import ExactDiag
    L = 10
    M = XXZChain({'L': L})
    E_ED, _ = ExactDiag(M).groundstate()
    results = []
    for num_workers in [1, 4]:
        psi = FiniteMPS.from_product_state(M.sites, ['up', 'down'] * (L // 2))
        results.append(run_parallel(M, psi, get_dmrg_params(4, 20), num_workers + 1))
    (_, E1, psi1), (_, E4, psi4) = results
    assert abs(E1 - E_ED) < 1.e-6
    assert E1 == E4
    for i in range(L):
        np.testing.assert_array_equal(psi1.get_B(i), psi4.get_B(i))


def test_parallel_engine_single_rank():
    M = XXZChain({'L': 4})
    psi = FiniteMPS.from_product_state(M.sites, ['up', 'down'] * 2)
    world = World(1)
    engine = ParallelTwoSiteDMRGEngine(psi, M, get_dmrg_params(1, 4), comm=world.comms[0])
    assert engine.comm is None
    engine.run()
    with pytest.raises(ValueError):
        ParallelTwoSiteDMRGEngine(psi, M, get_dmrg_params(1, 4), comm=World(3).comms[1])
