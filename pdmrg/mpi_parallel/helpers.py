r"""Distribute independent tasks from the master (rank 0) to the workers (ranks ``1, ..., P-1``).

A round of work consists of `T` tasks with ids ``0, ..., T-1``. The policy is chosen from `T`
and the number of workers ``P-1`` alone, such that master and workers agree on it without
further communication:

- If ``T <= P-1``, task `t` is sent to rank ``t+1`` and each worker computes at most one task.
- Otherwise, the master runs a pull queue: each worker first gets one task; whenever the master
  receives a result from a worker, it answers with the next unclaimed task (tag
  :data:`TAG_WORK`), or with the termination message (tag :data:`TAG_STOP`) once all tasks are
  handed out. Hence a result doubles as the request for the next task.

Results travel from the worker to the master as ``(task_id, result)`` with the message tag
``task_id``. The master records the rank that computed each task as its `owner`: later rounds
using the data cached with the task (static matvecs, growth) are collected with
:func:`collect_results` from exactly that rank, again in ascending task order.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from mpi4py import MPI
import logging
logger = logging.getLogger(__name__)

from .commands import ProtocolViolation

__all__ = [
    'TAG_WORK', 'TAG_STOP', 'distribute_tasks', 'serve_tasks', 'receive_result', 'send_result',
    'collect_results', 'fatal'
]

#: tag of messages from the master containing a task ``(task_id, payload)``
TAG_WORK = 30001
#: tag of the termination message of the pull queue
TAG_STOP = 30002


def distribute_tasks(comm, payloads):
    """Master side: hand out the tasks to the workers and collect the results.

    Parameters
    ----------
    comm : :class:`mpi4py.MPI.Comm`
        The communicator; this must be called on rank 0 while all other ranks call
        :func:`serve_tasks` with the same number of tasks.
    payloads : list
        The data for each task; task ``t`` gets ``payloads[t]``.

    Returns
    -------
    results : list
        The result of each task, indexed by task id.
    owner : list of int
        The rank which computed each task.
    """
    num_tasks = len(payloads)
    if num_tasks >= TAG_WORK:
        raise ValueError(f"too many tasks: {num_tasks:d}")
    num_workers = comm.size - 1
    if num_workers < 1 and num_tasks > 0:
        raise ValueError("need at least one worker")
    results = [None] * num_tasks
    owner = [None] * num_tasks
    if num_tasks <= num_workers:
        for task_id, payload in enumerate(payloads):
            comm.send((task_id, payload), dest=task_id + 1, tag=TAG_WORK)
        for task_id in range(num_tasks):
            results[task_id] = receive_result(comm, task_id + 1, task_id)
            owner[task_id] = task_id + 1
        return results, owner
    next_task = 0
    for rank in range(1, comm.size):
        comm.send((next_task, payloads[next_task]), dest=rank, tag=TAG_WORK)
        next_task += 1
    status = MPI.Status()
    for _ in range(num_tasks):
        task_id, result = comm.recv(source=MPI.ANY_SOURCE, tag=MPI.ANY_TAG, status=status)
        source = status.Get_source()
        if status.Get_tag() != task_id or not 0 <= task_id < num_tasks:
            raise ProtocolViolation(f"result for task {task_id!r} from rank {source:d} "
                                    f"with tag {status.Get_tag():d}")
        if owner[task_id] is not None:
            raise ProtocolViolation(f"task {task_id:d} returned twice")
        results[task_id] = result
        owner[task_id] = source
        if next_task < num_tasks:
            comm.send((next_task, payloads[next_task]), dest=source, tag=TAG_WORK)
            next_task += 1
        else:
            comm.send(None, dest=source, tag=TAG_STOP)
    return results, owner


def serve_tasks(comm, num_tasks, compute):
    """Worker side of :func:`distribute_tasks`.

    Parameters
    ----------
    comm : :class:`mpi4py.MPI.Comm`
        The communicator.
    num_tasks : int
        The total number of tasks in this round, as announced by the master.
    compute : callable
        Called as ``compute(task_id, payload)`` for each task assigned to this rank;
        the return value is sent back to the master.

    Returns
    -------
    task_ids : list of int
        The ids of the tasks computed by this rank, in the order of computation.
    """
    task_ids = []
    if num_tasks <= comm.size - 1:
        if comm.rank <= num_tasks:
            task_id, payload = comm.recv(source=0, tag=TAG_WORK)
            if task_id != comm.rank - 1:
                raise ProtocolViolation(f"rank {comm.rank:d} got task {task_id!r}")
            result = compute(task_id, payload)
            del payload
            send_result(comm, task_id, result)
            task_ids.append(task_id)
        return task_ids
    status = MPI.Status()
    while True:
        msg = comm.recv(source=0, tag=MPI.ANY_TAG, status=status)
        tag = status.Get_tag()
        if tag == TAG_STOP:
            return task_ids
        if tag != TAG_WORK:
            raise ProtocolViolation(f"unexpected tag {tag:d} on rank {comm.rank:d}")
        task_id, payload = msg
        del msg
        result = compute(task_id, payload)
        del payload  # the term groups are not needed anymore
        send_result(comm, task_id, result)
        task_ids.append(task_id)


def send_result(comm, task_id, result):
    """Send the `result` of a task to the master."""
    comm.send((task_id, result), dest=0, tag=task_id)


def receive_result(comm, source, task_id):
    """Receive the result of the task `task_id` from the rank `source`."""
    received_id, result = comm.recv(source=source, tag=task_id)
    if received_id != task_id:
        raise ProtocolViolation(f"expected task {task_id:d} from rank {source:d}, "
                                f"got {received_id!r}")
    return result


def collect_results(comm, owner):
    """Receive one result per task from the rank given by `owner`, in ascending task order."""
    return [receive_result(comm, source, task_id) for task_id, source in enumerate(owner)]


def fatal(comm, exc):
    """Log `exc` as critical and abort all MPI processes."""
    logger.critical("MPI rank %d: fatal %s: %s", comm.rank, exc.__class__.__name__, exc,
                    exc_info=exc)
    comm.Abort(1)
