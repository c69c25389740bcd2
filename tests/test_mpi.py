"""Tests of the MPI-parallel DMRG; they need to be run with ``mpiexec`` by `pytest_easyMPI`."""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import pytest

from pdmrg.algorithms.dmrg import TwoSiteDMRGEngine
from pdmrg.models import XXZChain
from pdmrg.networks.mps import FiniteMPS
from pdmrg.simulation import run_simulation

mpi_parallel = pytest.importorskip('pytest_easyMPI').mpi_parallel


def get_dmrg_params(sweeps=4, Dmax=20):
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


def compare_parallel_to_serial(L=10):
    """Rank 0 runs the serial and the parallel DMRG and checks that they agree bitwise."""
    from mpi4py import MPI
    from pdmrg.mpi_parallel.dmrg import ParallelTwoSiteDMRGEngine
    from pdmrg.mpi_parallel.worker import worker_main
    comm = MPI.COMM_WORLD
    if comm.rank != 0:
        worker_main(comm)
        return
    M = XXZChain({'L': L, 'Jz': 1.2, 'hz': 0.1})
    psi = FiniteMPS.from_product_state(M.sites, ['up', 'down'] * (L // 2))
    serial_engine = TwoSiteDMRGEngine(psi.copy(), M, get_dmrg_params())
    E_serial, psi_serial = serial_engine.run()
    engine = ParallelTwoSiteDMRGEngine(psi, M, get_dmrg_params(), comm=comm)
    E_parallel, psi_parallel = engine.run()
    print("E_serial = {0:.15f}, E_parallel = {1:.15f}".format(E_serial, E_parallel))
    assert E_parallel == E_serial
    for i in range(L):
        np.testing.assert_array_equal(psi_parallel.get_B(i), psi_serial.get_B(i))
    assert engine.update_stats['N_lanczos'] == serial_engine.update_stats['N_lanczos']
    assert engine.update_stats['D'] == serial_engine.update_stats['D']


@mpi_parallel(2)
@pytest.mark.slow
def test_parallel_dmrg_one_worker():
    compare_parallel_to_serial()


@mpi_parallel(5)
@pytest.mark.slow
def test_parallel_dmrg_four_workers():
    # 4 workers for 5 tasks per bond: pull queue
    compare_parallel_to_serial()


@mpi_parallel(6)
@pytest.mark.slow
def test_parallel_dmrg_static():
    # 5 workers: each task of a bond goes to a fixed worker
    compare_parallel_to_serial()


@mpi_parallel(3)
@pytest.mark.slow
def test_distribute_tasks():
    from mpi4py import MPI
    from pdmrg.mpi_parallel import helpers
    comm = MPI.COMM_WORLD
    for num_tasks in [0, 1, 2, 7]:
        if comm.rank == 0:
            payloads = [np.arange(t + 1.) for t in range(num_tasks)]
            results, owner = helpers.distribute_tasks(comm, payloads)
            assert len(results) == len(owner) == num_tasks
            for t in range(num_tasks):
                np.testing.assert_array_equal(results[t], np.arange(t + 1.)**2)
            assert all(1 <= rank < comm.size for rank in owner)
            if num_tasks <= comm.size - 1:
                assert owner == list(range(1, num_tasks + 1))
        else:
            task_ids = helpers.serve_tasks(comm, num_tasks, lambda t, payload: payload**2)
        comm.Barrier()
        # a second round with the data kept on the workers
        if comm.rank == 0:
            results = helpers.collect_results(comm, owner)
            assert results == [-t for t in range(num_tasks)]
        else:
            for t in sorted(task_ids):
                helpers.send_result(comm, t, -t)
        comm.Barrier()


@mpi_parallel(3)
@pytest.mark.slow
def test_run_simulation_mpi():
    from mpi4py import MPI
    comm = MPI.COMM_WORLD
    sim_params = {
        'model_class': 'XXZChain',
        'model_params': {
            'L': 8,
        },
        'algorithm_params': get_dmrg_params(),
        'log_params': {
            'skip_setup': True,
        },
    }
    res = run_simulation(comm=comm, **sim_params)
    if comm.rank != 0:
        assert res is None
        return
    sim_params['algorithm_params'] = get_dmrg_params()
    res_serial = run_simulation(**sim_params)
    assert res['energy'] == res_serial['energy']
