"""Run a complete ground state search from a (nested) dictionary of parameters.

This is the python interface behind the command line script ``pdmrg-run``, see
:func:`~pdmrg.console_main`. The parameters are usually read from a yaml file like this:

.. code-block :: yaml

    model_class: XXZChain
    model_params:
        L: 10
        Jz: 2.
    initial_state_params:
        method: product_state
        product_state: [up, down]
    algorithm_params:
        sweeps: 4
        trunc_params:
            Dmax: 20
    output_filename: results.pkl

Under MPI, all ranks call :func:`run_simulation` with the same parameters and the same
communicator; rank 0 builds the model and the initial state and runs the
:class:`~pdmrg.mpi_parallel.dmrg.ParallelTwoSiteDMRGEngine`, the other ranks serve it with
:func:`~pdmrg.mpi_parallel.worker.worker_main`.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import os
import pickle
import time
import numpy as np
import logging
logger = logging.getLogger(__name__)

from .algorithms.dmrg import TwoSiteDMRGEngine
from .models import MPOModel
from .networks.mps import FiniteMPS
from .tools.misc import find_subclass, setup_logging
from .tools.params import asConfig
from . import version

__all__ = ['run_simulation', 'init_model', 'init_state', 'save_results']


def init_model(options):
    """Initialize the model from the options `model_class` and `model_params`.

    Options
    -------
    .. cfg:configoptions :: Simulation

        model_class : str | class
            Class or name of a subclass of :class:`~pdmrg.models.model.MPOModel`,
            e.g. ``"XXZChain"`` or ``"TFIChain"``.
        model_params : dict
            Dictionary with parameters for the model; see the documentation of the
            corresponding `model_class`.
    """
    ModelClass = find_subclass(MPOModel, options.get('model_class', 'XXZChain'))
    return ModelClass(options.subconfig('model_params'))


def init_state(model, options):
    """Initialize the MPS from the option `initial_state_params`.

    Options
    -------
    .. cfg:config :: initial_state_params

        method : ``'product_state' | 'random'``
            How to initialize the state.
        product_state : list of {str | int}
            For `method` ``'product_state'``: the local states, repeated periodically to the
            length of the chain. Defaults to a Néel state ``['up', 'down']``.
        chi : int
            For `method` ``'random'``: the maximal bond dimension.
        seed : None | int
            For `method` ``'random'``: the seed of the random number generator.
        dtype : str
            Data type of the MPS tensors, e.g. ``'float64'`` or ``'complex128'``.
    """
    params = options.subconfig('initial_state_params')
    method = params.get('method', 'product_state', str)
    dtype = np.dtype(params.get('dtype', 'float64'))
    L = model.L
    if method == 'product_state':
        p_state = list(params.get('product_state', ['up', 'down']))
        p_state = [p_state[i % len(p_state)] for i in range(L)]
        psi = FiniteMPS.from_product_state(model.sites, p_state, dtype=dtype)
    elif method == 'random':
        psi = FiniteMPS.from_random(model.sites,
                                    params.get('chi', 10, int),
                                    dtype=dtype,
                                    rng=params.get('seed', None))
    else:
        raise ValueError(f"unknown initial state method {method!r}")
    params.warn_unused()
    return psi


def save_results(results, output_filename):
    """Pickle the `results` into `output_filename`, keeping a backup of an existing file."""
    backup_filename = output_filename + '.backup'
    if os.path.exists(output_filename):
        os.replace(output_filename, backup_filename)
    with open(output_filename, 'wb') as f:
        pickle.dump(results, f, protocol=pickle.HIGHEST_PROTOCOL)
    if os.path.exists(backup_filename):
        os.remove(backup_filename)
    logger.info("saved results to %s", output_filename)


def run_simulation(comm=None, **simulation_params):
    """Run a DMRG ground state search.

    Parameters
    ----------
    comm : :class:`mpi4py.MPI.Comm` | None
        The MPI communicator. If ``None`` or of size 1, run in a single process.
    **simulation_params :
        The parameters, see below.

    Options
    -------
    .. cfg:config :: Simulation

        model_class, model_params :
            See :func:`init_model`.
        initial_state_params : dict
            See :func:`init_state`.
        algorithm_params : dict
            Options for the :class:`~pdmrg.algorithms.dmrg.TwoSiteDMRGEngine`.
        log_params : dict
            Parameters for :func:`~pdmrg.tools.misc.setup_logging`.
        output_filename : None | str
            If given, pickle the results into this file.
        save_psi : bool
            Whether the final MPS should be included into the results.

    Returns
    -------
    results : dict | None
        Keys ``'energy', 'psi', 'sweep_stats', 'update_stats', 'simulation_parameters',
        'version'``. ``None`` on the worker ranks.
    """
    parallel = comm is not None and comm.size > 1
    if parallel and comm.rank != 0:
        from .mpi_parallel.worker import worker_main
        worker_main(comm)
        return None
    options = asConfig(simulation_params, 'Simulation')
    output_filename = options.get('output_filename', None)
    setup_logging(**options.get('log_params', {}), output_filename=output_filename)
    logger.info("pdmrg version %s", version.full_version)
    t0 = time.time()
    model = init_model(options)
    psi = init_state(model, options)
    algorithm_params = options.subconfig('algorithm_params')
    if parallel:
        from .mpi_parallel.dmrg import ParallelTwoSiteDMRGEngine
        engine = ParallelTwoSiteDMRGEngine(psi, model, algorithm_params, comm=comm)
    else:
        engine = TwoSiteDMRGEngine(psi, model, algorithm_params)
    E, psi = engine.run()
    results = {
        'energy': E,
        'sweep_stats': engine.sweep_stats,
        'update_stats': engine.update_stats,
        'simulation_parameters': options.as_dict(),
        'version': version.full_version,
    }
    if options.get('save_psi', True, bool):
        results['psi'] = psi
    options.warn_unused(True)
    logger.info("finished simulation after %.1fs, E = %.14f", time.time() - t0, E)
    if output_filename is not None:
        save_results(results, output_filename)
    return results
