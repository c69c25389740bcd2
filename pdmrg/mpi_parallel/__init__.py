"""Distribute the DMRG contractions over MPI processes.

This module parallelizes the two-site DMRG with the MPI framework.
It's based on the python interface of `mpi4py <https://mpi4py.readthedocs.io/>`_,
which needs to be installed when you want to use classes in this module.

Rank 0 (the master) runs the :class:`~pdmrg.mpi_parallel.dmrg.ParallelTwoSiteDMRGEngine`,
which owns the MPS, the block-operator groups and the sweep; all other ranks run the
:func:`~pdmrg.mpi_parallel.worker.worker_main` loop. The master drives the workers by
broadcasting the commands defined in :mod:`~pdmrg.mpi_parallel.commands`; the actual
contractions are split into term-group tasks, see :mod:`~pdmrg.algorithms.effective_h`, and
distributed with the functions in :mod:`~pdmrg.mpi_parallel.helpers`.

.. note ::
    This module is not imported by default, since just importing mpi4py already initializes MPI.
    Hence, if you want to use it, you need to explicitly call
    ``import pdmrg.mpi_parallel.dmrg`` in your python script.
    Only :mod:`~pdmrg.mpi_parallel.commands` can be imported without mpi4py.

.. rubric:: Submodules

.. autosummary::
    :toctree: .

    commands
    helpers
    worker
    dmrg
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from . import commands

__all__ = ["commands"]
