"""pdmrg - distributed two-site DMRG for finite spin chains.

The density matrix renormalization group (DMRG) finds the ground state of a one-dimensional
Hamiltonian given as a matrix product operator, by sweeping an optimization of two neighboring
sites of a matrix product state back and forth. This package splits the contraction of the
effective Hamiltonian into independent term-group tasks, which can be computed in a single
process or distributed over MPI processes with bitwise identical results.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3
# This file marks this directory as a python package.

# Note: all external packages that are imported should be `del`-ed at the end of the file!
import logging

# main logger for pdmrg
logger = logging.getLogger(__name__)

# load and provide sub packages on first input
# note that the order matters!
from . import tools
from . import linalg
from . import networks
from . import models
from . import algorithms
from . import simulation
from . import version

# provide the more important functions and classes directly from the main namespace:
from .algorithms.dmrg import TwoSiteDMRGEngine
from .algorithms.effective_h import TwoSiteH
from .algorithms.exact_diag import ExactDiag
from .linalg.truncation import TruncationError, truncate, svd_theta
from .linalg.krylov_based import LanczosGroundState, lanczos
from .models.model import MPOModel, NearestNeighborChain
from .models.xxz_chain import XXZChain
from .models.tf_ising import TFIChain
from .networks.site import Site, SpinHalfSite, SpinSite
from .networks.mps import FiniteMPS
from .networks.mpo import SparseOperatorMatrix, MatReprMPO
from .simulation import run_simulation
from .tools.misc import setup_logging
from .tools.params import Config, asConfig, load_yaml_with_py_eval

#: hard-coded version string
__version__ = version.version

#: full version from git description, and numpy/scipy/python versions
__full_version__ = version.full_version

__all__ = [
    # subpackages
    'algorithms', 'linalg', 'models', 'networks', 'simulation', 'tools', 'version',
    # from pdmrg.algorithms
    'TwoSiteDMRGEngine', 'TwoSiteH', 'ExactDiag',
    # from pdmrg.linalg
    'TruncationError', 'truncate', 'svd_theta', 'LanczosGroundState', 'lanczos',
    # from pdmrg.models
    'MPOModel', 'NearestNeighborChain', 'XXZChain', 'TFIChain',
    # from pdmrg.networks
    'Site', 'SpinHalfSite', 'SpinSite', 'FiniteMPS', 'SparseOperatorMatrix', 'MatReprMPO',
    # from pdmrg.simulation
    'run_simulation',
    # from pdmrg.tools
    'setup_logging', 'Config', 'asConfig', 'load_yaml_with_py_eval',
    # from pdmrg.__init__, i.e. defined below
    'show_config', 'console_main',
]


def show_config():
    """Print information about the version of pdmrg and used libraries.

    The information printed is :attr:`pdmrg.version.version_summary`.
    """
    print(version.version_summary)


def console_main(*command_line_args):
    """Command line interface.

    For the python interface see :func:`~pdmrg.simulation.run_simulation`.

    When pdmrg is installed correctly via pip, a command line script called ``pdmrg-run``
    is set up, which calls this function, i.e., you can do the following in the terminal::

        pdmrg-run --help

    Equivalently, you can also invoke the pdmrg module from your python interpreter like this::

        python -m pdmrg --help

    To distribute the work over several processes, start it with ``mpiexec`` and ``--mpi``::

        mpiexec -n 5 pdmrg-run --mpi my_params.yml
    """
    import numpy as np
    import scipy
    import sys
    import importlib

    parser = _setup_arg_parser()
    args = parser.parse_args(args=command_line_args if command_line_args else None)
    # import extra modules
    context = {'pdmrg': sys.modules[__name__], 'np': np, 'scipy': scipy}
    if args.import_module:
        sys.path.insert(0, '.')
        for module_name in args.import_module:
            module = importlib.import_module(module_name)
            context[module_name] = module
    # load parameters_file
    options = {}
    if args.parameters_file:
        options_files = []
        for fn in args.parameters_file:
            options = load_yaml_with_py_eval(fn, context=context)
            options_files.append(options)
        if len(options_files) > 1:
            options = tools.misc.merge_recursive(*options_files, conflict=args.merge)
    # update extra options
    if args.option:
        for key, val_string in args.option:
            val = eval(val_string, context)
            tools.misc.set_recursive(options, key, val, insert_dicts=True)
    if len(options) == 0:
        raise ValueError("No options supplied! Check your command line arguments!")
    comm = None
    if args.mpi:
        from mpi4py import MPI
        comm = MPI.COMM_WORLD
    return run_simulation(comm=comm, **options)


def _setup_arg_parser(width=None):
    import argparse
    import textwrap

    desc = "Command line interface to run a (distributed) DMRG ground state search."
    epilog = textwrap.dedent("""\
    Examples
    --------

    In the simplest case, you just give a single yaml file with all the parameters as argument:

        pdmrg-run my_params.yml

    Further, you can overwrite one or multiple options of the parameters file:

        pdmrg-run my_params.yml -o output_filename '"rerun_Jz_2.pkl"' -o model_params.Jz 2.

    Note that string values for the options require double quotes on the command line.
    Under MPI, rank 0 runs the sweeps and all other ranks compute the contractions:

        mpiexec -n 5 pdmrg-run --mpi my_params.yml
    """)

    def formatter(prog):
        return argparse.RawDescriptionHelpFormatter(prog,
                                                    indent_increment=4,
                                                    max_help_position=8,
                                                    width=width)

    parser = argparse.ArgumentParser(description=desc, epilog=epilog, formatter_class=formatter)
    parser.add_argument('--import-module',
                        '-i',
                        metavar='MODULE',
                        action='append',
                        help="Import the given python MODULE before setting up the simulation. "
                        "This is useful if the module contains user-defined model classes. "
                        "Use python-style names like `numpy` without the .py ending.")
    parser.add_argument('--merge',
                        '-m',
                        default='error',
                        help="Selects how to merge conflicts in case of multiple yaml files. "
                        "Options are 'error', 'first' or 'last'.")
    parser.add_argument('--mpi',
                        action="store_true",
                        help="Use mpi4py's COMM_WORLD; rank 0 is the master, all other ranks "
                        "are workers.")
    parser.add_argument('parameters_file',
                        nargs='*',
                        help="Yaml (*.yml) file with the simulation parameters/options. "
                        "We support an additional yaml tag !py_eval: VALUE that gets initialized "
                        "by python's ``eval(VALUE)`` with `np`, `scipy` and `pdmrg` defined. "
                        "Multiple files get merged according to MERGE; "
                        "see pdmrg.tools.misc.merge_recursive for details.")
    opt_help = textwrap.dedent("""\
        Allows overwriting some options from the yaml files.
        KEY can be recursive separated by `.`, e.g. ``algorithm_params.trunc_params.Dmax``.
        VALUE is initialized by python's ``eval(VALUE)`` with `np`, `scipy` and `pdmrg` defined.
        Thus ``'1.2'`` or ``'np.linspace(0., 1., 6)'`` will work if you include the quotes on the
        command line to ensure that the VALUE is passed as a single argument.""")
    parser.add_argument('--option',
                        '-o',
                        nargs=2,
                        action='append',
                        metavar=('KEY', 'VALUE'),
                        help=opt_help)
    parser.add_argument('--version', '-v', action='version', version=__full_version__)
    return parser


# remove the imported libraries again. we do not want to expose them e.g. as pdmrg.logging
del logging
