r"""Linear-algebra tools for the (dense) tensors of the DMRG.

Tensors are plain :class:`numpy.ndarray`; contractions are done with :func:`numpy.tensordot`.

.. rubric:: Submodules

.. autosummary::
    :toctree: .

    svd_robust
    sparse
    krylov_based
    truncation

"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from . import krylov_based, sparse, svd_robust, truncation
from .krylov_based import *
from .sparse import *
from .truncation import *

__all__ = ['krylov_based', 'sparse', 'svd_robust', 'truncation',
           *krylov_based.__all__,
           *sparse.__all__,
           *truncation.__all__,
           ]
