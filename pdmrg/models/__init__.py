"""Definition of the various models.

.. rubric:: Submodules

.. autosummary::
    :toctree: .

    model
    xxz_chain
    tf_ising
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from . import model, xxz_chain, tf_ising
from .model import *
from .xxz_chain import *
from .tf_ising import *

__all__ = ['model', 'xxz_chain', 'tf_ising',
           *model.__all__,
           *xxz_chain.__all__,
           *tf_ising.__all__,
           ]
