"""Definitions of tensor networks like MPS and MPO.

Here, 'tensor network' refers just to the (partial) contraction of tensors.
For example an MPS represents the contraction along the 'virtual' legs/bonds of its `B`.

.. rubric:: Submodules

.. autosummary::
    :toctree: .

    site
    mps
    mpo
    environment
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from . import site, mps, mpo, environment
from .site import *
from .mps import *
from .mpo import *
from .environment import *

__all__ = ['site', 'mps', 'mpo', 'environment',
           *site.__all__,
           *mps.__all__,
           *mpo.__all__,
           *environment.__all__,
           ]
