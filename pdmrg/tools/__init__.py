r"""A collection of tools: short, general helpers not tied to a single algorithm.

.. rubric:: Submodules

.. autosummary::
    :toctree: .

    params
    misc
    cache
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from . import cache, misc, params
from .cache import *
from .misc import *
from .params import *

__all__ = ['cache', 'misc', 'params', *cache.__all__, *misc.__all__, *params.__all__]
