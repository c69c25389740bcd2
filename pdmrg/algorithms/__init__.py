"""A collection of algorithms such as DMRG and exact diagonalization.

.. rubric:: Submodules

.. autosummary::
    :toctree: .

    effective_h
    dmrg
    exact_diag
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from . import effective_h, dmrg, exact_diag

__all__ = ['effective_h', 'dmrg', 'exact_diag']
