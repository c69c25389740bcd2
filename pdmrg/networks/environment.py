"""Block-operator groups ("environments") and their persistence.

A *left* group of block length `n` represents the Hamiltonian restricted to the sites
``0, ..., n-1``: a list with one entry per row of the MPO matrix ``W[n]``, i.e. per MPO bond
index between sites ``n-1`` and ``n``. Each entry is a matrix with legs ``(vR*, vR)`` (bra, ket)
of the MPS bond left of site `n`, or ``None`` for a vanishing operator.
Similarly, a *right* group of block length `n` represents the sites ``L-n, ..., L-1``,
with one entry per column of ``W[L-1-n]`` and legs ``(vL*, vL)``.
The groups of length 0 are ``[ones((1, 1))]``.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import logging
logger = logging.getLogger(__name__)

from ..tools.cache import DictCache

__all__ = ['trivial_group', 'group_length', 'check_group', 'OperatorGroupIO']


def trivial_group(dtype=np.float64):
    """The block-operator group of an empty block."""
    return [np.ones((1, 1), dtype)]


def group_length(H_MPO, side, length):
    """Number of operator slots of the group `side` (``'l'`` or ``'r'``) of block `length`."""
    if side == 'l':
        return H_MPO.get_W(length).rows
    elif side == 'r':
        return H_MPO.get_W(H_MPO.L - 1 - length).cols
    raise ValueError(f"invalid side {side!r}")


def check_group(group, H_MPO, side, length):
    """Raise a ValueError if `group` can not be the group `side` of block `length`."""
    expected = group_length(H_MPO, side, length)
    if len(group) != expected:
        raise ValueError(f"group {side}{length:d} has {len(group):d} slots, expected {expected:d}")


class OperatorGroupIO:
    """Read and write block-operator groups, keyed by side and block length.

    Parameters
    ----------
    cache : :class:`~pdmrg.tools.cache.DictCache` | None
        Where to keep the groups; ``None`` creates a trivial one in RAM.

    Attributes
    ----------
    cache : :class:`~pdmrg.tools.cache.DictCache`
        The storage; keys are ``"l{length}"`` and ``"r{length}"``.
    """
    def __init__(self, cache=None):
        if cache is None:
            cache = DictCache.trivial()
        self.cache = cache

    @staticmethod
    def key(side, length):
        if side not in ('l', 'r'):
            raise ValueError(f"invalid side {side!r}")
        return f"{side}{length:d}"

    def write(self, side, length, group):
        """Save `group` as the group `side` of block `length`, replacing an existing one."""
        self.cache[self.key(side, length)] = group

    def read(self, side, length):
        """Load the group `side` of block `length`; it stays available for later reads."""
        return self.cache[self.key(side, length)]

    def read_and_remove(self, side, length):
        """Load the group `side` of block `length` and delete the stored copy."""
        return self.cache.pop(self.key(side, length))

    def remove(self, side, length):
        del self.cache[self.key(side, length)]

    def has(self, side, length):
        return self.key(side, length) in self.cache

    def __repr__(self):
        return f"<OperatorGroupIO {sorted(self.cache)!r}>"
