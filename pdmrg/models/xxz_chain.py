"""Prototypical example of a 1D quantum model: the spin-1/2 XXZ chain.

The bulk MPO matrix of the :class:`XXZChain` reads (rows: left bond, columns: right bond)::

    |  Id    .           .           .       .
    |  Sm    .           .           .       .   (times Jxx/2)
    |  Sp    .           .           .       .   (times Jxx/2)
    |  Sz    .           .           .       .   (times Jz)
    |  -hz Sz   Sp       Sm          Sz      Id
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from .model import NearestNeighborChain
from ..networks.site import SpinHalfSite

__all__ = ['XXZChain']


class XXZChain(NearestNeighborChain):
    r"""Spin-1/2 XXZ chain.

    The Hamiltonian reads:

    .. math ::
        H = \sum_i \mathtt{Jxx}/2 (S^{+}_i S^{-}_{i+1} + S^{-}_i S^{+}_{i+1})
                 + \mathtt{Jz} S^z_i S^z_{i+1} \\
            - \sum_i \mathtt{hz} S^z_i

    All parameters are collected in a single dictionary `model_params`, which
    is turned into a :class:`~pdmrg.tools.params.Config` object.

    Parameters
    ----------
    model_params : :class:`~pdmrg.tools.params.Config`
        Parameters for the model. See :cfg:config:`XXZChain` below.

    Options
    -------
    .. cfg:config :: XXZChain
        :include: NearestNeighborChain

        Jxx, Jz, hz : float | array
            Coupling as defined for the Hamiltonian above.
            Defaults to ``Jxx=Jz=1`` without field ``hz=0``.
    """
    def init_sites(self, model_params):
        return SpinHalfSite()

    def init_terms(self, model_params):
        Jxx = model_params.get('Jxx', 1.)
        Jz = model_params.get('Jz', 1.)
        hz = model_params.get('hz', 0.)
        self.add_onsite(-hz, 'Sz')
        # the `plus_hc=True` adds the h.c. term Sm_i Sp_{i+1}
        self.add_coupling(Jxx * 0.5, 'Sp', 'Sm', plus_hc=True)
        self.add_coupling(Jz, 'Sz', 'Sz')
