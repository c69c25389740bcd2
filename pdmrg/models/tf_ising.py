"""Prototypical example of a quantum model: the transverse field Ising chain.

Like the :class:`~pdmrg.models.xxz_chain.XXZChain`, the idea is more to serve as a pedagogical
example for a 'model'.
We choose the field along z, such that the Hamiltonian is real.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np

from .model import NearestNeighborChain
from ..networks.site import SpinHalfSite

__all__ = ['TFIChain']


class TFIChain(NearestNeighborChain):
    r"""Transverse field Ising chain with open boundary conditions.

    The Hamiltonian reads:

    .. math ::
        H = - \sum_{i} \mathtt{J} \sigma^x_i \sigma^x_{i+1} - \sum_{i} \mathtt{g} \sigma^z_i

    Parameters
    ----------
    model_params : :class:`~pdmrg.tools.params.Config`
        Parameters for the model. See :cfg:config:`TFIChain` below.

    Options
    -------
    .. cfg:config :: TFIChain
        :include: NearestNeighborChain

        J, g : float | array
            Coupling as defined for the Hamiltonian above.
    """
    def init_sites(self, model_params):
        return SpinHalfSite()

    def init_terms(self, model_params):
        J = np.asarray(model_params.get('J', 1.))
        g = np.asarray(model_params.get('g', 1.))
        self.add_onsite(-g, 'Sigmaz')
        self.add_coupling(-J, 'Sigmax', 'Sigmax')
        # done
