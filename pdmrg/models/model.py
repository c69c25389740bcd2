"""Base classes for models: a chain of sites with a Hamiltonian given as MPO.

A `model` in this package is nothing but the list of :attr:`~MPOModel.sites` and the
Hamiltonian in the form of a :class:`~pdmrg.networks.mpo.MatReprMPO`, :attr:`~MPOModel.H_MPO`.

The :class:`NearestNeighborChain` generates the MPO from onsite terms and nearest-neighbor
couplings. Subclasses (see :mod:`~pdmrg.models.xxz_chain` and :mod:`~pdmrg.models.tf_ising`)
only need to implement :meth:`~NearestNeighborChain.init_sites` and
:meth:`~NearestNeighborChain.init_terms`.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import logging
logger = logging.getLogger(__name__)

from ..networks.mpo import SparseOperatorMatrix, MatReprMPO
from ..tools.params import asConfig

__all__ = ['MPOModel', 'NearestNeighborChain']


class MPOModel:
    """Base class for a model with an MPO representation of the Hamiltonian.

    Parameters
    ----------
    sites : list of :class:`~pdmrg.networks.site.Site`
        The local sites of the chain.
    H_MPO : :class:`~pdmrg.networks.mpo.MatReprMPO`
        MPO representation of the Hamiltonian.

    Attributes
    ----------
    sites : list of :class:`~pdmrg.networks.site.Site`
        The local sites of the chain.
    H_MPO : :class:`~pdmrg.networks.mpo.MatReprMPO`
        MPO representation of the Hamiltonian.
    """
    def __init__(self, sites, H_MPO):
        self.sites = list(sites)
        self.H_MPO = H_MPO
        if H_MPO.L != len(self.sites):
            raise ValueError("MPO length doesn't match the number of sites")

    @property
    def L(self):
        return len(self.sites)


class NearestNeighborChain(MPOModel):
    """A chain with open boundary conditions, onsite terms and nearest-neighbor couplings.

    The ``__init__`` calls :meth:`init_sites` and :meth:`init_terms`, which subclasses should
    overwrite, and finally builds the MPO with :meth:`calc_H_MPO`.

    Parameters
    ----------
    model_params : dict
        A dictionary with all the model parameters.
        These parameters are converted to a (dict-like) :class:`~pdmrg.tools.params.Config`,
        and then set as :attr:`options` and given to the different ``init_...()`` methods.

    Options
    -------
    .. cfg:config :: NearestNeighborChain

        L : int
            Length of the chain.

    Attributes
    ----------
    name : str
        The (class-) name of the model, e.g. ``"XXZChain"``.
    options : :class:`~pdmrg.tools.params.Config`
        Optional parameters.
    onsite_terms : list of list of (float, str)
        For each site the ``(strength, opname)`` of the onsite terms.
    coupling_terms : dict
        Maps ``(op_i, op_j)`` to an array of strengths for each bond ``(i, i+1)``.
    """
    def __init__(self, model_params):
        self.name = self.__class__.__name__
        self.options = model_params = asConfig(model_params, self.name)
        L = model_params.get('L', 10, int)
        if L < 2:
            raise ValueError("need at least two sites")
        site = self.init_sites(model_params)
        sites = [site] * L
        self.onsite_terms = [[] for _ in range(L)]
        self.coupling_terms = {}
        self._sites = sites  # needed by `add_*`
        self.init_terms(model_params)
        MPOModel.__init__(self, sites, self.calc_H_MPO())
        # finally checks for misspelled parameter names
        model_params.warn_unused()

    def init_sites(self, model_params):
        """Define the local Hilbert space and operators; needs to be implemented in subclasses.

        Returns
        -------
        site : :class:`~pdmrg.networks.site.Site`
            The site used for every position of the chain.
        """
        raise NotImplementedError("Subclasses should implement `init_sites`")

    def init_terms(self, model_params):
        """Add the onsite and coupling terms to the model; subclasses should implement this."""
        pass

    def add_onsite(self, strength, opname):
        r"""Add onsite terms :math:`\sum_i \mathtt{strength}[i] * \mathtt{OP}_i`.

        Parameters
        ----------
        strength : scalar | array
            Prefactor of the onsite term, broadcast to the length of the chain.
        opname : str
            Name of the onsite operator.
        """
        strength = np.broadcast_to(strength, (len(self._sites), ))
        for i, site in enumerate(self._sites):
            if opname not in site.ops:
                raise ValueError(f"unknown onsite operator {opname!r}")
            if strength[i] != 0.:
                self.onsite_terms[i].append((strength[i], opname))

    def add_coupling(self, strength, op_i, op_j, plus_hc=False):
        r"""Add couplings :math:`\sum_i \mathtt{strength}[i] \mathtt{OP_i}_i \mathtt{OP_j}_{i+1}`.

        Parameters
        ----------
        strength : scalar | array
            Prefactor of the coupling, broadcast to the number of bonds ``L-1``.
        op_i, op_j : str
            Names of the operators acting on the left and right site of each bond.
        plus_hc : bool
            If `True`, the hermitian conjugate of the terms is added automatically.
        """
        strength = np.broadcast_to(strength, (len(self._sites) - 1, ))
        for opname in [op_i, op_j]:
            if opname not in self._sites[0].ops:
                raise ValueError(f"unknown onsite operator {opname!r}")
        key = (op_i, op_j)
        if key in self.coupling_terms:
            self.coupling_terms[key] = self.coupling_terms[key] + strength
        else:
            self.coupling_terms[key] = np.array(strength)
        if plus_hc:
            site = self._sites[0]
            self.add_coupling(np.conj(strength), self._hc_opname(site, op_i),
                              self._hc_opname(site, op_j))

    @staticmethod
    def _hc_opname(site, opname):
        op_hc = site.get_op(opname).conj().T
        for name, op in site.ops.items():
            if np.array_equal(op, op_hc):
                return name
        raise ValueError(f"hermitian conjugate of {opname!r} not defined on {site!r}")

    def calc_H_MPO(self):
        """Build the MPO with :meth:`~pdmrg.networks.mpo.MatReprMPO.from_bulk`.

        Bond index ``0`` means "all terms done", index ``n_c + 1`` "nothing started yet",
        and ``1, ..., n_c`` the (ordered) coupling channels `c`: ``op_i`` was applied on the
        previous site and ``strength * op_j`` is still to be applied.
        """
        sites = self._sites
        L = len(sites)
        channels = [key for key, strength in self.coupling_terms.items() if np.any(strength != 0.)]
        IdL = len(channels) + 1
        IdR = 0
        Ws = []
        for i, site in enumerate(sites):
            W = SparseOperatorMatrix.zeros(IdL + 1, IdL + 1)
            Id = site.get_op('Id')
            W[IdL, IdL] = Id
            W[IdR, IdR] = Id
            onsite = None
            for strength, opname in self.onsite_terms[i]:
                op = strength * site.get_op(opname)
                onsite = op if onsite is None else onsite + op
            W[IdL, IdR] = onsite
            for c, (op_i, op_j) in enumerate(channels):
                W[IdL, c + 1] = site.get_op(op_i)
                if i > 0:
                    strength = self.coupling_terms[(op_i, op_j)][i - 1]
                    if strength != 0.:
                        W[c + 1, IdR] = strength * site.get_op(op_j)
            Ws.append(W)
        logger.debug("%s: MPO with %d coupling channels", self.name, len(channels))
        return MatReprMPO.from_bulk(sites, Ws, IdL, IdR)
