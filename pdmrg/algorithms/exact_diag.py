"""Full diagonalization (ED) of the Hamiltonian.

The full diagonalization of a small system is a simple approach to test other algorithms.
This module provides functionality to quickly diagonalize the Hamiltonian of a given model,
built from its MPO. We don't make use of any symmetries, so the treatable system size is small.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import scipy.sparse.linalg
import logging
logger = logging.getLogger(__name__)

__all__ = ['ExactDiag']


class ExactDiag:
    """(Full) exact diagonalization of the Hamiltonian.

    Parameters
    ----------
    model : :class:`~pdmrg.models.model.MPOModel`
        The model which is to be diagonalized.
    max_size : int
        Raise a ValueError if the dimension of the full Hilbert space is larger.

    Attributes
    ----------
    model : :class:`~pdmrg.models.model.MPOModel`
        The model which is to be diagonalized.
    full_H : 2D ndarray | ``None``
        The full Hamiltonian to be diagonalized; the basis index runs over
        ``(p0, p1, ..., p{L-1})`` with `p0` most significant.
    E : ndarray | ``None``
        1D array of eigenvalues.
    V : ndarray | ``None``
        Eigenvectors as columns.
    """
    def __init__(self, model, max_size=2**14):
        self.model = model
        self.dim = int(np.prod(model.H_MPO.dim))
        if self.dim > max_size:
            raise ValueError(f"Hilbert space dimension {self.dim:d} too large for ED")
        self.full_H = None
        self.E = None
        self.V = None

    def build_full_H_from_mpo(self):
        """Calculate self.full_H from self.model.H_MPO."""
        H_MPO = self.model.H_MPO
        T = H_MPO.get_W(0).to_dense()[0]  # wR, p, p*
        for i in range(1, H_MPO.L):
            W = H_MPO.get_W(i).to_dense()  # wL, wR, p, p*
            T = np.tensordot(T, W, axes=(0, 0))  # (p.), (p*.), wR, p, p*
            T = np.transpose(T, (2, 0, 3, 1, 4))
            c, a, s, b, t = T.shape
            T = T.reshape(c, a * s, b * t)
        assert T.shape[0] == 1
        self.full_H = T[0]
        return self.full_H

    def full_diagonalization(self):
        """Full diagonalization to obtain all eigenvalues and eigenvectors."""
        if self.full_H is None:
            self.build_full_H_from_mpo()
        self.E, self.V = np.linalg.eigh(self.full_H)

    def groundstate(self):
        """Pick the ground state energy and ground state from ``self.V``.

        Returns
        -------
        E0 : float
            Ground state energy (possibly for the given charge sector).
        psi0 : ndarray
            Ground state.
        """
        if self.E is None:
            self.full_diagonalization()
        return self.E[0], self.V[:, 0]

    def matvec(self, psi):
        if self.full_H is None:
            self.build_full_H_from_mpo()
        return np.dot(self.full_H, psi)

    def sparse_diag(self, k=1, which='SA'):
        """Lowest `k` eigenvalues with :func:`scipy.sparse.linalg.eigsh`, without storing V."""
        if self.full_H is None:
            self.build_full_H_from_mpo()
        E, V = scipy.sparse.linalg.eigsh(self.full_H, k=k, which=which)
        piv = np.argsort(E)
        return E[piv], V[:, piv]

    def mps_to_full(self, mps):
        """Contract an MPS along the virtual bonds and return its full wave function."""
        return mps.to_full_vector()

    def energy(self, mps):
        """Expectation value ``<psi|H|psi>/<psi|psi>`` of a (small) MPS."""
        psi = self.mps_to_full(mps)
        return np.vdot(psi, self.matvec(psi)).real / np.vdot(psi, psi).real
