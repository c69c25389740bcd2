"""Lanczos algorithm for the ground state of a hermitian linear operator.

The solver only calls ``H.matvec(vec)``, such that the same control flow is used for a dense
test matrix, the serial two-site effective Hamiltonian and the distributed one, where each
`matvec` is a full round of the master/worker protocol.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
from scipy.linalg import eigh_tridiagonal
import logging
logger = logging.getLogger(__name__)

from .sparse import LinearOperator
from ..tools.params import asConfig

__all__ = ['LanczosGroundState', 'lanczos']


class LanczosGroundState:
    r"""Lanczos algorithm to find the ground state.

    **Assumes** that `H` is hermitian.

    We build an orthonormal basis ``psi0 = b[0], b[1], ...`` of the Krylov space
    with the three-term recurrence
    ``beta[m-1] b[m] = H b[m-1] - alpha[m-1] b[m-1] - beta[m-2] b[m-2]``,
    where ``alpha[m] = <b[m]|H|b[m]>`` are the diagonal and ``beta[m]`` the off-diagonal entries
    of the tridiagonal projection of `H` into the Krylov space.
    After each step, only the lowest eigenvalue of the tridiagonal matrix is computed;
    the eigenvector is only needed once at the end.

    Parameters
    ----------
    H : :class:`~pdmrg.linalg.sparse.LinearOperator`
        A hermitian linear operator.
    psi0 : ndarray
        The starting vector defining the Krylov basis, of shape ``H.vector_shape``.
        For finding the ground state, this should be the best guess available.
    options : dict
        Further optional parameters as described in :cfg:config:`LanczosGroundState`.

    Options
    -------
    .. cfg:config :: LanczosGroundState

        N_max : int
            Maximum number of Krylov vectors to build, at least 2.
        E_tol : float
            Stop if the improvement of the energy in one step is smaller than `E_tol`.
        cutoff : float
            Cutoff to abort if the norm of the new Krylov vector is too small, relative to
            the norm of `H` applied to the normalized starting vector.
            This is necessary if the rank of `H` is smaller than `N_max`, but it's *not* the
            error tolerance for final values!

    Attributes
    ----------
    options : :class:`~pdmrg.tools.params.Config`
        Optional parameters.
    H : :class:`~pdmrg.linalg.sparse.LinearOperator`
        The linear operator used for building the Krylov space.
    psi0 : ndarray
        The starting vector; gets normalized during :meth:`run`.
    N_max, E_tol, _cutoff :
        Parameters as described in the options.
    Es : list of float
        ``Es[m]`` is the lowest eigenvalue of the tridiagonal matrix with ``m+1`` Krylov vectors.
    """
    def __init__(self, H, psi0, options):
        if not isinstance(H, LinearOperator):
            raise TypeError("expected a LinearOperator, got " + type(H).__name__)
        self.H = H
        self.psi0 = psi0
        self.options = options = asConfig(options, self.__class__.__name__)
        self.N_max = options.get('N_max', 100, int)
        self.E_tol = options.get('E_tol', 1.e-9, 'real')
        if self.N_max < 2:
            raise ValueError("Should allow at least 2 Krylov vectors.")
        eps = np.finfo(np.result_type(psi0.dtype, np.float64)).eps
        self._cutoff = options.get('cutoff', eps * 100, 'real')
        self.Es = []

    def run(self):
        """Find the ground state of H.

        Returns
        -------
        E0 : float
            Ground state energy (estimate).
        psi0 : ndarray
            Ground state vector (estimate), normalized.
        N : int
            Used dimension of the Krylov space, i.e., how many vectors were built.
        """
        H = self.H
        psi = self.psi0 / np.linalg.norm(self.psi0)
        self.psi0 = psi
        dim = psi.size
        basis = [psi]
        w = H.matvec(psi)
        alpha = [np.vdot(psi, w).real]
        # the residual is compared relative to the energy scale of `H`
        cutoff = self._cutoff * max(1., np.linalg.norm(w))
        beta = []
        self.Es = [alpha[0]]
        m = 0
        while True:
            m += 1
            w = w - alpha[m - 1] * basis[m - 1]
            if m > 1:
                w = w - beta[m - 2] * basis[m - 2]
            norm = np.linalg.norm(w)
            if norm < cutoff:
                # Krylov space exhausted: `basis` spans an invariant subspace
                if m == 1:
                    logger.debug("Lanczos: psi0 is an eigenvector, E0=%.14f", alpha[0])
                    return alpha[0], psi, 1
                E0, psi0 = self._ground_state(alpha, beta, basis, m)
                logger.debug("Lanczos: invariant subspace after N=%d, E0=%.14f", m, E0)
                return E0, psi0, m
            beta.append(norm)
            b = w / norm
            basis.append(b)
            w = H.matvec(b)
            alpha.append(np.vdot(b, w).real)
            E = eigh_tridiagonal(np.array(alpha),
                                 np.array(beta),
                                 eigvals_only=True,
                                 select='i',
                                 select_range=(0, 0))[0]
            Delta_E = self.Es[-1] - E
            self.Es.append(E)
            if Delta_E < self.E_tol or m + 1 >= dim:
                break
            if m == self.N_max - 1:
                logger.debug("Lanczos: not converged after N_max=%d steps, DeltaE0=%.3e",
                             self.N_max, Delta_E)
                break
        E0, psi0 = self._ground_state(alpha, beta, basis, m + 1)
        logger.debug("Lanczos N=%d, E0=%.14f, DeltaE0=%.3e", m + 1, E0, Delta_E)
        return E0, psi0, m + 1

    def _ground_state(self, alpha, beta, basis, N):
        """Diagonalize the first `N` Krylov vectors and build ``psi0 = sum_k v[k] basis[k]``."""
        E, v = eigh_tridiagonal(np.array(alpha[:N]),
                                np.array(beta[:N - 1]),
                                select='i',
                                select_range=(0, 0))
        v = v[:, 0]
        psi0 = v[0] * basis[0]
        for k in range(1, N):
            psi0 = psi0 + v[k] * basis[k]
        psi0_norm = np.linalg.norm(psi0)
        if abs(1. - psi0_norm) > 1.e-5:
            # One reason can be that `H` is not Hermitian
            logger.warning("poorly conditioned H matrix in Lanczos! |psi_0| = %f", psi0_norm)
        return E[0], psi0 / psi0_norm


def lanczos(H, psi, options={}):
    """Simple wrapper calling ``LanczosGroundState(H, psi, options).run()``

    Parameters
    ----------
    H, psi, options:
        See :class:`LanczosGroundState`.

    Returns
    -------
    E0, psi0, N :
        See :meth:`LanczosGroundState.run`.
    """
    return LanczosGroundState(H, psi, options).run()
