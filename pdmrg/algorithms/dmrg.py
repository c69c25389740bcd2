"""Density Matrix Renormalization Group (DMRG) for finite chains.

We implement the two-site DMRG in the modern formulation of matrix product states
:cite:`schollwoeck2011` for finite systems with open boundary conditions.

The function :func:`run` - well - runs one DMRG simulation.
Internally, it generates an instance of :class:`TwoSiteDMRGEngine`, which owns the sweep:
for each bond it builds the effective Hamiltonian from the left and right block-operator
groups, finds its ground state with :class:`~pdmrg.linalg.krylov_based.LanczosGroundState`,
splits the optimized two-site wave function with a truncated SVD and grows the block
operator group on the side that was just finalized.

The parts that involve heavy contractions are hidden behind three methods,
:meth:`~TwoSiteDMRGEngine.make_eff_H`, :meth:`~TwoSiteDMRGEngine.split_theta` and
:meth:`~TwoSiteDMRGEngine.init_grow_right`; the
:class:`~pdmrg.mpi_parallel.dmrg.ParallelTwoSiteDMRGEngine` overrides them to distribute the
work over MPI processes. The sweep itself is the same.

Only the tensors and block-operator groups around the active bond are kept in RAM;
the rest is stored in a :class:`~pdmrg.tools.cache.CacheFile`, on disk if `mps_path` and
`temp_path` are set.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import time
import logging
logger = logging.getLogger(__name__)

from ..linalg.krylov_based import LanczosGroundState
from ..linalg.truncation import svd_theta, entanglement_entropy, TruncationError
from ..networks.mps import CanonicalType
from ..networks.environment import OperatorGroupIO, trivial_group, check_group
from ..tools.params import asConfig
from ..tools.cache import CacheFile, DictCache
from .effective_h import TwoSiteH, init_grow_right

__all__ = ['run', 'TwoSiteDMRGEngine']


def run(psi, model, options):
    r"""Run the DMRG algorithm to find the ground state of the given model.

    Parameters
    ----------
    psi : :class:`~pdmrg.networks.mps.FiniteMPS`
        Initial guess for the ground state, which is to be optimized in-place.
    model : :class:`~pdmrg.models.model.MPOModel`
        The model representing the Hamiltonian for which we want to find the ground state.
    options : dict
        Further optional parameters as described in :cfg:config:`TwoSiteDMRGEngine`.

    Returns
    -------
    info : dict
        A dictionary with keys ``'E', 'bond_statistics', 'sweep_statistics'``
    """
    engine = TwoSiteDMRGEngine(psi, model, options)
    E, _ = engine.run()
    return {
        'E': E,
        'bond_statistics': engine.update_stats,
        'sweep_statistics': engine.sweep_stats,
    }


class TwoSiteDMRGEngine:
    """Two-site DMRG on a finite chain.

    Parameters
    ----------
    psi : :class:`~pdmrg.networks.mps.FiniteMPS`
        Initial guess for the ground state, which is to be optimized in-place.
    model : :class:`~pdmrg.models.model.MPOModel`
        The model representing the Hamiltonian for which we want to find the ground state.
    options : dict
        Further optional parameters.

    Options
    -------
    .. cfg:config :: TwoSiteDMRGEngine

        sweeps : int
            Number of full sweeps, each consisting of a right- and a left-moving half-sweep.
        trunc_params : dict
            Truncation parameters as described in :cfg:config:`trunc_params`.
        lanczos_params : dict
            Parameters for the Lanczos algorithm, see :cfg:config:`LanczosGroundState`.
        mps_path : None | path-like
            Directory to store released MPS tensors in. ``None`` keeps them in RAM.
        temp_path : None | path-like
            Directory to store block-operator groups in. ``None`` keeps them in RAM.
        cache_delete : bool
            Whether to remove the directories `mps_path` and `temp_path` in the end.

    Attributes
    ----------
    psi : :class:`~pdmrg.networks.mps.FiniteMPS`
        The MPS to be optimized in place.
    model : :class:`~pdmrg.models.model.MPOModel`
        The model; only `model.H_MPO` is used.
    H_MPO : :class:`~pdmrg.networks.mpo.MatReprMPO`
        The Hamiltonian.
    options : :class:`~pdmrg.tools.params.Config`
        Optional parameters.
    L : int
        Number of sites.
    E : float
        Energy returned by the last Lanczos run.
    S : 1D ndarray
        Entanglement entropy of each bond at the last update of that bond.
    trunc_err : :class:`~pdmrg.linalg.truncation.TruncationError`
        Truncation error accumulated over the last sweep.
    groups : :class:`~pdmrg.networks.environment.OperatorGroupIO`
        Storage of the block-operator groups.
    update_stats : dict
        For each key ``'i0', 'E_total', 'N_lanczos', 'trunc_err', 'D', 'S', 'lanczos_time',
        'time'`` a list with one value per bond update.
    sweep_stats : dict
        For each key ``'sweep', 'E', 'Delta_E', 'max_trunc_err', 'max_chi', 'time'`` a list with
        one value per sweep.
    """
    def __init__(self, psi, model, options):
        self.options = options = asConfig(options, self.__class__.__name__)
        self.psi = psi
        self.model = model
        self.H_MPO = model.H_MPO
        self.L = L = psi.L
        if L < 3:
            raise ValueError("two-site DMRG needs at least 3 sites")
        if self.H_MPO.L != L:
            raise ValueError("length of MPO and MPS don't match")
        self.sweeps = options.get('sweeps', 4, int)
        self.trunc_params = options.subconfig('trunc_params')
        self.trunc_params.setdefault('Dmin', 1)
        self.trunc_params.setdefault('Dmax', 100)
        self.trunc_params.setdefault('trunc_err', 1.e-10)
        self.trunc_params.setdefault('svd_min', 1.e-14)
        self.lanczos_params = options.subconfig('lanczos_params')
        self.lanczos_params.setdefault('N_max', 100)
        self.lanczos_params.setdefault('E_tol', 1.e-9)
        self.mps_path = options.get('mps_path', None)
        self.temp_path = options.get('temp_path', None)
        self.cache_delete = options.get('cache_delete', True, bool)
        self.E = None
        self.S = np.zeros(L - 1)
        self.trunc_err = TruncationError()
        self.groups = None
        self._left_group = None
        self._right_group = None
        self.time0 = None
        self.update_stats = {
            'i0': [],
            'E_total': [],
            'N_lanczos': [],
            'trunc_err': [],
            'D': [],
            'S': [],
            'lanczos_time': [],
            'time': [],
        }
        self.sweep_stats = {
            'sweep': [],
            'E': [],
            'Delta_E': [],
            'max_trunc_err': [],
            'max_chi': [],
            'time': [],
        }

    def run(self):
        """Run the DMRG sweeps.

        Returns
        -------
        E : float
            The energy of the resulting ground state MPS.
        psi : :class:`~pdmrg.networks.mps.FiniteMPS`
            The MPS representing the ground state after the simulation, complete in RAM.
        """
        self.time0 = time.time()
        mps_cache, group_cache = self._open_caches()
        try:
            self.psi.cache = mps_cache
            self.groups = OperatorGroupIO(group_cache)
            self.init_env()
            E_old = np.nan
            for sweep in range(1, self.sweeps + 1):
                self.trunc_err = TruncationError()
                max_trunc_err = 0.
                for l in range(0, self.L - 2):
                    err = self.update_bond(l, move_right=True)
                    max_trunc_err = max(max_trunc_err, err.eps)
                for l in range(self.L - 2, 0, -1):
                    err = self.update_bond(l, move_right=False)
                    max_trunc_err = max(max_trunc_err, err.eps)
                self._sweep_statistics(sweep, E_old, max_trunc_err)
                E_old = self.E
            self.psi.load_all()
        finally:
            self.psi.cache = DictCache.trivial()
            self._left_group = self._right_group = None
            mps_cache.close()
            group_cache.close()
        logger.info("%s finished after %d sweeps, E = %.14f, max chi = %d",
                    self.__class__.__name__, self.sweeps, self.E, max(self.psi.chi))
        return self.E, self.psi

    def _open_caches(self):
        if self.mps_path is not None:
            mps_cache = CacheFile.open("NumpyStorage",
                                       directory=self.mps_path,
                                       delete=self.cache_delete)
        else:
            mps_cache = CacheFile.trivial()
        if self.temp_path is not None:
            group_cache = CacheFile.open("PickleStorage",
                                         directory=self.temp_path,
                                         delete=self.cache_delete)
        else:
            group_cache = CacheFile.trivial()
        return mps_cache, group_cache

    def init_env(self):
        """Canonicalize `psi` and build the initial block-operator groups.

        Writes the left group of length 0 and the right groups of lengths ``0, ..., L-2``,
        growing from the right boundary inwards, and releases all MPS tensors except site 1.
        """
        psi = self.psi
        L = self.L
        psi.load_all()
        psi.centralize(0)
        psi.normalize()
        dtype = psi.dtype
        self.groups.write('l', 0, trivial_group(dtype))
        right_group = trivial_group(dtype)
        self.groups.write('r', 0, right_group)
        for site in range(L - 1, 1, -1):
            right_group = self.init_grow_right(site, psi.get_B(site), right_group)
            check_group(right_group, self.H_MPO, 'r', L - site)
            self.groups.write('r', L - site, right_group)
        for i in range(L):
            if i != 1:
                psi.dump_tensor(i)
        logger.info("initialized environments in %.3fs", time.time() - self.time0)

    def update_bond(self, l, move_right):
        """Optimize the two-site wave function on sites ``(l, l+1)``.

        Returns
        -------
        err : :class:`~pdmrg.linalg.truncation.TruncationError`
            The truncation error introduced by the SVD.
        """
        t0 = time.time()
        psi = self.psi
        L = self.L
        r = l + 1
        # load whatever is not resident from the previous step
        if move_right:
            if l == 0:
                psi.load_tensor(l)
                left_group = self.groups.read('l', 0)
            else:
                psi.load_tensor(r)
                left_group = self._left_group
            right_group = self.groups.read_and_remove('r', L - 1 - r)
            self._right_group = None
        else:
            if r == L - 1:
                psi.load_tensor(r)
                right_group = self.groups.read('r', 0)
            else:
                psi.load_tensor(l)
                right_group = self._right_group
            left_group = self.groups.read_and_remove('l', l)
            self._left_group = None
        theta = np.tensordot(psi.get_B(l), psi.get_B(r), axes=(2, 0))  # vL, p0, p1, vR
        vL, d0, d1, vR = theta.shape
        # diagonalize
        eff_H = self.make_eff_H(l, left_group, right_group, theta)
        del left_group, right_group
        t_lanczos = time.time()
        E0, theta, N_lanczos = LanczosGroundState(eff_H, theta, self.lanczos_params).run()
        eff_H.finish()
        t_lanczos = time.time() - t_lanczos
        # truncate
        U, S, Vh, err, _ = self.split_theta(theta.reshape(vL * d0, d1 * vR))
        D = len(S)
        if move_right:
            A = U.reshape(vL, d0, D)
            B = (S[:, np.newaxis] * Vh).reshape(D, d1, vR)
            psi.set_B(l, A, CanonicalType.LEFT)
            psi.set_B(r, B, CanonicalType.NONE)
            psi.center = r
            new_group = eff_H.grow_left(A)
            psi.dump_tensor(l)
            self.groups.write('l', l + 1, new_group)
            self._left_group = new_group
        else:
            A = (U * S[np.newaxis, :]).reshape(vL, d0, D)
            B = Vh.reshape(D, d1, vR)
            psi.set_B(l, A, CanonicalType.NONE)
            psi.set_B(r, B, CanonicalType.RIGHT)
            psi.center = l
            new_group = eff_H.grow_right(B)
            psi.dump_tensor(r)
            self.groups.write('r', L - 1 - l, new_group)
            self._right_group = new_group
        del eff_H
        self.E = E0
        self.S[l] = S_bond = entanglement_entropy(S)
        self.trunc_err = self.trunc_err + err
        t_total = time.time() - t0
        logger.info(
            "Site (%4d,%4d) E0 = %.14f TruncErr = %.2e D = %5d Iter = %3d "
            "LanczT = %8.3f TotT = %8.3f S = %10.7f", l, r, E0, err.eps, D, N_lanczos, t_lanczos,
            t_total, S_bond)
        self.update_stats['i0'].append(l)
        self.update_stats['E_total'].append(E0)
        self.update_stats['N_lanczos'].append(N_lanczos)
        self.update_stats['trunc_err'].append(err.eps)
        self.update_stats['D'].append(D)
        self.update_stats['S'].append(S_bond)
        self.update_stats['lanczos_time'].append(t_lanczos)
        self.update_stats['time'].append(time.time() - self.time0)
        return err

    def _sweep_statistics(self, sweep, E_old, max_trunc_err):
        max_chi = max(self.update_stats['D'][-2 * (self.L - 2):])
        self.sweep_stats['sweep'].append(sweep)
        self.sweep_stats['E'].append(self.E)
        self.sweep_stats['Delta_E'].append(self.E - E_old)
        self.sweep_stats['max_trunc_err'].append(max_trunc_err)
        self.sweep_stats['max_chi'].append(max_chi)
        self.sweep_stats['time'].append(time.time() - self.time0)
        logger.info(
            "sweep %3d: E = %.14f, Delta E = %.4e, max S = %.7f, max trunc_err = %.4e, "
            "max D = %d, wall time = %.1fs", sweep, self.E, self.E - E_old, np.max(self.S),
            max_trunc_err, max_chi, time.time() - self.time0)

    # the following methods are overwritten by the MPI-parallel version

    def make_eff_H(self, l, left_group, right_group, theta):
        """Effective Hamiltonian for the bond ``(l, l+1)``, see
        :class:`~pdmrg.algorithms.effective_h.TwoSiteH`."""
        return TwoSiteH(self.H_MPO, l, left_group, right_group, theta.shape, theta.dtype)

    def split_theta(self, theta):
        """Truncated SVD of the two-site wave function, reshaped to a matrix.

        Returns
        -------
        U, S, Vh, err, renormalization :
            See :func:`~pdmrg.linalg.truncation.svd_theta`.
        """
        return svd_theta(theta, self.trunc_params)

    def init_grow_right(self, site, B, right_group):
        """Absorb the right-canonical `B` of `site` into `right_group`."""
        return init_grow_right(self.H_MPO, site, B, right_group)
