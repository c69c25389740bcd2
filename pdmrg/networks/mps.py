"""Finite matrix product states (MPS).

An MPS represents a wave function of `L` sites as a product of tensors ``B[i]`` with legs
``(vL, p, vR)``; the left- and right-most bonds are trivial legs of dimension 1::

    |     vL ->- B[0] ->- B[1] ->- ... ->- B[L-1] ->- vR
    |             |        |                 |
    |             ^        ^                 ^
    |             p        p                 p

Each tensor carries a tag :class:`CanonicalType`: ``LEFT`` for ``sum_{vL, p} B^* B = 1`` on the
`vR` leg, ``RIGHT`` for ``sum_{p, vR} B B^* = 1`` on the `vL` leg and ``NONE`` otherwise.
If :attr:`FiniteMPS.center` is not ``None``, all tensors left of it are left-canonical and all
tensors right of it are right-canonical; :meth:`FiniteMPS.set_B` invalidates the center.

During a DMRG sweep only the tensors close to the active bond are kept in RAM: the others are
written to a :class:`~pdmrg.tools.cache.DictCache` with :meth:`FiniteMPS.dump_tensor` under
the key ``"B{i}"`` and read back with :meth:`FiniteMPS.load_tensor`.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
from enum import IntEnum
import logging
logger = logging.getLogger(__name__)

from ..linalg.truncation import svd_theta, entanglement_entropy
from ..tools.cache import DictCache

__all__ = ['CanonicalType', 'FiniteMPS']


class CanonicalType(IntEnum):
    """Canonical form tag of a single MPS tensor."""
    NONE = 0
    LEFT = 1
    RIGHT = 2


class FiniteMPS:
    """A finite MPS with open boundary conditions.

    Parameters
    ----------
    sites : list of :class:`~pdmrg.networks.site.Site`
        Defines the local Hilbert space for each site.
    Bs : list of 3D arrays
        The tensors with legs ``(vL, p, vR)``.
    form : None | list of :class:`CanonicalType`
        The canonical form tag of each tensor. ``None`` means ``NONE`` for every site.
    center : None | int
        The canonical center, if known.

    Attributes
    ----------
    sites : list of :class:`~pdmrg.networks.site.Site`
        Defines the local Hilbert space for each site.
    L : int
        Number of sites.
    form : list of :class:`CanonicalType`
        The canonical form tag of each tensor.
    center : None | int
        All tensors left of `center` are left-canonical, all right of it right-canonical.
    cache : :class:`~pdmrg.tools.cache.DictCache`
        Storage for tensors released with :meth:`dump_tensor`.
    """
    def __init__(self, sites, Bs, form=None, center=None):
        self.sites = list(sites)
        self.L = len(self.sites)
        self._B = [np.asarray(B) for B in Bs]
        if form is None:
            form = [CanonicalType.NONE] * self.L
        self.form = [CanonicalType(f) for f in form]
        self.center = center
        self.cache = DictCache.trivial()
        self.test_sanity()

    def test_sanity(self):
        """Sanity check, raises ValueErrors, if something is wrong."""
        if len(self._B) != self.L or len(self.form) != self.L:
            raise ValueError("wrong len of `Bs` or `form`")
        if self._B[0].shape[0] != 1 or self._B[-1].shape[2] != 1:
            raise ValueError("finite MPS needs trivial boundary legs")
        for i, (B, site) in enumerate(zip(self._B, self.sites)):
            if B.ndim != 3 or B.shape[1] != site.dim:
                raise ValueError(f"wrong shape {B.shape!r} of B[{i:d}]")
            if i + 1 < self.L and B.shape[2] != self._B[i + 1].shape[0]:
                raise ValueError(f"bond dimension mismatch between sites {i:d} and {i+1:d}")
        if self.center is not None and not 0 <= self.center < self.L:
            raise ValueError("invalid center")

    @classmethod
    def from_product_state(cls, sites, p_state, dtype=np.float64):
        """Construct a matrix product state from a given product state.

        Parameters
        ----------
        sites : list of :class:`~pdmrg.networks.site.Site`
            The sites defining the local Hilbert space.
        p_state : list of {int | str | 1D array}
            Defines the product state to be represented; one entry for each site of the MPS.
            An entry of `str` type is translated to an `int` with the help of
            :meth:`~pdmrg.networks.site.Site.state_index`.
            An entry of `int` type represents the physical index of the state to be used.
            An entry which is a 1D array defines the complete wavefunction on that site.
        dtype : type or string
            The data type of the array entries.

        Returns
        -------
        product_mps : :class:`FiniteMPS`
            An MPS representing the specified product state; it is normalized if the
            one-site wave functions are and has center 0.
        """
        sites = list(sites)
        if len(p_state) != len(sites):
            raise ValueError("Length of p_state does not match number of sites.")
        Bs = []
        for site, p in zip(sites, p_state):
            B = np.zeros((1, site.dim, 1), dtype)
            if isinstance(p, (str, int, np.integer)):
                B[0, site.state_index(p), 0] = 1.
            else:
                B[0, :, 0] = p
            Bs.append(B)
        form = [CanonicalType.NONE] + [CanonicalType.RIGHT] * (len(sites) - 1)
        res = cls(sites, Bs, form, center=0)
        for i in range(1, res.L):
            if not res.is_right_canonical(i):
                res.form[i] = CanonicalType.NONE
                res.center = None
        return res

    @classmethod
    def from_random(cls, sites, chi, dtype=np.float64, rng=None):
        """Random MPS with bond dimensions at most `chi`, normalized and centered at site 0.

        Parameters
        ----------
        sites : list of :class:`~pdmrg.networks.site.Site`
            The sites defining the local Hilbert space.
        chi : int
            Maximal bond dimension.
        dtype : type or string
            The data type of the array entries.
        rng : None | int | :class:`numpy.random.Generator`
            Random number generator or seed.
        """
        rng = np.random.default_rng(rng)
        sites = list(sites)
        L = len(sites)
        dims = [site.dim for site in sites]
        chis = [1]
        for i in range(1, L):
            chis.append(int(min(chi, np.prod(dims[:i]), np.prod(dims[i:]))))
        chis.append(1)
        Bs = []
        for i in range(L):
            shape = (chis[i], dims[i], chis[i + 1])
            B = rng.normal(size=shape)
            if np.iscomplexobj(np.zeros(1, dtype)):
                B = B + 1.j * rng.normal(size=shape)
            Bs.append(B.astype(dtype))
        res = cls(sites, Bs)
        res.centralize(0)
        res.normalize()
        return res

    def copy(self):
        """Returns a copy of `self` (the tensors are copied, the cache is shared)."""
        res = FiniteMPS(self.sites, [B.copy() for B in self._B], self.form, self.center)
        res.cache = self.cache
        return res

    @property
    def chi(self):
        """Dimensions of the (nontrivial) virtual bonds."""
        return [B.shape[2] for B in self._B[:-1]]

    @property
    def dtype(self):
        return np.result_type(*[B.dtype for B in self._B if B is not None])

    def get_B(self, i):
        """Return the tensor on site `i` with legs ``(vL, p, vR)``."""
        B = self._B[i]
        if B is None:
            raise ValueError(f"B[{i:d}] was released; call `load_tensor({i:d})` first")
        return B

    def set_B(self, i, B, form=CanonicalType.NONE):
        """Set the tensor on site `i`; this invalidates the canonical center."""
        self._B[i] = B
        self.form[i] = CanonicalType(form)
        self.center = None

    # canonical form

    def is_left_canonical(self, i, eps=1.e-10):
        """Check ``sum_{vL, p} B^*[vL, p, vR*] B[vL, p, vR] == eye(vR)``."""
        B = self.get_B(i)
        M = np.tensordot(B.conj(), B, axes=([0, 1], [0, 1]))
        return np.linalg.norm(M - np.eye(M.shape[0])) < eps

    def is_right_canonical(self, i, eps=1.e-10):
        """Check ``sum_{p, vR} B[vL, p, vR] B^*[vL*, p, vR] == eye(vL)``."""
        B = self.get_B(i)
        M = np.tensordot(B, B.conj(), axes=([1, 2], [1, 2]))
        return np.linalg.norm(M - np.eye(M.shape[0])) < eps

    def left_canonicalize_site(self, i):
        """Make `B[i]` left-canonical with a QR decomposition, absorbing `R` into `B[i+1]`."""
        B = self.get_B(i)
        vL, p, vR = B.shape
        Q, R = np.linalg.qr(B.reshape(vL * p, vR))
        self._B[i] = Q.reshape(vL, p, Q.shape[1])
        self.form[i] = CanonicalType.LEFT
        if i + 1 < self.L:
            self._B[i + 1] = np.tensordot(R, self.get_B(i + 1), axes=(1, 0))
            self.form[i + 1] = CanonicalType.NONE
        else:
            # only a phase/norm left: keep it
            self._B[i] = self._B[i] * R[0, 0]
            self.form[i] = CanonicalType.NONE

    def right_canonicalize_site(self, i):
        """Make `B[i]` right-canonical with a QR decomposition, absorbing `R` into `B[i-1]`."""
        B = self.get_B(i)
        vL, p, vR = B.shape
        Q, R = np.linalg.qr(B.reshape(vL, p * vR).T)
        # B = R^T Q^T
        self._B[i] = Q.T.reshape(Q.shape[1], p, vR)
        self.form[i] = CanonicalType.RIGHT
        if i > 0:
            self._B[i - 1] = np.tensordot(self.get_B(i - 1), R.T, axes=(2, 0))
            self.form[i - 1] = CanonicalType.NONE
        else:
            self._B[i] = self._B[i] * R[0, 0]
            self.form[i] = CanonicalType.NONE

    def centralize(self, c):
        """Bring the MPS into mixed canonical form with center `c`.

        Afterwards, all tensors with index ``< c`` are left-canonical and all tensors with
        index ``> c`` are right-canonical. Tensors already tagged with the right form are kept.
        """
        if not 0 <= c < self.L:
            raise ValueError(f"center {c:d} out of range")
        if self.center == c:
            return
        for i in range(c):
            if self.form[i] != CanonicalType.LEFT:
                self.left_canonicalize_site(i)
        for i in range(self.L - 1, c, -1):
            if self.form[i] != CanonicalType.RIGHT:
                self.right_canonicalize_site(i)
        self.form[c] = CanonicalType.NONE
        self.center = c

    def norm(self):
        """Norm ``sqrt(<psi|psi>)``."""
        if self.center is not None:
            return np.linalg.norm(self.get_B(self.center))
        return np.sqrt(abs(self.overlap(self)))

    def normalize(self):
        """Normalize the state; only the center tensor (or the first one) changes."""
        norm = self.norm()
        i = self.center if self.center is not None else 0
        self._B[i] = self.get_B(i) / norm
        return norm

    def overlap(self, other):
        """Compute the overlap ``<self|other>``."""
        if self.L != other.L:
            raise ValueError("different length")
        E = np.ones((1, 1))  # vR*, vR
        for i in range(self.L):
            E = np.tensordot(E, other.get_B(i), axes=(1, 0))  # vR*, p, vR
            E = np.tensordot(self.get_B(i).conj(), E, axes=([0, 1], [0, 1]))
        return E[0, 0]

    def to_full_vector(self):
        """Contract the MPS into the full wave function of length ``prod(d)``.

        The first site is the most significant index. Only useful for small systems.
        """
        psi = self.get_B(0)[0]  # p, vR
        for i in range(1, self.L):
            psi = np.tensordot(psi, self.get_B(i), axes=(-1, 0))
        return psi.reshape(-1)

    def entanglement_entropy(self):
        """Von Neumann entanglement entropy for each bond ``(i, i+1)``."""
        psi = self.copy()
        psi.centralize(0)
        psi.normalize()
        S_list = []
        for i in range(self.L - 1):
            B = psi.get_B(i)
            vL, p, vR = B.shape
            _, S, Vh = np.linalg.svd(B.reshape(vL * p, vR), full_matrices=False)
            S_list.append(entanglement_entropy(S))
            SVh = S[:, np.newaxis] * Vh
            psi._B[i + 1] = np.tensordot(SVh, psi.get_B(i + 1), axes=(1, 0))
        return np.array(S_list)

    def truncate(self, trunc_params):
        """Compress the MPS with a left-to-right sweep of truncated SVDs.

        The state is first brought into canonical form with center 0 and normalized;
        then each bond ``(i, i+1)`` is truncated with the normalized Schmidt values.
        Afterwards, the center is at site ``L-1``.

        Parameters
        ----------
        trunc_params : dict
            Truncation parameters as described in :func:`~pdmrg.linalg.truncation.truncate`.

        Returns
        -------
        trunc_errs : list of :class:`~pdmrg.linalg.truncation.TruncationError`
            The truncation error introduced on each bond.
        """
        self.centralize(0)
        self.normalize()
        trunc_errs = []
        for i in range(self.L - 1):
            B = self.get_B(i)
            vL, p, vR = B.shape
            U, S, Vh, err, _ = svd_theta(B.reshape(vL * p, vR), trunc_params)
            trunc_errs.append(err)
            self._B[i] = U.reshape(vL, p, len(S))
            self.form[i] = CanonicalType.LEFT
            SVh = S[:, np.newaxis] * Vh
            self._B[i + 1] = np.tensordot(SVh, self.get_B(i + 1), axes=(1, 0))
            self.form[i + 1] = CanonicalType.NONE
        self.center = self.L - 1
        return trunc_errs

    # storage of released tensors

    def dump_tensor(self, i, release=True):
        """Save the tensor of site `i` to :attr:`cache` under the key ``"B{i}"``.

        If `release`, the in-memory reference is dropped; :meth:`get_B` fails until
        :meth:`load_tensor` is called.
        """
        self.cache[f"B{i:d}"] = self.get_B(i)
        if release:
            self._B[i] = None

    def load_tensor(self, i):
        """Load the tensor of site `i` back from :attr:`cache`, if it was released."""
        if self._B[i] is None:
            self._B[i] = self.cache[f"B{i:d}"]
        return self._B[i]

    def load_all(self):
        """Load all released tensors back into RAM."""
        for i in range(self.L):
            self.load_tensor(i)

    def is_loaded(self, i):
        return self._B[i] is not None

    def __repr__(self):
        if all(B is not None for B in self._B):
            return f"<FiniteMPS L={self.L:d}, chi={self.chi!r}, center={self.center!r}>"
        return f"<FiniteMPS L={self.L:d}, center={self.center!r}>"
