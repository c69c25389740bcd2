r"""Truncation of Schmidt values.

After each two-site update, the optimized wave function `theta` is split by a singular value
decomposition, which is a Schmidt decomposition
:math:`|\psi\rangle = \sum_{a} \lambda_a |L_a\rangle |R_a\rangle` for a normalized state.
The function :func:`truncate` picks the Schmidt values to keep, depending on the parameters
`Dmin`, `Dmax`, `trunc_err` and `svd_min`, and :class:`TruncationError` keeps track of the
discarded weight :math:`\epsilon = \sum_{a\, discarded} \lambda_a^2`.

The matrix `theta` of a state with a conserved charge is block diagonal up to permutations of
rows and columns. :func:`find_theta_blocks` detects these blocks from the non-zero pattern,
such that each block can be decomposed independently (possibly on a different MPI rank),
and :func:`combine_block_svds` truncates the joint spectrum of all blocks.
:func:`svd_theta` is the single-process combination of the three steps.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import scipy.sparse
from scipy.sparse.csgraph import connected_components
import warnings

from .svd_robust import svd
from ..tools.params import asConfig

__all__ = ['TruncationError', 'truncate', 'find_theta_blocks', 'svd_block', 'combine_block_svds',
           'svd_theta', 'entanglement_entropy']


class TruncationError:
    r"""Class representing a truncation error.

    The default initialization represents "no truncation".

    Parameters
    ----------
    eps, ov : float
        See below.

    Attributes
    ----------
    eps : float
        The total sum of all discarded Schmidt values squared.
    ov : float
        A lower bound for the overlap :math:`|\langle \psi_{trunc} | \psi_{correct} \rangle|^2`
        (assuming normalization of both states).
    """
    def __init__(self, eps=0., ov=1.):
        self.eps = eps
        self.ov = ov

    def copy(self):
        return TruncationError(self.eps, self.ov)

    @classmethod
    def from_norm(cls, norm_new, norm_old=1.):
        r"""Construct TruncationError from the norm of the kept and all Schmidt values."""
        eps = 1. - norm_new**2 / norm_old**2
        return cls(eps, 1. - 2. * eps)

    @classmethod
    def from_S(cls, S_discarded, norm_old=None):
        r"""Construct TruncationError from discarded singular values.

        Parameters
        ----------
        S_discarded : 1D numpy array
            The singular values discarded.
        norm_old : float
            Norm of all Schmidt values before truncation, :math:`\sqrt{\sum_{a} \lambda_a^2}`.
            Default (``None``) is 1.
        """
        eps = np.sum(np.square(S_discarded))
        if norm_old:
            eps /= norm_old * norm_old
        return cls(eps, 1. - 2. * eps)

    def __add__(self, other):
        res = TruncationError()
        res.eps = self.eps + other.eps
        res.ov = self.ov * other.ov
        return res

    @property
    def ov_err(self):
        """Error ``1.-ov`` of the overlap with the correct state."""
        return 1. - self.ov

    def __repr__(self):
        if self.eps != 0 or self.ov != 1.:
            return "TruncationError(eps={eps:.4e}, ov={ov:.10f})".format(eps=self.eps, ov=self.ov)
        else:
            return "TruncationError()"


def truncate(S, options):
    """Given a Schmidt spectrum `S`, determine which values to keep.

    Options
    -------
    .. cfg:config:: trunc_params

        Dmax : int
            Keep at most `Dmax` Schmidt values.
        Dmin : int
            Keep at least `Dmin` Schmidt values, or all of them if there are fewer.
        svd_min : float
            Discard all small Schmidt values ``S[i] < svd_min``.
        trunc_err : float
            Discard the smallest Schmidt values as long as
            ``sum_{i discarded} S[i]**2 <= trunc_err``.

    Parameters
    ----------
    S : 1D array
        Schmidt values (as returned by an SVD), not necessarily sorted.
        Should be normalized to ``np.sum(S*S) == 1.``.
    options: dict-like
        Config with constraints for the truncation, see :cfg:config:`trunc_params`.
        If `Dmax`, `svd_min` or `trunc_err` can not be fulfilled (without violating a previous
        one), it is ignored. `Dmin` always wins over `svd_min` and `trunc_err`.
        A value ``None`` indicates that the constraint should be ignored.

    Returns
    -------
    mask : 1D bool array
        Index mask, True for indices which should be kept.
    norm_new : float
        The norm of the truncated Schmidt values, ``np.linalg.norm(S[mask])``.
    err : :class:`TruncationError`
        The error of the represented state which is introduced due to the truncation.
    """
    options = asConfig(options, "trunc_params")
    Dmax = options.get('Dmax', 100, int)
    Dmin = options.get('Dmin', 1, int)
    svd_min = options.get('svd_min', 1.e-14, 'real')
    trunc_err = options.get('trunc_err', 1.e-10, 'real')

    if trunc_err is not None and trunc_err >= 1.:
        raise ValueError("trunc_err >= 1.")
    if Dmax is not None and Dmin is not None and Dmin > Dmax:
        raise ValueError(f"Dmin={Dmin:d} > Dmax={Dmax:d}")
    if not np.any(S > 1.e-10):
        warnings.warn("no Schmidt value above 1.e-10", stacklevel=2)
    if np.any(S < -1.e-10):
        warnings.warn("negative Schmidt values!", stacklevel=2)

    # use 1.e-100 as replacement for <=0 values for a well-defined logarithm.
    logS = np.log(np.choose(S <= 0., [S, 1.e-100 * np.ones(len(S))]))
    piv = np.argsort(logS, kind='stable')  # sort *ascending*.
    logS = logS[piv]
    # goal: find an index 'cut' such that we keep piv[cut:]
    good = np.ones(len(piv), dtype=np.bool_)

    if Dmax is not None:
        good2 = np.zeros(len(piv), dtype=np.bool_)
        good2[-Dmax:] = True
        good = _combine_constraints(good, good2, "Dmax")

    if svd_min is not None:
        good2 = np.greater_equal(logS, np.log(svd_min))
        good = _combine_constraints(good, good2, "svd_min")

    if trunc_err is not None:
        good2 = (np.cumsum(S[piv]**2) > trunc_err)
        good = _combine_constraints(good, good2, "trunc_err")

    cut = np.nonzero(good)[0][0]  # smallest possible cut: keep as many S as allowed
    if Dmin is not None:
        # fewer values than `Dmin` exist: keep all of them
        cut = min(cut, max(len(S) - Dmin, 0))
    mask = np.zeros(len(S), dtype=np.bool_)
    np.put(mask, piv[cut:], True)
    norm_new = np.linalg.norm(S[mask])
    return mask, norm_new, TruncationError.from_S(S[np.logical_not(mask)])


def find_theta_blocks(theta):
    """Find the independent blocks of a matrix.

    Rows and columns are the nodes of a bipartite graph, connected where ``theta != 0``.
    Each connected component containing at least one row and one column is a block;
    rows/columns without any non-zero entry belong to no block.

    Parameters
    ----------
    theta : 2D ndarray
        The matrix to be decomposed.

    Returns
    -------
    blocks : list of (1D int array, 1D int array)
        For each block the (sorted) row and column indices.
    """
    m, n = theta.shape
    pattern = scipy.sparse.csr_matrix((theta != 0).astype(np.int8))
    graph = scipy.sparse.bmat([[None, pattern], [pattern.T, None]], format='csr')
    num, labels = connected_components(graph, directed=False)
    row_labels = labels[:m]
    col_labels = labels[m:]
    blocks = []
    for c in range(num):
        rows = np.nonzero(row_labels == c)[0]
        cols = np.nonzero(col_labels == c)[0]
        if len(rows) > 0 and len(cols) > 0:
            blocks.append((rows, cols))
    return blocks


def svd_block(block):
    """Reduced SVD ``block = U @ diag(S) @ Vh`` of a single block."""
    U, S, Vh = svd(block, full_matrices=False)
    return U, S, Vh


def combine_block_svds(shape, blocks, block_svds, trunc_params):
    """Truncate the joint spectrum of independently decomposed blocks.

    Parameters
    ----------
    shape : (int, int)
        Shape of the full matrix.
    blocks : list of (1D int array, 1D int array)
        Row and column indices of each block, as returned by :func:`find_theta_blocks`.
    block_svds : list of (U, S, Vh)
        The SVD of each ``theta[np.ix_(*blocks[b])]``.
    trunc_params : dict-like
        Truncation parameters, see :func:`truncate`.

    Returns
    -------
    U : 2D ndarray, shape (shape[0], D)
        Isometry with the left singular vectors as columns.
    S : 1D ndarray
        The kept singular values, sorted descending and normalized to 1.
    Vh : 2D ndarray, shape (D, shape[1])
        Isometry with the right singular vectors as rows.
    err : :class:`TruncationError`
        The truncation error introduced.
    renormalization : float
        Factor, by which S was renormalized.
    """
    if len(blocks) == 0:
        raise ValueError("can't decompose a zero matrix")
    S_all = np.concatenate([S_b for _, S_b, _ in block_svds])
    which_block = np.concatenate([np.full(len(S_b), b) for b, (_, S_b, _) in enumerate(block_svds)])
    which_index = np.concatenate([np.arange(len(S_b)) for _, S_b, _ in block_svds])
    renormalization = np.linalg.norm(S_all)
    S_all = S_all / renormalization
    mask, norm_new, err = truncate(S_all, trunc_params)
    keep = np.nonzero(mask)[0]
    keep = keep[np.argsort(-S_all[keep], kind='stable')]
    D = len(keep)
    dtype = np.result_type(*[U_b.dtype for U_b, _, _ in block_svds])
    U = np.zeros((shape[0], D), dtype)
    Vh = np.zeros((D, shape[1]), dtype)
    for n, k in enumerate(keep):
        rows, cols = blocks[which_block[k]]
        U_b, _, Vh_b = block_svds[which_block[k]]
        q = which_index[k]
        U[rows, n] = U_b[:, q]
        Vh[n, cols] = Vh_b[q, :]
    S = S_all[keep] / norm_new
    return U, S, Vh, err, renormalization * norm_new


def svd_theta(theta, trunc_params):
    """Performs a (block-wise) SVD of the matrix `theta` and truncates it.

    The result is an approximation ``theta ~= (U * (S * renormalization)) @ Vh``.

    Parameters
    ----------
    theta : 2D ndarray
        The matrix, on which the singular value decomposition (SVD) is performed.
        Usually, `theta` represents the wave function, such that the SVD is a Schmidt
        decomposition.
    trunc_params : dict
        Truncation parameters as described in :func:`truncate`.

    Returns
    -------
    U, S, Vh, err, renormalization :
        See :func:`combine_block_svds`.
    """
    blocks = find_theta_blocks(theta)
    block_svds = [svd_block(theta[np.ix_(rows, cols)]) for rows, cols in blocks]
    return combine_block_svds(theta.shape, blocks, block_svds, trunc_params)


def entanglement_entropy(S):
    r"""Von Neumann entropy :math:`-\sum_a \lambda_a^2 \log \lambda_a^2` of normalized `S`."""
    p = np.square(S)
    p = p[p > 1.e-30]
    return -np.sum(p * np.log(p))


def _combine_constraints(good1, good2, warn):
    """return logical_and(good1, good2) if there remains at least one `True` entry.

    Otherwise print a warning and return just `good1`.
    """
    res = np.logical_and(good1, good2)
    if np.any(res):
        return res
    warnings.warn("truncation: can't satisfy constraint for " + warn, stacklevel=3)
    return good1
