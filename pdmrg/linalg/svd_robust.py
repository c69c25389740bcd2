r"""(More) robust version of singular value decomposition.

Both :func:`numpy.linalg.svd` and :func:`scipy.linalg.svd` call the LAPACK function `#gesdd`
by default, which is fast but can fail with ``LinalgError("SVD did not converge")``.
The function :func:`svd` keeps calling `gesdd`, and only falls back to the slower but robust
`#gesvd` if that fails.

>>> from pdmrg.linalg.svd_robust import svd
>>> U, S, VT = svd([[1., 1.], [0., 1.]])
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import scipy.linalg
import warnings

__all__ = ['svd']


def svd(a, full_matrices=False, compute_uv=True, check_finite=True, lapack_driver='gesdd',
        warn=True):
    """Wrapper around :func:`scipy.linalg.svd` with `gesvd` backup plan.

    Parameters not described below are as in :func:`scipy.linalg.svd`, except that we default
    to the reduced decomposition ``full_matrices=False``.

    Parameters
    ----------
    lapack_driver : {'gesdd', 'gesvd'}, optional
        Whether to use the more efficient divide-and-conquer approach (``'gesdd'``)
        or general rectangular approach (``'gesvd'``) to compute the SVD.
        If ``'gesdd'`` fails, ``'gesvd'`` is used as backup.
    warn : bool
        Whether to create a warning when the SVD failed.

    Returns
    -------
    U, S, Vh : ndarray
        As described in doc-string of :func:`scipy.linalg.svd`.
    """
    if lapack_driver not in ['gesdd', 'gesvd']:
        raise ValueError("invalid `lapack_driver`: " + str(lapack_driver))
    if lapack_driver == 'gesdd':
        try:
            return scipy.linalg.svd(a, full_matrices, compute_uv, False, check_finite)
        except np.linalg.LinAlgError:
            if warn:
                warnings.warn("SVD with lapack_driver 'gesdd' failed. Use backup 'gesvd'",
                              stacklevel=2)
    return scipy.linalg.svd(a, full_matrices, compute_uv, False, check_finite, 'gesvd')
