"""Matrix product operator (MPO) in a sparse matrix representation.

An MPO is the generalization of an :class:`~pdmrg.networks.mps.FiniteMPS` to operators.
Graphically::

    |      ^        ^        ^
    |      |        |        |
    |  ->- W[0] ->- W[1] ->- W[2] ->- ...
    |      |        |        |
    |      ^        ^        ^

For a Hamiltonian made of local terms, the 'matrices' `W` are very sparse: most entries are zero.
We therefore store each `W` as a :class:`SparseOperatorMatrix`, a grid of local operators
(dense ``(p, p*)`` matrices) where ``None`` stands for a zero entry.
Row index `i` of ``W[n]`` is the MPO bond index left of site `n`, column index `j` the one right
of it, such that ``W[n].cols == W[n+1].rows``.
Finite boundary conditions require ``W[0].rows == 1`` and ``W[-1].cols == 1``.

If the MPO describes a sum of local terms, some bond indices correspond to 'only identities to
the left/right'. We store these indices in `IdL` and `IdR` of the bulk matrix in
:meth:`MatReprMPO.from_bulk`.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import logging
logger = logging.getLogger(__name__)

__all__ = ['SparseOperatorMatrix', 'MatReprMPO']


class SparseOperatorMatrix:
    """A `rows` x `cols` matrix with local operators (or ``None``) as entries.

    Parameters
    ----------
    grid : list of list of {None | 2D array}
        ``grid[i][j]`` is the operator at row `i` and column `j`; ``None`` means zero.

    Attributes
    ----------
    rows, cols : int
        Number of rows and columns.
    d : int
        Dimension of the local Hilbert space.
    grid : list of list of {None | 2D ndarray}
        The entries.
    """
    def __init__(self, grid):
        self.rows = len(grid)
        if self.rows == 0:
            raise ValueError("need at least one row")
        self.cols = len(grid[0])
        self.d = None
        self.grid = []
        for row in grid:
            if len(row) != self.cols:
                raise ValueError("rows of different length")
            new_row = []
            for op in row:
                if op is not None:
                    op = np.asarray(op)
                    if self.d is None:
                        self.d = op.shape[0]
                    if op.shape != (self.d, self.d):
                        raise ValueError(f"operators of inconsistent shape: {op.shape!r}")
                new_row.append(op)
            self.grid.append(new_row)

    @classmethod
    def zeros(cls, rows, cols):
        """Create an empty (all-``None``) matrix."""
        return cls([[None] * cols for _ in range(rows)])

    def __getitem__(self, idx):
        i, j = idx
        return self.grid[i][j]

    def __setitem__(self, idx, op):
        i, j = idx
        if op is not None:
            op = np.asarray(op)
            if self.d is None:
                self.d = op.shape[0]
            if op.shape != (self.d, self.d):
                raise ValueError(f"operator of wrong shape: {op.shape!r}")
        self.grid[i][j] = op

    def nonzero_in_column(self, j):
        """Row indices `i` with ``self[i, j] is not None``, ascending."""
        return [i for i in range(self.rows) if self.grid[i][j] is not None]

    def nonzero_in_row(self, i):
        """Column indices `k` with ``self[i, k] is not None``, ascending."""
        return [k for k in range(self.cols) if self.grid[i][k] is not None]

    def nonzero_entries(self):
        """Number of non-``None`` entries."""
        return sum(op is not None for row in self.grid for op in row)

    def submatrix(self, rows, cols):
        """Select the given `rows` and `cols` (lists of indices) to form a new matrix."""
        return SparseOperatorMatrix([[self.grid[i][j] for j in cols] for i in rows])

    def to_dense(self, d=None):
        """Dense array with legs ``(wL, wR, p, p*)``, zeros for the ``None`` entries."""
        if d is None:
            d = self.d
        dtype = np.result_type(np.float64, *[op.dtype for row in self.grid for op in row
                                             if op is not None])
        W = np.zeros((self.rows, self.cols, d, d), dtype)
        for i, row in enumerate(self.grid):
            for j, op in enumerate(row):
                if op is not None:
                    W[i, j] = op
        return W

    def __repr__(self):
        return (f"<SparseOperatorMatrix {self.rows:d}x{self.cols:d}, "
                f"{self.nonzero_entries():d} non-zero>")


class MatReprMPO:
    """Finite matrix product operator with :class:`SparseOperatorMatrix` tensors.

    The MPO is consumed read-only by the DMRG: it is never modified after construction.

    Parameters
    ----------
    sites : list of :class:`~pdmrg.networks.site.Site`
        Defines the local Hilbert space for each site.
    Ws : list of :class:`SparseOperatorMatrix`
        The matrices of the MPO.

    Attributes
    ----------
    sites : list of :class:`~pdmrg.networks.site.Site`
        Defines the local Hilbert space for each site.
    L : int
        Number of sites.
    """
    def __init__(self, sites, Ws):
        self.sites = list(sites)
        self.L = len(self.sites)
        self._W = list(Ws)
        self.test_sanity()

    @classmethod
    def from_bulk(cls, sites, W_bulk, IdL, IdR):
        """Build a finite MPO from one bulk matrix used on all sites.

        The first site takes only the row `IdL` ("nothing started yet") and the last site only
        the column `IdR` ("everything done") of `W_bulk`.
        On-site operators can be site dependent: a list of bulk matrices is allowed as well.
        """
        L = len(sites)
        if isinstance(W_bulk, SparseOperatorMatrix):
            W_bulk = [W_bulk] * L
        if len(W_bulk) != L:
            raise ValueError("need one bulk matrix per site")
        if L < 2:
            raise ValueError("need at least two sites")
        Ws = list(W_bulk)
        Ws[0] = Ws[0].submatrix([IdL], range(Ws[0].cols))
        Ws[-1] = Ws[-1].submatrix(range(Ws[-1].rows), [IdR])
        return cls(sites, Ws)

    def test_sanity(self):
        """Sanity check, raises ValueErrors, if something is wrong."""
        if len(self._W) != self.L:
            raise ValueError("wrong len of W")
        if self._W[0].rows != 1 or self._W[-1].cols != 1:
            raise ValueError("finite MPO needs trivial boundary legs")
        for n in range(self.L - 1):
            if self._W[n].cols != self._W[n + 1].rows:
                raise ValueError(f"MPO bond dimension mismatch between sites {n:d} and {n+1:d}")
        for n, (W, site) in enumerate(zip(self._W, self.sites)):
            if W.d is not None and W.d != site.dim:
                raise ValueError(f"local dimension mismatch at site {n:d}")

    def get_W(self, i):
        """Return `W` at site `i`."""
        return self._W[i]

    @property
    def chi(self):
        """Dimensions of the (MPO) bonds, including the trivial boundary bonds."""
        return [self._W[0].rows] + [W.cols for W in self._W]

    @property
    def dim(self):
        """List of local physical dimensions."""
        return [site.dim for site in self.sites]

    def __len__(self):
        return self.L

    def __repr__(self):
        return f"<MatReprMPO L={self.L:d}, chi={self.chi!r}>"
