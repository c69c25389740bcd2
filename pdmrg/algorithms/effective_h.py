r"""Two-site effective Hamiltonian, split into independent term-group tasks.

The effective two-site Hamiltonian at the bond ``(l, r=l+1)`` looks like this::

        |        .---       ---.
        |        |    |   |    |
        |       LP----W0--W1---RP
        |        |    |   |    |
        |        .---       ---.

with the left group ``LP`` (one operator per row `i` of ``W0 = W[l]``) and the right group
``RP`` (one operator per column `k` of ``W1 = W[r]``). Written out, it is a sum of terms
:class:`EffectiveHamiltonianTerm` ``LP[i] (x) W0[i, j] (x) W1[j, k] (x) RP[k]``, one for every
combination where both MPO entries are non-zero.

Grouping the terms by the MPO bond index `j` between the two sites gives the
:class:`TermGroupTask`, the unit of work that can be sent to another process.
Each task factorizes into a left and a right half::

        |        .---          ---.
        |        |    |      |    |
        |       LP----W0-j j-W1---RP      =   sum_j   block_site_op[j] . theta . site_block_op[j]
        |        |    |      |    |
        |        .---          ---.

The functions :func:`block_site_op`, :func:`site_block_op`, :func:`task_matvec`,
:func:`grow_left_op` and :func:`grow_right_op` do all the numerical work of a task; they are
shared by the serial :class:`TwoSiteH` and the distributed
:class:`~pdmrg.mpi_parallel.dmrg.DistributedTwoSiteH`, such that both give bitwise
identical results. Partial results are always summed in ascending task order.

Tensor legs: ``theta`` has legs ``(vL, p0, p1, vR)``, ``block_site_op`` has
``(vR*, p0*, vR, p0)`` = ``(x', s', x, s)`` and ``site_block_op`` has
``(p1*, vL*, p1, vL)`` = ``(t', y', t, y)``; the starred legs are the bra (output) legs.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
from collections import namedtuple
import logging
logger = logging.getLogger(__name__)

from ..linalg.sparse import LinearOperator
from ..tools.misc import sum_none

__all__ = [
    'EffectiveHamiltonianTerm', 'TermGroupTask', 'assemble_terms', 'direct_sum_matvec',
    'build_tasks', 'build_init_tasks', 'block_site_op', 'site_block_op', 'task_matvec',
    'grow_left_op', 'grow_right_op', 'sum_task_results', 'TwoSiteH', 'init_grow_right'
]

EffectiveHamiltonianTerm = namedtuple('EffectiveHamiltonianTerm',
                                      ['i', 'j', 'k', 'left_op', 'site_op_l', 'site_op_r',
                                       'right_op'])
EffectiveHamiltonianTerm.__doc__ = """One additive term of the two-site effective Hamiltonian.

The indices `i`, `j`, `k` are the MPO bond indices left of, between and right of the two sites.
`left_op` and `right_op` may be ``None`` for a vanishing block operator.
"""

TermGroupTask = namedtuple('TermGroupTask', ['task_id', 'left_ops', 'right_ops'])
TermGroupTask.__doc__ = """The terms of the effective Hamiltonian with MPO bond index `task_id`.

`left_ops` maps row indices `i` of the left MPO matrix to the non-zero left block operators
that have a non-zero ``W_l[i, task_id]``; similarly, `right_ops` maps column indices `k` of the
right MPO matrix to the right block operators with non-zero ``W_r[task_id, k]``.
Both dicts are sorted by their keys.
"""


def assemble_terms(left_group, W_l, W_r, right_group):
    """List all terms of the effective Hamiltonian at one bond.

    Parameters
    ----------
    left_group, right_group : list of {None | 2D ndarray}
        Left and right block-operator groups adjacent to the bond.
    W_l, W_r : :class:`~pdmrg.networks.mpo.SparseOperatorMatrix`
        MPO matrices of the left and right site.

    Returns
    -------
    terms : list of :class:`EffectiveHamiltonianTerm`
        One term for every ``(i, j, k)`` with non-null ``W_l[i, j]`` and ``W_r[j, k]``.
    """
    if len(left_group) != W_l.rows or len(right_group) != W_r.cols:
        raise ValueError("block-operator groups don't match the MPO")
    terms = []
    for j in range(W_l.cols):
        rows = W_l.nonzero_in_column(j)
        cols = W_r.nonzero_in_row(j)
        for i in rows:
            for k in cols:
                terms.append(
                    EffectiveHamiltonianTerm(i, j, k, left_group[i], W_l[i, j], W_r[j, k],
                                             right_group[k]))
    return terms


def direct_sum_matvec(terms, theta):
    """Apply the effective Hamiltonian term by term, without any grouping.

    Only used as a reference; :class:`TwoSiteH` is much faster.
    """
    res = None
    for term in terms:
        if term.left_op is None or term.right_op is None:
            continue
        part = np.einsum('ax,bs,ct,dy,xsty->abcd', term.left_op, term.site_op_l, term.site_op_r,
                         term.right_op, theta)
        res = sum_none(res, part)
    if res is None:
        return np.zeros_like(theta)
    return res


def build_tasks(left_group, W_l, W_r, right_group):
    """Split the effective Hamiltonian at one bond into one task per column of `W_l`.

    Returns
    -------
    tasks : list of :class:`TermGroupTask`
        ``tasks[j]`` has ``task_id == j``. Empty tasks are included.
    """
    if len(left_group) != W_l.rows or len(right_group) != W_r.cols:
        raise ValueError("block-operator groups don't match the MPO")
    if W_l.cols != W_r.rows:
        raise ValueError("MPO bond dimension mismatch")
    tasks = []
    for j in range(W_l.cols):
        left_ops = {i: left_group[i] for i in W_l.nonzero_in_column(j) if left_group[i] is not None}
        right_ops = {k: right_group[k] for k in W_r.nonzero_in_row(j) if right_group[k] is not None}
        tasks.append(TermGroupTask(j, left_ops, right_ops))
    return tasks


def build_init_tasks(W, right_group):
    """Tasks for growing a right group over the site with MPO matrix `W`: one per row of `W`."""
    if len(right_group) != W.cols:
        raise ValueError("right group doesn't match the MPO")
    tasks = []
    for j in range(W.rows):
        right_ops = {k: right_group[k] for k in W.nonzero_in_row(j) if right_group[k] is not None}
        tasks.append(TermGroupTask(j, {}, right_ops))
    return tasks


def block_site_op(task, W_l):
    r"""Contract the left block operators of a task with the left site operators.

    ``O_L[x', s', x, s] = sum_i LP[i][x', x] W_l[i, j][s', s]``; ``None`` if there are no terms.
    """
    j = task.task_id
    res = None
    for i, LP in task.left_ops.items():
        part = np.transpose(np.tensordot(LP, W_l[i, j], axes=0), (0, 2, 1, 3))
        res = sum_none(res, part)
    return res


def site_block_op(task, W_r):
    r"""Contract the right site operators of a task with the right block operators.

    ``O_R[t', y', t, y] = sum_k W_r[j, k][t', t] RP[k][y', y]``; ``None`` if there are no terms.
    """
    j = task.task_id
    res = None
    for k, RP in task.right_ops.items():
        part = np.transpose(np.tensordot(W_r[j, k], RP, axes=0), (0, 2, 1, 3))
        res = sum_none(res, part)
    return res


def task_matvec(O_L, O_R, theta):
    """Contribution ``O_L . theta . O_R`` of one task; ``None`` if one side vanishes."""
    if O_L is None or O_R is None:
        return None
    res = np.tensordot(O_L, theta, axes=([2, 3], [0, 1]))  # x', s', t, y
    return np.tensordot(res, O_R, axes=([2, 3], [2, 3]))  # x', s', t', y'


def grow_left_op(O_L, A):
    """New left block operator ``A^dagger O_L A`` for a left-canonical `A` with legs (vL, p, vR)."""
    if O_L is None:
        return None
    res = np.tensordot(O_L, A, axes=([2, 3], [0, 1]))  # x', s', z
    return np.tensordot(A.conj(), res, axes=([0, 1], [0, 1]))  # z', z


def grow_right_op(O_R, B):
    """New right block operator ``B O_R B^dagger`` for a right-canonical `B`."""
    if O_R is None:
        return None
    res = np.tensordot(O_R, B, axes=([2, 3], [1, 2]))  # t', y', z
    return np.tensordot(B.conj(), res, axes=([1, 2], [0, 1]))  # z', z


def sum_task_results(results, like):
    """Sum the per-task results in the given (ascending task) order; zero if all vanish."""
    res = None
    for part in results:
        res = sum_none(res, part)
    if res is None:
        return np.zeros_like(like)
    return res


def init_grow_right(H_MPO, site, B, right_group):
    """Grow the right group over `site` during the initialization, single process version.

    Parameters
    ----------
    H_MPO : :class:`~pdmrg.networks.mpo.MatReprMPO`
        The Hamiltonian.
    site : int
        The site to be absorbed; `right_group` is the group of block length ``L-1-site``.
    B : 3D ndarray
        Right-canonical MPS tensor of `site`.
    right_group : list of {None | 2D ndarray}
        The right group to be grown.

    Returns
    -------
    new_group : list of {None | 2D ndarray}
        The right group of block length ``L - site``.
    """
    W = H_MPO.get_W(site)
    return [grow_right_op(site_block_op(task, W), B) for task in build_init_tasks(W, right_group)]


class TwoSiteH(LinearOperator):
    """The two-site effective Hamiltonian at the bond ``(l, l+1)`` in a single process.

    The block-site and site-block operators of all tasks are built once in the constructor and
    reused for each :meth:`matvec` and for the growth of the block operators afterwards.

    Parameters
    ----------
    H_MPO : :class:`~pdmrg.networks.mpo.MatReprMPO`
        The Hamiltonian.
    l : int
        Left site of the bond.
    left_group : list of {None | 2D ndarray}
        The left group of block length `l`.
    right_group : list of {None | 2D ndarray}
        The right group of block length ``L-2-l``.
    theta_shape : tuple of int
        Shape ``(vL, p0, p1, vR)`` of the two-site wave function.
    dtype : np.dtype
        Data type of the wave function.

    Attributes
    ----------
    l : int
        Left site of the bond.
    tasks : list of :class:`TermGroupTask`
        The term groups, indexed by task id.
    block_site_ops, site_block_ops : list of {None | 4D ndarray}
        The halves of each task, indexed by task id.
    """
    def __init__(self, H_MPO, l, left_group, right_group, theta_shape, dtype=np.float64):
        super().__init__(theta_shape, dtype)
        self.l = l
        self.W_l = H_MPO.get_W(l)
        self.W_r = H_MPO.get_W(l + 1)
        self.tasks = build_tasks(left_group, self.W_l, self.W_r, right_group)
        self.block_site_ops = [block_site_op(task, self.W_l) for task in self.tasks]
        self.site_block_ops = [site_block_op(task, self.W_r) for task in self.tasks]

    @property
    def num_tasks(self):
        return len(self.block_site_ops)

    def matvec(self, theta):
        """Apply the effective Hamiltonian to `theta` with legs ``(vL, p0, p1, vR)``."""
        parts = [
            task_matvec(O_L, O_R, theta)
            for O_L, O_R in zip(self.block_site_ops, self.site_block_ops)
        ]
        return sum_task_results(parts, theta)

    def grow_left(self, A):
        """Left group of block length ``l+1``, given the new left-canonical `A` of site `l`."""
        return [grow_left_op(O_L, A) for O_L in self.block_site_ops]

    def grow_right(self, B):
        """Right group of block length ``L-1-l``, given the new right-canonical `B` of site l+1."""
        return [grow_right_op(O_R, B) for O_R in self.site_block_ops]

    def finish(self):
        """Called once the eigensolver is done; :meth:`grow_left` and :meth:`grow_right` stay
        available."""
        self.tasks = None
