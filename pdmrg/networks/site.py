"""Defines a class describing the local physical Hilbert space.

The :class:`Site` is the prototype, read it's docstring.
On-site operators are dense numpy matrices with legs ``(p, p*)``, i.e.
``op[i, j] = <i|op|j>``.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np

__all__ = ['Site', 'SpinHalfSite', 'SpinSite']


class Site:
    """Collects information about a single local site of a lattice.

    This class defines the local basis states via :attr:`dim` and :attr:`state_labels`
    and stores the local operators.
    Operators can be accessed via :meth:`get_op` or equivalently by "indexing" the site,
    ``site['O']`` is a shorthand for ``site.get_op('O')``.
    All sites define the operator ``'Id'``, the identity.

    Parameters
    ----------
    dim : int
        Dimension of the local Hilbert space.
    state_labels : None | list of str
        Optionally, a label for each local basis state.
    **site_ops :
        Additional keyword arguments of the form ``name=op`` given to :meth:`add_op`.

    Attributes
    ----------
    dim : int
        Dimension of the local Hilbert space.
    state_labels : {str: int}
        Labels for the local basis states. Maps from label to index of the state in the basis.
    ops : {str: 2D ndarray}
        The on-site operators.
    """
    def __init__(self, dim, state_labels=None, **site_ops):
        self.dim = int(dim)
        self.state_labels = {}
        if state_labels is not None:
            for i, v in enumerate(state_labels):
                if v is not None:
                    self.state_labels[str(v)] = i
        self.ops = {}
        self.add_op('Id', np.eye(self.dim))
        for name, op in sorted(site_ops.items()):
            self.add_op(name, op)

    def add_op(self, name, op):
        """Add one on-site operator.

        Parameters
        ----------
        name : str
            A valid python variable name, used to label the operator.
        op : array_like
            A matrix of shape ``(dim, dim)``.
        """
        name = str(name)
        if not name.isidentifier():
            raise ValueError(f"invalid operator name {name!r}")
        op = np.array(op)
        if op.shape != (self.dim, self.dim):
            raise ValueError(f"wrong shape {op.shape!r} of operator {name!r}")
        self.ops[name] = op
        return op

    def state_index(self, label):
        """Return index of a basis state from its label.

        Parameters
        ----------
        label : int | string
            either the index directly or a label (string) set before.

        Returns
        -------
        state_index : int
            the index of the basis state associated with the label.
        """
        res = self.state_labels.get(str(label), label)
        try:
            res = int(res)
        except ValueError:
            raise KeyError("label not found: " + repr(label)) from None
        if not 0 <= res < self.dim:
            raise KeyError("state index out of range: " + repr(label))
        return res

    def get_op(self, name):
        """Return the operator with the given `name`.

        Products of operators can be given as ``'A B'``, meaning that ``B`` acts first.
        """
        names = name.split()
        op = self.ops[names[0]]
        for name2 in names[1:]:
            op = np.dot(op, self.ops[name2])
        return op

    def __getitem__(self, name):
        return self.get_op(name)

    def __repr__(self):
        """Debug representation of self."""
        return f"<Site, d={self.dim:d}, ops={list(self.ops.keys())!r}>"


class SpinHalfSite(Site):
    r"""Spin-1/2 site.

    Local states are ``up`` (0) and ``down`` (1).
    Local operators are the usual spin-1/2 operators, e.g. ``Sz = [[0.5, 0.], [0., -0.5]]``,
    ``Sx = 0.5 * Sigmax`` for the Pauli matrix `Sigmax`.

    ============================  ===============================================
    operator                      description
    ============================  ===============================================
    ``Id``                        Identity :math:`\mathbb{1}`
    ``Sz``                        Spin component :math:`S^z`
    ``Sx, Sy``                    Spin components :math:`S^{x,y}`
    ``Sp, Sm``                    :math:`S^{\pm} = S^x \pm i S^y`
    ``Sigmax, Sigmay, Sigmaz``    Pauli matrices
    ============================  ===============================================
    """
    def __init__(self):
        Sx = [[0., 0.5], [0.5, 0.]]
        Sy = [[0., -0.5j], [+0.5j, 0.]]
        Sz = [[0.5, 0.], [0., -0.5]]
        Sp = [[0., 1.], [0., 0.]]  # == Sx + i Sy
        Sm = [[0., 0.], [1., 0.]]  # == Sx - i Sy
        ops = dict(Sp=Sp, Sm=Sm, Sz=Sz, Sx=Sx, Sy=Sy)
        for op in ['x', 'y', 'z']:
            ops['Sigma' + op] = 2. * np.asarray(ops['S' + op])
        super().__init__(2, ['up', 'down'], **ops)
        self.state_labels['-0.5'] = self.state_labels['down']
        self.state_labels['0.5'] = self.state_labels['up']

    def __repr__(self):
        """Debug representation of self."""
        return "SpinHalfSite()"


class SpinSite(Site):
    r"""General Spin S site.

    There are `2S+1` local states ranging from ``down`` (0) to ``up`` (2S),
    labeled by ``2*Sz``, e.g. ``'-1', '1'`` for S=1/2 and ``'-2', '0', '2'`` for S=1.
    Local operators are ``Sz, Sp, Sm, Sx, Sy``.

    Parameters
    ----------
    S : {0.5, 1, 1.5, 2, ...}
        The 2S+1 states range from m = -S, -S+1, ... +S.
    """
    def __init__(self, S=0.5):
        self.S = S = float(S)
        d = 2 * S + 1
        if d <= 1:
            raise ValueError("negative S?")
        if np.rint(d) != d:
            raise ValueError("S is not half-integer or integer")
        d = int(d)
        Sz_diag = -S + np.arange(d)
        Sz = np.diag(Sz_diag)
        Sp = np.zeros([d, d])
        for n in np.arange(d - 1):
            # Sp |m> =sqrt( S(S+1)-m(m+1)) |m+1>
            m = n - S
            Sp[n + 1, n] = np.sqrt(S * (S + 1) - m * (m + 1))
        Sm = np.transpose(Sp)
        Sx = 0.5 * (Sp + Sm)
        Sy = -0.5j * (Sp - Sm)
        labels = [str(int(np.rint(2 * m))) for m in Sz_diag]
        super().__init__(d, labels, Sz=Sz, Sp=Sp, Sm=Sm, Sx=Sx, Sy=Sy)

    def __repr__(self):
        """Debug representation of self."""
        return f"SpinSite(S={self.S!s})"
