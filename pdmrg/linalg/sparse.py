"""Providing support for sparse algorithms (using matrix-vector products only).

Some linear algebra algorithms, e.g. Lanczos, do not require the full representations of a linear
operator, but only the action on a vector, i.e., a matrix-vector product `matvec`. Here we define
the structure of such a general operator, :class:`LinearOperator`, as it is used in our own
implementation of these algorithms (e.g., :mod:`~pdmrg.linalg.krylov_based`).
The effective Hamiltonians of DMRG (serial and distributed) are subclasses of it.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from abc import ABCMeta, abstractmethod
import numpy as np

__all__ = ['LinearOperator', 'NumpyArrayLinearOperator']


class LinearOperator(metaclass=ABCMeta):
    """Base class for a linear operator acting on numpy arrays of a fixed shape.

    We consider as "vectors" all arrays of the shape :attr:`vector_shape`, in particular
    multi-leg tensors like the two-site wave function `theta` with legs ``(vL, p0, p1, vR)``.

    Attributes
    ----------
    vector_shape : tuple of int
        The shape of arrays that this operator can act on.
    dtype : np.dtype
        The dtype of a full representation of the operator.
    """
    def __init__(self, vector_shape, dtype=np.float64):
        self.vector_shape = tuple(vector_shape)
        self.dtype = np.dtype(dtype)

    @abstractmethod
    def matvec(self, vec):
        """Apply the linear operator to a "vector" of shape :attr:`vector_shape`.

        The result must be an array of the same shape.
        """
        ...

    @property
    def dim(self):
        """Dimension of the space the operator acts on, i.e. ``prod(vector_shape)``."""
        return int(np.prod(self.vector_shape))

    def to_matrix(self):
        """Dense matrix representation, built column by column with :meth:`matvec`.

        Only useful for testing small operators.
        """
        dim = self.dim
        dtype = np.result_type(self.dtype, np.float64)
        mat = np.zeros((dim, dim), dtype)
        for n in range(dim):
            vec = np.zeros(dim, dtype)
            vec[n] = 1.
            mat[:, n] = self.matvec(vec.reshape(self.vector_shape)).reshape(dim)
        return mat


class NumpyArrayLinearOperator(LinearOperator):
    """Linear operator given by a dense square matrix acting on reshaped arrays.

    Parameters
    ----------
    matrix : 2D ndarray
        Square matrix of dimension ``prod(vector_shape)``.
    vector_shape : tuple of int | None
        Shape of the "vectors". Defaults to 1D vectors ``(len(matrix),)``.

    Attributes
    ----------
    matrix : 2D ndarray
        The matrix.
    matvec_count : int
        The number of times :meth:`matvec` was called.
    """
    def __init__(self, matrix, vector_shape=None):
        matrix = np.asarray(matrix)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ValueError("expected a square matrix, got shape " + repr(matrix.shape))
        if vector_shape is None:
            vector_shape = (matrix.shape[0], )
        super().__init__(vector_shape, matrix.dtype)
        if self.dim != matrix.shape[0]:
            raise ValueError("vector_shape doesn't match the matrix dimension")
        self.matrix = matrix
        self.matvec_count = 0

    def matvec(self, vec):
        self.matvec_count += 1
        return np.dot(self.matrix, vec.reshape(self.dim)).reshape(self.vector_shape)

    def to_matrix(self):
        return self.matrix
