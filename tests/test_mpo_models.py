"""A collection of tests for sites, MPOs, models and the exact diagonalization."""
# Copyright (C) TeNPy Developers, GNU GPLv3

from functools import reduce

import numpy as np
import pytest

from pdmrg.algorithms.exact_diag import ExactDiag
from pdmrg.models import XXZChain, TFIChain, MPOModel, NearestNeighborChain
from pdmrg.networks import mpo, mps, site
from pdmrg.tools.misc import find_subclass


def op_on_site(op, i, L):
    ops = [np.eye(2)] * L
    ops[i] = op
    return reduce(np.kron, ops)


def test_spin_half_site():
    s = site.SpinHalfSite()
    assert s.dim == 2
    assert s.state_index('up') == 0
    assert s.state_index('down') == 1
    assert s.state_index('-0.5') == 1
    np.testing.assert_array_equal(s.get_op('Sp Sm'), np.diag([1., 0.]))
    np.testing.assert_array_equal(s['Sigmaz'], np.diag([1., -1.]))
    Sx, Sy, Sz = s['Sx'], s['Sy'], s['Sz']
    np.testing.assert_allclose(Sx @ Sy - Sy @ Sx, 1.j * Sz)
    with pytest.raises(KeyError):
        s.state_index('left')
    with pytest.raises(KeyError):
        s.get_op('Sq')
    with pytest.raises(ValueError):
        s.add_op('not valid', np.eye(2))
    with pytest.raises(ValueError):
        s.add_op('big', np.eye(3))


@pytest.mark.parametrize('S', [0.5, 1, 1.5])
def test_spin_site(S):
    s = site.SpinSite(S)
    d = int(2 * S + 1)
    assert s.dim == d
    Sp, Sm, Sz = s['Sp'], s['Sm'], s['Sz']
    np.testing.assert_allclose(Sp @ Sm - Sm @ Sp, 2. * Sz, atol=1.e-14)
    S2 = s['Sx'] @ s['Sx'] + s['Sy'] @ s['Sy'] + Sz @ Sz
    np.testing.assert_allclose(S2, S * (S + 1) * np.eye(d), atol=1.e-14)
    with pytest.raises(ValueError):
        site.SpinSite(0.3)


def test_sparse_operator_matrix():
    Id = np.eye(2)
    X = np.array([[0., 1.], [1., 0.]])
    W = mpo.SparseOperatorMatrix([[Id, None, None], [X, None, None], [None, X, Id]])
    assert (W.rows, W.cols, W.d) == (3, 3, 2)
    assert W.nonzero_in_column(0) == [0, 1]
    assert W.nonzero_in_row(2) == [1, 2]
    assert W.nonzero_entries() == 4
    dense = W.to_dense()
    assert dense.shape == (3, 3, 2, 2)
    np.testing.assert_array_equal(dense[1, 0], X)
    np.testing.assert_array_equal(dense[0, 1], np.zeros((2, 2)))
    sub = W.submatrix([2], [0, 1, 2])
    assert (sub.rows, sub.cols) == (1, 3)
    assert sub[0, 0] is None
    W2 = mpo.SparseOperatorMatrix.zeros(2, 2)
    W2[0, 1] = X
    assert W2.d == 2
    with pytest.raises(ValueError):
        W2[1, 1] = np.eye(3)
    with pytest.raises(ValueError):
        mpo.SparseOperatorMatrix([[Id, None], [None]])
    with pytest.raises(ValueError):
        mpo.SparseOperatorMatrix([[Id, np.eye(3)]])


def test_mat_repr_mpo():
    sites = [site.SpinHalfSite()] * 3
    Id = np.eye(2)
    W = mpo.SparseOperatorMatrix([[Id, None], [sites[0]['Sz'], Id]])
    H = mpo.MatReprMPO.from_bulk(sites, W, IdL=1, IdR=0)
    assert H.chi == [1, 2, 2, 1]
    assert H.dim == [2, 2, 2]
    assert len(H) == 3
    assert H.get_W(0).rows == 1
    assert H.get_W(2).cols == 1
    with pytest.raises(ValueError):
        mpo.MatReprMPO(sites, [W, W, W])  # no boundary
    with pytest.raises(ValueError):
        mpo.MatReprMPO.from_bulk(sites[:1], W, IdL=1, IdR=0)


def full_xxz(L, Jxx, Jz, hz):
    s = site.SpinHalfSite()
    H = 0.
    for i in range(L - 1):
        for a, b, strength in [('Sp', 'Sm', 0.5 * Jxx), ('Sm', 'Sp', 0.5 * Jxx), ('Sz', 'Sz', Jz)]:
            H = H + strength * op_on_site(s[a], i, L) @ op_on_site(s[b], i + 1, L)
    for i in range(L):
        H = H - hz * op_on_site(s['Sz'], i, L)
    return H


def full_tfi(L, J, g):
    s = site.SpinHalfSite()
    H = 0.
    for i in range(L - 1):
        H = H - J * op_on_site(s['Sigmax'], i, L) @ op_on_site(s['Sigmax'], i + 1, L)
    for i in range(L):
        H = H - g * op_on_site(s['Sigmaz'], i, L)
    return H


def test_xxz_chain():
    M = XXZChain({'L': 5, 'Jxx': 0.7, 'Jz': 1.3, 'hz': 0.2})
    assert M.L == 5
    # channels Sp-Sm, Sm-Sp, Sz-Sz
    assert M.H_MPO.chi == [1, 5, 5, 5, 5, 1]
    ED = ExactDiag(M)
    ED.build_full_H_from_mpo()
    np.testing.assert_allclose(ED.full_H, full_xxz(5, 0.7, 1.3, 0.2), atol=1.e-14)
    # no field: no onsite term on any site
    M = XXZChain({'L': 3})
    assert M.H_MPO.get_W(1)[4, 0] is None


def test_tf_ising_chain():
    M = TFIChain({'L': 4, 'J': 1.1, 'g': 0.8})
    assert M.H_MPO.chi == [1, 3, 3, 3, 1]
    ED = ExactDiag(M)
    ED.build_full_H_from_mpo()
    np.testing.assert_allclose(ED.full_H, full_tfi(4, 1.1, 0.8), atol=1.e-14)


def test_site_dependent_couplings():
    Jz = np.array([1., 0.5, 2.])
    M = XXZChain({'L': 4, 'Jxx': 0., 'Jz': Jz})
    ED = ExactDiag(M)
    ED.build_full_H_from_mpo()
    s = site.SpinHalfSite()
    H = sum(Jz[i] * op_on_site(s['Sz'], i, 4) @ op_on_site(s['Sz'], i + 1, 4) for i in range(3))
    np.testing.assert_allclose(ED.full_H, H, atol=1.e-14)


def test_model_errors():
    with pytest.raises(ValueError):
        XXZChain({'L': 1})

    class BadChain(NearestNeighborChain):
        def init_sites(self, model_params):
            return site.SpinHalfSite()

        def init_terms(self, model_params):
            self.add_coupling(1., 'Sz', 'Sq')

    with pytest.raises(ValueError):
        BadChain({'L': 3})
    with pytest.raises(NotImplementedError):
        NearestNeighborChain({'L': 3})


def test_find_model_class():
    assert find_subclass(MPOModel, 'TFIChain') is TFIChain
    assert find_subclass(MPOModel, XXZChain) is XXZChain


def test_exact_diag_heisenberg():
    M = XXZChain({'L': 4})
    ED = ExactDiag(M)
    E0, psi0 = ED.groundstate()
    assert abs(E0 - (-0.75 - np.sqrt(3.) / 2.)) < 1.e-13
    assert abs(np.linalg.norm(psi0) - 1.) < 1.e-13
    E_sparse, _ = ED.sparse_diag(k=2)
    assert abs(E_sparse[0] - E0) < 1.e-10
    assert E_sparse[1] >= E_sparse[0]
    # energy of the Neel state: three bonds with <Sz Sz> = -1/4
    neel = mps.FiniteMPS.from_product_state(M.sites, ['up', 'down'] * 2)
    assert abs(ED.energy(neel) + 0.75) < 1.e-14
    with pytest.raises(ValueError):
        ExactDiag(XXZChain({'L': 6}), max_size=32)
