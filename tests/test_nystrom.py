import unittest
import warnings

import numpy as np
from parameterized import parameterized
from sklearn.exceptions import NotFittedError

from skexpfam.density import Nystrom, NystromD
from skexpfam.kernels import GaussianKernel

# reference values are column-major (n_rows, n_cols) matrices
G_MM_REFERENCE = [
    1.0, 0.0, -0.0045103175789327, -0.0090206351578654,
    0.0, 1.0, -0.0090206351578654, -0.0120275135438206,
    -0.0045103175789327, -0.0090206351578654, 1.0, 0.0,
    -0.0090206351578654, -0.0120275135438206, 0.0, 1.0,
]  # fmt: skip

G_MN_REFERENCE = [
    1.0000000000000000e00, 0.0000000000000000e00,
    -4.5103175789327175e-03, -9.0206351578654351e-03,
    0.0000000000000000e00, 1.0000000000000000e00,
    -9.0206351578654351e-03, -1.2027513543820579e-02,
    -4.5103175789327175e-03, -9.0206351578654351e-03,
    1.0000000000000000e00, 0.0000000000000000e00,
    -9.0206351578654351e-03, -1.2027513543820579e-02,
    0.0000000000000000e00, 1.0000000000000000e00,
    -3.3119501750281335e-07, -6.2099065781777500e-07,
    0.0000000000000000e00, -1.6416999724779760e-01,
    -6.2099065781777500e-07, -9.9358505250844009e-07,
    -1.6416999724779760e-01, -2.4625499587169641e-01,
]  # fmt: skip

SYSTEM_MATRIX_REFERENCE = [
    1.3333672382746031e00, 4.9727247227808545e-05,
    -7.5171619822096674e-03, -1.5034322831663395e-02,
    4.9727247227808545e-05, 1.3334086776473568e00,
    -1.5034337557490613e-02, -2.0045740365261768e-02,
    -7.5171619822096674e-03, -1.5034337557490613e-02,
    1.3423511676065520e00, 1.3525621245124521e-02,
    -1.5034322831663395e-02, -2.0045740365261768e-02,
    1.3525621245124521e-02, 1.3626064479762696e00,
]  # fmt: skip

SYSTEM_VECTOR_REFERENCE = [
    0.0090218771391811, 0.0135330227056575, 0.0183410310501008, 0.0411923796791344
]

BETA_REFERENCE = [
    -0.0071840764907642, -0.010757370959334, -0.0135184296925311, -0.0303339102579069
]


def from_column_major(values, n_rows):
    return np.array(values).reshape(-1, n_rows).T


def explicit_basis(X, kernel, **kwargs):
    return Nystrom(X, kernel, basis=X[:2].copy(), **kwargs)


def subsampled_basis(X, kernel, **kwargs):
    return Nystrom(X, kernel, basis_inds=[0, 1], **kwargs)


def _first_two_points_mask(n_points, D):
    mask = np.zeros((n_points, D), dtype=bool)
    mask[:2] = True
    return mask


def d_subsampled_basis(X, kernel, **kwargs):
    return NystromD(X, _first_two_points_mask(*X.shape), kernel, **kwargs)


def d_explicit_basis(X, kernel, **kwargs):
    # the unused third basis point is reported
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", "Using zero components", UserWarning)
        return NystromD(
            X, _first_two_points_mask(*X.shape), kernel, basis=X.copy(), **kwargs
        )


def d_explicit_basis_not_redundant(X, kernel, **kwargs):
    return NystromD(
        X, np.ones((2, X.shape[1]), dtype=bool), kernel, basis=X[:2].copy(), **kwargs
    )


ESTIMATORS = [
    ("explicit_basis", explicit_basis),
    ("subsampled_basis", subsampled_basis),
    ("d_subsampled_basis", d_subsampled_basis),
    ("d_explicit_basis", d_explicit_basis),
    ("d_explicit_basis_not_redundant", d_explicit_basis_not_redundant),
]


class NystromFixedTest(unittest.TestCase):
    """All estimator variants give the same results when their basis components
    are all dimensions of the first two training points."""

    @classmethod
    def setUpClass(cls):
        cls.X = np.array([[0.0, 1.0], [2.0, 4.0], [3.0, 6.0]])
        cls.X_test = np.array([[0.0, 1.0], [1.0, 1.0]])
        cls.kernel = GaussianKernel(sigma=2.0)
        cls.lmbda = 1.0
        cls.system_size = 4

    def make(self, factory, **kwargs):
        return factory(self.X, self.kernel, lmbda=self.lmbda, **kwargs)

    @parameterized.expand(ESTIMATORS)
    def test_system_size(self, _, factory):
        self.assertEqual(self.make(factory).get_system_size(), self.system_size)

    @parameterized.expand(ESTIMATORS)
    def test_compute_G_mm(self, _, factory):
        G_mm = self.make(factory).compute_G_mm()
        self.assertEqual(G_mm.shape, (self.system_size, self.system_size))
        np.testing.assert_allclose(
            G_mm, from_column_major(G_MM_REFERENCE, self.system_size), rtol=0, atol=1e-15
        )

    @parameterized.expand(ESTIMATORS)
    def test_compute_G_mn(self, _, factory):
        G_mn = self.make(factory).compute_G_mn()
        self.assertEqual(G_mn.shape, (self.system_size, self.X.size))
        np.testing.assert_allclose(
            G_mn, from_column_major(G_MN_REFERENCE, self.system_size), rtol=0, atol=1e-15
        )

    @parameterized.expand(ESTIMATORS)
    def test_compute_system_matrix(self, _, factory):
        A = self.make(factory).compute_system_matrix()
        np.testing.assert_allclose(
            A,
            from_column_major(SYSTEM_MATRIX_REFERENCE, self.system_size),
            rtol=0,
            atol=1e-14,
        )

    @parameterized.expand(ESTIMATORS)
    def test_compute_system_vector(self, _, factory):
        h = self.make(factory).compute_system_vector()
        self.assertEqual(h.shape, (self.system_size,))
        np.testing.assert_allclose(h, SYSTEM_VECTOR_REFERENCE, rtol=0, atol=1e-15)

    @parameterized.expand(ESTIMATORS)
    def test_fit(self, _, factory):
        beta = self.make(factory).fit().get_beta()
        self.assertEqual(beta.shape, (self.system_size,))
        np.testing.assert_allclose(beta, BETA_REFERENCE, rtol=0, atol=1e-15)

    @parameterized.expand(ESTIMATORS)
    def test_log_pdf(self, _, factory):
        est = self.make(factory).fit()
        est.set_data(self.X_test)
        log_pdf = est.log_pdf()
        self.assertEqual(log_pdf.shape, (2,))
        self.assertAlmostEqual(log_pdf[0], 0.0001774638427285, delta=1e-15)
        self.assertAlmostEqual(log_pdf[1], -0.0036531113518117, delta=1e-15)
        self.assertEqual(est.log_pdf(1), log_pdf[1])

    @parameterized.expand(ESTIMATORS)
    def test_grad(self, _, factory):
        est = self.make(factory).fit()
        est.set_data(self.X_test)
        np.testing.assert_allclose(
            est.grad(0), [-0.0068494729423344, -0.0102705846207064], rtol=0, atol=1e-14
        )
        np.testing.assert_allclose(
            est.grad(1), [0.0006131648387784, -0.0046163096796586], rtol=0, atol=1e-14
        )

    @parameterized.expand(ESTIMATORS)
    def test_hessian(self, _, factory):
        est = self.make(factory).fit()
        est.set_data(self.X_test)
        np.testing.assert_allclose(
            est.hessian(0),
            [[0.0004510949800765, 0.0009126002661734],
             [0.0009126002661734, 0.0011460796044802]],
            rtol=0,
            atol=1e-8,
        )  # fmt: skip
        np.testing.assert_allclose(
            est.hessian(1),
            [[0.0085325523811802, 0.0081597815414807],
             [0.0081597815414807, 0.0087650433882726]],
            rtol=0,
            atol=1e-8,
        )  # fmt: skip

    @parameterized.expand(ESTIMATORS)
    def test_score(self, _, factory):
        est = self.make(factory).fit()
        self.assertAlmostEqual(est.score(), -0.0014814034043, delta=1e-14)

        est.set_data(self.X_test)
        self.assertAlmostEqual(est.score(), 0.00949090679556, delta=1e-14)

    @parameterized.expand(ESTIMATORS)
    def test_set_data_keeps_beta(self, _, factory):
        est = self.make(factory).fit()
        beta = est.get_beta().copy()
        est.set_data(self.X_test)
        self.assertEqual(est.get_num_data(), 2)
        np.testing.assert_array_equal(est.get_beta(), beta)

    @parameterized.expand(ESTIMATORS)
    def test_not_fitted(self, _, factory):
        est = self.make(factory)
        with self.assertRaises(NotFittedError):
            est.get_beta()
        with self.assertRaises(NotFittedError):
            est.log_pdf(0)


class NystromRandomTest(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        random_state = np.random.RandomState(0)
        cls.X = random_state.randn(6, 3)
        cls.X_test = random_state.randn(4, 3)
        cls.kernel = GaussianKernel(sigma=2.0)

    @parameterized.expand(ESTIMATORS)
    def test_hessian_diag_equals_hessian(self, _, factory):
        est = factory(self.X, self.kernel, lmbda=0.1).fit()
        est.set_data(self.X_test)
        for n in range(est.get_num_data()):
            hessian = est.hessian(n)
            hessian_diag = est.hessian_diag(n)
            self.assertEqual(hessian.shape, (3, 3))
            self.assertEqual(hessian_diag.shape, (3,))
            np.testing.assert_allclose(hessian_diag, np.diag(hessian), atol=1e-12)

    @parameterized.expand(ESTIMATORS)
    def test_G_mm_symmetric(self, _, factory):
        G_mm = factory(self.X, self.kernel).compute_G_mm()
        np.testing.assert_allclose(G_mm, G_mm.T, rtol=0, atol=1e-15)

    @parameterized.expand(ESTIMATORS)
    def test_variants_agree(self, _, factory):
        reference = subsampled_basis(self.X, self.kernel, lmbda=0.1).fit()
        est = factory(self.X, self.kernel, lmbda=0.1).fit()
        np.testing.assert_allclose(est.get_beta(), reference.get_beta(), atol=1e-12)
        np.testing.assert_allclose(est.log_pdf(), reference.log_pdf(), atol=1e-12)

    def test_grad_is_derivative_of_log_pdf(self):
        est = Nystrom(self.X, self.kernel, lmbda=0.1).fit()
        x, eps = self.X_test[0], 1e-5
        shifted = [x + s * eps * e for e in np.eye(3) for s in (1, -1)]
        est.set_data(np.vstack([x] + shifted))

        log_pdf = est.log_pdf()
        numerical = (log_pdf[1::2] - log_pdf[2::2]) / (2 * eps)
        np.testing.assert_allclose(est.grad(0), numerical, atol=1e-8)

    def test_hessian_is_derivative_of_grad(self):
        est = Nystrom(self.X, self.kernel, lmbda=0.1).fit()
        x, eps = self.X_test[0], 1e-5
        shifted = [x + s * eps * e for e in np.eye(3) for s in (1, -1)]
        est.set_data(np.vstack([x] + shifted))

        numerical = np.array(
            [(est.grad(2 * i + 1) - est.grad(2 * i + 2)) / (2 * eps) for i in range(3)]
        )
        np.testing.assert_allclose(est.hessian(0), numerical, atol=1e-8)


class NystromTest(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.X = np.random.RandomState(1).randn(5, 2)
        cls.kernel = GaussianKernel(sigma=1.5)

    def test_full_basis(self):
        est = Nystrom(self.X, self.kernel)
        self.assertIs(est.basis_, est.data_)
        self.assertEqual(est.get_num_basis(), 5)
        self.assertEqual(est.get_system_size(), 10)
        self.assertTrue(est.basis_is_subsampled_data())

    def test_subsample_G_mm_from_G_mn(self):
        est = Nystrom(self.X, self.kernel, basis_inds=[4, 1, 3])
        self.assertTrue(est.basis_is_subsampled_data())
        np.testing.assert_allclose(
            est.subsample_G_mm_from_G_mn(est.compute_G_mn()),
            est.compute_G_mm(),
            rtol=0,
            atol=1e-15,
        )

    def test_subsample_G_mm_from_G_mn_explicit_basis(self):
        est = Nystrom(self.X, self.kernel, basis=self.X[:2] + 1.0)
        self.assertFalse(est.basis_is_subsampled_data())
        with self.assertRaises(ValueError):
            est.subsample_G_mm_from_G_mn(est.compute_G_mn())

    def test_lmbda_l2(self):
        A = Nystrom(self.X, self.kernel).compute_system_matrix()
        A_l2 = Nystrom(self.X, self.kernel, lmbda_l2=0.5).compute_system_matrix()
        np.testing.assert_allclose(A_l2 - A, 0.5 * np.eye(len(A)), atol=1e-14)

    def test_parallel(self):
        serial = Nystrom(self.X, self.kernel)
        parallel = Nystrom(self.X, self.kernel, n_jobs=2)
        np.testing.assert_array_equal(parallel.compute_G_mn(), serial.compute_G_mn())
        np.testing.assert_array_equal(parallel.compute_G_mm(), serial.compute_G_mm())
        np.testing.assert_array_equal(parallel.compute_h(), serial.compute_h())

    def test_rank_deficient_basis(self):
        # duplicated basis points make the system singular
        basis = np.vstack([self.X[:2], self.X[:2]])
        est = Nystrom(self.X, self.kernel, lmbda=0.0, basis=basis).fit()
        beta = est.get_beta()
        self.assertTrue(np.all(np.isfinite(beta)))
        np.testing.assert_allclose(beta[:4], beta[4:], atol=1e-10)

    def test_refit_after_set_data_uses_training_data(self):
        est = Nystrom(self.X, self.kernel).fit()
        beta = est.get_beta().copy()
        est.set_data(self.X[:2] + 3.0).fit()
        np.testing.assert_allclose(est.get_beta(), beta, atol=1e-15)

    def test_idx_to_ai(self):
        self.assertEqual(Nystrom.idx_to_ai(5, 2), (2, 1))

    def test_errors(self):
        with self.assertRaises(ValueError):
            Nystrom(self.X, self.kernel, lmbda=-1.0)
        with self.assertRaises(ValueError):
            Nystrom(self.X, self.kernel, lmbda_l2=-1.0)
        with self.assertRaises(ValueError):
            Nystrom(self.X, "gaussian")
        with self.assertRaises(ValueError):
            Nystrom(self.X[0], self.kernel)
        with self.assertRaises(ValueError):
            Nystrom(self.X, self.kernel, basis=self.X, basis_inds=[0])
        with self.assertRaises(ValueError):
            Nystrom(self.X, self.kernel, basis_inds=[0, 5])
        with self.assertRaises(ValueError):
            Nystrom(self.X, self.kernel, basis_inds=[1, 1])
        with self.assertRaises(ValueError):
            Nystrom(self.X, self.kernel, basis=np.ones((2, 3)))
        with self.assertRaises(ValueError):
            Nystrom(self.X, self.kernel).set_data(np.ones((2, 3)))


if __name__ == "__main__":
    unittest.main(verbosity=2)
