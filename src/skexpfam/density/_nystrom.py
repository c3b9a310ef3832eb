import logging

import numpy as np
from joblib import Parallel, delayed
from sklearn.base import BaseEstimator
from sklearn.utils import check_array
from sklearn.utils.validation import check_is_fitted
from tqdm import tqdm

from ..kernels import BaseDerivativeKernel
from ..utils import ai_to_idx, group_components_by_point, idx_to_ai, pinv_self_adjoint

logger = logging.getLogger(__name__)


class Nystrom(BaseEstimator):
    r"""Nystrom approximation of the kernel exponential family density model.

    The unnormalised log-density is modelled as

    .. math::
        \log p(x) = \sum_{(a, i)} \beta_{a,i}
        \frac{\partial k(z_a, x)}{\partial z_{a,i}}

    where the sum runs over the *basis components* :math:`(a, i)`, i.e. the
    dimension :math:`i` of the basis point :math:`z_a`. The coefficients
    :math:`\beta` are found by minimising the regularised score-matching
    objective, which reduces to the linear system

    .. math::
        \left(\frac{1}{N}\mathbf{G}_{mn}\mathbf{G}_{mn}^T
        + \lambda \mathbf{G}_{mm} + \lambda_{\ell_2}\mathbf{I}\right) \beta
        = -\mathbf{h}

    with :math:`\mathbf{G}_{mn}` the mixed second derivatives between basis and
    training components, :math:`\mathbf{G}_{mm}` those between pairs of basis
    components and :math:`\mathbf{h}` the averaged third derivatives.

    In this estimator every dimension of every basis point is a basis
    component, so that the system has size ``n_basis * n_dimensions``. See
    :class:`NystromD` to select individual components.

    Parameters
    ----------
    data : numpy.ndarray of shape (n_data, n_dimensions)
        Training data.
    kernel : :class:`skexpfam.kernels.BaseDerivativeKernel`
        Kernel providing the derivatives. It is shared, never modified.
    lmbda : float, default=1.0
        Regularisation of the RKHS norm of the model, multiplies
        :math:`\mathbf{G}_{mm}`.
    lmbda_l2 : float, default=0.0
        Additional ridge on the coefficients :math:`\beta`.
    basis : numpy.ndarray of shape (n_basis, n_dimensions), default=None
        Explicit basis points. Mutually exclusive with ``basis_inds``.
    basis_inds : array-like of int, default=None
        Indices of the training points used as basis points. If neither
        ``basis`` nor ``basis_inds`` is given, all training points are used.
    tol : float, default=None
        Threshold below which eigenvalues of the system matrix are considered
        0 when solving. See :func:`skexpfam.utils.pinv_self_adjoint`.
    n_jobs : int, default=None
        The number of threads used to build the system matrices.
        :obj:`None` means 1 unless in a :obj:`joblib.parallel_backend` context.
        ``-1`` means using all processors.
    verbose : bool, default=False
        Whether to show progress bars while building the system.

    Attributes
    ----------
    data_ : numpy.ndarray of shape (n_data, n_dimensions)
        Validated training data.
    basis_ : numpy.ndarray of shape (n_basis, n_dimensions)
        Basis points.
    basis_inds_ : numpy.ndarray of int
        Sorted flat indices ``a * n_dimensions + i`` of the basis components.
    basis_data_inds_ : numpy.ndarray of int or None
        Flat index of each basis component within the training data, when the
        basis is taken from the training data. None otherwise.
    X_ : numpy.ndarray of shape (n_queries, n_dimensions)
        Points at which the model is evaluated, see :meth:`set_data`.
    beta_ : numpy.ndarray of shape (system_size,)
        Fitted coefficients.

    Examples
    --------
    >>> import numpy as np
    >>> from skexpfam.density import Nystrom
    >>> from skexpfam.kernels import GaussianKernel
    >>> X = np.array([[0.0, 1.0], [2.0, 4.0], [3.0, 6.0]])
    >>> est = Nystrom(X, GaussianKernel(sigma=2.0), lmbda=1.0, basis_inds=[0, 1])
    >>> est.fit().get_beta().round(6)
    array([-0.007184, -0.010757, -0.013518, -0.030334])
    >>> est.set_data(np.array([[0.0, 1.0], [1.0, 1.0]])).log_pdf().round(6)
    array([ 0.000177, -0.003653])
    """

    def __init__(
        self,
        data,
        kernel,
        lmbda=1.0,
        lmbda_l2=0.0,
        basis=None,
        basis_inds=None,
        tol=None,
        n_jobs=None,
        verbose=False,
    ):
        self.data = data
        self.kernel = kernel
        self.lmbda = lmbda
        self.lmbda_l2 = lmbda_l2
        self.basis = basis
        self.basis_inds = basis_inds
        self.tol = tol
        self.n_jobs = n_jobs
        self.verbose = verbose

        self._setup()

    idx_to_ai = staticmethod(idx_to_ai)

    def _setup(self):
        if not isinstance(self.kernel, BaseDerivativeKernel):
            raise ValueError(
                "kernel must be an instance of `BaseDerivativeKernel`, "
                f"got {type(self.kernel).__name__}"
            )
        if self.lmbda < 0:
            raise ValueError(f"lmbda must be non-negative, got {self.lmbda}.")
        if self.lmbda_l2 < 0:
            raise ValueError(f"lmbda_l2 must be non-negative, got {self.lmbda_l2}.")

        self.data_ = self._check_points(self.data, "data")
        self.X_ = self.data_
        self._init_basis()

    def _check_points(self, X, name):
        X = check_array(X, dtype=np.float64, input_name=name)
        if hasattr(self, "data_") and X.shape[1] != self.data_.shape[1]:
            raise ValueError(
                f"{name} has {X.shape[1]} dimensions, while the training data has "
                f"{self.data_.shape[1]}."
            )
        return X

    def _init_basis(self):
        N, D = self.data_.shape

        if self.basis is not None and self.basis_inds is not None:
            raise ValueError("Only one of `basis` and `basis_inds` can be given.")

        if self.basis_inds is not None:
            point_inds = np.asarray(self.basis_inds, dtype=int)
            if point_inds.ndim != 1 or len(point_inds) == 0:
                raise ValueError("basis_inds must be a non-empty 1-D array.")
            if np.any(point_inds < 0) or np.any(point_inds >= N):
                raise ValueError(f"basis_inds must be in the range [0, {N}).")
            if len(np.unique(point_inds)) != len(point_inds):
                raise ValueError("basis_inds contains duplicates.")
            self.basis_ = self.data_[point_inds]
        elif self.basis is not None:
            point_inds = None
            self.basis_ = self._check_points(self.basis, "basis")
        else:
            point_inds = np.arange(N)
            self.basis_ = self.data_

        logger.info(
            "Using %d basis points with %d dimensions each.", len(self.basis_), D
        )
        self._set_basis_inds(np.arange(len(self.basis_) * D), point_inds)

    def _set_basis_inds(self, basis_inds, point_inds=None):
        """Store the basis components.

        ``point_inds`` maps basis points to training points, when the basis is
        taken from the training data.
        """
        D = self.get_num_dimensions()
        self.basis_inds_ = np.asarray(basis_inds, dtype=int)
        self._basis_groups = group_components_by_point(self.basis_inds_, D)

        if point_inds is None:
            self.basis_data_inds_ = None
        else:
            a, i = idx_to_ai(self.basis_inds_, D)
            self.basis_data_inds_ = ai_to_idx(np.asarray(point_inds)[a], i, D)

        # coefficients refer to the previous components
        if hasattr(self, "beta_"):
            del self.beta_

    def get_num_dimensions(self):
        return self.data_.shape[1]

    def get_num_basis(self):
        return self.basis_.shape[0]

    def get_num_data(self):
        """Number of points the model is currently evaluated at."""
        return self.X_.shape[0]

    def get_system_size(self):
        """Number of basis components, i.e. the length of ``beta_``."""
        return len(self.basis_inds_)

    def basis_is_subsampled_data(self):
        """Whether the basis components are components of the training data.

        In that case :math:`\\mathbf{G}_{mm}` is a column subset of
        :math:`\\mathbf{G}_{mn}`, see :meth:`subsample_G_mm_from_G_mn`.
        """
        return self.basis_data_inds_ is not None

    def _parallel_rows(self, func, n, desc):
        """Evaluate ``func`` on ``range(n)``, returning the results in order."""
        return Parallel(n_jobs=self.n_jobs, prefer="threads")(
            delayed(func)(k) for k in tqdm(range(n), desc=desc, disable=not self.verbose)
        )

    def _h_entry(self, k):
        D = self.get_num_dimensions()
        a, i = idx_to_ai(self.basis_inds_[k], D)
        x = self.basis_[a]
        return sum(
            self.kernel.dx_dy_dy_component(x, y, i, j)
            for y in self.data_
            for j in range(D)
        )

    def compute_h(self):
        r"""Compute the right-hand side of the linear system.

        .. math::
            h_{a,i} = \frac{1}{N}\sum_{b=1}^N \sum_{j=1}^D
            \frac{\partial^3 k(z_a, x_b)}{\partial z_{a,i} \partial x_{b,j}^2}

        Returns
        -------
        h : numpy.ndarray of shape (system_size,)
        """
        h = self._parallel_rows(self._h_entry, self.get_system_size(), "Computing h")
        return np.array(h, dtype=np.float64) / len(self.data_)

    def _G_mn_row(self, k):
        D = self.get_num_dimensions()
        a, i = idx_to_ai(self.basis_inds_[k], D)
        x = self.basis_[a]
        return [
            self.kernel.dx_dy_component(x, y, i, j) for y in self.data_ for j in range(D)
        ]

    def compute_G_mn(self):
        """Compute the mixed second derivatives between basis and data components.

        Entry ``(k, l)`` couples the basis component ``k = (a, i)`` with the
        data component ``l = b * n_dimensions + j``.

        Returns
        -------
        G_mn : numpy.ndarray of shape (system_size, n_data * n_dimensions)
        """
        rows = self._parallel_rows(
            self._G_mn_row, self.get_system_size(), "Computing G_mn"
        )
        return np.array(rows, dtype=np.float64)

    def _G_mm_row(self, k):
        D = self.get_num_dimensions()
        b, j = idx_to_ai(self.basis_inds_[k], D)
        x = self.basis_[b]
        a, i = idx_to_ai(self.basis_inds_, D)
        return [
            self.kernel.dx_dy_component(x, self.basis_[a_l], j, i_l)
            for a_l, i_l in zip(a, i)
        ]

    def compute_G_mm(self):
        """Compute the mixed second derivatives between pairs of basis components.

        Returns
        -------
        G_mm : numpy.ndarray of shape (system_size, system_size)
            Symmetric for kernels whose mixed derivatives are symmetric.
        """
        rows = self._parallel_rows(
            self._G_mm_row, self.get_system_size(), "Computing G_mm"
        )
        return np.array(rows, dtype=np.float64)

    def subsample_G_mm_from_G_mn(self, G_mn):
        """Extract :math:`\\mathbf{G}_{mm}` from an already computed
        :math:`\\mathbf{G}_{mn}`, avoiding kernel evaluations.

        Only possible if :meth:`basis_is_subsampled_data`.
        """
        if not self.basis_is_subsampled_data():
            raise ValueError(
                "G_mm can only be subsampled from G_mn if the basis is a subset of "
                "the training data."
            )
        return np.asarray(G_mn)[:, self.basis_data_inds_]

    def compute_system_matrix(self):
        """Compute the (symmetric) matrix of the linear system."""
        N = len(self.data_)

        G_mn = self.compute_G_mn()
        if self.basis_is_subsampled_data():
            G_mm = self.subsample_G_mm_from_G_mn(G_mn)
        else:
            G_mm = self.compute_G_mm()

        A = (G_mn @ G_mn.T) / N + self.lmbda * G_mm
        if self.lmbda_l2 > 0:
            A[np.diag_indices_from(A)] += self.lmbda_l2

        return A

    def compute_system_vector(self):
        return self.compute_h()

    def fit(self):
        """Solve the linear system for the coefficients.

        Ill-conditioned directions of the system are discarded rather than
        raising, see ``tol``.

        Returns
        -------
        self: object
            Returns the instance itself.
        """
        A = self.compute_system_matrix()
        h = self.compute_system_vector()

        logger.info("Solving a system of size %d.", len(h))
        self.beta_ = -pinv_self_adjoint(A, tol=self.tol) @ h

        return self

    def get_beta(self):
        check_is_fitted(self, "beta_")
        return self.beta_

    def set_data(self, X):
        """Set the points the model is evaluated at, without refitting.

        Parameters
        ----------
        X : numpy.ndarray of shape (n_queries, n_dimensions)

        Returns
        -------
        self: object
            Returns the instance itself.
        """
        self.X_ = self._check_points(X, "X")
        return self

    def get_beta_for_basis_point(self, a):
        """Coefficients of basis point ``a``, zero in all unused dimensions.

        Returns
        -------
        beta_a : numpy.ndarray of shape (n_dimensions,)
        """
        check_is_fitted(self, "beta_")
        D = self.get_num_dimensions()
        beta_a = np.zeros(D)
        points, dims = idx_to_ai(self.basis_inds_, D)
        in_a = points == a
        beta_a[dims[in_a]] = self.beta_[in_a]
        return beta_a

    def log_pdf(self, idx_test=None):
        """Unnormalised log-density at a query point.

        Parameters
        ----------
        idx_test : int, default=None
            Index into the points set with :meth:`set_data`. If None, the
            log-density of all of them is returned.

        Returns
        -------
        log_pdf : float or numpy.ndarray of shape (n_queries,)
        """
        check_is_fitted(self, "beta_")
        if idx_test is None:
            return np.array([self.log_pdf(n) for n in range(self.get_num_data())])

        x = self.X_[idx_test]
        a, i = idx_to_ai(self.basis_inds_, self.get_num_dimensions())
        return sum(
            beta_k * self.kernel.dx_component(self.basis_[a_k], x, i_k)
            for beta_k, a_k, i_k in zip(self.beta_, a, i)
        )

    def grad(self, idx_test):
        """Gradient of the log-density at a query point.

        Returns
        -------
        grad : numpy.ndarray of shape (n_dimensions,)
        """
        check_is_fitted(self, "beta_")
        x = self.X_[idx_test]
        result = np.zeros(self.get_num_dimensions())

        for a, dims, positions in self._basis_groups:
            beta_a = self.beta_[positions]
            for i in dims:
                row = self.kernel.dx_i_dx_j_component(self.basis_[a], x, i)
                # only the dimensions present in the basis for this point
                result[i] -= row[dims].dot(beta_a)

        return result

    def hessian(self, idx_test):
        """Hessian of the log-density at a query point.

        Returns
        -------
        hessian : numpy.ndarray of shape (n_dimensions, n_dimensions)
        """
        check_is_fitted(self, "beta_")
        x = self.X_[idx_test]
        D = self.get_num_dimensions()
        result = np.zeros((D, D))

        for a, dims, _ in self._basis_groups:
            beta_a = self.get_beta_for_basis_point(a)
            for i in dims:
                for j in dims:
                    result[i, j] += self.kernel.dx_i_dx_j_dx_k_dot_vec_component(
                        self.basis_[a], x, beta_a, i, j
                    )

        return result

    def hessian_diag(self, idx_test):
        """Diagonal of :meth:`hessian`, without computing the off-diagonal terms.

        Returns
        -------
        hessian_diag : numpy.ndarray of shape (n_dimensions,)
        """
        check_is_fitted(self, "beta_")
        x = self.X_[idx_test]
        result = np.zeros(self.get_num_dimensions())

        for a, dims, _ in self._basis_groups:
            beta_a = self.get_beta_for_basis_point(a)
            for i in dims:
                result[i] += self.kernel.dx_i_dx_j_dx_k_dot_vec_component(
                    self.basis_[a], x, beta_a, i, i
                )

        return result

    def score(self):
        r"""Score-matching objective of the model on the current points.

        .. math::
            J = \frac{1}{n}\sum_{x} \sum_{i=1}^D \left[
            \frac{\partial^2 \log p(x)}{\partial x_i^2} + \frac{1}{2}
            \left(\frac{\partial \log p(x)}{\partial x_i}\right)^2 \right]

        Lower is better, up to an additive constant it is the Fisher
        divergence between the data distribution and the model.

        Returns
        -------
        score : float
        """
        check_is_fitted(self, "beta_")
        n = self.get_num_data()
        return (
            sum(
                np.sum(self.hessian_diag(k)) + 0.5 * np.sum(self.grad(k) ** 2)
                for k in range(n)
            )
            / n
        )
