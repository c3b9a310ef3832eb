import logging
import warnings

import numpy as np

from ..utils import basis_inds_from_mask, basis_point_inds, unused_basis_points
from ._nystrom import Nystrom

logger = logging.getLogger(__name__)


class NystromD(Nystrom):
    r"""Nystrom kernel exponential family with a per-dimension basis.

    As :class:`Nystrom`, but instead of using all dimensions of every basis
    point, a boolean mask selects which (point, dimension) pairs are basis
    components. The size of the linear system is the number of selected
    components rather than ``n_basis * n_dimensions``, and all derivative
    contractions of the evaluation are restricted to the selected dimensions.

    Parameters
    ----------
    data : numpy.ndarray of shape (n_data, n_dimensions)
        Training data.
    basis_mask : array-like of bool, shape (n_basis, n_dimensions)
        ``basis_mask[a, i]`` is true if dimension ``i`` of basis point ``a`` is
        a basis component. Without an explicit ``basis``, rows refer to the
        training points.
    kernel : :class:`skexpfam.kernels.BaseDerivativeKernel`
        Kernel providing the derivatives. It is shared, never modified.
    lmbda : float, default=1.0
        Regularisation of the RKHS norm of the model.
    lmbda_l2 : float, default=0.0
        Additional ridge on the coefficients :math:`\beta`.
    basis : numpy.ndarray of shape (n_basis, n_dimensions), default=None
        Explicit basis points. If None, the training points owning at least one
        active component are used, and unused training points are dropped from
        the basis together with their rows of the mask.
    tol : float, default=None
        Threshold below which eigenvalues of the system matrix are considered
        0 when solving.
    n_jobs : int, default=None
        The number of threads used to build the system matrices.
    verbose : bool, default=False
        Whether to show progress bars while building the system.

    Attributes
    ----------
    basis_mask_ : numpy.ndarray of bool, shape (n_basis, n_dimensions)
        Mask matching ``basis_``, after the unused points have been dropped.

    See :class:`Nystrom` for the remaining attributes.

    Examples
    --------
    >>> import numpy as np
    >>> from skexpfam.density import NystromD
    >>> from skexpfam.kernels import GaussianKernel
    >>> X = np.array([[0.0, 1.0], [2.0, 4.0], [3.0, 6.0]])
    >>> mask = np.array([[True, True], [False, True], [False, False]])
    >>> est = NystromD(X, mask, GaussianKernel(sigma=2.0))
    >>> est.get_num_basis(), est.get_system_size()
    (2, 3)
    >>> est.basis_inds_
    array([0, 1, 3])
    """

    def __init__(
        self,
        data,
        basis_mask,
        kernel,
        lmbda=1.0,
        lmbda_l2=0.0,
        basis=None,
        tol=None,
        n_jobs=None,
        verbose=False,
    ):
        self.data = data
        self.basis_mask = basis_mask
        self.kernel = kernel
        self.lmbda = lmbda
        self.lmbda_l2 = lmbda_l2
        self.basis = basis
        self.tol = tol
        self.n_jobs = n_jobs
        self.verbose = verbose

        self._setup()

    def _init_basis(self):
        mask = np.asarray(self.basis_mask, dtype=bool)

        if self.basis is None:
            basis = self.data_
        else:
            basis = self._check_points(self.basis, "basis")
        self._check_mask(mask, basis)

        if self.basis is None:
            # drop the training points that own no basis component
            N = len(basis)
            point_inds = self.get_basis_point_inds(self.basis_inds_from_mask(mask))
            if len(point_inds) == 0:
                raise ValueError("basis_mask has no active component.")
            if len(point_inds) != N:
                logger.info("Subsampling data as basis as some points are unused.")
                basis = basis[point_inds]
                mask = mask[point_inds]
            logger.info(
                "Using %d of N=%d user provided data points as basis points.",
                len(basis),
                N,
            )

        self.basis_ = basis
        self.set_basis_inds_from_mask(mask)

    def _check_mask(self, mask, basis):
        if mask.shape != basis.shape:
            raise ValueError(
                f"basis_mask has shape {mask.shape}, while the basis has shape "
                f"{basis.shape}."
            )

    @staticmethod
    def basis_inds_from_mask(mask):
        """Sorted flat indices of the true entries of ``mask``."""
        return basis_inds_from_mask(mask)

    def get_basis_point_inds(self, basis_inds):
        """Sorted distinct basis points owning one of ``basis_inds``."""
        return basis_point_inds(basis_inds, self.get_num_dimensions())

    def set_basis_inds_from_mask(self, basis_mask):
        """Set the basis components from a mask over the current basis.

        Warns about every basis point none of whose dimensions is selected; such
        points do not contribute to the model.

        Parameters
        ----------
        basis_mask : array-like of bool, shape (n_basis, n_dimensions)

        Returns
        -------
        self: object
            Returns the instance itself.
        """
        mask = np.asarray(basis_mask, dtype=bool)
        self._check_mask(mask, self.basis_)

        basis_inds = self.basis_inds_from_mask(mask)
        if len(basis_inds) == 0:
            raise ValueError("basis_mask has no active component.")

        for a in unused_basis_points(basis_inds, *mask.shape):
            warnings.warn(
                f"Using zero components of basis point {a}.",
                stacklevel=2,
            )

        logger.info(
            "Using %d of %dx%d=%d possible basis components.",
            len(basis_inds),
            mask.shape[0],
            mask.shape[1],
            mask.size,
        )

        self.basis_mask_ = mask
        point_inds = np.arange(len(self.data_)) if self.basis_ is self.data_ else None
        self._set_basis_inds(basis_inds, point_inds)

        return self
