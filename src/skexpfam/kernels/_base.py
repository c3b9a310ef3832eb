from abc import ABC, abstractmethod

import numpy as np


class BaseDerivativeKernel(ABC):
    r"""Interface of the kernels consumed by the Nystrom estimators.

    The estimators never evaluate the kernel itself on the data, only partial
    derivatives of it. All methods take the left-hand side point :math:`x`
    (a basis point) and the right-hand side point :math:`y` (a training or
    query point) as 1-D arrays of length ``n_dimensions``, and derivatives
    written ``dx`` are taken with respect to :math:`x`, ``dy`` with respect to
    :math:`y`.

    Implementations must not write any state when evaluated: a single kernel
    instance is shared by all estimators it is passed to, and may be called
    concurrently from several threads while the system matrices are built.

    The ``*_component`` methods are the ones the estimators consume; the full
    vector / matrix versions are built from them by default and can be
    overridden with vectorised expressions.
    """

    @abstractmethod
    def kernel(self, x, y):
        """Kernel value :math:`k(x, y)`."""

    @abstractmethod
    def dx_component(self, x, y, i):
        r""":math:`\partial k(x, y) / \partial x_i`."""

    @abstractmethod
    def dx_dy_component(self, x, y, i, j):
        r""":math:`\partial^2 k(x, y) / \partial x_i \partial y_j`."""

    @abstractmethod
    def dx_dy_dy_component(self, x, y, i, j):
        r""":math:`\partial^3 k(x, y) / \partial x_i \partial y_j^2`."""

    @abstractmethod
    def dx_i_dx_j_component(self, x, y, i):
        r"""Row ``i`` of the Hessian with respect to :math:`x`.

        Returns
        -------
        row : numpy.ndarray of shape (n_dimensions,)
            :math:`\partial^2 k(x, y) / \partial x_i \partial x_j` for all `j`.
        """

    @abstractmethod
    def dx_i_dx_j_dx_k_dot_vec_component(self, x, y, vec, i, j):
        r"""Third derivative with respect to :math:`x`, contracted with ``vec``.

        .. math::
            \sum_k v_k \frac{\partial^3 k(x, y)}
            {\partial x_i \partial x_j \partial x_k}
        """

    def dx(self, x, y):
        """Gradient of the kernel with respect to ``x``."""
        return np.array([self.dx_component(x, y, i) for i in range(len(x))])

    def dx_dy(self, x, y):
        """Matrix of all mixed second derivatives."""
        D = len(x)
        return np.array(
            [[self.dx_dy_component(x, y, i, j) for j in range(D)] for i in range(D)]
        )

    def dx_i_dx_j(self, x, y):
        """Hessian of the kernel with respect to ``x``."""
        return np.array([self.dx_i_dx_j_component(x, y, i) for i in range(len(x))])

    def dx_i_dx_j_dx_k_dot_vec(self, x, y, vec):
        """Third derivative tensor with respect to ``x``, contracted with ``vec``."""
        D = len(x)
        return np.array(
            [
                [self.dx_i_dx_j_dx_k_dot_vec_component(x, y, vec, i, j) for j in range(D)]
                for i in range(D)
            ]
        )
