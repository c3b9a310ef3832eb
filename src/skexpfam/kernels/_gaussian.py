import numpy as np

from ._base import BaseDerivativeKernel


class GaussianKernel(BaseDerivativeKernel):
    r"""Gaussian kernel and its derivatives up to third order.

    .. math::
        k(x, y) = \exp\left(-\frac{\|x - y\|^2}{\sigma}\right)

    All derivatives are expressed in terms of the difference :math:`d = x - y`.

    Parameters
    ----------
    sigma : float, default=1.0
        Bandwidth of the kernel. Note that it divides the *squared* distance, so
        it plays the role of :math:`2 \ell^2` for a length scale :math:`\ell`.

    Examples
    --------
    >>> import numpy as np
    >>> from skexpfam.kernels import GaussianKernel
    >>> kernel = GaussianKernel(sigma=2.0)
    >>> x, y = np.array([0.0, 1.0]), np.array([2.0, 4.0])
    >>> round(kernel.dx_dy_component(x, y, 0, 0), 10)
    np.float64(-0.0045103176)
    """

    def __init__(self, sigma=1.0):
        if sigma <= 0:
            raise ValueError(f"sigma must be positive, got {sigma}.")
        self.sigma = sigma

    def __repr__(self):
        return f"GaussianKernel(sigma={self.sigma!r})"

    def difference(self, x, y):
        return np.asarray(x, dtype=float) - np.asarray(y, dtype=float)

    def kernel(self, x, y):
        d = self.difference(x, y)
        return np.exp(-d.dot(d) / self.sigma)

    def dx(self, x, y):
        d = self.difference(x, y)
        return -2.0 / self.sigma * np.exp(-d.dot(d) / self.sigma) * d

    def dx_component(self, x, y, i):
        d = self.difference(x, y)
        return -2.0 / self.sigma * np.exp(-d.dot(d) / self.sigma) * d[i]

    def dx_dy(self, x, y):
        d = self.difference(x, y)
        k = np.exp(-d.dot(d) / self.sigma)
        s = self.sigma
        return k * (2.0 / s * np.eye(len(d)) - 4.0 / s**2 * np.outer(d, d))

    def dx_dy_component(self, x, y, i, j):
        d = self.difference(x, y)
        k = np.exp(-d.dot(d) / self.sigma)
        s = self.sigma
        return k * (2.0 / s * (i == j) - 4.0 / s**2 * d[i] * d[j])

    def dx_dy_dy_component(self, x, y, i, j):
        d = self.difference(x, y)
        k = np.exp(-d.dot(d) / self.sigma)
        s = self.sigma
        return k * (
            8.0 / s**2 * (i == j) * d[j]
            + 4.0 / s**2 * d[i]
            - 8.0 / s**3 * d[i] * d[j] ** 2
        )

    def dx_i_dx_j(self, x, y):
        d = self.difference(x, y)
        k = np.exp(-d.dot(d) / self.sigma)
        s = self.sigma
        return k * (4.0 / s**2 * np.outer(d, d) - 2.0 / s * np.eye(len(d)))

    def dx_i_dx_j_component(self, x, y, i):
        d = self.difference(x, y)
        k = np.exp(-d.dot(d) / self.sigma)
        s = self.sigma
        row = 4.0 / s**2 * d[i] * d
        row[i] -= 2.0 / s
        return k * row

    def dx_i_dx_j_dx_k_dot_vec(self, x, y, vec):
        d = self.difference(x, y)
        k = np.exp(-d.dot(d) / self.sigma)
        s = self.sigma
        vec = np.asarray(vec, dtype=float)
        d_vec = d.dot(vec)
        return k * (
            -8.0 / s**3 * d_vec * np.outer(d, d)
            + 4.0 / s**2
            * (d_vec * np.eye(len(d)) + np.outer(vec, d) + np.outer(d, vec))
        )

    def dx_i_dx_j_dx_k_dot_vec_component(self, x, y, vec, i, j):
        d = self.difference(x, y)
        k = np.exp(-d.dot(d) / self.sigma)
        s = self.sigma
        d_vec = d.dot(vec)
        return k * (
            -8.0 / s**3 * d_vec * d[i] * d[j]
            + 4.0 / s**2 * ((i == j) * d_vec + vec[i] * d[j] + vec[j] * d[i])
        )
