"""
Kernels with analytic derivatives, as consumed by the Nystrom estimators in
:mod:`skexpfam.density`.

Kernel exponential family models are fitted by score matching, which only ever
involves derivatives of the kernel with respect to its arguments. A kernel
therefore has to provide first, second and third order partial derivatives
(and a few contractions of them) rather than Gram matrices.

The following classes are available:

* :class:`BaseDerivativeKernel` the abstract interface the estimators rely on.
* :class:`GaussianKernel` the Gaussian kernel
  :math:`k(x, y) = \\exp(-\\|x - y\\|^2 / \\sigma)`.
"""

from ._base import BaseDerivativeKernel
from ._gaussian import GaussianKernel

__all__ = ["BaseDerivativeKernel", "GaussianKernel"]
