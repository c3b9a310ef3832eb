"""
This module implements Nystrom estimators of kernel exponential family densities.

A kernel exponential family models an unnormalised log-density as a function in
a reproducing kernel Hilbert space, fitted by score matching so that the
normalising constant never has to be computed. The exact estimator solves a
linear system of size `ND` for `N` training points in `D` dimensions, which is
prohibitive for large datasets. The Nystrom approximation restricts the
solution to a set of basis components, each being one dimension of one basis
point, and solves a system whose size is the number of components.

The following classes are available:

* :class:`Nystrom` uses all dimensions of a set of basis points, either the
  training data, a subset of it or an explicit basis.
* :class:`NystromD` selects individual (point, dimension) components through a
  boolean mask.

Both estimate the log-density, its gradient, its Hessian and the diagonal of its
Hessian at arbitrary query points.
"""

from ._nystrom import Nystrom
from ._nystrom_d import NystromD

__all__ = ["Nystrom", "NystromD"]
