import numpy as np
from scipy.linalg import eigh


def pinv_self_adjoint(A, tol=None):
    r"""
    Pseudo-inverse of a symmetric matrix from its eigendecomposition.

    .. math::
        \mathbf{A}^+ = \mathbf{V} \mathbf{\Lambda}^+ \mathbf{V}^T

    where :math:`\mathbf{\Lambda}^+` inverts the eigenvalues whose magnitude is
    above ``tol`` and zeroes the others, so that directions in the (numerical)
    null space of :math:`\mathbf{A}` do not contribute.

    Parameters
    ----------
    A : numpy.ndarray of shape (n, n)
        Symmetric matrix. Only its lower triangle is read.
    tol : float, default=None
        Threshold below which eigenvalues are considered 0. If None, it is
        ``max(A.shape) * eps * max(abs(eigenvalues))``, as in
        :func:`numpy.linalg.pinv`.

    Returns
    -------
    A_pinv : numpy.ndarray of shape (n, n)

    Examples
    --------
    >>> import numpy as np
    >>> from skexpfam.utils import pinv_self_adjoint
    >>> A = np.array([[13.0, 11.0], [11.0, 18.0]])
    >>> np.allclose(pinv_self_adjoint(A), np.linalg.pinv(A))
    True
    """
    A = np.asarray(A, dtype=np.float64)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {A.shape}.")

    if A.size == 0:
        return np.zeros_like(A)

    vA, UA = eigh(A)

    if tol is None:
        tol = max(A.shape) * np.finfo(A.dtype).eps * np.max(np.abs(vA))

    keep = np.abs(vA) > tol
    UA = UA[:, keep]

    return (UA / vA[keep]) @ UA.T
