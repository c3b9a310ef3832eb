"""Bookkeeping between flat basis component indices and (point, dimension) pairs.

A basis component is one dimension ``i`` of one basis point ``a``. Components
are addressed by the flat index ``a * D + i``, which is the row-major position
of entry ``(a, i)`` in an array of shape ``(n_points, D)``.
"""

import numpy as np


def idx_to_ai(idx, D):
    """
    Split a flat component index into its point and dimension.

    Parameters
    ----------
    idx : int or numpy.ndarray of int
        Non-negative flat index (or indices).
    D : int
        Number of dimensions, must be positive.

    Returns
    -------
    a : int or numpy.ndarray of int
        Point index, ``idx // D``.
    i : int or numpy.ndarray of int
        Dimension index, ``idx % D``.

    Examples
    --------
    >>> from skexpfam.utils import idx_to_ai
    >>> idx_to_ai(4, 3)
    (1, 1)
    """
    return idx // D, idx % D


def ai_to_idx(a, i, D):
    """Inverse of :func:`idx_to_ai`."""
    return a * D + i


def basis_inds_from_mask(mask):
    """
    Flat indices of the active components of a basis mask.

    Parameters
    ----------
    mask : array-like of bool, shape (n_points, n_dimensions)
        ``mask[a, i]`` is true if dimension ``i`` of point ``a`` is part of the
        basis.

    Returns
    -------
    basis_inds : numpy.ndarray of int
        Sorted, duplicate-free flat indices of the true entries.
    """
    mask = np.asarray(mask, dtype=bool)
    # sorted order keeps the traversals of the data linear in memory
    return np.sort(np.flatnonzero(mask))


def basis_point_inds(basis_inds, D):
    """Sorted distinct points owning at least one of ``basis_inds``."""
    a, _ = idx_to_ai(np.asarray(basis_inds, dtype=int), D)
    return np.unique(a)


def unused_basis_points(basis_inds, n_points, D):
    """Sorted points in ``[0, n_points)`` that own none of ``basis_inds``."""
    return np.setdiff1d(
        np.arange(n_points), basis_point_inds(basis_inds, D), assume_unique=True
    )


def group_components_by_point(basis_inds, D):
    """
    Group the positions of ``basis_inds`` by their owning point.

    Returns
    -------
    groups : list of tuple
        One ``(a, dims, positions)`` entry per owning point ``a``, in ascending
        order of ``a``. ``dims`` are the active dimensions of ``a`` and
        ``positions`` the positions in ``basis_inds`` (hence in ``beta``) of
        the corresponding components, both ascending.
    """
    points, dims = idx_to_ai(np.asarray(basis_inds, dtype=int), D)
    groups = []
    for a in np.unique(points):
        positions = np.flatnonzero(points == a)
        groups.append((int(a), dims[positions], positions))
    return groups
