"""
The :mod:`skexpfam.utils` module includes functions which are
used by multiple estimators
"""

from ._indexing import (
    ai_to_idx,
    basis_inds_from_mask,
    basis_point_inds,
    group_components_by_point,
    idx_to_ai,
    unused_basis_points,
)
from ._linalg import pinv_self_adjoint

__all__ = [
    "idx_to_ai",
    "ai_to_idx",
    "basis_inds_from_mask",
    "basis_point_inds",
    "unused_basis_points",
    "group_components_by_point",
    "pinv_self_adjoint",
]
