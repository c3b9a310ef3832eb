"""
scikit-expfam
=============

scikit-expfam provides Nystrom estimators of kernel exponential family densities,
following the `scikit-learn <https://scikit.org/>`_ API and coding guidelines to
promote usability and interoperability with existing workflows.
"""

from ._version import __version__  # noqa: F401
