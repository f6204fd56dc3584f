"""
Utility routines for the maxentge package.

License: BSD-style (see LICENSE.md in main source directory)
"""

from __future__ import annotations

import numpy as np
import scipy.sparse
from scipy.special import rel_entr


__all__ = ["DivergenceError", "as_csr_array", "kl_divergence", "unit_values"]


class DivergenceError(Exception):
    """Exception raised if the training objective stops being finite."""

    def __init__(self, message):
        self.message = message
        Exception.__init__(self)

    def __str__(self):
        return repr(self.message)


def as_csr_array(X, dtype=float):
    """
    Takes an array or matrix (either numpy ndarray or scipy.sparse array /
    matrix) and returns a scipy.sparse CSR array with sorted indices and no
    explicitly stored zeros.
    """
    if scipy.sparse.issparse(X):
        X = scipy.sparse.csr_array(X, dtype=dtype, copy=True)
    elif isinstance(X, np.ndarray):
        if X.ndim != 2:
            raise ValueError("X must be a 2d array of shape (n_samples, n_features)")
        X = scipy.sparse.csr_array(X.astype(dtype, copy=False))
    else:
        raise ValueError("Only ndarray and scipy.sparse arrays / matrices are accepted.")
    X.eliminate_zeros()
    if not X.has_sorted_indices:
        X.sort_indices()
    return X


def unit_values(X):
    """
    Returns a copy of the sparse array X in which every stored entry is 1.
    This is the bag-of-features view of X: a feature counts once whenever it
    fires, whatever its stored value.
    """
    X = X.copy()
    X.data[:] = 1.0
    return X


def kl_divergence(p, q):
    r"""Return the Kullback-Leibler (KL) divergence D(p || q) between two
    discrete distributions given as 1d arrays:

        D_{KL} (P || Q) = \sum_i P(x_i) log ( P(x_i) / Q(x_i) )

    with 0 log 0 = 0.
    """
    return np.sum(rel_entr(np.asarray(p, float), np.asarray(q, float)))
