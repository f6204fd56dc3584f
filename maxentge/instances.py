"""
Training instances for models fitted by generalized expectation.

An instance is a sparse feature vector together with an optional target
label and a non-negative weight. Instances whose target is -1 (the
scikit-learn convention for semi-supervised data) are unlabeled; only these
take part in the generalized expectation criterion.
"""

from __future__ import annotations

import numpy as np
from sklearn.utils import check_array
from sklearn.utils.validation import column_or_1d

from maxentge.utils import as_csr_array


UNLABELED = -1


class Instance:
    """
    A read-only view of one row of an InstanceList.

    Attributes
    ----------
    name : the identifier of the instance
    features : (1 x n_features) scipy.sparse CSR array
    target : int or None (None if unlabeled)
    weight : float
    """

    def __init__(self, name, features, target, weight):
        self.name = name
        self.features = features
        self.target = target
        self.weight = weight

    @property
    def labeled(self):
        return self.target is not None

    def indices(self):
        """The indices of the features present in this instance."""
        return self.features.indices

    def values(self):
        """The stored values of the features present in this instance."""
        return self.features.data

    def __repr__(self):
        return "Instance(name={0!r}, n_active={1}, target={2!r}, weight={3})".format(
            self.name, self.features.nnz, self.target, self.weight
        )


class InstanceList:
    """
    A set of training instances stored as one sparse (n x m) feature matrix.

    Parameters
    ----------
    X : array-like or scipy.sparse matrix of shape (n_samples, n_features)
        Feature values. Only nonzero entries are stored.

    y : array-like of shape (n_samples,), optional
        Integer target labels in the range [0, n_labels), or -1 for
        unlabeled instances. If None, every instance is unlabeled.

    sample_weight : array-like of shape (n_samples,), optional
        Non-negative instance weights. Defaults to 1 for every instance.

    names : sequence of length n_samples, optional
        Instance identifiers. Defaults to the row numbers.
    """

    def __init__(self, X, y=None, sample_weight=None, names=None):
        X = check_array(X, accept_sparse=["csr", "csc", "coo"], dtype=float)
        self.X = as_csr_array(X)
        n_samples = self.X.shape[0]

        if y is None:
            self.targets = np.full(n_samples, UNLABELED, dtype=np.intp)
        else:
            self.targets = column_or_1d(y).astype(np.intp)
            if len(self.targets) != n_samples:
                raise ValueError("y must have one entry per row of X")
            if np.any(self.targets < UNLABELED):
                raise ValueError("targets must be label indices or -1 for unlabeled")

        if sample_weight is None:
            self.weights = np.ones(n_samples, float)
        else:
            self.weights = column_or_1d(sample_weight).astype(float)
            if len(self.weights) != n_samples:
                raise ValueError("sample_weight must have one entry per row of X")
            if np.any(self.weights < 0) or not np.all(np.isfinite(self.weights)):
                raise ValueError("instance weights must be finite and non-negative")

        if names is None:
            self.names = list(range(n_samples))
        else:
            self.names = list(names)
            if len(self.names) != n_samples:
                raise ValueError("names must have one entry per row of X")

    @property
    def n_features(self):
        """The number of real features. This is also the index of the
        default (always present) feature."""
        return self.X.shape[1]

    def __len__(self):
        return self.X.shape[0]

    def __getitem__(self, i):
        target = int(self.targets[i])
        return Instance(
            self.names[i],
            self.X[[i], :],
            None if target == UNLABELED else target,
            float(self.weights[i]),
        )

    def __iter__(self):
        for i in range(len(self)):
            yield self[i]

    def unlabeled_mask(self):
        return self.targets == UNLABELED

    def labeled_mask(self):
        return ~self.unlabeled_mask()

    def unlabeled(self):
        """Returns (X, weights) restricted to the unlabeled instances."""
        rows = np.flatnonzero(self.unlabeled_mask())
        return self.X[rows, :], self.weights[rows]

    def labeled(self):
        """Returns (X, targets, weights) restricted to the labeled instances."""
        rows = np.flatnonzero(self.labeled_mask())
        return self.X[rows, :], self.targets[rows], self.weights[rows]
