"""
A multinomial logistic regression ("MaxEnt") classifier over sparse
features, used as the label scorer for generalized expectation training.
"""

from __future__ import annotations

import numpy as np
from scipy.special import logsumexp


class MaxEnt:
    """
    The conditional model

        p(y | x) = exp(theta_y . x + b_y) / Z(x)

    with one weight per (label, feature) pair and one bias per label. The
    parameters are stored as a (n_labels x (n_features + 1)) array whose
    last column holds the biases, i.e. the weights of the default feature
    that fires once in every instance.

    Every call to setparams() increments params_version, so that cached
    results computed from earlier parameters can be recognized as stale.

    Parameters
    ----------
    n_labels : int
    n_features : int
        The number of real features. The default feature has index
        n_features.
    params : array-like, optional
        Initial parameters, either flat or of shape
        (n_labels, n_features + 1). Defaults to zeros.
    """

    def __init__(self, n_labels, n_features, params=None):
        if n_labels < 2:
            raise ValueError("a classifier needs at least two labels")
        self.n_labels = n_labels
        self.n_features = n_features
        self.params_version = 0
        if params is None:
            params = np.zeros(self.num_parameters, float)
        self.setparams(params)

    @property
    def default_feature_index(self):
        return self.n_features

    @property
    def num_parameters(self):
        return self.n_labels * (self.n_features + 1)

    @property
    def weights(self):
        """A (n_labels x (n_features + 1)) view of the parameters."""
        return self.params.reshape(self.n_labels, self.n_features + 1)

    def getparams(self):
        return self.params.copy()

    def setparams(self, params):
        """Set the parameter vector to params, replacing the existing
        parameters. params must have num_parameters entries.
        """
        params = np.array(params, float)        # make a copy
        if params.size != self.num_parameters:
            raise ValueError(
                "expected {0} parameters, got {1}".format(self.num_parameters, params.size)
            )
        if not np.all(np.isfinite(params)):
            raise FloatingPointError("some of the parameters are not finite")
        self.params = params.ravel()
        self.params_version += 1

    def unnormalized_scores(self, X):
        """The linear scores theta_y . x + b_y as an (n x n_labels) array."""
        if X.ndim != 2 or X.shape[1] != self.n_features:
            raise ValueError(
                "X has {0} features but the classifier expects {1}".format(
                    X.shape[1], self.n_features
                )
            )
        W = self.weights
        return np.asarray(X @ W[:, :-1].T) + W[:, -1]

    def log_scores_with_temperature(self, X, temperature=1.0):
        """
        Returns the (n x n_labels) array of log p(y | x) computed from the
        linear scores divided by the temperature before normalization.
        A temperature above 1 flattens the distribution toward uniform; below
        1 it sharpens it toward the arg-max label.
        """
        z = self.unnormalized_scores(X) / temperature
        if not np.all(np.isfinite(z)):
            raise FloatingPointError("classification scores are not finite")
        return z - logsumexp(z, axis=1, keepdims=True)

    def scores_with_temperature(self, X, temperature=1.0):
        """
        Returns the (n x n_labels) array of label distributions p(y | x) at
        the given temperature. Each row sums to 1.
        """
        return np.exp(self.log_scores_with_temperature(X, temperature))
