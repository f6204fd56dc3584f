"""
Training MaxEnt classifiers from labeled features with the generalized
expectation criterion.
"""

from __future__ import annotations

import numpy as np
from scipy import optimize
from scipy.linalg import norm
from sklearn.base import BaseEstimator, ClassifierMixin
from sklearn.utils import check_array
from sklearn.utils.validation import check_is_fitted, column_or_1d

from maxentge.classifier import MaxEnt
from maxentge.constraints import DEFAULT_FEATURE_NAME
from maxentge.criterion import KLGECriterion
from maxentge.instances import UNLABELED, InstanceList
from maxentge.utils import DivergenceError


class GaussianPrior:
    """
    A zero-mean Gaussian prior on the parameters with the given variance.
    Its log density (up to a constant) is

        -sum_i theta_i^2 / (2 variance)
    """

    def __init__(self, variance=1.0):
        if not variance > 0:
            raise ValueError("the prior variance must be > 0")
        self.variance = variance

    def value(self, params):
        return -0.5 * np.dot(params, params) / self.variance

    def gradient(self, params):
        return -params / self.variance


def label_log_likelihood(instances, classifier):
    """
    The weighted conditional log likelihood of the labeled instances,

        L(theta) = sum_i w_i log p(y_i | x_i; theta),

    and its gradient with respect to the classifier parameters. Unlabeled
    instances are ignored.
    """
    X, targets, weights = instances.labeled()
    n_labels = classifier.n_labels
    gradient = np.zeros((n_labels, classifier.n_features + 1), float)
    if len(targets) == 0:
        return 0.0, gradient.ravel()

    log_scores = classifier.log_scores_with_temperature(X)
    rows = np.arange(len(targets))
    value = np.dot(weights, log_scores[rows, targets])

    # observed minus expected
    residual = -np.exp(log_scores)
    residual[rows, targets] += 1.0
    residual *= weights[:, None]
    gradient[:, :-1] = np.asarray(X.T @ residual).T
    gradient[:, -1] = residual.sum(axis=0)
    return float(value), gradient.ravel()


class GEMaxEntClassifier(ClassifierMixin, BaseEstimator):
    """
    A MaxEnt (multinomial logistic regression) classifier trained from
    reference label distributions on features ("labeled features") using
    unlabeled data.

    The fitted parameters maximize

        GE(theta) + log prior(theta) + supervised_weight * L(theta)

    where GE is the KL-divergence generalized expectation criterion evaluated
    on the unlabeled rows, the prior is Gaussian, and L is the conditional
    log likelihood of the labeled rows.

    Parameters
    ----------
    constraints : dict
        Mapping from a feature (column) index to a reference distribution
        over the classes, given in the order of `classes` (or of the sorted
        labels seen in y). The key 'DEFAULT', or the index n_features,
        constrains the overall label marginal.

    classes : array-like or None
        The class labels. Required if y contains no labeled rows.

    objective_weight : float (default 1.0)
        Weight of the GE criterion.

    temperature : float (default 1.0)
        Softmax temperature used by the GE criterion during training.
        Predictions always use temperature 1.

    use_values : bool (default False)
        Whether feature values (True) or unit counts (False) weight the
        constrained features.

    gaussian_prior_variance : float or None (default 1.0)
        Variance of the Gaussian prior on the parameters. None disables it.

    supervised_weight : float (default 0.0)
        Weight of the log likelihood of the labeled rows.

    algorithm : string (default 'L-BFGS-B')
        Any gradient-based method accepted by scipy.optimize.minimize, such
        as 'L-BFGS-B', 'CG' or 'BFGS'.

    max_iter : int (default 500)

    tol : float (default 1e-8)

    warm_start : bool (default False)
        If True, continue from the parameters of the previous fit when the
        shapes agree.

    verbose : int (default 0)
        Enable verbose output.

    callback : callable or None
        Called every iteration with the estimator as its argument.
    """

    def __init__(
        self,
        constraints=None,
        *,
        classes=None,
        objective_weight=1.0,
        temperature=1.0,
        use_values=False,
        gaussian_prior_variance=1.0,
        supervised_weight=0.0,
        algorithm="L-BFGS-B",
        max_iter=500,
        tol=1e-8,
        warm_start=False,
        verbose=0,
        callback=None,
    ):
        self.constraints = constraints
        self.classes = classes
        self.objective_weight = objective_weight
        self.temperature = temperature
        self.use_values = use_values
        self.gaussian_prior_variance = gaussian_prior_variance
        self.supervised_weight = supervised_weight
        self.algorithm = algorithm
        self.max_iter = max_iter
        self.tol = tol
        self.warm_start = warm_start
        self.verbose = verbose
        self.callback = callback

    def _targets(self, y, n_samples):
        """
        Set self.classes_ and return y as label indices, with -1 for the
        unlabeled rows.
        """
        if y is None:
            y = np.full(n_samples, UNLABELED)
        y = column_or_1d(y)
        if len(y) != n_samples:
            raise ValueError("X and y have inconsistent numbers of samples")
        unlabeled = y == UNLABELED
        if self.classes is None:
            self.classes_ = np.unique(y[~unlabeled])
        else:
            self.classes_ = np.asarray(self.classes)
        if len(self.classes_) < 2:
            raise ValueError(
                "at least two classes are required; pass `classes` when y has "
                "no labeled rows"
            )

        lookup = {label: i for i, label in enumerate(self.classes_)}
        targets = np.full(n_samples, UNLABELED, dtype=np.intp)
        for j in np.flatnonzero(~unlabeled):
            if y[j] not in lookup:
                raise ValueError("y contains a label not in classes: {0!r}".format(y[j]))
            targets[j] = lookup[y[j]]
        return targets

    def _resolve_constraints(self, n_features):
        if not self.constraints:
            raise ValueError("at least one constraint is required")
        if DEFAULT_FEATURE_NAME in self.constraints and n_features in self.constraints:
            raise ValueError(
                f"the default feature is constrained twice, as {DEFAULT_FEATURE_NAME!r} "
                f"and as index {n_features}"
            )
        return {
            (n_features if key == DEFAULT_FEATURE_NAME else key): ref
            for key, ref in self.constraints.items()
        }

    def fit(self, X, y=None, sample_weight=None):
        """Fit the classifier.

        Parameters
        ----------
        X : array-like or sparse matrix of shape (n_samples, n_features)
            Training data.

        y : array-like of shape (n_samples,) or None
            Class labels, with -1 for unlabeled rows. None means that every
            row is unlabeled.

        sample_weight : array-like of shape (n_samples,), default=None
            Instance weights.

        Returns
        -------
        self : object
            Returns the instance itself.
        """
        X = check_array(X, accept_sparse=["csr", "csc"], dtype=float)
        n_samples, n_features = X.shape
        targets = self._targets(y, n_samples)
        instances = InstanceList(X, targets, sample_weight=sample_weight)
        n_labels = len(self.classes_)

        if (
            self.warm_start
            and hasattr(self, "model_")
            and self.model_.n_labels == n_labels
            and self.model_.n_features == n_features
        ):
            model = self.model_
        else:
            model = MaxEnt(n_labels, n_features)

        if self.gaussian_prior_variance is None:
            self.prior_ = None
        else:
            self.prior_ = GaussianPrior(self.gaussian_prior_variance)

        self.criterion_ = KLGECriterion(
            instances,
            self._resolve_constraints(n_features),
            model,
            objective_weight=self.objective_weight,
            temperature=self.temperature,
            use_values=self.use_values,
            regularization=None if self.prior_ is None else self.prior_.value,
            verbose=self.verbose,
        )
        self.model_ = model
        self.instances_ = instances
        self.n_iter_ = 0

        options = {"maxiter": self.max_iter}
        if self.verbose:
            options["disp"] = True
        retval = optimize.minimize(
            self._negative_objective,
            model.getparams(),
            method=self.algorithm,
            jac=self._negative_gradient,
            tol=self.tol,
            options=options,
            callback=self._log,
        )
        self._setparams(retval.x)
        self.objective_ = self.objective()
        self.optimize_result_ = retval
        return self

    def _setparams(self, params):
        # Only a real change should invalidate the cached GE value
        if np.any(self.model_.params != params):
            self.model_.setparams(params)

    def objective(self, params=None):
        """The training objective at params (default: the current
        parameters)."""
        if params is not None:
            self._setparams(params)
        params = self.model_.params
        value = self.criterion_.value()
        if self.prior_ is not None:
            value += self.prior_.value(params)
        if self.supervised_weight:
            value += self.supervised_weight * label_log_likelihood(self.instances_, self.model_)[0]
        return value

    def gradient(self, params=None):
        """The gradient of the training objective at params (default: the
        current parameters)."""
        if params is not None:
            self._setparams(params)
        params = self.model_.params
        # The GE gradient carries a factor T where d softmax(z / T) gives 1 / T
        G = self.criterion_.value_gradient() / self.temperature ** 2
        if self.prior_ is not None:
            G += self.prior_.gradient(params)
        if self.supervised_weight:
            G += self.supervised_weight * label_log_likelihood(self.instances_, self.model_)[1]
        return G

    def _negative_objective(self, params):
        return -self.objective(params)

    def _negative_gradient(self, params):
        return -self.gradient(params)

    def _log(self, params):
        """
        Called every iteration during the optimization process. Calls the
        user-supplied callback function (if any) and checks that the
        objective is still finite.
        """
        self._setparams(params)
        value = self.objective()
        if self.verbose:
            print("Iteration #", self.n_iter_)
            print("  objective is ", value)
            print("  norm of gradient =", norm(self.gradient()))
        if not np.isfinite(value):
            raise DivergenceError(
                "the objective is no longer finite. Check the constraints "
                "and the prior variance."
            )
        if self.callback is not None:
            self.callback(self)
        self.n_iter_ += 1

    def predict_log_proba(self, X):
        """
        The log probability of each class for each row of X.
        """
        check_is_fitted(self, "model_")
        X = check_array(X, accept_sparse=["csr", "csc"], dtype=float)
        return self.model_.log_scores_with_temperature(X)

    def predict_proba(self, X):
        """
        The probability of each class for each row of X.
        """
        return np.exp(self.predict_log_proba(X))

    def predict(self, X):
        log_proba = self.predict_log_proba(X)
        return self.classes_[np.argmax(log_proba, axis=1)]


__all__ = ["GEMaxEntClassifier", "GaussianPrior", "label_log_likelihood"]
