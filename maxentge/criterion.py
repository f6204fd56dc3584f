"""
The generalized expectation (GE) criterion with a KL-divergence penalty for
MaxEnt classifiers.

Given unlabeled instances and, for some features, a reference distribution
over the labels, the criterion measures how far the model's conditional label
distribution given that each constrained feature fires is from its reference:

    GE(theta) = - s * sum_k KL(ref_k || model_k(theta))

where s is the objective weight and

    model_k(theta)[y] = sum_i w_i f_k(x_i) p(y | x_i; theta) / sum_i w_i f_k(x_i)

sums over the unlabeled instances x_i with weights w_i. The value is never
positive, and is 0 exactly when every model_k equals its reference.

Based on:
    "Learning from Labeled Features using Generalized Expectation Criteria"
    Gregory Druck, Gideon Mann, Andrew McCallum. SIGIR 2008.

The gradient is computed in a second pass over the unlabeled instances,
reusing the label distributions from the first pass. Writing
r_k[y] = ref_k[y] / model_k[y] and n_k = sum_i w_i f_k(x_i), each instance
contributes

    s * w_i * T * p(y | x_i) * (g_i[y] - sum_y' p(y' | x_i) g_i[y'])

to the gradient cell of every feature of x_i for label y (scaled by the
feature value), and to the bias cell for label y, where
g_i[y] = sum_k f_k(x_i) r_k[y] / n_k and T is the temperature.
"""

from __future__ import annotations

import numpy as np
from scipy.special import xlogy

from maxentge.constraints import build_mapping, validate_constraints
from maxentge.utils import unit_values


class GEConfig:
    """
    The configuration of the GE criterion.

    Parameters
    ----------
    constraints : dict
        Mapping from feature index to a reference distribution over the
        labels. The default feature index denotes the label-prior
        constraint.

    objective_weight : float (default 1.0)
        Overall scaling of the penalty. 0 disables it.

    temperature : float (default 1.0)
        Softmax temperature used for scoring and as the chain-rule factor in
        the gradient. Must be > 0.

    use_values : bool (default False)
        If False, every feature that fires counts once regardless of its
        stored value (bag-of-features mode). If True, the stored value is
        used.

    default_feature_index : int or None
        The index of the always-present default feature. None means one past
        the last real feature, which is where MaxEnt keeps the biases.
    """

    def __init__(
        self,
        constraints,
        *,
        objective_weight=1.0,
        temperature=1.0,
        use_values=False,
        default_feature_index=None,
    ):
        self.constraints = constraints
        self.objective_weight = objective_weight
        self.temperature = temperature
        self.use_values = use_values
        self.default_feature_index = default_feature_index

    def validated(self, n_labels, n_features):
        """
        Returns a checked copy of this configuration for a classifier with
        the given numbers of labels and real features.
        """
        if not np.isfinite(self.temperature) or self.temperature <= 0:
            raise ValueError("temperature must be finite and > 0")
        if not np.isfinite(self.objective_weight):
            raise ValueError("objective_weight must be finite")
        default_feature_index = self.default_feature_index
        if default_feature_index is None:
            default_feature_index = n_features
        elif default_feature_index != n_features:
            raise ValueError(
                "the default feature index must be {0}, the index of the "
                "bias column".format(n_features)
            )
        return GEConfig(
            validate_constraints(self.constraints, n_labels, n_features),
            objective_weight=float(self.objective_weight),
            temperature=float(self.temperature),
            use_values=bool(self.use_values),
            default_feature_index=default_feature_index,
        )


class GEResult:
    """
    The outcome of one evaluation of the criterion.

    Attributes
    ----------
    value : float
    gradient : 1d array aligned with MaxEnt.params
    model_expectations : (K x n_labels) array
        The model's conditional label distribution for each constrained
        feature, in the order of the feature-constraint index. Rows of
        inert features (zero occurrence count) are zero.
    feature_counts : 1d array of length K
        The weighted occurrence counts of the constrained features.
    """

    def __init__(self, value, gradient, model_expectations, feature_counts):
        self.value = value
        self.gradient = gradient
        self.model_expectations = model_expectations
        self.feature_counts = feature_counts


class EvaluationCache:
    """
    The last computed value and gradient, tagged with the parameter version
    of the classifier they were computed from. A params_version of None
    means nothing valid is cached.
    """

    def __init__(self):
        self.params_version = None
        self.value = None
        self.gradient = None
        self.result = None

    def is_fresh(self, params_version):
        return self.params_version is not None and self.params_version == params_version

    def store(self, params_version, value, gradient, result=None):
        self.params_version = params_version
        self.value = value
        self.gradient = gradient
        self.result = result

    def clear(self):
        self.params_version = None


def kl_ge_value_gradient(config, instances, classifier, mapping=None):
    """
    Compute the GE criterion and its gradient with respect to the classifier
    parameters.

    Parameters
    ----------
    config : GEConfig, already validated for the classifier
    instances : InstanceList. Labeled instances are ignored.
    classifier : MaxEnt
    mapping : FeatureConstraintIndex, optional. Built from the constraints if
        not given.

    Returns
    -------
    GEResult
    """
    if mapping is None:
        mapping = build_mapping(config.constraints)

    n_labels = classifier.n_labels
    s = config.objective_weight
    temperature = config.temperature
    default = config.default_feature_index

    X, weights = instances.unlabeled()

    # Pass 1: the model's label distribution given each constrained feature.
    scores = classifier.scores_with_temperature(X, temperature)
    positions, features = mapping.real_features(default)
    Xc = X[:, features]
    if not config.use_values:
        Xc = unit_values(Xc)

    feature_counts = np.zeros(len(mapping), float)
    model_expectations = np.zeros((len(mapping), n_labels), float)
    weighted_scores = scores * weights[:, None]
    feature_counts[positions] = Xc.T @ weights
    model_expectations[positions] = Xc.T @ weighted_scores

    # The default feature fires once, with value 1, in every instance
    if default in mapping:
        d = mapping[default]
        feature_counts[d] = weights.sum()
        model_expectations[d] = weighted_scores.sum(axis=0)

    # Normalize and score the penalty. Features that never fire are inert.
    active = feature_counts > 0
    reference = mapping.reference_matrix(config.constraints)
    model_expectations[active] /= feature_counts[active, None]

    ref = reference[active]
    model = model_expectations[active]
    if np.any((ref > 0) & (model == 0)):
        raise FloatingPointError(
            "the model expectation underflowed to zero for a label with "
            "positive reference weight; the GE value is not finite"
        )
    # cross entropy term minus entropy term
    value = s * np.sum(xlogy(ref, model)) - s * np.sum(xlogy(ref, ref))

    ratio = np.zeros_like(model_expectations)
    ratio[active] = np.divide(ref, model, out=np.zeros_like(ref), where=model > 0)
    # r_k[y] / n_k, zero for inert features
    scaled_ratio = np.zeros_like(ratio)
    scaled_ratio[active] = ratio[active] / feature_counts[active, None]

    # Pass 2: per-instance gradient weights
    constraint_value = np.asarray(Xc @ scaled_ratio[positions]).reshape(-1, n_labels)
    if default in mapping:
        constraint_value += scaled_ratio[mapping[default]]
    instance_expectation = np.sum(constraint_value * scores, axis=1)

    gradient_weights = (
        s
        * weights[:, None]
        * temperature
        * scores
        * (constraint_value - instance_expectation[:, None])
    )

    # Scatter each label's weight across the full feature row and the bias
    gradient = np.zeros((n_labels, classifier.n_features + 1), float)
    gradient[:, :default] = np.asarray(X.T @ gradient_weights).T
    gradient[:, default] += gradient_weights.sum(axis=0)

    return GEResult(float(value), gradient.ravel(), model_expectations, feature_counts)


class KLGECriterion:
    """
    The GE criterion as an optimizable objective: the value and gradient at
    the classifier's current parameters, cached until the parameters change.

    The criterion is to be maximized. Combine it additively with any prior or
    supervised term before handing it to an optimizer.

    Parameters
    ----------
    instances : InstanceList
        The training instances. Labeled instances do not contribute.

    constraints : dict
        Mapping from feature index to reference distribution over labels.
        Index classifier.n_features denotes the default (label-prior)
        feature.

    classifier : MaxEnt
        The model whose parameters are being trained. It is read, never
        modified, except through setparams().

    objective_weight, temperature, use_values, default_feature_index :
        See GEConfig.

    regularization : callable or None
        A function of the parameter vector returning the weight-prior term
        of the surrounding training objective. Only reported in diagnostics;
        it is not added to the value.

    callback : callable or None
        Called once per recomputation with a dict with keys 'value',
        'regularization' and 'evaluations'.

    verbose : int (default 0)
        Enable verbose output.
    """

    def __init__(
        self,
        instances,
        constraints,
        classifier,
        *,
        objective_weight=1.0,
        temperature=1.0,
        use_values=False,
        default_feature_index=None,
        regularization=None,
        callback=None,
        verbose=0,
    ):
        if instances.n_features != classifier.n_features:
            raise ValueError("the instances and the classifier disagree on the number of features")
        self.instances = instances
        self.classifier = classifier
        self.config = GEConfig(
            constraints,
            objective_weight=objective_weight,
            temperature=temperature,
            use_values=use_values,
            default_feature_index=default_feature_index,
        ).validated(classifier.n_labels, classifier.n_features)
        self.regularization = regularization
        self.callback = callback
        self.verbose = verbose

        self.mapping = None
        self.cache = EvaluationCache()
        self.fnevals = 0

    @property
    def num_parameters(self):
        return self.classifier.num_parameters

    def getparams(self):
        return self.classifier.getparams()

    def setparams(self, params):
        """Set the classifier parameters. Cached results become stale."""
        self.classifier.setparams(params)

    def invalidate(self):
        """Discard the cached value and gradient."""
        self.cache.clear()

    def evaluate(self):
        """
        Returns (value, gradient) at the classifier's current parameters,
        recomputing them only if the parameters changed since the last call.
        """
        version = self.classifier.params_version
        if self.cache.is_fresh(version):
            return self.cache.value, self.cache.gradient.copy()

        if self.config.objective_weight == 0:
            # Disabled: a zero gradient, not whatever was cached before
            self.cache.store(version, 0.0, np.zeros(self.num_parameters, float))
            return self.cache.value, self.cache.gradient.copy()

        if self.mapping is None:
            self.mapping = build_mapping(self.config.constraints)

        result = kl_ge_value_gradient(self.config, self.instances, self.classifier, self.mapping)
        self.cache.store(version, result.value, result.gradient, result)
        self.fnevals += 1
        self._report(result.value)
        return self.cache.value, self.cache.gradient.copy()

    def value(self):
        return self.evaluate()[0]

    def value_gradient(self):
        return self.evaluate()[1]

    def last_result(self):
        """The GEResult of the most recent recomputation, or None."""
        return self.cache.result

    def _report(self, value):
        if self.regularization is None:
            reg = 0.0
        else:
            reg = float(self.regularization(self.classifier.params))
        if self.verbose:
            print("Value (GE=" + str(value) + " Gaussian prior= " + str(reg) + ")")
        if self.callback is not None:
            self.callback({"value": value, "regularization": reg, "evaluations": self.fnevals})
