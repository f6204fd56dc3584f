"""
Constraint sets for generalized expectation training.

A constraint set maps a feature index to a reference distribution over the
labels: "when this feature fires, the label distribution should look like
this". The index one past the last real feature (``n_features``) is the
default feature, which is treated as firing once in every instance; a
reference distribution on it constrains the overall label marginal.
"""

from __future__ import annotations

import numpy as np
import toolz as tz


DEFAULT_FEATURE_NAME = "DEFAULT"


class FeatureConstraintIndex:
    """
    A bijection between the constrained feature indices and the dense
    indices 0, ..., K-1 used for the per-constraint accumulators.

    The order is the sorted order of the feature indices. It is stable for
    the lifetime of the object.
    """

    def __init__(self, constraints):
        self.features = np.array(sorted(constraints), dtype=np.intp)
        self._positions = {int(f): k for k, f in enumerate(self.features)}

    def __len__(self):
        return len(self.features)

    def __contains__(self, feature_index):
        return int(feature_index) in self._positions

    def __getitem__(self, feature_index):
        return self._positions[int(feature_index)]

    def real_features(self, default_feature_index):
        """
        Returns (positions, features) for the constrained features other than
        the default feature.
        """
        keep = self.features != default_feature_index
        return np.flatnonzero(keep), self.features[keep]

    def reference_matrix(self, constraints):
        """A (K x n_labels) array of the reference distributions, one row per
        dense constraint index."""
        return np.vstack([constraints[int(f)] for f in self.features])


def build_mapping(constraints):
    """Build the feature-constraint index for the given constraint set."""
    return FeatureConstraintIndex(constraints)


def validate_constraints(constraints, n_labels, n_features):
    """
    Check a constraint set and return a copy with each reference
    distribution converted to a 1d float array.

    Feature indices must lie in [0, n_features]; the index n_features denotes
    the default feature. Reference weights must be finite and non-negative.
    They are not required to sum to 1.
    """
    if len(constraints) == 0:
        raise ValueError("the constraint set is empty")

    constraints = tz.valmap(lambda ref: np.asarray(ref, dtype=float), constraints)
    for feature_index, ref in constraints.items():
        if not isinstance(feature_index, (int, np.integer)):
            raise ValueError(f"constrained features must be integer indices, not {feature_index!r}")
        if not 0 <= feature_index <= n_features:
            raise ValueError(
                f"constrained feature index {feature_index} is outside "
                f"the range [0, {n_features}]"
            )
        if ref.shape != (n_labels,):
            raise ValueError(
                f"the reference distribution for feature {feature_index} must "
                f"have one entry per label ({n_labels}); got shape {ref.shape}"
            )
        if not np.all(np.isfinite(ref)) or np.any(ref < 0):
            raise ValueError(
                f"the reference distribution for feature {feature_index} must "
                f"be finite and non-negative"
            )
    return {int(f): ref for f, ref in constraints.items()}


def read_constraints(lines, feature_names, label_names):
    """
    Read a constraint set from lines of text of the form:

        feature label:weight label:weight ...

    The feature name DEFAULT denotes the default feature, so a line such as

        DEFAULT positive:0.9 negative:0.1

    constrains the label marginal. Labels that are not mentioned get weight 0.
    Each row is normalized to sum to 1. Blank lines and lines starting with
    '#' are ignored.

    Parameters
    ----------
    lines : iterable of str (e.g. an open file)
    feature_names : sequence of the n_features feature names, in index order
    label_names : sequence of the n_labels label names, in index order

    Returns
    -------
    dict mapping feature index to a 1d array of length n_labels
    """
    feature_lookup = {name: i for i, name in enumerate(feature_names)}
    feature_lookup[DEFAULT_FEATURE_NAME] = len(feature_names)
    label_lookup = {name: i for i, name in enumerate(label_names)}

    constraints = {}
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        fields = line.split()
        feature = fields[0]
        if feature not in feature_lookup:
            raise ValueError(f"line {lineno}: unknown feature {feature!r}")
        ref = np.zeros(len(label_names), float)
        for field in fields[1:]:
            label, sep, weight = field.rpartition(":")
            if not sep or label not in label_lookup:
                raise ValueError(f"line {lineno}: cannot parse {field!r}")
            ref[label_lookup[label]] = float(weight)
        total = ref.sum()
        if total <= 0:
            raise ValueError(f"line {lineno}: the weights for {feature!r} sum to zero")
        constraints[feature_lookup[feature]] = ref / total
    return constraints
