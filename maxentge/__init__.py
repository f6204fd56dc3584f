"""
# maxentge: MaxEnt classifiers trained from labeled features.

License: BSD-style (see LICENSE.md in main source directory)

Routines for training multinomial logistic regression ("MaxEnt")
classifiers with the generalized expectation (GE) criterion, following
Druck, Mann and McCallum, "Learning from Labeled Features using
Generalized Expectation Criteria" (SIGIR 2008).

Instead of labeled examples, the trainer supplies prior knowledge of the
form "when feature F fires, the label distribution should look like R".
The GE criterion is the negative KL divergence between each such
reference distribution R and the model's conditional label distribution
given that F fires, estimated on unlabeled data.


## Usage:

For most uses, fit a `GEMaxEntClassifier`:

    >>> constraints = {0: [0.9, 0.1], 1: [0.2, 0.8], 'DEFAULT': [0.5, 0.5]}
    >>> clf = GEMaxEntClassifier(constraints, classes=['spam', 'ham'])
    >>> clf.fit(X)
    >>> clf.predict(X)

Rows of y equal to -1 are unlabeled; only these enter the GE criterion.
Labeled rows contribute through the optional supervised log likelihood
term (`supervised_weight`).

To drive your own optimizer, use `KLGECriterion` directly. It exposes
`value()`, `value_gradient()`, `getparams()` and `setparams()` for the
parameters of a `MaxEnt` model, and caches its results until the
parameters change.


## Constraints:

A constraint set maps column indices of X to reference distributions over
the classes. The index n_features (or the key 'DEFAULT' for the estimator)
is the default feature, present once in every instance; constraining it
pulls the model's overall label marginal toward the reference.
Constraint sets can be read from text with `read_constraints()`.
"""

from .classifier import MaxEnt
from .constraints import FeatureConstraintIndex, build_mapping, read_constraints
from .criterion import GEConfig, GEResult, KLGECriterion, kl_ge_value_gradient
from .instances import Instance, InstanceList
from .trainer import GaussianPrior, GEMaxEntClassifier, label_log_likelihood
from .utils import DivergenceError


__all__ = ['MaxEnt',
           'FeatureConstraintIndex',
           'build_mapping',
           'read_constraints',
           'GEConfig',
           'GEResult',
           'KLGECriterion',
           'kl_ge_value_gradient',
           'Instance',
           'InstanceList',
           'GaussianPrior',
           'GEMaxEntClassifier',
           'label_log_likelihood',
           'DivergenceError',
           'utils']

__version__ = '0.1.0'
