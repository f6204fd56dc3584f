#!/usr/bin/env python

"""Tests for training MaxEnt classifiers from labeled features.
"""

import numpy as np
from numpy.testing import assert_allclose
import pytest
import scipy.sparse
from sklearn.exceptions import NotFittedError

from maxentge import GaussianPrior, GEMaxEntClassifier, InstanceList, MaxEnt, label_log_likelihood


def make_documents(n_samples=300, seed=0):
    """
    Binary "word" features for two topics. Words 0-2 are typical of topic 0,
    words 3-5 of topic 1, and words 6-9 are noise.
    """
    rng = np.random.default_rng(seed)
    y = rng.integers(0, 2, size=n_samples)
    X = np.zeros((n_samples, 10))
    for i, topic in enumerate(y):
        own = slice(0, 3) if topic == 0 else slice(3, 6)
        other = slice(3, 6) if topic == 0 else slice(0, 3)
        X[i, own] = rng.random(3) < 0.6
        X[i, other] = rng.random(3) < 0.1
        X[i, 6:] = rng.random(4) < 0.3
    return scipy.sparse.csr_matrix(X), y


LABELED_FEATURES = {
    0: [0.85, 0.15],
    1: [0.85, 0.15],
    2: [0.85, 0.15],
    3: [0.15, 0.85],
    4: [0.15, 0.85],
    5: [0.15, 0.85],
    "DEFAULT": [0.5, 0.5],
}


def test_fit_from_labeled_features_only():
    X, y = make_documents()
    clf = GEMaxEntClassifier(LABELED_FEATURES, classes=[0, 1])
    clf.fit(X)
    assert clf.n_iter_ > 0
    assert np.isfinite(clf.objective_)
    assert np.mean(clf.predict(X) == y) > 0.8

    proba = clf.predict_proba(X)
    assert proba.shape == (X.shape[0], 2)
    assert_allclose(proba.sum(axis=1), 1.0)


def test_fit_improves_objective():
    X, _ = make_documents(seed=1)
    clf = GEMaxEntClassifier(LABELED_FEATURES, classes=[0, 1], max_iter=1)
    clf.fit(X)
    early = clf.objective_
    clf.set_params(max_iter=500)
    clf.fit(X)
    assert clf.objective_ >= early


def test_string_classes():
    X, y = make_documents(n_samples=100, seed=2)
    clf = GEMaxEntClassifier(LABELED_FEATURES, classes=["sports", "politics"])
    clf.fit(X)
    assert set(clf.predict(X)) <= {"sports", "politics"}


def test_objective_combines_terms():
    X, y = make_documents(n_samples=60, seed=3)
    y = np.where(np.arange(60) % 3 == 0, y, -1)
    clf = GEMaxEntClassifier(LABELED_FEATURES, gaussian_prior_variance=2.0,
                             supervised_weight=0.5, max_iter=3)
    clf.fit(X, y)
    params = clf.model_.getparams()
    expected = (clf.criterion_.value()
                + GaussianPrior(2.0).value(params)
                + 0.5 * label_log_likelihood(clf.instances_, clf.model_)[0])
    assert_allclose(clf.objective(), expected)


def test_semi_supervised_fit_reaches_stationary_point():
    X, y = make_documents(n_samples=120, seed=4)
    y = np.where(np.arange(120) % 4 == 0, y, -1)
    clf = GEMaxEntClassifier(LABELED_FEATURES, supervised_weight=1.0, tol=1e-12)
    clf.fit(X, y)
    assert list(clf.classes_) == [0, 1]
    assert np.linalg.norm(clf.gradient()) < 1e-2


def test_fit_at_higher_temperature_converges():
    X, _ = make_documents(n_samples=150, seed=9)
    clf = GEMaxEntClassifier(LABELED_FEATURES, classes=[0, 1], temperature=2.0)
    clf.fit(X)
    assert clf.optimize_result_.success


def test_trainer_gradient_matches_objective_at_higher_temperature():
    X, _ = make_documents(n_samples=40, seed=10)
    clf = GEMaxEntClassifier(LABELED_FEATURES, classes=[0, 1], temperature=2.0, max_iter=2)
    clf.fit(X)
    params = clf.model_.getparams()
    analytic = clf.gradient(params)
    eps = 1e-6
    numerical = np.zeros_like(params)
    for i in range(len(params)):
        up, down = params.copy(), params.copy()
        up[i] += eps
        down[i] -= eps
        numerical[i] = (clf.objective(up) - clf.objective(down)) / (2 * eps)
    assert_allclose(analytic, numerical, atol=1e-4)


def test_label_log_likelihood_gradient():
    rng = np.random.default_rng(5)
    X = rng.random((6, 3))
    instances = InstanceList(X, [0, 2, -1, 1, 2, -1], sample_weight=[1, 2, 1, 0.5, 1, 1])
    model = MaxEnt(3, 3, rng.normal(size=12))
    value, gradient = label_log_likelihood(instances, model)
    assert value < 0

    eps = 1e-6
    params = model.getparams()
    numerical = np.zeros_like(params)
    for i in range(len(params)):
        up, down = params.copy(), params.copy()
        up[i] += eps
        down[i] -= eps
        model.setparams(up)
        f_up = label_log_likelihood(instances, model)[0]
        model.setparams(down)
        f_down = label_log_likelihood(instances, model)[0]
        numerical[i] = (f_up - f_down) / (2 * eps)
    assert_allclose(gradient, numerical, atol=1e-5)


def test_gaussian_prior():
    prior = GaussianPrior(4.0)
    params = np.array([2.0, -2.0])
    assert_allclose(prior.value(params), -1.0)
    assert_allclose(prior.gradient(params), [-0.5, 0.5])
    with pytest.raises(ValueError):
        GaussianPrior(0.0)


def test_callback_is_called_every_iteration():
    X, _ = make_documents(n_samples=80, seed=6)
    seen = []
    clf = GEMaxEntClassifier(LABELED_FEATURES, classes=[0, 1],
                             callback=lambda est: seen.append(est.n_iter_))
    clf.fit(X)
    assert seen == list(range(clf.n_iter_))


def test_warm_start_reuses_model():
    X, _ = make_documents(n_samples=80, seed=7)
    clf = GEMaxEntClassifier(LABELED_FEATURES, classes=[0, 1], warm_start=True)
    clf.fit(X)
    model = clf.model_
    clf.fit(X)
    assert clf.model_ is model


def test_errors():
    X, _ = make_documents(n_samples=20, seed=8)
    with pytest.raises(NotFittedError):
        GEMaxEntClassifier(LABELED_FEATURES).predict(X)
    with pytest.raises(ValueError):
        # no labeled rows and no classes given
        GEMaxEntClassifier(LABELED_FEATURES).fit(X)
    with pytest.raises(ValueError):
        GEMaxEntClassifier({}, classes=[0, 1]).fit(X)
    with pytest.raises(ValueError):
        y = np.full(20, -1)
        y[0] = 5
        GEMaxEntClassifier(LABELED_FEATURES, classes=[0, 1]).fit(X, y)
    with pytest.raises(ValueError):
        # the default feature under both of its names
        GEMaxEntClassifier({**LABELED_FEATURES, 10: [0.5, 0.5]}, classes=[0, 1]).fit(X)
