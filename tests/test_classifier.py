import numpy as np
from numpy.testing import assert_allclose
import pytest
import scipy.sparse

from maxentge import MaxEnt


def test_scores_are_distributions():
    rng = np.random.default_rng(0)
    model = MaxEnt(4, 6, rng.normal(size=28))
    X = scipy.sparse.random(10, 6, density=0.4, random_state=1, format="csr")
    for temperature in (0.5, 1.0, 3.0):
        p = model.scores_with_temperature(X, temperature)
        assert p.shape == (10, 4)
        assert np.all(p > 0)
        assert_allclose(p.sum(axis=1), 1.0)


def test_scores_match_softmax_of_linear_scores():
    model = MaxEnt(2, 2, [1.0, -1.0, 0.5, 0.0, 2.0, -0.5])
    X = np.array([[1.0, 2.0]])
    # label 0: 1 - 2 + 0.5 = -0.5 ; label 1: 0 + 4 - 0.5 = 3.5
    z = np.array([-0.5, 3.5])
    assert_allclose(model.unnormalized_scores(X)[0], z)
    p = np.exp(z / 2.0) / np.exp(z / 2.0).sum()
    assert_allclose(model.scores_with_temperature(X, 2.0)[0], p)


def test_temperature_flattens_and_sharpens():
    rng = np.random.default_rng(3)
    model = MaxEnt(3, 4, rng.normal(size=15))
    X = np.eye(4)
    base = model.scores_with_temperature(X, 1.0)
    flat = model.scores_with_temperature(X, 10.0)
    sharp = model.scores_with_temperature(X, 0.1)
    assert np.all(flat.max(axis=1) < base.max(axis=1))
    assert np.all(sharp.max(axis=1) > base.max(axis=1))
    assert np.array_equal(np.argmax(sharp, axis=1), np.argmax(base, axis=1))


def test_setparams_bumps_version_and_copies():
    params = np.zeros(6)
    model = MaxEnt(2, 2, params)
    version = model.params_version
    params[0] = 1.0
    assert model.params[0] == 0.0
    model.setparams(np.ones(6))
    assert model.params_version == version + 1
    assert model.weights.shape == (2, 3)
    assert model.default_feature_index == 2


def test_invalid_parameters():
    with pytest.raises(ValueError):
        MaxEnt(2, 2, np.zeros(5))
    with pytest.raises(ValueError):
        MaxEnt(1, 2)
    with pytest.raises(FloatingPointError):
        MaxEnt(2, 2, [np.nan, 0, 0, 0, 0, 0])


def test_feature_count_mismatch():
    model = MaxEnt(2, 3)
    with pytest.raises(ValueError):
        model.scores_with_temperature(np.ones((2, 4)))
