#!/usr/bin/env python

""" Example use of the maxentge module:

    Topic classification from labeled features, without labeled documents.

    Suppose we have unlabeled documents about either sports or politics,
    represented by which of a handful of words they contain. We know that
    documents containing 'goal' or 'match' are usually about sports, and
    documents containing 'vote' or 'senate' are usually about politics.

    We express this as reference label distributions on those features,
    and fit a MaxEnt classifier by generalized expectation.
"""
import io

import numpy as np
import scipy.sparse

import maxentge


words = ['goal', 'match', 'team', 'vote', 'senate', 'party', 'today', 'said']
labels = ['sports', 'politics']

rng = np.random.default_rng(0)
topics = rng.integers(0, 2, size=500)
X = np.zeros((len(topics), len(words)))
for i, topic in enumerate(topics):
    own = slice(0, 3) if topic == 0 else slice(3, 6)
    other = slice(3, 6) if topic == 0 else slice(0, 3)
    X[i, own] = rng.random(3) < 0.5
    X[i, other] = rng.random(3) < 0.1
    X[i, 6:] = rng.random(2) < 0.5
X = scipy.sparse.csr_matrix(X)

constraint_text = io.StringIO("""
goal sports:0.9 politics:0.1
match sports:0.9 politics:0.1
vote politics:0.9 sports:0.1
senate politics:0.9 sports:0.1
DEFAULT sports:0.5 politics:0.5
""")
constraints = maxentge.read_constraints(constraint_text, words, labels)

clf = maxentge.GEMaxEntClassifier(constraints, classes=labels, verbose=1)
clf.fit(X)

print("\nFitted weights (one row per label, bias last):")
print(np.round(clf.model_.weights, 3))

predicted = clf.predict(X)
accuracy = np.mean(predicted == np.array(labels)[topics])
print("\nAccuracy on the (unseen) true topics: {0:0.3f}".format(accuracy))

# Now show how well the constraints are satisfied:
result = clf.criterion_.last_result()
mapping = clf.criterion_.mapping
print()
print("Reference vs. model label distributions:")
for feature, ref in sorted(constraints.items()):
    name = words[feature] if feature < len(words) else 'DEFAULT'
    model = result.model_expectations[mapping[feature]]
    print("\t{0:8s} ref = {1}  model = {2}".format(name, np.round(ref, 3), np.round(model, 3)))
