from collections import namedtuple

import numpy as np
import pandas as pd


Dataset = namedtuple('Dataset', ['X', 'y', 'classes', 'feature_names'])


def load_dataset(stream, label='label', classes=None):
    'Read a CSV table with one label column; every other column is a feature.'
    tbl = pd.read_csv(stream)
    if label not in tbl:
        raise ValueError('Label column {} not found'.format(label))

    features = tbl.drop(columns=[label])
    non_numeric = [c for c in features.columns if not pd.api.types.is_numeric_dtype(features[c])]
    if non_numeric:
        raise ValueError('Non-numeric feature columns: {}'.format(', '.join(non_numeric)))

    if features.isnull().values.any():
        raise ValueError('Feature table contains missing values')

    y, classes = encode_labels(tbl[label].values, classes)
    X = features.values.astype(float)

    return Dataset(X, y, classes, list(features.columns))


def encode_labels(labels, classes=None):
    'Map labels to integers in [0, len(classes)).'
    labels = np.asarray(labels)
    if classes is None:
        classes = np.unique(labels)
    else:
        classes = np.asarray(classes)
        unknown = set(labels.tolist()) - set(classes.tolist())
        if unknown:
            raise ValueError('Unknown labels: {}'.format(sorted(unknown, key=str)))

    lookup = {c: i for i, c in enumerate(classes.tolist())}
    y = np.array([lookup[c] for c in labels.tolist()], dtype=int)

    return y, classes


def split_heldout(X, y, fraction=0.1, seed=0):
    rnd = np.random.RandomState(seed)
    n = len(y)
    k = int(round(fraction * n))
    if k == 0 or k == n:
        raise ValueError('Held-out fraction {} of {} rows leaves an empty split'.format(fraction, n))

    holdout = np.zeros(n, dtype=bool)
    holdout[rnd.permutation(n)[:k]] = True

    X = np.asarray(X)
    y = np.asarray(y)

    return (X[~holdout], y[~holdout]), (X[holdout], y[holdout])
