'''Fitting and penalty selection for maximum-entropy models.

Every fit is an independent optimization run, so folds and penalties can be
spread over a process pool.

'''

import logging
from functools import partial
from multiprocessing import Pool

import numpy as np
from sklearn.model_selection import KFold

from loglin import MaxEntModel


def learn_weights(X, y, penalty, regularizer='l1', heldout=None, **options):
    model = MaxEntModel(penalty, regularizer, **options)
    return model.fit(X, y, heldout=heldout)


def learn_weights_cv(X, y, penalties, n_folds=10, seed=0, processes=1, regularizer='l1', **options):
    '''Return the mean held-out log-likelihood of each penalty under k-fold
    cross-validation.

    '''
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=int)
    num_classes = int(y.max()) + 1

    folds = KFold(n_folds, shuffle=True, random_state=seed)
    tasks = [(penalty, train, test) for penalty in penalties for train, test in folds.split(X)]

    score = partial(_score_fold, X, y, num_classes, regularizer, options)
    if processes == 1:
        fold_scores = list(map(score, tasks))
    else:
        with Pool(processes) as pool:
            fold_scores = pool.map(score, tasks)

    scores = np.array(fold_scores).reshape((len(penalties), n_folds)).mean(axis=1)

    for penalty, s in zip(penalties, scores):
        logging.info('Penalty {:.03e}: heldout_logl = {:.06f}'.format(penalty, s))

    return scores


def select_penalty(X, y, penalties, n_folds=10, seed=0, processes=1, **options):
    scores = learn_weights_cv(X, y, penalties, n_folds, seed, processes, **options)
    penalty = penalties[int(np.argmax(scores))]
    logging.info('Using penalty {:.03e}'.format(penalty))
    return penalty, scores


def _score_fold(X, y, num_classes, regularizer, options, task):
    penalty, train, test = task
    model = MaxEntModel(penalty, regularizer, **options)
    model.fit(X[train], y[train], num_classes=num_classes)
    return model.log_likelihood(X[test], y[test])
