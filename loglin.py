'''Conditional maximum-entropy (multinomial log-linear) models.

The L1-regularized fit uses OWLQN; the L2-regularized fit uses BFGS.

'''

import logging

import numpy as np
from scipy.optimize import minimize
from scipy.special import logsumexp

from owlqn import OWLQN


REGULARIZERS = ('l1', 'l2')


class MaxEntModel:
    def __init__(self, penalty, regularizer='l1', **options):
        if regularizer not in REGULARIZERS:
            raise ValueError('Regularizer {} not supported'.format(regularizer))
        if penalty < 0:
            raise ValueError('Penalty must be non-negative, got {}'.format(penalty))

        self.penalty = penalty
        self.regularizer = regularizer
        self.options = options
        self.objective = None
        self.solution = None
        self.w = None
        self.history = []

    @property
    def num_classes(self):
        return self.objective.num_classes

    @property
    def weights(self):
        'Weight table with one row per class and one column per feature.'
        return self.objective.unflatten(self.w)

    def fit(self, X, y, heldout=None, num_classes=None, w0=None):
        y = np.asarray(y, dtype=int)
        if num_classes is None:
            num_classes = int(y.max()) + 1
            if heldout is not None:
                num_classes = max(num_classes, int(np.max(heldout[1])) + 1)

        self.objective = MaxEntObjective(X, y, num_classes)
        if heldout is None:
            heldout_objective = None
        else:
            heldout_objective = MaxEntObjective(heldout[0], heldout[1], num_classes)

        if w0 is None:
            w0 = self.objective.initial_weights()

        self.history = []
        progress = self._progress(heldout_objective)

        if self.regularizer == 'l1':
            s = OWLQN(self.objective.value_and_gradient, self.penalty, w0, progress, **self.options).minimize()
            self.solution = s
            self.w = s.x

        elif self.regularizer == 'l2':
            f = self._l2_value
            g = self._l2_gradient
            options = {}
            if 'max_iterations' in self.options:
                options['maxiter'] = self.options['max_iterations']

            iteration = [0]
            progress(0, f(w0), w0, None)

            def callback(w):
                iteration[0] += 1
                progress(iteration[0], f(w), w, None)

            s = minimize(f, w0, jac=g, method='BFGS', callback=callback, options=options)
            if not s.success:
                logging.warning('BFGS did not terminate successfully: {}'.format(s.message))
            self.solution = s
            self.w = s.x

        return self

    def proba(self, X):
        S = self.objective.scores(self.w, X)
        return np.exp(S - colvec(logsumexp(S, axis=1)))

    def log_proba(self, X):
        S = self.objective.scores(self.w, X)
        return S - colvec(logsumexp(S, axis=1))

    def predict(self, X):
        P = self.proba(X)
        return np.argmax(P, axis=1)

    def log_likelihood(self, X, y):
        'Mean conditional log-likelihood of labels `y` given features `X`.'
        lp = self.log_proba(X)
        y = np.asarray(y, dtype=int)
        return lp[np.arange(y.size), y].mean()

    def _l2_value(self, w):
        v = self.objective.value(w)
        return v + self.penalty / 2.0 * np.dot(w, w)

    def _l2_gradient(self, w):
        g = self.objective.gradient(w)
        return g + self.penalty * w

    def _progress(self, heldout_objective):
        def progress(k, f, w, pg):
            report = {'iteration': k + 1, 'objective': f, 'accuracy': self.objective.accuracy(w)}
            logging.info('iter = {}, obj(err) = {:.08f}, accuracy = {:.04f}'.format(
                k + 1, f, report['accuracy']))

            if heldout_objective is not None:
                report['heldout_loglik'] = heldout_objective.log_likelihood(w)
                report['heldout_accuracy'] = heldout_objective.accuracy(w)
                logging.info('\theldout_logl(err) = {:.08f}, accuracy = {:.04f}'.format(
                    -report['heldout_loglik'], report['heldout_accuracy']))

            self.history.append(report)

        return progress


class MaxEntObjective:
    '''Mean negative conditional log-likelihood of a multinomial log-linear
    model. Weights are flattened class-major: `w.reshape(num_classes, num_features)`.

    '''
    def __init__(self, X, y, num_classes):
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=int)

        if X.ndim != 2:
            raise ValueError('Expected a feature matrix, got shape {}'.format(X.shape))
        if y.shape != (X.shape[0],):
            raise ValueError('Expected {} labels, got shape {}'.format(X.shape[0], y.shape))
        if X.shape[0] == 0:
            raise ValueError('Cannot build an objective from an empty dataset')
        if y.min() < 0 or y.max() >= num_classes:
            raise ValueError('Labels must lie in [0, {})'.format(num_classes))

        self.X = X
        self.y = y
        self.num_classes = num_classes
        self.num_features = X.shape[1]

    @property
    def num_weights(self):
        return self.num_classes * self.num_features

    def initial_weights(self):
        return np.zeros(self.num_weights)

    def unflatten(self, w):
        return np.reshape(w, (self.num_classes, self.num_features))

    def scores(self, w, X=None):
        if X is None:
            X = self.X
        W = self.unflatten(w)
        return np.dot(np.asarray(X, dtype=float), W.T)

    def value_and_gradient(self, w):
        n = self.y.size
        rows = np.arange(n)

        S = self.scores(w)
        lZ = logsumexp(S, axis=1)
        v = -(S[rows, self.y] - lZ).sum() / n

        # Expected minus observed feature counts.
        P = np.exp(S - colvec(lZ))
        P[rows, self.y] -= 1.0
        g = np.dot(P.T, self.X) / n

        nz = (np.abs(w) > 0).sum()
        logging.debug('Evaluated objective: f(w) = {:.08f}, ||w||_0 = {}'.format(v, nz))

        return v, g.ravel()

    def value(self, w):
        return self.value_and_gradient(w)[0]

    def gradient(self, w):
        return self.value_and_gradient(w)[1]

    def log_likelihood(self, w):
        return -self.value(w)

    def accuracy(self, w):
        S = self.scores(w)
        return np.mean(np.argmax(S, axis=1) == self.y)


def colvec(x):
    x = x.ravel()
    return x[:, np.newaxis]
