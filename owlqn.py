'''Orthant-wise limited-memory quasi-Newton (OWLQN) optimization of
L1-regularized objectives.

See Galen Andrew and Jianfeng Gao, "Scalable training of L1-regularized
log-linear models", ICML 2007.

'''

import logging
from collections import namedtuple

import numpy as np


OWLQN_M = 10
LINE_SEARCH_ALPHA = 0.1
LINE_SEARCH_BETA = 0.5
MAX_LINESEARCH = 50

# Stopping criteria
OWLQN_MAX_ITER = 300
MIN_GRAD_NORM = 1e-4

# Pairs with <y, s> <= CURVATURE_EPS * <s, s> are not stored.
CURVATURE_EPS = 1e-12

CONVERGED = 'converged'
MAX_ITER_REACHED = 'max_iter_reached'
LINESEARCH_FAILED = 'linesearch_failed'


LineSearchResult = namedtuple('LineSearchResult', ['f', 'x', 'grad', 'step', 'success'])


class OWLQN:
    '''Minimize `f(x) + penalty * ||x||_1` where `func_grad(x)` returns the
    smooth value `f(x)` and its gradient.

    Options (keyword arguments): `m`, `max_iterations`, `epsilon`, `alpha`,
    `beta`, `max_linesearch`. `progress(k, f, x, pg)` is called once per
    iteration, before the convergence check.

    '''
    def __init__(self, func_grad, penalty, x0, progress=None, **kwargs):
        if penalty < 0:
            raise ValueError('Penalty must be non-negative, got {}'.format(penalty))

        x0 = np.array(x0, dtype=float)
        if x0.ndim != 1 or x0.size == 0:
            raise ValueError('Initial point must be a non-empty vector, got shape {}'.format(x0.shape))

        self.func_grad = func_grad
        self.penalty = float(penalty)
        self.x = x0
        self.progress = progress

        self.m = kwargs.get('m', OWLQN_M)
        self.max_iterations = kwargs.get('max_iterations', OWLQN_MAX_ITER)
        self.epsilon = kwargs.get('epsilon', MIN_GRAD_NORM)
        self.alpha = kwargs.get('alpha', LINE_SEARCH_ALPHA)
        self.beta = kwargs.get('beta', LINE_SEARCH_BETA)
        self.max_linesearch = kwargs.get('max_linesearch', MAX_LINESEARCH)

        self.f = None
        self.grad = None
        self.status = None
        self.iterations = 0
        self.trace = []

    def minimize(self):
        C = self.penalty
        x = self.x
        f, grad = regularized_func_grad(self.func_grad, C, x)
        history = CurvatureHistory(self.m, x.size)

        self.trace = []
        self.status = MAX_ITER_REACHED

        for k in range(self.max_iterations):
            pg = pseudo_gradient(x, grad, C)
            self.iterations = k + 1
            self._report(k, f, x, pg)

            if np.sqrt(np.dot(pg, pg)) < self.epsilon:
                self.status = CONVERGED
                break

            dx = -approximate_hg(pg, history)
            if np.dot(dx, pg) >= 0:
                dx = project(dx, -pg)
                if np.dot(dx, pg) >= 0:
                    dx = -pg

            ls = self._line_search(x, pg, f, dx)
            if not ls.success:
                # A descent dx can still cross zero on a tiny coordinate at every
                # trial step; the sign-aligned direction never does.
                aligned = project(dx, -pg)
                if np.dot(aligned, pg) >= 0:
                    aligned = -pg
                if not np.array_equal(aligned, dx):
                    logging.debug('Retrying line search along sign-aligned direction at iter = {}'.format(k + 1))
                    ls = self._line_search(x, pg, f, aligned)

            if not ls.success:
                logging.warning('Line search failed after {} steps at iter = {}'.format(self.max_linesearch, k + 1))
                self.status = LINESEARCH_FAILED
                break

            if np.array_equal(ls.x, x):
                logging.warning('Line search made no progress at iter = {}'.format(k + 1))
                self.status = LINESEARCH_FAILED
                break

            if not history.push(ls.x - x, ls.grad - grad):
                logging.debug('Skipped degenerate curvature pair at iter = {}'.format(k + 1))

            x, f, grad = ls.x, ls.f, ls.grad

        self.x = x
        self.f = f
        self.grad = grad

        nz = (x != 0).sum()
        logging.info('OWLQN {} after {} iterations: f(x) = {:.08f}, ||x||_0 = {}'.format(
            self.status, self.iterations, f, nz))

        return self

    def _line_search(self, x, pg, f, dx):
        return constrained_line_search(self.func_grad, self.penalty, x, pg, f, dx,
                                       self.alpha, self.beta, self.max_linesearch)

    def _report(self, k, f, x, pg):
        self.trace.append(f)
        logging.debug('iter = {}, obj = {:.08f}, ||pg|| = {:.04e}'.format(k + 1, f, np.linalg.norm(pg)))
        if self.progress is not None:
            self.progress(k, f, x, pg)


def optimize(func_grad, x0, C, progress=None, **options):
    'Return the minimizer of `func_grad` plus the L1 penalty `C`.'
    return OWLQN(func_grad, C, x0, progress, **options).minimize().x


def regularized_func_grad(func_grad, C, x):
    '''Return the L1-regularized objective at `x` and the gradient of the
    smooth part only.

    '''
    f, grad = func_grad(x)
    grad = np.array(grad, dtype=float)
    if grad.shape != x.shape:
        raise ValueError('Gradient shape {} does not match parameter shape {}'.format(grad.shape, x.shape))

    f = float(f) + C * np.abs(x).sum()
    return f, grad


def pseudo_gradient(x, grad, C):
    x = np.asarray(x, dtype=float)
    grad = np.asarray(grad, dtype=float)

    pg = grad + C * np.sign(x)

    is_zero = x == 0
    gm = grad - C
    gp = grad + C

    pg[is_zero] = 0.0

    can_decrease = is_zero & (gm > 0)
    can_increase = is_zero & (gp < 0)

    pg[can_decrease] = gm[can_decrease]
    pg[can_increase] = gp[can_increase]

    return pg


def project(v, ref):
    'Zero the entries of `v` whose sign differs from that of `ref`.'
    return np.where(np.sign(v) == np.sign(ref), v, 0.0)


class CurvatureHistory:
    '''Fixed-capacity ring buffer of the most recent (s, y, rho) triples.

    Only written slots are ever visited: `len(history)` is the number of valid
    pairs and iteration follows the order in which pairs were pushed.

    '''
    def __init__(self, m, dim):
        self.m = m
        self.s = np.zeros((m, dim))
        self.y = np.zeros((m, dim))
        self.rho = np.zeros(m)
        self.head = 0
        self.size = 0

    def __len__(self):
        return self.size

    def push(self, s, y):
        ys = np.dot(y, s)
        if not ys > CURVATURE_EPS * np.dot(s, s):
            return False

        self.s[self.head] = s
        self.y[self.head] = y
        self.rho[self.head] = 1.0 / ys

        self.head = (self.head + 1) % self.m
        self.size = min(self.size + 1, self.m)

        return True

    def slots(self):
        'Slot indices of the valid pairs, oldest first.'
        start = (self.head - self.size) % self.m
        return [(start + i) % self.m for i in range(self.size)]

    def oldest_first(self):
        for i in self.slots():
            yield self.s[i], self.y[i], self.rho[i]

    def newest_first(self):
        for i in reversed(self.slots()):
            yield self.s[i], self.y[i], self.rho[i]

    def newest(self):
        i = (self.head - 1) % self.m
        return self.s[i], self.y[i], self.rho[i]


def approximate_hg(pg, history):
    'Two-loop recursion: approximate the inverse Hessian applied to `pg`.'
    q = np.array(pg, dtype=float)
    if len(history) == 0:
        return q

    alphas = []
    for s, y, rho in history.newest_first():
        a = rho * np.dot(s, q)
        q -= a * y
        alphas.append(a)

    s, y, _ = history.newest()
    q *= np.dot(s, y) / np.dot(y, y)

    for (s, y, rho), a in zip(history.oldest_first(), reversed(alphas)):
        b = rho * np.dot(y, q)
        q += (a - b) * s

    return q


def constrained_line_search(func_grad, C, x0, pg0, f0, dx,
                            alpha=LINE_SEARCH_ALPHA, beta=LINE_SEARCH_BETA,
                            max_steps=MAX_LINESEARCH):
    '''Backtrack along `dx` from `x0`, keeping every trial point in the
    orthant of `x0` (or of `-pg0` where `x0` is zero), until the Armijo
    condition on the pseudo-gradient holds.

    '''
    orthant = np.where(x0 != 0, x0, -pg0)

    t = 1.0 / beta
    f, x, grad = f0, x0, None

    for _ in range(max_steps):
        t *= beta
        x = project(x0 + t * dx, orthant)
        f, grad = regularized_func_grad(func_grad, C, x)

        if f <= f0 + alpha * np.dot(x - x0, pg0):
            return LineSearchResult(f, x, grad, t, True)

    return LineSearchResult(f, x, grad, t, False)
