"""Numerical gradients for checking the analytic backward passes."""
import numpy as np


def numerical_gradient(func, x, delta=1.0e-5):
    r"""Approximate the gradient of ``func`` w.r.t. every element of ``x``.

    Uses the centered formula, accurate to O(h^2):

        \frac{df(x)}{dx} = \frac{f(x + h) - f(x - h)}{2h}

    ``x`` is perturbed in place one element at a time and restored, so
    ``func`` may read it through any reference (e.g. a layer's weights).
    """
    grad = np.zeros_like(x, dtype=np.float64)

    for idx in np.ndindex(x.shape):
        orig = x[idx]

        x[idx] = orig + delta
        f_plus = func()
        x[idx] = orig - delta
        f_minus = func()
        x[idx] = orig

        grad[idx] = (f_plus - f_minus) / (2.0 * delta)

    return grad


def relative_error(a, b, eps=1.0e-12):
    """||a - b|| / max(||a||, ||b||)"""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    return np.linalg.norm(a - b) / max(eps, np.linalg.norm(a), np.linalg.norm(b))
