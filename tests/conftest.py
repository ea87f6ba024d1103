# tests/conftest.py
import numpy as np
import pytest


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


def _numerical_gradient(f, array, eps=1e-6):
    """Central differences of scalar ``f()`` with respect to every entry of ``array`` (mutated in place)."""
    grad = np.zeros_like(array, dtype=float)
    for idx in np.ndindex(array.shape):
        original = array[idx]
        array[idx] = original + eps
        plus = f()
        array[idx] = original - eps
        minus = f()
        array[idx] = original
        grad[idx] = (plus - minus) / (2 * eps)
    return grad


@pytest.fixture
def numerical_gradient():
    return _numerical_gradient


@pytest.fixture
def check_layer_gradients(rng):
    """
    Compare ``backward`` of an initialized layer with finite differences of
    L = sum(forward(x) * R), for the input and every trainable tensor.
    """

    def check(layer, x, rtol=1e-5, atol=1e-7):
        x = x.copy()
        upstream = rng.normal(size=(x.shape[0], layer.fan_out))

        def objective():
            return float(np.sum(layer.forward(x) * upstream))

        layer.forward(x)
        analytic_input = layer.backward(upstream).copy()
        pairs = []
        layer.add_parameters_and_gradients(pairs)
        analytic_params = [pair.gradients.copy() for pair in pairs]

        np.testing.assert_allclose(
            analytic_input, _numerical_gradient(objective, x), rtol=rtol, atol=atol)
        for pair, analytic in zip(pairs, analytic_params):
            np.testing.assert_allclose(
                analytic, _numerical_gradient(objective, pair.parameters), rtol=rtol, atol=atol)

    return check
