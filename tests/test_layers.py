# tests/test_layers.py
import numpy as np
import pytest

from nnlab.common.errors import ConfigurationError, NotApplicableError
from nnlab.neural_networks import (
    ActivationLayer,
    BatchNormalizationLayer,
    DenseLayer,
    DropoutLayer,
    InputLayer,
    SoftMaxLayer,
    SquaredErrorRegressionLayer,
    SvmLayer,
)


def _initialized(layer, width, height=1, depth=1, batch_size=3, seed=0):
    layer.initialize(width, height, depth, batch_size, np.random.default_rng(seed))
    return layer


def test_dense_layer_shapes_and_glorot_bounds():
    layer = _initialized(DenseLayer(4), width=6)
    limit = np.sqrt(6.0 / (6 + 4))

    assert (layer.width, layer.height, layer.depth) == (1, 1, 4)
    assert layer.weights.shape == (6, 4)
    assert np.all(np.abs(layer.weights) <= limit)
    assert np.all(layer.bias == 0)
    assert layer.output_activations.shape == (3, 4)
    assert layer.delta.shape == (3, 6)


def test_dense_layer_gradients(check_layer_gradients, rng):
    layer = _initialized(DenseLayer(4), width=5)
    layer.bias[...] = rng.normal(size=4)
    check_layer_gradients(layer, rng.normal(size=(3, 5)))


def test_dense_layer_flattens_spatial_input(check_layer_gradients, rng):
    layer = _initialized(DenseLayer(2), width=3, height=2, depth=2, batch_size=2)
    assert layer.weights.shape == (12, 2)
    check_layer_gradients(layer, rng.normal(size=(2, 12)))


@pytest.mark.parametrize("activation", ["tanh", "sigmoid", "relu"])
def test_activation_layer_gradients(check_layer_gradients, rng, activation):
    layer = _initialized(ActivationLayer(activation), width=6)
    x = rng.normal(size=(3, 6))
    # keep relu inputs away from the kink
    x[np.abs(x) < 0.05] = 0.5
    check_layer_gradients(layer, x)


def test_activation_layer_values():
    layer = _initialized(ActivationLayer("relu"), width=3, batch_size=1)
    out = layer.forward(np.array([[-1.0, 0.0, 2.0]]))
    np.testing.assert_array_equal(out, [[0.0, 0.0, 2.0]])


def test_unknown_activation_is_configuration_error():
    with pytest.raises(ConfigurationError):
        ActivationLayer("swish")
    with pytest.raises(ConfigurationError):
        DenseLayer(3, activation="swish")


def test_batch_normalization_gradients_dense_input(check_layer_gradients, rng):
    layer = _initialized(BatchNormalizationLayer(), width=1, depth=4, batch_size=5)
    layer.weights[...] = rng.uniform(0.5, 1.5, size=4)
    layer.bias[...] = rng.normal(size=4)
    check_layer_gradients(layer, rng.normal(size=(5, 4)))


def test_batch_normalization_gradients_spatial_input(check_layer_gradients, rng):
    layer = _initialized(BatchNormalizationLayer(), width=2, height=2, depth=2, batch_size=3)
    assert layer.weights.shape == (2,)
    check_layer_gradients(layer, rng.normal(size=(3, 8)))


def test_batch_normalization_normalizes_in_training_and_uses_running_stats_in_eval(rng):
    layer = _initialized(BatchNormalizationLayer(momentum=0.0), width=1, depth=3, batch_size=50)
    x = rng.normal(loc=5.0, scale=2.0, size=(50, 3))

    out = layer.forward(x)
    np.testing.assert_allclose(out.mean(axis=0), 0.0, atol=1e-10)
    np.testing.assert_allclose(out.std(axis=0), 1.0, atol=1e-3)

    # momentum 0 keeps exactly the last batch statistics
    np.testing.assert_allclose(layer.moving_average_means, x.mean(axis=0))
    layer.eval()
    np.testing.assert_allclose(layer.forward(x), out, atol=1e-10)


def test_batch_normalization_eval_gradients(check_layer_gradients, rng):
    layer = _initialized(BatchNormalizationLayer(), width=1, depth=4, batch_size=3)
    layer.moving_average_means[...] = rng.normal(size=4)
    layer.moving_average_variance[...] = rng.uniform(0.5, 2.0, size=4)
    layer.eval()
    check_layer_gradients(layer, rng.normal(size=(3, 4)))


def test_softmax_layer_gradients_and_rows_sum_to_one(check_layer_gradients, rng):
    layer = _initialized(SoftMaxLayer(4), width=4)
    x = rng.normal(size=(3, 4))
    np.testing.assert_allclose(layer.forward(x).sum(axis=1), 1.0)
    check_layer_gradients(layer, x)


@pytest.mark.parametrize("head", [SvmLayer(3), SquaredErrorRegressionLayer(3)])
def test_identity_heads_pass_through(head, rng):
    layer = _initialized(head, width=3)
    x = rng.normal(size=(3, 3))
    np.testing.assert_array_equal(layer.forward(x), x)
    np.testing.assert_array_equal(layer.backward(x * 2), x * 2)


def test_output_layer_rejects_mismatched_input():
    with pytest.raises(ConfigurationError):
        _initialized(SoftMaxLayer(3), width=4)


def test_dropout_masks_forward_and_backward_consistently(rng):
    layer = _initialized(DropoutLayer(0.5), width=200, batch_size=4, seed=7)
    x = rng.normal(size=(4, 200))
    out = layer.forward(x).copy()
    mask = layer.mask.copy()

    assert set(np.unique(mask)) <= {0.0, 2.0}
    assert 0 < np.count_nonzero(mask) < mask.size
    np.testing.assert_allclose(out, x * mask)

    upstream = rng.normal(size=(4, 200))
    np.testing.assert_allclose(layer.backward(upstream), upstream * mask)


def test_dropout_is_identity_in_eval_mode(rng):
    layer = _initialized(DropoutLayer(0.5), width=10)
    layer.eval()
    x = rng.normal(size=(3, 10))
    np.testing.assert_array_equal(layer.forward(x), x)


def test_dropout_rejects_invalid_probability():
    with pytest.raises(ConfigurationError):
        DropoutLayer(1.0)


def test_input_layer_uses_declared_shape():
    layer = InputLayer(4, 3, 2)
    layer.initialize(None, None, None, 2, np.random.default_rng(0))
    assert layer.fan_out == 24
    assert layer.input_units == 24


@pytest.mark.parametrize("layer", [ActivationLayer("relu"), DropoutLayer(0.2), InputLayer(3)])
def test_parameter_free_layers_are_not_applicable(layer):
    _initialized(layer, width=3)
    with pytest.raises(NotApplicableError):
        layer.get_parameters()
    with pytest.raises(NotApplicableError):
        layer.get_gradients()
    collector = []
    layer.add_parameters_and_gradients(collector)
    assert collector == []


def test_trainable_layer_exposes_parameters_and_gradients():
    layer = _initialized(DenseLayer(2), width=3)
    params = layer.get_parameters()
    grads = layer.get_gradients()
    assert params.weights is layer.weights
    assert grads.bias is layer.bias_gradients

    collector = []
    layer.add_parameters_and_gradients(collector)
    assert [pair.parameters.shape for pair in collector] == [(3, 2), (2,)]


def test_backward_writes_gradients_in_place(rng):
    layer = _initialized(DenseLayer(2), width=3)
    weight_gradients = layer.weight_gradients
    layer.forward(rng.normal(size=(3, 3)))
    layer.backward(rng.normal(size=(3, 2)))
    assert layer.weight_gradients is weight_gradients
    assert np.any(weight_gradients != 0)


def test_reinitialize_with_new_batch_size_reallocates():
    layer = _initialized(DenseLayer(2), width=3, batch_size=4)
    layer.initialize(3, 1, 1, 7, np.random.default_rng(1))
    assert layer.output_activations.shape == (7, 2)
    assert layer.delta.shape == (7, 3)


def test_set_batch_size_keeps_parameters():
    layer = _initialized(DenseLayer(2), width=3, batch_size=4)
    weights = layer.weights.copy()
    layer.set_batch_size(1)
    np.testing.assert_array_equal(layer.weights, weights)
    assert layer.output_activations.shape == (1, 2)


def test_copy_for_prediction_is_batch_size_one_and_independent(rng):
    layer = _initialized(DenseLayer(2), width=3, batch_size=4)
    collector = []
    layer.copy_layer_for_prediction_model(collector)
    copy = collector[0]

    assert copy.batch_size == 1
    assert not copy.training
    np.testing.assert_array_equal(copy.weights, layer.weights)
    layer.weights += 1.0
    assert not np.allclose(copy.weights, layer.weights)
