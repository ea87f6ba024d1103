# tests/test_network.py
import numpy as np
import pytest

from nnlab.common.errors import ConfigurationError
from nnlab.neural_networks import (
    ActivationLayer,
    BatchNormalizationLayer,
    ConvLayer,
    DenseLayer,
    DropoutLayer,
    InputLayer,
    LogLoss,
    MaxPool2DLayer,
    NeuralNet,
    SoftMaxLayer,
    SquaredErrorRegressionLayer,
)


def _mlp():
    net = NeuralNet()
    net.add(InputLayer(3))
    net.add(DenseLayer(4, activation="tanh"))
    net.add(SoftMaxLayer(2))
    return net


def test_add_inserts_helper_layers():
    net = NeuralNet()
    net.add(InputLayer(4))
    net.add(DenseLayer(5, activation="relu", batch_normalization=True))
    net.add(DropoutLayer(0.1))
    net.add(SoftMaxLayer(3))

    assert [type(layer) for layer in net.layers] == [
        InputLayer, DenseLayer, BatchNormalizationLayer, ActivationLayer,
        DropoutLayer, DenseLayer, SoftMaxLayer,
    ]
    assert net.layers[5].units == 3
    assert net.layers[5].activation is None


def test_batch_normalization_after_dense_layer_is_per_unit(rng):
    net = NeuralNet()
    net.add(InputLayer(3))
    net.add(DenseLayer(5, activation="relu", batch_normalization=True))
    net.add(SquaredErrorRegressionLayer(1))
    net.initialize(40, rng)

    dense, batch_norm = net.layers[1], net.layers[2]
    assert (dense.width, dense.height, dense.depth) == (1, 1, 5)
    assert batch_norm.weights.shape == (5,)
    assert batch_norm.moving_average_means.shape == (5,)

    net.forward(rng.normal(loc=3.0, size=(40, 3)))
    variance = dense.output_activations.var(axis=0)
    normalized = batch_norm.output_activations
    np.testing.assert_allclose(normalized.mean(axis=0), 0.0, atol=1e-10)
    np.testing.assert_allclose(normalized.std(axis=0),
                               np.sqrt(variance / (variance + batch_norm.epsilon)))


def test_initialize_propagates_shapes_through_conv_stack(rng):
    net = NeuralNet()
    net.add(InputLayer(28, 28, 1))
    net.add(ConvLayer(5, 5, 8))
    net.add(MaxPool2DLayer(2, 2))
    net.add(SoftMaxLayer(10))
    net.initialize(4, rng)

    conv, _, pool, dense, head = net.layers[1:]
    assert (conv.width, conv.height, conv.depth) == (24, 24, 8)
    assert (pool.width, pool.height, pool.depth) == (12, 12, 8)
    assert dense.weights.shape == (12 * 12 * 8, 10)
    assert head.output_activations.shape == (4, 10)


def test_mismatched_head_is_configuration_error(rng):
    net = NeuralNet([InputLayer(4), SoftMaxLayer(3)])
    with pytest.raises(ConfigurationError):
        net.initialize(2, rng)


def test_missing_input_layer_is_configuration_error(rng):
    net = NeuralNet([DenseLayer(3, activation=None), SquaredErrorRegressionLayer(3)])
    with pytest.raises(ConfigurationError):
        net.initialize(2, rng)


def test_input_units_without_input_layer_is_configuration_error():
    net = NeuralNet([DenseLayer(1, activation=None), SquaredErrorRegressionLayer(1)])
    with pytest.raises(ConfigurationError):
        net.input_units


@pytest.mark.parametrize("layers", [
    [InputLayer(3), DenseLayer(2), SquaredErrorRegressionLayer(2)],
    [InputLayer(3), DenseLayer(2, activation="tanh"), ActivationLayer("relu"),
     SquaredErrorRegressionLayer(2)],
    [InputLayer(3), DenseLayer(2, activation=None, batch_normalization=True),
     SquaredErrorRegressionLayer(2)],
    [InputLayer(3), DenseLayer(2, batch_normalization=True), BatchNormalizationLayer(),
     SquaredErrorRegressionLayer(2)],
])
def test_listed_stack_missing_helper_layers_is_configuration_error(layers):
    with pytest.raises(ConfigurationError):
        NeuralNet(layers)


def test_listed_stack_with_helper_layers_matches_add(rng):
    listed = NeuralNet([
        InputLayer(3),
        DenseLayer(2, batch_normalization=True), BatchNormalizationLayer(), ActivationLayer("relu"),
        DenseLayer(2, activation=None), SquaredErrorRegressionLayer(2),
    ])
    added = NeuralNet()
    added.add(InputLayer(3))
    added.add(DenseLayer(2, batch_normalization=True))
    added.add(SquaredErrorRegressionLayer(2))

    assert [type(layer) for layer in listed.layers] == [type(layer) for layer in added.layers]
    listed.initialize(2, rng)


def test_second_input_layer_is_configuration_error(rng):
    net = NeuralNet([InputLayer(3), InputLayer(3)])
    with pytest.raises(ConfigurationError):
        net.initialize(2, rng)


def test_pool_larger_than_input_is_configuration_error(rng):
    net = NeuralNet()
    net.add(InputLayer(3, 3, 1))
    net.add(MaxPool2DLayer(4, 4, padding=0))
    with pytest.raises(ConfigurationError):
        net.initialize(1, rng)


def test_forward_rejects_wrong_input_shape(rng):
    net = _mlp()
    net.initialize(2, rng)
    with pytest.raises(ValueError):
        net.forward(np.zeros((3, 3)))
    with pytest.raises(ValueError):
        net.forward(np.zeros((2, 4)))


def test_network_backpropagation_matches_finite_differences(rng, numerical_gradient):
    net = _mlp()
    net.initialize(3, rng)
    loss = LogLoss()
    x = rng.normal(size=(3, 3))
    targets = np.eye(2)[[0, 1, 1]]

    def objective():
        return loss.loss(targets, net.forward(x))

    predictions = net.forward(x)
    input_gradient = net.backward(loss.gradient(targets, predictions)).copy()
    pairs = net.get_parameters_and_gradients()
    analytic = [pair.gradients.copy() for pair in pairs]

    assert len(pairs) == 4
    np.testing.assert_allclose(input_gradient, numerical_gradient(objective, x), rtol=1e-5, atol=1e-8)
    for pair, expected in zip(pairs, analytic):
        np.testing.assert_allclose(
            expected, numerical_gradient(objective, pair.parameters), rtol=1e-5, atol=1e-8)


def test_set_batch_size_keeps_parameters(rng):
    net = _mlp()
    net.initialize(5, rng)
    before = [pair.parameters.copy() for pair in net.get_parameters_and_gradients()]
    net.set_batch_size(2)

    assert net.batch_size == 2
    assert all(layer.output_activations.shape[0] == 2 for layer in net.layers)
    for pair, expected in zip(net.get_parameters_and_gradients(), before):
        np.testing.assert_array_equal(pair.parameters, expected)


def test_prediction_copy_matches_training_network(rng):
    net = _mlp()
    net.initialize(4, rng)
    x = rng.normal(size=(4, 3))
    expected = net.forward(x).copy()

    copy = net.copy_for_prediction_model()

    assert copy.batch_size == 1
    assert all(not layer.training for layer in copy.layers)
    for row, probabilities in zip(x, expected):
        np.testing.assert_allclose(copy.predict(row), probabilities)


def test_prediction_copy_disables_dropout(rng):
    net = NeuralNet()
    net.add(InputLayer(3))
    net.add(DropoutLayer(0.5))
    net.add(SquaredErrorRegressionLayer(2))
    net.initialize(2, rng)

    copy = net.copy_for_prediction_model()
    observation = np.array([1.0, -2.0, 0.5])
    np.testing.assert_array_equal(copy.predict(observation), copy.predict(observation))


def test_predict_returns_a_copy(rng):
    net = _mlp()
    net.initialize(1, rng)
    first = net.predict(np.ones(3))
    first[...] = -1.0
    assert np.all(net.predict(np.ones(3)) >= 0.0)


def test_summary_lists_layers_and_parameter_count(rng):
    net = _mlp()
    net.initialize(2, rng)
    summary = net.summary()
    assert "DenseLayer(units=4" in summary
    assert "SoftMaxLayer(number_of_classes=2)" in summary
    # 3*4 + 4 + 4*2 + 2
    assert summary.endswith("Total trainable parameters: 26")
