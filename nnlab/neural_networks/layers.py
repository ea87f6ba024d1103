"""
Neural network layers implementation.

Every layer works on 2D activation matrices of shape (batch_size, fan). Layers with a
spatial interpretation read each row as depth x height x width, depth-major.
"""
from typing import NamedTuple

import numpy as np

from ..common.errors import ConfigurationError, NotApplicableError


class WeightsAndBiases(NamedTuple):
    """Trainable tensors of a layer, or their gradients."""
    weights: np.ndarray
    bias: np.ndarray


class ParametersAndGradients(NamedTuple):
    """A trainable tensor paired with the gradient tensor the optimizer reads."""
    parameters: np.ndarray
    gradients: np.ndarray


# Optimized activation functions
def inplace_identity(x):
    """Leave the input untouched."""


def inplace_relu(x):
    """Compute the rectified linear unit function inplace."""
    np.maximum(x, 0, out=x)


def inplace_tanh(x):
    """Compute the hyperbolic tan function inplace."""
    np.tanh(x, out=x)


def inplace_logistic(x):
    """Compute the logistic function inplace."""
    # Clip input to prevent overflow
    np.clip(x, -500, 500, out=x)
    np.negative(x, out=x)
    np.exp(x, out=x)
    x += 1
    np.reciprocal(x, out=x)


def inplace_identity_derivative(z, delta):
    """Apply the derivative of the identity function inplace."""


def inplace_relu_derivative(z, delta):
    """Apply the derivative of the relu function inplace."""
    delta[z == 0] = 0


def inplace_tanh_derivative(z, delta):
    """Apply the derivative of the hyperbolic tanh function inplace."""
    delta *= 1 - z**2


def inplace_logistic_derivative(z, delta):
    """Apply the derivative of the logistic function inplace."""
    delta *= z
    delta *= 1 - z


ACTIVATIONS = {
    "identity": inplace_identity,
    "relu": inplace_relu,
    "tanh": inplace_tanh,
    "sigmoid": inplace_logistic,
}

DERIVATIVES = {
    "identity": inplace_identity_derivative,
    "relu": inplace_relu_derivative,
    "tanh": inplace_tanh_derivative,
    "sigmoid": inplace_logistic_derivative,
}


def glorot_uniform(fan_in, fan_out, shape, rng):
    """Draw weights from U(-limit, limit) with limit = sqrt(6 / (fan_in + fan_out))."""
    limit = np.sqrt(6.0 / (fan_in + fan_out))
    return rng.uniform(-limit, limit, shape)


class Layer:
    """
    Base class for all neural network layers.

    Layers are constructed with hyperparameters only. ``initialize`` binds the input
    shape, computes the output shape, draws parameters and allocates buffers for a
    batch size. ``set_batch_size`` re-allocates only the batch dependent buffers.
    """

    def __init__(self):
        self.input_width = None
        self.input_height = None
        self.input_depth = None
        self.width = None
        self.height = None
        self.depth = None
        self.batch_size = None
        self.training = True

        self.output_activations = None
        self.delta = None
        self._input_activations = None

    @property
    def fan_in(self):
        return self.input_width * self.input_height * self.input_depth

    @property
    def fan_out(self):
        return self.width * self.height * self.depth

    def initialize(self, input_width, input_height, input_depth, batch_size, rng):
        """
        Bind shapes, draw parameters and allocate buffers.

        Args:
            input_width (int): Width of the incoming activations
            input_height (int): Height of the incoming activations
            input_depth (int): Depth of the incoming activations
            batch_size (int): Number of rows per forward/backward call
            rng (np.random.Generator): Source for parameter initialization
        """
        self._bind_shape(input_width, input_height, input_depth)
        self._initialize_parameters(rng)
        self.set_batch_size(batch_size)

    def _bind_shape(self, input_width, input_height, input_depth):
        self.input_width = input_width
        self.input_height = input_height
        self.input_depth = input_depth
        self.width, self.height, self.depth = self._output_shape()
        if min(self.width, self.height, self.depth) <= 0:
            raise ConfigurationError(
                f"{self!r} produces a non-positive output shape "
                f"{(self.width, self.height, self.depth)} from input "
                f"{(input_width, input_height, input_depth)}")

    def _output_shape(self):
        return self.input_width, self.input_height, self.input_depth

    def _initialize_parameters(self, rng):
        """Parameter-free layers have nothing to draw."""

    def set_batch_size(self, batch_size):
        """Allocate fresh batch dependent buffers for ``batch_size`` rows."""
        self.batch_size = batch_size
        self.output_activations = np.zeros((batch_size, self.fan_out))
        self.delta = np.zeros((batch_size, self.fan_in))
        self._input_activations = None

    def forward(self, input_data):
        """Forward pass through the layer."""
        raise NotImplementedError

    def backward(self, delta):
        """Backward pass through the layer."""
        raise NotImplementedError

    def get_parameters(self):
        raise NotApplicableError(f"{type(self).__name__} has no parameters")

    def get_gradients(self):
        raise NotApplicableError(f"{type(self).__name__} has no gradients")

    def add_parameters_and_gradients(self, collector):
        """Parameter-free layers contribute nothing."""

    def copy_layer_for_prediction_model(self, collector):
        """
        Append a batch-size-1 copy holding only what prediction needs.

        Args:
            collector (list): Layers of the prediction network
        """
        copy = self._new_instance()
        copy._bind_shape(self.input_width, self.input_height, self.input_depth)
        copy._copy_parameters_from(self)
        copy.set_batch_size(1)
        copy.eval()
        collector.append(copy)

    def _new_instance(self):
        raise NotImplementedError

    def _copy_parameters_from(self, other):
        """Parameter-free layers have nothing to copy."""

    def train(self):
        """Set layer to training mode."""
        self.training = True

    def eval(self):
        """Set layer to evaluation mode."""
        self.training = False

    def __repr__(self):
        return f"{type(self).__name__}()"


class TrainableLayer(Layer):
    """Layer owning a weight matrix and a bias vector plus their gradients."""

    def __init__(self):
        super().__init__()
        self.weights = None
        self.bias = None
        self.weight_gradients = None
        self.bias_gradients = None

    def _allocate_gradients(self):
        self.weight_gradients = np.zeros_like(self.weights)
        self.bias_gradients = np.zeros_like(self.bias)

    def get_parameters(self):
        return WeightsAndBiases(self.weights, self.bias)

    def get_gradients(self):
        return WeightsAndBiases(self.weight_gradients, self.bias_gradients)

    def add_parameters_and_gradients(self, collector):
        collector.append(ParametersAndGradients(self.weights, self.weight_gradients))
        collector.append(ParametersAndGradients(self.bias, self.bias_gradients))

    def _copy_parameters_from(self, other):
        self.weights = other.weights.copy()
        self.bias = other.bias.copy()
        self._allocate_gradients()


class ClassificationLayer:
    """Marker for layers that can terminate a classification network."""


class RegressionLayer:
    """Marker for layers that can terminate a regression network."""


class InputLayer(Layer):
    """
    First layer of every network, declares the shape of the observations.
    """

    def __init__(self, width, height=1, depth=1):
        super().__init__()
        self.declared_width = width
        self.declared_height = height
        self.declared_depth = depth

    @property
    def input_units(self):
        return self.declared_width * self.declared_height * self.declared_depth

    def _output_shape(self):
        return self.declared_width, self.declared_height, self.declared_depth

    def _bind_shape(self, input_width, input_height, input_depth):
        # the declared shape is the input shape
        super()._bind_shape(self.declared_width, self.declared_height, self.declared_depth)

    def forward(self, input_data):
        self.output_activations[...] = input_data
        return self.output_activations

    def backward(self, delta):
        self.delta[...] = delta
        return self.delta

    def _new_instance(self):
        return InputLayer(self.declared_width, self.declared_height, self.declared_depth)

    def __repr__(self):
        return (f"InputLayer(width={self.declared_width}, height={self.declared_height}, "
                f"depth={self.declared_depth})")


class DenseLayer(TrainableLayer):
    """
    Fully connected layer: x.dot(weights) + bias.
    """

    def __init__(self, units, activation="relu", batch_normalization=False):
        """
        Args:
            units (int): Number of output units
            activation (str or None): Activation appended by the network after this layer
            batch_normalization (bool): Whether the network appends batch normalization
        """
        super().__init__()
        if units <= 0:
            raise ConfigurationError(f"units must be positive, got {units}")
        if activation is not None and activation not in ACTIVATIONS:
            raise ConfigurationError(f"Unsupported activation: {activation}")
        self.units = units
        self.activation = activation
        self.batch_normalization = batch_normalization

    def _output_shape(self):
        # units on the depth axis, one batch normalization channel per unit
        return 1, 1, self.units

    def _initialize_parameters(self, rng):
        # Xavier/Glorot initialization
        self.weights = glorot_uniform(self.fan_in, self.units, (self.fan_in, self.units), rng)
        self.bias = np.zeros(self.units)
        self._allocate_gradients()

    def forward(self, input_data):
        self._input_activations = input_data
        self.output_activations[...] = np.dot(input_data, self.weights) + self.bias
        return self.output_activations

    def backward(self, delta):
        # Gradient with respect to weights
        self.weight_gradients[...] = np.dot(self._input_activations.T, delta)
        # Gradient with respect to bias
        self.bias_gradients[...] = np.sum(delta, axis=0)
        # Gradient with respect to input
        self.delta[...] = np.dot(delta, self.weights.T)
        return self.delta

    def _new_instance(self):
        return DenseLayer(self.units, self.activation, self.batch_normalization)

    def __repr__(self):
        return f"DenseLayer(units={self.units}, activation={self.activation!r})"


class ActivationLayer(Layer):
    """Elementwise activation layer (relu, tanh, sigmoid)."""

    def __init__(self, activation="relu"):
        super().__init__()
        if activation not in ACTIVATIONS:
            raise ConfigurationError(f"Unsupported activation: {activation}")
        self.activation = activation

    def forward(self, input_data):
        output = self.output_activations
        output[...] = input_data
        ACTIVATIONS[self.activation](output)
        return output

    def backward(self, delta):
        grad_input = self.delta
        grad_input[...] = delta
        DERIVATIVES[self.activation](self.output_activations, grad_input)
        return grad_input

    def _new_instance(self):
        return ActivationLayer(self.activation)

    def __repr__(self):
        return f"ActivationLayer(activation={self.activation!r})"


class DropoutLayer(Layer):
    """Inverted dropout layer for regularization during training."""

    def __init__(self, drop_out=0.0):
        """
        Args:
            drop_out (float): Probability of zeroing a unit (0.0 to 1.0)
        """
        super().__init__()
        if not 0.0 <= drop_out < 1.0:
            raise ConfigurationError(f"drop_out must be in [0, 1), got {drop_out}")
        self.drop_out = drop_out
        self.mask = None
        self._rng = None

    def _initialize_parameters(self, rng):
        self._rng = rng

    def set_batch_size(self, batch_size):
        super().set_batch_size(batch_size)
        self.mask = np.ones((batch_size, self.fan_out))

    def forward(self, input_data):
        if not self.training or self.drop_out == 0.0:
            self.output_activations[...] = input_data
            return self.output_activations
        keep = 1.0 - self.drop_out
        self.mask[...] = (self._rng.random(self.mask.shape) < keep) / keep
        np.multiply(input_data, self.mask, out=self.output_activations)
        return self.output_activations

    def backward(self, delta):
        if not self.training or self.drop_out == 0.0:
            self.delta[...] = delta
            return self.delta
        np.multiply(delta, self.mask, out=self.delta)
        return self.delta

    def copy_layer_for_prediction_model(self, collector):
        super().copy_layer_for_prediction_model(collector)
        collector[-1].mask = None

    def _new_instance(self):
        return DropoutLayer(self.drop_out)

    def __repr__(self):
        return f"DropoutLayer(drop_out={self.drop_out})"


class BatchNormalizationLayer(TrainableLayer):
    """
    Batch normalization layer normalizing each depth channel over the batch and
    the spatial positions, with a learnable scale (weights) and shift (bias).
    """

    def __init__(self, momentum=0.99, epsilon=1e-4):
        super().__init__()
        self.momentum = momentum
        self.epsilon = epsilon

        # Running statistics (for inference)
        self.moving_average_means = None
        self.moving_average_variance = None

        self._normalized = None
        self._batch_std = None

    def _initialize_parameters(self, rng):
        self.weights = np.ones(self.input_depth)
        self.bias = np.zeros(self.input_depth)
        self.moving_average_means = np.zeros(self.input_depth)
        self.moving_average_variance = np.ones(self.input_depth)
        self._allocate_gradients()

    def set_batch_size(self, batch_size):
        super().set_batch_size(batch_size)
        self._normalized = np.zeros((batch_size, self.input_depth, self.input_height * self.input_width))
        self._batch_std = np.ones(self.input_depth)

    def _channels(self, matrix):
        return matrix.reshape(matrix.shape[0], self.input_depth, -1)

    def forward(self, input_data):
        x = self._channels(input_data)
        if self.training:
            # Calculate batch statistics
            mean = np.mean(x, axis=(0, 2))
            var = np.var(x, axis=(0, 2))
            self.moving_average_means = (self.momentum * self.moving_average_means
                                         + (1 - self.momentum) * mean)
            self.moving_average_variance = (self.momentum * self.moving_average_variance
                                            + (1 - self.momentum) * var)
        else:
            # Use running statistics for inference
            mean = self.moving_average_means
            var = self.moving_average_variance

        self._batch_std = np.sqrt(var + self.epsilon)
        self._normalized[...] = (x - mean[:, None]) / self._batch_std[:, None]

        output = self._channels(self.output_activations)
        output[...] = self.weights[:, None] * self._normalized + self.bias[:, None]
        return self.output_activations

    def backward(self, delta):
        d = self._channels(delta)
        x_hat = self._normalized

        # Gradients w.r.t. scale and shift
        self.weight_gradients[...] = np.sum(d * x_hat, axis=(0, 2))
        self.bias_gradients[...] = np.sum(d, axis=(0, 2))

        dxhat = d * self.weights[:, None]
        inv_std = (1.0 / self._batch_std)[:, None]
        grad_input = self._channels(self.delta)
        if not self.training:
            grad_input[...] = dxhat * inv_std
            return self.delta

        m = x_hat.shape[0] * x_hat.shape[2]
        sum_dxhat = np.sum(dxhat, axis=(0, 2))[:, None]
        sum_dxhat_xhat = np.sum(dxhat * x_hat, axis=(0, 2))[:, None]
        grad_input[...] = inv_std / m * (m * dxhat - sum_dxhat - x_hat * sum_dxhat_xhat)
        return self.delta

    def _copy_parameters_from(self, other):
        super()._copy_parameters_from(other)
        self.moving_average_means = other.moving_average_means.copy()
        self.moving_average_variance = other.moving_average_variance.copy()

    def _new_instance(self):
        return BatchNormalizationLayer(self.momentum, self.epsilon)

    def __repr__(self):
        return f"BatchNormalizationLayer(momentum={self.momentum}, epsilon={self.epsilon})"


class OutputLayer(Layer):
    """
    Base for the last layer of a network. The declared number of units must match the
    incoming fan; ``NeuralNet.add`` puts a dense layer of that size in front of it.
    """

    def __init__(self, units):
        super().__init__()
        if units <= 0:
            raise ConfigurationError(f"number of units must be positive, got {units}")
        self.units = units

    def _bind_shape(self, input_width, input_height, input_depth):
        fan_in = input_width * input_height * input_depth
        if fan_in != self.units:
            raise ConfigurationError(
                f"{self!r} expects {self.units} input units, previous layer produces {fan_in}")
        super()._bind_shape(input_width, input_height, input_depth)

    def _output_shape(self):
        return 1, 1, self.units


class SoftMaxLayer(OutputLayer, ClassificationLayer):
    """Softmax activation layer for multi-class probability output."""

    def __init__(self, number_of_classes):
        super().__init__(number_of_classes)

    @property
    def number_of_classes(self):
        return self.units

    def forward(self, input_data):
        # Subtract max for numerical stability
        x_shifted = input_data - np.max(input_data, axis=1, keepdims=True)
        exp_x = np.exp(x_shifted)
        self.output_activations[...] = exp_x / np.sum(exp_x, axis=1, keepdims=True)
        return self.output_activations

    def backward(self, delta):
        # Jacobian-vector product of softmax: s * (delta - <delta, s>)
        s = self.output_activations
        self.delta[...] = s * (delta - np.sum(delta * s, axis=1, keepdims=True))
        return self.delta

    def _new_instance(self):
        return SoftMaxLayer(self.units)

    def __repr__(self):
        return f"SoftMaxLayer(number_of_classes={self.units})"


class SvmLayer(OutputLayer, ClassificationLayer):
    """Passes raw class scores through, to be trained with a hinge loss."""

    def __init__(self, number_of_classes):
        super().__init__(number_of_classes)

    @property
    def number_of_classes(self):
        return self.units

    def forward(self, input_data):
        self.output_activations[...] = input_data
        return self.output_activations

    def backward(self, delta):
        self.delta[...] = delta
        return self.delta

    def _new_instance(self):
        return SvmLayer(self.units)

    def __repr__(self):
        return f"SvmLayer(number_of_classes={self.units})"


class SquaredErrorRegressionLayer(OutputLayer, RegressionLayer):
    """Identity output for regression, to be trained with a square loss."""

    def __init__(self, number_of_targets=1):
        super().__init__(number_of_targets)

    @property
    def number_of_targets(self):
        return self.units

    def forward(self, input_data):
        self.output_activations[...] = input_data
        return self.output_activations

    def backward(self, delta):
        self.delta[...] = delta
        return self.delta

    def _new_instance(self):
        return SquaredErrorRegressionLayer(self.units)

    def __repr__(self):
        return f"SquaredErrorRegressionLayer(number_of_targets={self.units})"
