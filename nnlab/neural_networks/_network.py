"""
Neural network as a linear stack of layers.
"""
import numpy as np

from ..common.errors import ConfigurationError
from .layers import ActivationLayer, BatchNormalizationLayer, DenseLayer, InputLayer, OutputLayer


def _helper_layers(layer):
    """Batch normalization and activation layers implied after ``layer``."""
    helpers = []
    if getattr(layer, 'batch_normalization', False):
        helpers.append(BatchNormalizationLayer())
    activation = getattr(layer, 'activation', None)
    if activation is not None and not isinstance(layer, ActivationLayer):
        helpers.append(ActivationLayer(activation))
    return helpers


def _is_same_helper(expected, layer):
    if isinstance(expected, ActivationLayer):
        return isinstance(layer, ActivationLayer) and layer.activation == expected.activation
    return isinstance(layer, type(expected))


class NeuralNet:
    """
    Ordered sequence of layers. The output shape of each layer is the input shape of
    the next; the first layer must be an ``InputLayer``.
    """

    def __init__(self, layers=None):
        """
        Args:
            layers (list, optional): Layers taken as-is. A layer asking for batch
                normalization or an activation must already be followed by those layers.
        """
        self.layers = list(layers) if layers is not None else []
        self.batch_size = None
        self._check_helper_layers()

    def _check_helper_layers(self):
        for i, layer in enumerate(self.layers):
            following = self.layers[i + 1:]
            for offset, expected in enumerate(_helper_layers(layer)):
                if offset >= len(following) or not _is_same_helper(expected, following[offset]):
                    raise ConfigurationError(
                        f"{layer!r} must be followed by {expected!r}; "
                        f"use NeuralNet.add() to insert it")

    def add(self, layer):
        """
        Append a layer, inserting the helper layers it implies:
        a linear dense layer before an output layer, batch normalization and
        the activation after a dense or convolutional layer that asks for them.
        """
        if isinstance(layer, OutputLayer):
            self.layers.append(DenseLayer(layer.units, activation=None))

        self.layers.append(layer)
        self.layers.extend(_helper_layers(layer))
        return self

    def check_stack(self):
        """
        Raise ConfigurationError unless the stack starts with its only ``InputLayer``.
        """
        if not self.layers or not isinstance(self.layers[0], InputLayer):
            first = type(self.layers[0]).__name__ if self.layers else None
            raise ConfigurationError(f"First layer must be an InputLayer. Was: {first}")
        if any(isinstance(layer, InputLayer) for layer in self.layers[1:]):
            raise ConfigurationError("Only the first layer can be an InputLayer.")

    @property
    def input_layer(self):
        return self.layers[0]

    @property
    def output_layer(self):
        return self.layers[-1]

    @property
    def input_units(self):
        self.check_stack()
        return self.input_layer.input_units

    def initialize(self, batch_size, rng):
        """
        Propagate shapes through the stack, draw parameters and allocate buffers.

        Args:
            batch_size (int): Rows per forward/backward call
            rng (np.random.Generator): Source for parameter initialization
        """
        self.check_stack()

        previous = self.layers[0]
        previous.initialize(None, None, None, batch_size, rng)
        for layer in self.layers[1:]:
            layer.initialize(previous.width, previous.height, previous.depth, batch_size, rng)
            previous = layer
        self.batch_size = batch_size
        self.train()

    def set_batch_size(self, batch_size):
        """Re-allocate batch dependent buffers of every layer, keeping parameters."""
        for layer in self.layers:
            layer.set_batch_size(batch_size)
        self.batch_size = batch_size

    def forward(self, input_data):
        """
        Feed a batch through every layer.

        Args:
            input_data (ndarray): Shape (batch_size, input_units)

        Returns:
            ndarray: Output of the last layer (an internal buffer)
        """
        if input_data.shape != (self.batch_size, self.input_units):
            raise ValueError(
                f"Expected input of shape {(self.batch_size, self.input_units)}, "
                f"got {input_data.shape}")
        activations = input_data
        for layer in self.layers:
            activations = layer.forward(activations)
        return activations

    def backward(self, delta):
        """
        Feed the loss gradient through every layer in reverse order.

        Returns:
            ndarray: Gradient with respect to the network input
        """
        for layer in reversed(self.layers):
            delta = layer.backward(delta)
        return delta

    def get_parameters_and_gradients(self):
        parameters_and_gradients = []
        for layer in self.layers:
            layer.add_parameters_and_gradients(parameters_and_gradients)
        return parameters_and_gradients

    def copy_for_prediction_model(self):
        """
        Minimal batch-size-1 copy of the network used by models.
        """
        layers = []
        for layer in self.layers:
            layer.copy_layer_for_prediction_model(layers)
        copy = NeuralNet(layers)
        copy.batch_size = 1
        return copy

    def predict(self, observation):
        """
        Forward a single observation.

        Returns:
            ndarray: Copy of the output vector
        """
        observation = np.asarray(observation, dtype=float).reshape(1, -1)
        if self.batch_size != 1:
            self.set_batch_size(1)
        return self.forward(observation)[0].copy()

    def train(self):
        for layer in self.layers:
            layer.train()

    def eval(self):
        for layer in self.layers:
            layer.eval()

    def summary(self):
        """Layer by layer description with output shapes and parameter counts."""
        lines = []
        total = 0
        for layer in self.layers:
            count = sum(pair.parameters.size for pair in _pairs(layer))
            total += count
            shape = (layer.width, layer.height, layer.depth)
            lines.append(f"{layer!r:<90} output={shape} params={count}")
        lines.append(f"Total trainable parameters: {total}")
        return "\n".join(lines)

    def __repr__(self):
        return f"NeuralNet(layers={len(self.layers)})"


def _pairs(layer):
    collector = []
    if layer.width is not None:
        layer.add_parameters_and_gradients(collector)
    return collector
