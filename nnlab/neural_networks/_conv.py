"""
Convolution and max pooling layers for image-like inputs.

Rows of the activation matrices hold one sample laid out as (depth, height, width).
Per-sample work runs through ``parallel_for``; every task writes only its own row.
"""
from functools import partial

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from ..common.errors import ConfigurationError
from ..common.utils import parallel_for
from .layers import ACTIVATIONS, Layer, TrainableLayer, glorot_uniform


# Helper Functions
def get_filter_grid_length(input_length, filter_size, stride, padding):
    """
    Number of filter/pool positions along one spatial axis.

    Args:
        input_length: Size of the input along the axis
        filter_size: Size of the filter or pool window along the axis
        stride: Step between neighbouring windows
        padding: Zero padding added on both sides

    Returns:
        floor((input_length + 2 * padding - filter_size) / stride) + 1
    """
    return (input_length + 2 * padding - filter_size) // stride + 1


def pad_image(image, padding):
    """
    Pad one (channels, height, width) image with zeros on the spatial sides.
    """
    if padding == 0:
        return image
    return np.pad(image, ((0, 0), (padding, padding), (padding, padding)),
                  mode='constant')


def get_patches(image, patch_shape, stride, out_shape):
    """
    Extract sliding window patches from a padded (channels, height, width) image.

    Args:
        image: Padded input image
        patch_shape: Tuple (patch_h, patch_w)
        stride: Step between windows on both axes
        out_shape: Tuple (out_h, out_w), number of windows per axis

    Returns:
        Array of shape (out_h * out_w, channels * patch_h * patch_w), one window per row
    """
    patch_h, patch_w = patch_shape
    out_h, out_w = out_shape
    # (channels, H', W', patch_h, patch_w)
    patches = sliding_window_view(image, (patch_h, patch_w), axis=(1, 2))
    # Apply stride by slicing
    patches = patches[:, ::stride, ::stride][:, :out_h, :out_w]
    # Rearrange dimensions: (out_h, out_w, channels, patch_h, patch_w)
    return patches.transpose(1, 2, 0, 3, 4).reshape(out_h * out_w, -1)


class ConvLayer(TrainableLayer):
    """
    Convolutional layer for feature extraction with learnable filters.
    """

    def __init__(self, filter_width, filter_height, filter_count, stride=1, padding=0,
                 activation="relu", batch_normalization=False, n_jobs=1):
        """
        Args:
            filter_width (int): Width of each filter
            filter_height (int): Height of each filter
            filter_count (int): Number of filters, the output depth
            stride (int): Step between neighbouring filter positions
            padding (int): Zero padding added on each spatial side
            activation (str or None): Activation appended by the network after this layer
            batch_normalization (bool): Whether the network appends batch normalization
            n_jobs (int): Worker threads for the per-sample loop
        """
        super().__init__()
        if min(filter_width, filter_height, filter_count, stride) <= 0 or padding < 0:
            raise ConfigurationError(
                "filter sizes, filter count and stride must be positive and padding non-negative")
        if activation is not None and activation not in ACTIVATIONS:
            raise ConfigurationError(f"Unsupported activation: {activation}")
        self.filter_width = filter_width
        self.filter_height = filter_height
        self.filter_count = filter_count
        self.stride = stride
        self.padding = padding
        self.activation = activation
        self.batch_normalization = batch_normalization
        self.n_jobs = n_jobs

        self._im2col = None

    def _output_shape(self):
        width = get_filter_grid_length(self.input_width, self.filter_width, self.stride, self.padding)
        height = get_filter_grid_length(self.input_height, self.filter_height, self.stride, self.padding)
        return width, height, self.filter_count

    @property
    def filter_size(self):
        return self.input_depth * self.filter_height * self.filter_width

    def _initialize_parameters(self, rng):
        # Xavier initialization
        fan_in = self.filter_size
        fan_out = self.filter_height * self.filter_width * self.filter_count
        self.weights = glorot_uniform(fan_in, fan_out, (self.filter_count, self.filter_size), rng)
        self.bias = np.zeros(self.filter_count)
        self._allocate_gradients()

    def set_batch_size(self, batch_size):
        super().set_batch_size(batch_size)
        self._im2col = np.zeros((batch_size, self.width * self.height, self.filter_size))

    def forward(self, input_data):
        self._input_activations = input_data
        parallel_for(input_data.shape[0], partial(self._forward_single_item, input_data),
                     self.n_jobs)
        return self.output_activations

    def _forward_single_item(self, input_data, batch_item):
        image = input_data[batch_item].reshape(self.input_depth, self.input_height, self.input_width)
        cols = self._im2col[batch_item]
        cols[...] = get_patches(pad_image(image, self.padding),
                                (self.filter_height, self.filter_width),
                                self.stride, (self.height, self.width))
        # (positions, filters) -> filters major
        output = cols.dot(self.weights.T) + self.bias
        self.output_activations[batch_item] = output.T.ravel()

    def backward(self, delta):
        parallel_for(delta.shape[0], partial(self._backward_single_item, delta), self.n_jobs)

        # batch reductions after every sample has finished
        delta_maps = delta.reshape(delta.shape[0], self.filter_count, -1)
        self.weight_gradients[...] = np.einsum('nfp,npk->fk', delta_maps, self._im2col)
        self.bias_gradients[...] = np.sum(delta_maps, axis=(0, 2))
        return self.delta

    def _backward_single_item(self, delta, batch_item):
        delta_map = delta[batch_item].reshape(self.filter_count, -1)
        # (positions, depth * filter_h * filter_w)
        col_grad = delta_map.T.dot(self.weights)
        col_grad = col_grad.reshape(self.height, self.width, self.input_depth,
                                    self.filter_height, self.filter_width)

        padded_h = self.input_height + 2 * self.padding
        padded_w = self.input_width + 2 * self.padding
        grad = np.zeros((self.input_depth, padded_h, padded_w))
        h_span = self.stride * self.height
        w_span = self.stride * self.width
        for r in range(self.filter_height):
            for q in range(self.filter_width):
                grad[:, r:r + h_span:self.stride, q:q + w_span:self.stride] += (
                    col_grad[:, :, :, r, q].transpose(2, 0, 1))

        p = self.padding
        self.delta[batch_item] = grad[:, p:p + self.input_height, p:p + self.input_width].ravel()

    def _new_instance(self):
        return ConvLayer(self.filter_width, self.filter_height, self.filter_count,
                         self.stride, self.padding, self.activation,
                         self.batch_normalization, self.n_jobs)

    def __repr__(self):
        return (f"ConvLayer(filter_width={self.filter_width}, filter_height={self.filter_height}, "
                f"filter_count={self.filter_count}, stride={self.stride}, padding={self.padding}, "
                f"activation={self.activation!r})")


class MaxPool2DLayer(Layer):
    """
    Max pooling layer for spatial dimension reduction.

    The forward pass records, per batch item and output unit, the (x, y) input
    coordinates of the maximum (the switches). The backward pass routes each
    output gradient to exactly that coordinate.
    """

    def __init__(self, pool_width, pool_height, stride=2, padding=0, n_jobs=1):
        """
        Args:
            pool_width (int): Width of the pool area
            pool_height (int): Height of the pool area
            stride (int): Distance between neighbouring pool areas
            padding (int): Padding on each spatial side, smaller than the pool size
            n_jobs (int): Worker threads for the per-sample loop
        """
        super().__init__()
        if min(pool_width, pool_height, stride) <= 0:
            raise ConfigurationError("pool sizes and stride must be positive")
        if not 0 <= padding < min(pool_width, pool_height):
            raise ConfigurationError(
                f"padding must be non-negative and smaller than the pool size, got {padding}")
        self.pool_width = pool_width
        self.pool_height = pool_height
        self.stride = stride
        self.padding = padding
        self.n_jobs = n_jobs

        # Switches for determining the position of the max during forward and back propagation.
        self.switch_x = None
        self.switch_y = None

    def _output_shape(self):
        width = get_filter_grid_length(self.input_width, self.pool_width, self.stride, self.padding)
        height = get_filter_grid_length(self.input_height, self.pool_height, self.stride, self.padding)
        return width, height, self.input_depth

    def set_batch_size(self, batch_size):
        super().set_batch_size(batch_size)
        self.switch_x = np.zeros((batch_size, self.fan_out), dtype=np.intp)
        self.switch_y = np.zeros((batch_size, self.fan_out), dtype=np.intp)

    def forward(self, input_data):
        self._input_activations = input_data
        parallel_for(input_data.shape[0], partial(self._forward_single_item, input_data),
                     self.n_jobs)
        return self.output_activations

    def _window(self, index, size, input_length):
        start = index * self.stride - self.padding
        end = min(start + size, input_length)
        return max(start, 0), end

    def _forward_single_item(self, input_data, batch_item):
        image = input_data[batch_item].reshape(self.depth, self.input_height, self.input_width)
        output = self.output_activations[batch_item].reshape(self.depth, self.height, self.width)
        switch_x = self.switch_x[batch_item].reshape(self.depth, self.height, self.width)
        switch_y = self.switch_y[batch_item].reshape(self.depth, self.height, self.width)
        channels = np.arange(self.depth)

        for ph in range(self.height):
            hstart, hend = self._window(ph, self.pool_height, self.input_height)
            for pw in range(self.width):
                wstart, wend = self._window(pw, self.pool_width, self.input_width)
                window = image[:, hstart:hend, wstart:wend].reshape(self.depth, -1)
                # argmax keeps the first maximum in row-major scan order
                winner = np.argmax(window, axis=1)
                output[:, ph, pw] = window[channels, winner]
                switch_y[:, ph, pw] = hstart + winner // (wend - wstart)
                switch_x[:, ph, pw] = wstart + winner % (wend - wstart)

    def backward(self, delta):
        parallel_for(delta.shape[0], partial(self._backward_single_item, delta), self.n_jobs)
        return self.delta

    def _backward_single_item(self, delta, batch_item):
        row = self.delta[batch_item]
        row[...] = 0.0
        grad = row.reshape(self.depth, self.input_height, self.input_width)
        channels = np.repeat(np.arange(self.depth), self.height * self.width)
        np.add.at(grad, (channels, self.switch_y[batch_item], self.switch_x[batch_item]),
                  delta[batch_item])

    def _new_instance(self):
        return MaxPool2DLayer(self.pool_width, self.pool_height, self.stride,
                              self.padding, self.n_jobs)

    def __repr__(self):
        return (f"MaxPool2DLayer(pool_width={self.pool_width}, pool_height={self.pool_height}, "
                f"stride={self.stride}, padding={self.padding})")
