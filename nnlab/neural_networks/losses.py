"""
Loss functions for training neural networks.

All losses average over the batch rows, and ``gradient`` returns the derivative of
``loss`` with respect to the predictions.
"""
import numpy as np


class Loss:
    """Base class for losses."""

    def loss(self, targets, predictions):
        """
        Args:
            targets (ndarray): Encoded targets of shape (batch_size, outputs)
            predictions (ndarray): Network output of the same shape

        Returns:
            float: Mean loss over the batch
        """
        raise NotImplementedError

    def gradient(self, targets, predictions):
        """
        Args:
            targets (ndarray): Encoded targets of shape (batch_size, outputs)
            predictions (ndarray): Network output of the same shape

        Returns:
            ndarray: d loss / d predictions, same shape as predictions
        """
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}()"


class SquareLoss(Loss):
    """Half the squared error, summed over outputs and averaged over rows."""

    def loss(self, targets, predictions):
        n_samples = predictions.shape[0]
        return float(0.5 * np.sum((predictions - targets) ** 2) / n_samples)

    def gradient(self, targets, predictions):
        n_samples = predictions.shape[0]
        return (predictions - targets) / n_samples


class LogLoss(Loss):
    """Cross-entropy between one-of-N targets and predicted probabilities."""

    def __init__(self, epsilon=1e-15):
        self.epsilon = epsilon

    def _clipped(self, predictions):
        return np.clip(predictions, self.epsilon, 1 - self.epsilon)

    def loss(self, targets, predictions):
        n_samples = predictions.shape[0]
        return float(-np.sum(targets * np.log(self._clipped(predictions))) / n_samples)

    def gradient(self, targets, predictions):
        n_samples = predictions.shape[0]
        return -targets / self._clipped(predictions) / n_samples


class HingeLoss(Loss):
    """
    Multi-class hinge loss on raw class scores: sum over j != y of max(0, s_j - s_y + margin).
    """

    def __init__(self, margin=1.0):
        self.margin = margin

    def _margins(self, targets, predictions):
        true_scores = np.sum(predictions * targets, axis=1, keepdims=True)
        margins = predictions - true_scores + self.margin
        margins[targets == 1] = 0.0
        return margins

    def loss(self, targets, predictions):
        n_samples = predictions.shape[0]
        margins = self._margins(targets, predictions)
        return float(np.sum(np.maximum(margins, 0.0)) / n_samples)

    def gradient(self, targets, predictions):
        n_samples = predictions.shape[0]
        active = (self._margins(targets, predictions) > 0).astype(float)
        grad = active - targets * np.sum(active, axis=1, keepdims=True)
        return grad / n_samples
