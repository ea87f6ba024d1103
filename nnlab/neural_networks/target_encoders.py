"""
Target encoders turning raw target values into the matrices losses expect.
"""
import numpy as np


class OneOfNTargetEncoder:
    """
    Maps each distinct target value to a unit basis row. Classes are kept sorted
    ascending, the same order is used to decode predicted probabilities.
    """

    def __init__(self):
        self.classes_ = None

    def fit(self, targets):
        """Record the ordered distinct targets."""
        self.classes_ = np.unique(np.asarray(targets).ravel())
        return self

    @property
    def n_classes(self):
        return len(self.classes_)

    def encode(self, targets):
        """
        Convert class values to one-hot rows.

        Args:
            targets (ndarray): Class values of shape (n_samples,)

        Returns:
            ndarray: Shape (n_samples, n_classes)
        """
        if self.classes_ is None:
            raise ValueError("Encoder must be fitted before encoding.")
        targets = np.asarray(targets).ravel()
        positions = np.searchsorted(self.classes_, targets)
        positions = np.clip(positions, 0, self.n_classes - 1)
        if np.any(self.classes_[positions] != targets):
            unknown = np.setdiff1d(targets, self.classes_)
            raise ValueError(f"Unknown target values: {unknown}")
        encoded = np.zeros((len(targets), self.n_classes))
        encoded[np.arange(len(targets)), positions] = 1.0
        return encoded

    def decode(self, probabilities):
        """Map rows of class scores back to class values (argmax)."""
        probabilities = np.atleast_2d(probabilities)
        return self.classes_[np.argmax(probabilities, axis=1)]


class CopyTargetEncoder:
    """Pass-through encoder for regression targets."""

    def fit(self, targets):
        return self

    def encode(self, targets):
        """
        Args:
            targets (ndarray): Shape (n_samples,) or (n_samples, n_targets)

        Returns:
            ndarray: Shape (n_samples, n_targets)
        """
        targets = np.asarray(targets, dtype=float)
        if targets.ndim == 1:
            return targets.reshape(-1, 1)
        return targets
