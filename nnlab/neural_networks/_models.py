"""
Prediction models produced by the neural net learners.
"""
from typing import Dict, NamedTuple

import numpy as np

from ..base import BaseClassifierModel, BaseRegressorModel


class ProbabilityPrediction(NamedTuple):
    """Predicted class together with the probability of every class."""
    prediction: float
    probabilities: Dict[float, float]


def _as_observations(x):
    """Return (2D observations, whether a single observation was given)."""
    x = np.asarray(x, dtype=float)
    if x.ndim == 1:
        return x.reshape(1, -1), True
    if x.ndim == 2:
        return x, False
    raise ValueError(f"Unsupported input dimensions: {x.ndim}")


class NeuralNetModel:
    """Common prediction plumbing on top of a batch-size-1 network."""

    def __init__(self, net):
        self.net = net

    def _raw_predictions(self, observations):
        return np.vstack([self.net.predict(row) for row in observations])

    def get_raw_variable_importance(self):
        """Neural nets do not provide variable importance."""
        return np.array([])


class RegressionNeuralNetModel(NeuralNetModel, BaseRegressorModel):
    """
    Regression neural net model.
    """

    def predict(self, X):
        """
        Args:
            X (ndarray): One observation of shape (d,) or observations of shape (N, d)

        Returns:
            float for a single observation (array for multiple targets), else ndarray
        """
        observations, single = _as_observations(X)
        predictions = self._raw_predictions(observations)
        if predictions.shape[1] == 1:
            predictions = predictions.ravel()
        if single:
            value = predictions[0]
            return float(value) if np.ndim(value) == 0 else value
        return predictions


class ClassificationNeuralNetModel(NeuralNetModel, BaseClassifierModel):
    """
    Classification neural net model. Output columns follow the ascending order of the
    target names.
    """

    def __init__(self, net, target_names):
        super().__init__(net)
        self.target_names = np.asarray(target_names)

    def get_target_names(self):
        return self.target_names.copy()

    def predict_proba(self, X):
        """
        Returns:
            ndarray: Shape (N, n_classes) class scores, ordered as ``get_target_names()``
        """
        observations, _ = _as_observations(X)
        return self._raw_predictions(observations)

    def predict(self, X):
        """
        Returns:
            The predicted class for a single observation, else an ndarray of classes
        """
        observations, single = _as_observations(X)
        predictions = self.target_names[np.argmax(self._raw_predictions(observations), axis=1)]
        if single:
            return predictions[0]
        return predictions

    def predict_probability(self, X):
        """
        Returns:
            ProbabilityPrediction for a single observation, else a list of them
        """
        observations, single = _as_observations(X)
        predictions = [
            ProbabilityPrediction(
                prediction=self.target_names[np.argmax(scores)],
                probabilities=dict(zip(self.target_names.tolist(), scores.tolist())))
            for scores in self._raw_predictions(observations)
        ]
        if single:
            return predictions[0]
        return predictions
