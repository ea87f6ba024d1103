# pylint: disable=missing-docstring
from abc import abstractmethod
from typing import Any, Optional, TypeVar
import numpy as np

# Define a type variable that's used correctly
T = TypeVar("T", bound="BaseLearner")


# pylint: disable=too-many-instance-attributes, invalid-name line-too-long missing-docstring
class BaseLearner:
    @abstractmethod
    def learn(self, observations: np.ndarray, targets: np.ndarray,
              indices: Optional[np.ndarray] = None) -> Any:
        """
        :param observations: numpy array of shape (N, d) with N being the number of samples and d being the number of feature dimensions
        :param targets: numpy array of shape (N,) with one target value per sample
        :param indices: optional row indices restricting which samples are learned from
        :return: a fitted model
        """
        raise NotImplementedError

    def get_params(self, mode: str = "all") -> Any:
        """
        Get parameters for this learner.

        :param mode: Specifies which parameters to return. Options are:
            - "all": Return all hyperparameters.
            - "optimizer": Return only the optimizer related hyperparameters.
            - "network": Return only the network and its loss/encoder collaborators.
        :return: Dictionary of parameter names mapped to their values.
        """
        params = {k: v for k, v in self.__dict__.items() if not k.startswith("_") and not k.endswith("_")}
        if mode == "all":
            return params
        if mode == "optimizer":
            return {k: v for k, v in params.items() if k in self._optimizer_params}
        if mode == "network":
            return {k: v for k, v in params.items() if k not in self._optimizer_params}

        raise ValueError(
            f"Invalid mode '{mode}'. Choose from 'all', 'optimizer', or 'network'."
        )

    def set_params(self: T, **params) -> T:
        """Set the hyperparameters of this learner, keeping the old values when they fail validation."""
        valid = self.get_params()
        for param in params:
            if param not in valid:
                raise ValueError(f"Invalid parameter {param}")

        previous = {param: valid[param] for param in params}
        for param, value in params.items():
            setattr(self, param, value)
        try:
            self._check_params()
        except ValueError:
            for param, value in previous.items():
                setattr(self, param, value)
            raise
        return self

    def _check_params(self):
        """Hook for subclasses validating their hyperparameters."""

    _optimizer_params = (
        "learning_rate", "l1decay", "l2decay", "optimizer_method",
        "momentum", "ro", "beta1", "beta2",
    )


class BaseClassifierModel:
    @abstractmethod
    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        :param X: np array of shape (N, d) or a single observation of shape (d,)
        :return:
        """
        raise NotImplementedError

    def score(self, X: np.ndarray, y: np.ndarray) -> float:
        """
        :param X: numpy array of shape (N, d) with N being the number of samples and d being the number of feature dimensions
        :param y: numpy array of shape (N,) with the true class of each sample
        :return: accuracy
        """
        y_pred = self.predict(X)
        return float(np.mean(y_pred == np.asarray(y).ravel()))


class BaseRegressorModel:
    @abstractmethod
    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        :param X: np array of shape (N, d) or a single observation of shape (d,)
        :return:
        """
        raise NotImplementedError

    def score(self, X: np.ndarray, y: np.ndarray) -> float:
        """
        :param X: numpy array of shape (N, d) with N being the number of samples and d being the number of feature dimensions
        :param y: numpy array of shape (N,) with the true target of each sample
        :return: R2 score
        """
        y = np.asarray(y, dtype=float).ravel()
        y_pred = np.asarray(self.predict(X), dtype=float).ravel()

        ss_tot: float = float(np.sum((y - np.mean(y)) ** 2))

        if ss_tot == 0:
            return 0.0  # Avoid division by zero

        ss_res: float = float(np.sum((y - y_pred) ** 2))

        return 1.0 - (ss_res / ss_tot)
