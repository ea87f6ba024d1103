"""
Mini-batch training of neural networks.
"""
import numpy as np

from ..base import BaseLearner
from ..common.errors import ConfigurationError
from ..common.utils import check_random_state, safe_indexing
from ._models import ClassificationNeuralNetModel, RegressionNeuralNetModel
from .layers import ClassificationLayer, RegressionLayer, SoftMaxLayer
from .losses import HingeLoss, LogLoss, SquareLoss
from .optimizers import get_optimizer
from .target_encoders import CopyTargetEncoder, OneOfNTargetEncoder


class NeuralNetLearner(BaseLearner):
    """
    Neural net learner using mini-batch gradient descent.

    Each iteration shuffles the rows and walks them in mini-batches: encode the targets,
    run the forward pass, compute the loss and its gradient, run the backward pass and
    let the optimizer update every (parameters, gradients) pair.
    """

    def __init__(self, net, target_encoder, loss, learning_rate=0.01, iterations=100,
                 batch_size=128, l1decay=0.0, l2decay=0.0, optimizer_method='adagrad',
                 momentum=0.9, ro=0.95, beta1=0.9, beta2=0.999, random_state=None,
                 verbose=False):
        """
        Args:
            net (NeuralNet): The neural net to learn
            target_encoder: Converts raw targets into the matrix the loss expects
            loss (Loss): Loss used for the gradient and reported between iterations
            learning_rate (float): Step size when updating the weights
            iterations (int): Number of passes over the data
            batch_size (int): Rows per mini-batch
            l1decay (float): L1 regularization term
            l2decay (float): L2 regularization term
            optimizer_method (str): 'sgd', 'nesterov', 'adagrad', 'rmsprop', 'adadelta' or 'adam'
            momentum (float): Momentum for the sgd methods, between 0 and 1
            ro (float): Decay rate for rmsprop and adadelta, between 0 and 1
            beta1 (float): Decay rate for Adam's first moment estimates, between 0 and 1
            beta2 (float): Decay rate for Adam's second moment estimates, between 0 and 1
            random_state (int): Seed for weight initialization, dropout and shuffling
            verbose (bool): Whether to print progress messages
        """
        self.net = net
        self.target_encoder = target_encoder
        self.loss = loss
        self.learning_rate = learning_rate
        self.iterations = iterations
        self.batch_size = batch_size
        self.l1decay = l1decay
        self.l2decay = l2decay
        self.optimizer_method = optimizer_method
        self.momentum = momentum
        self.ro = ro
        self.beta1 = beta1
        self.beta2 = beta2
        self.random_state = random_state
        self.verbose = verbose
        self._check_params()

        self.optimizer_ = None
        self.loss_curve_ = []
        self.n_iter_ = 0

    def _check_params(self):
        """Validate the network and hyperparameters before any data is seen."""
        self.net.check_stack()
        if self.iterations < 0:
            raise ConfigurationError(f"iterations must be non-negative, got {self.iterations}")
        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")
        if self.learning_rate <= 0:
            raise ConfigurationError(f"learning_rate must be positive, got {self.learning_rate}")
        self._create_optimizer()

    def _create_optimizer(self):
        """Create optimizer instance."""
        common = {'lr': self.learning_rate, 'l1_decay': self.l1decay, 'l2_decay': self.l2decay}
        if self.optimizer_method in ('sgd', 'nesterov'):
            return get_optimizer(self.optimizer_method, momentum=self.momentum, **common)
        if self.optimizer_method in ('rmsprop', 'adadelta'):
            return get_optimizer(self.optimizer_method, ro=self.ro, **common)
        if self.optimizer_method == 'adam':
            return get_optimizer('adam', beta1=self.beta1, beta2=self.beta2, **common)
        return get_optimizer(self.optimizer_method, **common)

    def _validate_input(self, observations, targets, indices):
        """Validate input data."""
        x = np.asarray(safe_indexing(observations, indices), dtype=float)
        y = np.asarray(safe_indexing(targets, indices))
        if x.ndim != 2:
            raise ValueError("observations must be a 2D array")
        if x.shape[0] != y.shape[0]:
            raise ValueError(
                "observations and targets must have the same number of samples")
        if x.shape[0] == 0:
            raise ValueError("Cannot learn from zero samples")
        if x.shape[1] != self.net.input_units:
            raise ConfigurationError(
                f"Input layer expects {self.net.input_units} features, "
                f"observations have {x.shape[1]}")
        return x, y

    def _fit_target_encoder(self, y):
        self.target_encoder.fit(y)

    def _generate_batches(self, n_samples, batch_size, rng):
        """Generate mini-batch row indices for one iteration."""
        indices = rng.permutation(n_samples)
        for start_idx in range(0, n_samples, batch_size):
            yield indices[start_idx:start_idx + batch_size]

    def _train_batch(self, x_batch, y_batch):
        """Run one forward/backward/update step and return the batch loss."""
        encoded = self.target_encoder.encode(y_batch)
        predictions = self.net.forward(x_batch)
        batch_loss = self.loss.loss(encoded, predictions)
        self.net.backward(self.loss.gradient(encoded, predictions))
        self.optimizer_.update(self.net.get_parameters_and_gradients())
        return batch_loss

    def _train_epoch(self, x, y, batch_size, rng):
        """Train for one iteration and return the mean batch loss."""
        epoch_losses = []
        for batch_indices in self._generate_batches(x.shape[0], batch_size, rng):
            rows = len(batch_indices)
            if rows != batch_size:
                # short final batch gets its own buffers
                self.net.set_batch_size(rows)
            epoch_losses.append(self._train_batch(x[batch_indices], y[batch_indices]))
            if rows != batch_size:
                self.net.set_batch_size(batch_size)
        return float(np.mean(epoch_losses))

    def learn(self, observations, targets, indices=None):
        """
        Learn the network.

        Args:
            observations (ndarray or DataFrame): Shape (n_samples, n_features)
            targets (ndarray or Series): Shape (n_samples,)
            indices (ndarray, optional): Rows to learn from

        Returns:
            NeuralNet: Batch-size-1 copy of the trained network
        """
        x, y = self._validate_input(observations, targets, indices)
        n_samples = x.shape[0]
        batch_size = min(self.batch_size, n_samples)

        rng = check_random_state(self.random_state)
        self.net.initialize(batch_size, rng)
        self.optimizer_ = self._create_optimizer()
        self._fit_target_encoder(y)
        self.loss_curve_ = []

        if self.verbose:
            print(f"Number of iterations: {self.iterations}, Batch size: {batch_size}, "
                  f"Optimizer: {self.optimizer_method}")

        for iteration in range(self.iterations):
            epoch_loss = self._train_epoch(x, y, batch_size, rng)
            self.loss_curve_.append(epoch_loss)

            if self.verbose:
                print(f"Iteration {iteration + 1}/{self.iterations}, Loss: {epoch_loss:.6f}")

        self.n_iter_ = len(self.loss_curve_)
        if self.verbose:
            print(f"Training completed in {self.n_iter_} iterations")

        return self.net.copy_for_prediction_model()


class ClassificationNeuralNetLearner(NeuralNetLearner):
    """
    Classification neural net learner. The last layer of the network must be a
    classification layer (SoftMaxLayer or SvmLayer).
    """

    def __init__(self, net, loss=None, learning_rate=0.01, iterations=100, batch_size=128,
                 l1decay=0.0, l2decay=0.0, optimizer_method='adagrad', momentum=0.9,
                 ro=0.95, beta1=0.9, beta2=0.999, random_state=None, verbose=False):
        if not net.layers or not isinstance(net.output_layer, ClassificationLayer):
            last = type(net.output_layer).__name__ if net.layers else None
            raise ConfigurationError(
                f"Last layer must be a classification layer type. Was: {last}")
        if loss is None:
            loss = LogLoss() if isinstance(net.output_layer, SoftMaxLayer) else HingeLoss()

        super().__init__(net, OneOfNTargetEncoder(), loss, learning_rate, iterations,
                         batch_size, l1decay, l2decay, optimizer_method, momentum, ro,
                         beta1, beta2, random_state, verbose)
        self._target_names = None

    @staticmethod
    def _ordered_target_names(targets):
        return np.unique(np.asarray(safe_indexing(targets, None)).ravel())

    def _fit_target_encoder(self, y):
        # every class of the full targets, also those missing from an indexed subset
        self.target_encoder.fit(self._target_names)

    def learn(self, observations, targets, indices=None):
        """
        Learn a classification neural network.

        Returns:
            ClassificationNeuralNetModel
        """
        self._target_names = self._ordered_target_names(targets)
        n_classes = self.net.output_layer.number_of_classes
        if len(self._target_names) != n_classes:
            raise ConfigurationError(
                f"Output layer has {n_classes} classes, targets have {len(self._target_names)}")

        model = super().learn(observations, targets, indices)
        return ClassificationNeuralNetModel(model, self._target_names)


class RegressionNeuralNetLearner(NeuralNetLearner):
    """
    Regression neural net learner. The last layer of the network must be a
    regression layer (SquaredErrorRegressionLayer).
    """

    def __init__(self, net, loss=None, learning_rate=0.01, iterations=100, batch_size=128,
                 l1decay=0.0, l2decay=0.0, optimizer_method='adagrad', momentum=0.9,
                 ro=0.95, beta1=0.9, beta2=0.999, random_state=None, verbose=False):
        if not net.layers or not isinstance(net.output_layer, RegressionLayer):
            last = type(net.output_layer).__name__ if net.layers else None
            raise ConfigurationError(
                f"Last layer must be a regression layer type. Was: {last}")
        if loss is None:
            loss = SquareLoss()

        super().__init__(net, CopyTargetEncoder(), loss, learning_rate, iterations,
                         batch_size, l1decay, l2decay, optimizer_method, momentum, ro,
                         beta1, beta2, random_state, verbose)

    def learn(self, observations, targets, indices=None):
        """
        Learn a regression neural network.

        Returns:
            RegressionNeuralNetModel
        """
        model = super().learn(observations, targets, indices)
        return RegressionNeuralNetModel(model)
