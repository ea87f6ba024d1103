"""
Gradient based optimizers for neural networks.

An optimizer walks the flat list of (parameters, gradients) pairs collected from the
network and updates every parameter tensor in place. Accumulators live in
``self.states_``, a list aligned index-for-index with the pair list.
"""
import numpy as np

from ..common.errors import ConfigurationError


class Optimizer:
    """
    Base optimizer applying L1/L2 decay before the method specific update.
    """

    def __init__(self, lr=0.01, l1_decay=0.0, l2_decay=0.0, epsilon=1e-8):
        """
        Args:
            lr (float): Learning rate
            l1_decay (float): L1 regularization term added to the gradient
            l2_decay (float): L2 regularization term added to the gradient
            epsilon (float): Small constant for numerical stability
        """
        self.lr = lr
        self.l1_decay = l1_decay
        self.l2_decay = l2_decay
        self.epsilon = epsilon
        self.states_ = []
        self.t_ = 0

    def reset(self):
        """Forget all accumulated state."""
        self.states_ = []
        self.t_ = 0

    def update(self, parameters_and_gradients):
        """
        Update every parameter tensor in place.

        Args:
            parameters_and_gradients (list): ParametersAndGradients pairs, in a fixed order
        """
        if not self.states_:
            self.states_ = [self._init_state(pair.parameters) for pair in parameters_and_gradients]
        elif len(self.states_) != len(parameters_and_gradients):
            raise ValueError(
                f"Optimizer state holds {len(self.states_)} tensors, "
                f"got {len(parameters_and_gradients)}")

        self.t_ += 1
        for pair, state in zip(parameters_and_gradients, self.states_):
            weights = pair.parameters
            grad = self._regularized_gradient(weights, pair.gradients)
            weights += self._compute_update(grad, state)

    def _regularized_gradient(self, weights, gradients):
        grad = gradients.copy()
        if self.l2_decay:
            grad += self.l2_decay * weights
        if self.l1_decay:
            grad += self.l1_decay * np.sign(weights)
        return grad

    def _init_state(self, weights):
        raise NotImplementedError

    def _compute_update(self, grad, state):
        raise NotImplementedError


class SGDOptimizer(Optimizer):
    """
    Stochastic Gradient Descent optimizer with momentum and Nesterov acceleration.
    """

    def __init__(self, lr=0.01, momentum=0.9, nesterov=False, **kwargs):
        """
        Args:
            lr (float): Learning rate
            momentum (float): Momentum factor
            nesterov (bool): Whether to apply Nesterov momentum
        """
        super().__init__(lr=lr, **kwargs)
        self.momentum = momentum
        self.nesterov = nesterov

    def _init_state(self, weights):
        return {'velocity': np.zeros_like(weights)}

    def _compute_update(self, grad, state):
        velocity = state['velocity']
        velocity *= self.momentum
        velocity -= self.lr * grad

        if self.nesterov:
            return self.momentum * velocity - self.lr * grad
        return velocity.copy()


class AdagradOptimizer(Optimizer):
    """Adagrad: per-coordinate step scaled by the accumulated squared gradients."""

    def _init_state(self, weights):
        return {'gsum': np.zeros_like(weights)}

    def _compute_update(self, grad, state):
        gsum = state['gsum']
        gsum += grad ** 2
        return -self.lr * grad / (np.sqrt(gsum) + self.epsilon)


class RMSPropOptimizer(Optimizer):
    """RMSProp: Adagrad with a decaying (``ro``) squared gradient average."""

    def __init__(self, lr=0.01, ro=0.95, **kwargs):
        super().__init__(lr=lr, **kwargs)
        self.ro = ro

    def _init_state(self, weights):
        return {'gsum': np.zeros_like(weights)}

    def _compute_update(self, grad, state):
        gsum = state['gsum']
        gsum *= self.ro
        gsum += (1 - self.ro) * grad ** 2
        return -self.lr * grad / (np.sqrt(gsum) + self.epsilon)


class AdadeltaOptimizer(Optimizer):
    """
    Adadelta: step size from the ratio of decayed update and gradient magnitudes.
    The method has no learning rate; ``lr`` is accepted and ignored.
    """

    def __init__(self, ro=0.95, epsilon=1e-6, **kwargs):
        super().__init__(epsilon=epsilon, **kwargs)
        self.ro = ro

    def _init_state(self, weights):
        return {'gsum': np.zeros_like(weights), 'xsum': np.zeros_like(weights)}

    def _compute_update(self, grad, state):
        gsum, xsum = state['gsum'], state['xsum']
        gsum *= self.ro
        gsum += (1 - self.ro) * grad ** 2
        dx = -np.sqrt((xsum + self.epsilon) / (gsum + self.epsilon)) * grad
        xsum *= self.ro
        xsum += (1 - self.ro) * dx ** 2
        return dx


class AdamOptimizer(Optimizer):
    """
    Adam optimizer implementation.
    """

    def __init__(self, lr=0.001, beta1=0.9, beta2=0.999, epsilon=1e-8, **kwargs):
        """
        Args:
            lr (float): Learning rate
            beta1 (float): Exponential decay rate for first moment
            beta2 (float): Exponential decay rate for second moment
            epsilon (float): Small constant for numerical stability
        """
        super().__init__(lr=lr, epsilon=epsilon, **kwargs)
        self.beta1 = beta1
        self.beta2 = beta2

    def _init_state(self, weights):
        return {'m': np.zeros_like(weights), 'v': np.zeros_like(weights)}

    def _compute_update(self, grad, state):
        t = self.t_

        # Update biased first moment estimate
        m = state['m']
        m *= self.beta1
        m += (1 - self.beta1) * grad

        # Update biased second raw moment estimate
        v = state['v']
        v *= self.beta2
        v += (1 - self.beta2) * grad ** 2

        # Compute bias-corrected moment estimates
        m_corrected = m / (1 - self.beta1 ** t)
        v_corrected = v / (1 - self.beta2 ** t)

        return -self.lr * m_corrected / (np.sqrt(v_corrected) + self.epsilon)


OPTIMIZERS = {
    'sgd': SGDOptimizer,
    'nesterov': SGDOptimizer,
    'adagrad': AdagradOptimizer,
    'rmsprop': RMSPropOptimizer,
    'adadelta': AdadeltaOptimizer,
    'adam': AdamOptimizer,
}


def get_optimizer(solver='adagrad', **kwargs):
    """
    Factory function to get optimizer instances.

    Args:
        solver (str): Optimizer type ('sgd', 'nesterov', 'adagrad', 'rmsprop', 'adadelta', 'adam')
        **kwargs: Optimizer-specific parameters

    Returns:
        Optimizer instance
    """
    if solver not in OPTIMIZERS:
        raise ConfigurationError(f"Unknown solver: {solver}")
    if solver == 'nesterov':
        kwargs['nesterov'] = True
    return OPTIMIZERS[solver](**kwargs)
