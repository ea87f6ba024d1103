"""
Neural networks module for mini-batch trained feed-forward and convolutional networks.
"""
from .layers import (
    Layer,
    InputLayer,
    DenseLayer,
    ActivationLayer,
    DropoutLayer,
    BatchNormalizationLayer,
    SoftMaxLayer,
    SvmLayer,
    SquaredErrorRegressionLayer,
    ClassificationLayer,
    RegressionLayer,
    WeightsAndBiases,
    ParametersAndGradients
)
from ._conv import (ConvLayer, MaxPool2DLayer, get_filter_grid_length)
from ._network import NeuralNet
from .losses import (Loss, SquareLoss, LogLoss, HingeLoss)
from .target_encoders import (OneOfNTargetEncoder, CopyTargetEncoder)
from .optimizers import (
    SGDOptimizer,
    AdagradOptimizer,
    RMSPropOptimizer,
    AdadeltaOptimizer,
    AdamOptimizer,
    get_optimizer
)
from ._learner import (
    NeuralNetLearner,
    ClassificationNeuralNetLearner,
    RegressionNeuralNetLearner
)
from ._models import (
    ClassificationNeuralNetModel,
    RegressionNeuralNetModel,
    ProbabilityPrediction
)

__all__ = [
    'Layer',
    'InputLayer',
    'DenseLayer',
    'ActivationLayer',
    'DropoutLayer',
    'BatchNormalizationLayer',
    'SoftMaxLayer',
    'SvmLayer',
    'SquaredErrorRegressionLayer',
    'ClassificationLayer',
    'RegressionLayer',
    'WeightsAndBiases',
    'ParametersAndGradients',
    'ConvLayer',
    'MaxPool2DLayer',
    'get_filter_grid_length',
    'NeuralNet',
    'Loss',
    'SquareLoss',
    'LogLoss',
    'HingeLoss',
    'OneOfNTargetEncoder',
    'CopyTargetEncoder',
    'SGDOptimizer',
    'AdagradOptimizer',
    'RMSPropOptimizer',
    'AdadeltaOptimizer',
    'AdamOptimizer',
    'get_optimizer',
    'NeuralNetLearner',
    'ClassificationNeuralNetLearner',
    'RegressionNeuralNetLearner',
    'ClassificationNeuralNetModel',
    'RegressionNeuralNetModel',
    'ProbabilityPrediction'
]
