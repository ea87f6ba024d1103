class ConfigurationError(ValueError):
    """
    Raised when a network or learner is configured in a way that can never train:
    wrong output layer for the learner, inconsistent layer shapes, unknown names.
    Raised before any data is touched.
    """


class NotApplicableError(NotImplementedError):
    """
    Raised when an operation is requested from a layer that does not support it,
    e.g. parameters from a pooling layer.
    """
