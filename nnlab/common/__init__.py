from .errors import ConfigurationError, NotApplicableError

__all__ = ['ConfigurationError', 'NotApplicableError']
