class DealEngineError(Exception):
    """Base class for errors raised by the valuation engine."""


class ConfigurationError(DealEngineError):
    """Thesis or multiple configuration is internally inconsistent."""
