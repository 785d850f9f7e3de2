"""
Signal Engine Errors

Error taxonomy shared by the indicator library, the pattern detector,
the aggregators and the fusion engine:
- InsufficientDataError: price series too short (fatal)
- InvalidInputError: malformed bar or input (fatal)
- ConfigError: invalid engine configuration (fatal)
- DegradedInputWarning: optional input missing, factor contributes zero (non-fatal)
"""


class SignalEngineError(Exception):
    """Base class for all signal engine errors"""


class InsufficientDataError(SignalEngineError):
    """Raised when the price series is shorter than the minimum lookback"""

    def __init__(self, required: int, received: int):
        self.required = required
        self.received = received
        super().__init__(
            f"Insufficient historical data for analysis: "
            f"{received} bars received, at least {required} required"
        )


class InvalidInputError(SignalEngineError, ValueError):
    """Raised for malformed bars (non-positive prices, unordered dates, ...)"""


class ConfigError(SignalEngineError, ValueError):
    """Raised when the engine configuration is inconsistent"""


class DegradedInputWarning(UserWarning):
    """Emitted when sentiment or fundamentals are missing from an analysis"""
