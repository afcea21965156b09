"""
Custom Exceptions for Achelion

Provides specific exception types for rejected control input and bad configuration.
The simulation tick itself has no fatal error conditions.
"""


class AchelionError(Exception):
    """Base exception for all Achelion errors."""
    pass


class ControlError(AchelionError):
    """
    Raised when a control request is rejected.

    Raised before any state is touched, so a rejected request
    never leaves a partial effect behind.
    """
    pass


class UnknownControlAction(ControlError):
    """Raised when the control action name is not recognized."""
    pass


class UnknownPhase(ControlError):
    """Raised when a phase name does not match any phase of the cycle."""
    pass


class UnknownScenario(ControlError):
    """Raised when a scenario id does not match any scripted timeline."""
    pass


class InvalidConfiguration(AchelionError):
    """Raised when configuration is invalid or missing required values."""
    pass
