"""
Custom exceptions for fm_drone.
"""


class FmDroneError(Exception):
    """Base exception for fm_drone errors."""

    pass


class ValidationError(FmDroneError):
    """Error decoding or validating an algorithm descriptor or config."""

    pass


class EngineError(FmDroneError):
    """Error raised by an audio primitive (bad connect, double start, ...)."""

    pass
