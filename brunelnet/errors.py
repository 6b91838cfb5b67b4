# Copyright (C) 2023-2024 Björn A. Lindqvist <bjourne@gmail.com>

class BrunelError(Exception):
    pass

class ConfigurationError(BrunelError, ValueError):
    """Invalid or inconsistent parameters. Raised before any kernel
    resource is touched."""

class OrderingError(BrunelError, RuntimeError):
    """A kernel or driver call made in the wrong phase, e.g. changing
    the resolution after nodes exist."""

class CapacityWarning(RuntimeWarning):
    """Connection storage outgrew its reservation. Only logged."""
