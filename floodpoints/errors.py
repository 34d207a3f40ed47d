# floodpoints/errors.py


class FloodPointsError(Exception):
    """Base class for errors the CLIs report as [FATAL]."""


class ConfigError(FloodPointsError):
    pass


class AOIError(FloodPointsError):
    pass


class InsufficientDataError(FloodPointsError):
    """A time window (or the AOI) has no imagery to composite."""
