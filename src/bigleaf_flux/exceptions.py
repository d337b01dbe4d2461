"""Exceptions raised by whole-call failures of the surface-layer calculations.

Row-level problems (missing or non-finite inputs, degenerate intermediate
values) never raise; they yield ``pandas.NA`` at that row.
"""


class BigleafError(Exception):
    """Base class for all errors raised by this package"""


class ConfigurationError(BigleafError, ValueError):
    """The requested combination of inputs cannot be resolved"""


class InsufficientDataError(BigleafError, ValueError):
    """Too few valid rows for a regression over the observation series"""
