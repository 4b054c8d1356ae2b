"""
Invocation errors raised by the CompBench engine.

Data gaps (missing market, missing FTE basis) are never raised; they become
exclusion reasons. Policy conditions become result flags. Only problems with
the invocation itself surface as these exceptions.
"""


class EngineError(Exception):
    """Base class for engine invocation errors."""


class InvalidInputError(EngineError):
    """Input is well-typed but unusable, e.g. duplicate provider ids."""


class RunCancelledError(EngineError):
    """The caller cancelled the run between specialties."""


class RunNotFoundError(EngineError):
    """No run is registered under the requested id."""


__all__ = [
    "EngineError",
    "InvalidInputError",
    "RunCancelledError",
    "RunNotFoundError",
]
