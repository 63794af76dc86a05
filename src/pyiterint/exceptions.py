"""Exceptions raised by PyIterInt.

All errors are raised synchronously at the call that detected them and are never retried
internally. Every exception derives from [`IteratedIntegralError`][pyiterint.exceptions.IteratedIntegralError]
and additionally from the builtin exception that matches its meaning, so that callers can catch
either.

Classes:
    IteratedIntegralError: Common base class.
    InvalidParameterError: Non-positive step size or tolerance, negative number of terms.
    ShapeError: Array arguments of incompatible shape.
    NumericDomainError: Special function or square root evaluated outside its domain.
    WorkspaceInUseError: Concurrent use of a single-owner workspace.
"""  # noqa: E501


# ==================================================================================================
class IteratedIntegralError(Exception):
    """Base class for all errors raised by PyIterInt."""


class InvalidParameterError(IteratedIntegralError, ValueError):
    """Scalar parameter outside its admissible range."""


class ShapeError(IteratedIntegralError, ValueError):
    """Array argument with a shape that does not fit the requested operation."""


class NumericDomainError(IteratedIntegralError, ArithmeticError):
    """Numerical evaluation outside the domain of the underlying function."""


class WorkspaceInUseError(IteratedIntegralError, RuntimeError):
    """Workspace is already held by another in-flight call."""
