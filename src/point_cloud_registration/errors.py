"""
Registration error types.

All errors derive from ValueError.
"""


class RegistrationError(ValueError):
    """Base class for errors raised by the registration pipeline."""


class PreconditionViolation(RegistrationError):
    """Inputs are inconsistent; raised before any correspondence work."""


class DeviceMismatchError(PreconditionViolation):
    """Point clouds or transform live on different devices."""


class DtypeMismatchError(PreconditionViolation):
    """Point clouds or transform use different numeric precision."""


class IndexNotBuiltError(PreconditionViolation):
    """A nearest-neighbor index was queried before it was built."""


class EmptyCorrespondenceError(RegistrationError):
    """No source point found a target point within the correspondence distance."""


class InsufficientCorrespondenceError(RegistrationError):
    """An estimator received too few (or degenerate) pairs to solve for a transform."""


__all__ = [
    "RegistrationError",
    "PreconditionViolation",
    "DeviceMismatchError",
    "DtypeMismatchError",
    "IndexNotBuiltError",
    "EmptyCorrespondenceError",
    "InsufficientCorrespondenceError",
]
