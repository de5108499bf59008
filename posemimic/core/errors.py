"""Exceptions raised by rig loading and registry construction."""


class RetargetError(RuntimeError):
    """Base class for failures that stop retargeting from starting."""


class EmptyRigError(RetargetError):
    """Raised when a loaded character contains no bones at all."""


class RigLoadError(ValueError):
    """Raised when a rig file cannot be read or parsed."""
