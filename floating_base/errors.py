"""Exceptions raised by the floating base model."""


class FloatingBaseModelError(Exception):
    """Base class of every error raised by this package."""


class InvalidConfiguration(FloatingBaseModelError, ValueError):
    """Model info counts or contact names are invalid."""


class DimensionMismatch(FloatingBaseModelError, ValueError):
    """A vector or matrix does not have the size dictated by the model info."""


class IndexOutOfRange(FloatingBaseModelError, IndexError):
    """A contact index is outside the declared range."""


class CompilationError(FloatingBaseModelError, RuntimeError):
    """Recording, compiling or storing the flow map failed."""


class ArtifactLoadError(FloatingBaseModelError, RuntimeError):
    """A cached flow map artifact is missing, corrupt or incompatible."""
