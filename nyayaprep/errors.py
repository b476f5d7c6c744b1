class NyayaPrepError(Exception):
    """Base class for rejected operations."""


class InvalidInputError(NyayaPrepError):
    """Malformed input, rejected before any store mutation."""


class NotFoundError(NyayaPrepError):
    """A write referenced a record that does not exist."""


class PermissionDeniedError(NyayaPrepError):
    """The acting user lacks the role the operation needs."""
