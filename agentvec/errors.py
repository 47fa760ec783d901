"""Exception hierarchy used throughout the package."""


class AgentVecError(Exception):
    """Base class for all errors raised by the package."""


class CorruptionError(AgentVecError):
    """Stored data is malformed or fails an integrity check."""


class InvalidInputError(AgentVecError, ValueError):
    """An argument supplied by the caller is not acceptable."""


class NotFoundError(AgentVecError, LookupError):
    """A requested item (record, slot, collection) does not exist."""


class DimensionMismatchError(InvalidInputError):
    """A vector's length differs from the expected dimensionality."""

    def __init__(self, expected, got):
        self.expected = expected
        self.got = got
        super().__init__(f"dimension mismatch: expected {expected}, got {got}")


class DimensionsTooLargeError(InvalidInputError):
    """The requested dimensionality exceeds the supported maximum."""

    def __init__(self, max_dimensions, got):
        self.max_dimensions = max_dimensions
        self.got = got
        super().__init__(f"dimensions too large: maximum is {max_dimensions}, got {got}")