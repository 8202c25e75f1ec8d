"""
Exceptions raised by the indexing and retrieval engine.
"""


class DocragError(Exception):
    """Base exception for all docrag errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class InvalidArgument(DocragError, ValueError):
    """Raised for malformed input detected before any side effect."""


class DimensionMismatch(DocragError, ValueError):
    """Raised when a vector's dimension disagrees with the index configuration."""

    def __init__(self, expected: int, got: int, message: str | None = None):
        self.expected = expected
        self.got = got
        super().__init__(
            message or f"Embedding dimension mismatch: expected {expected}, got {got}"
        )


class CapacityExceeded(DocragError, RuntimeError):
    """Raised when an insertion would push the index past its capacity."""

    def __init__(self, capacity: int, current: int, requested: int):
        self.capacity = capacity
        self.current = current
        self.requested = requested
        super().__init__(
            f"Index capacity exceeded: capacity={capacity}, "
            f"current={current}, requested={requested}"
        )


class ModelError(DocragError, RuntimeError):
    """Raised when an embedding or generation backend is unavailable or fails."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class PromptTooLong(InvalidArgument):
    """Raised when a prompt cannot fit the generator's sequence-length budget."""

    def __init__(self, prompt_tokens: int, max_new_tokens: int, max_sequence_length: int):
        self.prompt_tokens = prompt_tokens
        self.max_new_tokens = max_new_tokens
        self.max_sequence_length = max_sequence_length
        super().__init__(
            f"Prompt too long: {prompt_tokens} prompt tokens + {max_new_tokens} "
            f"new tokens exceeds the sequence length of {max_sequence_length}"
        )


def require_positive_int(name: str, value) -> int:
    """Return ``value`` if it is a positive int (bool excluded), else raise InvalidArgument."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidArgument(f"{name} must be a positive integer, got {value!r}")
    return value


def require_positive_number(name: str, value) -> float:
    """Return ``value`` if it is a positive int or float (bool excluded), else raise InvalidArgument."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise InvalidArgument(f"{name} must be a positive number, got {value!r}")
    return value


def require_non_negative_int(name: str, value) -> int:
    """Return ``value`` if it is an int >= 0 (bool excluded), else raise InvalidArgument."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgument(f"{name} must be an integer >= 0, got {value!r}")
    return value
