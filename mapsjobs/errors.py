"""Exceptions raised by the job store and service."""


class NotFoundError(LookupError):
    """A requested job or file does not exist."""

    def __init__(self, message: str = "not found") -> None:
        super().__init__(message)


class AlreadyExistsError(Exception):
    """A job with the same identifier is already stored."""

    def __init__(self, message: str = "already exists") -> None:
        super().__init__(message)


class ValidationError(ValueError):
    """A job or its data failed validation."""


class InvalidFileNameError(ValueError):
    """A job identifier cannot be used safely as a file name."""

    def __init__(self, message: str = "invalid file name") -> None:
        super().__init__(message)