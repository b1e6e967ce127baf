class AppException(Exception):
    """Base application exception."""

    pass


class StorageError(AppException):
    """Storage operation error exception."""

    pass
