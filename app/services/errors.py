from fastapi import status


class ServiceError(Exception):
    """Base class for errors whose message is safe to show to the client."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidValueError(ServiceError):
    pass


class InvalidFileTypeError(InvalidValueError):
    pass


class FileTooLargeError(InvalidValueError):
    pass


class TooManyFilesError(InvalidValueError):
    pass


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class QuotaExceededError(ServiceError):
    pass
