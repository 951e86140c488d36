from fastapi import status


class AppException(Exception):
    """Base exception for errors that map to an HTTP status at the API boundary."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class BadRequestError(AppException):
    """Exception raised when the request input is invalid."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class UnsupportedTypeError(AppException):
    """Exception raised when an uploaded file's MIME type is not allowed."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "File type not allowed"


class TooLargeError(AppException):
    """Exception raised when an uploaded file exceeds the size ceiling."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "File is too large"


class AuthenticationError(AppException):
    """Exception raised when credentials are missing or invalid."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid or expired token"


class ForbiddenError(AppException):
    """Exception raised when the requestor may not act on a resource."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Permission denied"


class NotFoundError(AppException):
    """Exception raised when a grant, customer or document does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Link expired or not found"


class ExpiredError(AppException):
    """Exception raised when a grant is past its expiry or deactivated."""

    status_code = status.HTTP_410_GONE
    default_detail = "Link expired or not found"


class QuotaExceededError(AppException):
    """Exception raised when a grant's access or file quota is exhausted."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Access limit exceeded"


class StorageError(AppException):
    """
    Exception raised when the object store fails.

    The public detail is always generic; the provider message is kept in
    `reason` for logging only.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Storage service unavailable, please try again"

    def __init__(self, reason: str = "", file_path: str = None, bucket: str = None):
        super().__init__()
        self.reason = reason
        self.file_path = file_path
        self.bucket = bucket
