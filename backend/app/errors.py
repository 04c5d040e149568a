"""
Error kinds raised by the sync core.

Routers never build error responses by hand: `main.py` maps every AppError to
`{"error": message}` with the class status code.
"""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = 400


class AuthError(AppError):
    status_code = 401


class NotFoundError(AppError):
    status_code = 404


class InternalError(AppError):
    status_code = 500


class BackendError(Exception):
    """A durable-store call failed. Carried inside BackendResult, not raised to clients."""

    def __init__(self, operation: str, collection: str, cause: str):
        super().__init__(f"{operation} {collection}: {cause}")
        self.operation = operation
        self.collection = collection
        self.cause = cause
