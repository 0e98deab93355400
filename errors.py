"""
Domain errors raised by the admin services.

The HTTP layer renders every AdminError with its status_code, so services can
raise them without knowing about FastAPI.
"""


class AdminError(Exception):
    status_code = 500
    message = "An unexpected error occurred"

    def __init__(self, detail=None):
        self.detail = detail if detail is not None else self.message
        super().__init__(self.detail)


class ValidationFailed(AdminError):
    status_code = 400
    message = "Validation error"


class NotFoundError(AdminError):
    status_code = 404
    message = "Resource not found"


class ConflictError(AdminError):
    status_code = 409
    message = "Document was modified by another session"


class UpdateInProgress(AdminError):
    status_code = 409
    message = "Another update for this record is already in progress"


class UpstreamError(AdminError):
    status_code = 502
    message = "Upstream service failed"
