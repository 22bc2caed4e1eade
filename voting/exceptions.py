"""
API error categories
====================

Services raise these; ``voting.api.api_view`` turns them into the JSON
envelope with the matching HTTP status code.
"""


class ApiError(Exception):
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthenticated(ApiError):
    status_code = 401
    default_message = 'Authentication required'


class Forbidden(ApiError):
    status_code = 403
    default_message = 'You do not have permission to perform this action'


class ValidationFailed(ApiError):
    status_code = 400
    default_message = 'Invalid request data'


class NotFound(ApiError):
    status_code = 404
    default_message = 'Resource not found'


class Conflict(ApiError):
    status_code = 409
    default_message = 'Resource already exists'


class InvalidState(ApiError):
    """The target exists but its current state forbids the operation."""

    status_code = 400
    default_message = 'Operation not allowed in the current state'


class ServerError(ApiError):
    status_code = 500
