class PhotoShareError(Exception):
    """Base class for errors the HTTP layer turns into a status code."""
    status_code = 500
    default_message = "Sorry, an error has occurred"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class NotFound(PhotoShareError):
    status_code = 404
    default_message = "Not found"


class Unauthorized(PhotoShareError):
    status_code = 401
    default_message = "You must be logged in"


class Forbidden(PhotoShareError):
    status_code = 403
    default_message = "You are not allowed to do this"


class Conflict(PhotoShareError):
    status_code = 409
    default_message = "Conflict"


class ServerError(PhotoShareError):
    """Unexpected failure. The message is for the log, never for the client."""
    status_code = 500


class AuthenticationFailed(Unauthorized):
    default_message = "Authentication failed"


class AlreadyVoted(Conflict):
    default_message = "You have already voted on this photo"
