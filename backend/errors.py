"""
Error taxonomy shared by the store, the model gateway and the HTTP layer.

Every error carries the HTTP status it maps to; server.py turns them into
``{"error": message}`` responses.
"""


class VoiceTodoError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(VoiceTodoError):
    status_code = 401
    default_message = "Unauthorized"


class NotFound(VoiceTodoError):
    status_code = 404
    default_message = "Not found"


class InvalidInput(VoiceTodoError):
    status_code = 400
    default_message = "Invalid request"


class UpstreamFailure(VoiceTodoError):
    """Transcription or extraction model call failed."""
    status_code = 500
    default_message = "Failed to process audio"


class UpstreamAuthFailure(UpstreamFailure):
    status_code = 401
    default_message = "OpenAI API key is invalid or missing"


class InvalidUpstreamResponse(UpstreamFailure):
    """The language model answered with something other than a task array."""
    default_message = "Failed to parse task data"


class StoreFailure(VoiceTodoError):
    status_code = 500
    default_message = "Store operation failed"
