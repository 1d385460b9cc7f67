# errors.py


class VideoWorkflowError(Exception):
    """Base class for every error the editor turns into a displayed message."""

    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field


class LocalValidationError(VideoWorkflowError):
    """Blank, oversized, wrong-type or unparseable input. Never reaches the network."""


class RemoteNotFound(VideoWorkflowError):
    pass


class RemoteValidationFailure(VideoWorkflowError):
    pass


class UploadFailure(VideoWorkflowError):
    pass


class DuplicateConflict(VideoWorkflowError):
    pass


class InvariantViolation(VideoWorkflowError):
    """An upload entry reached payload assembly without an uploaded video ID."""


class BackendError(Exception):
    """Raised when a backend API call fails.

    `status` is the HTTP status code (None for transport errors) and
    `payload` the decoded JSON body when there was one.
    """

    def __init__(self, message, status=None, payload=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload or {}

    @property
    def server_error(self):
        error = self.payload.get("error") if isinstance(self.payload, dict) else None
        return error or None
