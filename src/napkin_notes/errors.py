"""Exception types raised by the upload server and its collaborators."""


class UploadServerError(Exception):
    """Base class for every error raised by napkin_notes."""


class CapabilityError(UploadServerError):
    """The platform lacks something the server needs (raw sockets, secure randomness)."""


class NoAvailablePortError(UploadServerError):
    """Every port in the configured range is already taken."""


class InvalidPortRangeError(UploadServerError, ValueError):
    pass


class ServerStateError(UploadServerError):
    """start() called while a session is already active or being torn down."""


class ServerStartError(UploadServerError):
    pass


class UploadParseError(UploadServerError):
    """The request body is not a well-formed multipart/form-data payload."""


class FileTooLargeError(UploadParseError):
    def __init__(self, filename: str, limit: int):
        super().__init__(f"'{filename}' exceeds the {limit} byte upload limit")
        self.filename = filename
        self.limit = limit


class InvalidImageError(UploadServerError, ValueError):
    pass
