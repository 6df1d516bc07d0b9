class UploadError(Exception):
    """Base class for failures raised while handling an asset upload or read.

    ``status_code`` is the HTTP status the API answers with. Client errors
    (4xx) expose the exception text; server faults (5xx) expose only
    ``public_message`` so paths, tool output and credentials stay in the logs.
    """

    status_code: int = 500
    public_message: str = "Upload failed"


class InvalidUploadError(UploadError):
    """The request itself is unusable: bad media type, missing form part."""

    status_code = 400
    public_message = "Invalid upload"


class UploadTooLargeError(UploadError):
    status_code = 413
    public_message = "Upload too large"


class VideoOwnershipError(UploadError):
    status_code = 403
    public_message = "Video does not belong to user"


class StorageFaultError(UploadError):
    """Local disk or object storage failed."""

    status_code = 500
    public_message = "Could not store upload"


class InvalidObjectReferenceError(StorageFaultError):
    public_message = "Stored media reference is invalid"


class ProcessingFaultError(UploadError):
    """ffmpeg/ffprobe failed or produced output that cannot be used."""

    status_code = 500
    public_message = "Could not process video"
