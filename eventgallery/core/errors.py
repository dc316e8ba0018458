class GalleryError(Exception):
    """Base for errors surfaced to callers of the catalog/moderation core."""

    kind = "Error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class NotFoundError(GalleryError):
    kind = "NotFound"
    status_code = 404


class ValidationError(GalleryError):
    kind = "ValidationError"
    status_code = 400


class StorageError(GalleryError):
    kind = "IOError"
    status_code = 500


class ArtifactError(GalleryError):
    """A derived artifact could not be produced; callers fall back to the original."""

    kind = "DegradedArtifact"


def error_kind(exc: BaseException) -> str:
    if isinstance(exc, GalleryError):
        return exc.kind
    if isinstance(exc, FileNotFoundError):
        return NotFoundError.kind
    if isinstance(exc, OSError):
        return StorageError.kind
    return type(exc).__name__
