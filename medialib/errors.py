"""Error taxonomy for the media library.

Business-rule errors (``InvalidImage``, ``AssetInUse``, ...) are meant to be
shown to the caller as-is. Infrastructure errors (``StorageFailure``,
``DecodeError``) carry diagnostic context for the logs and are surfaced as a
generic failure.
"""
from typing import Any, Dict, List, Optional


class MediaLibraryError(Exception):
    code = "media.error"
    http_status = 400
    public_message: Optional[str] = None

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.public_message or self.code)
        self.message = message or self.public_message or self.code
        self.details: Dict[str, Any] = details


class InvalidImage(MediaLibraryError):
    """Bytes are not a decodable raster image (user error)."""
    code = "media.invalid_image"
    public_message = "The file is not a valid image. Please choose another file and try again."


class FileTooLarge(InvalidImage):
    code = "media.too_large"
    http_status = 413

    def __init__(self, max_bytes: int):
        super().__init__(f"The file is larger than {max_bytes // (1024 * 1024)} MB.", max_bytes=max_bytes)
        self.max_bytes = max_bytes


class DecodeError(MediaLibraryError):
    """Bytes looked like an image but could not be read."""
    code = "media.decode_error"
    http_status = 500


class NotPermitted(MediaLibraryError):
    code = "media.not_permitted"
    http_status = 403
    public_message = "You are not allowed to change the media library."


class AssetNotFound(MediaLibraryError):
    code = "media.not_found"
    http_status = 404

    def __init__(self, asset_id: str, message: str = ""):
        super().__init__(message or f"Media asset {asset_id} not found", asset_id=asset_id)
        self.asset_id = asset_id


class SizeSpecNotFound(MediaLibraryError):
    code = "media.size_not_found"
    http_status = 404

    def __init__(self, label: str):
        super().__init__(f"Image size '{label}' not found", label=label)
        self.label = label


class DuplicateSizeSpec(MediaLibraryError):
    code = "media.size_exists"
    http_status = 409

    def __init__(self, label: str):
        super().__init__(f"Image size '{label}' already exists", label=label)
        self.label = label


class AssetInUse(MediaLibraryError):
    code = "media.in_use"
    http_status = 409

    def __init__(self, asset_id: str, usages: List[Any]):
        super().__init__(
            f"Media asset {asset_id} is used by {len(usages)} item(s) and cannot be deleted",
            asset_id=asset_id,
        )
        self.asset_id = asset_id
        self.usages = list(usages)


class SourceUnavailable(MediaLibraryError):
    """External photo source failed (network, timeout, bad payload)."""
    code = "media.source_unavailable"
    http_status = 503
    public_message = "The photo service is unavailable right now. Please try again later."


class StorageFailure(MediaLibraryError):
    code = "media.storage_failure"
    http_status = 500

    def __init__(self, operation: str, path: str, message: str = "", asset_id: Optional[str] = None):
        super().__init__(
            message or f"Storage {operation} failed for {path}",
            operation=operation,
            path=path,
            asset_id=asset_id,
        )
        self.operation = operation
        self.path = path
        self.asset_id = asset_id
