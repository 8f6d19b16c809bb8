class RoiCropError(Exception):
    status_code = 500
    message = "Internal error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)

class NoFilesError(RoiCropError):
    status_code = 400
    message = "No files provided"

class ImageNotFound(RoiCropError):
    status_code = 404
    message = "Image not found"

class NoImagesError(RoiCropError):
    status_code = 404
    message = "No images to download"

class ImageDecodeError(RoiCropError):
    """Raised when uploaded bytes cannot be decoded as an image."""
    status_code = 422
    message = "Unsupported image format"

class UpstreamFetchError(RoiCropError):
    status_code = 500
    message = "Failed to fetch image"

class BlobStoreError(RoiCropError):
    status_code = 500
    message = "Blob store operation failed"
