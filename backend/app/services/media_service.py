import io
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError
import structlog

from app.core.exceptions import ReportValidationError

logger = structlog.get_logger()

# Decoder state worth keeping on re-encode; everything else (exif, comments,
# xmp, icc) is dropped
_KEPT_INFO = ("transparency",)


@dataclass(frozen=True)
class ImageUpload:
    """An image as received from a form, before it reaches the blob store."""
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class MediaCleaner:
    """
    Handles image sanitization before upload:
    1. Rejects empty, oversized and non-image uploads, and images whose pixel
       dimensions exceed the limit
    2. Strips metadata (EXIF, GPS) by re-encoding without the info block
    """

    def __init__(self, max_bytes: int, strip_metadata: bool = True, max_pixels: int = 40_000_000):
        self.max_bytes = max_bytes
        self.strip_metadata = strip_metadata
        self.max_pixels = max_pixels

    def check(self, upload: ImageUpload, field: str = "images") -> None:
        if not upload.content:
            raise ReportValidationError(f"{upload.filename or 'Image'} is empty", field=field)
        if len(upload.content) > self.max_bytes:
            raise ReportValidationError(
                f"{upload.filename} exceeds the {self.max_bytes // (1024 * 1024)}MB image limit",
                field=field,
            )
        if upload.content_type and not upload.content_type.startswith("image/"):
            raise ReportValidationError(f"{upload.filename} is not an image", field=field)
        self._check_dimensions(upload, field)

    def _check_dimensions(self, upload: ImageUpload, field: str) -> None:
        # Only the header is read here; pixels are not decoded
        try:
            with Image.open(io.BytesIO(upload.content)) as img:
                width, height = img.size
        except Image.DecompressionBombError:
            raise ReportValidationError(f"{upload.filename} has too many pixels", field=field)
        except (UnidentifiedImageError, OSError, ValueError):
            # Undecodable input is stored as received
            return
        if width * height > self.max_pixels:
            raise ReportValidationError(f"{upload.filename} has too many pixels", field=field)

    def clean(self, upload: ImageUpload) -> ImageUpload:
        if not self.strip_metadata:
            return upload
        cleaned = self._strip_metadata_only(upload.content)
        if cleaned is None:
            return upload
        return ImageUpload(upload.filename, cleaned, upload.content_type)

    @staticmethod
    def _strip_metadata_only(image_bytes: bytes) -> Optional[bytes]:
        """
        Re-encode in the source format without the info block. Mode and
        palette come from the decoded image itself.
        Returns None when Pillow cannot decode or re-encode the bytes; the
        caller keeps the original.
        """
        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                image_format = img.format or "JPEG"
                img.load()
                img.info = {key: img.info[key] for key in _KEPT_INFO if key in img.info}

                params = {"exif": b""}
                if image_format == "JPEG":
                    params["quality"] = "keep"
                elif image_format == "MPO":
                    image_format = "JPEG"

                out_buffer = io.BytesIO()
                img.save(out_buffer, format=image_format, **params)
                return out_buffer.getvalue()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, KeyError) as e:
            logger.warning("metadata_strip_skipped", error=str(e))
            return None
