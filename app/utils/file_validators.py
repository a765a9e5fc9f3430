"""
File validation utilities for Achalasia Cardia AI.

Handles validation of uploaded scans including:
- File size limits
- File extension validation
- Image integrity
- MIME type detection
"""

import io
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image

from app.config import settings


class FileValidationError(Exception):
    """Raised when file validation fails."""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR"):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class FileValidator:
    """
    Validates uploaded medical images.

    Ensures files are:
    - Non-empty and within size limits
    - Have an allowed image extension
    - Decode as an image
    """

    # Pillow format name -> MIME type
    FORMAT_MIME_TYPES = {
        "PNG": "image/png",
        "JPEG": "image/jpeg",
        "GIF": "image/gif",
        "BMP": "image/bmp",
        "TIFF": "image/tiff",
        "WEBP": "image/webp",
    }

    def __init__(self):
        self.max_file_size = settings.max_file_size_bytes
        self.image_extensions = settings.image_extensions

    def validate_file_size(self, file_content: bytes, filename: str) -> bool:
        """
        Check if file is non-empty and within size limits.

        Raises:
            FileValidationError: If file is empty or exceeds size limit
        """
        if not file_content:
            raise FileValidationError(
                "No image data provided",
                error_code="EMPTY_FILE"
            )
        if len(file_content) > self.max_file_size:
            raise FileValidationError(
                f"File '{filename}' exceeds maximum size of {settings.max_file_size_mb}MB",
                error_code="FILE_TOO_LARGE"
            )
        return True

    def validate_extension(self, filename: str) -> bool:
        """
        Check if file has an allowed image extension.

        Raises:
            FileValidationError: If extension not allowed
        """
        ext = Path(filename).suffix.lower()
        if ext not in self.image_extensions:
            raise FileValidationError(
                f"File extension '{ext}' not allowed. "
                f"Allowed: {', '.join(self.image_extensions)}",
                error_code="INVALID_EXTENSION"
            )
        return True

    def detect_mime_type(self, file_content: bytes) -> str:
        """
        Detect the MIME type of an image from its content.

        Returns:
            MIME type string, 'application/octet-stream' if unknown
        """
        try:
            with Image.open(io.BytesIO(file_content)) as img:
                fmt = (img.format or "").upper()
        except Exception:
            return self._detect_mime_from_header(file_content)
        return self.FORMAT_MIME_TYPES.get(fmt) or self._detect_mime_from_header(file_content)

    def _detect_mime_from_header(self, content: bytes) -> str:
        """Fallback MIME detection using file signatures."""
        if content[:8] == b'\x89PNG\r\n\x1a\n':
            return 'image/png'
        if content[:2] == b'\xff\xd8':
            return 'image/jpeg'
        if content[:4] == b'GIF8':
            return 'image/gif'
        return 'application/octet-stream'

    def validate_image(
        self,
        file_content: bytes,
        filename: str
    ) -> Tuple[bool, Optional[str]]:
        """
        Validate an uploaded scan.

        Args:
            file_content: Raw image bytes
            filename: Original filename

        Returns:
            Tuple of (is_valid, error_message)
        """
        try:
            self.validate_file_size(file_content, filename)
            self.validate_extension(filename)

            img = Image.open(io.BytesIO(file_content))
            img.verify()

            return True, None

        except FileValidationError as e:
            return False, e.message
        except Exception as e:
            return False, f"Image validation failed: {str(e)}"


# Singleton instance for easy access
file_validator = FileValidator()
