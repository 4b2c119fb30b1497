"""
File Validation Module

Uploaded files are accepted as plain text only (.txt, .md, .markdown).

Checks, in order:
1. Size limit (prevent DoS)
2. Extension whitelist
3. UTF-8 decoding (a leading BOM is stripped)

Each failure raises a specific IngestionError subclass. The indexing service
records it against that one file and carries on with the rest of the batch.
"""

import codecs
from pathlib import Path

from .errors import DocumentDecodeError, DocumentTooLarge, UnsupportedFileType


class FileValidator:
    """
    Extension + encoding validation for uploaded documents.

    Args:
        max_file_size: Maximum accepted file size in bytes
    """

    TEXT_FORMATS = {".txt", ".md", ".markdown"}

    MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB

    def __init__(self, max_file_size: int = MAX_FILE_SIZE):
        self.max_file_size = max_file_size

    @property
    def supported_extensions(self) -> set[str]:
        return set(self.TEXT_FORMATS)

    def validate(self, filename: str, content: bytes) -> str:
        """
        Validate an uploaded file and return its text.

        Args:
            filename: Original filename with extension
            content: File content as bytes

        Returns:
            Decoded text content

        Raises:
            DocumentTooLarge: content exceeds max_file_size
            UnsupportedFileType: missing or non-whitelisted extension
            DocumentDecodeError: content is not valid UTF-8
        """
        if len(content) > self.max_file_size:
            raise DocumentTooLarge(
                f"File '{filename}' is too large ({len(content) / 1024 / 1024:.1f}MB). "
                f"Maximum allowed: {self.max_file_size / 1024 / 1024:.1f}MB."
            )

        ext = Path(filename).suffix.lower()
        if ext not in self.TEXT_FORMATS:
            shown = f"'{ext}'" if ext else "(none)"
            raise UnsupportedFileType(
                f"Unsupported file type {shown} for '{filename}'. "
                f"Only {', '.join(sorted(self.TEXT_FORMATS))} files are allowed"
            )

        if content.startswith(codecs.BOM_UTF8):
            content = content[len(codecs.BOM_UTF8):]

        try:
            return content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DocumentDecodeError(
                f"File '{filename}' is not valid UTF-8 text "
                f"(byte position {e.start}: {e.reason})"
            )
