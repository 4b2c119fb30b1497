"""Utility functions for the keyword search service"""

import hashlib
import re
from pathlib import Path
from typing import Union

# Index names double as storage keys and URL path segments
INDEX_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def calculate_file_hash(file_path_or_content: Union[str, Path, bytes]) -> str:
    """
    Calculate SHA256 hash of a file or of raw bytes

    Args:
        file_path_or_content: File path (str/Path) or file content (bytes)

    Returns:
        Hexadecimal hash string (64 characters)
    """
    if isinstance(file_path_or_content, bytes):
        content = file_path_or_content
    else:
        path = Path(file_path_or_content)
        with open(path, "rb") as f:
            content = f.read()

    return hashlib.sha256(content).hexdigest()


def is_valid_index_name(name: str) -> bool:
    """
    Check that a name is safe to use as an index name.

    Letters, digits, '.', '_' and '-', starting with a letter or digit,
    at most 128 characters. Rules out path separators and '..'.

    Examples:
        >>> is_valid_index_name("index-3f2a")
        True
        >>> is_valid_index_name("../etc/passwd")
        False
    """
    return bool(name) and INDEX_NAME_PATTERN.fullmatch(name) is not None
