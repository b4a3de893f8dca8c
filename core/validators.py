"""
Input validation utilities for uploads and identifiers.
"""
import os
from pathlib import Path
from typing import Tuple, Optional


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename to prevent path traversal attacks.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename safe for use
    """
    if not filename:
        raise ValueError("Filename cannot be empty")

    # Remove directory separators and path components
    filename = os.path.basename(filename.replace("\\", "/"))

    # Remove dangerous characters (keep alphanumeric, dots, dashes, underscores)
    safe_chars = []
    for char in filename:
        if char.isalnum() or char in "._-":
            safe_chars.append(char)
        else:
            safe_chars.append("_")  # Replace dangerous chars with underscore

    sanitized = "".join(safe_chars)

    # Limit length
    if len(sanitized) > 255:
        sanitized = sanitized[:255]

    # Ensure it's not empty after sanitization
    if not sanitized or sanitized.strip(".") == "":
        raise ValueError("Filename became empty after sanitization")

    return sanitized


def file_extension(filename: Optional[str]) -> str:
    """Lower-cased extension without the dot, or "" when there is none."""
    if not filename:
        return ""
    return Path(filename).suffix.lower().lstrip(".")


def detect_file_type(content_type: Optional[str]) -> str:
    """
    Map a MIME type onto the catalog's file kinds.

    video/* -> "video", image/* -> "image", application/pdf -> "pdf",
    anything else (including a missing type) -> "other".
    """
    mime = (content_type or "").strip().lower()
    if mime.startswith("video/"):
        return "video"
    if mime.startswith("image/"):
        return "image"
    if mime == "application/pdf":
        return "pdf"
    return "other"


def validate_file_size(file_size: int, max_size_bytes: int) -> Tuple[bool, Optional[str]]:
    """
    Validate file size.

    Args:
        file_size: File size in bytes
        max_size_bytes: Maximum allowed size in bytes

    Returns:
        Tuple of (is_valid, error_message)
    """
    if file_size <= 0:
        return False, "File is empty"

    if file_size > max_size_bytes:
        max_size_mb = max_size_bytes / (1024 * 1024)
        actual_size_mb = file_size / (1024 * 1024)
        return False, f"File too large: {actual_size_mb:.2f}MB (max: {max_size_mb:.2f}MB)"

    return True, None

