"""
Utility functions for appstore-connect-upload.

This module provides helper functions for common operations like
checksums, file inspection and validation of upload operations.
"""

import hashlib
from pathlib import Path
from typing import List, Union

from .exceptions import ValidationError
from .operations import UploadOperation

CHECKSUM_BLOCK_SIZE = 64 * 1024


def validate_resource_id(resource_id: str, kind: str = "Resource") -> str:
    """
    Validate an App Store Connect resource ID.

    Args:
        resource_id: The ID to validate
        kind: Human readable resource name used in error messages

    Returns:
        The validated ID as a string

    Raises:
        ValidationError: If the ID is empty or contains whitespace
    """
    if not resource_id:
        raise ValidationError(f"{kind} ID cannot be empty")

    resource_id_str = str(resource_id).strip()

    if not resource_id_str or any(c.isspace() for c in resource_id_str):
        raise ValidationError(f"Invalid {kind} ID: {resource_id!r}")

    return resource_id_str


def validate_file_path(file_path: Union[str, Path]) -> Path:
    """
    Check that a file exists and is not empty.

    Raises:
        ValidationError: If the path is missing, not a file, or empty
    """
    if not file_path:
        raise ValidationError("File path cannot be empty")

    path = Path(file_path)
    if not path.is_file():
        raise ValidationError(f"File not found: {file_path}")

    if path.stat().st_size == 0:
        raise ValidationError(f"File is empty: {file_path}")

    return path


def file_checksum(file_path: Union[str, Path]) -> str:
    """
    Compute the MD5 checksum App Store Connect expects when committing an asset.

    Args:
        file_path: Path to the uploaded file

    Returns:
        Hex encoded MD5 digest
    """
    digest = hashlib.md5()
    with open(file_path, "rb") as f:
        for block in iter(lambda: f.read(CHECKSUM_BLOCK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


def validate_upload_operations(
    operations: List[UploadOperation], file_size: int
) -> List[UploadOperation]:
    """
    Validate that upload operations describe distinct windows of a file.

    Args:
        operations: Operations from a reservation response
        file_size: Size of the local file in bytes

    Returns:
        The operations, unchanged

    Raises:
        ValidationError: If an operation is incomplete, falls outside the
            file, or overlaps another operation
    """
    windows = []
    for op in operations:
        if op.offset is None or op.length is None:
            raise ValidationError(f"Upload operation has no bounds: {op}")
        if op.method is None or op.url is None:
            raise ValidationError(f"Upload operation has no destination: {op}")
        if op.offset < 0 or op.length < 0:
            raise ValidationError(f"Upload operation has negative bounds: {op}")
        if op.offset + op.length > file_size:
            raise ValidationError(
                f"Upload operation {op} exceeds file size of {file_size} bytes"
            )
        windows.append((op.offset, op.offset + op.length, op))

    windows.sort(key=lambda w: w[0])
    for (_, previous_end, previous), (start, _, op) in zip(windows, windows[1:]):
        if start < previous_end:
            raise ValidationError(f"Upload operations overlap: {previous} and {op}")

    return operations


def format_bytes(size: int) -> str:
    """
    Format a byte count for display.

    Args:
        size: Number of bytes

    Returns:
        Human readable size such as '1.5 MB'
    """
    value = float(size)
    for unit in ["B", "KB", "MB"]:
        if value < 1024:
            return f"{int(value)} B" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"
