"""
appstore-connect-upload

A Python client for uploading assets to the Apple App Store Connect API,
sending every part of a reserved asset concurrently.
"""

from .client import AppStoreConnectAPI
from .assets import AssetManager, create_asset_manager
from .operations import UploadOperation, UploadOperationHeader, parse_upload_operations
from .uploader import AssetUploader, UploadResult
from .exceptions import (
    AppStoreConnectError,
    AuthenticationError,
    RateLimitError,
    ValidationError,
    NotFoundError,
    PermissionError,
    UploadError,
    MissingChunkBoundsError,
    MissingUploadDestinationError,
    InvalidUploadRequestError,
    ChunkReadError,
    UploadTransportError,
    UploadResponseError,
    UploadCancelledError,
    UploadOperationError,
    UploadFailedError,
)
from . import utils

__version__ = "1.1.0"
__author__ = "Chris Bick"
__email__ = "chris@bickster.com"

__all__ = [
    "AppStoreConnectAPI",
    "AssetManager",
    "AssetUploader",
    "UploadOperation",
    "UploadOperationHeader",
    "UploadResult",
    "create_asset_manager",
    "parse_upload_operations",
    "AppStoreConnectError",
    "AuthenticationError",
    "RateLimitError",
    "ValidationError",
    "NotFoundError",
    "PermissionError",
    "UploadError",
    "MissingChunkBoundsError",
    "MissingUploadDestinationError",
    "InvalidUploadRequestError",
    "ChunkReadError",
    "UploadTransportError",
    "UploadResponseError",
    "UploadCancelledError",
    "UploadOperationError",
    "UploadFailedError",
    "utils",
]
