"""
Asset management utilities for appstore-connect-upload.

This module provides high-level functions for uploading many assets,
replacing existing ones and summarizing the outcome.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from .client import AppStoreConnectAPI
from .exceptions import AppStoreConnectError, UploadFailedError
from .utils import format_bytes, validate_resource_id

logger = logging.getLogger(__name__)


class AssetManager:
    """
    High-level asset manager for App Store Connect uploads.

    This class provides convenient methods for uploading batches of
    screenshots and achievement images with per-file error reporting.
    """

    def __init__(self, api: AppStoreConnectAPI):
        """Initialize with an API client."""
        self.api = api

    def upload_screenshots(
        self,
        screenshot_set_id: str,
        file_paths: List[Union[str, Path]],
        continue_on_error: bool = True,
    ) -> Dict[str, Dict[str, Any]]:
        """
        Upload several screenshots into one screenshot set.

        Args:
            screenshot_set_id: ID of the target screenshot set
            file_paths: Image files to upload, in display order
            continue_on_error: Whether to keep going after a failed file

        Returns:
            Dictionary mapping each file path to its result. Successful
            entries carry the committed resource ID, failed ones the error.
        """
        screenshot_set_id = validate_resource_id(screenshot_set_id, "Screenshot set")
        results: Dict[str, Dict[str, Any]] = {}

        for file_path in file_paths:
            key = str(file_path)
            try:
                committed = self.api.upload_screenshot(screenshot_set_id, file_path)
                results[key] = self._success(file_path, committed)
            except AppStoreConnectError as e:
                logger.error(f"upload_screenshots: Failed to upload {key}: {e}")
                results[key] = self._failure(file_path, e)
                if not continue_on_error:
                    break

        return results

    def replace_achievement_image(
        self, localization_id: str, file_path: Union[str, Path]
    ) -> Dict[str, Any]:
        """
        Replace the image of an achievement localization.

        An existing image is deleted first, since a localization holds
        at most one image.

        Returns:
            Result dictionary in the same shape as upload_screenshots entries
        """
        localization_id = validate_resource_id(localization_id, "Localization")

        existing = self.api.get_achievement_localization_image(localization_id)
        if existing:
            image_id = existing["data"]["id"]
            logger.info(f"replace_achievement_image: Deleting existing image {image_id}")
            if not self.api.delete_achievement_image(image_id):
                raise AppStoreConnectError(
                    f"Could not delete existing image {image_id} "
                    f"for localization {localization_id}"
                )

        try:
            committed = self.api.upload_achievement_image(localization_id, file_path)
        except AppStoreConnectError as e:
            logger.error(
                f"replace_achievement_image: Failed to upload {file_path}: {e}"
            )
            return self._failure(file_path, e)

        return self._success(file_path, committed)

    def summarize_results(self, results: Dict[str, Dict[str, Any]]) -> pd.DataFrame:
        """
        Tabulate batch upload results.

        Args:
            results: Output of upload_screenshots

        Returns:
            DataFrame with one row per file, sorted with failures first
        """
        columns = ["file", "succeeded", "resource_id", "size", "failed_parts", "error"]
        if not results:
            return pd.DataFrame(columns=columns)

        rows = []
        for file_path, result in results.items():
            rows.append(
                {
                    "file": file_path,
                    "succeeded": result.get("succeeded", False),
                    "resource_id": result.get("resource_id"),
                    "size": result.get("size"),
                    "failed_parts": result.get("failed_parts", 0),
                    "error": result.get("error"),
                }
            )

        df = pd.DataFrame(rows, columns=columns)
        return df.sort_values("succeeded", kind="stable").reset_index(drop=True)

    def _success(
        self, file_path: Union[str, Path], committed: Dict[str, Any]
    ) -> Dict[str, Any]:
        data = committed.get("data", {}) if committed else {}
        return {
            "succeeded": True,
            "resource_id": data.get("id"),
            "size": self._size(file_path),
            "failed_parts": 0,
            "error": None,
        }

    def _failure(
        self, file_path: Union[str, Path], error: AppStoreConnectError
    ) -> Dict[str, Any]:
        failed_parts = len(error.errors) if isinstance(error, UploadFailedError) else 0
        return {
            "succeeded": False,
            "resource_id": None,
            "size": self._size(file_path),
            "failed_parts": failed_parts,
            "error": str(error),
        }

    def _size(self, file_path: Union[str, Path]) -> Optional[str]:
        path = Path(file_path)
        if not path.is_file():
            return None
        return format_bytes(path.stat().st_size)


def create_asset_manager(
    key_id: str, issuer_id: str, private_key_path: str
) -> AssetManager:
    """
    Convenience function to create an AssetManager with API client.

    Args:
        key_id: App Store Connect API key ID
        issuer_id: App Store Connect API issuer ID
        private_key_path: Path to private key file

    Returns:
        Configured AssetManager instance
    """
    api = AppStoreConnectAPI(
        key_id=key_id,
        issuer_id=issuer_id,
        private_key_path=private_key_path,
    )

    return AssetManager(api)
