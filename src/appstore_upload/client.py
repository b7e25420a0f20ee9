"""
Apple App Store Connect API client for asset uploads.

This module provides a client for reserving, uploading and committing
App Store Connect assets such as app screenshots and Game Center
achievement images.
"""

import jwt
import requests
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterable, List, Optional, Union
import threading
from ratelimit import limits, sleep_and_retry
import logging

from .exceptions import (
    AppStoreConnectError,
    AuthenticationError,
    RateLimitError,
    ValidationError,
    NotFoundError,
    PermissionError,
)
from .operations import UploadOperation, parse_upload_operations
from .uploader import AssetUploader, UploadResult
from .utils import (
    file_checksum,
    validate_file_path,
    validate_resource_id,
    validate_upload_operations,
)

logger = logging.getLogger(__name__)


class AppStoreConnectAPI:
    """
    Apple App Store Connect API client.

    Reserves assets, uploads their parts and commits them through
    Apple's App Store Connect API.

    Args:
        key_id: Your App Store Connect API key ID
        issuer_id: Your App Store Connect API issuer ID
        private_key_path: Path to your .p8 private key file
        uploader: Optional AssetUploader used for the binary parts
    """

    BASE_URL = "https://api.appstoreconnect.apple.com/v1"
    REQUEST_TIMEOUT = 30

    def __init__(
        self,
        key_id: str,
        issuer_id: str,
        private_key_path: Union[str, Path],
        uploader: Optional[AssetUploader] = None,
    ):
        """Initialize the App Store Connect API client."""
        self.key_id = key_id
        self.issuer_id = issuer_id
        self.private_key_path = Path(private_key_path)
        self.uploader = uploader or AssetUploader()
        self._token: Optional[str] = None
        self._token_expiry: Optional[int] = None

        # Validate required parameters
        if not all([key_id, issuer_id, private_key_path]):
            raise ValidationError("Missing required authentication parameters")

        if not self.private_key_path.exists():
            raise ValidationError(f"Private key file not found: {private_key_path}")

    def _load_private_key(self) -> str:
        """Load the private key from file."""
        try:
            with open(self.private_key_path, "r") as f:
                return f.read()
        except IOError as e:
            raise AuthenticationError(f"Failed to load private key: {e}")

    def _generate_token(self) -> str:
        """Generate a JWT token for App Store Connect API."""
        current_time = int(datetime.now(timezone.utc).timestamp())

        if self._token and self._token_expiry and current_time < self._token_expiry:
            return self._token

        try:
            private_key = self._load_private_key()
        except Exception as e:
            raise AuthenticationError(f"Failed to load private key: {e}")

        # Token expires in 20 minutes (max allowed by Apple)
        expiry = current_time + 1200

        payload = {
            "iss": self.issuer_id,
            "exp": expiry,
            "aud": "appstoreconnect-v1",
        }

        headers = {"alg": "ES256", "kid": self.key_id, "typ": "JWT"}

        try:
            self._token = jwt.encode(
                payload, private_key, algorithm="ES256", headers=headers
            )
        except Exception as e:
            raise AuthenticationError(f"Failed to generate JWT token: {e}")

        self._token_expiry = expiry - 60  # Refresh 1 minute before expiry
        return self._token

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests."""
        token = self._generate_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _make_request_raw(
        self,
        method: str = "GET",
        endpoint: Optional[str] = None,
        params: Optional[Dict] = None,
        data: Optional[Dict] = None,
    ) -> requests.Response:
        """Make a request to the API and map error statuses to exceptions."""
        if endpoint is None:
            raise ValidationError("An endpoint must be provided")

        url = f"{self.BASE_URL}{endpoint}"
        headers = self._get_headers()

        logger.info(f"_make_request: {method} {url}")
        if params:
            logger.info(f"_make_request: params={params}")

        try:
            response = requests.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=data,
                timeout=self.REQUEST_TIMEOUT,
            )
            logger.info(
                f"_make_request: Response received - status={response.status_code}"
            )
        except requests.exceptions.Timeout as e:
            logger.error(
                f"_make_request: Request timed out after {self.REQUEST_TIMEOUT}s: {e}"
            )
            raise AppStoreConnectError(f"Request failed: {e}")
        except requests.exceptions.RequestException as e:
            logger.error(f"_make_request: Request failed: {e}")
            raise AppStoreConnectError(f"Request failed: {e}")

        # Handle different HTTP status codes
        if response.status_code == 401:
            raise AuthenticationError("Authentication failed - check credentials")
        elif response.status_code == 403:
            raise PermissionError("Insufficient permissions for this operation")
        elif response.status_code == 404:
            raise NotFoundError("Requested resource not found")
        elif response.status_code == 429:
            raise RateLimitError("Rate limit exceeded")
        elif response.status_code >= 400:
            try:
                error_data = response.json()
                error_msg = error_data.get("errors", [{}])[0].get(
                    "detail", response.text
                )
            except Exception:
                error_msg = response.text
            logger.error(f"API Error {response.status_code}: {error_msg}")
            raise AppStoreConnectError(f"API Error {response.status_code}: {error_msg}")

        return response

    @sleep_and_retry
    @limits(calls=3500, period=3600)  # Apple's rate limit
    def _make_request(self, *args, **kwargs) -> requests.Response:
        """Rate-limited wrapper for _make_request_raw."""
        return self._make_request_raw(*args, **kwargs)

    # ===== ASSET RESERVATION AND COMMIT =====

    def _reserve_asset(
        self,
        resource_type: str,
        relationship: str,
        related_type: str,
        related_id: str,
        file_name: str,
        file_size: int,
    ) -> Dict[str, Any]:
        """Create an asset resource and return the reservation response."""
        if not file_name:
            raise ValidationError("File name cannot be empty")
        if file_size <= 0:
            raise ValidationError(f"File size must be positive, got {file_size}")

        data = {
            "data": {
                "type": resource_type,
                "attributes": {"fileName": file_name, "fileSize": file_size},
                "relationships": {
                    relationship: {"data": {"type": related_type, "id": related_id}}
                },
            }
        }
        response = self._make_request(
            method="POST", endpoint=f"/{resource_type}", data=data
        )
        if response.status_code != 201:
            raise AppStoreConnectError(
                f"Unexpected status {response.status_code} reserving {resource_type}"
            )
        return response.json()

    def _commit_asset(
        self, resource_type: str, resource_id: str, checksum: str
    ) -> Dict[str, Any]:
        """Mark an uploaded asset as complete so Apple starts processing it."""
        data = {
            "data": {
                "type": resource_type,
                "id": resource_id,
                "attributes": {"uploaded": True, "sourceFileChecksum": checksum},
            }
        }
        response = self._make_request(
            method="PATCH", endpoint=f"/{resource_type}/{resource_id}", data=data
        )
        return response.json()

    def _get_asset(self, resource_type: str, resource_id: str) -> Optional[Dict]:
        response = self._make_request(
            method="GET", endpoint=f"/{resource_type}/{resource_id}"
        )
        if response.status_code == 200:
            return response.json()
        return None

    def _delete_asset(self, resource_type: str, resource_id: str) -> bool:
        response = self._make_request(
            method="DELETE", endpoint=f"/{resource_type}/{resource_id}"
        )
        return response.status_code in (200, 204)

    # App Screenshots

    def create_app_screenshot(
        self, screenshot_set_id: str, file_name: str, file_size: int
    ) -> Dict[str, Any]:
        """Reserve a new screenshot in a screenshot set."""
        screenshot_set_id = validate_resource_id(screenshot_set_id, "Screenshot set")
        return self._reserve_asset(
            "appScreenshots",
            "appScreenshotSet",
            "appScreenshotSets",
            screenshot_set_id,
            file_name,
            file_size,
        )

    def get_app_screenshot(self, screenshot_id: str) -> Optional[Dict]:
        """Get a screenshot and its upload and processing state."""
        return self._get_asset(
            "appScreenshots", validate_resource_id(screenshot_id, "Screenshot")
        )

    def commit_app_screenshot(self, screenshot_id: str, checksum: str) -> Dict:
        """Commit a screenshot after all of its parts were uploaded."""
        return self._commit_asset(
            "appScreenshots", validate_resource_id(screenshot_id, "Screenshot"), checksum
        )

    def delete_app_screenshot(self, screenshot_id: str) -> bool:
        return self._delete_asset(
            "appScreenshots", validate_resource_id(screenshot_id, "Screenshot")
        )

    # Game Center Achievement Images

    def create_achievement_image(
        self, localization_id: str, file_name: str, file_size: int
    ) -> Dict[str, Any]:
        """Reserve an image for a Game Center achievement localization."""
        localization_id = validate_resource_id(localization_id, "Localization")
        return self._reserve_asset(
            "gameCenterAchievementImages",
            "gameCenterAchievementLocalization",
            "gameCenterAchievementLocalizations",
            localization_id,
            file_name,
            file_size,
        )

    def get_achievement_image(self, image_id: str) -> Optional[Dict]:
        return self._get_asset(
            "gameCenterAchievementImages", validate_resource_id(image_id, "Image")
        )

    def get_achievement_localization_image(
        self, localization_id: str
    ) -> Optional[Dict]:
        """Get the image attached to an achievement localization, if any."""
        localization_id = validate_resource_id(localization_id, "Localization")
        try:
            response = self._make_request(
                method="GET",
                endpoint=(
                    f"/gameCenterAchievementLocalizations/{localization_id}"
                    "/gameCenterAchievementImage"
                ),
            )
        except NotFoundError:
            return None

        if response.status_code != 200:
            return None

        body = response.json()
        if not body or not body.get("data"):
            return None
        return body

    def commit_achievement_image(self, image_id: str, checksum: str) -> Dict:
        """Commit an achievement image after all of its parts were uploaded."""
        return self._commit_asset(
            "gameCenterAchievementImages",
            validate_resource_id(image_id, "Image"),
            checksum,
        )

    def delete_achievement_image(self, image_id: str) -> bool:
        return self._delete_asset(
            "gameCenterAchievementImages", validate_resource_id(image_id, "Image")
        )

    # ===== UPLOAD METHODS =====

    def get_upload_operations(self, resource: Dict[str, Any]) -> List[UploadOperation]:
        """Get the upload operations from a reservation response."""
        return parse_upload_operations(resource)

    def upload(
        self,
        operations: Iterable[UploadOperation],
        source: BinaryIO,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> UploadResult:
        """
        Upload every part of a reserved asset concurrently.

        Args:
            operations: Upload operations from the reservation response
            source: Open, seekable binary file of the whole asset
            cancel_event: Optional event that aborts the upload when set
            timeout: Optional deadline in seconds for the whole upload

        Returns:
            UploadResult for the asset (always successful)

        Raises:
            UploadFailedError: If any part failed. ``errors`` lists all of
                them, the message is the first one.
        """
        result = self.uploader.upload(
            operations, source, cancel_event=cancel_event, timeout=timeout
        )
        result.raise_for_errors()
        return result

    def _upload_asset(
        self,
        reserve,
        commit,
        related_id: str,
        file_path: Union[str, Path],
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Reserve, upload and commit one asset file."""
        path = validate_file_path(file_path)
        file_size = path.stat().st_size

        reservation = reserve(related_id, path.name, file_size)
        resource_id = reservation["data"]["id"]
        operations = self.get_upload_operations(reservation)
        logger.info(
            f"_upload_asset: Reserved {resource_id} for {path.name} "
            f"({file_size} bytes, {len(operations)} parts)"
        )

        if not operations:
            raise AppStoreConnectError(
                f"No upload operations returned for {path.name} ({resource_id})"
            )
        validate_upload_operations(operations, file_size)

        with open(path, "rb") as f:
            self.upload(operations, f, cancel_event=cancel_event, timeout=timeout)

        checksum = file_checksum(path)
        logger.info(f"_upload_asset: Committing {resource_id} checksum={checksum}")
        return commit(resource_id, checksum)

    def upload_screenshot(
        self,
        screenshot_set_id: str,
        file_path: Union[str, Path],
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Upload a screenshot file into a screenshot set.

        Args:
            screenshot_set_id: ID of the target app screenshot set
            file_path: Path to the image file
            cancel_event: Optional event that aborts the upload when set
            timeout: Optional deadline in seconds for the binary upload

        Returns:
            The committed screenshot resource

        Raises:
            UploadFailedError: If any part failed (the screenshot is not committed)
        """
        return self._upload_asset(
            self.create_app_screenshot,
            self.commit_app_screenshot,
            screenshot_set_id,
            file_path,
            cancel_event=cancel_event,
            timeout=timeout,
        )

    def upload_achievement_image(
        self,
        localization_id: str,
        file_path: Union[str, Path],
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Upload an image for a Game Center achievement localization."""
        return self._upload_asset(
            self.create_achievement_image,
            self.commit_achievement_image,
            localization_id,
            file_path,
            cancel_event=cancel_event,
            timeout=timeout,
        )
