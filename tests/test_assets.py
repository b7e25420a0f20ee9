"""
Tests for the AssetManager batch helpers.
"""

import pytest
import pandas as pd
from unittest.mock import Mock, patch

from appstore_upload import AssetManager, create_asset_manager
from appstore_upload.exceptions import (
    AppStoreConnectError,
    UploadFailedError,
    UploadOperationError,
    UploadResponseError,
    ValidationError,
)
from conftest import make_operation


@pytest.fixture
def screenshots(tmp_path):
    paths = []
    for name in ["home.png", "detail.png", "settings.png"]:
        path = tmp_path / name
        path.write_bytes(b"\x89PNG" + b"\x00" * 2044)
        paths.append(path)
    return paths


def upload_failure():
    op = make_operation(0, 10, "https://upload.example.com/part")
    return UploadFailedError(
        [
            UploadOperationError(op, UploadResponseError(500, "Internal Server Error")),
            UploadOperationError(op, UploadResponseError(500, "Internal Server Error")),
        ]
    )


class TestUploadScreenshots:
    """Test batch screenshot uploads."""

    def test_all_succeed(self, screenshots):
        mock_api = Mock()
        mock_api.upload_screenshot.side_effect = [
            {"data": {"id": f"shot-{i}"}} for i in range(3)
        ]
        manager = AssetManager(mock_api)

        results = manager.upload_screenshots("set-1", screenshots)

        assert [r["resource_id"] for r in results.values()] == ["shot-0", "shot-1", "shot-2"]
        assert all(r["succeeded"] for r in results.values())
        assert results[str(screenshots[0])]["size"] == "2.0 KB"
        mock_api.upload_screenshot.assert_any_call("set-1", screenshots[1])

    def test_continue_on_error(self, screenshots):
        """Test a failed file does not stop the batch."""
        mock_api = Mock()
        mock_api.upload_screenshot.side_effect = [
            {"data": {"id": "shot-0"}},
            upload_failure(),
            {"data": {"id": "shot-2"}},
        ]
        manager = AssetManager(mock_api)

        results = manager.upload_screenshots("set-1", screenshots)

        failed = results[str(screenshots[1])]
        assert failed["succeeded"] is False
        assert failed["failed_parts"] == 2
        assert "500" in failed["error"]
        assert results[str(screenshots[2])]["succeeded"] is True

    def test_stop_on_error(self, screenshots):
        """Test continue_on_error=False stops after the first failure."""
        mock_api = Mock()
        mock_api.upload_screenshot.side_effect = [
            AppStoreConnectError("API Error 409: duplicate"),
            {"data": {"id": "shot-1"}},
        ]
        manager = AssetManager(mock_api)

        results = manager.upload_screenshots("set-1", screenshots, continue_on_error=False)

        assert list(results) == [str(screenshots[0])]
        assert results[str(screenshots[0])]["failed_parts"] == 0
        assert mock_api.upload_screenshot.call_count == 1

    def test_invalid_set_id(self, screenshots):
        with pytest.raises(ValidationError):
            AssetManager(Mock()).upload_screenshots("", screenshots)


class TestReplaceAchievementImage:
    """Test replacing achievement images."""

    def test_replaces_existing_image(self, screenshots):
        mock_api = Mock()
        mock_api.get_achievement_localization_image.return_value = {
            "data": {"id": "old-image"}
        }
        mock_api.delete_achievement_image.return_value = True
        mock_api.upload_achievement_image.return_value = {"data": {"id": "new-image"}}

        result = AssetManager(mock_api).replace_achievement_image("loc-1", screenshots[0])

        mock_api.delete_achievement_image.assert_called_once_with("old-image")
        mock_api.upload_achievement_image.assert_called_once_with("loc-1", screenshots[0])
        assert result["resource_id"] == "new-image"

    def test_no_existing_image(self, screenshots):
        mock_api = Mock()
        mock_api.get_achievement_localization_image.return_value = None
        mock_api.upload_achievement_image.return_value = {"data": {"id": "new-image"}}

        result = AssetManager(mock_api).replace_achievement_image("loc-1", screenshots[0])

        mock_api.delete_achievement_image.assert_not_called()
        assert result["succeeded"] is True

    def test_delete_failure(self, screenshots):
        """Test the upload is skipped when the old image cannot be removed."""
        mock_api = Mock()
        mock_api.get_achievement_localization_image.return_value = {
            "data": {"id": "old-image"}
        }
        mock_api.delete_achievement_image.return_value = False

        with pytest.raises(AppStoreConnectError, match="Could not delete"):
            AssetManager(mock_api).replace_achievement_image("loc-1", screenshots[0])

        mock_api.upload_achievement_image.assert_not_called()

    def test_upload_failure(self, screenshots):
        mock_api = Mock()
        mock_api.get_achievement_localization_image.return_value = None
        mock_api.upload_achievement_image.side_effect = upload_failure()

        result = AssetManager(mock_api).replace_achievement_image("loc-1", screenshots[0])

        assert result["succeeded"] is False
        assert result["failed_parts"] == 2


class TestSummarizeResults:
    """Test tabulating batch results."""

    def test_summary_failures_first(self):
        results = {
            "a.png": {"succeeded": True, "resource_id": "1", "size": "1 KB"},
            "b.png": {"succeeded": False, "error": "boom", "failed_parts": 1},
            "c.png": {"succeeded": True, "resource_id": "3", "size": "1 KB"},
        }

        df = AssetManager(Mock()).summarize_results(results)

        assert isinstance(df, pd.DataFrame)
        assert df["file"].tolist() == ["b.png", "a.png", "c.png"]
        assert df.loc[0, "error"] == "boom"
        assert df.loc[0, "failed_parts"] == 1

    def test_summary_empty(self):
        df = AssetManager(Mock()).summarize_results({})
        assert df.empty
        assert "succeeded" in df.columns


def test_create_asset_manager():
    """Test the convenience constructor wires an API client."""
    with patch("pathlib.Path.exists", return_value=True):
        manager = create_asset_manager("key", "issuer", "/tmp/key.p8")
    assert manager.api.key_id == "key"
