"""
Tests for image download and asset upload.
"""

import sys
from pathlib import Path
from unittest.mock import Mock, patch

import requests

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from importer_modules.assets import AssetUploader, download_image


def image_response(content=b"\xff\xd8jpeg", content_type="image/jpeg", ok=True, status_code=200):
    response = Mock()
    response.ok = ok
    response.status_code = status_code
    response.content = content
    response.headers = {"Content-Type": content_type}
    return response


# ============================================================================
# DOWNLOAD TESTS
# ============================================================================

class TestDownloadImage:
    """Tests for download_image function."""

    @patch('importer_modules.assets.requests.get')
    def test_success(self, mock_get):
        mock_get.return_value = image_response()

        data, filename, content_type = download_image("https://cdn.example.com/sofa.jpg", timeout=7)

        assert data == b"\xff\xd8jpeg"
        assert filename == "sofa.jpg"
        assert content_type == "image/jpeg"
        assert mock_get.call_args.kwargs["timeout"] == 7

    @patch('importer_modules.assets.requests.get')
    def test_http_error(self, mock_get):
        mock_get.return_value = image_response(ok=False, status_code=404)
        assert download_image("https://cdn.example.com/missing.jpg") is None

    @patch('importer_modules.assets.requests.get')
    def test_not_an_image(self, mock_get):
        mock_get.return_value = image_response(content=b"<html>", content_type="text/html; charset=utf-8")
        assert download_image("https://cdn.example.com/page") is None

    @patch('importer_modules.assets.requests.get')
    def test_empty_body(self, mock_get):
        mock_get.return_value = image_response(content=b"")
        assert download_image("https://cdn.example.com/empty.jpg") is None

    @patch('importer_modules.assets.requests.get')
    def test_network_error(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectTimeout("timed out")
        assert download_image("https://cdn.example.com/slow.jpg") is None

    def test_empty_url(self):
        assert download_image("") is None


# ============================================================================
# UPLOAD TESTS
# ============================================================================

class TestAssetUploader:
    """Tests for AssetUploader."""

    def test_upload_many_keeps_input_order(self, catalog, downloader):
        uploader = AssetUploader(catalog, workers=3, downloader=downloader)
        urls = [f"https://cdn.example.com/{i}.jpg" for i in range(5)]

        uploaded = uploader.upload_many(urls)

        assert list(uploaded) == urls
        assert len(set(uploaded.values())) == 5

    def test_failed_images_dropped(self, catalog, downloader):
        uploader = AssetUploader(catalog, downloader=downloader)

        uploaded = uploader.upload_many([
            "https://cdn.example.com/a.jpg",
            "https://cdn.example.com/broken.jpg",
            "https://cdn.example.com/b.jpg",
        ])

        assert list(uploaded) == ["https://cdn.example.com/a.jpg", "https://cdn.example.com/b.jpg"]

    def test_duplicates_uploaded_once(self, catalog, downloader):
        uploader = AssetUploader(catalog, downloader=downloader)

        uploader.upload_many(["https://cdn.example.com/a.jpg", "https://cdn.example.com/a.jpg", ""])
        uploader.upload_one("https://cdn.example.com/a.jpg")

        assert catalog.count("upload_asset") == 1

    def test_upload_exception_is_contained(self, catalog, downloader):
        def exploding_downloader(url, timeout=15):
            if "bad" in url:
                raise RuntimeError("decoder crashed")
            return downloader(url, timeout)

        uploader = AssetUploader(catalog, downloader=exploding_downloader)

        uploaded = uploader.upload_many(["https://cdn.example.com/bad.jpg", "https://cdn.example.com/ok.jpg"])

        assert list(uploaded) == ["https://cdn.example.com/ok.jpg"]

    def test_empty(self, catalog, downloader):
        assert AssetUploader(catalog, downloader=downloader).upload_many([]) == {}
