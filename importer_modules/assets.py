"""
Image download and asset upload for Vendure Catalog Importer.

Downloads run in a small thread pool; any single image failure only costs
that image, never the row.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

import requests

from .utils import guess_filename_from_url

USER_AGENT = "Mozilla/5.0 (compatible; vendure-catalog-importer)"


def download_image(url, timeout=15):
    """
    Download an image.

    Args:
        url: Image URL
        timeout: Request timeout in seconds

    Returns:
        Tuple (bytes, filename, content_type), or None if the download failed,
        the answer is not an image, or the body is empty
    """
    if not url:
        return None

    try:
        response = requests.get(url, timeout=timeout, headers={"User-Agent": USER_AGENT})
    except requests.exceptions.RequestException as e:
        logging.warning(f"  ⚠ Could not download {url[:80]}: {e}")
        return None

    if not response.ok:
        logging.warning(f"  ⚠ Could not download {url[:80]} (HTTP {response.status_code})")
        return None

    content_type = response.headers.get("Content-Type", "").split(";")[0].strip().lower()
    if content_type and not content_type.startswith("image/"):
        logging.warning(f"  ⚠ Not an image ({content_type}): {url[:80]}")
        return None

    if not response.content:
        logging.warning(f"  ⚠ Empty image body: {url[:80]}")
        return None

    return response.content, guess_filename_from_url(url, content_type), content_type or "image/jpeg"


class AssetUploader:
    """Download images and upload them as assets, a few at a time."""

    def __init__(self, client, workers=3, timeout=15, downloader=None):
        self.client = client
        self.workers = max(1, int(workers))
        self.timeout = timeout
        self.downloader = downloader or download_image
        self._uploaded = {}

    def upload_one(self, url):
        """Download and upload one image; returns the asset id or None."""
        if url in self._uploaded:
            return self._uploaded[url]

        logging.info(f"  → Uploading image: {url[:60]}...")
        downloaded = self.downloader(url, self.timeout)
        if not downloaded:
            return None

        data, filename, content_type = downloaded
        asset_id = self.client.upload_asset(data, filename, content_type)
        if asset_id:
            self._uploaded[url] = asset_id
        return asset_id

    def upload_many(self, urls):
        """
        Upload several images concurrently.

        Args:
            urls: Image URLs

        Returns:
            Dictionary of url -> asset id, for successful uploads only, in the
            order of the input list
        """
        unique_urls = []
        for url in urls:
            if url and url not in unique_urls:
                unique_urls.append(url)
        if not unique_urls:
            return {}

        results = {}
        with ThreadPoolExecutor(max_workers=min(self.workers, len(unique_urls))) as executor:
            future_to_url = {executor.submit(self.upload_one, url): url for url in unique_urls}
            for future in as_completed(future_to_url):
                url = future_to_url[future]
                try:
                    asset_id = future.result()
                except Exception as e:
                    logging.warning(f"  ⚠ Image upload raised for {url[:80]}: {e}")
                    continue
                if asset_id:
                    results[url] = asset_id

        ordered = {url: results[url] for url in unique_urls if url in results}
        logging.info(f"  ✓ Uploaded {len(ordered)}/{len(unique_urls)} image(s)")
        return ordered
