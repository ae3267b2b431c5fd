"""Client for the Unsplash photo search API.

Search and download failures are raised as ``SourceUnavailable`` so callers can
tell "nothing matched" apart from "the service is down". The download-tracking
ping required by the Unsplash API terms never raises.
"""
import io
import logging
from typing import Any, Dict, Optional, Union

import requests

from medialib.config import Settings
from medialib.errors import AssetNotFound, SourceUnavailable
from medialib.schemas import ExternalPhoto, ExternalPhotoUrls, ExternalSearchPage

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class UnsplashClient:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.base_url = settings.UNSPLASH_API_URL.rstrip("/")
        self.timeout = settings.EXTERNAL_TIMEOUT_SECONDS
        self.download_size = settings.UNSPLASH_DOWNLOAD_SIZE
        self.max_download_bytes = settings.MAX_DOWNLOAD_BYTES
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Client-ID {settings.UNSPLASH_ACCESS_KEY}",
            "Accept-Version": "v1",
        })

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Unsplash request %s failed: %s", path, e)
            raise SourceUnavailable(f"Photo service request failed: {e}") from e
        if response.status_code == 404:
            raise AssetNotFound(path.rsplit("/", 1)[-1], "Photo not found on the photo service")
        try:
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Unsplash request %s returned an unusable response: %s", path, e)
            raise SourceUnavailable(f"Photo service returned an error: {e}") from e

    @staticmethod
    def parse_photo(payload: Dict[str, Any]) -> ExternalPhoto:
        user = payload.get("user") or {}
        return ExternalPhoto(
            id=str(payload["id"]),
            description=payload.get("description"),
            alt_description=payload.get("alt_description"),
            width=int(payload.get("width") or 0),
            height=int(payload.get("height") or 0),
            color=payload.get("color"),
            urls=ExternalPhotoUrls(**{k: v for k, v in (payload.get("urls") or {}).items() if k in ExternalPhotoUrls.model_fields and v}),
            photographer_name=user.get("name") or "",
            photographer_username=user.get("username") or "",
        )

    def search(self, query: str, page: int = 1, per_page: int = 30) -> ExternalSearchPage:
        if not query or not query.strip():
            raise ValueError("Search query must not be empty")
        page = max(1, page)
        per_page = min(max(1, per_page), 30)
        data = self._get_json("/search/photos", {"query": query.strip(), "page": page, "per_page": per_page})
        try:
            return ExternalSearchPage(
                total=int(data.get("total", 0)),
                total_pages=int(data.get("total_pages", 0)),
                page=page,
                per_page=per_page,
                results=[self.parse_photo(item) for item in data.get("results", [])],
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error("Unsplash search payload could not be parsed: %s", e)
            raise SourceUnavailable("Photo service returned an unexpected response") from e

    def get_photo(self, remote_id: str) -> ExternalPhoto:
        data = self._get_json(f"/photos/{remote_id}")
        try:
            return self.parse_photo(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise SourceUnavailable("Photo service returned an unexpected response") from e

    def download_url(self, photo: ExternalPhoto) -> str:
        urls = photo.urls
        return getattr(urls, self.download_size, "") or urls.full or urls.regular or urls.raw

    def fetch_bytes(self, photo: Union[ExternalPhoto, str]) -> bytes:
        """Download the photo. Nothing is returned unless the whole body arrived."""
        if isinstance(photo, str):
            photo = self.get_photo(photo)
        url = self.download_url(photo)
        if not url:
            raise SourceUnavailable(f"No download URL for photo {photo.id}")

        buffer = io.BytesIO()
        try:
            with self.session.get(url, timeout=self.timeout, stream=True) as response:
                response.raise_for_status()
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    buffer.write(chunk)
                    if buffer.tell() > self.max_download_bytes:
                        raise SourceUnavailable(f"Photo {photo.id} exceeds the download size limit")
        except requests.RequestException as e:
            logger.error("Download of photo %s failed: %s", photo.id, e)
            raise SourceUnavailable(f"Photo download failed: {e}") from e
        data = buffer.getvalue()
        if not data:
            raise SourceUnavailable(f"Photo {photo.id} download was empty")
        return data

    def record_usage_notice(self, remote_id: str) -> bool:
        try:
            response = self.session.get(f"{self.base_url}/photos/{remote_id}/download", timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Unsplash download tracking for %s failed: %s", remote_id, e)
            return False
        return True
