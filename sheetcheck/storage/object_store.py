"""
Object Store Gateway
====================
Uploads and downloads byte blobs and hands out addressable URLs.

Callers write and immediately read back, so the gateway masks eventual
consistency: public URLs carry a cache-busting token and reads retry briefly
when a freshly written object is not visible yet.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import httpx

from sheetcheck.core import ConfigurationException, DatabaseException, TransientTransportException
from sheetcheck.utils import add_cache_buster, strip_query

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class ObjectStoreGateway(ABC):
    """Byte-blob storage addressed by bucket-relative paths"""

    @abstractmethod
    async def put(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Store ``data`` at ``path`` (overwriting) and return its public URL"""

    @abstractmethod
    async def get(self, url: str) -> bytes:
        """Download the object behind ``url``"""

    @abstractmethod
    async def delete(self, paths: List[str]) -> None:
        """Remove objects; missing paths are ignored"""

    @abstractmethod
    def public_url(self, path: str, fresh: bool = True) -> str:
        """Public URL for ``path``, cache-busted unless ``fresh`` is False"""

    @abstractmethod
    def path_from_url(self, url: str) -> Optional[str]:
        """Inverse of :meth:`public_url`; None for URLs outside this store"""


class InMemoryObjectStore(ObjectStoreGateway):
    """Dictionary-backed store for tests and local development"""

    def __init__(self, bucket: str = "files"):
        self.bucket = bucket
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self._prefix = f"memory://{bucket}/"

    async def put(self, path, data, content_type="application/octet-stream"):
        self.objects[path] = bytes(data)
        self.content_types[path] = content_type
        return self.public_url(path)

    async def get(self, url):
        path = self.path_from_url(url)
        if path is None or path not in self.objects:
            raise TransientTransportException(f"Failed to download {strip_query(url)}: not found")
        return self.objects[path]

    async def delete(self, paths):
        for path in paths:
            self.objects.pop(path, None)
            self.content_types.pop(path, None)

    def public_url(self, path, fresh=True):
        url = f"{self._prefix}{path}"
        return add_cache_buster(url) if fresh else url

    def path_from_url(self, url):
        clean = strip_query(url)
        if not clean.startswith(self._prefix):
            return None
        return clean[len(self._prefix):]


class SupabaseObjectStore(ObjectStoreGateway):
    """
    Supabase Storage REST client.

    Objects are written with ``x-upsert`` so re-uploads replace in place.
    """

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        bucket: str = "files",
        timeout: float = 30.0,
        read_retries: int = 3,
        read_retry_delay: float = 0.5,
        client: Optional[httpx.AsyncClient] = None
    ):
        if not base_url:
            raise ConfigurationException("SUPABASE_URL")
        if not api_key:
            raise ConfigurationException("SUPABASE_KEY")

        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.bucket = bucket
        self.timeout = timeout
        self.read_retries = read_retries
        self.read_retry_delay = read_retry_delay
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    @property
    def _auth_headers(self) -> Dict[str, str]:
        return {"apikey": self.api_key, "Authorization": f"Bearer {self.api_key}"}

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{path.lstrip('/')}"

    async def put(self, path, data, content_type="application/octet-stream"):
        headers = {**self._auth_headers, "Content-Type": content_type, "x-upsert": "true"}
        try:
            response = await self.client.post(self._object_url(path), content=data, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Upload of {path} failed: {e}")
            raise DatabaseException(f"uploading {path}", str(e))

        if response.status_code >= 400:
            logger.error(f"Upload of {path} returned {response.status_code}: {response.text}")
            raise DatabaseException(f"uploading {path}", response.text)

        logger.info(f"Stored {path} ({len(data)} bytes)")
        return self.public_url(path)

    async def get(self, url):
        # Objects in this bucket are fetched with credentials, others anonymously
        headers = dict(NO_CACHE_HEADERS)
        if self.path_from_url(url) is not None:
            headers.update(self._auth_headers)

        attempt = 0
        while True:
            try:
                response = await self.client.get(url, headers=headers)
            except httpx.TimeoutException as e:
                raise TransientTransportException(f"Timeout while downloading {strip_query(url)}: {e}")
            except httpx.HTTPError as e:
                raise TransientTransportException(f"Failed to download {strip_query(url)}: {e}")

            if response.status_code == 404 and attempt < self.read_retries:
                # Fresh writes may not be visible yet
                attempt += 1
                await asyncio.sleep(self.read_retry_delay * attempt)
                continue

            if response.status_code >= 400:
                raise TransientTransportException(
                    f"Failed to download {strip_query(url)}: HTTP {response.status_code}"
                )
            if not response.content:
                raise TransientTransportException(f"Failed to download {strip_query(url)}: empty body")
            return response.content

    async def delete(self, paths):
        if not paths:
            return
        try:
            response = await self.client.request(
                "DELETE",
                f"{self.base_url}/storage/v1/object/{self.bucket}",
                json={"prefixes": paths},
                headers=self._auth_headers,
            )
        except httpx.HTTPError as e:
            raise DatabaseException(f"removing {len(paths)} objects", str(e))
        if response.status_code >= 400:
            raise DatabaseException(f"removing {len(paths)} objects", response.text)
        logger.info(f"Removed objects: {', '.join(paths)}")

    def public_url(self, path, fresh=True):
        url = f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path.lstrip('/')}"
        return add_cache_buster(url) if fresh else url

    def path_from_url(self, url):
        clean = strip_query(url)
        for marker in (
            f"/storage/v1/object/public/{self.bucket}/",
            f"/storage/v1/object/{self.bucket}/",
        ):
            prefix = f"{self.base_url}{marker}"
            if clean.startswith(prefix):
                return clean[len(prefix):]
        return None

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
