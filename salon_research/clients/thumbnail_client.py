"""
Client for the external photo-processing service.
"""
import asyncio
from typing import List, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout
from loguru import logger

from salon_research.config import THUMBNAIL_SERVICE_URL, THUMBNAIL_TIMEOUT
from salon_research.models import BusinessRecord


class ThumbnailClient:
    """
    Singleton client that hands a record's photo references to the
    photo-processing service and returns the processed local paths.
    """
    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not ThumbnailClient._initialized:
            self.url = THUMBNAIL_SERVICE_URL
            self._session: Optional[ClientSession] = None
            ThumbnailClient._initialized = True

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def _get_session(self) -> ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = ClientSession(timeout=ClientTimeout(total=THUMBNAIL_TIMEOUT))
        return self._session

    async def process(self, record: BusinessRecord) -> Optional[List[str]]:
        """
        Ask the service to download and resize the record's photos.

        Returns:
            Optional[List[str]]: Local paths of the processed photos, or None if
            the service is disabled, failed or returned nothing.
        """
        if not self.enabled or not record.photos:
            return None

        logger.debug(f"🖼️ Processing {len(record.photos)} thumbnails for {record.name}")
        try:
            session = await self._get_session()
            async with session.post(self.url, json={"salon": record.to_dict()}) as resp:
                if resp.status != 200:
                    logger.warning(f"⚠️ Thumbnail service returned {resp.status} for {record.name}")
                    return None
                data = await resp.json()
        except (ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"⚠️ Thumbnail processing failed for {record.name}: {e}")
            return None

        paths = [p for p in (data or {}).get("localThumbnails") or [] if isinstance(p, str) and p]
        if not paths:
            return None
        logger.debug(f"✅ Processed {len(paths)} thumbnails for {record.name}")
        return paths

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
