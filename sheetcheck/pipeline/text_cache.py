"""
Cached extracted text for stored documents (document_assets.text_content).
"""
import logging
from typing import Optional

from sheetcheck.core import DatabaseException, Tables
from sheetcheck.storage import TableService
from sheetcheck.utils import strip_query

logger = logging.getLogger(__name__)


class DocumentTextCache:
    """Looks up assets by their stored URL, ignoring cache busters"""

    def __init__(self, tables: TableService):
        self.tables = tables

    async def _asset(self, url: str):
        return await self.tables.select_one(Tables.DOCUMENTS, {"url": strip_query(url)})

    async def get_text(self, url: str) -> Optional[str]:
        asset = await self._asset(url)
        if asset and asset.get("text_content"):
            logger.info(f"Using cached text for asset {asset['id']}")
            return asset["text_content"]
        return None

    async def archive_for(self, url: str) -> Optional[str]:
        asset = await self._asset(url)
        return asset.get("zip_url") if asset else None

    async def put_text(self, url: str, text: str) -> None:
        """Best-effort write; a failed cache write only costs a later re-extraction"""
        try:
            await self.tables.update(Tables.DOCUMENTS, {"text_content": text}, {"url": strip_query(url)})
        except DatabaseException as e:
            logger.warning(f"Could not cache extracted text for {strip_query(url)}: {e}")
