"""
Batch Packager - bundles ordered page images into one zip archive.

Entry names are derived from the page index (``page_001.png``...), so the
archive's sorted entry order is the page order.
"""
import io
import logging
import zipfile
from typing import List, Sequence

from .pages import MIN_INDEX_WIDTH, PageArchive, PageImage

logger = logging.getLogger(__name__)

SUPPORTED_ENTRY_FORMATS = {"png", "jpg", "jpeg", "webp", "gif"}


class ArchiveError(Exception):
    """The archive is unreadable or holds no usable pages"""


class BatchPackager:
    """Builds and reads page-image archives"""

    def __init__(self, compression_level: int = 6, prefix: str = "page"):
        if not 0 <= compression_level <= 9:
            raise ValueError("compression_level must be between 0 and 9")
        self.compression_level = compression_level
        self.prefix = prefix

    def package(self, pages: Sequence[PageImage], base_name: str) -> PageArchive:
        """
        Bundle pages into a zip archive.

        Args:
            pages: Page images in page order
            base_name: Archive name without extension

        Returns:
            PageArchive with the zip bytes
        """
        if not pages:
            raise ArchiveError("No pages to package")

        ordered = sorted(pages, key=lambda p: p.index)
        if [p.index for p in ordered] != [p.index for p in pages]:
            raise ArchiveError("Pages must be supplied in page order")
        if len({p.index for p in ordered}) != len(ordered):
            raise ArchiveError("Duplicate page index")

        width = max(MIN_INDEX_WIDTH, len(str(ordered[-1].index)))
        buffer = io.BytesIO()
        with zipfile.ZipFile(
            buffer, "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=self.compression_level
        ) as zf:
            for page in ordered:
                zf.writestr(page.name(self.prefix, width), page.data)

        data = buffer.getvalue()
        logger.info(f"Packaged {len(ordered)} pages into {base_name}.zip ({len(data)} bytes)")
        return PageArchive(name=f"{base_name}.zip", data=data, page_count=len(ordered))

    def unpack(self, archive_bytes: bytes) -> List[PageImage]:
        """
        Read page images back out of an archive, sorted by entry name.

        Directories and unsupported entries are skipped.
        """
        try:
            zf = zipfile.ZipFile(io.BytesIO(archive_bytes))
        except zipfile.BadZipFile as e:
            raise ArchiveError(f"Not a zip archive: {e}") from e

        with zf:
            entries = []
            for info in zf.infolist():
                if info.is_dir():
                    continue
                ext = info.filename.rsplit(".", 1)[-1].lower() if "." in info.filename else ""
                if ext not in SUPPORTED_ENTRY_FORMATS:
                    logger.warning(f"Skipping unsupported archive entry: {info.filename}")
                    continue
                entries.append((info.filename, ext, zf.read(info)))

        if not entries:
            raise ArchiveError("No supported image files found in archive")

        entries.sort(key=lambda entry: entry[0])
        return [
            PageImage(index=i, data=data, format=ext)
            for i, (_, ext, data) in enumerate(entries, start=1)
        ]
