"""
Page image types carried through the conversion pipeline.

Order is explicit (``index``); file names only exist at the archive boundary.
"""
from dataclasses import dataclass


MIN_INDEX_WIDTH = 3


@dataclass(frozen=True)
class PageImage:
    """One rendered page, 1-based index"""
    index: int
    data: bytes
    format: str = "png"

    @property
    def mime_type(self) -> str:
        return "image/jpeg" if self.format in ("jpg", "jpeg") else f"image/{self.format}"

    def name(self, prefix: str = "page", width: int = MIN_INDEX_WIDTH) -> str:
        """Zero-padded entry name; lexicographic order equals page order"""
        return f"{prefix}_{self.index:0{width}d}.{self.format}"


@dataclass(frozen=True)
class PageArchive:
    """A compressed bundle of page images"""
    name: str
    data: bytes
    page_count: int
