"""
Page Rasterizer - converts PDFs and single images into ordered PNG pages.

Handles:
- Rendering every PDF page at a configurable scale (2x by default)
- Normalizing uploaded PNG/JPEG images into a single PNG page
- Failing atomically so callers can fall back to manual text entry
"""
import io
import logging
from typing import List

import fitz  # PyMuPDF
from PIL import Image

from .pages import PageImage

logger = logging.getLogger(__name__)

DEFAULT_SCALE = 2.0


class RasterizationError(Exception):
    """The document could not be turned into page images"""


class PageRasterizer:
    """
    Renders documents into page images suitable for vision-model input.
    """

    def __init__(self, scale: float = DEFAULT_SCALE):
        """
        Initialize the rasterizer.

        Args:
            scale: Zoom factor relative to the default page size (72 dpi)
        """
        if scale <= 0:
            raise ValueError("scale must be positive")
        self.scale = scale

    def rasterize(self, pdf_bytes: bytes) -> List[PageImage]:
        """
        Render every page of a PDF to PNG.

        Args:
            pdf_bytes: Raw PDF content

        Returns:
            One PageImage per page, indexed from 1 in page order

        Raises:
            RasterizationError: If the PDF cannot be parsed or any page fails.
                No partial output is returned.
        """
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except Exception as e:
            raise RasterizationError(f"Could not open PDF: {e}") from e

        try:
            if doc.needs_pass:
                raise RasterizationError("PDF is password protected")
            if doc.page_count == 0:
                raise RasterizationError("PDF has no pages")

            matrix = fitz.Matrix(self.scale, self.scale)
            pages = []
            for page_num, page in enumerate(doc, start=1):
                try:
                    pix = page.get_pixmap(matrix=matrix, alpha=False)
                    pages.append(PageImage(index=page_num, data=pix.tobytes("png")))
                except Exception as e:
                    raise RasterizationError(f"Could not render page {page_num}: {e}") from e
        finally:
            doc.close()

        logger.info(f"Rasterized PDF into {len(pages)} pages at scale {self.scale}")
        return pages

    def normalize_image(self, image_bytes: bytes, index: int = 1) -> PageImage:
        """
        Convert an uploaded PNG/JPEG into a PNG page.

        Transparent areas are flattened onto a white background.
        """
        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                img.load()
                if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
                    rgba = img.convert("RGBA")
                    background = Image.new("RGB", rgba.size, (255, 255, 255))
                    background.paste(rgba, mask=rgba.split()[-1])
                    converted = background
                else:
                    converted = img.convert("RGB")

                buffer = io.BytesIO()
                converted.save(buffer, format="PNG")
        except Exception as e:
            raise RasterizationError(f"Could not read image: {e}") from e

        return PageImage(index=index, data=buffer.getvalue())
