"""
Utility functions for the application
"""
import math
import time
import uuid
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png"}


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, tolerating a trailing 'Z'"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def generate_timestamp_id(prefix: str = "") -> str:
    """Generate a unique ID based on timestamp"""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    if prefix:
        return f"{prefix}_{timestamp}"
    return timestamp


def new_id() -> str:
    return str(uuid.uuid4())


def get_file_extension(filename: str) -> str:
    """Get file extension without dot, ignoring any query string"""
    path = urlsplit(filename).path if "://" in filename else filename.split("?")[0]
    return Path(path).suffix.lstrip(".").lower()


def is_valid_image(filename: str) -> bool:
    """Check if file is a supported image"""
    return get_file_extension(filename) in IMAGE_EXTENSIONS


def is_valid_pdf(filename: str) -> bool:
    """Check if file is a PDF"""
    return get_file_extension(filename) == "pdf"


def is_zip(filename: str) -> bool:
    return get_file_extension(filename) == "zip"


def detect_file_type(url: str) -> str:
    """Determine the document type from a URL or filename"""
    from sheetcheck.core.constants import FileType

    if is_valid_pdf(url):
        return FileType.PDF.value
    if is_zip(url):
        return FileType.ZIP.value
    if is_valid_image(url):
        return FileType.IMAGE.value
    return FileType.UNKNOWN.value


def add_cache_buster(url: str, token: Optional[int] = None) -> str:
    """Append a cache-busting query parameter to a URL"""
    if token is None:
        token = int(time.time() * 1000)
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}cache={token}"


def strip_query(url: str) -> str:
    """Remove query parameters (cache busters included) from a URL"""
    return url.split("?")[0]


def safe_filename(filename: str) -> str:
    """Make filename safe for object storage paths"""
    unsafe_chars = '<>:"/\\|?*# '
    for char in unsafe_chars:
        filename = filename.replace(char, "_")
    return filename


def format_file_size(size_bytes: int) -> str:
    """Format file size in human readable format"""
    for unit in ["B", "KB", "MB", "GB"]:
        if size_bytes < 1024:
            return f"{size_bytes:.2f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.2f} TB"


def calculate_percentage(awarded: float, possible: float) -> int:
    """Percentage rounded half up (12.5 -> 13), 0 when nothing is possible"""
    if possible <= 0:
        return 0
    return int(math.floor(100 * awarded / possible + 0.5))


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(value, upper))


def to_number(value) -> float:
    """
    Coerce a score value to a number, keeping integral values as int.

    Raises:
        ValueError: value is not numeric
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a score: {value!r}")
    number = float(value)
    if number != number or number in (float("inf"), float("-inf")):
        raise ValueError(f"Not a score: {value!r}")
    return int(number) if number.is_integer() else number
