# Utils package
from .helpers import (
    utc_now,
    parse_timestamp,
    generate_timestamp_id,
    new_id,
    get_file_extension,
    is_valid_image,
    is_valid_pdf,
    is_zip,
    detect_file_type,
    add_cache_buster,
    strip_query,
    safe_filename,
    format_file_size,
    calculate_percentage,
    clamp,
    to_number,
)

__all__ = [
    "utc_now",
    "parse_timestamp",
    "generate_timestamp_id",
    "new_id",
    "get_file_extension",
    "is_valid_image",
    "is_valid_pdf",
    "is_zip",
    "detect_file_type",
    "add_cache_buster",
    "strip_query",
    "safe_filename",
    "format_file_size",
    "calculate_percentage",
    "clamp",
    "to_number",
]
