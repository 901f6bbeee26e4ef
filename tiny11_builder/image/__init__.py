"""Image lifecycle: mounting, inspection and re-export."""

from tiny11_builder.image.export import ExportResult, ExportRetryPolicy, work_file_for
from tiny11_builder.image.inspect import (
    detect_language,
    inspect_image,
    list_images,
    select_default_index,
    validate_source,
)
from tiny11_builder.image.mount import CleanupGuard, ImageMountGuard

__all__ = [
    "CleanupGuard",
    "ExportResult",
    "ExportRetryPolicy",
    "ImageMountGuard",
    "detect_language",
    "inspect_image",
    "list_images",
    "select_default_index",
    "validate_source",
    "work_file_for",
]
