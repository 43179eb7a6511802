"""Source store readers."""

from .base import PageResult, SourceReader
from .file_extractor import JSONExportExtractor
from .supabase_extractor import SupabaseExtractor

__all__ = [
    "PageResult",
    "SourceReader",
    "JSONExportExtractor",
    "SupabaseExtractor",
]
