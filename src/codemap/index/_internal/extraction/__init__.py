"""Per-file symbol/import/export extraction."""

from codemap.index._internal.extraction.extractor import (
    MAX_SIGNATURE_LENGTH,
    ExtractedExport,
    ExtractedImport,
    ExtractedSymbol,
    ExtractionResult,
    cap_signature,
    extract,
    is_external_specifier,
    package_name,
)

__all__ = [
    "MAX_SIGNATURE_LENGTH",
    "ExtractedExport",
    "ExtractedImport",
    "ExtractedSymbol",
    "ExtractionResult",
    "cap_signature",
    "extract",
    "is_external_specifier",
    "package_name",
]
