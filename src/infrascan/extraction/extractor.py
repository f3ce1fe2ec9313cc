import logging
import os
from typing import Dict, Iterable, Optional

from src.infrascan.extraction.strategies import (
    CsvStrategy,
    ExtractionStrategy,
    JsonStrategy,
    TextStrategy,
    UnsupportedStrategy,
)
from src.infrascan.models import ExtractionResult, FileBlob

logger = logging.getLogger(__name__)

FORMAT_BY_EXTENSION: Dict[str, str] = {
    ".json": "json",
    ".txt": "text",
    ".env": "text",
    ".config": "text",
    ".csv": "csv",
    ".xls": "excel",
    ".xlsx": "excel",
}

# Only consulted when the file name carries no extension
FORMAT_BY_MEDIA_TYPE: Dict[str, str] = {
    "application/json": "json",
    "text/csv": "csv",
    "text/plain": "text",
    "application/vnd.ms-excel": "excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "excel",
}


def file_extension(name: str) -> str:
    base = os.path.basename(name).lower()
    extension = os.path.splitext(base)[1]
    # ".env" has no extension as far as splitext is concerned
    if not extension and base.startswith(".") and base.count(".") == 1:
        return base
    return extension


def format_for(name: str, media_type: Optional[str] = None) -> Optional[str]:
    extension = file_extension(name)
    if extension:
        return FORMAT_BY_EXTENSION.get(extension)
    if media_type:
        return FORMAT_BY_MEDIA_TYPE.get(media_type.split(";")[0].strip().lower())
    return None


def decode_content(content: bytes) -> str:
    return content.decode("utf-8-sig", errors="replace")


class CredentialExtractor:
    """Routes uploaded content to the strategy registered for its format tag."""

    def __init__(self, strategies: Optional[Iterable[ExtractionStrategy]] = None):
        strategies = strategies or (JsonStrategy(), TextStrategy(), CsvStrategy(), UnsupportedStrategy())
        self.strategies: Dict[str, ExtractionStrategy] = {s.format_tag: s for s in strategies}

    def extract(self, content: bytes, declared_format: Optional[str]) -> ExtractionResult:
        strategy = self.strategies.get(declared_format or "")
        if strategy is None:
            return ExtractionResult.failed(f"Unsupported file format: {declared_format}")
        return strategy.extract(decode_content(content))

    def extract_file(self, blob: FileBlob) -> ExtractionResult:
        declared_format = format_for(blob.name, blob.type)
        if declared_format is None:
            extension = file_extension(blob.name).lstrip(".") or blob.type or "unknown"
            return ExtractionResult.failed(f"Unsupported file type: {extension}")
        logger.debug("Extracting credentials from %s as %s", blob.name, declared_format)
        return self.extract(blob.content, declared_format)

    def extract_from_files(self, files: Iterable[FileBlob], name: str) -> ExtractionResult:
        blob = next((f for f in files if f.name == name), None)
        if blob is None:
            return ExtractionResult.failed(f"File {name} not found")
        return self.extract_file(blob)
