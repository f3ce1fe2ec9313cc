from .extractor import CredentialExtractor, format_for, FORMAT_BY_EXTENSION
from .strategies import (
    ExtractionStrategy,
    JsonStrategy,
    TextStrategy,
    CsvStrategy,
    UnsupportedStrategy,
    ACCESS_KEY_PATTERN,
)

__all__ = [
    "CredentialExtractor", "format_for", "FORMAT_BY_EXTENSION",
    "ExtractionStrategy", "JsonStrategy", "TextStrategy", "CsvStrategy",
    "UnsupportedStrategy", "ACCESS_KEY_PATTERN",
]
