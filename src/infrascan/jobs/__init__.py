from .controller import JobController, EXTRACTION_FAILED_MESSAGE
from .report import ExtractionReport

__all__ = ["JobController", "ExtractionReport", "EXTRACTION_FAILED_MESSAGE"]
