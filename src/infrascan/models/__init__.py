from .job import Job, JobStatus, FileBlob, SubmitResult, JobStatusView, ENCODED_CONTENT
from .credentials import Credentials, ExtractionResult, DEFAULT_REGION

__all__ = [
    "Job", "JobStatus", "FileBlob", "SubmitResult", "JobStatusView", "ENCODED_CONTENT",
    "Credentials", "ExtractionResult", "DEFAULT_REGION",
]
