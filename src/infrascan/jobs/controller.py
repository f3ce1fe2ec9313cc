import logging
import os
import threading
import uuid
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Union

from src.infrascan.errors import ExecutionError, ExtractionError, InfrascanError, ValidationError
from src.infrascan.extraction import CredentialExtractor
from src.infrascan.jobs.report import ExtractionReport
from src.infrascan.models import (
    Credentials,
    ExtractionResult,
    FileBlob,
    Job,
    JobStatus,
    JobStatusView,
    SubmitResult,
)
from src.infrascan.storage import JobStore
from src.infrascan.worker import AnalysisExecutor

logger = logging.getLogger(__name__)

EXTRACTION_FAILED_MESSAGE = "Failed to extract AWS credentials from uploaded files"

UploadedFile = Union[FileBlob, Mapping[str, Any]]


class _BackgroundTask(NamedTuple):
    thread: threading.Thread
    cancel_event: threading.Event


def _as_blob(upload: UploadedFile) -> FileBlob:
    if isinstance(upload, FileBlob):
        return upload
    data = dict(upload)
    if isinstance(data.get("content"), (bytearray, memoryview)):
        data["content"] = bytes(data["content"])
    return FileBlob.model_validate(data)


class JobController:
    """
    Creates analysis jobs and drives each one through
    pending -> running -> completed|failed on a background thread.

    Creation returns as soon as the record is written; callers follow
    progress by polling get_job_status().
    """

    def __init__(
        self,
        store: JobStore,
        extractor: Optional[CredentialExtractor] = None,
        executor: Optional[AnalysisExecutor] = None,
        retention_days: Optional[int] = None,
    ):
        self.store = store
        self.extractor = extractor or CredentialExtractor()
        self.executor = executor or AnalysisExecutor()
        self.retention_days = (
            retention_days if retention_days is not None
            else int(os.environ.get("INFRASCAN_RETENTION_DAYS", "7"))
        )
        self._tasks: Dict[str, _BackgroundTask] = {}
        self._lock = threading.Lock()

    # -- operation surface ------------------------------------------------

    def create_job_from_credentials(self, access_key: str, secret_key: str, region: str) -> SubmitResult:
        try:
            credentials = Credentials.build(access_key, secret_key, region)
        except ValidationError as e:
            logger.info("Rejected credentials submission: %s", e)
            return SubmitResult(success=False, error=str(e))

        # Nothing to extract, so the job starts out running
        job = self._new_job(JobStatus.RUNNING)
        self.store.set(job.job_id, job)
        logger.info("Created job_id=%s from submitted credentials", job.job_id)
        return self._launch(job, self._run_direct, credentials)

    def create_job_from_files(self, files: Iterable[UploadedFile]) -> SubmitResult:
        try:
            blobs = [_as_blob(f) for f in files]
        except (ValueError, TypeError) as e:
            return SubmitResult(success=False, error=f"Failed to upload files: {e}")
        if not blobs:
            return SubmitResult(success=False, error="No files uploaded")

        job = self._new_job(JobStatus.PENDING, blobs)
        self.store.set(job.job_id, job)
        logger.info("Created job_id=%s for %d uploaded file(s)", job.job_id, len(blobs))
        return self._launch(job, self._run_files)

    def get_job_status(self, job_id: str) -> JobStatusView:
        return JobStatusView.from_job(self.store.get(job_id))

    def extract_credentials(self, job_id: str, file_name: str) -> ExtractionResult:
        job = self.store.get(job_id)
        if job is None or not job.files:
            return ExtractionResult.failed("File not found")
        return self.extractor.extract_from_files(job.files, file_name)

    # -- background task control -----------------------------------------

    def wait(self, job_id: str, timeout: Optional[float] = None) -> JobStatusView:
        with self._lock:
            task = self._tasks.get(job_id)
        if task is not None:
            task.thread.join(timeout)
        return self.get_job_status(job_id)

    def cancel(self, job_id: str) -> bool:
        with self._lock:
            task = self._tasks.get(job_id)
        if task is None:
            return False
        task.cancel_event.set()
        return True

    # -- internals ----------------------------------------------------------

    def _new_job(self, status: JobStatus, files: Optional[List[FileBlob]] = None) -> Job:
        job = Job(job_id=str(uuid.uuid4()), status=status, files=files or [])
        job.set_retention(self.retention_days)
        return job

    def _launch(self, job: Job, target, *args) -> SubmitResult:
        cancel_event = threading.Event()
        thread = threading.Thread(
            target=self._guarded,
            args=(job, cancel_event, target) + args,
            name=f"job-{job.job_id[:8]}",
            daemon=True,
        )
        with self._lock:
            self._tasks[job.job_id] = _BackgroundTask(thread, cancel_event)
        try:
            thread.start()
        except RuntimeError as e:
            with self._lock:
                self._tasks.pop(job.job_id, None)
            self._finish(job, JobStatus.FAILED, error=f"Could not start analysis: {e}")
            return SubmitResult(success=False, job_id=job.job_id, error=str(e))
        return SubmitResult(success=True, job_id=job.job_id)

    def _guarded(self, job: Job, cancel_event: threading.Event, target, *args) -> None:
        try:
            target(job, cancel_event, *args)
        except InfrascanError as e:
            logger.warning("Job %s failed: %s", job.job_id, e)
            self._finish(job, JobStatus.FAILED, error=str(e))
        except Exception as e:
            logger.exception("Analysis error in job %s", job.job_id)
            self._finish(job, JobStatus.FAILED, error=str(e))
        finally:
            with self._lock:
                self._tasks.pop(job.job_id, None)

    def _finish(self, job: Job, status: JobStatus, error: Optional[str] = None) -> None:
        if job.is_terminal:
            logger.warning("Job %s already %s, ignoring move to %s", job.job_id, job.status.value, status.value)
            return
        job.transition(status)
        if error is not None:
            job.error = error
        self.store.set(job.job_id, job)
        logger.info("job_id=%s finished with status=%s", job.job_id, status.value)

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event) -> None:
        if cancel_event.is_set():
            raise ExecutionError("Job cancelled")

    def _run_direct(self, job: Job, cancel_event: threading.Event, credentials: Credentials) -> None:
        self._execute(job, cancel_event, credentials)

    def _run_files(self, job: Job, cancel_event: threading.Event) -> None:
        self._check_cancelled(cancel_event)
        job.transition(JobStatus.RUNNING)
        self.store.set(job.job_id, job)

        report = ExtractionReport()
        report.uploaded(job.files)
        try:
            credentials = self._find_credentials(job, report, cancel_event)
        except ExtractionError as e:
            report.nothing_found()
            job.output = report.render()
            self._finish(job, JobStatus.FAILED, error=str(e))
            return

        report.starting_analysis()
        job.output = report.render()
        self.store.set(job.job_id, job)
        self._execute(job, cancel_event, credentials)

    def _find_credentials(self, job: Job, report: ExtractionReport, cancel_event: threading.Event) -> Credentials:
        """
        Tries each file in upload order and stops at the first one that
        yields a valid triple.
        """
        reasons: Dict[str, str] = {}
        for blob in job.files:
            self._check_cancelled(cancel_event)
            report.attempt(blob.name)
            result = self.extractor.extract_file(blob)
            if not result.success:
                reasons[blob.name] = result.error or "unknown error"
                report.rejected(reasons[blob.name])
                continue
            try:
                credentials = Credentials.build(result.access_key, result.secret_key, result.region)
            except ValidationError as e:
                reasons[blob.name] = f"Invalid credentials: {e}"
                report.rejected(reasons[blob.name])
                continue
            report.found(credentials)
            logger.info("job_id=%s using credentials from %s", job.job_id, blob.name)
            return credentials

        raise ExtractionError(EXTRACTION_FAILED_MESSAGE, {"files": reasons})

    def _execute(self, job: Job, cancel_event: threading.Event, credentials: Credentials) -> None:
        self._check_cancelled(cancel_event)
        result = self.executor.run(credentials, job.job_id, cancel_event=cancel_event)
        job.output = result.stdout
        self._finish(job, JobStatus.COMPLETED)
