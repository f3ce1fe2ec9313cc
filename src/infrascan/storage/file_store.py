import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Optional
from pydantic import ValidationError as PydanticValidationError

from src.infrascan.errors import StorageError
from src.infrascan.models import Job
from src.infrascan.storage.base import JobStore

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


class FileJobStore(JobStore):
    """One pretty-printed JSON document per job, named `<job_id>.json`."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or os.environ.get("INFRASCAN_JOBS_DIR", ".jobs"))

    def _path(self, job_id: str) -> Path:
        if not job_id or not _SAFE_ID.match(job_id):
            raise StorageError(f"Invalid job id: {job_id!r}")
        return self.root / f"{job_id}.json"

    def init(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Error creating jobs directory %s: %s", self.root, e)
            return
        self.purge_expired()

    def _read(self, job_id: str) -> Optional[Job]:
        path = self._path(job_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Could not read job {job_id}: {e}")
        try:
            return Job.model_validate_json(raw)
        except (PydanticValidationError, ValueError) as e:
            raise StorageError(f"Corrupt record for job {job_id}: {e}")

    def get(self, job_id: str) -> Optional[Job]:
        try:
            return self._read(job_id)
        except StorageError as e:
            logger.warning("%s", e)
            return None

    def _write(self, job_id: str, job: Job) -> None:
        path = self._path(job_id)
        payload = job.model_dump_json(indent=2)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=f".{job_id}.", suffix=".tmp")
        except OSError as e:
            raise StorageError(f"Could not save job {job_id}: {e}")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            # Readers only ever see a complete record
            os.replace(tmp_path, path)
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise StorageError(f"Could not save job {job_id}: {e}")

    def set(self, job_id: str, job: Job) -> None:
        try:
            self._write(job_id, job)
        except StorageError as e:
            logger.error("Error saving job data: %s", e)

    def purge_expired(self, now: Optional[float] = None) -> int:
        now = now if now is not None else time.time()
        removed = 0
        try:
            paths = list(self.root.glob("*.json"))
        except OSError as e:
            logger.error("Error listing jobs directory %s: %s", self.root, e)
            return 0

        for path in paths:
            try:
                job = self._read(path.stem)
            except StorageError as e:
                logger.warning("Skipping %s during purge: %s", path.name, e)
                continue
            if job is None or not job.is_expired(now):
                continue
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.error("Could not purge job %s: %s", path.stem, e)

        if removed:
            logger.info("Purged %d expired job record(s) from %s", removed, self.root)
        return removed
