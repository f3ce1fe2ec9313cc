import logging
import os
import re
import shlex
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import Callable, NamedTuple, Optional, Sequence, Union

from src.infrascan.errors import ExecutionError
from src.infrascan.models import Credentials
from src.infrascan.worker.artifact import credentials_artifact

logger = logging.getLogger(__name__)

CREDENTIALS_ENV_VAR = "AWS_SHARED_CREDENTIALS_FILE"
_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


class AnalysisResult(NamedTuple):
    stdout: str
    stderr: str
    returncode: int


FailurePolicy = Callable[[AnalysisResult], Optional[str]]


def stderr_failure_policy(result: AnalysisResult) -> Optional[str]:
    """Anything on stderr counts as failure and becomes the error text verbatim."""
    return result.stderr if result.stderr else None


def exit_code_failure_policy(result: AnalysisResult) -> Optional[str]:
    if result.returncode == 0:
        return None
    return result.stderr or f"Analysis exited with status {result.returncode}"


class AnalysisExecutor:
    def __init__(
        self,
        command: Optional[Union[str, Sequence[str]]] = None,
        artifact_root: Optional[str] = None,
        timeout: Optional[int] = None,
        failure_policy: FailurePolicy = stderr_failure_policy,
    ):
        command = command or os.environ.get("INFRASCAN_ANALYSIS_COMMAND", "bash aws_service_checker.sh")
        self.command = shlex.split(command) if isinstance(command, str) else list(command)
        self.artifact_root = Path(
            artifact_root
            or os.environ.get("INFRASCAN_ARTIFACT_ROOT")
            or os.path.join(tempfile.gettempdir(), "infrascan", "artifacts")
        )
        self.timeout = timeout if timeout is not None else int(os.environ.get("INFRASCAN_ANALYSIS_TIMEOUT", "600"))
        self.failure_policy = failure_policy

    def artifact_dir(self, job_id: str) -> Path:
        # Removed recursively after the run, so it must stay under artifact_root
        if not job_id or not _SAFE_ID.match(job_id):
            raise ExecutionError(f"Invalid job id: {job_id!r}")
        return self.artifact_root / job_id

    def _invoke(self, env: dict) -> AnalysisResult:
        try:
            process = subprocess.Popen(
                self.command,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace"
            )
        except OSError as e:
            raise ExecutionError(f"Failed to start analysis: {e}", {"command": self.command})

        try:
            stdout, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            raise ExecutionError("Timeout expired", {"timeout": self.timeout})

        return AnalysisResult(stdout=stdout, stderr=stderr, returncode=process.returncode)

    def run(
        self,
        credentials: Credentials,
        job_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> AnalysisResult:
        if cancel_event is not None and cancel_event.is_set():
            raise ExecutionError("Job cancelled")

        with credentials_artifact(credentials, self.artifact_dir(job_id)) as artifact_path:
            env = os.environ.copy()
            env[CREDENTIALS_ENV_VAR] = str(artifact_path)
            logger.info("Running analysis for job %s in region %s", job_id, credentials.region)
            result = self._invoke(env)

        failure = self.failure_policy(result)
        if failure:
            raise ExecutionError(failure, {"returncode": result.returncode})
        return result
