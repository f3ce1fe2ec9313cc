import json
import os
import shutil
import tempfile
import threading
import unittest
from unittest import mock
from src.infrascan.errors import ExecutionError
from src.infrascan.extraction import CredentialExtractor
from src.infrascan.jobs import EXTRACTION_FAILED_MESSAGE, JobController
from src.infrascan.models import ExtractionResult, FileBlob, JobStatus
from src.infrascan.storage import FileJobStore
from src.infrascan.worker import AnalysisExecutor, AnalysisResult

ACCESS_KEY = "AKIAABCDEFGHIJKL1234"
SECRET_KEY = "abcdefghijklmnopqrstuvwx"


class StubExecutor:
    def __init__(self, stdout="EC2 instances: 2\n", error=None):
        self.stdout = stdout
        self.error = error
        self.calls = []

    def run(self, credentials, job_id, cancel_event=None):
        self.calls.append((credentials, job_id))
        if self.error is not None:
            raise self.error
        return AnalysisResult(stdout=self.stdout, stderr="", returncode=0)


def blob(name: str, text: str) -> FileBlob:
    content = text.encode("utf-8")
    return FileBlob(name=name, content=content, type="text/plain", size=len(content))


class ControllerTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.store = FileJobStore(root=os.path.join(self.tmp, "jobs"))
        self.store.init()
        self.executor = StubExecutor()
        self.controller = JobController(self.store, executor=self.executor)

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)


class TestCredentialJobs(ControllerTestCase):
    def test_valid_credentials_complete(self):
        result = self.controller.create_job_from_credentials(ACCESS_KEY, SECRET_KEY, "eu-west-1")
        self.assertTrue(result.success)
        self.assertIsNotNone(result.job_id)

        view = self.controller.wait(result.job_id, timeout=10)
        self.assertEqual(view.status, JobStatus.COMPLETED)
        self.assertEqual(view.output, "EC2 instances: 2\n")
        self.assertIsNone(view.error)

        credentials, job_id = self.executor.calls[0]
        self.assertEqual(job_id, result.job_id)
        self.assertEqual((credentials.access_key, credentials.secret_key, credentials.region),
                         (ACCESS_KEY, SECRET_KEY, "eu-west-1"))

        stored = self.store.get(result.job_id)
        self.assertIsNotNone(stored.completed_at)
        self.assertIsNotNone(stored.expires_at)

    def test_invalid_region_is_rejected_synchronously(self):
        result = self.controller.create_job_from_credentials(ACCESS_KEY, SECRET_KEY, "Virginia")
        self.assertFalse(result.success)
        self.assertIsNone(result.job_id)
        self.assertIn("Invalid AWS region format", result.error)
        self.assertEqual(self.executor.calls, [])
        self.assertEqual(os.listdir(self.store.root), [])

    def test_short_key_is_rejected(self):
        result = self.controller.create_job_from_credentials("AKIA", SECRET_KEY, "us-east-1")
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Invalid AWS Access Key format")

    def test_execution_error_fails_job(self):
        self.executor.error = ExecutionError("AccessDenied\n")
        result = self.controller.create_job_from_credentials(ACCESS_KEY, SECRET_KEY, "us-east-1")
        view = self.controller.wait(result.job_id, timeout=10)
        self.assertEqual(view.status, JobStatus.FAILED)
        self.assertEqual(view.error, "AccessDenied\n")

    def test_unexpected_error_fails_job(self):
        self.executor.error = RuntimeError("kaboom")
        with self.assertLogs("src.infrascan.jobs.controller", level="ERROR"):
            result = self.controller.create_job_from_credentials(ACCESS_KEY, SECRET_KEY, "us-east-1")
            view = self.controller.wait(result.job_id, timeout=10)
        self.assertEqual(view.status, JobStatus.FAILED)
        self.assertEqual(view.error, "kaboom")

    def test_unknown_job(self):
        view = self.controller.get_job_status("00000000-0000-4000-8000-000000000000")
        self.assertEqual(view.status, JobStatus.UNKNOWN)
        self.assertEqual(view.error, "Job not found")


class TestFileJobs(ControllerTestCase):
    def test_short_circuits_on_first_usable_file(self):
        files = [
            blob("notes.txt", "nothing to see here"),
            blob("creds.json", json.dumps({"accessKey": ACCESS_KEY, "secretKey": SECRET_KEY, "region": "ap-south-1"})),
            blob("other.csv", f"access_key_id,secret_access_key\nAKIAZZZZZZZZZZZZZZZZ,{'z' * 40}\n"),
        ]
        extractor = CredentialExtractor()
        with mock.patch.object(extractor, "extract_file", wraps=extractor.extract_file) as spy:
            controller = JobController(self.store, extractor=extractor, executor=self.executor)
            result = controller.create_job_from_files(files)
            view = controller.wait(result.job_id, timeout=10)

        self.assertEqual(view.status, JobStatus.COMPLETED)
        self.assertEqual([c.args[0].name for c in spy.call_args_list], ["notes.txt", "creds.json"])

        credentials, _ = self.executor.calls[0]
        self.assertEqual((credentials.access_key, credentials.secret_key, credentials.region),
                         (ACCESS_KEY, SECRET_KEY, "ap-south-1"))

        stored = self.store.get(result.job_id)
        self.assertEqual([f.name for f in stored.files], ["notes.txt", "creds.json", "other.csv"])
        self.assertEqual(stored.files[1].content, files[1].content)

    def test_no_usable_file_fails_with_report(self):
        files = [
            blob("a.txt", "hello"),
            blob("b.xlsx", "binary"),
            blob("c.pdf", "%PDF"),
        ]
        result = self.controller.create_job_from_files(files)
        self.assertTrue(result.success)

        view = self.controller.wait(result.job_id, timeout=10)
        self.assertEqual(view.status, JobStatus.FAILED)
        self.assertEqual(view.error, EXTRACTION_FAILED_MESSAGE)
        self.assertIn("Processing a.txt...", view.output)
        self.assertIn("Could not find AWS credentials in text file", view.output)
        self.assertIn("Excel parsing is not supported", view.output)
        self.assertIn("Unsupported file type: pdf", view.output)
        self.assertIn("\x1b[", view.output)
        self.assertEqual(self.executor.calls, [])

    def test_invalid_extracted_credentials_are_skipped(self):
        files = [
            blob("short.env", f"AWS_ACCESS_KEY_ID={ACCESS_KEY}\nAWS_SECRET_ACCESS_KEY=tooshort"),
            blob("good.env", f"AWS_ACCESS_KEY_ID={ACCESS_KEY}\nAWS_SECRET_ACCESS_KEY={SECRET_KEY}\nAWS_REGION=us-west-1"),
        ]
        result = self.controller.create_job_from_files(files)
        view = self.controller.wait(result.job_id, timeout=10)
        self.assertEqual(view.status, JobStatus.COMPLETED)
        credentials, _ = self.executor.calls[0]
        self.assertEqual(credentials.secret_key, SECRET_KEY)
        self.assertEqual(credentials.region, "us-west-1")

    def test_unparseable_json_falls_through_to_next_file(self):
        files = [
            blob("huge.json", '{"n": ' + "1" * 5000 + "}"),
            blob("nested.json", "[" * 200000),
            blob("good.env", f"AWS_ACCESS_KEY_ID={ACCESS_KEY}\nAWS_SECRET_ACCESS_KEY={SECRET_KEY}"),
        ]
        result = self.controller.create_job_from_files(files)
        view = self.controller.wait(result.job_id, timeout=10)
        self.assertEqual(view.status, JobStatus.COMPLETED)
        self.assertEqual(self.executor.calls[0][0].access_key, ACCESS_KEY)

    def test_accepts_plain_mappings(self):
        result = self.controller.create_job_from_files([
            {"name": "creds.csv", "content": f"access_key_id,secret_access_key,region\n{ACCESS_KEY},{SECRET_KEY},us-west-2\n", "type": "text/csv"},
        ])
        view = self.controller.wait(result.job_id, timeout=10)
        self.assertEqual(view.status, JobStatus.COMPLETED)
        self.assertEqual(self.executor.calls[0][0].region, "us-west-2")

    def test_empty_upload_is_rejected(self):
        result = self.controller.create_job_from_files([])
        self.assertFalse(result.success)
        self.assertEqual(result.error, "No files uploaded")

    def test_extract_credentials_by_name(self):
        files = [blob("creds.env", f"AWS_ACCESS_KEY_ID={ACCESS_KEY}\nAWS_SECRET_ACCESS_KEY={SECRET_KEY}")]
        result = self.controller.create_job_from_files(files)
        self.controller.wait(result.job_id, timeout=10)

        found = self.controller.extract_credentials(result.job_id, "creds.env")
        self.assertTrue(found.success)
        self.assertEqual(found.access_key, ACCESS_KEY)

        missing = self.controller.extract_credentials(result.job_id, "nope.json")
        self.assertEqual(missing.error, "File nope.json not found")
        self.assertEqual(self.controller.extract_credentials("unknown-job", "creds.env").error, "File not found")


class BlockingExtractor(CredentialExtractor):
    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def extract_file(self, blob):
        self.entered.set()
        self.release.wait(10)
        return ExtractionResult.found(ACCESS_KEY, SECRET_KEY)


class TestCancellation(ControllerTestCase):
    def test_cancel_before_analysis(self):
        extractor = BlockingExtractor()
        controller = JobController(self.store, extractor=extractor, executor=self.executor)
        result = controller.create_job_from_files([blob("creds.env", "whatever")])

        self.assertTrue(extractor.entered.wait(10))
        self.assertEqual(controller.get_job_status(result.job_id).status, JobStatus.RUNNING)
        self.assertTrue(controller.cancel(result.job_id))
        extractor.release.set()

        view = controller.wait(result.job_id, timeout=10)
        self.assertEqual(view.status, JobStatus.FAILED)
        self.assertEqual(view.error, "Job cancelled")
        self.assertEqual(self.executor.calls, [])

    def test_cancel_unknown_job(self):
        self.assertFalse(self.controller.cancel("nope"))


class TestWithRealExecutor(ControllerTestCase):
    def setUp(self):
        super().setUp()
        self.artifact_root = os.path.join(self.tmp, "artifacts")

    def controller_for(self, body: str) -> JobController:
        script = os.path.join(self.tmp, "checker.sh")
        with open(script, "w") as f:
            f.write("#!/bin/sh\n" + body + "\n")
        executor = AnalysisExecutor(command=["sh", script], artifact_root=self.artifact_root)
        return JobController(self.store, executor=executor)

    def test_stdout_becomes_output(self):
        controller = self.controller_for('echo "S3 buckets: 4"')
        result = controller.create_job_from_credentials(ACCESS_KEY, SECRET_KEY, "us-east-1")
        view = controller.wait(result.job_id, timeout=30)
        self.assertEqual(view.status, JobStatus.COMPLETED)
        self.assertEqual(view.output, "S3 buckets: 4\n")
        self.assertFalse(os.path.exists(os.path.join(self.artifact_root, result.job_id)))

    def test_stderr_becomes_error(self):
        controller = self.controller_for('echo "An error occurred (InvalidClientTokenId)" >&2')
        result = controller.create_job_from_credentials(ACCESS_KEY, SECRET_KEY, "us-east-1")
        view = controller.wait(result.job_id, timeout=30)
        self.assertEqual(view.status, JobStatus.FAILED)
        self.assertEqual(view.error, "An error occurred (InvalidClientTokenId)\n")
        self.assertFalse(os.path.exists(os.path.join(self.artifact_root, result.job_id)))


if __name__ == "__main__":
    unittest.main()
