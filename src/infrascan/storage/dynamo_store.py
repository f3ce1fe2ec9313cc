import logging
import os
import time
from typing import Optional
import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError as PydanticValidationError

from src.infrascan.errors import StorageError
from src.infrascan.models import ENCODED_CONTENT, Job
from src.infrascan.storage.base import JobStore

logger = logging.getLogger(__name__)


class DynamoJobStore(JobStore):
    """
    Job records as items of a DynamoDB table keyed by `job_id`.

    `expires_at` is meant to be configured as the table's TTL attribute, so
    DynamoDB drops expired jobs on its own; purge_expired() exists for tables
    without TTL enabled.
    """

    def __init__(self, table_name: Optional[str] = None, region_name: Optional[str] = None):
        self.region_name = region_name or os.environ.get("AWS_REGION", "us-east-1")
        self.dynamodb = boto3.resource("dynamodb", region_name=self.region_name)
        self.table_name = table_name or os.environ.get("JOBS_TABLE", "infrascan-jobs")
        self.table = self.dynamodb.Table(self.table_name)

    def init(self) -> None:
        try:
            self.table.load()
        except (ClientError, BotoCoreError) as e:
            logger.error("Jobs table %s is not reachable: %s", self.table_name, e)

    def _read(self, job_id: str) -> Optional[Job]:
        try:
            response = self.table.get_item(Key={"job_id": job_id})
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Could not read job {job_id}: {e}")
        item = response.get("Item")
        if not item:
            return None
        try:
            return Job.model_validate(item, context=ENCODED_CONTENT)
        except PydanticValidationError as e:
            raise StorageError(f"Corrupt record for job {job_id}: {e}")

    def get(self, job_id: str) -> Optional[Job]:
        try:
            return self._read(job_id)
        except StorageError as e:
            logger.warning("%s", e)
            return None

    def set(self, job_id: str, job: Job) -> None:
        item = job.model_dump(mode="json", exclude_none=True)
        item["job_id"] = job_id
        try:
            self.table.put_item(Item=item)
        except (ClientError, BotoCoreError) as e:
            logger.error("Error saving job data for %s: %s", job_id, e)

    def purge_expired(self, now: Optional[float] = None) -> int:
        now = int(now if now is not None else time.time())
        removed = 0
        scan_kwargs = {
            "FilterExpression": Attr("expires_at").lt(now),
            "ProjectionExpression": "job_id",
        }
        try:
            while True:
                response = self.table.scan(**scan_kwargs)
                for item in response.get("Items", []):
                    self.table.delete_item(Key={"job_id": item["job_id"]})
                    removed += 1
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as e:
            logger.error("Error purging expired jobs from %s: %s", self.table_name, e)
        return removed
